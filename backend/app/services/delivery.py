from __future__ import annotations

from decimal import Decimal
from uuid import UUID

from fastapi import status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.errors import CodedHTTPException
from app.models.delivery import DeliveryZone
from app.services import pricing


async def list_zones(session: AsyncSession, *, include_inactive: bool = False) -> list[DeliveryZone]:
    stmt = select(DeliveryZone)
    if not include_inactive:
        stmt = stmt.where(DeliveryZone.is_active.is_(True))
    stmt = stmt.order_by(DeliveryZone.sort_order, DeliveryZone.name)
    return list((await session.execute(stmt)).scalars().all())


async def resolve_delivery_fee(
    session: AsyncSession, zone_id: UUID | None
) -> tuple[DeliveryZone | None, Decimal]:
    """Base delivery fee for an order: the zone's fee, or the configured default without a zone."""
    if zone_id is None:
        return None, pricing.quantize_money(settings.default_delivery_fee)
    zone = (await session.execute(select(DeliveryZone).where(DeliveryZone.id == zone_id))).scalar_one_or_none()
    if zone is None or not zone.is_active:
        raise CodedHTTPException(status.HTTP_400_BAD_REQUEST, "Delivery zone not available", code="invalid_zone")
    return zone, pricing.quantize_money(zone.delivery_fee)
