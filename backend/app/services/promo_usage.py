from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from uuid import UUID

from sqlalchemy import and_, or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.errors import conflict
from app.models.order import Order, OrderEvent
from app.models.promo import PromoCode, PromoCodeUsage

logger = logging.getLogger(__name__)

PROMO_COUNTED_EVENT = "promo_counted"


@dataclass(frozen=True)
class UsageSnapshot:
    usage_count: int = 0
    last_used_at: datetime | None = None


def customer_key(customer_id: UUID | None, guest_email: str | None) -> str | None:
    if customer_id is not None:
        return f"customer:{customer_id}"
    email = (guest_email or "").strip().lower()
    if email:
        return f"guest:{email}"
    return None


async def get_usage(session: AsyncSession, *, promo_id: UUID, key: str | None) -> UsageSnapshot:
    if not key:
        return UsageSnapshot()
    row = (
        await session.execute(
            select(PromoCodeUsage.usage_count, PromoCodeUsage.last_used_at).where(
                PromoCodeUsage.promo_code_id == promo_id, PromoCodeUsage.customer_key == key
            )
        )
    ).first()
    if row is None:
        return UsageSnapshot()
    return UsageSnapshot(usage_count=int(row[0] or 0), last_used_at=row[1])


async def list_usage(session: AsyncSession, *, promo_id: UUID) -> list[PromoCodeUsage]:
    stmt = (
        select(PromoCodeUsage)
        .where(PromoCodeUsage.promo_code_id == promo_id)
        .order_by(PromoCodeUsage.usage_count.desc(), PromoCodeUsage.last_used_at.desc())
        .execution_options(populate_existing=True)
    )
    return list((await session.execute(stmt)).scalars().all())


async def _already_counted(session: AsyncSession, order_id: UUID) -> bool:
    existing = (
        await session.execute(
            select(OrderEvent.id).where(OrderEvent.order_id == order_id, OrderEvent.event == PROMO_COUNTED_EVENT)
        )
    ).first()
    return existing is not None


async def _increment_global(session: AsyncSession, promo: PromoCode) -> bool:
    stmt = (
        update(PromoCode)
        .where(
            PromoCode.id == promo.id,
            or_(
                PromoCode.usage_limit.is_(None),
                PromoCode.usage_limit <= 0,
                PromoCode.used_count < PromoCode.usage_limit,
            ),
        )
        .values(used_count=PromoCode.used_count + 1)
        .execution_options(synchronize_session=False)
    )
    return (await session.execute(stmt)).rowcount == 1


async def _increment_customer(
    session: AsyncSession,
    promo: PromoCode,
    *,
    key: str,
    customer_id: UUID | None,
    guest_email: str | None,
    now: datetime,
) -> bool:
    limit = promo.usage_per_customer
    conditions = [PromoCodeUsage.promo_code_id == promo.id, PromoCodeUsage.customer_key == key]
    if limit is not None and limit > 0:
        conditions.append(PromoCodeUsage.usage_count < limit)
    stmt = (
        update(PromoCodeUsage)
        .where(and_(*conditions))
        .values(usage_count=PromoCodeUsage.usage_count + 1, last_used_at=now)
        .execution_options(synchronize_session=False)
    )
    if (await session.execute(stmt)).rowcount == 1:
        return True

    exists = (
        await session.execute(
            select(PromoCodeUsage.id).where(
                PromoCodeUsage.promo_code_id == promo.id, PromoCodeUsage.customer_key == key
            )
        )
    ).first()
    if exists is not None:
        return False
    if limit is not None and limit < 1:
        return False

    try:
        async with session.begin_nested():
            session.add(
                PromoCodeUsage(
                    promo_code_id=promo.id,
                    customer_key=key,
                    customer_id=customer_id,
                    guest_email=(guest_email or "").strip().lower() or None,
                    usage_count=1,
                    last_used_at=now,
                )
            )
    except IntegrityError:
        # A concurrent first use inserted the row; retry as a conditional update.
        return (await session.execute(stmt)).rowcount == 1
    return True


async def record_promo_usage(
    session: AsyncSession,
    *,
    promo: PromoCode,
    order: Order,
    customer_id: UUID | None = None,
    guest_email: str | None = None,
    now: datetime | None = None,
) -> bool:
    """Count a confirmed order against the global and per-customer limits.

    Both counters move inside the caller's transaction. When either cap has
    been reached concurrently the transaction is rolled back and a 409
    ``promo_usage_conflict`` is raised. Returns False when the order was
    already counted.
    """
    if await _already_counted(session, order.id):
        return False

    now = now or datetime.now(timezone.utc)
    key = customer_key(customer_id, guest_email)
    code = promo.code

    if not await _increment_global(session, promo):
        await session.rollback()
        logger.warning("promo_usage_conflict", extra={"promo_code": code, "reason": "usage_limit"})
        raise conflict("Promo code usage limit reached", code="promo_usage_conflict")

    if key is not None:
        ok = await _increment_customer(
            session, promo, key=key, customer_id=customer_id, guest_email=guest_email, now=now
        )
        if not ok:
            await session.rollback()
            logger.warning(
                "promo_usage_conflict",
                extra={"promo_code": code, "reason": "customer_limit", "customer_key": key},
            )
            raise conflict("You have reached the usage limit for this promo code", code="promo_usage_conflict")

    session.add(OrderEvent(order_id=order.id, event=PROMO_COUNTED_EVENT, note=promo.code))
    # Sessions run with autoflush off; the marker must be visible to a repeat call in this transaction.
    await session.flush()
    logger.info(
        "promo_usage_recorded",
        extra={"promo_code": promo.code, "order_id": str(order.id), "customer_key": key},
    )
    return True
