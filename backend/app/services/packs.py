from __future__ import annotations

import enum
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from uuid import UUID

from fastapi import HTTPException, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.catalog import FlavorSize, Product
from app.models.site_setting import OrderMode
from app.schemas.cart import FlavorSelection
from app.services import stock as stock_service
from app.services.stock import StockLevel


class PackSelectionError(str, enum.Enum):
    INSUFFICIENT_SELECTION = "INSUFFICIENT_SELECTION"
    EXCESS_SELECTION = "EXCESS_SELECTION"
    STOCK_EXCEEDED = "STOCK_EXCEEDED"


@dataclass(frozen=True)
class PackConfig:
    product_id: UUID | None
    count: int
    size: FlavorSize = FlavorSize.medium

    @classmethod
    def from_product(cls, product: Product) -> PackConfig:
        return cls(product_id=product.id, count=int(product.count or 0), size=product.flavor_size or FlavorSize.medium)


@dataclass(frozen=True)
class PackValidation:
    valid: bool
    total: int
    required: int
    reason: PackSelectionError | None = None
    message: str | None = None
    selected: Mapping[UUID, int] = field(default_factory=dict)
    limits: Mapping[UUID, int] = field(default_factory=dict)


@dataclass(frozen=True)
class SelectionChange:
    selections: dict[UUID, int]
    reason: PackSelectionError | None = None

    @property
    def accepted(self) -> bool:
        return self.reason is None


def aggregate_selections(selections: Sequence[FlavorSelection]) -> dict[UUID, int]:
    totals: dict[UUID, int] = {}
    for selection in selections:
        totals[selection.flavor_id] = totals.get(selection.flavor_id, 0) + int(selection.quantity)
    return totals


def _level_for(stock_by_flavor: Mapping[UUID, StockLevel], flavor_id: UUID) -> StockLevel:
    return stock_by_flavor.get(flavor_id) or StockLevel(item_id=flavor_id)


def validate_selection(
    pack: PackConfig,
    selections: Sequence[FlavorSelection],
    stock_by_flavor: Mapping[UUID, StockLevel],
    order_mode: OrderMode,
) -> PackValidation:
    """Check a pack's flavor picks: the exact unit count plus per-flavor stock under ``order_mode``."""
    selected = aggregate_selections(selections)
    total = sum(selected.values())
    limits = {
        flavor_id: stock_service.max_selectable(_level_for(stock_by_flavor, flavor_id), pack.size, order_mode)
        for flavor_id in selected
    }

    def result(reason: PackSelectionError | None, message: str | None) -> PackValidation:
        return PackValidation(
            valid=reason is None,
            total=total,
            required=pack.count,
            reason=reason,
            message=message,
            selected=selected,
            limits=limits,
        )

    if total > pack.count:
        return result(
            PackSelectionError.EXCESS_SELECTION,
            f"You can only select {pack.count} items for this pack",
        )
    for flavor_id, quantity in selected.items():
        if quantity > limits[flavor_id]:
            name = _level_for(stock_by_flavor, flavor_id).name or "this flavor"
            return result(
                PackSelectionError.STOCK_EXCEEDED,
                f"Only {limits[flavor_id]} of {name} available",
            )
    if total < pack.count:
        return result(
            PackSelectionError.INSUFFICIENT_SELECTION,
            f"Please select exactly {pack.count} items (add {pack.count - total} more)",
        )
    return result(None, None)


def add_flavor_unit(
    pack: PackConfig,
    selections: Mapping[UUID, int],
    flavor_id: UUID,
    stock: StockLevel,
    order_mode: OrderMode,
) -> SelectionChange:
    current = dict(selections)
    if sum(current.values()) >= pack.count:
        return SelectionChange(current, PackSelectionError.EXCESS_SELECTION)
    if current.get(flavor_id, 0) + 1 > stock_service.max_selectable(stock, pack.size, order_mode):
        return SelectionChange(current, PackSelectionError.STOCK_EXCEEDED)
    current[flavor_id] = current.get(flavor_id, 0) + 1
    return SelectionChange(current)


def remove_flavor_unit(selections: Mapping[UUID, int], flavor_id: UUID) -> SelectionChange:
    current = dict(selections)
    quantity = current.get(flavor_id, 0)
    if quantity <= 1:
        current.pop(flavor_id, None)
    else:
        current[flavor_id] = quantity - 1
    return SelectionChange(current)


async def get_pack(session: AsyncSession, product_id: UUID) -> Product:
    product = (await session.execute(select(Product).where(Product.id == product_id))).scalar_one_or_none()
    if not product or not product.is_active:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Product not found")
    if not product.is_pack or int(product.count or 0) <= 0:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Product is not a pack")
    return product


async def validate_pack_selection(
    session: AsyncSession,
    *,
    product_id: UUID,
    selections: Sequence[FlavorSelection],
    order_mode: OrderMode,
) -> tuple[PackConfig, PackValidation]:
    product = await get_pack(session, product_id)
    pack = PackConfig.from_product(product)
    flavor_ids = {selection.flavor_id for selection in selections}
    stock_by_flavor = await stock_service.get_flavor_stock(session, flavor_ids)
    missing = flavor_ids - set(stock_by_flavor)
    if missing:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Flavor not found")
    return pack, validate_selection(pack, selections, stock_by_flavor, order_mode)
