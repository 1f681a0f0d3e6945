from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from uuid import UUID

from fastapi import HTTPException, status
from sqlalchemy import case, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.errors import conflict
from app.models.catalog import Flavor, FlavorSize, FlavorStock, Product, StockChangeType, StockHistory, StockItemType
from app.models.site_setting import OrderMode
from app.schemas.cart import CartLine
from app.schemas.stock import StockIssue

logger = logging.getLogger(__name__)

# Effectively unbounded selection for preorder mode or out-of-stock overrides.
UNLIMITED = 2**31 - 1


@dataclass(frozen=True)
class StockLevel:
    item_id: UUID
    quantities: Mapping[FlavorSize | None, int] = field(default_factory=dict)
    allow_out_of_stock_order: bool = False
    name: str | None = None

    @classmethod
    def from_flavor(cls, flavor: Flavor) -> StockLevel:
        quantities = {row.size: int(row.quantity or 0) for row in (flavor.stock_levels or [])}
        return cls(
            item_id=flavor.id,
            quantities=quantities,
            allow_out_of_stock_order=bool(flavor.allow_out_of_stock_order),
            name=flavor.name,
        )

    @classmethod
    def from_product(cls, product: Product) -> StockLevel:
        return cls(
            item_id=product.id,
            quantities={None: int(product.stock_quantity or 0)},
            allow_out_of_stock_order=bool(product.allow_out_of_stock_order),
            name=product.name,
        )


@dataclass(frozen=True)
class AvailabilityStatus:
    status: str
    message: str
    can_order: bool


def get_available_quantity(stock: StockLevel, size: FlavorSize | None) -> int:
    return max(0, int(stock.quantities.get(size, 0) or 0))


def can_fulfill(stock: StockLevel, size: FlavorSize | None, requested_qty: int, order_mode: OrderMode) -> bool:
    if order_mode == OrderMode.preorder:
        return True
    if stock.allow_out_of_stock_order:
        return True
    return int(requested_qty) <= get_available_quantity(stock, size)


def max_selectable(stock: StockLevel, size: FlavorSize | None, order_mode: OrderMode) -> int:
    if order_mode == OrderMode.preorder or stock.allow_out_of_stock_order:
        return UNLIMITED
    return get_available_quantity(stock, size)


def availability_status(
    quantity: int,
    *,
    order_mode: OrderMode,
    allow_out_of_stock_order: bool,
    low_stock_threshold: int | None = None,
) -> AvailabilityStatus:
    if order_mode == OrderMode.preorder:
        return AvailabilityStatus("preorder_available", "Available for preorder", True)
    threshold = settings.low_stock_threshold if low_stock_threshold is None else low_stock_threshold
    if quantity > 0:
        if quantity <= threshold:
            return AvailabilityStatus("low_stock", "Low stock available", True)
        return AvailabilityStatus("in_stock", "In stock", True)
    if allow_out_of_stock_order:
        return AvailabilityStatus("out_of_stock", "Out of stock but available for order", True)
    return AvailabilityStatus("out_of_stock", "Out of stock", False)


async def get_flavor(session: AsyncSession, flavor_id: UUID) -> Flavor:
    flavor = (await session.execute(select(Flavor).where(Flavor.id == flavor_id))).scalar_one_or_none()
    if not flavor:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Flavor not found")
    return flavor


async def get_flavor_stock(session: AsyncSession, flavor_ids: Iterable[UUID]) -> dict[UUID, StockLevel]:
    ids = {fid for fid in flavor_ids}
    if not ids:
        return {}
    stmt = select(Flavor).where(Flavor.id.in_(ids)).execution_options(populate_existing=True)
    flavors = (await session.execute(stmt)).scalars().all()
    return {flavor.id: StockLevel.from_flavor(flavor) for flavor in flavors}


def _apply_change(old: int, change_type: StockChangeType, quantity: int) -> int:
    if change_type == StockChangeType.addition:
        return old + quantity
    if change_type == StockChangeType.subtraction:
        return max(0, old - quantity)
    if change_type == StockChangeType.replacement:
        return quantity
    raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid change type")


async def _load_flavor_row(session: AsyncSession, flavor_id: UUID, size: FlavorSize) -> FlavorStock:
    row = (
        await session.execute(
            select(FlavorStock)
            .where(FlavorStock.flavor_id == flavor_id, FlavorStock.size == size)
            .execution_options(populate_existing=True)
        )
    ).scalar_one_or_none()
    if row is not None:
        return row
    await get_flavor(session, flavor_id)
    row = FlavorStock(flavor_id=flavor_id, size=size, quantity=0)
    session.add(row)
    try:
        await session.flush()
    except IntegrityError as exc:
        await session.rollback()
        raise conflict("Stock changed concurrently, please retry", code="stock_conflict") from exc
    return row


async def adjust_stock(
    session: AsyncSession,
    *,
    item_type: StockItemType,
    item_id: UUID,
    size: FlavorSize | None,
    change_type: StockChangeType,
    quantity: int,
    notes: str | None = None,
    changed_by: str | None = None,
) -> StockHistory:
    """Apply an admin stock edit with a compare-and-swap update and log it to history."""
    if quantity < 0:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Quantity must be non-negative")
    if change_type == StockChangeType.order:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid change type")

    if item_type == StockItemType.flavor:
        if size is None:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Size is required for flavor stock")
        row = await _load_flavor_row(session, item_id, size)
        old = int(row.quantity or 0)
        new = _apply_change(old, change_type, quantity)
        stmt = (
            update(FlavorStock)
            .where(FlavorStock.id == row.id, FlavorStock.quantity == old)
            .values(quantity=new)
        )
    else:
        stmt_product = select(Product).where(Product.id == item_id).execution_options(populate_existing=True)
        product = (await session.execute(stmt_product)).scalar_one_or_none()
        if not product:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Product not found")
        if product.is_pack:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST, detail="Pack availability is tracked per flavor"
            )
        size = None
        old = int(product.stock_quantity or 0)
        new = _apply_change(old, change_type, quantity)
        stmt = (
            update(Product)
            .where(Product.id == product.id, Product.stock_quantity == old)
            .values(stock_quantity=new)
        )

    result = await session.execute(stmt)
    if result.rowcount != 1:
        await session.rollback()
        logger.warning(
            "stock_adjust_conflict",
            extra={"flavor_id" if item_type == StockItemType.flavor else "product_id": str(item_id), "size": size},
        )
        raise conflict("Stock changed concurrently, please retry", code="stock_conflict")

    entry = StockHistory(
        item_id=item_id,
        item_type=item_type,
        size=size,
        old_quantity=old,
        new_quantity=new,
        change_amount=new - old,
        change_type=change_type,
        notes=notes,
        changed_by=changed_by,
    )
    session.add(entry)
    await session.commit()
    await session.refresh(entry)
    logger.info(
        "stock_adjusted",
        extra={
            "flavor_id" if item_type == StockItemType.flavor else "product_id": str(item_id),
            "size": size,
            "reason": change_type.value,
        },
    )
    return entry


@dataclass
class _Demand:
    name: str | None
    quantity: int = 0


def _aggregate_demand(
    lines: Sequence[CartLine],
) -> tuple[dict[tuple[UUID, FlavorSize], _Demand], dict[UUID, _Demand]]:
    flavors: dict[tuple[UUID, FlavorSize], _Demand] = {}
    products: dict[UUID, _Demand] = {}
    for line in lines:
        if line.is_pack:
            for selection in line.flavors:
                key = (selection.flavor_id, selection.size)
                demand = flavors.setdefault(key, _Demand(name=selection.name))
                demand.quantity += int(selection.quantity) * int(line.quantity)
        else:
            demand = products.setdefault(line.product_id, _Demand(name=line.name))
            demand.quantity += int(line.quantity)
    return flavors, products


async def check_cart_stock(
    session: AsyncSession, *, lines: Sequence[CartLine], order_mode: OrderMode
) -> list[StockIssue]:
    flavor_demand, product_demand = _aggregate_demand(lines)
    stock = await get_flavor_stock(session, {flavor_id for flavor_id, _ in flavor_demand})
    products: dict[UUID, Product] = {}
    if product_demand:
        rows = (await session.execute(select(Product).where(Product.id.in_(set(product_demand))))).scalars().all()
        products = {product.id: product for product in rows}

    issues: list[StockIssue] = []
    for (flavor_id, size), demand in flavor_demand.items():
        level = stock.get(flavor_id)
        if level is None:
            issues.append(
                StockIssue(
                    item_id=flavor_id,
                    item_type=StockItemType.flavor,
                    name=demand.name,
                    size=size,
                    issue="not_found",
                    available=0,
                    requested=demand.quantity,
                )
            )
            continue
        if can_fulfill(level, size, demand.quantity, order_mode):
            continue
        available = get_available_quantity(level, size)
        issues.append(
            StockIssue(
                item_id=flavor_id,
                item_type=StockItemType.flavor,
                name=level.name or demand.name,
                size=size,
                issue="out_of_stock" if available == 0 else "insufficient_stock",
                available=available,
                requested=demand.quantity,
            )
        )

    for product_id, demand in product_demand.items():
        product = products.get(product_id)
        if product is None or not product.is_active:
            issues.append(
                StockIssue(
                    item_id=product_id,
                    item_type=StockItemType.product,
                    name=demand.name,
                    issue="not_found",
                    available=0,
                    requested=demand.quantity,
                )
            )
            continue
        level = StockLevel.from_product(product)
        if can_fulfill(level, None, demand.quantity, order_mode):
            continue
        available = get_available_quantity(level, None)
        issues.append(
            StockIssue(
                item_id=product_id,
                item_type=StockItemType.product,
                name=product.name,
                issue="out_of_stock" if available == 0 else "insufficient_stock",
                available=available,
                requested=demand.quantity,
            )
        )
    return issues


async def commit_order_stock(
    session: AsyncSession,
    *,
    lines: Sequence[CartLine],
    order_mode: OrderMode,
    order_id: UUID | None = None,
    changed_by: str | None = None,
) -> list[StockHistory]:
    """Decrement stock for a confirmed order; the caller owns the transaction."""
    if order_mode == OrderMode.preorder:
        return []

    flavor_demand, product_demand = _aggregate_demand(lines)
    stock = await get_flavor_stock(session, {flavor_id for flavor_id, _ in flavor_demand})
    note = f"order:{order_id}" if order_id else None
    entries: list[StockHistory] = []

    for (flavor_id, size), demand in flavor_demand.items():
        level = stock.get(flavor_id)
        if level is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Flavor not found")
        amount = demand.quantity
        stmt = update(FlavorStock).where(FlavorStock.flavor_id == flavor_id, FlavorStock.size == size)
        if level.allow_out_of_stock_order:
            stmt = stmt.values(
                quantity=case((FlavorStock.quantity >= amount, FlavorStock.quantity - amount), else_=0)
            )
        else:
            stmt = stmt.where(FlavorStock.quantity >= amount).values(quantity=FlavorStock.quantity - amount)
        stmt = stmt.returning(FlavorStock.quantity)
        new = (await session.execute(stmt)).scalar_one_or_none()
        if new is None:
            if level.allow_out_of_stock_order:
                continue
            logger.warning("insufficient_stock", extra={"flavor_id": str(flavor_id), "size": size})
            raise conflict(f"Insufficient stock for {level.name or 'flavor'}", code="insufficient_stock")
        if level.allow_out_of_stock_order and new == 0:
            old = max(get_available_quantity(level, size), new)
        else:
            old = new + amount
        entries.append(
            StockHistory(
                item_id=flavor_id,
                item_type=StockItemType.flavor,
                size=size,
                old_quantity=old,
                new_quantity=new,
                change_amount=new - old,
                change_type=StockChangeType.order,
                notes=note,
                changed_by=changed_by,
            )
        )

    for product_id, demand in product_demand.items():
        stmt_product = select(Product).where(Product.id == product_id).execution_options(populate_existing=True)
        product = (await session.execute(stmt_product)).scalar_one_or_none()
        if not product:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Product not found")
        amount = demand.quantity
        loaded = int(product.stock_quantity or 0)
        stmt = update(Product).where(Product.id == product_id)
        if product.allow_out_of_stock_order:
            stmt = stmt.values(
                stock_quantity=case((Product.stock_quantity >= amount, Product.stock_quantity - amount), else_=0)
            )
        else:
            stmt = stmt.where(Product.stock_quantity >= amount).values(stock_quantity=Product.stock_quantity - amount)
        stmt = stmt.returning(Product.stock_quantity)
        new = (await session.execute(stmt)).scalar_one_or_none()
        if new is None:
            logger.warning("insufficient_stock", extra={"product_id": str(product_id)})
            raise conflict(f"Insufficient stock for {product.name}", code="insufficient_stock")
        if product.allow_out_of_stock_order and new == 0:
            old = max(loaded, new)
        else:
            old = new + amount
        entries.append(
            StockHistory(
                item_id=product_id,
                item_type=StockItemType.product,
                old_quantity=old,
                new_quantity=new,
                change_amount=new - old,
                change_type=StockChangeType.order,
                notes=note,
                changed_by=changed_by,
            )
        )

    session.add_all(entries)
    return entries


async def list_stock_history(
    session: AsyncSession,
    *,
    item_type: StockItemType | None = None,
    item_id: UUID | None = None,
    limit: int | None = None,
) -> list[StockHistory]:
    cap = settings.stock_history_limit if limit is None else max(1, min(int(limit), settings.stock_history_limit))
    stmt = select(StockHistory)
    if item_type is not None:
        stmt = stmt.where(StockHistory.item_type == item_type)
    if item_id is not None:
        stmt = stmt.where(StockHistory.item_id == item_id)
    stmt = stmt.order_by(StockHistory.changed_at.desc(), StockHistory.id.desc()).limit(cap)
    return list((await session.execute(stmt)).scalars().all())
