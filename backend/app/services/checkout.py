from __future__ import annotations

import logging
import random
import string
from collections.abc import Sequence
from dataclasses import dataclass, field
from uuid import UUID

from fastapi import HTTPException, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.errors import CodedHTTPException, conflict
from app.models.catalog import Flavor, FlavorSize, Product
from app.models.order import Order, OrderEvent, OrderItem, OrderStatus
from app.models.delivery import DeliveryZone
from app.models.promo import PromoCode
from app.models.site_setting import OrderMode
from app.schemas.cart import CartLine, FlavorSelection
from app.schemas.checkout import CheckoutRequest
from app.schemas.stock import StockIssue
from app.services import delivery as delivery_service
from app.services import order_mode as order_mode_service
from app.services import packs as packs_service
from app.services import pricing
from app.services import promo_usage
from app.services import promotions
from app.services import stock as stock_service
from app.services.promotions import PromoEvaluation

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CheckoutQuote:
    order_mode: OrderMode
    lines: list[CartLine]
    totals: pricing.OrderTotals
    promo: PromoCode | None = None
    evaluation: PromoEvaluation | None = None
    stock_issues: list[StockIssue] = field(default_factory=list)
    zone: DeliveryZone | None = None

    @property
    def can_checkout(self) -> bool:
        if self.stock_issues:
            return False
        return self.evaluation is None or self.evaluation.applicable


async def price_lines(session: AsyncSession, items: Sequence[CartLine]) -> list[CartLine]:
    """Re-price cart lines from the catalog and fill in category and flavor metadata."""
    product_ids = {item.product_id for item in items}
    products = {
        product.id: product
        for product in (await session.execute(select(Product).where(Product.id.in_(product_ids)))).scalars().all()
    }
    flavor_ids = {sel.flavor_id for item in items for sel in item.flavors}
    flavors: dict[UUID, Flavor] = {}
    if flavor_ids:
        rows = (await session.execute(select(Flavor).where(Flavor.id.in_(flavor_ids)))).scalars().all()
        flavors = {flavor.id: flavor for flavor in rows}

    lines: list[CartLine] = []
    for item in items:
        product = products.get(item.product_id)
        if product is None or not product.is_active:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Product not available")
        selections: list[FlavorSelection] = []
        if product.is_pack:
            size = product.flavor_size or FlavorSize.medium
            for sel in item.flavors:
                flavor = flavors.get(sel.flavor_id)
                if flavor is None or not flavor.is_active:
                    raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Flavor not available")
                selections.append(
                    FlavorSelection(
                        flavor_id=flavor.id,
                        size=size,
                        quantity=sel.quantity,
                        category=flavor.category,
                        name=flavor.name,
                    )
                )
        lines.append(
            CartLine(
                product_id=product.id,
                name=product.name,
                category=product.category,
                quantity=item.quantity,
                unit_price=pricing.to_money(product.base_price),
                is_pack=bool(product.is_pack),
                flavors=selections,
            )
        )
    return lines


async def _validate_packs(session: AsyncSession, lines: Sequence[CartLine], mode: OrderMode) -> None:
    pack_lines = [line for line in lines if line.is_pack]
    if not pack_lines:
        return
    stock_by_flavor = await stock_service.get_flavor_stock(
        session, {sel.flavor_id for line in pack_lines for sel in line.flavors}
    )
    for line in pack_lines:
        product = await packs_service.get_pack(session, line.product_id)
        validation = packs_service.validate_selection(
            packs_service.PackConfig.from_product(product), line.flavors, stock_by_flavor, mode
        )
        if not validation.valid:
            raise CodedHTTPException(
                status.HTTP_400_BAD_REQUEST,
                validation.message or "Invalid pack selection",
                code=validation.reason.value if validation.reason else "invalid_pack_selection",
            )


async def quote(
    session: AsyncSession, payload: CheckoutRequest, *, lock_promo: bool = False
) -> CheckoutQuote:
    mode = await order_mode_service.get_order_mode(session)
    lines = await price_lines(session, payload.items)
    await _validate_packs(session, lines, mode)
    issues = await stock_service.check_cart_stock(session, lines=lines, order_mode=mode)

    promo: PromoCode | None = None
    evaluation: PromoEvaluation | None = None
    if payload.promo_code and payload.promo_code.strip():
        promo, evaluation = await promotions.evaluate_code(
            session,
            code=payload.promo_code,
            lines=lines,
            customer_id=payload.customer_id,
            guest_email=payload.guest_email,
            customer_groups=payload.customer_groups,
            for_update=lock_promo,
        )

    subtotal = promotions.cart_subtotal(lines)
    zone, base_fee = await delivery_service.resolve_delivery_fee(session, payload.zone_id)
    discount = evaluation.discount_amount if evaluation is not None and evaluation.applicable else pricing.ZERO
    totals = pricing.compose_totals(
        subtotal=subtotal,
        delivery_fee=base_fee,
        effective_delivery_fee=pricing.adjust_delivery_fee(base_fee, evaluation),
        discount_amount=discount,
    )
    return CheckoutQuote(
        order_mode=mode,
        lines=lines,
        totals=totals,
        promo=promo,
        evaluation=evaluation,
        stock_issues=issues,
        zone=zone,
    )


async def _generate_reference_code(session: AsyncSession, length: int = 10) -> str:
    chars = string.ascii_uppercase + string.digits
    while True:
        candidate = "".join(random.choices(chars, k=length))
        result = await session.execute(select(Order.id).where(Order.reference_code == candidate))
        if not result.first():
            return candidate


async def confirm(session: AsyncSession, payload: CheckoutRequest) -> Order:
    """Re-validate the cart against current state and commit the order atomically."""
    if payload.customer_id is None and not payload.guest_email:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Customer or guest email is required")

    try:
        current = await quote(session, payload, lock_promo=True)
        if current.stock_issues:
            raise conflict("Some items are no longer available", code="insufficient_stock")
        evaluation = current.evaluation
        if evaluation is not None and not evaluation.applicable:
            raise CodedHTTPException(
                status.HTTP_400_BAD_REQUEST,
                evaluation.message or "Promo code is not applicable",
                code=evaluation.reason.value if evaluation.reason else "promo_not_applicable",
            )

        totals = current.totals
        order = Order(
            reference_code=await _generate_reference_code(session),
            status=OrderStatus.confirmed,
            customer_id=payload.customer_id,
            customer_email=(payload.guest_email or "").strip().lower() or None,
            order_mode=current.order_mode.value,
            promo_code_id=current.promo.id if current.promo else None,
            promo_code=current.promo.code if current.promo else None,
            zone_id=current.zone.id if current.zone else None,
            subtotal=totals.subtotal,
            delivery_fee=totals.effective_delivery_fee,
            discount_amount=totals.discount_amount,
            total_amount=totals.final_total,
            currency=settings.currency,
        )
        order.items = [
            OrderItem(
                product_id=line.product_id,
                name=line.name or "",
                quantity=line.quantity,
                unit_price=line.unit_price,
                subtotal=pricing.quantize_money(line.line_total),
                flavor_selections=[
                    {"flavor_id": str(sel.flavor_id), "size": sel.size.value, "quantity": sel.quantity}
                    for sel in line.flavors
                ]
                or None,
            )
            for line in current.lines
        ]
        session.add(order)
        await session.flush()

        entries = await stock_service.commit_order_stock(
            session, lines=current.lines, order_mode=current.order_mode, order_id=order.id, changed_by="checkout"
        )
        if entries:
            session.add(OrderEvent(order_id=order.id, event="stock_committed", note=f"{len(entries)} items"))
        if current.promo is not None:
            await promo_usage.record_promo_usage(
                session,
                promo=current.promo,
                order=order,
                customer_id=payload.customer_id,
                guest_email=payload.guest_email,
            )
        session.add(OrderEvent(order_id=order.id, event="confirmed", note=f"Total {totals.final_total}"))
        await session.commit()
    except HTTPException:
        await session.rollback()
        raise

    await session.refresh(order)
    logger.info(
        "order_confirmed",
        extra={"order_id": str(order.id), "promo_code": order.promo_code, "reason": current.order_mode.value},
    )
    return order