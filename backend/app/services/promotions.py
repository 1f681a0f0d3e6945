from __future__ import annotations

import enum
import json
import logging
import math
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from typing import TYPE_CHECKING
from uuid import UUID

from fastapi import HTTPException, status
from sqlalchemy import func, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.order import Order, OrderStatus
from app.models.promo import DiscountType, EnhancedPromoType, PromoCode
from app.schemas.cart import CartLine
from app.schemas.common import PaginationMeta
from app.services import pricing
from app.services import promo_usage

if TYPE_CHECKING:
    from app.schemas.promo import PromoCodeCreate, PromoCodeUpdate

logger = logging.getLogger(__name__)

RESTRICTION_FIELDS = ("category_restrictions", "product_restrictions", "customer_group_restrictions")
NULLABLE_FIELDS = frozenset(
    {
        "description",
        "maximum_discount",
        "usage_limit",
        "usage_per_customer",
        "valid_until",
        "buy_x_quantity",
        "get_y_quantity",
        "get_y_discount_percentage",
    }
)


class PromoRejection(str, enum.Enum):
    NOT_FOUND = "NOT_FOUND"
    EXPIRED_OR_INACTIVE = "EXPIRED_OR_INACTIVE"
    USAGE_LIMIT_REACHED = "USAGE_LIMIT_REACHED"
    CUSTOMER_LIMIT_REACHED = "CUSTOMER_LIMIT_REACHED"
    BELOW_MINIMUM_ORDER = "BELOW_MINIMUM_ORDER"
    NOT_FIRST_TIME = "NOT_FIRST_TIME"
    QUANTITY_OUT_OF_RANGE = "QUANTITY_OUT_OF_RANGE"
    NO_ELIGIBLE_ITEMS = "NO_ELIGIBLE_ITEMS"
    LOGIN_REQUIRED = "LOGIN_REQUIRED"
    CUSTOMER_GROUP_MISMATCH = "CUSTOMER_GROUP_MISMATCH"
    INVALID_CONFIGURATION = "INVALID_CONFIGURATION"


_REJECTION_MESSAGES: dict[PromoRejection, str] = {
    PromoRejection.NOT_FOUND: "Invalid promo code",
    PromoRejection.EXPIRED_OR_INACTIVE: "Promo code has expired",
    PromoRejection.USAGE_LIMIT_REACHED: "Promo code usage limit reached",
    PromoRejection.CUSTOMER_LIMIT_REACHED: "You have reached the usage limit for this promo code.",
    PromoRejection.NOT_FIRST_TIME: "This promo code is only for first-time customers",
    PromoRejection.NO_ELIGIBLE_ITEMS: "No eligible items in cart for this category-specific promotion",
    PromoRejection.LOGIN_REQUIRED: "Customer login required for loyalty rewards",
    PromoRejection.CUSTOMER_GROUP_MISMATCH: "This promo code is not available for your account",
    PromoRejection.INVALID_CONFIGURATION: "Invalid buy X get Y configuration",
}

_APPLIED_MESSAGES: dict[EnhancedPromoType, str] = {
    EnhancedPromoType.free_delivery: "Free delivery applied",
    EnhancedPromoType.category_specific: "Category-specific discount applied",
    EnhancedPromoType.first_time_customer: "First-time customer discount applied",
    EnhancedPromoType.loyalty_reward: "Loyalty reward applied",
}


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _as_aware(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def normalize_code(code: str) -> str:
    return (code or "").strip().upper()


def parse_restrictions(raw: str | None, *, code: str | None = None) -> frozenset[str]:
    """Decode a stored JSON restriction list; empty means unrestricted."""
    if raw is None or not str(raw).strip():
        return frozenset()
    try:
        decoded = json.loads(raw)
    except (TypeError, ValueError):
        logger.warning("promo_restrictions_malformed", extra={"promo_code": code, "reason": "invalid_json"})
        return frozenset()
    if not isinstance(decoded, list):
        logger.warning("promo_restrictions_malformed", extra={"promo_code": code, "reason": "not_a_list"})
        return frozenset()
    return frozenset(str(item).strip() for item in decoded if item is not None and str(item).strip())


def encode_restrictions(values: Iterable[str] | None) -> str | None:
    cleaned = [str(value).strip() for value in (values or []) if str(value).strip()]
    if not cleaned:
        return None
    return json.dumps(cleaned)


@dataclass(frozen=True)
class PromoContext:
    now: datetime = field(default_factory=_now)
    is_first_time_customer: bool = False
    customer_id: UUID | None = None
    guest_email: str | None = None
    usage_count: int = 0
    customer_groups: frozenset[str] = frozenset()


@dataclass(frozen=True)
class PromoEvaluation:
    code: str
    applicable: bool
    discount_amount: Decimal = pricing.ZERO
    free_delivery: bool = False
    reason: PromoRejection | None = None
    message: str | None = None
    eligible_subtotal: Decimal = pricing.ZERO


def cart_subtotal(lines: Sequence[CartLine]) -> Decimal:
    return pricing.quantize_money(sum((line.line_total for line in lines), start=Decimal("0.00")))


def cart_item_count(lines: Sequence[CartLine]) -> int:
    return sum(int(line.quantity) for line in lines)


def _casefold_set(values: Iterable[str]) -> frozenset[str]:
    return frozenset(value.casefold() for value in values)


def _line_matches(line: CartLine, categories: frozenset[str], products: frozenset[str]) -> bool:
    if str(line.product_id).casefold() in products:
        return True
    if line.category and line.category.casefold() in categories:
        return True
    return any(sel.category and sel.category.casefold() in categories for sel in line.flavors)


def eligible_lines(promo: PromoCode, lines: Sequence[CartLine]) -> list[CartLine]:
    categories = _casefold_set(parse_restrictions(promo.category_restrictions, code=promo.code))
    products = _casefold_set(parse_restrictions(promo.product_restrictions, code=promo.code))
    if not categories and not products:
        return list(lines)
    return [line for line in lines if _line_matches(line, categories, products)]


def _bxgy_quantities(promo: PromoCode) -> tuple[int, int] | None:
    buy_x = promo.buy_x_quantity
    get_y = promo.get_y_quantity
    if promo.enhanced_type == EnhancedPromoType.buy_one_get_one:
        buy_x = buy_x or 1
        get_y = get_y or 1
    if not buy_x or not get_y or buy_x < 1 or get_y < 1:
        return None
    return int(buy_x), int(get_y)


def _reject(promo: PromoCode, reason: PromoRejection, message: str | None = None) -> PromoEvaluation:
    logger.debug("promo_rejected", extra={"promo_code": promo.code, "reason": reason.value})
    return PromoEvaluation(
        code=promo.code,
        applicable=False,
        reason=reason,
        message=message or _REJECTION_MESSAGES.get(reason),
    )


def compute_discount(
    promo: PromoCode,
    *,
    subtotal: Decimal,
    matching: Sequence[CartLine],
) -> Decimal:
    """Discount for an already eligible promo, clamped to ``[0, subtotal]``."""
    enhanced = promo.enhanced_type
    value = Decimal(promo.discount_value or 0)
    if enhanced == EnhancedPromoType.free_delivery:
        return pricing.ZERO

    if enhanced in (EnhancedPromoType.buy_one_get_one, EnhancedPromoType.buy_x_get_y):
        quantities = _bxgy_quantities(promo)
        if quantities is None or not matching:
            return pricing.ZERO
        buy_x, get_y = quantities
        units = cart_item_count(matching)
        groups = units // (buy_x + get_y)
        pct = Decimal(promo.get_y_discount_percentage) if promo.get_y_discount_percentage is not None else Decimal(100)
        cheapest = min(Decimal(line.unit_price) for line in matching)
        raw = Decimal(groups * get_y) * cheapest * pct / Decimal(100)
        return pricing.clamp_discount(raw, subtotal)

    base = subtotal
    if enhanced == EnhancedPromoType.category_specific:
        base = sum((line.line_total for line in matching), start=Decimal("0.00"))
    if promo.discount_type == DiscountType.percentage:
        raw = base * value / Decimal(100)
        cap = Decimal(promo.maximum_discount or 0)
        if cap > 0:
            raw = min(raw, cap)
    else:
        raw = min(value, base)
    return pricing.clamp_discount(raw, subtotal)


def evaluate_promo(lines: Sequence[CartLine], promo: PromoCode, context: PromoContext) -> PromoEvaluation:
    """Run the eligibility gates in order and price the promo for ``lines``."""
    subtotal = cart_subtotal(lines)
    enhanced = promo.enhanced_type

    if not promo.is_active or (promo.valid_until is not None and _as_aware(promo.valid_until) < context.now):
        return _reject(promo, PromoRejection.EXPIRED_OR_INACTIVE)

    if promo.usage_limit and promo.usage_limit > 0 and int(promo.used_count or 0) >= promo.usage_limit:
        return _reject(promo, PromoRejection.USAGE_LIMIT_REACHED)

    if promo.usage_per_customer is not None and context.usage_count >= promo.usage_per_customer:
        return _reject(promo, PromoRejection.CUSTOMER_LIMIT_REACHED)

    minimum = Decimal(promo.minimum_order_amount or 0)
    if subtotal < minimum:
        return _reject(
            promo,
            PromoRejection.BELOW_MINIMUM_ORDER,
            f"Minimum order amount of {pricing.quantize_money(minimum)} required",
        )

    if (promo.first_time_only or enhanced == EnhancedPromoType.first_time_customer) and not context.is_first_time_customer:
        return _reject(promo, PromoRejection.NOT_FIRST_TIME)

    count = cart_item_count(lines)
    if (promo.minimum_quantity and count < promo.minimum_quantity) or (
        promo.maximum_quantity and count > promo.maximum_quantity
    ):
        return _reject(
            promo,
            PromoRejection.QUANTITY_OUT_OF_RANGE,
            f"This promo code requires between {promo.minimum_quantity or 1} and "
            f"{promo.maximum_quantity or 'any number of'} items",
        )

    matching = eligible_lines(promo, lines)
    if enhanced == EnhancedPromoType.category_specific and not matching:
        return _reject(promo, PromoRejection.NO_ELIGIBLE_ITEMS)

    if enhanced == EnhancedPromoType.loyalty_reward:
        if context.customer_id is None:
            return _reject(promo, PromoRejection.LOGIN_REQUIRED)
        groups = _casefold_set(parse_restrictions(promo.customer_group_restrictions, code=promo.code))
        if groups and not (groups & _casefold_set(context.customer_groups)):
            return _reject(promo, PromoRejection.CUSTOMER_GROUP_MISMATCH)

    applied_message = _APPLIED_MESSAGES.get(enhanced, "Promo code applied successfully")
    if enhanced in (EnhancedPromoType.buy_one_get_one, EnhancedPromoType.buy_x_get_y):
        quantities = _bxgy_quantities(promo)
        if quantities is None:
            return _reject(promo, PromoRejection.INVALID_CONFIGURATION)
        buy_x, get_y = quantities
        units = cart_item_count(matching)
        if units < buy_x + get_y:
            return _reject(
                promo,
                PromoRejection.QUANTITY_OUT_OF_RANGE,
                f"Add {buy_x + get_y - units} more items to qualify for this promotion",
            )
        applied_message = f"Buy {buy_x} Get {get_y} promotion applied"

    discount = compute_discount(promo, subtotal=subtotal, matching=matching)
    eligible_subtotal = pricing.quantize_money(sum((line.line_total for line in matching), start=Decimal("0.00")))
    return PromoEvaluation(
        code=promo.code,
        applicable=True,
        discount_amount=discount,
        free_delivery=enhanced == EnhancedPromoType.free_delivery,
        message=applied_message,
        eligible_subtotal=eligible_subtotal,
    )


def not_found_evaluation(code: str) -> PromoEvaluation:
    return PromoEvaluation(
        code=normalize_code(code),
        applicable=False,
        reason=PromoRejection.NOT_FOUND,
        message=_REJECTION_MESSAGES[PromoRejection.NOT_FOUND],
    )


async def get_promo_by_code(session: AsyncSession, code: str, *, for_update: bool = False) -> PromoCode | None:
    cleaned = normalize_code(code)
    if not cleaned:
        return None
    stmt = select(PromoCode).where(func.upper(PromoCode.code) == cleaned)
    if for_update:
        stmt = stmt.with_for_update().execution_options(populate_existing=True)
    return (await session.execute(stmt)).scalar_one_or_none()


async def is_first_time_customer(
    session: AsyncSession, *, customer_id: UUID | None, guest_email: str | None
) -> bool:
    email = (guest_email or "").strip().lower()
    if customer_id is None and not email:
        return False
    identity = []
    if customer_id is not None:
        identity.append(Order.customer_id == customer_id)
    if email:
        identity.append(func.lower(Order.customer_email) == email)
    stmt = select(func.count(Order.id)).where(or_(*identity), Order.status != OrderStatus.cancelled)
    count = (await session.execute(stmt)).scalar_one()
    return int(count or 0) == 0


async def build_context(
    session: AsyncSession,
    promo: PromoCode,
    *,
    customer_id: UUID | None,
    guest_email: str | None,
    customer_groups: Iterable[str] = (),
    now: datetime | None = None,
) -> PromoContext:
    key = promo_usage.customer_key(customer_id, guest_email)
    usage = await promo_usage.get_usage(session, promo_id=promo.id, key=key)
    first_time = await is_first_time_customer(session, customer_id=customer_id, guest_email=guest_email)
    return PromoContext(
        now=now or _now(),
        is_first_time_customer=first_time,
        customer_id=customer_id,
        guest_email=guest_email,
        usage_count=usage.usage_count,
        customer_groups=frozenset(str(group) for group in customer_groups),
    )


async def evaluate_code(
    session: AsyncSession,
    *,
    code: str,
    lines: Sequence[CartLine],
    customer_id: UUID | None = None,
    guest_email: str | None = None,
    customer_groups: Iterable[str] = (),
    for_update: bool = False,
) -> tuple[PromoCode | None, PromoEvaluation]:
    promo = await get_promo_by_code(session, code, for_update=for_update)
    if promo is None:
        return None, not_found_evaluation(code)
    context = await build_context(
        session, promo, customer_id=customer_id, guest_email=guest_email, customer_groups=customer_groups
    )
    return promo, evaluate_promo(lines, promo, context)


async def list_promo_codes(
    session: AsyncSession,
    *,
    page: int = 1,
    limit: int = 20,
    search: str | None = None,
    enhanced_type: EnhancedPromoType | None = None,
    is_active: bool | None = None,
) -> tuple[list[PromoCode], PaginationMeta]:
    page = max(1, int(page or 1))
    limit = max(1, min(100, int(limit or 20)))
    filters = []
    if search and search.strip():
        like = f"%{search.strip().lower()}%"
        filters.append(
            or_(
                func.lower(PromoCode.code).like(like),
                func.lower(PromoCode.name).like(like),
                func.lower(func.coalesce(PromoCode.description, "")).like(like),
            )
        )
    if enhanced_type is not None:
        filters.append(PromoCode.enhanced_type == enhanced_type)
    if is_active is not None:
        filters.append(PromoCode.is_active == is_active)

    total_items = int((await session.execute(select(func.count(PromoCode.id)).where(*filters))).scalar_one() or 0)
    stmt = (
        select(PromoCode)
        .where(*filters)
        .order_by(PromoCode.created_at.desc(), PromoCode.code)
        .offset((page - 1) * limit)
        .limit(limit)
    )
    items = list((await session.execute(stmt)).scalars().all())
    total_pages = max(1, math.ceil(total_items / limit)) if total_items else 1
    return items, PaginationMeta(total_items=total_items, total_pages=total_pages, page=page, limit=limit)


async def get_promo(session: AsyncSession, promo_id: UUID) -> PromoCode:
    promo = await session.get(PromoCode, promo_id)
    if not promo:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Promo code not found")
    return promo


def _check_discount(discount_type: DiscountType, discount_value: Decimal) -> None:
    if discount_type == DiscountType.percentage and Decimal(discount_value) > 100:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Percentage discounts cannot exceed 100")


async def create_promo(session: AsyncSession, payload: PromoCodeCreate, *, created_by: str | None = None) -> PromoCode:
    code = normalize_code(payload.code)
    if await get_promo_by_code(session, code) is not None:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Promo code already exists")
    _check_discount(payload.discount_type, payload.discount_value)

    data = payload.model_dump(exclude={"code", *RESTRICTION_FIELDS})
    promo = PromoCode(code=code, created_by=created_by, used_count=0, **data)
    for name in RESTRICTION_FIELDS:
        setattr(promo, name, encode_restrictions(getattr(payload, name)))
    session.add(promo)
    try:
        await session.commit()
    except IntegrityError as exc:
        await session.rollback()
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Promo code already exists") from exc
    await session.refresh(promo)
    logger.info("promo_code_created", extra={"promo_code": promo.code})
    return promo


async def update_promo(session: AsyncSession, promo: PromoCode, payload: PromoCodeUpdate) -> PromoCode:
    data = payload.model_dump(exclude_unset=True)
    for name in RESTRICTION_FIELDS:
        if name in data:
            setattr(promo, name, encode_restrictions(data.pop(name)))
    for name, value in data.items():
        if value is None and name not in NULLABLE_FIELDS:
            continue
        setattr(promo, name, value)
    _check_discount(promo.discount_type, promo.discount_value or Decimal("0"))
    if promo.maximum_quantity and promo.minimum_quantity and promo.maximum_quantity < promo.minimum_quantity:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="maximum_quantity must be greater than or equal to minimum_quantity",
        )
    session.add(promo)
    await session.commit()
    await session.refresh(promo)
    logger.info("promo_code_updated", extra={"promo_code": promo.code})
    return promo


async def delete_promo(session: AsyncSession, promo: PromoCode) -> None:
    code = promo.code
    await session.delete(promo)
    await session.commit()
    logger.info("promo_code_deleted", extra={"promo_code": code})
