from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal, ROUND_DOWN, ROUND_HALF_EVEN, ROUND_HALF_UP, ROUND_UP
from typing import TYPE_CHECKING, Literal

if TYPE_CHECKING:
    from app.services.promotions import PromoEvaluation


MONEY_QUANT = Decimal("0.01")
ZERO = Decimal("0.00")

MoneyRounding = Literal["half_up", "half_even", "up", "down"]


_ROUNDING_MAP: dict[str, str] = {
    "half_up": ROUND_HALF_UP,
    "half_even": ROUND_HALF_EVEN,
    "up": ROUND_UP,
    "down": ROUND_DOWN,
}


def quantize_money(value: Decimal, *, rounding: MoneyRounding = "half_up") -> Decimal:
    mode = _ROUNDING_MAP.get(str(rounding), ROUND_HALF_UP)
    return Decimal(value).quantize(MONEY_QUANT, rounding=mode)


def to_money(value: object | None) -> Decimal:
    if value is None:
        return ZERO
    if isinstance(value, Decimal):
        return quantize_money(value)
    return quantize_money(Decimal(str(value)))


def clamp_discount(discount: Decimal, subtotal: Decimal) -> Decimal:
    """Keep a discount inside ``[0, subtotal]``."""
    if subtotal <= 0 or discount <= 0:
        return ZERO
    return quantize_money(min(discount, subtotal))


@dataclass(frozen=True)
class OrderTotals:
    subtotal: Decimal
    delivery_fee: Decimal
    effective_delivery_fee: Decimal
    discount_amount: Decimal
    final_total: Decimal


def adjust_delivery_fee(base_fee: Decimal, evaluation: PromoEvaluation | None) -> Decimal:
    if base_fee <= 0:
        return ZERO
    if evaluation is not None and evaluation.applicable and evaluation.free_delivery:
        return ZERO
    return quantize_money(base_fee)


def compose_totals(
    *,
    subtotal: Decimal,
    delivery_fee: Decimal,
    effective_delivery_fee: Decimal | None = None,
    discount_amount: Decimal = ZERO,
    rounding: MoneyRounding = "half_up",
) -> OrderTotals:
    subtotal_q = quantize_money(subtotal if subtotal > 0 else ZERO, rounding=rounding)
    fee_q = quantize_money(delivery_fee if delivery_fee > 0 else ZERO, rounding=rounding)
    effective = fee_q if effective_delivery_fee is None else effective_delivery_fee
    effective_q = quantize_money(effective if effective > 0 else ZERO, rounding=rounding)
    discount_q = quantize_money(discount_amount if discount_amount > 0 else ZERO, rounding=rounding)

    total = subtotal_q + effective_q - discount_q
    if total < 0:
        total = ZERO
    return OrderTotals(
        subtotal=subtotal_q,
        delivery_fee=fee_q,
        effective_delivery_fee=effective_q,
        discount_amount=discount_q,
        final_total=quantize_money(total, rounding=rounding),
    )
