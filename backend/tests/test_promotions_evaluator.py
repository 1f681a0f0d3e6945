import json
import logging
import uuid
from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from app.models.promo import DiscountType, EnhancedPromoType, PromoCode
from app.schemas.cart import CartLine, FlavorSelection
from app.services import pricing
from app.services import promotions
from app.services.promotions import PromoContext, PromoRejection

NOW = datetime(2026, 5, 1, 12, 0, tzinfo=timezone.utc)


def _promo(**overrides) -> PromoCode:
    values = dict(
        id=uuid.uuid4(),
        code="TEST",
        name="Test",
        discount_type=DiscountType.percentage,
        enhanced_type=EnhancedPromoType.basic,
        discount_value=Decimal("10"),
        minimum_order_amount=Decimal("0"),
        maximum_discount=None,
        usage_limit=None,
        used_count=0,
        usage_per_customer=None,
        usage_per_order=1,
        valid_until=None,
        is_active=True,
        category_restrictions=None,
        product_restrictions=None,
        customer_group_restrictions=None,
        first_time_only=False,
        minimum_quantity=0,
        maximum_quantity=0,
        combination_allowed=True,
        stack_with_pricing_rules=True,
        buy_x_quantity=None,
        get_y_quantity=None,
        get_y_discount_percentage=None,
    )
    values.update(overrides)
    return PromoCode(**values)


def _line(price: str, quantity: int = 1, *, category: str | None = "cookies", flavors=None) -> CartLine:
    return CartLine(
        product_id=uuid.uuid4(),
        name="Item",
        category=category,
        quantity=quantity,
        unit_price=Decimal(price),
        flavors=flavors or [],
    )


def _ctx(**overrides) -> PromoContext:
    values = dict(now=NOW, is_first_time_customer=False, customer_id=None, guest_email="guest@example.com")
    values.update(overrides)
    return PromoContext(**values)


def test_percentage_basic_discount() -> None:
    promo = _promo(code="WELCOME10")
    result = promotions.evaluate_promo([_line("200")], promo, _ctx())
    assert result.applicable is True
    assert result.discount_amount == Decimal("20.00")

    totals = pricing.compose_totals(
        subtotal=Decimal("200"),
        delivery_fee=Decimal("50"),
        effective_delivery_fee=pricing.adjust_delivery_fee(Decimal("50"), result),
        discount_amount=result.discount_amount,
    )
    assert totals.final_total == Decimal("230.00")


def test_fixed_amount_capped_at_subtotal() -> None:
    promo = _promo(code="SAVE15", discount_type=DiscountType.fixed_amount, discount_value=Decimal("15"))
    result = promotions.evaluate_promo([_line("10")], promo, _ctx())
    assert result.applicable is True
    assert result.discount_amount == Decimal("10.00")


def test_percentage_respects_maximum_discount() -> None:
    promo = _promo(discount_value=Decimal("50"), maximum_discount=Decimal("30"))
    result = promotions.evaluate_promo([_line("200")], promo, _ctx())
    assert result.discount_amount == Decimal("30.00")


def test_usage_limit_reached_short_circuits() -> None:
    promo = _promo(
        usage_limit=1,
        used_count=1,
        is_active=True,
        minimum_order_amount=Decimal("1000"),
        first_time_only=True,
    )
    result = promotions.evaluate_promo([_line("10")], promo, _ctx())
    assert result.applicable is False
    assert result.reason == PromoRejection.USAGE_LIMIT_REACHED


def test_free_delivery_zeroes_fee_without_subtotal_discount() -> None:
    promo = _promo(enhanced_type=EnhancedPromoType.free_delivery, discount_value=Decimal("25"))
    result = promotions.evaluate_promo([_line("120")], promo, _ctx())
    assert result.applicable is True
    assert result.free_delivery is True
    assert result.discount_amount == Decimal("0.00")
    fee = pricing.adjust_delivery_fee(Decimal("50"), result)
    assert fee == Decimal("0.00")
    totals = pricing.compose_totals(
        subtotal=Decimal("120"), delivery_fee=Decimal("50"), effective_delivery_fee=fee, discount_amount=result.discount_amount
    )
    assert totals.final_total == Decimal("120.00")


def test_inactive_or_expired() -> None:
    inactive = promotions.evaluate_promo([_line("10")], _promo(is_active=False), _ctx())
    assert inactive.reason == PromoRejection.EXPIRED_OR_INACTIVE

    expired = promotions.evaluate_promo([_line("10")], _promo(valid_until=NOW - timedelta(seconds=1)), _ctx())
    assert expired.reason == PromoRejection.EXPIRED_OR_INACTIVE
    assert expired.message == "Promo code has expired"

    naive_future = (NOW + timedelta(days=1)).replace(tzinfo=None)
    still_valid = promotions.evaluate_promo([_line("10")], _promo(valid_until=naive_future), _ctx())
    assert still_valid.applicable is True


def test_customer_limit() -> None:
    promo = _promo(usage_per_customer=2)
    assert promotions.evaluate_promo([_line("10")], promo, _ctx(usage_count=1)).applicable is True
    result = promotions.evaluate_promo([_line("10")], promo, _ctx(usage_count=2))
    assert result.reason == PromoRejection.CUSTOMER_LIMIT_REACHED


def test_minimum_order() -> None:
    promo = _promo(minimum_order_amount=Decimal("100"))
    result = promotions.evaluate_promo([_line("99.99")], promo, _ctx())
    assert result.reason == PromoRejection.BELOW_MINIMUM_ORDER
    assert "100.00" in (result.message or "")
    assert promotions.evaluate_promo([_line("100")], promo, _ctx()).applicable is True


@pytest.mark.parametrize(
    "overrides",
    [{"first_time_only": True}, {"enhanced_type": EnhancedPromoType.first_time_customer}],
)
def test_first_time_only(overrides: dict) -> None:
    promo = _promo(**overrides)
    assert promotions.evaluate_promo([_line("10")], promo, _ctx()).reason == PromoRejection.NOT_FIRST_TIME
    assert promotions.evaluate_promo([_line("10")], promo, _ctx(is_first_time_customer=True)).applicable is True


def test_quantity_bounds() -> None:
    promo = _promo(minimum_quantity=3, maximum_quantity=5)
    assert promotions.evaluate_promo([_line("10", 2)], promo, _ctx()).reason == PromoRejection.QUANTITY_OUT_OF_RANGE
    assert promotions.evaluate_promo([_line("10", 6)], promo, _ctx()).reason == PromoRejection.QUANTITY_OUT_OF_RANGE
    assert promotions.evaluate_promo([_line("10", 3), _line("5", 2)], promo, _ctx()).applicable is True


def test_category_specific_uses_eligible_subtotal() -> None:
    promo = _promo(
        enhanced_type=EnhancedPromoType.category_specific,
        discount_value=Decimal("20"),
        category_restrictions=json.dumps(["Signature"]),
    )
    lines = [_line("100", category="signature"), _line("300", category="drinks")]
    result = promotions.evaluate_promo(lines, promo, _ctx())
    assert result.applicable is True
    assert result.eligible_subtotal == Decimal("100.00")
    assert result.discount_amount == Decimal("20.00")


def test_category_specific_matches_flavor_category() -> None:
    promo = _promo(
        enhanced_type=EnhancedPromoType.category_specific,
        category_restrictions=json.dumps(["limited"]),
    )
    flavors = [FlavorSelection(flavor_id=uuid.uuid4(), quantity=6, category="limited")]
    lines = [_line("420", category="packs", flavors=flavors)]
    assert promotions.evaluate_promo(lines, promo, _ctx()).applicable is True


def test_category_specific_without_matching_items() -> None:
    promo = _promo(
        enhanced_type=EnhancedPromoType.category_specific,
        category_restrictions=json.dumps(["signature"]),
    )
    result = promotions.evaluate_promo([_line("50", category="drinks")], promo, _ctx())
    assert result.reason == PromoRejection.NO_ELIGIBLE_ITEMS


def test_category_specific_unrestricted_applies_to_everything() -> None:
    promo = _promo(enhanced_type=EnhancedPromoType.category_specific, discount_value=Decimal("10"))
    result = promotions.evaluate_promo([_line("50", category=None)], promo, _ctx())
    assert result.applicable is True
    assert result.discount_amount == Decimal("5.00")


def test_product_restrictions_match_product_id() -> None:
    line = _line("80", category="drinks")
    promo = _promo(
        enhanced_type=EnhancedPromoType.category_specific,
        product_restrictions=json.dumps([str(line.product_id)]),
        discount_value=Decimal("50"),
    )
    result = promotions.evaluate_promo([line, _line("20")], promo, _ctx())
    assert result.discount_amount == Decimal("40.00")


def test_buy_one_get_one_uses_cheapest_unit() -> None:
    promo = _promo(enhanced_type=EnhancedPromoType.buy_one_get_one)
    lines = [_line("30", 1), _line("20", 1), _line("25", 2)]
    result = promotions.evaluate_promo(lines, promo, _ctx())
    # four units form two pairs; each free unit is priced at the cheapest line
    assert result.applicable is True
    assert result.discount_amount == Decimal("40.00")


def test_buy_x_get_y_with_partial_percentage() -> None:
    promo = _promo(
        enhanced_type=EnhancedPromoType.buy_x_get_y,
        buy_x_quantity=2,
        get_y_quantity=1,
        get_y_discount_percentage=Decimal("50"),
    )
    result = promotions.evaluate_promo([_line("40", 7)], promo, _ctx())
    assert result.discount_amount == Decimal("40.00")
    assert result.message == "Buy 2 Get 1 promotion applied"


def test_buy_x_get_y_requires_configuration() -> None:
    promo = _promo(enhanced_type=EnhancedPromoType.buy_x_get_y, buy_x_quantity=2)
    result = promotions.evaluate_promo([_line("40", 5)], promo, _ctx())
    assert result.reason == PromoRejection.INVALID_CONFIGURATION


def test_buy_x_get_y_requires_enough_units() -> None:
    promo = _promo(enhanced_type=EnhancedPromoType.buy_x_get_y, buy_x_quantity=2, get_y_quantity=1)
    result = promotions.evaluate_promo([_line("40", 2)], promo, _ctx())
    assert result.reason == PromoRejection.QUANTITY_OUT_OF_RANGE
    assert result.message == "Add 1 more items to qualify for this promotion"


def test_loyalty_requires_registered_customer_and_group() -> None:
    promo = _promo(
        enhanced_type=EnhancedPromoType.loyalty_reward,
        customer_group_restrictions=json.dumps(["vip"]),
    )
    assert promotions.evaluate_promo([_line("10")], promo, _ctx()).reason == PromoRejection.LOGIN_REQUIRED

    member = uuid.uuid4()
    mismatch = promotions.evaluate_promo([_line("10")], promo, _ctx(customer_id=member))
    assert mismatch.reason == PromoRejection.CUSTOMER_GROUP_MISMATCH

    ok = promotions.evaluate_promo(
        [_line("10")], promo, _ctx(customer_id=member, customer_groups=frozenset({"VIP"}))
    )
    assert ok.applicable is True
    assert ok.discount_amount == Decimal("1.00")


def test_discount_always_within_subtotal() -> None:
    promos = [
        _promo(discount_value=Decimal("100")),
        _promo(discount_type=DiscountType.fixed_amount, discount_value=Decimal("1000")),
        _promo(enhanced_type=EnhancedPromoType.buy_one_get_one, get_y_discount_percentage=Decimal("100")),
        _promo(enhanced_type=EnhancedPromoType.free_delivery),
    ]
    carts = [[_line("0.01")], [_line("3.33", 3)], [_line("10", 2), _line("0.50", 2)], [_line("999.99", 1)]]
    for promo in promos:
        for cart in carts:
            result = promotions.evaluate_promo(cart, promo, _ctx())
            subtotal = promotions.cart_subtotal(cart)
            assert Decimal("0") <= result.discount_amount <= subtotal


def test_parse_restrictions_handles_bad_data(caplog: pytest.LogCaptureFixture) -> None:
    assert promotions.parse_restrictions(None) == frozenset()
    assert promotions.parse_restrictions("") == frozenset()
    assert promotions.parse_restrictions('["a", " b ", ""]') == frozenset({"a", "b"})
    with caplog.at_level(logging.WARNING, logger="app.services.promotions"):
        assert promotions.parse_restrictions("not json", code="BROKEN") == frozenset()
        assert promotions.parse_restrictions('{"a": 1}', code="BROKEN") == frozenset()
    assert any(getattr(record, "promo_code", None) == "BROKEN" for record in caplog.records)


def test_malformed_restrictions_fail_open() -> None:
    promo = _promo(enhanced_type=EnhancedPromoType.category_specific, category_restrictions="[oops")
    result = promotions.evaluate_promo([_line("50", category="drinks")], promo, _ctx())
    assert result.applicable is True
