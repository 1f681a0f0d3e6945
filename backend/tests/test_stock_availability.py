import uuid

from app.models.catalog import FlavorSize
from app.models.site_setting import OrderMode
from app.services import stock as stock_service
from app.services.stock import UNLIMITED, StockLevel


def _level(quantity: int, *, allow_oos: bool = False, size: FlavorSize = FlavorSize.medium) -> StockLevel:
    return StockLevel(item_id=uuid.uuid4(), quantities={size: quantity}, allow_out_of_stock_order=allow_oos)


def test_stock_based_request_above_stock_is_rejected() -> None:
    level = _level(2)
    assert stock_service.can_fulfill(level, FlavorSize.medium, 2, OrderMode.stock_based) is True
    assert stock_service.can_fulfill(level, FlavorSize.medium, 3, OrderMode.stock_based) is False
    assert stock_service.max_selectable(level, FlavorSize.medium, OrderMode.stock_based) == 2


def test_preorder_ignores_stock() -> None:
    for quantity in (0, 1, 50):
        level = _level(quantity)
        assert stock_service.can_fulfill(level, FlavorSize.medium, 1000, OrderMode.preorder) is True
        assert stock_service.max_selectable(level, FlavorSize.medium, OrderMode.preorder) == UNLIMITED


def test_out_of_stock_override_is_unbounded() -> None:
    level = _level(0, allow_oos=True)
    assert stock_service.can_fulfill(level, FlavorSize.medium, 10, OrderMode.stock_based) is True
    assert stock_service.max_selectable(level, FlavorSize.medium, OrderMode.stock_based) == UNLIMITED


def test_zero_stock_without_override() -> None:
    level = _level(0)
    assert stock_service.max_selectable(level, FlavorSize.medium, OrderMode.stock_based) == 0
    assert stock_service.can_fulfill(level, FlavorSize.medium, 1, OrderMode.stock_based) is False


def test_missing_size_counts_as_zero() -> None:
    level = _level(8, size=FlavorSize.large)
    assert stock_service.get_available_quantity(level, FlavorSize.mini) == 0
    assert stock_service.get_available_quantity(level, FlavorSize.large) == 8


def test_availability_status_thresholds() -> None:
    preorder = stock_service.availability_status(0, order_mode=OrderMode.preorder, allow_out_of_stock_order=False)
    assert preorder.status == "preorder_available"
    assert preorder.can_order is True

    low = stock_service.availability_status(
        5, order_mode=OrderMode.stock_based, allow_out_of_stock_order=False, low_stock_threshold=5
    )
    assert low.status == "low_stock"

    plenty = stock_service.availability_status(
        6, order_mode=OrderMode.stock_based, allow_out_of_stock_order=False, low_stock_threshold=5
    )
    assert plenty.status == "in_stock"

    out = stock_service.availability_status(0, order_mode=OrderMode.stock_based, allow_out_of_stock_order=False)
    assert out.status == "out_of_stock"
    assert out.can_order is False

    overridden = stock_service.availability_status(0, order_mode=OrderMode.stock_based, allow_out_of_stock_order=True)
    assert overridden.status == "out_of_stock"
    assert overridden.can_order is True
    assert overridden.message == "Out of stock but available for order"
