import uuid

from app.models.catalog import FlavorSize
from app.models.site_setting import OrderMode
from app.schemas.cart import FlavorSelection
from app.services import packs
from app.services.packs import PackConfig, PackSelectionError
from app.services.stock import StockLevel

FLAVOR_A = uuid.uuid4()
FLAVOR_B = uuid.uuid4()


def _stock(quantity: int, *, allow_oos: bool = False) -> dict:
    return {
        FLAVOR_A: StockLevel(item_id=FLAVOR_A, quantities={FlavorSize.medium: quantity}, allow_out_of_stock_order=allow_oos),
        FLAVOR_B: StockLevel(item_id=FLAVOR_B, quantities={FlavorSize.medium: quantity}, allow_out_of_stock_order=allow_oos),
    }


def _picks(**quantities: int) -> list[FlavorSelection]:
    ids = {"a": FLAVOR_A, "b": FLAVOR_B}
    return [FlavorSelection(flavor_id=ids[key], quantity=qty) for key, qty in quantities.items()]


def test_exact_count_is_valid() -> None:
    pack = PackConfig(product_id=None, count=6)
    result = packs.validate_selection(pack, _picks(a=4, b=2), _stock(10), OrderMode.stock_based)
    assert result.valid is True
    assert result.total == 6
    assert result.reason is None


def test_over_selection_is_rejected() -> None:
    pack = PackConfig(product_id=None, count=6)
    result = packs.validate_selection(pack, _picks(a=4, b=3), _stock(10), OrderMode.stock_based)
    assert result.valid is False
    assert result.reason == PackSelectionError.EXCESS_SELECTION
    assert result.total == 7


def test_under_selection_is_rejected() -> None:
    pack = PackConfig(product_id=None, count=6)
    result = packs.validate_selection(pack, _picks(a=3, b=2), _stock(10), OrderMode.stock_based)
    assert result.reason == PackSelectionError.INSUFFICIENT_SELECTION
    assert "1 more" in (result.message or "")


def test_accepts_only_exact_sum() -> None:
    pack = PackConfig(product_id=None, count=4)
    for a in range(0, 6):
        for b in range(0, 6):
            if a == 0 and b == 0:
                continue
            picks = _picks(**{k: v for k, v in {"a": a, "b": b}.items() if v})
            result = packs.validate_selection(pack, picks, _stock(10), OrderMode.stock_based)
            assert result.valid is (a + b == 4)


def test_flavor_above_stock_is_rejected() -> None:
    pack = PackConfig(product_id=None, count=3)
    result = packs.validate_selection(pack, _picks(a=3), _stock(2), OrderMode.stock_based)
    assert result.valid is False
    assert result.reason == PackSelectionError.STOCK_EXCEEDED
    assert result.limits[FLAVOR_A] == 2


def test_duplicate_entries_are_aggregated_against_stock() -> None:
    pack = PackConfig(product_id=None, count=4)
    picks = [
        FlavorSelection(flavor_id=FLAVOR_A, quantity=2),
        FlavorSelection(flavor_id=FLAVOR_A, quantity=1),
        FlavorSelection(flavor_id=FLAVOR_B, quantity=1),
    ]
    result = packs.validate_selection(pack, picks, _stock(2), OrderMode.stock_based)
    assert result.reason == PackSelectionError.STOCK_EXCEEDED


def test_preorder_allows_selection_beyond_stock() -> None:
    pack = PackConfig(product_id=None, count=6)
    result = packs.validate_selection(pack, _picks(a=6), _stock(0), OrderMode.preorder)
    assert result.valid is True


def test_add_unit_global_cap_takes_precedence() -> None:
    pack = PackConfig(product_id=None, count=2)
    level = StockLevel(item_id=FLAVOR_A, quantities={FlavorSize.medium: 10})
    change = packs.add_flavor_unit(pack, {FLAVOR_B: 2}, FLAVOR_A, level, OrderMode.stock_based)
    assert change.accepted is False
    assert change.reason == PackSelectionError.EXCESS_SELECTION
    assert change.selections == {FLAVOR_B: 2}


def test_add_unit_respects_flavor_stock() -> None:
    pack = PackConfig(product_id=None, count=6)
    level = StockLevel(item_id=FLAVOR_A, quantities={FlavorSize.medium: 1})
    first = packs.add_flavor_unit(pack, {}, FLAVOR_A, level, OrderMode.stock_based)
    assert first.accepted is True
    assert first.selections == {FLAVOR_A: 1}
    second = packs.add_flavor_unit(pack, first.selections, FLAVOR_A, level, OrderMode.stock_based)
    assert second.reason == PackSelectionError.STOCK_EXCEEDED
    assert second.selections == {FLAVOR_A: 1}


def test_remove_unit_drops_entry_at_one() -> None:
    assert packs.remove_flavor_unit({FLAVOR_A: 1, FLAVOR_B: 2}, FLAVOR_A).selections == {FLAVOR_B: 2}
    assert packs.remove_flavor_unit({FLAVOR_B: 2}, FLAVOR_B).selections == {FLAVOR_B: 1}
    assert packs.remove_flavor_unit({FLAVOR_B: 2}, FLAVOR_A).selections == {FLAVOR_B: 2}
