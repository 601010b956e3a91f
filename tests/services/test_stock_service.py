"""
Tests for the stock views.

Covers:
- stock_as_of: positions per (product, warehouse), lots, warehouse filter
- low_stock: minimum-stock threshold and deficit ordering
- expiring_lots: horizon, expired lots, lots without expiry
- product_day_movements: one product's opening, movements and closing
- shortfalls carried by every view, and raised under strict settings
"""

from datetime import date, datetime
from decimal import Decimal

import pytest

from lotledger_engines.movements import MovementKind
from lotledger_kernel.domain import (
    GoodsReceipt,
    InternalTransfer,
    LedgerSnapshot,
    OpeningLot,
    ReceiptItem,
    StockItem,
    WriteOff,
)
from lotledger_kernel.exceptions import DataIntegrityError
from lotledger_services.stock_service import (
    expiring_lots,
    low_stock,
    product_day_movements,
    stock_as_of,
)


@pytest.fixture
def snapshot(products, warehouses):
    return LedgerSnapshot(
        products=products,
        warehouses=warehouses,
        opening_stock=(OpeningLot("INIT-Q", "Q", "W", 2, 3, datetime(2023, 12, 31)),),
        goods_receipts=(
            GoodsReceipt(
                "gr1",
                "GR-1",
                datetime(2024, 1, 1),
                "S",
                "W",
                (
                    ReceiptItem("P", 100, 10, batch_id="FLOUR-A", valid_date=datetime(2024, 1, 20)),
                    ReceiptItem("R", 10, 1),
                ),
            ),
            GoodsReceipt(
                "gr2",
                "GR-2",
                datetime(2024, 1, 3),
                "S",
                "W",
                (ReceiptItem("P", 20, 12, valid_date=datetime(2024, 3, 1)),),
            ),
        ),
        write_offs=(
            WriteOff("wo1", "WO-1", datetime(2024, 1, 5, 10), "W", (StockItem("P", 70),)),
        ),
        internal_transfers=(
            InternalTransfer("tr1", "TR-1", datetime(2024, 1, 5, 15), "W", "K", (StockItem("P", 40),)),
        ),
    )


class TestStockAsOf:

    def test_positions_after_replay(self, snapshot, settings):
        overview = stock_as_of(snapshot, date(2024, 1, 10), settings=settings)

        assert overview.quantity_of("P") == Decimal("50")
        # 30 left of FLOUR-A moved to the kitchen plus 10 from gr2; 10 of gr2 stay.
        assert overview.value_of("P") == Decimal("300") + Decimal("10") * 12 + Decimal("10") * 12
        assert overview.quantity_of("Q") == Decimal("2")
        assert overview.total_value == overview.value_of("P") + Decimal("6") + Decimal("10")

    def test_warehouse_filter_and_lineage(self, snapshot, settings):
        overview = stock_as_of(snapshot, date(2024, 1, 10), "K", settings=settings)

        (position,) = overview.positions
        assert position.warehouse_name == "Kitchen"
        assert [lot.batch_id for lot in position.lots] == ["FLOUR-A/tr1", "gr2-0/tr1"]
        assert position.lots[0].unit_cost == Decimal("10")
        assert position.lots[0].expiry_date == datetime(2024, 1, 20)
        assert position.average_unit_cost == Decimal("10.5")

    def test_as_of_is_inclusive_of_the_whole_day(self, snapshot, settings):
        overview = stock_as_of(snapshot, date(2024, 1, 5), "W", settings=settings)

        assert overview.quantity_of("P") == Decimal("10")

    def test_before_any_document_only_opening_stock(self, snapshot, settings):
        overview = stock_as_of(snapshot, date(2023, 12, 31), settings=settings)

        assert [(p.product_id, p.quantity) for p in overview.positions] == [("Q", Decimal("2"))]


class TestLowStock:

    def test_products_below_minimum_sorted_by_deficit(self, snapshot, settings):
        items = low_stock(snapshot, date(2024, 1, 10), settings=settings)

        assert [(i.product_id, i.deficit) for i in items] == [("Q", Decimal("3"))]

    def test_warehouse_filter_changes_the_picture(self, snapshot, settings):
        items = low_stock(snapshot, date(2024, 1, 10), "W", settings=settings)

        assert [(i.product_id, i.quantity) for i in items] == [
            ("P", Decimal("10")),
            ("Q", Decimal("2")),
        ]
        assert items[0].deficit == Decimal("40")

    def test_products_without_minimum_are_never_listed(self, snapshot, settings):
        items = low_stock(snapshot, date(2023, 12, 31), settings=settings)

        assert "R" not in {i.product_id for i in items}


class TestExpiringLots:

    def test_lots_within_horizon_soonest_first(self, snapshot, settings):
        lots = expiring_lots(snapshot, date(2024, 1, 10), horizon_days=15, settings=settings)

        assert [(e.lot.batch_id, e.days_left) for e in lots] == [("FLOUR-A/tr1", 10)]
        assert not lots[0].is_expired

    def test_expired_lots_have_negative_days(self, snapshot, settings):
        lots = expiring_lots(snapshot, date(2024, 1, 25), horizon_days=0, settings=settings)

        assert [(e.lot.batch_id, e.days_left) for e in lots] == [("FLOUR-A/tr1", -5)]
        assert lots[0].is_expired
        assert lots[0].warehouse_name == "Kitchen"

    def test_default_horizon_comes_from_settings(self, snapshot, settings):
        lots = expiring_lots(snapshot, date(2024, 2, 1), settings=settings)

        assert settings.expiry_horizon_days == 30
        assert {e.lot.batch_id for e in lots} == {"FLOUR-A/tr1", "gr2-0", "gr2-0/tr1"}


class TestProductDayMovements:

    def test_day_drill_down(self, snapshot, settings):
        day = product_day_movements(snapshot, "P", "W", date(2024, 1, 5), settings=settings)

        assert day.opening_quantity == Decimal("120")
        assert [(m.kind, m.quantity) for m in day.movements] == [
            (MovementKind.WRITE_OFF, Decimal("-70")),
            (MovementKind.TRANSFER_OUT, Decimal("-40")),
        ]
        assert day.closing_quantity == Decimal("10")

    def test_quiet_day(self, snapshot, settings):
        day = product_day_movements(snapshot, "P", "K", date(2024, 1, 2), settings=settings)

        assert day.opening_quantity == Decimal("0")
        assert day.movements == ()
        assert day.closing_quantity == Decimal("0")


@pytest.fixture
def short_snapshot(products, warehouses):
    """Writes off 30 of P with only 20 received."""
    return LedgerSnapshot(
        products=products,
        warehouses=warehouses,
        goods_receipts=(
            GoodsReceipt(
                "gr1", "GR-1", datetime(2024, 1, 1), "S", "W",
                (ReceiptItem("P", 20, 5),),
            ),
            GoodsReceipt("gr2", "GR-2", datetime(2024, 1, 3), "S", "W", (ReceiptItem("P", 4, 5, valid_date=datetime(2024, 1, 20)),)),
        ),
        write_offs=(
            WriteOff("wo1", "WO-1", datetime(2024, 1, 2), "W", (StockItem("P", 30),)),
        ),
    )


class TestShortfallsOnStockViews:

    def test_day_drill_down_carries_the_shortfall(self, short_snapshot, settings):
        day = product_day_movements(short_snapshot, "P", "W", date(2024, 1, 2), settings=settings)

        (shortfall,) = day.shortfalls
        assert shortfall.document_id == "wo1"
        assert shortfall.shortfall == Decimal("10")
        assert day.closing_quantity == Decimal("0")

    def test_day_drill_down_ignores_other_products_and_warehouses(self, short_snapshot, settings):
        assert product_day_movements(short_snapshot, "P", "K", date(2024, 1, 2), settings=settings).shortfalls == ()
        assert product_day_movements(short_snapshot, "Q", "W", date(2024, 1, 2), settings=settings).shortfalls == ()

    def test_day_drill_down_before_the_shortfall_is_clean(self, short_snapshot, settings):
        day = product_day_movements(short_snapshot, "P", "W", date(2024, 1, 1), settings=settings)

        assert day.shortfalls == ()
        assert day.closing_quantity == Decimal("20")

    def test_day_drill_down_raises_with_strict_settings(self, short_snapshot, strict_settings):
        with pytest.raises(DataIntegrityError) as excinfo:
            product_day_movements(short_snapshot, "P", "W", date(2024, 1, 2), settings=strict_settings)

        assert excinfo.value.shortfall == Decimal("10")

    def test_low_stock_item_carries_the_shortfall(self, short_snapshot, settings):
        item, sugar = low_stock(short_snapshot, date(2024, 1, 5), settings=settings)

        assert item.product_id == "P"
        assert sugar.shortfalls == ()
        assert item.quantity == Decimal("4")
        assert [s.document_id for s in item.shortfalls] == ["wo1"]

    def test_expiring_lot_carries_the_shortfall_of_its_product(self, short_snapshot, settings):
        (lot,) = expiring_lots(short_snapshot, date(2024, 1, 5), horizon_days=30, settings=settings)

        assert (lot.lot.batch_id, lot.days_left) == ("gr2-0", 15)
        assert [s.document_id for s in lot.shortfalls] == ["wo1"]

    def test_strict_settings_raise_from_every_view(self, short_snapshot, strict_settings):
        with pytest.raises(DataIntegrityError):
            low_stock(short_snapshot, date(2024, 1, 5), settings=strict_settings)
        with pytest.raises(DataIntegrityError):
            expiring_lots(short_snapshot, date(2024, 1, 5), settings=strict_settings)
