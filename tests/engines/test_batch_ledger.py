"""
Tests for the FIFO batch ledger.

Covers:
- FIFO consumption order and tie-breaking
- Quantity-weighted consumption value and per-lot slices
- Shortfall reporting
- Pruning and value-semantics copies
- Re-pricing a batch and the lots transferred out of it
"""

from datetime import datetime
from decimal import Decimal

import pytest

from lotledger_engines.valuation import BatchLedger, StockLot
from lotledger_kernel.domain import OpeningLot


def _lot(batch_id, quantity, cost, day, product="P", warehouse="W", expiry=None):
    return StockLot(
        batch_id=batch_id,
        product_id=product,
        warehouse_id=warehouse,
        quantity=Decimal(str(quantity)),
        unit_cost=Decimal(str(cost)),
        receipt_date=datetime(2024, 1, day),
        expiry_date=expiry,
    )


class TestFifoConsumption:
    """Consumption draws from the oldest lot first."""

    def test_partial_consumption_touches_only_oldest_lot(self):
        ledger = BatchLedger()
        ledger.append(_lot("L1", 10, 1, day=1))
        ledger.append(_lot("L2", 10, 2, day=2))

        result = ledger.consume("P", "W", Decimal("5"))

        lots = ledger.lots("P", "W")
        assert [lot.quantity for lot in lots] == [Decimal("5"), Decimal("10")]
        assert result.consumed == Decimal("5")
        assert result.value == Decimal("5")

    def test_consumption_spans_lots_at_their_own_costs(self):
        ledger = BatchLedger()
        ledger.append(_lot("L1", 10, 1, day=1))
        ledger.append(_lot("L2", 10, 2, day=2))

        result = ledger.consume("P", "W", Decimal("15"))

        assert result.value == Decimal("20")  # 10 x 1 + 5 x 2
        assert [(s.batch_id, s.quantity) for s in result.slices] == [
            ("L1", Decimal("10")),
            ("L2", Decimal("5")),
        ]
        assert result.average_unit_cost == Decimal("20") / Decimal("15")

    def test_lots_appended_out_of_order_are_sorted_by_receipt_date(self):
        ledger = BatchLedger()
        ledger.append(_lot("NEW", 10, 5, day=9))
        ledger.append(_lot("OLD", 10, 1, day=3))

        result = ledger.consume("P", "W", Decimal("4"))

        assert result.slices[0].batch_id == "OLD"

    def test_same_date_lots_keep_insertion_order(self):
        ledger = BatchLedger()
        ledger.append(_lot("FIRST", 3, 1, day=1))
        ledger.append(_lot("SECOND", 3, 2, day=1))

        result = ledger.consume("P", "W", Decimal("4"))

        assert [s.batch_id for s in result.slices] == ["FIRST", "SECOND"]

    def test_keys_are_isolated(self):
        ledger = BatchLedger()
        ledger.append(_lot("L1", 10, 1, day=1, warehouse="W"))
        ledger.append(_lot("L2", 10, 1, day=1, warehouse="K"))

        ledger.consume("P", "W", Decimal("10"))

        assert ledger.quantity("P", "W") == Decimal("0")
        assert ledger.quantity("P", "K") == Decimal("10")

    def test_non_positive_quantity_rejected(self):
        ledger = BatchLedger()
        with pytest.raises(ValueError):
            ledger.consume("P", "W", Decimal("0"))


class TestShortfall:
    """Consumption beyond available lots is reported, never costed."""

    def test_unmet_quantity_carries_no_cost(self):
        ledger = BatchLedger()
        ledger.append(_lot("L1", 10, 3, day=1))

        result = ledger.consume("P", "W", Decimal("15"))

        assert result.consumed == Decimal("10")
        assert result.value == Decimal("30")
        assert result.shortfall == Decimal("5")
        assert ledger.has_shortfall(result)

    def test_no_lots_at_all(self):
        ledger = BatchLedger()

        result = ledger.consume("P", "W", Decimal("2"))

        assert result.consumed == Decimal("0")
        assert result.slices == ()
        assert result.average_unit_cost == Decimal("0")


class TestPruneAndCopy:

    def test_prune_drops_lots_within_tolerance(self):
        ledger = BatchLedger()
        ledger.append(_lot("L1", "10.0005", 1, day=1))
        ledger.append(_lot("L2", 5, 1, day=2))
        ledger.consume("P", "W", Decimal("10"))

        removed = ledger.prune()

        assert removed == 1
        assert [lot.batch_id for lot in ledger.lots("P", "W")] == ["L2"]

    def test_empty_keys_disappear_after_prune(self):
        ledger = BatchLedger()
        ledger.append(_lot("L1", 1, 1, day=1))
        ledger.consume("P", "W", Decimal("1"))
        ledger.prune()

        assert ledger.keys() == ()

    def test_copy_is_independent(self):
        ledger = BatchLedger()
        ledger.append(_lot("L1", 10, 1, day=1))
        copy = ledger.copy()

        copy.consume("P", "W", Decimal("4"))

        assert ledger.quantity("P", "W") == Decimal("10")
        assert copy.quantity("P", "W") == Decimal("6")

    def test_from_opening_lots(self):
        opening = OpeningLot(
            batch_id="INIT",
            product_id="P",
            warehouse_id="W",
            quantity="7",
            unit_cost="2.5",
            receipt_date="2023-12-31",
        )

        ledger = BatchLedger.from_lots([opening])

        assert ledger.quantity("P", "W") == Decimal("7")
        assert ledger.value("P", "W") == Decimal("17.5")
        assert ledger.snapshot()[0].batch_id == "INIT"

    def test_negative_lot_rejected(self):
        with pytest.raises(ValueError):
            _lot("BAD", -1, 1, day=1)


class TestReprice:
    """A re-priced batch moves its remaining lots, and their transfers, to the new cost."""

    def test_batch_and_its_transferred_lots_are_repriced(self):
        ledger = BatchLedger()
        ledger.append(_lot("b1", 6, 5, day=1))
        ledger.append(_lot("b1/tr1", 4, 5, day=1, warehouse="K"))
        ledger.append(_lot("b10", 3, 5, day=2))

        changes = ledger.reprice("b1", Decimal("6"))

        assert [(c.batch_id, c.value_change) for c in changes] == [
            ("b1", Decimal("6")),
            ("b1/tr1", Decimal("4")),
        ]
        assert ledger.value("P", "W") == Decimal("36") + Decimal("15")
        assert ledger.value("P", "K") == Decimal("24")

    def test_consumed_quantity_keeps_its_old_cost(self):
        ledger = BatchLedger()
        ledger.append(_lot("b1", 10, 5, day=1))
        consumed = ledger.consume("P", "W", Decimal("4"))

        (change,) = ledger.reprice("b1", Decimal("4.5"))

        assert consumed.value == Decimal("20")
        assert change.quantity == Decimal("6")
        assert change.value_change == Decimal("-3.0")
        assert ledger.value("P", "W") == Decimal("27.0")

    def test_unchanged_cost_and_unknown_batch_report_nothing(self):
        ledger = BatchLedger()
        ledger.append(_lot("b1", 10, 5, day=1))

        assert ledger.reprice("b1", Decimal("5")) == ()
        assert ledger.reprice("missing", Decimal("9")) == ()

    def test_negative_cost_rejected(self):
        ledger = BatchLedger()
        ledger.append(_lot("b1", 10, 5, day=1))

        with pytest.raises(ValueError):
            ledger.reprice("b1", Decimal("-1"))
