"""
Tests for DebtAllocationEngine.

Covers:
- Initial balance settled first, remainder aged
- Initial-balance priority over older documents
- Negative initial balances
- Credit documents feeding the pool
- Cutoff and status filtering
- Balance identity and unapplied credit
- Sub-tolerance remainders: bucketed, hidden, never settled unless paid
"""

from datetime import datetime, timedelta
from decimal import Decimal

from lotledger_engines.allocation import DebtAllocationEngine
from lotledger_kernel.domain import (
    Counterparty,
    DocumentStatus,
    GoodsReceipt,
    GoodsReturn,
    Payment,
    PriceAdjustment,
    PriceAdjustmentItem,
    ReceiptItem,
    ReturnItem,
    SalesInvoice,
    SalesItem,
)

CUTOFF = datetime(2024, 6, 30)


def days_before(n: int) -> datetime:
    return CUTOFF - timedelta(days=n)


def receipt(doc_id, amount, age, supplier="S", status=DocumentStatus.CONFIRMED):
    return GoodsReceipt(
        id=doc_id,
        doc_number=doc_id.upper(),
        date=days_before(age),
        supplier_id=supplier,
        warehouse_id="W",
        items=(ReceiptItem("P", 1, amount),),
        status=status,
    )


def payment(pay_id, amount, age, party="S"):
    return Payment(id=pay_id, doc_number=pay_id.upper(), date=days_before(age), counterparty_id=party, amount=amount)


class TestPaymentAfterInitialBalance:

    def test_payment_settles_initial_balance_then_receipt(self):
        supplier = Counterparty.supplier("S", "Mill", initial_balance=500)
        engine = DebtAllocationEngine()

        result = engine.allocate(
            supplier,
            [receipt("gr1", 1000, age=41)],
            [payment("p1", 700, age=10)],
            cutoff=CUTOFF,
        )

        assert result.paid_to_initial == Decimal("500")
        assert result.unpaid_initial == Decimal("0")
        assert result.remainders[0].remaining == Decimal("800")
        assert result.bucket("31-60").total == Decimal("800")
        assert result.bucket("0-30").total == Decimal("0")
        assert result.bucket("61-90").total == Decimal("0")
        assert result.bucket("90+").total == Decimal("0")
        assert result.outstanding == Decimal("800")
        assert result.bucket_total == Decimal("800")


class TestInitialBalance:

    def test_initial_balance_settled_before_much_older_document(self):
        supplier = Counterparty.supplier("S", "Mill", initial_balance=300)
        engine = DebtAllocationEngine()

        result = engine.allocate(
            supplier,
            [receipt("gr1", 200, age=400)],
            [payment("p1", 300, age=1)],
            cutoff=CUTOFF,
        )

        assert result.unpaid_initial == Decimal("0")
        assert result.remainders[0].paid == Decimal("0")
        assert result.bucket("90+").total == Decimal("200")

    def test_unpaid_initial_balance_is_first_in_oldest_bucket(self):
        supplier = Counterparty.supplier("S", "Mill", initial_balance=300)
        engine = DebtAllocationEngine(initial_balance_label="Opening debt")

        result = engine.allocate(supplier, [receipt("gr1", 50, age=120)], [payment("p1", 100, age=1)], cutoff=CUTOFF)

        oldest = result.bucket("90+")
        assert oldest.documents[0].is_initial_balance
        assert oldest.documents[0].doc_number == "Opening debt"
        assert oldest.documents[0].remaining == Decimal("200")
        assert oldest.total == Decimal("250")

    def test_negative_initial_balance_is_not_offset_by_payments(self):
        supplier = Counterparty.supplier("S", "Mill", initial_balance=-100)
        engine = DebtAllocationEngine()

        result = engine.allocate(supplier, [receipt("gr1", 400, age=5)], [payment("p1", 150, age=1)], cutoff=CUTOFF)

        assert result.paid_to_initial == Decimal("0")
        assert result.remainders[0].remaining == Decimal("250")
        assert result.bucket("90+").total == Decimal("-100")
        assert result.outstanding == Decimal("150")
        assert result.balance == Decimal("-100") + Decimal("400") - Decimal("150")


class TestPool:

    def test_returns_and_negative_adjustments_feed_the_pool(self):
        supplier = Counterparty.supplier("S", "Mill")
        goods_return = GoodsReturn(
            id="ret1",
            doc_number="RET1",
            date=days_before(3),
            supplier_id="S",
            warehouse_id="W",
            items=(ReturnItem("P", 2, price=25),),
        )
        adjustment = PriceAdjustment(
            id="adj1",
            doc_number="ADJ1",
            date=days_before(2),
            supplier_id="S",
            items=(PriceAdjustmentItem("P", 10, old_price=5, new_price=4),),
        )

        result = engine_allocate(supplier, [receipt("gr1", 100, age=50), goods_return, adjustment], [])

        assert result.total_credits == Decimal("60")
        assert result.remainders[0].remaining == Decimal("40")
        assert result.balance == Decimal("40")

    def test_positive_adjustment_is_a_debit(self):
        supplier = Counterparty.supplier("S", "Mill")
        adjustment = PriceAdjustment(
            id="adj1",
            doc_number="ADJ1",
            date=days_before(2),
            supplier_id="S",
            items=(PriceAdjustmentItem("P", 10, old_price=4, new_price=5),),
        )

        result = engine_allocate(supplier, [adjustment], [])

        assert result.total_debits == Decimal("10")
        assert result.bucket("0-30").total == Decimal("10")

    def test_overpayment_is_unapplied_credit(self):
        supplier = Counterparty.supplier("S", "Mill")

        result = engine_allocate(supplier, [receipt("gr1", 100, age=5)], [payment("p1", 130, age=1)])

        assert result.outstanding == Decimal("0")
        assert result.unapplied_credit == Decimal("30")
        assert result.balance == Decimal("-30")
        assert result.settled_document_ids == ("gr1",)

    def test_oldest_document_settled_first(self):
        supplier = Counterparty.supplier("S", "Mill")

        result = engine_allocate(
            supplier,
            [receipt("new", 100, age=5), receipt("old", 100, age=70)],
            [payment("p1", 150, age=1)],
        )

        by_id = {r.document_id: r for r in result.remainders}
        assert by_id["old"].remaining == Decimal("0")
        assert by_id["new"].remaining == Decimal("50")


class TestFiltering:

    def test_documents_and_payments_after_cutoff_are_ignored(self):
        supplier = Counterparty.supplier("S", "Mill")

        result = engine_allocate(
            supplier,
            [receipt("gr1", 100, age=5), receipt("future", 999, age=-2)],
            [payment("p1", 40, age=-1)],
        )

        assert result.outstanding == Decimal("100")
        assert result.total_payments == Decimal("0")

    def test_cutoff_day_is_inclusive(self):
        supplier = Counterparty.supplier("S", "Mill")
        late = GoodsReceipt(
            id="late",
            doc_number="LATE",
            date=CUTOFF.replace(hour=22),
            supplier_id="S",
            warehouse_id="W",
            items=(ReceiptItem("P", 1, 10),),
        )

        result = engine_allocate(supplier, [late], [])

        assert result.outstanding == Decimal("10")
        assert result.bucket("0-30").documents[0].age_days == 0

    def test_drafts_and_other_parties_are_ignored(self):
        supplier = Counterparty.supplier("S", "Mill")

        result = engine_allocate(
            supplier,
            [receipt("draft", 100, age=5, status=DocumentStatus.DRAFT), receipt("other", 100, age=5, supplier="X")],
            [payment("p1", 40, age=1, party="X")],
        )

        assert result.remainders == ()
        assert result.balance == Decimal("0")

    def test_client_invoices(self):
        client = Counterparty.client("C", "Cafe", initial_balance=20)
        invoice = SalesInvoice(
            id="inv1",
            doc_number="INV1",
            date=days_before(45),
            client_id="C",
            items=(SalesItem("D1", 3, 10),),
        )

        result = engine_allocate(client, [invoice], [payment("cp1", 25, age=1, party="C")])

        assert result.bucket("31-60").total == Decimal("25")
        assert result.balance == Decimal("25")


class TestTinyRemainders:
    """Remainders within the settlement tolerance still count toward the buckets."""

    def test_unpaid_sub_cent_documents_are_bucketed_but_hidden(self):
        supplier = Counterparty.supplier("S", "Mill")
        documents = [receipt(f"gr{i}", Decimal("0.006"), age=10) for i in range(3)]

        result = engine_allocate(supplier, documents, [])

        assert result.outstanding == Decimal("0.018")
        assert result.bucket_total == result.outstanding
        assert result.bucket("0-30").total == Decimal("0.018")
        assert result.bucket("0-30").documents == ()
        assert result.settled_document_ids == ()

    def test_paid_down_to_a_fraction_counts_as_settled(self):
        supplier = Counterparty.supplier("S", "Mill")

        result = engine_allocate(supplier, [receipt("gr1", Decimal("100.005"), age=10)], [payment("p1", 100, age=1)])

        assert result.settled_document_ids == ("gr1",)
        assert result.bucket("0-30").total == Decimal("0.005")
        assert result.bucket("0-30").documents == ()
        assert result.bucket_total == result.outstanding

    def test_tiny_unpaid_initial_balance_is_bucketed(self):
        supplier = Counterparty.supplier("S", "Mill", initial_balance=Decimal("0.004"))

        result = engine_allocate(supplier, [receipt("gr1", 20, age=40)], [])

        assert result.bucket("90+").total == Decimal("0.004")
        assert result.bucket("90+").documents == ()
        assert result.bucket_total == result.outstanding == Decimal("20.004")


def engine_allocate(counterparty, documents, payments):
    return DebtAllocationEngine().allocate(counterparty, documents, payments, cutoff=CUTOFF)
