"""
Tests for the JSON log lines the reports write.

Covers:
- stock_shortfall_detected: warning level, report type, unmet quantity as a string
- debt_allocated: amounts as strings, counterparty id
- aging_report_completed and the report runner's report id
- report_failed: error code and error attributes from a strict run
- LogContext binding and restoring
- configure_logging / reset_logging lifecycle
"""

import json
import logging
from datetime import date, datetime
from decimal import Decimal
from io import StringIO

import pytest

from lotledger_config import ReportSettings
from lotledger_engines.aging import AgingBucketClassifier
from lotledger_engines.allocation import DebtAllocationEngine
from lotledger_kernel.domain import (
    GoodsReceipt,
    LedgerSnapshot,
    Payment,
    PartyKind,
    ReceiptItem,
    StockItem,
    WriteOff,
)
from lotledger_kernel.exceptions import DataIntegrityError
from lotledger_kernel.logging_config import (
    LogContext,
    configure_logging,
    get_logger,
    reset_logging,
)
from lotledger_services.report_runner import ReportRunner
from lotledger_services.report_service import (
    AgingParams,
    TurnoverParams,
    compute_aging_report,
    compute_turnover_report,
)


@pytest.fixture
def short_snapshot(products, warehouses):
    """Writes off 50 of P with only 20 received."""
    return LedgerSnapshot(
        products=products,
        warehouses=warehouses,
        goods_receipts=(
            GoodsReceipt("gr1", "GR-1", datetime(2024, 1, 1), "S", "W", (ReceiptItem("P", 20, 4),)),
        ),
        write_offs=(
            WriteOff("wo1", "WO-1", datetime(2024, 1, 2), "W", (StockItem("P", 50),)),
        ),
    )


@pytest.fixture
def debt_snapshot(supplier, products):
    return LedgerSnapshot(
        products=products,
        suppliers=(supplier,),
        goods_receipts=(
            GoodsReceipt("gr1", "GR-1", datetime(2024, 1, 20), "S", "W", (ReceiptItem("P", 10, Decimal("12.5")),)),
        ),
        payments=(Payment("p1", "PAY-1", datetime(2024, 2, 1), "S", 300),),
    )


def _one(records: list[dict], message: str) -> dict:
    (record,) = [r for r in records if r["message"] == message]
    return record


class TestReportEvents:

    def test_shortfall_warning(self, short_snapshot, settings, captured_logs):
        compute_turnover_report(short_snapshot, date(2024, 1, 1), date(2024, 1, 31), settings=settings)

        record = _one(captured_logs(), "stock_shortfall_detected")
        assert record["level"] == "WARNING"
        assert record["logger"] == "lotledger.engines.movements"
        assert record["report_type"] == "turnover"
        assert record["document_id"] == "wo1"
        assert (record["requested"], record["consumed"], record["unmet"]) == ("50", "20", "30")

    def test_report_type_is_unbound_after_the_report(self, short_snapshot, settings, captured_logs):
        compute_turnover_report(short_snapshot, date(2024, 1, 1), date(2024, 1, 31), settings=settings)
        get_logger("tests").info("after_report")

        assert "report_type" not in _one(captured_logs(), "after_report")

    def test_debt_allocated_amounts_are_exact_strings(self, supplier, debt_snapshot, captured_logs):
        DebtAllocationEngine(AgingBucketClassifier()).allocate(
            supplier,
            debt_snapshot.goods_receipts,
            debt_snapshot.payments,
            cutoff=datetime(2024, 3, 1),
        )

        record = _one(captured_logs(), "debt_allocated")
        assert record["counterparty_id"] == "S"
        # 500 opening + 125 received - 300 paid
        assert isinstance(record["balance"], str)
        assert Decimal(record["balance"]) == Decimal("325")
        assert Decimal(record["outstanding"]) == Decimal("325")
        assert record["payment_count"] == 1

    def test_aging_completion(self, debt_snapshot, settings, captured_logs):
        compute_aging_report(debt_snapshot, date(2024, 3, 1), PartyKind.SUPPLIER, settings=settings)

        records = captured_logs()
        completed = _one(records, "aging_report_completed")
        assert completed["report_type"] == "supplier_aging"
        assert completed["party"] == "supplier"
        assert completed["cutoff"] == "2024-03-01T23:59:59.999999"
        assert all(r.get("report_type") == "supplier_aging" for r in records if r["message"] == "debt_allocated")


class TestRunnerEvents:

    def test_runner_binds_the_report_key(self, debt_snapshot, settings, captured_logs):
        with ReportRunner(settings=settings) as runner:
            runner.submit_report("aging:S", debt_snapshot, AgingParams(date(2024, 3, 1))).result()

        completed = _one(captured_logs(), "aging_report_completed")
        assert completed["report_id"] == "aging:S"
        assert completed["report_type"] == "supplier_aging"

    def test_failed_report_logs_the_error_code(self, short_snapshot, strict_settings, captured_logs):
        with ReportRunner(settings=strict_settings) as runner:
            future = runner.submit_report(
                "turnover:jan", short_snapshot, TurnoverParams(date(2024, 1, 1), date(2024, 1, 31))
            )
            with pytest.raises(DataIntegrityError):
                future.result()

        failed = _one(captured_logs(), "report_failed")
        assert failed["level"] == "ERROR"
        assert failed["report_id"] == "turnover:jan"
        assert failed["exc_type"] == "DataIntegrityError"
        assert failed["exc_code"] == "DATA_INTEGRITY"
        assert failed["exc_product_id"] == "P"
        assert failed["exc_shortfall"] == "30"
        assert "Traceback" in failed["traceback"]


class TestLogContext:

    def test_bind_restores_the_previous_value(self):
        with LogContext.bind(report_type="turnover"):
            with LogContext.bind(report_type="supplier_aging", report_id="r1"):
                assert LogContext.fields() == {"report_type": "supplier_aging", "report_id": "r1"}
            assert LogContext.fields() == {"report_type": "turnover"}
        assert LogContext.fields() == {}

    def test_none_leaves_a_field_alone(self):
        with LogContext.bind(report_id="r1"):
            with LogContext.bind(report_id=None, report_type="turnover"):
                assert LogContext.fields()["report_id"] == "r1"

    def test_bind_restores_after_an_error(self):
        with pytest.raises(DataIntegrityError):
            with LogContext.bind(report_id="r1"):
                raise DataIntegrityError("wo1", "WO-1", "P", "W", Decimal("5"), Decimal("1"))

        assert LogContext.fields() == {}


class TestConfigureLogging:

    @pytest.fixture(autouse=True)
    def _restore_suite_logging(self):
        reset_logging()
        yield
        reset_logging()
        configure_logging(level=logging.DEBUG, stream=StringIO())

    def test_second_call_keeps_the_first_handler(self):
        first, second = StringIO(), StringIO()
        configure_logging(stream=first)
        configure_logging(stream=second)

        get_logger("services.report").info("turnover_report_completed", extra={"row_count": 2})

        (line,) = first.getvalue().splitlines()
        assert json.loads(line)["row_count"] == 2
        assert second.getvalue() == ""

    def test_level_filters_debug_lines(self):
        stream = StringIO()
        configure_logging(stream=stream)

        get_logger("engines.valuation").debug("batch_repriced")
        get_logger("engines.movements").warning("stock_shortfall_detected")

        messages = [json.loads(line)["message"] for line in stream.getvalue().splitlines()]
        assert messages == ["stock_shortfall_detected"]

    def test_reset_detaches_the_handler(self):
        stream = StringIO()
        configure_logging(stream=stream)
        reset_logging()

        get_logger("services.stock").info("stock_overview_built")

        assert stream.getvalue() == ""
        assert logging.getLogger("lotledger").propagate

    def test_settings_trace_is_json(self):
        stream = StringIO()
        configure_logging(stream=stream)
        settings = ReportSettings(aging_bucket_bounds=(15, 45))

        get_logger("config").info("LOTLEDGER_CONFIG_TRACE", extra={
            "aging_bucket_bounds": list(settings.aging_bucket_bounds),
            "settlement_tolerance": settings.settlement_tolerance,
            "party": PartyKind.CLIENT,
            "as_of": date(2024, 1, 31),
        })

        record = json.loads(stream.getvalue())
        assert record["aging_bucket_bounds"] == [15, 45]
        assert record["settlement_tolerance"] == "0.01"
        assert record["party"] == "client"
        assert record["as_of"] == "2024-01-31"
