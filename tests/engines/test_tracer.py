"""
Tests for the engine tracer.

Covers:
- Fingerprints are deterministic and depend only on the selected kwargs
- Decorated engine calls emit LOTLEDGER_ENGINE_TRACE
"""

from datetime import datetime
from decimal import Decimal

from lotledger_engines.aging import AgingBucketClassifier
from lotledger_engines.allocation import DebtAllocationEngine
from lotledger_engines.tracer import compute_input_fingerprint, traced_engine
from lotledger_kernel.domain import Counterparty


class TestFingerprint:

    def test_deterministic_and_order_independent_for_dicts(self):
        first = compute_input_fingerprint(("amounts",), {"amounts": {"b": Decimal("2.0"), "a": 1}})
        second = compute_input_fingerprint(("amounts",), {"amounts": {"a": 1, "b": Decimal("2")}})

        assert first == second
        assert len(first) == 16

    def test_only_selected_fields_count(self):
        base = compute_input_fingerprint(("cutoff",), {"cutoff": datetime(2024, 1, 1), "noise": 1})
        other = compute_input_fingerprint(("cutoff",), {"cutoff": datetime(2024, 1, 1), "noise": 2})
        moved = compute_input_fingerprint(("cutoff",), {"cutoff": datetime(2024, 1, 2)})

        assert base == other
        assert base != moved

    def test_missing_field_is_null(self):
        assert compute_input_fingerprint(("x",), {}) == compute_input_fingerprint(("x",), {"x": None})


class TestTracedEngine:

    def test_emits_trace(self, captured_logs):
        @traced_engine("demo", "2.1", ("size",))
        def engine(*, size):
            return size * 2

        assert engine(size=3) == 6

        (trace,) = [r for r in captured_logs() if r["message"] == "LOTLEDGER_ENGINE_TRACE"]
        assert trace["engine_name"] == "demo"
        assert trace["engine_version"] == "2.1"
        assert trace["input_fingerprint"] == compute_input_fingerprint(("size",), {"size": 3})
        assert trace["duration_ms"] >= 0

    def test_allocation_is_traced(self, captured_logs):
        DebtAllocationEngine(AgingBucketClassifier()).allocate(
            Counterparty.supplier("S", "Mill"), (), (), cutoff=datetime(2024, 1, 31)
        )

        names = [r.get("engine_name") for r in captured_logs() if r["message"] == "LOTLEDGER_ENGINE_TRACE"]
        assert "debt_allocation" in names
