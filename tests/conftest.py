"""
Pytest fixtures for the lotledger test suite.

Provides:
- Structured logging configured for every test, with a JSON capture fixture
- Default ``ReportSettings``
- A small reference catalogue (products, warehouses, dishes, counterparties)
"""

import json
import logging
from io import StringIO

import pytest

from lotledger_config import ReportSettings
from lotledger_kernel.domain import Counterparty, Dish, Product, Warehouse
from lotledger_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)


# =============================================================================
# Logging fixtures
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _configure_test_logging():
    """Configure structured logging for the test suite."""
    reset_logging()
    configure_logging(level=logging.DEBUG, stream=StringIO())
    yield
    reset_logging()


@pytest.fixture(autouse=True)
def _clear_log_context():
    """Clear LogContext between tests to prevent cross-test contamination."""
    LogContext.clear()
    yield
    LogContext.clear()


@pytest.fixture
def captured_logs():
    """
    Capture lotledger logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs):
            compute_turnover_report(...)
            logs = captured_logs()
            assert any(r["message"] == "turnover_report_completed" for r in logs)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("lotledger")
    root.addHandler(handler)

    def _get_records() -> list[dict]:
        lines = stream.getvalue().strip().split("\n")
        return [json.loads(line) for line in lines if line]

    yield _get_records

    root.removeHandler(handler)


# =============================================================================
# Reference data
# =============================================================================


@pytest.fixture
def settings() -> ReportSettings:
    return ReportSettings()


@pytest.fixture
def strict_settings() -> ReportSettings:
    return ReportSettings(raise_on_shortfall=True)


@pytest.fixture
def products() -> tuple[Product, ...]:
    return (
        Product(id="P", name="Flour", unit="kg", minimum_stock=50),
        Product(id="Q", name="Sugar", unit="kg", minimum_stock=5),
        Product(id="R", name="Salt", unit="kg"),
    )


@pytest.fixture
def warehouses() -> tuple[Warehouse, ...]:
    return (
        Warehouse(id="W", name="Main"),
        Warehouse(id="K", name="Kitchen"),
    )


@pytest.fixture
def dishes() -> tuple[Dish, ...]:
    return (
        Dish(id="D1", name="Bread", price=5),
        Dish(id="D2", name="Cake", price=20),
    )


@pytest.fixture
def supplier() -> Counterparty:
    return Counterparty.supplier("S", "Mill Co", initial_balance=500)


@pytest.fixture
def client() -> Counterparty:
    return Counterparty.client("C", "Cafe", initial_balance=0)
