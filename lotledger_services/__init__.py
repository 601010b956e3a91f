"""
lotledger_services -- Report orchestration over the pure engines.

Every entry point takes an immutable ``LedgerSnapshot`` and scalar
parameters and returns a frozen report.  No state survives between
calls; ``ReportRunner`` only schedules calls on worker threads.

Usage:
    from lotledger_services import compute_report, TurnoverParams

    report = compute_report(snapshot, TurnoverParams(date(2024, 1, 1), date(2024, 1, 31)))
"""

from lotledger_services.balance_assembler import (
    BalanceReport,
    BalanceReportAssembler,
    BalanceRow,
    BalanceTransaction,
    DocumentLine,
)
from lotledger_services.report_runner import CancellationToken, ReportRunner
from lotledger_services.report_service import (
    AgingParams,
    AgingReport,
    AgingRow,
    BalanceParams,
    ReportParams,
    TurnoverParams,
    compute_aging_report,
    compute_balance_report,
    compute_report,
    compute_turnover_report,
    debt_snapshot,
    validate_cutoff,
)
from lotledger_services.stock_service import (
    ExpiringLot,
    LowStockItem,
    ProductDayMovements,
    StockOverview,
    StockPosition,
    expiring_lots,
    low_stock,
    product_day_movements,
    stock_as_of,
)

__all__ = [
    "AgingParams",
    "AgingReport",
    "AgingRow",
    "BalanceParams",
    "BalanceReport",
    "BalanceReportAssembler",
    "BalanceRow",
    "BalanceTransaction",
    "CancellationToken",
    "DocumentLine",
    "ExpiringLot",
    "LowStockItem",
    "ProductDayMovements",
    "ReportParams",
    "ReportRunner",
    "StockOverview",
    "StockPosition",
    "TurnoverParams",
    "compute_aging_report",
    "compute_balance_report",
    "compute_report",
    "compute_turnover_report",
    "debt_snapshot",
    "expiring_lots",
    "low_stock",
    "product_day_movements",
    "stock_as_of",
    "validate_cutoff",
]
