"""
Pure domain layer.

Immutable entities, documents and snapshots with NO dependencies on
databases, clocks or I/O.  Every report invocation reads one
``LedgerSnapshot`` and nothing else.
"""

from lotledger_kernel.domain.documents import (
    DebtDocument,
    DocumentKind,
    DocumentStatus,
    GoodsReceipt,
    GoodsReturn,
    InternalTransfer,
    Payment,
    PriceAdjustment,
    PriceAdjustmentItem,
    ReceiptItem,
    ReturnItem,
    SalesInvoice,
    SalesItem,
    SalesReturn,
    StockDocument,
    StockItem,
    WriteOff,
    debt_counterparty_id,
    debt_party_kind,
    debt_total,
    is_confirmed,
)
from lotledger_kernel.domain.entities import (
    Counterparty,
    Dish,
    PartyKind,
    Product,
    Warehouse,
)
from lotledger_kernel.domain.issues import ReferenceIssue, StockShortfall
from lotledger_kernel.domain.snapshot import LedgerSnapshot, OpeningLot

__all__ = [
    # Entities
    "Counterparty",
    "Dish",
    "PartyKind",
    "Product",
    "Warehouse",
    # Documents
    "DebtDocument",
    "DocumentKind",
    "DocumentStatus",
    "GoodsReceipt",
    "GoodsReturn",
    "InternalTransfer",
    "Payment",
    "PriceAdjustment",
    "PriceAdjustmentItem",
    "ReceiptItem",
    "ReturnItem",
    "SalesInvoice",
    "SalesItem",
    "SalesReturn",
    "StockDocument",
    "StockItem",
    "WriteOff",
    "debt_counterparty_id",
    "debt_party_kind",
    "debt_total",
    "is_confirmed",
    # Issues
    "ReferenceIssue",
    "StockShortfall",
    # Snapshot
    "LedgerSnapshot",
    "OpeningLot",
]
