"""
Valuation - FIFO stock lots and the ledger that consumes them.

Pure domain types only.  Replaying documents against the ledger is the
job of lotledger_engines.movements.
"""

from lotledger_kernel.logging_config import get_logger

logger = get_logger("engines.valuation")

from lotledger_engines.valuation.batch_ledger import (
    BatchLedger,
    LedgerKey,
    LotConsumption,
    LotLayer,
    LotRevaluation,
    LotSlice,
    StockLot,
)

__all__ = [
    "BatchLedger",
    "LedgerKey",
    "LotConsumption",
    "LotLayer",
    "LotRevaluation",
    "LotSlice",
    "StockLot",
]
