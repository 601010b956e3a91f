"""
Module: lotledger_engines
Responsibility:
    Package entrypoint that re-exports the public symbols of the pure
    calculation engines.  This is the canonical import surface for
    lotledger_services.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May only import lotledger_kernel (and sibling engine modules).
    MUST NOT import lotledger_services or lotledger_config.

Invariants enforced:
    - Purity: engines NEVER call ``datetime.now()`` or ``date.today()``.
      Cutoffs and date ranges are explicit parameters.
    - Decimal-only arithmetic for quantities and money.
    - Determinism: identical inputs always produce identical outputs.

Audit relevance:
    Engine entry points are traced via ``@traced_engine`` (see
    ``lotledger_engines.tracer``), emitting LOTLEDGER_ENGINE_TRACE records.

Usage:
    from lotledger_engines.movements import StockMovementProcessor
    from lotledger_engines.turnover import TurnoverAggregator
    from lotledger_engines.allocation import DebtAllocationEngine
    from lotledger_engines.aging import AgingBucketClassifier
    from lotledger_engines.valuation import BatchLedger
"""

from lotledger_kernel.logging_config import get_logger

logger = get_logger("engines")

from lotledger_engines.aging import (
    STANDARD_BUCKETS,
    AgedDocument,
    AgingBucket,
    AgingBucketClassifier,
    BucketTotal,
    buckets_from_bounds,
)
from lotledger_engines.allocation import (
    DebtAllocation,
    DebtAllocationEngine,
    DocumentRemainder,
)
from lotledger_engines.movements import (
    CancellationCheck,
    MovementKind,
    StockMovement,
    StockMovementProcessor,
    cost_goods_returns,
    order_stream,
    replay_snapshot,
)
from lotledger_engines.turnover import (
    ALL_WAREHOUSES,
    TurnoverAggregator,
    TurnoverDetail,
    TurnoverReport,
    TurnoverRow,
)
from lotledger_engines.valuation import (
    BatchLedger,
    LotConsumption,
    LotLayer,
    LotRevaluation,
    LotSlice,
    StockLot,
)

__all__ = [
    # Aging
    "AgingBucket",
    "AgingBucketClassifier",
    "AgedDocument",
    "BucketTotal",
    "STANDARD_BUCKETS",
    "buckets_from_bounds",
    # Allocation
    "DebtAllocation",
    "DebtAllocationEngine",
    "DocumentRemainder",
    # Movements
    "CancellationCheck",
    "MovementKind",
    "StockMovement",
    "StockMovementProcessor",
    "cost_goods_returns",
    "order_stream",
    "replay_snapshot",
    # Turnover
    "ALL_WAREHOUSES",
    "TurnoverAggregator",
    "TurnoverDetail",
    "TurnoverReport",
    "TurnoverRow",
    # Valuation
    "BatchLedger",
    "LotConsumption",
    "LotLayer",
    "LotRevaluation",
    "LotSlice",
    "StockLot",
]
