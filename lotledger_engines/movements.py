"""
lotledger_engines.movements -- Replay stock documents against a BatchLedger.

Responsibility:
    Order confirmed stock documents into the replay stream, apply each one
    to a private ``BatchLedger`` and emit one signed ``StockMovement`` per
    affected (product, warehouse), costed at FIFO lot cost.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    Consumed by lotledger_engines.turnover and lotledger_services.

Invariants enforced:
    - Only CONFIRMED documents are replayed.
    - Stream order: receipts, write-offs, transfers, returns, price
      adjustments; then a stable sort by document date.
    - A price adjustment re-costs the remaining quantity of its batch
      (and of lots transferred out of it) and emits a zero-quantity
      REVALUATION movement per lot for the value change, so turnover
      closing values keep matching the ledger.
    - Movements carry consumed quantity only.  Unmet quantity never
      reaches the ledger or the movement value.
    - A transfer moves cost basis unchanged: every consumed slice lands at
      the destination with its unit cost, receipt date and expiry.
    - Lots at or below the quantity tolerance are pruned after every
      document.

Failure modes:
    - Shortfalls are recorded as ``StockShortfall`` on ``shortfalls`` and
      logged as warnings.  With ``raise_on_shortfall=True`` the first one
      raises ``DataIntegrityError`` instead.
    - ``ReportCancelledError`` from the cancellation token, checked
      between documents.

Audit relevance:
    Every consuming movement keeps the lot slices it drew from, which is
    the FIFO breakdown shown for a write-off, return or transfer line.
    The value each return line consumed is kept on ``return_values``;
    ``cost_goods_returns`` copies it onto unpriced return lines so the
    supplier is credited with what the stock side removed.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, replace
from datetime import datetime
from decimal import Decimal
from enum import Enum
from types import MappingProxyType
from typing import Protocol, assert_never

from lotledger_engines.tracer import traced_engine
from lotledger_engines.valuation.batch_ledger import (
    BatchLedger,
    LotConsumption,
    LotLayer,
    LotSlice,
    StockLot,
)
from lotledger_kernel.domain.documents import (
    DocumentKind,
    GoodsReceipt,
    GoodsReturn,
    InternalTransfer,
    PriceAdjustment,
    StockDocument,
    WriteOff,
    is_confirmed,
)
from lotledger_kernel.domain.issues import StockShortfall
from lotledger_kernel.domain.snapshot import LedgerSnapshot, OpeningLot
from lotledger_kernel.domain.values import QUANTITY_TOLERANCE, ZERO, to_datetime
from lotledger_kernel.logging_config import get_logger

logger = get_logger("engines.movements")


class MovementKind(str, Enum):
    """What produced a stock movement."""

    OPENING = "opening"
    RECEIPT = "receipt"
    WRITE_OFF = "write_off"
    TRANSFER_OUT = "transfer_out"
    TRANSFER_IN = "transfer_in"
    RETURN = "return"
    REVALUATION = "revaluation"


_STREAM_RANK: dict[DocumentKind, int] = {
    DocumentKind.GOODS_RECEIPT: 0,
    DocumentKind.WRITE_OFF: 1,
    DocumentKind.INTERNAL_TRANSFER: 2,
    DocumentKind.GOODS_RETURN: 3,
    DocumentKind.PRICE_ADJUSTMENT: 4,
}


class CancellationCheck(Protocol):
    """Anything the replay can poll between documents."""

    def raise_if_cancelled(self) -> None: ...


@dataclass(frozen=True, slots=True)
class StockMovement:
    """
    Signed effect of one document line on one (product, warehouse).

    Contract:
        ``quantity`` and ``value`` are positive for stock coming in and
        negative for stock going out.  A REVALUATION has zero quantity and
        the sign of its value change.
    Guarantees:
        - For consuming kinds, ``-value == sum(slice.value)``.
        - OPENING movements have no document.
    """

    date: datetime
    kind: MovementKind
    product_id: str
    warehouse_id: str
    quantity: Decimal
    value: Decimal
    document_id: str | None = None
    doc_number: str | None = None
    slices: tuple[LotSlice, ...] = ()

    @property
    def is_inbound(self) -> bool:
        if self.quantity == ZERO:
            return self.value > ZERO
        return self.quantity > ZERO


def order_stream(documents: Iterable[StockDocument]) -> list[StockDocument]:
    """
    Confirmed documents in replay order.

    Documents are grouped by kind in stream order and then stably sorted by
    date, so same-timestamp documents keep their relative stream order.
    """
    confirmed = [document for document in documents if is_confirmed(document)]
    return sorted(confirmed, key=lambda document: (document.date, _STREAM_RANK[document.kind]))


class StockMovementProcessor:
    """
    Stateful replay of stock documents over a private BatchLedger.

    Contract:
        One processor per report invocation.  The ledger is built once
        from the opening lots (value copy) and only this processor
        mutates it.
    Guarantees:
        - ``replay`` returns movements in stream order.
        - After replay, ``ledger`` holds exactly the lots that the emitted
          movements account for.
    Non-goals:
        - Does not filter by warehouse or date range; that is the
          aggregator's job.
    """

    def __init__(
        self,
        opening_stock: Iterable[OpeningLot] = (),
        *,
        quantity_tolerance: Decimal = QUANTITY_TOLERANCE,
        raise_on_shortfall: bool = False,
    ):
        self._opening_stock = tuple(opening_stock)
        self._quantity_tolerance = quantity_tolerance
        self._raise_on_shortfall = raise_on_shortfall
        self._ledger = BatchLedger.from_lots(self._opening_stock, quantity_tolerance)
        self._shortfalls: list[StockShortfall] = []
        self._return_values: dict[str, tuple[Decimal, ...]] = {}

    @classmethod
    def from_snapshot(
        cls,
        snapshot: LedgerSnapshot,
        *,
        quantity_tolerance: Decimal = QUANTITY_TOLERANCE,
        raise_on_shortfall: bool = False,
    ) -> StockMovementProcessor:
        return cls(
            snapshot.opening_stock,
            quantity_tolerance=quantity_tolerance,
            raise_on_shortfall=raise_on_shortfall,
        )

    # =========================================================================
    # Queries
    # =========================================================================

    @property
    def ledger(self) -> BatchLedger:
        """Independent copy of the current ledger state."""
        return self._ledger.copy()

    @property
    def shortfalls(self) -> tuple[StockShortfall, ...]:
        return tuple(self._shortfalls)

    @property
    def return_values(self) -> Mapping[str, tuple[Decimal, ...]]:
        """FIFO value consumed by each line of every replayed return, by document id."""
        return MappingProxyType(dict(self._return_values))

    def opening_movements(self) -> tuple[StockMovement, ...]:
        """One OPENING movement per initial-stock lot."""
        return tuple(
            StockMovement(
                date=lot.receipt_date,
                kind=MovementKind.OPENING,
                product_id=lot.product_id,
                warehouse_id=lot.warehouse_id,
                quantity=lot.quantity,
                value=lot.quantity * lot.unit_cost,
            )
            for lot in self._opening_stock
            if lot.quantity > self._quantity_tolerance
        )

    def initialize(
        self,
        product_id: str,
        warehouse_id: str,
        before: datetime,
        documents: Iterable[StockDocument] = (),
    ) -> tuple[LotLayer, ...]:
        """
        Lots of one key as they stood strictly before ``before``.

        Replays the documents dated earlier than ``before`` on a scratch
        processor seeded with the same opening stock.  This processor's
        own ledger is not touched.
        """
        cutoff = to_datetime(before)
        scratch = StockMovementProcessor(
            self._opening_stock,
            quantity_tolerance=self._quantity_tolerance,
        )
        scratch.replay(
            [document for document in documents if document.date < cutoff]
        )
        return scratch._ledger.lots(product_id, warehouse_id)

    # =========================================================================
    # Replay
    # =========================================================================

    @traced_engine("stock_movements", "1.0", fingerprint_fields=("until",))
    def replay(
        self,
        documents: Iterable[StockDocument],
        until: datetime | None = None,
        token: CancellationCheck | None = None,
    ) -> tuple[StockMovement, ...]:
        """
        Apply documents in stream order and return the emitted movements.

        Args:
            documents: Stock documents in any order; non-confirmed ones
                are skipped.
            until: Inclusive upper bound on document date.
            token: Optional cancellation check polled before each document.

        Raises:
            DataIntegrityError: On the first shortfall when the processor
                was built with ``raise_on_shortfall=True``.
            ReportCancelledError: If the token reports cancellation.
        """
        stream = order_stream(documents)
        movements: list[StockMovement] = []
        applied = 0

        for document in stream:
            if until is not None and document.date > until:
                break
            if token is not None:
                token.raise_if_cancelled()
            movements.extend(self._apply(document))
            self._ledger.prune()
            applied += 1

        logger.info("stock_replay_completed", extra={
            "document_count": applied,
            "movement_count": len(movements),
            "shortfall_count": len(self._shortfalls),
            "until": until.isoformat() if until else None,
        })
        return tuple(movements)

    def _apply(self, document: StockDocument) -> list[StockMovement]:
        match document:
            case GoodsReceipt():
                return self._receive(document)
            case WriteOff():
                return self._issue(document, document.warehouse_id, MovementKind.WRITE_OFF)
            case GoodsReturn():
                return self._issue(document, document.warehouse_id, MovementKind.RETURN)
            case InternalTransfer():
                return self._transfer(document)
            case PriceAdjustment():
                return self._reprice(document)
            case _:
                assert_never(document)

    def _receive(self, document: GoodsReceipt) -> list[StockMovement]:
        movements = []
        for index, item in enumerate(document.items):
            lot = StockLot(
                batch_id=item.batch_id or f"{document.id}-{index}",
                product_id=item.product_id,
                warehouse_id=document.warehouse_id,
                quantity=item.quantity,
                unit_cost=item.price,
                receipt_date=document.date,
                expiry_date=item.valid_date,
            )
            self._ledger.append(lot)
            movements.append(
                StockMovement(
                    date=document.date,
                    kind=MovementKind.RECEIPT,
                    product_id=item.product_id,
                    warehouse_id=document.warehouse_id,
                    quantity=lot.quantity,
                    value=lot.value,
                    document_id=document.id,
                    doc_number=document.doc_number,
                )
            )
        return movements

    def _issue(
        self,
        document: WriteOff | GoodsReturn,
        warehouse_id: str,
        kind: MovementKind,
    ) -> list[StockMovement]:
        movements = []
        values = []
        for item in document.items:
            consumption = self._consume(document, item.product_id, warehouse_id, item.quantity)
            values.append(consumption.value)
            if consumption.consumed > ZERO:
                movements.append(self._outbound(document, consumption, kind))
        if kind is MovementKind.RETURN:
            self._return_values[document.id] = tuple(values)
        return movements

    def _reprice(self, document: PriceAdjustment) -> list[StockMovement]:
        # Lines without a batch id only move supplier debt.
        movements = []
        for item in document.items:
            if item.batch_id is None:
                continue
            for change in self._ledger.reprice(item.batch_id, item.new_price):
                if change.value_change == ZERO:
                    continue
                movements.append(
                    StockMovement(
                        date=document.date,
                        kind=MovementKind.REVALUATION,
                        product_id=change.product_id,
                        warehouse_id=change.warehouse_id,
                        quantity=ZERO,
                        value=change.value_change,
                        document_id=document.id,
                        doc_number=document.doc_number,
                    )
                )
        return movements

    def _transfer(self, document: InternalTransfer) -> list[StockMovement]:
        movements = []
        for item in document.items:
            consumption = self._consume(
                document, item.product_id, document.from_warehouse_id, item.quantity
            )
            if consumption.consumed <= ZERO:
                continue

            for part in consumption.slices:
                self._ledger.append(
                    StockLot(
                        batch_id=f"{part.batch_id}/{document.id}",
                        product_id=item.product_id,
                        warehouse_id=document.to_warehouse_id,
                        quantity=part.quantity,
                        unit_cost=part.unit_cost,
                        receipt_date=part.receipt_date,
                        expiry_date=part.expiry_date,
                    )
                )

            movements.append(self._outbound(document, consumption, MovementKind.TRANSFER_OUT))
            movements.append(
                StockMovement(
                    date=document.date,
                    kind=MovementKind.TRANSFER_IN,
                    product_id=item.product_id,
                    warehouse_id=document.to_warehouse_id,
                    quantity=consumption.consumed,
                    value=consumption.value,
                    document_id=document.id,
                    doc_number=document.doc_number,
                    slices=consumption.slices,
                )
            )
        return movements

    def _consume(
        self,
        document: WriteOff | GoodsReturn | InternalTransfer,
        product_id: str,
        warehouse_id: str,
        quantity: Decimal,
    ) -> LotConsumption:
        consumption = self._ledger.consume(product_id, warehouse_id, quantity)
        if self._ledger.has_shortfall(consumption):
            shortfall = StockShortfall(
                document_id=document.id,
                doc_number=document.doc_number,
                date=document.date,
                product_id=product_id,
                warehouse_id=warehouse_id,
                requested=consumption.requested,
                consumed=consumption.consumed,
            )
            logger.warning("stock_shortfall_detected", extra={
                "document_id": document.id,
                "doc_number": document.doc_number,
                "product_id": product_id,
                "warehouse_id": warehouse_id,
                "requested": str(consumption.requested),
                "consumed": str(consumption.consumed),
                "unmet": str(shortfall.shortfall),
            })
            if self._raise_on_shortfall:
                raise shortfall.to_error()
            self._shortfalls.append(shortfall)
        return consumption

    @staticmethod
    def _outbound(
        document: WriteOff | GoodsReturn | InternalTransfer,
        consumption: LotConsumption,
        kind: MovementKind,
    ) -> StockMovement:
        return StockMovement(
            date=document.date,
            kind=kind,
            product_id=consumption.product_id,
            warehouse_id=consumption.warehouse_id,
            quantity=-consumption.consumed,
            value=-consumption.value,
            document_id=document.id,
            doc_number=document.doc_number,
            slices=consumption.slices,
        )


def replay_snapshot(
    snapshot: LedgerSnapshot,
    until: datetime | None = None,
    *,
    quantity_tolerance: Decimal = QUANTITY_TOLERANCE,
    raise_on_shortfall: bool = False,
    token: CancellationCheck | None = None,
) -> tuple[StockMovementProcessor, Sequence[StockMovement]]:
    """Replay a whole snapshot and return the processor with opening + document movements."""
    processor = StockMovementProcessor.from_snapshot(
        snapshot,
        quantity_tolerance=quantity_tolerance,
        raise_on_shortfall=raise_on_shortfall,
    )
    movements = processor.opening_movements() + processor.replay(
        snapshot.stock_documents(), until=until, token=token
    )
    return processor, movements


def cost_goods_returns(
    snapshot: LedgerSnapshot,
    *,
    quantity_tolerance: Decimal = QUANTITY_TOLERANCE,
    token: CancellationCheck | None = None,
) -> LedgerSnapshot:
    """
    Copy of ``snapshot`` whose unpriced return lines carry their FIFO value.

    The whole history is replayed once; shortfalls are tolerated, so a
    line that found too little stock is credited with what it consumed.
    Returns that were not replayed (drafts, cancelled) are left as they are.
    """
    if all(
        item.is_valued
        for document in snapshot.goods_returns
        if is_confirmed(document)
        for item in document.items
    ):
        return snapshot

    processor, _ = replay_snapshot(snapshot, quantity_tolerance=quantity_tolerance, token=token)
    values = processor.return_values

    returns = []
    for document in snapshot.goods_returns:
        line_values = values.get(document.id)
        if line_values is None:
            returns.append(document)
            continue
        items = tuple(
            item if item.is_valued else replace(item, fifo_value=value)
            for item, value in zip(document.items, line_values, strict=True)
        )
        returns.append(replace(document, items=items))

    logger.debug("goods_returns_costed", extra={"return_count": len(values)})
    return replace(snapshot, goods_returns=tuple(returns))
