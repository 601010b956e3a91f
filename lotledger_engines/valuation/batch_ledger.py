"""
lotledger_engines.valuation.batch_ledger -- FIFO stock lots per (product, warehouse).

Responsibility:
    Hold the stock lots of one replay, keyed by (product_id, warehouse_id)
    and kept in FIFO order, and consume them oldest-first to produce a
    quantity-weighted cost.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    The ledger is mutable, but it is created fresh for every report
    invocation from frozen snapshot lots and discarded afterwards.

Invariants enforced:
    - FIFO order: receipt_date ascending, ties in insertion order.
    - Non-negative lots: consumption never takes more than a lot holds;
      unmet quantity is reported on ``LotConsumption.shortfall``.
    - Value semantics: ``from_lots`` and ``copy`` never share lot objects
      with their source.
    - Lots at or below the quantity tolerance are removed by ``prune``.

Failure modes:
    - ValueError when appending a lot with negative quantity or cost, or
      consuming a non-positive quantity.

Audit relevance:
    Every consumption returns the per-lot slices it drew from (batch id,
    receipt date, unit cost, quantity) so a write-off or transfer can be
    traced back to the receipts that funded it.
"""

from __future__ import annotations

from bisect import insort
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal

from lotledger_kernel.domain.snapshot import OpeningLot
from lotledger_kernel.domain.values import QUANTITY_TOLERANCE, ZERO, to_decimal
from lotledger_kernel.logging_config import get_logger

logger = get_logger("engines.valuation.batch_ledger")

LedgerKey = tuple[str, str]


@dataclass(slots=True)
class StockLot:
    """
    A received batch of one product in one warehouse.

    ``quantity`` is the remaining quantity.  The ledger mutates it on
    consumption and ``unit_cost`` on a re-pricing; nothing else changes.
    """

    batch_id: str
    product_id: str
    warehouse_id: str
    quantity: Decimal
    unit_cost: Decimal
    receipt_date: datetime
    expiry_date: datetime | None = None

    def __post_init__(self) -> None:
        self.quantity = to_decimal(self.quantity)
        self.unit_cost = to_decimal(self.unit_cost)
        if self.quantity < ZERO:
            raise ValueError(f"Lot quantity cannot be negative, got {self.quantity}")
        if self.unit_cost < ZERO:
            raise ValueError(f"Lot unit cost cannot be negative, got {self.unit_cost}")

    @property
    def key(self) -> LedgerKey:
        return (self.product_id, self.warehouse_id)

    @property
    def value(self) -> Decimal:
        return self.quantity * self.unit_cost

    def view(self) -> LotLayer:
        return LotLayer(
            batch_id=self.batch_id,
            product_id=self.product_id,
            warehouse_id=self.warehouse_id,
            quantity=self.quantity,
            unit_cost=self.unit_cost,
            receipt_date=self.receipt_date,
            expiry_date=self.expiry_date,
        )


def _fifo_key(lot: StockLot) -> datetime:
    return lot.receipt_date


@dataclass(frozen=True, slots=True)
class LotLayer:
    """Frozen view of a lot's remaining state, safe to hand to callers."""

    batch_id: str
    product_id: str
    warehouse_id: str
    quantity: Decimal
    unit_cost: Decimal
    receipt_date: datetime
    expiry_date: datetime | None = None

    @property
    def value(self) -> Decimal:
        return self.quantity * self.unit_cost


@dataclass(frozen=True, slots=True)
class LotSlice:
    """The part of one lot taken by a consumption."""

    batch_id: str
    receipt_date: datetime
    unit_cost: Decimal
    quantity: Decimal
    expiry_date: datetime | None = None

    @property
    def value(self) -> Decimal:
        return self.quantity * self.unit_cost


@dataclass(frozen=True, slots=True)
class LotConsumption:
    """
    Result of consuming one quantity of a product from one warehouse.

    Guarantees:
        - ``consumed == sum(slice.quantity)`` and ``value == sum(slice.value)``.
        - ``consumed + shortfall == requested``.
    """

    product_id: str
    warehouse_id: str
    requested: Decimal
    consumed: Decimal
    value: Decimal
    slices: tuple[LotSlice, ...] = field(default_factory=tuple)

    @property
    def shortfall(self) -> Decimal:
        return self.requested - self.consumed

    @property
    def average_unit_cost(self) -> Decimal:
        """Quantity-weighted unit cost of what was consumed."""
        if self.consumed == ZERO:
            return ZERO
        return self.value / self.consumed


@dataclass(frozen=True, slots=True)
class LotRevaluation:
    """A lot whose unit cost a re-pricing changed."""

    batch_id: str
    product_id: str
    warehouse_id: str
    quantity: Decimal
    old_unit_cost: Decimal
    new_unit_cost: Decimal

    @property
    def value_change(self) -> Decimal:
        return self.quantity * (self.new_unit_cost - self.old_unit_cost)


class BatchLedger:
    """
    Ordered stock lots per (product, warehouse).

    Contract:
        Owns its lots exclusively.  Callers only ever see ``LotLayer`` and
        ``LotSlice`` values.
    Guarantees:
        - ``consume`` draws from the oldest lot first.
        - ``quantity``/``value`` of a key equal the sums over its lots.
    Non-goals:
        - Does not decide which documents to replay; that is
          ``StockMovementProcessor``'s job.
    """

    def __init__(self, quantity_tolerance: Decimal = QUANTITY_TOLERANCE):
        self._lots: dict[LedgerKey, list[StockLot]] = {}
        self._quantity_tolerance = quantity_tolerance

    @classmethod
    def from_lots(
        cls,
        lots: Iterable[OpeningLot | LotLayer | StockLot],
        quantity_tolerance: Decimal = QUANTITY_TOLERANCE,
    ) -> BatchLedger:
        """Build a ledger holding fresh copies of the given lots."""
        ledger = cls(quantity_tolerance=quantity_tolerance)
        for lot in lots:
            ledger.append(
                StockLot(
                    batch_id=lot.batch_id,
                    product_id=lot.product_id,
                    warehouse_id=lot.warehouse_id,
                    quantity=lot.quantity,
                    unit_cost=lot.unit_cost,
                    receipt_date=lot.receipt_date,
                    expiry_date=lot.expiry_date,
                )
            )
        ledger.prune()
        return ledger

    def copy(self) -> BatchLedger:
        """Independent copy; mutating either ledger never affects the other."""
        return BatchLedger.from_lots(self._iter_lots(), self._quantity_tolerance)

    # =========================================================================
    # Mutation
    # =========================================================================

    def append(self, lot: StockLot) -> None:
        """Insert a lot at its FIFO position (after lots with the same date)."""
        insort(self._lots.setdefault(lot.key, []), lot, key=_fifo_key)
        logger.debug("lot_appended", extra={
            "batch_id": lot.batch_id,
            "product_id": lot.product_id,
            "warehouse_id": lot.warehouse_id,
            "quantity": str(lot.quantity),
            "unit_cost": str(lot.unit_cost),
            "receipt_date": lot.receipt_date.isoformat(),
        })

    def consume(
        self,
        product_id: str,
        warehouse_id: str,
        quantity: Decimal,
    ) -> LotConsumption:
        """
        Consume ``quantity`` oldest-first.

        Preconditions:
            quantity > 0.
        Postconditions:
            Each touched lot is reduced by ``min(remaining_need, lot.quantity)``;
            the returned value is the sum of consumed quantity times lot cost.
            Any unmet quantity is left on ``shortfall`` and carries no cost.
        Raises:
            ValueError: If quantity is not positive.
        """
        requested = to_decimal(quantity)
        if requested <= ZERO:
            raise ValueError(f"Consumption quantity must be positive, got {requested}")

        remaining = requested
        value = ZERO
        slices: list[LotSlice] = []

        for lot in self._lots.get((product_id, warehouse_id), ()):
            if remaining <= ZERO:
                break
            if lot.quantity <= ZERO:
                continue
            take = min(remaining, lot.quantity)
            lot.quantity -= take
            remaining -= take
            value += take * lot.unit_cost
            slices.append(
                LotSlice(
                    batch_id=lot.batch_id,
                    receipt_date=lot.receipt_date,
                    unit_cost=lot.unit_cost,
                    quantity=take,
                    expiry_date=lot.expiry_date,
                )
            )

        consumption = LotConsumption(
            product_id=product_id,
            warehouse_id=warehouse_id,
            requested=requested,
            consumed=requested - remaining,
            value=value,
            slices=tuple(slices),
        )
        logger.debug("lots_consumed", extra={
            "product_id": product_id,
            "warehouse_id": warehouse_id,
            "requested": str(requested),
            "consumed": str(consumption.consumed),
            "value": str(value),
            "lot_count": len(slices),
        })
        return consumption

    def reprice(self, batch_id: str, unit_cost: Decimal) -> tuple[LotRevaluation, ...]:
        """
        Set the unit cost of a batch and of every lot transferred out of it.

        Transferred lots carry ``<batch_id>/<transfer_id>`` ids, so the
        batch and its lineage are matched by id prefix.  Lots already
        consumed keep the cost they were consumed at.
        """
        new_cost = to_decimal(unit_cost)
        if new_cost < ZERO:
            raise ValueError(f"Lot unit cost cannot be negative, got {new_cost}")

        lineage = f"{batch_id}/"
        changes = []
        for lot in self._iter_lots():
            if lot.batch_id != batch_id and not lot.batch_id.startswith(lineage):
                continue
            if lot.unit_cost == new_cost:
                continue
            changes.append(
                LotRevaluation(
                    batch_id=lot.batch_id,
                    product_id=lot.product_id,
                    warehouse_id=lot.warehouse_id,
                    quantity=lot.quantity,
                    old_unit_cost=lot.unit_cost,
                    new_unit_cost=new_cost,
                )
            )
            lot.unit_cost = new_cost

        logger.debug("batch_repriced", extra={
            "batch_id": batch_id,
            "unit_cost": str(new_cost),
            "lot_count": len(changes),
        })
        return tuple(changes)

    def prune(self) -> int:
        """Drop lots at or below the quantity tolerance.  Returns the count removed."""
        removed = 0
        for key in list(self._lots):
            kept = [lot for lot in self._lots[key] if lot.quantity > self._quantity_tolerance]
            removed += len(self._lots[key]) - len(kept)
            if kept:
                self._lots[key] = kept
            else:
                del self._lots[key]
        return removed

    def has_shortfall(self, consumption: LotConsumption) -> bool:
        """True if the unmet part of a consumption exceeds the quantity tolerance."""
        return consumption.shortfall > self._quantity_tolerance

    # =========================================================================
    # Queries
    # =========================================================================

    def lots(self, product_id: str, warehouse_id: str) -> tuple[LotLayer, ...]:
        """Lots of one key in FIFO order."""
        return tuple(lot.view() for lot in self._lots.get((product_id, warehouse_id), ()))

    def quantity(self, product_id: str, warehouse_id: str) -> Decimal:
        return sum((lot.quantity for lot in self._lots.get((product_id, warehouse_id), ())), ZERO)

    def value(self, product_id: str, warehouse_id: str) -> Decimal:
        return sum((lot.value for lot in self._lots.get((product_id, warehouse_id), ())), ZERO)

    def keys(self) -> tuple[LedgerKey, ...]:
        return tuple(self._lots)

    def snapshot(self) -> tuple[LotLayer, ...]:
        """Every lot, grouped by key in first-seen order, FIFO within a key."""
        return tuple(lot.view() for lot in self._iter_lots())

    def _iter_lots(self) -> Iterable[StockLot]:
        for lots in self._lots.values():
            yield from lots
