"""
lotledger_engines.turnover -- Fold stock movements into a turnover statement.

Responsibility:
    Accumulate opening, debit and credit quantity and value per product
    from the movements of a replay, restricted to one warehouse (or all),
    and keep an ordered drill-down log of in-range movements.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    Input is produced by lotledger_engines.movements.

Invariants enforced:
    - closing = opening + debit - credit, for quantity and value, on every
      row (closing is derived, never stored).
    - OPENING movements and movements dated before the range start count
      as opening; in-range inbound movements are debits; in-range
      outbound movements are credits.  A revaluation moves value only
      and lands on the debit or credit side by the sign of its value.
    - Rows where every quantity and value is zero are dropped.

Failure modes:
    - None.  Unknown products get the configured fallback name; the
      caller records the reference issue.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal

from lotledger_engines.movements import MovementKind, StockMovement
from lotledger_engines.tracer import traced_engine
from lotledger_engines.valuation.batch_ledger import LotSlice
from lotledger_kernel.domain.entities import Product
from lotledger_kernel.domain.issues import ReferenceIssue, StockShortfall
from lotledger_kernel.domain.values import ZERO
from lotledger_kernel.logging_config import get_logger

logger = get_logger("engines.turnover")

ALL_WAREHOUSES = "all"


@dataclass(frozen=True, slots=True)
class TurnoverDetail:
    """One in-range movement shown when a turnover row is expanded."""

    date: datetime
    document_id: str | None
    doc_number: str | None
    kind: MovementKind
    warehouse_id: str
    quantity: Decimal
    value: Decimal
    slices: tuple[LotSlice, ...] = ()


@dataclass(frozen=True, slots=True)
class TurnoverRow:
    """
    Turnover of one product over the report range.

    Guarantees:
        - ``closing_quantity == opening_quantity + debit_quantity - credit_quantity``.
        - ``closing_value == opening_value + debit_value - credit_value``.
        - ``details`` is in replay order.
    """

    product_id: str
    product_name: str
    unit: str
    opening_quantity: Decimal
    opening_value: Decimal
    debit_quantity: Decimal
    debit_value: Decimal
    credit_quantity: Decimal
    credit_value: Decimal
    details: tuple[TurnoverDetail, ...] = ()

    @property
    def closing_quantity(self) -> Decimal:
        return self.opening_quantity + self.debit_quantity - self.credit_quantity

    @property
    def closing_value(self) -> Decimal:
        return self.opening_value + self.debit_value - self.credit_value

    @property
    def is_empty(self) -> bool:
        return all(
            amount == ZERO
            for amount in (
                self.opening_quantity,
                self.opening_value,
                self.debit_quantity,
                self.debit_value,
                self.credit_quantity,
                self.credit_value,
                self.closing_quantity,
                self.closing_value,
            )
        )


@dataclass(frozen=True)
class TurnoverReport:
    """Turnover statement for a date range and warehouse filter."""

    date_from: datetime
    date_to: datetime
    warehouse_id: str
    rows: tuple[TurnoverRow, ...]
    shortfalls: tuple[StockShortfall, ...] = ()
    issues: tuple[ReferenceIssue, ...] = ()

    def row_for(self, product_id: str) -> TurnoverRow | None:
        for row in self.rows:
            if row.product_id == product_id:
                return row
        return None

    @property
    def opening_value(self) -> Decimal:
        return sum((row.opening_value for row in self.rows), ZERO)

    @property
    def debit_value(self) -> Decimal:
        return sum((row.debit_value for row in self.rows), ZERO)

    @property
    def credit_value(self) -> Decimal:
        return sum((row.credit_value for row in self.rows), ZERO)

    @property
    def closing_value(self) -> Decimal:
        return sum((row.closing_value for row in self.rows), ZERO)


@dataclass(slots=True)
class _Accumulator:
    opening_quantity: Decimal = ZERO
    opening_value: Decimal = ZERO
    debit_quantity: Decimal = ZERO
    debit_value: Decimal = ZERO
    credit_quantity: Decimal = ZERO
    credit_value: Decimal = ZERO
    details: list[TurnoverDetail] = field(default_factory=list)


class TurnoverAggregator:
    """
    Per-product accumulator folded over a movement stream.

    Contract:
        ``add`` is the fold step; ``build`` freezes the accumulators into
        report rows.  An aggregator is used for one report only.
    Guarantees:
        - A movement outside the warehouse filter or after ``date_to``
          contributes nothing.
        - Rows follow the product catalogue order; products missing from
          the catalogue follow, ordered by id.
    """

    def __init__(
        self,
        date_from: datetime,
        date_to: datetime,
        warehouse_id: str = ALL_WAREHOUSES,
    ):
        self._date_from = date_from
        self._date_to = date_to
        self._warehouse_id = warehouse_id
        self._rows: dict[str, _Accumulator] = {}

    def _matches(self, movement: StockMovement) -> bool:
        return self._warehouse_id == ALL_WAREHOUSES or movement.warehouse_id == self._warehouse_id

    def add(self, movement: StockMovement) -> None:
        if not self._matches(movement) or movement.date > self._date_to:
            return

        acc = self._rows.setdefault(movement.product_id, _Accumulator())
        if movement.kind is MovementKind.OPENING or movement.date < self._date_from:
            acc.opening_quantity += movement.quantity
            acc.opening_value += movement.value
            return

        if movement.is_inbound:
            acc.debit_quantity += movement.quantity
            acc.debit_value += movement.value
        else:
            acc.credit_quantity -= movement.quantity
            acc.credit_value -= movement.value

        acc.details.append(
            TurnoverDetail(
                date=movement.date,
                document_id=movement.document_id,
                doc_number=movement.doc_number,
                kind=movement.kind,
                warehouse_id=movement.warehouse_id,
                quantity=movement.quantity,
                value=movement.value,
                slices=movement.slices,
            )
        )

    def add_all(self, movements: Iterable[StockMovement]) -> None:
        for movement in movements:
            self.add(movement)

    def product_ids(self) -> tuple[str, ...]:
        return tuple(self._rows)

    @traced_engine("turnover", "1.0", fingerprint_fields=("unknown_name",))
    def build(
        self,
        products: Mapping[str, Product],
        unknown_name: str = "Unknown",
    ) -> tuple[TurnoverRow, ...]:
        """Freeze the accumulators into rows, dropping all-zero ones."""
        ordered = [pid for pid in products if pid in self._rows]
        ordered += sorted(pid for pid in self._rows if pid not in products)

        rows = []
        for product_id in ordered:
            acc = self._rows[product_id]
            product = products.get(product_id)
            row = TurnoverRow(
                product_id=product_id,
                product_name=product.name if product else unknown_name,
                unit=product.unit if product else "",
                opening_quantity=acc.opening_quantity,
                opening_value=acc.opening_value,
                debit_quantity=acc.debit_quantity,
                debit_value=acc.debit_value,
                credit_quantity=acc.credit_quantity,
                credit_value=acc.credit_value,
                details=tuple(acc.details),
            )
            if not row.is_empty:
                rows.append(row)

        logger.info("turnover_rows_built", extra={
            "date_from": self._date_from.isoformat(),
            "date_to": self._date_to.isoformat(),
            "warehouse_id": self._warehouse_id,
            "product_count": len(self._rows),
            "row_count": len(rows),
        })
        return tuple(rows)
