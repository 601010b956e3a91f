"""
lotledger_services.balance_assembler -- Point-in-time counterparty balances.

Responsibility:
    Combine the debt allocation of every supplier (or client) with
    counterparty metadata and document line items into a balance report:
    one summary row per counterparty, its transaction history with debit,
    credit and running balance columns, and the line items of each
    document.

Architecture position:
    Services -- orchestration over engines + kernel, zero I/O.
    Shared by supplier and client reports; the party kind selects the
    collections.

Invariants enforced:
    - Historical replay: the balance is computed from documents and
      payments dated on or before the cutoff, never from a live running
      balance.
    - The initial balance pseudo-row is always the first transaction.
    - Final running balance == ``DebtAllocation.balance``.
    - Rows with |balance| within the settlement tolerance and no
      document or payment transactions are excluded.
    - Supplier returns without an agreed price are credited at the FIFO
      value the stock replay consumed for them.

Failure modes:
    - ReportCancelledError from the cancellation token, checked between
      counterparties.
    - Unknown product, dish or counterparty ids are recorded as issues.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import assert_never

from lotledger_engines.allocation import DebtAllocation, DebtAllocationEngine
from lotledger_engines.movements import CancellationCheck, cost_goods_returns
from lotledger_kernel.domain.documents import (
    DebtDocument,
    DocumentKind,
    GoodsReceipt,
    GoodsReturn,
    Payment,
    PriceAdjustment,
    SalesInvoice,
    SalesReturn,
    debt_counterparty_id,
    debt_total,
    is_confirmed,
)
from lotledger_kernel.domain.entities import Counterparty, PartyKind
from lotledger_kernel.domain.issues import ReferenceIssue
from lotledger_kernel.domain.snapshot import LedgerSnapshot
from lotledger_kernel.domain.values import MONEY_TOLERANCE, ZERO, end_of_day, is_settled
from lotledger_kernel.logging_config import get_logger
from lotledger_services._references import ReferenceTracker, resolve_counterparties

logger = get_logger("services.balance_assembler")


@dataclass(frozen=True, slots=True)
class DocumentLine:
    """One line of a debt document, resolved for display."""

    item_id: str
    name: str
    quantity: Decimal
    unit_price: Decimal
    line_total: Decimal


@dataclass(frozen=True, slots=True)
class BalanceTransaction:
    """
    One entry of a counterparty's history.

    ``date`` and ``kind`` are None for the initial balance pseudo-row.
    """

    document_id: str
    doc_number: str
    date: datetime | None
    kind: DocumentKind | None
    debit: Decimal
    credit: Decimal
    running_balance: Decimal
    lines: tuple[DocumentLine, ...] = ()
    comment: str = ""


@dataclass(frozen=True)
class BalanceRow:
    """Summary and history of one counterparty as of the cutoff."""

    counterparty_id: str
    name: str
    initial_balance: Decimal
    balance: Decimal
    outstanding: Decimal
    unapplied_credit: Decimal
    transactions: tuple[BalanceTransaction, ...]

    @property
    def total_debit(self) -> Decimal:
        return sum((t.debit for t in self.transactions), ZERO)

    @property
    def total_credit(self) -> Decimal:
        return sum((t.credit for t in self.transactions), ZERO)

    @property
    def has_activity(self) -> bool:
        """True if any document or payment contributed, beyond the initial balance."""
        return any(t.kind is not None for t in self.transactions)


@dataclass(frozen=True)
class BalanceReport:
    """Balances of every supplier or every client as of a cutoff."""

    party: PartyKind
    cutoff: datetime
    rows: tuple[BalanceRow, ...]
    issues: tuple[ReferenceIssue, ...] = ()

    @property
    def total_balance(self) -> Decimal:
        return sum((row.balance for row in self.rows), ZERO)

    def row_for(self, counterparty_id: str) -> BalanceRow | None:
        for row in self.rows:
            if row.counterparty_id == counterparty_id:
                return row
        return None


class BalanceReportAssembler:
    """
    Build balance reports for one side of the business.

    Contract:
        One assembler per report invocation; the reference tracker
        accumulates issues across every row it builds.
    Guarantees:
        - Transactions are in date order; documents precede payments on
          the same timestamp and each group keeps snapshot order.
    """

    def __init__(
        self,
        snapshot: LedgerSnapshot,
        party: PartyKind,
        engine: DebtAllocationEngine | None = None,
        unknown_name: str = "Unknown",
        initial_balance_label: str = "Initial balance",
        settlement_tolerance: Decimal = MONEY_TOLERANCE,
    ):
        if party is PartyKind.SUPPLIER:
            snapshot = cost_goods_returns(snapshot)
        self._snapshot = snapshot
        self._party = party
        self._engine = engine or DebtAllocationEngine(
            settlement_tolerance=settlement_tolerance,
            initial_balance_label=initial_balance_label,
        )
        self._initial_balance_label = initial_balance_label
        self._tolerance = settlement_tolerance
        self._references = ReferenceTracker(unknown_name)

    @property
    def references(self) -> ReferenceTracker:
        return self._references

    @property
    def snapshot(self) -> LedgerSnapshot:
        """The snapshot the rows are built from, with supplier returns costed."""
        return self._snapshot

    # =========================================================================
    # Line items
    # =========================================================================

    def document_lines(self, document: DebtDocument) -> tuple[DocumentLine, ...]:
        """Line items of a debt document with product or dish names resolved."""
        products = self._snapshot.products_by_id
        dishes = self._snapshot.dishes_by_id
        match document:
            case GoodsReceipt():
                return tuple(
                    DocumentLine(
                        item_id=item.product_id,
                        name=self._references.name("product", products, item.product_id, document.id),
                        quantity=item.quantity,
                        unit_price=item.price,
                        line_total=item.line_total,
                    )
                    for item in document.items
                )
            case GoodsReturn():
                return tuple(
                    DocumentLine(
                        item_id=item.product_id,
                        name=self._references.name("product", products, item.product_id, document.id),
                        quantity=item.quantity,
                        unit_price=item.unit_price,
                        line_total=item.line_total,
                    )
                    for item in document.items
                )
            case PriceAdjustment():
                return tuple(
                    DocumentLine(
                        item_id=item.product_id,
                        name=self._references.name("product", products, item.product_id, document.id),
                        quantity=item.original_quantity,
                        unit_price=item.new_price - item.old_price,
                        line_total=item.line_total,
                    )
                    for item in document.items
                )
            case SalesInvoice() | SalesReturn():
                return tuple(
                    DocumentLine(
                        item_id=item.dish_id,
                        name=self._references.name("dish", dishes, item.dish_id, document.id),
                        quantity=item.quantity,
                        unit_price=item.price,
                        line_total=item.line_total,
                    )
                    for item in document.items
                )
            case _:
                assert_never(document)

    # =========================================================================
    # History
    # =========================================================================

    def transactions(
        self,
        counterparty: Counterparty,
        cutoff: datetime,
    ) -> tuple[BalanceTransaction, ...]:
        """Initial balance pseudo-row, then documents and payments up to the cutoff."""
        limit = end_of_day(cutoff)
        documents = [
            document
            for document in self._snapshot.debt_documents(self._party)
            if is_confirmed(document)
            and debt_counterparty_id(document) == counterparty.id
            and document.date <= limit
        ]
        payments = [
            payment
            for payment in self._snapshot.party_payments(self._party)
            if payment.counterparty_id == counterparty.id and payment.date <= limit
        ]
        entries: list[DebtDocument | Payment] = [*documents, *payments]
        entries.sort(key=lambda entry: entry.date)

        running = counterparty.initial_balance
        history = [
            BalanceTransaction(
                document_id=f"initial:{counterparty.id}",
                doc_number=self._initial_balance_label,
                date=None,
                kind=None,
                debit=max(running, ZERO),
                credit=max(-running, ZERO),
                running_balance=running,
            )
        ]
        for entry in entries:
            if isinstance(entry, Payment):
                debit, credit, lines, comment = ZERO, entry.amount, (), entry.comment
            else:
                amount = debt_total(entry)
                debit, credit = max(amount, ZERO), max(-amount, ZERO)
                lines, comment = self.document_lines(entry), ""
            running += debit - credit
            history.append(
                BalanceTransaction(
                    document_id=entry.id,
                    doc_number=entry.doc_number,
                    date=entry.date,
                    kind=entry.kind,
                    debit=debit,
                    credit=credit,
                    running_balance=running,
                    lines=lines,
                    comment=comment,
                )
            )
        return tuple(history)

    def row(self, counterparty: Counterparty, cutoff: datetime) -> tuple[BalanceRow, DebtAllocation]:
        allocation = self._engine.allocate(
            counterparty,
            self._snapshot.debt_documents(self._party),
            self._snapshot.party_payments(self._party),
            cutoff=cutoff,
        )
        row = BalanceRow(
            counterparty_id=counterparty.id,
            name=counterparty.name,
            initial_balance=counterparty.initial_balance,
            balance=allocation.balance,
            outstanding=allocation.outstanding,
            unapplied_credit=allocation.unapplied_credit,
            transactions=self.transactions(counterparty, cutoff),
        )
        return row, allocation

    def assemble(
        self,
        cutoff: datetime,
        token: CancellationCheck | None = None,
    ) -> BalanceReport:
        """Build the report for every counterparty of this side."""
        limit = end_of_day(cutoff)
        rows = []
        for counterparty in resolve_counterparties(self._snapshot, self._party, self._references):
            if token is not None:
                token.raise_if_cancelled()
            row, _ = self.row(counterparty, limit)
            if is_settled(row.balance, self._tolerance) and not row.has_activity:
                continue
            rows.append(row)

        report = BalanceReport(
            party=self._party,
            cutoff=limit,
            rows=tuple(rows),
            issues=self._references.issues,
        )
        logger.info("balance_report_assembled", extra={
            "party": self._party.value,
            "cutoff": limit.isoformat(),
            "row_count": len(rows),
            "total_balance": str(report.total_balance),
            "issue_count": len(report.issues),
        })
        return report
