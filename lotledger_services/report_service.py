"""
lotledger_services.report_service -- Pure report entry points.

Responsibility:
    One function per report, each taking an immutable ``LedgerSnapshot``
    plus scalar parameters and returning a frozen report.  Every call
    builds its own processor, ledgers and engines and discards them on
    return.  ``compute_report`` dispatches on a closed ``ReportParams``
    variant so callers recompute explicitly when their inputs change.

Architecture position:
    Services -- orchestration over engines + kernel, zero I/O apart from
    reading settings through lotledger_config when none are passed.

Invariants enforced:
    - Parameters are validated before any computation; a validation
      failure produces no partial report.
    - Identical snapshot and parameters give equal reports.
    - Cutoffs are inclusive to the end of their calendar day; ranges run
      from the start of the first day to the end of the last.

Failure modes:
    - InvalidDateRangeError when the range ends before it starts.
    - CutoffBeforeHistoryError when the cutoff precedes every document
      of the requested side.
    - DataIntegrityError only with ``raise_on_shortfall`` settings;
      otherwise shortfalls are listed on the turnover report.
    - ReportCancelledError when the optional token is cancelled.

Usage:
    from lotledger_services.report_service import compute_turnover_report

    report = compute_turnover_report(snapshot, date(2024, 1, 1), date(2024, 1, 31))
    for row in report.rows:
        print(row.product_name, row.closing_quantity, row.closing_value)
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import date, datetime
from decimal import Decimal
from typing import assert_never

from lotledger_config import ReportSettings, get_active_config
from lotledger_engines.aging import AgingBucketClassifier, BucketTotal
from lotledger_engines.allocation import DebtAllocationEngine
from lotledger_engines.movements import CancellationCheck, cost_goods_returns, replay_snapshot
from lotledger_engines.turnover import ALL_WAREHOUSES, TurnoverAggregator, TurnoverReport
from lotledger_kernel.domain.documents import is_confirmed
from lotledger_kernel.domain.entities import PartyKind
from lotledger_kernel.domain.issues import ReferenceIssue
from lotledger_kernel.domain.snapshot import LedgerSnapshot
from lotledger_kernel.domain.values import ZERO, end_of_day, start_of_day
from lotledger_kernel.exceptions import CutoffBeforeHistoryError, InvalidDateRangeError
from lotledger_kernel.logging_config import LogContext, get_logger
from lotledger_services._references import ReferenceTracker, resolve_counterparties
from lotledger_services.balance_assembler import BalanceReport, BalanceReportAssembler

logger = get_logger("services.report")


# =============================================================================
# Parameters
# =============================================================================


@dataclass(frozen=True, slots=True)
class TurnoverParams:
    date_from: date | datetime
    date_to: date | datetime
    warehouse_id: str = ALL_WAREHOUSES


@dataclass(frozen=True, slots=True)
class AgingParams:
    cutoff: date | datetime
    party: PartyKind = PartyKind.SUPPLIER


@dataclass(frozen=True, slots=True)
class BalanceParams:
    cutoff: date | datetime
    party: PartyKind = PartyKind.SUPPLIER


ReportParams = TurnoverParams | AgingParams | BalanceParams


# =============================================================================
# Aging report shape
# =============================================================================


@dataclass(frozen=True)
class AgingRow:
    """One counterparty's aged debt."""

    counterparty_id: str
    name: str
    buckets: tuple[BucketTotal, ...]
    unapplied_credit: Decimal

    @property
    def total(self) -> Decimal:
        return sum((bucket.total for bucket in self.buckets), ZERO)

    def bucket(self, name: str) -> BucketTotal:
        for bucket in self.buckets:
            if bucket.name == name:
                return bucket
        raise KeyError(name)


@dataclass(frozen=True)
class AgingReport:
    """Aging of every supplier or every client as of a cutoff."""

    party: PartyKind
    cutoff: datetime
    bucket_names: tuple[str, ...]
    rows: tuple[AgingRow, ...]
    issues: tuple[ReferenceIssue, ...] = ()

    @property
    def total(self) -> Decimal:
        return sum((row.total for row in self.rows), ZERO)

    def totals_by_bucket(self) -> dict[str, Decimal]:
        totals = {name: ZERO for name in self.bucket_names}
        for row in self.rows:
            for bucket in row.buckets:
                totals[bucket.name] += bucket.total
        return totals

    def row_for(self, counterparty_id: str) -> AgingRow | None:
        for row in self.rows:
            if row.counterparty_id == counterparty_id:
                return row
        return None


# =============================================================================
# Helpers
# =============================================================================


def _resolve_settings(settings: ReportSettings | None) -> ReportSettings:
    return settings if settings is not None else get_active_config()


def _party(party: PartyKind | str) -> PartyKind:
    return party if isinstance(party, PartyKind) else PartyKind(party)


def _without_system_supplier(
    snapshot: LedgerSnapshot,
    party: PartyKind,
    settings: ReportSettings,
) -> LedgerSnapshot:
    if party is PartyKind.SUPPLIER and settings.system_supplier_id is not None:
        return snapshot.without_supplier(settings.system_supplier_id)
    return snapshot


def debt_snapshot(
    snapshot: LedgerSnapshot,
    party: PartyKind,
    settings: ReportSettings,
    token: CancellationCheck | None = None,
) -> LedgerSnapshot:
    """
    The snapshot a debt report reads.

    On the supplier side, unpriced return lines are costed from the full
    stock history first (surplus receipts fund lots too), and then the
    system supplier's documents are dropped.
    """
    if party is PartyKind.SUPPLIER:
        snapshot = cost_goods_returns(
            snapshot, quantity_tolerance=settings.quantity_tolerance, token=token
        )
    return _without_system_supplier(snapshot, party, settings)


def validate_cutoff(snapshot: LedgerSnapshot, cutoff: datetime, party: PartyKind) -> datetime:
    """
    Normalise a cutoff to the end of its day and check it against history.

    Raises:
        CutoffBeforeHistoryError: If every confirmed document and payment
            of this side is dated after the cutoff.
    """
    limit = end_of_day(cutoff)
    dates = [d.date for d in snapshot.debt_documents(party) if is_confirmed(d)]
    dates += [p.date for p in snapshot.party_payments(party)]
    if dates:
        earliest = min(dates)
        if limit < earliest:
            raise CutoffBeforeHistoryError(limit, earliest)
    return limit


# =============================================================================
# Entry points
# =============================================================================


def compute_turnover_report(
    snapshot: LedgerSnapshot,
    date_from: date | datetime,
    date_to: date | datetime,
    warehouse_id: str = ALL_WAREHOUSES,
    *,
    settings: ReportSettings | None = None,
    token: CancellationCheck | None = None,
) -> TurnoverReport:
    """
    Turnover statement per product over ``[date_from, date_to]``.

    Opening covers initial stock and every movement before the range;
    debit and credit cover in-range movements at the filtered warehouse
    (both sides of a transfer when the filter is "all").
    """
    start = start_of_day(date_from)
    end = end_of_day(date_to)
    if end < start:
        raise InvalidDateRangeError(start, end)
    settings = _resolve_settings(settings)

    with LogContext.bind(report_type="turnover"):
        processor, movements = replay_snapshot(
            snapshot,
            until=end,
            quantity_tolerance=settings.quantity_tolerance,
            raise_on_shortfall=settings.raise_on_shortfall,
            token=token,
        )
        aggregator = TurnoverAggregator(start, end, warehouse_id)
        aggregator.add_all(movements)
        rows = aggregator.build(snapshot.products_by_id, unknown_name=settings.unknown_name)

        references = ReferenceTracker(settings.unknown_name)
        if warehouse_id != ALL_WAREHOUSES:
            references.check("warehouse", snapshot.warehouses_by_id, warehouse_id)
        for movement in movements:
            references.check("product", snapshot.products_by_id, movement.product_id, movement.document_id)
            references.check("warehouse", snapshot.warehouses_by_id, movement.warehouse_id, movement.document_id)

        shortfalls = tuple(
            shortfall
            for shortfall in processor.shortfalls
            if warehouse_id == ALL_WAREHOUSES or shortfall.warehouse_id == warehouse_id
        )
        report = TurnoverReport(
            date_from=start,
            date_to=end,
            warehouse_id=warehouse_id,
            rows=rows,
            shortfalls=shortfalls,
            issues=references.issues,
        )
        logger.info("turnover_report_completed", extra={
            "date_from": start.isoformat(),
            "date_to": end.isoformat(),
            "warehouse_id": warehouse_id,
            "row_count": len(rows),
            "shortfall_count": len(shortfalls),
            "issue_count": len(report.issues),
        })
    return report


def compute_aging_report(
    snapshot: LedgerSnapshot,
    cutoff: date | datetime,
    party: PartyKind | str = PartyKind.SUPPLIER,
    *,
    settings: ReportSettings | None = None,
    token: CancellationCheck | None = None,
) -> AgingReport:
    """Aging buckets per counterparty; rows with nothing outstanding are dropped."""
    party = _party(party)
    settings = _resolve_settings(settings)
    limit = validate_cutoff(_without_system_supplier(snapshot, party, settings), cutoff, party)

    with LogContext.bind(report_type=f"{party.value}_aging"):
        snapshot = debt_snapshot(snapshot, party, settings, token=token)
        classifier = AgingBucketClassifier.from_bounds(settings.aging_bucket_bounds)
        engine = DebtAllocationEngine(
            classifier,
            settlement_tolerance=settings.settlement_tolerance,
            initial_balance_label=settings.initial_balance_label,
        )
        assembler = BalanceReportAssembler(
            snapshot,
            party,
            engine=engine,
            unknown_name=settings.unknown_name,
            initial_balance_label=settings.initial_balance_label,
            settlement_tolerance=settings.settlement_tolerance,
        )
        documents = {(d.kind, d.id): d for d in snapshot.debt_documents(party)}

        rows = []
        for counterparty in resolve_counterparties(snapshot, party, assembler.references):
            if token is not None:
                token.raise_if_cancelled()
            allocation = engine.allocate(
                counterparty,
                snapshot.debt_documents(party),
                snapshot.party_payments(party),
                cutoff=limit,
            )
            buckets = tuple(
                replace(
                    bucket,
                    documents=tuple(
                        aged if aged.is_initial_balance
                        else replace(aged, lines=assembler.document_lines(documents[aged.kind, aged.document_id]))
                        for aged in bucket.documents
                    ),
                )
                for bucket in allocation.buckets
            )
            row = AgingRow(
                counterparty_id=counterparty.id,
                name=counterparty.name,
                buckets=buckets,
                unapplied_credit=allocation.unapplied_credit,
            )
            if row.total > settings.settlement_tolerance:
                rows.append(row)

        report = AgingReport(
            party=party,
            cutoff=limit,
            bucket_names=tuple(bucket.name for bucket in classifier.buckets),
            rows=tuple(rows),
            issues=assembler.references.issues,
        )
        logger.info("aging_report_completed", extra={
            "party": party.value,
            "cutoff": limit.isoformat(),
            "row_count": len(rows),
            "total": str(report.total),
            "issue_count": len(report.issues),
        })
    return report


def compute_balance_report(
    snapshot: LedgerSnapshot,
    cutoff: date | datetime,
    party: PartyKind | str = PartyKind.SUPPLIER,
    *,
    settings: ReportSettings | None = None,
    token: CancellationCheck | None = None,
) -> BalanceReport:
    """Point-in-time balances from a historical replay up to the cutoff."""
    party = _party(party)
    settings = _resolve_settings(settings)
    limit = validate_cutoff(_without_system_supplier(snapshot, party, settings), cutoff, party)

    with LogContext.bind(report_type=f"{party.value}_balance"):
        assembler = BalanceReportAssembler(
            debt_snapshot(snapshot, party, settings, token=token),
            party,
            unknown_name=settings.unknown_name,
            initial_balance_label=settings.initial_balance_label,
            settlement_tolerance=settings.settlement_tolerance,
        )
        return assembler.assemble(limit, token=token)


def compute_report(
    snapshot: LedgerSnapshot,
    params: ReportParams,
    *,
    settings: ReportSettings | None = None,
    token: CancellationCheck | None = None,
) -> TurnoverReport | AgingReport | BalanceReport:
    """Compute whichever report ``params`` describes."""
    match params:
        case TurnoverParams():
            return compute_turnover_report(
                snapshot,
                params.date_from,
                params.date_to,
                params.warehouse_id,
                settings=settings,
                token=token,
            )
        case AgingParams():
            return compute_aging_report(
                snapshot, params.cutoff, params.party, settings=settings, token=token
            )
        case BalanceParams():
            return compute_balance_report(
                snapshot, params.cutoff, params.party, settings=settings, token=token
            )
        case _:
            assert_never(params)
