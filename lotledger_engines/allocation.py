"""
lotledger_engines.allocation -- Oldest-first settlement of counterparty debt.

Responsibility:
    Settle one counterparty's debt documents as of a cutoff against a
    single pool made of its payments and credit documents, initial balance
    first, then debit documents in date order.  Age what is left.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    Uses lotledger_engines.aging for bucket classification.

Invariants enforced:
    - Single forward pass; the pool only ever decreases, by ``min``, so
      it never goes negative and no document is settled twice.
    - A positive initial balance is settled before any dated document.
      A negative initial balance is never offset by the pool.
    - Only CONFIRMED documents dated on or before the cutoff day count.
    - outstanding = unpaid initial + sum of remainders = sum of bucket
      totals, exactly.  The settlement tolerance only hides tiny
      remainders from the bucket drill-down.
    - A document is settled when the pool paid it down to within the
      tolerance; an untouched document is never settled.
    - balance = outstanding - unapplied_credit
              = initial + debits - credits - payments.

Failure modes:
    - None.  Documents of other counterparties are ignored.

Audit relevance:
    ``remainders`` records amount, paid and remaining per debit document,
    so every bucket entry can be traced to the payments that reduced it.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal

from lotledger_engines.aging import AgedDocument, AgingBucketClassifier, BucketTotal
from lotledger_engines.tracer import traced_engine
from lotledger_kernel.domain.documents import (
    DebtDocument,
    DocumentKind,
    Payment,
    debt_counterparty_id,
    debt_total,
    is_confirmed,
)
from lotledger_kernel.domain.entities import Counterparty
from lotledger_kernel.domain.values import MONEY_TOLERANCE, ZERO, end_of_day, is_settled
from lotledger_kernel.logging_config import get_logger

logger = get_logger("engines.allocation")


@dataclass(frozen=True, slots=True)
class DocumentRemainder:
    """How much of one debit document the pool settled."""

    document_id: str
    doc_number: str
    date: datetime
    kind: DocumentKind
    amount: Decimal
    paid: Decimal

    @property
    def remaining(self) -> Decimal:
        return self.amount - self.paid


@dataclass(frozen=True)
class DebtAllocation:
    """
    Residual debt of one counterparty as of a cutoff.

    Guarantees:
        - ``outstanding == unpaid_initial + sum(r.remaining for r in remainders)``.
        - ``sum(b.total for b in buckets) == outstanding``.
        - ``balance == initial_balance + total_debits - total_credits - total_payments``.
    """

    counterparty_id: str
    cutoff: datetime
    initial_balance: Decimal
    paid_to_initial: Decimal
    total_debits: Decimal
    total_credits: Decimal
    total_payments: Decimal
    remainders: tuple[DocumentRemainder, ...]
    buckets: tuple[BucketTotal, ...]
    unapplied_credit: Decimal
    settled_document_ids: tuple[str, ...] = field(default_factory=tuple)

    @property
    def unpaid_initial(self) -> Decimal:
        return self.initial_balance - self.paid_to_initial

    @property
    def outstanding(self) -> Decimal:
        return self.unpaid_initial + sum((r.remaining for r in self.remainders), ZERO)

    @property
    def balance(self) -> Decimal:
        return self.outstanding - self.unapplied_credit

    @property
    def bucket_total(self) -> Decimal:
        return sum((bucket.total for bucket in self.buckets), ZERO)

    def bucket(self, name: str) -> BucketTotal:
        for bucket in self.buckets:
            if bucket.name == name:
                return bucket
        raise KeyError(name)


class DebtAllocationEngine:
    """
    Allocate a counterparty's payment pool over its debt, oldest first.

    Contract:
        Stateless between calls; every ``allocate`` builds its own pool.
    Guarantees:
        - Deterministic for identical inputs.
        - Debit documents with equal dates keep their input order.
    """

    def __init__(
        self,
        classifier: AgingBucketClassifier | None = None,
        settlement_tolerance: Decimal = MONEY_TOLERANCE,
        initial_balance_label: str = "Initial balance",
    ):
        self._classifier = classifier or AgingBucketClassifier()
        self._tolerance = settlement_tolerance
        self._initial_balance_label = initial_balance_label

    @property
    def classifier(self) -> AgingBucketClassifier:
        return self._classifier

    @traced_engine("debt_allocation", "1.0", fingerprint_fields=("cutoff",))
    def allocate(
        self,
        counterparty: Counterparty,
        debt_documents: Iterable[DebtDocument],
        payments: Iterable[Payment],
        cutoff: datetime,
    ) -> DebtAllocation:
        """
        Settle debt as of ``cutoff`` (inclusive, end of day).

        Steps:
            1. Pool = payments plus the absolute totals of credit documents.
            2. Pool settles the positive initial balance first.
            3. Pool settles debit documents in ascending date order.
            4. Every non-zero remainder is aged; the unpaid initial
               balance goes to the oldest bucket as the first entry.
               Remainders within the tolerance count in the bucket totals
               but are not listed among the bucket's documents.
        """
        limit = end_of_day(cutoff)

        relevant = [
            document
            for document in debt_documents
            if is_confirmed(document)
            and debt_counterparty_id(document) == counterparty.id
            and document.date <= limit
        ]
        party_payments = [
            payment
            for payment in payments
            if payment.counterparty_id == counterparty.id and payment.date <= limit
        ]

        debits: list[tuple[DebtDocument, Decimal]] = []
        total_credits = ZERO
        for document in relevant:
            amount = debt_total(document)
            if amount < ZERO:
                total_credits -= amount
            else:
                debits.append((document, amount))
        debits.sort(key=lambda pair: pair[0].date)

        total_payments = sum((payment.amount for payment in party_payments), ZERO)
        pool = total_payments + total_credits

        paid_to_initial = min(pool, max(counterparty.initial_balance, ZERO))
        pool -= paid_to_initial

        remainders = []
        settled = []
        for document, amount in debits:
            paid = min(pool, amount)
            pool -= paid
            remainders.append(
                DocumentRemainder(
                    document_id=document.id,
                    doc_number=document.doc_number,
                    date=document.date,
                    kind=document.kind,
                    amount=amount,
                    paid=paid,
                )
            )
            remaining = amount - paid
            if remaining == ZERO or (paid > ZERO and is_settled(remaining, self._tolerance)):
                settled.append(document.id)

        bucketed = self._classifier.empty_buckets()
        unpaid_initial = counterparty.initial_balance - paid_to_initial
        if unpaid_initial != ZERO:
            self._classifier.add(
                bucketed,
                AgedDocument(
                    document_id=f"initial:{counterparty.id}",
                    doc_number=self._initial_balance_label,
                    date=None,
                    kind=None,
                    amount=counterparty.initial_balance,
                    remaining=unpaid_initial,
                    age_days=None,
                    bucket_name=self._classifier.oldest.name,
                ),
            )
        for remainder in remainders:
            if remainder.remaining > ZERO:
                self._classifier.add(
                    bucketed,
                    self._classifier.age_document(
                        document_id=remainder.document_id,
                        doc_number=remainder.doc_number,
                        document_date=remainder.date,
                        kind=remainder.kind,
                        amount=remainder.amount,
                        remaining=remainder.remaining,
                        cutoff=limit,
                    ),
                )

        allocation = DebtAllocation(
            counterparty_id=counterparty.id,
            cutoff=limit,
            initial_balance=counterparty.initial_balance,
            paid_to_initial=paid_to_initial,
            total_debits=sum((amount for _, amount in debits), ZERO),
            total_credits=total_credits,
            total_payments=total_payments,
            remainders=tuple(remainders),
            buckets=self._classifier.totals(bucketed, display_tolerance=self._tolerance),
            unapplied_credit=pool,
            settled_document_ids=tuple(settled),
        )

        logger.info("debt_allocated", extra={
            "counterparty_id": counterparty.id,
            "cutoff": limit.isoformat(),
            "document_count": len(debits),
            "payment_count": len(party_payments),
            "outstanding": str(allocation.outstanding),
            "unapplied_credit": str(pool),
            "balance": str(allocation.balance),
        })
        return allocation
