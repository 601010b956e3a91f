"""
Module: lotledger_engines.aging
Responsibility:
    Calculate the age of an unsettled debt amount as of a cutoff and
    classify it into configurable aging buckets.  Used by supplier and
    client aging.

Architecture position:
    Engines -- pure calculation layer, zero I/O.

Invariants enforced:
    - Purity: no clock access; the cutoff is always passed in.
    - Age is whole days rounded up, measured from the start of the
      cutoff's calendar day.  Ages at or below zero fall into the first
      bucket.  Measured from the end of that day instead, a document
      exactly 30 days old would age to 31 and leave "0-30".
    - Bucket upper bounds are inclusive (30 belongs to "0-30").
    - A bucket's total is the sum of every amount placed in it; the
      documents listed under it may omit amounts within the display
      tolerance.

Failure modes:
    - ValueError when an age does not fall into any configured bucket.

Usage:
    from lotledger_engines.aging import AgingBucketClassifier
    from datetime import date

    classifier = AgingBucketClassifier()
    age = classifier.calculate_age(
        document_date=date(2024, 1, 15),
        cutoff=date(2024, 2, 25),
    )  # Returns 41

    bucket = classifier.classify(age)  # Returns AgingBucket("31-60", 31, 60)
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Any

from lotledger_kernel.domain.documents import DocumentKind
from lotledger_kernel.domain.values import ONE_DAY, ZERO, start_of_day, to_datetime
from lotledger_kernel.logging_config import get_logger

logger = get_logger("engines.aging")


@dataclass(frozen=True)
class AgingBucket:
    """
    Definition of an aging bucket.

    Contract:
        Frozen dataclass representing a contiguous range of days.
    Guarantees:
        - min_days >= 0.
        - max_days >= min_days (when bounded).
    """

    name: str
    min_days: int
    max_days: int | None  # None = unbounded (e.g., 90+)

    def __post_init__(self) -> None:
        if self.min_days < 0:
            raise ValueError("min_days cannot be negative")
        if self.max_days is not None and self.max_days < self.min_days:
            raise ValueError("max_days cannot be less than min_days")

    def contains(self, age_days: int) -> bool:
        """Check if age falls within this bucket."""
        if age_days < self.min_days:
            return False
        if self.max_days is None:
            return True
        return age_days <= self.max_days

    @property
    def is_unbounded(self) -> bool:
        """True if bucket has no upper limit."""
        return self.max_days is None


def buckets_from_bounds(bounds: Sequence[int]) -> tuple[AgingBucket, ...]:
    """
    Build a bucket sequence from inclusive upper bounds.

    ``(30, 60, 90)`` yields 0-30, 31-60, 61-90 and an unbounded 90+.
    """
    buckets = []
    lower = 0
    for upper in bounds:
        buckets.append(AgingBucket(f"{lower}-{upper}", lower, upper))
        lower = upper + 1
    buckets.append(AgingBucket(f"{bounds[-1]}+", lower, None))
    return tuple(buckets)


STANDARD_BUCKETS: tuple[AgingBucket, ...] = buckets_from_bounds((30, 60, 90))


@dataclass(frozen=True)
class AgedDocument:
    """
    An unsettled amount placed in a bucket.

    ``date``/``age_days``/``kind`` are None for the initial balance
    pseudo-document.  ``lines`` is filled by the report layer for
    document kinds that have a line-item drill-down.
    """

    document_id: str
    doc_number: str
    date: datetime | None
    kind: DocumentKind | None
    amount: Decimal
    remaining: Decimal
    age_days: int | None
    bucket_name: str
    lines: tuple[Any, ...] = ()

    @property
    def is_initial_balance(self) -> bool:
        return self.kind is None


@dataclass(frozen=True)
class BucketTotal:
    """Sum of remaining amounts in one bucket, with the documents behind it."""

    bucket: AgingBucket
    total: Decimal
    documents: tuple[AgedDocument, ...] = ()

    @property
    def name(self) -> str:
        return self.bucket.name


class AgingBucketClassifier:
    """
    Age and bucket unsettled amounts.

    Contract:
        Pure functions over explicit dates.  Bucketing state lives in the
        mapping returned by ``empty_buckets`` and is owned by the caller.
    Guarantees:
        - ``classify`` maps every integer age to exactly one bucket.
        - ``totals`` returns one ``BucketTotal`` per bucket, in bucket order.
    """

    def __init__(self, buckets: Sequence[AgingBucket] = STANDARD_BUCKETS):
        if not buckets:
            raise ValueError("At least one aging bucket is required")
        self._buckets = tuple(buckets)

    @classmethod
    def from_bounds(cls, bounds: Sequence[int]) -> AgingBucketClassifier:
        return cls(buckets_from_bounds(bounds))

    @property
    def buckets(self) -> tuple[AgingBucket, ...]:
        return self._buckets

    @property
    def oldest(self) -> AgingBucket:
        """The last bucket; receives the initial balance."""
        return self._buckets[-1]

    def calculate_age(self, document_date: datetime, cutoff: datetime) -> int:
        """
        Whole days from the document to the cutoff's calendar day, rounded up.

        A document dated 41 days before the cutoff day ages to 41; one
        dated later that same cutoff day ages to 0.
        """
        delta = start_of_day(cutoff) - to_datetime(document_date)
        return -(-delta // ONE_DAY)

    def classify(self, age_days: int) -> AgingBucket:
        """
        Classify age into a bucket.

        Postconditions:
            Negative ages map to the first bucket.
        Raises:
            ValueError: If age doesn't fit any bucket.
        """
        if age_days < 0:
            return self._buckets[0]

        for bucket in self._buckets:
            if bucket.contains(age_days):
                return bucket

        logger.warning("age_classification_no_bucket", extra={
            "age_days": age_days,
            "bucket_count": len(self._buckets),
        })
        raise ValueError(f"Age {age_days} does not fit any bucket")

    def age_document(
        self,
        document_id: str,
        doc_number: str,
        document_date: datetime,
        kind: DocumentKind,
        amount: Decimal,
        remaining: Decimal,
        cutoff: datetime,
    ) -> AgedDocument:
        """Convenience method combining calculate_age and classify."""
        age_days = self.calculate_age(document_date, cutoff)
        bucket = self.classify(age_days)
        logger.debug("document_aged", extra={
            "document_id": document_id,
            "age_days": age_days,
            "bucket": bucket.name,
            "remaining": str(remaining),
        })
        return AgedDocument(
            document_id=document_id,
            doc_number=doc_number,
            date=document_date,
            kind=kind,
            amount=amount,
            remaining=remaining,
            age_days=age_days,
            bucket_name=bucket.name,
        )

    def empty_buckets(self) -> dict[str, list[AgedDocument]]:
        return {bucket.name: [] for bucket in self._buckets}

    def add(self, bucketed: dict[str, list[AgedDocument]], document: AgedDocument) -> None:
        bucketed[document.bucket_name].append(document)

    def totals(
        self,
        bucketed: dict[str, list[AgedDocument]],
        display_tolerance: Decimal = ZERO,
    ) -> tuple[BucketTotal, ...]:
        """
        One total per bucket, in bucket order.

        Every bucketed amount counts in its total; only documents whose
        remaining amount exceeds ``display_tolerance`` are listed.
        """
        return tuple(
            BucketTotal(
                bucket=bucket,
                total=sum((doc.remaining for doc in bucketed[bucket.name]), ZERO),
                documents=tuple(
                    doc for doc in bucketed[bucket.name] if abs(doc.remaining) > display_tolerance
                ),
            )
            for bucket in self._buckets
        )
