"""
Issues -- non-fatal anomalies attached to report results.

A shortfall or a dangling reference is isolated to the row it affects.
The engines record these frozen values on their results instead of
raising, so one anomaly never aborts the rest of the report.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal

from lotledger_kernel.exceptions import DataIntegrityError, UnknownReferenceError


@dataclass(frozen=True, slots=True)
class StockShortfall:
    """Quantity a consuming document could not draw from any lot."""

    document_id: str
    doc_number: str
    date: datetime
    product_id: str
    warehouse_id: str
    requested: Decimal
    consumed: Decimal

    @property
    def shortfall(self) -> Decimal:
        return self.requested - self.consumed

    def to_error(self) -> DataIntegrityError:
        return DataIntegrityError(
            document_id=self.document_id,
            doc_number=self.doc_number,
            product_id=self.product_id,
            warehouse_id=self.warehouse_id,
            requested=self.requested,
            consumed=self.consumed,
        )


@dataclass(frozen=True, slots=True)
class ReferenceIssue:
    """A document pointing at an id the snapshot does not contain."""

    entity_type: str
    entity_id: str
    document_id: str | None = None

    def to_error(self) -> UnknownReferenceError:
        return UnknownReferenceError(
            entity_type=self.entity_type,
            entity_id=self.entity_id,
            document_id=self.document_id,
        )
