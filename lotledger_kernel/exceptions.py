"""
Typed Exception Hierarchy for lotledger.

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

All exceptions inherit from LotledgerError:

    LotledgerError (base)
    |
    +-- DataIntegrityError
    |
    +-- ValidationError
    |   +-- InvalidDateRangeError
    |   +-- CutoffBeforeHistoryError
    |
    +-- UnknownReferenceError   (also a LookupError)
    |
    +-- ReportCancelledError
    |
    +-- ConfigurationError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category        | Code                        | When Raised
----------------|-----------------------------|-----------------------------------------
Integrity       | DATA_INTEGRITY              | Consumption exceeds the available lots
----------------|-----------------------------|-----------------------------------------
Validation      | VALIDATION_FAILED           | Caller supplied inconsistent parameters
                | INVALID_DATE_RANGE          | date_to earlier than date_from
                | CUTOFF_BEFORE_HISTORY       | Cutoff precedes every relevant document
----------------|-----------------------------|-----------------------------------------
Lookup          | UNKNOWN_REFERENCE           | Document references an id missing from
                |                             | the snapshot
----------------|-----------------------------|-----------------------------------------
Runner          | REPORT_CANCELLED            | A newer request superseded the report
----------------|-----------------------------|-----------------------------------------
Config          | CONFIGURATION_INVALID       | Settings file missing keys or malformed

===============================================================================
HANDLING PATTERNS
===============================================================================

DataIntegrityError and UnknownReferenceError are normally NOT raised.
The engines record them as frozen ``StockShortfall`` / ``ReferenceIssue``
values on the report (``report.shortfalls`` / ``report.issues``) so that
one bad row never aborts the whole report.  ``to_error()`` turns a record
back into the typed exception:

    report = compute_turnover_report(snapshot, date_from, date_to)
    for shortfall in report.shortfalls:
        err = shortfall.to_error()
        notify(err.code, err.product_id, err.shortfall)

ValidationError is always raised before any computation starts:

    try:
        compute_turnover_report(snapshot, date_from, date_to)
    except InvalidDateRangeError as e:
        api_response(code=e.code, date_from=e.date_from, date_to=e.date_to)
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal


class LotledgerError(Exception):
    """
    Base exception for all lotledger errors.

    All subclasses carry a ``code`` class attribute for machine-readable
    error identification.
    """

    code: str = "LOTLEDGER_ERROR"


# Integrity


class DataIntegrityError(LotledgerError):
    """A write-off, return or transfer asked for more than the lots hold.

    The available quantity is consumed and costed; the unmet remainder
    carries no cost and is described here.
    """

    code: str = "DATA_INTEGRITY"

    def __init__(
        self,
        document_id: str,
        doc_number: str,
        product_id: str,
        warehouse_id: str,
        requested: Decimal,
        consumed: Decimal,
    ):
        self.document_id = document_id
        self.doc_number = doc_number
        self.product_id = product_id
        self.warehouse_id = warehouse_id
        self.requested = requested
        self.consumed = consumed
        self.shortfall = requested - consumed
        super().__init__(
            f"Insufficient stock for product {product_id} in warehouse "
            f"{warehouse_id} on document {doc_number}: requested {requested}, "
            f"available {consumed}, unmet {self.shortfall}"
        )


# Validation


class ValidationError(LotledgerError):
    """Base exception for caller errors in report parameters."""

    code: str = "VALIDATION_FAILED"


class InvalidDateRangeError(ValidationError):
    """Report range ends before it starts."""

    code: str = "INVALID_DATE_RANGE"

    def __init__(self, date_from: datetime, date_to: datetime):
        self.date_from = date_from
        self.date_to = date_to
        super().__init__(
            f"Date range end {date_to.isoformat()} is earlier than start "
            f"{date_from.isoformat()}"
        )


class CutoffBeforeHistoryError(ValidationError):
    """Cutoff is earlier than the earliest document the report refers to."""

    code: str = "CUTOFF_BEFORE_HISTORY"

    def __init__(self, cutoff: datetime, earliest: datetime):
        self.cutoff = cutoff
        self.earliest = earliest
        super().__init__(
            f"Cutoff {cutoff.isoformat()} is earlier than the earliest "
            f"document dated {earliest.isoformat()}"
        )


# Lookup


class UnknownReferenceError(LotledgerError, LookupError):
    """A document references an entity id that is absent from the snapshot."""

    code: str = "UNKNOWN_REFERENCE"

    def __init__(self, entity_type: str, entity_id: str, document_id: str | None = None):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.document_id = document_id
        where = f" (document {document_id})" if document_id else ""
        super().__init__(f"Unknown {entity_type}: {entity_id}{where}")


# Runner


class ReportCancelledError(LotledgerError):
    """A background report was superseded by a newer request."""

    code: str = "REPORT_CANCELLED"

    def __init__(self, key: str):
        self.key = key
        super().__init__(f"Report {key} was cancelled")


# Configuration


class ConfigurationError(LotledgerError):
    """Report settings could not be loaded or failed validation."""

    code: str = "CONFIGURATION_INVALID"

    def __init__(self, message: str, source: str | None = None):
        self.source = source
        super().__init__(message)
