"""
lotledger_kernel.logging_config -- JSON log lines for the lotledger packages.

Responsibility:
    Every logger under the ``lotledger`` namespace writes one JSON object
    per record.  The object carries the record envelope, the report the
    line belongs to (bound by the services and the report runner), and
    whatever the caller passed in ``extra``.

Architecture position:
    Kernel -- imported by every other layer; imports nothing from them.

Invariants enforced:
    - Envelope keys (``ts``, ``level``, ``logger``, ``message``) are never
      overwritten by context or extras.
    - Decimals are written as strings so amounts survive the round trip
      exactly; dates as ISO 8601; enums as their value.
    - ``configure_logging`` installs at most one handler until
      ``reset_logging`` removes it.

Failure modes:
    - A ``LotledgerError`` logged with ``logger.exception`` adds its
      ``code`` and public attributes as ``exc_*`` keys.
"""

from __future__ import annotations

import json
import logging
import sys
from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import UTC, date, datetime
from decimal import Decimal
from enum import Enum
from typing import IO, Any

from lotledger_kernel.exceptions import LotledgerError

ROOT_LOGGER = "lotledger"

_REPORT_FIELDS: dict[str, ContextVar[str | None]] = {
    "report_id": ContextVar("lotledger_report_id", default=None),
    "report_type": ContextVar("lotledger_report_type", default=None),
}


class LogContext:
    """Report identity attached to every log line of the current task or thread."""

    @staticmethod
    @contextmanager
    def bind(report_id: str | None = None, report_type: str | None = None) -> Iterator[None]:
        """Set the given fields for the duration of the block; None leaves a field as is."""
        values = {"report_id": report_id, "report_type": report_type}
        tokens = [
            (var, var.set(values[name]))
            for name, var in _REPORT_FIELDS.items()
            if values[name] is not None
        ]
        try:
            yield
        finally:
            for var, token in reversed(tokens):
                var.reset(token)

    @staticmethod
    def fields() -> dict[str, str]:
        return {name: value for name, var in _REPORT_FIELDS.items() if (value := var.get()) is not None}

    @staticmethod
    def clear() -> None:
        for var in _REPORT_FIELDS.values():
            var.set(None)


# Attributes every LogRecord has; anything else on a record came from ``extra``.
_RECORD_ATTRS = frozenset(vars(logging.makeLogRecord({}))) | {"message", "asctime", "taskName"}


def _to_json(value: Any) -> Any:
    match value:
        case Decimal():
            return str(value)
        case datetime() | date():
            return value.isoformat()
        case Enum():
            return value.value
        case _:
            return repr(value)


def _error_fields(error: BaseException) -> dict[str, Any]:
    fields: dict[str, Any] = {
        "exc_type": type(error).__name__,
        "exc_message": str(error),
    }
    if isinstance(error, LotledgerError):
        fields["exc_code"] = error.code
        fields.update(
            (f"exc_{name}", value)
            for name, value in vars(error).items()
            if not name.startswith("_")
        )
    return fields


class StructuredFormatter(logging.Formatter):
    """One JSON object per record: envelope, report context, extras, error."""

    def format(self, record: logging.LogRecord) -> str:
        line: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for key, value in LogContext.fields().items():
            line.setdefault(key, value)
        for key, value in vars(record).items():
            if key not in _RECORD_ATTRS:
                line.setdefault(key, value)

        if record.exc_info and record.exc_info[1] is not None:
            line.update(_error_fields(record.exc_info[1]))
            line["traceback"] = self.formatException(record.exc_info)
        return json.dumps(line, default=_to_json)


def get_logger(name: str) -> logging.Logger:
    """Logger ``lotledger.<name>``."""
    return logging.getLogger(f"{ROOT_LOGGER}.{name}")


_installed: logging.Handler | None = None


def configure_logging(
    *,
    level: int = logging.INFO,
    stream: IO[str] | None = None,
    handler: logging.Handler | None = None,
) -> logging.Handler:
    """
    Route the ``lotledger`` namespace through a JSON handler.

    Calling it again before ``reset_logging`` returns the handler already
    installed and changes nothing.
    """
    global _installed
    if _installed is not None:
        return _installed

    installed = handler if handler is not None else logging.StreamHandler(stream or sys.stderr)
    installed.setFormatter(StructuredFormatter())
    root = logging.getLogger(ROOT_LOGGER)
    root.setLevel(level)
    root.propagate = False
    root.addHandler(installed)
    _installed = installed
    return installed


def reset_logging() -> None:
    """Remove the installed handler and hand the namespace back to the root logger."""
    global _installed
    root = logging.getLogger(ROOT_LOGGER)
    if _installed is not None:
        root.removeHandler(_installed)
        _installed = None
    root.setLevel(logging.NOTSET)
    root.propagate = True


__all__ = [
    "LogContext",
    "ROOT_LOGGER",
    "StructuredFormatter",
    "configure_logging",
    "get_logger",
    "reset_logging",
]
