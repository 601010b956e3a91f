"""
lotledger_engines.tracer -- LOTLEDGER_ENGINE_TRACE records for engine entry points.

Responsibility:
    ``@traced_engine`` wraps the replay, turnover and allocation entry
    points.  Each call logs which engine ran, at which version, on which
    inputs (a short fingerprint of chosen keyword arguments) and how long
    it took.

Invariants enforced:
    - Equal inputs give equal fingerprints: mappings are read in key
      order, ``Decimal("2.0")`` and ``Decimal("2")`` agree, dates use ISO
      form.  A field that was not passed reads the same as ``None``.
    - The wrapped call's arguments and result pass through untouched.

Failure modes:
    - None of its own; an exception from the engine propagates and no
      trace is written for that call.
"""

from __future__ import annotations

import functools
import hashlib
import time
from collections.abc import Callable, Mapping
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any

from lotledger_kernel.logging_config import get_logger

logger = get_logger("engines.tracer")

TRACE_MESSAGE = "LOTLEDGER_ENGINE_TRACE"


def _token(value: Any) -> str:
    match value:
        case None:
            return "-"
        case Enum():
            return _token(value.value)
        case Decimal() if value.is_finite():
            return format(value.normalize(), "f")
        case datetime() | date():
            return value.isoformat()
        case Mapping():
            return "{" + ",".join(f"{k}:{_token(value[k])}" for k in sorted(value, key=str)) + "}"
        case list() | tuple():
            return "[" + ",".join(_token(v) for v in value) + "]"
        case _:
            return str(value)


def compute_input_fingerprint(fields: tuple[str, ...], kwargs: Mapping[str, Any]) -> str:
    """First 16 hex digits of the SHA-256 of the selected keyword arguments."""
    text = ";".join(f"{name}={_token(kwargs.get(name))}" for name in fields)
    return hashlib.sha256(text.encode("utf-8")).hexdigest()[:16]


def traced_engine(name: str, version: str, fingerprint_fields: tuple[str, ...] = ()) -> Callable:
    def decorate(func: Callable) -> Callable:
        @functools.wraps(func)
        def run(*args: Any, **kwargs: Any) -> Any:
            started = time.perf_counter()
            result = func(*args, **kwargs)
            logger.info(TRACE_MESSAGE, extra={
                "trace_type": TRACE_MESSAGE,
                "engine_name": name,
                "engine_version": version,
                "input_fingerprint": compute_input_fingerprint(fingerprint_fields, kwargs),
                "duration_ms": round((time.perf_counter() - started) * 1000, 3),
                "function": func.__qualname__,
            })
            return result

        return run

    return decorate
