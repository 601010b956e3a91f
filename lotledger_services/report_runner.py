"""
ReportRunner -- Cancellable background offload for long reports.

Contract:
    ``submit(key, fn, ...)`` runs ``fn`` on a worker thread and returns a
    Future.  A newer submission under the same key supersedes the stale
    one: its token is cancelled and, if it has not started, its future is
    cancelled outright.  There is no ordering between different keys.

Architecture: lotledger_services.  Computations stay pure; the runner
    only schedules them and carries the cancellation signal.

Invariants enforced:
    - Cancellation is cooperative: the running computation polls its
      ``CancellationToken`` between replayed documents and counterparties.
    - Each key has at most one current submission.
    - A failing report is logged as ``report_failed`` with its error code
      before the exception reaches the Future.
"""

from __future__ import annotations

import threading
from collections.abc import Callable
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Any, TypeVar

from lotledger_config import ReportSettings
from lotledger_kernel.domain.snapshot import LedgerSnapshot
from lotledger_kernel.exceptions import LotledgerError, ReportCancelledError
from lotledger_kernel.logging_config import LogContext, get_logger
from lotledger_services.report_service import ReportParams, compute_report

logger = get_logger("services.report_runner")

T = TypeVar("T")


class CancellationToken:
    """Stop signal shared between the runner and one computation."""

    def __init__(self, key: str):
        self.key = key
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise ReportCancelledError(self.key)


class ReportRunner:
    """Thread-pool runner where a new request supersedes a stale one.

    Contract:
        - ``submit`` / ``submit_report`` return a Future.
        - A superseded future ends with ``ReportCancelledError`` (if it
          was running) or is cancelled (if it was still queued).
        - ``shutdown`` cancels everything in flight.

    Non-goals:
        - Does NOT cache results; recomputation is the caller's decision.
    """

    def __init__(self, max_workers: int = 2, settings: ReportSettings | None = None):
        self._settings = settings
        self._executor = ThreadPoolExecutor(
            max_workers=max_workers, thread_name_prefix="lotledger-report"
        )
        self._lock = threading.RLock()
        self._inflight: dict[str, tuple[CancellationToken, Future]] = {}

    @classmethod
    def from_settings(cls, settings: ReportSettings) -> ReportRunner:
        return cls(max_workers=settings.max_workers, settings=settings)

    # -------------------------------------------------------------------------
    # Public API
    # -------------------------------------------------------------------------

    def submit(self, key: str, fn: Callable[..., T], *args: Any, **kwargs: Any) -> Future[T]:
        """Run ``fn(*args, token=token, **kwargs)`` in the background."""
        token = CancellationToken(key)
        with self._lock:
            stale = self._inflight.get(key)
            if stale is not None:
                self._supersede(key, *stale)
            future = self._executor.submit(self._run, token, fn, args, kwargs)
            self._inflight[key] = (token, future)
        future.add_done_callback(lambda done: self._forget(key, done))
        logger.info("report_submitted", extra={"key": key, "superseded": stale is not None})
        return future

    def submit_report(self, key: str, snapshot: LedgerSnapshot, params: ReportParams) -> Future:
        """Background ``compute_report`` for ``params``."""
        return self.submit(key, compute_report, snapshot, params, settings=self._settings)

    def cancel(self, key: str) -> bool:
        """Cancel the current submission for ``key``.  Returns False if none."""
        with self._lock:
            current = self._inflight.pop(key, None)
            if current is None:
                return False
            self._supersede(key, *current)
        return True

    def shutdown(self, wait: bool = True) -> None:
        with self._lock:
            for key, (token, future) in list(self._inflight.items()):
                self._supersede(key, token, future)
            self._inflight.clear()
        self._executor.shutdown(wait=wait)
        logger.info("report_runner_stopped")

    def __enter__(self) -> ReportRunner:
        return self

    def __exit__(self, *exc: Any) -> None:
        self.shutdown(wait=True)

    # -------------------------------------------------------------------------
    # Internal
    # -------------------------------------------------------------------------

    @staticmethod
    def _run(
        token: CancellationToken,
        fn: Callable[..., T],
        args: tuple,
        kwargs: dict[str, Any],
    ) -> T:
        token.raise_if_cancelled()
        with LogContext.bind(report_id=token.key):
            try:
                return fn(*args, token=token, **kwargs)
            except ReportCancelledError:
                logger.info("report_cancelled", extra={"key": token.key})
                raise
            except LotledgerError:
                logger.exception("report_failed", extra={"key": token.key})
                raise

    @staticmethod
    def _supersede(key: str, token: CancellationToken, future: Future) -> None:
        token.cancel()
        future.cancel()
        logger.debug("report_superseded", extra={"key": key})

    def _forget(self, key: str, future: Future) -> None:
        with self._lock:
            current = self._inflight.get(key)
            if current is not None and current[1] is future:
                del self._inflight[key]
