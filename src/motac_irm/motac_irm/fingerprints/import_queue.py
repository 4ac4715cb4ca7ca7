from __future__ import annotations

import contextvars
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Any, Callable

from ..common.log import get_logger

logger = get_logger(__name__)


class ImportQueue:
    """Background worker pool for spreadsheet imports.

    Jobs run with a copy of the submitting request's context so log lines keep
    its correlation id. Callers poll the import record; the returned future is
    mainly for tests.
    """

    def __init__(self, *, max_workers: int = 2):
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="fingerprint-import")

    def submit(self, fn: Callable[..., Any], *args: Any, **kwargs: Any) -> Future:
        ctx = contextvars.copy_context()
        future = self._executor.submit(ctx.run, fn, *args, **kwargs)
        future.add_done_callback(self._log_failure)
        return future

    @staticmethod
    def _log_failure(future: Future) -> None:
        if future.cancelled():
            return
        exc = future.exception()
        if exc is not None:
            logger.error(
                f"Background import failed: {type(exc).__name__}",
                exc_info=(type(exc), exc, exc.__traceback__),
                extra={"operation": "fingerprint.import"},
            )

    def shutdown(self, *, wait: bool = True) -> None:
        self._executor.shutdown(wait=wait)
