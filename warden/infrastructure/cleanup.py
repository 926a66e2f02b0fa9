"""
===============================================================================
CRC CARD — infrastructure/cleanup.py
===============================================================================

Component:
  CleanupQueue (bounded fire-and-forget worker pool)

Responsibilities:
  - Run lazy-expiry deletes (sessions, tokens, cache rows) off the read path.
  - Bound the backlog: at most `max_pending` jobs queued or running; overflow
    is dropped and logged, so the queue cannot grow without limit.
  - Make cleanup observable: counters + drain() for tests and shutdown.

Collaborators:
  - concurrent.futures.ThreadPoolExecutor
  - crosscutting.logger / context (operation_id per job)
  - infrastructure/drivers/*: submit deletes after an expired read

Rules:
  - submit() never blocks and never raises because of a job.
  - A failing job is logged and counted; the reader that triggered it never
    sees the error.
===============================================================================
"""

from __future__ import annotations

import threading
import time
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Callable
from uuid import uuid4

from ..context import clear_context, set_operation_context
from ..crosscutting.logger import logger


class CleanupQueue:
    """Bounded background executor for best-effort cleanup jobs."""

    def __init__(
        self,
        *,
        workers: int = 2,
        max_pending: int = 1000,
        name: str = "warden-cleanup",
    ) -> None:
        if workers <= 0:
            raise ValueError("workers must be > 0")
        if max_pending <= 0:
            raise ValueError("max_pending must be > 0")

        self._name = name
        self._max_pending = max_pending
        self._executor = ThreadPoolExecutor(
            max_workers=workers, thread_name_prefix=name
        )
        self._slots = threading.BoundedSemaphore(max_pending)
        self._cond = threading.Condition()
        self._closed = False

        self._in_flight = 0
        self._submitted = 0
        self._completed = 0
        self._failed = 0
        self._dropped = 0

    @property
    def closed(self) -> bool:
        return self._closed

    def submit(self, description: str, fn: Callable[..., Any], *args: Any) -> bool:
        """
        Schedule fn(*args) without waiting for it.

        Returns False when the job was dropped (queue closed or full).
        """
        if self._closed:
            self._drop(description, reason="closed")
            return False

        if not self._slots.acquire(blocking=False):
            self._drop(description, reason="full")
            return False

        with self._cond:
            self._submitted += 1
            self._in_flight += 1

        try:
            self._executor.submit(self._run, description, fn, args)
        except RuntimeError:
            # Executor shut down between the closed check and submit.
            self._finish(success=None)
            self._drop(description, reason="closed")
            return False
        return True

    def _drop(self, description: str, *, reason: str) -> None:
        with self._cond:
            self._dropped += 1
        logger.warning(
            "Cleanup job dropped",
            extra={"job": description, "reason": reason, "queue": self._name},
        )

    def _run(self, description: str, fn: Callable[..., Any], args: tuple) -> None:
        set_operation_context(operation_id=str(uuid4()), operation=description)
        success = False
        try:
            fn(*args)
            success = True
        except Exception:  # noqa: BLE001
            logger.exception(
                "Cleanup job failed", extra={"job": description, "queue": self._name}
            )
        finally:
            self._finish(success=success)
            clear_context()

    def _finish(self, *, success: bool | None) -> None:
        self._slots.release()
        with self._cond:
            self._in_flight -= 1
            if success is True:
                self._completed += 1
            elif success is False:
                self._failed += 1
            else:
                # never ran
                self._submitted -= 1
            self._cond.notify_all()

    def drain(self, timeout: float | None = None) -> bool:
        """Wait until no job is queued or running. False on timeout."""
        deadline = None if timeout is None else time.monotonic() + timeout
        with self._cond:
            while self._in_flight > 0:
                remaining = None if deadline is None else deadline - time.monotonic()
                if remaining is not None and remaining <= 0:
                    return False
                self._cond.wait(remaining)
        return True

    def stats(self) -> dict:
        with self._cond:
            return {
                "queue": self._name,
                "max_pending": self._max_pending,
                "in_flight": self._in_flight,
                "submitted": self._submitted,
                "completed": self._completed,
                "failed": self._failed,
                "dropped": self._dropped,
                "closed": self._closed,
            }

    def shutdown(self, *, wait: bool = True) -> None:
        """Stop accepting jobs; optionally wait for the running ones."""
        self._closed = True
        self._executor.shutdown(wait=wait)
        logger.info("Cleanup queue stopped", extra=self.stats())
