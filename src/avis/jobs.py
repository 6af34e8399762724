from __future__ import annotations

import logging
import threading
from typing import Callable, Generic, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class BackgroundJob(Generic[T]):
    """One OS thread running one callable, polled from the frame loop.

    There is no cancellation: the thread always runs to completion and the
    owner decides whether to keep the result.
    """

    def __init__(self, fn: Callable[[], T], name: str | None = None) -> None:
        self._fn = fn
        self._result: T | None = None
        self._error: BaseException | None = None
        self._thread = threading.Thread(target=self._run, name=name, daemon=True)

    @classmethod
    def spawn(cls, fn: Callable[[], T], name: str | None = None) -> "BackgroundJob[T]":
        job = cls(fn, name=name)
        job._thread.start()
        return job

    def _run(self) -> None:
        try:
            self._result = self._fn()
        except BaseException as exc:
            self._error = exc

    def is_finished(self) -> bool:
        return not self._thread.is_alive()

    def join(self, timeout: float | None = None) -> T | None:
        """Wait for the thread; a job that raised yields ``None`` after logging."""
        self._thread.join(timeout)
        if self._thread.is_alive():
            raise TimeoutError(f"job {self._thread.name} still running")
        if self._error is not None:
            logger.error("Failure joining background job %s -> %s", self._thread.name, self._error)
            return None
        return self._result
