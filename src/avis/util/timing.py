from __future__ import annotations

import logging
import time


class StageTimer:
    """Logs the wall-clock time spent in each named stage of one job."""

    def __init__(self, label: str, logger: logging.Logger) -> None:
        self.label = label
        self.logger = logger
        self._start = time.perf_counter()
        self._last = self._start

    def lap(self, stage: str) -> float:
        now = time.perf_counter()
        elapsed_ms = (now - self._last) * 1000.0
        self._last = now
        self.logger.info("%s -> Spent %.0fms %s", self.label, elapsed_ms, stage)
        return elapsed_ms

    def total_ms(self) -> float:
        return (time.perf_counter() - self._start) * 1000.0
