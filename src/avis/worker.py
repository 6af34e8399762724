from __future__ import annotations

from dataclasses import dataclass
import logging
from pathlib import Path
import queue
import threading
from typing import Union

from avis.metadata import MetadataCache

logger = logging.getLogger(__name__)


@dataclass(slots=True, frozen=True)
class CacheMetadata:
    paths: tuple[Path, ...]


@dataclass(slots=True, frozen=True)
class ClearMovedFiles:
    paths: tuple[Path, ...]


Job = Union[CacheMetadata, ClearMovedFiles]


class Worker:
    """Single background thread for metadata jobs that would stall the frame loop.

    Status lines are collected for the presentation layer, which drains them
    with :meth:`take_messages`.
    """

    def __init__(self, cache: MetadataCache) -> None:
        self.cache = cache
        self._jobs: queue.Queue[Job | None] = queue.Queue()
        self._messages: list[str] = []
        self._lock = threading.Lock()
        self._thread = threading.Thread(target=self._loop, name="avis-worker", daemon=True)
        self._thread.start()

    def send(self, job: Job) -> None:
        self._jobs.put(job)

    def wait(self) -> None:
        """Block until every queued job is handled."""
        self._jobs.join()

    def stop(self, timeout: float | None = None) -> None:
        self._jobs.put(None)
        self._thread.join(timeout)

    def take_messages(self) -> list[str]:
        with self._lock:
            messages, self._messages = self._messages, []
        return messages

    def _post(self, message: str) -> None:
        logger.info(message)
        with self._lock:
            self._messages.append(message)

    def _loop(self) -> None:
        while True:
            job = self._jobs.get()
            try:
                if job is None:
                    return
                self._handle(job)
            except Exception as exc:
                logger.exception("Worker job %s failed", type(job).__name__)
                self._post(f"Job failed: {exc}")
            finally:
                self._jobs.task_done()

    def _handle(self, job: Job) -> None:
        if isinstance(job, CacheMetadata):
            self._post(f"Caching metadata for {len(job.paths)} images")
            self.cache.cache_metadata_for(job.paths)
            self._post(f"Finished caching metadata for {len(job.paths)} images")
        elif isinstance(job, ClearMovedFiles):
            self._post("Clearing moved files from the database")
            cleared = self.cache.clear_moved(job.paths)
            self._post(f"Cleared {cleared} moved files from the database")
        else:
            raise TypeError(f"unknown job {job!r}")
