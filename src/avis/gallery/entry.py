from __future__ import annotations

from dataclasses import dataclass, field
import logging
from pathlib import Path
from typing import TYPE_CHECKING, Callable, Iterable

from avis.metadata import format_string_with_metadata
from avis.models import LoadingState

if TYPE_CHECKING:
    from avis.jobs import BackgroundJob
    from avis.pipeline import DecodedImage

logger = logging.getLogger(__name__)

Loader = Callable[[Path, "int | None"], "BackgroundJob[DecodedImage | None]"]


@dataclass(slots=True, eq=False)
class GalleryEntry:
    """One path in a displayed collection and the image loaded for it.

    An entry owns at most one background job. Unloading while that job runs
    only marks the entry; the result is discarded once the job finishes.
    """

    path: Path
    loader: Loader = field(repr=False)
    name: str = ""
    state: LoadingState = LoadingState.IDLE
    image: DecodedImage | None = field(default=None, repr=False)
    job: BackgroundJob[DecodedImage | None] | None = field(default=None, repr=False)
    target_size: int | None = None
    reload_pending: bool = False
    _display_name: str | None = field(default=None, repr=False)

    def __post_init__(self) -> None:
        self.path = Path(self.path)
        if not self.name:
            self.name = self.path.name

    @classmethod
    def from_paths(cls, paths: Iterable[Path], loader: Loader) -> list["GalleryEntry"]:
        return [cls(path=Path(p), loader=loader) for p in paths]

    @property
    def is_loading(self) -> bool:
        return self.job is not None and not self.job.is_finished()

    @property
    def is_resident(self) -> bool:
        return self.state in (LoadingState.LOADING, LoadingState.LOADED)

    def load(self, target_size: int | None = None) -> bool:
        """Start a load; returns False when an image or a job is already present."""
        if self.state is LoadingState.SHOULD_UNLOAD and self.job is not None:
            # A pending reload keeps the mark so poll() drops the stale result and loads again.
            if not self.reload_pending:
                self.state = LoadingState.LOADING
            return False
        if self.job is not None or self.image is not None:
            return False

        logger.info("%s -> Loading image", self.name)
        self.target_size = target_size
        self.job = self.loader(self.path, target_size)
        self.state = LoadingState.LOADING
        return True

    def poll(self) -> bool:
        """Join a finished job; returns True when the entry changed state."""
        if self.job is None or not self.job.is_finished():
            return False

        job, self.job = self.job, None
        result = job.join()
        if self.state is LoadingState.SHOULD_UNLOAD:
            if result is not None:
                result.release()
            self.image = None
            self._display_name = None
            self.state = LoadingState.IDLE
            if self.reload_pending:
                self.reload_pending = False
                self.load(self.target_size)
            return True

        self.reload_pending = False
        self.image = result
        self.state = LoadingState.LOADED if result is not None else LoadingState.IDLE
        return True

    def unload_delayed(self) -> None:
        self.reload_pending = False
        if self.state is LoadingState.SHOULD_UNLOAD and self.job is not None and self.job.is_finished():
            self.poll()

    def unload(self) -> None:
        self.reload_pending = False
        if self.job is not None:
            if self.state is not LoadingState.SHOULD_UNLOAD:
                logger.info("Marking image for delayed unload -> %s", self.name)
            self.state = LoadingState.SHOULD_UNLOAD
            self.unload_delayed()
            return

        if self.image is not None:
            logger.info("%s -> Unloading image", self.name)
            self.image.release()
        self.image = None
        self._display_name = None
        self.state = LoadingState.IDLE

    def reload(self) -> None:
        target = self.target_size
        self.unload()
        if self.job is None:
            self.load(target)
        else:
            self.reload_pending = True

    def display_name(self, fmt: str) -> str:
        if self._display_name is not None:
            return self._display_name
        if not fmt:
            self._display_name = self.name
            return self.name
        if self.image is None:
            return ""
        self._display_name = format_string_with_metadata(fmt, self.image.metadata) or self.name
        return self._display_name


def drain_retired(retired: list[GalleryEntry]) -> list[GalleryEntry]:
    """Poll entries dropped from a collection; keep the ones whose job is still running."""
    pending = []
    for entry in retired:
        entry.unload()
        if entry.job is not None:
            pending.append(entry)
    return pending
