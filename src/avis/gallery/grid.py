from __future__ import annotations

import logging
import math
from pathlib import Path
from typing import Sequence

from avis.config import AppConfig
from avis.gallery.entry import GalleryEntry, Loader, drain_retired

logger = logging.getLogger(__name__)

MIN_PER_ROW = 1
MAX_PER_ROW = 16


class GridGallery:
    """Row-virtualized thumbnail grid.

    ``update`` is called once per frame with the visible row range. Visible
    rows are handled first, then the rows below, then the rows above, so
    scrolling down preloads fastest. At most ``simultaneous_load`` thumbnails
    decode at once.
    """

    def __init__(
        self,
        loader: Loader,
        images_per_row: int = 5,
        preloaded_rows: int = 1,
        simultaneous_load: int = 8,
    ) -> None:
        self.loader = loader
        self.images_per_row = min(MAX_PER_ROW, max(MIN_PER_ROW, int(images_per_row)))
        self.preloaded_rows = max(0, int(preloaded_rows))
        self.simultaneous_load = max(1, int(simultaneous_load))
        self.entries: list[GalleryEntry] = []
        self.total_rows = 0
        self._retired: list[GalleryEntry] = []

    @classmethod
    def from_config(cls, cfg: AppConfig, loader: Loader) -> "GridGallery":
        grid = cfg.grid_view
        return cls(loader, grid.images_per_row, grid.preloaded_rows, grid.simultaneous_load)

    def set_images(self, paths: Sequence[Path]) -> None:
        self._retired.extend(self.entries)
        self.entries = GalleryEntry.from_paths(paths, self.loader)
        self.set_total_rows()

    def set_total_rows(self) -> None:
        self.total_rows = math.ceil(len(self.entries) / self.images_per_row)

    def update(self, row_start: int, row_end: int, image_size: float) -> int:
        """Load and unload around the visible rows ``[row_start, row_end)``; returns loads started."""
        for entry in self.entries:
            entry.poll()
        self._retired = drain_retired(self._retired)

        loading = sum(1 for entry in self.entries if entry.is_loading)
        started = 0
        # Double the cell size so thumbnails are slightly downscaled on screen.
        target_size = int(image_size * 2)

        preload_from = 0 if row_start <= self.preloaded_rows else row_start - self.preloaded_rows
        preload_to = min(row_end + self.preloaded_rows, self.total_rows)

        passes = (
            (range(row_start, row_end), row_start, row_end),
            (range(row_end, self.total_rows), preload_from, preload_to),
            (range(0, row_start), preload_from, preload_to),
        )
        for rows, lo, hi in passes:
            for row in rows:
                for i in range(row * self.images_per_row, (row + 1) * self.images_per_row):
                    if i >= len(self.entries):
                        break
                    if self._load_unload(i, lo, hi, loading, target_size):
                        loading += 1
                        started += 1
        return started

    def _load_unload(self, i: int, preload_from: int, preload_to: int, loading: int, target_size: int) -> bool:
        entry = self.entries[i]
        if preload_from * self.images_per_row <= i <= preload_to * self.images_per_row:
            if loading < self.simultaneous_load:
                return entry.load(target_size)
            return False
        entry.unload_delayed()
        entry.unload()
        return False

    def more_per_row(self) -> bool:
        if self.images_per_row >= MAX_PER_ROW:
            return False
        self.images_per_row += 1
        self.set_total_rows()
        return True

    def less_per_row(self) -> bool:
        if self.images_per_row <= MIN_PER_ROW:
            return False
        self.images_per_row -= 1
        self.set_total_rows()
        return True

    def row_for_index(self, index: int) -> int:
        return index // self.images_per_row

    def pop(self, path: Path) -> bool:
        path = Path(path)
        for pos, entry in enumerate(self.entries):
            if entry.path == path:
                self._retired.append(self.entries.pop(pos))
                self.set_total_rows()
                return True
        return False

    def reload_at(self, path: Path) -> None:
        # The next update() loads it again if it is still in range.
        path = Path(path)
        for entry in self.entries:
            if entry.path == path:
                entry.unload_delayed()
                entry.unload()
                return

    def loaded_indices(self) -> list[int]:
        return [i for i, entry in enumerate(self.entries) if entry.is_resident]
