from __future__ import annotations

import logging
from pathlib import Path
from typing import Sequence

from avis.config import DEFAULT_NAME_FORMAT, AppConfig
from avis.gallery.entry import GalleryEntry, Loader, drain_retired

logger = logging.getLogger(__name__)


def is_valid_for_preload(preload_nr: int, image_count: int) -> bool:
    return preload_nr * 2 <= image_count


def preload_window(index: int, count: int, depth: int) -> set[int]:
    """Indices kept resident around ``index``, wrapping at both ends."""
    if count == 0:
        return set()
    if not is_valid_for_preload(depth, count):
        return set(range(count))
    window = {index % count}
    for i in range(1, depth + 1):
        window.add((index - i) % count)
        window.add((index + i) % count)
    return window


class SingleGallery:
    """One image on screen, ``nr_loaded_images`` neighbours preloaded on each side."""

    def __init__(
        self,
        loader: Loader,
        nr_loaded_images: int = 4,
        should_wait: bool = True,
        name_format: str = DEFAULT_NAME_FORMAT,
    ) -> None:
        self.loader = loader
        self.nr_loaded_images = max(0, int(nr_loaded_images))
        self.should_wait = should_wait
        self.name_format = name_format
        self.entries: list[GalleryEntry] = []
        self.selected_index = 0
        self.preload_active = True
        self._retired: list[GalleryEntry] = []

    @classmethod
    def from_config(cls, cfg: AppConfig, loader: Loader) -> "SingleGallery":
        view = cfg.image_view
        return cls(loader, view.nr_loaded_images, view.should_wait, view.name_format)

    def set_images(self, paths: Sequence[Path], selected: Path | None = None) -> None:
        self._retired.extend(self.entries)
        self.entries = GalleryEntry.from_paths(paths, self.loader)
        self.selected_index = 0
        if selected is not None:
            selected = Path(selected)
            for i, entry in enumerate(self.entries):
                if entry.path == selected:
                    self.selected_index = i
                    break
        self.preload_active = is_valid_for_preload(self.nr_loaded_images, len(self.entries))
        logger.info("Starting gallery with %d images on image %d", len(self.entries), self.selected_index + 1)
        self.load()

    def window(self) -> set[int]:
        if not self.preload_active:
            return set(range(len(self.entries)))
        return preload_window(self.selected_index, len(self.entries), self.nr_loaded_images)

    def load(self) -> None:
        """Load everything inside the window and unload everything outside it."""
        if not self.entries:
            return
        window = self.window()
        for i, entry in enumerate(self.entries):
            if i in window:
                entry.load()
            else:
                entry.unload()

    def next_image(self) -> bool:
        return self._advance(1)

    def previous_image(self) -> bool:
        return self._advance(-1)

    def _advance(self, step: int) -> bool:
        if not self.entries:
            return False
        if self.should_wait and self.active_is_loading:
            return False

        old = self.window()
        self.selected_index = (self.selected_index + step) % len(self.entries)
        new = self.window()
        for i in sorted(old - new):
            self.entries[i].unload()
        for i in sorted(new - old):
            self.entries[i].load()
        return True

    def select_by_name(self, name: str) -> None:
        self.selected_index = next((i for i, e in enumerate(self.entries) if e.name == name), 0)
        self.load()

    def jump_to_index(self, index: int) -> bool:
        if not 0 <= index < len(self.entries):
            return False
        self.selected_index = index
        self.load()
        return True

    def reload_at(self, path: Path) -> None:
        entry = self._find(path)
        if entry is not None:
            entry.reload()

    def pop(self, path: Path) -> bool:
        path = Path(path)
        for pos, entry in enumerate(self.entries):
            if entry.path == path:
                break
        else:
            return False

        self._retired.append(self.entries.pop(pos))
        self.preload_active = is_valid_for_preload(self.nr_loaded_images, len(self.entries))
        # Popping the last image moves the focus backwards.
        if self.selected_index >= len(self.entries):
            self.selected_index = max(0, len(self.entries) - 1)
        self.load()
        return True

    def poll(self) -> int:
        """Join finished loads; returns how many entries changed."""
        changed = sum(1 for entry in self.entries if entry.poll())
        self._retired = drain_retired(self._retired)
        return changed

    @property
    def active_entry(self) -> GalleryEntry | None:
        if not self.entries:
            return None
        return self.entries[self.selected_index]

    @property
    def active_is_loading(self) -> bool:
        entry = self.active_entry
        return entry is not None and entry.is_loading

    def active_display_name(self) -> str:
        entry = self.active_entry
        if entry is None:
            return ""
        return entry.display_name(self.name_format)

    def resident_indices(self) -> list[int]:
        return [i for i, entry in enumerate(self.entries) if entry.is_resident]

    def _find(self, path: Path) -> GalleryEntry | None:
        path = Path(path)
        return next((e for e in self.entries if e.path == path), None)
