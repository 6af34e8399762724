from __future__ import annotations

from dataclasses import dataclass, field
import itertools
import threading
import weakref

import numpy as np


@dataclass(eq=False)
class TextureHandle:
    """A registered texture; freed by `release()` or when the handle is garbage collected."""

    texture_id: int
    width: int
    height: int
    label: str
    registry: "TextureRegistry" = field(repr=False)
    _finalizer: weakref.finalize = field(init=False, repr=False)

    def __post_init__(self) -> None:
        self._finalizer = weakref.finalize(self, self.registry.free, self.texture_id)

    @property
    def released(self) -> bool:
        return not self._finalizer.alive

    def release(self) -> None:
        self._finalizer()


class TextureRegistry:
    """Display-texture store shared by loader threads and the frame loop.

    Registration and freeing hold one lock, so a texture is never freed while
    another thread is registering or reading it.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._ids = itertools.count(1)
        self._textures: dict[int, np.ndarray] = {}

    def register(self, rgba: np.ndarray, label: str = "") -> TextureHandle:
        if rgba.ndim != 3 or rgba.shape[2] != 4 or rgba.dtype != np.uint8:
            raise ValueError(f"expected an HxWx4 uint8 buffer, got {rgba.shape} {rgba.dtype}")
        height, width = int(rgba.shape[0]), int(rgba.shape[1])
        if width == 0 or height == 0:
            raise ValueError("cannot register an empty texture")
        data = np.ascontiguousarray(rgba)
        with self._lock:
            texture_id = next(self._ids)
            self._textures[texture_id] = data
        return TextureHandle(texture_id=texture_id, width=width, height=height, label=label, registry=self)

    def free(self, texture_id: int) -> None:
        with self._lock:
            self._textures.pop(texture_id, None)

    def get(self, texture_id: int) -> np.ndarray | None:
        with self._lock:
            return self._textures.get(texture_id)

    def __len__(self) -> int:
        with self._lock:
            return len(self._textures)


def rgb_to_rgba(pixels: np.ndarray) -> np.ndarray:
    height, width = pixels.shape[:2]
    rgba = np.empty((height, width, 4), dtype=np.uint8)
    rgba[..., :3] = pixels
    rgba[..., 3] = 255
    return rgba
