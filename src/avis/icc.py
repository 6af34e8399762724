from __future__ import annotations

from functools import lru_cache
from importlib import resources
import io
import logging
from pathlib import Path
from typing import Sequence

from PIL import ImageCms

from avis.paths import default_icc_dirs

logger = logging.getLogger(__name__)

SRGB = "srgb"
DISPLAY_P3 = "display p3"
ADOBE_RGB = "adobe rgb"

# Checked in order against the lower-cased profile description.
PROFILE_NAMES: tuple[str, ...] = (ADOBE_RGB, DISPLAY_P3, SRGB)

# Shipped in avis/profiles; matrix/TRC profiles with D50-adapted primaries.
BUNDLED_FILES: dict[str, str] = {
    ADOBE_RGB: "ClayRGB.icc",
    DISPLAY_P3: "DisplayP3.icc",
    SRGB: "sRGB.icc",
}

OVERRIDE_FILES: dict[str, tuple[str, ...]] = {
    ADOBE_RGB: (
        "ClayRGB-elle-V2-g22.icc",
        "AdobeRGB1998.icc",
        "AdobeRGB1998.icm",
        "Adobe RGB (1998).icc",
    ),
    DISPLAY_P3: (
        "Display P3.icc",
        "DisplayP3.icc",
        "DisplayP3-elle-V4-srgbtrc.icc",
    ),
    SRGB: (
        "sRGB-elle-V4-g22.icc",
        "sRGB.icc",
        "sRGB Profile.icc",
    ),
}


def builtin_name(description: str) -> str | None:
    desc = description.lower()
    for name in PROFILE_NAMES:
        if name in desc:
            return name
    return None


@lru_cache(maxsize=None)
def bundled_profile_bytes(name: str) -> bytes:
    return (resources.files("avis") / "profiles" / BUNDLED_FILES[name]).read_bytes()


@lru_cache(maxsize=None)
def _find_override_bytes(name: str, dirs: tuple[str, ...]) -> bytes | None:
    for d in dirs:
        for file_name in OVERRIDE_FILES.get(name, ()):
            candidate = Path(d) / file_name
            if candidate.is_file():
                try:
                    return candidate.read_bytes()
                except OSError as exc:
                    logger.error("Failure reading ICC profile %s -> %s", candidate, exc)
    return None


def profile_from_bytes(data: bytes) -> ImageCms.ImageCmsProfile:
    return ImageCms.ImageCmsProfile(io.BytesIO(data))


class ProfileTable:
    """Maps common profile descriptions to ICC profiles.

    sRGB, Display P3 and Adobe RGB ship with the package. A file with a
    known name in one of the configured directories (or ``~/.config/avis/icc``)
    replaces the bundled profile.
    """

    def __init__(self, icc_dirs: Sequence[Path | str] | None = None) -> None:
        dirs = [Path(d).expanduser() for d in (icc_dirs or [])]
        self.icc_dirs: tuple[str, ...] = tuple(str(d) for d in [*dirs, *default_icc_dirs()])

    def lookup(self, description: str) -> ImageCms.ImageCmsProfile | None:
        name = builtin_name(description)
        if name is None:
            return None
        data = _find_override_bytes(name, self.icc_dirs)
        if data is not None:
            try:
                return profile_from_bytes(data)
            except (OSError, ValueError, ImageCms.PyCMSError) as exc:
                logger.error("Ignoring unreadable ICC override for %s -> %s", name, exc)
        return profile_from_bytes(bundled_profile_bytes(name))
