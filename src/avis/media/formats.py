from __future__ import annotations

from pathlib import Path

RASTER_EXTENSIONS = {
    "jpg",
    "jpeg",
    "png",
    "webp",
    "gif",
    "bmp",
    "tif",
    "tiff",
    "heic",
    "heif",
}

JPEG_EXTENSIONS = {"jpg", "jpeg"}

JXL_EXTENSION = "jxl"

RAW_EXTENSIONS = {
    "3fr",
    "ari",
    "arw",
    "bay",
    "cr2",
    "cr3",
    "crw",
    "dcr",
    "dng",
    "erf",
    "fff",
    "iiq",
    "k25",
    "kdc",
    "mef",
    "mos",
    "mrw",
    "nef",
    "nrw",
    "orf",
    "pef",
    "raf",
    "raw",
    "rw2",
    "rwl",
    "sr2",
    "srf",
    "srw",
    "x3f",
}

# Decoders for these already hand back upright pixels.
SKIP_ORIENT_EXTENSIONS = {JXL_EXTENSION, "heic", "heif"}

VALID_EXTENSIONS = RASTER_EXTENSIONS | RAW_EXTENSIONS | {JXL_EXTENSION}


def extension_of(path: Path | str) -> str:
    return Path(path).suffix.lstrip(".").lower()


def is_valid_image(path: Path | str) -> bool:
    return extension_of(path) in VALID_EXTENSIONS


def is_raw(path: Path | str) -> bool:
    return extension_of(path) in RAW_EXTENSIONS


def is_jpeg(path: Path | str) -> bool:
    return extension_of(path) in JPEG_EXTENSIONS


def is_jxl(path: Path | str) -> bool:
    return extension_of(path) == JXL_EXTENSION


def skips_orientation(path: Path | str) -> bool:
    return extension_of(path) in SKIP_ORIENT_EXTENSIONS
