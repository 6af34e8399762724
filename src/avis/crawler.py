from __future__ import annotations

from itertools import groupby
import logging
import os
from pathlib import Path
from typing import Iterator, Sequence

from avis.media.formats import is_raw, is_valid_image

logger = logging.getLogger(__name__)


def iter_image_files(root: Path, flatten: bool = False) -> Iterator[Path]:
    pending: list[Path] = [root]
    while pending:
        current = pending.pop()
        try:
            entries = list(os.scandir(current))
        except OSError as exc:
            logger.error("Failure reading directory %s -> %s", current, exc)
            continue

        for entry in entries:
            try:
                is_dir = entry.is_dir()
            except OSError as exc:
                logger.error("Failure reading file info %s -> %s", entry.path, exc)
                continue
            if is_dir:
                if flatten:
                    pending.append(Path(entry.path))
                continue
            if is_valid_image(entry.name):
                yield Path(entry.path)


def crawl(root: Path, flatten: bool = False) -> list[Path]:
    """List the images directly under ``root`` (or the whole tree when ``flatten``)."""
    return sorted(iter_image_files(root, flatten=flatten))


def resolve_targets(args: Sequence[str], cwd: Path | None = None) -> tuple[list[Path], Path | None]:
    """Turn command-line targets into a collection plus an optional selected image.

    A single directory opens all its images, a single file opens its siblings
    with that file selected, and several arguments are taken as an explicit
    list of images.
    """
    base = cwd or Path.cwd()
    if len(args) <= 1:
        target = Path(args[0]) if args else base
        if not target.is_absolute():
            target = base / target
        if target.is_dir():
            return crawl(target), None
        return crawl(target.parent), target

    paths = []
    for arg in args:
        p = Path(arg)
        if not p.is_absolute():
            p = base / p
        if is_valid_image(p):
            paths.append(p)
    return paths, None


def group_raw_jpg_paths(paths: Sequence[Path]) -> list[Path]:
    """Collapse RAW+JPEG pairs sharing a file stem, keeping the non-RAW file."""
    ordered = sorted((Path(p) for p in paths), key=lambda p: (str(p.parent), p.stem, p.name))
    out: list[Path] = []
    for _, group in groupby(ordered, key=lambda p: (str(p.parent), p.stem)):
        members = list(group)
        non_raw = next((p for p in members if not is_raw(p)), None)
        out.append(non_raw if non_raw is not None else members[0])
    return out
