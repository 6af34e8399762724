from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor, as_completed
from enum import Enum
import json
import logging
import math
from pathlib import Path
import re
import sqlite3
import time
from typing import Callable, Mapping, Sequence

from avis import store
from avis.config import AppConfig
from avis.db import Database
from avis.exiftool import ExifTool, ExifToolError
from avis.models import MetadataRecord
from avis.query import Predicate, SqlOrder, query_paths

logger = logging.getLogger(__name__)

RECORD_DELIMITER = "========"
CHUNK_SIZE = 500
WORKERS = 4

_FORMAT_TOKEN = re.compile(r"\$\(([^()]*#([\w\s]*)#[^()]*)\)")


class Orientation(Enum):
    NORMAL = "Horizontal (normal)"
    MIRROR_HORIZONTAL = "Mirror horizontal"
    ROTATE_180 = "Rotate 180"
    MIRROR_VERTICAL = "Mirror vertical"
    MIRROR_HORIZONTAL_ROTATE_270 = "Mirror horizontal and rotate 270 CW"
    ROTATE_90_CW = "Rotate 90 CW"
    MIRROR_HORIZONTAL_ROTATE_90_CW = "Mirror horizontal and rotate 90 CW"
    ROTATE_270_CW = "Rotate 270 CW"

    @classmethod
    def from_metadata(cls, value: str | None) -> "Orientation":
        if value is None:
            return cls.NORMAL
        try:
            return cls(value.strip())
        except ValueError:
            return cls.NORMAL


def _parse_tags(lines: Sequence[str]) -> dict[str, str]:
    tags: dict[str, str] = {}
    for line in lines:
        if not line or ":" not in line:
            continue
        key, _, value = line.partition(":")
        key = key.strip()
        if key:
            tags[key] = value.strip()
    return tags


def parse_record(block: str) -> tuple[str, dict[str, str]] | None:
    """Parse one ``========``-delimited block whose first line is the file path."""
    lines = block.split("\n")
    header = lines[0].strip()
    if not header:
        return None
    return header, _parse_tags(lines[1:])


def parse_exiftool_output(output: str, single_path: str | None = None) -> list[tuple[str, dict[str, str]]]:
    """Split exiftool's multi-file dump into ``(path, fields)`` pairs.

    exiftool does not print a path header when it is given exactly one file,
    so ``single_path`` names the file in that case.
    """
    output = output.replace("\r\n", "\n")
    if single_path is not None and RECORD_DELIMITER not in output:
        tags = _parse_tags(output.split("\n"))
        return [(single_path, tags)] if tags else []

    records = []
    for block in output.split(RECORD_DELIMITER):
        parsed = parse_record(block)
        if parsed is not None:
            records.append(parsed)
    if single_path is not None and records:
        records[0] = (single_path, records[0][1])
    return records


def format_string_with_metadata(fmt: str, metadata: Mapping[str, str]) -> str:
    """Expand ``$(...#Tag#...)`` tokens; a token whose tag is missing vanishes entirely."""

    def _replace(match: re.Match[str]) -> str:
        body, tag = match.group(1), match.group(2)
        value = metadata.get(tag)
        if value is None:
            return ""
        return body.replace(f"#{tag}#", value)

    return _FORMAT_TOKEN.sub(_replace, fmt)


def _format_eta(ms: float) -> str:
    seconds = int(ms // 1000)
    return f"{seconds // 60}m {seconds % 60}s"


class MetadataCache:
    """Persistent metadata cache fed by batched exiftool runs.

    Store failures are logged and turned into empty results so callers can
    always carry on without metadata.
    """

    def __init__(
        self,
        db: Database,
        exiftool: ExifTool | None = None,
        chunk_size: int = CHUNK_SIZE,
        workers: int = WORKERS,
    ) -> None:
        self.db = db
        self.exiftool = exiftool or ExifTool()
        self.chunk_size = max(1, int(chunk_size))
        self.workers = max(1, int(workers))

    @classmethod
    def from_config(cls, cfg: AppConfig) -> "MetadataCache":
        return cls(
            Database(cfg.db_path),
            ExifTool(cfg.metadata.exiftool),
            chunk_size=cfg.metadata.chunk_size,
            workers=cfg.metadata.workers,
        )

    def initialize(self) -> bool:
        try:
            self.db.initialize()
        except sqlite3.Error as exc:
            logger.error("Failure initializing metadata database %s -> %s", self.db.path, exc)
            return False
        return True

    def cache_metadata_for(
        self,
        paths: Sequence[Path | str],
        progress: Callable[[int, int], None] | None = None,
    ) -> int:
        """Extract and store metadata for every path not cached yet; returns rows written."""
        timer = time.perf_counter()
        pending = list(dict.fromkeys(str(p) for p in paths))

        try:
            with self.db.connect() as conn:
                cached = store.existing_paths(conn, pending)
        except sqlite3.Error as exc:
            logger.error("Failure fetching cached metadata paths, aborting caching process -> %s", exc)
            return 0

        logger.info("Fetched a total of %d paths which are already cached", len(cached))
        pending = [p for p in pending if p not in cached]
        chunks = [pending[i : i + self.chunk_size] for i in range(0, len(pending), self.chunk_size)]
        logger.info("Caching a total of %d imgs in %d chunks", len(pending), len(chunks))

        written = 0
        total_elapsed_ms = 0.0
        with ThreadPoolExecutor(max_workers=self.workers, thread_name_prefix="exiftool") as pool:
            for i, chunk in enumerate(chunks):
                chunk_timer = time.perf_counter()
                rows = self._extract_chunk(pool, chunk)
                try:
                    with self.db.connect() as conn:
                        written += store.upsert_records(conn, rows)
                except sqlite3.Error as exc:
                    logger.error("Failure inserting metadata into db -> %s", exc)

                chunk_ms = (time.perf_counter() - chunk_timer) * 1000.0
                total_elapsed_ms += chunk_ms
                logger.info("Cached metadata chunk %d of %d containing %d images in %.0fms", i + 1, len(chunks), len(chunk), chunk_ms)

                done = i + 1
                if progress is not None:
                    progress(done, len(chunks))
                if done < len(chunks):
                    remaining_ms = (total_elapsed_ms / done) * (len(chunks) - done)
                    logger.info("Estimated time remaining: %s", _format_eta(remaining_ms))

        logger.info(
            "Finished caching metadata for %d images in %.0fms",
            written,
            (time.perf_counter() - timer) * 1000.0,
        )
        return written

    def _extract_chunk(self, pool: ThreadPoolExecutor, chunk: Sequence[str]) -> list[tuple[str, str]]:
        per_process = math.ceil(len(chunk) / self.workers)
        futures = [
            pool.submit(self._extract_paths, chunk[i : i + per_process])
            for i in range(0, len(chunk), per_process)
        ]

        rows: list[tuple[str, str]] = []
        for fut in as_completed(futures):
            for path, fields in fut.result():
                rows.append((path, json.dumps(fields, ensure_ascii=False)))
        return rows

    def _extract_paths(self, paths: Sequence[str]) -> list[tuple[str, dict[str, str]]]:
        try:
            output = self.exiftool.read(paths)
        except ExifToolError as exc:
            logger.error("Error fetching metadata -> %s", exc)
            return []
        single = paths[0] if len(paths) == 1 else None
        return parse_exiftool_output(output, single_path=single)

    def get_record(self, path: Path | str) -> MetadataRecord | None:
        try:
            with self.db.connect() as conn:
                return store.get_record(conn, str(path))
        except (sqlite3.Error, ValueError) as exc:
            logger.error("Error fetching image metadata from db -> %s", exc)
            return None

    def get_metadata(self, path: Path | str) -> dict[str, str] | None:
        """Cached fields, or a one-off synchronous extraction that is not stored."""
        record = self.get_record(path)
        if record is not None:
            return record.fields

        logger.info("Metadata not yet in database, fetching for %s", path)
        try:
            output = self.exiftool.read([str(path)])
        except ExifToolError as exc:
            logger.error("Failure running exiftool for %s -> %s", path, exc)
            return None
        records = parse_exiftool_output(output, single_path=str(path))
        if not records:
            return None
        return records[0][1]

    def extract_icc(self, path: Path | str) -> bytes | None:
        try:
            return self.exiftool.icc_profile(path)
        except ExifToolError as exc:
            logger.error("Error fetching image icc -> %s", exc)
            return None

    def query(
        self,
        predicates: Sequence[Predicate],
        order_field: str = "",
        order: SqlOrder = SqlOrder.ASC,
    ) -> list[Path] | None:
        try:
            with self.db.connect() as conn:
                return [Path(p) for p in query_paths(conn, predicates, order_field, order)]
        except sqlite3.Error as exc:
            logger.error("Failure querying metadata -> %s", exc)
            return None

    def distinct_values(self, field: str) -> list[str]:
        try:
            with self.db.connect() as conn:
                return store.distinct_values(conn, field)
        except sqlite3.Error as exc:
            logger.error("Failure fetching distinct values for %s -> %s", field, exc)
            return []

    def distinct_field_names(self) -> list[str]:
        try:
            with self.db.connect() as conn:
                return store.distinct_field_names(conn)
        except sqlite3.Error as exc:
            logger.error("Failure fetching metadata field names -> %s", exc)
            return []

    def count(self) -> int:
        try:
            with self.db.connect() as conn:
                return store.count_records(conn)
        except sqlite3.Error as exc:
            logger.error("Failure counting cached records -> %s", exc)
            return 0

    def delete(self, path: Path | str) -> bool:
        try:
            with self.db.connect() as conn:
                return store.delete_paths(conn, [str(path)]) > 0
        except sqlite3.Error as exc:
            logger.error("Failure deleting file record %s from the database -> %s", path, exc)
            return False

    def cleanup(self) -> int:
        """Drop rows whose file is gone; stats every cached path."""
        try:
            with self.db.connect() as conn:
                paths = store.all_paths(conn)
        except sqlite3.Error as exc:
            logger.error("Failure fetching file paths from the database -> %s", exc)
            return 0
        return self._delete_missing(paths)

    def clear_moved(self, paths: Sequence[Path | str]) -> int:
        return self._delete_missing([str(p) for p in paths])

    def _delete_missing(self, paths: Sequence[str]) -> int:
        missing = [p for p in paths if not Path(p).exists()]
        for p in missing:
            logger.info("%s no longer exists in the filesystem, marking for deletion", p)
        if not missing:
            return 0
        try:
            with self.db.connect() as conn:
                store.delete_paths(conn, missing)
        except sqlite3.Error as exc:
            logger.error("Failure deleting moved files from the database -> %s", exc)
            return 0
        logger.info("Cleaned %d moved/removed files from the database", len(missing))
        return len(missing)

    def trim(self, limit: int) -> int:
        logger.info("Trimming database, leaving %d records", limit)
        try:
            with self.db.connect() as conn:
                return store.trim_records(conn, limit)
        except sqlite3.Error as exc:
            logger.error("Failure trimming database -> %s", exc)
            return 0
