from __future__ import annotations

import json
import sqlite3
from typing import Iterable, Sequence

from avis.db import IN_CHUNK_SIZE
from avis.models import MetadataRecord


def _chunks(items: Sequence[str], size: int) -> Iterable[Sequence[str]]:
    for start in range(0, len(items), size):
        yield items[start : start + size]


def _placeholders(n: int) -> str:
    return ", ".join("?" for _ in range(n))


def json_path(field: str) -> str:
    """JSON path addressing one top-level key, quoted so spaces and slashes survive."""
    return f'$."{field}"'


def upsert_records(conn: sqlite3.Connection, rows: Sequence[tuple[str, str]]) -> int:
    """Insert ``(path, metadata_json)`` pairs, refreshing the timestamp of known paths."""
    if not rows:
        return 0
    conn.executemany(
        """
        INSERT INTO file(path, metadata, ts) VALUES (?, ?, CURRENT_TIMESTAMP)
        ON CONFLICT(path) DO UPDATE SET
          metadata=excluded.metadata,
          ts=excluded.ts
        """,
        rows,
    )
    return len(rows)


def existing_paths(conn: sqlite3.Connection, paths: Sequence[str]) -> set[str]:
    found: set[str] = set()
    for chunk in _chunks(list(paths), IN_CHUNK_SIZE):
        rows = conn.execute(
            f"SELECT path FROM file WHERE path IN ({_placeholders(len(chunk))})",
            tuple(chunk),
        ).fetchall()
        found.update(str(r["path"]) for r in rows)
    return found


def get_record(conn: sqlite3.Connection, path: str) -> MetadataRecord | None:
    row = conn.execute("SELECT path, metadata, ts FROM file WHERE path = ?", (path,)).fetchone()
    if row is None:
        return None
    loaded = json.loads(row["metadata"])
    fields = {str(k): str(v) for k, v in loaded.items()} if isinstance(loaded, dict) else {}
    return MetadataRecord(path=str(row["path"]), fields=fields, cached_at=str(row["ts"]))


def all_paths(conn: sqlite3.Connection) -> list[str]:
    return [str(r["path"]) for r in conn.execute("SELECT path FROM file").fetchall()]


def count_records(conn: sqlite3.Connection) -> int:
    row = conn.execute("SELECT COUNT(*) AS n FROM file").fetchone()
    return int(row["n"])


def delete_paths(conn: sqlite3.Connection, paths: Sequence[str]) -> int:
    deleted = 0
    for chunk in _chunks(list(paths), IN_CHUNK_SIZE):
        deleted += conn.execute(
            f"DELETE FROM file WHERE path IN ({_placeholders(len(chunk))})",
            tuple(chunk),
        ).rowcount
    return deleted


def trim_records(conn: sqlite3.Connection, limit: int) -> int:
    return conn.execute(
        "DELETE FROM file WHERE path NOT IN (SELECT path FROM file ORDER BY ts DESC, path LIMIT ?)",
        (int(limit),),
    ).rowcount


def distinct_values(conn: sqlite3.Connection, field: str) -> list[str]:
    rows = conn.execute(
        """
        SELECT DISTINCT json_extract(metadata, ?) AS dist
        FROM file
        WHERE dist IS NOT NULL
        ORDER BY dist
        """,
        (json_path(field),),
    ).fetchall()
    return [str(r["dist"]) for r in rows]


def distinct_field_names(conn: sqlite3.Connection) -> list[str]:
    rows = conn.execute("SELECT DISTINCT key FROM file, json_each(file.metadata) ORDER BY key ASC").fetchall()
    return [str(r["key"]) for r in rows]
