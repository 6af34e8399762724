from __future__ import annotations

from contextlib import contextmanager
from pathlib import Path
import sqlite3
from typing import Iterator

SCHEMA_VERSION = 1

SETUP_SQL = """
CREATE TABLE IF NOT EXISTS file (
  path TEXT NOT NULL PRIMARY KEY,
  metadata TEXT NOT NULL CHECK (json_valid(metadata)),
  ts TIMESTAMP NOT NULL DEFAULT CURRENT_TIMESTAMP
);

CREATE INDEX IF NOT EXISTS file_ts_idx ON file (ts DESC);

CREATE TABLE IF NOT EXISTS schema_version (
  id INTEGER PRIMARY KEY CHECK (id = 1),
  version INTEGER NOT NULL
);
"""

# Keeps IN (...) lists well under SQLite's bound-parameter limit.
IN_CHUNK_SIZE = 500


def _set_schema_version(conn: sqlite3.Connection, version: int) -> None:
    conn.execute(
        """
        INSERT INTO schema_version(id, version)
        VALUES(1, ?)
        ON CONFLICT(id) DO UPDATE SET version=excluded.version
        """,
        (version,),
    )


class Database:
    """Opens a fresh connection per call so worker threads never share one."""

    def __init__(self, path: Path):
        self.path = path
        self.path.parent.mkdir(parents=True, exist_ok=True)

    @contextmanager
    def connect(self) -> Iterator[sqlite3.Connection]:
        conn = sqlite3.connect(self.path, timeout=30.0)
        conn.row_factory = sqlite3.Row
        try:
            conn.execute("PRAGMA journal_mode = WAL")
            yield conn
            conn.commit()
        except BaseException:
            conn.rollback()
            raise
        finally:
            conn.close()

    def initialize(self) -> None:
        with self.connect() as conn:
            conn.executescript(SETUP_SQL)
            _set_schema_version(conn, SCHEMA_VERSION)
