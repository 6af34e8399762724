from pathlib import Path
import sqlite3

import pytest

from avis.db import SCHEMA_VERSION, Database


def test_schema_tables_exist(tmp_path: Path) -> None:
    db = Database(tmp_path / "avis.sqlite3")
    db.initialize()
    with db.connect() as conn:
        rows = conn.execute("SELECT name, type FROM sqlite_master").fetchall()
        version = conn.execute("SELECT version FROM schema_version WHERE id = 1").fetchone()
    names = {r["name"] for r in rows}
    assert {"file", "schema_version", "file_ts_idx"}.issubset(names)
    assert version["version"] == SCHEMA_VERSION


def test_initialize_is_repeatable(tmp_path: Path) -> None:
    db = Database(tmp_path / "avis.sqlite3")
    db.initialize()
    with db.connect() as conn:
        conn.execute("INSERT INTO file(path, metadata) VALUES (?, ?)", ("/a.jpg", "{}"))
    db.initialize()
    with db.connect() as conn:
        assert conn.execute("SELECT COUNT(*) AS n FROM file").fetchone()["n"] == 1


def test_metadata_must_be_json(tmp_path: Path) -> None:
    db = Database(tmp_path / "avis.sqlite3")
    db.initialize()
    with pytest.raises(sqlite3.IntegrityError):
        with db.connect() as conn:
            conn.execute("INSERT INTO file(path, metadata) VALUES (?, ?)", ("/a.jpg", "not json"))
    with db.connect() as conn:
        assert conn.execute("SELECT COUNT(*) AS n FROM file").fetchone()["n"] == 0
