from __future__ import annotations

import sqlite3
from pathlib import Path

from scriptbreakdown.core.config import read_float_env, read_int_env

DEFAULT_SQLITE_CONNECT_TIMEOUT_SECONDS = 30.0
DEFAULT_SQLITE_BUSY_TIMEOUT_MS = 30_000

# Columns added after the first schema release: (table, column, type).
_ADDED_COLUMNS = (
    ("breakdown_jobs", "progress_json", "TEXT"),
    ("breakdown_jobs", "detail", "TEXT"),
    ("documents", "breakdown_error", "TEXT"),
)


def get_connection(db_path: Path) -> sqlite3.Connection:
    """Open a connection tuned for one writer plus concurrent job readers."""
    conn = sqlite3.connect(
        db_path,
        timeout=read_float_env("BREAKDOWN_SQLITE_CONNECT_TIMEOUT_SECONDS", DEFAULT_SQLITE_CONNECT_TIMEOUT_SECONDS),
    )
    conn.row_factory = sqlite3.Row
    busy_timeout_ms = read_int_env("BREAKDOWN_SQLITE_BUSY_TIMEOUT_MS", DEFAULT_SQLITE_BUSY_TIMEOUT_MS)
    conn.execute("PRAGMA foreign_keys = ON;")
    conn.execute("PRAGMA journal_mode = WAL;")
    conn.execute("PRAGMA synchronous = NORMAL;")
    conn.execute(f"PRAGMA busy_timeout = {busy_timeout_ms};")
    return conn


def initialize_schema(db_path: Path, schema_path: Path) -> None:
    with get_connection(db_path) as conn:
        conn.executescript(schema_path.read_text(encoding="utf-8"))
        _add_missing_columns(conn)
        conn.commit()


def _existing_columns(conn: sqlite3.Connection, table: str) -> set[str]:
    return {row["name"] for row in conn.execute(f"PRAGMA table_info({table})").fetchall()}


def _add_missing_columns(conn: sqlite3.Connection) -> None:
    known: dict[str, set[str]] = {}
    for table, column, column_type in _ADDED_COLUMNS:
        if table not in known:
            known[table] = _existing_columns(conn, table)
        if column not in known[table]:
            conn.execute(f"ALTER TABLE {table} ADD COLUMN {column} {column_type}")
            known[table].add(column)
