from __future__ import annotations

import sqlite3

STORE_SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS kv_store (
    key        TEXT PRIMARY KEY,
    value      TEXT NOT NULL,
    updated_at TEXT NOT NULL DEFAULT (datetime('now'))
);
"""


def initialize_store_schema(conn: sqlite3.Connection) -> None:
    conn.executescript(STORE_SCHEMA_SQL)
