"""SQLite layout for the trip document store.

Tables:
  - trip_documents: one JSON body per trip, keyed by trip id, with the
    document schema version and a store-managed document_version used for
    compare-and-swap saves
  - link_cleanup_log: audit trail of links pruned while migrating a document
  - metadata: key/value store (store layout version)
"""

from __future__ import annotations
import sqlite3
from typing import Sequence
from pathlib import Path

BASIC_UTC_NOW = "strftime('%Y-%m-%dT%H:%M:%fZ','now')"
STORE_LAYOUT_VERSION = 1
STORE_LAYOUT_KEY = "store_layout_version"

TRIP_DOCUMENTS_DDL = f"""
CREATE TABLE IF NOT EXISTS trip_documents (
    id TEXT PRIMARY KEY,
    body TEXT NOT NULL, -- JSON document
    schema_version INTEGER NOT NULL,
    document_version INTEGER NOT NULL DEFAULT 1,
    created_at TEXT NOT NULL DEFAULT ({BASIC_UTC_NOW}),
    updated_at TEXT NOT NULL DEFAULT ({BASIC_UTC_NOW})
);
"""

LINK_CLEANUP_LOG_DDL = f"""
CREATE TABLE IF NOT EXISTS link_cleanup_log (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    trip_id TEXT NOT NULL,
    message TEXT NOT NULL,
    from_version INTEGER NOT NULL,
    to_version INTEGER NOT NULL,
    created_at TEXT NOT NULL DEFAULT ({BASIC_UTC_NOW})
);
"""

METADATA_DDL = f"""
CREATE TABLE IF NOT EXISTS metadata (
    key TEXT PRIMARY KEY,
    value TEXT NOT NULL,
    updated_at TEXT NOT NULL DEFAULT ({BASIC_UTC_NOW})
);
"""

LINK_CLEANUP_TRIP_INDEX_DDL = (
    "CREATE INDEX IF NOT EXISTS idx_link_cleanup_trip ON link_cleanup_log(trip_id);"
)

DDL_ORDER: Sequence[str] = (
    TRIP_DOCUMENTS_DDL,
    LINK_CLEANUP_LOG_DDL,
    METADATA_DDL,
    LINK_CLEANUP_TRIP_INDEX_DDL,
)


def init_db(path: Path) -> int:
    """Create all tables idempotently and return the store layout version.

    Parameters
    ----------
    path: Path to SQLite database file.
    """
    conn = sqlite3.connect(path)
    try:
        cur = conn.cursor()
        for ddl in DDL_ORDER:
            cur.execute(ddl)
        _set_layout_version(cur, STORE_LAYOUT_VERSION)
        conn.commit()
        return STORE_LAYOUT_VERSION
    finally:
        conn.close()


def _set_layout_version(cur: sqlite3.Cursor, version: int) -> None:
    cur.execute(
        "INSERT INTO metadata (key, value) VALUES (?, ?) "
        "ON CONFLICT(key) DO UPDATE SET value=excluded.value, "
        f"updated_at=({BASIC_UTC_NOW})",
        (STORE_LAYOUT_KEY, str(version)),
    )
