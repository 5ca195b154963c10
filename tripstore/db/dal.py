"""Data Access Layer for trip documents.

Responsibilities
----------------
- Treat SQLite as a key-value blob store: one JSON body per trip id.
- Stamp every save with a ``document_version`` and only accept a replace when
  the caller still holds the current version (compare-and-swap).
- Keep the audit trail of links removed by document migrations.

The layer knows nothing about the document's shape; decoding, migration and
validation happen in ``tripstore.services.unified_data``.
"""

from __future__ import annotations

import re
import sqlite3
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional

from tripstore.core.errors import ConflictError, TripDataError, TripNotFoundError

UTC_NOW_SQL = "strftime('%Y-%m-%dT%H:%M:%fZ','now')"
TRIP_ID_RE = re.compile(r"^[A-Za-z0-9]+$")


def validate_trip_id(trip_id: Any) -> str:
    if not isinstance(trip_id, str) or not TRIP_ID_RE.match(trip_id):
        raise TripDataError(
            f"Invalid trip id {trip_id!r}: only letters and digits are allowed",
            trip_id=trip_id if isinstance(trip_id, str) else None,
        )
    return trip_id


class Database:
    def __init__(self, db_path: Path):
        self.db_path = db_path

    # ------------------------------------------------------------------
    # Connection helpers
    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        return conn

    # ------------------------------------------------------------------
    # Documents
    def get_document(self, trip_id: str) -> Optional[Dict[str, Any]]:
        validate_trip_id(trip_id)
        with self._connect() as conn:
            cur = conn.cursor()
            cur.execute("SELECT * FROM trip_documents WHERE id = ?", (trip_id,))
            row = cur.fetchone()
            return dict(row) if row else None

    def list_document_ids(self) -> List[str]:
        with self._connect() as conn:
            cur = conn.cursor()
            cur.execute("SELECT id FROM trip_documents ORDER BY created_at ASC, id ASC")
            return [r[0] for r in cur.fetchall()]

    def document_exists(self, trip_id: str) -> bool:
        validate_trip_id(trip_id)
        with self._connect() as conn:
            cur = conn.cursor()
            cur.execute("SELECT 1 FROM trip_documents WHERE id = ?", (trip_id,))
            return cur.fetchone() is not None

    def insert_document(self, trip_id: str, body: str, schema_version: int) -> int:
        """Store a new document and return its document_version (always 1)."""
        validate_trip_id(trip_id)
        with self._connect() as conn:
            cur = conn.cursor()
            try:
                cur.execute(
                    f"""
                    INSERT INTO trip_documents (id, body, schema_version, document_version, created_at, updated_at)
                    VALUES (?, ?, ?, 1, ({UTC_NOW_SQL}), ({UTC_NOW_SQL}))
                    """,
                    (trip_id, body, schema_version),
                )
            except sqlite3.IntegrityError as exc:
                raise ConflictError(
                    f"Trip {trip_id} already exists", trip_id=trip_id
                ) from exc
            conn.commit()
            return 1

    def replace_document(
        self, trip_id: str, body: str, schema_version: int, expected_version: int
    ) -> int:
        """Compare-and-swap save; returns the new document_version."""
        validate_trip_id(trip_id)
        with self._connect() as conn:
            cur = conn.cursor()
            cur.execute(
                f"""
                UPDATE trip_documents
                SET body = ?, schema_version = ?,
                    document_version = document_version + 1,
                    updated_at = ({UTC_NOW_SQL})
                WHERE id = ? AND document_version = ?
                """,
                (body, schema_version, trip_id, expected_version),
            )
            if cur.rowcount == 0:
                cur.execute(
                    "SELECT document_version FROM trip_documents WHERE id = ?",
                    (trip_id,),
                )
                row = cur.fetchone()
                if row is None:
                    raise TripNotFoundError(f"Trip {trip_id} not found", trip_id=trip_id)
                raise ConflictError(
                    f"Trip {trip_id} changed since it was loaded "
                    f"(expected version {expected_version}, found {row[0]})",
                    trip_id=trip_id,
                    expected_version=expected_version,
                    current_version=int(row[0]),
                )
            conn.commit()
            return expected_version + 1

    def delete_document(self, trip_id: str) -> None:
        validate_trip_id(trip_id)
        with self._connect() as conn:
            cur = conn.cursor()
            cur.execute("DELETE FROM trip_documents WHERE id = ?", (trip_id,))
            if cur.rowcount == 0:
                raise TripNotFoundError(f"Trip {trip_id} not found", trip_id=trip_id)
            conn.commit()

    # ------------------------------------------------------------------
    # Migration audit trail
    def record_link_cleanup(
        self,
        trip_id: str,
        messages: Iterable[str],
        from_version: int,
        to_version: int,
    ) -> int:
        rows = [(trip_id, m, from_version, to_version) for m in messages]
        if not rows:
            return 0
        with self._connect() as conn:
            conn.executemany(
                """
                INSERT INTO link_cleanup_log (trip_id, message, from_version, to_version)
                VALUES (?, ?, ?, ?)
                """,
                rows,
            )
            conn.commit()
        return len(rows)

    def list_link_cleanup(self, trip_id: str) -> List[Dict[str, Any]]:
        validate_trip_id(trip_id)
        with self._connect() as conn:
            cur = conn.cursor()
            cur.execute(
                """
                SELECT trip_id, message, from_version, to_version, created_at
                FROM link_cleanup_log
                WHERE trip_id = ?
                ORDER BY id ASC
                """,
                (trip_id,),
            )
            return [dict(r) for r in cur.fetchall()]
