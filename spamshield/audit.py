"""
Activity Log — SHA-256 Hash-Chained Moderation Events

Detection creation, human reviews, deletions and automatic moderation
actions are logged to an append-only hash chain. Each entry references
the previous hash, so editing an entry after the fact breaks the chain
and verify_chain() reports it.

Entries carry an optional subject_id (the detection id they concern)
so the events behind one record can be pulled back out.
"""

from __future__ import annotations

import hashlib
import json
import sqlite3
import threading
from datetime import datetime, timezone
from typing import Any, Optional

from spamshield.errors import DependencyError

GENESIS_HASH = "0" * 64


def _entry_hash(
    prev_hash: str, event_type: str, subject_id: str, data_str: str,
    timestamp: str, engine_version: str,
) -> str:
    chain_input = f"{prev_hash}{event_type}{subject_id}{data_str}{timestamp}{engine_version}"
    return hashlib.sha256(chain_input.encode()).hexdigest()


class AuditChain:
    """Append-only, hash-chained event log backed by SQLite."""

    def __init__(self, db_path: str = "spamshield_audit.db", engine_version: str = "1.0.0"):
        self.db_path = db_path
        self.engine_version = engine_version
        self._lock = threading.Lock()
        self._init_db()

    def _init_db(self):
        with self._get_conn() as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS activity_chain (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    prev_hash TEXT NOT NULL,
                    hash TEXT NOT NULL,
                    event_type TEXT NOT NULL,
                    subject_id TEXT NOT NULL DEFAULT '',
                    data TEXT NOT NULL,
                    timestamp TEXT NOT NULL,
                    engine_version TEXT NOT NULL
                )
            """)
            conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_event_type
                ON activity_chain(event_type)
            """)
            conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_subject
                ON activity_chain(subject_id)
            """)
            conn.commit()

    def _get_conn(self) -> sqlite3.Connection:
        return sqlite3.connect(self.db_path)

    def _get_prev_hash(self, conn: sqlite3.Connection) -> str:
        row = conn.execute(
            "SELECT hash FROM activity_chain ORDER BY id DESC LIMIT 1"
        ).fetchone()
        return row[0] if row else GENESIS_HASH

    def log(self, event_type: str, data: Any, subject_id: Optional[str] = None) -> str:
        """
        Log an event to the chain.

        Event types:
          - detection_created:   An analysis was persisted
          - detection_reviewed:  A moderator changed a record's status
          - detection_deleted:   A moderator deleted a record
          - auto_rejected:       Target hidden and rejected automatically
          - review_queued:       Target queued for human triage
          - chain_verified:      Chain integrity check performed

        Returns the SHA-256 hash of the new entry.

        Raises:
            DependencyError if the log cannot be written.
        """
        subject = subject_id or ""
        try:
            with self._lock:
                with self._get_conn() as conn:
                    prev_hash = self._get_prev_hash(conn)
                    timestamp = datetime.now(timezone.utc).isoformat()
                    data_str = json.dumps(data, default=str)
                    new_hash = _entry_hash(
                        prev_hash, event_type, subject, data_str,
                        timestamp, self.engine_version,
                    )
                    conn.execute(
                        """INSERT INTO activity_chain
                           (prev_hash, hash, event_type, subject_id, data, timestamp, engine_version)
                           VALUES (?, ?, ?, ?, ?, ?, ?)""",
                        (prev_hash, new_hash, event_type, subject, data_str,
                         timestamp, self.engine_version),
                    )
                    conn.commit()
                    return new_hash
        except sqlite3.Error as e:
            raise DependencyError(f"Activity log write failed: {e}") from e

    def get_recent(
        self,
        limit: int = 20,
        event_type: Optional[str] = None,
        subject_id: Optional[str] = None,
    ) -> list[dict]:
        """Get recent entries, newest first, optionally filtered."""
        clauses, params = [], []
        if event_type:
            clauses.append("event_type = ?")
            params.append(event_type)
        if subject_id:
            clauses.append("subject_id = ?")
            params.append(subject_id)
        where = f" WHERE {' AND '.join(clauses)}" if clauses else ""

        with self._get_conn() as conn:
            rows = conn.execute(
                f"""SELECT id, prev_hash, hash, event_type, subject_id, data,
                           timestamp, engine_version
                    FROM activity_chain{where} ORDER BY id DESC LIMIT ?""",
                params + [limit],
            ).fetchall()

        return [
            {
                "id": r[0], "prev_hash": r[1], "hash": r[2],
                "event_type": r[3], "subject_id": r[4] or None,
                "data": json.loads(r[5]), "timestamp": r[6],
                "engine_version": r[7],
            }
            for r in rows
        ]

    def verify_chain(self, limit: int = 100) -> dict:
        """Verify integrity of the oldest `limit` entries."""
        with self._get_conn() as conn:
            rows = conn.execute(
                """SELECT id, prev_hash, hash, event_type, subject_id, data,
                          timestamp, engine_version
                   FROM activity_chain ORDER BY id ASC LIMIT ?""",
                (limit,),
            ).fetchall()

        if not rows:
            return {"verified": True, "entries_checked": 0, "broken_links": []}

        broken = []
        for i, row in enumerate(rows):
            entry_id, prev_hash, stored_hash, event_type, subject, data_str, timestamp, version = row

            computed_hash = _entry_hash(
                prev_hash, event_type, subject, data_str, timestamp, version,
            )
            if computed_hash != stored_hash:
                broken.append({
                    "id": entry_id,
                    "issue": "hash_mismatch",
                    "expected": computed_hash,
                    "stored": stored_hash,
                })

            if i > 0 and prev_hash != rows[i - 1][2]:
                broken.append({
                    "id": entry_id,
                    "issue": "chain_break",
                    "expected_prev": rows[i - 1][2],
                    "stored_prev": prev_hash,
                })

        return {
            "verified": len(broken) == 0,
            "entries_checked": len(rows),
            "broken_links": broken,
        }

    def get_count(self) -> int:
        with self._get_conn() as conn:
            row = conn.execute("SELECT COUNT(*) FROM activity_chain").fetchone()
            return row[0] if row else 0
