"""
Detection Records — Persistence and Review Lifecycle

One DetectionRecord per persisted analysis. Its status starts as the
machine verdict (CONFIRMED for spam, FALSE_POSITIVE otherwise) and only
changes through review(). PENDING is never a creation-time status: it
means a human has put the record back to "awaiting judgment", and
nothing moves a record out of it except another review.

Every review appends one entry to review_history. Entries are never
rewritten, merged or deduplicated.

Reviews use an optimistic revision check. A caller that read the
record can pass expected_revision and gets ConflictError if someone
else reviewed it first. Without it, a lost race is retried from a
fresh read so no review entry is ever dropped.
"""

from __future__ import annotations

import json
import sqlite3
import threading
import uuid
from dataclasses import dataclass, field, asdict
from datetime import datetime
from enum import Enum
from typing import Optional

from spamshield.errors import ConflictError, DependencyError, NotFound, ValidationError
from spamshield.history import ActivityStore, from_iso, to_iso, utcnow


class DetectionStatus(str, Enum):
    CONFIRMED = "CONFIRMED"
    PENDING = "PENDING"
    FALSE_POSITIVE = "FALSE_POSITIVE"


class TargetType(str, Enum):
    POST = "POST"
    REPLY = "REPLY"
    COMMENT = "COMMENT"


MAX_REVIEW_ATTEMPTS = 5


@dataclass(frozen=True)
class ReviewEntry:
    reviewer: str
    timestamp: str
    previous_status: str
    new_status: str
    notes: Optional[str] = None

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class DetectionRecord:
    id: str
    target_type: str
    content_excerpt: str
    confidence: float
    status: str
    created_at: str
    score: int = 0
    workspace_id: Optional[str] = None
    target_id: Optional[str] = None
    actor_id: Optional[str] = None
    reasons: list[str] = field(default_factory=list)
    metadata: dict = field(default_factory=dict)
    auto_detected: bool = True
    reviewed_by: Optional[str] = None
    reviewed_at: Optional[str] = None
    review_notes: Optional[str] = None
    review_history: list[ReviewEntry] = field(default_factory=list)
    revision: int = 0

    def to_dict(self) -> dict:
        data = asdict(self)
        data["review_history"] = [e.to_dict() for e in self.review_history]
        return data


def parse_status(value: str) -> DetectionStatus:
    try:
        return DetectionStatus(value)
    except ValueError:
        raise ValidationError(
            "Valid status is required (CONFIRMED, FALSE_POSITIVE, PENDING)"
        ) from None


def parse_target_type(value: str) -> TargetType:
    try:
        return TargetType(value)
    except ValueError:
        raise ValidationError(
            "Valid content type is required (POST, REPLY, COMMENT)"
        ) from None


_COLUMNS = (
    "id, workspace_id, target_type, target_id, actor_id, content_excerpt, "
    "score, confidence, reasons, metadata, status, auto_detected, "
    "reviewed_by, reviewed_at, review_notes, review_history, revision, created_at"
)


class DetectionStore(ActivityStore):
    """
    Owns DetectionRecord lifecycle. Backed by SQLite.

    Also serves as the actor-history source: an actor's submissions are
    their detection records, their violations the ones currently
    CONFIRMED, and their account age runs from the first record.
    """

    def __init__(self, db_path: str = "spamshield.db", excerpt_length: int = 1000):
        self.db_path = db_path
        self.excerpt_length = excerpt_length
        self._lock = threading.Lock()
        self._init_db()

    def _init_db(self):
        with self._guard() as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS detections (
                    id TEXT PRIMARY KEY,
                    workspace_id TEXT,
                    target_type TEXT NOT NULL,
                    target_id TEXT,
                    actor_id TEXT,
                    content_excerpt TEXT NOT NULL,
                    score INTEGER NOT NULL,
                    confidence REAL NOT NULL,
                    reasons TEXT NOT NULL,
                    metadata TEXT NOT NULL,
                    status TEXT NOT NULL,
                    auto_detected INTEGER NOT NULL DEFAULT 1,
                    reviewed_by TEXT,
                    reviewed_at TEXT,
                    review_notes TEXT,
                    review_history TEXT NOT NULL DEFAULT '[]',
                    revision INTEGER NOT NULL DEFAULT 0,
                    created_at TEXT NOT NULL
                )
            """)
            conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_detections_scope
                ON detections(workspace_id, created_at)
            """)
            conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_detections_status
                ON detections(status)
            """)
            conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_detections_actor
                ON detections(actor_id, created_at)
            """)
            conn.commit()

    def _get_conn(self) -> sqlite3.Connection:
        return sqlite3.connect(self.db_path)

    def _guard(self):
        return _StoreConnection(self)

    # -- create --------------------------------------------------------

    def create(
        self,
        content: str,
        target_type: str,
        score: int,
        confidence: float,
        is_spam: bool,
        reasons: list[str],
        metadata: dict,
        workspace_id: Optional[str] = None,
        target_id: Optional[str] = None,
        actor_id: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> DetectionRecord:
        """Persist the outcome of one analysis with the machine verdict as status."""
        status = DetectionStatus.CONFIRMED if is_spam else DetectionStatus.FALSE_POSITIVE
        record = DetectionRecord(
            id=uuid.uuid4().hex,
            workspace_id=workspace_id,
            target_type=parse_target_type(target_type).value,
            target_id=target_id,
            actor_id=actor_id,
            content_excerpt=content[: self.excerpt_length],
            score=score,
            confidence=confidence,
            reasons=list(reasons),
            metadata=metadata,
            status=status.value,
            auto_detected=True,
            created_at=to_iso(now or utcnow()),
        )
        with self._guard() as conn:
            conn.execute(
                f"INSERT INTO detections ({_COLUMNS}) "
                "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
                (
                    record.id, record.workspace_id, record.target_type,
                    record.target_id, record.actor_id, record.content_excerpt,
                    record.score, record.confidence,
                    json.dumps(record.reasons), json.dumps(record.metadata, default=str),
                    record.status, 1, None, None, None, "[]", 0, record.created_at,
                ),
            )
            conn.commit()
        return record

    # -- read ----------------------------------------------------------

    def get(self, detection_id: str) -> DetectionRecord:
        with self._guard() as conn:
            row = conn.execute(
                f"SELECT {_COLUMNS} FROM detections WHERE id = ?", (detection_id,),
            ).fetchone()
        if row is None:
            raise NotFound(detection_id)
        return _row_to_record(row)

    def find(
        self,
        workspace_id: Optional[str] = None,
        status: Optional[str] = None,
        since: Optional[datetime] = None,
        limit: int = 20,
        offset: int = 0,
    ) -> tuple[list[DetectionRecord], int]:
        """Newest first. Returns (page, total matching)."""
        where, params = _filters(workspace_id, status, since)
        with self._guard() as conn:
            total = conn.execute(
                f"SELECT COUNT(*) FROM detections{where}", params,
            ).fetchone()[0]
            rows = conn.execute(
                f"SELECT {_COLUMNS} FROM detections{where} "
                "ORDER BY created_at DESC, id LIMIT ? OFFSET ?",
                params + [limit, offset],
            ).fetchall()
        return [_row_to_record(r) for r in rows], total

    def summaries(
        self,
        workspace_id: Optional[str] = None,
        since: Optional[datetime] = None,
    ) -> list[tuple[str, str, bool]]:
        """(created_at, status, auto_detected) for every matching record."""
        where, params = _filters(workspace_id, None, since)
        with self._guard() as conn:
            rows = conn.execute(
                f"SELECT created_at, status, auto_detected FROM detections{where}",
                params,
            ).fetchall()
        return [(r[0], r[1], bool(r[2])) for r in rows]

    # -- review --------------------------------------------------------

    def review(
        self,
        detection_id: str,
        new_status: str,
        reviewer_id: str,
        notes: Optional[str] = None,
        expected_revision: Optional[int] = None,
        now: Optional[datetime] = None,
    ) -> tuple[DetectionRecord, str]:
        """
        Apply a human decision. Returns (updated record, previous status).

        Raises:
            ValidationError for an unknown status or missing reviewer.
            NotFound if the record does not exist.
            ConflictError if expected_revision is stale.
        """
        status = parse_status(new_status)
        if not reviewer_id:
            raise ValidationError("Reviewer is required")

        for _attempt in range(MAX_REVIEW_ATTEMPTS):
            current = self.get(detection_id)
            if expected_revision is not None and current.revision != expected_revision:
                raise ConflictError(detection_id, expected_revision, current.revision)

            reviewed_at = to_iso(now or utcnow())
            entry = ReviewEntry(
                reviewer=reviewer_id,
                timestamp=reviewed_at,
                previous_status=current.status,
                new_status=status.value,
                notes=notes,
            )
            history = current.review_history + [entry]

            with self._guard() as conn:
                cursor = conn.execute(
                    """UPDATE detections
                       SET status = ?, reviewed_by = ?, reviewed_at = ?,
                           review_notes = ?, review_history = ?, revision = revision + 1
                       WHERE id = ? AND revision = ?""",
                    (
                        status.value, reviewer_id, reviewed_at, notes,
                        json.dumps([e.to_dict() for e in history]),
                        detection_id, current.revision,
                    ),
                )
                conn.commit()
                updated = cursor.rowcount

            if updated == 1:
                current.status = status.value
                current.reviewed_by = reviewer_id
                current.reviewed_at = reviewed_at
                current.review_notes = notes
                current.review_history = history
                current.revision += 1
                return current, entry.previous_status

            if expected_revision is not None:
                latest = self.get(detection_id)
                raise ConflictError(detection_id, expected_revision, latest.revision)

        raise DependencyError(
            f"Could not apply review to {detection_id}: record kept changing"
        )

    # -- delete --------------------------------------------------------

    def delete(self, detection_id: str) -> DetectionRecord:
        """Remove a record permanently. Returns the deleted record."""
        record = self.get(detection_id)
        with self._guard() as conn:
            cursor = conn.execute("DELETE FROM detections WHERE id = ?", (detection_id,))
            conn.commit()
            if cursor.rowcount == 0:
                raise NotFound(detection_id)
        return record

    def count(self) -> int:
        with self._guard() as conn:
            row = conn.execute("SELECT COUNT(*) FROM detections").fetchone()
        return row[0] if row else 0

    # -- actor history -------------------------------------------------

    def get_account_created_at(self, actor_id: str) -> Optional[datetime]:
        with self._guard() as conn:
            row = conn.execute(
                "SELECT MIN(created_at) FROM detections WHERE actor_id = ?",
                (actor_id,),
            ).fetchone()
        return from_iso(row[0]) if row and row[0] else None

    def count_submissions(self, actor_id, since, scope_id=None) -> int:
        return self._count_for_actor(actor_id, since, scope_id)

    def count_violations(self, actor_id, since, scope_id=None) -> int:
        return self._count_for_actor(
            actor_id, since, scope_id, DetectionStatus.CONFIRMED.value,
        )

    def _count_for_actor(
        self, actor_id: str, since: datetime, scope_id: Optional[str],
        status: Optional[str] = None,
    ) -> int:
        where, params = _filters(scope_id, status, since, actor_id)
        with self._guard() as conn:
            row = conn.execute(
                f"SELECT COUNT(*) FROM detections{where}", params,
            ).fetchone()
        return row[0] if row else 0


class _StoreConnection:
    """Connection context that serializes writers and wraps sqlite errors."""

    def __init__(self, store: DetectionStore):
        self._store = store
        self._conn: Optional[sqlite3.Connection] = None

    def __enter__(self) -> sqlite3.Connection:
        self._store._lock.acquire()
        try:
            self._conn = self._store._get_conn()
        except sqlite3.Error as e:
            self._store._lock.release()
            raise DependencyError(f"Detection store unavailable: {e}") from e
        return self._conn

    def __exit__(self, exc_type, exc, tb):
        try:
            if self._conn is not None:
                self._conn.close()
        finally:
            self._store._lock.release()
        if exc_type is not None and issubclass(exc_type, sqlite3.Error):
            raise DependencyError(f"Detection store error: {exc}") from exc
        return False


def _filters(
    workspace_id: Optional[str],
    status: Optional[str],
    since: Optional[datetime],
    actor_id: Optional[str] = None,
) -> tuple[str, list]:
    clauses: list[str] = []
    params: list = []
    if actor_id:
        clauses.append("actor_id = ?")
        params.append(actor_id)
    if workspace_id:
        clauses.append("workspace_id = ?")
        params.append(workspace_id)
    if status:
        clauses.append("status = ?")
        params.append(parse_status(status).value)
    if since is not None:
        clauses.append("created_at >= ?")
        params.append(to_iso(since))
    where = f" WHERE {' AND '.join(clauses)}" if clauses else ""
    return where, params


def _row_to_record(row) -> DetectionRecord:
    (
        id_, workspace_id, target_type, target_id, actor_id, excerpt,
        score, confidence, reasons, metadata, status, auto_detected,
        reviewed_by, reviewed_at, review_notes, review_history, revision, created_at,
    ) = row
    return DetectionRecord(
        id=id_,
        workspace_id=workspace_id,
        target_type=target_type,
        target_id=target_id,
        actor_id=actor_id,
        content_excerpt=excerpt,
        score=score,
        confidence=confidence,
        reasons=json.loads(reasons),
        metadata=json.loads(metadata),
        status=status,
        auto_detected=bool(auto_detected),
        reviewed_by=reviewed_by,
        reviewed_at=reviewed_at,
        review_notes=review_notes,
        review_history=[ReviewEntry(**e) for e in json.loads(review_history)],
        revision=revision,
        created_at=created_at,
    )


def created_date(record_created_at: str) -> str:
    """YYYY-MM-DD (UTC) of a stored timestamp."""
    return from_iso(record_created_at).date().isoformat()
