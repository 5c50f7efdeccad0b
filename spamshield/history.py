"""
History Enricher

Looks up a small window of behavioral counters for the submitting
actor: account age, recent submissions, recent violations. Anonymous
submissions (no actor id) get no history, and an actor the store does
not know also gets no history rather than an error.

The backing store is abstract (ActivityStore). The detection store
implements it over the actor's own records, so every persisted
analysis feeds the history of the next one.
"""

from __future__ import annotations

import sqlite3
from abc import ABC, abstractmethod
from dataclasses import dataclass, asdict
from datetime import datetime, timedelta, timezone
from typing import Optional

from spamshield.errors import DependencyError

LOOKBACK_DAYS = 30


@dataclass(frozen=True)
class HistorySignal:
    account_age_days: int
    recent_submission_count: int
    prior_violation_count: int

    def to_dict(self) -> dict:
        return asdict(self)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def ensure_utc(dt: datetime) -> datetime:
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def to_iso(dt: datetime) -> str:
    """Fixed-width UTC timestamp, so stored values sort lexically."""
    return ensure_utc(dt).isoformat(timespec="microseconds")


def from_iso(value: str) -> datetime:
    return ensure_utc(datetime.fromisoformat(value))


class ActivityStore(ABC):
    """Read side of whatever knows an actor's accounts and activity."""

    @abstractmethod
    def get_account_created_at(self, actor_id: str) -> Optional[datetime]:
        """Account creation time, or None if the actor is unknown."""
        ...

    @abstractmethod
    def count_submissions(
        self, actor_id: str, since: datetime, scope_id: Optional[str] = None,
    ) -> int:
        ...

    @abstractmethod
    def count_violations(
        self, actor_id: str, since: datetime, scope_id: Optional[str] = None,
    ) -> int:
        ...


class HistoryEnricher:
    """Turns an actor id into a HistorySignal. Read-only."""

    def __init__(self, store: ActivityStore, lookback_days: int = LOOKBACK_DAYS):
        self.store = store
        self.lookback_days = lookback_days

    def fetch_history(
        self,
        actor_id: Optional[str],
        scope_id: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> Optional[HistorySignal]:
        """
        Return the actor's recent counters, or None for anonymous or
        unknown actors.

        Raises:
            DependencyError if the store fails.
        """
        if not actor_id:
            return None
        now = ensure_utc(now or utcnow())
        since = now - timedelta(days=self.lookback_days)

        try:
            created_at = self.store.get_account_created_at(actor_id)
            if created_at is None:
                return None
            submissions = self.store.count_submissions(actor_id, since, scope_id)
            violations = self.store.count_violations(actor_id, since, scope_id)
        except sqlite3.Error as e:
            raise DependencyError(f"History lookup failed: {e}") from e

        age_days = max(0, (now - created_at).days)
        return HistorySignal(
            account_age_days=age_days,
            recent_submission_count=submissions,
            prior_violation_count=violations,
        )
