"""
Reporting — aggregate statistics over persisted detections.

accuracy counts any adjudicated outcome (CONFIRMED or FALSE_POSITIVE)
against the total; PENDING records are the unresolved remainder.
"""

from __future__ import annotations

from collections import Counter
from datetime import datetime, timedelta, timezone
from typing import Optional

from spamshield.detections import DetectionStatus, DetectionStore, created_date
from spamshield.errors import ValidationError
from spamshield.history import ensure_utc, utcnow


def accuracy(confirmed: int, false_positives: int, total: int) -> float:
    if total <= 0:
        return 0.0
    return round((confirmed + false_positives) / total * 100, 1)


def get_statistics(
    store: DetectionStore,
    workspace_id: Optional[str] = None,
    window_days: int = 7,
    now: Optional[datetime] = None,
) -> dict:
    """Totals per status plus a per-day trend, oldest day first."""
    if window_days < 1:
        raise ValidationError("window_days must be at least 1")

    now = ensure_utc(now or utcnow())
    since = now - timedelta(days=window_days)
    rows = store.summaries(workspace_id=workspace_id, since=since)

    total = len(rows)
    by_status = Counter(status for _, status, _ in rows)
    confirmed = by_status[DetectionStatus.CONFIRMED.value]
    pending = by_status[DetectionStatus.PENDING.value]
    false_positives = by_status[DetectionStatus.FALSE_POSITIVE.value]
    auto_detected = sum(1 for _, _, auto in rows if auto)

    return {
        "total_detections": total,
        "confirmed_spam": confirmed,
        "pending_review": pending,
        "false_positives": false_positives,
        "auto_detected": auto_detected,
        "accuracy": accuracy(confirmed, false_positives, total),
        "period": f"{window_days} days",
        "daily_trend": daily_trend(store, workspace_id, window_days, now),
    }


def daily_trend(
    store: DetectionStore,
    workspace_id: Optional[str],
    window_days: int,
    now: datetime,
) -> list[dict]:
    """One bucket per calendar day (UTC), ending today."""
    today = ensure_utc(now).date()
    first_day = today - timedelta(days=window_days - 1)
    start = datetime(first_day.year, first_day.month, first_day.day, tzinfo=timezone.utc)
    rows = store.summaries(workspace_id=workspace_id, since=start)

    totals: Counter = Counter()
    spam: Counter = Counter()
    for created_at, status, _ in rows:
        day = created_date(created_at)
        totals[day] += 1
        if status == DetectionStatus.CONFIRMED.value:
            spam[day] += 1

    trend = []
    for offset in range(window_days):
        day = (first_day + timedelta(days=offset)).isoformat()
        trend.append({"date": day, "total": totals[day], "spam": spam[day]})
    return trend
