"""
Engine Tests — analyze orchestration and the record operations.

Each test gets its own SQLite files under tmp_path. Moderation actions
go through the audit-backed gateway unless a test swaps in its own.
"""

from __future__ import annotations

import json
from datetime import datetime, timedelta, timezone

import pytest

from spamshield.audit import AuditChain
from spamshield.config import Settings
from spamshield.detections import DetectionStore
from spamshield.engine import SpamEngine, build_engine, since_days
from spamshield.errors import DependencyError, NotFound, ValidationError
from spamshield.history import ActivityStore, HistoryEnricher
from spamshield.moderation import ModerationGateway

NOW = datetime(2026, 3, 15, 12, 0, tzinfo=timezone.utc)

SPAM = "Buy now!!! Click here now visit our website bit.ly/x bit.ly/y bit.ly/z bit.ly/w"
BORDERLINE = "lottery winner prize congratulations lottery"
CLEAN = "Had a great day at the park with my family."


class FailingHistoryStore(ActivityStore):
    def get_account_created_at(self, actor_id):
        raise ConnectionError("history backend down")

    def count_submissions(self, actor_id, since, scope_id=None):
        raise ConnectionError("history backend down")

    def count_violations(self, actor_id, since, scope_id=None):
        raise ConnectionError("history backend down")


class FailingGateway(ModerationGateway):
    def reject(self, *args, **kwargs):
        raise RuntimeError("forum backend unavailable")

    def enqueue(self, *args, **kwargs):
        raise RuntimeError("forum backend unavailable")


@pytest.fixture
def audit(tmp_path):
    return AuditChain(db_path=str(tmp_path / "audit.db"))


@pytest.fixture
def engine(tmp_path, audit):
    store = DetectionStore(db_path=str(tmp_path / "detections.db"))
    return SpamEngine(store=store, audit_chain=audit, history=HistoryEnricher(store))


def broken_log(*args, **kwargs):
    raise DependencyError("activity chain unavailable")


def events(audit, event_type):
    return audit.get_recent(limit=50, event_type=event_type)


class TestAnalyze:

    def test_result_shape(self, engine):
        out = engine.analyze(SPAM, content_type="POST", now=NOW)
        assert out["is_spam"] is True
        assert out["score"] == 100
        assert out["confidence"] == 0.95
        assert out["recommendation"] == "REJECT"
        assert out["detection_id"]
        assert out["actions_taken"] == []
        assert out["score_breakdown"]["shortened_urls"] == 80

    def test_clean_content(self, engine):
        out = engine.analyze(CLEAN, now=NOW)
        assert out["is_spam"] is False
        assert out["reasons"] == []
        assert out["recommendation"] == "APPROVE"
        record = engine.get_detection(out["detection_id"])
        assert record.status == "FALSE_POSITIVE"

    def test_deterministic(self, engine):
        a = engine.analyze(SPAM, now=NOW)
        b = engine.analyze(SPAM, now=NOW)
        for key in ("score", "confidence", "is_spam", "reasons", "recommendation"):
            assert a[key] == b[key]
        assert a["detection_id"] != b["detection_id"]

    def test_empty_content_rejected(self, engine):
        with pytest.raises(ValidationError):
            engine.analyze("")
        assert engine.store.count() == 0

    @pytest.mark.parametrize("content", ["   ", "\n\t"])
    def test_whitespace_content_scored(self, engine, content):
        out = engine.analyze(content, now=NOW)
        assert out["score"] == 0
        assert out["is_spam"] is False
        assert out["recommendation"] == "APPROVE"
        assert engine.store.count() == 1

    def test_unknown_content_type(self, engine):
        with pytest.raises(ValidationError):
            engine.analyze("hello", content_type="TWEET")

    def test_persisted_record(self, engine):
        out = engine.analyze(
            SPAM, content_type="REPLY", target_id="r-9",
            actor_id="u1", workspace_id="w1", now=NOW,
        )
        record = engine.get_detection(out["detection_id"])
        assert record.status == "CONFIRMED"
        assert record.auto_detected is True
        assert record.target_type == "REPLY"
        assert record.target_id == "r-9"
        assert record.workspace_id == "w1"
        assert record.reasons == out["reasons"]
        assert record.metadata["threshold"] == 40
        assert record.metadata["raw_score"] == 120
        assert record.metadata["recommendation"] == "REJECT"
        assert record.metadata["url_count"] == 4
        assert record.metadata["user_history"] is None

    def test_persist_false_stores_nothing(self, engine, audit):
        out = engine.analyze(SPAM, persist=False, now=NOW)
        assert out["detection_id"] is None
        assert out["score"] == 100
        assert engine.store.count() == 0
        assert audit.get_count() == 0

    def test_creation_logged(self, engine, audit):
        out = engine.analyze(SPAM, now=NOW)
        created = events(audit, "detection_created")
        assert len(created) == 1
        assert created[0]["subject_id"] == out["detection_id"]
        assert created[0]["data"]["recommendation"] == "REJECT"

    def test_persistence_failure_surfaces(self, engine, monkeypatch):
        def broken(**kwargs):
            raise DependencyError("detections table unavailable")

        monkeypatch.setattr(engine.store, "create", broken)
        with pytest.raises(DependencyError):
            engine.analyze(SPAM, now=NOW)

    def test_record_kept_when_activity_log_fails(self, engine, audit, monkeypatch):
        monkeypatch.setattr(audit, "log", broken_log)
        out = engine.analyze(SPAM, now=NOW)
        assert out["detection_id"]
        assert engine.get_detection(out["detection_id"]).status == "CONFIRMED"
        assert engine.store.count() == 1


class TestHistoryEnrichment:

    def test_history_raises_score(self, engine):
        for i in range(11, 0, -1):
            engine.analyze(CLEAN, actor_id="u1", now=NOW - timedelta(hours=i))

        out = engine.analyze(CLEAN, actor_id="u1", now=NOW)
        assert out["score_breakdown"] == {"new_account_frequency": 20}
        assert out["reasons"] == ["High posting frequency from new account"]
        record = engine.get_detection(out["detection_id"])
        assert record.metadata["user_history"]["recent_submission_count"] == 11

    def test_anonymous_scored_on_content(self, engine):
        assert engine.analyze(CLEAN, now=NOW)["score"] == 0

    def test_failed_lookup_degrades(self, tmp_path, audit):
        engine = SpamEngine(
            store=DetectionStore(db_path=str(tmp_path / "d.db")),
            audit_chain=audit,
            history=HistoryEnricher(FailingHistoryStore()),
        )
        out = engine.analyze(SPAM, actor_id="u1", now=NOW)
        assert out["score"] == 100
        assert out["recommendation"] == "REJECT"
        record = engine.get_detection(out["detection_id"])
        assert record.metadata["user_history"] is None


class TestModerationActions:

    def test_auto_reject_when_authorized(self, engine, audit):
        out = engine.analyze(
            SPAM, target_id="post-1", workspace_id="w1",
            auto_act=True, authorized=True, now=NOW,
        )
        assert out["actions_taken"] == ["rejected"]
        rejected = events(audit, "auto_rejected")
        assert len(rejected) == 1
        data = rejected[0]["data"]
        assert data["is_automatic"] is True
        assert data["target_id"] == "post-1"
        assert data["description"].startswith("Spam detection confidence: 95.0%. Reasons: ")
        assert rejected[0]["subject_id"] == out["detection_id"]

    def test_no_auto_reject_without_authorization(self, engine, audit):
        out = engine.analyze(SPAM, target_id="post-1", auto_act=True, authorized=False, now=NOW)
        assert out["recommendation"] == "REJECT"
        assert out["actions_taken"] == []
        assert events(audit, "auto_rejected") == []

    def test_no_auto_reject_unless_requested(self, engine, audit):
        out = engine.analyze(SPAM, target_id="post-1", authorized=True, now=NOW)
        assert out["actions_taken"] == []

    def test_review_recommendation_queued(self, engine, audit):
        out = engine.analyze(BORDERLINE, content_type="COMMENT", target_id="c-1", now=NOW)
        assert out["recommendation"] == "REVIEW"
        assert out["actions_taken"] == ["queued_for_review"]
        queued = events(audit, "review_queued")
        assert len(queued) == 1
        assert queued[0]["data"]["title"] == f"Potential spam detected: {BORDERLINE}..."
        assert queued[0]["data"]["priority"] == "HIGH"
        assert queued[0]["data"]["metadata"]["score"] == 50

    def test_nothing_enacted_without_target(self, engine):
        assert engine.analyze(BORDERLINE, now=NOW)["actions_taken"] == []

    def test_gateway_failure_reported(self, tmp_path, audit):
        engine = SpamEngine(
            store=DetectionStore(db_path=str(tmp_path / "d.db")),
            audit_chain=audit,
            moderation=FailingGateway(),
        )
        out = engine.analyze(SPAM, target_id="p", auto_act=True, authorized=True, now=NOW)
        assert out["actions_taken"] == ["reject_failed"]
        assert out["detection_id"]
        out = engine.analyze(BORDERLINE, target_id="p", now=NOW)
        assert out["actions_taken"] == ["queue_failed"]


class TestRecordOperations:

    def test_review_logged(self, engine, audit):
        out = engine.analyze(SPAM, now=NOW)
        record = engine.review_detection(out["detection_id"], "FALSE_POSITIVE", "mod-a", "ok")
        assert record.status == "FALSE_POSITIVE"
        reviewed = events(audit, "detection_reviewed")
        assert reviewed[0]["data"]["previous_status"] == "CONFIRMED"
        assert reviewed[0]["data"]["new_status"] == "FALSE_POSITIVE"
        assert reviewed[0]["data"]["training_data"] is True

    def test_review_twice(self, engine):
        detection_id = engine.analyze(SPAM, now=NOW)["detection_id"]
        engine.review_detection(detection_id, "FALSE_POSITIVE", "mod-a")
        record = engine.review_detection(detection_id, "CONFIRMED", "mod-b")
        assert record.status == "CONFIRMED"
        assert len(record.review_history) == 2
        assert record.review_history[0].new_status == "FALSE_POSITIVE"

    def test_review_applied_once_when_activity_log_fails(self, engine, audit, monkeypatch):
        detection_id = engine.analyze(SPAM, now=NOW)["detection_id"]
        monkeypatch.setattr(audit, "log", broken_log)

        record = engine.review_detection(detection_id, "FALSE_POSITIVE", "mod-a")
        assert record.status == "FALSE_POSITIVE"
        stored = engine.get_detection(detection_id)
        assert stored.status == "FALSE_POSITIVE"
        assert len(stored.review_history) == 1
        assert stored.revision == 1

    def test_details_include_activity(self, engine):
        detection_id = engine.analyze(SPAM, now=NOW)["detection_id"]
        engine.review_detection(detection_id, "PENDING", "mod-a")
        engine.analyze(CLEAN, now=NOW)

        details = engine.get_detection_details(detection_id)
        assert details["detection"].id == detection_id
        assert [e["event_type"] for e in details["activity"]] == [
            "detection_reviewed", "detection_created",
        ]

    def test_get_unknown(self, engine):
        with pytest.raises(NotFound):
            engine.get_detection("nope")

    def test_delete(self, engine, audit):
        detection_id = engine.analyze(SPAM, target_id="p-1", now=NOW)["detection_id"]
        engine.delete_detection(detection_id, deleted_by="mod-a")
        with pytest.raises(NotFound):
            engine.get_detection(detection_id)
        deleted = events(audit, "detection_deleted")
        assert deleted[0]["data"]["deleted_by"] == "mod-a"
        assert deleted[0]["data"]["deleted_detection"]["target_id"] == "p-1"

    def test_delete_applied_when_activity_log_fails(self, engine, audit, monkeypatch):
        detection_id = engine.analyze(SPAM, now=NOW)["detection_id"]
        monkeypatch.setattr(audit, "log", broken_log)
        engine.delete_detection(detection_id, deleted_by="mod-a")
        with pytest.raises(NotFound):
            engine.get_detection(detection_id)

    def test_delete_unknown(self, engine):
        with pytest.raises(NotFound):
            engine.delete_detection("nope")

    def test_list_pagination(self, engine):
        for i in range(3):
            engine.analyze(SPAM, workspace_id="w1", now=NOW - timedelta(minutes=i))
        page = engine.list_detections(workspace_id="w1", limit=2)
        assert len(page["records"]) == 2
        assert page["pagination"] == {"total": 3, "limit": 2, "offset": 0, "has_more": True}
        page = engine.list_detections(workspace_id="w1", limit=2, offset=2)
        assert page["pagination"]["has_more"] is False

    @pytest.mark.parametrize("limit,offset", [(0, 0), (101, 0), (10, -1)])
    def test_list_bounds(self, engine, limit, offset):
        with pytest.raises(ValidationError):
            engine.list_detections(limit=limit, offset=offset)

    def test_statistics(self, engine):
        engine.analyze(SPAM, now=NOW)
        engine.analyze(CLEAN, now=NOW)
        stats = engine.get_statistics(window_days=3, now=NOW)
        assert stats["total_detections"] == 2
        assert stats["accuracy"] == 100.0
        assert len(stats["daily_trend"]) == 3


class TestWiring:

    def test_since_days(self):
        assert since_days(7, NOW) == NOW - timedelta(days=7)

    def test_build_engine_from_settings(self, tmp_path):
        rules = tmp_path / "rules.json"
        rules.write_text(json.dumps({"phrases": ["crypto giveaway"]}))
        config = Settings(
            DB_PATH=str(tmp_path / "main.db"),
            AUDIT_DB_PATH=str(tmp_path / "audit.db"),
            RULES_FILE=str(rules),
            REJECT_CONFIDENCE=0.5,
            REVIEW_CONFIDENCE=0.1,
        )
        engine = build_engine(config)
        assert engine.rules.phrases == ("crypto giveaway",)
        assert engine.policy.reject_above == 0.5

        out = engine.analyze("crypto giveaway", now=NOW)
        assert out["score"] == 15
        assert out["is_spam"] is False
        assert engine.store.count() == 1

    def test_repeat_offender_builds_history(self, tmp_path):
        engine = build_engine(Settings(
            DB_PATH=str(tmp_path / "main.db"),
            AUDIT_DB_PATH=str(tmp_path / "audit.db"),
        ))
        outs = [engine.analyze(BORDERLINE, actor_id="u1") for _ in range(4)]

        first = engine.get_detection(outs[0]["detection_id"])
        assert first.metadata["user_history"] is None
        assert [o["score"] for o in outs] == [50, 50, 50, 65]

        last = engine.get_detection(outs[-1]["detection_id"])
        assert last.status == "CONFIRMED"
        assert last.metadata["user_history"] == {
            "account_age_days": 0,
            "recent_submission_count": 3,
            "prior_violation_count": 3,
        }
        assert "User has previous violations" in outs[-1]["reasons"]
        assert outs[-1]["score_breakdown"]["prior_violations"] == 15

    def test_history_scoped_to_workspace(self, tmp_path):
        engine = build_engine(Settings(
            DB_PATH=str(tmp_path / "main.db"),
            AUDIT_DB_PATH=str(tmp_path / "audit.db"),
        ))
        for _ in range(3):
            engine.analyze(BORDERLINE, actor_id="u1", workspace_id="w1")
        out = engine.analyze(BORDERLINE, actor_id="u1", workspace_id="w2")
        assert out["score"] == 50
        record = engine.get_detection(out["detection_id"])
        assert record.metadata["user_history"] is None
