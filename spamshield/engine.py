"""
Engine — Analysis Orchestrator

Coordinates one analysis end to end:

  content → signals → (+ actor history) → score → recommendation
          → detection record → optional moderation action

and the moderator-facing operations on the persisted records
(get, list, review, delete, statistics).

Scoring is pure. Only the history lookup, the record store, the
activity chain and the moderation gateway touch I/O. A failed history
lookup degrades to scoring on content alone. A failed record write
surfaces as DependencyError. Once the record is written, a failed
activity-chain event is logged and the operation still succeeds.
"""

from __future__ import annotations

import time
from datetime import datetime, timedelta
from typing import Optional

from spamshield.audit import AuditChain
from spamshield.config import Settings, settings as default_settings
from spamshield.detections import DetectionRecord, DetectionStore, parse_target_type
from spamshield.errors import DependencyError, ValidationError
from spamshield.escalation import DEFAULT_POLICY, EscalationPolicy, Recommendation, decide
from spamshield.history import HistoryEnricher, HistorySignal, to_iso, utcnow
from spamshield.logging import get_logger
from spamshield.moderation import AuditModerationGateway, ModerationGateway
from spamshield.reporting import get_statistics
from spamshield.rules import DEFAULT_RULES, SpamRules, load_rules
from spamshield.scorer import SPAM_THRESHOLD, AnalysisResult, aggregate
from spamshield.signals import extract_signals

logger = get_logger("engine")

MAX_PAGE_SIZE = 100
QUEUE_TITLE_LENGTH = 50


class SpamEngine:
    """Heuristic spam scorer plus the detection-record lifecycle around it."""

    def __init__(
        self,
        store: DetectionStore,
        audit_chain: AuditChain,
        history: Optional[HistoryEnricher] = None,
        moderation: Optional[ModerationGateway] = None,
        rules: SpamRules = DEFAULT_RULES,
        policy: EscalationPolicy = DEFAULT_POLICY,
    ):
        self.store = store
        self.audit_chain = audit_chain
        self.history = history
        self.moderation = moderation or AuditModerationGateway(audit_chain)
        self.rules = rules
        self.policy = policy

    # ============================================================
    # ANALYZE
    # ============================================================

    def score(
        self, content: str, history: Optional[HistorySignal] = None,
    ) -> tuple[AnalysisResult, Recommendation]:
        """Pure scoring path: no history lookup, no persistence."""
        result = aggregate(extract_signals(content, self.rules), history)
        return result, decide(result, self.policy)

    def analyze(
        self,
        content: str,
        content_type: str = "POST",
        target_id: Optional[str] = None,
        actor_id: Optional[str] = None,
        workspace_id: Optional[str] = None,
        auto_act: bool = False,
        authorized: bool = False,
        persist: bool = True,
        now: Optional[datetime] = None,
    ) -> dict:
        """
        Score one submission and, by default, persist a detection record.

        auto_act enacts a REJECT recommendation on the target, and only
        when the caller is authorized. A REVIEW recommendation always
        queues the target for human triage.

        Raises:
            ValidationError for empty content or an unknown content type.
            DependencyError if the record cannot be written.
        """
        if not content:
            raise ValidationError("Content is required")
        content_type = parse_target_type(content_type).value
        now = now or utcnow()
        start = time.time()

        history = self._lookup_history(actor_id, workspace_id, now)
        result, recommendation = self.score(content, history)

        detection_id = None
        if persist:
            record = self._persist(
                content, content_type, result, recommendation, history,
                workspace_id=workspace_id, target_id=target_id,
                actor_id=actor_id, now=now,
            )
            detection_id = record.id

        actions = self._enact(
            recommendation, result, content, content_type,
            target_id=target_id, workspace_id=workspace_id,
            detection_id=detection_id, auto_act=auto_act, authorized=authorized,
        )

        logger.info(
            f"Analysis complete: score={result.score} recommendation={recommendation.value}",
            extra={
                "detection_id": detection_id,
                "score": result.score,
                "confidence": result.confidence,
                "is_spam": result.is_spam,
                "recommendation": recommendation.value,
                "content_type": content_type,
                "workspace_id": workspace_id,
                "duration_ms": int((time.time() - start) * 1000),
            },
        )

        return {
            "is_spam": result.is_spam,
            "confidence": result.confidence,
            "score": result.score,
            "reasons": result.reasons,
            "detection_id": detection_id,
            "recommendation": recommendation.value,
            "actions_taken": actions,
            "score_breakdown": result.breakdown,
        }

    def _lookup_history(
        self, actor_id: Optional[str], workspace_id: Optional[str], now: datetime,
    ) -> Optional[HistorySignal]:
        if self.history is None or not actor_id:
            return None
        try:
            return self.history.fetch_history(actor_id, workspace_id, now)
        except Exception as e:
            logger.warning(
                "History lookup failed, scoring on content only",
                extra={"error": str(e), "error_type": type(e).__name__},
            )
            return None

    def _persist(
        self,
        content: str,
        content_type: str,
        result: AnalysisResult,
        recommendation: Recommendation,
        history: Optional[HistorySignal],
        workspace_id: Optional[str],
        target_id: Optional[str],
        actor_id: Optional[str],
        now: datetime,
    ) -> DetectionRecord:
        metadata = {
            **result.signals.to_dict(),
            "raw_score": result.raw_score,
            "score_breakdown": result.breakdown,
            "recommendation": recommendation.value,
            "user_history": history.to_dict() if history else None,
            "analysis_timestamp": to_iso(now),
            "threshold": SPAM_THRESHOLD,
        }
        try:
            record = self.store.create(
                content=content,
                target_type=content_type,
                score=result.score,
                confidence=result.confidence,
                is_spam=result.is_spam,
                reasons=result.reasons,
                metadata=metadata,
                workspace_id=workspace_id,
                target_id=target_id,
                actor_id=actor_id,
                now=now,
            )
        except DependencyError as e:
            logger.error("Failed to persist detection", extra={"error": str(e)})
            raise

        self._log_activity(
            "detection_created",
            {
                "score": result.score,
                "confidence": result.confidence,
                "status": record.status,
                "recommendation": recommendation.value,
                "target_type": content_type,
                "target_id": target_id,
                "workspace_id": workspace_id,
            },
            record.id,
        )
        return record

    def _log_activity(self, event_type: str, data: dict, subject_id: str) -> None:
        """Append to the activity chain after a committed record write."""
        try:
            self.audit_chain.log(event_type=event_type, data=data, subject_id=subject_id)
        except DependencyError as e:
            logger.error(
                f"Activity event {event_type} not recorded",
                extra={"detection_id": subject_id, "error": str(e)},
            )

    def _enact(
        self,
        recommendation: Recommendation,
        result: AnalysisResult,
        content: str,
        content_type: str,
        target_id: Optional[str],
        workspace_id: Optional[str],
        detection_id: Optional[str],
        auto_act: bool,
        authorized: bool,
    ) -> list[str]:
        """Hand the recommendation to the moderation gateway. Returns what was done."""
        if not target_id:
            return []

        actions: list[str] = []
        if recommendation is Recommendation.REJECT and auto_act and authorized:
            try:
                self.moderation.reject(
                    target_type=content_type,
                    target_id=target_id,
                    workspace_id=workspace_id,
                    reason="Automatically rejected as spam",
                    description=(
                        f"Spam detection confidence: {result.confidence * 100:.1f}%. "
                        f"Reasons: {', '.join(result.reasons)}"
                    ),
                    detection_id=detection_id,
                    is_automatic=True,
                )
                actions.append("rejected")
            except Exception as e:
                logger.error(
                    "Automatic rejection failed",
                    extra={"detection_id": detection_id, "error": str(e)},
                    exc_info=True,
                )
                actions.append("reject_failed")
        elif recommendation is Recommendation.REVIEW:
            try:
                self.moderation.enqueue(
                    target_type=content_type,
                    target_id=target_id,
                    workspace_id=workspace_id,
                    title=f"Potential spam detected: {content[:QUEUE_TITLE_LENGTH]}...",
                    priority="HIGH",
                    metadata={
                        "score": result.score,
                        "confidence": result.confidence,
                        "reasons": result.reasons,
                        "auto_flagged": True,
                    },
                    detection_id=detection_id,
                )
                actions.append("queued_for_review")
            except Exception as e:
                logger.error(
                    "Queueing for review failed",
                    extra={"detection_id": detection_id, "error": str(e)},
                    exc_info=True,
                )
                actions.append("queue_failed")
        return actions

    # ============================================================
    # RECORD OPERATIONS
    # ============================================================

    def get_detection(self, detection_id: str) -> DetectionRecord:
        return self.store.get(detection_id)

    def get_detection_details(self, detection_id: str, activity_limit: int = 50) -> dict:
        """The record plus the activity-chain events that concern it."""
        record = self.store.get(detection_id)
        return {
            "detection": record,
            "activity": self.audit_chain.get_recent(
                limit=activity_limit, subject_id=detection_id,
            ),
        }

    def list_detections(
        self,
        workspace_id: Optional[str] = None,
        status: Optional[str] = None,
        since: Optional[datetime] = None,
        limit: int = 20,
        offset: int = 0,
    ) -> dict:
        if not 1 <= limit <= MAX_PAGE_SIZE:
            raise ValidationError(f"limit must be between 1 and {MAX_PAGE_SIZE}")
        if offset < 0:
            raise ValidationError("offset must not be negative")

        records, total = self.store.find(
            workspace_id=workspace_id, status=status, since=since,
            limit=limit, offset=offset,
        )
        return {
            "records": records,
            "pagination": {
                "total": total,
                "limit": limit,
                "offset": offset,
                "has_more": offset + len(records) < total,
            },
        }

    def review_detection(
        self,
        detection_id: str,
        new_status: str,
        reviewer_id: str,
        notes: Optional[str] = None,
        expected_revision: Optional[int] = None,
        now: Optional[datetime] = None,
    ) -> DetectionRecord:
        """
        Record a human decision on a detection.

        Raises:
            NotFound, ValidationError, ConflictError, DependencyError.
        """
        record, previous_status = self.store.review(
            detection_id, new_status, reviewer_id, notes,
            expected_revision=expected_revision, now=now,
        )
        self._log_activity(
            "detection_reviewed",
            {
                "reviewer": reviewer_id,
                "previous_status": previous_status,
                "new_status": record.status,
                "notes": notes,
                "confidence": record.confidence,
                "workspace_id": record.workspace_id,
                "training_data": True,
            },
            detection_id,
        )
        logger.info(
            f"Detection reviewed: {previous_status} -> {record.status}",
            extra={
                "detection_id": detection_id,
                "previous_status": previous_status,
                "status": record.status,
                "reviewer": reviewer_id,
            },
        )
        return record

    def delete_detection(self, detection_id: str, deleted_by: Optional[str] = None) -> None:
        record = self.store.delete(detection_id)
        self._log_activity(
            "detection_deleted",
            {
                "deleted_by": deleted_by,
                "deleted_detection": {
                    "confidence": record.confidence,
                    "status": record.status,
                    "target_type": record.target_type,
                    "target_id": record.target_id,
                    "workspace_id": record.workspace_id,
                },
            },
            detection_id,
        )
        logger.info("Detection deleted", extra={"detection_id": detection_id})

    def get_statistics(
        self,
        workspace_id: Optional[str] = None,
        window_days: int = 7,
        now: Optional[datetime] = None,
    ) -> dict:
        return get_statistics(self.store, workspace_id, window_days, now)


def since_days(days: int, now: Optional[datetime] = None) -> datetime:
    return (now or utcnow()) - timedelta(days=days)


def build_engine(config: Settings = default_settings) -> SpamEngine:
    """Factory: wires SQLite-backed stores from settings."""
    rules = load_rules(config.RULES_FILE) if config.RULES_FILE else DEFAULT_RULES
    audit_chain = AuditChain(
        db_path=config.AUDIT_DB_PATH, engine_version=config.ENGINE_VERSION,
    )
    store = DetectionStore(db_path=config.DB_PATH, excerpt_length=config.EXCERPT_LENGTH)
    return SpamEngine(
        store=store,
        audit_chain=audit_chain,
        history=HistoryEnricher(
            store,
            lookback_days=config.HISTORY_LOOKBACK_DAYS,
        ),
        rules=rules,
        policy=EscalationPolicy(
            reject_above=config.REJECT_CONFIDENCE,
            review_above=config.REVIEW_CONFIDENCE,
        ),
    )
