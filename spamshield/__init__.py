"""
SpamShield — Heuristic Spam Moderation Engine

Scores community submissions for spam with fixed, explainable rules and
keeps a human-reviewable record of every verdict.

Public API:
  - extract_signals:  Pure text scan into countable signals
  - aggregate:        Weighted 0-100 score, capped confidence, spam verdict
  - decide:           APPROVE / REVIEW / REJECT recommendation
  - HistoryEnricher:  Actor history lookup (account age, activity, violations)
  - DetectionStore:   Detection records and their review lifecycle
  - get_statistics:   Accuracy and daily trend over a window
  - AuditChain:       SHA-256 hash-chained activity log
  - SpamEngine:       Orchestrates analyze / review / list / delete
  - build_engine:     SQLite-backed engine wired from settings

Usage:
    from spamshield import build_engine
    engine = build_engine()
    engine.analyze("Make money fast! bit.ly/x", content_type="POST")
"""

__version__ = "1.0.0"

from spamshield.rules import SpamRules, SuspiciousPattern, DEFAULT_RULES, load_rules
from spamshield.signals import SignalSet, extract_signals
from spamshield.scorer import AnalysisResult, aggregate, SPAM_THRESHOLD
from spamshield.escalation import Recommendation, EscalationPolicy, decide
from spamshield.history import HistorySignal, HistoryEnricher, ActivityStore
from spamshield.detections import (
    DetectionRecord,
    DetectionStatus,
    DetectionStore,
    ReviewEntry,
)
from spamshield.reporting import get_statistics
from spamshield.audit import AuditChain
from spamshield.moderation import ModerationGateway, AuditModerationGateway
from spamshield.engine import SpamEngine, build_engine
from spamshield.errors import (
    SpamShieldError,
    ValidationError,
    NotFound,
    DependencyError,
    ConflictError,
)

__all__ = [
    "SpamRules",
    "SuspiciousPattern",
    "DEFAULT_RULES",
    "load_rules",
    "SignalSet",
    "extract_signals",
    "AnalysisResult",
    "aggregate",
    "SPAM_THRESHOLD",
    "Recommendation",
    "EscalationPolicy",
    "decide",
    "HistorySignal",
    "HistoryEnricher",
    "ActivityStore",
    "DetectionRecord",
    "DetectionStatus",
    "DetectionStore",
    "ReviewEntry",
    "get_statistics",
    "AuditChain",
    "ModerationGateway",
    "AuditModerationGateway",
    "SpamEngine",
    "build_engine",
    "SpamShieldError",
    "ValidationError",
    "NotFound",
    "DependencyError",
    "ConflictError",
]
