"""
Escalation Decider

Maps a verdict and its confidence to a recommended moderation action.
The recommendation is advisory: enacting it is the engine's job, and
only when the caller asked for it and is allowed to.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from spamshield.scorer import AnalysisResult


class Recommendation(str, Enum):
    APPROVE = "APPROVE"
    REVIEW = "REVIEW"
    REJECT = "REJECT"


@dataclass(frozen=True)
class EscalationPolicy:
    """Both bounds are strict: confidence must exceed them."""
    reject_above: float = 0.7
    review_above: float = 0.4

    def __post_init__(self):
        if not 0.0 <= self.review_above <= self.reject_above <= 1.0:
            raise ValueError(
                "Escalation thresholds must satisfy 0 <= review <= reject <= 1, "
                f"got review={self.review_above} reject={self.reject_above}"
            )


DEFAULT_POLICY = EscalationPolicy()


def decide(
    result: AnalysisResult,
    policy: EscalationPolicy = DEFAULT_POLICY,
) -> Recommendation:
    # Thresholds are configurable, so check both every time
    if result.is_spam and result.confidence > policy.reject_above:
        return Recommendation.REJECT
    if result.is_spam and result.confidence > policy.review_above:
        return Recommendation.REVIEW
    return Recommendation.APPROVE
