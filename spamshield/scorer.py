"""
Spam Score Calculator

Combines extracted signals and optional actor history into a 0-100
spam score, a capped confidence and the spam verdict.
Separated from signals.py for single-responsibility.

Score = sum of weighted contributions, in this order:
  - Spam phrases:        15 per distinct phrase
  - Suspicious patterns: 10 per match
  - Shortened URLs:      20 each
  - Excessive URLs:      10 per URL beyond 3
  - Repeated chars:       8 per run
  - Excessive capitals:  +15 when caps > 70%
  - Repeated words:       5 per penalty unit
  - Short with links:    +10
  - New account posting a lot:  +20 (history only)
  - Previous violations:        +15 (history only)
  - Multiple contact details:   +12
Capped at 100. Spam at 40 and above.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional

from spamshield.history import HistorySignal
from spamshield.signals import SignalSet

# --- Weights ---
PHRASE_WEIGHT = 15
PATTERN_WEIGHT = 10
SUSPICIOUS_URL_WEIGHT = 20
EXCESS_URL_WEIGHT = 10
REPEATED_CHAR_WEIGHT = 8
EXCESSIVE_CAPS_PENALTY = 15
REPEATED_WORD_WEIGHT = 5
SHORT_WITH_LINKS_PENALTY = 10
NEW_ACCOUNT_FREQUENCY_PENALTY = 20
PRIOR_VIOLATIONS_PENALTY = 15
CONTACT_INFO_PENALTY = 12

# --- Guards ---
MAX_FREE_URLS = 3
CAPS_LIMIT = 70.0
NEW_ACCOUNT_DAYS = 7
HIGH_FREQUENCY_SUBMISSIONS = 10
VIOLATION_LIMIT = 2
CONTACT_INFO_LIMIT = 1

# --- Verdict ---
SPAM_THRESHOLD = 40
MAX_SCORE = 100
MAX_CONFIDENCE = 0.95


@dataclass
class AnalysisResult:
    raw_score: int
    score: int
    confidence: float
    is_spam: bool
    reasons: list[str] = field(default_factory=list)
    signals: SignalSet = field(default_factory=SignalSet)
    breakdown: dict = field(default_factory=dict)


def _quote(items) -> str:
    return ", ".join(f'"{i}"' for i in items)


def aggregate(
    signals: SignalSet,
    history: Optional[HistorySignal] = None,
) -> AnalysisResult:
    """
    Score a SignalSet, optionally adjusted by the actor's history.

    Every rule that contributes appends exactly one reason, in the order
    the rules are listed in the module docstring. breakdown maps rule
    name to the points it added.
    """
    raw = 0
    reasons: list[str] = []
    breakdown: dict[str, int] = {}

    def add(rule: str, points: int, reason: str) -> None:
        nonlocal raw
        raw += points
        breakdown[rule] = points
        reasons.append(reason)

    if signals.phrase_matches > 0:
        add(
            "spam_phrases",
            signals.phrase_matches * PHRASE_WEIGHT,
            f"Contains {signals.phrase_matches} spam phrase(s): "
            f"{_quote(signals.matched_phrases)}",
        )

    if signals.pattern_matches > 0:
        samples = f": {_quote(signals.pattern_samples)}" if signals.pattern_samples else ""
        add(
            "suspicious_patterns",
            signals.pattern_matches * PATTERN_WEIGHT,
            f"Suspicious pattern(s) detected ({signals.pattern_matches} match(es)){samples}",
        )

    if signals.suspicious_url_count > 0:
        add(
            "shortened_urls",
            signals.suspicious_url_count * SUSPICIOUS_URL_WEIGHT,
            f"Suspicious shortened URL(s): {', '.join(signals.suspicious_urls)}",
        )

    if signals.url_count > MAX_FREE_URLS:
        add(
            "excessive_urls",
            (signals.url_count - MAX_FREE_URLS) * EXCESS_URL_WEIGHT,
            f"Excessive number of URLs: {signals.url_count}",
        )

    if signals.repeated_char_runs > 0:
        add(
            "repeated_characters",
            signals.repeated_char_runs * REPEATED_CHAR_WEIGHT,
            f"Repeated characters: {', '.join(signals.repeated_runs)}",
        )

    if signals.caps_percentage > CAPS_LIMIT:
        add(
            "excessive_capitals",
            EXCESSIVE_CAPS_PENALTY,
            f"Excessive capitals: {signals.caps_percentage:.1f}%",
        )

    if signals.repeated_word_penalty_units > 0:
        words = ", ".join(
            f'"{w}" ({n} times)' for w, n in signals.repeated_words.items()
        )
        add(
            "repeated_words",
            signals.repeated_word_penalty_units * REPEATED_WORD_WEIGHT,
            f"Repeated words: {words}",
        )

    if signals.short_with_links:
        add("short_with_links", SHORT_WITH_LINKS_PENALTY, "Very short content with URLs")

    if history is not None:
        if (
            history.recent_submission_count > HIGH_FREQUENCY_SUBMISSIONS
            and history.account_age_days < NEW_ACCOUNT_DAYS
        ):
            add(
                "new_account_frequency",
                NEW_ACCOUNT_FREQUENCY_PENALTY,
                "High posting frequency from new account",
            )
        if history.prior_violation_count > VIOLATION_LIMIT:
            add(
                "prior_violations",
                PRIOR_VIOLATIONS_PENALTY,
                "User has previous violations",
            )

    if signals.contact_info_count > CONTACT_INFO_LIMIT:
        add(
            "contact_info",
            CONTACT_INFO_PENALTY,
            "Multiple contact details detected",
        )

    score = max(0, min(raw, MAX_SCORE))
    confidence = min(score / 100, MAX_CONFIDENCE)

    return AnalysisResult(
        raw_score=raw,
        score=score,
        confidence=confidence,
        is_spam=score >= SPAM_THRESHOLD,
        reasons=reasons,
        signals=signals,
        breakdown=breakdown,
    )
