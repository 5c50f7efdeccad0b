"""
Spam Rules — Detection Lists as Data

The phrase list, structural patterns, link-shortener domains and
repetition limits consumed by the signal extractors. Nothing in here
is scoring logic: weights and the spam threshold live in scorer.py.

The built-in rule set is DEFAULT_RULES. A replacement can be loaded
from JSON with load_rules(), using the same field names:

    {
      "phrases": ["make money fast", ...],
      "patterns": [{"id": "DISCOUNT", "name": "...", "regex": "..."}],
      "shortener_domains": ["bit.ly", ...],
      "repetition": {"max_repeated_chars": 5, "max_repeated_words": 3, "min_word_length": 4}
    }
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass, field
from pathlib import Path


@dataclass(frozen=True)
class SuspiciousPattern:
    """A structural pattern. Every match it finds counts once."""
    id: str
    name: str
    regex: str


@dataclass(frozen=True)
class RepetitionLimits:
    max_repeated_chars: int = 5       # "!!!!!" or "?????"
    max_repeated_words: int = 3       # "deal deal deal deal"
    min_word_length: int = 4          # shorter words are never counted


@dataclass(frozen=True)
class SpamRules:
    phrases: tuple[str, ...]
    patterns: tuple[SuspiciousPattern, ...]
    shortener_domains: tuple[str, ...]
    repetition: RepetitionLimits = field(default_factory=RepetitionLimits)

    def compiled_patterns(self) -> list[tuple[SuspiciousPattern, re.Pattern[str]]]:
        return [(p, _compile(p.regex)) for p in self.patterns]

    def url_regex(self) -> re.Pattern[str]:
        """Scheme URLs, plus bare links on a known shortener (bit.ly/abc)."""
        domains = "|".join(re.escape(d) for d in self.shortener_domains)
        if not domains:
            return re.compile(r"https?://[^\s]+", re.IGNORECASE)
        return re.compile(
            rf"https?://[^\s]+|(?<![\w@./:-])(?:www\.)?(?:{domains})/[^\s]*",
            re.IGNORECASE,
        )

    def to_dict(self) -> dict:
        return {
            "phrases": list(self.phrases),
            "patterns": [
                {"id": p.id, "name": p.name, "regex": p.regex}
                for p in self.patterns
            ],
            "shortener_domains": list(self.shortener_domains),
            "repetition": {
                "max_repeated_chars": self.repetition.max_repeated_chars,
                "max_repeated_words": self.repetition.max_repeated_words,
                "min_word_length": self.repetition.min_word_length,
            },
        }


def _compile(regex: str) -> re.Pattern[str]:
    return re.compile(regex, re.IGNORECASE)


# ============================================================
# BUILT-IN RULES
# ============================================================

SPAM_PHRASES: tuple[str, ...] = (
    "make money fast",
    "work from home",
    "get rich quick",
    "no experience required",
    "limited time offer",
    "act now",
    "urgent",
    "guaranteed income",
    "free trial",
    "click here now",
    "visit our website",
    "special promotion",
    "exclusive deal",
    "earn $",
    "make $",
    "instant cash",
    "work online",
    "home business",
)

SUSPICIOUS_PATTERNS: tuple[SuspiciousPattern, ...] = (
    SuspiciousPattern(
        id="DISCOUNT",
        name="Percentage discount",
        regex=r"\b\d+\s*%\s*(?:off|discount|savings?)\b",
    ),
    SuspiciousPattern(
        id="MONEY_PER_TIME",
        name="Money per time period",
        regex=r"\$\d+(?:\.\d{2})?\s*(?:per|/)\s*(?:hour|day|week|month)",
    ),
    SuspiciousPattern(
        id="CALL_NUMBER",
        name="Call-this-number",
        regex=r"call\s*\d{3}[-.\s]?\d{3}[-.\s]?\d{4}",
    ),
    SuspiciousPattern(
        id="PHARMA",
        name="Pharmaceutical keyword",
        regex=r"\b(?:viagra|cialis|pharmacy|pills?)\b",
    ),
    SuspiciousPattern(
        id="LOTTERY",
        name="Lottery or prize keyword",
        regex=r"\b(?:lottery|winner|prize|congratulations)\b",
    ),
    SuspiciousPattern(
        id="SOFTWARE_PIRACY",
        name="Free/cracked software",
        regex=r"\b(?:download|install|software|app)\b.*\b(?:free|crack|keygen)\b",
    ),
)

SHORTENER_DOMAINS: tuple[str, ...] = (
    "bit.ly",
    "tinyurl.com",
    "goo.gl",
    "t.co",
    "short.link",
    "tiny.cc",
    "ow.ly",
    "buff.ly",
    "is.gd",
    "su.pr",
)

DEFAULT_RULES = SpamRules(
    phrases=SPAM_PHRASES,
    patterns=SUSPICIOUS_PATTERNS,
    shortener_domains=SHORTENER_DOMAINS,
)


def rules_from_dict(data: dict) -> SpamRules:
    """Build a rule set; omitted sections fall back to the built-in ones."""
    patterns = DEFAULT_RULES.patterns
    if "patterns" in data:
        try:
            patterns = tuple(
                SuspiciousPattern(id=p["id"], name=p.get("name", p["id"]), regex=p["regex"])
                for p in data["patterns"]
            )
        except (KeyError, TypeError) as e:
            raise ValueError(f"Invalid pattern entry, missing or malformed {e}") from e
        for p in patterns:
            try:
                _compile(p.regex)
            except re.error as e:
                raise ValueError(f"Invalid regex for pattern {p.id}: {e}") from e

    repetition = DEFAULT_RULES.repetition
    if "repetition" in data:
        try:
            repetition = RepetitionLimits(**data["repetition"])
        except TypeError as e:
            raise ValueError(f"Invalid repetition limits: {e}") from e

    return SpamRules(
        phrases=tuple(p.lower() for p in data.get("phrases", DEFAULT_RULES.phrases)),
        patterns=patterns,
        shortener_domains=tuple(
            d.lower() for d in data.get("shortener_domains", DEFAULT_RULES.shortener_domains)
        ),
        repetition=repetition,
    )


def load_rules(path: str | Path) -> SpamRules:
    """Load a rule set from a JSON file."""
    return rules_from_dict(json.loads(Path(path).read_text()))
