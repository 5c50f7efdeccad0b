"""
Signal Extractors

Pure functions that scan raw text and emit countable, named signals.
No I/O, no state, no exceptions on odd input: an empty string yields
an all-zero SignalSet.

Every rule runs on every call. Overlaps are not deduplicated; a
shortened URL counts as suspicious AND toward the total URL count.
"""

from __future__ import annotations

import re
from collections import Counter
from dataclasses import dataclass, field, asdict
from urllib.parse import urlsplit

from spamshield.rules import DEFAULT_RULES, SpamRules

EMAIL_RE = re.compile(r"[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}")
PHONE_RE = re.compile(r"\b\d{3}[-.]?\d{3}[-.]?\d{4}\b")
UPPER_RE = re.compile(r"[A-Z]")
LETTER_RE = re.compile(r"[A-Za-z]")

# Content shorter than this that carries a link is "short with links"
SHORT_CONTENT_LENGTH = 20


@dataclass
class SignalSet:
    """Countable observations about one piece of text."""
    phrase_matches: int = 0
    pattern_matches: int = 0
    url_count: int = 0
    suspicious_url_count: int = 0
    repeated_char_runs: int = 0
    caps_percentage: float = 0.0
    repeated_word_penalty_units: int = 0
    contact_info_count: int = 0
    short_with_links: bool = False

    # Evidence behind the counts (used for reasons and stored metadata)
    matched_phrases: list[str] = field(default_factory=list)
    pattern_samples: list[str] = field(default_factory=list)
    suspicious_urls: list[str] = field(default_factory=list)
    repeated_runs: list[str] = field(default_factory=list)
    repeated_words: dict[str, int] = field(default_factory=dict)
    email_count: int = 0
    phone_count: int = 0
    content_length: int = 0
    word_count: int = 0

    def to_dict(self) -> dict:
        return asdict(self)


def extract_signals(text: str, rules: SpamRules = DEFAULT_RULES) -> SignalSet:
    """Run every extractor over text and collect the results."""
    text = text or ""
    signals = SignalSet(content_length=len(text))

    _match_phrases(text, rules, signals)
    _match_patterns(text, rules, signals)
    urls = _analyze_urls(text, rules, signals)
    _repeated_chars(text, rules, signals)
    signals.caps_percentage = caps_percentage(text)
    _repeated_words(text, rules, signals)
    _contact_info(text, signals)
    signals.short_with_links = len(text) < SHORT_CONTENT_LENGTH and len(urls) > 0

    return signals


def caps_percentage(text: str) -> float:
    """Share of A-Z among A-Za-z, 0-100. Zero when there are no letters."""
    letters = len(LETTER_RE.findall(text))
    if letters == 0:
        return 0.0
    return 100.0 * len(UPPER_RE.findall(text)) / letters


def _match_phrases(text: str, rules: SpamRules, signals: SignalSet) -> None:
    # One hit per distinct phrase, however often it occurs
    lowered = text.lower()
    for phrase in rules.phrases:
        if phrase in lowered:
            signals.matched_phrases.append(phrase)
    signals.phrase_matches = len(signals.matched_phrases)


def _match_patterns(text: str, rules: SpamRules, signals: SignalSet) -> None:
    for _pattern, regex in rules.compiled_patterns():
        found = [m.group(0) for m in regex.finditer(text)]
        if found:
            signals.pattern_matches += len(found)
            signals.pattern_samples.append(found[0])


def _host(url: str) -> str:
    if "://" not in url:
        url = "http://" + url
    try:
        host = urlsplit(url).hostname or ""
    except ValueError:
        return ""
    host = host.lower()
    return host[4:] if host.startswith("www.") else host


def is_shortener(url: str, rules: SpamRules = DEFAULT_RULES) -> bool:
    host = _host(url)
    return any(
        host == domain or host.endswith("." + domain)
        for domain in rules.shortener_domains
    )


def _analyze_urls(text: str, rules: SpamRules, signals: SignalSet) -> list[str]:
    urls = rules.url_regex().findall(text)
    signals.url_count = len(urls)
    for url in urls:
        if is_shortener(url, rules):
            signals.suspicious_urls.append(url)
    signals.suspicious_url_count = len(signals.suspicious_urls)
    return urls


def _repeated_chars(text: str, rules: SpamRules, signals: SignalSet) -> None:
    run = max(rules.repetition.max_repeated_chars - 1, 1)
    runs = [m.group(0) for m in re.finditer(rf"(.)\1{{{run},}}", text)]
    signals.repeated_runs = runs
    signals.repeated_char_runs = len(runs)


def _repeated_words(text: str, rules: SpamRules, signals: SignalSet) -> None:
    words = text.lower().split()
    signals.word_count = len(words)

    limit = rules.repetition.max_repeated_words
    counts = Counter(w for w in words if len(w) >= rules.repetition.min_word_length)
    for word, count in counts.items():
        if count > limit:
            signals.repeated_words[word] = count
            signals.repeated_word_penalty_units += count - limit


def _contact_info(text: str, signals: SignalSet) -> None:
    signals.email_count = len(EMAIL_RE.findall(text))
    signals.phone_count = len(PHONE_RE.findall(text))
    signals.contact_info_count = signals.email_count + signals.phone_count
