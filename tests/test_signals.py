"""
Signal Extractor Tests

Every extractor rule in isolation, plus the rule-set loader that feeds
them. No I/O beyond tmp_path JSON files.
"""

from __future__ import annotations

import json

import pytest

from spamshield.rules import DEFAULT_RULES, load_rules, rules_from_dict
from spamshield.signals import SignalSet, caps_percentage, extract_signals, is_shortener


class TestPhrases:

    def test_distinct_phrases_counted_once(self):
        s = extract_signals("Act now! This is URGENT. act now, act now.")
        assert s.phrase_matches == 2
        assert s.matched_phrases == ["act now", "urgent"]

    def test_case_insensitive(self):
        s = extract_signals("MAKE MONEY FAST")
        assert s.phrase_matches == 1

    def test_clean_text_has_no_phrases(self):
        assert extract_signals("See you at the meetup on Friday").phrase_matches == 0


class TestPatterns:

    def test_discount_and_rate(self):
        s = extract_signals("Get 50% off today and earn big at $20 per hour")
        # DISCOUNT + MONEY_PER_TIME
        assert s.pattern_matches == 2
        assert "50% off" in s.pattern_samples

    def test_each_match_counts(self):
        s = extract_signals("lottery lottery winner")
        assert s.pattern_matches == 3
        assert s.pattern_samples == ["lottery"]

    def test_pharma(self):
        assert extract_signals("cheap pills from our pharmacy").pattern_matches == 2

    def test_software_piracy(self):
        assert extract_signals("download the software for free").pattern_matches == 1


class TestUrls:

    def test_counts_all_and_shorteners(self):
        s = extract_signals("see https://example.com/docs and http://bit.ly/abc")
        assert s.url_count == 2
        assert s.suspicious_url_count == 1
        assert s.suspicious_urls == ["http://bit.ly/abc"]

    def test_bare_shortener_is_a_url(self):
        s = extract_signals("grab it at bit.ly/x before it is gone")
        assert s.url_count == 1
        assert s.suspicious_url_count == 1

    def test_bare_ordinary_domain_is_not_a_url(self):
        assert extract_signals("read example.com/about please").url_count == 0

    def test_shortener_matches_host_not_substring(self):
        assert is_shortener("https://t.co/abc") is True
        assert is_shortener("https://www.bit.ly/abc") is True
        assert is_shortener("https://microsoft.com/download") is False
        assert is_shortener("https://habit.ly.example.org/") is False

    def test_email_domain_is_not_a_bare_link(self):
        assert extract_signals("write to me@bit.ly/x").url_count == 0


class TestRepetition:

    def test_character_runs(self):
        s = extract_signals("Wow!!!!! Sooooo good")
        assert s.repeated_char_runs == 2
        assert s.repeated_runs == ["!!!!!", "ooooo"]

    def test_four_repeats_are_not_a_run(self):
        assert extract_signals("Nice!!!!").repeated_char_runs == 0

    def test_word_penalty_units_are_cumulative(self):
        s = extract_signals("deal deal deal deal deal free free free free")
        # deal: 5 - 3 = 2, free: 4 - 3 = 1
        assert s.repeated_word_penalty_units == 3
        assert s.repeated_words == {"deal": 5, "free": 4}

    def test_short_words_never_count(self):
        s = extract_signals("buy buy buy buy buy buy")
        assert s.repeated_word_penalty_units == 0

    def test_three_occurrences_allowed(self):
        assert extract_signals("deal deal deal").repeated_word_penalty_units == 0


class TestCapitals:

    def test_half_caps(self):
        assert caps_percentage("HELLO world") == pytest.approx(50.0)

    def test_no_letters_is_zero(self):
        assert caps_percentage("12345 !!! ???") == 0.0
        assert caps_percentage("") == 0.0

    def test_ignores_non_letters(self):
        assert caps_percentage("ABC 123") == pytest.approx(100.0)


class TestContactInfo:

    def test_emails_and_phones_summed(self):
        s = extract_signals("mail a@b.com or b@c.org, call 555-123-4567")
        assert s.email_count == 2
        assert s.phone_count == 1
        assert s.contact_info_count == 3

    def test_single_email(self):
        assert extract_signals("reach me at someone@example.com").contact_info_count == 1


class TestShortWithLinks:

    def test_short_text_with_link(self):
        assert extract_signals("bit.ly/abc").short_with_links is True

    def test_long_text_with_link(self):
        s = extract_signals("https://example.com/a/rather/long/path here")
        assert s.short_with_links is False

    def test_short_text_without_link(self):
        assert extract_signals("hi there").short_with_links is False


class TestEmptyInput:

    def test_empty_string_is_all_zero(self):
        assert extract_signals("") == SignalSet()

    def test_none_is_tolerated(self):
        assert extract_signals(None) == SignalSet()


class TestRules:

    def test_default_lists_present(self):
        assert "make money fast" in DEFAULT_RULES.phrases
        assert "bit.ly" in DEFAULT_RULES.shortener_domains
        assert {p.id for p in DEFAULT_RULES.patterns} >= {"DISCOUNT", "LOTTERY", "PHARMA"}

    def test_custom_phrases_replace_defaults(self):
        rules = rules_from_dict({"phrases": ["Crypto Giveaway"]})
        assert rules.phrases == ("crypto giveaway",)
        assert rules.patterns == DEFAULT_RULES.patterns
        s = extract_signals("huge crypto giveaway today", rules)
        assert s.phrase_matches == 1

    def test_swapped_rules_change_extraction_only(self):
        rules = rules_from_dict({"phrases": [], "patterns": [], "shortener_domains": []})
        s = extract_signals("make money fast at bit.ly/x lottery", rules)
        assert s.phrase_matches == 0
        assert s.pattern_matches == 0
        assert s.url_count == 0

    def test_invalid_regex_rejected(self):
        with pytest.raises(ValueError, match="BROKEN"):
            rules_from_dict({"patterns": [{"id": "BROKEN", "regex": "(unclosed"}]})

    @pytest.mark.parametrize("entry", [{"id": "NO_REGEX"}, {"regex": "x+"}, "LOTTERY"])
    def test_malformed_pattern_rejected(self, entry):
        with pytest.raises(ValueError, match="Invalid pattern entry"):
            rules_from_dict({"patterns": [entry]})

    def test_unknown_repetition_key_rejected(self):
        with pytest.raises(ValueError, match="Invalid repetition limits"):
            rules_from_dict({"repetition": {"max_chars": 5}})

    def test_load_from_file(self, tmp_path):
        path = tmp_path / "rules.json"
        path.write_text(json.dumps({
            "phrases": ["limited stock"],
            "repetition": {"max_repeated_chars": 3},
        }))
        rules = load_rules(path)
        assert rules.phrases == ("limited stock",)
        assert rules.repetition.max_repeated_chars == 3
        assert extract_signals("wow!!!", rules).repeated_char_runs == 1

    def test_to_dict_is_json_ready(self):
        data = DEFAULT_RULES.to_dict()
        assert json.loads(json.dumps(data))["shortener_domains"][0] == "bit.ly"
