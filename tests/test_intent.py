"""
Tests for the intent classification waterfall.
"""

import pytest

from dropmind.core.intent import (
    ARTICLE_FORMAT,
    BOOKMARK,
    DEEP_SUMMARY,
    INSPIRATION,
    INTENTS,
    MEETING,
    READ_LATER,
    STUDY_PACK,
    TODO,
    UnknownIntentError,
    classify,
    get_alternatives,
    get_intent,
    heuristic_classify,
    needs_confirmation,
    rule_match,
)
from dropmind.core.types import ClassificationResult

MEDIUM_PLAIN = "The quick brown fox jumps over the lazy dog. " * 4
MEDIUM_MEETING = "We had a meeting about the roadmap. " * 5
MEDIUM_THOUGHT = "maybe we could try a new layout for the home page " * 3


class TestCatalog:
    """Test the intent catalog and lookups."""

    def test_catalog_has_unique_keys(self):
        assert len(INTENTS) == 8
        assert len({intent.pipeline_id for intent in INTENTS.values()}) == 8

    def test_lookup_by_key_or_pipeline_id(self):
        """Test both naming forms resolve to the same intent."""
        assert get_intent("read-later") is READ_LATER
        assert get_intent("read_later") is READ_LATER

    def test_unknown_intent(self):
        """Test unknown names raise a KeyError subclass."""
        with pytest.raises(UnknownIntentError):
            get_intent("nope")
        with pytest.raises(KeyError):
            get_intent("")


class TestRuleMatch:
    """Test stage 1 link rules."""

    @pytest.mark.parametrize(
        "url",
        [
            "https://www.youtube.com/watch?v=dQw4w9WgXcQ",
            "https://youtu.be/dQw4w9WgXcQ",
            "https://www.youtube.com/shorts/dQw4w9WgXcQ",
        ],
    )
    def test_youtube(self, url):
        """Test YouTube links go to the study pack with the highest confidence."""
        result = classify(url)
        assert result.intent is STUDY_PACK
        assert result.confidence == 0.98
        assert result.level == 1

    def test_youtube_is_deterministic(self):
        url = "https://www.youtube.com/watch?v=dQw4w9WgXcQ"
        assert classify(url) == classify(url)

    def test_bilibili(self):
        result = classify("https://www.bilibili.com/video/BV1xx411c7mD")
        assert result.intent is STUDY_PACK
        assert result.confidence == 0.95

    def test_pdf(self):
        result = classify("https://arxiv.org/pdf/2301.00001.pdf")
        assert result.intent is DEEP_SUMMARY
        assert result.confidence == 0.92
        assert result.level == 1

    def test_social(self):
        """Test X links are bookmarked without confirmation."""
        result = classify("https://x.com/user/status/1")
        assert result.intent is BOOKMARK
        assert result.confidence == 0.90
        assert result.level == 1
        assert result.reason == "Twitter/X URL detected"
        assert not needs_confirmation(result)

    def test_host_must_start_at_boundary(self):
        """Test a host merely ending in x.com is not treated as X."""
        result = classify("https://www.dropbox.com/s/abc")
        assert result.intent is BOOKMARK
        assert result.reason == "Generic URL -> bookmark"

    @pytest.mark.parametrize(
        "url",
        [
            "https://medium.com/@someone/my-post-123",
            "https://example.com/blog/hello-world",
            "https://engineering.blog.example.com/scaling",
        ],
    )
    def test_article_links(self, url):
        result = classify(url)
        assert result.intent is READ_LATER
        assert result.confidence == 0.90

    def test_generic_link(self):
        result = classify("https://example.com")
        assert result.intent is BOOKMARK
        assert result.level == 1

    def test_text_with_embedded_link_is_not_a_link(self):
        """Test generic URL rules require the whole input to be the link."""
        assert rule_match("check out https://example.com later") is None


class TestHeuristics:
    """Test stage 2 text heuristics."""

    def test_short_plain_text(self):
        result = classify("x" * 50)
        assert result.intent is INSPIRATION
        assert result.confidence == 0.90
        assert result.level == 2

    @pytest.mark.parametrize("text", ["remind me to call the bank", "明天提交报告", "帮我写一封邮件", "TODO: fix the build"])
    def test_short_todo(self, text):
        """Test short texts with deadlines or imperatives become to-dos."""
        result = classify(text)
        assert result.intent is TODO
        assert result.confidence == 0.88

    @pytest.mark.parametrize("text", ["Mastodon is neat", "I love mastodon", "photodocument", "a todo-ish mood"])
    def test_todo_letters_inside_words_are_not_keywords(self, text):
        """Test "todo" only counts as the upper-case TODO token."""
        result = classify(text)
        assert result.intent is INSPIRATION
        assert result.confidence == 0.90

    def test_deadline_matches_in_any_case(self):
        assert classify("Deadline is friday").intent is TODO

    def test_medium_meeting(self):
        """Test a meeting note sits exactly at the threshold and is not escalated."""
        result = classify(MEDIUM_MEETING)
        assert result.intent is MEETING
        assert result.confidence == 0.85
        assert not needs_confirmation(result)

    def test_medium_thought(self):
        result = classify(MEDIUM_THOUGHT)
        assert result.intent is INSPIRATION
        assert result.confidence == 0.82
        assert needs_confirmation(result)

    def test_medium_plain(self):
        result = classify(MEDIUM_PLAIN)
        assert result.intent is DEEP_SUMMARY
        assert result.confidence == 0.80

    def test_long_text(self):
        result = heuristic_classify("word " * 200)
        assert result.intent is ARTICLE_FORMAT
        assert result.confidence == 0.92

    @pytest.mark.parametrize("text", [None, "", "   ", "\n"])
    def test_empty_input(self, text):
        assert classify(text) is None


class TestConfirmationPolicy:
    """Test the confidence threshold and alternatives."""

    def _result(self, intent, confidence):
        return ClassificationResult(intent=intent, confidence=confidence, level=2, reason="test")

    def test_threshold_is_strict(self):
        assert not needs_confirmation(self._result(MEETING, 0.85))
        assert needs_confirmation(self._result(MEETING, 0.84))

    def test_alternatives_in_order(self):
        assert get_alternatives(self._result(MEETING, 0.85)) == [DEEP_SUMMARY, TODO]
        assert get_alternatives(self._result(BOOKMARK, 0.9)) == [READ_LATER, DEEP_SUMMARY, INSPIRATION]

    def test_alternatives_never_include_selected(self):
        for intent in INTENTS.values():
            alternatives = get_alternatives(self._result(intent, 0.5))
            assert intent not in alternatives
            assert 0 < len(alternatives) <= 3
