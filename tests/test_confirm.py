"""
Tests for confirmation escalation and routing.
"""

import pytest

from dropmind.core.confirm import (
    CONFIRMED_REASON,
    confirm,
    escalate,
    manual_override,
    match_choice,
    route,
)
from dropmind.core.intent import (
    ARTICLE_FORMAT,
    BOOKMARK,
    DEEP_SUMMARY,
    INSPIRATION,
    READ_LATER,
    STUDY_PACK,
    TODO,
    classify,
)

YOUTUBE_URL = "https://www.youtube.com/watch?v=dQw4w9WgXcQ"
UNCERTAIN_TEXT = "The quick brown fox jumps over the lazy dog. " * 4

DEEP_SUMMARY_OPTIONS = [DEEP_SUMMARY, ARTICLE_FORMAT, INSPIRATION, BOOKMARK]


class TestEscalate:
    """Test when a classification is escalated to the user."""

    def test_certain_result_not_escalated(self):
        decision = escalate(classify(YOUTUBE_URL))
        assert not decision.needs_confirmation
        assert decision.options == [STUDY_PACK]

    def test_uncertain_result_offers_alternatives(self):
        """Test the primary intent comes first, followed by its alternatives."""
        decision = escalate(classify(UNCERTAIN_TEXT))

        assert decision.needs_confirmation
        assert decision.options == DEEP_SUMMARY_OPTIONS
        assert decision.primary is DEEP_SUMMARY
        assert decision.alternatives == [ARTICLE_FORMAT, INSPIRATION, BOOKMARK]

    def test_confirmed_result_never_escalated(self):
        decision = escalate(confirm("todo"))
        assert not decision.needs_confirmation


class TestConfirm:
    """Test turning a human choice into a final result."""

    def test_confirm_by_key_intent_or_pipeline(self):
        for choice in ("read-later", "read_later", READ_LATER):
            result = confirm(choice)
            assert result.intent is READ_LATER
            assert result.level == 3
            assert result.confidence == 1.0
            assert result.reason == CONFIRMED_REASON

    def test_manual_override(self):
        result = manual_override("deep_summary")
        assert result.intent is DEEP_SUMMARY
        assert result.level == 3
        assert result.confidence == 1.0


class TestMatchChoice:
    """Test resolving typed answers to offered options."""

    def test_option_number(self):
        assert match_choice("2", DEEP_SUMMARY_OPTIONS) is ARTICLE_FORMAT
        assert match_choice(" 1 ", DEEP_SUMMARY_OPTIONS) is DEEP_SUMMARY

    @pytest.mark.parametrize("answer", ["0", "9", "", "   ", "xyz"])
    def test_no_match(self, answer):
        assert match_choice(answer, DEEP_SUMMARY_OPTIONS) is None

    def test_key_and_pipeline_id(self):
        assert match_choice("article-format", DEEP_SUMMARY_OPTIONS) is ARTICLE_FORMAT
        assert match_choice("article_format", DEEP_SUMMARY_OPTIONS) is ARTICLE_FORMAT

    def test_label_and_partial_label(self):
        """Test labels match case-insensitively and without their emoji."""
        assert match_choice("Read later", [BOOKMARK, READ_LATER]) is READ_LATER
        assert match_choice("summary", DEEP_SUMMARY_OPTIONS) is DEEP_SUMMARY

    def test_close_typo(self):
        assert match_choice("bookmrk", DEEP_SUMMARY_OPTIONS) is BOOKMARK


class TestRoute:
    """Test routing from input to pipeline id."""

    def test_empty_input(self):
        assert route("") is None
        assert route("   ") is None

    def test_certain_input_dispatched_without_asking(self):
        def chooser(decision):
            raise AssertionError("chooser must not be called")

        decision = route(YOUTUBE_URL, chooser=chooser)
        assert decision.pipeline_id == "study_pack"
        assert decision.dispatched
        assert not decision.confirmed

    def test_uncertain_input_without_chooser(self):
        """Test uncertain results are routed as classified when nobody can be asked."""
        decision = route(UNCERTAIN_TEXT)
        assert decision.pipeline_id == "deep_summary"
        assert not decision.confirmed
        assert decision.result.level == 2

    def test_chooser_picks_alternative(self):
        asked = []

        def chooser(decision):
            asked.append(decision)
            return ARTICLE_FORMAT

        decision = route(UNCERTAIN_TEXT, chooser=chooser)

        assert len(asked) == 1
        assert asked[0].options == DEEP_SUMMARY_OPTIONS
        assert decision.pipeline_id == "article_format"
        assert decision.confirmed
        assert decision.result.level == 3
        assert decision.result.confidence == 1.0

    def test_dismissed_confirmation_dispatches_nothing(self):
        decision = route(UNCERTAIN_TEXT, chooser=lambda decision: None)
        assert decision.pipeline_id is None
        assert not decision.dispatched
        assert decision.result.intent is DEEP_SUMMARY

    def test_text_is_kept(self):
        decision = route("remind me to call the bank")
        assert decision.text == "remind me to call the bank"
        assert decision.result.intent is TODO
