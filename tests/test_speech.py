"""Tests for TTS text hygiene and read-back summaries."""

import pytest

from callflow.speech import (
    format_summary_as_natural_sentences,
    readable_field_name,
    sanitize_speech_output,
    validate_speech_output,
)


class TestSanitize:
    @pytest.mark.parametrize(
        "text,expected",
        [
            ("Thanks [pause 2s] for calling.", "Thanks for calling."),
            ("Let me check (brief pause) that for you.", "Let me check that for you."),
            ("One moment... pause... let me check.", "One moment... let me check."),
            ("Please read it SLOWLY for me.", "Please read it for me."),
            ("Wait 2-3 seconds then continue.", "Wait then continue."),
        ],
    )
    def test_strips_timing_instructions(self, text, expected):
        assert sanitize_speech_output(text) == expected

    def test_ordinary_speech_untouched(self):
        text = "Could you say that clearly? Thanks."
        assert sanitize_speech_output(text) == text

    def test_keeps_final_period(self):
        assert sanitize_speech_output("All done.").endswith(".")

    def test_empty(self):
        assert sanitize_speech_output("") == ""
        assert sanitize_speech_output(None) == ""


class TestValidate:
    def test_clean_text(self):
        assert validate_speech_output("Hello there.") == (True, [])

    def test_reports_violations(self):
        valid, violations = validate_speech_output("Hello [pause] there, breathe.")
        assert valid is False
        assert len(violations) >= 2


class TestSummary:
    def test_readable_field_name(self):
        assert readable_field_name("postCode") == "Post code"
        assert readable_field_name("phone_number") == "Phone number"

    def test_summary_sentences(self):
        summary = format_summary_as_natural_sentences({"name": "Jo", "postCode": "two zero zero zero"})
        assert summary == (
            "Here's a quick summary of what I have. Name: Jo. Post code: two zero zero zero."
        )

    def test_summary_skips_empty_values(self):
        summary = format_summary_as_natural_sentences({"name": "Jo", "email": None, "notes": ""})
        assert summary == "Here's a quick summary of what I have. Name: Jo."
