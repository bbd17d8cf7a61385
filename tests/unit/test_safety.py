"""Tests for the post-generation safety filter."""

from __future__ import annotations

import pytest

from jyoti.guidance.safety import (
    DISCLAIMERS,
    FALLBACK_MESSAGE,
    SUPPORTIVE_NOTE,
    EmotionalState,
    SafetyFilter,
    SafetyOutcome,
    detect_emotional_state,
)
from jyoti.observability.prometheus_metrics import get_sample_value
from jyoti.observability.security_logging import InMemoryEventSink, SecurityEventType, SecurityLogger

MEDICAL_DISCLAIMER = DISCLAIMERS[0][2]


@pytest.fixture
def safety_filter(security_logger: SecurityLogger) -> SafetyFilter:
    return SafetyFilter(security_logger)


class TestSafeOutput:
    """Answers that need no change."""

    def test_plain_guidance_is_safe(self, safety_filter: SafetyFilter) -> None:
        text = "Namaste. Venus favours patience, and your sincere effort shapes what unfolds."

        result = safety_filter.filter(text)

        assert result.outcome is SafetyOutcome.SAFE
        assert result.text == text
        assert result.triggers == ()
        assert result.deliverable_text == text

    def test_refiltering_sanitized_text_is_stable(self, safety_filter: SafetyFilter) -> None:
        """Test a sanitized answer passes a second time unchanged."""
        first = safety_filter.filter("Your marriage is guaranteed to happen on Friday. Take your medicine.")

        second = safety_filter.filter(first.text)

        assert second.outcome is SafetyOutcome.SAFE
        assert second.text == first.text


class TestRewrites:
    """Deterministic predictions and fatalism are hedged."""

    def test_guaranteed_event_on_weekday(self, safety_filter: SafetyFilter) -> None:
        result = safety_filter.filter("Your marriage is guaranteed to happen on Friday.")

        assert result.outcome is SafetyOutcome.SANITIZED
        assert result.text == "Your marriage may happen during a favourable period."
        assert "guaranteed_event" in result.triggers

    def test_exact_dates(self, safety_filter: SafetyFilter) -> None:
        result = safety_filter.filter(
            "Look to March 3, 2027 for the wedding, or 12/05/2026, or perhaps 2026-05-12."
        )

        assert result.outcome is SafetyOutcome.SANITIZED
        assert "2027" not in result.text
        assert "2026" not in result.text
        assert result.text.count("a favourable period") == 3

    def test_certainty_language(self, safety_filter: SafetyFilter) -> None:
        result = safety_filter.filter("You will definitely find love, I am 100% certain.")

        assert result.text == "You may find love, I am quite possible."
        assert result.triggers == ("certainty",)

    def test_fatalistic_language(self, safety_filter: SafetyFilter) -> None:
        result = safety_filter.filter("You are doomed to fail. Nothing can change this.")

        assert "doomed" not in result.text
        assert "conscious effort can still shape this" in result.text
        assert result.triggers == ("fatalistic",)


class TestDisclaimers:
    """Disclaimers are appended once per category."""

    def test_repeated_keyword_gets_one_disclaimer(self, safety_filter: SafetyFilter) -> None:
        text = "Your prescription matters. Keep every prescription close, and honour each prescription."

        result = safety_filter.filter(text)

        assert result.outcome is SafetyOutcome.SANITIZED
        assert result.text.count(MEDICAL_DISCLAIMER) == 1
        assert result.text.endswith(MEDICAL_DISCLAIMER)
        assert result.triggers == ("medical_disclaimer",)

    def test_existing_disclaimer_not_repeated(self, safety_filter: SafetyFilter) -> None:
        text = f"Rest well after surgery.\n\n{MEDICAL_DISCLAIMER}"

        result = safety_filter.filter(text)

        assert result.outcome is SafetyOutcome.SAFE

    def test_categories_are_independent(self, safety_filter: SafetyFilter) -> None:
        result = safety_filter.filter("Think of your doctor and your lawyer before trading stocks.")

        assert result.triggers == ("medical_disclaimer", "financial_disclaimer", "legal_disclaimer")


class TestUnsafeOutput:
    """Answers that must be withheld."""

    @pytest.mark.parametrize(
        ("text", "reason"),
        [
            ("You should stop taking your medication and trust the planets.", "stop_medication"),
            ("These are guaranteed returns if you buy this stock now.", "financial_instruction"),
            ("Some say you should hurt yourself to be free.", "self_harm"),
        ],
    )
    def test_hard_blocks(
        self,
        safety_filter: SafetyFilter,
        event_sink: InMemoryEventSink,
        text: str,
        reason: str,
    ) -> None:
        result = safety_filter.filter(text, fingerprint="fp")

        assert result.outcome is SafetyOutcome.UNSAFE
        assert result.reason == reason
        assert result.text is None
        assert result.deliverable_text == FALLBACK_MESSAGE
        (event,) = event_sink.of_type(SecurityEventType.OUTPUT_UNSAFE)
        assert event.detail == {"reason": reason}

    @pytest.mark.parametrize("raw", ["", "   \n", None, 42])
    def test_empty_or_non_text_output(self, safety_filter: SafetyFilter, raw: object) -> None:
        result = safety_filter.filter(raw)

        assert result.outcome is SafetyOutcome.UNSAFE
        assert result.reason == "empty_output"

    def test_unsafe_outcome_is_counted(self, safety_filter: SafetyFilter) -> None:
        before = get_sample_value("jyoti_safety_outcomes_total", {"outcome": "unsafe"})

        safety_filter.filter("")

        assert get_sample_value("jyoti_safety_outcomes_total", {"outcome": "unsafe"}) == before + 1


class TestSupportiveNote:
    """Distressed users get a supportive closing note."""

    def test_note_for_distressed_user(
        self, safety_filter: SafetyFilter, event_sink: InMemoryEventSink
    ) -> None:
        result = safety_filter.filter("Saturn teaches patience.", EmotionalState.DISTRESSED)

        assert result.outcome is SafetyOutcome.SANITIZED
        assert result.text.endswith(SUPPORTIVE_NOTE)
        assert event_sink.of_type(SecurityEventType.OUTPUT_SANITIZED)[0].detail == {
            "triggers": ["supportive_note"]
        }

    def test_no_note_for_calm_user(self, safety_filter: SafetyFilter) -> None:
        result = safety_filter.filter("Saturn teaches patience.", EmotionalState.CALM)

        assert result.outcome is SafetyOutcome.SAFE

    def test_note_can_be_disabled(self) -> None:
        quiet = SafetyFilter(supportive_note_enabled=False)

        result = quiet.filter("Saturn teaches patience.", EmotionalState.DISTRESSED)

        assert result.outcome is SafetyOutcome.SAFE


class TestDisabledFilter:
    def test_passes_text_through(self) -> None:
        text = "Your marriage is guaranteed to happen on Friday."

        result = SafetyFilter(enabled=False).filter(text)

        assert result.outcome is SafetyOutcome.SAFE
        assert result.text == text

    def test_empty_output_still_unsafe(self) -> None:
        assert SafetyFilter(enabled=False).filter(" ").outcome is SafetyOutcome.UNSAFE


class TestDetectEmotionalState:
    @pytest.mark.parametrize(
        ("text", "state"),
        [
            ("I feel so anxious about my exams", EmotionalState.DISTRESSED),
            ("I am confused about my career", EmotionalState.CONCERNED),
            ("I feel calm and grateful today", EmotionalState.CALM),
            ("When is a good time to travel?", EmotionalState.NEUTRAL),
        ],
    )
    def test_states(self, text: str, state: EmotionalState) -> None:
        assert detect_emotional_state(text) is state
