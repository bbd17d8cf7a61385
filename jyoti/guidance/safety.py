"""Post-generation safety filter.

Every generated answer ends in exactly one of three outcomes:

- ``safe``: delivered unchanged
- ``sanitized``: deterministic rewrites and/or disclaimers applied, delivered
- ``unsafe``: withheld; the caller delivers ``FALLBACK_MESSAGE`` instead

Rewrites replace deterministic predictions, exact calendar dates and
fatalistic phrasing with hedged language. Each disclaimer category is
appended at most once however often its keywords appear.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING

from jyoti.observability.prometheus_metrics import record_safety_outcome

if TYPE_CHECKING:
    from jyoti.observability.security_logging import SecurityLogger

logger = logging.getLogger(__name__)

FALLBACK_MESSAGE = (
    "I understand your question, but I cannot provide that type of guidance. "
    "Please consult qualified professionals for medical, legal, or financial matters. "
    "How else can I help you on your spiritual journey?"
)

SUPPORTIVE_NOTE = (
    "Remember, you have the power to shape your destiny. "
    "This guidance is meant to support you, not to limit you."
)


class SafetyOutcome(str, Enum):
    SAFE = "safe"
    SANITIZED = "sanitized"
    UNSAFE = "unsafe"


class EmotionalState(str, Enum):
    CALM = "calm"
    CONCERNED = "concerned"
    DISTRESSED = "distressed"
    NEUTRAL = "neutral"


_DISTRESSED = ("worried", "anxious", "stressed", "depressed", "hopeless", "desperate")
_CONCERNED = ("concerned", "uncertain", "confused", "unsure", "questioning")
_CALM = ("calm", "peaceful", "grateful")


def detect_emotional_state(text: str) -> EmotionalState:
    """Keyword heuristic for the user's emotional tone.

    Examples:
        >>> detect_emotional_state("I feel so anxious about my exams")
        <EmotionalState.DISTRESSED: 'distressed'>
    """
    lowered = text.lower()
    if any(word in lowered for word in _DISTRESSED):
        return EmotionalState.DISTRESSED
    if any(word in lowered for word in _CONCERNED):
        return EmotionalState.CONCERNED
    if any(word in lowered for word in _CALM):
        return EmotionalState.CALM
    return EmotionalState.NEUTRAL


def _words(*words: str) -> re.Pattern[str]:
    return re.compile(r"\b(?:" + "|".join(words) + r")\b", re.IGNORECASE)


_MONTHS = (
    "January|February|March|April|May|June|July|August|September|October|November|December"
)
_WEEKDAYS = "Monday|Tuesday|Wednesday|Thursday|Friday|Saturday|Sunday"
_EVENT = r"(happen|occur|take\s+place|come\s+true|manifest)"

# Order matters: the specific claims run before the generic "guaranteed to".
REWRITES: tuple[tuple[str, re.Pattern[str], str], ...] = (
    (
        "guaranteed_event",
        re.compile(
            rf"\b(?:is\s+|are\s+)?guaranteed\s+to\s+{_EVENT}\s+(?:exactly\s+)?on\s+[\w,/-]+(?:\s+\d{{1,2}}(?:st|nd|rd|th)?)?",
            re.IGNORECASE,
        ),
        r"may \1 during a favourable period",
    ),
    (
        "dated_event",
        re.compile(
            rf"\bwill\s+(?:definitely\s+|certainly\s+|surely\s+)?{_EVENT}\s+(?:exactly\s+)?on\s+[\w,/-]+(?:\s+\d{{1,2}}(?:st|nd|rd|th)?)?",
            re.IGNORECASE,
        ),
        r"may \1 during a favourable period",
    ),
    (
        "exact_weekday",
        re.compile(rf"\bexactly\s+on\s+(?:{_WEEKDAYS}|\w+day)\b", re.IGNORECASE),
        "around a favourable time",
    ),
    (
        "exact_date",
        re.compile(rf"\b(?:{_MONTHS})\s+\d{{1,2}}(?:st|nd|rd|th)?,?\s+\d{{4}}\b", re.IGNORECASE),
        "a favourable period",
    ),
    ("exact_date", re.compile(r"\b\d{1,2}/\d{1,2}/\d{4}\b"), "a favourable period"),
    ("exact_date", re.compile(r"\b\d{4}-\d{2}-\d{2}\b"), "a favourable period"),
    ("certainty", re.compile(r"\b(?:definitely|certainly)\s+will\b", re.IGNORECASE), "may"),
    ("certainty", re.compile(r"\bwill\s+(?:definitely|certainly)\b", re.IGNORECASE), "may"),
    ("certainty", re.compile(r"\b(?:is\s+|are\s+)?guaranteed\s+to\b", re.IGNORECASE), "may"),
    ("certainty", re.compile(r"\b100\s*%\s+(?:certain|sure|guaranteed)\b", re.IGNORECASE), "quite possible"),
    (
        "fatalistic",
        re.compile(r"\byou\s+are\s+(?:doomed|cursed|fated)\s+to\b", re.IGNORECASE),
        "you may face challenges that could lead you to",
    ),
    (
        "fatalistic",
        re.compile(r"\byour\s+destiny\s+is\s+(?:sealed|fixed|unchangeable|predetermined)\b", re.IGNORECASE),
        "your destiny remains open to your choices",
    ),
    (
        "fatalistic",
        re.compile(r"\bnothing\s+can\s+(?:change|prevent|stop)\s+(this|it|your\s+fate)\b", re.IGNORECASE),
        r"conscious effort can still shape \1",
    ),
    (
        "fatalistic",
        re.compile(
            r"\byou\s+will\s+(?:never|always|definitely|certainly)\s+(?:die|fail|suffer|be\s+cursed)\b",
            re.IGNORECASE,
        ),
        "you may face difficult phases, and they can be eased",
    ),
)

DISCLAIMERS: tuple[tuple[str, re.Pattern[str], str], ...] = (
    (
        "medical",
        _words(
            r"diagnos(?:e|is|ed)",
            r"prescriptions?",
            r"medicines?",
            r"medications?",
            r"treatments?",
            r"cure[sd]?",
            r"surgery",
            r"diseases?",
            r"illness(?:es)?",
            r"symptoms?",
            r"doctors?",
            r"hospitals?",
            r"therapy",
        ),
        "Note: This is spiritual guidance only. "
        "Please consult a healthcare professional for medical concerns.",
    ),
    (
        "financial",
        _words(
            r"invest(?:ing|ment|ments)?",
            r"stocks?",
            r"shares",
            r"trading",
            r"crypto(?:currency)?",
            r"bitcoin",
            r"loans?",
            r"portfolio",
            r"forex",
        ),
        "Note: This is spiritual guidance only. "
        "Please consult a financial advisor for financial decisions.",
    ),
    (
        "legal",
        _words(
            r"lawsuits?",
            r"lawyers?",
            r"attorneys?",
            r"court",
            r"litigation",
            r"legal\s+(?:advice|action|counsel)",
            r"sue",
        ),
        "Note: This is spiritual guidance only. "
        "Please consult a qualified attorney for legal matters.",
    ),
)

HARD_BLOCKS: tuple[tuple[str, re.Pattern[str]], ...] = (
    (
        "self_harm",
        re.compile(
            r"\b(?:kill|harm|hurt|cut)\s+yourself\b|\bend\s+your\s+(?:own\s+)?life\b|\btake\s+your\s+own\s+life\b",
            re.IGNORECASE,
        ),
    ),
    (
        "stop_medication",
        re.compile(
            r"\b(?:stop|quit|skip|abandon|discontinue)\s+(?:taking\s+)?(?:your\s+|all\s+)?"
            r"(?:medicines?|medications?|treatments?|prescriptions?|pills)\b",
            re.IGNORECASE,
        ),
    ),
    (
        "financial_instruction",
        re.compile(
            r"\bguaranteed\s+(?:returns?|profits?)\b|\brisk[-\s]free\s+investments?\b"
            r"|\bget\s+rich\s+quick\b|\b(?:buy|sell)\s+(?:this\s+|these\s+)?stocks?\b",
            re.IGNORECASE,
        ),
    ),
)


@dataclass(frozen=True)
class SafetyResult:
    """Safety verdict for one generated answer.

    Attributes:
        outcome: safe, sanitized or unsafe
        text: Deliverable text (None when unsafe)
        reason: Why the answer was withheld
        triggers: Names of the rewrites and disclaimers applied
    """

    outcome: SafetyOutcome
    text: str | None = None
    reason: str | None = None
    triggers: tuple[str, ...] = field(default_factory=tuple)

    @property
    def deliverable_text(self) -> str:
        """Text to deliver; the static fallback when the answer is unsafe."""
        return self.text if self.outcome is not SafetyOutcome.UNSAFE and self.text else FALLBACK_MESSAGE


class SafetyFilter:
    """Applies rewrites, disclaimers and hard blocks to generated text."""

    def __init__(
        self,
        security_logger: SecurityLogger | None = None,
        supportive_note_enabled: bool = True,
        enabled: bool = True,
    ) -> None:
        self.security_logger = security_logger
        self.enabled = enabled
        self.supportive_note_enabled = supportive_note_enabled

    def filter(
        self,
        raw_text: object,
        emotional_state: EmotionalState | None = None,
        fingerprint: str | None = None,
    ) -> SafetyResult:
        """Judge and, where possible, repair one generated answer.

        Args:
            raw_text: Provider output (anything that is not a non-empty string is unsafe)
            emotional_state: User's detected emotional state
            fingerprint: Caller fingerprint, for security events

        Returns:
            SafetyResult
        """
        result = self._evaluate(raw_text, emotional_state)
        record_safety_outcome(result.outcome.value)
        if result.outcome is SafetyOutcome.UNSAFE:
            logger.warning(f"⚠️ Generated answer withheld: {result.reason}")

        if self.security_logger is not None:
            if result.outcome is SafetyOutcome.UNSAFE:
                self.security_logger.log_output_unsafe(fingerprint, result.reason or "unknown")
            elif result.outcome is SafetyOutcome.SANITIZED:
                self.security_logger.log_output_sanitized(fingerprint, list(result.triggers))

        return result

    def _evaluate(self, raw_text: object, emotional_state: EmotionalState | None) -> SafetyResult:
        if not isinstance(raw_text, str) or not raw_text.strip():
            return SafetyResult(outcome=SafetyOutcome.UNSAFE, reason="empty_output")
        if not self.enabled:
            return SafetyResult(outcome=SafetyOutcome.SAFE, text=raw_text)

        for name, pattern in HARD_BLOCKS:
            if pattern.search(raw_text):
                return SafetyResult(outcome=SafetyOutcome.UNSAFE, reason=name)

        text = raw_text
        triggers: list[str] = []

        for name, pattern, replacement in REWRITES:
            text, count = pattern.subn(replacement, text)
            if count and name not in triggers:
                triggers.append(name)

        for name, pattern, disclaimer in DISCLAIMERS:
            if pattern.search(text) and disclaimer not in text:
                text = f"{text.rstrip()}\n\n{disclaimer}"
                triggers.append(f"{name}_disclaimer")

        if (
            self.supportive_note_enabled
            and emotional_state is EmotionalState.DISTRESSED
            and SUPPORTIVE_NOTE not in text
        ):
            text = f"{text.rstrip()}\n\n{SUPPORTIVE_NOTE}"
            triggers.append("supportive_note")

        if text == raw_text:
            return SafetyResult(outcome=SafetyOutcome.SAFE, text=raw_text)
        return SafetyResult(outcome=SafetyOutcome.SANITIZED, text=text, triggers=tuple(triggers))
