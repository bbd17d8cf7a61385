"""Guidance pipeline: sanitize, classify, retrieve, fuse, generate, filter, stream.

Admission happens before the pipeline (it needs no parsed body). Everything
after admission runs here, in order, with one security event per gate
transition. Classification rejections raise ``ClassificationRejectedError``
before any retrieval or generation; retrieval only ever degrades.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import AsyncIterator, Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING

from jyoti.exceptions import ClassificationRejectedError, RequestValidationError
from jyoti.guidance.prompt_builder import BASE_INSTRUCTIONS, PromptBundle, build_prompt
from jyoti.guidance.safety import EmotionalState, SafetyResult, detect_emotional_state
from jyoti.guidance.streaming import StreamDelivery, StreamState, iter_text
from jyoti.models.schemas import HistoryTurn
from jyoti.observability.prometheus_metrics import (
    increment_errors,
    record_classification_rejection,
)
from jyoti.observability.tracing import add_span_attributes, trace_operation
from jyoti.security.admission import epoch_ms
from jyoti.security.sanitizer import classify_suspicious, sanitize

if TYPE_CHECKING:
    from jyoti.config import JyotiConfig
    from jyoti.guidance.generation import GenerationProvider
    from jyoti.guidance.safety import SafetyFilter
    from jyoti.models import RetrievalOutcome
    from jyoti.models.schemas import ChatRequest
    from jyoti.observability.security_logging import SecurityLogger
    from jyoti.retrieval.retriever import Retriever
    from jyoti.security.abuse import BotDetector
    from jyoti.security.admission import AdmissionGate

logger = logging.getLogger(__name__)

SUSPICIOUS_MESSAGE = "Message contains suspicious content. Please try again."
BOT_MESSAGE = "Suspicious activity detected. Please try again later."


@dataclass
class GuidanceResponse:
    """Everything the pipeline produced for one request.

    Attributes:
        prompt: Prompt bundle sent to the generator
        retrieval: Retrieval outcome (possibly degraded)
        safety: Safety verdict on the generated answer, None when generation ran out of time
        delivery: Deadline-bounded stream of the deliverable text
        emotional_state: Detected emotional state of the user message
    """

    prompt: PromptBundle
    retrieval: RetrievalOutcome
    safety: SafetyResult | None
    delivery: StreamDelivery
    emotional_state: EmotionalState

    def stream(self) -> AsyncIterator[str]:
        return self.delivery.deliver()


class GuidancePipeline:
    """Runs one admitted chat request through the guidance stages."""

    def __init__(
        self,
        retriever: Retriever,
        generator: GenerationProvider,
        safety_filter: SafetyFilter,
        bot_detector: BotDetector,
        admission_gate: AdmissionGate,
        security_logger: SecurityLogger,
        base_instructions: str = BASE_INSTRUCTIONS,
        history_turns: int = 10,
        deadline_seconds: float = 30.0,
        chunk_chars: int = 24,
        chunk_delay_ms: int = 0,
        suspicious_options: dict[str, float] | None = None,
        clock: Callable[[], float] = time.monotonic,
        now_ms: Callable[[], int] = epoch_ms,
    ) -> None:
        self.retriever = retriever
        self.generator = generator
        self.safety_filter = safety_filter
        self.bot_detector = bot_detector
        self.admission_gate = admission_gate
        self.security_logger = security_logger
        self.base_instructions = base_instructions
        self.history_turns = history_turns
        self.deadline_seconds = deadline_seconds
        self.chunk_chars = chunk_chars
        self.chunk_delay_ms = chunk_delay_ms
        self.suspicious_options = suspicious_options or {}
        self.clock = clock
        self.now_ms = now_ms

    @classmethod
    def from_config(
        cls,
        config: JyotiConfig,
        retriever: Retriever,
        generator: GenerationProvider,
        safety_filter: SafetyFilter,
        bot_detector: BotDetector,
        admission_gate: AdmissionGate,
        security_logger: SecurityLogger,
    ) -> GuidancePipeline:
        return cls(
            retriever=retriever,
            generator=generator,
            safety_filter=safety_filter,
            bot_detector=bot_detector,
            admission_gate=admission_gate,
            security_logger=security_logger,
            history_turns=config.generation.history_turns,
            deadline_seconds=config.streaming.deadline_seconds,
            chunk_chars=config.streaming.chunk_chars,
            chunk_delay_ms=config.streaming.chunk_delay_ms,
            suspicious_options={
                "char_flood_threshold": config.abuse.char_flood_threshold,
                "word_flood_ratio": config.abuse.word_flood_ratio,
                "word_flood_min_words": config.abuse.word_flood_min_words,
                "symbol_run_threshold": config.abuse.symbol_run_threshold,
            },
        )

    async def run(
        self,
        request: ChatRequest,
        fingerprint: str,
        started_at: float | None = None,
    ) -> GuidanceResponse:
        """Process one admitted, validated request.

        Args:
            request: Validated chat request
            fingerprint: Caller fingerprint
            started_at: Request start on the pipeline clock (defaults to now)

        Returns:
            GuidanceResponse whose ``stream()`` yields the deliverable text

        Raises:
            RequestValidationError: If nothing is left of the message after sanitization
            ClassificationRejectedError: Suspicious content (400) or bot verdict (429)
            GenerationError: If the generation provider fails
        """
        started_at = self.clock() if started_at is None else started_at
        deadline = started_at + self.deadline_seconds

        with trace_operation("guidance.pipeline", {"mode": request.mode.value}):
            message = sanitize(request.message)
            if not message:
                raise RequestValidationError("Message is empty after sanitization")
            history = self._clean_history(request.recent_history)
            self._classify(fingerprint, message)
            await self._check_bot(fingerprint, message)

            emotional_state = detect_emotional_state(message)
            retrieval = await self.retriever.retrieve(
                message,
                request.mode,
                context_hint=request.intent,
                fingerprint=fingerprint,
            )
            if retrieval.degraded:
                logger.info(f"Continuing without knowledge context ({retrieval.reason})")

            prompt = build_prompt(
                self.base_instructions,
                request.context_summaries,
                retrieval.chunks,
                history,
                message,
                intent=request.intent,
                history_turns=self.history_turns,
            )
            safety = await self._generate(prompt, emotional_state, fingerprint, deadline)
            add_span_attributes(
                {
                    "retrieval.degraded": retrieval.degraded,
                    "retrieval.chunks": len(retrieval.chunks),
                    "safety.outcome": safety.outcome.value if safety else "timed_out",
                }
            )

        if safety is None:
            # Generation used up the budget; the stream times out and apologizes
            text, deadline = "", min(deadline, self.clock())
        else:
            text = safety.deliverable_text
        delivery = StreamDelivery(
            iter_text(text, self.chunk_chars, self.chunk_delay_ms / 1000),
            deadline=deadline,
            clock=self.clock,
            on_finish=self._stream_finished(fingerprint),
        )
        return GuidanceResponse(
            prompt=prompt,
            retrieval=retrieval,
            safety=safety,
            delivery=delivery,
            emotional_state=emotional_state,
        )

    async def _generate(
        self,
        prompt: PromptBundle,
        emotional_state: EmotionalState,
        fingerprint: str,
        deadline: float,
    ) -> SafetyResult | None:
        remaining = deadline - self.clock()
        if remaining <= 0:
            logger.warning("⏱️ Deadline passed before generation started")
            increment_errors("generation", "deadline")
            return None
        try:
            raw_text = await asyncio.wait_for(self.generator.generate(prompt), timeout=remaining)
        except TimeoutError:
            logger.warning(f"⏱️ Generation did not finish within {remaining:.2f}s")
            increment_errors("generation", "deadline")
            return None
        return self.safety_filter.filter(raw_text, emotional_state, fingerprint)

    def _clean_history(self, turns: list[HistoryTurn]) -> list[HistoryTurn]:
        cleaned = []
        for turn in turns:
            content = sanitize(turn.content)
            if content:
                cleaned.append(HistoryTurn(role=turn.role, content=content))
        return cleaned

    def _classify(self, fingerprint: str, message: str) -> None:
        signal = classify_suspicious(message, **self.suspicious_options)
        if signal.is_suspicious:
            reason = signal.reason or "suspicious"
            self.security_logger.log_suspicious_content(fingerprint, reason, len(message))
            record_classification_rejection("suspicious")
            raise ClassificationRejectedError(SUSPICIOUS_MESSAGE, reason=reason, status_code=400)

    async def _check_bot(self, fingerprint: str, message: str) -> None:
        signal = self.bot_detector.classify(fingerprint, message, self.now_ms())
        if signal.is_bot:
            reason = signal.reason or "bot"
            await self.admission_gate.punish(fingerprint, reason)
            record_classification_rejection("bot")
            raise ClassificationRejectedError(BOT_MESSAGE, reason=reason, status_code=429)

    def _stream_finished(self, fingerprint: str) -> Callable[[StreamDelivery], None]:
        def notify(delivery: StreamDelivery) -> None:
            if delivery.state in (StreamState.TIMED_OUT, StreamState.ERRORED):
                self.security_logger.log_stream_terminated(
                    fingerprint,
                    delivery.state.value,
                    delivery.emitted_chars,
                    delivery.elapsed_ms,
                )

        return notify


__all__ = [
    "BOT_MESSAGE",
    "SUSPICIOUS_MESSAGE",
    "GuidancePipeline",
    "GuidanceResponse",
]
