"""Guidance: prompt fusion, generation, safety filtering and streaming."""

from jyoti.guidance.generation import (
    GenerationProvider,
    OpenAIChatGenerator,
    TemplateGenerator,
    get_generation_provider,
)
from jyoti.guidance.pipeline import GuidancePipeline, GuidanceResponse
from jyoti.guidance.prompt_builder import BASE_INSTRUCTIONS, PromptBundle, PromptMessage, build_prompt
from jyoti.guidance.safety import (
    FALLBACK_MESSAGE,
    EmotionalState,
    SafetyFilter,
    SafetyOutcome,
    SafetyResult,
    detect_emotional_state,
)
from jyoti.guidance.streaming import APOLOGY_MESSAGE, StreamDelivery, StreamState, split_for_stream

__all__ = [
    "APOLOGY_MESSAGE",
    "BASE_INSTRUCTIONS",
    "FALLBACK_MESSAGE",
    "EmotionalState",
    "GenerationProvider",
    "GuidancePipeline",
    "GuidanceResponse",
    "OpenAIChatGenerator",
    "PromptBundle",
    "PromptMessage",
    "SafetyFilter",
    "SafetyOutcome",
    "SafetyResult",
    "StreamDelivery",
    "StreamState",
    "TemplateGenerator",
    "build_prompt",
    "detect_emotional_state",
    "get_generation_provider",
    "split_for_stream",
]
