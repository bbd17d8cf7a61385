"""Pydantic validation schemas for chat requests.

All schemas include:
- Type checking
- Length constraints per field
- Null-byte rejection on free text
- camelCase aliases, so ``contextSummaries`` and ``context_summaries`` both work
"""

from __future__ import annotations

import json
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator
from pydantic.alias_generators import to_camel

from jyoti.exceptions import RequestValidationError
from jyoti.models import KnowledgeMode

MAX_MESSAGE_CHARS = 2_000
MAX_SUMMARY_CHARS = 4_000
MAX_HISTORY_TURNS = 50
MAX_INTENT_CHARS = 100

_CAMEL = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")

ChartFacts = str | dict[str, Any]


def _reject_null_bytes(v: str) -> str:
    if "\x00" in v:
        raise ValueError("text cannot contain null bytes")
    return v


def render_chart_facts(value: ChartFacts | None) -> str:
    """Serialize chart-style facts into prompt lines.

    Examples:
        >>> render_chart_facts({"rashi": "Vrishabha", "life_path": 7})
        '- Rashi: Vrishabha\\n- Life Path: 7'
    """
    if value is None:
        return ""
    if isinstance(value, str):
        return value.strip()

    lines = []
    for key, item in value.items():
        if item is None or item == "" or item == []:
            continue
        label = key.replace("_", " ").title()
        if isinstance(item, list):
            rendered = ", ".join(
                " ".join(str(v) for v in entry.values()) if isinstance(entry, dict) else str(entry)
                for entry in item
            )
        elif isinstance(item, dict):
            rendered = json.dumps(item, ensure_ascii=False, sort_keys=True)
        else:
            rendered = str(item)
        lines.append(f"- {label}: {rendered}")
    return "\n".join(lines)


class HistoryTurn(BaseModel):
    """One earlier exchange in the conversation."""

    model_config = _CAMEL

    role: Literal["user", "assistant"] = "user"
    content: str = Field(..., min_length=1, max_length=MAX_SUMMARY_CHARS)

    @field_validator("role", mode="before")
    @classmethod
    def coerce_role(cls, v: Any) -> str:
        """Anything that is not the assistant speaks as the user."""
        return "assistant" if v == "assistant" else "user"

    @field_validator("content")
    @classmethod
    def validate_content(cls, v: str) -> str:
        return _reject_null_bytes(v)


class OrchestratedSummary(BaseModel):
    """Cross-feature summary produced upstream of the gateway."""

    model_config = _CAMEL

    memory: str | None = Field(None, max_length=MAX_SUMMARY_CHARS)
    insights: list[str] = Field(default_factory=list, max_length=20)
    predictions: str | None = Field(None, max_length=MAX_SUMMARY_CHARS)
    compatibility: str | None = Field(None, max_length=MAX_SUMMARY_CHARS)
    past_life: str | None = Field(None, max_length=MAX_SUMMARY_CHARS)
    remedies: str | None = Field(None, max_length=MAX_SUMMARY_CHARS)
    synergy: str | None = Field(None, max_length=MAX_SUMMARY_CHARS)

    def render(self) -> str:
        lines = []
        if self.memory:
            lines.append(f"Memory: {self.memory}")
        if self.insights:
            lines.append(f"Insights: {' | '.join(self.insights)}")
        for label, value in (
            ("Predictions", self.predictions),
            ("Compatibility", self.compatibility),
            ("Past Life", self.past_life),
            ("Remedies", self.remedies),
            ("Synergy", self.synergy),
        ):
            if value:
                lines.append(f"{label}: {value}")
        return "\n".join(lines)


class ContextSummaries(BaseModel):
    """Pre-computed context from the chart, numerology and aura engines.

    Content is opaque to the gateway beyond per-field size limits.
    """

    model_config = _CAMEL

    kundali: ChartFacts | None = None
    numerology: ChartFacts | None = None
    aura: ChartFacts | None = None
    memory: str | None = Field(None, max_length=MAX_SUMMARY_CHARS)
    past_life: str | None = Field(None, max_length=MAX_SUMMARY_CHARS)
    synergy: str | None = Field(None, max_length=MAX_SUMMARY_CHARS)
    prediction: str | None = Field(None, max_length=MAX_SUMMARY_CHARS)
    compatibility: str | None = Field(None, max_length=MAX_SUMMARY_CHARS)
    report: str | None = Field(None, max_length=MAX_SUMMARY_CHARS)
    orchestrated: OrchestratedSummary | None = None

    @field_validator("kundali", "numerology", "aura")
    @classmethod
    def validate_chart_size(cls, v: ChartFacts | None) -> ChartFacts | None:
        if v is not None and len(render_chart_facts(v)) > MAX_SUMMARY_CHARS:
            raise ValueError(f"summary cannot exceed {MAX_SUMMARY_CHARS} characters")
        return v


class ChatRequest(BaseModel):
    """Body of ``POST /guru/chat``."""

    model_config = _CAMEL

    message: str = Field(..., min_length=1, max_length=MAX_MESSAGE_CHARS)
    mode: KnowledgeMode = KnowledgeMode.GENERAL
    context_summaries: ContextSummaries | None = None
    recent_history: list[HistoryTurn] = Field(default_factory=list, max_length=MAX_HISTORY_TURNS)
    intent: str | None = Field(None, max_length=MAX_INTENT_CHARS)

    @field_validator("message")
    @classmethod
    def validate_message(cls, v: str) -> str:
        """Reject null bytes and whitespace-only messages."""
        _reject_null_bytes(v)
        if not v.strip():
            raise ValueError("message cannot be empty")
        return v

    @field_validator("mode", mode="before")
    @classmethod
    def parse_mode(cls, v: Any) -> KnowledgeMode:
        if v is None:
            return KnowledgeMode.GENERAL
        return KnowledgeMode.parse(v)


def validate_chat_request(payload: Any) -> ChatRequest:
    """Validate a decoded JSON body.

    Raises:
        InvalidModeError: If ``mode`` is not a known knowledge mode
        RequestValidationError: For any other schema violation; the message
            lists field problems without echoing input values
    """
    if not isinstance(payload, dict):
        raise RequestValidationError("Request body must be a JSON object")

    try:
        return ChatRequest.model_validate(payload)
    except ValidationError as e:
        problems = []
        for error in e.errors(include_input=False, include_url=False):
            location = ".".join(str(part) for part in error["loc"]) or "body"
            problems.append(f"{location}: {error['msg']}")
        raise RequestValidationError("Invalid request", {"errors": problems}) from None


__all__ = [
    "ChatRequest",
    "ContextSummaries",
    "HistoryTurn",
    "OrchestratedSummary",
    "render_chart_facts",
    "validate_chat_request",
]
