"""Context fusion: one prompt from persona, summaries, knowledge and history.

Instruction block order is fixed:

1. base instructions
2. available summaries, most specific first: orchestrated, prediction,
   compatibility, past-life, synergy, report, memory, kundali, numerology, aura
3. detected intent
4. retrieved knowledge, highest score first

Each section renders independently, so dropping one input removes exactly
that section and leaves the order of the rest untouched. The message list is
the recent history (oldest first) followed by the current user message.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Literal

from jyoti.models.schemas import render_chart_facts

if TYPE_CHECKING:
    from collections.abc import Sequence

    from jyoti.models import ScoredChunk
    from jyoti.models.schemas import ContextSummaries, HistoryTurn

BASE_INSTRUCTIONS = """You are Jyoti, an AI Guru. Speak as a calm, gentle spiritual guide who blends Vedic astrology, numerology, aura and chakra reading, and universal spiritual wisdom.

How you answer:
- Explain why something is happening in terms of cosmic and karmic influences
- Offer practical spiritual remedies such as mantras, colours, directions and practices
- Keep answers to two to four short paragraphs
- Close with a blessing that empowers rather than limits

Safety rules:
- Never give medical, legal or financial advice; point the user to a qualified professional instead
- Never predict exact dates or guarantee outcomes; speak of favourable periods and possibilities
- Never make fatalistic statements; the user's free will and effort always shape their path
- If the user sounds distressed, soften your answer and offer support"""

PREDICTION_GUIDANCE = """Prediction safety rules:
- Do not mention specific dates or weekdays
- Do not guarantee outcomes
- Use probability language such as "favourable period" or "there is potential for"
- Acknowledge free will and divine timing"""

COMPATIBILITY_GUIDANCE = """Compatibility guidelines:
- Speak with emotional sensitivity
- Frame compatibility as guidance, not destiny
- Emphasize conscious effort and growth
- Never guarantee relationship outcomes or dates"""

PAST_LIFE_GUIDANCE = (
    "Draw on these karmic patterns when they add depth, and speak to the soul's continuity."
)

REPORT_GUIDANCE = "Reference these report insights when they make the guidance more personal."

CLOSING_INSTRUCTIONS = (
    "Use the context above only where it adds value, and keep continuity with the earlier "
    "conversation."
)


@dataclass(frozen=True)
class PromptMessage:
    role: Literal["system", "user", "assistant"]
    content: str


@dataclass(frozen=True)
class PromptBundle:
    """Instructions plus the ordered conversational messages."""

    instructions: str
    messages: list[PromptMessage] = field(default_factory=list)

    @property
    def user_message(self) -> str:
        return self.messages[-1].content if self.messages else ""

    def as_chat_messages(self) -> list[dict[str, str]]:
        """OpenAI-style message list with the instructions as the system turn."""
        return [{"role": "system", "content": self.instructions}] + [
            {"role": m.role, "content": m.content} for m in self.messages
        ]


def _section(title: str, body: str | None, guidance: str | None = None) -> str | None:
    if not body or not body.strip():
        return None
    text = f"{title}:\n{body.strip()}"
    if guidance:
        text = f"{text}\n\n{guidance}"
    return text


def summary_sections(summaries: ContextSummaries | None) -> list[str]:
    """Render available summaries in priority order."""
    if summaries is None:
        return []

    orchestrated = summaries.orchestrated.render() if summaries.orchestrated else None
    candidates = [
        _section("ORCHESTRATED INTELLIGENCE SUMMARY", orchestrated),
        _section("COSMIC PREDICTIONS & TIMELINE", summaries.prediction, PREDICTION_GUIDANCE),
        _section(
            "COMPATIBILITY & RELATIONSHIP CONTEXT",
            summaries.compatibility,
            COMPATIBILITY_GUIDANCE,
        ),
        _section("PAST LIFE & KARMIC CONTEXT", summaries.past_life, PAST_LIFE_GUIDANCE),
        _section("SPIRITUAL SYNERGY", summaries.synergy),
        _section("REPORT INSIGHTS", summaries.report, REPORT_GUIDANCE),
        _section("CONVERSATION MEMORY", summaries.memory),
        _section("KUNDALI CONTEXT", render_chart_facts(summaries.kundali)),
        _section("NUMEROLOGY CONTEXT", render_chart_facts(summaries.numerology)),
        _section("AURA & CHAKRA CONTEXT", render_chart_facts(summaries.aura)),
    ]
    return [section for section in candidates if section is not None]


def knowledge_section(retrieved: Sequence[ScoredChunk], chunk_chars: int = 800) -> str | None:
    if not retrieved:
        return None
    entries = []
    for index, scored in enumerate(sorted(retrieved, key=lambda s: s.score, reverse=True), start=1):
        title = scored.chunk.title or scored.chunk.source or "Guru knowledge"
        entries.append(f"[{index}] {title}\n{scored.chunk.content.strip()[:chunk_chars]}")
    return "RELEVANT SPIRITUAL KNOWLEDGE:\n" + "\n\n".join(entries)


def build_prompt(
    base_instructions: str,
    summaries: ContextSummaries | None,
    retrieved: Sequence[ScoredChunk],
    recent_history: Sequence[HistoryTurn],
    user_message: str,
    intent: str | None = None,
    history_turns: int = 10,
) -> PromptBundle:
    """Fuse every available input into one prompt bundle.

    Never raises on partial input; missing pieces are simply left out.

    Args:
        base_instructions: Persona and safety instructions
        summaries: Optional pre-computed context summaries
        retrieved: Retrieved knowledge chunks
        recent_history: Earlier conversation turns, oldest first
        user_message: Current (sanitized) user message
        intent: Optional detected intent
        history_turns: How many of the most recent turns to keep

    Returns:
        PromptBundle whose last message is always ``user_message``
    """
    sections = [base_instructions.strip()]
    sections.extend(summary_sections(summaries))

    if intent and intent.strip():
        sections.append(
            f"DETECTED INTENT: {intent.strip()}\n"
            f"Focus the answer on this area while keeping the calm, spiritual tone."
        )

    knowledge = knowledge_section(retrieved)
    if knowledge:
        sections.append(knowledge)

    sections.append(CLOSING_INSTRUCTIONS)

    kept_history = list(recent_history)[-history_turns:] if history_turns > 0 else []
    messages = [PromptMessage(role=turn.role, content=turn.content) for turn in kept_history]
    messages.append(PromptMessage(role="user", content=user_message))

    return PromptBundle(instructions="\n\n".join(sections), messages=messages)
