"""Tests for prompt fusion."""

from __future__ import annotations

from jyoti.guidance.prompt_builder import BASE_INSTRUCTIONS, CLOSING_INSTRUCTIONS, build_prompt
from jyoti.models import KnowledgeChunk, KnowledgeMode, ScoredChunk
from jyoti.models.schemas import ContextSummaries, HistoryTurn, OrchestratedSummary


def scored(chunk_id: str, content: str, score: float, title: str | None = None) -> ScoredChunk:
    return ScoredChunk(
        chunk=KnowledgeChunk(id=chunk_id, content=content, mode=KnowledgeMode.GENERAL, title=title),
        score=score,
    )


FULL_SUMMARIES = ContextSummaries(
    orchestrated=OrchestratedSummary(memory="Asked about career last week"),
    prediction="Jupiter transit favours growth",
    compatibility="Guna score 28 of 36",
    past_life="Healer in a past life",
    synergy="Numerology and chart agree on 7",
    report="Annual report highlights patience",
    memory="Prefers short answers",
    kundali={"rashi": "Vrishabha"},
    numerology={"life_path": 7},
    aura={"dominant_chakra": "heart"},
)

SECTION_TITLES = [
    "ORCHESTRATED INTELLIGENCE SUMMARY",
    "COSMIC PREDICTIONS & TIMELINE",
    "COMPATIBILITY & RELATIONSHIP CONTEXT",
    "PAST LIFE & KARMIC CONTEXT",
    "SPIRITUAL SYNERGY",
    "REPORT INSIGHTS",
    "CONVERSATION MEMORY",
    "KUNDALI CONTEXT",
    "NUMEROLOGY CONTEXT",
    "AURA & CHAKRA CONTEXT",
]


class TestBuildPrompt:
    """Test suite for build_prompt()."""

    def test_user_message_is_last(self) -> None:
        history = [
            HistoryTurn(role="user", content="Hello"),
            HistoryTurn(role="assistant", content="Namaste"),
        ]

        bundle = build_prompt(BASE_INSTRUCTIONS, None, [], history, "Will I get married this year?")

        assert [m.role for m in bundle.messages] == ["user", "assistant", "user"]
        assert bundle.user_message == "Will I get married this year?"
        assert bundle.messages[-1].content == "Will I get married this year?"

    def test_minimal_inputs(self) -> None:
        bundle = build_prompt("  Base persona  ", None, [], [], "hi")

        assert bundle.instructions == f"Base persona\n\n{CLOSING_INSTRUCTIONS}"
        assert len(bundle.messages) == 1

    def test_section_order(self) -> None:
        bundle = build_prompt(BASE_INSTRUCTIONS, FULL_SUMMARIES, [], [], "q", intent="marriage")

        positions = [bundle.instructions.index(title) for title in SECTION_TITLES]
        assert positions == sorted(positions)
        assert bundle.instructions.startswith(BASE_INSTRUCTIONS)
        assert bundle.instructions.index("DETECTED INTENT: marriage") > positions[-1]

    def test_omitting_a_summary_keeps_the_rest_in_order(self) -> None:
        partial = FULL_SUMMARIES.model_copy(update={"prediction": None, "report": None})

        bundle = build_prompt(BASE_INSTRUCTIONS, partial, [], [], "q")

        assert "COSMIC PREDICTIONS" not in bundle.instructions
        assert "REPORT INSIGHTS" not in bundle.instructions
        dropped = ("COSMIC PREDICTIONS & TIMELINE", "REPORT INSIGHTS")
        remaining = [t for t in SECTION_TITLES if t not in dropped]
        positions = [bundle.instructions.index(title) for title in remaining]
        assert positions == sorted(positions)

    def test_prediction_guidance_accompanies_predictions(self) -> None:
        summaries = ContextSummaries(prediction="Favourable period ahead")

        bundle = build_prompt(BASE_INSTRUCTIONS, summaries, [], [], "q")

        assert "Do not mention specific dates or weekdays" in bundle.instructions

    def test_knowledge_ordered_by_score(self) -> None:
        retrieved = [
            scored("low", "Low relevance text", 0.2),
            scored("high", "High relevance text", 0.9, title="Seventh house"),
        ]

        bundle = build_prompt(BASE_INSTRUCTIONS, None, retrieved, [], "q")

        assert "RELEVANT SPIRITUAL KNOWLEDGE" in bundle.instructions
        assert "[1] Seventh house\nHigh relevance text" in bundle.instructions
        text = bundle.instructions
        assert text.index("High relevance") < text.index("Low relevance")
        assert text.index("RELEVANT SPIRITUAL KNOWLEDGE") < text.index(CLOSING_INSTRUCTIONS)

    def test_history_is_truncated_to_most_recent(self) -> None:
        history = [HistoryTurn(content=f"turn {i}") for i in range(15)]

        bundle = build_prompt(BASE_INSTRUCTIONS, None, [], history, "now", history_turns=3)

        assert [m.content for m in bundle.messages] == ["turn 12", "turn 13", "turn 14", "now"]

    def test_history_can_be_disabled(self) -> None:
        history = [HistoryTurn(content="old")]

        bundle = build_prompt(BASE_INSTRUCTIONS, None, [], history, "now", history_turns=0)

        assert [m.content for m in bundle.messages] == ["now"]

    def test_as_chat_messages(self) -> None:
        bundle = build_prompt("persona", None, [], [], "question")

        messages = bundle.as_chat_messages()

        assert messages[0]["role"] == "system"
        assert messages[-1] == {"role": "user", "content": "question"}
