"""Pluggable generation providers.

A provider takes a ``PromptBundle`` and returns the complete raw answer. The
whole answer is needed before the safety filter can judge it, so providers
do not stream.

- ``openai``: any OpenAI-compatible ``/chat/completions`` endpoint over httpx
- ``template``: offline, deterministic guidance for development and tests
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

import httpx

from jyoti.exceptions import GenerationError
from jyoti.observability.prometheus_metrics import observe_generation_latency
from jyoti.observability.tracing import trace_operation

if TYPE_CHECKING:
    from jyoti.config import GenerationConfig
    from jyoti.guidance.prompt_builder import PromptBundle

logger = logging.getLogger(__name__)


class GenerationProvider(ABC):
    """Produces the raw answer for a prompt."""

    name: str = "base"

    async def generate(self, prompt: PromptBundle) -> str:
        """Generate a complete answer.

        Raises:
            GenerationError: If the provider fails or returns no text
        """
        with trace_operation(f"generation.{self.name}"), observe_generation_latency(self.name):
            text = await self._generate(prompt)
        if not isinstance(text, str) or not text.strip():
            raise GenerationError("Generation returned no text", {"provider": self.name})
        return text

    @abstractmethod
    async def _generate(self, prompt: PromptBundle) -> str: ...

    async def close(self) -> None:
        """Release provider resources."""


class OpenAIChatGenerator(GenerationProvider):
    """OpenAI-compatible chat completions (OpenAI, Ollama, vLLM...)."""

    name = "openai"

    def __init__(
        self,
        model_name: str,
        base_url: str = "https://api.openai.com/v1",
        api_key: str | None = None,
        temperature: float = 0.7,
        max_tokens: int = 1200,
        timeout_seconds: float = 25.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.model_name = model_name
        self.temperature = temperature
        self.max_tokens = max_tokens
        headers = {"Authorization": f"Bearer {api_key}"} if api_key else {}
        self._client = client or httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            headers=headers,
            timeout=timeout_seconds,
        )

    async def _generate(self, prompt: PromptBundle) -> str:
        try:
            response = await self._client.post(
                "/chat/completions",
                json={
                    "model": self.model_name,
                    "messages": prompt.as_chat_messages(),
                    "temperature": self.temperature,
                    "max_tokens": self.max_tokens,
                },
            )
            response.raise_for_status()
            payload = response.json()
        except httpx.HTTPError as e:
            raise GenerationError(
                "Generation endpoint request failed",
                {"provider": self.name, "error": type(e).__name__},
            ) from e
        except ValueError as e:
            raise GenerationError("Generation endpoint returned invalid JSON") from e

        try:
            return payload["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError) as e:
            raise GenerationError(
                "Generation endpoint returned an unexpected payload",
                {"provider": self.name},
            ) from e

    async def close(self) -> None:
        await self._client.aclose()


_TOPIC_GUIDANCE: tuple[tuple[tuple[str, ...], str], ...] = (
    (
        ("marriage", "married", "partner", "love", "relationship", "compatib"),
        "Venus and the seventh house speak of partnership. The cosmic energies suggest that "
        "openness and patience invite harmony; there is potential for a meaningful bond when "
        "the heart is ready.",
    ),
    (
        ("career", "job", "work", "business", "promotion"),
        "Saturn rewards steady effort. The stars indicate a period for building skills and "
        "acting with discipline, and your own choices shape how opportunities unfold.",
    ),
    (
        ("health", "sick", "illness", "energy", "tired"),
        "Your chakras respond to rest, breath and mindful routine. Spiritual practice can "
        "support balance alongside the care of a healthcare professional.",
    ),
    (
        ("money", "finance", "wealth", "invest"),
        "Jupiter blesses generosity and wise stewardship. Cultivate gratitude and prudence, "
        "and seek a qualified advisor for any financial decision.",
    ),
)

_DEFAULT_GUIDANCE = (
    "The cosmic energies around you invite reflection. Stillness and sincere intention open "
    "the way for clarity."
)

_REMEDY = (
    "As a gentle remedy, chant \"Om Namah Shivaya\" eleven times at sunrise while facing east."
)

_BLESSING = "May divine light illuminate your path."


class TemplateGenerator(GenerationProvider):
    """Offline guidance composed from keyword-matched templates."""

    name = "template"

    async def _generate(self, prompt: PromptBundle) -> str:
        question = prompt.user_message.lower()
        guidance = next(
            (text for keywords, text in _TOPIC_GUIDANCE if any(k in question for k in keywords)),
            _DEFAULT_GUIDANCE,
        )
        return f"Namaste, dear seeker. {guidance}\n\n{_REMEDY}\n\n{_BLESSING}"


def get_generation_provider(config: GenerationConfig) -> GenerationProvider:
    """Build the configured generation provider.

    Raises:
        ValueError: If the provider name is not recognized
    """
    if config.provider == "openai":
        return OpenAIChatGenerator(
            model_name=config.model_name,
            base_url=config.base_url,
            api_key=config.api_key,
            temperature=config.temperature,
            max_tokens=config.max_tokens,
            timeout_seconds=config.timeout_seconds,
        )
    if config.provider == "template":
        return TemplateGenerator()
    raise ValueError(f"Unknown generation provider: {config.provider}")
