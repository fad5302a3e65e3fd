"""Summarization collaborator — the black box behind a consolidation cycle."""

from __future__ import annotations

import logging
from typing import Protocol

from brain.config import settings
from brain.llm.client import complete_text

logger = logging.getLogger(__name__)


class Summarizer(Protocol):
    """Turns a system instruction and a prompt into raw model text."""

    async def summarize(self, system: str, prompt: str) -> str: ...


class AnthropicSummarizer:
    """Summarizer backed by the Anthropic Messages API."""

    def __init__(
        self,
        model: str | None = None,
        max_tokens: int | None = None,
        temperature: float | None = None,
    ) -> None:
        self.model = model or settings.summarizer_model
        self.max_tokens = max_tokens or settings.summarizer_max_tokens
        self.temperature = (
            settings.summarizer_temperature if temperature is None else temperature
        )

    async def summarize(self, system: str, prompt: str) -> str:
        return await complete_text(
            [{"role": "user", "content": prompt}],
            system=system,
            model=self.model,
            max_tokens=self.max_tokens,
            temperature=self.temperature,
        )


def build_summarizer() -> Summarizer | None:
    """Return the configured summarizer, or None when no API key is set."""
    if not settings.summarizer_configured:
        return None
    logger.info("Summarizer: %s", settings.summarizer_model)
    return AnthropicSummarizer()
