"""Async Claude API client used for memory summarization."""

from __future__ import annotations

import logging
from typing import Any

import anthropic

from brain.config import settings

logger = logging.getLogger(__name__)

_client: anthropic.AsyncAnthropic | None = None


def _get_client() -> anthropic.AsyncAnthropic:
    """Lazily initialize the Anthropic client."""
    global _client  # noqa: PLW0603
    if _client is None:
        _client = anthropic.AsyncAnthropic(
            api_key=settings.anthropic_api_key,
            base_url=settings.anthropic_base_url or None,
        )
    return _client


def _reset_client() -> None:
    """Drop the cached client (for testing)."""
    global _client  # noqa: PLW0603
    _client = None


async def complete_text(
    messages: list[dict[str, Any]],
    *,
    system: str | list[dict[str, Any]] | None = None,
    model: str | None = None,
    max_tokens: int = 4096,
    temperature: float | None = None,
) -> str:
    """Single-shot Claude call — no tools, no streaming.

    Returns the concatenated text blocks of the reply, or "" when it has none.
    """
    client = _get_client()
    kwargs: dict[str, Any] = {
        "model": model or settings.summarizer_model,
        "max_tokens": max_tokens,
        "messages": messages,
    }
    if system is not None:
        kwargs["system"] = system
    if temperature is not None:
        kwargs["temperature"] = temperature
    response = await client.messages.create(**kwargs)
    logger.debug(
        "Claude call finished (model=%s, stop_reason=%s)",
        kwargs["model"],
        getattr(response, "stop_reason", None),
    )
    # Tool-use and thinking blocks carry no text
    parts = [getattr(block, "text", None) for block in response.content or ()]
    return "".join(part for part in parts if isinstance(part, str))
