"""Prompt building for memory consolidation."""

from __future__ import annotations

from typing import TYPE_CHECKING

from brain.memory.clock import from_ms

if TYPE_CHECKING:
    from brain.memory.models import LongTermEntry, MessageEntry

SYSTEM_PROMPT = """You are a memory consolidation assistant. You read a day's conversations \
and distill them into one long-term memory entry. You should:
1. Extract key insights and important information
2. Identify the main topics discussed
3. Write a comprehensive summary
4. Use the existing long-term memories to avoid duplication and to find connections
5. Keep only what is worth remembering long-term

Respond ONLY with valid JSON in exactly this shape:
{
  "summary": "A comprehensive summary of the conversations",
  "topics": ["topic1", "topic2", "topic3"],
  "keyInsights": ["insight1", "insight2", "insight3"]
}"""

NO_MEMORIES = "No existing long-term memories."


def format_transcript(messages: list[MessageEntry], tz_name: str | None = None) -> str:
    """Render messages grouped by session, in order of first appearance."""
    grouped: dict[str, list[MessageEntry]] = {}
    for msg in messages:
        grouped.setdefault(msg.session_id, []).append(msg)

    lines: list[str] = []
    for number, session_messages in enumerate(grouped.values(), start=1):
        lines.append(f"=== Conversation {number} ===")
        for msg in session_messages:
            time = from_ms(msg.timestamp, tz_name).strftime("%H:%M:%S")
            lines.append(f"[{time}] {msg.role}: {msg.content}")
        lines.append("")
    return "\n".join(lines).rstrip("\n")


def format_long_term_context(memories: list[LongTermEntry], tz_name: str | None = None) -> str:
    """Render existing long-term memories as continuity context."""
    if not memories:
        return NO_MEMORIES

    blocks: list[str] = []
    for number, mem in enumerate(memories, start=1):
        date = from_ms(mem.timestamp, tz_name).date().isoformat()
        blocks.append(
            f"--- Memory {number} (from {date}) ---\n"
            f"Summary: {mem.summary}\n"
            f"Topics: {', '.join(mem.topics)}\n"
            f"Key Insights: {'; '.join(mem.key_insights)}"
        )
    return "\n\n".join(blocks)


def build_consolidation_prompt(transcript: str, long_term_context: str) -> str:
    """Build the user-message content sent to the summarization model."""
    return (
        "# Task: Consolidate Today's Conversations into Long-Term Memory\n\n"
        f"## Today's Conversations:\n{transcript}\n\n"
        f"## Existing Long-Term Memories (for context):\n{long_term_context}\n\n"
        "## Instructions:\n"
        "Analyze today's conversations and create one consolidated long-term memory entry. "
        "Consider:\n"
        "1. What were the main topics discussed today?\n"
        "2. What key insights or important facts should be remembered?\n"
        "3. How does this relate to the existing long-term memories?\n"
        "4. What would be valuable to recall in future conversations?\n\n"
        "Respond with JSON containing:\n"
        "- summary: a comprehensive 2-3 sentence summary\n"
        "- topics: 3-5 main topics as short strings\n"
        "- keyInsights: 3-7 key insights or facts to remember"
    )
