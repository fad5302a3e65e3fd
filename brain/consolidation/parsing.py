"""Validation and repair of the summarization model's output."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import Any

from brain.errors import MalformedCollaboratorResponse

logger = logging.getLogger(__name__)

FAILED_SUMMARY = "Failed to parse consolidation response"
EMPTY_SUMMARY = "No summary generated"


@dataclass
class ConsolidatedMemory:
    summary: str
    topics: list[str] = field(default_factory=list)
    key_insights: list[str] = field(default_factory=list)
    repaired: bool = False


def _load_json(text: str) -> Any:
    try:
        return json.loads(text)
    except json.JSONDecodeError:
        pass

    # Models sometimes wrap the object in markdown fences or prose
    start = text.find("{")
    end = text.rfind("}") + 1
    if start >= 0 and end > start:
        try:
            return json.loads(text[start:end])
        except json.JSONDecodeError:
            pass

    msg = "Response is not valid JSON"
    raise MalformedCollaboratorResponse(msg)


def _string_list(value: Any) -> tuple[list[str], bool]:
    """Coerce *value* to a list of non-empty strings. Second item: was it changed?"""
    if not isinstance(value, list):
        return [], value is not None
    items: list[str] = []
    changed = False
    for item in value:
        if isinstance(item, str):
            text = item.strip()
        elif isinstance(item, (int, float)) and not isinstance(item, bool):
            text = str(item)
            changed = True
        else:
            changed = True
            continue
        if text:
            items.append(text)
        else:
            changed = True
    return items, changed


def parse_consolidation(text: str) -> ConsolidatedMemory:
    """Parse the model output into a ConsolidatedMemory.

    Raises MalformedCollaboratorResponse if the text holds no JSON object.
    Fields of the wrong shape are coerced rather than rejected.
    """
    data = _load_json(text or "")
    if not isinstance(data, dict):
        msg = f"Expected a JSON object, got {type(data).__name__}"
        raise MalformedCollaboratorResponse(msg)

    summary = data.get("summary")
    repaired = False
    if isinstance(summary, str) and summary.strip():
        summary = summary.strip()
    else:
        summary = EMPTY_SUMMARY
        repaired = True

    insights_value = data.get("keyInsights", data.get("key_insights"))
    topics, topics_changed = _string_list(data.get("topics"))
    key_insights, insights_changed = _string_list(insights_value)

    return ConsolidatedMemory(
        summary=summary,
        topics=topics,
        key_insights=key_insights,
        repaired=repaired or topics_changed or insights_changed,
    )


def repair_consolidation(text: str) -> ConsolidatedMemory:
    """Like parse_consolidation, but never raises.

    Unparseable output becomes a sentinel entry so the cycle can still commit
    and the day's messages are not re-consolidated forever.
    """
    try:
        memory = parse_consolidation(text)
    except MalformedCollaboratorResponse as exc:
        logger.warning("Malformed consolidation response (%s): %.200r", exc, text)
        return ConsolidatedMemory(summary=FAILED_SUMMARY, repaired=True)

    if memory.repaired:
        logger.warning("Consolidation response needed repair")
    return memory
