"""Two-tier memory: short-term messages, long-term summaries, and search."""

from brain.memory.filters import FilterEngine
from brain.memory.models import FilterSpec, LongTermEntry, MessageEntry, SearchResults
from brain.memory.session import SessionTracker
from brain.memory.store import RecordStore

__all__ = [
    "FilterEngine",
    "FilterSpec",
    "LongTermEntry",
    "MessageEntry",
    "RecordStore",
    "SearchResults",
    "SessionTracker",
]
