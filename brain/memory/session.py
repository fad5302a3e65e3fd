"""Conversation session tracking.

The tracker only hands out identifiers; it never touches the store. Callers
pass ``tracker.current`` into ``RecordStore.append`` explicitly.
"""

import logging
import uuid
from dataclasses import dataclass, field

from brain.memory.clock import now_ms

logger = logging.getLogger(__name__)


def make_session_id() -> str:
    """``conv-<epoch ms>-<8 hex>``: sortable by creation time, unique per call."""
    return f"conv-{now_ms()}-{uuid.uuid4().hex[:8]}"


@dataclass
class SessionTracker:
    """Holds the current session ID for one calling layer."""

    current: str = field(default_factory=make_session_id)

    def rotate(self) -> str:
        """Start a new session and return its ID."""
        previous = self.current
        self.current = make_session_id()
        logger.info("Session rotated: %s -> %s", previous, self.current)
        return self.current
