"""Data models for short-term messages, long-term memories and search filters."""

from pydantic import BaseModel, Field, field_validator

SCOPE_SHORT_TERM = "short-term"
SCOPE_LONG_TERM = "long-term"
SCOPE_BOTH = "both"
SCOPES = (SCOPE_SHORT_TERM, SCOPE_LONG_TERM, SCOPE_BOTH)


class MessageEntry(BaseModel):
    """A single conversation turn in short-term memory."""

    id: str
    seq: int = 0
    timestamp: int  # epoch milliseconds
    role: str
    content: str
    session_id: str
    consolidated: bool = False


class LongTermEntry(BaseModel):
    """A consolidated memory in the long-term archive."""

    id: str
    timestamp: int  # epoch milliseconds
    summary: str
    topics: list[str] = Field(default_factory=list)
    key_insights: list[str] = Field(default_factory=list)
    consolidated_from: str = ""


class FilterSpec(BaseModel):
    """Search criteria. All given fields must match (AND).

    ``start_time``/``end_time`` are inclusive epoch milliseconds. A ``limit``
    of None means the engine-wide default cap.
    """

    query: str | None = None
    topics: list[str] = Field(default_factory=list)
    start_time: int | None = None
    end_time: int | None = None
    limit: int | None = Field(default=None, ge=1)
    scope: str = SCOPE_BOTH

    @field_validator("scope")
    @classmethod
    def _known_scope(cls, value: str) -> str:
        if value not in SCOPES:
            msg = f"scope must be one of {', '.join(SCOPES)}"
            raise ValueError(msg)
        return value

    @property
    def wants_short_term(self) -> bool:
        return self.scope in (SCOPE_SHORT_TERM, SCOPE_BOTH)

    @property
    def wants_long_term(self) -> bool:
        return self.scope in (SCOPE_LONG_TERM, SCOPE_BOTH)


class SearchResults(BaseModel):
    """Search output. A side is None when the scope did not request it."""

    short_term: list[MessageEntry] | None = None
    long_term: list[LongTermEntry] | None = None
