"""Base types for the tool-calling framework."""

from dataclasses import dataclass
from typing import Any

from pydantic import BaseModel


@dataclass
class ToolResult:
    """Result of a tool execution.

    Every tool returns one of these: either ``data`` on success or a
    human-readable ``error`` on failure, so callers can branch without
    parsing free text.
    """

    data: dict[str, Any] | None = None
    error: str | None = None

    @property
    def success(self) -> bool:
        return self.error is None

    def to_dict(self) -> dict[str, Any]:
        """Structured payload handed to the transport."""
        if self.error:
            return {"success": False, "error": self.error}
        return {"success": True, **(self.data or {})}


class ToolParams(BaseModel):
    """Base class for tool parameter models.

    Subclass with Field() definitions. The JSON schema is auto-generated
    via model_json_schema() for the transport's tool definitions.
    """
