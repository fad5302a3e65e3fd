"""MCP transport — exposes the tool registry over the Model Context Protocol.

MCP needs real annotations on the handlers, so this module avoids
``from __future__ import annotations``.
"""

import logging
from typing import TYPE_CHECKING, Any

from fastmcp import FastMCP

if TYPE_CHECKING:
    from brain.tools.registry import ToolDef, ToolRegistry

logger = logging.getLogger(__name__)

SERVER_NAME = "brain_memory"


def _bind(registry: "ToolRegistry", tool_def: "ToolDef"):  # noqa: ANN202
    """Build an MCP handler that forwards to ``registry.execute``."""
    name = tool_def.name
    params_model = tool_def.params_model

    if params_model is None:

        async def handler() -> dict[str, Any]:
            result = await registry.execute(name, {})
            return result.to_dict()

    else:

        async def handler(params: params_model) -> dict[str, Any]:  # type: ignore[valid-type]
            result = await registry.execute(name, params.model_dump())
            return result.to_dict()

    handler.__name__ = name
    return handler


def build_server(registry: "ToolRegistry") -> FastMCP:
    """Create a FastMCP server with one MCP tool per registered tool."""
    mcp = FastMCP(SERVER_NAME)
    for tool_def in registry.definitions:
        mcp.tool(
            name=tool_def.name,
            description=tool_def.description,
            annotations=tool_def.annotations,
        )(_bind(registry, tool_def))
    logger.info("MCP server exposes %d tool(s)", len(registry.definitions))
    return mcp
