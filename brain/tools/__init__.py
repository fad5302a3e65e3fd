"""Tool framework — import tool modules here to register them."""

# Import tool modules so their @registry.tool() decorators execute.
from brain.tools import memory_tools  # noqa: F401
from brain.tools.registry import registry

__all__ = ["registry"]
