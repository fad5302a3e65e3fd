"""Two-tier conversation memory with scheduled LLM consolidation."""

__version__ = "0.1.0"
