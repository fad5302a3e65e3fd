"""Memory consolidation — LLM summarization of short-term into long-term memory."""

from brain.consolidation.engine import ConsolidationEngine, ConsolidationResult
from brain.consolidation.scheduler import ConsolidationScheduler
from brain.consolidation.summarizer import AnthropicSummarizer, Summarizer, build_summarizer

__all__ = [
    "AnthropicSummarizer",
    "ConsolidationEngine",
    "ConsolidationResult",
    "ConsolidationScheduler",
    "Summarizer",
    "build_summarizer",
]
