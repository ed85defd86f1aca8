"""Context builder for memory injection.

Formats retrieved memory entries into the single system message that
the prompt carries between persona content and conversation history.
"""

from __future__ import annotations

from datetime import datetime
from typing import Sequence

from persona_chat.memory.types import MemoryEntry, SearchResult

MEMORY_CONTEXT_HEADER = "Relevant context from previous conversations:"


def format_memory_date(moment: datetime) -> str:
    """Format a memory timestamp as e.g. ``Jan 15, 2024``."""
    return f"{moment.strftime('%b')} {moment.day}, {moment.year}"


class MemoryContextBuilder:
    """Builds the memory context block for prompt injection.

    Example:
        >>> builder = MemoryContextBuilder()
        >>> builder.format_entry(entry)
        '[Jan 15, 2024] User is learning Mandarin'
        >>> builder.build(["[Jan 15, 2024] User is learning Mandarin"])
        'Relevant context from previous conversations:\\n1. [Jan 15, 2024] User is learning Mandarin'
    """

    def __init__(self, header: str = MEMORY_CONTEXT_HEADER, include_dates: bool = True) -> None:
        self.header = header
        self.include_dates = include_dates

    def format_entry(self, entry: MemoryEntry) -> str:
        """Render one memory entry as a line of context."""
        if not self.include_dates:
            return entry.key_point
        return f"[{format_memory_date(entry.created_at)}] {entry.key_point}"

    def format_results(self, results: Sequence[SearchResult]) -> list[str]:
        """Render search results in ranking order."""
        return [self.format_entry(r.entry) for r in results]

    def build(self, memories: Sequence[str]) -> str:
        """Build the memory context block.

        Args:
            memories: Rendered memory texts, most relevant first.

        Returns:
            Header followed by a numbered list, or an empty string when
            there is nothing to inject.
        """
        if not memories:
            return ""

        numbered = "\n\n".join(f"{i}. {text}" for i, text in enumerate(memories, start=1))
        return f"{self.header}\n{numbered}"


def build_memory_context(memories: Sequence[str]) -> str:
    """Convenience function to build memory context.

    Args:
        memories: Rendered memory texts, most relevant first.

    Returns:
        Formatted context block, or an empty string.
    """
    return MemoryContextBuilder().build(memories)
