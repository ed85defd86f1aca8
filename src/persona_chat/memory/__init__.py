"""Memory module - long-term memory for agent/user pairs.

Key Components:
- MemoryStore (memory.store): SQLite rows mirrored into a Chroma index
- AdaptiveSimilaritySearch (memory.similarity): Native search with in-process fallback
- MemoryRetriever (memory.retrieval): Embeds a message and finds relevant memories
- MemoryConsolidator (memory.consolidator): Creates and compacts memories
- SummarizationQueue (memory.queue): Runs compaction off the reply path

Example:
    >>> from persona_chat.memory import cosine_similarity
    >>> cosine_similarity([1.0, 0.0], [1.0, 0.0])
    1.0
"""

from persona_chat.memory.context_builder import MemoryContextBuilder, build_memory_context
from persona_chat.memory.similarity import cosine_similarity
from persona_chat.memory.types import MemoryEntry, MemoryProvenance, SearchResult

__all__ = [
    "MemoryContextBuilder",
    "MemoryEntry",
    "MemoryProvenance",
    "SearchResult",
    "build_memory_context",
    "cosine_similarity",
]
