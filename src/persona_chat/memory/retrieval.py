"""Memory retrieval for a turn: embed the user text, search the scope."""

from __future__ import annotations

from persona_chat.memory.context_builder import MemoryContextBuilder
from persona_chat.memory.embeddings import EmbeddingClient
from persona_chat.memory.similarity import SimilaritySearch
from persona_chat.memory.types import SearchResult
from persona_chat.utils.logging import get_logger

log = get_logger(__name__)


class MemoryRetriever:
    """Finds memories relevant to a new user message.

    Retrieval is an optimisation: any failure is logged and yields no
    memories rather than failing the turn.

    Args:
        embeddings: Client used to embed the query text.
        search: Similarity search strategy.
        top_k: Maximum number of memories returned.
        threshold: Minimum cosine similarity for a memory to be relevant.
    """

    def __init__(
        self,
        embeddings: EmbeddingClient,
        search: SimilaritySearch,
        top_k: int = 5,
        threshold: float = 0.5,
        builder: MemoryContextBuilder | None = None,
    ) -> None:
        self.embeddings = embeddings
        self.search = search
        self.top_k = top_k
        self.threshold = threshold
        self.builder = builder or MemoryContextBuilder()

    async def retrieve(
        self,
        agent_id: int,
        user_id: str,
        query_text: str,
        credential: str,
    ) -> list[SearchResult]:
        """Return relevant memories, best first, or [] on any failure."""
        try:
            vector = await self.embeddings.embed(query_text, credential)
            results = await self.search.find_similar(
                vector, agent_id, user_id, self.top_k, self.threshold
            )
        except Exception as e:
            log.error(
                "Memory retrieval failed",
                error=str(e),
                error_type=type(e).__name__,
            )
            return []

        if results:
            log.info("Memories retrieved", count=len(results), best_score=round(results[0].score, 3))
        else:
            log.debug("No relevant memories")
        return results

    async def retrieve_for_context(
        self,
        agent_id: int,
        user_id: str,
        query_text: str,
        credential: str,
    ) -> list[str]:
        """Return relevant memories rendered for the prompt."""
        results = await self.retrieve(agent_id, user_id, query_text, credential)
        return self.builder.format_results(results)
