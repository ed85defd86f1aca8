"""ChromaDB vector index for memory entries.

Mirrors memory entry vectors into a cosine-space Chroma collection so
similarity queries run inside the index. SQLite stays the source of
truth; the index only stores ids, vectors and scope metadata.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import TYPE_CHECKING, Any

from persona_chat.errors import VectorIndexUnavailableError
from persona_chat.memory.types import MemoryEntry

if TYPE_CHECKING:
    import chromadb
    from chromadb.api.models.Collection import Collection

logger = logging.getLogger(__name__)

COLLECTION_NAME = "memory_entries"


def _scope_filter(agent_id: int, user_id: str) -> dict[str, Any]:
    return {"$and": [{"agent_id": agent_id}, {"user_id": user_id}]}


class ChromaMemoryIndex:
    """ChromaDB-backed nearest-neighbour index over memory vectors.

    Args:
        path: Path to ChromaDB persistence directory.
        collection_name: Name of the collection holding memory vectors.

    Example:
        >>> index = ChromaMemoryIndex("~/.persona_chat/chroma")
        >>> await index.initialize()
        >>> await index.add(entry)
        >>> hits = await index.query(vector, agent_id=1, user_id="u-1", n_results=5)
    """

    def __init__(
        self,
        path: str | Path,
        collection_name: str = COLLECTION_NAME,
    ) -> None:
        self.path = Path(path).expanduser()
        self.collection_name = collection_name
        self._client: chromadb.ClientAPI | None = None
        self._collection: Collection | None = None

    async def initialize(self) -> None:
        """Initialize ChromaDB client and collection.

        Raises:
            VectorIndexUnavailableError: If chromadb cannot be loaded or
                the collection cannot be opened.
        """
        try:
            import chromadb
            from chromadb.config import Settings
        except ImportError as e:
            raise VectorIndexUnavailableError("chromadb is not installed") from e

        self.path.mkdir(parents=True, exist_ok=True)

        logger.info(f"Initializing ChromaDB at {self.path}")
        try:
            self._client = chromadb.PersistentClient(
                path=str(self.path),
                settings=Settings(
                    anonymized_telemetry=False,
                    allow_reset=True,
                ),
            )
            self._collection = self._client.get_or_create_collection(
                name=self.collection_name,
                metadata={"hnsw:space": "cosine"},
            )
        except Exception as e:
            raise VectorIndexUnavailableError(str(e)) from e

        logger.info(f"ChromaDB collection '{self.collection_name}' ready")

    @property
    def collection(self) -> Collection:
        """Get the ChromaDB collection, raising if not initialized."""
        if self._collection is None:
            raise VectorIndexUnavailableError(
                "ChromaMemoryIndex not initialized. Call initialize() first."
            )
        return self._collection

    async def add(self, entry: MemoryEntry) -> None:
        """Index a stored memory entry's vector under its row id."""
        await self.add_many([entry])

    async def add_many(self, entries: list[MemoryEntry]) -> None:
        """Index several stored entries in one upsert."""
        if not entries:
            return
        self.collection.upsert(
            ids=[str(e.id) for e in entries],
            embeddings=[e.vector for e in entries],
            metadatas=[{"agent_id": e.agent_id, "user_id": e.user_id} for e in entries],
        )
        logger.debug(f"Indexed {len(entries)} memories")

    async def ids(self) -> set[int]:
        """Ids of every indexed memory."""
        result = self.collection.get(include=[])
        return {int(i) for i in result["ids"]}

    async def query(
        self,
        vector: list[float],
        agent_id: int,
        user_id: str,
        n_results: int,
    ) -> list[tuple[int, float]]:
        """Find the nearest memory vectors within a scope.

        Args:
            vector: Query embedding.
            agent_id: Agent scope.
            user_id: User scope.
            n_results: Maximum number of neighbours.

        Returns:
            List of (memory id, cosine similarity), best first.
        """
        results = self.collection.query(
            query_embeddings=[vector],
            n_results=n_results,
            where=_scope_filter(agent_id, user_id),
            include=["distances"],
        )

        hits: list[tuple[int, float]] = []
        if results["ids"] and results["ids"][0]:
            distances = results["distances"][0] if results["distances"] else []
            for i, memory_id in enumerate(results["ids"][0]):
                distance = distances[i] if i < len(distances) else 1.0
                # Chroma's cosine distance is 1 - cosine similarity
                hits.append((int(memory_id), 1.0 - distance))

        return hits

    async def delete(self, entry_ids: list[int]) -> None:
        """Remove memory vectors from the index."""
        if not entry_ids:
            return
        self.collection.delete(ids=[str(i) for i in entry_ids])
        logger.debug(f"Removed {len(entry_ids)} memories from index")

    async def count(self) -> int:
        """Get total number of indexed vectors."""
        return self.collection.count()

    async def close(self) -> None:
        """Close the ChromaDB client.

        ChromaDB PersistentClient handles cleanup automatically,
        so this method clears references for consistency.
        """
        if self._client is None and self._collection is None:
            logger.debug("ChromaDB index already closed")
            return

        self._client = None
        self._collection = None
        logger.info("ChromaDB index closed")
