"""Similarity search over memory entries.

Two strategies implement one contract, ``find_similar``: results are
scoped to an agent and user, scored by cosine similarity, clipped at a
threshold, sorted best first and capped at ``top_k``.

- NativeSimilaritySearch queries the Chroma vector index.
- InProcessSimilaritySearch scores a window of recent entries with numpy.
- AdaptiveSimilaritySearch picks between them at runtime.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol, Sequence

import numpy as np

from persona_chat.errors import VectorIndexUnavailableError
from persona_chat.memory.types import SearchResult
from persona_chat.utils.logging import get_logger

if TYPE_CHECKING:
    from persona_chat.memory.store import MemoryStore
    from persona_chat.storage.chroma_store import ChromaMemoryIndex

log = get_logger(__name__)

DEFAULT_FALLBACK_WINDOW = 100


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """Calculate cosine similarity between two vectors.

    Args:
        a: First vector.
        b: Second vector.

    Returns:
        ``dot(a, b) / (|a| * |b|)``. Zero when either norm is zero or the
        lengths differ, never NaN.
    """
    if len(a) != len(b) or len(a) == 0:
        return 0.0

    v1 = np.asarray(a, dtype=float)
    v2 = np.asarray(b, dtype=float)

    norm1 = np.linalg.norm(v1)
    norm2 = np.linalg.norm(v2)
    if norm1 == 0 or norm2 == 0:
        return 0.0

    score = float(np.dot(v1, v2) / (norm1 * norm2))
    return score if np.isfinite(score) else 0.0


def rank(results: list[SearchResult], top_k: int, threshold: float) -> list[SearchResult]:
    """Apply the shared threshold, ordering and limit rules."""
    kept = [r for r in results if r.score >= threshold]
    kept.sort(key=lambda r: r.score, reverse=True)
    return kept[:top_k]


class SimilaritySearch(Protocol):
    """Scoped nearest-neighbour search over memory entries."""

    async def find_similar(
        self,
        query_vector: list[float],
        agent_id: int,
        user_id: str,
        top_k: int,
        threshold: float,
    ) -> list[SearchResult]: ...


class InProcessSimilaritySearch:
    """Brute-force search over the most recent entries of a scope.

    Args:
        store: Memory store to read entries from.
        window: Number of most recent entries scored per query.
    """

    def __init__(self, store: MemoryStore, window: int = DEFAULT_FALLBACK_WINDOW) -> None:
        self.store = store
        self.window = window

    async def find_similar(
        self,
        query_vector: list[float],
        agent_id: int,
        user_id: str,
        top_k: int,
        threshold: float,
    ) -> list[SearchResult]:
        entries = await self.store.recent(agent_id, user_id, self.window)
        scored = [
            SearchResult(entry=entry, score=cosine_similarity(query_vector, entry.vector))
            for entry in entries
        ]
        return rank(scored, top_k, threshold)


class NativeSimilaritySearch:
    """Search delegated to the Chroma vector index.

    Index hits are hydrated from the memory store; ids the store no
    longer holds are skipped. Callers check ``covers`` first: a scope
    with index writes still pending is not fully searchable here.

    Args:
        index: Vector index mirroring memory entries.
        store: Memory store holding the entries themselves.
    """

    def __init__(self, index: ChromaMemoryIndex, store: MemoryStore) -> None:
        self.index = index
        self.store = store

    async def check_available(self) -> None:
        """Check that the index is usable.

        Raises:
            VectorIndexUnavailableError: If the index cannot serve queries.
        """
        try:
            await self.index.count()
        except VectorIndexUnavailableError:
            raise
        except Exception as e:
            raise VectorIndexUnavailableError(str(e)) from e

    async def covers(self, agent_id: int, user_id: str) -> bool:
        """Retry pending index writes, then report whether the scope is complete."""
        await self.store.sync_index()
        return self.store.index_covers(agent_id, user_id)

    async def find_similar(
        self,
        query_vector: list[float],
        agent_id: int,
        user_id: str,
        top_k: int,
        threshold: float,
    ) -> list[SearchResult]:
        hits = await self.index.query(query_vector, agent_id, user_id, n_results=top_k)
        hits = [(entry_id, score) for entry_id, score in hits if score >= threshold]
        if not hits:
            return []

        entries = await self.store.get_many([entry_id for entry_id, _ in hits])
        results = [
            SearchResult(entry=entries[entry_id], score=score)
            for entry_id, score in hits
            if entry_id in entries
            and entries[entry_id].agent_id == agent_id
            and entries[entry_id].user_id == user_id
        ]
        return rank(results, top_k, threshold)


class AdaptiveSimilaritySearch:
    """Native search with an in-process fallback.

    The native index is checked on first use. If it reports itself
    unsupported (VectorIndexUnavailableError, from the check or from a
    query) the fallback is used for the rest of the process lifetime.
    Any other native failure falls back for that call only, and the
    index is tried again on the next call. A scope whose rows are not
    all mirrored into the index is searched with the fallback.

    Args:
        fallback: In-process search, always available.
        native: Optional native search; None means fallback only.
    """

    def __init__(
        self,
        fallback: InProcessSimilaritySearch,
        native: NativeSimilaritySearch | None = None,
    ) -> None:
        self.fallback = fallback
        self.native = native
        self._checked = False

    @property
    def native_active(self) -> bool:
        """Whether the native index is still in use."""
        return self.native is not None

    def _disable_native(self, reason: str) -> None:
        log.warning("Native vector search disabled", reason=reason)
        self.native = None

    async def _ensure_checked(self) -> None:
        if self._checked or self.native is None:
            return
        self._checked = True
        try:
            await self.native.check_available()
        except VectorIndexUnavailableError as e:
            self._disable_native(str(e))

    async def find_similar(
        self,
        query_vector: list[float],
        agent_id: int,
        user_id: str,
        top_k: int,
        threshold: float,
    ) -> list[SearchResult]:
        await self._ensure_checked()

        if self.native is not None:
            try:
                if await self.native.covers(agent_id, user_id):
                    return await self.native.find_similar(
                        query_vector, agent_id, user_id, top_k, threshold
                    )
                log.info("Scope has unindexed memories, using in-process search")
            except VectorIndexUnavailableError as e:
                self._disable_native(str(e))
            except Exception as e:
                log.warning(
                    "Native vector search failed",
                    error=str(e),
                    error_type=type(e).__name__,
                )

        return await self.fallback.find_similar(
            query_vector, agent_id, user_id, top_k, threshold
        )
