"""Tests for similarity search strategies."""

from unittest.mock import AsyncMock, MagicMock

import pytest

from persona_chat.errors import VectorIndexUnavailableError
from persona_chat.memory.similarity import (
    AdaptiveSimilaritySearch,
    InProcessSimilaritySearch,
    NativeSimilaritySearch,
    cosine_similarity,
    rank,
)
from persona_chat.memory.store import MemoryStore
from persona_chat.memory.types import MemoryEntry, SearchResult
from persona_chat.storage.sqlite_store import SQLiteChatStore


def _entry(entry_id: int, vector: list[float], agent_id: int = 1, user_id: str = "u1") -> MemoryEntry:
    return MemoryEntry(
        id=entry_id,
        agent_id=agent_id,
        user_id=user_id,
        key_point=f"memory {entry_id}",
        vector=vector,
    )


class TestCosineSimilarity:
    def test_identical(self) -> None:
        assert cosine_similarity([1.0, 2.0, 3.0], [1.0, 2.0, 3.0]) == pytest.approx(1.0)

    def test_orthogonal(self) -> None:
        assert cosine_similarity([1.0, 0.0], [0.0, 1.0]) == pytest.approx(0.0)

    def test_opposite(self) -> None:
        assert cosine_similarity([1.0, 0.0], [-1.0, 0.0]) == pytest.approx(-1.0)

    def test_zero_vector_is_zero(self) -> None:
        assert cosine_similarity([0.0, 0.0], [1.0, 1.0]) == 0.0

    def test_length_mismatch_is_zero(self) -> None:
        assert cosine_similarity([1.0, 0.0], [1.0, 0.0, 0.0]) == 0.0

    def test_empty_is_zero(self) -> None:
        assert cosine_similarity([], []) == 0.0

    def test_symmetric(self) -> None:
        pairs = [
            ([1.0, 2.0, 3.0], [3.0, -1.0, 0.5]),
            ([0.2, 0.0, 0.9], [0.0, 0.0, 1.0]),
            ([1.0, 0.0], [0.0, 0.0]),
            ([1.0, 1.0], [1.0]),
        ]
        for a, b in pairs:
            assert cosine_similarity(a, b) == pytest.approx(cosine_similarity(b, a))


class TestRank:
    def test_threshold_order_and_limit(self) -> None:
        results = [
            SearchResult(_entry(1, [1.0]), 0.6),
            SearchResult(_entry(2, [1.0]), 0.4),
            SearchResult(_entry(3, [1.0]), 0.9),
            SearchResult(_entry(4, [1.0]), 0.7),
        ]

        ranked = rank(results, top_k=2, threshold=0.5)

        assert [r.entry.id for r in ranked] == [3, 4]

    def test_threshold_is_inclusive(self) -> None:
        ranked = rank([SearchResult(_entry(1, [1.0]), 0.5)], top_k=5, threshold=0.5)

        assert len(ranked) == 1


@pytest.fixture
async def memory(store: SQLiteChatStore) -> MemoryStore:
    return MemoryStore(store)


class TestInProcessSimilaritySearch:
    @pytest.mark.asyncio
    async def test_finds_similar_in_scope(self, memory: MemoryStore) -> None:
        close = await memory.add(1, "u1", "likes tea", [1.0, 0.1, 0.0])
        await memory.add(1, "u1", "unrelated", [0.0, 0.0, 1.0])
        await memory.add(1, "u2", "other user", [1.0, 0.0, 0.0])
        await memory.add(2, "u1", "other agent", [1.0, 0.0, 0.0])

        search = InProcessSimilaritySearch(memory, window=100)
        results = await search.find_similar([1.0, 0.0, 0.0], 1, "u1", top_k=5, threshold=0.5)

        assert [r.entry.id for r in results] == [close.id]
        assert results[0].score > 0.99

    @pytest.mark.asyncio
    async def test_window_limits_candidates(self, memory: MemoryStore) -> None:
        await memory.add(1, "u1", "old match", [1.0, 0.0, 0.0])
        for i in range(3):
            await memory.add(1, "u1", f"new {i}", [0.0, 1.0, 0.0])

        search = InProcessSimilaritySearch(memory, window=3)
        results = await search.find_similar([1.0, 0.0, 0.0], 1, "u1", top_k=5, threshold=0.5)

        assert results == []

    @pytest.mark.asyncio
    async def test_empty_scope(self, memory: MemoryStore) -> None:
        search = InProcessSimilaritySearch(memory)

        assert await search.find_similar([1.0, 0.0, 0.0], 1, "u1", 5, 0.5) == []


class TestNativeSimilaritySearch:
    @pytest.mark.asyncio
    async def test_hydrates_hits(self, memory: MemoryStore) -> None:
        a = await memory.add(1, "u1", "a", [1.0, 0.0, 0.0])
        b = await memory.add(1, "u1", "b", [0.9, 0.1, 0.0])
        index = MagicMock()
        index.query = AsyncMock(return_value=[(b.id, 0.8), (a.id, 0.95), (999, 0.9)])

        search = NativeSimilaritySearch(index, memory)
        results = await search.find_similar([1.0, 0.0, 0.0], 1, "u1", top_k=5, threshold=0.5)

        assert [(r.entry.id, r.score) for r in results] == [(a.id, 0.95), (b.id, 0.8)]

    @pytest.mark.asyncio
    async def test_drops_hits_outside_scope(self, memory: MemoryStore) -> None:
        foreign = await memory.add(1, "u2", "foreign", [1.0, 0.0, 0.0])
        index = MagicMock()
        index.query = AsyncMock(return_value=[(foreign.id, 0.99)])

        search = NativeSimilaritySearch(index, memory)

        assert await search.find_similar([1.0, 0.0, 0.0], 1, "u1", 5, 0.5) == []

    @pytest.mark.asyncio
    async def test_check_available_wraps_errors(self, memory: MemoryStore) -> None:
        index = MagicMock()
        index.count = AsyncMock(side_effect=RuntimeError("no such function"))

        with pytest.raises(VectorIndexUnavailableError):
            await NativeSimilaritySearch(index, memory).check_available()

    @pytest.mark.asyncio
    async def test_covers_retries_pending_writes(self, store: SQLiteChatStore) -> None:
        index = MagicMock()
        index.add = AsyncMock(side_effect=RuntimeError("index locked"))
        index.add_many = AsyncMock()
        memory = MemoryStore(store, index)
        await memory.add(1, "u1", "likes tea", [1.0, 0.0, 0.0])

        search = NativeSimilaritySearch(index, memory)

        assert await search.covers(1, "u1")
        index.add_many.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_covers_false_while_write_pending(self, store: SQLiteChatStore) -> None:
        index = MagicMock()
        index.add = AsyncMock(side_effect=RuntimeError("index locked"))
        index.add_many = AsyncMock(side_effect=RuntimeError("index locked"))
        memory = MemoryStore(store, index)
        await memory.add(1, "u1", "likes tea", [1.0, 0.0, 0.0])

        search = NativeSimilaritySearch(index, memory)

        assert not await search.covers(1, "u1")
        assert await search.covers(1, "u2")


class TestAdaptiveSimilaritySearch:
    def _fallback(self, results: list[SearchResult] | None = None) -> MagicMock:
        fallback = MagicMock()
        fallback.find_similar = AsyncMock(return_value=results or [])
        return fallback

    def _native(self) -> MagicMock:
        native = MagicMock()
        native.check_available = AsyncMock()
        native.covers = AsyncMock(return_value=True)
        native.find_similar = AsyncMock(return_value=[SearchResult(_entry(1, [1.0]), 0.9)])
        return native

    @pytest.mark.asyncio
    async def test_uses_native_when_available(self) -> None:
        fallback, native = self._fallback(), self._native()
        search = AdaptiveSimilaritySearch(fallback, native)

        results = await search.find_similar([1.0], 1, "u1", 5, 0.5)

        assert results[0].entry.id == 1
        native.check_available.assert_awaited_once()
        fallback.find_similar.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_availability_checked_once(self) -> None:
        native = self._native()
        search = AdaptiveSimilaritySearch(self._fallback(), native)

        await search.find_similar([1.0], 1, "u1", 5, 0.5)
        await search.find_similar([1.0], 1, "u1", 5, 0.5)

        assert native.check_available.await_count == 1

    @pytest.mark.asyncio
    async def test_failed_check_disables_native(self) -> None:
        fallback, native = self._fallback(), self._native()
        native.check_available.side_effect = VectorIndexUnavailableError("unsupported")
        search = AdaptiveSimilaritySearch(fallback, native)

        await search.find_similar([1.0], 1, "u1", 5, 0.5)

        assert not search.native_active
        native.find_similar.assert_not_awaited()
        fallback.find_similar.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_unsupported_query_disables_native(self) -> None:
        fallback, native = self._fallback(), self._native()
        native.find_similar.side_effect = VectorIndexUnavailableError("gone")
        search = AdaptiveSimilaritySearch(fallback, native)

        await search.find_similar([1.0], 1, "u1", 5, 0.5)
        await search.find_similar([1.0], 1, "u1", 5, 0.5)

        assert not search.native_active
        assert native.find_similar.await_count == 1
        assert fallback.find_similar.await_count == 2

    @pytest.mark.asyncio
    async def test_transient_failure_falls_back_once(self) -> None:
        fallback, native = self._fallback(), self._native()
        native.find_similar.side_effect = [RuntimeError("timeout"), []]
        search = AdaptiveSimilaritySearch(fallback, native)

        await search.find_similar([1.0], 1, "u1", 5, 0.5)
        await search.find_similar([1.0], 1, "u1", 5, 0.5)

        assert search.native_active
        assert native.find_similar.await_count == 2
        assert fallback.find_similar.await_count == 1

    @pytest.mark.asyncio
    async def test_fallback_only(self) -> None:
        fallback = self._fallback()
        search = AdaptiveSimilaritySearch(fallback)

        await search.find_similar([1.0], 1, "u1", 5, 0.5)

        assert not search.native_active
        fallback.find_similar.assert_awaited_once_with([1.0], 1, "u1", 5, 0.5)

    @pytest.mark.asyncio
    async def test_uncovered_scope_uses_fallback(self) -> None:
        fallback, native = self._fallback(), self._native()
        native.covers.return_value = False
        search = AdaptiveSimilaritySearch(fallback, native)

        await search.find_similar([1.0], 1, "u1", 5, 0.5)

        assert search.native_active
        native.find_similar.assert_not_awaited()
        fallback.find_similar.assert_awaited_once_with([1.0], 1, "u1", 5, 0.5)

    @pytest.mark.asyncio
    async def test_unmirrored_row_is_still_found(self, store: SQLiteChatStore) -> None:
        index = MagicMock()
        index.count = AsyncMock(return_value=0)
        index.add = AsyncMock(side_effect=RuntimeError("index locked"))
        index.add_many = AsyncMock(side_effect=RuntimeError("index locked"))
        index.query = AsyncMock(return_value=[])
        memory = MemoryStore(store, index)
        tea = await memory.add(1, "u1", "User likes tea", [1.0, 0.0, 0.0])

        search = AdaptiveSimilaritySearch(
            InProcessSimilaritySearch(memory), NativeSimilaritySearch(index, memory)
        )
        results = await search.find_similar([1.0, 0.0, 0.0], 1, "u1", 5, 0.5)

        assert [r.entry.id for r in results] == [tea.id]
        index.query.assert_not_awaited()
