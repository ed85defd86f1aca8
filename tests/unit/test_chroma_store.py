"""Unit tests for the ChromaDB memory index.

Tests scoped queries and distance-to-similarity conversion against a
mocked collection.
"""

import tempfile
from pathlib import Path
from unittest.mock import MagicMock

import pytest

from persona_chat.errors import VectorIndexUnavailableError
from persona_chat.memory.types import MemoryEntry
from persona_chat.storage.chroma_store import ChromaMemoryIndex


@pytest.fixture
def temp_chroma_dir():
    """Create a temporary directory for ChromaDB."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def mock_collection():
    """Create a mock ChromaDB collection."""
    mock = MagicMock()
    mock.query = MagicMock(return_value={
        "ids": [["7", "9"]],
        "distances": [[0.1, 0.5]],
    })
    mock.count = MagicMock(return_value=2)
    return mock


@pytest.fixture
def index(temp_chroma_dir: Path, mock_collection: MagicMock) -> ChromaMemoryIndex:
    index = ChromaMemoryIndex(temp_chroma_dir)
    index._collection = mock_collection
    return index


class TestChromaMemoryIndexInit:
    """Tests for ChromaMemoryIndex initialization."""

    def test_init_expands_path(self) -> None:
        """Test that initialization expands user path."""
        index = ChromaMemoryIndex("~/test/path")
        assert "~" not in str(index.path)

    def test_collection_property_raises_before_init(self, temp_chroma_dir: Path) -> None:
        """Test that collection property raises if not initialized."""
        index = ChromaMemoryIndex(temp_chroma_dir)
        with pytest.raises(VectorIndexUnavailableError, match="not initialized"):
            _ = index.collection


class TestQuery:
    @pytest.mark.asyncio
    async def test_distance_converted_to_similarity(self, index: ChromaMemoryIndex) -> None:
        hits = await index.query([1.0, 0.0, 0.0], agent_id=1, user_id="u1", n_results=5)

        assert hits[0][0] == 7
        assert hits[0][1] == pytest.approx(0.9)
        assert hits[1] == (9, pytest.approx(0.5))

    @pytest.mark.asyncio
    async def test_query_is_scoped(
        self, index: ChromaMemoryIndex, mock_collection: MagicMock
    ) -> None:
        await index.query([1.0, 0.0, 0.0], agent_id=1, user_id="u1", n_results=3)

        kwargs = mock_collection.query.call_args.kwargs
        assert kwargs["where"] == {"$and": [{"agent_id": 1}, {"user_id": "u1"}]}
        assert kwargs["n_results"] == 3
        assert kwargs["query_embeddings"] == [[1.0, 0.0, 0.0]]

    @pytest.mark.asyncio
    async def test_empty_results(
        self, index: ChromaMemoryIndex, mock_collection: MagicMock
    ) -> None:
        mock_collection.query.return_value = {"ids": [[]], "distances": [[]]}

        assert await index.query([1.0], agent_id=1, user_id="u1", n_results=3) == []


class TestWrites:
    @pytest.mark.asyncio
    async def test_add_upserts_with_scope_metadata(
        self, index: ChromaMemoryIndex, mock_collection: MagicMock
    ) -> None:
        entry = MemoryEntry(id=5, agent_id=1, user_id="u1", key_point="x", vector=[0.1, 0.2, 0.3])

        await index.add(entry)

        mock_collection.upsert.assert_called_once_with(
            ids=["5"],
            embeddings=[[0.1, 0.2, 0.3]],
            metadatas=[{"agent_id": 1, "user_id": "u1"}],
        )

    @pytest.mark.asyncio
    async def test_add_many_single_upsert(
        self, index: ChromaMemoryIndex, mock_collection: MagicMock
    ) -> None:
        entries = [
            MemoryEntry(id=1, agent_id=1, user_id="u1", key_point="a", vector=[1.0, 0.0]),
            MemoryEntry(id=2, agent_id=2, user_id="u2", key_point="b", vector=[0.0, 1.0]),
        ]

        await index.add_many(entries)
        await index.add_many([])

        mock_collection.upsert.assert_called_once_with(
            ids=["1", "2"],
            embeddings=[[1.0, 0.0], [0.0, 1.0]],
            metadatas=[{"agent_id": 1, "user_id": "u1"}, {"agent_id": 2, "user_id": "u2"}],
        )

    @pytest.mark.asyncio
    async def test_ids(self, index: ChromaMemoryIndex, mock_collection: MagicMock) -> None:
        mock_collection.get.return_value = {"ids": ["3", "12"]}

        assert await index.ids() == {3, 12}
        mock_collection.get.assert_called_once_with(include=[])

    @pytest.mark.asyncio
    async def test_delete(self, index: ChromaMemoryIndex, mock_collection: MagicMock) -> None:
        await index.delete([1, 2])
        await index.delete([])

        mock_collection.delete.assert_called_once_with(ids=["1", "2"])

    @pytest.mark.asyncio
    async def test_count_and_close(self, index: ChromaMemoryIndex) -> None:
        assert await index.count() == 2

        await index.close()

        with pytest.raises(VectorIndexUnavailableError):
            await index.count()
