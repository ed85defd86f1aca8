"""Embedding clients for memory retrieval and consolidation.

Two backends share one interface:
- OpenAIEmbeddingClient: provider embeddings billed to the user's credential
- LocalEmbeddingClient: sentence-transformers, loaded lazily on first use
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Protocol, runtime_checkable

from persona_chat.utils.config import EmbeddingBackend, MemoryConfig

if TYPE_CHECKING:
    from sentence_transformers import SentenceTransformer

    from persona_chat.utils.openai_clients import OpenAIClientPool

logger = logging.getLogger(__name__)

DEFAULT_OPENAI_MODEL = "text-embedding-3-small"
DEFAULT_LOCAL_MODEL = "all-MiniLM-L6-v2"


@runtime_checkable
class EmbeddingClient(Protocol):
    """Turns text into a fixed-length float vector."""

    @property
    def dimension(self) -> int: ...

    async def embed(self, text: str, credential: str) -> list[float]: ...


class OpenAIEmbeddingClient:
    """Embeddings from the OpenAI embeddings endpoint.

    Args:
        clients: Pool handing out one AsyncOpenAI client per credential.
        model: Embedding model name.
        dimensions: Vector length requested from the provider.
    """

    def __init__(
        self,
        clients: OpenAIClientPool,
        model: str = DEFAULT_OPENAI_MODEL,
        dimensions: int = 1536,
    ) -> None:
        self.clients = clients
        self.model = model
        self._dimension = dimensions

    @property
    def dimension(self) -> int:
        return self._dimension

    async def embed(self, text: str, credential: str) -> list[float]:
        """Embed a single text with the user's credential.

        Args:
            text: The text to embed.
            credential: Provider API key.

        Returns:
            Embedding vector of length ``dimension``.
        """
        client = self.clients.get(credential)
        response = await client.embeddings.create(
            model=self.model,
            input=text,
            dimensions=self._dimension,
        )
        return list(response.data[0].embedding)


class LocalEmbeddingClient:
    """Embeddings computed in-process with sentence-transformers.

    Lazily loads the model on first use to avoid slow startup times when
    embeddings aren't immediately needed. The credential is ignored.

    Args:
        model_name: Name of the sentence-transformers model to use.
            Defaults to all-MiniLM-L6-v2 (384 dimensions, fast).
    """

    def __init__(self, model_name: str = DEFAULT_LOCAL_MODEL) -> None:
        self.model_name = model_name
        self._model: SentenceTransformer | None = None
        self._dimension: int | None = None

    @property
    def model(self) -> SentenceTransformer:
        """Lazily load the sentence-transformers model."""
        if self._model is None:
            logger.info(f"Loading embedding model: {self.model_name}")
            try:
                from sentence_transformers import SentenceTransformer
            except ImportError as e:
                raise ImportError(
                    "sentence-transformers is required for local embeddings. "
                    "Install with: pip install 'persona-chat[local]'"
                ) from e

            self._model = SentenceTransformer(self.model_name)
            self._dimension = self._model.get_sentence_embedding_dimension()
            logger.info(f"Loaded {self.model_name} with {self._dimension} dimensions")
        return self._model

    @property
    def dimension(self) -> int:
        """Get the embedding dimension (loads model if needed)."""
        if self._dimension is None:
            _ = self.model
        return self._dimension or 384  # Default for MiniLM

    def _encode(self, text: str) -> list[float]:
        return self.model.encode(text, convert_to_numpy=True).tolist()

    async def embed(self, text: str, credential: str) -> list[float]:
        return await asyncio.to_thread(self._encode, text)


def create_embedding_client(
    config: MemoryConfig,
    clients: OpenAIClientPool,
) -> EmbeddingClient:
    """Build the embedding client selected by configuration."""
    if config.embedding_backend == EmbeddingBackend.LOCAL:
        return LocalEmbeddingClient(config.local_embedding_model)
    return OpenAIEmbeddingClient(
        clients,
        model=config.embedding_model,
        dimensions=config.embedding_dimensions,
    )
