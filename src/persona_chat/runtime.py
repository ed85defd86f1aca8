"""Wiring of the chat pipeline from configuration."""

from __future__ import annotations

from dataclasses import dataclass

from persona_chat.chat.agents import AgentDirectory, InMemoryAgentDirectory, YamlAgentDirectory
from persona_chat.chat.completion import CompletionInvoker
from persona_chat.chat.context import ContextAssembler
from persona_chat.chat.credentials import (
    CachedCredentialProvider,
    CredentialProvider,
    EnvCredentialProvider,
)
from persona_chat.chat.orchestrator import TurnOrchestrator
from persona_chat.chat.request_log import RequestLogger
from persona_chat.chat.translation import WordParser
from persona_chat.errors import VectorIndexUnavailableError
from persona_chat.memory.consolidator import MemoryConsolidator
from persona_chat.memory.embeddings import EmbeddingClient, create_embedding_client
from persona_chat.memory.extraction import MemoryExtractor
from persona_chat.memory.queue import SummarizationQueue
from persona_chat.memory.retrieval import MemoryRetriever
from persona_chat.memory.similarity import (
    AdaptiveSimilaritySearch,
    InProcessSimilaritySearch,
    NativeSimilaritySearch,
)
from persona_chat.memory.store import MemoryStore
from persona_chat.memory.summarization import MemorySummarizer
from persona_chat.storage.chroma_store import ChromaMemoryIndex
from persona_chat.storage.sqlite_store import SQLiteChatStore
from persona_chat.utils.config import ChatConfig
from persona_chat.utils.logging import get_logger
from persona_chat.utils.openai_clients import ClientFactory, OpenAIClientPool

log = get_logger(__name__)


@dataclass
class ChatRuntime:
    """Everything a running chat pipeline owns."""

    config: ChatConfig
    orchestrator: TurnOrchestrator
    store: SQLiteChatStore
    memory: MemoryStore
    clients: OpenAIClientPool
    index: ChromaMemoryIndex | None = None
    summary_queue: SummarizationQueue | None = None

    async def close(self) -> None:
        """Stop the background worker and release stores and clients."""
        if self.summary_queue is not None:
            await self.summary_queue.stop()
        await self.clients.close()
        if self.index is not None:
            await self.index.close()
        await self.store.close()
        log.info("Chat runtime closed")


async def _open_index(config: ChatConfig) -> ChromaMemoryIndex | None:
    if not config.storage.native_index_enabled:
        return None
    index = ChromaMemoryIndex(config.storage.chroma_path, config.storage.collection_name)
    try:
        await index.initialize()
    except VectorIndexUnavailableError as e:
        log.warning("Vector index unavailable, using in-process search", error=str(e))
        return None
    return index


async def create_runtime(
    config: ChatConfig,
    credentials: CredentialProvider | None = None,
    agents: AgentDirectory | None = None,
    client_factory: ClientFactory | None = None,
    embeddings: EmbeddingClient | None = None,
) -> ChatRuntime:
    """Build and start a chat runtime.

    Args:
        config: Validated configuration.
        credentials: Credential source; defaults to OPENAI_API_KEY, cached.
        agents: Agent source; defaults to ``storage.agents_path`` or empty.
        client_factory: Builds OpenAI clients; injectable for tests.
        embeddings: Embedding client; defaults to the configured backend.

    Returns:
        A runtime whose summarization worker is running.
    """
    clients = OpenAIClientPool(client_factory)
    memory_config = config.memory

    if credentials is None:
        credentials = CachedCredentialProvider(
            EnvCredentialProvider(),
            ttl_seconds=config.model.credential_cache_ttl_seconds,
        )
    if agents is None:
        agents = (
            YamlAgentDirectory(config.storage.agents_path)
            if config.storage.agents_path
            else InMemoryAgentDirectory()
        )
    if embeddings is None:
        embeddings = create_embedding_client(memory_config, clients)

    store = SQLiteChatStore(config.storage.sqlite_path, embedding_dimensions=embeddings.dimension)
    await store.initialize()

    index = await _open_index(config) if memory_config.enabled else None
    memory = MemoryStore(store, index)
    if index is not None:
        try:
            await memory.reconcile_index()
        except Exception as e:
            log.warning(
                "Vector index reconciliation failed, using in-process search",
                error=str(e),
                error_type=type(e).__name__,
            )
            await index.close()
            index = None
            memory.index = None
    invoker = CompletionInvoker(clients, RequestLogger(store))

    retriever = None
    consolidator = None
    queue = None
    if memory_config.enabled:
        search = AdaptiveSimilaritySearch(
            fallback=InProcessSimilaritySearch(memory, window=memory_config.fallback_window),
            native=NativeSimilaritySearch(index, memory) if index is not None else None,
        )
        retriever = MemoryRetriever(
            embeddings,
            search,
            top_k=memory_config.top_k,
            threshold=memory_config.similarity_threshold,
        )
        consolidator = MemoryConsolidator(
            memory,
            embeddings,
            MemoryExtractor(
                invoker,
                model=config.model.memory_model,
                max_insights=memory_config.max_insights,
                max_length=memory_config.max_memory_length,
                message_window=memory_config.extraction_messages,
            ),
            MemorySummarizer(
                invoker,
                model=config.model.memory_model,
                max_length=memory_config.max_memory_length,
            ),
            save_interval=memory_config.save_interval,
            summarization_threshold=memory_config.summarization_threshold,
            group_threshold=memory_config.group_similarity_threshold,
            summarization_batch=memory_config.summarization_batch,
        )
        queue = SummarizationQueue(consolidator, maxsize=memory_config.summary_queue_size)
        queue.start()

    orchestrator = TurnOrchestrator(
        credentials=credentials,
        agents=agents,
        store=store,
        invoker=invoker,
        assembler=ContextAssembler(system_rules=config.behavior.system_rules),
        retriever=retriever,
        consolidator=consolidator,
        summary_queue=queue,
        word_parser=(
            WordParser(invoker, model=config.model.translation_model)
            if config.model.word_parsing_enabled
            else None
        ),
    )

    log.info(
        "Chat runtime ready",
        memory_enabled=memory_config.enabled,
        native_index=index is not None,
        embedding_backend=memory_config.embedding_backend.value,
    )
    return ChatRuntime(
        config=config,
        orchestrator=orchestrator,
        store=store,
        memory=memory,
        clients=clients,
        index=index,
        summary_queue=queue,
    )
