"""Memory consolidation: periodic creation and compaction of memories.

Creation runs inline after a turn, on the first turn of a session and on
every ``save_interval``-th turn after that. The count is per session, so
many short sessions consolidate less often than one long session.

Compaction (summarization) is triggered once a scope holds more than
``summarization_threshold`` entries and runs off the reply path, on the
SummarizationQueue worker.
"""

from __future__ import annotations

from typing import Sequence

from persona_chat.chat.types import RequestContext, RequestKind, Turn
from persona_chat.memory.embeddings import EmbeddingClient
from persona_chat.memory.extraction import MemoryExtractor
from persona_chat.memory.store import MemoryStore
from persona_chat.memory.summarization import MemorySummarizer, group_similar_memories
from persona_chat.memory.types import MemoryProvenance
from persona_chat.utils.logging import get_logger

log = get_logger(__name__)


def should_create_memory(turn_count: int, interval: int) -> bool:
    """Check whether a session with ``turn_count`` turns triggers extraction.

    Args:
        turn_count: Turns stored in the session, including the latest one.
        interval: Extraction interval.

    Returns:
        True on the first turn and on every multiple of ``interval``.
    """
    if turn_count <= 0:
        return False
    return turn_count == 1 or turn_count % interval == 0


class MemoryConsolidator:
    """Creates and compacts long-term memories for an agent and user.

    Args:
        store: Memory store receiving new entries.
        embeddings: Client embedding insights and summaries.
        extractor: Produces insights from a transcript.
        summarizer: Condenses groups of related entries.
        save_interval: Turns between extractions within a session.
        summarization_threshold: Entry count above which a scope is compacted.
        group_threshold: Similarity needed for two entries to be merged.
        summarization_batch: Most recent entries considered per compaction.
    """

    def __init__(
        self,
        store: MemoryStore,
        embeddings: EmbeddingClient,
        extractor: MemoryExtractor,
        summarizer: MemorySummarizer,
        save_interval: int = 10,
        summarization_threshold: int = 20,
        group_threshold: float = 0.85,
        summarization_batch: int = 100,
    ) -> None:
        self.store = store
        self.embeddings = embeddings
        self.extractor = extractor
        self.summarizer = summarizer
        self.save_interval = save_interval
        self.summarization_threshold = summarization_threshold
        self.group_threshold = group_threshold
        self.summarization_batch = summarization_batch

    # ─────────────────────────────────────────────────────────────────
    # Creation
    # ─────────────────────────────────────────────────────────────────

    async def maybe_create_memory(
        self,
        agent_id: int,
        user_id: str,
        session_id: int,
        session_name: str | None,
        turns: Sequence[Turn],
        credential: str,
    ) -> int:
        """Extract and store insights if the session hit a trigger point.

        Never raises: failures are logged and count as zero created.

        Args:
            agent_id: Agent scope.
            user_id: User scope.
            session_id: Session the transcript belongs to.
            session_name: Session display name, kept as provenance.
            turns: Every turn of the session in order.
            credential: Provider API key.

        Returns:
            Number of memory entries created.
        """
        if not should_create_memory(len(turns), self.save_interval):
            return 0

        context = MemoryProvenance(
            session_id=session_id,
            session_name=session_name,
            message_count=len(turns),
        )

        try:
            insights = await self.extractor.extract(
                turns,
                credential,
                RequestContext(user_id=user_id, agent_id=agent_id, kind=RequestKind.MEMORY),
            )
        except Exception as e:
            log.error("Memory extraction failed", error=str(e), error_type=type(e).__name__)
            return 0

        created = 0
        for insight in insights:
            try:
                vector = await self.embeddings.embed(insight, credential)
                await self.store.add(agent_id, user_id, insight, vector, context)
                created += 1
            except Exception as e:
                log.error(
                    "Memory creation failed",
                    error=str(e),
                    error_type=type(e).__name__,
                    insight=insight[:50],
                )

        if created:
            log.info("Memories created", count=created, turn_count=len(turns))
        return created

    # ─────────────────────────────────────────────────────────────────
    # Compaction
    # ─────────────────────────────────────────────────────────────────

    async def should_summarize(self, agent_id: int, user_id: str) -> bool:
        """Check whether the scope holds more entries than the threshold."""
        count = await self.store.count(agent_id, user_id)
        return count > self.summarization_threshold

    async def summarize(self, agent_id: int, user_id: str, credential: str) -> int:
        """Merge groups of similar entries into single summaries.

        Works on a snapshot of the scope's most recent entries. Each
        multi-entry group is summarized, the summary is stored with the
        newest member's provenance, then the group is deleted. A failing
        group is logged and left intact.

        Returns:
            Number of groups compacted.
        """
        snapshot = await self.store.recent(agent_id, user_id, self.summarization_batch)
        groups = [
            g for g in group_similar_memories(snapshot, self.group_threshold) if len(g) > 1
        ]
        log.debug("Memory groups found", entries=len(snapshot), groups=len(groups))
        request_context = RequestContext(
            user_id=user_id, agent_id=agent_id, kind=RequestKind.SUMMARY
        )

        compacted = 0
        for group in groups:
            try:
                summary = await self.summarizer.summarize_group(group, credential, request_context)
                if not summary:
                    continue
                vector = await self.embeddings.embed(summary, credential)
                newest = max(group, key=lambda e: (e.created_at, e.id))
                await self.store.add(agent_id, user_id, summary, vector, newest.context)
                await self.store.delete([e.id for e in group])
                compacted += 1
            except Exception as e:
                log.error(
                    "Memory group summarization failed",
                    error=str(e),
                    error_type=type(e).__name__,
                    group_size=len(group),
                )

        log.info("Memories summarized", groups=compacted, agent_id=agent_id)
        return compacted
