"""Memory store: durable memory rows mirrored into a vector index.

SQLite holds the rows. When a ChromaMemoryIndex is attached every write
is mirrored into it. A mirror failure is logged and the row stays; the
entry is remembered as pending and retried before the next native
search. While a scope has pending writes its searches go to the
in-process fallback, which reads SQLite directly.

``reconcile_index`` brings a possibly stale index (a crash between the
SQLite insert and the mirror, or an index rebuilt from scratch) back in
line with SQLite and runs when the runtime opens the index.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from persona_chat.memory.types import MemoryEntry, MemoryProvenance

if TYPE_CHECKING:
    from persona_chat.storage.chroma_store import ChromaMemoryIndex
    from persona_chat.storage.sqlite_store import SQLiteChatStore

logger = logging.getLogger(__name__)

RECONCILE_BATCH = 500


class MemoryStore:
    """Scoped access to memory entries.

    Args:
        sqlite: Store holding memory rows.
        index: Optional vector index mirroring the rows.
    """

    def __init__(
        self,
        sqlite: SQLiteChatStore,
        index: ChromaMemoryIndex | None = None,
    ) -> None:
        self.sqlite = sqlite
        self.index = index
        self._unindexed: dict[int, MemoryEntry] = {}
        self._stale: set[int] = set()

    async def add(
        self,
        agent_id: int,
        user_id: str,
        key_point: str,
        vector: list[float],
        context: MemoryProvenance | None = None,
    ) -> MemoryEntry:
        """Store a memory entry and mirror it into the index.

        Raises:
            MemoryDimensionError: If the vector has the wrong length.
        """
        entry = await self.sqlite.add_memory(agent_id, user_id, key_point, vector, context)
        if self.index is not None:
            try:
                await self.index.add(entry)
            except Exception as e:
                logger.warning(f"Failed to index memory {entry.id}, will retry: {e}")
                self._unindexed[entry.id] = entry
        return entry

    async def get_many(self, entry_ids: list[int]) -> dict[int, MemoryEntry]:
        """Fetch entries by id, keyed by id."""
        entries = await self.sqlite.get_memories(entry_ids)
        return {entry.id: entry for entry in entries}

    async def recent(self, agent_id: int, user_id: str, limit: int) -> list[MemoryEntry]:
        """Most recent entries of a scope, newest first."""
        return await self.sqlite.list_memories(agent_id, user_id, limit=limit)

    async def count(self, agent_id: int, user_id: str) -> int:
        return await self.sqlite.count_memories(agent_id, user_id)

    async def delete(self, entry_ids: list[int]) -> int:
        """Delete entries from the store and the index.

        Returns:
            Number of rows deleted.
        """
        count = await self.sqlite.delete_memories(entry_ids)
        for entry_id in entry_ids:
            self._unindexed.pop(entry_id, None)
        if self.index is not None:
            try:
                await self.index.delete(entry_ids)
            except Exception as e:
                logger.warning(f"Failed to remove {len(entry_ids)} memories from index, will retry: {e}")
                self._stale.update(entry_ids)
        return count

    # ─────────────────────────────────────────────────────────────────
    # Index Consistency
    # ─────────────────────────────────────────────────────────────────

    @property
    def pending(self) -> int:
        """Index writes that failed and are waiting for a retry."""
        return len(self._unindexed) + len(self._stale)

    async def sync_index(self) -> None:
        """Retry failed index writes. Failures stay pending."""
        if self.index is None or not self.pending:
            return

        if self._unindexed:
            entries = list(self._unindexed.values())
            try:
                await self.index.add_many(entries)
            except Exception as e:
                logger.warning(f"Retry of {len(entries)} index writes failed: {e}")
            else:
                for entry in entries:
                    self._unindexed.pop(entry.id, None)
                logger.info(f"Indexed {len(entries)} previously failed memories")

        if self._stale:
            stale = sorted(self._stale)
            try:
                await self.index.delete(stale)
            except Exception as e:
                logger.warning(f"Retry of {len(stale)} index removals failed: {e}")
            else:
                self._stale.difference_update(stale)

    def index_covers(self, agent_id: int, user_id: str) -> bool:
        """Whether the index holds exactly the scope's rows.

        A pending removal makes every scope untrusted, since the index
        could return an id that no longer exists; a pending write only
        affects the scope it belongs to.
        """
        if self.index is None or self._stale:
            return False
        return not any(
            e.agent_id == agent_id and e.user_id == user_id for e in self._unindexed.values()
        )

    async def reconcile_index(self) -> int:
        """Make the index mirror SQLite exactly.

        Rows missing from the index are upserted in batches and indexed
        ids with no row are removed.

        Returns:
            Number of entries added or removed.
        """
        if self.index is None:
            return 0

        stored = await self.sqlite.memory_ids()
        indexed = await self.index.ids()
        missing = sorted(stored - indexed)
        orphans = sorted(indexed - stored)

        for start in range(0, len(missing), RECONCILE_BATCH):
            batch = await self.sqlite.get_memories(missing[start : start + RECONCILE_BATCH])
            await self.index.add_many(batch)
        if orphans:
            await self.index.delete(orphans)

        self._unindexed.clear()
        self._stale.clear()

        changed = len(missing) + len(orphans)
        if changed:
            logger.info(f"Reconciled vector index: {len(missing)} added, {len(orphans)} removed")
        return changed
