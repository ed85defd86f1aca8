"""SQLite storage for sessions, turns, memory entries and translations.

Provides durable storage for:
- Sessions (one conversation per agent and user, most recent first)
- Turns (append-only messages with audit payloads)
- Memory entries (key points with their embedding vectors)
- Message and word translations for language assistants
- AI request logs (one row per model call with token usage and price)
"""

from __future__ import annotations

import json
import logging
import sqlite3
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Any, Iterable, Iterator

from persona_chat.chat.types import (
    RequestContext,
    RequestLogEntry,
    Role,
    Session,
    Turn,
    WordTranslation,
)
from persona_chat.errors import MemoryDimensionError
from persona_chat.memory.types import MemoryEntry, MemoryProvenance

logger = logging.getLogger(__name__)

SCHEMA = """
CREATE TABLE IF NOT EXISTS sessions (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    agent_id INTEGER NOT NULL,
    user_id TEXT NOT NULL,
    display_name TEXT,
    created_at TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_sessions_scope_time
ON sessions(agent_id, user_id, created_at DESC);

CREATE TABLE IF NOT EXISTS messages (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    session_id INTEGER NOT NULL,
    role TEXT NOT NULL,
    content TEXT NOT NULL,
    metadata TEXT,
    raw_request TEXT,
    raw_response TEXT,
    created_at TEXT NOT NULL,
    FOREIGN KEY (session_id) REFERENCES sessions(id)
);

CREATE INDEX IF NOT EXISTS idx_messages_session_time
ON messages(session_id, created_at, id);

CREATE TABLE IF NOT EXISTS memory_entries (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    agent_id INTEGER NOT NULL,
    user_id TEXT NOT NULL,
    key_point TEXT NOT NULL,
    vector TEXT NOT NULL,
    context TEXT,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_memory_scope_time
ON memory_entries(agent_id, user_id, created_at DESC);

CREATE TABLE IF NOT EXISTS message_translations (
    message_id INTEGER PRIMARY KEY,
    translation TEXT NOT NULL,
    created_at TEXT NOT NULL,
    FOREIGN KEY (message_id) REFERENCES messages(id)
);

CREATE TABLE IF NOT EXISTS word_translations (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    message_id INTEGER NOT NULL,
    original_word TEXT NOT NULL,
    translation TEXT NOT NULL,
    sentence_context TEXT,
    created_at TEXT NOT NULL,
    FOREIGN KEY (message_id) REFERENCES messages(id)
);

CREATE INDEX IF NOT EXISTS idx_word_translations_message
ON word_translations(message_id, id);

CREATE TABLE IF NOT EXISTS ai_request_logs (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    user_id TEXT,
    agent_id INTEGER,
    kind TEXT NOT NULL,
    model TEXT NOT NULL,
    request_json TEXT NOT NULL,
    response_json TEXT NOT NULL,
    prompt_tokens INTEGER NOT NULL DEFAULT 0,
    completion_tokens INTEGER NOT NULL DEFAULT 0,
    total_tokens INTEGER NOT NULL DEFAULT 0,
    estimated_price REAL NOT NULL DEFAULT 0,
    created_at TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_ai_request_logs_user_time
ON ai_request_logs(user_id, created_at DESC);
"""


def _dump(value: dict[str, Any] | None) -> str | None:
    return json.dumps(value) if value is not None else None


class SQLiteChatStore:
    """SQLite-backed storage for the chat pipeline.

    Every operation opens its own connection, so concurrent turns never
    share a connection. Turns and memory rows are independent inserts and
    need no cross-turn locking.

    Args:
        path: Path to the SQLite database file.
        embedding_dimensions: Required vector length for memory entries.
            When None, any non-empty vector is accepted.

    Example:
        >>> store = SQLiteChatStore("~/.persona_chat/chat.db", embedding_dimensions=1536)
        >>> await store.initialize()
        >>> session = await store.create_session(agent_id=1, user_id="u-1")
        >>> await store.add_turn(session.id, Role.USER, "Hello")
    """

    def __init__(self, path: str | Path, embedding_dimensions: int | None = None) -> None:
        self.path = Path(path).expanduser()
        self.embedding_dimensions = embedding_dimensions
        self._initialized = False

    @contextmanager
    def _get_connection(self) -> Iterator[sqlite3.Connection]:
        """Get a database connection with proper cleanup."""
        conn = sqlite3.connect(str(self.path))
        conn.row_factory = sqlite3.Row
        try:
            yield conn
        finally:
            conn.close()

    async def initialize(self) -> None:
        """Initialize the database schema.

        Creates the database file and tables if they don't exist.
        """
        self.path.parent.mkdir(parents=True, exist_ok=True)

        logger.info(f"Initializing SQLite database at {self.path}")
        with self._get_connection() as conn:
            conn.executescript(SCHEMA)
            conn.commit()

        self._initialized = True
        logger.info("SQLite chat store ready")

    @property
    def is_initialized(self) -> bool:
        return self._initialized

    # ─────────────────────────────────────────────────────────────────
    # Session Operations
    # ─────────────────────────────────────────────────────────────────

    async def create_session(
        self,
        agent_id: int,
        user_id: str,
        display_name: str | None = None,
    ) -> Session:
        """Create a new session.

        Args:
            agent_id: Agent the session talks to.
            user_id: Owner of the session.
            display_name: Optional human-readable name.

        Returns:
            The created Session.
        """
        created_at = datetime.now()
        with self._get_connection() as conn:
            cursor = conn.execute(
                """
                INSERT INTO sessions (agent_id, user_id, display_name, created_at)
                VALUES (?, ?, ?, ?)
                """,
                (agent_id, user_id, display_name, created_at.isoformat()),
            )
            conn.commit()
            session_id = cursor.lastrowid

        logger.debug(f"Created session {session_id} for agent {agent_id}")
        return Session(
            id=session_id,
            agent_id=agent_id,
            user_id=user_id,
            display_name=display_name,
            created_at=created_at,
        )

    async def get_session(self, session_id: int, user_id: str) -> Session | None:
        """Get a session by id, visible only to its owner.

        Args:
            session_id: The session identifier.
            user_id: The requesting user.

        Returns:
            The Session if it exists and belongs to the user, None otherwise.
        """
        with self._get_connection() as conn:
            row = conn.execute(
                "SELECT * FROM sessions WHERE id = ? AND user_id = ?",
                (session_id, user_id),
            ).fetchone()

        return Session.from_db_dict(dict(row)) if row else None

    async def get_latest_session(self, agent_id: int, user_id: str) -> Session | None:
        """Get the most recently created session for an agent and user."""
        with self._get_connection() as conn:
            row = conn.execute(
                """
                SELECT * FROM sessions
                WHERE agent_id = ? AND user_id = ?
                ORDER BY created_at DESC, id DESC
                LIMIT 1
                """,
                (agent_id, user_id),
            ).fetchone()

        return Session.from_db_dict(dict(row)) if row else None

    async def list_sessions(
        self,
        agent_id: int,
        user_id: str,
        limit: int = 50,
    ) -> list[Session]:
        """List sessions for an agent and user, most recent first."""
        with self._get_connection() as conn:
            rows = conn.execute(
                """
                SELECT * FROM sessions
                WHERE agent_id = ? AND user_id = ?
                ORDER BY created_at DESC, id DESC
                LIMIT ?
                """,
                (agent_id, user_id, limit),
            ).fetchall()

        return [Session.from_db_dict(dict(row)) for row in rows]

    async def rename_session(
        self,
        session_id: int,
        user_id: str,
        display_name: str | None,
    ) -> Session | None:
        """Change a session's display name, its only mutable field.

        Returns:
            The updated Session, or None if it doesn't belong to the user.
        """
        with self._get_connection() as conn:
            cursor = conn.execute(
                "UPDATE sessions SET display_name = ? WHERE id = ? AND user_id = ?",
                (display_name, session_id, user_id),
            )
            conn.commit()
            updated = cursor.rowcount > 0

        if not updated:
            return None
        logger.debug(f"Renamed session {session_id}")
        return await self.get_session(session_id, user_id)

    # ─────────────────────────────────────────────────────────────────
    # Turn Operations
    # ─────────────────────────────────────────────────────────────────

    async def add_turn(
        self,
        session_id: int,
        role: Role,
        content: str,
        metadata: dict[str, Any] | None = None,
        raw_request: dict[str, Any] | None = None,
        raw_response: dict[str, Any] | None = None,
    ) -> Turn:
        """Append a turn to a session.

        Args:
            session_id: Session to append to.
            role: Author of the turn.
            content: Message text.
            metadata: Optional model settings used for the turn.
            raw_request: Provider request that accompanied a user turn.
            raw_response: Provider response that produced an assistant turn.

        Returns:
            The stored Turn.
        """
        created_at = datetime.now()
        with self._get_connection() as conn:
            cursor = conn.execute(
                """
                INSERT INTO messages
                    (session_id, role, content, metadata, raw_request,
                     raw_response, created_at)
                VALUES (?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    session_id,
                    role.value,
                    content,
                    _dump(metadata),
                    _dump(raw_request),
                    _dump(raw_response),
                    created_at.isoformat(),
                ),
            )
            conn.commit()
            turn_id = cursor.lastrowid

        logger.debug(f"Stored {role.value} turn {turn_id} in session {session_id}")
        return Turn(
            id=turn_id,
            session_id=session_id,
            role=role,
            content=content,
            metadata=metadata,
            raw_request=raw_request,
            raw_response=raw_response,
            created_at=created_at,
        )

    async def get_turns(self, session_id: int) -> list[Turn]:
        """Get every turn of a session in creation order."""
        with self._get_connection() as conn:
            rows = conn.execute(
                """
                SELECT * FROM messages
                WHERE session_id = ?
                ORDER BY created_at ASC, id ASC
                """,
                (session_id,),
            ).fetchall()

        return [Turn.from_db_dict(dict(row)) for row in rows]

    async def get_recent_turns(self, session_id: int, limit: int) -> tuple[list[Turn], bool]:
        """Get the latest turns of a session.

        Args:
            session_id: The session identifier.
            limit: Maximum number of turns to return.

        Returns:
            Tuple of (turns in creation order, whether older turns exist).
        """
        with self._get_connection() as conn:
            rows = conn.execute(
                """
                SELECT * FROM messages
                WHERE session_id = ?
                ORDER BY created_at DESC, id DESC
                LIMIT ?
                """,
                (session_id, limit + 1),
            ).fetchall()

        has_more = len(rows) > limit
        turns = [Turn.from_db_dict(dict(row)) for row in rows[:limit]]
        turns.reverse()
        return turns, has_more

    async def count_turns(self, session_id: int) -> int:
        with self._get_connection() as conn:
            row = conn.execute(
                "SELECT COUNT(*) FROM messages WHERE session_id = ?",
                (session_id,),
            ).fetchone()
        return row[0]

    # ─────────────────────────────────────────────────────────────────
    # Memory Operations
    # ─────────────────────────────────────────────────────────────────

    def _check_dimension(self, vector: list[float]) -> None:
        expected = self.embedding_dimensions
        if expected is not None and len(vector) != expected:
            raise MemoryDimensionError(expected=expected, actual=len(vector))
        if not vector:
            raise MemoryDimensionError(expected=expected or 1, actual=0)

    async def add_memory(
        self,
        agent_id: int,
        user_id: str,
        key_point: str,
        vector: list[float],
        context: MemoryProvenance | None = None,
    ) -> MemoryEntry:
        """Store a memory entry.

        Args:
            agent_id: Agent scope.
            user_id: User scope.
            key_point: The remembered text.
            vector: Embedding of key_point.
            context: Optional provenance.

        Returns:
            The stored MemoryEntry.

        Raises:
            MemoryDimensionError: If the vector has the wrong length.
        """
        self._check_dimension(vector)
        now = datetime.now()

        with self._get_connection() as conn:
            cursor = conn.execute(
                """
                INSERT INTO memory_entries
                    (agent_id, user_id, key_point, vector, context,
                     created_at, updated_at)
                VALUES (?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    agent_id,
                    user_id,
                    key_point,
                    json.dumps(vector),
                    context.to_json() if context else None,
                    now.isoformat(),
                    now.isoformat(),
                ),
            )
            conn.commit()
            entry_id = cursor.lastrowid

        logger.debug(f"Stored memory {entry_id}: {key_point[:50]}...")
        return MemoryEntry(
            id=entry_id,
            agent_id=agent_id,
            user_id=user_id,
            key_point=key_point,
            vector=list(vector),
            context=context,
            created_at=now,
            updated_at=now,
        )

    async def get_memories(self, entry_ids: Iterable[int]) -> list[MemoryEntry]:
        """Fetch memory entries by id, in no particular order."""
        ids = list(entry_ids)
        if not ids:
            return []

        placeholders = ", ".join("?" for _ in ids)
        with self._get_connection() as conn:
            rows = conn.execute(
                f"SELECT * FROM memory_entries WHERE id IN ({placeholders})",
                ids,
            ).fetchall()

        return [MemoryEntry.from_db_dict(dict(row)) for row in rows]

    async def list_memories(
        self,
        agent_id: int,
        user_id: str,
        limit: int | None = None,
    ) -> list[MemoryEntry]:
        """List memory entries for a scope, most recent first.

        Args:
            agent_id: Agent scope.
            user_id: User scope.
            limit: Optional maximum number of entries.
        """
        query = """
            SELECT * FROM memory_entries
            WHERE agent_id = ? AND user_id = ?
            ORDER BY created_at DESC, id DESC
        """
        params: list[Any] = [agent_id, user_id]
        if limit is not None:
            query += " LIMIT ?"
            params.append(limit)

        with self._get_connection() as conn:
            rows = conn.execute(query, params).fetchall()

        return [MemoryEntry.from_db_dict(dict(row)) for row in rows]

    async def count_memories(self, agent_id: int, user_id: str) -> int:
        with self._get_connection() as conn:
            row = conn.execute(
                "SELECT COUNT(*) FROM memory_entries WHERE agent_id = ? AND user_id = ?",
                (agent_id, user_id),
            ).fetchone()
        return row[0]

    async def memory_ids(self) -> set[int]:
        """Ids of every stored memory entry, across all scopes."""
        with self._get_connection() as conn:
            rows = conn.execute("SELECT id FROM memory_entries").fetchall()
        return {row[0] for row in rows}

    async def delete_memories(self, entry_ids: Iterable[int]) -> int:
        """Delete memory entries by id.

        Returns:
            Number of rows deleted.
        """
        ids = list(entry_ids)
        if not ids:
            return 0

        placeholders = ", ".join("?" for _ in ids)
        with self._get_connection() as conn:
            cursor = conn.execute(
                f"DELETE FROM memory_entries WHERE id IN ({placeholders})",
                ids,
            )
            conn.commit()
            count = cursor.rowcount

        logger.debug(f"Deleted {count} memory entries")
        return count

    # ─────────────────────────────────────────────────────────────────
    # Translation Operations
    # ─────────────────────────────────────────────────────────────────

    async def save_translations(
        self,
        message_id: int,
        full_translation: str | None,
        words: list[WordTranslation],
    ) -> None:
        """Store the translation of an assistant message and its words.

        Args:
            message_id: The assistant turn the translation belongs to.
            full_translation: Whole-message translation, if any.
            words: Word-level translations in reply order.
        """
        now = datetime.now().isoformat()
        with self._get_connection() as conn:
            if full_translation:
                conn.execute(
                    """
                    INSERT INTO message_translations (message_id, translation, created_at)
                    VALUES (?, ?, ?)
                    ON CONFLICT(message_id) DO UPDATE SET
                        translation = excluded.translation
                    """,
                    (message_id, full_translation, now),
                )
            conn.executemany(
                """
                INSERT INTO word_translations
                    (message_id, original_word, translation, sentence_context, created_at)
                VALUES (?, ?, ?, ?, ?)
                """,
                [
                    (message_id, w.original_word, w.translation, w.sentence_context, now)
                    for w in words
                ],
            )
            conn.commit()

        logger.debug(f"Saved {len(words)} word translations for message {message_id}")

    async def get_message_translation(self, message_id: int) -> str | None:
        with self._get_connection() as conn:
            row = conn.execute(
                "SELECT translation FROM message_translations WHERE message_id = ?",
                (message_id,),
            ).fetchone()
        return row["translation"] if row else None

    async def get_word_translations(self, message_id: int) -> list[WordTranslation]:
        """Get word translations of a message in reply order."""
        with self._get_connection() as conn:
            rows = conn.execute(
                """
                SELECT original_word, translation, sentence_context
                FROM word_translations
                WHERE message_id = ?
                ORDER BY id ASC
                """,
                (message_id,),
            ).fetchall()

        return [
            WordTranslation(
                original_word=row["original_word"],
                translation=row["translation"],
                sentence_context=row["sentence_context"],
            )
            for row in rows
        ]

    # ─────────────────────────────────────────────────────────────────
    # Request Log Operations
    # ─────────────────────────────────────────────────────────────────

    async def add_request_log(
        self,
        context: RequestContext,
        model: str,
        request: dict[str, Any],
        response: dict[str, Any],
        prompt_tokens: int = 0,
        completion_tokens: int = 0,
        total_tokens: int = 0,
        estimated_price: float = 0.0,
    ) -> int:
        """Record one model call.

        Args:
            context: Who the call is billed to and what it was for.
            model: Model the call was made against.
            request: Provider payload as sent.
            response: Provider response as received.
            prompt_tokens: Input tokens reported by the provider.
            completion_tokens: Output tokens reported by the provider.
            total_tokens: Total tokens reported by the provider.
            estimated_price: Cost estimate in USD.

        Returns:
            The id of the stored log row.
        """
        with self._get_connection() as conn:
            cursor = conn.execute(
                """
                INSERT INTO ai_request_logs
                    (user_id, agent_id, kind, model, request_json, response_json,
                     prompt_tokens, completion_tokens, total_tokens,
                     estimated_price, created_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    context.user_id,
                    context.agent_id,
                    context.kind.value,
                    model,
                    json.dumps(request),
                    json.dumps(response),
                    prompt_tokens,
                    completion_tokens,
                    total_tokens,
                    estimated_price,
                    datetime.now().isoformat(),
                ),
            )
            conn.commit()
            log_id = cursor.lastrowid

        logger.debug(f"Logged {context.kind.value} request {log_id} ({total_tokens} tokens)")
        return log_id

    async def list_request_logs(
        self,
        user_id: str | None = None,
        limit: int = 50,
    ) -> list[RequestLogEntry]:
        """List logged model calls, most recent first.

        Args:
            user_id: Only calls billed to this user; all calls when None.
            limit: Maximum number of rows.
        """
        query = "SELECT * FROM ai_request_logs"
        params: list[Any] = []
        if user_id is not None:
            query += " WHERE user_id = ?"
            params.append(user_id)
        query += " ORDER BY created_at DESC, id DESC LIMIT ?"
        params.append(limit)

        with self._get_connection() as conn:
            rows = conn.execute(query, params).fetchall()

        return [RequestLogEntry.from_db_dict(dict(row)) for row in rows]

    async def close(self) -> None:
        """Close the store.

        SQLite connections are managed per-operation via context manager,
        so this method primarily updates state for consistency with other stores.
        """
        if not self._initialized:
            logger.debug("SQLite chat store already closed")
            return

        self._initialized = False
        logger.info("SQLite chat store closed")
