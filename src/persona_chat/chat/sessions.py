"""Session resolution: find or create the session a turn belongs to."""

from __future__ import annotations

from persona_chat.chat.types import Session
from persona_chat.errors import SessionNotFoundError
from persona_chat.storage.sqlite_store import SQLiteChatStore
from persona_chat.utils.logging import get_logger

log = get_logger(__name__)


class SessionResolver:
    """Resolves sessions for an agent and user.

    No locking is done: two concurrent first turns of a new user may
    create two sessions. The next call picks the most recent one, so the
    duplicate is harmless.

    Args:
        store: Store holding sessions.
    """

    def __init__(self, store: SQLiteChatStore) -> None:
        self.store = store

    async def resolve(
        self,
        agent_id: int,
        user_id: str,
        session_id: int | None = None,
    ) -> Session:
        """Return the session for a turn.

        Args:
            agent_id: Agent being addressed.
            user_id: Requesting user.
            session_id: Explicit session, if the caller picked one.

        Returns:
            The explicit session, else the most recent one, else a new one.

        Raises:
            SessionNotFoundError: If the explicit session doesn't exist,
                belongs to another user, or belongs to another agent.
        """
        if session_id is not None:
            session = await self.store.get_session(session_id, user_id)
            if session is None or session.agent_id != agent_id:
                log.warning("Session not found", session_id=session_id)
                raise SessionNotFoundError(session_id)
            log.debug("Using session", session_id=session.id)
            return session

        session = await self.store.get_latest_session(agent_id, user_id)
        if session is not None:
            log.debug("Using latest session", session_id=session.id)
            return session

        session = await self.store.create_session(agent_id, user_id)
        log.info("Session created", session_id=session.id, agent_id=agent_id)
        return session

    async def list_sessions(self, agent_id: int, user_id: str, limit: int = 50) -> list[Session]:
        """Sessions of an agent and user, most recent first."""
        return await self.store.list_sessions(agent_id, user_id, limit=limit)

    async def create_session(
        self,
        agent_id: int,
        user_id: str,
        display_name: str | None = None,
    ) -> Session:
        """Start a new session; it becomes the most recent one."""
        session = await self.store.create_session(agent_id, user_id, display_name)
        log.info("Session created", session_id=session.id, agent_id=agent_id)
        return session

    async def rename_session(
        self,
        session_id: int,
        user_id: str,
        display_name: str | None,
    ) -> Session:
        """Change a session's display name.

        Raises:
            SessionNotFoundError: If the session isn't the user's.
        """
        session = await self.store.rename_session(session_id, user_id, display_name)
        if session is None:
            raise SessionNotFoundError(session_id)
        return session
