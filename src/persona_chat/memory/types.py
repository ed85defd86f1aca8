"""Memory system type definitions.

Defines the core data models for long-term memory:
- MemoryProvenance: Where a memory entry was distilled from
- MemoryEntry: A durable, embedded key point scoped to an agent and user
- SearchResult: A memory entry paired with its similarity score
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field


class MemoryProvenance(BaseModel):
    """Lightweight context recorded alongside a memory entry.

    Attributes:
        session_id: Session the insight was extracted from.
        session_name: Display name of that session at extraction time.
        message_count: Number of turns in the session when extracted.
    """

    session_id: int
    session_name: str | None = None
    message_count: int = Field(default=0, ge=0)

    def to_json(self) -> str:
        """Serialise for SQLite storage."""
        return self.model_dump_json()

    @classmethod
    def from_json(cls, value: str | None) -> MemoryProvenance | None:
        """Parse a stored provenance column, tolerating NULL."""
        if not value:
            return None
        return cls.model_validate(json.loads(value))


@dataclass
class MemoryEntry:
    """A single long-term memory.

    Attributes:
        id: Row id assigned by the store (0 until persisted).
        agent_id: Agent the memory belongs to.
        user_id: User the memory belongs to.
        key_point: The remembered text.
        vector: Embedding of key_point.
        context: Optional provenance of the memory.
        created_at: When the memory was created.
        updated_at: When the memory was last changed.
    """

    id: int
    agent_id: int
    user_id: str
    key_point: str
    vector: list[float]
    context: MemoryProvenance | None = None
    created_at: datetime = field(default_factory=datetime.now)
    updated_at: datetime = field(default_factory=datetime.now)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for display and export (vector omitted)."""
        return {
            "id": self.id,
            "agent_id": self.agent_id,
            "user_id": self.user_id,
            "key_point": self.key_point,
            "context": self.context.model_dump() if self.context else None,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
        }

    @classmethod
    def from_db_dict(cls, data: dict[str, Any]) -> MemoryEntry:
        """Create MemoryEntry from SQLite row."""
        return cls(
            id=data["id"],
            agent_id=data["agent_id"],
            user_id=data["user_id"],
            key_point=data["key_point"],
            vector=json.loads(data["vector"]),
            context=MemoryProvenance.from_json(data.get("context")),
            created_at=datetime.fromisoformat(data["created_at"]),
            updated_at=datetime.fromisoformat(data["updated_at"]),
        )


@dataclass
class SearchResult:
    """Result from a memory similarity search.

    Includes the memory and its similarity score for ranking.
    """

    entry: MemoryEntry
    score: float  # Cosine similarity, higher is better

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for display."""
        return {
            "memory": self.entry.to_dict(),
            "score": self.score,
        }
