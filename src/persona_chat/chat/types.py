"""Chat pipeline type definitions.

Defines the data exchanged between the turn pipeline stages:
- Session / Turn: persisted conversation records
- ChatMessage / CompletionRequest / CompletionResult: model I/O
- WordTranslation / ExtractedTranslation: language-assistant output
- RequestContext / RequestLogEntry: audit of model calls
- TurnRequest / TurnResult: the orchestrator's input and output
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field


class Role(str, Enum):
    """Author of a turn or prompt message."""

    USER = "user"
    ASSISTANT = "assistant"
    SYSTEM = "system"


class TurnState(str, Enum):
    """Stages a single turn passes through.

    FAILED is reachable from RESOLVING (credential, agent or session
    missing) and INVOKING (model call failure). Every other stage
    degrades instead of failing.
    """

    RESOLVING = "resolving"
    RETRIEVING = "retrieving"
    ASSEMBLING = "assembling"
    INVOKING = "invoking"
    EXTRACTING = "extracting"
    PERSISTING = "persisting"
    CONSOLIDATING = "consolidating"
    DONE = "done"
    FAILED = "failed"


class Session(BaseModel):
    """A conversation between one user and one agent."""

    id: int
    agent_id: int
    user_id: str
    display_name: str | None = None
    created_at: datetime = Field(default_factory=datetime.now)

    @classmethod
    def from_db_dict(cls, data: dict[str, Any]) -> Session:
        """Create Session from SQLite row."""
        return cls(
            id=data["id"],
            agent_id=data["agent_id"],
            user_id=data["user_id"],
            display_name=data.get("display_name"),
            created_at=datetime.fromisoformat(data["created_at"]),
        )


def _load_json(value: str | None) -> dict[str, Any] | None:
    return json.loads(value) if value else None


class Turn(BaseModel):
    """One stored message in a session. Immutable once written."""

    id: int
    session_id: int
    role: Role
    content: str
    metadata: dict[str, Any] | None = None
    raw_request: dict[str, Any] | None = None
    raw_response: dict[str, Any] | None = None
    created_at: datetime = Field(default_factory=datetime.now)

    def to_message(self) -> ChatMessage:
        """Strip audit fields, keeping what the model sees."""
        return ChatMessage(role=self.role, content=self.content)

    @classmethod
    def from_db_dict(cls, data: dict[str, Any]) -> Turn:
        """Create Turn from SQLite row."""
        return cls(
            id=data["id"],
            session_id=data["session_id"],
            role=Role(data["role"]),
            content=data["content"],
            metadata=_load_json(data.get("metadata")),
            raw_request=_load_json(data.get("raw_request")),
            raw_response=_load_json(data.get("raw_response")),
            created_at=datetime.fromisoformat(data["created_at"]),
        )


@dataclass(frozen=True)
class ChatMessage:
    """A role-tagged prompt message."""

    role: Role
    content: str

    def to_dict(self) -> dict[str, str]:
        return {"role": self.role.value, "content": self.content}


@dataclass
class CompletionRequest:
    """Everything needed for one chat completion call."""

    model: str
    messages: list[ChatMessage]
    temperature: float
    max_tokens: int | None = None
    response_format: dict[str, Any] | None = None

    def to_dict(self) -> dict[str, Any]:
        """Provider payload; also stored verbatim as the user turn's raw_request."""
        payload: dict[str, Any] = {
            "model": self.model,
            "messages": [m.to_dict() for m in self.messages],
            "temperature": self.temperature,
        }
        if self.max_tokens is not None:
            payload["max_tokens"] = self.max_tokens
        if self.response_format is not None:
            payload["response_format"] = self.response_format
        return payload


class RequestKind(str, Enum):
    """What a model call was made for, as recorded in the request log."""

    CHAT = "chat"
    MEMORY = "memory"
    SUMMARY = "summary"
    WORD_PARSING = "word_parsing"


@dataclass(frozen=True)
class RequestContext:
    """Who a model call is billed to and why it was made."""

    user_id: str | None = None
    agent_id: int | None = None
    kind: RequestKind = RequestKind.CHAT


class RequestLogEntry(BaseModel):
    """One audited model call."""

    id: int
    user_id: str | None = None
    agent_id: int | None = None
    kind: RequestKind
    model: str
    request: dict[str, Any]
    response: dict[str, Any]
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0
    estimated_price: float = 0.0
    created_at: datetime = Field(default_factory=datetime.now)

    @classmethod
    def from_db_dict(cls, data: dict[str, Any]) -> RequestLogEntry:
        """Create RequestLogEntry from SQLite row."""
        return cls(
            id=data["id"],
            user_id=data.get("user_id"),
            agent_id=data.get("agent_id"),
            kind=RequestKind(data["kind"]),
            model=data["model"],
            request=json.loads(data["request_json"]),
            response=json.loads(data["response_json"]),
            prompt_tokens=data["prompt_tokens"],
            completion_tokens=data["completion_tokens"],
            total_tokens=data["total_tokens"],
            estimated_price=data["estimated_price"],
            created_at=datetime.fromisoformat(data["created_at"]),
        )


@dataclass
class CompletionResult:
    """Reply text plus the provider's full response for audit."""

    text: str
    raw_completion: dict[str, Any]


@dataclass(frozen=True)
class WordTranslation:
    """Translation of a single word or token of an assistant reply."""

    original_word: str
    translation: str
    sentence_context: str | None = None

    def to_dict(self) -> dict[str, str]:
        result = {"originalWord": self.original_word, "translation": self.translation}
        if self.sentence_context is not None:
            result["sentenceContext"] = self.sentence_context
        return result


@dataclass
class ExtractedTranslation:
    """Outcome of scanning a reply for a trailing translation block."""

    cleaned_response: str
    extracted: bool = False
    words: list[WordTranslation] = field(default_factory=list)
    full_translation: str | None = None


@dataclass
class TurnRequest:
    """A single user message addressed to an agent."""

    agent_id: int
    user_id: str
    message: str
    session_id: int | None = None


@dataclass
class TurnResult:
    """Structured outcome of a completed turn."""

    response: str
    session: Session
    raw_request: dict[str, Any]
    raw_response: dict[str, Any]
    user_message_id: int
    assistant_message_id: int
    translation: str | None = None
    word_translations: list[WordTranslation] | None = None
    memories_created: int = 0
    state: TurnState = TurnState.DONE

    def to_dict(self) -> dict[str, Any]:
        """Convert to the camelCase shape handed to collaborators."""
        result: dict[str, Any] = {
            "response": self.response,
            "session": {"id": self.session.id, "name": self.session.display_name},
            "rawRequest": self.raw_request,
            "rawResponse": self.raw_response,
            "userMessageId": self.user_message_id,
            "assistantMessageId": self.assistant_message_id,
        }
        if self.translation is not None:
            result["translation"] = self.translation
        if self.word_translations:
            result["wordTranslations"] = [w.to_dict() for w in self.word_translations]
        return result
