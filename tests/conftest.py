"""Pytest fixtures for persona-chat tests."""

from __future__ import annotations

from collections.abc import Callable
from pathlib import Path
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import pytest
from openai.types.chat import ChatCompletion

from persona_chat.chat.persona import Agent, AgentType
from persona_chat.storage.sqlite_store import SQLiteChatStore
from persona_chat.utils.config import ChatConfig
from persona_chat.utils.openai_clients import OpenAIClientPool

EMBEDDING_DIM = 3


class FakeEmbeddings:
    """Deterministic embeddings: known texts map to fixed vectors."""

    def __init__(self, vectors: dict[str, list[float]] | None = None) -> None:
        self.vectors = dict(vectors or {})
        self.calls: list[str] = []

    @property
    def dimension(self) -> int:
        return EMBEDDING_DIM

    async def embed(self, text: str, credential: str) -> list[float]:
        self.calls.append(text)
        return list(self.vectors.get(text, [1.0, 0.0, 0.0]))


@pytest.fixture
def anyio_backend() -> str:
    """Specify async backend for pytest-asyncio."""
    return "asyncio"


@pytest.fixture
def sample_config() -> ChatConfig:
    """Create a sample configuration for testing."""
    return ChatConfig()


@pytest.fixture
def temp_config_dir(tmp_path: Path) -> Path:
    """Create a temporary config directory with test files."""
    config_dir = tmp_path / "config"
    config_dir.mkdir()

    config_file = config_dir / "default.yaml"
    config_file.write_text("""
version: "1.0"
model:
  default_model: gpt-4o
  temperature: 0.5
memory:
  save_interval: 4
  top_k: 3
  embedding_backend: local
behavior:
  system_rules:
    - Be kind
""")

    return config_dir


@pytest.fixture
async def store(tmp_path: Path) -> SQLiteChatStore:
    """Create and initialize a SQLite chat store with 3-d vectors."""
    store = SQLiteChatStore(tmp_path / "chat.db", embedding_dimensions=EMBEDDING_DIM)
    await store.initialize()
    return store


@pytest.fixture
def embeddings() -> FakeEmbeddings:
    return FakeEmbeddings()


@pytest.fixture
def make_completion() -> Callable[..., ChatCompletion]:
    """Factory for provider completion objects."""

    def _make(
        text: str | None,
        model: str = "gpt-4o-mini",
        usage: tuple[int, int] | None = None,
    ) -> ChatCompletion:
        data: dict[str, Any] = {
            "id": "chatcmpl-test",
            "object": "chat.completion",
            "created": 1700000000,
            "model": model,
            "choices": [
                {
                    "index": 0,
                    "finish_reason": "stop",
                    "message": {"role": "assistant", "content": text},
                }
            ],
        }
        if usage is not None:
            prompt_tokens, completion_tokens = usage
            data["usage"] = {
                "prompt_tokens": prompt_tokens,
                "completion_tokens": completion_tokens,
                "total_tokens": prompt_tokens + completion_tokens,
            }
        return ChatCompletion.model_validate(data)

    return _make


@pytest.fixture
def openai_client() -> MagicMock:
    """Mock AsyncOpenAI client."""
    client = MagicMock()
    client.chat.completions.create = AsyncMock()
    client.embeddings.create = AsyncMock()
    client.close = AsyncMock()
    return client


@pytest.fixture
def client_pool(openai_client: MagicMock) -> OpenAIClientPool:
    """Client pool handing out the mock client for every credential."""
    return OpenAIClientPool(factory=lambda credential: openai_client)


@pytest.fixture
def general_agent() -> Agent:
    return Agent(
        id=1,
        name="Sage",
        description="A thoughtful companion.",
        configs={"system_prompt": "You are Sage.", "personality": "curious"},
    )


@pytest.fixture
def language_agent() -> Agent:
    return Agent(
        id=2,
        name="Mei",
        agent_type=AgentType.LANGUAGE_ASSISTANT,
        language="Chinese",
        configs={"system_prompt": "You are Mei, a Chinese tutor."},
    )


def translation_reply(text: str, words: list[dict[str, Any]], full: str) -> str:
    import json

    return f"{text}\n\n{json.dumps({'words': words, 'fullTranslation': full}, ensure_ascii=False)}"


@pytest.fixture
def make_translation_reply() -> Callable[..., str]:
    """Factory for language-assistant replies with a trailing block."""
    return translation_reply
