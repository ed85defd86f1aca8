"""Per-credential OpenAI client cache.

Each user brings their own API key, so clients are created per
credential and reused across turns. Clients are built with
``max_retries=0``: retry policy belongs to the caller.
"""

from __future__ import annotations

import hashlib
from typing import TYPE_CHECKING, Callable

from persona_chat.utils.logging import get_logger

if TYPE_CHECKING:
    from openai import AsyncOpenAI

log = get_logger(__name__)

ClientFactory = Callable[[str], "AsyncOpenAI"]


def default_client_factory(credential: str) -> AsyncOpenAI:
    """Build an AsyncOpenAI client for one credential."""
    from openai import AsyncOpenAI

    return AsyncOpenAI(api_key=credential, max_retries=0)


def _fingerprint(credential: str) -> str:
    return hashlib.sha256(credential.encode("utf-8")).hexdigest()[:16]


class OpenAIClientPool:
    """Cache of AsyncOpenAI clients keyed by a hash of the credential.

    Args:
        factory: Callable building a client from a credential. Tests
            inject a factory returning mocks.
    """

    def __init__(self, factory: ClientFactory | None = None) -> None:
        self._factory = factory or default_client_factory
        self._clients: dict[str, AsyncOpenAI] = {}

    def get(self, credential: str) -> AsyncOpenAI:
        """Return the client for a credential, creating it on first use."""
        key = _fingerprint(credential)
        client = self._clients.get(key)
        if client is None:
            client = self._factory(credential)
            self._clients[key] = client
            log.debug("OpenAI client created", fingerprint=key)
        return client

    def __len__(self) -> int:
        return len(self._clients)

    async def close(self) -> None:
        """Close every cached client."""
        clients = list(self._clients.values())
        self._clients.clear()
        for client in clients:
            await client.close()
        if clients:
            log.info("OpenAI clients closed", count=len(clients))
