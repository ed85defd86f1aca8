"""Model provider credentials, looked up per user.

Credential storage itself lives outside this package; the pipeline only
needs ``get_credential(user_id)``.
"""

from __future__ import annotations

import time
from typing import Callable, Protocol, runtime_checkable

from persona_chat.utils.config import EnvSettings, get_env_settings
from persona_chat.utils.logging import get_logger

log = get_logger(__name__)

Clock = Callable[[], float]


@runtime_checkable
class CredentialProvider(Protocol):
    """Returns a user's provider credential, or None if they have none."""

    async def get_credential(self, user_id: str) -> str | None: ...


class StaticCredentialProvider:
    """Credentials from a fixed mapping, with an optional shared fallback.

    Args:
        credentials: Per-user credentials.
        default: Credential for users missing from the mapping.
    """

    def __init__(
        self,
        credentials: dict[str, str] | None = None,
        default: str | None = None,
    ) -> None:
        self.credentials = dict(credentials or {})
        self.default = default

    async def get_credential(self, user_id: str) -> str | None:
        return self.credentials.get(user_id, self.default) or None


class EnvCredentialProvider:
    """Every user shares the ``OPENAI_API_KEY`` from the environment."""

    def __init__(self, settings: EnvSettings | None = None) -> None:
        self.settings = settings or get_env_settings()

    async def get_credential(self, user_id: str) -> str | None:
        return self.settings.openai_api_key or None


class CachedCredentialProvider:
    """Time-bounded cache in front of another provider.

    Missing credentials are not cached, so a user who adds a key is
    picked up on the next turn.

    Args:
        inner: Provider consulted on a cache miss.
        ttl_seconds: How long a credential stays cached.
        clock: Monotonic time source, injectable for tests.
    """

    def __init__(
        self,
        inner: CredentialProvider,
        ttl_seconds: float = 300.0,
        clock: Clock = time.monotonic,
    ) -> None:
        self.inner = inner
        self.ttl_seconds = ttl_seconds
        self.clock = clock
        self._entries: dict[str, tuple[str, float]] = {}

    async def get_credential(self, user_id: str) -> str | None:
        now = self.clock()
        cached = self._entries.get(user_id)
        if cached is not None and cached[1] > now:
            return cached[0]

        credential = await self.inner.get_credential(user_id)
        if credential:
            self._entries[user_id] = (credential, now + self.ttl_seconds)
        else:
            self._entries.pop(user_id, None)
        return credential

    def invalidate(self, user_id: str | None = None) -> None:
        """Forget one user's credential, or every cached credential."""
        if user_id is None:
            self._entries.clear()
        else:
            self._entries.pop(user_id, None)
