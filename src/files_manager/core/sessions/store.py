"""Session lookup: resolves an opaque bearer token to a user id.

Tokens are issued elsewhere; this side only reads them.
"""

from abc import ABC, abstractmethod

import redis.asyncio as aioredis

from files_manager.config import (
    MemorySessionConfig,
    RedisSessionConfig,
    SessionBackendConfig,
)
from files_manager.observability.logging import get_logger

logger = get_logger(__name__)


class SessionStore(ABC):
    """Abstract base class for session backends."""

    async def initialize(self) -> None:
        pass

    @abstractmethod
    async def get(self, token: str) -> str | None:
        """Return the user id bound to ``token``, or None."""
        ...

    async def close(self) -> None:
        pass


class RedisSessionStore(SessionStore):
    """Reads ``<prefix><token>`` keys written by the authentication service."""

    def __init__(self, redis_url: str = "redis://localhost:6379", key_prefix: str = "auth_"):
        self.redis_url = redis_url
        self.key_prefix = key_prefix
        self.redis: aioredis.Redis | None = None

    async def initialize(self) -> None:
        """Initialize Redis connection."""
        self.redis = aioredis.from_url(
            self.redis_url,
            encoding="utf-8",
            decode_responses=True,
            retry_on_timeout=True,
            socket_connect_timeout=5,
            socket_timeout=5,
            health_check_interval=30,
        )
        await self.redis.ping()
        logger.info(
            "Session store initialized",
            host=self.redis.connection_pool.connection_kwargs.get("host"),
        )

    async def get(self, token: str) -> str | None:
        if not token:
            return None
        if self.redis is None:
            raise RuntimeError("Session store not initialized")
        return await self.redis.get(f"{self.key_prefix}{token}")

    async def close(self) -> None:
        if self.redis is not None:
            await self.redis.aclose()
            self.redis = None


class InMemorySessionStore(SessionStore):
    """Dictionary-backed sessions for tests and local development."""

    def __init__(self, tokens: dict[str, str] | None = None):
        self._tokens = dict(tokens or {})

    def set(self, token: str, user_id: str) -> None:
        self._tokens[token] = user_id

    def delete(self, token: str) -> None:
        self._tokens.pop(token, None)

    async def get(self, token: str) -> str | None:
        if not token:
            return None
        return self._tokens.get(token)


def create_session_store(config: SessionBackendConfig) -> SessionStore:
    """Factory function to create a session store from config."""
    match config:
        case RedisSessionConfig():
            return RedisSessionStore(redis_url=config.url, key_prefix=config.key_prefix)
        case MemorySessionConfig():
            return InMemorySessionStore(config.tokens)
        case _:
            raise ValueError(f"Unknown session backend type: {type(config)}")
