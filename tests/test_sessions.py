"""Tests for session lookup backends."""

from unittest.mock import AsyncMock

import pytest

from files_manager.config import MemorySessionConfig, RedisSessionConfig
from files_manager.core.sessions.store import (
    InMemorySessionStore,
    RedisSessionStore,
    create_session_store,
)


@pytest.mark.asyncio
async def test_in_memory_sessions():
    store = InMemorySessionStore({"t1": "u1"})
    store.set("t2", "u2")

    assert await store.get("t1") == "u1"
    assert await store.get("t2") == "u2"
    assert await store.get("") is None

    store.delete("t1")
    assert await store.get("t1") is None


@pytest.mark.asyncio
async def test_redis_sessions_read_prefixed_key():
    store = RedisSessionStore(key_prefix="auth_")
    store.redis = AsyncMock()
    store.redis.get.return_value = "u1"

    assert await store.get("abc") == "u1"
    store.redis.get.assert_called_once_with("auth_abc")


@pytest.mark.asyncio
async def test_redis_sessions_require_initialize():
    with pytest.raises(RuntimeError):
        await RedisSessionStore().get("abc")


def test_create_session_store():
    assert isinstance(create_session_store(MemorySessionConfig()), InMemorySessionStore)
    store = create_session_store(RedisSessionConfig(url="rediss://:pw@cache:6380/1"))
    assert isinstance(store, RedisSessionStore)
    assert store.redis_url == "rediss://:pw@cache:6380/1"
