"""Session lookup backends."""

from files_manager.core.sessions.store import (
    InMemorySessionStore,
    RedisSessionStore,
    SessionStore,
    create_session_store,
)

__all__ = [
    "InMemorySessionStore",
    "RedisSessionStore",
    "SessionStore",
    "create_session_store",
]
