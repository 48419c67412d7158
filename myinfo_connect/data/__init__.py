"""Pending authorization session storage."""

from myinfo_connect.data.session_store import (
    DEFAULT_SESSION_TTL_SECONDS,
    InMemorySessionStore,
    SessionStore,
)

__all__ = [
    "DEFAULT_SESSION_TTL_SECONDS",
    "InMemorySessionStore",
    "SessionStore",
]
