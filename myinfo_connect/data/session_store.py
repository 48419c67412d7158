"""
Pending authorization session storage.

Sessions live between login initiation and the callback, keyed by the CSRF
``state`` value. The in-memory store here is process local; deployments
running more than one worker must provide a shared, expiring key-value
store implementing the same ``SessionStore`` interface.
"""
import asyncio
import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Callable, Dict, Optional

from myinfo_connect.auth.models import AuthSession
from myinfo_connect.metrics import myinfo_active_sessions

logger = logging.getLogger(__name__)

DEFAULT_SESSION_TTL_SECONDS = 600


class SessionStore(ABC):
    """Key-value store of AuthSession objects with a fixed time-to-live."""

    @abstractmethod
    def store(self, state: str, session: AuthSession) -> None:
        """Insert a session; it expires after the store's TTL whether or not it is read."""

    @abstractmethod
    def get(self, state: str) -> Optional[AuthSession]:
        """Return the live session for *state*, or None."""

    @abstractmethod
    def delete(self, state: str) -> None:
        """Remove the session for *state*. Deleting a missing key is a no-op."""


@dataclass(frozen=True)
class _Entry:
    session: AuthSession
    expires_at: float


class InMemorySessionStore(SessionStore):
    """
    Single-process session store.

    Every operation is a single dict call on one key, so independent states
    never contend. Expiry is enforced twice: ``get`` ignores and purges stale
    entries, and when an event loop is running each ``store`` schedules a
    timer that removes that exact entry after the TTL.
    """

    def __init__(self, ttl_seconds: int = DEFAULT_SESSION_TTL_SECONDS, clock: Callable[[], float] = time.monotonic):
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: Dict[str, _Entry] = {}

    def store(self, state: str, session: AuthSession) -> None:
        entry = _Entry(session=session, expires_at=self._clock() + self.ttl_seconds)
        self._entries[state] = entry
        myinfo_active_sessions.set(len(self._entries))

        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            return
        loop.call_later(self.ttl_seconds, self._expire, state, entry)

    def get(self, state: str) -> Optional[AuthSession]:
        entry = self._entries.get(state)
        if entry is None:
            return None
        if self._clock() >= entry.expires_at:
            self._expire(state, entry)
            return None
        return entry.session

    def delete(self, state: str) -> None:
        if self._entries.pop(state, None) is not None:
            myinfo_active_sessions.set(len(self._entries))

    def _expire(self, state: str, entry: _Entry) -> None:
        # Only drop the entry this timer was created for.
        if self._entries.get(state) is entry:
            self._entries.pop(state, None)
            myinfo_active_sessions.set(len(self._entries))
            logger.debug("Authorization session expired", extra={"state_prefix": state[:8]})

    def __len__(self) -> int:
        return len(self._entries)
