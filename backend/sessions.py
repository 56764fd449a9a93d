"""Bounded registry of live navigation sessions."""

import logging
from collections import OrderedDict
from datetime import datetime, timedelta
from typing import Callable, Optional

from navigation import NavigationEngine

logger = logging.getLogger("swipetree.sessions")


class SessionStore:
    """LRU registry with idle expiry for navigation sessions.

    Every lookup refreshes a session's last-used time. Sessions idle for longer
    than ``idle_seconds`` are dropped, and when ``max_size`` is reached the
    least recently used session is evicted to make room.

    Args:
        max_size: Maximum number of live sessions (default 1000)
        idle_seconds: Idle time before a session expires (default 1800 = 30 minutes)
        clock: Returns the current time; tests pass a fake
    """

    def __init__(self, max_size: int = 1000, idle_seconds: int = 1800,
                 clock: Callable[[], datetime] = datetime.now):
        self._sessions: OrderedDict[str, tuple[NavigationEngine, datetime]] = OrderedDict()
        self._max_size = max_size
        self._idle = timedelta(seconds=idle_seconds)
        self._clock = clock

    def _expired(self, last_used: datetime, now: datetime) -> bool:
        return now - last_used > self._idle

    def prune(self) -> int:
        """Drop every idle session. Returns how many were removed."""
        now = self._clock()
        stale = [sid for sid, (_, last_used) in self._sessions.items() if self._expired(last_used, now)]
        for sid in stale:
            del self._sessions[sid]
            logger.info(f"Session {sid} expired after {self._idle.total_seconds():.0f}s idle")
        return len(stale)

    def add(self, session_id: str, engine: NavigationEngine) -> None:
        """Register a session, evicting idle and then oldest entries when full."""
        self.prune()

        while len(self._sessions) >= self._max_size:
            oldest_id, _ = self._sessions.popitem(last=False)
            logger.info(f"Session {oldest_id} evicted (limit {self._max_size})")

        self._sessions[session_id] = (engine, self._clock())

    def get(self, session_id: str) -> Optional[NavigationEngine]:
        """Return the session and mark it used, or None if unknown or expired."""
        entry = self._sessions.get(session_id)
        if entry is None:
            return None

        engine, last_used = entry
        now = self._clock()
        if self._expired(last_used, now):
            del self._sessions[session_id]
            logger.info(f"Session {session_id} expired after {self._idle.total_seconds():.0f}s idle")
            return None

        self._sessions[session_id] = (engine, now)
        self._sessions.move_to_end(session_id)
        return engine

    def remove(self, session_id: str) -> bool:
        return self._sessions.pop(session_id, None) is not None

    def __contains__(self, session_id: str) -> bool:
        return session_id in self._sessions

    def __len__(self) -> int:
        return len(self._sessions)
