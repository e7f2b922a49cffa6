"""
In-process session store.

Sessions are plain Python objects keyed by their UUID string.  Nothing is
persisted.  The store is bounded two ways: a session untouched for
``idle_ttl`` seconds expires, and adding past ``max_sessions`` evicts the
least recently used session.
"""

from __future__ import annotations

import time
from collections import OrderedDict
from typing import Callable, Iterator, Optional

from aperture.config import Settings
from aperture.core.logging import get_logger
from aperture.engine.session import ReconciliationSession

logger = get_logger(__name__)


class SessionStore:
    """LRU dictionary of live :class:`ReconciliationSession` objects.

    Args:
        max_sessions: Upper bound on live sessions.
        idle_ttl: Seconds since last access after which a session expires;
            ``None`` disables expiry.
        clock: Monotonic time source, replaceable in tests.
    """

    def __init__(
        self,
        max_sessions: int = 200,
        idle_ttl: Optional[float] = 3600.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._max_sessions = max_sessions
        self._idle_ttl = idle_ttl
        self._clock = clock
        # session id -> (session, last access time), least recently used first
        self._sessions: OrderedDict[str, tuple[ReconciliationSession, float]] = OrderedDict()

    @classmethod
    def from_settings(cls, settings: Settings) -> "SessionStore":
        return cls(
            max_sessions=settings.MAX_SESSIONS,
            idle_ttl=settings.SESSION_IDLE_TTL_SECONDS or None,
        )

    def add(self, session: ReconciliationSession) -> ReconciliationSession:
        self._prune()
        self._sessions[session.id] = (session, self._clock())
        self._sessions.move_to_end(session.id)
        while len(self._sessions) > self._max_sessions:
            evicted, _ = self._sessions.popitem(last=False)
            logger.info(
                "Evicted least recently used session",
                extra={"action": "session_evict", "target": evicted},
            )
        return session

    def get(self, session_id: str) -> Optional[ReconciliationSession]:
        """Return the session and mark it as used, or ``None`` if absent or expired."""
        self._prune()
        entry = self._sessions.get(session_id)
        if entry is None:
            return None
        self._sessions[session_id] = (entry[0], self._clock())
        self._sessions.move_to_end(session_id)
        return entry[0]

    def remove(self, session_id: str) -> bool:
        """Drop *session_id*.  Returns ``False`` if it was not present."""
        return self._sessions.pop(session_id, None) is not None

    def _prune(self) -> None:
        if self._idle_ttl is None:
            return
        cutoff = self._clock() - self._idle_ttl
        while self._sessions:
            session_id, (_, last_used) = next(iter(self._sessions.items()))
            if last_used > cutoff:
                break
            del self._sessions[session_id]
            logger.info(
                "Expired idle session",
                extra={"action": "session_expire", "target": session_id},
            )

    def __len__(self) -> int:
        return len(self._sessions)

    def __iter__(self) -> Iterator[ReconciliationSession]:
        return iter([session for session, _ in self._sessions.values()])
