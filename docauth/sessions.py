"""
Bearer sessions for DocAuth.

A session is handed out after a successful challenge-response login and
lets the HTTP layer attribute document registrations to the verified
identity without repeating the handshake.
"""

import threading
import time
from dataclasses import dataclass
from typing import Callable, Dict, Optional

from . import config
from .errors import InvalidSession
from .util import generate_id


@dataclass(frozen=True)
class Session:
    token: str
    identity: str
    issued_at: float
    expires_at: float


class SessionStore:
    """Thread-safe token -> session map with expiry."""

    def __init__(
        self,
        ttl_seconds: int = config.SESSION_TTL_SECONDS,
        clock: Callable[[], float] = time.time,
        purge_interval: float = config.PURGE_INTERVAL_SECONDS
    ):
        self._ttl = ttl_seconds
        self._clock = clock
        self._sessions: Dict[str, Session] = {}
        self._lock = threading.Lock()
        self._purge_interval = purge_interval
        self._last_purge = clock()

    def issue(self, identity: str) -> Session:
        now = self._clock()
        if now - self._last_purge >= self._purge_interval:
            self._last_purge = now
            self.purge_expired()

        session = Session(
            token=generate_id(32),
            identity=identity,
            issued_at=now,
            expires_at=now + self._ttl,
        )
        with self._lock:
            self._sessions[session.token] = session
        return session

    def purge_expired(self) -> int:
        """Drop every expired session. Returns the number removed."""
        now = self._clock()
        with self._lock:
            expired = [t for t, s in self._sessions.items() if s.expires_at <= now]
            for token in expired:
                del self._sessions[token]
        return len(expired)

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)

    def resolve(self, token: Optional[str]) -> str:
        """
        Return the identity bound to a live session token.

        Raises:
            InvalidSession: If the token is missing, unknown or expired
        """
        if not token:
            raise InvalidSession()
        now = self._clock()
        with self._lock:
            session = self._sessions.get(token)
            if session is not None and session.expires_at <= now:
                del self._sessions[token]
                session = None
        if session is None:
            raise InvalidSession()
        return session.identity

    def revoke(self, token: str) -> bool:
        with self._lock:
            return self._sessions.pop(token, None) is not None

    def clear(self) -> None:
        with self._lock:
            self._sessions.clear()
