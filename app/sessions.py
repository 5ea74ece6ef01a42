import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from threading import Lock
from typing import Protocol

import structlog

log = structlog.get_logger("bizops.sessions")


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class AdminSession:
    id: str
    created_at: datetime
    expires_at: datetime

    def is_expired(self, now: datetime | None = None) -> bool:
        return (now or utc_now()) >= self.expires_at


def new_session(ttl: timedelta, now: datetime | None = None) -> AdminSession:
    created = now or utc_now()
    return AdminSession(id=secrets.token_urlsafe(32), created_at=created, expires_at=created + ttl)


class SessionStore(Protocol):
    def lookup(self, session_id: str) -> AdminSession | None: ...

    def put(self, session: AdminSession) -> None: ...

    def expire(self, session_id: str) -> None: ...

    def purge_expired(self) -> int: ...


class InMemorySessionStore:
    """Process-local store; expired rows are dropped on read and by the janitor."""

    def __init__(self, clock=utc_now):
        self._rows: dict[str, AdminSession] = {}
        self._lock = Lock()
        self._clock = clock

    def lookup(self, session_id: str) -> AdminSession | None:
        if not session_id:
            return None
        with self._lock:
            session = self._rows.get(session_id)
            if session is None:
                return None
            if session.is_expired(self._clock()):
                del self._rows[session_id]
                return None
            return session

    def put(self, session: AdminSession) -> None:
        with self._lock:
            self._rows[session.id] = session

    def expire(self, session_id: str) -> None:
        with self._lock:
            self._rows.pop(session_id, None)

    def purge_expired(self) -> int:
        now = self._clock()
        with self._lock:
            stale = [sid for sid, s in self._rows.items() if s.is_expired(now)]
            for sid in stale:
                del self._rows[sid]
        if stale:
            log.info("sessions_purged", count=len(stale))
        return len(stale)

    def __len__(self) -> int:
        return len(self._rows)
