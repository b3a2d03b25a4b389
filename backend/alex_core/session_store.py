from __future__ import annotations

import threading
from datetime import datetime, timedelta
from typing import Callable, Protocol

import structlog

from .models import Session, new_session_id
from .time_utils import utc_now

logger = structlog.get_logger(__name__)

DEFAULT_MAX_AGE = timedelta(hours=24)


class SessionOwnershipError(KeyError):
    """Raised when a session id is reused by a provider that does not own it."""


class SessionStore(Protocol):
    def get(self, session_id: str) -> Session | None: ...

    def get_for_provider(self, session_id: str, provider_id: str) -> Session | None: ...

    def put(self, session: Session) -> None: ...

    def delete(self, session_id: str) -> bool: ...

    def sweep(self, now: datetime | None = None) -> list[str]: ...

    def get_or_create(
        self, session_id: str | None, *, role: str = "clinical", provider_id: str | None = None
    ) -> Session: ...


class InMemorySessionStore:
    """Process-local session map with a separate last-activity index.

    The lock guards the map and the index only. Session objects handed out by
    ``get`` are mutated by callers without locking; concurrent turns on the
    same session resolve as last write wins.
    """

    def __init__(
        self,
        *,
        max_age: timedelta = DEFAULT_MAX_AGE,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.max_age = max_age
        self._clock = clock
        self._sessions: dict[str, Session] = {}
        self._activity_index: dict[str, datetime] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)

    def __contains__(self, session_id: object) -> bool:
        with self._lock:
            return session_id in self._sessions

    def get(self, session_id: str) -> Session | None:
        with self._lock:
            return self._sessions.get(session_id)

    def put(self, session: Session) -> None:
        with self._lock:
            self._sessions[session.session_id] = session
            self._activity_index[session.session_id] = session.last_activity

    def delete(self, session_id: str) -> bool:
        with self._lock:
            self._activity_index.pop(session_id, None)
            return self._sessions.pop(session_id, None) is not None

    def get_for_provider(self, session_id: str, provider_id: str) -> Session | None:
        """Return the session only when ``provider_id`` owns it."""

        session = self.get(session_id)
        if session is None or session.provider_id != provider_id:
            return None
        return session

    def get_or_create(
        self,
        session_id: str | None,
        *,
        role: str = "clinical",
        provider_id: str | None = None,
    ) -> Session:
        key = session_id or new_session_id()
        with self._lock:
            existing = self._sessions.get(key)
            if existing is not None:
                if existing.provider_id != provider_id:
                    raise SessionOwnershipError(key)
                return existing
            now = self._clock()
            session = Session(
                session_id=key,
                provider_id=provider_id,
                role=role,
                created_at=now,
                last_activity=now,
            )
            self._sessions[key] = session
            self._activity_index[key] = now
        logger.info("session_created", session_id=key, role=role, provider_id=provider_id)
        return session

    def sweep(self, now: datetime | None = None) -> list[str]:
        current = now or self._clock()
        cutoff = current - self.max_age
        with self._lock:
            candidates = [key for key, seen in self._activity_index.items() if seen < cutoff]
        removed: list[str] = []
        for key in candidates:
            with self._lock:
                session = self._sessions.get(key)
                # Sessions touched after the last put() carry a fresher timestamp.
                if session is not None and session.last_activity >= cutoff:
                    self._activity_index[key] = session.last_activity
                    continue
                self._sessions.pop(key, None)
                self._activity_index.pop(key, None)
            removed.append(key)
        if removed:
            logger.info("sessions_reaped", count=len(removed), max_age_seconds=self.max_age.total_seconds())
        return removed


class SessionReaper:
    """Runs ``store.sweep()`` on a fixed interval in a daemon thread."""

    def __init__(self, store: SessionStore, *, interval_seconds: float) -> None:
        self.store = store
        self.interval_seconds = max(1.0, float(interval_seconds))
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        if self.running:
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._run, name="session-reaper", daemon=True)
        self._thread.start()

    def stop(self, timeout: float = 5.0) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout=timeout)
            self._thread = None

    def _run(self) -> None:
        while not self._stop.wait(self.interval_seconds):
            try:
                self.store.sweep()
            except Exception:
                logger.exception("session_sweep_failed")
