"""Infrastructure layer for session persistence."""
from __future__ import annotations

import copy
import logging
import threading
import uuid
from contextlib import contextmanager
from dataclasses import replace
from datetime import timedelta
from typing import ContextManager, Iterator, Protocol

from backend.core.errors import NotFoundError
from backend.core.schema import ValidationResult
from backend.domain import FileRecord, SessionState, SpreadsheetDocument
from backend.domain.sessions import utcnow

logger = logging.getLogger(__name__)

EVICTION_TARGET_RATIO = 0.8


class SessionRepository(Protocol):
    """Persistence contract for upload sessions and validation results."""

    def create_session(self) -> SessionState: ...

    def snapshot(self, session_id: str) -> SessionState: ...

    def mutate(self, session_id: str) -> ContextManager[SessionState]: ...

    def get_document(self, session_id: str, file_id: str) -> SpreadsheetDocument | None: ...

    def delete_session(self, session_id: str) -> None: ...

    def evict_expired(self) -> list[str]: ...

    def session_ids(self) -> list[str]: ...

    def list_sessions(self) -> list[SessionState]: ...

    def save_result(self, result: ValidationResult) -> None: ...

    def get_result(self, validation_id: str) -> ValidationResult | None: ...

    def list_results(self) -> list[ValidationResult]: ...

    def reset(self) -> None: ...


def _copy_record(record: FileRecord) -> FileRecord:
    return replace(record, metadata=copy.deepcopy(record.metadata))


class InMemorySessionRepository:
    """In-memory store with one re-entrant lock per session id."""

    def __init__(self, *, ttl_seconds: float = 2 * 60 * 60, max_sessions: int = 1000) -> None:
        self.ttl_seconds = ttl_seconds
        self.max_sessions = max_sessions
        self._sessions: dict[str, SessionState] = {}
        self._locks: dict[str, threading.RLock] = {}
        self._results: dict[str, ValidationResult] = {}
        self._registry_lock = threading.Lock()
        self._results_lock = threading.Lock()

    # ------------------------------------------------------------------
    # internal helpers
    # ------------------------------------------------------------------
    def _lock_for(self, session_id: str) -> threading.RLock:
        with self._registry_lock:
            if session_id not in self._sessions:
                raise NotFoundError(f"session {session_id} not found")
            return self._locks[session_id]

    def _drop(self, session_ids: list[str]) -> None:
        with self._registry_lock:
            for session_id in session_ids:
                self._sessions.pop(session_id, None)
                self._locks.pop(session_id, None)
        if session_ids:
            dropped = set(session_ids)
            with self._results_lock:
                for validation_id in [key for key, value in self._results.items() if value.session_id in dropped]:
                    del self._results[validation_id]

    def _evict_least_recent(self) -> list[str]:
        with self._registry_lock:
            if len(self._sessions) < self.max_sessions:
                return []
            keep = int(self.max_sessions * EVICTION_TARGET_RATIO)
            ordered = sorted(self._sessions.values(), key=lambda item: item.last_accessed_at)
            victims = [session.id for session in ordered[: max(len(ordered) - keep, 1)]]
        self._drop(victims)
        return victims

    # ------------------------------------------------------------------
    # session lifecycle
    # ------------------------------------------------------------------
    def create_session(self) -> SessionState:
        self.evict_expired()
        evicted = self._evict_least_recent()
        if evicted:
            logger.info("Evicted %d least recently used sessions", len(evicted))
        session = SessionState(id=str(uuid.uuid4()))
        with self._registry_lock:
            self._sessions[session.id] = session
            self._locks[session.id] = threading.RLock()
        return replace(session, files={}, documents={})

    def snapshot(self, session_id: str) -> SessionState:
        with self._lock_for(session_id):
            session = self._sessions.get(session_id)
            if session is None:
                raise NotFoundError(f"session {session_id} not found")
            session.touch()
            return replace(
                session,
                files={file_id: _copy_record(record) for file_id, record in session.files.items()},
                documents={},
            )

    @contextmanager
    def mutate(self, session_id: str) -> Iterator[SessionState]:
        with self._lock_for(session_id):
            session = self._sessions.get(session_id)
            if session is None:
                raise NotFoundError(f"session {session_id} not found")
            session.touch()
            yield session

    def get_document(self, session_id: str, file_id: str) -> SpreadsheetDocument | None:
        with self._lock_for(session_id):
            session = self._sessions.get(session_id)
            return session.documents.get(file_id) if session else None

    def delete_session(self, session_id: str) -> None:
        with self._lock_for(session_id):
            self._drop([session_id])

    def evict_expired(self) -> list[str]:
        cutoff = utcnow() - timedelta(seconds=self.ttl_seconds)
        with self._registry_lock:
            expired = [session.id for session in self._sessions.values() if session.last_accessed_at < cutoff]
        self._drop(expired)
        if expired:
            logger.info("Evicted %d expired sessions", len(expired))
        return expired

    def session_ids(self) -> list[str]:
        with self._registry_lock:
            return list(self._sessions)

    def list_sessions(self) -> list[SessionState]:
        """Copies of every session; unlike ``snapshot`` this does not touch them."""

        with self._registry_lock:
            entries = [(session, self._locks[session_id]) for session_id, session in self._sessions.items()]
        copies: list[SessionState] = []
        for session, lock in entries:
            with lock:
                copies.append(
                    replace(
                        session,
                        files={file_id: _copy_record(record) for file_id, record in session.files.items()},
                        documents={},
                    )
                )
        return copies

    # ------------------------------------------------------------------
    # validation results
    # ------------------------------------------------------------------
    def save_result(self, result: ValidationResult) -> None:
        with self._results_lock:
            self._results[result.id] = result.model_copy(deep=True)

    def get_result(self, validation_id: str) -> ValidationResult | None:
        with self._results_lock:
            result = self._results.get(validation_id)
            return result.model_copy(deep=True) if result is not None else None

    def list_results(self) -> list[ValidationResult]:
        with self._results_lock:
            return [result.model_copy(deep=True) for result in self._results.values()]

    def reset(self) -> None:
        with self._registry_lock:
            self._sessions.clear()
            self._locks.clear()
        with self._results_lock:
            self._results.clear()
