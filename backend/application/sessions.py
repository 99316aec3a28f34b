"""Application service layer for upload sessions."""
from __future__ import annotations

import logging
import uuid
from collections import Counter
from datetime import timedelta
from typing import Any

from backend.core.aggregation import round_half_up, summarise_categories
from backend.core.config import Settings, load_settings
from backend.core.errors import NotFoundError, SessionLimitExceeded
from backend.core.schema import CategorySummary, ProcessingStatus, ValidationResult
from backend.domain import FileRecord, SessionState, SpreadsheetDocument
from backend.domain.sessions import utcnow
from backend.extractors.detect import ClassificationResult, fallback_category
from backend.extractors.workbook import read_document
from backend.infrastructure import InMemorySessionRepository, SessionRepository, get_classifier

logger = logging.getLogger(__name__)


def new_file_id() -> str:
    return f"file_{uuid.uuid4().hex[:16]}"


class SessionService:
    """Coordinates session and file use cases."""

    def __init__(self, repository: SessionRepository, settings: Settings | None = None) -> None:
        self._repository = repository
        self._settings = settings or load_settings()

    @property
    def repository(self) -> SessionRepository:
        return self._repository

    # ------------------------------------------------------------------
    # session lifecycle
    # ------------------------------------------------------------------
    def create_session(self) -> str:
        session = self._repository.create_session()
        logger.info("Created session %s", session.id)
        return session.id

    def get_session(self, session_id: str) -> SessionState:
        return self._repository.snapshot(session_id)

    def delete_session(self, session_id: str) -> None:
        self._repository.delete_session(session_id)
        logger.info("Deleted session %s", session_id)

    def evict_expired(self) -> list[str]:
        return self._repository.evict_expired()

    # ------------------------------------------------------------------
    # files
    # ------------------------------------------------------------------
    def _classify(self, document: SpreadsheetDocument) -> ClassificationResult:
        try:
            return get_classifier().classify(document)
        except Exception:
            logger.warning("Classifier failed for %s, using fallback category", document.file_name, exc_info=True)
            return ClassificationResult(
                category=fallback_category(),
                confidence=0.0,
                sheet_count=len(document.sheets),
            )

    def add_document(
        self,
        session_id: str,
        document: SpreadsheetDocument,
        *,
        file_id: str | None = None,
    ) -> FileRecord:
        """Classify a parsed document and attach it to the session.

        Re-adding an existing ``file_id`` returns the stored record unchanged.
        """

        if file_id is not None:
            existing = self._repository.snapshot(session_id).files.get(file_id)
            if existing is not None:
                return existing
        else:
            self._repository.snapshot(session_id)

        classification = self._classify(document)
        record = FileRecord(
            id=file_id or new_file_id(),
            file_name=document.file_name,
            file_size=document.file_size,
            category=classification.category,
            confidence=classification.confidence,
            metadata=classification.metadata,
        )
        with self._repository.mutate(session_id) as session:
            if record.id in session.files:
                return self.get_file(session_id, record.id)
            if len(session.files) >= self._settings.max_files_per_session:
                raise SessionLimitExceeded(
                    f"session {session_id} already holds {self._settings.max_files_per_session} files"
                )
            session.files[record.id] = record
            session.documents[record.id] = document
        logger.info(
            "Added %s to session %s as %s (confidence %.2f)",
            record.file_name,
            session_id,
            record.category,
            record.confidence,
        )
        return self.get_file(session_id, record.id)

    def add_file(self, session_id: str, file_name: str, content: bytes, *, file_id: str | None = None) -> FileRecord:
        document = read_document(content, file_name)
        return self.add_document(session_id, document, file_id=file_id)

    def get_file(self, session_id: str, file_id: str) -> FileRecord:
        record = self._repository.snapshot(session_id).files.get(file_id)
        if record is None:
            raise NotFoundError(f"file {file_id} not found in session {session_id}")
        return record

    def get_document(self, session_id: str, file_id: str) -> SpreadsheetDocument:
        document = self._repository.get_document(session_id, file_id)
        if document is None:
            raise NotFoundError(f"file {file_id} not found in session {session_id}")
        return document

    def remove_file(self, session_id: str, file_id: str) -> bool:
        with self._repository.mutate(session_id) as session:
            removed = session.files.pop(file_id, None)
            session.documents.pop(file_id, None)
        return removed is not None

    def clear_files(self, session_id: str) -> int:
        with self._repository.mutate(session_id) as session:
            count = len(session.files)
            session.files.clear()
            session.documents.clear()
        return count

    def update_file_category(self, session_id: str, file_id: str, category: str) -> FileRecord:
        with self._repository.mutate(session_id) as session:
            record = session.files.get(file_id)
            if record is None:
                raise NotFoundError(f"file {file_id} not found in session {session_id}")
            record.category = category
            record.confidence = 1.0
        logger.info("File %s in session %s manually set to %s", file_id, session_id, category)
        return self.get_file(session_id, file_id)

    def files_by_category(self, session_id: str, category: str) -> list[FileRecord]:
        return [record for record in self.get_session(session_id).files.values() if record.category == category]

    # ------------------------------------------------------------------
    # validation bookkeeping
    # ------------------------------------------------------------------
    def begin_validation(self, session_id: str, file_id: str, validation_id: str) -> FileRecord:
        with self._repository.mutate(session_id) as session:
            record = session.files.get(file_id)
            if record is None:
                raise NotFoundError(f"file {file_id} not found in session {session_id}")
            record.restart(validation_id)
        return self.get_file(session_id, file_id)

    def set_file_status(self, session_id: str, file_id: str, status: ProcessingStatus) -> None:
        with self._repository.mutate(session_id) as session:
            record = session.files.get(file_id)
            if record is not None:
                record.transition(status)

    def save_result(self, result: ValidationResult) -> None:
        self._repository.save_result(result)

    def get_result(self, validation_id: str) -> ValidationResult:
        result = self._repository.get_result(validation_id)
        if result is None:
            raise NotFoundError(f"validation {validation_id} not found")
        return result

    def list_results(self) -> list[ValidationResult]:
        return self._repository.list_results()

    # ------------------------------------------------------------------
    # projections
    # ------------------------------------------------------------------
    def category_summary(self, session_id: str) -> dict[str, CategorySummary]:
        return summarise_categories(self.get_session(session_id).files.values())

    def session_stats(self, session_id: str) -> dict[str, Any]:
        files = list(self.get_session(session_id).files.values())
        total_size = sum(record.file_size for record in files)
        return {
            "total_files": len(files),
            "total_size": total_size,
            "average_file_size": round(total_size / len(files)) if files else 0,
            "category_distribution": dict(Counter(record.category for record in files)),
            "status_distribution": dict(Counter(record.status.value for record in files)),
        }

    def system_stats(self) -> dict[str, Any]:
        """Process-wide counters over every live session and stored result."""

        sessions = self._repository.list_sessions()
        cutoff = utcnow() - timedelta(seconds=self._settings.session_ttl_seconds)
        files = [record for session in sessions for record in session.files.values()]
        durations = [
            (result.completed_at - result.created_at).total_seconds()
            for result in self._repository.list_results()
            if result.status == ProcessingStatus.COMPLETED and result.completed_at is not None
        ]
        return {
            "total_sessions": len(sessions),
            "active_sessions": sum(1 for session in sessions if session.last_accessed_at >= cutoff),
            "total_files": len(files),
            "average_files_per_session": round_half_up(100 * len(files) / len(sessions)) / 100 if sessions else 0,
            "popular_categories": dict(Counter(record.category for record in files).most_common()),
            "processing_time": {
                "average": round(sum(durations) / len(durations), 3) if durations else 0,
                "min": round(min(durations), 3) if durations else 0,
                "max": round(max(durations), 3) if durations else 0,
                "samples": len(durations),
            },
        }

    def snapshot(self, session_id: str) -> dict[str, Any]:
        session = self.get_session(session_id)
        files = list(session.files.values())
        return {
            "session": {
                "id": session.id,
                "created_at": session.created_at.isoformat(),
                "last_accessed_at": session.last_accessed_at.isoformat(),
                "file_count": len(files),
            },
            "files": [record.to_payload() for record in files],
            "stats": self.session_stats(session_id),
            "category_summary": {
                category: summary.model_dump(mode="json")
                for category, summary in summarise_categories(files).items()
            },
        }

    # ------------------------------------------------------------------
    # testing helpers
    # ------------------------------------------------------------------
    def reset(self) -> None:
        self._repository.reset()


_settings = load_settings()
_repository = InMemorySessionRepository(
    ttl_seconds=_settings.session_ttl_seconds,
    max_sessions=_settings.max_sessions,
)
_service = SessionService(_repository, _settings)


def get_session_service() -> SessionService:
    """Return the singleton session service for the process."""

    return _service


def reset_session_state() -> None:
    """Reset the in-memory store (used in tests)."""

    _service.reset()
