"""Validation orchestration for upload sessions.

A session run validates every file of the session.  Files run on worker
threads through ``asyncio.to_thread`` and are bounded by a semaphore sized
from ``VALIDATION_MAX_WORKERS``.  Inside one file cells are visited in
sheet, row, column order and validators in registration order, which keeps
finding arrays deterministic for report generation.

The run publishes a :class:`SessionValidationStatus` record guarded by a
single lock.  Readers only ever receive deep copies, and ``results`` is
attached in the same critical section that flips the status to
``completed``.
"""
from __future__ import annotations

import asyncio
import logging
import threading
import time
import uuid
from collections import Counter, deque
from dataclasses import dataclass, field
from typing import Any, Callable, get_args

from backend.application import SessionService, get_session_service
from backend.core.aggregation import percent, round_half_up
from backend.core.config import Settings, load_settings
from backend.core.errors import InvalidTransition, NotFoundError, RateLimitedError, ValidationFailure
from backend.core.schema import (
    CellLocation,
    ExportFormat,
    Finding,
    HighlightRange,
    ProcessingStatus,
    SessionValidationStatus,
    StatusSummary,
    ValidationResult,
)
from backend.domain import column_letter
from backend.domain.sessions import utcnow
from backend.validators import RuleFinding, ValidatorRegistry, build_default_registry
from backend.validators.highlight import build_marked_text, clamp_range

logger = logging.getLogger(__name__)

CANCELLED = "cancelled"
STALE = "stale"
NO_FILES = "session has no files to validate"
PUBLISH_EVERY_CELLS = 25
PREVIEW_ERRORS = 5
PREVIEW_WARNINGS = 3
PREVIEW_INFO = 2

ProgressCallback = Callable[[ValidationResult], None]


def new_validation_id() -> str:
    return f"val_{uuid.uuid4().hex[:16]}"


class StatusRateLimiter:
    """Sliding-window read limiter keyed by session id."""

    def __init__(self, limit: int, window_seconds: float, clock: Callable[[], float] = time.monotonic) -> None:
        self.limit = limit
        self.window_seconds = window_seconds
        self._clock = clock
        self._hits: dict[str, deque[float]] = {}
        self._lock = threading.Lock()

    def hit(self, key: str) -> None:
        now = self._clock()
        with self._lock:
            hits = self._hits.setdefault(key, deque())
            while hits and now - hits[0] >= self.window_seconds:
                hits.popleft()
            if len(hits) >= self.limit:
                retry_after = max(self.window_seconds - (now - hits[0]), 1.0)
                raise RateLimitedError(f"validation status for {key} polled too often", retry_after=round(retry_after, 1))
            hits.append(now)

    def forget(self, key: str) -> None:
        with self._lock:
            self._hits.pop(key, None)

    def reset(self) -> None:
        with self._lock:
            self._hits.clear()


@dataclass
class _SessionRun:
    session_id: str
    status: SessionValidationStatus
    file_ids: list[str]
    validation_ids: dict[str, str]
    started: float
    last_update: float
    lock: threading.Lock = field(default_factory=threading.Lock)
    file_progress: dict[str, int] = field(default_factory=dict)
    finished_files: set[str] = field(default_factory=set)
    task: asyncio.Task | None = None


class ValidationOrchestrator:
    """Drives the validator registry over the files of a session."""

    def __init__(
        self,
        sessions: SessionService,
        registry: ValidatorRegistry | None = None,
        *,
        settings: Settings | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._sessions = sessions
        self._registry = registry if registry is not None else build_default_registry()
        self._settings = settings or load_settings()
        self._clock = clock
        self._runs: dict[str, _SessionRun] = {}
        self._cancel_events: dict[str, threading.Event] = {}
        self._lock = threading.Lock()
        self._limiter = StatusRateLimiter(
            self._settings.status_poll_limit,
            self._settings.status_poll_window_seconds,
            clock,
        )

    @property
    def registry(self) -> ValidatorRegistry:
        return self._registry

    # ------------------------------------------------------------------
    # per-file validation
    # ------------------------------------------------------------------
    @staticmethod
    def _envelope(validation_id: str, index: int, item: RuleFinding, text: str, location: CellLocation) -> Finding:
        highlight = None
        marked = None
        if item.highlight_range is not None:
            start, end = clamp_range(text, *item.highlight_range)
            highlight = HighlightRange(start=start, end=end)
            marked = build_marked_text(text, start, end, item.severity)
        confidence = None if item.confidence is None else min(max(float(item.confidence), 0.0), 1.0)
        return Finding(
            id=f"{validation_id}-{index:05d}",
            type=item.type,
            severity=item.severity,
            message=item.message,
            location=location,
            original_text=text,
            rule=item.rule,
            confidence=confidence,
            suggestion=item.suggestion,
            highlight_range=highlight,
            context_before=item.context_before,
            context_after=item.context_after,
            marked_text=marked,
        )

    @staticmethod
    def _sync_counts(result: ValidationResult) -> None:
        result.summary.error_count = len(result.errors)
        result.summary.warning_count = len(result.warnings)
        result.summary.info_count = len(result.info)

    def _publish_result(self, result: ValidationResult, on_progress: ProgressCallback | None) -> None:
        self._sync_counts(result)
        self._sessions.save_result(result)
        if on_progress is not None:
            on_progress(result.model_copy(deep=True))

    def _validate_file(
        self,
        session_id: str,
        file_id: str,
        validation_id: str,
        *,
        cancel_event: threading.Event | None = None,
        on_progress: ProgressCallback | None = None,
    ) -> ValidationResult:
        try:
            record = self._sessions.get_file(session_id, file_id)
        except NotFoundError as exc:
            return self._fail_missing_file(session_id, file_id, validation_id, exc, on_progress)

        cancel_event = cancel_event or threading.Event()
        result = ValidationResult(
            id=validation_id,
            file_id=file_id,
            file_name=record.file_name,
            session_id=session_id,
            category=record.category,
            status=ProcessingStatus.PROCESSING,
            created_at=utcnow(),
        )
        self._publish_result(result, on_progress)
        buckets = {"error": result.errors, "warning": result.warnings, "info": result.info}
        index = 0

        try:
            self._sessions.set_file_status(session_id, file_id, ProcessingStatus.PROCESSING)
            document = self._sessions.get_document(session_id, file_id)
            descriptors = self._registry.resolve(record.category)
            total = document.count_cells()
            result.summary.total_cells = total

            for sheet, row, col, text in document.iter_cells():
                if cancel_event.is_set():
                    result.failure_reason = CANCELLED
                    break
                letter = column_letter(col)
                location = CellLocation(sheet=sheet, row=row + 1, column=letter, cell=f"{letter}{row + 1}")
                for descriptor in descriptors:
                    try:
                        produced = [
                            self._envelope(validation_id, index + offset, item, text, location)
                            for offset, item in enumerate(descriptor.run(text, location), start=1)
                        ]
                    except Exception as exc:
                        if descriptor.fatal:
                            raise ValidationFailure(
                                f"validator {descriptor.name} failed at {sheet}!{location.cell}: {exc}"
                            ) from exc
                        logger.warning(
                            "Validator %s failed at %s!%s in %s",
                            descriptor.name,
                            sheet,
                            location.cell,
                            record.file_name,
                            exc_info=True,
                        )
                        continue
                    index += len(produced)
                    for finding in produced:
                        buckets[finding.severity].append(finding)

                result.summary.checked_cells += 1
                result.progress = max(result.progress, percent(result.summary.checked_cells, total))
                if result.summary.checked_cells % PUBLISH_EVERY_CELLS == 0:
                    self._publish_result(result, on_progress)
        except Exception as exc:
            logger.exception("Validation %s of %s failed", validation_id, record.file_name)
            result.failure_reason = str(exc) or exc.__class__.__name__

        return self._finish_file(result, on_progress)

    def _fail_missing_file(
        self,
        session_id: str,
        file_id: str,
        validation_id: str,
        exc: NotFoundError,
        on_progress: ProgressCallback | None,
    ) -> ValidationResult:
        """Close the pending result of a file removed after the run was claimed."""

        try:
            result = self._sessions.get_result(validation_id)
        except NotFoundError:
            result = ValidationResult(
                id=validation_id,
                file_id=file_id,
                file_name=file_id,
                session_id=session_id,
                created_at=utcnow(),
            )
        logger.warning("File %s left session %s before validation %s ran", file_id, session_id, validation_id)
        result.failure_reason = str(exc)
        return self._finish_file(result, on_progress)

    def _finish_file(self, result: ValidationResult, on_progress: ProgressCallback | None) -> ValidationResult:
        if result.failure_reason:
            result.status = ProcessingStatus.FAILED
        else:
            result.status = ProcessingStatus.COMPLETED
            result.progress = 100
        result.completed_at = utcnow()
        try:
            self._sessions.set_file_status(result.session_id or "", result.file_id or "", result.status)
        except NotFoundError:
            logger.info("Session %s was removed while %s was validating", result.session_id, result.file_name)
        self._publish_result(result, on_progress)
        logger.info(
            "Validation %s of %s %s: %d errors, %d warnings, %d info over %d/%d cells",
            result.id,
            result.file_name,
            result.status.value,
            result.summary.error_count,
            result.summary.warning_count,
            result.summary.info_count,
            result.summary.checked_cells,
            result.summary.total_cells,
        )
        return result.model_copy(deep=True)

    # ------------------------------------------------------------------
    # session runs
    # ------------------------------------------------------------------
    def _new_run(self, session_id: str) -> _SessionRun:
        session = self._sessions.get_session(session_id)
        busy = [record.file_name for record in session.files.values() if record.status == ProcessingStatus.PROCESSING]
        if busy:
            raise InvalidTransition(f"files still validating in session {session_id}: {', '.join(busy)}")
        now = utcnow()
        started = self._clock()
        run = _SessionRun(
            session_id=session_id,
            status=SessionValidationStatus(
                session_id=session_id,
                total_files=len(session.files),
                started_at=now,
                updated_at=now,
            ),
            file_ids=list(session.files),
            validation_ids={},
            started=started,
            last_update=started,
        )
        for file_id, record in session.files.items():
            validation_id = new_validation_id()
            self._sessions.begin_validation(session_id, file_id, validation_id)
            self._sessions.save_result(
                ValidationResult(
                    id=validation_id,
                    file_id=file_id,
                    file_name=record.file_name,
                    session_id=session_id,
                    category=record.category,
                    created_at=now,
                )
            )
            run.validation_ids[file_id] = validation_id
        return run

    def _claim(self, session_id: str) -> tuple[_SessionRun, bool]:
        with self._lock:
            current = self._runs.get(session_id)
            if current is not None:
                with current.lock:
                    running = not current.status.status.is_terminal
                if running:
                    return current, False
            run = self._new_run(session_id)
            self._runs[session_id] = run
            for validation_id in run.validation_ids.values():
                self._cancel_events[validation_id] = threading.Event()
        self._limiter.forget(session_id)
        return run, True

    def _on_file_progress(self, run: _SessionRun, result: ValidationResult) -> None:
        file_id = result.file_id or ""
        with run.lock:
            status = run.status
            if status.status.is_terminal:
                return
            status.status = ProcessingStatus.PROCESSING
            run.file_progress[file_id] = max(run.file_progress.get(file_id, 0), result.progress)
            if result.status.is_terminal and file_id not in run.finished_files:
                run.finished_files.add(file_id)
                status.completed_files = len(run.finished_files)
            status.current_file = result.file_name
            if status.total_files:
                overall = round_half_up(sum(run.file_progress.values()) / status.total_files)
                status.progress = max(status.progress, min(overall, 100))
            status.updated_at = utcnow()
            run.last_update = self._clock()

    def _run_file(self, run: _SessionRun, file_id: str) -> ValidationResult:
        validation_id = run.validation_ids[file_id]
        with self._lock:
            event = self._cancel_events.get(validation_id) or threading.Event()
        return self._validate_file(
            run.session_id,
            file_id,
            validation_id,
            cancel_event=event,
            on_progress=lambda result: self._on_file_progress(run, result),
        )

    def _complete(self, run: _SessionRun, results: list[ValidationResult], error: str | None = None) -> None:
        with run.lock:
            status = run.status
            already_final = status.status.is_terminal
            if not already_final:
                status.summary = StatusSummary(
                    processing_time_seconds=round(self._clock() - run.started, 3),
                    total_errors=sum(len(result.errors) for result in results),
                    total_warnings=sum(len(result.warnings) for result in results),
                    total_info=sum(len(result.info) for result in results),
                    failed_files=sum(1 for result in results if result.status == ProcessingStatus.FAILED),
                )
                if error is None and not results:
                    error = NO_FILES
                if error is not None:
                    status.status = ProcessingStatus.FAILED
                    status.error = error
                else:
                    status.results = [result.model_copy(deep=True) for result in results]
                    status.completed_files = len(results)
                    status.progress = 100
                    status.status = ProcessingStatus.COMPLETED
                status.current_file = None
                status.updated_at = utcnow()
                run.last_update = self._clock()
            final = status.status
        self._release_events(run)
        if not already_final:
            logger.info("Validation run for session %s %s", run.session_id, final.value)

    def _release_events(self, run: _SessionRun) -> None:
        with self._lock:
            for validation_id in run.validation_ids.values():
                self._cancel_events.pop(validation_id, None)

    async def _run_session(self, run: _SessionRun) -> list[ValidationResult]:
        with run.lock:
            run.status.status = ProcessingStatus.PROCESSING
            run.status.updated_at = utcnow()
        logger.info("Validating %d files in session %s", len(run.file_ids), run.session_id)
        semaphore = asyncio.Semaphore(self._settings.validation_max_workers)

        async def run_one(file_id: str) -> ValidationResult:
            async with semaphore:
                return await asyncio.to_thread(self._run_file, run, file_id)

        try:
            results = list(await asyncio.gather(*(run_one(file_id) for file_id in run.file_ids)))
        except Exception as exc:
            logger.exception("Validation run for session %s could not proceed", run.session_id)
            self._complete(run, [], error=str(exc) or exc.__class__.__name__)
            return []
        self._complete(run, results)
        return results

    def _read(self, run: _SessionRun) -> SessionValidationStatus:
        with run.lock:
            return run.status.model_copy(deep=True)

    def _expire_if_stale(self, run: _SessionRun) -> None:
        with run.lock:
            if run.status.status.is_terminal:
                return
            idle = self._clock() - run.last_update
            if idle <= self._settings.validation_stale_seconds:
                return
            run.status.status = ProcessingStatus.FAILED
            run.status.error = f"{STALE}: no progress for {int(idle)} seconds"
            run.status.current_file = None
            run.status.updated_at = utcnow()
        logger.warning("Validation run for session %s marked stale", run.session_id)
        with self._lock:
            for validation_id in run.validation_ids.values():
                event = self._cancel_events.get(validation_id)
                if event is not None:
                    event.set()

    # ------------------------------------------------------------------
    # public API
    # ------------------------------------------------------------------
    async def validate_session(self, session_id: str) -> dict[str, Any]:
        """Validate every file of the session and wait for the results."""

        run, created = self._claim(session_id)
        if not created:
            raise InvalidTransition(f"session {session_id} is already being validated")
        results = await self._run_session(run)
        status = self._read(run)
        return {
            "success": status.status == ProcessingStatus.COMPLETED,
            "results": results,
            "error": status.error,
        }

    async def start_session_validation(self, session_id: str) -> SessionValidationStatus:
        """Start a background run, or return the status of the one in flight."""

        run, created = self._claim(session_id)
        if created:
            run.task = asyncio.create_task(self._run_session(run))
        return self._read(run)

    async def join(self, session_id: str) -> SessionValidationStatus:
        """Wait for the background run of a session to finish."""

        with self._lock:
            run = self._runs.get(session_id)
        if run is None:
            raise NotFoundError(f"no validation run for session {session_id}")
        if run.task is not None:
            await asyncio.shield(run.task)
        return self._read(run)

    def get_session_validation_status(self, session_id: str) -> SessionValidationStatus:
        with self._lock:
            run = self._runs.get(session_id)
        if run is None:
            session = self._sessions.get_session(session_id)
            now = utcnow()
            return SessionValidationStatus(
                session_id=session_id,
                total_files=len(session.files),
                started_at=now,
                updated_at=now,
            )
        self._expire_if_stale(run)
        with run.lock:
            terminal = run.status.status.is_terminal
        if not terminal:
            self._limiter.hit(session_id)
        return self._read(run)

    def cancel_validation(self, validation_id: str) -> bool:
        """Signal a running validation; ``False`` when it has already ended."""

        result = self._sessions.get_result(validation_id)
        if result.status.is_terminal:
            return False
        with self._lock:
            event = self._cancel_events.get(validation_id)
        if event is None:
            return False
        event.set()
        logger.info("Cancellation requested for validation %s", validation_id)
        return True

    def get_result(self, validation_id: str) -> ValidationResult:
        return self._sessions.get_result(validation_id)

    def list_recent_results(self, limit: int = 10) -> list[ValidationResult]:
        results = sorted(self._sessions.list_results(), key=lambda item: item.created_at, reverse=True)
        return results[: max(limit, 0)]

    def result_stats(self, validation_id: str) -> dict[str, Any]:
        result = self.get_result(validation_id)
        elapsed = None
        if result.completed_at is not None:
            elapsed = round((result.completed_at - result.created_at).total_seconds(), 3)
        return {
            "validation_id": result.id,
            "file_name": result.file_name,
            "status": result.status.value,
            "total_cells": result.summary.total_cells,
            "checked_cells": result.summary.checked_cells,
            "by_severity": {
                "error": len(result.errors),
                "warning": len(result.warnings),
                "info": len(result.info),
            },
            "by_type": dict(Counter(finding.type for finding in result.findings())),
            "processing_time_seconds": elapsed,
        }

    def result_preview(self, validation_id: str) -> dict[str, Any]:
        """Report preview: summary counts plus a small sample of each severity."""

        result = self.get_result(validation_id)
        return {
            "validation_id": result.id,
            "file_name": result.file_name,
            "status": result.status.value,
            "progress": result.progress,
            "summary": result.summary.model_dump(),
            "created_at": result.created_at.isoformat(),
            "completed_at": result.completed_at.isoformat() if result.completed_at else None,
            "sample_findings": {
                "errors": [item.model_dump(mode="json") for item in result.errors[:PREVIEW_ERRORS]],
                "warnings": [item.model_dump(mode="json") for item in result.warnings[:PREVIEW_WARNINGS]],
                "info": [item.model_dump(mode="json") for item in result.info[:PREVIEW_INFO]],
            },
            "available_formats": list(get_args(ExportFormat)),
        }

    def findings_by_type(self, validation_id: str, finding_type: str) -> dict[str, Any]:
        """Every finding of one rule type, across all severities, in report order."""

        result = self.get_result(validation_id)
        matched = [item.model_dump(mode="json") for item in result.findings() if item.type == finding_type]
        return {"type": finding_type, "count": len(matched), "findings": matched}

    # ------------------------------------------------------------------
    # testing helpers
    # ------------------------------------------------------------------
    def reset(self) -> None:
        with self._lock:
            for event in self._cancel_events.values():
                event.set()
            self._cancel_events.clear()
            self._runs.clear()
        self._limiter.reset()


_orchestrator: ValidationOrchestrator | None = None


def get_validation_orchestrator() -> ValidationOrchestrator:
    global _orchestrator
    if _orchestrator is None:
        _orchestrator = ValidationOrchestrator(get_session_service())
    return _orchestrator


def reset_validation_state() -> None:
    """Drop runs and rebuild the orchestrator on next use (used in tests)."""

    global _orchestrator
    if _orchestrator is not None:
        _orchestrator.reset()
    _orchestrator = None
