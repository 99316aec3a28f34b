"""Domain entities for upload sessions."""
from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Any, Iterator

from backend.core.errors import InvalidTransition
from backend.core.schema import ProcessingStatus

_ALLOWED_TRANSITIONS: dict[ProcessingStatus, set[ProcessingStatus]] = {
    ProcessingStatus.PENDING: {ProcessingStatus.PROCESSING},
    ProcessingStatus.PROCESSING: {ProcessingStatus.COMPLETED, ProcessingStatus.FAILED},
    ProcessingStatus.COMPLETED: set(),
    ProcessingStatus.FAILED: set(),
}


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def column_letter(index: int) -> str:
    """Convert a zero-based column index into a spreadsheet letter (0 -> A)."""

    letters = ""
    index += 1
    while index > 0:
        index, remainder = divmod(index - 1, 26)
        letters = chr(65 + remainder) + letters
    return letters


@dataclass(slots=True)
class SpreadsheetDocument:
    """A parsed workbook: sheet name -> rows -> cell text."""

    file_name: str
    sheets: dict[str, list[list[str]]] = field(default_factory=dict)
    file_size: int = 0

    @property
    def sheet_names(self) -> list[str]:
        return list(self.sheets)

    def iter_cells(self) -> Iterator[tuple[str, int, int, str]]:
        """Yield ``(sheet, row, column, text)`` for non-empty cells in sheet/row/column order."""

        for sheet_name, rows in self.sheets.items():
            for row_index, row in enumerate(rows):
                for col_index, value in enumerate(row):
                    text = str(value).strip() if value is not None else ""
                    if text:
                        yield sheet_name, row_index, col_index, text

    def count_cells(self) -> int:
        return sum(1 for _ in self.iter_cells())


@dataclass(slots=True)
class FileRecord:
    """An uploaded document tagged by the classifier."""

    id: str
    file_name: str
    file_size: int
    category: str
    confidence: float
    status: ProcessingStatus = ProcessingStatus.PENDING
    validation_id: str | None = None
    uploaded_at: datetime = field(default_factory=utcnow)
    metadata: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        self.confidence = min(max(float(self.confidence), 0.0), 1.0)

    def transition(self, status: ProcessingStatus) -> None:
        if status == self.status:
            return
        if status not in _ALLOWED_TRANSITIONS[self.status]:
            raise InvalidTransition(
                f"file {self.id} cannot move from {self.status.value} to {status.value}"
            )
        self.status = status

    def to_payload(self) -> dict[str, Any]:
        payload = asdict(self)
        payload["status"] = self.status.value
        payload["uploaded_at"] = self.uploaded_at.isoformat()
        return payload

    def restart(self, validation_id: str) -> None:
        """Begin a fresh validation run for a file whose previous run has ended."""

        if self.status == ProcessingStatus.PROCESSING:
            raise InvalidTransition(f"file {self.id} is already being validated")
        self.status = ProcessingStatus.PENDING
        self.validation_id = validation_id


@dataclass(slots=True)
class SessionState:
    """Aggregated state for a single upload session in memory."""

    id: str
    created_at: datetime = field(default_factory=utcnow)
    last_accessed_at: datetime = field(default_factory=utcnow)
    files: dict[str, FileRecord] = field(default_factory=dict)
    documents: dict[str, SpreadsheetDocument] = field(default_factory=dict)

    def touch(self) -> None:
        self.last_accessed_at = utcnow()
