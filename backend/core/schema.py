from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, Field, model_validator

Severity = Literal["error", "warning", "info"]
ExportFormat = Literal["excel", "csv", "json", "zip"]


class ProcessingStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (ProcessingStatus.COMPLETED, ProcessingStatus.FAILED)


class CategoryStatus(str, Enum):
    """Shared status of a category bucket; ``MIXED`` when members disagree."""

    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    MIXED = "mixed"


class CellLocation(BaseModel):
    sheet: str
    row: int = Field(ge=0)
    column: str
    cell: str


class HighlightRange(BaseModel):
    start: int = Field(ge=0)
    end: int = Field(ge=0)

    @model_validator(mode="after")
    def _ordered(self) -> "HighlightRange":
        if self.start > self.end:
            raise ValueError("highlight start must not exceed end")
        return self


class Finding(BaseModel):
    """A single rule violation or note attached to one cell."""

    id: str
    type: str
    severity: Severity
    message: str
    location: CellLocation
    original_text: str
    rule: str
    confidence: float | None = Field(default=None, ge=0, le=1)
    suggestion: str | None = None
    highlight_range: HighlightRange | None = None
    context_before: str | None = None
    context_after: str | None = None
    marked_text: str | None = None

    @model_validator(mode="after")
    def _range_within_text(self) -> "Finding":
        if self.highlight_range is not None and self.highlight_range.end > len(self.original_text):
            raise ValueError("highlight range exceeds original text")
        return self


class ValidationSummary(BaseModel):
    total_cells: int = 0
    checked_cells: int = 0
    error_count: int = 0
    warning_count: int = 0
    info_count: int = 0


class ValidationResult(BaseModel):
    id: str
    file_id: str | None = None
    file_name: str
    session_id: str | None = None
    category: str | None = None
    status: ProcessingStatus = ProcessingStatus.PENDING
    progress: int = Field(default=0, ge=0, le=100)
    errors: list[Finding] = Field(default_factory=list)
    warnings: list[Finding] = Field(default_factory=list)
    info: list[Finding] = Field(default_factory=list)
    summary: ValidationSummary = Field(default_factory=ValidationSummary)
    created_at: datetime
    completed_at: datetime | None = None
    failure_reason: str | None = None

    def findings(self) -> list[Finding]:
        return [*self.errors, *self.warnings, *self.info]


class StatusSummary(BaseModel):
    processing_time_seconds: float = 0.0
    total_errors: int = 0
    total_warnings: int = 0
    total_info: int = 0
    failed_files: int = 0


class SessionValidationStatus(BaseModel):
    session_id: str
    status: ProcessingStatus = ProcessingStatus.PENDING
    progress: int = 0
    current_file: str | None = None
    completed_files: int = 0
    total_files: int = 0
    results: list[ValidationResult] = Field(default_factory=list)
    error: str | None = None
    started_at: datetime
    updated_at: datetime
    summary: StatusSummary = Field(default_factory=StatusSummary)


class CategorySummary(BaseModel):
    count: int
    files: list[dict[str, Any]]
    avg_confidence: float
    status: CategoryStatus


class BatchStats(BaseModel):
    total_files: int = 0
    total_errors: int = 0
    total_warnings: int = 0
    total_info: int = 0
    total_cells: int = 0


class CategoryStats(BaseModel):
    category: str
    file_count: int
    errors: int
    warnings: int
    info: int
    total_cells: int
    success_rate: int
