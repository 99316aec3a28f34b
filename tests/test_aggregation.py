from __future__ import annotations

import sys
from datetime import datetime, timezone
from pathlib import Path

sys.path.append(str(Path(__file__).resolve().parents[1]))

from backend.core.aggregation import (
    aggregate,
    category_stats,
    group_by_category,
    overall_success_rate,
    percent,
    reduce_status,
    success_rate,
    summarise_categories,
)
from backend.core.schema import (
    CategoryStatus,
    CellLocation,
    Finding,
    ProcessingStatus,
    ValidationResult,
    ValidationSummary,
)
from backend.domain import FileRecord

NOW = datetime(2025, 3, 2, tzinfo=timezone.utc)


def _finding(index: int, severity: str) -> Finding:
    return Finding(
        id=f"f-{severity}-{index}",
        type="note_cell",
        severity=severity,
        message="note_cell",
        location=CellLocation(sheet="Sheet1", row=index + 1, column="A", cell=f"A{index + 1}"),
        original_text="텍스트",
        rule="note_cell",
    )


def _result(file_name: str, *, cells: int, errors: int = 0, warnings: int = 0, info: int = 0) -> ValidationResult:
    return ValidationResult(
        id=f"val-{file_name}",
        file_name=file_name,
        status=ProcessingStatus.COMPLETED,
        progress=100,
        errors=[_finding(i, "error") for i in range(errors)],
        warnings=[_finding(i, "warning") for i in range(warnings)],
        info=[_finding(i, "info") for i in range(info)],
        summary=ValidationSummary(
            total_cells=cells,
            checked_cells=cells,
            error_count=errors,
            warning_count=warnings,
            info_count=info,
        ),
        created_at=NOW,
        completed_at=NOW,
    )


def _record(file_id: str, file_name: str, category: str, confidence: float, status=ProcessingStatus.PENDING) -> FileRecord:
    return FileRecord(
        id=file_id,
        file_name=file_name,
        file_size=1024,
        category=category,
        confidence=confidence,
        status=status,
    )


def test_aggregate_sums_lists_and_cells():
    stats = aggregate([_result("a.xlsx", cells=10, errors=2, info=1), _result("b.xlsx", cells=5, warnings=3)])

    assert stats.total_files == 2
    assert stats.total_errors == 2
    assert stats.total_warnings == 3
    assert stats.total_info == 1
    assert stats.total_cells == 15


def test_group_by_category_joins_on_file_name_with_fallback():
    files = [_record("f1", "출결.xlsx", "attendance", 0.9)]
    grouped = group_by_category([_result("출결.xlsx", cells=4), _result("unknown.xlsx", cells=4)], files)

    assert [item.file_name for item in grouped["attendance"]] == ["출결.xlsx"]
    assert [item.file_name for item in grouped["generic"]] == ["unknown.xlsx"]


def test_success_rate_counts_errors_and_warnings_only():
    assert success_rate(10, 3) == 70
    assert success_rate(0, 0) == 0

    stats = category_stats([_result("a.xlsx", cells=10, errors=1, warnings=2, info=5)], [])
    assert stats[0].category == "generic"
    assert stats[0].success_rate == 70


def test_overall_rate_is_mean_of_category_rates():
    files = [
        _record("f1", "small.xlsx", "awards", 0.8),
        _record("f2", "large.xlsx", "reading", 0.8),
    ]
    results = [_result("small.xlsx", cells=10), _result("large.xlsx", cells=1000, errors=500)]
    stats = {item.category: item for item in category_stats(results, files)}

    assert stats["awards"].success_rate == 100
    assert stats["reading"].success_rate == 50
    assert overall_success_rate(list(stats.values())) == 75
    assert overall_success_rate([]) == 0


def test_percent_rounds_half_up():
    assert percent(1, 8) == 13
    assert percent(0, 0) == 0
    assert percent(3, 3) == 100


def test_category_summary_for_two_file_session():
    files = [
        _record("f1", "attendance.xlsx", "attendance", 0.92),
        _record("f2", "roster.xlsx", "generic", 0.40),
    ]
    summary = summarise_categories(files)

    assert set(summary) == {"attendance", "generic"}
    assert summary["attendance"].avg_confidence == 0.92
    assert summary["generic"].avg_confidence == 0.40
    assert all(item.status == CategoryStatus.PENDING for item in summary.values())
    assert sum(item.count for item in summary.values()) == len(files)


def test_mixed_status_is_an_enum_variant():
    assert reduce_status([ProcessingStatus.COMPLETED, ProcessingStatus.FAILED]) is CategoryStatus.MIXED
    assert reduce_status([ProcessingStatus.COMPLETED] * 2) is CategoryStatus.COMPLETED
    assert reduce_status([]) is CategoryStatus.PENDING
