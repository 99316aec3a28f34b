"""Batch statistics and category roll-ups over validation results.

Success rates count errors and warnings as issues; info findings never lower
a rate.  The session-wide rate is the mean of the per-category rates so a
category with a handful of files weighs as much as a large one.
"""
from __future__ import annotations

import math
from collections import defaultdict
from typing import Iterable, Sequence

from backend.core.schema import (
    BatchStats,
    CategoryStats,
    CategoryStatus,
    CategorySummary,
    ProcessingStatus,
    ValidationResult,
)
from backend.domain import FileRecord
from backend.extractors.detect import fallback_category


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def percent(part: int, whole: int) -> int:
    if whole <= 0:
        return 0
    return round_half_up(100 * part / whole)


def aggregate(results: Sequence[ValidationResult]) -> BatchStats:
    return BatchStats(
        total_files=len(results),
        total_errors=sum(len(result.errors) for result in results),
        total_warnings=sum(len(result.warnings) for result in results),
        total_info=sum(len(result.info) for result in results),
        total_cells=sum(result.summary.total_cells for result in results),
    )


def group_by_category(
    results: Iterable[ValidationResult],
    files: Iterable[FileRecord],
) -> dict[str, list[ValidationResult]]:
    """Bucket results by the category of the file sharing their file name."""

    categories = {record.file_name: record.category for record in files}
    fallback = fallback_category()
    grouped: dict[str, list[ValidationResult]] = defaultdict(list)
    for result in results:
        grouped[categories.get(result.file_name, fallback)].append(result)
    return dict(grouped)


def success_rate(cells: int, issues: int) -> int:
    if cells <= 0:
        return 0
    return round_half_up(100 * (cells - issues) / cells)


def category_stats(
    results: Iterable[ValidationResult],
    files: Iterable[FileRecord],
) -> list[CategoryStats]:
    stats: list[CategoryStats] = []
    for category, members in group_by_category(results, files).items():
        errors = sum(len(result.errors) for result in members)
        warnings = sum(len(result.warnings) for result in members)
        cells = sum(result.summary.total_cells for result in members)
        stats.append(
            CategoryStats(
                category=category,
                file_count=len(members),
                errors=errors,
                warnings=warnings,
                info=sum(len(result.info) for result in members),
                total_cells=cells,
                success_rate=success_rate(cells, errors + warnings),
            )
        )
    return stats


def overall_success_rate(stats: Sequence[CategoryStats]) -> int:
    if not stats:
        return 0
    return round_half_up(sum(item.success_rate for item in stats) / len(stats))


def reduce_status(statuses: Iterable[ProcessingStatus]) -> CategoryStatus:
    distinct = set(statuses)
    if not distinct:
        return CategoryStatus.PENDING
    if len(distinct) > 1:
        return CategoryStatus.MIXED
    return CategoryStatus(distinct.pop().value)


def summarise_categories(files: Iterable[FileRecord]) -> dict[str, CategorySummary]:
    buckets: dict[str, list[FileRecord]] = defaultdict(list)
    for record in files:
        buckets[record.category].append(record)

    summary: dict[str, CategorySummary] = {}
    for category, members in buckets.items():
        summary[category] = CategorySummary(
            count=len(members),
            files=[record.to_payload() for record in members],
            avg_confidence=round(sum(record.confidence for record in members) / len(members), 4),
            status=reduce_status(record.status for record in members),
        )
    return summary
