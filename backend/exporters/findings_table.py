from __future__ import annotations

from typing import Iterable

import pandas as pd

from backend.core.aggregation import success_rate
from backend.core.schema import Finding, ValidationResult

FINDING_COLUMNS = [
    "severity",
    "type",
    "sheet",
    "cell",
    "row",
    "column",
    "message",
    "original_text",
    "suggestion",
    "rule",
    "confidence",
    "highlight_start",
    "highlight_end",
    "context_before",
    "context_after",
]

SUMMARY_COLUMNS = [
    "file_name",
    "category",
    "status",
    "total_cells",
    "checked_cells",
    "errors",
    "warnings",
    "info",
    "success_rate",
]


def finding_row(finding: Finding) -> dict:
    highlight = finding.highlight_range
    return {
        "severity": finding.severity,
        "type": finding.type,
        "sheet": finding.location.sheet,
        "cell": finding.location.cell,
        "row": finding.location.row,
        "column": finding.location.column,
        "message": finding.message,
        "original_text": finding.original_text,
        "suggestion": finding.suggestion,
        "rule": finding.rule,
        "confidence": finding.confidence,
        "highlight_start": highlight.start if highlight else None,
        "highlight_end": highlight.end if highlight else None,
        "context_before": finding.context_before,
        "context_after": finding.context_after,
    }


def findings_frame(
    results: Iterable[ValidationResult],
    *,
    with_file_name: bool,
    severity: str | None = None,
) -> pd.DataFrame:
    """Findings as rows: errors, then warnings, then info, file by file."""

    columns = (["file_name"] if with_file_name else []) + FINDING_COLUMNS
    records = []
    for result in results:
        for finding in result.findings():
            if severity is not None and finding.severity != severity:
                continue
            row = finding_row(finding)
            if with_file_name:
                row = {"file_name": result.file_name, **row}
            records.append(row)
    return pd.DataFrame(records, columns=columns)


def summary_frame(results: Iterable[ValidationResult]) -> pd.DataFrame:
    records = []
    for result in results:
        records.append(
            {
                "file_name": result.file_name,
                "category": result.category,
                "status": result.status.value,
                "total_cells": result.summary.total_cells,
                "checked_cells": result.summary.checked_cells,
                "errors": len(result.errors),
                "warnings": len(result.warnings),
                "info": len(result.info),
                "success_rate": success_rate(
                    result.summary.total_cells,
                    len(result.errors) + len(result.warnings),
                ),
            }
        )
    return pd.DataFrame(records, columns=SUMMARY_COLUMNS)
