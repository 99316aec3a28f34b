"""Download artifacts for validation results.

``merge_results`` concatenates every selected result into one artifact whose
rows carry the source file name.  ``zip`` always holds one workbook per
result, and several ids without merging also come back as an archive of
per-file artifacts in the requested format.
"""
from __future__ import annotations

import io
import logging
import re
import zipfile
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import PurePath
from typing import Callable, Iterable, Sequence

from backend.core.errors import ExportFailure, NotFoundError
from backend.core.schema import ExportFormat, ValidationResult

from .findings_csv import export_findings_csv
from .findings_excel import export_findings_excel
from .findings_json import export_findings_json

logger = logging.getLogger(__name__)

EXTENSIONS = {"excel": "xlsx", "csv": "csv", "json": "json", "zip": "zip"}
MEDIA_TYPES = {
    "excel": "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
    "csv": "text/csv; charset=utf-8",
    "json": "application/json",
    "zip": "application/zip",
}


@dataclass(frozen=True)
class ReportArtifact:
    filename: str
    media_type: str
    content: bytes


def safe_name(file_name: str) -> str:
    stem = PurePath(file_name).stem or "report"
    return re.sub(r"[^\w\-]+", "_", stem).strip("_") or "report"


def _timestamp() -> str:
    return datetime.now(timezone.utc).strftime("%Y%m%d_%H%M%S")


def _render(results: Sequence[ValidationResult], fmt: ExportFormat, *, merged: bool) -> bytes:
    if fmt == "excel":
        return export_findings_excel(results, merged=merged)
    if fmt == "csv":
        return export_findings_csv(results, merged=merged)
    if fmt == "json":
        return export_findings_json(results, merged=merged)
    raise ValueError(f"unsupported report format: {fmt}")


def render_single(result: ValidationResult, fmt: ExportFormat) -> ReportArtifact:
    if fmt == "zip":
        return render_archive([result], "excel")
    return ReportArtifact(
        filename=f"{safe_name(result.file_name)}_report.{EXTENSIONS[fmt]}",
        media_type=MEDIA_TYPES[fmt],
        content=_render([result], fmt, merged=False),
    )


def render_merged(results: Sequence[ValidationResult], fmt: ExportFormat) -> ReportArtifact:
    return ReportArtifact(
        filename=f"batch_report_{_timestamp()}.{EXTENSIONS[fmt]}",
        media_type=MEDIA_TYPES[fmt],
        content=_render(results, fmt, merged=True),
    )


def render_archive(results: Sequence[ValidationResult], fmt: ExportFormat = "excel") -> ReportArtifact:
    """One entry per result, numbered so duplicate file names stay distinct."""

    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w", compression=zipfile.ZIP_DEFLATED) as archive:
        for number, result in enumerate(results, start=1):
            entry = f"{number}_{safe_name(result.file_name)}_report.{EXTENSIONS[fmt]}"
            archive.writestr(entry, _render([result], fmt, merged=False))
    return ReportArtifact(
        filename=f"validation_reports_{_timestamp()}.zip",
        media_type=MEDIA_TYPES["zip"],
        content=buffer.getvalue(),
    )


def resolve_results(
    result_ids: Iterable[str],
    fetch: Callable[[str], ValidationResult],
) -> list[ValidationResult]:
    """Look up every id; any unknown id fails the whole request."""

    found: list[ValidationResult] = []
    missing: list[str] = []
    for result_id in result_ids:
        try:
            found.append(fetch(result_id))
        except NotFoundError:
            missing.append(result_id)
    if missing:
        raise ExportFailure(f"unknown validation result ids: {', '.join(missing)}")
    return found


def export_report(
    result_ids: Sequence[str],
    fmt: ExportFormat,
    merge_results: bool,
    fetch: Callable[[str], ValidationResult],
) -> ReportArtifact:
    if not result_ids:
        raise ValueError("at least one result id is required")
    if fmt not in EXTENSIONS:
        raise ValueError(f"unsupported report format: {fmt}")

    results = resolve_results(result_ids, fetch)
    if fmt == "zip":
        artifact = render_archive(results, "excel")
    elif merge_results:
        artifact = render_merged(results, fmt)
    elif len(results) == 1:
        artifact = render_single(results[0], fmt)
    else:
        artifact = render_archive(results, fmt)

    logger.info(
        "Exported %d results as %s (%s, %d bytes)",
        len(results),
        artifact.filename,
        fmt,
        len(artifact.content),
    )
    return artifact
