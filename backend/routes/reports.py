from __future__ import annotations

from typing import get_args
from urllib.parse import quote

from fastapi import APIRouter, HTTPException, Query
from fastapi.responses import Response

from backend.application import get_session_service
from backend.core.aggregation import aggregate, category_stats, overall_success_rate
from backend.core.errors import NotFoundError
from backend.core.schema import ExportFormat
from backend.exporters.report import ReportArtifact, export_report
from backend.workers.validation import get_validation_orchestrator

router = APIRouter(prefix="/reports", tags=["reports"])

FORMATS = set(get_args(ExportFormat))


def _download(artifact: ReportArtifact) -> Response:
    disposition = f"attachment; filename*=UTF-8''{quote(artifact.filename)}"
    return Response(
        content=artifact.content,
        media_type=artifact.media_type,
        headers={"Content-Disposition": disposition},
    )


@router.get("/{validation_id}/download")
async def download_report(validation_id: str, format: str = Query(default="excel")) -> Response:
    if format not in FORMATS:
        raise HTTPException(status_code=400, detail=f"format must be one of {sorted(FORMATS)}")
    service = get_session_service()
    artifact = export_report([validation_id], format, False, service.get_result)  # type: ignore[arg-type]
    return _download(artifact)


@router.post("/batch")
async def download_batch_report(payload: dict) -> Response:
    result_ids = payload.get("result_ids")
    if not isinstance(result_ids, list) or not result_ids:
        raise HTTPException(status_code=400, detail="result_ids must be a non-empty list")
    fmt = str(payload.get("format") or "excel")
    if fmt not in FORMATS:
        raise HTTPException(status_code=400, detail=f"format must be one of {sorted(FORMATS)}")
    merge_results = bool(payload.get("merge_results", False))
    service = get_session_service()
    artifact = export_report([str(item) for item in result_ids], fmt, merge_results, service.get_result)  # type: ignore[arg-type]
    return _download(artifact)


@router.get("/sessions/{session_id}/summary")
async def get_session_summary(session_id: str) -> dict:
    """Batch and per-category statistics over the latest result of each file."""
    service = get_session_service()
    files = list(service.get_session(session_id).files.values())
    results = []
    for record in files:
        if not record.validation_id:
            continue
        try:
            results.append(service.get_result(record.validation_id))
        except NotFoundError:
            continue
    stats = category_stats(results, files)
    return {
        "session_id": session_id,
        "stats": aggregate(results).model_dump(),
        "categories": [item.model_dump() for item in stats],
        "overall_success_rate": overall_success_rate(stats),
    }


@router.get("/{validation_id}/summary")
async def get_report_preview(validation_id: str) -> dict:
    return get_validation_orchestrator().result_preview(validation_id)


@router.get("/{validation_id}/errors/{finding_type}")
async def get_findings_by_type(validation_id: str, finding_type: str) -> dict:
    return get_validation_orchestrator().findings_by_type(validation_id, finding_type)
