from __future__ import annotations

import asyncio
from pathlib import Path

from fastapi import APIRouter, File, HTTPException, UploadFile

from backend.application import get_session_service
from backend.core.config import load_settings
from backend.core.errors import NotFoundError, RecordCheckError
from backend.extractors.detect import category_labels
from backend.extractors.workbook import SUPPORTED_SUFFIXES, UnsupportedDocument

router = APIRouter(prefix="/sessions", tags=["sessions"])


@router.post("")
async def create_session() -> dict:
    service = get_session_service()
    return {"session_id": service.create_session()}


@router.post("/{session_id}/files")
async def upload_files(session_id: str, files: list[UploadFile] = File(...)) -> dict:
    """Upload one or more workbooks; each is parsed and classified on arrival."""
    if not files:
        raise HTTPException(status_code=400, detail="At least one file must be provided")

    service = get_session_service()
    service.get_session(session_id)
    max_bytes = load_settings().max_upload_bytes
    uploaded: list[dict] = []
    errors: list[dict[str, str]] = []

    for upload in files:
        try:
            if not upload.filename:
                raise HTTPException(status_code=400, detail="Uploaded file must have a filename")
            safe_name = Path(upload.filename).name
            if Path(safe_name).suffix.lower() not in SUPPORTED_SUFFIXES:
                errors.append({"file_name": safe_name, "error": "unsupported file type"})
                continue
            content = await upload.read()
            if len(content) > max_bytes:
                errors.append({"file_name": safe_name, "error": f"file exceeds {max_bytes} bytes"})
                continue
            try:
                record = await asyncio.to_thread(service.add_file, session_id, safe_name, content)
            except NotFoundError:
                raise
            except (UnsupportedDocument, RecordCheckError) as exc:
                errors.append({"file_name": safe_name, "error": str(exc)})
                continue
            uploaded.append(record.to_payload())
        finally:
            await upload.close()

    if not uploaded:
        raise HTTPException(status_code=400, detail={"message": "No files could be added", "errors": errors})

    response: dict = {"session_id": session_id, "uploaded_files": uploaded}
    if errors:
        response["errors"] = errors
    return response


@router.get("/system/stats")
async def get_system_stats() -> dict:
    return get_session_service().system_stats()


@router.get("/{session_id}")
async def get_session(session_id: str) -> dict:
    return get_session_service().snapshot(session_id)


@router.get("/{session_id}/categories/{category}")
async def get_category_files(session_id: str, category: str) -> dict:
    service = get_session_service()
    files = service.files_by_category(session_id, category)
    summary = service.category_summary(session_id).get(category)
    return {
        "category": category,
        "label": category_labels().get(category, category),
        "files": [record.to_payload() for record in files],
        "summary": summary.model_dump(mode="json") if summary else None,
    }


@router.put("/{session_id}/files/{file_id}/category")
async def update_file_category(session_id: str, file_id: str, payload: dict) -> dict:
    category = str(payload.get("category") or "").strip()
    if not category:
        raise HTTPException(status_code=400, detail="category is required")
    record = get_session_service().update_file_category(session_id, file_id, category)
    return {"file": record.to_payload()}


@router.delete("/{session_id}/files/{file_id}")
async def remove_file(session_id: str, file_id: str) -> dict:
    removed = get_session_service().remove_file(session_id, file_id)
    return {"file_id": file_id, "removed": removed}


@router.delete("/{session_id}/files")
async def clear_files(session_id: str) -> dict:
    removed = get_session_service().clear_files(session_id)
    return {"session_id": session_id, "removed": removed}


@router.delete("/{session_id}")
async def delete_session(session_id: str) -> dict:
    get_session_service().delete_session(session_id)
    return {"session_id": session_id, "deleted": True}
