from __future__ import annotations

from fastapi import APIRouter, Query

from backend.workers.validation import get_validation_orchestrator

router = APIRouter(tags=["validation"])


@router.post("/sessions/{session_id}/validate")
async def validate_session(session_id: str) -> dict:
    """Validate every file of the session and return once all files finish."""
    outcome = await get_validation_orchestrator().validate_session(session_id)
    return {
        "success": outcome["success"],
        "results": [result.model_dump(mode="json") for result in outcome["results"]],
        "error": outcome["error"],
    }


@router.post("/sessions/{session_id}/validate/async")
async def start_session_validation(session_id: str) -> dict:
    status = await get_validation_orchestrator().start_session_validation(session_id)
    return status.model_dump(mode="json")


@router.get("/sessions/{session_id}/validation-status")
async def get_session_validation_status(session_id: str) -> dict:
    status = get_validation_orchestrator().get_session_validation_status(session_id)
    return status.model_dump(mode="json")


@router.get("/validations")
async def list_recent_validations(limit: int = Query(default=10, ge=1, le=100)) -> dict:
    results = get_validation_orchestrator().list_recent_results(limit)
    return {"items": [result.model_dump(mode="json") for result in results]}


@router.get("/validations/{validation_id}")
async def get_validation(validation_id: str) -> dict:
    return get_validation_orchestrator().get_result(validation_id).model_dump(mode="json")


@router.get("/validations/{validation_id}/stats")
async def get_validation_stats(validation_id: str) -> dict:
    return get_validation_orchestrator().result_stats(validation_id)


@router.delete("/validations/{validation_id}")
async def cancel_validation(validation_id: str) -> dict:
    cancelled = get_validation_orchestrator().cancel_validation(validation_id)
    return {"validation_id": validation_id, "cancelled": cancelled}
