import io
import sys
import time
import zipfile
from dataclasses import replace
from pathlib import Path

import pytest
from fastapi.testclient import TestClient
from openpyxl import Workbook, load_workbook

sys.path.append(str(Path(__file__).resolve().parents[1]))

from backend.application import get_session_service, reset_session_state
from backend.core.config import load_settings
from backend.infrastructure import reset_classifier
from backend.workers.validation import reset_validation_state

XLSX = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"


@pytest.fixture(autouse=True)
def reset_state():
    reset_session_state()
    reset_validation_state()
    reset_classifier()
    yield
    reset_validation_state()
    reset_session_state()


@pytest.fixture()
def client(monkeypatch):
    monkeypatch.setenv("STATUS_POLL_LIMIT", "1000")
    from backend.app import create_app

    app = create_app()
    with TestClient(app) as test_client:
        yield test_client


def _workbook(title: str, rows: list[list]) -> bytes:
    workbook = Workbook()
    sheet = workbook.active
    sheet.title = title
    for row in rows:
        sheet.append(row)
    buffer = io.BytesIO()
    workbook.save(buffer)
    return buffer.getvalue()


def _upload_records(client: TestClient, session_id: str):
    attendance = _workbook("출결현황", [["날짜", "사유"], ["2025-03-02", "병결"]])
    subject = _workbook("교과학습발달상황", [["과목", "특기사항"], ["과학", "과학 경진대회에서 우수상을 받음."]])
    return client.post(
        f"/api/sessions/{session_id}/files",
        files=[
            ("files", ("출결상황.xlsx", attendance, XLSX)),
            ("files", ("세부능력특기사항.xlsx", subject, XLSX)),
            ("files", ("notes.txt", b"plain text", "text/plain")),
        ],
    )


def _wait_for_terminal(client: TestClient, session_id: str) -> dict:
    for _ in range(200):
        response = client.get(f"/api/sessions/{session_id}/validation-status")
        assert response.status_code == 200
        payload = response.json()
        if payload["status"] in {"completed", "failed"}:
            return payload
        time.sleep(0.05)
    raise AssertionError("validation did not finish")


def test_end_to_end_workflow(client):
    # 1. create session and upload
    session_id = client.post("/api/sessions").json()["session_id"]
    response = _upload_records(client, session_id)
    assert response.status_code == 200
    body = response.json()
    assert [item["file_name"] for item in body["uploaded_files"]] == ["출결상황.xlsx", "세부능력특기사항.xlsx"]
    assert [item["file_name"] for item in body["errors"]] == ["notes.txt"]

    snapshot = client.get(f"/api/sessions/{session_id}").json()
    assert snapshot["session"]["file_count"] == 2
    assert set(snapshot["category_summary"]) == {"attendance", "subject_details"}
    assert snapshot["stats"]["status_distribution"] == {"pending": 2}

    category = client.get(f"/api/sessions/{session_id}/categories/attendance").json()
    assert category["label"] == "출결상황"
    assert [item["file_name"] for item in category["files"]] == ["출결상황.xlsx"]

    # 2. synchronous validation
    response = client.post(f"/api/sessions/{session_id}/validate")
    assert response.status_code == 200
    outcome = response.json()
    assert outcome["success"] is True
    attendance, subject = outcome["results"]
    assert [item["rule"] for item in attendance["info"]] == ["date-format"]
    assert [item["message"].split('"')[1] for item in subject["errors"]] == ["경진대회", "우수상"]
    assert subject["errors"][0]["location"]["cell"] == "B2"

    detail = client.get(f"/api/validations/{subject['id']}").json()
    assert detail["summary"]["error_count"] == 2
    stats = client.get(f"/api/validations/{subject['id']}/stats").json()
    assert stats["by_type"] == {"prohibited_keyword": 2}
    recent = client.get("/api/validations", params={"limit": 5}).json()["items"]
    assert {item["id"] for item in recent} >= {attendance["id"], subject["id"]}

    # 3. background validation with polling
    started = client.post(f"/api/sessions/{session_id}/validate/async")
    assert started.status_code == 200
    final = _wait_for_terminal(client, session_id)
    assert final["status"] == "completed"
    assert final["progress"] == 100
    assert final["completed_files"] == 2
    assert final["summary"]["total_errors"] == 2
    latest_ids = [item["id"] for item in final["results"]]
    assert not set(latest_ids) & {attendance["id"], subject["id"]}
    assert client.get(f"/api/sessions/{session_id}/validation-status").json() == final

    # 4. downloads
    response = client.get(f"/api/reports/{latest_ids[1]}/download", params={"format": "excel"})
    assert response.status_code == 200
    assert "filename*=UTF-8''" in response.headers["content-disposition"]
    workbook = load_workbook(io.BytesIO(response.content))
    assert workbook.sheetnames == ["Summary", "Errors", "Warnings", "Info"]

    response = client.post("/api/reports/batch", json={"result_ids": latest_ids, "format": "zip"})
    assert response.status_code == 200
    with zipfile.ZipFile(io.BytesIO(response.content)) as archive:
        assert len(archive.namelist()) == 2

    response = client.post(
        "/api/reports/batch",
        json={"result_ids": latest_ids, "format": "csv", "merge_results": True},
    )
    assert response.status_code == 200
    assert response.content.startswith(b"\xef\xbb\xbf")

    # 5. session summary
    summary = client.get(f"/api/reports/sessions/{session_id}/summary").json()
    assert summary["stats"]["total_files"] == 2
    assert summary["stats"]["total_errors"] == 2
    assert {item["category"] for item in summary["categories"]} == {"attendance", "subject_details"}
    assert 0 <= summary["overall_success_rate"] <= 100

    # 6. manual override and cleanup
    file_id = body["uploaded_files"][0]["id"]
    response = client.put(f"/api/sessions/{session_id}/files/{file_id}/category", json={"category": "awards"})
    assert response.json()["file"]["confidence"] == 1.0
    assert client.delete(f"/api/sessions/{session_id}").json() == {"session_id": session_id, "deleted": True}
    assert client.get(f"/api/sessions/{session_id}").status_code == 404
    assert client.get(f"/api/validations/{latest_ids[0]}").status_code == 404


def test_error_responses(client):
    assert client.get("/api/sessions/missing").status_code == 404
    assert client.get("/api/sessions/missing/validation-status").status_code == 404
    assert client.get("/api/validations/val_missing").status_code == 404
    assert client.delete("/api/validations/val_missing").status_code == 404

    response = client.post("/api/reports/batch", json={"result_ids": ["val_missing"], "format": "csv"})
    assert response.status_code == 404
    assert "val_missing" in response.json()["detail"]
    assert client.post("/api/reports/batch", json={"result_ids": []}).status_code == 400
    assert client.get("/api/reports/val_missing/download", params={"format": "pdf"}).status_code == 400

    session_id = client.post("/api/sessions").json()["session_id"]
    response = client.post(
        f"/api/sessions/{session_id}/files",
        files=[("files", ("notes.txt", b"plain text", "text/plain"))],
    )
    assert response.status_code == 400
    assert response.json()["detail"]["errors"][0]["file_name"] == "notes.txt"

    outcome = client.post(f"/api/sessions/{session_id}/validate").json()
    assert outcome["success"] is False
    assert outcome["results"] == []


def test_upload_past_file_limit_keeps_earlier_files(client, monkeypatch):
    service = get_session_service()
    monkeypatch.setattr(service, "_settings", replace(load_settings(), max_files_per_session=1))
    session_id = client.post("/api/sessions").json()["session_id"]
    sheet = _workbook("Sheet1", [["내용"]])

    response = client.post(
        f"/api/sessions/{session_id}/files",
        files=[
            ("files", ("a.xlsx", sheet, XLSX)),
            ("files", ("b.xlsx", sheet, XLSX)),
        ],
    )

    assert response.status_code == 200
    body = response.json()
    assert [item["file_name"] for item in body["uploaded_files"]] == ["a.xlsx"]
    assert [item["file_name"] for item in body["errors"]] == ["b.xlsx"]
    assert "1 files" in body["errors"][0]["error"]
    assert client.get(f"/api/sessions/{session_id}").json()["session"]["file_count"] == 1


def test_report_preview_and_system_stats(client):
    session_id = client.post("/api/sessions").json()["session_id"]
    _upload_records(client, session_id)
    outcome = client.post(f"/api/sessions/{session_id}/validate").json()
    attendance, subject = outcome["results"]

    preview = client.get(f"/api/reports/{subject['id']}/summary").json()
    assert preview["file_name"] == "세부능력특기사항.xlsx"
    assert preview["status"] == "completed"
    assert len(preview["sample_findings"]["errors"]) == 2
    assert preview["sample_findings"]["info"] == []
    assert "excel" in preview["available_formats"]

    by_type = client.get(f"/api/reports/{subject['id']}/errors/prohibited_keyword").json()
    assert by_type["count"] == 2
    assert [item["location"]["cell"] for item in by_type["findings"]] == ["B2", "B2"]
    assert client.get(f"/api/reports/{attendance['id']}/errors/prohibited_keyword").json()["count"] == 0
    assert client.get("/api/reports/val_missing/summary").status_code == 404
    assert client.get("/api/reports/val_missing/errors/spacing").status_code == 404

    stats = client.get("/api/sessions/system/stats").json()
    assert stats["total_sessions"] == 1
    assert stats["active_sessions"] == 1
    assert stats["total_files"] == 2
    assert stats["average_files_per_session"] == 2.0
    assert stats["popular_categories"] == {"attendance": 1, "subject_details": 1}
    assert stats["processing_time"]["samples"] == 2
