from __future__ import annotations

import sys
from pathlib import Path

import httpx
import pytest

sys.path.append(str(Path(__file__).resolve().parents[1]))

from backend.core.errors import PollingTimeout, RateLimitedError
from backend.core.schema import ProcessingStatus
from backend.infrastructure import SessionValidationPoller


def _status(state: str, progress: int = 0) -> dict:
    return {
        "session_id": "sess-1",
        "status": state,
        "progress": progress,
        "completed_files": 1 if state == "completed" else 0,
        "total_files": 1,
        "started_at": "2025-03-02T09:00:00+00:00",
        "updated_at": "2025-03-02T09:00:05+00:00",
    }


def _poller(responses: list[httpx.Response], sleeps: list[float], **kwargs) -> tuple[SessionValidationPoller, list[str]]:
    seen: list[str] = []
    queue = list(responses)

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(str(request.url))
        return queue.pop(0)

    client = httpx.Client(transport=httpx.MockTransport(handler))
    poller = SessionValidationPoller("http://testserver/", http_client=client, sleep=sleeps.append, **kwargs)
    return poller, seen


def test_polls_until_terminal_state():
    sleeps: list[float] = []
    updates: list[int] = []
    poller, seen = _poller(
        [
            httpx.Response(200, json=_status("pending")),
            httpx.Response(200, json=_status("processing", 50)),
            httpx.Response(200, json=_status("completed", 100)),
        ],
        sleeps,
        interval=2,
    )

    status = poller.wait_for_completion("sess-1", on_update=lambda item: updates.append(item.progress))

    assert status.status == ProcessingStatus.COMPLETED
    assert updates == [0, 50, 100]
    assert sleeps == [2, 2]
    assert seen[0] == "http://testserver/api/sessions/sess-1/validation-status"


def test_rate_limited_polls_back_off_then_recover():
    sleeps: list[float] = []
    poller, _ = _poller(
        [
            httpx.Response(429, headers={"Retry-After": "1"}),
            httpx.Response(429, headers={"Retry-After": "30"}),
            httpx.Response(200, json=_status("failed")),
        ],
        sleeps,
    )

    status = poller.wait_for_completion("sess-1")

    assert status.status == ProcessingStatus.FAILED
    assert sleeps == [5, 30]


def test_third_consecutive_rate_limit_gives_up():
    sleeps: list[float] = []
    poller, seen = _poller([httpx.Response(429) for _ in range(3)], sleeps)

    with pytest.raises(RateLimitedError):
        poller.wait_for_completion("sess-1")

    assert len(seen) == 3
    assert sleeps == [5, 10]


def test_attempts_run_out_with_timeout():
    sleeps: list[float] = []
    poller, seen = _poller([httpx.Response(200, json=_status("processing")) for _ in range(3)], sleeps, interval=1, max_attempts=3)

    with pytest.raises(PollingTimeout):
        poller.wait_for_completion("sess-1")

    assert len(seen) == 3
    assert sleeps == [1, 1]


def test_server_errors_propagate():
    poller, _ = _poller([httpx.Response(404, json={"detail": "session sess-1 not found"})], [])

    with pytest.raises(httpx.HTTPStatusError):
        poller.fetch_status("sess-1")
