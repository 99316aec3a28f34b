"""HTTP client that waits for an asynchronous session validation to finish."""
from __future__ import annotations

import logging
import time
from typing import Callable

import httpx

from backend.core.errors import PollingTimeout, RateLimitedError
from backend.core.schema import SessionValidationStatus

logger = logging.getLogger(__name__)

DEFAULT_INTERVAL_SECONDS = 5.0
DEFAULT_MAX_ATTEMPTS = 180
BASE_BACKOFF_SECONDS = 5.0
MAX_CONSECUTIVE_RATE_LIMITS = 3


class SessionValidationPoller:
    """Poll ``/api/sessions/{id}/validation-status`` until a terminal state.

    Rate-limited responses back off 5 s, 10 s, ... and the poller gives up
    on the third consecutive 429.  Running out of attempts raises
    :class:`PollingTimeout`; the server may still finish the run later.
    """

    def __init__(
        self,
        base_url: str,
        *,
        interval: float = DEFAULT_INTERVAL_SECONDS,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        timeout: float = 30.0,
        http_client: httpx.Client | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self._base_url = base_url.rstrip("/")
        self._interval = interval
        self._max_attempts = max_attempts
        self._client = http_client or httpx.Client(timeout=timeout)
        self._owns_client = http_client is None
        self._sleep = sleep

    # ------------------------------------------------------------------
    # helpers
    # ------------------------------------------------------------------
    def _status_url(self, session_id: str) -> str:
        return f"{self._base_url}/api/sessions/{session_id}/validation-status"

    @staticmethod
    def _retry_after(response: httpx.Response) -> float:
        try:
            return float(response.headers.get("Retry-After", BASE_BACKOFF_SECONDS))
        except ValueError:
            return BASE_BACKOFF_SECONDS

    def fetch_status(self, session_id: str) -> SessionValidationStatus:
        response = self._client.get(self._status_url(session_id))
        if response.status_code == 429:
            raise RateLimitedError("validation status rate limited", retry_after=self._retry_after(response))
        response.raise_for_status()
        return SessionValidationStatus.model_validate(response.json())

    def wait_for_completion(
        self,
        session_id: str,
        on_update: Callable[[SessionValidationStatus], None] | None = None,
    ) -> SessionValidationStatus:
        consecutive_limited = 0
        for attempt in range(1, self._max_attempts + 1):
            try:
                status = self.fetch_status(session_id)
            except RateLimitedError as exc:
                consecutive_limited += 1
                if consecutive_limited >= MAX_CONSECUTIVE_RATE_LIMITS:
                    logger.warning("Giving up on session %s after %d rate-limited polls", session_id, consecutive_limited)
                    raise
                delay = max(BASE_BACKOFF_SECONDS * 2 ** (consecutive_limited - 1), exc.retry_after)
                logger.info("Status poll for %s rate limited, retrying in %.0fs", session_id, delay)
                self._sleep(delay)
                continue

            consecutive_limited = 0
            if on_update is not None:
                on_update(status)
            if status.status.is_terminal:
                return status
            if attempt < self._max_attempts:
                self._sleep(self._interval)

        raise PollingTimeout(
            f"session {session_id} did not finish within {self._max_attempts} status polls"
        )

    def close(self) -> None:
        if self._owns_client:
            self._client.close()

    def __enter__(self) -> "SessionValidationPoller":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()
