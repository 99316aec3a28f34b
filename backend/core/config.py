from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Any

import yaml

CONFIG_DIR = Path(__file__).resolve().parent.parent / "config"

DEFAULT_ORIGINS = ["http://localhost:3000", "http://127.0.0.1:3000"]


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw)
    except ValueError:
        return default


@dataclass(frozen=True, slots=True)
class Settings:
    cors_origins: tuple[str, ...]
    session_ttl_seconds: float
    max_sessions: int
    max_files_per_session: int
    max_upload_bytes: int
    validation_max_workers: int
    validation_stale_seconds: float
    status_poll_limit: int
    status_poll_window_seconds: float
    log_level: str


def load_settings() -> Settings:
    """Read runtime settings from the environment."""

    origins_env = os.getenv("API_CORS_ORIGINS", "")
    origins = [origin.strip() for origin in origins_env.split(",") if origin.strip()]
    if not origins:
        origins = list(DEFAULT_ORIGINS)

    return Settings(
        cors_origins=tuple(origins),
        session_ttl_seconds=_env_float("SESSION_TTL_SECONDS", 2 * 60 * 60),
        max_sessions=_env_int("MAX_SESSIONS", 1000),
        max_files_per_session=_env_int("MAX_FILES_PER_SESSION", 50),
        max_upload_bytes=_env_int("MAX_UPLOAD_BYTES", 10 * 1024 * 1024),
        validation_max_workers=max(1, _env_int("VALIDATION_MAX_WORKERS", min(4, os.cpu_count() or 1))),
        validation_stale_seconds=_env_float("VALIDATION_STALE_SECONDS", 15 * 60),
        status_poll_limit=_env_int("STATUS_POLL_LIMIT", 30),
        status_poll_window_seconds=_env_float("STATUS_POLL_WINDOW_SECONDS", 60),
        log_level=(os.getenv("LOG_LEVEL") or "INFO").upper(),
    )


@lru_cache(maxsize=1)
def load_rules() -> dict[str, Any]:
    """Load keyword tables and thresholds for the classifier and validators."""

    path = CONFIG_DIR / "rules.yaml"
    if not path.exists():
        return {}
    with path.open("r", encoding="utf-8") as fp:
        return yaml.safe_load(fp) or {}
