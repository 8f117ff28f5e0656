# src/taskgenie/config.py

"""Centralized settings loaded from environment variables (+ optional .env).

Design goals:
- One Settings object for the whole app, built once at startup and injected.
- No secrets required at import time.
- The remote/local persistence choice (cloud_enabled) is derived here once and
  never re-read from the environment elsewhere.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path

ENV_PREFIX = "TASKGENIE"


def _k(suffix: str) -> str:
    """Build env var name with the project prefix."""
    return f"{ENV_PREFIX}_{suffix}"


def _load_dotenv_file() -> None:
    from dotenv import load_dotenv

    load_dotenv(override=False)


def _env(name: str, default: str = "") -> str:
    v = os.getenv(name)
    return default if v is None else v


def _first_env(*names: str, default: str | None = None) -> str | None:
    for n in names:
        v = os.getenv(n)
        if v is not None and v.strip() != "":
            return v
    return default


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def _env_path(name: str, default: Path) -> Path:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    return Path(raw).expanduser()


@dataclass(frozen=True, slots=True)
class Settings:
    # ---- App / logging ----
    app_name: str
    log_level: str

    # ---- Local data paths (ignored by git) ----
    data_dir: Path
    local_db_path: Path

    # ---- Remote store (Supabase-compatible) ----
    supabase_url: str
    supabase_anon_key: str
    remote_table: str
    remote_timeout_seconds: float

    # ---- AI enhancement (OpenAI-compatible endpoint) ----
    ai_api_key: str | None
    ai_base_url: str
    ai_model: str
    ai_timeout_seconds: float
    ai_max_attempts: int
    ai_backoff_seconds: float

    @property
    def cloud_enabled(self) -> bool:
        return bool(self.supabase_url.strip() and self.supabase_anon_key.strip())

    @property
    def ai_enabled(self) -> bool:
        return bool(self.ai_api_key and self.ai_api_key.strip())

    @staticmethod
    def from_env(*, use_dotenv: bool = True) -> Settings:
        if use_dotenv:
            _load_dotenv_file()

        app_name = _env(_k("APP_NAME"), "taskgenie")
        log_level = _env(_k("LOG_LEVEL"), "INFO")

        data_dir = _env_path(_k("DATA_DIR"), Path(".local/taskgenie"))
        local_db_path = _env_path(_k("LOCAL_DB_PATH"), data_dir / "local_store.sqlite3")

        supabase_url = (_first_env(_k("SUPABASE_URL"), "SUPABASE_URL", default="") or "").strip()
        supabase_anon_key = (
            _first_env(_k("SUPABASE_ANON_KEY"), "SUPABASE_ANON_KEY", default="") or ""
        ).strip()
        remote_table = _env(_k("REMOTE_TABLE"), "tasks").strip() or "tasks"
        remote_timeout_seconds = _env_float(_k("REMOTE_TIMEOUT_SECONDS"), 10.0)

        ai_api_key = _first_env(_k("AI_API_KEY"), "API_KEY", default=None)
        ai_base_url = _env(
            _k("AI_BASE_URL"), "https://generativelanguage.googleapis.com/v1beta/openai/"
        )
        ai_model = _env(_k("AI_MODEL"), "gemini-2.5-flash")
        ai_timeout_seconds = _env_float(_k("AI_TIMEOUT_SECONDS"), 30.0)
        ai_max_attempts = max(1, _env_int(_k("AI_MAX_ATTEMPTS"), 3))
        ai_backoff_seconds = max(0.0, _env_float(_k("AI_BACKOFF_SECONDS"), 1.0))

        return Settings(
            app_name=app_name,
            log_level=log_level,
            data_dir=data_dir,
            local_db_path=local_db_path,
            supabase_url=supabase_url,
            supabase_anon_key=supabase_anon_key,
            remote_table=remote_table,
            remote_timeout_seconds=remote_timeout_seconds,
            ai_api_key=ai_api_key,
            ai_base_url=ai_base_url,
            ai_model=ai_model,
            ai_timeout_seconds=ai_timeout_seconds,
            ai_max_attempts=ai_max_attempts,
            ai_backoff_seconds=ai_backoff_seconds,
        )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings.from_env()
