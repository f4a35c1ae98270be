# src/askloop/config.py

"""Centralized settings loaded from environment variables (+ optional .env).

Design goals:
- One Settings object for the whole app.
- No secrets required at import time.
- Every tunable of the scheduler / retry policy is sourced from the environment.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

ENV_PREFIX = "ASKLOOP"


def _k(suffix: str) -> str:
    """Build env var name with the project prefix."""
    return f"{ENV_PREFIX}_{suffix}"


def _env(name: str, default: str = "") -> str:
    v = os.getenv(name)
    return default if v is None else v


def _first_env(*names: str, default: str | None = None) -> str | None:
    for n in names:
        v = os.getenv(n)
        if v is not None and v.strip() != "":
            return v
    return default


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "y", "on"}


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


def _env_list(name: str, default: list[str]) -> list[str]:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return list(default)
    return [p.strip() for p in raw.replace(",", " ").split() if p.strip()]


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

    # ---- Identity ----
    owner_id: str
    console_user_id: str

    # ---- Connector flags ----
    console_enabled: bool
    matrix_enabled: bool

    # ---- Answer service (x.ai, OpenAI-compatible) ----
    xai_api_key: str | None
    xai_base_url: str
    xai_model: str
    answer_temperature: float
    answer_timeout_seconds: float

    # ---- Scheduler / retry ----
    scheduler_tick_seconds: float
    worker_pool_size: int
    max_retry_attempts: int
    retry_backoff_base_seconds: float
    retry_backoff_cap_seconds: float
    max_consecutive_failures: int
    initial_run_on_create: bool

    # ---- Matrix ----
    matrix_homeserver: str
    matrix_user_id: str
    matrix_password: str
    matrix_rooms: list[str]

    # ---- Local data paths (ignored by git) ----
    data_dir: Path
    matrix_store_path: Path
    tasks_db_path: Path
    stats_db_path: Path

    @staticmethod
    def from_env() -> "Settings":
        app_name = _env(_k("APP_NAME"), "askloop")
        log_level = _env(_k("LOG_LEVEL"), "INFO")

        owner_id = (_first_env(_k("OWNER_ID"), "BOT_OWNER_ID", default="") or "").strip()
        console_user_id = _env(_k("CONSOLE_USER_ID"), owner_id or "console").strip() or "console"

        console_enabled = _env_bool(_k("CONSOLE_ENABLED"), True)
        matrix_enabled = _env_bool(_k("MATRIX_ENABLED"), False)

        xai_api_key = _first_env(_k("XAI_API_KEY"), "XAI_API_TOKEN", default=None)
        xai_base_url = _env(_k("XAI_BASE_URL"), "https://api.x.ai/v1")
        xai_model = _env(_k("XAI_MODEL"), "grok-beta")
        answer_temperature = _env_float(_k("ANSWER_TEMPERATURE"), 0.0)
        answer_timeout_seconds = _env_float(_k("ANSWER_TIMEOUT_SECONDS"), 60.0)

        scheduler_tick_seconds = _env_float(_k("SCHEDULER_TICK_SECONDS"), 60.0)
        worker_pool_size = _env_int(_k("WORKER_POOL_SIZE"), 4)
        max_retry_attempts = _env_int(_k("MAX_RETRY_ATTEMPTS"), 3)
        retry_backoff_base_seconds = _env_float(_k("RETRY_BACKOFF_BASE_SECONDS"), 2.0)
        retry_backoff_cap_seconds = _env_float(_k("RETRY_BACKOFF_CAP_SECONDS"), 30.0)
        max_consecutive_failures = _env_int(_k("MAX_CONSECUTIVE_FAILURES"), 5)
        initial_run_on_create = _env_bool(_k("INITIAL_RUN_ON_CREATE"), True)

        matrix_homeserver = (_env(_k("MATRIX_HOMESERVER"), "") or "").strip()
        matrix_user_id = (_env(_k("MATRIX_USER_ID"), "") or "").strip()
        matrix_password = (_env(_k("MATRIX_PASSWORD"), "") or "").strip()
        matrix_rooms = _env_list(_k("MATRIX_ROOMS"), [])

        data_dir = _env_path(_k("DATA_DIR"), Path(".local/askloop"))
        matrix_store_path = _env_path(_k("MATRIX_STORE_PATH"), data_dir / "matrix_store")
        tasks_db_path = _env_path(_k("TASKS_DB_PATH"), data_dir / "tasks.sqlite3")
        stats_db_path = _env_path(_k("STATS_DB_PATH"), data_dir / "stats.sqlite3")

        return Settings(
            app_name=app_name,
            log_level=log_level,
            owner_id=owner_id,
            console_user_id=console_user_id,
            console_enabled=console_enabled,
            matrix_enabled=matrix_enabled,
            xai_api_key=xai_api_key,
            xai_base_url=xai_base_url,
            xai_model=xai_model,
            answer_temperature=answer_temperature,
            answer_timeout_seconds=max(1.0, answer_timeout_seconds),
            scheduler_tick_seconds=max(1.0, scheduler_tick_seconds),
            worker_pool_size=max(1, worker_pool_size),
            max_retry_attempts=max(1, max_retry_attempts),
            retry_backoff_base_seconds=max(0.0, retry_backoff_base_seconds),
            retry_backoff_cap_seconds=max(0.0, retry_backoff_cap_seconds),
            max_consecutive_failures=max(0, max_consecutive_failures),
            initial_run_on_create=initial_run_on_create,
            matrix_homeserver=matrix_homeserver,
            matrix_user_id=matrix_user_id,
            matrix_password=matrix_password,
            matrix_rooms=matrix_rooms,
            data_dir=data_dir,
            matrix_store_path=matrix_store_path,
            tasks_db_path=tasks_db_path,
            stats_db_path=stats_db_path,
        )


_SETTINGS: Settings | None = None


def get_settings() -> Settings:
    """Load settings once (reads .env on first call)."""
    global _SETTINGS
    if _SETTINGS is None:
        load_dotenv(override=False)
        _SETTINGS = Settings.from_env()
    return _SETTINGS
