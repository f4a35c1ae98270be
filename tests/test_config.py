# tests/test_config.py

from __future__ import annotations

import os
from pathlib import Path

import pytest

from askloop.config import Settings


@pytest.fixture()
def clean_env(monkeypatch: pytest.MonkeyPatch) -> pytest.MonkeyPatch:
    for key in list(os.environ):
        if key.startswith("ASKLOOP_") or key in ("BOT_OWNER_ID", "XAI_API_TOKEN"):
            monkeypatch.delenv(key, raising=False)
    return monkeypatch


def test_defaults(clean_env) -> None:
    s = Settings.from_env()
    assert s.owner_id == ""
    assert s.console_user_id == "console"
    assert s.xai_base_url == "https://api.x.ai/v1"
    assert s.max_consecutive_failures == 5
    assert s.tasks_db_path == Path(".local/askloop/tasks.sqlite3")
    assert s.matrix_enabled is False


def test_legacy_names_and_clamping(clean_env) -> None:
    clean_env.setenv("BOT_OWNER_ID", "12345")
    clean_env.setenv("XAI_API_TOKEN", "secret")
    clean_env.setenv("ASKLOOP_WORKER_POOL_SIZE", "0")
    clean_env.setenv("ASKLOOP_MAX_RETRY_ATTEMPTS", "not-a-number")
    clean_env.setenv("ASKLOOP_MATRIX_ROOMS", "!a:x, !b:x")

    s = Settings.from_env()

    assert s.owner_id == "12345"
    assert s.console_user_id == "12345"
    assert s.xai_api_key == "secret"
    assert s.worker_pool_size == 1
    assert s.max_retry_attempts == 3
    assert s.matrix_rooms == ["!a:x", "!b:x"]


def test_prefixed_names_win(clean_env) -> None:
    clean_env.setenv("BOT_OWNER_ID", "legacy")
    clean_env.setenv("ASKLOOP_OWNER_ID", "@me:example.org")
    clean_env.setenv("ASKLOOP_DATA_DIR", "/tmp/askloop-data")

    s = Settings.from_env()

    assert s.owner_id == "@me:example.org"
    assert s.stats_db_path == Path("/tmp/askloop-data/stats.sqlite3")
