# tests/conftest.py

from __future__ import annotations

from pathlib import Path
from types import SimpleNamespace

import pytest

from askloop.core.state import AppState
from askloop.stats.aggregator import StatsAggregator
from askloop.stats.stats_store import StatsStore
from askloop.tasks.retry import RetryPolicy
from askloop.tasks.task_store import TaskStore
from askloop.tasks.worker import ExecutionWorker

from .fakes import FakeAnswerService, FakeMessenger, no_sleep


@pytest.fixture()
def settings(tmp_path: Path) -> SimpleNamespace:
    """
    Minimal settings object compatible with AppState and core modules.

    We intentionally use a SimpleNamespace rather than importing real config,
    to keep unit tests isolated and deterministic.
    """
    return SimpleNamespace(
        app_name="askloop-test",
        owner_id="owner",
        console_user_id="owner",
        tasks_db_path=tmp_path / "tasks.sqlite3",
        stats_db_path=tmp_path / "stats.sqlite3",
        scheduler_tick_seconds=0.01,
        worker_pool_size=4,
        max_retry_attempts=3,
        retry_backoff_base_seconds=0.0,
        retry_backoff_cap_seconds=0.0,
        answer_timeout_seconds=5.0,
        max_consecutive_failures=3,
        initial_run_on_create=False,
    )


@pytest.fixture()
def task_store(settings: SimpleNamespace) -> TaskStore:
    return TaskStore(settings.tasks_db_path, max_consecutive_failures=settings.max_consecutive_failures)


@pytest.fixture()
def stats_store(settings: SimpleNamespace) -> StatsStore:
    return StatsStore(settings.stats_db_path)


@pytest.fixture()
def answers() -> FakeAnswerService:
    return FakeAnswerService(default="42")


@pytest.fixture()
def messenger() -> FakeMessenger:
    return FakeMessenger()


@pytest.fixture()
def worker(answers, task_store, stats_store, messenger) -> ExecutionWorker:
    return ExecutionWorker(
        answers,
        task_store,
        stats_store,
        messenger,
        policy=RetryPolicy(max_attempts=3, base_delay=0.0, max_delay=0.0),
        call_timeout=5.0,
        sleep=no_sleep,
    )


@pytest.fixture()
def state(settings, answers, messenger, task_store, stats_store, worker) -> AppState:
    """
    AppState wired with deterministic fakes.

    NOTE: We keep real SQLite stores here (TaskStore/StatsStore) because
    their correctness is part of what we want to test.
    """
    return AppState(
        settings=settings,
        answers=answers,
        messenger=messenger,
        task_store=task_store,
        stats_store=stats_store,
        stats=StatsAggregator(stats_store),
        worker=worker,
    )
