# src/askloop/cli/bootstrap.py

"""
CLI bootstrap helpers.

This module is the "composition root":
- loads settings once,
- ensures local (gitignored) directories exist,
- wires concrete implementations into AppState (answer service, stores, worker, messenger).
"""

from __future__ import annotations

import logging

from ..config import get_settings
from ..connectors.console_connector import ConsoleMessenger
from ..connectors.matrix_connector import MatrixMessenger
from ..connectors.routing import RoutingMessenger
from ..core.ports import AnswerService
from ..core.state import AppState
from ..llm.client import XaiAnswerService
from ..llm.offline import OfflineAnswerService
from ..stats.aggregator import StatsAggregator
from ..stats.stats_store import StatsStore
from ..tasks.retry import RetryPolicy
from ..tasks.task_store import TaskStore
from ..tasks.worker import ExecutionWorker

logger = logging.getLogger(__name__)


def _ensure_local_dirs(settings) -> None:
    settings.data_dir.mkdir(parents=True, exist_ok=True)
    settings.tasks_db_path.parent.mkdir(parents=True, exist_ok=True)
    settings.stats_db_path.parent.mkdir(parents=True, exist_ok=True)
    if settings.matrix_enabled:
        settings.matrix_store_path.mkdir(parents=True, exist_ok=True)


def retry_policy_from_settings(settings) -> RetryPolicy:
    return RetryPolicy(
        max_attempts=settings.max_retry_attempts,
        base_delay=settings.retry_backoff_base_seconds,
        max_delay=settings.retry_backoff_cap_seconds,
    )


def create_initial_state(*, settings=None, matrix: MatrixMessenger | None = None) -> AppState:
    """
    Create AppState from the provided settings.

    Keeping settings injectable makes the app easier to test and avoids hidden global config reads.
    If settings is None, falls back to get_settings().
    """
    if settings is None:
        settings = get_settings()

    _ensure_local_dirs(settings)

    answers: AnswerService
    try:
        answers = XaiAnswerService(settings)
    except RuntimeError as e:
        # Fallback for demos / local runs without external services.
        logger.warning("%s Using the offline answer service.", e)
        answers = OfflineAnswerService()

    messenger = RoutingMessenger(ConsoleMessenger(settings.app_name), matrix)

    task_store = TaskStore(settings.tasks_db_path, max_consecutive_failures=settings.max_consecutive_failures)
    task_store.release_stale_claims()
    stats_store = StatsStore(settings.stats_db_path)

    worker = ExecutionWorker(
        answers,
        task_store,
        stats_store,
        messenger,
        policy=retry_policy_from_settings(settings),
        call_timeout=settings.answer_timeout_seconds,
    )

    return AppState(
        settings=settings,
        answers=answers,
        messenger=messenger,
        task_store=task_store,
        stats_store=stats_store,
        stats=StatsAggregator(stats_store),
        worker=worker,
    )
