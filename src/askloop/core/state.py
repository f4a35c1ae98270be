# src/askloop/core/state.py

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from ..stats.aggregator import StatsAggregator
from ..stats.stats_store import StatsStore
from ..tasks.task_store import TaskStore
from ..tasks.worker import ExecutionWorker
from .ports import AnswerService, OutboundMessenger


@dataclass
class AppState:
    # Settings object (real Settings or a SimpleNamespace in tests).
    settings: Any

    answers: AnswerService
    messenger: OutboundMessenger
    task_store: TaskStore
    stats_store: StatsStore
    stats: StatsAggregator
    worker: ExecutionWorker

    def is_owner(self, user_id: str | None) -> bool:
        owner = str(getattr(self.settings, "owner_id", "") or "").strip()
        return bool(owner) and user_id is not None and user_id == owner
