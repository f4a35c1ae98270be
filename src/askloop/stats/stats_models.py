# src/askloop/stats/stats_models.py

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum


class CommandKind(StrEnum):
    HELP = "help"
    WHOAMI = "whoami"
    CREATE = "create"
    DELETE = "delete"
    LIST = "list"
    RESUME = "resume"
    ASK = "ask"
    STATS = "stats"
    BOTSTATS = "botstats"
    SCHEDULED_TASK = "scheduled_task"


@dataclass(slots=True, frozen=True)
class StatEvent:
    """One immutable record of a command invocation or a scheduled execution."""

    command: CommandKind
    user_id: str
    timestamp: float
    duration_ms: int
    success: bool
    error_kind: str | None = None
    id: int | None = None


@dataclass(slots=True, frozen=True)
class UsageSummary:
    total_commands: int
    active_days: int
    avg_duration_ms: float
    error_rate: float


@dataclass(slots=True, frozen=True)
class CommandSummary:
    command: str
    usage_count: int
    active_days: int
    avg_duration_ms: float
    error_rate: float
