# src/askloop/stats/aggregator.py

from __future__ import annotations

from ..core.errors import PermissionDenied
from ..core.ports import StatsRepo
from .stats_models import CommandSummary, UsageSummary


class StatsAggregator:
    """Usage summaries computed on read; nothing here is ever persisted."""

    def __init__(self, store: StatsRepo) -> None:
        self._store = store

    def personal_summary(self, user_id: str) -> UsageSummary:
        total, active_days, avg_ms, failed = self._store.user_totals(user_id)
        return UsageSummary(
            total_commands=total,
            active_days=active_days,
            avg_duration_ms=avg_ms,
            error_rate=(failed / total) if total else 0.0,
        )

    def global_summary(self, *, is_owner: bool) -> list[CommandSummary]:
        """
        Per-command rollups.

        Authorization is the caller's job; the flag only gates access.
        """
        if not is_owner:
            raise PermissionDenied()
        return [
            CommandSummary(
                command=command,
                usage_count=count,
                active_days=active_days,
                avg_duration_ms=avg_ms,
                error_rate=(failed / count) if count else 0.0,
            )
            for command, count, active_days, avg_ms, failed in self._store.command_totals()
        ]
