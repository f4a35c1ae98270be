# src/askloop/core/ports.py

from __future__ import annotations

"""
Ports (interfaces) used by the core.

The core depends on Protocols instead of concrete implementations.
This keeps connectors/storage/answer providers swappable and makes testing easier.
"""

from typing import Awaitable, Protocol

from ..stats.stats_models import StatEvent
from ..tasks.task_models import Task


class AnswerService(Protocol):
    """
    Remote question answering.

    Raises AnswerError (transient / rate_limited / invalid / fatal) on failure.
    """

    async def query(self, text: str, timeout: float) -> str: ...


class OutboundMessenger(Protocol):
    """
    Connector-side port: how services (worker, scheduler) send text outward.

    The connector decides how to interpret:
    - room_id (can be None)
    - to_user_id (can be None)
    """

    def send_text(
            self,
            *,
            text: str,
            room_id: str | None = None,
            to_user_id: str | None = None,
    ) -> Awaitable[None]: ...


class TaskRepo(Protocol):
    # Lifecycle API (commands)
    def create(
            self,
            owner_id: str,
            name: str,
            interval_seconds: float,
            question: str,
            *,
            room_id: str | None = None,
            now: float | None = None,
    ) -> Task: ...
    def delete(self, owner_id: str, name: str) -> None: ...
    def get(self, owner_id: str, name: str) -> Task: ...
    def list_tasks(self, owner_id: str) -> list[Task]: ...
    def resume(self, owner_id: str, name: str, *, now: float | None = None) -> Task: ...

    # Scheduler API
    def fetch_due(self, now: float) -> list[Task]: ...
    def mark_running(self, task_id: int) -> None: ...
    def complete(
            self,
            task_id: int,
            *,
            success: bool,
            duration_ms: int,
            now: float | None = None,
            error_kind: str | None = None,
    ) -> Task: ...
    def release(self, task_id: int) -> bool: ...


class StatsRepo(Protocol):
    def record(self, event: StatEvent) -> int: ...
    def user_totals(self, user_id: str) -> tuple[int, int, float, int]: ...
    def command_totals(self) -> list[tuple[str, int, int, float, int]]: ...
