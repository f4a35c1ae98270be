# src/askloop/tasks/task_models.py

from __future__ import annotations

import time
from dataclasses import dataclass

MIN_INTERVAL_SECONDS = 60.0
MAX_INTERVAL_SECONDS = 366 * 24 * 3600.0


@dataclass(slots=True)
class Task:
    """
    A recurring question owned by one user.

    Scheduling fields (next_run_at, last_run_at, consecutive_failures, in_flight, active)
    are only ever changed by the store on behalf of the scheduler / worker.
    """

    id: int | None
    owner_id: str
    name: str
    interval_seconds: float
    question: str
    created_at: float
    next_run_at: float

    last_run_at: float | None = None
    consecutive_failures: int = 0
    in_flight: bool = False
    active: bool = True

    room_id: str | None = None
    last_error: str | None = None
    last_duration_ms: int | None = None

    @property
    def interval_minutes(self) -> int:
        return int(self.interval_seconds // 60)

    @property
    def is_ephemeral(self) -> bool:
        return self.id is None

    @classmethod
    def ephemeral(cls, *, owner_id: str, question: str, room_id: str | None = None) -> Task:
        """Unsaved task used for one-shot questions (never touches the store)."""
        now = time.time()
        return cls(
            id=None,
            owner_id=owner_id,
            name="",
            interval_seconds=0.0,
            question=question,
            created_at=now,
            next_run_at=now,
            room_id=room_id,
        )
