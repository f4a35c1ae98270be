# src/askloop/tasks/worker.py

"""
Execution worker.

Runs one task's question through the retry policy, then:
- delivers the answer to the owner (scheduled runs only),
- records a StatEvent,
- completes the task in the store (reschedules from completion time).

Delivery and telemetry failures are logged and never undo an execution.
A task deleted while it was running simply stays deleted.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass

from ..core.errors import AnswerError, AnswerErrorKind, StorageError, TaskNotFound
from ..core.formatting import format_answer, format_task_disabled
from ..core.ports import AnswerService, OutboundMessenger, StatsRepo, TaskRepo
from ..stats.stats_models import CommandKind, StatEvent
from .retry import RetryPolicy, Sleep, call_with_retry
from .task_models import Task

logger = logging.getLogger(__name__)


@dataclass(slots=True, frozen=True)
class ExecutionResult:
    task: Task
    success: bool
    answer: str | None
    error: AnswerError | None
    duration_ms: int


class ExecutionWorker:
    def __init__(
        self,
        answers: AnswerService,
        task_store: TaskRepo,
        stats_store: StatsRepo,
        messenger: OutboundMessenger,
        *,
        policy: RetryPolicy | None = None,
        call_timeout: float = 60.0,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self._answers = answers
        self._tasks = task_store
        self._stats = stats_store
        self._messenger = messenger
        self._policy = policy or RetryPolicy()
        self._call_timeout = float(call_timeout)
        self._sleep = sleep

    async def execute(
        self,
        task: Task,
        *,
        kind: CommandKind = CommandKind.SCHEDULED_TASK,
        deliver: bool = True,
        record: bool = True,
    ) -> ExecutionResult:
        """
        Execute one task (stored or ephemeral).

        For stored tasks the caller must already hold the in-flight flag
        (TaskStore.mark_running); this method releases it via complete(), or via
        release() when complete() fails.

        `record=False` skips the StatEvent (preview runs on create).
        """
        label = f"task {task.id} '{task.name}'" if not task.is_ephemeral else f"ask by {task.owner_id}"
        t0 = time.monotonic()
        answer: str | None = None
        error: AnswerError | None = None

        try:
            answer = await call_with_retry(
                lambda: self._answers.query(task.question, self._call_timeout),
                self._policy,
                timeout=self._call_timeout,
                sleep=self._sleep,
                label=label,
            )
        except AnswerError as e:
            error = e
        except Exception as e:
            logger.exception("%s: answer service crashed", label)
            error = AnswerError(AnswerErrorKind.FATAL, str(e) or e.__class__.__name__)

        duration_ms = int((time.monotonic() - t0) * 1000)
        success = error is None

        if success and deliver:
            await self._deliver(task, format_answer(task.name or None, task.question, answer or ""))

        if record:
            self._record(task, kind=kind, success=success, duration_ms=duration_ms, error=error)

        if not task.is_ephemeral:
            await self._complete(task, success=success, duration_ms=duration_ms, error=error)

        if success:
            logger.info("%s succeeded in %dms", label, duration_ms)
        else:
            logger.warning("%s failed in %dms (%s)", label, duration_ms, error.kind if error else "?")

        return ExecutionResult(
            task=task,
            success=success,
            answer=answer,
            error=error,
            duration_ms=duration_ms,
        )

    async def _deliver(self, task: Task, text: str) -> None:
        try:
            await self._messenger.send_text(text=text, room_id=task.room_id, to_user_id=task.owner_id)
        except Exception:
            logger.exception("Delivery failed for task %s (owner=%s)", task.id, task.owner_id)

    def _release(self, task_id: int) -> None:
        try:
            self._tasks.release(task_id)
        except StorageError:
            logger.exception("release() failed task_id=%s; claim stays until restart", task_id)

    def _record(
        self,
        task: Task,
        *,
        kind: CommandKind,
        success: bool,
        duration_ms: int,
        error: AnswerError | None,
    ) -> None:
        event = StatEvent(
            command=kind,
            user_id=task.owner_id,
            timestamp=time.time(),
            duration_ms=duration_ms,
            success=success,
            error_kind=error.kind if error else None,
        )
        try:
            self._stats.record(event)
        except StorageError:
            logger.exception("Failed to record stat event for task %s", task.id)

    async def _complete(
        self,
        task: Task,
        *,
        success: bool,
        duration_ms: int,
        error: AnswerError | None,
    ) -> None:
        assert task.id is not None
        try:
            updated = self._tasks.complete(
                task.id,
                success=success,
                duration_ms=duration_ms,
                error_kind=error.kind if error else None,
            )
        except TaskNotFound:
            logger.debug("Task %s was deleted while running; nothing to reschedule", task.id)
            return
        except StorageError:
            logger.exception("complete() failed task_id=%s", task.id)
            self._release(task.id)
            return

        if task.active and not updated.active:
            logger.warning(
                "Task %s disabled after %d consecutive failures",
                task.id,
                updated.consecutive_failures,
            )
            await self._deliver(updated, format_task_disabled(updated))
