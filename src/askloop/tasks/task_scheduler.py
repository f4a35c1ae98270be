# src/askloop/tasks/task_scheduler.py

from __future__ import annotations

"""
Task scheduler.

A small polling loop that, every tick:
- fetches due tasks,
- claims each one via the store's in-flight flag,
- hands claimed tasks to the execution worker as background asyncio tasks.

A task whose previous run is still going is skipped (AlreadyRunning), so an
overloaded service never builds up a queue of duplicate runs. The next run time
is computed by the store from the completion time of each run.
"""

import asyncio
import logging
import time
from collections.abc import Callable

from ..core.errors import AlreadyRunning, StorageError, TaskNotFound
from ..core.ports import TaskRepo
from .task_models import Task
from .worker import ExecutionWorker

logger = logging.getLogger(__name__)


class TaskScheduler:
    def __init__(
        self,
        task_store: TaskRepo,
        worker: ExecutionWorker,
        *,
        interval_seconds: float = 60.0,
        max_workers: int = 4,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._tasks = task_store
        self._worker = worker
        self.interval_seconds = max(0.01, float(interval_seconds))
        self._pool = asyncio.Semaphore(max(1, int(max_workers)))
        self._clock = clock
        self._running: set[asyncio.Task[None]] = set()

    @property
    def running_count(self) -> int:
        return len(self._running)

    async def run_once(self) -> list[asyncio.Task[None]]:
        """One tick. Returns the asyncio tasks dispatched during this tick."""
        now = self._clock()

        try:
            due = self._tasks.fetch_due(now)
        except StorageError:
            logger.exception("fetch_due failed; skipping tick")
            return []

        dispatched: list[asyncio.Task[None]] = []
        for task in due:
            assert task.id is not None
            try:
                self._tasks.mark_running(task.id)
            except AlreadyRunning:
                logger.debug("Task %s still running; skipped", task.id)
                continue
            except TaskNotFound:
                logger.debug("Task %s deleted before it could run", task.id)
                continue
            except StorageError:
                logger.exception("mark_running failed task_id=%s", task.id)
                continue

            job = asyncio.create_task(self._run_task(task), name=f"askloop-task-{task.id}")
            self._running.add(job)
            job.add_done_callback(self._running.discard)
            dispatched.append(job)

        if dispatched:
            logger.info("Tick: %d due, %d dispatched", len(due), len(dispatched))
        return dispatched

    async def _run_task(self, task: Task) -> None:
        async with self._pool:
            try:
                await self._worker.execute(task)
            except Exception:
                logger.exception("Worker crashed task_id=%s", task.id)
                self._release(task)

    def _release(self, task: Task) -> None:
        # The crashed run may never have reached complete(); without this the task
        # would be skipped as AlreadyRunning until the next restart.
        assert task.id is not None
        try:
            self._tasks.release(task.id)
        except StorageError:
            logger.exception("release() failed task_id=%s", task.id)

    async def drain(self) -> None:
        """Wait for every dispatched worker to finish."""
        while self._running:
            await asyncio.gather(*list(self._running), return_exceptions=True)

    async def run_forever(self, stop_event: asyncio.Event | None = None) -> None:
        """
        Tick until stop_event is set (or the coroutine is cancelled).
        Workers still in flight are awaited before returning on a clean stop.
        """
        logger.info("Scheduler started (tick=%.1fs)", self.interval_seconds)
        try:
            while stop_event is None or not stop_event.is_set():
                await self.run_once()
                if stop_event is None:
                    await asyncio.sleep(self.interval_seconds)
                    continue
                try:
                    await asyncio.wait_for(stop_event.wait(), timeout=self.interval_seconds)
                except TimeoutError:
                    pass
            await self.drain()
        finally:
            logger.info("Scheduler stopped")


async def run_task_scheduler(
        task_store: TaskRepo,
        worker: ExecutionWorker,
        *,
        interval_seconds: float = 60.0,
        max_workers: int = 4,
        stop_event: asyncio.Event | None = None,
) -> None:
    """
    Simple polling scheduler.

    To stop it, set stop_event or cancel the coroutine.
    """
    scheduler = TaskScheduler(
        task_store,
        worker,
        interval_seconds=interval_seconds,
        max_workers=max_workers,
    )
    await scheduler.run_forever(stop_event)
