# src/askloop/cli/runtime.py

"""
Background runtime.

One asyncio event loop in a daemon thread hosts the task scheduler, the execution
workers and (optionally) the Matrix connector. The console REPL stays blocking in
the main thread and submits command coroutines to this loop.
"""

from __future__ import annotations

import asyncio
import concurrent.futures
import contextlib
import logging
import threading
from collections.abc import Coroutine
from dataclasses import dataclass
from typing import Any, TypeVar

from ..connectors.matrix_connector import MatrixMessenger, run_matrix_bot
from ..core.state import AppState
from ..tasks.task_scheduler import TaskScheduler

logger = logging.getLogger(__name__)

T = TypeVar("T")


async def run_services(
    state: AppState,
    stop_event: asyncio.Event,
    *,
    matrix: MatrixMessenger | None = None,
) -> None:
    settings = state.settings
    scheduler = TaskScheduler(
        state.task_store,
        state.worker,
        interval_seconds=settings.scheduler_tick_seconds,
        max_workers=settings.worker_pool_size,
    )

    jobs = [asyncio.create_task(scheduler.run_forever(stop_event), name="askloop-scheduler")]
    if matrix is not None:
        jobs.append(asyncio.create_task(run_matrix_bot(state, matrix, stop_event), name="askloop-matrix"))

    results = await asyncio.gather(*jobs, return_exceptions=True)
    for job, res in zip(jobs, results):
        if isinstance(res, BaseException) and not isinstance(res, asyncio.CancelledError):
            logger.error("Service %s crashed: %r", job.get_name(), res)


@dataclass
class BackgroundRunner:
    thread: threading.Thread
    loop: asyncio.AbstractEventLoop
    stop_event: asyncio.Event

    def submit(self, coro: Coroutine[Any, Any, T]) -> concurrent.futures.Future[T]:
        return asyncio.run_coroutine_threadsafe(coro, self.loop)

    def stop(self) -> None:
        try:
            self.loop.call_soon_threadsafe(self.stop_event.set)
        except RuntimeError:
            logger.debug("Runtime loop already closed.", exc_info=True)

    def join(self, timeout: float | None = None) -> None:
        self.thread.join(timeout=timeout)


def start_background_runtime(state: AppState, *, matrix: MatrixMessenger | None = None) -> BackgroundRunner:
    """
    Start the event loop thread and wait until it is ready to accept work.

    Why a thread: the console REPL is blocking (input()), while the scheduler and
    Matrix connector are async and want their own event loop.
    """
    ready = threading.Event()
    holder: dict[str, object] = {}

    def runner() -> None:
        loop = asyncio.new_event_loop()
        asyncio.set_event_loop(loop)
        stop_event = asyncio.Event()

        holder["loop"] = loop
        holder["stop_event"] = stop_event
        ready.set()

        try:
            loop.run_until_complete(run_services(state, stop_event, matrix=matrix))
        finally:
            with contextlib.suppress(Exception):
                loop.run_until_complete(loop.shutdown_asyncgens())
            loop.close()

    t = threading.Thread(target=runner, name="askloop-runtime", daemon=True)
    t.start()

    if not ready.wait(timeout=5.0):
        raise RuntimeError("Runtime thread did not start")

    loop = holder["loop"]
    stop_event = holder["stop_event"]
    assert isinstance(loop, asyncio.AbstractEventLoop)
    assert isinstance(stop_event, asyncio.Event)

    logger.info("Runtime thread started.")
    return BackgroundRunner(thread=t, loop=loop, stop_event=stop_event)
