# tests/test_worker.py

from __future__ import annotations

import asyncio

import pytest

from askloop.core.errors import AlreadyRunning, AnswerError, AnswerErrorKind, StorageError
from askloop.stats.stats_models import CommandKind
from askloop.tasks.retry import RetryPolicy
from askloop.tasks.task_models import Task
from askloop.tasks.task_store import TaskStore
from askloop.tasks.worker import ExecutionWorker

from .fakes import FailingMessenger, FakeAnswerService, no_sleep, transient


def _claimed(store: TaskStore, name: str = "crypto", room_id: str | None = None) -> Task:
    task = store.create("u1", name, 600, "BTC price?", room_id=room_id)
    assert task.id is not None
    store.mark_running(task.id)
    return task


@pytest.mark.asyncio
async def test_successful_run_delivers_records_and_reschedules(worker, task_store, stats_store, messenger) -> None:
    task = _claimed(task_store, room_id="!room:example.org")

    result = await worker.execute(task)

    assert result.success
    assert result.answer == "42"
    assert len(messenger.sent) == 1
    sent = messenger.sent[0]
    assert sent.to_user_id == "u1"
    assert sent.room_id == "!room:example.org"
    assert "Task: crypto" in sent.text
    assert "42" in sent.text

    stored = task_store.get("u1", "crypto")
    assert stored.in_flight is False
    assert stored.last_run_at is not None
    assert stored.next_run_at >= stored.last_run_at + 600

    events = stats_store.list_events("u1")
    assert len(events) == 1
    assert events[0].command == CommandKind.SCHEDULED_TASK
    assert events[0].success is True


@pytest.mark.asyncio
async def test_retry_then_success_sends_one_message(task_store, stats_store, messenger) -> None:
    answers = FakeAnswerService([transient(), transient()], default="done")
    worker = ExecutionWorker(
        answers,
        task_store,
        stats_store,
        messenger,
        policy=RetryPolicy(max_attempts=3, base_delay=0.0, max_delay=0.0),
        sleep=no_sleep,
    )
    task = _claimed(task_store)

    result = await worker.execute(task)

    assert result.success
    assert len(answers.calls) == 3
    assert len(messenger.sent) == 1
    assert stats_store.count_events() == 1


@pytest.mark.asyncio
async def test_exhausted_retries_record_failure_without_delivery(task_store, stats_store, messenger) -> None:
    answers = FakeAnswerService([transient() for _ in range(5)])
    worker = ExecutionWorker(
        answers,
        task_store,
        stats_store,
        messenger,
        policy=RetryPolicy(max_attempts=3, base_delay=0.0, max_delay=0.0),
        sleep=no_sleep,
    )
    task = _claimed(task_store)

    result = await worker.execute(task)

    assert not result.success
    assert result.error is not None and result.error.kind == "transient"
    assert len(answers.calls) == 3
    assert messenger.sent == []

    stored = task_store.get("u1", "crypto")
    assert stored.in_flight is False
    assert stored.consecutive_failures == 1
    assert stored.last_error == "transient"

    (event,) = stats_store.list_events("u1")
    assert event.success is False
    assert event.error_kind == "transient"


@pytest.mark.asyncio
async def test_unexpected_exception_is_fatal(task_store, stats_store, messenger) -> None:
    answers = FakeAnswerService([ValueError("boom")])
    worker = ExecutionWorker(answers, task_store, stats_store, messenger, sleep=no_sleep)
    task = _claimed(task_store)

    result = await worker.execute(task)

    assert not result.success
    assert result.error is not None and result.error.answer_kind == AnswerErrorKind.FATAL
    assert len(answers.calls) == 1
    assert task_store.get("u1", "crypto").in_flight is False


@pytest.mark.asyncio
async def test_delete_during_run_is_not_resurrected(worker, answers, task_store, stats_store, messenger) -> None:
    answers.gate = asyncio.Event()
    task = _claimed(task_store)

    run = asyncio.create_task(worker.execute(task))
    await asyncio.sleep(0)
    task_store.delete("u1", "crypto")
    answers.gate.set()
    result = await run

    assert result.success
    assert task_store.list_tasks("u1") == []
    assert task_store.count_tasks() == 0
    # The in-progress run still counts as usage.
    assert stats_store.count_events() == 1


@pytest.mark.asyncio
async def test_delivery_failure_does_not_undo_execution(answers, task_store, stats_store) -> None:
    broken = FailingMessenger()
    worker = ExecutionWorker(answers, task_store, stats_store, broken, sleep=no_sleep)
    task = _claimed(task_store)

    result = await worker.execute(task)

    assert result.success
    assert broken.attempts == 1
    stored = task_store.get("u1", "crypto")
    assert stored.in_flight is False
    assert stored.last_run_at is not None
    (event,) = stats_store.list_events("u1")
    assert event.success is True


@pytest.mark.asyncio
async def test_ephemeral_ask_leaves_task_store_untouched(worker, task_store, stats_store, messenger) -> None:
    task = Task.ephemeral(owner_id="u1", question="What is 6*7?")

    result = await worker.execute(task, kind=CommandKind.ASK, deliver=False)

    assert result.success
    assert result.answer == "42"
    assert messenger.sent == []
    assert task_store.count_tasks() == 0
    (event,) = stats_store.list_events("u1")
    assert event.command == CommandKind.ASK


@pytest.mark.asyncio
async def test_owner_is_notified_once_when_task_is_paused(task_store, stats_store, messenger) -> None:
    # conftest store pauses after 3 consecutive failures
    answers = FakeAnswerService([AnswerError(AnswerErrorKind.FATAL, "bad key") for _ in range(4)])
    worker = ExecutionWorker(answers, task_store, stats_store, messenger, sleep=no_sleep)
    task = task_store.create("u1", "flaky", 60, "q")
    assert task.id is not None

    for _ in range(3):
        current = task_store.get("u1", "flaky")
        task_store.mark_running(task.id)
        await worker.execute(current)

    stored = task_store.get("u1", "flaky")
    assert stored.active is False
    assert len(messenger.sent) == 1
    assert "paused" in messenger.sent[0].text
    assert "/resume flaky" in messenger.sent[0].text



class LockedCompleteStore:
    """TaskStore whose complete() always fails; everything else is real."""

    def __init__(self, inner: TaskStore) -> None:
        self._inner = inner

    def complete(self, task_id: int, **kwargs) -> Task:
        raise StorageError("database is locked")

    def __getattr__(self, name: str):
        return getattr(self._inner, name)


@pytest.mark.asyncio
async def test_failed_complete_releases_the_claim(answers, task_store, stats_store, messenger) -> None:
    worker = ExecutionWorker(answers, LockedCompleteStore(task_store), stats_store, messenger, sleep=no_sleep)
    task = _claimed(task_store)

    result = await worker.execute(task)

    assert result.success
    stored = task_store.get("u1", "crypto")
    assert stored.in_flight is False
    # Schedule untouched: the task is picked up again on the next tick.
    assert stored.next_run_at == task.next_run_at
    assert stored.last_run_at is None
    task_store.mark_running(task.id)
    with pytest.raises(AlreadyRunning):
        task_store.mark_running(task.id)
