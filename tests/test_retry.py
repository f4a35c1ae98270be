# tests/test_retry.py

from __future__ import annotations

import random

import pytest

from askloop.core.errors import AnswerError, AnswerErrorKind
from askloop.tasks.retry import RetryPolicy, RetryState, call_with_retry

from .fakes import FakeAnswerService, SlowAnswerService, no_sleep, transient


@pytest.mark.asyncio
@pytest.mark.parametrize("failures", [0, 1, 2])
async def test_transient_failures_then_success(failures: int) -> None:
    svc = FakeAnswerService([transient() for _ in range(failures)], default="fine")
    policy = RetryPolicy(max_attempts=3, base_delay=0.0, max_delay=0.0)

    out = await call_with_retry(lambda: svc.query("q", 1.0), policy, timeout=1.0, sleep=no_sleep)

    assert out == "fine"
    assert len(svc.calls) == failures + 1


@pytest.mark.asyncio
async def test_gives_up_after_max_attempts() -> None:
    svc = FakeAnswerService([transient(str(i)) for i in range(10)])
    policy = RetryPolicy(max_attempts=4, base_delay=0.0, max_delay=0.0)

    with pytest.raises(AnswerError) as exc:
        await call_with_retry(lambda: svc.query("q", 1.0), policy, timeout=1.0, sleep=no_sleep)

    assert len(svc.calls) == 4
    assert str(exc.value) == "3"


@pytest.mark.asyncio
@pytest.mark.parametrize("kind", [AnswerErrorKind.FATAL, AnswerErrorKind.INVALID])
async def test_non_retryable_errors_fail_immediately(kind: AnswerErrorKind) -> None:
    svc = FakeAnswerService([AnswerError(kind, "nope")])
    policy = RetryPolicy(max_attempts=5, base_delay=0.0, max_delay=0.0)

    with pytest.raises(AnswerError) as exc:
        await call_with_retry(lambda: svc.query("q", 1.0), policy, timeout=1.0, sleep=no_sleep)

    assert exc.value.answer_kind == kind
    assert len(svc.calls) == 1


@pytest.mark.asyncio
async def test_rate_limited_is_retried() -> None:
    svc = FakeAnswerService([AnswerError(AnswerErrorKind.RATE_LIMITED, "429")], default="ok")
    policy = RetryPolicy(max_attempts=2, base_delay=0.0, max_delay=0.0)

    assert await call_with_retry(lambda: svc.query("q", 1.0), policy, timeout=1.0, sleep=no_sleep) == "ok"
    assert len(svc.calls) == 2


@pytest.mark.asyncio
async def test_timeout_counts_as_transient() -> None:
    svc = SlowAnswerService(delay=5.0)
    policy = RetryPolicy(max_attempts=2, base_delay=0.0, max_delay=0.0)

    with pytest.raises(AnswerError) as exc:
        await call_with_retry(lambda: svc.query("q", 0.05), policy, timeout=0.05, sleep=no_sleep)

    assert exc.value.answer_kind == AnswerErrorKind.TRANSIENT
    assert svc.calls == 2


@pytest.mark.asyncio
async def test_sleeps_between_attempts_only() -> None:
    delays: list[float] = []

    async def record_sleep(d: float) -> None:
        delays.append(d)

    svc = FakeAnswerService([transient(), transient(), transient()])
    policy = RetryPolicy(max_attempts=3, base_delay=1.0, max_delay=10.0, jitter=0.0)

    with pytest.raises(AnswerError):
        await call_with_retry(lambda: svc.query("q", 1.0), policy, timeout=1.0, sleep=record_sleep)

    assert delays == [1.0, 2.0]


def test_backoff_is_bounded_and_grows() -> None:
    policy = RetryPolicy(max_attempts=10, base_delay=2.0, max_delay=30.0, jitter=0.5)
    rng = random.Random(7)

    for attempt in range(1, 10):
        exp = min(30.0, 2.0 * 2 ** (attempt - 1))
        for _ in range(20):
            d = policy.backoff(attempt, rng)
            assert exp * 0.5 <= d <= exp

    no_jitter = RetryPolicy(base_delay=2.0, max_delay=30.0, jitter=0.0)
    assert [no_jitter.backoff(a) for a in (1, 2, 3, 4, 5, 6)] == [2.0, 4.0, 8.0, 16.0, 30.0, 30.0]


def test_retry_state_tracks_attempts() -> None:
    state = RetryState(policy=RetryPolicy(max_attempts=2))
    state.attempt = 1
    assert state.record_failure(transient()) is True
    state.attempt = 2
    assert state.exhausted
    assert state.record_failure(transient()) is False
    assert len(state.errors) == 2
