# src/askloop/tasks/retry.py

"""
Bounded retry with exponential backoff and jitter.

The loop is driven by an explicit RetryState (attempt counter + errors seen so far)
instead of an inline sleep loop. Sleeping goes through an injectable coroutine and
every attempt is wrapped in asyncio.wait_for, so cancellation and the per-call
timeout behave the same way on every attempt.
"""

from __future__ import annotations

import asyncio
import logging
import random
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import TypeVar

from ..core.errors import AnswerError, AnswerErrorKind

logger = logging.getLogger(__name__)

T = TypeVar("T")

Sleep = Callable[[float], Awaitable[None]]


@dataclass(slots=True, frozen=True)
class RetryPolicy:
    max_attempts: int = 3
    base_delay: float = 2.0
    max_delay: float = 30.0
    jitter: float = 0.5  # fraction of the delay that is randomized

    def backoff(self, attempt: int, rng: random.Random | None = None) -> float:
        """Delay to wait after the given (1-based) failed attempt."""
        r = rng or random
        exp = min(self.max_delay, self.base_delay * (2 ** max(0, attempt - 1)))
        j = max(0.0, min(1.0, self.jitter))
        return exp * (1.0 - j) + r.random() * exp * j


@dataclass(slots=True)
class RetryState:
    policy: RetryPolicy
    attempt: int = 0
    errors: list[AnswerError] = field(default_factory=list)

    @property
    def exhausted(self) -> bool:
        return self.attempt >= self.policy.max_attempts

    def record_failure(self, err: AnswerError) -> bool:
        """Register a failed attempt; returns True if another attempt should be made."""
        self.errors.append(err)
        return err.retryable and not self.exhausted


async def call_with_retry(
    call: Callable[[], Awaitable[T]],
    policy: RetryPolicy,
    *,
    timeout: float,
    sleep: Sleep = asyncio.sleep,
    rng: random.Random | None = None,
    label: str = "call",
) -> T:
    """
    Run `call` until it succeeds, fails with a non-retryable AnswerError, or the
    policy runs out of attempts. The last AnswerError is re-raised on failure.

    A call that exceeds `timeout` counts as a transient failure.
    """
    state = RetryState(policy=policy)

    while True:
        state.attempt += 1
        try:
            return await asyncio.wait_for(call(), timeout=timeout)
        except TimeoutError:
            err = AnswerError(AnswerErrorKind.TRANSIENT, f"timed out after {timeout:.1f}s")
        except AnswerError as e:
            err = e

        if not state.record_failure(err):
            logger.info(
                "%s failed after %d attempt(s): %s (%s)",
                label,
                state.attempt,
                err.kind,
                err,
            )
            raise err

        delay = policy.backoff(state.attempt, rng)
        logger.info(
            "%s attempt %d/%d failed (%s); retrying in %.2fs",
            label,
            state.attempt,
            policy.max_attempts,
            err.kind,
            delay,
        )
        await sleep(delay)
