"""Bounded retry policy and the attempt-until combinator."""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Generic, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class RetryPolicy:
    max_attempts: int = 3
    backoff_sec: float = 0.0

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")


@dataclass
class AttemptOutcome(Generic[T]):
    value: T
    attempts: int
    accepted: bool


async def attempt_until(
    policy: RetryPolicy,
    attempt: Callable[[int], Awaitable[T]],
    accept: Callable[[T], bool],
    on_retry: Callable[[T, int], Awaitable[None]] | None = None,
) -> AttemptOutcome[T]:
    """Call ``attempt(n)`` until ``accept`` passes or attempts run out.

    The value of the final attempt is returned even when it was not
    accepted, so callers always get something to finalize.

    Args:
        policy: Attempt cap and backoff between attempts.
        attempt: Coroutine factory receiving the 1-based attempt number.
        accept: Predicate deciding whether a value is good enough.
        on_retry: Optional hook awaited with the rejected value before the
            next attempt starts.
    """
    number = 1
    while True:
        value = await attempt(number)
        if accept(value):
            return AttemptOutcome(value=value, attempts=number, accepted=True)
        if number >= policy.max_attempts:
            logger.warning("Giving up after %d attempts, keeping last result", number)
            return AttemptOutcome(value=value, attempts=number, accepted=False)
        if on_retry is not None:
            await on_retry(value, number)
        if policy.backoff_sec > 0:
            await asyncio.sleep(policy.backoff_sec * number)
        number += 1
