"""Retry policy applied around each transport call of a client method."""

from __future__ import annotations

import asyncio
import enum
import logging
import random
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import TypeVar

from aduib_feign.exceptions import RetryableError

__all__ = ["NEVER_RETRY", "ExceptionPropagationPolicy", "RetryPolicy", "RetryStrategy", "Retryer"]

logger = logging.getLogger(__name__)

T = TypeVar("T")


class ExceptionPropagationPolicy(str, enum.Enum):
    """What a client raises once retries are exhausted.

    ``UNWRAP`` raises the cause of the final ``RetryableError`` when it has
    one, ``NONE`` raises the ``RetryableError`` itself.
    """

    NONE = "none"
    UNWRAP = "unwrap"


class RetryStrategy(str, enum.Enum):
    """Retry delay calculation strategies."""

    FIXED = "fixed"
    EXPONENTIAL = "exponential"
    LINEAR = "linear"


@dataclass(frozen=True, slots=True)
class RetryPolicy:
    """Configuration for retrying calls that raised ``RetryableError``."""

    max_attempts: int = 5
    strategy: RetryStrategy = RetryStrategy.EXPONENTIAL
    initial_delay_ms: int = 100
    max_delay_ms: int = 1000
    backoff_multiplier: float = 1.5
    jitter: float = 0.0


class Retryer:
    """Executes an async call, repeating it while it raises ``RetryableError``.

    Any other exception propagates immediately. A ``retry_after`` carried by
    the error delays the next attempt, capped at ``max_delay_ms``.
    """

    def __init__(self, policy: RetryPolicy | None = None) -> None:
        policy = policy or RetryPolicy()
        self.policy = policy
        self._max_attempts = max(1, int(policy.max_attempts))
        self._initial_delay_ms = max(0, int(policy.initial_delay_ms))
        self._max_delay_ms = max(self._initial_delay_ms, int(policy.max_delay_ms))
        self._backoff_multiplier = max(1.0, float(policy.backoff_multiplier))
        self._jitter = max(0.0, min(1.0, float(policy.jitter)))

    @property
    def max_attempts(self) -> int:
        return self._max_attempts

    async def execute(
        self,
        func: Callable[[], Awaitable[T]],
        *,
        on_retry: Callable[[int, RetryableError], None] | None = None,
    ) -> T:
        attempt = 1
        while True:
            try:
                return await func()
            except RetryableError as exc:
                if attempt >= self._max_attempts:
                    raise
                delay_s = self.compute_delay(attempt, exc)
                attempt += 1
                logger.debug(
                    "Retrying in %.3fs (attempt %d of %d): %s",
                    delay_s,
                    attempt,
                    self._max_attempts,
                    exc.message,
                )
                if on_retry is not None:
                    on_retry(attempt, exc)
                if delay_s > 0:
                    await asyncio.sleep(delay_s)

    def compute_delay(self, attempt: int, error: RetryableError | None = None) -> float:
        if error is not None and error.retry_after is not None:
            wait_ms = max(0.0, (error.retry_after - time.time()) * 1000.0)
            return min(float(self._max_delay_ms), wait_ms) / 1000.0

        base_ms = float(self._initial_delay_ms)
        if self.policy.strategy == RetryStrategy.EXPONENTIAL:
            base_ms = self._initial_delay_ms * (self._backoff_multiplier ** max(0, attempt - 1))
        elif self.policy.strategy == RetryStrategy.LINEAR:
            base_ms = float(self._initial_delay_ms * attempt)

        base_ms = min(float(self._max_delay_ms), base_ms)
        if self._jitter > 0 and base_ms > 0:
            delta = (random.random() * 2 - 1) * (self._jitter * base_ms)
            base_ms = max(0.0, base_ms + delta)
        return base_ms / 1000.0

    def __repr__(self) -> str:
        return f"Retryer(max_attempts={self._max_attempts}, strategy={self.policy.strategy.value})"


NEVER_RETRY = Retryer(RetryPolicy(max_attempts=1))
