"""
Per-item retry policy.

Each WorkItem runs its own small state machine:

    ATTEMPTING(0) -> SUCCEEDED
                  -> ATTEMPTING(1) -> ... -> ATTEMPTING(max_retries) -> EXHAUSTED

Attempts are strictly sequential. Between attempts the policy waits
delay_ms(n) = retry_delay_ms * (n + 1), a linear and strictly increasing
backoff. Only the reason of the last attempt survives in the Failure.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, replace
from enum import Enum
from typing import Awaitable, Callable

from loguru import logger

from ..errors import classify_error
from ..settings import EngineSettings
from .types import Failure, RetryClassifier, Success, TransformOutcome


class RetryState(str, Enum):
    ATTEMPTING = "attempting"
    SUCCEEDED = "succeeded"
    EXHAUSTED = "exhausted"


def retry_any(failure: Failure) -> bool:
    """Default classifier: every failure kind is retried the same way.

    A permanent error (e.g. unsupported format) is retried exactly like a
    timeout. Pass a stricter classifier to RetryPolicy to change that.
    """
    return True


def describe_error(exc: BaseException) -> str:
    msg = str(exc).strip()
    return msg or type(exc).__name__


@dataclass(frozen=True)
class RetryPolicy:
    max_retries: int = 2
    retry_delay_ms: int = 1000
    classify_retryable: RetryClassifier = retry_any

    def __post_init__(self) -> None:
        if self.max_retries < 0:
            raise ValueError("max_retries must be >= 0")
        if self.retry_delay_ms <= 0:
            raise ValueError("retry_delay_ms must be > 0")

    @classmethod
    def from_settings(cls, settings: EngineSettings, **overrides) -> "RetryPolicy":
        params = {
            "max_retries": settings.max_retries,
            "retry_delay_ms": settings.retry_delay_ms,
        }
        params.update(overrides)
        return cls(**params)

    @property
    def max_attempts(self) -> int:
        return self.max_retries + 1

    def delay_ms(self, attempt: int) -> int:
        """Backoff after failed attempt number `attempt` (0-based)."""
        return self.retry_delay_ms * (attempt + 1)

    async def run(
        self,
        attempt: Callable[[int], Awaitable[Success]],
        *,
        label: str = "",
    ) -> TransformOutcome:
        """Drive `attempt` until it succeeds or the policy gives up.

        `attempt` receives the 0-based attempt number and either returns a
        Success or raises. Exceptions are classified into a Failure; the
        returned outcome always carries the number of attempts made.
        """
        n = 0
        state = RetryState.ATTEMPTING
        outcome: TransformOutcome
        while state is RetryState.ATTEMPTING:
            try:
                success = await attempt(n)
            except Exception as exc:
                outcome = Failure(
                    reason=describe_error(exc),
                    classification=classify_error(exc),
                    attempts=n + 1,
                )
                state = self.next_state(n, outcome)
            else:
                outcome = replace(success, attempts=n + 1)
                state = RetryState.SUCCEEDED

            if state is RetryState.ATTEMPTING:
                delay = self.delay_ms(n)
                logger.debug(
                    f"{label}: attempt {n + 1}/{self.max_attempts} failed "
                    f"[{outcome.classification.value}] {outcome.reason}; retrying in {delay}ms"
                )
                await asyncio.sleep(delay / 1000.0)
                n += 1

        logger.debug(f"{label}: {state.value} after {n + 1} attempt(s)")
        return outcome

    def next_state(self, n: int, failure: Failure) -> RetryState:
        """State after attempt `n` (0-based) failed with `failure`."""
        if n >= self.max_retries or not self.classify_retryable(failure):
            return RetryState.EXHAUSTED
        return RetryState.ATTEMPTING
