"""Retry with exponential backoff for external operations.

    delay(attempt) = min(initial_delay * backoff_multiplier ** attempt, max_delay)

Each attempt runs under ``asyncio.wait_for`` with the policy timeout. The
last error is re-raised unchanged once attempts are exhausted or the
predicate declines to retry.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Generic, TypeVar

from royalty_engine.config import RetryConfig
from royalty_engine.exceptions import (
    AuthenticationError,
    CalculationError,
    OperationAbandoned,
    OperationTimeoutError,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

ShouldRetry = Callable[[BaseException, int], bool]


@dataclass(frozen=True)
class RetryPolicy:
    """Backoff schedule. Defaults: 3 retries, 1s doubling to 10s, 30s per attempt."""

    max_retries: int = 3
    initial_delay: float = 1.0
    backoff_multiplier: float = 2.0
    max_delay: float = 10.0
    timeout: float = 30.0

    @classmethod
    def from_config(cls, config: RetryConfig) -> RetryPolicy:
        return cls(
            max_retries=config.max_retries,
            initial_delay=config.initial_delay,
            backoff_multiplier=config.backoff_multiplier,
            max_delay=config.max_delay,
            timeout=config.timeout,
        )

    def delay_for(self, attempt: int) -> float:
        """Delay in seconds before retry number ``attempt`` (0-based)."""
        return min(self.initial_delay * self.backoff_multiplier**attempt, self.max_delay)


class Liveness(Generic[T]):
    """Tracks whether the caller still wants the result.

    Once disengaged, retries stop and late results are discarded.
    """

    def __init__(self) -> None:
        self._active = True
        self.delivered: list[T] = []

    @property
    def active(self) -> bool:
        return self._active

    def disengage(self) -> None:
        self._active = False

    def deliver(self, result: T) -> bool:
        """Record a result if the caller is still engaged."""
        if not self._active:
            logger.debug("Discarding result delivered after disengagement")
            return False
        self.delivered.append(result)
        return True


def default_should_retry(error: BaseException, attempt: int) -> bool:
    """Retry every failure except calculation errors."""
    return not isinstance(error, CalculationError)


def payout_fetch_should_retry(error: BaseException, attempt: int) -> bool:
    """Retry predicate for payout fetches: authentication errors are final."""
    if isinstance(error, AuthenticationError):
        return False
    return default_should_retry(error, attempt)


async def execute_with_retry(
    operation: Callable[[], Awaitable[T]],
    policy: RetryPolicy | None = None,
    should_retry: ShouldRetry = default_should_retry,
    liveness: Liveness[T] | None = None,
    operation_name: str = "operation",
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> T:
    """Run ``operation`` with retries.

    Makes at most ``policy.max_retries + 1`` attempts.

    Raises:
        OperationTimeoutError: the final attempt timed out.
        OperationAbandoned: the caller disengaged between attempts.
        The last error from ``operation`` otherwise, unchanged.
    """
    policy = policy or RetryPolicy()
    last_error: BaseException | None = None

    for attempt in range(policy.max_retries + 1):
        if liveness is not None and not liveness.active:
            raise OperationAbandoned(last_error)

        try:
            result = await asyncio.wait_for(operation(), timeout=policy.timeout)
        except asyncio.TimeoutError:
            last_error = OperationTimeoutError(policy.timeout, operation_name)
        except Exception as e:
            last_error = e
        else:
            if liveness is not None and not liveness.deliver(result):
                raise OperationAbandoned(last_error)
            return result

        if attempt >= policy.max_retries or not should_retry(last_error, attempt):
            raise last_error

        delay = policy.delay_for(attempt)
        logger.warning(
            "%s failed (attempt %d/%d), retrying in %.1fs: %s",
            operation_name,
            attempt + 1,
            policy.max_retries + 1,
            delay,
            last_error,
        )
        await sleep(delay)

    # Unreachable: the loop either returns or raises
    raise last_error  # type: ignore[misc]
