# PATH: core/retry.py
"""
Bounded exponential-backoff retries on top of tenacity.

Retries never run forever: after max_attempts the last exception is
re-raised to the caller unchanged.
"""

from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Tuple, Type, TypeVar

from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from core.logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class RetryPolicy:
    """Retry settings. Backoff doubles from initial_backoff up to max_backoff."""
    max_attempts: int = 3
    initial_backoff: float = 0.5
    max_backoff: float = 8.0


NO_RETRY = RetryPolicy(max_attempts=1, initial_backoff=0.0, max_backoff=0.0)


def _log_retry(retry_state: Any) -> None:
    exc = retry_state.outcome.exception() if retry_state.outcome else None
    logger.warning(
        f"Retrying after failure (attempt {retry_state.attempt_number})",
        extra={"context": {"attempt": retry_state.attempt_number, "error": str(exc)}},
    )


def retrying(
    policy: RetryPolicy,
    retry_on: Tuple[Type[BaseException], ...],
) -> AsyncRetrying:
    """Build an AsyncRetrying controller for `async for attempt in ...` use."""
    return AsyncRetrying(
        stop=stop_after_attempt(policy.max_attempts),
        wait=wait_exponential(
            multiplier=policy.initial_backoff,
            min=policy.initial_backoff,
            max=policy.max_backoff,
        ),
        retry=retry_if_exception_type(retry_on),
        before_sleep=_log_retry,
        reraise=True,
    )


async def call_with_retry(
    fn: Callable[..., Awaitable[T]],
    *args: Any,
    policy: RetryPolicy,
    retry_on: Tuple[Type[BaseException], ...],
    **kwargs: Any,
) -> T:
    """Await fn(*args, **kwargs) under the given retry policy."""
    async for attempt in retrying(policy, retry_on):
        with attempt:
            return await fn(*args, **kwargs)
    raise AssertionError("unreachable: tenacity re-raises on the final attempt")
