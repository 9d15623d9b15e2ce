"""Exponential backoff for rate-limited calls to external services."""

import asyncio
from collections.abc import Awaitable, Callable
from typing import TypeVar

from loguru import logger
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from .models import RetryPolicy

T = TypeVar("T")

RATE_LIMIT_STATUS = 429
RATE_LIMIT_MARKER = "RESOURCE_EXHAUSTED"


def _status_of(exc: BaseException) -> int | None:
    for attr in ("status", "status_code", "code"):
        value = getattr(exc, attr, None)
        if isinstance(value, int):
            return value
    response = getattr(exc, "response", None)
    status = getattr(response, "status_code", None)
    return status if isinstance(status, int) else None


def is_rate_limited(exc: BaseException) -> bool:
    """True for capacity errors (HTTP 429 or RESOURCE_EXHAUSTED), which are worth retrying."""
    return _status_of(exc) == RATE_LIMIT_STATUS or RATE_LIMIT_MARKER in str(exc)


class RetryingCaller:
    """Runs an async operation, backing off only while it is rate limited.

    Any other error propagates on the first attempt; retrying a malformed
    request or an auth failure would only hide it.
    """

    def __init__(self, policy: RetryPolicy, sleep: Callable[[float], Awaitable] = asyncio.sleep):
        self.policy = policy
        self._sleep = sleep

    def _log_retry(self, retry_state: RetryCallState) -> None:
        delay = retry_state.next_action.sleep if retry_state.next_action else 0
        retries_left = self.policy.max_attempts - retry_state.attempt_number + 1
        logger.warning(
            "Rate limit hit. Retrying in {}ms... ({} retries left)",
            int(delay * 1000),
            retries_left,
        )

    async def call(self, operation: Callable[[], Awaitable[T]]) -> T:
        retrying = AsyncRetrying(
            stop=stop_after_attempt(self.policy.max_attempts + 1),
            wait=wait_exponential(
                multiplier=self.policy.initial_delay,
                exp_base=self.policy.backoff_multiplier,
            ),
            retry=retry_if_exception(is_rate_limited),
            before_sleep=self._log_retry,
            sleep=self._sleep,
            reraise=True,
        )

        # tenacity awaits coroutine functions only; operation may be a lambda returning an awaitable
        async def attempt() -> T:
            return await operation()

        return await retrying(attempt)
