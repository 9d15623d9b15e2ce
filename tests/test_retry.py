"""Tests for rate-limit aware retrying."""

import asyncio
from types import SimpleNamespace

import pytest

from visionquest.exceptions import GenerationError, RateLimitedError
from visionquest.models import RetryPolicy
from visionquest.retry import RetryingCaller, is_rate_limited

POLICY = RetryPolicy(max_attempts=3, initial_delay_ms=2000, backoff_multiplier=2)


def failing(errors, result="ok"):
    """Operation raising each of ``errors`` in turn, then returning ``result``."""
    state = {"calls": 0}
    errors = list(errors)

    async def operation():
        state["calls"] += 1
        if errors:
            raise errors.pop(0)
        return result

    operation.state = state
    return operation


class TestIsRateLimited:
    def test_status_attribute(self):
        assert is_rate_limited(GenerationError("slow down", status=429))

    def test_message_marker(self):
        assert is_rate_limited(Exception("429 RESOURCE_EXHAUSTED: quota"))

    def test_status_code_attribute(self):
        exc = Exception("boom")
        exc.status_code = 429
        assert is_rate_limited(exc)

    def test_attached_response(self):
        exc = Exception("boom")
        exc.response = SimpleNamespace(status_code=429)
        assert is_rate_limited(exc)

    @pytest.mark.parametrize("exc", [GenerationError("bad request", status=400), ValueError("nope"), Exception("401")])
    def test_other_errors(self, exc):
        assert not is_rate_limited(exc)


class TestRetryingCaller:
    def test_success_without_retry(self, sleep):
        op = failing([])
        assert asyncio.run(RetryingCaller(POLICY, sleep=sleep).call(op)) == "ok"
        assert op.state["calls"] == 1
        assert sleep.delays == []

    def test_backs_off_exponentially_until_success(self, sleep):
        op = failing([RateLimitedError()] * 3, result="insight")

        result = asyncio.run(RetryingCaller(POLICY, sleep=sleep).call(op))

        assert result == "insight"
        assert op.state["calls"] == 4
        assert sleep.delays == [2.0, 4.0, 8.0]
        assert sum(sleep.delays) == 14.0

    def test_exhausted_attempts_raise_last_error(self, sleep):
        errors = [RateLimitedError(f"RESOURCE_EXHAUSTED {i}") for i in range(4)]
        op = failing(errors)

        with pytest.raises(RateLimitedError, match="RESOURCE_EXHAUSTED 3"):
            asyncio.run(RetryingCaller(POLICY, sleep=sleep).call(op))
        assert op.state["calls"] == 4
        assert sleep.delays == [2.0, 4.0, 8.0]

    def test_hard_failure_propagates_immediately(self, sleep):
        op = failing([GenerationError("API key not valid", status=400)])

        with pytest.raises(GenerationError, match="API key not valid"):
            asyncio.run(RetryingCaller(POLICY, sleep=sleep).call(op))
        assert op.state["calls"] == 1
        assert sleep.delays == []

    def test_hard_failure_after_rate_limit(self, sleep):
        op = failing([RateLimitedError(), ValueError("malformed")])

        with pytest.raises(ValueError):
            asyncio.run(RetryingCaller(POLICY, sleep=sleep).call(op))
        assert sleep.delays == [2.0]

    def test_zero_attempts_never_retries(self, sleep):
        policy = RetryPolicy(max_attempts=0, initial_delay_ms=500, backoff_multiplier=3)
        op = failing([RateLimitedError()])

        with pytest.raises(RateLimitedError):
            asyncio.run(RetryingCaller(policy, sleep=sleep).call(op))
        assert sleep.delays == []

    def test_custom_multiplier(self, sleep):
        policy = RetryPolicy(max_attempts=2, initial_delay_ms=500, backoff_multiplier=3)
        op = failing([RateLimitedError(), RateLimitedError()])

        asyncio.run(RetryingCaller(policy, sleep=sleep).call(op))
        assert sleep.delays == pytest.approx([0.5, 1.5])

    def test_plain_callable_returning_awaitable(self, sleep):
        op = failing([RateLimitedError()], result="from thread")

        result = asyncio.run(RetryingCaller(POLICY, sleep=sleep).call(lambda: op()))

        assert result == "from thread"
        assert op.state["calls"] == 2
        assert sleep.delays == [2.0]

    def test_to_thread_operation_is_awaited(self, sleep):
        calls = []

        def blocking():
            calls.append(1)
            return "done"

        result = asyncio.run(RetryingCaller(POLICY, sleep=sleep).call(lambda: asyncio.to_thread(blocking)))

        assert result == "done"
        assert calls == [1]


class TestRetryPolicy:
    @pytest.mark.parametrize(
        "kwargs",
        [
            {"max_attempts": -1, "initial_delay_ms": 1, "backoff_multiplier": 2},
            {"max_attempts": 1, "initial_delay_ms": 0, "backoff_multiplier": 2},
            {"max_attempts": 1, "initial_delay_ms": 1, "backoff_multiplier": 1},
        ],
    )
    def test_invalid_values_rejected(self, kwargs):
        with pytest.raises(ValueError):
            RetryPolicy(**kwargs)

    def test_initial_delay_in_seconds(self):
        assert POLICY.initial_delay == 2.0
