"""
tests/unit/test_retry.py - Bounded retry helper.
"""

import pytest

from core.exceptions import ErrorCode, InfraError, QuoteError
from core.retry import NO_RETRY, RetryPolicy, call_with_retry

FAST = RetryPolicy(max_attempts=3, initial_backoff=0.0, max_backoff=0.0)


def _flaky(failures: int, exc: Exception):
    calls = []

    async def fn(value):
        calls.append(value)
        if len(calls) <= failures:
            raise exc
        return value * 2

    return fn, calls


class TestCallWithRetry:
    @pytest.mark.asyncio
    async def test_recovers_within_budget(self):
        fn, calls = _flaky(2, InfraError(code=ErrorCode.INFRA_RPC_ERROR, message="down"))
        assert await call_with_retry(fn, 21, policy=FAST, retry_on=(InfraError,)) == 42
        assert len(calls) == 3

    @pytest.mark.asyncio
    async def test_last_error_reraised_unchanged(self):
        error = InfraError(code=ErrorCode.INFRA_RPC_ERROR, message="down")
        fn, calls = _flaky(5, error)
        with pytest.raises(InfraError) as exc_info:
            await call_with_retry(fn, 1, policy=FAST, retry_on=(InfraError,))
        assert exc_info.value is error
        assert len(calls) == 3

    @pytest.mark.asyncio
    async def test_other_errors_not_retried(self):
        fn, calls = _flaky(5, QuoteError(code=ErrorCode.QUOTE_REVERT, message="revert"))
        with pytest.raises(QuoteError):
            await call_with_retry(fn, 1, policy=FAST, retry_on=(InfraError,))
        assert len(calls) == 1

    @pytest.mark.asyncio
    async def test_no_retry_policy(self):
        fn, calls = _flaky(1, InfraError(code=ErrorCode.INFRA_RPC_ERROR, message="down"))
        with pytest.raises(InfraError):
            await call_with_retry(fn, 1, policy=NO_RETRY, retry_on=(InfraError,))
        assert len(calls) == 1
