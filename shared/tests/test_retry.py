"""
Tests for the retry decorator.
"""

import pytest

from shared.retry import RetryConfig, RetryError, retry_on_exception

NO_DELAY = RetryConfig(max_attempts=3, base_delay=0, jitter=False)


@pytest.mark.asyncio
async def test_succeeds_after_transient_failures():
    calls = []

    @retry_on_exception((ConnectionError,), config=NO_DELAY)
    async def flaky():
        calls.append(1)
        if len(calls) < 3:
            raise ConnectionError("down")
        return "ok"

    assert await flaky() == "ok"
    assert len(calls) == 3


@pytest.mark.asyncio
async def test_gives_up_after_max_attempts():
    """The final failure is wrapped in RetryError."""
    @retry_on_exception((ConnectionError,), config=NO_DELAY)
    async def broken():
        raise ConnectionError("down")

    with pytest.raises(RetryError) as exc_info:
        await broken()

    assert exc_info.value.attempts == 3
    assert isinstance(exc_info.value.last_exception, ConnectionError)


@pytest.mark.asyncio
async def test_other_exceptions_are_not_retried():
    calls = []

    @retry_on_exception((ConnectionError,), config=NO_DELAY)
    async def rejected():
        calls.append(1)
        raise ValueError("bad input")

    with pytest.raises(ValueError):
        await rejected()
    assert len(calls) == 1


def test_backoff_is_exponential_and_capped():
    config = RetryConfig(base_delay=0.5, max_delay=3.0, jitter=False)
    assert [config.delay_for(n) for n in range(1, 6)] == [0.5, 1.0, 2.0, 3.0, 3.0]


def test_jitter_stays_within_ten_percent():
    config = RetryConfig(base_delay=1.0, jitter=True)
    for _ in range(50):
        assert 0.9 <= config.delay_for(1) <= 1.1
