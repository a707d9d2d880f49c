"""Tests for retry policy and error classification."""

from __future__ import annotations

import asyncio

import pytest

from docqa.core.errors import (
    InvalidRequestError,
    ProviderError,
    ProviderTimeoutError,
    RateLimitedError,
    TransientProviderError,
    ValidationError,
    classify_provider_error,
)
from docqa.core.metrics import REGISTRY
from docqa.core.retry import RetryPolicy, call_with_retry


def test_delay_grows_linearly() -> None:
    policy = RetryPolicy(attempts=3, base_delay=1.5)
    assert [policy.delay_for(attempt) for attempt in (1, 2)] == [1.5, 3.0]


def test_policy_validates_arguments() -> None:
    with pytest.raises(ValueError):
        RetryPolicy(attempts=0)
    with pytest.raises(ValueError):
        RetryPolicy(base_delay=-1.0)


@pytest.mark.parametrize(
    ("exc", "expected"),
    [
        (RuntimeError("Rate limit reached"), RateLimitedError),
        (RuntimeError("HTTP 429"), RateLimitedError),
        (RuntimeError("invalid input"), InvalidRequestError),
        (RuntimeError("status 422"), InvalidRequestError),
        (ConnectionError("reset by peer"), TransientProviderError),
        (asyncio.TimeoutError(), ProviderTimeoutError),
        (RuntimeError("something else"), ProviderError),
    ],
)
def test_classify_provider_error(exc: Exception, expected: type) -> None:
    error = classify_provider_error(exc, provider="rerank")
    assert type(error) is expected
    assert error.provider == "rerank"


@pytest.mark.asyncio
async def test_call_with_retry_succeeds_after_failures() -> None:
    attempts = []

    async def flaky() -> str:
        attempts.append(1)
        if len(attempts) < 3:
            raise ConnectionError("temporary")
        return "ok"

    assert await call_with_retry(flaky, RetryPolicy(attempts=3, base_delay=0.0), name="embedding") == "ok"
    assert len(attempts) == 3


@pytest.mark.asyncio
async def test_call_with_retry_does_not_retry_validation_errors() -> None:
    attempts = []

    async def invalid() -> None:
        attempts.append(1)
        raise ValidationError("bad input")

    with pytest.raises(ValidationError):
        await call_with_retry(invalid, RetryPolicy(attempts=3, base_delay=0.0), name="embedding")
    assert len(attempts) == 1


@pytest.mark.asyncio
async def test_call_with_retry_converts_timeouts() -> None:
    async def slow() -> None:
        await asyncio.sleep(1.0)

    with pytest.raises(ProviderTimeoutError) as excinfo:
        await call_with_retry(slow, RetryPolicy(attempts=2, base_delay=0.0), name="embedding", timeout=0.01)
    assert excinfo.value.provider == "embedding"


@pytest.mark.asyncio
async def test_call_with_retry_preserves_cause() -> None:
    async def broken() -> None:
        raise RuntimeError("boom")

    with pytest.raises(ProviderError) as excinfo:
        await call_with_retry(broken, RetryPolicy(attempts=1, base_delay=0.0), name="rerank")
    assert isinstance(excinfo.value.__cause__, RuntimeError)


@pytest.mark.asyncio
async def test_retries_are_counted_and_invalid_requests_can_stop_early() -> None:
    before = REGISTRY.get_sample_value("docqa_provider_retries_total", {"operation": "counted"}) or 0.0
    attempts = []

    async def rejected() -> None:
        attempts.append(1)
        raise RuntimeError("invalid payload")

    with pytest.raises(InvalidRequestError):
        await call_with_retry(rejected, RetryPolicy(attempts=3, base_delay=0.0), name="counted")
    assert len(attempts) == 3
    assert REGISTRY.get_sample_value("docqa_provider_retries_total", {"operation": "counted"}) == before + 2

    attempts.clear()
    with pytest.raises(InvalidRequestError):
        await call_with_retry(
            rejected,
            RetryPolicy(attempts=3, base_delay=0.0, retry_invalid_requests=False),
            name="counted",
        )
    assert len(attempts) == 1


@pytest.mark.asyncio
async def test_waits_grow_by_base_delay(monkeypatch: pytest.MonkeyPatch) -> None:
    waits: list[float] = []

    async def fake_sleep(seconds: float) -> None:
        waits.append(seconds)

    monkeypatch.setattr(asyncio, "sleep", fake_sleep)

    async def always_down() -> None:
        raise ConnectionError("down")

    with pytest.raises(TransientProviderError):
        await call_with_retry(always_down, RetryPolicy(attempts=3, base_delay=0.5), name="embedding")
    assert waits == [0.5, 1.0]
