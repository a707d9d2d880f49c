"""Bounded retry for external provider calls.

Built on ``tenacity.AsyncRetrying``: attempt ``n`` that fails waits
``base_delay * n`` seconds before attempt ``n + 1``. Each attempt can be
bounded by a timeout, and a timeout counts as a transient failure. Failures
are classified into ``ProviderError`` subclasses before the retry decision, so
the last classified error is what callers see on exhaustion.
``ValidationError`` is never retried.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Awaitable, Callable, TypeVar

from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception,
    stop_after_attempt,
    wait_incrementing,
)

from docqa.core.errors import (
    InvalidRequestError,
    ProviderError,
    ProviderTimeoutError,
    ValidationError,
    classify_provider_error,
)
from docqa.core.logging import get_logger, log_context
from docqa.core.metrics import PROVIDER_RETRIES

logger = get_logger(__name__)

T = TypeVar("T")


@dataclass(frozen=True, slots=True)
class RetryPolicy:
    attempts: int = 3
    base_delay: float = 1.0
    # InvalidRequestError will not succeed on retry; callers may opt out.
    retry_invalid_requests: bool = True

    def __post_init__(self) -> None:
        if self.attempts < 1:
            raise ValueError("attempts must be at least 1")
        if self.base_delay < 0:
            raise ValueError("base_delay must be non-negative")

    def delay_for(self, attempt: int) -> float:
        return self.base_delay * attempt

    def is_retryable(self, exc: BaseException) -> bool:
        if not isinstance(exc, ProviderError):
            return False
        if isinstance(exc, InvalidRequestError) and not self.retry_invalid_requests:
            return False
        return True


async def _classified(
    operation: Callable[[], Awaitable[T]], name: str, timeout: float | None
) -> T:
    try:
        if timeout is not None:
            return await asyncio.wait_for(operation(), timeout=timeout)
        return await operation()
    except ValidationError:
        raise
    except asyncio.TimeoutError as exc:
        raise ProviderTimeoutError(f"{name} call exceeded {timeout}s timeout", provider=name) from exc
    except Exception as exc:  # noqa: BLE001 - provider SDKs raise arbitrary types
        error = classify_provider_error(exc, provider=name)
        if error is exc:
            raise
        raise error from exc


async def call_with_retry(
    operation: Callable[[], Awaitable[T]],
    policy: RetryPolicy,
    *,
    name: str,
    timeout: float | None = None,
) -> T:
    """Run ``operation`` under ``policy``, raising a typed ProviderError on exhaustion."""

    def before_sleep(state: RetryCallState) -> None:
        PROVIDER_RETRIES.labels(operation=name).inc()
        logger.warning(
            "Retrying %s (attempt %d/%d) in %.2fs: %s",
            name,
            state.attempt_number + 1,
            policy.attempts,
            state.next_action.sleep if state.next_action else 0.0,
            state.outcome.exception() if state.outcome else None,
        )

    retrying = AsyncRetrying(
        stop=stop_after_attempt(policy.attempts),
        wait=wait_incrementing(start=policy.base_delay, increment=policy.base_delay),
        retry=retry_if_exception(policy.is_retryable),
        before_sleep=before_sleep,
        reraise=True,
    )
    try:
        return await retrying(_classified, operation, name, timeout)
    except ProviderError as error:
        attempts = retrying.statistics.get("attempt_number", 1)
        logger.error(
            "%s failed after %d attempt(s): %s",
            name,
            attempts,
            error,
            extra=log_context(operation=name, attempts=attempts),
        )
        raise


__all__ = ["RetryPolicy", "call_with_retry"]
