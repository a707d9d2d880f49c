"""Error taxonomy for the retrieval core."""

from __future__ import annotations

import asyncio


class RetrievalError(Exception):
    """Base exception for retrieval and reranking failures."""


class ValidationError(RetrievalError):
    """Raised for malformed input. Never retried."""


class ConfigurationError(RetrievalError):
    """Raised when collaborators are wired inconsistently."""


class ProviderError(RetrievalError):
    """Failure of an external embedding, search, or rerank call."""

    def __init__(self, message: str, provider: str | None = None) -> None:
        super().__init__(message)
        self.provider = provider


class RateLimitedError(ProviderError):
    """Provider rejected the call because of rate limiting."""


class InvalidRequestError(ProviderError):
    """Provider rejected the call as malformed; retrying will not help."""


class TransientProviderError(ProviderError):
    """Network hiccup, timeout, or similar condition worth retrying."""


class ProviderTimeoutError(TransientProviderError):
    """External call exceeded its configured timeout."""


class StageFailedError(RetrievalError):
    """A required pipeline stage failed; identifies which one."""

    def __init__(self, stage: str, cause: Exception) -> None:
        super().__init__(f"{stage} failed: {cause}")
        self.stage = stage
        self.cause = cause


def classify_provider_error(exc: BaseException, provider: str | None = None) -> ProviderError:
    """Map an arbitrary provider exception onto the typed hierarchy."""
    if isinstance(exc, ProviderError):
        return exc
    if isinstance(exc, (asyncio.TimeoutError, TimeoutError)):
        return ProviderTimeoutError(f"{provider or 'provider'} call timed out", provider=provider)
    message = str(exc) or exc.__class__.__name__
    lowered = message.lower()
    if "rate limit" in lowered or "429" in lowered:
        return RateLimitedError(f"{provider or 'provider'} rate limit exceeded: {message}", provider=provider)
    if "invalid" in lowered or "400" in lowered or "422" in lowered:
        return InvalidRequestError(f"invalid request to {provider or 'provider'}: {message}", provider=provider)
    if isinstance(exc, ConnectionError):
        return TransientProviderError(f"{provider or 'provider'} connection failed: {message}", provider=provider)
    return ProviderError(f"{provider or 'provider'} error: {message}", provider=provider)


__all__ = [
    "ConfigurationError",
    "InvalidRequestError",
    "ProviderError",
    "ProviderTimeoutError",
    "RateLimitedError",
    "RetrievalError",
    "StageFailedError",
    "TransientProviderError",
    "ValidationError",
    "classify_provider_error",
]
