"""Exception hierarchy shared by services and the batch orchestrator."""

from __future__ import annotations


class SpeechGenError(Exception):
    """Base exception for the speechgen package."""


class ConfigError(SpeechGenError):
    """Raised when the generator configuration is unusable."""


class PageSelectionError(SpeechGenError):
    """Raised when a page selection string cannot be applied."""


class GenerationError(SpeechGenError):
    """Non-retryable failure reported by a generation service."""

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class RateLimitedError(GenerationError):
    """Upstream signalled a rate limit (HTTP 429 or a rate-limit message)."""


class TransientNetworkError(GenerationError):
    """Transport-level failure (connection reset, timeout) before a response arrived."""


class GenerationCancelled(SpeechGenError):
    """The run was deliberately stopped by the caller.

    This is the only exception used for control flow: it unwinds a batch without
    marking the pages that were never attempted as failed.
    """


def _status_code(exc: BaseException) -> int | None:
    candidates = [
        getattr(exc, "status_code", None),
        getattr(exc, "status", None),
        getattr(exc, "http_status", None),
    ]
    response = getattr(exc, "response", None)
    if response is not None:
        candidates.extend([getattr(response, "status_code", None), getattr(response, "status", None)])
    for code in candidates:
        if isinstance(code, int):
            return code
    return None


def is_rate_limit_message(text: str) -> bool:
    """Return True when ``text`` carries the rate-limit marker."""
    return "rate limit" in text.lower()


def classify_failure(exc: Exception) -> GenerationError:
    """Map an arbitrary service exception onto the retry taxonomy."""
    if isinstance(exc, GenerationError):
        return exc
    message = str(exc) or exc.__class__.__name__
    status = _status_code(exc)
    if status == 429 or is_rate_limit_message(message):
        return RateLimitedError(message, status_code=status)
    if isinstance(exc, (ConnectionError, TimeoutError)):
        return TransientNetworkError(message, status_code=status)
    return GenerationError(message, status_code=status)


__all__ = [
    "ConfigError",
    "GenerationCancelled",
    "GenerationError",
    "PageSelectionError",
    "RateLimitedError",
    "SpeechGenError",
    "TransientNetworkError",
    "classify_failure",
    "is_rate_limit_message",
]
