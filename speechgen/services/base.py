"""Service protocols and shared OpenAI client plumbing."""

from __future__ import annotations

import asyncio
from typing import Optional, Protocol

import openai
from openai import AsyncOpenAI

from ..errors import (
    GenerationError,
    RateLimitedError,
    TransientNetworkError,
    is_rate_limit_message,
)
from ..types import GenerationOptions, PageDescriptor, PageScript, TokenUsage


class ScriptService(Protocol):
    """Turns one page image into a spoken-style script."""

    async def generate(self, topic: str, page: PageDescriptor, options: GenerationOptions) -> PageScript:
        ...


class Translator(Protocol):
    """Translates a finished script into another language."""

    async def translate(self, content: str, target_language: str, context: str | None = None):
        ...


class SpeechSynthesizer(Protocol):
    """Narrates text and returns encoded audio bytes."""

    async def synthesize(self, text: str) -> bytes:
        ...


def translate_openai_error(exc: openai.OpenAIError) -> GenerationError:
    """Map OpenAI SDK failures onto the retry taxonomy."""
    message = str(exc) or exc.__class__.__name__
    if isinstance(exc, openai.RateLimitError):
        return RateLimitedError(message, status_code=429)
    if isinstance(exc, (openai.APITimeoutError, openai.APIConnectionError)):
        return TransientNetworkError(message)
    if isinstance(exc, openai.APIStatusError):
        if is_rate_limit_message(message):
            return RateLimitedError(message, status_code=exc.status_code)
        return GenerationError(message, status_code=exc.status_code)
    return GenerationError(message)


def usage_from_response(response) -> Optional[TokenUsage]:
    """Read token usage from an OpenAI-compatible response, if reported."""
    usage = getattr(response, "usage", None)
    if usage is None:
        return None
    return TokenUsage(
        prompt_tokens=getattr(usage, "prompt_tokens", None) or 0,
        completion_tokens=getattr(usage, "completion_tokens", None) or 0,
        total_tokens=getattr(usage, "total_tokens", None) or 0,
    )


def extract_text(response) -> str | None:
    """Extract assistant text content from OpenAI-compatible responses."""
    choices = getattr(response, "choices", None)
    if not choices:
        return None
    message = getattr(choices[0], "message", None)
    content = getattr(message, "content", None) if message is not None else None
    if isinstance(content, str):
        return content
    return None


class OpenAIServiceBase:
    """Lazily builds one ``AsyncOpenAI`` client per service instance.

    SDK-level retries are disabled: the batch orchestrator owns the retry budget.
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        use_mock: bool = True,
        timeout: float = 60.0,
    ) -> None:
        self._api_key = api_key
        self._base_url = base_url
        self._use_mock = use_mock
        self._timeout = timeout
        self._client: AsyncOpenAI | None = None
        self._client_loop: asyncio.AbstractEventLoop | None = None

    @property
    def use_mock(self) -> bool:
        return self._use_mock

    def _resolve_client(self) -> AsyncOpenAI:
        # the underlying HTTP pool is bound to the loop that created it
        loop = asyncio.get_running_loop()
        if self._client is not None and self._client_loop is loop:
            return self._client
        if not self._api_key:
            raise GenerationError("OpenAI API key is missing; cannot call the service.")
        self._client = AsyncOpenAI(
            api_key=self._api_key,
            base_url=self._base_url,
            timeout=self._timeout,
            max_retries=0,
        )
        self._client_loop = loop
        return self._client
