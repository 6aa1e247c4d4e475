"""Text-to-speech narration of generated scripts."""

from __future__ import annotations

import hashlib
from typing import Optional

import openai

from ..config import DEFAULT_TTS_MODEL, DEFAULT_TTS_VOICE
from .base import OpenAIServiceBase, translate_openai_error

# Upstream TTS rejects longer inputs.
MAX_TTS_CHARS = 4096


class OpenAISpeechService(OpenAIServiceBase):
    """Narrates text into mp3 bytes via the OpenAI speech endpoint."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        model: str = DEFAULT_TTS_MODEL,
        voice: str = DEFAULT_TTS_VOICE,
        speed: float = 1.0,
        use_mock: bool = True,
        timeout: float = 60.0,
    ) -> None:
        super().__init__(api_key=api_key, base_url=base_url, use_mock=use_mock, timeout=timeout)
        self._model = model
        self._voice = voice
        self._speed = speed

    async def synthesize(self, text: str) -> bytes:
        if not text.strip():
            raise ValueError("text to narrate is empty")
        if len(text) > MAX_TTS_CHARS:
            raise ValueError(f"text is too long for narration ({len(text)} > {MAX_TTS_CHARS} characters)")

        if self._use_mock:
            digest = hashlib.sha256(text.encode("utf-8")).hexdigest()
            return f"MOCK-MP3 voice={self._voice} sha256={digest}\n".encode("utf-8")

        client = self._resolve_client()
        try:
            response = await client.audio.speech.create(
                model=self._model,
                voice=self._voice,
                input=text,
                speed=self._speed,
                response_format="mp3",
            )
        except openai.OpenAIError as exc:
            raise translate_openai_error(exc) from exc
        return response.content
