"""Translation of finished scripts into other languages."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Optional

import openai

from ..config import DEFAULT_MODEL
from ..errors import GenerationError
from ..types import TokenUsage
from ..utils.prompts import load_prompt
from .base import OpenAIServiceBase, extract_text, translate_openai_error, usage_from_response

LANGUAGE_NAMES: Dict[str, str] = {
    "english": "English",
    "chinese": "Chinese (Simplified)",
    "vietnamese": "Vietnamese",
}


@dataclass(frozen=True, slots=True)
class TranslationResult:
    content: str
    usage: Optional[TokenUsage] = None


class OpenAITranslator(OpenAIServiceBase):
    """Translates scripts while keeping their Markdown structure intact."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        model: str = DEFAULT_MODEL,
        use_mock: bool = True,
        timeout: float = 60.0,
        temperature: float = 0.3,
    ) -> None:
        super().__init__(api_key=api_key, base_url=base_url, use_mock=use_mock, timeout=timeout)
        self._model = model
        self._temperature = temperature

    async def translate(
        self, content: str, target_language: str, context: str | None = None
    ) -> TranslationResult:
        if target_language not in LANGUAGE_NAMES:
            raise ValueError(
                f"Unsupported target language {target_language!r}; expected one of {sorted(LANGUAGE_NAMES)}"
            )
        if not content.strip():
            raise ValueError("content to translate is empty")
        language_name = LANGUAGE_NAMES[target_language]

        if self._use_mock:
            return TranslationResult(content=f"[{language_name}]\n{content}", usage=TokenUsage())

        context_line = f"Context: {context}\n\n" if context else ""
        user_prompt = f"{context_line}Translate the following text to {language_name}:\n\n{content}"
        client = self._resolve_client()
        try:
            response = await client.chat.completions.create(
                model=self._model,
                temperature=self._temperature,
                messages=[
                    {
                        "role": "system",
                        "content": load_prompt("translate_system", {"language_name": language_name}).strip(),
                    },
                    {"role": "user", "content": user_prompt},
                ],
            )
        except openai.OpenAIError as exc:
            raise translate_openai_error(exc) from exc

        translated = (extract_text(response) or "").strip()
        if not translated:
            raise GenerationError("Empty translation received", status_code=502)
        return TranslationResult(content=translated, usage=usage_from_response(response))
