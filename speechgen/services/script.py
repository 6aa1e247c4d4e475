"""Vision-model client that writes TTS-ready scripts for product pages."""

from __future__ import annotations

import logging
from typing import Dict, Optional

import openai

from ..config import DEFAULT_MODEL
from ..cost import estimate_usage_cost, pricing_for
from ..errors import GenerationError
from ..tokens import estimate_token_count
from ..types import (
    GenerationOptions,
    LengthOption,
    PageDescriptor,
    PageScript,
    ToneOption,
    TokenUsage,
)
from ..utils.prompts import load_prompt
from .base import OpenAIServiceBase, extract_text, translate_openai_error, usage_from_response

logger = logging.getLogger(__name__)

MAX_TOKENS = 800
STYLE_PROMPT_VERSION = "v1"
# Rough flat charge for one low-detail page image.
IMAGE_TOKEN_ESTIMATE = 85

LENGTH_GUIDANCE: Dict[LengthOption, str] = {
    LengthOption.SHORT: "Keep it short: 2-3 paragraphs with short sentences (about 120-180 tokens).",
    LengthOption.MEDIUM: "Intro, problem, solution, key coverage, closing; 3-4 paragraphs (about 250-400 tokens).",
    LengthOption.LONG: "Full six-part structure with examples and comparisons (about 500-700 tokens).",
}

TONE_GUIDANCE: Dict[ToneOption, str] = {
    ToneOption.BASIC: "Consultative explaining tone, consistently polite, natural spoken style.",
    ToneOption.PERSUASIVE: "Advertising tone with strong calls to action.",
    ToneOption.EXPLANATORY: "Plain explanations built around examples and empathetic questions.",
    ToneOption.BULLET: "List the key points as 'first, second, third' and stress the numbers.",
}


def build_page_prompt(topic: str, page: PageDescriptor, options: GenerationOptions) -> str:
    """Render the per-page user prompt."""
    return load_prompt(
        "script_page",
        {
            "topic": topic.strip() or "No topic was specified.",
            "page_number": page.number,
            "length_guidance": LENGTH_GUIDANCE[options.length],
            "tone_guidance": TONE_GUIDANCE[options.tone],
            "delivery": options.delivery,
        },
    ).strip()


class OpenAIScriptService(OpenAIServiceBase):
    """Generates page scripts through an OpenAI vision chat model with mock fallback."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        model: str = DEFAULT_MODEL,
        use_mock: bool = True,
        timeout: float = 60.0,
        max_tokens: int = MAX_TOKENS,
    ) -> None:
        super().__init__(api_key=api_key, base_url=base_url, use_mock=use_mock, timeout=timeout)
        self._model = model
        self._max_tokens = max_tokens
        self._pricing = pricing_for(model)

    @property
    def model(self) -> str:
        return self._model

    async def generate(self, topic: str, page: PageDescriptor, options: GenerationOptions) -> PageScript:
        """Return the generated script for ``page`` with usage and cost."""
        prompt = build_page_prompt(topic, page, options)
        if self._use_mock:
            return self._mock_script(topic, page, options, prompt)

        client = self._resolve_client()
        system_prompt = f"{load_prompt('script_system').strip()}\n\nPrompt-Version: {STYLE_PROMPT_VERSION}"
        try:
            response = await client.chat.completions.create(
                model=self._model,
                max_tokens=self._max_tokens,
                messages=[
                    {"role": "system", "content": system_prompt},
                    {
                        "role": "user",
                        "content": [
                            {"type": "text", "text": prompt},
                            {"type": "image_url", "image_url": {"url": page.image_data}},
                        ],
                    },
                ],
            )
        except openai.OpenAIError as exc:
            raise translate_openai_error(exc) from exc

        content = (extract_text(response) or "").strip()
        if not content:
            raise GenerationError(f"Empty completion received for page {page.number}", status_code=502)

        usage = usage_from_response(response)
        cost = estimate_usage_cost(usage, self._pricing) if usage is not None else None
        logger.debug("Page %d generated (%d chars)", page.number, len(content))
        return PageScript(page_index=page.index, content=content, usage=usage, cost=cost)

    def _mock_script(
        self, topic: str, page: PageDescriptor, options: GenerationOptions, prompt: str
    ) -> PageScript:
        """Deterministic local fallback used for testing."""
        title = topic.strip() or "Insurance product"
        lines = [
            f"- **Title:** {title} - page {page.number} (TTS optimised)",
            "",
            "Hello, and thank you for your time today.",
            f"Let me walk you through page {page.number} of {title}.",
            "First, the key coverage. Second, the premium. Third, how to apply.",
            f"(length: {options.length.value}, tone: {options.tone.value}, delivery: {options.delivery})",
        ]
        content = "\n".join(lines)
        prompt_tokens = estimate_token_count(prompt) + IMAGE_TOKEN_ESTIMATE
        completion_tokens = estimate_token_count(content)
        usage = TokenUsage(
            prompt_tokens=prompt_tokens,
            completion_tokens=completion_tokens,
            total_tokens=prompt_tokens + completion_tokens,
        )
        return PageScript(
            page_index=page.index,
            content=content,
            usage=usage,
            cost=estimate_usage_cost(usage, self._pricing),
        )
