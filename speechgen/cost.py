"""Token pricing and cost estimation."""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Dict

from .types import CostBreakdown, TokenUsage

USD_TO_KRW = 1350


@dataclass(frozen=True, slots=True)
class ModelPricing:
    """USD price per thousand tokens."""

    input_per_thousand_tokens: float
    output_per_thousand_tokens: float


MODEL_PRICING: Dict[str, ModelPricing] = {
    "gpt-4o-mini": ModelPricing(input_per_thousand_tokens=0.00015, output_per_thousand_tokens=0.0006),
    "gpt-4o": ModelPricing(input_per_thousand_tokens=0.0025, output_per_thousand_tokens=0.01),
}
DEFAULT_PRICING = MODEL_PRICING["gpt-4o-mini"]


def round_currency(value: float) -> float:
    return math.floor(value * 10000 + 0.5) / 10000


def pricing_for(model: str) -> ModelPricing:
    """Return the pricing entry for ``model``, falling back to gpt-4o-mini."""
    return MODEL_PRICING.get(model, DEFAULT_PRICING)


def estimate_usage_cost(usage: TokenUsage, pricing: ModelPricing = DEFAULT_PRICING) -> CostBreakdown:
    """Convert token usage into a rounded cost breakdown."""
    input_tokens = max(usage.prompt_tokens, 0)
    output_tokens = max(usage.completion_tokens, 0)

    input_cost = round_currency(input_tokens / 1000 * pricing.input_per_thousand_tokens)
    output_cost = round_currency(output_tokens / 1000 * pricing.output_per_thousand_tokens)
    return CostBreakdown(
        input_cost=input_cost,
        output_cost=output_cost,
        total_cost=round_currency(input_cost + output_cost),
    )


def to_krw(cost_usd: float) -> int:
    """Approximate KRW amount for display."""
    return round(cost_usd * USD_TO_KRW)
