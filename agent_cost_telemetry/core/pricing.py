"""
Pricing calculations for telemetry cost estimates.

Turns token counts into the ``estimatedCostUsd`` value agents report.
"""

from dataclasses import dataclass
from decimal import Decimal, ROUND_UP
from typing import Dict


@dataclass(frozen=True)
class TokenUsage:
    """Exact token counts of one model call."""
    input_tokens: int
    output_tokens: int

    @property
    def total_tokens(self) -> int:
        return self.input_tokens + self.output_tokens


@dataclass(frozen=True)
class ModelPricing:
    """Per-token pricing for a specific model."""
    input_cost_per_1k: Decimal  # USD per 1K input tokens
    output_cost_per_1k: Decimal  # USD per 1K output tokens


@dataclass(frozen=True)
class PricingTable:
    """Fixed pricing table for supported models."""
    prices: Dict[str, ModelPricing]

    def get_pricing(self, model: str) -> ModelPricing:
        """Get pricing for a specific model.

        Raises:
            ValueError: If model is not supported
        """
        if model not in self.prices:
            raise ValueError(f"Unsupported model: {model}")
        return self.prices[model]


PRICING_TABLE = PricingTable({
    "gpt-4o": ModelPricing(
        input_cost_per_1k=Decimal("0.0025"),
        output_cost_per_1k=Decimal("0.010"),
    ),
    "gpt-4o-mini": ModelPricing(
        input_cost_per_1k=Decimal("0.00015"),
        output_cost_per_1k=Decimal("0.0006"),
    ),
    "gpt-4": ModelPricing(
        input_cost_per_1k=Decimal("0.03"),
        output_cost_per_1k=Decimal("0.06"),
    ),
    "gpt-3.5-turbo": ModelPricing(
        input_cost_per_1k=Decimal("0.0005"),
        output_cost_per_1k=Decimal("0.0015"),
    ),
    "claude-3-opus": ModelPricing(
        input_cost_per_1k=Decimal("0.015"),
        output_cost_per_1k=Decimal("0.075"),
    ),
})

_PRECISION = Decimal("0.000001")


def estimate_cost_usd(model: str, usage: TokenUsage, table: PricingTable = PRICING_TABLE) -> float:
    """Estimate the USD cost of a call, rounded UP to micro-dollars.

    Raises:
        ValueError: If model is not supported
    """
    pricing = table.get_pricing(model)
    thousand = Decimal("1000")
    input_cost = (Decimal(usage.input_tokens) / thousand) * pricing.input_cost_per_1k
    output_cost = (Decimal(usage.output_tokens) / thousand) * pricing.output_cost_per_1k
    return float((input_cost + output_cost).quantize(_PRECISION, rounding=ROUND_UP))
