"""
Unit tests for pricing calculations.

Tests cost accuracy, rounding behavior, and error handling.
"""

import pytest
from decimal import Decimal

from agent_cost_telemetry.core.pricing import (
    PRICING_TABLE,
    ModelPricing,
    PricingTable,
    TokenUsage,
    estimate_cost_usd,
)


class TestTokenUsage:
    """Test TokenUsage dataclass."""

    def test_total_tokens_calculation(self):
        usage = TokenUsage(input_tokens=100, output_tokens=50)
        assert usage.total_tokens == 150

    def test_zero_tokens(self):
        usage = TokenUsage(input_tokens=0, output_tokens=0)
        assert usage.total_tokens == 0


class TestPricingTable:
    """Test pricing table functionality."""

    def test_get_supported_model(self):
        gpt4_pricing = PRICING_TABLE.get_pricing("gpt-4")
        assert gpt4_pricing.input_cost_per_1k == Decimal("0.03")
        assert gpt4_pricing.output_cost_per_1k == Decimal("0.06")

    def test_unsupported_model_raises_error(self):
        with pytest.raises(ValueError, match="Unsupported model: unknown-model"):
            PRICING_TABLE.get_pricing("unknown-model")


class TestCostEstimation:
    """Test cost estimation accuracy and rounding."""

    def test_exact_cost_gpt4(self):
        usage = TokenUsage(input_tokens=1000, output_tokens=500)
        # 1000/1000 * 0.03 + 500/1000 * 0.06
        assert estimate_cost_usd("gpt-4", usage) == 0.06

    def test_exact_cost_gpt35_turbo(self):
        usage = TokenUsage(input_tokens=2000, output_tokens=1000)
        # 2 * 0.0005 + 1 * 0.0015
        assert estimate_cost_usd("gpt-3.5-turbo", usage) == 0.0025

    def test_exact_cost_claude3_opus(self):
        usage = TokenUsage(input_tokens=1500, output_tokens=300)
        # 1.5 * 0.015 + 0.3 * 0.075
        assert estimate_cost_usd("claude-3-opus", usage) == 0.045

    def test_rounds_up_to_micro_dollars(self):
        usage = TokenUsage(input_tokens=1, output_tokens=1)
        # 0.00000015 + 0.0000006 = 0.00000075
        assert estimate_cost_usd("gpt-4o-mini", usage) == 0.000001

    def test_rounding_never_goes_down(self):
        usage = TokenUsage(input_tokens=1, output_tokens=0)
        # 0.0000025
        assert estimate_cost_usd("gpt-4o", usage) == 0.000003

    def test_zero_tokens_cost_nothing(self):
        assert estimate_cost_usd("gpt-4o", TokenUsage(0, 0)) == 0.0

    def test_unsupported_model(self):
        with pytest.raises(ValueError, match="Unsupported model: gpt-9"):
            estimate_cost_usd("gpt-9", TokenUsage(1, 1))

    def test_custom_table(self):
        table = PricingTable({
            "local-llm": ModelPricing(input_cost_per_1k=Decimal("1"), output_cost_per_1k=Decimal("2")),
        })
        assert estimate_cost_usd("local-llm", TokenUsage(500, 500), table) == 1.5
        with pytest.raises(ValueError):
            estimate_cost_usd("gpt-4", TokenUsage(1, 1), table)

    def test_result_is_valid_telemetry_cost(self):
        cost = estimate_cost_usd("gpt-4o", TokenUsage(123456, 7890))
        assert isinstance(cost, float)
        assert cost >= 0
