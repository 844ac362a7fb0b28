from __future__ import annotations

import pytest

from review_panel.review.pricing import MODEL_PRICING
from review_panel.review.pricing import estimate_cost


def test_blended_rate() -> None:
    assert MODEL_PRICING["openai/gpt-4o"].blended_per_million == pytest.approx(6.25)


def test_estimate_cost_averages_known_models() -> None:
    cost = estimate_cost(1_000_000, scanner_ids=["openai/gpt-4o", "unknown/model"], judge_id="anthropic/claude-3.5-sonnet")
    # (6.25 + 9.0) / 2
    assert cost == pytest.approx(7.625)


def test_estimate_cost_unknown_models_or_no_tokens() -> None:
    assert estimate_cost(5_000, scanner_ids=["a/b"], judge_id="c/d") == 0.0
    assert estimate_cost(0, scanner_ids=["openai/gpt-4o"], judge_id="openai/gpt-4o") == 0.0
