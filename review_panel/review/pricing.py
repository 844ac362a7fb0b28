"""
模型价格表（USD / 1M tokens）与成本估算。

价格只是估算值，以网关实际计费为准。
"""

from __future__ import annotations

from collections.abc import Sequence

from pydantic import BaseModel, ConfigDict, Field


class ModelPricing(BaseModel):
    model_config = ConfigDict(frozen=True)

    input_per_million: float = Field(ge=0)
    output_per_million: float = Field(ge=0)

    @property
    def blended_per_million(self) -> float:
        # 只拿到总 token 数时，输入/输出各按一半估算
        return (self.input_per_million + self.output_per_million) / 2


MODEL_PRICING: dict[str, ModelPricing] = {
    "openai/gpt-4o": ModelPricing(input_per_million=2.5, output_per_million=10),
    "anthropic/claude-3.5-sonnet": ModelPricing(input_per_million=3, output_per_million=15),
    "google/gemini-2.0-flash-001": ModelPricing(input_per_million=0.075, output_per_million=0.3),
    "moonshotai/kimi-k2": ModelPricing(input_per_million=0.5, output_per_million=2),
    "openai/gpt-4-turbo": ModelPricing(input_per_million=10, output_per_million=30),
}


def estimate_cost(tokens: int, scanner_ids: Sequence[str], judge_id: str) -> float:
    """
    - 输入：本次 run 的总 token 数、参与的 scanner 与 judge
    - 输出：tokens / 1M × 已知模型的平均 blended 单价；没有任何已知模型时为 0.0
    """
    if tokens <= 0:
        return 0.0
    rates = [
        MODEL_PRICING[model_id].blended_per_million
        for model_id in (*scanner_ids, judge_id)
        if model_id in MODEL_PRICING
    ]
    if not rates:
        return 0.0
    return tokens / 1_000_000 * (sum(rates) / len(rates))
