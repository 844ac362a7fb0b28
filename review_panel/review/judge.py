"""
Judge Aggregator：把所有成功的 scanner 输出交给一个 judge 模型合并，再解析成 `FinalReview`。

致命错误只有两种：
- 没有任何 scanner 成功（`NoScannersSucceededError`）
- judge 调用本身在重试后仍失败（`JudgeCallError`）

解析阶段永远不抛异常，只退化到默认值（见 `parsing.py`）。
"""

from __future__ import annotations

import logging
import time
from collections.abc import Sequence

from review_panel.config import ReviewSettings
from review_panel.llm.client import CallError
from review_panel.llm.client import ModelCallClient
from review_panel.review.models import FinalReview
from review_panel.review.models import ScannerOutcome
from review_panel.review.parsing import apply_verdict_policy
from review_panel.review.parsing import count_severities
from review_panel.review.parsing import extract_summary
from review_panel.review.parsing import extract_verdict
from review_panel.review.parsing import parse_findings
from review_panel.review.pricing import estimate_cost
from review_panel.review.prompts import JUDGE_SYSTEM_PROMPT
from review_panel.review.prompts import build_judge_prompt

logger = logging.getLogger(__name__)


class ReviewError(RuntimeError):
    """review run 的致命错误基类。"""


class NoScannersSucceededError(ReviewError):
    def __init__(self, failed_models: Sequence[str]) -> None:
        super().__init__(f"all scanner models failed: {', '.join(failed_models)}")
        self.failed_models = tuple(failed_models)


class JudgeCallError(ReviewError):
    def __init__(self, judge_model_id: str, call_error: CallError) -> None:
        super().__init__(f"judge model {judge_model_id} failed: {call_error}")
        self.judge_model_id = judge_model_id
        self.call_error = call_error


async def judge(
    client: ModelCallClient,
    outcomes: Sequence[ScannerOutcome],
    judge_model_id: str,
    settings: ReviewSettings,
    language: str | None = None,
) -> FinalReview:
    """
    合并 scanner 输出并结构化。

    - 输入：全部 scanner outcome（FAILED 的会被过滤掉，不进 prompt）
    - 输出：`FinalReview`（verdict 按 `enforce_verdict_policy` 决定是否被策略覆盖）
    - 失败：`NoScannersSucceededError` / `JudgeCallError`
    """
    language = language or settings.output_language
    successful = [o for o in outcomes if o.succeeded]
    if not successful:
        logger.error("No successful scanner results to judge")
        raise NoScannersSucceededError([o.model_id for o in outcomes])

    prompt = build_judge_prompt(successful, language=language)
    logger.info(
        f"Starting judge aggregation: judge_model={judge_model_id}, scanners_to_merge={len(successful)}, "
        f"language={language}"
    )

    start = time.perf_counter()
    try:
        result = await client.call(
            model_id=judge_model_id,
            prompt=prompt,
            system_prompt=JUDGE_SYSTEM_PROMPT,
            max_tokens=settings.max_judge_tokens,
            temperature=settings.judge_temperature,
            timeout_ms=settings.per_call_timeout_ms,
        )
    except CallError as exc:
        logger.error(f"Judge failed: model={judge_model_id}, error={exc}")
        raise JudgeCallError(judge_model_id, exc) from exc
    duration_ms = round((time.perf_counter() - start) * 1000)

    text = result.text
    findings = parse_findings(text, language)
    parsed_verdict = extract_verdict(text, language)
    verdict = apply_verdict_policy(parsed_verdict, findings) if settings.enforce_verdict_policy else parsed_verdict
    if verdict != parsed_verdict:
        logger.info(f"Verdict overridden by policy: parsed={parsed_verdict}, final={verdict}")

    # 同一模型配置了两次时只列一次，保留首次出现的顺序
    contributing = tuple(dict.fromkeys(o.model_id for o in successful))
    tokens_used = sum(o.tokens_used for o in outcomes) + result.tokens_used
    review = FinalReview(
        summary=extract_summary(text, language),
        findings=tuple(findings),
        verdict=verdict,
        severity_counts=count_severities(findings),
        contributing_models=contributing,
        judge_model=judge_model_id,
        estimated_cost_usd=estimate_cost(tokens_used, scanner_ids=contributing, judge_id=judge_model_id),
        judge_output=text,
        tokens_used=tokens_used,
    )
    logger.info(
        f"Judge finished: tokens={result.tokens_used}, duration_ms={duration_ms}, findings={len(findings)}, "
        f"verdict={verdict}"
    )
    return review
