"""
Parallel Scan Orchestrator（fan-out / fan-in）。

关键约束：
- 同一份 prompt 并发发给 N 个 scanner 模型，**scanner 之间互相不可见**
- 每个 task 只写自己的结果槽位（按输入下标），结果顺序与 `scanner_model_ids` 一致
- 单个模型失败（重试耗尽）只记录为 FAILED，不取消、不阻塞其它模型
"""

from __future__ import annotations

import logging
import re
import time
from collections.abc import Sequence

import anyio

from review_panel.config import ReviewSettings
from review_panel.llm.client import CallError
from review_panel.llm.client import ModelCallClient
from review_panel.review.models import NormalizedDiff
from review_panel.review.models import ScanMetrics
from review_panel.review.models import ScannerOutcome
from review_panel.review.models import ScannerStatus
from review_panel.review.prompts import SCANNER_SYSTEM_PROMPT
from review_panel.review.prompts import build_scanner_prompt
from review_panel.review.prompts import estimate_tokens
from review_panel.review.prompts import truncate_diff

logger = logging.getLogger(__name__)

_NOTHING_TO_REPORT = re.compile(r"\blgtm\b|looks good", re.IGNORECASE)


def classify_response(text: str) -> ScannerStatus:
    """空输出或 LGTM / looks good 视为 SKIPPED（模型认为没有值得报告的问题）。"""
    if not text.strip():
        return "SKIPPED"
    if _NOTHING_TO_REPORT.search(text):
        return "SKIPPED"
    return "OK"


async def _run_single_scanner(
    client: ModelCallClient,
    model_id: str,
    prompt: str,
    settings: ReviewSettings,
) -> ScannerOutcome:
    start = time.perf_counter()
    try:
        result = await client.call(
            model_id=model_id,
            prompt=prompt,
            system_prompt=SCANNER_SYSTEM_PROMPT,
            max_tokens=settings.max_scanner_tokens,
            temperature=settings.scanner_temperature,
            timeout_ms=settings.per_call_timeout_ms,
        )
    except CallError as exc:
        duration_ms = round((time.perf_counter() - start) * 1000)
        logger.error(f"Scanner failed: model={model_id}, duration_ms={duration_ms}, error={exc}")
        return ScannerOutcome(
            model_id=model_id,
            tokens_used=0,
            duration_ms=duration_ms,
            status="FAILED",
            error_detail=str(exc),
        )
    except Exception as exc:
        # transport 不守约定（例如响应格式异常）也只算这一个模型失败
        duration_ms = round((time.perf_counter() - start) * 1000)
        logger.exception(f"Scanner crashed: model={model_id}, duration_ms={duration_ms}")
        return ScannerOutcome(
            model_id=model_id,
            tokens_used=0,
            duration_ms=duration_ms,
            status="FAILED",
            error_detail=f"{type(exc).__name__}: {exc}",
        )

    duration_ms = round((time.perf_counter() - start) * 1000)
    status = classify_response(result.text)
    logger.info(
        f"Scanner finished: model={model_id}, status={status}, tokens={result.tokens_used}, "
        f"duration_ms={duration_ms}, chars={len(result.text)}"
    )
    return ScannerOutcome(
        model_id=model_id,
        raw_text=result.text,
        tokens_used=result.tokens_used,
        duration_ms=duration_ms,
        status=status,
    )


async def scan(
    client: ModelCallClient,
    normalized_diff: NormalizedDiff,
    scanner_model_ids: Sequence[str],
    settings: ReviewSettings,
) -> list[ScannerOutcome]:
    """
    并发运行所有 scanner，等全部结束（成功或失败）后返回。

    - 输出：与 `scanner_model_ids` 等长、同序的 `ScannerOutcome` 列表
    - 失败：`scanner_model_ids` 为空抛 ValueError；单个模型失败不会让本函数失败
    """
    if not scanner_model_ids:
        raise ValueError("scanner_model_ids must not be empty")

    diff_text = truncate_diff(normalized_diff.combined_text, max_chars=settings.max_chars)
    prompt = build_scanner_prompt(diff=diff_text, language=settings.output_language)
    logger.info(
        f"Starting parallel scanners: models={list(scanner_model_ids)}, diff_length={len(diff_text)}, "
        f"estimated_prompt_tokens={estimate_tokens(prompt)}, "
        f"language={settings.output_language}"
    )

    results: list[ScannerOutcome | None] = [None] * len(scanner_model_ids)
    limiter = anyio.CapacityLimiter(settings.max_concurrency)

    async def run_slot(index: int, model_id: str) -> None:
        async with limiter:
            results[index] = await _run_single_scanner(
                client=client,
                model_id=model_id,
                prompt=prompt,
                settings=settings,
            )

    async with anyio.create_task_group() as tg:
        for index, model_id in enumerate(scanner_model_ids):
            tg.start_soon(run_slot, index, model_id)

    outcomes = [r for r in results if r is not None]
    if len(outcomes) != len(scanner_model_ids):
        raise RuntimeError("scanner task finished without recording an outcome")

    summarize_outcomes(outcomes)
    return outcomes


def summarize_outcomes(outcomes: Sequence[ScannerOutcome]) -> ScanMetrics:
    """聚合指标：最长耗时 + token 总和（只做观测，不影响后续流程）。"""
    metrics = ScanMetrics(
        total_tokens=sum(o.tokens_used for o in outcomes),
        max_duration_ms=max((o.duration_ms for o in outcomes), default=0),
        ok=sum(1 for o in outcomes if o.status == "OK"),
        skipped=sum(1 for o in outcomes if o.status == "SKIPPED"),
        failed=sum(1 for o in outcomes if o.status == "FAILED"),
    )
    logger.info(
        f"All scanners completed: ok={metrics.ok}, skipped={metrics.skipped}, failed={metrics.failed}, "
        f"total_tokens={metrics.total_tokens}, max_duration_ms={metrics.max_duration_ms}"
    )
    return metrics
