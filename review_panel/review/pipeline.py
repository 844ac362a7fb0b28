"""
Review Pipeline（composition root）。

流程由工程代码控制，顺序固定：
fetch diff -> normalize -> parallel scan -> judge -> upsert PR comment

只有两种致命错误会从 `run()` 抛出（`NoScannersSucceededError` / `JudgeCallError`）；
抛出之前会先尽量在 PR 上留一条失败说明，避免 PR 上没有任何反馈。
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass

from review_panel.config import ReviewSettings
from review_panel.llm.client import ModelCallClient
from review_panel.review.comment import ALL_SCANNERS_FAILED_MESSAGE
from review_panel.review.comment import build_failure_comment
from review_panel.review.comment import build_no_changes_comment
from review_panel.review.comment import build_review_comment
from review_panel.review.diff import calculate_pr_size
from review_panel.review.diff import filter_files_by_extension
from review_panel.review.diff import filter_out_test_files
from review_panel.review.diff import normalize_diff
from review_panel.review.interfaces import CommentSink
from review_panel.review.interfaces import DiffSource
from review_panel.review.judge import NoScannersSucceededError
from review_panel.review.judge import ReviewError
from review_panel.review.judge import judge
from review_panel.review.models import FileChange
from review_panel.review.models import FinalReview
from review_panel.review.models import ScannerOutcome
from review_panel.review.models import TruncationInfo
from review_panel.review.scanner import scan

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ReviewPipeline:
    """一次 review run 的运行时依赖（每次显式注入，不使用全局单例）。"""

    diff_source: DiffSource
    comment_sink: CommentSink
    client: ModelCallClient
    settings: ReviewSettings

    def _select_files(self, files: Sequence[FileChange]) -> list[FileChange]:
        selected = list(files)
        if self.settings.include_extensions:
            selected = filter_files_by_extension(selected, self.settings.include_extensions)
        if self.settings.exclude_test_files:
            selected = filter_out_test_files(selected)
        if len(selected) != len(files):
            logger.info(f"Filtered changed files: before={len(files)}, after={len(selected)}")
        return selected

    async def run(self, pr_id: int) -> FinalReview | None:
        """
        跑一次完整 review。

        - 输出：`FinalReview`；diff 为空时只回写 “no changes” 评论并返回 None
        - 失败：`NoScannersSucceededError` / `JudgeCallError`（已回写失败评论）
        """
        marker = self.settings.comment_marker
        head_sha = await self.diff_source.fetch_head_commit(pr_id)
        files = self._select_files(await self.diff_source.fetch_files(pr_id))
        size = calculate_pr_size(files)
        logger.info(
            f"Review started: pr={pr_id}, head_sha={head_sha}, files={size.files_changed}, "
            f"additions={size.additions}, deletions={size.deletions}, size={size.category}"
        )

        normalized = normalize_diff(files, max_files=self.settings.max_files, max_chars=self.settings.max_chars)
        if normalized.truncation.was_truncated:
            logger.warning(f"Diff truncated: {normalized.truncation.reason}")

        if not normalized.combined_text.strip():
            logger.info(f"No code changes to review: pr={pr_id}")
            body = build_no_changes_comment(marker=marker, truncation=normalized.truncation, head_sha=head_sha)
            await self.comment_sink.upsert(pr_id, marker, body)
            return None

        outcomes = await scan(
            client=self.client,
            normalized_diff=normalized,
            scanner_model_ids=self.settings.scanner_model_ids,
            settings=self.settings,
        )

        try:
            review = await judge(
                client=self.client,
                outcomes=outcomes,
                judge_model_id=self.settings.judge_model_id,
                settings=self.settings,
                language=self.settings.output_language,
            )
        except ReviewError as exc:
            await self._report_failure(pr_id, exc, outcomes, normalized.truncation, head_sha)
            raise

        body = build_review_comment(
            review=review,
            outcomes=outcomes,
            truncation=normalized.truncation,
            marker=marker,
            head_sha=head_sha,
        )
        await self.comment_sink.upsert(pr_id, marker, body)
        logger.info(
            f"Review completed: pr={pr_id}, verdict={review.verdict}, findings={len(review.findings)}, "
            f"tokens={review.tokens_used}, estimated_cost_usd={review.estimated_cost_usd:.4f}"
        )
        return review

    async def _report_failure(
        self,
        pr_id: int,
        error: ReviewError,
        outcomes: Sequence[ScannerOutcome],
        truncation: TruncationInfo,
        head_sha: str,
    ) -> None:
        """失败评论写不出去只记日志，调用方仍然抛出原始错误。"""
        if isinstance(error, NoScannersSucceededError):
            message = ALL_SCANNERS_FAILED_MESSAGE
        else:
            message = f"Review failed with error: {error}"
        logger.error(f"Review failed: pr={pr_id}, error={error}")

        body = build_failure_comment(
            message,
            marker=self.settings.comment_marker,
            outcomes=outcomes,
            truncation=truncation,
            head_sha=head_sha,
        )
        try:
            await self.comment_sink.upsert(pr_id, self.settings.comment_marker, body)
        except Exception:
            logger.exception(f"Failed to post failure comment: pr={pr_id}")
