"""
PR 评论渲染（确定性输出，不依赖 LLM）。

每条评论都带隐藏 marker（`<!-- {marker} -->`），CommentSink 用它找到并更新同一条评论，
所以同一个 PR 上始终只有一条 review 评论。
"""

from __future__ import annotations

from collections.abc import Sequence

from review_panel.review.models import FinalReview
from review_panel.review.models import ScannerOutcome
from review_panel.review.models import TruncationInfo

COMMENT_TITLE = "## Enterprise AI Review"
NO_CHANGES_MESSAGE = "No code changes detected in this PR."
ALL_SCANNERS_FAILED_MESSAGE = "Review failed - all scanner models returned errors."

_VERDICT_LABELS: dict[str, str] = {
    "approve": "✅ Approve",
    "request-changes": "🛑 Request changes",
    "comment": "💬 Comment",
}


def marker_tag(marker: str) -> str:
    return f"<!-- {marker} -->"


def status_badge(outcome: ScannerOutcome) -> str:
    if outcome.status == "OK":
        return "✅ OK"
    if outcome.status == "SKIPPED":
        return "⏭️ SKIPPED (empty/LGTM)"
    return f"❌ FAILED ({outcome.error_detail or 'unknown error'})"


def _render(
    body_lines: Sequence[str],
    marker: str,
    head_sha: str | None,
    outcomes: Sequence[ScannerOutcome],
    truncation: TruncationInfo | None,
) -> str:
    lines: list[str] = [COMMENT_TITLE, "", marker_tag(marker), ""]
    if head_sha:
        lines.extend([f"Reviewed commit: `{head_sha}`", ""])
    lines.extend(["### Final Review", ""])
    lines.extend(body_lines)
    lines.append("")

    if outcomes:
        lines.extend(["### Sources", ""])
        for outcome in outcomes:
            lines.append(f"- `{outcome.model_id}`: {status_badge(outcome)}")
        lines.append("")

    if truncation is not None and truncation.was_truncated:
        lines.extend(
            [
                "### Notes",
                "",
                f"⚠️ {truncation.reason}",
                "",
                f"- Files found: {truncation.files_found}",
                f"- Files reviewed: {truncation.files_reviewed}",
                f"- Original size: {truncation.original_chars} chars",
                f"- Reviewed size: {truncation.truncated_chars} chars",
                "",
            ]
        )
    return "\n".join(lines)


def build_review_comment(
    review: FinalReview,
    outcomes: Sequence[ScannerOutcome],
    truncation: TruncationInfo,
    marker: str,
    head_sha: str | None = None,
) -> str:
    """judge 原文 + verdict / severity 统计 + 各 scanner 状态。"""
    counts = ", ".join(f"{severity}: {count}" for severity, count in review.severity_counts.items())
    body = [
        review.judge_output.strip() or review.summary,
        "",
        f"**Verdict:** {_VERDICT_LABELS[review.verdict]}",
        f"**Findings:** {counts}",
        f"**Judge:** `{review.judge_model}` | **Tokens:** {review.tokens_used} | "
        f"**Estimated cost:** ${review.estimated_cost_usd:.4f}",
    ]
    return _render(body, marker=marker, head_sha=head_sha, outcomes=outcomes, truncation=truncation)


def build_failure_comment(
    message: str,
    marker: str,
    outcomes: Sequence[ScannerOutcome] = (),
    truncation: TruncationInfo | None = None,
    head_sha: str | None = None,
) -> str:
    return _render([message], marker=marker, head_sha=head_sha, outcomes=outcomes, truncation=truncation)


def build_no_changes_comment(marker: str, truncation: TruncationInfo | None = None, head_sha: str | None = None) -> str:
    return _render([NO_CHANGES_MESSAGE], marker=marker, head_sha=head_sha, outcomes=(), truncation=truncation)
