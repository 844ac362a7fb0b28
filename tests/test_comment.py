from __future__ import annotations

from review_panel.review.comment import build_failure_comment
from review_panel.review.comment import build_no_changes_comment
from review_panel.review.comment import build_review_comment
from review_panel.review.comment import marker_tag
from review_panel.review.models import FinalReview
from review_panel.review.models import Finding
from review_panel.review.models import ScannerOutcome
from review_panel.review.models import TruncationInfo

MARKER = "TEST_MARKER"


def _outcomes() -> list[ScannerOutcome]:
    return [
        ScannerOutcome(model_id="a/ok", raw_text="- x", status="OK"),
        ScannerOutcome(model_id="b/skip", status="SKIPPED"),
        ScannerOutcome(model_id="c/fail", status="FAILED", error_detail="network: timed out"),
    ]


def _truncation(truncated: bool) -> TruncationInfo:
    if truncated:
        return TruncationInfo(
            files_found=12,
            files_reviewed=10,
            original_chars=9000,
            truncated_chars=8000,
            was_truncated=True,
            reason="Limited to 10 files (found 12)",
        )
    return TruncationInfo(files_found=1, files_reviewed=1, original_chars=10, truncated_chars=10, was_truncated=False)


def _review() -> FinalReview:
    finding = Finding(id="F001", severity="high", description="Unbounded cache growth in lookup")
    return FinalReview(
        summary="Adds a cache.",
        findings=(finding,),
        verdict="request-changes",
        severity_counts={"critical": 0, "high": 1, "medium": 0, "low": 0, "info": 0},
        contributing_models=("a/ok", "b/skip"),
        judge_model="j/judge",
        estimated_cost_usd=0.0123,
        judge_output="## Summary\nAdds a cache.",
        tokens_used=1234,
    )


def test_review_comment_contains_marker_sources_and_judge_output() -> None:
    body = build_review_comment(_review(), _outcomes(), _truncation(False), MARKER, head_sha="abc123")
    assert marker_tag(MARKER) in body
    assert "Reviewed commit: `abc123`" in body
    assert "## Summary\nAdds a cache." in body
    assert "- `a/ok`: ✅ OK" in body
    assert "- `b/skip`: ⏭️ SKIPPED (empty/LGTM)" in body
    assert "- `c/fail`: ❌ FAILED (network: timed out)" in body
    assert "Request changes" in body
    assert "high: 1" in body
    assert "$0.0123" in body
    assert "### Notes" not in body


def test_review_comment_includes_truncation_notes() -> None:
    body = build_review_comment(_review(), _outcomes(), _truncation(True), MARKER)
    assert "### Notes" in body
    assert "⚠️ Limited to 10 files (found 12)" in body
    assert "- Files found: 12" in body
    assert "- Reviewed size: 8000 chars" in body


def test_failure_and_no_changes_comments_carry_marker() -> None:
    failure = build_failure_comment("Review failed - all scanner models returned errors.", MARKER, _outcomes())
    assert marker_tag(MARKER) in failure
    assert "all scanner models returned errors" in failure
    assert "❌ FAILED" in failure

    no_changes = build_no_changes_comment(MARKER, head_sha="def456")
    assert marker_tag(MARKER) in no_changes
    assert "No code changes detected in this PR." in no_changes
    assert "### Sources" not in no_changes
