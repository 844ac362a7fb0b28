from __future__ import annotations

import pytest

from review_panel.review.diff import build_combined_diff
from review_panel.review.diff import calculate_pr_size
from review_panel.review.diff import filter_files_by_extension
from review_panel.review.diff import filter_out_test_files
from review_panel.review.diff import normalize_diff
from review_panel.review.models import FileChange


def _file(path: str, size: int = 1, patch: str | None = "@@ -1 +1 @@\n-a\n+b", kind: str = "modified") -> FileChange:
    return FileChange(path=path, change_kind=kind, additions=size, deletions=0, patch_text=patch)


def test_combined_diff_headers_and_status_lines() -> None:
    files = [
        _file("a.py", kind="added"),
        _file("b.py", kind="removed"),
        FileChange(path="c.py", change_kind="renamed", patch_text="@@ x", previous_path="old_c.py"),
        FileChange(path="d.py", change_kind="copied", patch_text="@@ y", previous_path="src_d.py"),
        _file("e.py", kind="changed"),
    ]
    combined = build_combined_diff(files)
    assert "diff --git a/a.py b/a.py\n--- new file ---\n" in combined
    assert "--- deleted file ---" in combined
    assert "--- renamed from old_c.py ---" in combined
    assert "--- copied from src_d.py ---" in combined
    assert "diff --git a/e.py b/e.py\n--- modified ---" in combined
    assert combined.count("\n\ndiff --git") == 4


def test_combined_diff_skips_files_without_patch() -> None:
    combined = build_combined_diff([_file("bin.png", patch=None), _file("a.py")])
    assert "bin.png" not in combined
    assert combined.startswith("diff --git a/a.py b/a.py")


def test_normalize_without_truncation() -> None:
    files = [_file("a.py"), _file("b.py")]
    result = normalize_diff(files, max_files=10, max_chars=10_000)
    assert result.files == tuple(files)
    assert result.truncation.was_truncated is False
    assert result.truncation.reason is None
    assert result.truncation.files_found == 2
    assert result.truncation.files_reviewed == 2
    assert result.truncation.original_chars == result.truncation.truncated_chars == len(result.combined_text)


def test_normalize_limits_file_count_by_change_size() -> None:
    files = [
        _file("small.py", size=1),
        _file("empty.py", size=500, patch=None),
        _file("big.py", size=100),
        _file("mid_a.py", size=10),
        _file("mid_b.py", size=10),
    ]
    result = normalize_diff(files, max_files=3, max_chars=10_000)
    assert [f.path for f in result.files] == ["big.py", "mid_a.py", "mid_b.py"]
    assert result.truncation.reason == "Limited to 3 files (found 5)"
    assert result.truncation.files_found == 5
    assert result.truncation.files_reviewed == 3


def test_file_count_truncation_never_prefers_empty_patch() -> None:
    files = [_file("empty.py", size=1000, patch=None), _file("a.py", size=1), _file("b.py", size=2)]
    result = normalize_diff(files, max_files=2, max_chars=10_000)
    assert all(f.patch_text for f in result.files)
    assert [f.path for f in result.files] == ["b.py", "a.py"]


def test_char_truncation_cuts_at_file_boundary() -> None:
    patch = "@@ -1 +1 @@\n" + "+x\n" * 30
    files = [_file("a.py", patch=patch), _file("b.py", patch=patch), _file("c.py", patch=patch)]
    full = build_combined_diff(files)
    max_chars = len(full) - 20
    result = normalize_diff(files, max_files=10, max_chars=max_chars)

    assert result.truncation.was_truncated is True
    assert result.truncation.reason == f"Truncated to {max_chars} chars (original {len(full)})"
    assert result.truncation.original_chars == len(full)
    assert len(result.combined_text) <= max_chars
    assert "c.py" not in result.combined_text
    assert result.combined_text.rstrip().endswith("+x")


def test_char_truncation_hard_cut_when_boundary_too_early() -> None:
    files = [_file("a.py", patch="+short"), _file("b.py", patch="+" + "y" * 500)]
    result = normalize_diff(files, max_files=10, max_chars=300)
    assert len(result.combined_text) == 300
    assert result.truncation.truncated_chars == 300


def test_both_truncations_join_reasons() -> None:
    patch = "+" + "z" * 200
    files = [_file(f"f{i}.py", size=i, patch=patch) for i in range(5)]
    result = normalize_diff(files, max_files=2, max_chars=150)
    assert result.truncation.reason == (
        f"Limited to 2 files (found 5); Truncated to 150 chars (original {result.truncation.original_chars})"
    )
    assert result.truncation.files_reviewed <= result.truncation.files_found
    assert result.truncation.truncated_chars <= result.truncation.original_chars


@pytest.mark.parametrize("max_files, max_chars", [(0, 100), (10, 0), (-1, 100)])
def test_normalize_rejects_non_positive_limits(max_files: int, max_chars: int) -> None:
    with pytest.raises(ValueError):
        normalize_diff([_file("a.py")], max_files=max_files, max_chars=max_chars)


def test_empty_input_produces_empty_diff() -> None:
    result = normalize_diff([], max_files=10, max_chars=100)
    assert result.combined_text == ""
    assert result.truncation.files_found == 0
    assert result.truncation.was_truncated is False


def test_filters_and_pr_size() -> None:
    files = [_file("src/a.py", size=10), _file("tests/test_a.py", size=5), _file("web/app.test.ts", size=5), _file("README.md")]
    assert [f.path for f in filter_files_by_extension(files, ["py", ".ts"])] == [
        "src/a.py",
        "tests/test_a.py",
        "web/app.test.ts",
    ]
    assert [f.path for f in filter_out_test_files(files)] == ["src/a.py", "README.md"]

    size = calculate_pr_size(files)
    assert size.files_changed == 4
    assert size.additions == 21
    assert size.category == "medium"
    assert calculate_pr_size(files[:1]).category == "small"


def test_normalize_files_without_patch_is_empty_and_not_truncated() -> None:
    files = [_file("logo.png", patch=None), _file("data.bin", patch=None)]
    normalized = normalize_diff(files, max_files=10, max_chars=1000)
    assert normalized.combined_text == ""
    assert normalized.truncation.was_truncated is False
    assert normalized.truncation.files_found == 2


def test_normalize_keeps_larger_file_when_limited_to_one() -> None:
    files = [
        FileChange(path="a.ts", change_kind="modified", additions=1, patch_text="+x"),
        FileChange(path="b.ts", change_kind="modified", additions=2000, patch_text="+y" * 2000),
    ]
    normalized = normalize_diff(files, max_files=1, max_chars=100_000)
    assert [f.path for f in normalized.files] == ["b.ts"]
    assert normalized.truncation.was_truncated is True
    assert normalized.truncation.files_reviewed == 1
    assert normalized.truncation.files_found == 2
    assert "a.ts" not in normalized.combined_text
