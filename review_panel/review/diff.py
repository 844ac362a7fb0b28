"""
Diff Normalizer（非 AI）。

职责：
- 把 DiffSource 给出的文件列表拼成一段 combined diff
- 做两级截断：文件数（max_files）+ 字符数（max_chars），并记录截断原因
- 必须确定性：同样的输入永远得到同样的输出
"""

from __future__ import annotations

import logging
import re
from collections.abc import Iterable, Sequence
from typing import Literal

from pydantic import BaseModel

from review_panel.review.models import FileChange
from review_panel.review.models import NormalizedDiff
from review_panel.review.models import TruncationInfo

logger = logging.getLogger(__name__)

FILE_BOUNDARY_MARKER = "\ndiff --git"
BOUNDARY_MIN_RATIO = 0.5

_TEST_FILE_PATTERNS: tuple[re.Pattern[str], ...] = (
    re.compile(r"\.test\."),
    re.compile(r"\.spec\."),
    re.compile(r"__tests__"),
    re.compile(r"\.stories\."),
    re.compile(r"\.mock\."),
    re.compile(r"(^|/)tests?/"),
    re.compile(r"(^|/)spec/"),
    re.compile(r"(^|/)test_[^/]+\.py$"),
)


class PRSize(BaseModel):
    """PR 规模分级（small/medium/large），用于日志与成本预估。"""

    files_changed: int
    additions: int
    deletions: int
    category: Literal["small", "medium", "large"]


def _status_annotation(file_change: FileChange) -> str:
    kind = file_change.change_kind
    if kind == "added":
        return "new file"
    if kind == "removed":
        return "deleted file"
    if kind == "renamed":
        return f"renamed from {file_change.previous_path}"
    if kind == "copied":
        return f"copied from {file_change.previous_path}"
    return "modified"


def build_combined_diff(files: Iterable[FileChange]) -> str:
    """
    拼接 combined diff。

    - 只包含有 patch 的文件
    - 每个文件：`diff --git a/<path> b/<path>` + 一行状态注释 + 原始 patch
    - 文件之间用空行分隔
    """
    parts: list[str] = []
    for f in files:
        if not f.patch_text:
            continue
        header = f"diff --git a/{f.path} b/{f.path}"
        parts.append(f"{header}\n--- {_status_annotation(f)} ---\n{f.patch_text}")
    return "\n\n".join(parts)


def normalize_diff(files: Sequence[FileChange], max_files: int, max_chars: int) -> NormalizedDiff:
    """
    归一化 + 截断。

    - 输入：原始文件列表、最大文件数、最大字符数
    - 输出：`NormalizedDiff`（保留的文件、combined diff、截断信息）
    - 失败：max_files / max_chars 非正数抛 ValueError
    """
    if max_files <= 0:
        raise ValueError("max_files must be > 0")
    if max_chars <= 0:
        raise ValueError("max_chars must be > 0")

    files_found = len(files)
    reasons: list[str] = []

    kept: list[FileChange] = list(files)
    if files_found > max_files:
        # sorted() 是稳定排序：变更量相同的文件保持原始顺序
        with_patch = [f for f in kept if f.patch_text]
        kept = sorted(with_patch, key=lambda f: f.change_size, reverse=True)[:max_files]
        reasons.append(f"Limited to {max_files} files (found {files_found})")
        logger.info(f"Truncated file count: found={files_found}, limited={max_files}")

    combined = build_combined_diff(kept)
    original_chars = len(combined)

    if original_chars > max_chars:
        combined = combined[:max_chars]
        # 尽量在文件边界处截断，避免把某个文件的 patch 切成两半
        boundary = combined.rfind(FILE_BOUNDARY_MARKER)
        if boundary > max_chars * BOUNDARY_MIN_RATIO:
            combined = combined[:boundary]
        reasons.append(f"Truncated to {max_chars} chars (original {original_chars})")
        logger.info(f"Truncated diff content: original={original_chars}, truncated={len(combined)}")

    reason = "; ".join(reasons) if reasons else None
    truncation = TruncationInfo(
        files_found=files_found,
        files_reviewed=len(kept),
        original_chars=original_chars,
        truncated_chars=len(combined),
        was_truncated=reason is not None,
        reason=reason,
    )
    logger.info(
        f"PR diff normalized: files_found={files_found}, files_reviewed={len(kept)}, "
        f"diff_length={len(combined)}, was_truncated={truncation.was_truncated}"
    )
    return NormalizedDiff(files=tuple(kept), combined_text=combined, truncation=truncation)


def filter_files_by_extension(files: Sequence[FileChange], extensions: Sequence[str]) -> list[FileChange]:
    """只保留指定扩展名的文件（`py` 与 `.py` 两种写法都接受）。"""
    wanted = {e if e.startswith(".") else f".{e}" for e in extensions}
    result: list[FileChange] = []
    for f in files:
        dot = f.path.rfind(".")
        if dot != -1 and f.path[dot:] in wanted:
            result.append(f)
    return result


def filter_out_test_files(files: Sequence[FileChange]) -> list[FileChange]:
    return [f for f in files if not any(p.search(f.path) for p in _TEST_FILE_PATTERNS)]


def calculate_pr_size(files: Sequence[FileChange]) -> PRSize:
    additions = sum(f.additions for f in files)
    deletions = sum(f.deletions for f in files)
    total = additions + deletions
    if len(files) <= 3 and total <= 100:
        category = "small"
    elif len(files) <= 10 and total <= 500:
        category = "medium"
    else:
        category = "large"
    return PRSize(files_changed=len(files), additions=additions, deletions=deletions, category=category)
