"""
Review pipeline 依赖的外部协作者（与具体代码托管平台无关）。

GitHub 的实现见 `review_panel.github.adapter`；测试里用内存 fake 实现。
"""

from __future__ import annotations

from typing import Protocol

from review_panel.review.models import FileChange


class DiffSource(Protocol):
    async def fetch_files(self, pr_id: int) -> list[FileChange]:
        """PR 的变更文件（change_kind 必须使用 `ChangeKind` 的取值）。"""
        ...

    async def fetch_head_commit(self, pr_id: int) -> str: ...


class CommentSink(Protocol):
    async def upsert(self, pr_id: int, marker: str, body: str) -> None:
        """
        幂等写评论：同一个 marker 重复调用只会更新同一条评论，不会产生重复评论。
        """
        ...
