"""
GitHub -> Review domain adapter。

职责：
- `GitHubDiffSource`：把 GitHub PR files 转成平台无关的 `FileChange`
- `GitHubCommentSink`：按 marker 查找已有评论，找到则更新，否则新建（幂等 upsert）
"""

from __future__ import annotations

import logging

from review_panel.github.client import GitHubClient
from review_panel.github.schemas import GitHubPullRequestFile
from review_panel.review.comment import marker_tag
from review_panel.review.models import ChangeKind
from review_panel.review.models import FileChange

logger = logging.getLogger(__name__)


def _change_kind(status: str) -> ChangeKind:
    if status in ("added", "removed", "modified", "renamed", "copied"):
        return status
    return "changed"


def to_file_change(f: GitHubPullRequestFile) -> FileChange:
    return FileChange(
        path=f.filename,
        change_kind=_change_kind(f.status),
        additions=f.additions,
        deletions=f.deletions,
        patch_text=f.patch or None,
        previous_path=f.previous_filename,
    )


class GitHubDiffSource:
    def __init__(self, client: GitHubClient, owner: str, repo: str) -> None:
        self._client = client
        self._owner = owner
        self._repo = repo

    async def fetch_files(self, pr_id: int) -> list[FileChange]:
        files = await self._client.list_pull_request_files(owner=self._owner, repo=self._repo, pull_number=pr_id)
        logger.info(f"Fetched PR files: repo={self._owner}/{self._repo}, pr={pr_id}, files={len(files)}")
        return [to_file_change(f) for f in files]

    async def fetch_head_commit(self, pr_id: int) -> str:
        pr = await self._client.get_pull_request(owner=self._owner, repo=self._repo, pull_number=pr_id)
        return pr.head.sha


class GitHubCommentSink:
    def __init__(self, client: GitHubClient, owner: str, repo: str) -> None:
        self._client = client
        self._owner = owner
        self._repo = repo

    async def upsert(self, pr_id: int, marker: str, body: str) -> None:
        """同一个 marker 只对应一条评论：存在则更新，不存在才新建。"""
        tag = marker_tag(marker)
        comments = await self._client.list_issue_comments(owner=self._owner, repo=self._repo, issue_number=pr_id)
        existing = next((c for c in comments if c.body and tag in c.body), None)

        if existing is not None:
            await self._client.update_issue_comment(
                owner=self._owner, repo=self._repo, comment_id=existing.id, body=body
            )
            logger.info(f"Comment updated: pr={pr_id}, comment_id={existing.id}")
            return

        created = await self._client.create_issue_comment(
            owner=self._owner, repo=self._repo, issue_number=pr_id, body=body
        )
        logger.info(f"Comment created: pr={pr_id}, comment_id={created.id}")
