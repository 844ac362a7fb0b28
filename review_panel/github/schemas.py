"""
GitHub Webhook / API response schemas（Pydantic）。

说明：
- 字段只覆盖 review 流程需要的子集（PR webhook + PR files + issue comments）。
"""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel


class GitHubOwner(BaseModel):
    login: str


class GitHubRepository(BaseModel):
    name: str
    owner: GitHubOwner
    full_name: str


class GitHubPullRequestHead(BaseModel):
    sha: str
    ref: str


class GitHubPullRequestBase(BaseModel):
    ref: str


class GitHubPullRequest(BaseModel):
    number: int
    head: GitHubPullRequestHead
    base: GitHubPullRequestBase
    merged: bool | None = None


class GitHubPullRequestWebhookEvent(BaseModel):
    """
    GitHub `pull_request` webhook event（最小结构）。

    action: opened/reopened/synchronize 等；不认识的 action 也接受，由路由层过滤
    """

    action: str
    number: int | None = None
    pull_request: GitHubPullRequest
    repository: GitHubRepository


class GitHubPullRequestFile(BaseModel):
    """
    PR 文件列表 item（GET /pulls/{pull_number}/files）。

    patch 可能缺失（例如大文件/二进制），normalizer 会跳过这类文件。
    """

    filename: str
    status: Literal["added", "modified", "removed", "renamed", "changed", "copied", "unchanged"]
    additions: int = 0
    deletions: int = 0
    patch: str | None = None
    previous_filename: str | None = None


class GitHubIssueComment(BaseModel):
    """Issue / PR 评论（GET /issues/{number}/comments）。"""

    id: int
    body: str | None = None
