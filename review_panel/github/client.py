"""
GitHub API 客户端（外部系统连接器）。

约定：
- 这里只做 HTTP 调用 + 错误处理 + schema 校验
- 出错直接抛错（不要吞），便于定位与告警
"""

from __future__ import annotations

from typing import Any

import httpx

from review_panel.github.schemas import GitHubIssueComment
from review_panel.github.schemas import GitHubPullRequest
from review_panel.github.schemas import GitHubPullRequestFile

PER_PAGE = 100


class GitHubClient:
    """最小 GitHub API client（PR 元信息 / PR files / issue comments）。"""

    def __init__(self, api_base_url: str, token: str, http_client: httpx.AsyncClient) -> None:
        self._api_base_url = api_base_url.rstrip("/")
        self._token = token
        self._http_client = http_client

    def _headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self._token}",
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": "2022-11-28",
        }

    @staticmethod
    def _raise_for_status(response: httpx.Response) -> None:
        if response.status_code >= 400:
            raise RuntimeError(f"GitHub API error {response.status_code}: {response.text}")

    async def _get_all_pages(self, url: str) -> list[Any]:
        """GitHub 列表接口有分页；这里拉取全部 item。"""
        page = 1
        all_items: list[Any] = []
        while True:
            response = await self._http_client.get(
                url,
                headers=self._headers(),
                params={"per_page": PER_PAGE, "page": page},
            )
            self._raise_for_status(response)
            data = response.json()
            if not isinstance(data, list):
                raise RuntimeError(f"Unexpected GitHub response shape for {url}: {data}")
            all_items.extend(data)
            if len(data) < PER_PAGE:
                break
            page += 1
        return all_items

    async def get_pull_request(self, owner: str, repo: str, pull_number: int) -> GitHubPullRequest:
        url = f"{self._api_base_url}/repos/{owner}/{repo}/pulls/{pull_number}"
        response = await self._http_client.get(url, headers=self._headers())
        self._raise_for_status(response)
        return GitHubPullRequest.model_validate(response.json())

    async def list_pull_request_files(self, owner: str, repo: str, pull_number: int) -> list[GitHubPullRequestFile]:
        """拉取 PR 的变更文件列表（包含每个文件的 patch diff）。"""
        url = f"{self._api_base_url}/repos/{owner}/{repo}/pulls/{pull_number}/files"
        return [GitHubPullRequestFile.model_validate(x) for x in await self._get_all_pages(url)]

    async def list_issue_comments(self, owner: str, repo: str, issue_number: int) -> list[GitHubIssueComment]:
        url = f"{self._api_base_url}/repos/{owner}/{repo}/issues/{issue_number}/comments"
        return [GitHubIssueComment.model_validate(x) for x in await self._get_all_pages(url)]

    async def create_issue_comment(self, owner: str, repo: str, issue_number: int, body: str) -> GitHubIssueComment:
        """PR 的普通评论走 issues API（PR 也是 issue）。"""
        url = f"{self._api_base_url}/repos/{owner}/{repo}/issues/{issue_number}/comments"
        response = await self._http_client.post(url, headers=self._headers(), json={"body": body})
        self._raise_for_status(response)
        return GitHubIssueComment.model_validate(response.json())

    async def update_issue_comment(self, owner: str, repo: str, comment_id: int, body: str) -> GitHubIssueComment:
        url = f"{self._api_base_url}/repos/{owner}/{repo}/issues/comments/{comment_id}"
        response = await self._http_client.patch(url, headers=self._headers(), json={"body": body})
        self._raise_for_status(response)
        return GitHubIssueComment.model_validate(response.json())
