"""
CI 单次运行入口（GitHub Actions）。

- 从环境变量解析仓库与 PR 编号
- 跑一次 review pipeline，结果写回 PR 评论
- 退出码：致命错误时为 1；存在 critical finding 且 FAIL_ON_CRITICAL 开启（默认）时也为 1；否则为 0
"""

from __future__ import annotations

import logging
import os
import re
import sys
from collections.abc import Mapping

import anyio
import httpx
from pydantic import BaseModel

from review_panel.config import load_config_from_env
from review_panel.github.adapter import GitHubCommentSink
from review_panel.github.adapter import GitHubDiffSource
from review_panel.github.client import GitHubClient
from review_panel.llm.client import ModelCallClient
from review_panel.llm.client import OpenAICompatTransport
from review_panel.review.judge import ReviewError
from review_panel.review.models import FinalReview
from review_panel.review.pipeline import ReviewPipeline

logger = logging.getLogger(__name__)


class PullRequestTarget(BaseModel):
    owner: str
    repo: str
    pr_number: int


def resolve_pull_request(environ: Mapping[str, str]) -> PullRequestTarget:
    """
    - GITHUB_REPOSITORY：`owner/repo`
    - PR_NUMBER，或 GITHUB_REF_NAME 中的数字（例如 `123/merge`）
    """
    repository = environ.get("GITHUB_REPOSITORY", "").strip()
    owner, _, repo = repository.partition("/")
    if not owner or not repo or "/" in repo:
        raise ValueError(f"GITHUB_REPOSITORY must look like owner/repo, got: {repository!r}")

    raw_number = environ.get("PR_NUMBER", "").strip()
    if not raw_number:
        match = re.search(r"\d+", environ.get("GITHUB_REF_NAME", ""))
        raw_number = match.group(0) if match else ""
    if not raw_number.isdigit() or int(raw_number) <= 0:
        raise ValueError("Cannot determine PR number: set PR_NUMBER or run on a pull_request ref")
    return PullRequestTarget(owner=owner, repo=repo, pr_number=int(raw_number))


def exit_code_for(review: FinalReview | None, fail_on_critical: bool) -> int:
    """存在 critical finding 且开启 FAIL_ON_CRITICAL 时返回 1，否则 0。"""
    if review is None:
        return 0
    critical = review.severity_counts["critical"]
    if critical == 0:
        return 0
    if not fail_on_critical:
        logger.warning(f"Critical issues found but FAIL_ON_CRITICAL is off: count={critical}")
        return 0
    logger.error(f"Critical issues found: count={critical}")
    return 1


async def run_action(environ: Mapping[str, str]) -> int:
    """跑一次 review，返回进程退出码。"""
    config = load_config_from_env(environ)
    target = resolve_pull_request(environ)
    logger.info(
        f"Review panel starting: repo={target.owner}/{target.repo}, pr={target.pr_number}, "
        f"scanners={config.review.scanner_model_ids}, judge={config.review.judge_model_id}"
    )

    async with httpx.AsyncClient(timeout=httpx.Timeout(30.0)) as http_client:
        github_client = GitHubClient(
            api_base_url=str(config.github.api_base_url),
            token=config.github.token,
            http_client=http_client,
        )
        transport = OpenAICompatTransport(
            api_key=config.llm.api_key,
            base_url=str(config.llm.base_url),
            http_client=http_client,
        )
        pipeline = ReviewPipeline(
            diff_source=GitHubDiffSource(client=github_client, owner=target.owner, repo=target.repo),
            comment_sink=GitHubCommentSink(client=github_client, owner=target.owner, repo=target.repo),
            client=ModelCallClient(transport=transport),
            settings=config.review,
        )
        try:
            review = await pipeline.run(target.pr_number)
        except ReviewError as exc:
            logger.error(f"Review failed: {exc}")
            return 1

    return exit_code_for(review, fail_on_critical=config.review.fail_on_critical)


def main() -> None:
    logging.basicConfig(
        level=os.environ.get("LOG_LEVEL", "INFO").upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    try:
        exit_code = anyio.run(run_action, dict(os.environ))
    except ValueError as exc:
        logger.error(f"Invalid configuration: {exc}")
        exit_code = 1
    sys.exit(exit_code)


if __name__ == "__main__":
    main()
