"""
FastAPI 服务入口（webhook 模式）。

这里做三件事：
- 加载配置（严格校验环境变量）
- 组装外部依赖（HTTP Client / 模型调用 client / GitHub webhook handler）
- 装配路由（health + github webhook）

注意：
- 业务流程不写在这里（由 `review/pipeline.py` 负责）
- `httpx.AsyncClient` 会被复用（避免每个请求新建连接）

启动：
  uvicorn review_panel.main:build_app --factory
"""

from __future__ import annotations

import logging
import os
from collections.abc import Awaitable, Callable, Mapping

import httpx
import uvicorn
from fastapi import FastAPI

from review_panel.config import AppConfig
from review_panel.config import load_config_from_env
from review_panel.github.adapter import GitHubCommentSink
from review_panel.github.adapter import GitHubDiffSource
from review_panel.github.client import GitHubClient
from review_panel.github.schemas import GitHubPullRequestWebhookEvent
from review_panel.github.webhook import build_github_webhook_router
from review_panel.llm.client import ModelCallClient
from review_panel.llm.client import OpenAICompatTransport
from review_panel.review.judge import ReviewError
from review_panel.review.pipeline import ReviewPipeline

logger = logging.getLogger(__name__)


def build_github_webhook_handler(
    config: AppConfig,
    http_client: httpx.AsyncClient,
    model_client: ModelCallClient,
) -> Callable[[GitHubPullRequestWebhookEvent], Awaitable[None]]:
    """
    装配 webhook handler：
    - 把外部依赖（GitHubClient）和 review pipeline 绑定起来
    - 返回一个 `async def handle(event)` 给 webhook 路由调用
    """
    github_client = GitHubClient(
        api_base_url=str(config.github.api_base_url),
        token=config.github.token,
        http_client=http_client,
    )

    async def handle(event: GitHubPullRequestWebhookEvent) -> None:
        owner = event.repository.owner.login
        repo = event.repository.name
        pipeline = ReviewPipeline(
            diff_source=GitHubDiffSource(client=github_client, owner=owner, repo=repo),
            comment_sink=GitHubCommentSink(client=github_client, owner=owner, repo=repo),
            client=model_client,
            settings=config.review,
        )
        try:
            await pipeline.run(event.pull_request.number)
        except ReviewError as exc:
            # 失败评论已经由 pipeline 写回 PR，这里只记录
            logger.error(f"Review run failed: repo={owner}/{repo}, pr={event.pull_request.number}, error={exc}")

    return handle


def build_app(environ: Mapping[str, str] | None = None) -> FastAPI:
    """创建并返回 FastAPI app（便于测试/复用）。"""

    # 1) 配置：缺失会直接抛错，启动失败（这是期望行为）
    config = load_config_from_env(os.environ if environ is None else environ)
    if not config.github.webhook_secret:
        raise ValueError("Missing required env vars: GITHUB_WEBHOOK_SECRET")

    # 2) 可复用的 HTTP client：供 GitHub API 与模型调用使用
    http_client = httpx.AsyncClient(timeout=httpx.Timeout(30.0))

    # 3) 模型调用：OpenAI-compatible 网关 + 统一重试策略
    transport = OpenAICompatTransport(
        api_key=config.llm.api_key,
        base_url=str(config.llm.base_url),
        http_client=http_client,
    )
    model_client = ModelCallClient(transport=transport)

    app = FastAPI(title="Review Panel", version="0.1.0")

    @app.get("/health")
    async def health() -> dict[str, str]:
        """健康检查：用于 k8s / LB 探活。"""
        return {"status": "ok"}

    handler = build_github_webhook_handler(config=config, http_client=http_client, model_client=model_client)
    app.include_router(build_github_webhook_router(webhook_secret=config.github.webhook_secret, handler=handler))
    return app


def main() -> None:
    logging.basicConfig(level=os.environ.get("LOG_LEVEL", "INFO").upper())
    uvicorn.run(build_app(), host=os.environ.get("HOST", "0.0.0.0"), port=int(os.environ.get("PORT", "8000")))


if __name__ == "__main__":
    main()
