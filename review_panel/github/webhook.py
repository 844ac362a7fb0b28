"""
GitHub Webhook 接入层。

职责：
- 校验 `X-Hub-Signature-256`（HMAC SHA256）
- 校验 event 类型（只处理 pull_request）
- 解析 payload -> Pydantic schema
- 过滤 action（opened/reopened/synchronize）
- 把 review 放进 FastAPI background task（一次 review 要跑几分钟，不能阻塞 webhook 响应）
"""

from __future__ import annotations

import hashlib
import hmac
import json
import logging
from collections.abc import Awaitable, Callable

from fastapi import APIRouter
from fastapi import BackgroundTasks
from fastapi import Header
from fastapi import HTTPException
from fastapi import Request
from pydantic import ValidationError

from review_panel.github.schemas import GitHubPullRequestWebhookEvent

logger = logging.getLogger(__name__)

GitHubWebhookHandler = Callable[[GitHubPullRequestWebhookEvent], Awaitable[None]]

REVIEWED_ACTIONS: frozenset[str] = frozenset({"opened", "reopened", "synchronize"})


def compute_signature(body: bytes, secret: str) -> str:
    return "sha256=" + hmac.new(secret.encode("utf-8"), body, hashlib.sha256).hexdigest()


def verify_github_signature(body: bytes, signature_header: str, secret: str) -> None:
    if not signature_header.startswith("sha256="):
        raise HTTPException(status_code=401, detail="Invalid signature header")
    if not hmac.compare_digest(compute_signature(body, secret), signature_header):
        raise HTTPException(status_code=401, detail="Invalid webhook signature")


def build_github_webhook_router(webhook_secret: str, handler: GitHubWebhookHandler) -> APIRouter:
    router = APIRouter()

    @router.post("/github/webhook")
    async def github_webhook(
        request: Request,
        background_tasks: BackgroundTasks,
        x_github_event: str = Header(alias="X-GitHub-Event"),
        x_hub_signature_256: str = Header(alias="X-Hub-Signature-256"),
    ) -> dict[str, str]:
        body = await request.body()
        verify_github_signature(body=body, signature_header=x_hub_signature_256, secret=webhook_secret)
        if x_github_event != "pull_request":
            return {"status": "ignored"}

        try:
            payload = json.loads(body.decode("utf-8"))
        except json.JSONDecodeError as exc:
            raise HTTPException(status_code=400, detail="Invalid JSON payload") from exc
        try:
            event = GitHubPullRequestWebhookEvent.model_validate(payload)
        except ValidationError as exc:
            raise HTTPException(status_code=422, detail="Invalid pull_request payload") from exc

        if event.action not in REVIEWED_ACTIONS:
            return {"status": "ignored"}

        logger.info(
            f"Review scheduled: repo={event.repository.full_name}, pr={event.pull_request.number}, "
            f"action={event.action}"
        )
        background_tasks.add_task(handler, event)
        return {"status": "accepted"}

    return router
