"""
LLM Client（基于 OpenAI SDK，对接 OpenRouter 等 OpenAI-compatible 网关）。

分两层：
- `OpenAICompatTransport`：**尽量薄**，只做协议适配、单次超时、错误分类（400 / 429 / 5xx / 网络）
- `ModelCallClient`：在 transport 之上套重试策略（见 `retry.py`），供 scanner / judge 使用

SDK 自带的重试被关掉（max_retries=0），重试只在一个地方发生。
"""

from __future__ import annotations

import logging
import random
from collections.abc import Callable
from typing import Literal, Protocol

import anyio
import httpx
from openai import APIConnectionError, APIStatusError, APITimeoutError, AsyncOpenAI, OpenAIError
from pydantic import BaseModel

from review_panel.llm.retry import RetryPolicy
from review_panel.llm.retry import SleepFn
from review_panel.llm.retry import with_retry

logger = logging.getLogger(__name__)

StatusClass = Literal["bad_request", "rate_limited", "server_error", "network", "client_error"]

RETRYABLE_STATUS_CLASSES: frozenset[str] = frozenset({"rate_limited", "server_error", "network"})

DEFAULT_REFERER = "https://github.com/review-panel/review-panel"
DEFAULT_TITLE = "Review Panel"


class CallError(RuntimeError):
    """一次模型调用失败；`status_class` 决定是否可重试。"""

    def __init__(self, status_class: StatusClass, detail: str, status_code: int | None = None) -> None:
        super().__init__(f"{status_class}: {detail}")
        self.status_class = status_class
        self.detail = detail
        self.status_code = status_code

    @property
    def retryable(self) -> bool:
        return self.status_class in RETRYABLE_STATUS_CLASSES


class ChatMessage(BaseModel):
    """OpenAI chat message 的最小结构。"""

    role: str
    content: str


class CallResult(BaseModel):
    text: str
    tokens_used: int = 0


class ModelTransport(Protocol):
    """发送一次 prompt 的底层接口；失败必须抛 `CallError`。"""

    async def send(
        self,
        model_id: str,
        system_prompt: str | None,
        user_prompt: str,
        max_tokens: int,
        temperature: float,
        timeout_ms: int,
    ) -> CallResult: ...


def _normalize_base_url(base_url: str) -> str:
    normalized = base_url.rstrip("/")
    if normalized.endswith("/v1"):
        return normalized
    return f"{normalized}/v1"


def classify_status_code(status_code: int) -> StatusClass:
    if status_code == 400:
        return "bad_request"
    if status_code == 429:
        return "rate_limited"
    if status_code >= 500:
        return "server_error"
    return "client_error"


def classify_exception(exc: Exception) -> CallError:
    """把 SDK / httpx 异常映射为 `CallError`。"""
    if isinstance(exc, CallError):
        return exc
    # APITimeoutError 是 APIConnectionError 的子类，必须先判断
    if isinstance(exc, APITimeoutError):
        return CallError("network", f"request timed out: {exc}")
    if isinstance(exc, APIConnectionError):
        return CallError("network", f"connection error: {exc}")
    if isinstance(exc, APIStatusError):
        return CallError(classify_status_code(exc.status_code), str(exc), status_code=exc.status_code)
    if isinstance(exc, (httpx.TimeoutException, TimeoutError)):
        return CallError("network", f"request timed out: {exc}")
    if isinstance(exc, httpx.HTTPError):
        return CallError("network", f"HTTP error: {exc}")
    return CallError("client_error", f"{type(exc).__name__}: {exc}")


def is_retryable_call_error(exc: Exception) -> bool:
    return isinstance(exc, CallError) and exc.retryable


class OpenAICompatTransport:
    """通过 OpenAI-compatible API 调用任意模型（模型名由网关路由）。"""

    def __init__(self, api_key: str, base_url: str, http_client: httpx.AsyncClient) -> None:
        """
        - api_key: 网关 API key
        - base_url: OpenAI-compatible base URL（例如 https://openrouter.ai/api/v1）
        - http_client: 复用 httpx.AsyncClient 连接池
        """
        self._base_url = _normalize_base_url(base_url=base_url)
        self._client = AsyncOpenAI(
            api_key=api_key,
            base_url=self._base_url,
            http_client=http_client,
            max_retries=0,
            default_headers={"HTTP-Referer": DEFAULT_REFERER, "X-Title": DEFAULT_TITLE},
        )

    async def send(
        self,
        model_id: str,
        system_prompt: str | None,
        user_prompt: str,
        max_tokens: int,
        temperature: float,
        timeout_ms: int,
    ) -> CallResult:
        """
        单次 chat completion（不重试）。

        超时只取消当前这一次请求，不影响其它并发调用。
        """
        messages: list[ChatMessage] = []
        if system_prompt:
            messages.append(ChatMessage(role="system", content=system_prompt))
        messages.append(ChatMessage(role="user", content=user_prompt))

        timeout_s = timeout_ms / 1000
        logger.debug(f"LLM request: model={model_id}, prompt_length={len(user_prompt)}")
        try:
            with anyio.fail_after(timeout_s):
                response = await self._client.chat.completions.create(
                    model=model_id,
                    messages=[m.model_dump() for m in messages],
                    max_tokens=max_tokens,
                    temperature=temperature,
                    timeout=timeout_s,
                )
        except TimeoutError as exc:
            raise CallError("network", f"request to {model_id} timed out after {timeout_ms}ms") from exc
        except (OpenAIError, httpx.HTTPError) as exc:
            error = classify_exception(exc)
            logger.error(f"LLM API error: model={model_id}, {error}")
            raise error from exc

        content = response.choices[0].message.content if response.choices else None
        tokens_used = response.usage.total_tokens if response.usage is not None else 0
        text = content or ""
        logger.debug(f"LLM response: model={model_id}, tokens={tokens_used}, chars={len(text)}")
        return CallResult(text=text, tokens_used=tokens_used)


class ModelCallClient:
    """
    带重试的模型调用入口（每次 run 显式构造并注入，不做全局单例）。

    - 400：不重试，直接失败
    - 429 / 5xx / 网络 / 超时：按 `RetryPolicy` 重试
    """

    def __init__(
        self,
        transport: ModelTransport,
        policy: RetryPolicy | None = None,
        sleep: SleepFn = anyio.sleep,
        rand: Callable[[], float] = random.random,
    ) -> None:
        self._transport = transport
        self._policy = policy or RetryPolicy()
        self._sleep = sleep
        self._rand = rand

    async def call(
        self,
        model_id: str,
        prompt: str,
        system_prompt: str | None = None,
        max_tokens: int = 1000,
        temperature: float = 0.3,
        timeout_ms: int = 180_000,
    ) -> CallResult:
        async def attempt() -> CallResult:
            try:
                return await self._transport.send(
                    model_id=model_id,
                    system_prompt=system_prompt,
                    user_prompt=prompt,
                    max_tokens=max_tokens,
                    temperature=temperature,
                    timeout_ms=timeout_ms,
                )
            except TimeoutError as exc:
                raise CallError("network", f"request to {model_id} timed out after {timeout_ms}ms") from exc

        return await with_retry(
            attempt,
            policy=self._policy,
            is_retryable=is_retryable_call_error,
            sleep=self._sleep,
            rand=self._rand,
            label=f"model {model_id}",
        )
