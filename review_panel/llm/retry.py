"""
重试执行器（指数退避 + jitter）。

约定：
- 只负责“要不要重试、等多久”，不关心错误的具体来源（由 `is_retryable` 决定）
- 放弃时原样抛出最后一次的异常（不包装，保留错误类型）
- sleep 只挂起当前 task，不会阻塞其它并发调用
"""

from __future__ import annotations

import logging
import random
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import TypeVar

import anyio

logger = logging.getLogger(__name__)

T = TypeVar("T")

SleepFn = Callable[[float], Awaitable[None]]


@dataclass(frozen=True)
class RetryPolicy:
    """默认：最多 3 次尝试，两次重试前分别等待 1s、2s（各自最多 +25% jitter）。"""

    max_attempts: int = 3
    initial_delay_s: float = 1.0
    backoff_multiplier: float = 2.0
    max_delay_s: float = 30.0
    jitter_ratio: float = 0.25

    def __post_init__(self) -> None:
        if self.max_attempts <= 0:
            raise ValueError("max_attempts must be > 0")
        if self.initial_delay_s < 0 or self.max_delay_s < 0:
            raise ValueError("delays must be >= 0")
        if not 0 <= self.jitter_ratio <= 1:
            raise ValueError("jitter_ratio must be within [0, 1]")


def compute_backoff_delay(attempt: int, policy: RetryPolicy, rand: Callable[[], float] = random.random) -> float:
    """
    第 `attempt` 次失败后的等待秒数（attempt 从 1 开始）。

    jitter 只会往上加（0 ~ jitter_ratio），避免并发重试的调用在同一时刻一起打过去。
    """
    if attempt <= 0:
        raise ValueError("attempt must be > 0")
    delay = policy.initial_delay_s * policy.backoff_multiplier ** (attempt - 1)
    delay = min(delay, policy.max_delay_s)
    return delay + delay * policy.jitter_ratio * rand()


async def with_retry(
    operation: Callable[[], Awaitable[T]],
    policy: RetryPolicy,
    is_retryable: Callable[[Exception], bool],
    sleep: SleepFn = anyio.sleep,
    rand: Callable[[], float] = random.random,
    label: str = "call",
) -> T:
    """
    执行 `operation`，可重试错误按退避策略重试。

    - 不可重试的错误：立即抛出（只尝试一次）
    - 最后一次尝试失败：直接抛出，不再 sleep
    """
    attempt = 1
    while True:
        try:
            return await operation()
        except Exception as exc:
            if attempt >= policy.max_attempts or not is_retryable(exc):
                raise
            delay = compute_backoff_delay(attempt=attempt, policy=policy, rand=rand)
            logger.warning(
                f"{label}: attempt {attempt}/{policy.max_attempts} failed, retrying in {delay:.2f}s: {exc}"
            )
            await sleep(delay)
            attempt += 1
