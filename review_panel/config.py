"""
应用配置加载。

设计目标：
- **严格**：缺少必要环境变量就直接报错（避免“看起来跑了其实没配置好”）
- **类型安全**：使用 Pydantic 校验 URL/数值范围/语言代码，减少运行时踩坑
- **可测试**：核心加载函数接收 `environ` 显式输入，便于单元测试
"""

from __future__ import annotations

import json
from collections.abc import Mapping

from pydantic import BaseModel, Field, HttpUrl, ValidationError, model_validator

from review_panel.review.prompts import OutputLanguage
from review_panel.review.prompts import SUPPORTED_LANGUAGES

DEFAULT_LLM_BASE_URL = "https://openrouter.ai/api/v1"
DEFAULT_GITHUB_API_BASE_URL = "https://api.github.com"
DEFAULT_COMMENT_MARKER = "ENTERPRISE_AI_REVIEW"


class LLMConfig(BaseModel):
    base_url: HttpUrl
    api_key: str = Field(min_length=1)


class GitHubConfig(BaseModel):
    """webhook_secret 只有 webhook 服务需要；CI 单次运行可以不配。"""

    api_base_url: HttpUrl
    token: str = Field(min_length=1)
    webhook_secret: str | None = None


class ReviewSettings(BaseModel):
    """review pipeline 的选项集合（与具体平台无关）。"""

    scanner_model_ids: list[str] = Field(min_length=1)
    judge_model_id: str = Field(min_length=1)
    output_language: OutputLanguage = "en"
    max_files: int = Field(default=10, gt=0)
    max_chars: int = Field(default=80_000, gt=0)
    per_call_timeout_ms: int = Field(default=180_000, gt=0)
    max_scanner_tokens: int = Field(default=600, gt=0)
    max_judge_tokens: int = Field(default=800, gt=0)
    scanner_temperature: float = Field(default=0.3, ge=0, le=2)
    judge_temperature: float = Field(default=0.2, ge=0, le=2)
    max_concurrency: int = Field(default=8, gt=0)
    comment_marker: str = Field(default=DEFAULT_COMMENT_MARKER, min_length=1)
    enforce_verdict_policy: bool = True
    include_extensions: list[str] = Field(default_factory=list)
    exclude_test_files: bool = False
    fail_on_critical: bool = True

    @model_validator(mode="after")
    def _check_judge_budget(self) -> ReviewSettings:
        # judge 做的是合并/排序：温度更低、token 预算更大
        if self.judge_temperature >= self.scanner_temperature:
            raise ValueError("judge_temperature must be lower than scanner_temperature")
        if self.max_judge_tokens <= self.max_scanner_tokens:
            raise ValueError("max_judge_tokens must be greater than max_scanner_tokens")
        return self


class AppConfig(BaseModel):
    llm: LLMConfig
    github: GitHubConfig
    review: ReviewSettings


def parse_model_list(raw: str) -> list[str]:
    """
    解析模型列表，支持三种写法：

    - JSON 数组：`["a", "b"]`
    - 多行：每行一个
    - CSV：`a,b`
    """
    trimmed = raw.strip()
    if not trimmed:
        return []
    if trimmed.startswith("["):
        try:
            parsed = json.loads(trimmed)
        except json.JSONDecodeError as exc:
            raise ValueError(f"Invalid JSON model list: {raw}") from exc
        if not isinstance(parsed, list):
            raise ValueError(f"Model list must be a JSON array: {raw}")
        return [str(item).strip() for item in parsed if str(item).strip()]
    separator = "\n" if "\n" in trimmed else ","
    return [item.strip() for item in trimmed.split(separator) if item.strip()]


def _parse_int(environ: Mapping[str, str], key: str, default: int) -> int:
    raw = environ.get(key, "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError as exc:
        raise ValueError(f"{key} must be an integer, got: {raw}") from exc


def _parse_bool(environ: Mapping[str, str], key: str, default: bool) -> bool:
    raw = environ.get(key, "").strip().lower()
    if not raw:
        return default
    if raw in ("1", "true", "yes", "on"):
        return True
    if raw in ("0", "false", "no", "off"):
        return False
    raise ValueError(f"{key} must be a boolean, got: {raw}")


def load_review_settings(environ: Mapping[str, str]) -> ReviewSettings:
    """只加载 review 选项（scanner/judge 模型、语言、截断与预算）。"""
    scanner_model_ids = parse_model_list(environ.get("SCANNER_MODELS", ""))
    judge_model_id = environ.get("JUDGE_MODEL", "").strip()

    missing: list[str] = []
    if not scanner_model_ids:
        missing.append("SCANNER_MODELS")
    if not judge_model_id:
        missing.append("JUDGE_MODEL")
    if missing:
        raise ValueError(f"Missing required env vars: {', '.join(missing)}")

    language = environ.get("OUTPUT_LANGUAGE", "").strip().lower() or "en"
    if language not in SUPPORTED_LANGUAGES:
        raise ValueError(f"Unsupported OUTPUT_LANGUAGE: {language} (expected one of {', '.join(SUPPORTED_LANGUAGES)})")

    try:
        return ReviewSettings(
            scanner_model_ids=scanner_model_ids,
            judge_model_id=judge_model_id,
            output_language=language,
            max_files=_parse_int(environ, "MAX_FILES", 10),
            max_chars=_parse_int(environ, "MAX_CHARS", 80_000),
            per_call_timeout_ms=_parse_int(environ, "PER_CALL_TIMEOUT_MS", 180_000),
            max_scanner_tokens=_parse_int(environ, "MAX_SCANNER_TOKENS", 600),
            max_judge_tokens=_parse_int(environ, "MAX_JUDGE_TOKENS", 800),
            max_concurrency=_parse_int(environ, "MAX_CONCURRENCY", 8),
            comment_marker=environ.get("COMMENT_MARKER", "").strip() or DEFAULT_COMMENT_MARKER,
            enforce_verdict_policy=_parse_bool(environ, "ENFORCE_VERDICT_POLICY", True),
            include_extensions=parse_model_list(environ.get("FILE_EXTENSIONS", "")),
            exclude_test_files=_parse_bool(environ, "EXCLUDE_TEST_FILES", False),
            fail_on_critical=_parse_bool(environ, "FAIL_ON_CRITICAL", True),
        )
    except ValidationError as exc:
        raise ValueError(f"Invalid review settings: {exc}") from exc


def load_config_from_env(environ: Mapping[str, str]) -> AppConfig:
    """
    从环境变量加载并校验配置。

    - **输入**：`environ`（例如 `os.environ`）
    - **输出**：`AppConfig`
    - **失败**：缺失/为空/非法则抛 `ValueError`（一次列出所有缺失的 key）
    """
    required_keys: tuple[str, ...] = ("LLM_API_KEY", "GITHUB_TOKEN", "SCANNER_MODELS", "JUDGE_MODEL")
    missing: list[str] = [key for key in required_keys if key not in environ or not environ[key].strip()]
    if missing:
        raise ValueError(f"Missing required env vars: {', '.join(missing)}")

    review = load_review_settings(environ)
    try:
        return AppConfig(
            llm=LLMConfig(
                base_url=environ.get("LLM_BASE_URL") or DEFAULT_LLM_BASE_URL,
                api_key=environ["LLM_API_KEY"],
            ),
            github=GitHubConfig(
                api_base_url=environ.get("GITHUB_API_BASE_URL") or DEFAULT_GITHUB_API_BASE_URL,
                token=environ["GITHUB_TOKEN"],
                webhook_secret=environ.get("GITHUB_WEBHOOK_SECRET") or None,
            ),
            review=review,
        )
    except ValidationError as exc:
        raise ValueError(f"Invalid configuration: {exc}") from exc
