"""
Review 领域模型（Pydantic）。

用途：
- 明确各阶段输入/输出的数据结构：diff -> normalized diff -> scanner outcomes -> final review
- 所有记录一旦构造就不可变（frozen），避免并发 scanner 之间共享可写状态
"""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, model_validator

ChangeKind = Literal["added", "removed", "modified", "renamed", "copied", "changed"]
ScannerStatus = Literal["OK", "SKIPPED", "FAILED"]
Severity = Literal["critical", "high", "medium", "low", "info"]
Verdict = Literal["approve", "request-changes", "comment"]

SEVERITIES: tuple[Severity, ...] = ("critical", "high", "medium", "low", "info")


class FileChange(BaseModel):
    """单个文件的变更（由 DiffSource 产出，只被 normalizer 消费）。"""

    model_config = ConfigDict(frozen=True)

    path: str
    change_kind: ChangeKind
    additions: int = Field(default=0, ge=0)
    deletions: int = Field(default=0, ge=0)
    patch_text: str | None = None
    previous_path: str | None = None

    @property
    def change_size(self) -> int:
        return self.additions + self.deletions


class TruncationInfo(BaseModel):
    """截断元信息：记录找到/审查的文件数与字符数，以及截断原因。"""

    model_config = ConfigDict(frozen=True)

    files_found: int = Field(ge=0)
    files_reviewed: int = Field(ge=0)
    original_chars: int = Field(ge=0)
    truncated_chars: int = Field(ge=0)
    was_truncated: bool
    reason: str | None = None

    @model_validator(mode="after")
    def _check_invariants(self) -> TruncationInfo:
        if self.files_reviewed > self.files_found:
            raise ValueError("files_reviewed must be <= files_found")
        if self.truncated_chars > self.original_chars:
            raise ValueError("truncated_chars must be <= original_chars")
        if self.was_truncated != (self.reason is not None):
            raise ValueError("was_truncated must be set iff a reason is recorded")
        return self


class NormalizedDiff(BaseModel):
    """一次 review run 的归一化 diff（构造后不再修改）。"""

    model_config = ConfigDict(frozen=True)

    files: tuple[FileChange, ...]
    combined_text: str
    truncation: TruncationInfo


class ScannerOutcome(BaseModel):
    """单个 scanner 模型的结果。scanner 只产出原始文本，不产出结构化 finding。"""

    model_config = ConfigDict(frozen=True)

    model_id: str
    raw_text: str = ""
    tokens_used: int = Field(default=0, ge=0)
    duration_ms: int = Field(default=0, ge=0)
    status: ScannerStatus
    error_detail: str | None = None

    @property
    def succeeded(self) -> bool:
        """SKIPPED 也算成功（模型正常返回，只是没有值得报告的问题）。"""
        return self.status != "FAILED"


class ScanMetrics(BaseModel):
    """scanner 阶段的聚合指标（只用于日志/观测，不影响流程）。"""

    total_tokens: int
    max_duration_ms: int
    ok: int
    skipped: int
    failed: int


class Finding(BaseModel):
    """从 judge 输出中解析出的一条问题。"""

    model_config = ConfigDict(frozen=True)

    id: str
    severity: Severity
    category: str = "general"
    description: str


class FinalReview(BaseModel):
    """一次 run 的最终产物。"""

    model_config = ConfigDict(frozen=True)

    summary: str
    findings: tuple[Finding, ...] = ()
    verdict: Verdict
    severity_counts: dict[Severity, int]
    contributing_models: tuple[str, ...]
    judge_model: str
    estimated_cost_usd: float = Field(ge=0)
    judge_output: str = ""
    tokens_used: int = Field(default=0, ge=0)
