"""
Prompt 模板（scanner / judge）。

两条硬约束：
- scanner prompt 对所有模型**完全相同**，且只包含 diff（scanner 之间互相不可见）
- judge 只能合并 / 去重 / 排序，**不允许新增 finding**
"""

from __future__ import annotations

import math
from collections.abc import Sequence
from typing import Literal

from review_panel.review.models import ScannerOutcome

OutputLanguage = Literal["en", "tr", "ja", "de", "fr", "es", "pt", "zh", "ko"]
SectionKey = Literal["summary", "critical", "high", "low", "verdict"]

SUPPORTED_LANGUAGES: tuple[OutputLanguage, ...] = ("en", "tr", "ja", "de", "fr", "es", "pt", "zh", "ko")

LANGUAGE_NAMES: dict[str, str] = {
    "en": "English",
    "tr": "Turkish",
    "ja": "Japanese",
    "de": "German",
    "fr": "French",
    "es": "Spanish",
    "pt": "Portuguese",
    "zh": "Chinese",
    "ko": "Korean",
}

SECTION_HEADERS: dict[str, dict[SectionKey, str]] = {
    "en": {
        "summary": "Summary",
        "critical": "Critical Findings",
        "high": "Important Findings",
        "low": "Low Priority",
        "verdict": "Verdict",
    },
    "tr": {
        "summary": "Özet",
        "critical": "Kritik Bulgular",
        "high": "Önemli Bulgular",
        "low": "Düşük Öncelikli",
        "verdict": "Sonuç",
    },
    "ja": {
        "summary": "概要",
        "critical": "重大な問題",
        "high": "重要な問題",
        "low": "低優先度",
        "verdict": "判定",
    },
    "de": {
        "summary": "Zusammenfassung",
        "critical": "Kritische Befunde",
        "high": "Wichtige Befunde",
        "low": "Niedrige Priorität",
        "verdict": "Urteil",
    },
    "fr": {
        "summary": "Résumé",
        "critical": "Problèmes Critiques",
        "high": "Problèmes Importants",
        "low": "Priorité Basse",
        "verdict": "Verdict",
    },
    "es": {
        "summary": "Resumen",
        "critical": "Hallazgos Críticos",
        "high": "Hallazgos Importantes",
        "low": "Prioridad Baja",
        "verdict": "Veredicto",
    },
    "pt": {
        "summary": "Resumo",
        "critical": "Problemas Críticos",
        "high": "Problemas Importantes",
        "low": "Baixa Prioridade",
        "verdict": "Veredito",
    },
    "zh": {
        "summary": "摘要",
        "critical": "严重问题",
        "high": "重要问题",
        "low": "低优先级",
        "verdict": "结论",
    },
    "ko": {
        "summary": "요약",
        "critical": "심각한 문제",
        "high": "중요한 문제",
        "low": "낮은 우선순위",
        "verdict": "판정",
    },
}

SCANNER_SYSTEM_PROMPT = (
    "You are an expert code reviewer with deep knowledge of software engineering best practices, "
    "security vulnerabilities, and performance optimization. "
    "Your reviews are concise, actionable, and focused on real issues."
)

JUDGE_SYSTEM_PROMPT = (
    "You are a senior engineering lead responsible for consolidating code review feedback. "
    "You excel at identifying duplicate issues, resolving contradictory opinions, and prioritizing "
    "findings based on their impact. You never introduce new issues - you only organize and "
    "prioritize existing feedback."
)


def get_section_headers(language: str = "en") -> dict[SectionKey, str]:
    """未知语言回退到英文。"""
    return SECTION_HEADERS.get(language, SECTION_HEADERS["en"])


def _language_name(language: str) -> str:
    return LANGUAGE_NAMES.get(language, "English")


def build_scanner_prompt(diff: str, language: str = "en") -> str:
    """scanner 的 user prompt：所有模型共用同一份模板。"""
    return (
        "You are a senior software engineer performing a code review.\n\n"
        "Review the following Git diff.\n"
        "Focus on:\n"
        "- Bugs\n"
        "- Security issues\n"
        "- Incorrect logic\n"
        "- Performance problems\n"
        "- Missing edge cases\n\n"
        "Rules:\n"
        "- Be concise\n"
        "- Bullet points only\n"
        "- Do NOT repeat the diff\n"
        "- Do NOT invent issues\n"
        "- If there is nothing worth reporting, reply with LGTM\n"
        f"- Respond in {_language_name(language)}\n\n"
        f"Diff:\n{diff}"
    )


def build_judge_prompt(outcomes: Sequence[ScannerOutcome], language: str = "en") -> str:
    """
    judge 的 user prompt。

    - 只包含成功的 scanner 输出（FAILED 的不进 prompt）
    - 每段输出标注模型 id，便于 judge 判断来源是否一致
    """
    headers = get_section_headers(language)
    blocks: list[str] = []
    for index, outcome in enumerate([o for o in outcomes if o.succeeded], start=1):
        body = outcome.raw_text.strip() or "(no issues reported)"
        blocks.append(f"--- Review {index} (Model: {outcome.model_id}) ---\n{body}\n")
    reviews = "\n".join(blocks)

    return (
        "You are a code review judge.\n\n"
        "Below are multiple independent code review outputs for the SAME code.\n\n"
        "Tasks:\n"
        "1. Remove duplicates\n"
        "2. Resolve contradictions\n"
        "3. Discard incorrect or weak findings\n"
        "4. Prioritize critical issues\n"
        "5. Produce ONE final review\n\n"
        "Rules:\n"
        "- Do NOT add new findings\n"
        "- Use only provided inputs\n"
        "- Output must be concise and actionable\n"
        f"- Respond in {_language_name(language)}\n\n"
        "Format your response as:\n\n"
        f"## {headers['summary']}\n"
        "[1-2 sentence overview]\n\n"
        f"## {headers['critical']}\n"
        "- [Critical severity findings only]\n\n"
        f"## {headers['high']}\n"
        "- [High priority findings]\n\n"
        f"## {headers['low']}\n"
        "- [Minor improvement suggestions if any]\n\n"
        f"## {headers['verdict']}\n"
        "[APPROVE / REQUEST_CHANGES / COMMENT with brief justification]\n\n"
        f"Reviews:\n{reviews}"
    )


def truncate_diff(diff: str, max_chars: int) -> str:
    """控制 prompt 长度：在最后一个换行处截断，并注明省略了多少字符。"""
    if max_chars <= 0:
        raise ValueError("max_chars must be > 0")
    if len(diff) <= max_chars:
        return diff
    truncated = diff[:max_chars]
    last_newline = truncated.rfind("\n")
    if last_newline > 0:
        truncated = truncated[:last_newline]
    omitted = len(diff) - len(truncated)
    return f"{truncated}\n\n... [Diff truncated: {omitted} characters omitted] ..."


def estimate_tokens(text: str) -> int:
    # 代码与自然语言混合时，约 3 个字符 ≈ 1 token
    return math.ceil(len(text) / 3)
