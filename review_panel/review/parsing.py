"""
Judge 输出解析（纯函数，无 I/O）。

judge 返回的是自由文本，这里只做 best-effort 的结构化：
- summary：按本地化 section header 抓取，找不到就退化为第一段
- findings：逐行扫描，按当前所在的 severity section 给 bullet 打标签
- verdict：先看 verdict section，再看全文；都没有就是 `comment`

解析失败永远不抛异常，只退化到默认值。
"""

from __future__ import annotations

import re
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Literal

from review_panel.review.models import SEVERITIES
from review_panel.review.models import Finding
from review_panel.review.models import Severity
from review_panel.review.models import Verdict
from review_panel.review.prompts import SUPPORTED_LANGUAGES

ParsedSection = Literal["summary", "verdict", "critical", "high", "medium", "low"]

NO_SUMMARY = "No summary provided."
MAX_FALLBACK_SUMMARY_CHARS = 500
MIN_FINDING_CHARS = 10

# 同一语言内的匹配顺序：summary / verdict 优先，其次 critical -> low
_SECTION_ORDER: tuple[ParsedSection, ...] = ("summary", "verdict", "critical", "high", "medium", "low")

_SECTION_KEYWORDS: dict[str, dict[ParsedSection, str]] = {
    "en": {
        "summary": r"\bsummary|\boverview",
        "verdict": r"\bverdict|\bdecision",
        "critical": r"\bcritical",
        "high": r"\bimportant|\bhigh",
        "medium": r"\bmedium|\bmoderate",
        "low": r"\blow|\bminor",
    },
    "tr": {
        "summary": r"\bözet",
        "verdict": r"\bsonuç|\bkarar",
        "critical": r"\bkritik",
        "high": r"\bönemli|\byüksek",
        "medium": r"\borta",
        "low": r"\bdüşük",
    },
    "ja": {
        "summary": r"概要|要約",
        "verdict": r"判定|結論",
        "critical": r"重大|致命",
        "high": r"重要|高優先度",
        "medium": r"中程度|中優先度",
        "low": r"低優先度|軽微",
    },
    "de": {
        "summary": r"\bzusammenfassung",
        "verdict": r"\burteil|\bfazit|\bentscheidung",
        "critical": r"\bkritisch",
        "high": r"\bwichtig|\bhoch",
        "medium": r"\bmittel",
        "low": r"\bniedrig|\bgering",
    },
    "fr": {
        "summary": r"\brésumé|\bsynthèse",
        "verdict": r"\bverdict|\bdécision",
        "critical": r"\bcritique",
        "high": r"\bimportant|\bélevé",
        "medium": r"\bmoyen",
        "low": r"\bbasse|\bfaible|\bmineur",
    },
    "es": {
        "summary": r"\bresumen",
        "verdict": r"\bveredicto|\bdecisión",
        "critical": r"\bcrític",
        "high": r"\bimportante|\balta",
        "medium": r"\bmedi",
        "low": r"\bbaja|\bmenor",
    },
    "pt": {
        "summary": r"\bresumo",
        "verdict": r"\bveredito|\bdecisão",
        "critical": r"\bcrític",
        "high": r"\bimportante|\balta",
        "medium": r"\bmédi",
        "low": r"\bbaixa|\bmenor",
    },
    "zh": {
        "summary": r"摘要|总结|概述",
        "verdict": r"结论|判定",
        "critical": r"严重|致命",
        "high": r"重要|高优先级",
        "medium": r"中等|中优先级",
        "low": r"低优先级|次要",
    },
    "ko": {
        "summary": r"요약|개요",
        "verdict": r"판정|결론",
        "critical": r"심각|치명",
        "high": r"중요|높은",
        "medium": r"중간|보통",
        "low": r"낮은|사소",
    },
}

# 所有语言合并成一个 pattern：verdict 关键词与配置语言无关（judge 可能混用英文）
_REQUEST_CHANGES_PATTERN = re.compile(
    "|".join(
        (
            r"request[_\s-]*changes|changes[_\s-]*requested|needs?\s+(?:changes|work)|\breject",
            r"değişiklik\s+(?:talep|iste|gerek)",
            r"変更要求|変更が必要|修正が必要|要修正",
            r"änderungen\s+(?:erforderlich|anfordern|angefordert|notwendig)|\bablehnen",
            r"modifications?\s+(?:requises?|demandées?|nécessaires?)|demander\s+des\s+modifications",
            r"solicitar\s+cambios|cambios\s+(?:solicitados|requeridos|necesarios)",
            r"solicitar\s+alterações|alterações\s+(?:solicitadas|necessárias)|mudanças\s+necessárias",
            r"请求修改|需要修改|要求修改",
            r"변경\s*요청|수정\s*필요|수정이\s*필요",
        )
    ),
    re.IGNORECASE,
)

_APPROVE_PATTERN = re.compile(
    "|".join(
        (
            r"\bapprove[ds]?\b|\bapproval\b|\blgtm\b",
            r"\bonay",
            r"承認",
            r"\bgenehmig|\bfreigeben|\bfreigabe",
            r"\bapprouv",
            r"\baprob",
            r"\baprov",
            r"批准|通过",
            r"승인",
        )
    ),
    re.IGNORECASE,
)

_COMMENT_PATTERN = re.compile(
    r"\bcomment\b|\byorum|コメント|\bkommentar|\bcommentaire|\bcomentario|\bcomentário|评论|코멘트",
    re.IGNORECASE,
)

_NONE_PLACEHOLDER = re.compile(
    "|".join(
        (
            r"n/a|(?:none|nothing)(?:\s+(?:was\s+|were\s+)?(?:found|identified|detected|noted|reported|to\s+report))?",
            r"no\s+(?:significant\s+|critical\s+|major\s+|minor\s+|other\s+|high\s+priority\s+|low\s+priority\s+)?"
            r"(?:issues?|findings?|problems?|concerns?)(?:\s+(?:were|was))?"
            r"(?:\s+(?:found|identified|detected|noted|reported))?",
            r"yok|(?:herhangi\s+bir\s+)?(?:bulgu|sorun)\s+(?:yok|bulunamadı|tespit\s+edilmedi)|bildirilecek\s+bir\s+şey\s+yok",
            r"なし|特になし|問題なし|該当なし|問題は(?:ありません|見つかりませんでした)|指摘事項なし",
            r"keine|keine\s+(?:befunde|probleme|auffälligkeiten)(?:\s+(?:gefunden|festgestellt))?|nichts\s+zu\s+melden",
            r"aucun|aucune|(?:aucun\s+problème|aucune\s+anomalie)(?:\s+(?:détecté|détectée|trouvé|trouvée|identifié|identifiée))?"
            r"|rien\s+à\s+signaler",
            r"ninguno|ninguna|ningún\s+(?:problema|hallazgo)(?:\s+(?:encontrado|detectado|identificado))?"
            r"|sin\s+(?:hallazgos|problemas)|nada\s+que\s+reportar|no\s+se\s+encontraron\s+problemas",
            r"nenhum|nenhuma|nenhum\s+(?:problema|achado)(?:\s+(?:encontrado|detectado|identificado))?"
            r"|sem\s+problemas|nada\s+a\s+relatar|não\s+foram\s+encontrados\s+problemas",
            r"无|没有|暂无|无问题|没有问题|未发现(?:任何)?问题|没有发现(?:任何)?问题|无需报告",
            r"없음|없습니다|문제\s*없음|문제가\s*없습니다|(?:발견된\s*)?문제가\s*(?:없음|없습니다|발견되지\s*않았습니다)",
        )
    ),
    re.IGNORECASE,
)

_HEADER_LINE = re.compile(r"^\s{0,3}#{1,6}\s+(?P<title>.*?)\s*#*\s*$")
_BULLET_LINE = re.compile(r"^\s*[-*•]\s+(?P<text>.+?)\s*$")
_PLACEHOLDER_LINE = re.compile(r"^\[.*\]$")
_FENCE_LINE = re.compile(r"^\s{0,3}(?:```|~~~)")


@dataclass(frozen=True)
class HeaderMatcher:
    language: str
    section: ParsedSection
    pattern: re.Pattern[str]


def _language_order(language: str) -> list[str]:
    ordered = [language] if language in _SECTION_KEYWORDS else []
    if "en" not in ordered:
        ordered.append("en")
    ordered.extend(lang for lang in SUPPORTED_LANGUAGES if lang not in ordered)
    return ordered


def _matchers_for(languages: Sequence[str]) -> list[HeaderMatcher]:
    matchers: list[HeaderMatcher] = []
    for lang in languages:
        keywords = _SECTION_KEYWORDS[lang]
        for section in _SECTION_ORDER:
            matchers.append(
                HeaderMatcher(language=lang, section=section, pattern=re.compile(keywords[section], re.IGNORECASE))
            )
    return matchers


def localized_header_patterns(language: str) -> list[HeaderMatcher]:
    """
    有序的 header matcher 列表：配置语言 -> 英文 -> 其它支持的语言。

    - 未知语言：直接从英文开始
    """
    return _matchers_for(_language_order(language))


def _header_title(line: str) -> str | None:
    match = _HEADER_LINE.match(line)
    if match is None:
        return None
    title = match.group("title").strip(" *_:：")
    return title or None


def _line_titles(lines: Sequence[str]) -> list[str | None]:
    """每行的 header 标题（不是 header 则为 None）；围栏代码块里的行一律不算 header。"""
    titles: list[str | None] = []
    in_fence = False
    for line in lines:
        if _FENCE_LINE.match(line):
            in_fence = not in_fence
            titles.append(None)
            continue
        titles.append(None if in_fence else _header_title(line))
    return titles


def _classify_header(title: str, matchers: Sequence[HeaderMatcher]) -> ParsedSection | None:
    for matcher in matchers:
        if matcher.pattern.search(title):
            return matcher.section
    return None


def _find_section(text: str, section: ParsedSection, language: str) -> str | None:
    """按 matcher 顺序找到第一个命中的 header，返回其下方直到下一个 header 的内容。"""
    lines = text.splitlines()
    headers = [(index, title) for index, title in enumerate(_line_titles(lines)) if title is not None]
    if not headers:
        return None

    for matcher in localized_header_patterns(language):
        if matcher.section != section:
            continue
        for position, (index, title) in enumerate(headers):
            if not matcher.pattern.search(title):
                continue
            end = headers[position + 1][0] if position + 1 < len(headers) else len(lines)
            return "\n".join(lines[index + 1 : end]).strip()
    return None


def _first_paragraph(text: str) -> str | None:
    lines = text.splitlines()
    body_lines = [line for line, title in zip(lines, _line_titles(lines)) if title is None]
    for paragraph in re.split(r"\n\s*\n", "\n".join(body_lines)):
        stripped = paragraph.strip()
        if stripped:
            return stripped
    return None


def extract_summary(text: str, language: str = "en") -> str:
    """
    - 输出：summary section 的内容；没有就取第一个非空段落（最多 500 字符）
    - 全部为空：返回 `"No summary provided."`
    """
    section = _find_section(text, "summary", language)
    if section:
        return section

    paragraph = _first_paragraph(text)
    if paragraph:
        return paragraph[:MAX_FALLBACK_SUMMARY_CHARS]
    return NO_SUMMARY


def _is_noise(description: str) -> bool:
    if len(description) < MIN_FINDING_CHARS:
        return True
    if _PLACEHOLDER_LINE.match(description):
        return True
    return _NONE_PLACEHOLDER.fullmatch(description.rstrip(" .。!！")) is not None


def parse_findings(text: str, language: str = "en") -> list[Finding]:
    """
    逐行扫描 judge 输出，每个 bullet 一条 finding。

    - 当前 severity 初始为 `info`，遇到 severity header 切换
    - summary / verdict section 下的 bullet 不收集
    - 不认识的 header 把状态重置为 `info`
    - 太短的文本、`[...]` 模板占位、“无”类占位直接丢弃
    - 围栏代码块（```）里的内容既不是 header 也不是 bullet
    """
    # severity header 只认配置语言 + 英文
    languages = _language_order(language)
    matchers = _matchers_for(languages[:1] if languages[0] == "en" else languages[:2])
    findings: list[Finding] = []
    severity: Severity = "info"
    collecting = True
    in_fence = False

    for line in text.splitlines():
        if _FENCE_LINE.match(line):
            in_fence = not in_fence
            continue
        if in_fence:
            continue
        title = _header_title(line)
        if title is not None:
            section = _classify_header(title, matchers)
            if section in ("summary", "verdict"):
                collecting = False
            elif section is None:
                severity = "info"
                collecting = True
            else:
                severity = section
                collecting = True
            continue

        if not collecting:
            continue
        bullet = _BULLET_LINE.match(line)
        if bullet is None:
            continue
        description = bullet.group("text")
        if _is_noise(description):
            continue
        findings.append(
            Finding(
                id=f"F{len(findings) + 1:03d}",
                severity=severity,
                description=description,
            )
        )
    return findings


def _detect_verdict(text: str) -> Verdict | None:
    if _REQUEST_CHANGES_PATTERN.search(text):
        return "request-changes"
    if _APPROVE_PATTERN.search(text):
        return "approve"
    if _COMMENT_PATTERN.search(text):
        return "comment"
    return None


def extract_verdict(text: str, language: str = "en") -> Verdict:
    """request-changes 关键词优先于 approve；都识别不到时返回 `comment`。"""
    section = _find_section(text, "verdict", language)
    if section:
        verdict = _detect_verdict(section)
        if verdict is not None:
            return verdict
    return _detect_verdict(text) or "comment"


def count_severities(findings: Sequence[Finding]) -> dict[Severity, int]:
    counts: dict[Severity, int] = {severity: 0 for severity in SEVERITIES}
    for finding in findings:
        counts[finding.severity] += 1
    return counts


def apply_verdict_policy(verdict: Verdict, findings: Sequence[Finding]) -> Verdict:
    """
    在模型给出的 verdict 之上强制执行的策略：

    - 有 critical：request-changes
    - high 超过 2 条：request-changes
    - 没解析出任何 finding：approve
    - 其它情况保留模型 verdict
    """
    counts = count_severities(findings)
    if counts["critical"] > 0:
        return "request-changes"
    if counts["high"] > 2:
        return "request-changes"
    if not findings:
        return "approve"
    return verdict
