from __future__ import annotations

import pytest

from review_panel.review.models import Finding
from review_panel.review.parsing import NO_SUMMARY
from review_panel.review.parsing import apply_verdict_policy
from review_panel.review.parsing import count_severities
from review_panel.review.parsing import extract_summary
from review_panel.review.parsing import extract_verdict
from review_panel.review.parsing import localized_header_patterns
from review_panel.review.parsing import parse_findings
from review_panel.review.prompts import SUPPORTED_LANGUAGES
from review_panel.review.prompts import get_section_headers

REQUEST_CHANGES_WORDS = {
    "en": "REQUEST_CHANGES - a critical issue must be fixed",
    "tr": "Değişiklik talep ediliyor",
    "ja": "変更要求",
    "de": "Änderungen erforderlich",
    "fr": "Modifications requises",
    "es": "Solicitar cambios",
    "pt": "Solicitar alterações",
    "zh": "需要修改",
    "ko": "변경 요청",
}

APPROVE_WORDS = {
    "en": "APPROVE",
    "tr": "Onaylandı",
    "ja": "承認",
    "de": "Genehmigt",
    "fr": "Approuvé",
    "es": "Aprobado",
    "pt": "Aprovado",
    "zh": "批准",
    "ko": "승인",
}

SUMMARY = "The change adds a cache layer in front of the user lookup."
CRITICAL = "User id from the request is interpolated into raw SQL"
HIGH_1 = "Cache entries never expire, memory grows without bound"
HIGH_2 = "Missing error handling when the upstream service times out"
LOW = "Rename tmp variable in lookup_user for readability"


def _judge_response(language: str, verdict_text: str) -> str:
    headers = get_section_headers(language)
    return "\n".join(
        [
            f"## {headers['summary']}",
            SUMMARY,
            "",
            f"## {headers['critical']}",
            f"- {CRITICAL}",
            "",
            f"## {headers['high']}",
            f"- {HIGH_1}",
            f"* {HIGH_2}",
            "",
            f"## {headers['low']}",
            f"• {LOW}",
            "",
            f"## {headers['verdict']}",
            verdict_text,
        ]
    )


@pytest.mark.parametrize("language", SUPPORTED_LANGUAGES)
def test_round_trip_in_every_language(language: str) -> None:
    text = _judge_response(language, REQUEST_CHANGES_WORDS[language])

    assert extract_summary(text, language) == SUMMARY
    assert parse_findings(text, language) == [
        Finding(id="F001", severity="critical", description=CRITICAL),
        Finding(id="F002", severity="high", description=HIGH_1),
        Finding(id="F003", severity="high", description=HIGH_2),
        Finding(id="F004", severity="low", description=LOW),
    ]
    assert extract_verdict(text, language) == "request-changes"


@pytest.mark.parametrize("language", SUPPORTED_LANGUAGES)
def test_approve_verdict_in_every_language(language: str) -> None:
    text = _judge_response(language, APPROVE_WORDS[language])
    assert extract_verdict(text, language) == "approve"


def test_header_patterns_order_configured_then_english() -> None:
    matchers = localized_header_patterns("ja")
    languages = list(dict.fromkeys(m.language for m in matchers))
    assert languages[:2] == ["ja", "en"]
    assert sorted(languages) == sorted(SUPPORTED_LANGUAGES)

    assert localized_header_patterns("xx")[0].language == "en"


def test_english_headers_tolerated_for_other_languages() -> None:
    text = _judge_response("en", "APPROVE")
    findings = parse_findings(text, "de")
    assert [f.severity for f in findings] == ["critical", "high", "high", "low"]
    assert extract_summary(text, "de") == SUMMARY


def test_summary_falls_back_to_first_paragraph() -> None:
    text = "\n\nThe patch looks mostly fine.\nOne more line.\n\n- a bullet that follows"
    assert extract_summary(text, "en") == "The patch looks mostly fine.\nOne more line."


def test_summary_fallback_is_capped() -> None:
    assert extract_summary("x" * 800, "en") == "x" * 500


def test_summary_default_when_nothing_usable() -> None:
    assert extract_summary("", "en") == NO_SUMMARY
    assert extract_summary("## Summary\n\n## Verdict\n", "en") == NO_SUMMARY


def test_findings_discard_noise_and_placeholders() -> None:
    text = "\n".join(
        [
            "## Critical Findings",
            "- [Critical severity findings only]",
            "- None",
            "- No issues found.",
            "- short",
            "## Important Findings",
            "- Race condition between refresh and read paths",
            "## 重大な問題",
            "- 特になし",
        ]
    )
    findings = parse_findings(text, "ja")
    assert findings == [Finding(id="F001", severity="high", description="Race condition between refresh and read paths")]


def test_findings_state_machine() -> None:
    text = "\n".join(
        [
            "- Stray bullet before any header is info",
            "## Summary",
            "- Bullets inside the summary are not findings",
            "## Medium",
            "- Retry loop has no upper bound on attempts",
            "## Notes",
            "- Unknown section resets severity to info",
            "**Bold text is not a bullet at all**",
            "## Verdict",
            "- COMMENT because nothing blocks the merge",
        ]
    )
    findings = parse_findings(text, "en")
    assert [(f.id, f.severity) for f in findings] == [("F001", "info"), ("F002", "medium"), ("F003", "info")]
    assert all(f.category == "general" for f in findings)


def test_findings_empty_for_free_text() -> None:
    assert parse_findings("Everything seems reasonable.", "en") == []


def test_verdict_request_changes_wins_over_approve() -> None:
    text = "## Verdict\nCannot APPROVE yet, REQUEST_CHANGES until the SQL issue is fixed"
    assert extract_verdict(text, "en") == "request-changes"


def test_verdict_explicit_comment_and_default() -> None:
    assert extract_verdict("## Verdict\nCOMMENT - minor nits only", "en") == "comment"
    assert extract_verdict("no decision keywords here", "en") == "comment"


def test_verdict_falls_back_to_whole_text() -> None:
    assert extract_verdict("Overall I would approve this change.", "en") == "approve"
    text = "## Notes\nLGTM, approved.\n## Verdict\nSee notes above."
    assert extract_verdict(text, "en") == "approve"


def _finding(index: int, severity: str) -> Finding:
    return Finding(id=f"F{index:03d}", severity=severity, description=f"finding number {index}")


def test_count_severities_has_all_keys() -> None:
    counts = count_severities([_finding(1, "high"), _finding(2, "high"), _finding(3, "info")])
    assert counts == {"critical": 0, "high": 2, "medium": 0, "low": 0, "info": 1}


def test_verdict_policy() -> None:
    assert apply_verdict_policy("approve", [_finding(1, "critical")]) == "request-changes"
    assert apply_verdict_policy("approve", [_finding(i, "high") for i in range(1, 4)]) == "request-changes"
    assert apply_verdict_policy("approve", [_finding(1, "high"), _finding(2, "high")]) == "approve"
    assert apply_verdict_policy("request-changes", []) == "approve"
    assert apply_verdict_policy("comment", [_finding(1, "low")]) == "comment"


@pytest.mark.parametrize(
    "placeholder",
    ["None found.", "None identified.", "No issues were found.", "Nothing to report.", "No critical issues identified"],
)
def test_none_found_bullets_do_not_force_request_changes(placeholder: str) -> None:
    text = f"## Critical Findings\n- {placeholder}\n## Verdict\nAPPROVE"
    findings = parse_findings(text)
    assert findings == []
    assert apply_verdict_policy(extract_verdict(text), findings) == "approve"


@pytest.mark.parametrize(
    "language, placeholder",
    [
        ("tr", "Herhangi bir sorun bulunamadı."),
        ("ja", "問題は見つかりませんでした"),
        ("de", "Keine Probleme festgestellt."),
        ("fr", "Rien à signaler."),
        ("es", "Ningún problema encontrado."),
        ("pt", "Nenhum problema encontrado."),
        ("zh", "未发现任何问题。"),
        ("ko", "발견된 문제가 없습니다."),
    ],
)
def test_localized_none_found_bullets_are_discarded(language: str, placeholder: str) -> None:
    headers = get_section_headers(language)
    text = f"## {headers['critical']}\n- {placeholder}\n"
    assert parse_findings(text, language) == []


def test_code_fence_lines_are_not_headers() -> None:
    text = "\n".join(
        [
            "## Critical Findings",
            "- Buffer overflow when copying the user supplied name",
            "```c",
            "#include <string.h>",
            "# define MAX 8",
            "- not a bullet either, just code",
            "```",
            "- Length check is missing before the strcpy call",
        ]
    )
    findings = parse_findings(text)
    assert [f.severity for f in findings] == ["critical", "critical"]
    assert findings[1].description == "Length check is missing before the strcpy call"


def test_header_requires_space_after_hashes() -> None:
    text = "## Important Findings\n#pragma once\n- Header guard is missing from the public header"
    assert [f.severity for f in parse_findings(text)] == ["high"]
