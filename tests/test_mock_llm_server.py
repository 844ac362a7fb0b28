from __future__ import annotations

from fastapi.testclient import TestClient

from review_panel.dev.mock_openai_server import app
from review_panel.review.parsing import extract_verdict
from review_panel.review.parsing import parse_findings
from review_panel.review.prompts import build_judge_prompt
from review_panel.review.prompts import build_scanner_prompt
from review_panel.review.scanner import classify_response


def _complete(prompt: str, model: str = "mock/model") -> dict[str, object]:
    client = TestClient(app)
    response = client.post(
        "/v1/chat/completions",
        json={"model": model, "messages": [{"role": "user", "content": prompt}]},
    )
    assert response.status_code == 200
    return response.json()


def test_scanner_prompt_gets_bullets_for_changed_file() -> None:
    prompt = build_scanner_prompt("diff --git a/app/db.py b/app/db.py\n--- modified ---\n+x")
    data = _complete(prompt)
    content = data["choices"][0]["message"]["content"]
    assert "`app/db.py`" in content
    assert classify_response(content) == "OK"
    assert data["usage"]["total_tokens"] > 0


def test_scanner_prompt_without_diff_is_lgtm() -> None:
    content = _complete(build_scanner_prompt(""))["choices"][0]["message"]["content"]
    assert classify_response(content) == "SKIPPED"


def test_judge_prompt_gets_parseable_review() -> None:
    content = _complete(build_judge_prompt([], "en"))["choices"][0]["message"]["content"]
    findings = parse_findings(content, "en")
    assert [f.severity for f in findings] == ["high", "low"]
    assert extract_verdict(content, "en") == "comment"
