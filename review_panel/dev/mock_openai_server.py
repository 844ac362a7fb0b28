"""
本地 Mock OpenAI-compatible LLM server。

用途：
- 在没有真实 LLM 网关的情况下，本地跑通 scanner -> judge 闭环

启动：
  python -m review_panel.dev.mock_openai_server
然后设置 LLM_BASE_URL=http://127.0.0.1:9001/v1
"""

from __future__ import annotations

import re
from collections.abc import Sequence

import uvicorn
from fastapi import FastAPI
from pydantic import BaseModel, Field

from review_panel.llm.client import ChatMessage

_DIFF_PATH = re.compile(r"^diff --git a/(\S+) b/", re.MULTILINE)


class ChatCompletionRequest(BaseModel):
    model: str
    messages: list[ChatMessage] = Field(default_factory=list)
    max_tokens: int | None = None
    temperature: float | None = None


def _extract_changed_paths(prompt: str) -> list[str]:
    return _DIFF_PATH.findall(prompt)


def _build_mock_scanner_review(model: str, paths: Sequence[str]) -> str:
    if not paths:
        return "LGTM"
    target = paths[0]
    return (
        f"- [MOCK {model}] `{target}`: missing input validation before the value is used\n"
        f"- [MOCK {model}] `{target}`: error from the external call is ignored"
    )


def _build_mock_judge_review() -> str:
    return (
        "## Summary\n"
        "[MOCK] The change is small; two issues were reported by the scanners.\n\n"
        "## Critical Findings\n"
        "- None\n\n"
        "## Important Findings\n"
        "- Missing input validation before the value is used\n\n"
        "## Low Priority\n"
        "- Error from the external call is ignored\n\n"
        "## Verdict\n"
        "COMMENT - minor issues only"
    )


def _decide_mock_response(model: str, messages: Sequence[ChatMessage]) -> str:
    user_texts = [m.content for m in messages if m.role == "user"]
    if not user_texts:
        raise ValueError("Mock server expects at least one user message")
    prompt = "\n".join(user_texts)

    if "You are a code review judge" in prompt:
        return _build_mock_judge_review()
    return _build_mock_scanner_review(model=model, paths=_extract_changed_paths(prompt))


app = FastAPI(title="Mock OpenAI-compatible LLM", version="0.1.0")


@app.post("/v1/chat/completions")
async def chat_completions(req: ChatCompletionRequest) -> dict[str, object]:
    content = _decide_mock_response(model=req.model, messages=req.messages)
    prompt_tokens = sum(len(m.content) for m in req.messages) // 4
    completion_tokens = len(content) // 4
    return {
        "id": "chatcmpl-mock",
        "object": "chat.completion",
        "created": 0,
        "model": req.model,
        "choices": [
            {
                "index": 0,
                "message": {"role": "assistant", "content": content},
                "finish_reason": "stop",
            }
        ],
        "usage": {
            "prompt_tokens": prompt_tokens,
            "completion_tokens": completion_tokens,
            "total_tokens": prompt_tokens + completion_tokens,
        },
    }


def main() -> None:
    uvicorn.run(app, host="127.0.0.1", port=9001)


if __name__ == "__main__":
    main()
