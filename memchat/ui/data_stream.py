"""Encoder for the AI SDK data stream format consumed by the chat client.

Each part is one line: ``<type>:<json>\\n``.
"""

from __future__ import annotations

import json
from typing import Any

HEADERS = {
    "X-Vercel-AI-Data-Stream": "v1",
    "Cache-Control": "no-cache",
    "X-Accel-Buffering": "no",
}
MEDIA_TYPE = "text/plain; charset=utf-8"


def _part(code: str, value: Any) -> str:
    return f"{code}:{json.dumps(value, ensure_ascii=False)}\n"


def start_part(message_id: str) -> str:
    return _part("f", {"messageId": message_id})


def text_part(text: str) -> str:
    return _part("0", text)


def error_part(message: str) -> str:
    return _part("3", message)


def finish_part(
    reason: str = "stop",
    prompt_tokens: int | None = None,
    completion_tokens: int | None = None,
) -> str:
    """End marker of the stream."""
    payload: dict[str, Any] = {"finishReason": reason}
    if prompt_tokens is not None and completion_tokens is not None:
        payload["usage"] = {
            "promptTokens": prompt_tokens,
            "completionTokens": completion_tokens,
        }
    return _part("d", payload)
