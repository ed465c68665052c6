# tests/fakes.py

from __future__ import annotations

import json
from typing import Any


class FakeResponse:
    def __init__(self, status_code: int = 200, body: Any = None, text: str = "") -> None:
        self.status_code = status_code
        self._body = body
        self.text = text or (json.dumps(body) if body is not None else "")

    def json(self) -> Any:
        if self._body is None:
            raise ValueError("no JSON body")
        return self._body


def completion(content: Any) -> dict:
    """Chat-completions envelope around ``content`` (dicts are JSON-encoded)."""
    if not isinstance(content, str):
        content = json.dumps(content)
    return {"choices": [{"message": {"role": "assistant", "content": content}}]}


class FakeLLM:
    """
    Stand-in for the HTTP transport used by taskmind.ai_client.

    - Captures every request for assertions
    - Replies with queued contents in order (the last one repeats)
    - Can raise an exception or answer with an HTTP error instead
    """

    def __init__(self, *replies: Any, status_code: int = 200, error: Exception | None = None) -> None:
        self.replies = list(replies) or [{}]
        self.status_code = status_code
        self.error = error
        self.calls: list[tuple[str, dict]] = []

    def __call__(self, url: str, **kwargs: Any) -> FakeResponse:
        self.calls.append((url, kwargs))
        if self.error is not None:
            raise self.error
        reply = self.replies.pop(0) if len(self.replies) > 1 else self.replies[0]
        if self.status_code != 200:
            return FakeResponse(self.status_code, text="upstream error")
        return FakeResponse(200, completion(reply))

    @property
    def payloads(self) -> list[dict]:
        return [kwargs["json"] for _, kwargs in self.calls]

    def last_prompt(self) -> str:
        return self.payloads[-1]["messages"][-1]["content"]
