"""Scripted LLMClient."""

import json
from typing import Any


class FakeLLMClient:
    """Returns queued replies in order and records every call.

    A queued Exception is raised instead of returned. Dict replies are
    serialized to JSON.
    """

    def __init__(self, *replies: Any, is_configured: bool = True) -> None:
        self.replies = list(replies)
        self.calls: list[tuple[str, list[dict[str, Any]]]] = []
        self.is_configured = is_configured

    async def complete(self, system: str, messages: list[dict[str, Any]]) -> str:
        self.calls.append((system, messages))
        if not self.replies:
            raise AssertionError("FakeLLMClient has no replies left")
        reply = self.replies.pop(0)
        if isinstance(reply, Exception):
            raise reply
        if isinstance(reply, (dict, list)):
            return json.dumps(reply)
        return reply
