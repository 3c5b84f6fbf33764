"""JSON extraction from free-text model replies.

Model output is not guaranteed to be bare JSON. This module pulls the
first JSON object out of a fenced code block or, failing that, the first
balanced ``{...}`` span. It fails loudly with LLMResponseParseError; it
never substitutes a default.
"""

import json
import re
from typing import Any

from src.errors import LLMResponseParseError

_FENCE_PATTERN = re.compile(r"```(?:json|JSON)?\s*\n?(.*?)```", re.DOTALL)


def _first_balanced_object(text: str) -> str | None:
    """Return the first balanced {...} substring, honoring JSON strings."""
    start = text.find("{")
    while start != -1:
        depth = 0
        in_string = False
        escaped = False
        for i in range(start, len(text)):
            ch = text[i]
            if in_string:
                if escaped:
                    escaped = False
                elif ch == "\\":
                    escaped = True
                elif ch == '"':
                    in_string = False
                continue
            if ch == '"':
                in_string = True
            elif ch == "{":
                depth += 1
            elif ch == "}":
                depth -= 1
                if depth == 0:
                    return text[start:i + 1]
        # Unbalanced from this brace; try the next one
        start = text.find("{", start + 1)
    return None


def _loads_object(candidate: str) -> dict[str, Any] | None:
    try:
        parsed = json.loads(candidate)
    except json.JSONDecodeError:
        return None
    return parsed if isinstance(parsed, dict) else None


def extract_json_object(text: str) -> dict[str, Any]:
    """Extract a JSON object from a model reply.

    Args:
        text: Raw completion text.

    Returns:
        The decoded JSON object.

    Raises:
        LLMResponseParseError: If no JSON object can be decoded.
    """
    if not text or not text.strip():
        raise LLMResponseParseError("Model reply was empty", raw_text=text or "")

    for match in _FENCE_PATTERN.finditer(text):
        block = match.group(1).strip()
        parsed = _loads_object(block)
        if parsed is not None:
            return parsed
        inner = _first_balanced_object(block)
        if inner is not None:
            parsed = _loads_object(inner)
            if parsed is not None:
                return parsed

    candidate = _first_balanced_object(text)
    if candidate is not None:
        parsed = _loads_object(candidate)
        if parsed is not None:
            return parsed

    raise LLMResponseParseError(
        "Model reply contained no valid JSON object", raw_text=text
    )
