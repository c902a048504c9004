# scenedirector/ai_pipeline/extract.py
"""
Pull a JSON value out of free-form model output.

Handles:
- JSON inside markdown code fences
- Leading/trailing prose around the JSON
- Trailing commas before ``}`` / ``]``
"""

from __future__ import annotations

import json
import re
from typing import Any


_FENCE_RE = re.compile(r"```(?:json)?\s*([\s\S]*?)\s*```", re.IGNORECASE)
_TRAILING_COMMA_RE = re.compile(r",\s*([}\]])")


class JsonExtractionError(ValueError):
    """Raised when no JSON value can be recovered from the text."""


def extract_json_text(raw: str) -> str:
    """
    Return the first bracket-balanced ``{...}`` or ``[...]`` slice of ``raw``.

    Brackets inside string literals are ignored. When the value never closes
    the remainder of the text is returned and left for the parser to reject.
    """
    text = raw.strip()
    fence = _FENCE_RE.search(text)
    if fence:
        text = fence.group(1).strip()

    match = re.search(r"[{\[]", text)
    if match is None:
        return text
    start = match.start()

    stack: list[str] = []
    in_string = False
    escape = False

    for i in range(start, len(text)):
        ch = text[i]

        if in_string:
            if escape:
                escape = False
            elif ch == "\\":
                escape = True
            elif ch == '"':
                in_string = False
            continue

        if ch == '"':
            in_string = True
        elif ch in "{[":
            stack.append(ch)
        elif ch in "}]":
            if stack and ((ch == "}" and stack[-1] == "{") or (ch == "]" and stack[-1] == "[")):
                stack.pop()
            if not stack:
                return text[start : i + 1]

    return text[start:]


def parse_model_json(raw: str) -> Any:
    """Parse the JSON value embedded in ``raw`` or raise ``JsonExtractionError``."""
    candidate = extract_json_text(raw or "")
    try:
        return json.loads(candidate)
    except RecursionError as e:
        raise JsonExtractionError("model output nests too deeply to parse") from e
    except json.JSONDecodeError:
        pass

    repaired = _TRAILING_COMMA_RE.sub(r"\1", candidate)
    try:
        return json.loads(repaired)
    except RecursionError as e:
        raise JsonExtractionError("model output nests too deeply to parse") from e
    except json.JSONDecodeError as e:
        raise JsonExtractionError(f"no parseable JSON in model output: {e}") from e
