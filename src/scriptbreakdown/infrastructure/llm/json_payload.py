from __future__ import annotations

import json
import re
from dataclasses import dataclass
from typing import Any

_FENCED_BLOCK_PATTERNS = (
    re.compile(r"```json\s*(.*?)\s*```", re.IGNORECASE | re.DOTALL),
    re.compile(r"```\s*(.*?)\s*```", re.DOTALL),
)
_TRAILING_COMMA = re.compile(r",\s*([\]}])")
_ADJACENT_OBJECTS = re.compile(r"}\s*{")
_BLOCK_COMMENT = re.compile(r"/\*.*?\*/", re.DOTALL)
_LINE_COMMENT = re.compile(r"^\s*//[^\n]*$", re.MULTILINE)


@dataclass(slots=True)
class JsonPayload:
    ok: bool
    data: Any = None
    error: str | None = None


def parse_json_payload(raw: str | None) -> JsonPayload:
    """Extract a JSON value from free-form model output.

    Strategies, in order: direct parse, fenced code blocks, the largest
    balanced ``{...}`` or ``[...]`` span, and a repair pass for trailing commas,
    comments and adjacent objects missing a separator.
    """
    if not isinstance(raw, str) or not raw.strip():
        return JsonPayload(ok=False, error="empty response")
    text = raw.strip()

    for strategy in (_parse_direct, _parse_fenced, _parse_balanced, _parse_repaired):
        found, value = strategy(text)
        if found:
            return JsonPayload(ok=True, data=value)
    return JsonPayload(ok=False, error="no valid JSON found in response")


def scene_items_from_payload(payload: JsonPayload) -> tuple[list[dict[str, Any]], str | None]:
    """Validate a parsed payload and return its scene objects.

    Returns ``(items, None)`` on success or ``([], error)`` when the payload
    has no usable ``scenes`` array. Non-object entries inside the array are
    skipped.
    """
    if not payload.ok:
        return [], payload.error or "unparseable response"
    data = payload.data
    if isinstance(data, list):
        scenes = data
    elif isinstance(data, dict):
        scenes = data.get("scenes")
        if not isinstance(scenes, list):
            return [], "response has no 'scenes' array"
    else:
        return [], f"unexpected JSON type: {type(data).__name__}"
    return [item for item in scenes if isinstance(item, dict)], None


def _try_loads(text: str) -> tuple[bool, Any]:
    try:
        return True, json.loads(text)
    except (json.JSONDecodeError, ValueError):
        return False, None


def _parse_direct(text: str) -> tuple[bool, Any]:
    return _try_loads(text)


def _parse_fenced(text: str) -> tuple[bool, Any]:
    for pattern in _FENCED_BLOCK_PATTERNS:
        for match in pattern.finditer(text):
            found, value = _try_loads(match.group(1).strip())
            if found:
                return True, value
    return False, None


def _parse_balanced(text: str) -> tuple[bool, Any]:
    for open_char, close_char in (("{", "}"), ("[", "]")):
        found, value = _largest_balanced(text, open_char, close_char)
        if found:
            return True, value
    return False, None


def _largest_balanced(text: str, open_char: str, close_char: str) -> tuple[bool, Any]:
    best: tuple[bool, Any] = (False, None)
    best_len = 0
    depth = 0
    start = -1
    in_string = False
    escaped = False
    for idx, char in enumerate(text):
        if escaped:
            escaped = False
            continue
        if char == "\\" and in_string:
            escaped = True
            continue
        if char == '"':
            in_string = not in_string
            continue
        if in_string:
            continue
        if char == open_char:
            if depth == 0:
                start = idx
            depth += 1
        elif char == close_char and depth > 0:
            depth -= 1
            if depth == 0 and start >= 0:
                candidate = text[start : idx + 1]
                if len(candidate) > best_len:
                    found, value = _try_loads(candidate)
                    if found:
                        best = (True, value)
                        best_len = len(candidate)
                start = -1
    return best


def _parse_repaired(text: str) -> tuple[bool, Any]:
    starts = [pos for pos in (text.find("{"), text.find("[")) if pos >= 0]
    end = max(text.rfind("}"), text.rfind("]"))
    candidate = text
    if starts and end > min(starts):
        candidate = text[min(starts) : end + 1]

    repaired = _BLOCK_COMMENT.sub("", candidate)
    repaired = _LINE_COMMENT.sub("", repaired)
    repaired = _TRAILING_COMMA.sub(r"\1", repaired)
    repaired = _ADJACENT_OBJECTS.sub("},{", repaired)
    return _try_loads(repaired)
