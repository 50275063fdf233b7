from __future__ import annotations

import json
import re
from typing import Any, Dict


class JSONParseError(ValueError):
    pass


_FENCE_RE = re.compile(r"```(?:json)?\s*(\{.*?\})\s*```", re.DOTALL | re.IGNORECASE)

_CONTROL_ESCAPES = {"\b": "\\b", "\t": "\\t", "\n": "\\n", "\r": "\\r", "\f": "\\f"}

# (pattern, replacement) repairs, applied in order
_REPAIRS = (
    (re.compile(r"\bNone\b"), "null"),
    (re.compile(r"\bTrue\b"), "true"),
    (re.compile(r"\bFalse\b"), "false"),
    (re.compile(r":\s*\.(\d+)"), r": 0.\1"),
    (re.compile(r",\s*([}\]])"), r"\1"),
)


def _first_json_object(text: str) -> str:
    """Fenced block if there is one, else the first balanced {...} span."""
    fenced = _FENCE_RE.search(text)
    if fenced:
        return fenced.group(1)

    start = text.find("{")
    if start == -1:
        raise JSONParseError("No '{' found in model output")

    depth = 0
    in_string = False
    escaped = False
    for i in range(start, len(text)):
        c = text[i]
        if in_string:
            if escaped:
                escaped = False
            elif c == "\\":
                escaped = True
            elif c == '"':
                in_string = False
            continue
        if c == '"':
            in_string = True
        elif c == "{":
            depth += 1
        elif c == "}":
            depth -= 1
            if depth == 0:
                return text[start : i + 1]

    raise JSONParseError("Unbalanced JSON braces in model output")


def _escape_control_chars(text: str) -> str:
    """Escape raw control characters that models leave inside string literals."""
    out = []
    in_string = False
    escaped = False
    for c in text:
        if escaped:
            out.append(c)
            escaped = False
        elif c == "\\":
            out.append(c)
            escaped = True
        elif c == '"':
            in_string = not in_string
            out.append(c)
        elif in_string and ord(c) < 0x20:
            out.append(_CONTROL_ESCAPES.get(c, f"\\u{ord(c):04x}"))
        else:
            out.append(c)
    return "".join(out)


def _repair(text: str) -> str:
    t = text.strip()
    for pattern, replacement in _REPAIRS:
        t = pattern.sub(replacement, t)
    return _escape_control_chars(t)


def parse_json_strict(text: str) -> Dict[str, Any]:
    """
    Parse the JSON object in a model reply.

    Plain JSON is tried first. Otherwise the object is cut out of code
    fences or surrounding prose and common model mistakes are repaired
    (Python literals, bare decimals, trailing commas, raw newlines in
    strings). Anything that is still not a JSON object raises JSONParseError.
    """
    if not text:
        raise JSONParseError("Empty model output")

    try:
        data = json.loads(text)
    except ValueError:
        try:
            data = json.loads(_repair(_first_json_object(text)))
        except ValueError as e:
            raise JSONParseError(f"Failed to parse JSON: {e}\n--- Raw ---\n{text[:800]}") from e

    if not isinstance(data, dict):
        raise JSONParseError(f"Expected a JSON object, got {type(data).__name__}")
    return data
