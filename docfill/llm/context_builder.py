from __future__ import annotations

import json
from typing import Any, Dict, Iterable, List, Optional

from ..core.config import history_limit
from ..core.state import is_filled
from ..core.types import PlaceholderDefinition, SessionState

# Conversation channels, one per component. Never mixed.
QUESTION_CHANNEL = "question"
EXTRACTION_CHANNEL = "extraction"
EXPLANATION_CHANNEL = "explanation"


def _clip(s: str, n: int) -> str:
    s = (s or "").strip()
    if len(s) <= n:
        return s
    return s[:n].rstrip() + "…"


def build_filled_context(
    state: SessionState,
    max_chars: int = 1200,
    *,
    max_chars_per_field: int = 200,
) -> str:
    """
    Token-safe: limits BOTH per-field and total characters.
    Only placeholder keys are listed; orphan entries stay out of prompts.
    """
    lines: List[str] = []
    used = 0

    for p in state.placeholders:
        if not is_filled(state, p.key):
            continue

        line = f"- {p.label}: {_clip(state.responses[p.key], max_chars_per_field)}"

        # +1 for newline
        if used + len(line) + 1 > max_chars:
            break

        lines.append(line)
        used += len(line) + 1

    return "\n".join(lines).strip() or "(none yet)"


def placeholder_desc(p: PlaceholderDefinition) -> str:
    desc = f": {p.description}" if p.description else ""
    return f"- {p.label}{desc} ({p.type})"


def build_placeholder_list(items: Iterable[PlaceholderDefinition]) -> str:
    return "\n".join(placeholder_desc(p) for p in items).strip()


def build_placeholders_json(items: Iterable[PlaceholderDefinition]) -> str:
    data = [
        {"key": p.key, "label": p.label, "type": p.type, "description": p.description or ""}
        for p in items
    ]
    return json.dumps(data, ensure_ascii=False, indent=2)


def description_line(p: Optional[PlaceholderDefinition]) -> str:
    if p is None or not p.description:
        return ""
    return f"Description: {p.description}"


# -----------------------------
# Conversation channels
# -----------------------------
def get_history(state: SessionState, channel: str) -> List[Dict[str, str]]:
    return list(state.history.get(channel) or [])


def append_history(state: SessionState, channel: str, role: str, content: str) -> None:
    content = (content or "").strip()
    if not content:
        return

    entries: List[Dict[str, Any]] = state.history.setdefault(channel, [])
    entries.append({"role": role, "content": content})

    limit = history_limit()
    if len(entries) > limit:
        del entries[: len(entries) - limit]
