from __future__ import annotations

import logging
from typing import Optional, Sequence

from ..llm.client import LLMClient
from ..llm.context_builder import (
    EXPLANATION_CHANNEL,
    append_history,
    build_placeholder_list,
    get_history,
)
from .constants import EXPLAIN_FALLBACK
from .state import is_filled, placeholder_by_key, unfilled_placeholders
from .text_rules import EXPLANATION_RULES, normalize_reply
from .types import SessionState

logger = logging.getLogger(__name__)


class ExplanationGenerator:
    """Answers questions about the document or a placeholder. Never advances the session."""

    def __init__(self, state: SessionState, llm: Optional[LLMClient] = None):
        self.state = state
        self.llm = llm or LLMClient()

    def _context_info(
        self,
        last_question: Optional[str],
        current_key: Optional[str],
        filled_keys: Sequence[str],
    ) -> str:
        parts = []
        if last_question:
            parts.append(f'The assistant just asked: "{last_question}"')
            parts.append("A confused user is most likely asking about that question.\n")

        current = placeholder_by_key(self.state, current_key)
        if current is not None:
            parts.append(f"Current placeholder: {current.label} ({current.key})")
            if current.description:
                parts.append(f"Description: {current.description}")
            parts.append(f"Type: {current.type}\n")

        unfilled = unfilled_placeholders(self.state)
        if unfilled:
            parts.append("Unfilled placeholders:\n" + build_placeholder_list(unfilled) + "\n")

        filled = [placeholder_by_key(self.state, k) for k in filled_keys]
        filled_lines = [f"- {p.label}: {self.state.responses[p.key]}" for p in filled if p is not None]
        if filled_lines:
            parts.append("Filled placeholders:\n" + "\n".join(filled_lines) + "\n")

        return "\n".join(parts)

    def explain(
        self,
        user_text: str,
        last_question: Optional[str] = None,
        current_key: Optional[str] = None,
        filled_keys: Sequence[str] = (),
    ) -> str:
        current = placeholder_by_key(self.state, current_key)
        variables = {
            "file_name": self.state.file_name,
            "context_info": self._context_info(last_question, current_key, filled_keys),
            "user_text": (user_text or "").strip(),
            "current_description": (current.description or "") if current else "",
        }

        try:
            raw = self.llm.run_text(
                "explain.txt",
                variables,
                history=get_history(self.state, EXPLANATION_CHANNEL),
                max_output_tokens=400,
            )
        except Exception as e:
            logger.warning("Explanation call failed: %s", e)
            raw = ""

        if raw.strip():
            explanation = normalize_reply(raw, EXPLANATION_RULES)
        elif current is not None:
            explanation = self.describe_placeholder(current.key)
        else:
            explanation = EXPLAIN_FALLBACK

        append_history(self.state, EXPLANATION_CHANNEL, "user", user_text)
        append_history(self.state, EXPLANATION_CHANNEL, "assistant", explanation)
        return explanation

    def describe_placeholder(self, key: str) -> str:
        """Deterministic summary of one placeholder, used when the model is unavailable."""
        p = placeholder_by_key(self.state, key)
        if p is None:
            return "I couldn't find that placeholder."

        lines = [f"**{p.label}**", f"Type: {p.type}"]
        if p.description:
            lines.append(f"Description: {p.description}")
        if is_filled(self.state, key):
            lines.append(f"Current value: {self.state.responses[key]}")
        else:
            lines.append("Status: Not yet filled")
        return "\n".join(lines)
