from __future__ import annotations

import logging
from typing import Optional

from ..llm.client import LLMClient
from ..llm.context_builder import (
    QUESTION_CHANNEL,
    append_history,
    build_filled_context,
    description_line,
    get_history,
)
from .constants import ALL_FILLED_QUESTION
from .mapping import pick_next_placeholder
from .types import SessionState

logger = logging.getLogger(__name__)


class QuestionGenerator:
    """Asks for one placeholder at a time and records what was asked on the session."""

    def __init__(self, state: SessionState, llm: Optional[LLMClient] = None):
        self.state = state
        self.llm = llm or LLMClient()

    def next_question(self) -> str:
        target = pick_next_placeholder(self.state)
        if target is None:
            self.state.current_placeholder_key = None
            self.state.last_question_text = ALL_FILLED_QUESTION
            return ALL_FILLED_QUESTION

        variables = {
            "file_name": self.state.file_name,
            "label": target.label,
            "type": target.type,
            "description_line": description_line(target),
            "filled_context": build_filled_context(self.state),
        }
        try:
            question = self.llm.run_text(
                "next_question.txt",
                variables,
                history=get_history(self.state, QUESTION_CHANNEL),
                max_output_tokens=120,
            )
        except Exception as e:
            logger.warning("Question generation failed for %s: %s", target.key, e)
            question = ""

        question = (question or "").strip() or f"Could you provide the {target.label}?"

        self.state.current_placeholder_key = target.key
        self.state.last_question_text = question
        append_history(self.state, QUESTION_CHANNEL, "assistant", question)
        return question

    def acknowledge(self, text: str) -> None:
        append_history(self.state, QUESTION_CHANNEL, "assistant", text)
