from __future__ import annotations

import logging
from typing import Optional, Sequence

from ..llm.client import LLMClient
from .config import min_confidence
from .constants import DEFAULT_QUERY_TYPE, QUERY_TYPES
from .mapping import ordered_unfilled
from .types import Classification, SessionState

logger = logging.getLogger(__name__)


def _as_confidence(v) -> float:
    try:
        return min(max(float(v), 0.0), 1.0)
    except (TypeError, ValueError):
        return 0.0


class IntentClassifier:
    """Labels what a user turn is for. Always returns a label; unsure means "answer"."""

    def __init__(self, state: SessionState, llm: Optional[LLMClient] = None):
        self.state = state
        self.llm = llm or LLMClient()

    def classify(
        self,
        user_text: str,
        last_question: Optional[str] = None,
        filled_keys: Sequence[str] = (),
    ) -> Classification:
        unfilled = ordered_unfilled(self.state)
        variables = {
            "unfilled_labels": ", ".join(p.label for p in unfilled) or "None",
            "filled_keys": ", ".join(filled_keys) or "None",
            "last_question_line": f'- Last question asked: "{last_question}"' if last_question else "",
            "user_text": (user_text or "").strip(),
        }

        try:
            out = self.llm.run_json("classify_intent.txt", variables, max_output_tokens=200)
        except Exception as e:
            logger.warning("Classifier call failed, treating turn as answer: %s", e)
            return Classification(query_type=DEFAULT_QUERY_TYPE, confidence=0.0, reasoning="classifier unavailable")

        query_type = str(out.get("queryType") or "").strip().lower()
        confidence = _as_confidence(out.get("confidence", 0.5))
        reasoning = out.get("reasoning")

        if query_type not in QUERY_TYPES:
            logger.info("Unknown intent %r, treating turn as answer", query_type)
            return Classification(query_type=DEFAULT_QUERY_TYPE, confidence=confidence, reasoning=reasoning)

        if confidence < min_confidence():
            logger.info("Low confidence %.2f for %r, treating turn as answer", confidence, query_type)
            return Classification(query_type=DEFAULT_QUERY_TYPE, confidence=confidence, reasoning=reasoning)

        return Classification(query_type=query_type, confidence=confidence, reasoning=reasoning)
