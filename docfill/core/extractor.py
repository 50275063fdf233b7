from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from ..llm.client import LLMClient
from ..llm.context_builder import (
    EXTRACTION_CHANNEL,
    append_history,
    build_placeholders_json,
    get_history,
)
from .mapping import is_known_key, ordered_unfilled, resolve_key
from .state import is_filled, label_for, placeholder_by_key, set_response
from .text_rules import ACKNOWLEDGMENT_RULES, normalize_reply
from .types import ExtractionResult, SessionState

logger = logging.getLogger(__name__)


def _raw_pairs(extracted: Any) -> Dict[str, str]:
    """Model may answer with [{key, value}, ...] or a plain {key: value} object."""
    pairs: Dict[str, str] = {}
    if isinstance(extracted, list):
        for item in extracted:
            if not isinstance(item, dict):
                continue
            key, value = item.get("key"), item.get("value")
            if key and value is not None and str(value).strip():
                pairs[str(key)] = str(value).strip()
    elif isinstance(extracted, dict):
        for key, value in extracted.items():
            if key and value is not None and str(value).strip():
                pairs[str(key)] = str(value).strip()
    return pairs


class ValueExtractor:
    def __init__(self, state: SessionState, llm: Optional[LLMClient] = None):
        self.state = state
        self.llm = llm or LLMClient()

    def _context_info(self, last_question: Optional[str], current_key: Optional[str]) -> str:
        lines = []
        if last_question:
            lines.append(f'The last question asked was: "{last_question}"')
            lines.append("A bare value in reply almost certainly belongs to the placeholder in that question.")
        current = placeholder_by_key(self.state, current_key)
        if current is not None:
            lines.append(f'We are currently working on: "{current.label}" (key: {current.key})')
            lines.append("If the user gives a value, map it to this placeholder first.")
        return ("\n" + "\n".join(lines) + "\n") if lines else ""

    def extract(
        self,
        user_text: str,
        last_question: Optional[str] = None,
        current_key: Optional[str] = None,
        allow_overwrite: bool = False,
    ) -> ExtractionResult:
        """
        Map a user turn to placeholder values and store the new ones.

        Existing values are only replaced when allow_overwrite is set
        (the correction path). On a failed model call nothing is stored and
        the result asks for clarification.
        """
        candidates = self.state.placeholders if allow_overwrite else ordered_unfilled(self.state)
        current = placeholder_by_key(self.state, current_key)

        variables = {
            "context_info": self._context_info(last_question, current_key),
            "placeholders_json": build_placeholders_json(candidates),
            "user_text": (user_text or "").strip(),
            "current_key": current.key if current else "",
        }
        history = get_history(self.state, EXTRACTION_CHANNEL)
        append_history(self.state, EXTRACTION_CHANNEL, "user", user_text)

        try:
            out = self.llm.run_json("extract_values.txt", variables, history=history, max_output_tokens=600)
        except Exception as e:
            logger.warning("Extraction call failed: %s", e)
            return ExtractionResult(understood=False, needs_clarification=True)

        mapped: Dict[str, str] = {}
        for raw_key, value in _raw_pairs(out.get("extractedValues")).items():
            key = resolve_key(self.state, raw_key, current_key)
            if not key:
                continue
            if not is_known_key(self.state, key):
                logger.warning("Extracted key %r matches no placeholder, kept as orphan", key)
            mapped[key] = value

        source = "correction" if allow_overwrite else "answer"
        written = []
        previous: Dict[str, str] = {}
        for key, value in mapped.items():
            if is_filled(self.state, key):
                if not allow_overwrite:
                    logger.info("Not overwriting %s (%s); already filled", key, label_for(self.state, key))
                    continue
                previous[key] = self.state.responses[key]
            set_response(self.state, key, value, source=source)
            written.append(key)

        ack = str(out.get("acknowledgment") or out.get("response") or "").strip()
        if ack:
            ack = normalize_reply(ack, ACKNOWLEDGMENT_RULES)
        if written and ack:
            append_history(self.state, EXTRACTION_CHANNEL, "assistant", ack)

        return ExtractionResult(
            understood=bool(out.get("understood", False)),
            extracted_values=mapped,
            acknowledgment=ack or None,
            needs_clarification=bool(out.get("needsClarification", False)),
            filled_keys=written,
            previous_values=previous,
        )
