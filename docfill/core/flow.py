from __future__ import annotations

import logging
import re
from typing import Callable, Dict, List, Optional, Tuple

from ..llm.client import LLMClient
from .classifier import IntentClassifier
from .config import invalid_value_policy
from .constants import (
    ALREADY_COMPLETE_MESSAGE,
    CLARIFY_FALLBACK,
    COMPLETION_MESSAGE,
    CONTINUE_OFFER,
    CORRECTION_ACK,
    CURRENT_QUESTION_CUES,
    RESUME_SKIPPED_INTRO,
)
from .explainer import ExplanationGenerator
from .extractor import ValueExtractor
from .mapping import has_unskipped_remaining, is_known_key, pick_next_placeholder
from .questions import QuestionGenerator
from .state import (
    drop_response,
    filled_keys,
    is_complete,
    is_filled,
    label_for,
    mark_skipped,
    set_response,
)
from .types import Classification, ExtractionResult, SessionState, TurnResponse, ValidationResult
from .validator import Validator

logger = logging.getLogger(__name__)

CONTINUE_RE = re.compile(r"^(yes|yeah|yep|yup|sure|ok|okay|continue|let's go|let's continue)\b", re.IGNORECASE)
CURRENT_QUESTION_RE = re.compile(r"\b(" + "|".join(CURRENT_QUESTION_CUES) + r")", re.IGNORECASE)


def _join(*parts: Optional[str]) -> str:
    return "\n\n".join(p.strip() for p in parts if p and p.strip())


def is_continue_request(text: str) -> bool:
    return bool(CONTINUE_RE.match((text or "").strip()))


def is_about_current_question(text: str) -> bool:
    return bool(CURRENT_QUESTION_RE.search(text or ""))


class Orchestrator:
    """
    Turn state machine for one session.

    Each turn: classify -> dispatch to exactly one handler -> the handler
    mutates the session and builds the reply. The caller owns persistence
    and must not run two turns of the same session at once.
    """

    def __init__(self, state: SessionState, llm: Optional[LLMClient] = None):
        self.state = state
        llm = llm or LLMClient()
        self.classifier = IntentClassifier(state, llm)
        self.extractor = ValueExtractor(state, llm)
        self.validator = Validator(state, llm)
        self.questions = QuestionGenerator(state, llm)
        self.explainer = ExplanationGenerator(state, llm)

        self._handlers: Dict[str, Callable[[str, Classification], TurnResponse]] = {
            "answer": self._handle_answer,
            "question": self._handle_question,
            "clarification": self._handle_clarification,
            "correction": self._handle_correction,
            "skip": self._handle_skip,
            "general": self._handle_general,
        }

    # -----------------------------
    # Public entrypoints
    # -----------------------------
    def start(self) -> TurnResponse:
        """First (or resumed) prompt for the session."""
        if is_complete(self.state):
            return TurnResponse(message=COMPLETION_MESSAGE, is_complete=True)

        current = self.state.current_placeholder_key
        if self.state.last_question_text and current and not is_filled(self.state, current):
            question = self.state.last_question_text
        else:
            question = self.questions.next_question()
        return TurnResponse(message=question, is_complete=False)

    def process_message(self, user_text: str) -> TurnResponse:
        text = (user_text or "").strip()

        if is_complete(self.state):
            return self._handle_after_completion(text)

        classification = self.classifier.classify(
            text,
            last_question=self.state.last_question_text,
            filled_keys=filled_keys(self.state),
        )
        logger.info(
            "Session %s turn routed as %s (%.2f)",
            self.state.session_id,
            classification.query_type,
            classification.confidence,
        )

        handler = self._handlers.get(classification.query_type, self._handle_answer)
        response = handler(text, classification)

        self.state.needs_clarification = bool(response.needs_clarification) and not response.is_complete
        return response

    # -----------------------------
    # Handlers
    # -----------------------------
    def _handle_answer(self, text: str, classification: Classification) -> TurnResponse:
        current = self.state.current_placeholder_key or pick_next_placeholder(self.state).key

        extraction = self.extractor.extract(
            text,
            last_question=self.state.last_question_text,
            current_key=current,
        )
        return self._after_extraction(extraction, "answer")

    def _handle_question(self, text: str, classification: Classification) -> TurnResponse:
        last_question = self.state.last_question_text
        explanation = self._explain(text)

        if last_question and is_about_current_question(text):
            return TurnResponse(message=_join(explanation, last_question), is_complete=False, query_type="question")

        question = self.questions.next_question()
        return TurnResponse(message=_join(explanation, question), is_complete=False, query_type="question")

    def _handle_clarification(self, text: str, classification: Classification) -> TurnResponse:
        # The user may be answering while sounding unsure
        extraction = self.extractor.extract(
            text,
            last_question=self.state.last_question_text,
            current_key=self.state.current_placeholder_key,
        )
        if extraction.filled_keys:
            return self._after_extraction(extraction, "answer")

        explanation = self._explain(text)

        last_question = self.state.last_question_text
        current = self.state.current_placeholder_key
        if last_question and current and not is_filled(self.state, current):
            question = last_question
        else:
            question = self.questions.next_question()

        return TurnResponse(
            message=_join(explanation, question),
            is_complete=False,
            needs_clarification=True,
            query_type="clarification",
        )

    def _handle_correction(self, text: str, classification: Classification) -> TurnResponse:
        extraction = self.extractor.extract(
            text,
            last_question=self.state.last_question_text,
            current_key=self.state.current_placeholder_key,
            allow_overwrite=True,
        )
        return self._after_extraction(extraction, "correction", default_ack=CORRECTION_ACK)

    def _handle_skip(self, text: str, classification: Classification) -> TurnResponse:
        current = self.state.current_placeholder_key
        if current and is_known_key(self.state, current) and not is_filled(self.state, current):
            target = current
        else:
            target = pick_next_placeholder(self.state).key

        mark_skipped(self.state, target)
        skip_msg = f"I've skipped \"{label_for(self.state, target)}\" for now. We'll come back to it later."

        resuming = not has_unskipped_remaining(self.state)
        question = self.questions.next_question()
        if resuming:
            # Only deferred placeholders are left: start working through them
            message = _join(skip_msg, f"{RESUME_SKIPPED_INTRO}\n{question}")
        else:
            message = _join(skip_msg, question)

        return TurnResponse(message=message, is_complete=False, query_type="skip")

    def _handle_general(self, text: str, classification: Classification) -> TurnResponse:
        if is_continue_request(text):
            return TurnResponse(message=self.questions.next_question(), is_complete=False, query_type="general")

        explanation = self._explain(text)
        return TurnResponse(message=_join(explanation, CONTINUE_OFFER), is_complete=False, query_type="general")

    def _handle_after_completion(self, text: str) -> TurnResponse:
        """Completed sessions are read-only: explain if asked, never collect or skip."""
        classification = self.classifier.classify(
            text,
            last_question=self.state.last_question_text,
            filled_keys=filled_keys(self.state),
        )
        if classification.query_type in ("question", "clarification", "general"):
            return TurnResponse(
                message=_join(self._explain(text), ALREADY_COMPLETE_MESSAGE),
                is_complete=True,
                query_type=classification.query_type,
            )
        return TurnResponse(message=ALREADY_COMPLETE_MESSAGE, is_complete=True, query_type=classification.query_type)

    # -----------------------------
    # Shared post-extraction path
    # -----------------------------
    def _after_extraction(
        self,
        extraction: ExtractionResult,
        query_type: str,
        default_ack: Optional[str] = None,
    ) -> TurnResponse:
        results, discarded = self._validate_filled(extraction)
        notes = self._validation_notes(results)

        kept = [k for k in extraction.filled_keys if k not in discarded]
        reported = {k: v for k, v in extraction.extracted_values.items() if k not in discarded}

        understood = extraction.understood and not extraction.needs_clarification
        # the canned acknowledgment only claims what was actually stored
        ack = extraction.acknowledgment or (default_ack if kept else None) or ""

        if is_complete(self.state):
            return TurnResponse(
                message=_join(ack, notes, COMPLETION_MESSAGE),
                is_complete=True,
                extracted_values=reported,
                needs_clarification=False,
                query_type=query_type,
            )

        question = self.questions.next_question()
        if understood and ack:
            self.questions.acknowledge(ack)

        lead = ack if understood else (ack or CLARIFY_FALLBACK)
        return TurnResponse(
            message=_join(lead, notes, question),
            is_complete=False,
            extracted_values=reported,
            needs_clarification=not understood,
            query_type=query_type,
        )

    def _validate_filled(self, extraction: ExtractionResult) -> Tuple[Dict[str, ValidationResult], List[str]]:
        """
        Validate this turn's known keys. Under the discard policy an invalid
        value is rolled back to what the key held before the turn.
        Returns the results and the rolled-back keys.
        """
        results: Dict[str, ValidationResult] = {}
        for key in extraction.filled_keys:
            if not is_known_key(self.state, key):
                continue
            results[key] = self.validator.validate(key, self.state.responses[key])

        discarded: List[str] = []
        if invalid_value_policy() == "discard":
            for key, result in results.items():
                if result.is_valid:
                    continue
                previous = extraction.previous_values.get(key)
                if previous is None:
                    logger.info("Discarding invalid value for %s", key)
                    drop_response(self.state, key)
                else:
                    logger.info("Invalid value for %s, restoring previous value", key)
                    set_response(self.state, key, previous, source="rollback")
                discarded.append(key)
        return results, discarded

    def _validation_notes(self, results: Dict[str, ValidationResult]) -> str:
        errors = [
            f"{label_for(self.state, key)}: {', '.join(r.errors)}"
            for key, r in results.items()
            if r.errors
        ]
        warnings = [
            f"{label_for(self.state, key)}: {', '.join(r.warnings)}"
            for key, r in results.items()
            if r.warnings
        ]

        blocks = []
        if errors:
            blocks.append("⚠️ Please correct the following:\n" + "\n".join(errors))
        if warnings:
            blocks.append("Note:\n" + "\n".join(warnings))
        return "\n\n".join(blocks)

    def _explain(self, text: str) -> str:
        return self.explainer.explain(
            text,
            last_question=self.state.last_question_text,
            current_key=self.state.current_placeholder_key,
            filled_keys=filled_keys(self.state),
        )
