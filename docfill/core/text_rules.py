"""
Post-processing rules for model-written replies.

Explanations and acknowledgments must never end by asking the user
something; the question the user sees next comes from the question
generator only. Each rule is a plain ``str -> str`` function so the set is
enumerable and can be tested one rule at a time.
"""

from __future__ import annotations

import re
from typing import Callable, Sequence

from .constants import ACK_FALLBACK

Rule = Callable[[str], str]

INTERROGATIVE_CUE = re.compile(
    r"^\s*(what|which|who|where|when|why|how|is|are|can|could|will|would|should|do|does|did)\b",
    re.IGNORECASE,
)

FOLLOWUP_PATTERNS = (
    re.compile(r"Do you have any other questions.*?$", re.IGNORECASE | re.DOTALL),
    re.compile(r"Would you like to discuss.*?$", re.IGNORECASE | re.DOTALL),
    re.compile(r"Are there any other.*?questions.*?$", re.IGNORECASE | re.DOTALL),
    re.compile(r"Can I help with anything else.*?$", re.IGNORECASE | re.DOTALL),
    re.compile(r"Would you like to continue.*?$", re.IGNORECASE | re.DOTALL),
    re.compile(r"Any other.*?questions.*?$", re.IGNORECASE | re.DOTALL),
    re.compile(r"Do you want to.*?continue.*?$", re.IGNORECASE | re.DOTALL),
    re.compile(r"Should we.*?move on.*?$", re.IGNORECASE | re.DOTALL),
)


def _terminate(text: str, endings: str = ".!") -> str:
    if text and text[-1] not in endings:
        return text + "."
    return text


def strip_trailing_question(text: str) -> str:
    """
    Cut everything from the first '?' on.

    If the sentence holding that '?' starts with an interrogative cue word
    the whole sentence goes; otherwise only the part from the '?' goes.
    An all-question reply collapses to ACK_FALLBACK.
    """
    if not text:
        return text

    q = text.find("?")
    if q == -1:
        return text.strip()

    before = text[:q]
    boundary = max(before.rfind("."), before.rfind("!"))

    if boundary > 0:
        trailing = before[boundary + 1 :]
        if INTERROGATIVE_CUE.match(trailing):
            cleaned = before[: boundary + 1].strip()
        else:
            cleaned = before.strip()
    elif INTERROGATIVE_CUE.match(before):
        cleaned = ""
    else:
        cleaned = before.strip()

    return _terminate(cleaned) or ACK_FALLBACK


def strip_followup_phrases(text: str) -> str:
    """Drop canned 'any other questions?' style endings."""
    cleaned = (text or "").strip()
    for pattern in FOLLOWUP_PATTERNS:
        m = pattern.search(cleaned)
        if m:
            cleaned = _terminate(cleaned[: m.start()].strip(), ".!?")
            return cleaned or text
    return cleaned


EXPLANATION_RULES: Sequence[Rule] = (strip_trailing_question, strip_followup_phrases)
ACKNOWLEDGMENT_RULES: Sequence[Rule] = (strip_trailing_question,)


def normalize_reply(text: str, rules: Sequence[Rule] = EXPLANATION_RULES) -> str:
    out = text or ""
    for rule in rules:
        out = rule(out)
    return out.strip()
