from __future__ import annotations

import logging
import re
from datetime import datetime
from typing import Dict, List, Optional

from ..llm.client import LLMClient
from ..llm.context_builder import description_line
from .state import is_filled, placeholder_by_key
from .types import SessionState, ValidationResult

logger = logging.getLogger(__name__)

EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")

DATE_FORMATS = (
    "%Y-%m-%d",
    "%Y/%m/%d",
    "%m/%d/%Y",
    "%d/%m/%Y",
    "%m-%d-%Y",
    "%d.%m.%Y",
    "%B %d, %Y",
    "%B %d %Y",
    "%b %d, %Y",
    "%b %d %Y",
    "%d %B %Y",
    "%d %b %Y",
    "%B %Y",
)

MIN_ADDRESS_LEN = 10


def _parses_as_date(value: str) -> bool:
    v = re.sub(r"(\d)(st|nd|rd|th)\b", r"\1", value.strip())
    try:
        datetime.fromisoformat(v)
        return True
    except ValueError:
        pass
    for fmt in DATE_FORMATS:
        try:
            datetime.strptime(v, fmt)
            return True
        except ValueError:
            continue
    return False


def _parses_as_number(value: str) -> bool:
    digits = re.sub(r"[^0-9.\-]", "", value)
    try:
        float(digits)
        return True
    except ValueError:
        return False


def type_check(placeholder_type: str, value: str) -> ValidationResult:
    """Deterministic format check. Its errors are never overridden."""
    errors: List[str] = []
    warnings: List[str] = []
    value = value or ""

    if placeholder_type == "email":
        if not EMAIL_RE.match(value.strip()):
            errors.append("Invalid email format")

    elif placeholder_type == "date":
        if not _parses_as_date(value):
            errors.append("Invalid date format")

    elif placeholder_type in ("number", "currency"):
        if not _parses_as_number(value):
            errors.append(f"Invalid {placeholder_type} format")

    elif placeholder_type == "address":
        if len(value.strip()) < MIN_ADDRESS_LEN:
            warnings.append("Address seems short - please include street, city, and state/zip")

    elif placeholder_type in ("text", "signature"):
        if not value.strip():
            errors.append("Value cannot be empty")

    return ValidationResult(is_valid=not errors, errors=errors, warnings=warnings)


def _str_list(v) -> List[str]:
    if not isinstance(v, list):
        return []
    return [str(x).strip() for x in v if x is not None and str(x).strip()]


def _merge(first: List[str], second: List[str]) -> List[str]:
    out = list(first)
    for item in second:
        if item not in out:
            out.append(item)
    return out


class Validator:
    def __init__(self, state: SessionState, llm: Optional[LLMClient] = None):
        self.state = state
        self.llm = llm or LLMClient()

    def validate(self, placeholder_key: str, value: str) -> ValidationResult:
        """
        Stage 1 is the local type check. A value that fails it is returned as is.
        Stage 2 asks the model about plausibility and is merged on top of stage 1;
        if it fails, stage 1 stands alone.
        """
        placeholder = placeholder_by_key(self.state, placeholder_key)
        if placeholder is None:
            return ValidationResult(is_valid=False, errors=["Placeholder not found"])

        basic = type_check(placeholder.type, value)
        if not basic.is_valid:
            return basic

        variables = {
            "label": placeholder.label,
            "type": placeholder.type,
            "description_line": description_line(placeholder),
            "value": value,
        }
        try:
            out = self.llm.run_json("validate_value.txt", variables, max_output_tokens=300)
        except Exception as e:
            logger.warning("Plausibility check failed for %s, using type check only: %s", placeholder_key, e)
            return basic

        errors = _merge(basic.errors, _str_list(out.get("errors")))
        warnings = _merge(basic.warnings, _str_list(out.get("warnings")))
        suggestions = _str_list(out.get("suggestions")) or None

        return ValidationResult(
            is_valid=not errors,
            errors=errors,
            warnings=warnings,
            suggestions=suggestions,
        )

    def validate_all(self) -> Dict[str, ValidationResult]:
        results: Dict[str, ValidationResult] = {}
        for p in self.state.placeholders:
            if is_filled(self.state, p.key):
                results[p.key] = self.validate(p.key, self.state.responses[p.key])
        return results
