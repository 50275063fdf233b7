from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Union


PlaceholderKey = str
SessionId = str


@dataclass(frozen=True)
class PlaceholderDefinition:
    key: PlaceholderKey           # lowercase/underscored, stable
    label: str                    # human readable
    type: str = "text"            # see constants.PLACEHOLDER_TYPES
    required: bool = True
    description: Optional[str] = None
    original_pattern: Optional[str] = None   # verbatim substring in the template

    def to_dict(self) -> Dict[str, Any]:
        return {
            "key": self.key,
            "label": self.label,
            "type": self.type,
            "required": self.required,
            "description": self.description,
            "original_pattern": self.original_pattern,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PlaceholderDefinition":
        return cls(
            key=str(data["key"]),
            label=str(data.get("label") or data["key"]),
            type=str(data.get("type") or "text"),
            required=bool(data.get("required", True)),
            description=data.get("description") or None,
            original_pattern=data.get("original_pattern") or data.get("originalPattern") or None,
        )


@dataclass
class FieldUpdate:
    ts: str                       # ISO-8601 timestamp
    key: PlaceholderKey
    value: str
    source: str                   # "answer" | "correction" | "rollback"


@dataclass
class SessionState:
    session_id: SessionId
    created_at: str
    template_text: str
    placeholders: List[PlaceholderDefinition] = field(default_factory=list)

    # key -> filled value (orphan keys allowed, ignored for completion)
    responses: Dict[str, str] = field(default_factory=dict)

    # deferred keys in skip order; only ever holds unfilled placeholder keys
    skipped: List[PlaceholderKey] = field(default_factory=list)

    current_placeholder_key: Optional[PlaceholderKey] = None
    last_question_text: Optional[str] = None
    needs_clarification: bool = False

    file_name: str = "document"
    updated_at: Optional[str] = None

    # Per-component conversation channels: question / extraction / explanation
    history: Dict[str, List[Dict[str, str]]] = field(default_factory=dict)

    # Audit trail
    field_updates: List[FieldUpdate] = field(default_factory=list)


# -----------------------------
# Per-turn (ephemeral) results
# -----------------------------
@dataclass
class Classification:
    query_type: str
    confidence: float
    reasoning: Optional[str] = None


@dataclass
class ExtractionResult:
    understood: bool
    extracted_values: Dict[str, str] = field(default_factory=dict)
    acknowledgment: Optional[str] = None
    needs_clarification: bool = False
    # keys actually written into the session this turn
    filled_keys: List[str] = field(default_factory=list)
    # values the written keys held before this turn (overwrites only)
    previous_values: Dict[str, str] = field(default_factory=dict)


@dataclass
class ValidationResult:
    is_valid: bool
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    suggestions: Optional[List[str]] = None


@dataclass
class TurnResponse:
    message: str
    is_complete: bool
    extracted_values: Optional[Dict[str, str]] = None
    needs_clarification: Optional[bool] = None
    query_type: Optional[str] = None

    def to_payload(self) -> Dict[str, Any]:
        return {
            "message": self.message,
            "is_complete": self.is_complete,
            "extracted_values": self.extracted_values,
            "needs_clarification": self.needs_clarification,
            "query_type": self.query_type,
        }


# -----------------------------
# Dialog state view
# -----------------------------
@dataclass(frozen=True)
class Collecting:
    current_key: Optional[PlaceholderKey]
    name: str = "collecting"


@dataclass(frozen=True)
class AwaitingClarification:
    last_key: Optional[PlaceholderKey]
    last_question: Optional[str]
    name: str = "awaiting_clarification"


@dataclass(frozen=True)
class Complete:
    name: str = "complete"


DialogState = Union[Collecting, AwaitingClarification, Complete]
