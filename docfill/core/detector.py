from __future__ import annotations

import logging
import re
from typing import Any, Dict, List, Optional, Tuple

from ..llm.client import LLMClient
from .constants import PLACEHOLDER_TYPES
from .types import PlaceholderDefinition

logger = logging.getLogger(__name__)

MAX_CHUNK_CHARS = 30000
CHUNK_OVERLAP = 2000

BRACKET_RE = re.compile(r"\[([^\[\]\n]{1,80})\]")
CURLY_RE = re.compile(r"\{\{\s*([^{}\n]{1,80}?)\s*\}\}")
BLANK_ONLY_RE = re.compile(r"^[\s_.\-]*$")
INSERT_RE = re.compile(r"^\s*(?:insert|enter)\s+(.*?)(?:\s+here)?\s*$", re.IGNORECASE)

# label word -> type, first hit wins
TYPE_HINTS: Tuple[Tuple[str, str], ...] = (
    ("email", "email"),
    ("e-mail", "email"),
    ("signature", "signature"),
    ("address", "address"),
    ("date", "date"),
    ("amount", "currency"),
    ("price", "currency"),
    ("valuation", "currency"),
    ("salary", "currency"),
    ("fee", "currency"),
    ("purchase", "currency"),
    ("number", "number"),
    ("shares", "number"),
    ("quantity", "number"),
)


def to_key(text: str) -> str:
    return re.sub(r"[^a-z0-9]+", "_", (text or "").lower()).strip("_")


def _to_label(text: str) -> str:
    text = re.sub(r"[_\s]+", " ", text).strip()
    if text.isupper() or text.islower():
        return text.title()
    return text


def infer_type(label: str, preceding: str = "") -> str:
    if preceding.rstrip().endswith("$"):
        return "currency"
    words = label.lower()
    for hint, ptype in TYPE_HINTS:
        if hint in words:
            return ptype
    return "text"


def detect_by_pattern(template_text: str) -> List[PlaceholderDefinition]:
    """Deterministic detection of [Label], {{key}} and [insert X here] blanks."""
    found: List[PlaceholderDefinition] = []
    for regex in (BRACKET_RE, CURLY_RE):
        for m in regex.finditer(template_text or ""):
            inner = m.group(1)
            if BLANK_ONLY_RE.match(inner):
                continue
            insert = INSERT_RE.match(inner)
            label = _to_label(insert.group(1) if insert else inner)
            key = to_key(label)
            if not key:
                continue
            preceding = template_text[max(0, m.start() - 2) : m.start()]
            found.append(
                PlaceholderDefinition(
                    key=key,
                    label=label,
                    type=infer_type(label, preceding),
                    required=True,
                    original_pattern=m.group(0),
                )
            )
    return dedupe_placeholders(found)


def dedupe_placeholders(items: List[PlaceholderDefinition]) -> List[PlaceholderDefinition]:
    """
    One definition per key. A later duplicate only wins if it brings an
    original pattern the first one lacked, or fills in a missing description.
    """
    seen: Dict[str, PlaceholderDefinition] = {}
    for p in items:
        existing = seen.get(p.key)
        if existing is None:
            seen[p.key] = p
        elif not existing.original_pattern and p.original_pattern:
            seen[p.key] = p
        elif not existing.description and p.description:
            seen[p.key] = PlaceholderDefinition(
                key=existing.key,
                label=existing.label,
                type=existing.type,
                required=existing.required,
                description=p.description,
                original_pattern=existing.original_pattern,
            )
    return list(seen.values())


def split_chunks(text: str, size: int = MAX_CHUNK_CHARS, overlap: int = CHUNK_OVERLAP) -> List[Tuple[str, str]]:
    """(label, text) chunks covering beginning, middle and end with overlap."""
    if len(text) <= size:
        return [("full", text)]

    chunks = [("beginning", text[:size])]
    pos = size - overlap
    i = 1
    while pos < len(text) - size:
        chunks.append((f"middle_{i}", text[pos : pos + size]))
        pos += size - overlap
        i += 1
    chunks.append(("end", text[max(0, len(text) - size) :]))
    return chunks


def _coerce(item: Dict[str, Any]) -> Optional[PlaceholderDefinition]:
    key = to_key(str(item.get("key") or item.get("label") or ""))
    if not key:
        return None
    ptype = str(item.get("type") or "text").strip().lower()
    if ptype not in PLACEHOLDER_TYPES:
        ptype = "text"
    return PlaceholderDefinition(
        key=key,
        label=str(item.get("label") or "").strip() or _to_label(key),
        type=ptype,
        required=bool(item.get("required", True)),
        description=(str(item.get("description") or "").strip() or None),
        original_pattern=(item.get("originalPattern") or item.get("original_pattern") or None),
    )


class PlaceholderDetector:
    def __init__(self, llm: Optional[LLMClient] = None):
        self.llm = llm or LLMClient()

    def _detect_chunk(self, label: str, text: str) -> List[PlaceholderDefinition]:
        variables = {"chunk_label": label, "document_text": text}
        try:
            out = self.llm.run_json("detect_placeholders.txt", variables, max_output_tokens=4000)
        except Exception as e:
            logger.warning("Placeholder detection failed for %s chunk: %s", label, e)
            return []

        items = out.get("placeholders") or []
        if not isinstance(items, list):
            return []
        coerced = [_coerce(item) for item in items if isinstance(item, dict)]
        return [p for p in coerced if p is not None]

    def detect(self, template_text: str) -> List[PlaceholderDefinition]:
        found: List[PlaceholderDefinition] = []
        for label, text in split_chunks(template_text or ""):
            found.extend(self._detect_chunk(label, text))

        placeholders = dedupe_placeholders(found)
        if not placeholders:
            logger.info("Model found no placeholders, falling back to pattern detection")
            placeholders = detect_by_pattern(template_text)

        logger.info("Detected %d placeholders", len(placeholders))
        return placeholders
