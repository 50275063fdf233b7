from __future__ import annotations

import io
import os
import re
from typing import Dict, List, Sequence

from docx import Document

from ..core.types import PlaceholderDefinition


def _patterns_for(p: PlaceholderDefinition) -> List[re.Pattern]:
    spaced = re.escape(p.key.replace("_", " "))
    key = re.escape(p.key)
    pats = [
        re.compile(rf"\[{key}\]", re.IGNORECASE),
        re.compile(rf"\{{\{{\s*{key}\s*\}}\}}", re.IGNORECASE),
        re.compile(rf"\[{spaced}\]", re.IGNORECASE),
    ]
    if p.original_pattern:
        pats.insert(0, re.compile(re.escape(p.original_pattern)))
    return pats


def fill_template_text(
    template_text: str,
    placeholders: Sequence[PlaceholderDefinition],
    responses: Dict[str, str],
) -> str:
    """
    Substitute every filled placeholder into the template text.
    Unfilled placeholders and orphan response keys are left alone.
    """
    filled = template_text or ""
    for p in placeholders:
        value = (responses.get(p.key) or "").strip()
        if not value:
            continue
        for pattern in _patterns_for(p):
            # callable replacement keeps backslashes in values literal
            filled = pattern.sub(lambda _m, v=value: v, filled)
    return filled


def read_template_text(filename: str, data: bytes) -> str:
    """Raw text of an uploaded template (.docx or plain text)."""
    ext = os.path.splitext(filename or "")[1].lower()
    if ext == ".docx":
        doc = Document(io.BytesIO(data))
        lines = [para.text for para in doc.paragraphs]
        for table in doc.tables:
            for row in table.rows:
                lines.append(" | ".join(cell.text for cell in row.cells))
        return "\n\n".join(line for line in lines if line.strip())
    if ext in (".txt", ".md", ""):
        return data.decode("utf-8", errors="replace")
    raise ValueError(f"Unsupported template type: {ext}")
