from __future__ import annotations

import os
import re
from typing import Optional

from docx import Document
from docx.shared import Pt


def build_document(text: str) -> Document:
    doc = Document()

    blocks = [b for b in re.split(r"\n\s*\n", text or "") if b.strip()]
    if not blocks:
        doc.add_paragraph((text or "").strip())

    for block in blocks:
        lines = [line.strip() for line in block.split("\n") if line.strip()]
        para = doc.add_paragraph()
        for i, line in enumerate(lines):
            run = para.add_run(line)
            if i < len(lines) - 1:
                run.add_break()

    style = doc.styles["Normal"]
    style.font.name = "Calibri"
    style.font.size = Pt(11)
    return doc


def export_docx_file(
    out_dir: str,
    session_id: str,
    text: str,
    filename: Optional[str] = None,
) -> str:
    os.makedirs(out_dir, exist_ok=True)
    if not filename:
        filename = f"filled_{session_id}.docx"
    path = os.path.join(out_dir, filename)

    build_document(text).save(path)
    return path
