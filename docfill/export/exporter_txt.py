from __future__ import annotations

import os
from typing import Optional


def export_txt_file(
    out_dir: str,
    session_id: str,
    text: str,
    filename: Optional[str] = None,
) -> str:
    os.makedirs(out_dir, exist_ok=True)
    if not filename:
        filename = f"filled_{session_id}.txt"
    path = os.path.join(out_dir, filename)

    with open(path, "w", encoding="utf-8") as f:
        f.write(text or "")

    return path
