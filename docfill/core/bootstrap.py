from pathlib import Path

from .config import exports_dir, sessions_dir, uploads_dir


def ensure_data_dirs():
    for p in [sessions_dir(), exports_dir(), uploads_dir()]:
        Path(p).mkdir(parents=True, exist_ok=True)
