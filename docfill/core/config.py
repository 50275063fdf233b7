from __future__ import annotations

import logging
import os


def env_bool(key: str, default: str = "0") -> bool:
    """
    Env bool parser.
    Accepts: 1/0, true/false, yes/no (case-insensitive)
    """
    v = os.getenv(key, default)
    if v is None:
        v = default
    return str(v).strip().lower() in ("1", "true", "yes", "y")


def env_str(key: str, default: str = "") -> str:
    v = os.getenv(key, default)
    if v is None:
        v = default
    return str(v).strip()


def env_float(key: str, default: str = "0") -> float:
    try:
        return float(env_str(key, default) or default)
    except ValueError:
        return float(default)


def env_int(key: str, default: str = "0") -> int:
    try:
        return int(env_str(key, default) or default)
    except ValueError:
        return int(default)


# -------------------------------------------------
# Runtime getters (read on every call, never cached)
# -------------------------------------------------
def use_llm() -> bool:
    return env_bool("USE_LLM", "0")


def min_confidence() -> float:
    """Classifications below this confidence are routed as plain answers."""
    return env_float("DOCFILL_MIN_CONFIDENCE", "0.3")


def invalid_value_policy() -> str:
    """
    What happens to a freshly extracted value that fails validation:
      keep    -> stays in responses, user is asked to correct it
      discard -> rolled back out of responses before the next question
    """
    policy = env_str("DOCFILL_INVALID_VALUE_POLICY", "keep").lower()
    return policy if policy in ("keep", "discard") else "keep"


def history_limit() -> int:
    return max(env_int("DOCFILL_HISTORY_LIMIT", "12"), 0)


def data_dir() -> str:
    return env_str("DATA_DIR", "data")


def sessions_dir() -> str:
    return os.path.join(data_dir(), "sessions")


def exports_dir() -> str:
    return os.path.join(data_dir(), "exports")


def uploads_dir() -> str:
    return os.path.join(data_dir(), "uploads")


def configure_logging() -> None:
    level = env_str("LOG_LEVEL", "INFO").upper()
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
