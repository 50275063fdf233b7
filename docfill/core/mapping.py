from __future__ import annotations

import re
from typing import List, Optional

from .constants import KEY_SYNONYMS
from .state import is_filled, placeholder_by_key
from .types import PlaceholderDefinition, SessionState


def ordered_unfilled(state: SessionState) -> List[PlaceholderDefinition]:
    """
    Unfilled placeholders in asking order:
    - non-skipped ones first, definition order
    - skipped ones last, still in definition order
    """
    unfilled = [p for p in state.placeholders if not is_filled(state, p.key)]
    skipped = set(state.skipped)
    return [p for p in unfilled if p.key not in skipped] + [p for p in unfilled if p.key in skipped]


def pick_next_placeholder(state: SessionState) -> Optional[PlaceholderDefinition]:
    """Deterministic given session state: same state -> same placeholder."""
    remaining = ordered_unfilled(state)
    return remaining[0] if remaining else None


def has_unskipped_remaining(state: SessionState) -> bool:
    skipped = set(state.skipped)
    return any(not is_filled(state, p.key) and p.key not in skipped for p in state.placeholders)


# -----------------------------
# Raw model key -> placeholder key
# -----------------------------
def normalize_key(raw: str) -> str:
    k = re.sub(r"\s+", "_", (raw or "").strip().lower())
    return KEY_SYNONYMS.get(k, k)


def _norm(text: str) -> str:
    return re.sub(r"\s+", "_", (text or "").strip().lower())


def _matches_current(norm_key: str, p: PlaceholderDefinition) -> bool:
    for target in (_norm(p.key), _norm(p.label)):
        if not target:
            continue
        if norm_key == target or norm_key in target or target in norm_key:
            return True
    return False


def resolve_key(state: SessionState, raw_key: str, current_key: Optional[str] = None) -> str:
    """
    Resolution order:
    1) bind to the current placeholder if the key equals / is inside / contains its key or label
    2) exact key or label match against every placeholder
    3) otherwise the normalized key itself (orphan)
    """
    norm_key = normalize_key(raw_key)
    if not norm_key:
        return norm_key

    current = placeholder_by_key(state, current_key)
    if current is not None and _matches_current(norm_key, current):
        return current.key

    for p in state.placeholders:
        if norm_key == _norm(p.key) or norm_key == _norm(p.label):
            return p.key

    return norm_key


def is_known_key(state: SessionState, key: str) -> bool:
    return placeholder_by_key(state, key) is not None
