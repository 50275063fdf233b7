from __future__ import annotations

import json
import logging
import os
import threading
import uuid
import weakref
from contextlib import contextmanager
from dataclasses import asdict
from datetime import datetime, timezone
from typing import Any, Dict, Iterator, List, Optional, Sequence

from .config import sessions_dir
from .types import (
    AwaitingClarification,
    Collecting,
    Complete,
    DialogState,
    FieldUpdate,
    PlaceholderDefinition,
    SessionState,
)

logger = logging.getLogger(__name__)


class SessionNotFoundError(KeyError):
    pass


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _ensure_dir(path: str) -> None:
    os.makedirs(path, exist_ok=True)


def _is_blank(v: Optional[str]) -> bool:
    return v is None or (isinstance(v, str) and v.strip() == "")


# -----------------------------
# Query helpers
# -----------------------------
def placeholder_by_key(state: SessionState, key: Optional[str]) -> Optional[PlaceholderDefinition]:
    if not key:
        return None
    for p in state.placeholders:
        if p.key == key:
            return p
    return None


def label_for(state: SessionState, key: str) -> str:
    p = placeholder_by_key(state, key)
    return p.label if p else key


def is_filled(state: SessionState, key: str) -> bool:
    return not _is_blank(state.responses.get(key))


def is_complete(state: SessionState) -> bool:
    return all(is_filled(state, p.key) for p in state.placeholders)


def unfilled_placeholders(state: SessionState) -> List[PlaceholderDefinition]:
    """Unfilled placeholders in definition order (skip order ignored)."""
    return [p for p in state.placeholders if not is_filled(state, p.key)]


def filled_keys(state: SessionState) -> List[str]:
    return [p.key for p in state.placeholders if is_filled(state, p.key)]


def dialog_state(state: SessionState) -> DialogState:
    if is_complete(state):
        return Complete()
    if state.needs_clarification and state.last_question_text:
        return AwaitingClarification(
            last_key=state.current_placeholder_key,
            last_question=state.last_question_text,
        )
    return Collecting(current_key=state.current_placeholder_key)


# -----------------------------
# Mutations
# -----------------------------
def set_response(state: SessionState, key: str, value: str, source: str) -> None:
    state.responses[key] = value
    state.field_updates.append(FieldUpdate(ts=_now_iso(), key=key, value=value, source=source))
    unskip(state, key)


def drop_response(state: SessionState, key: str) -> None:
    state.responses.pop(key, None)


def mark_skipped(state: SessionState, key: str) -> bool:
    """Adds key to the skip queue. Returns False if it was already there or is filled."""
    if key in state.skipped or is_filled(state, key):
        return False
    state.skipped.append(key)
    return True


def unskip(state: SessionState, key: str) -> None:
    if key in state.skipped:
        state.skipped.remove(key)


def _dedupe_placeholders(placeholders: Sequence[PlaceholderDefinition]) -> List[PlaceholderDefinition]:
    seen = set()
    out: List[PlaceholderDefinition] = []
    for p in placeholders:
        if p.key in seen:
            logger.warning("Duplicate placeholder key %r dropped", p.key)
            continue
        seen.add(p.key)
        out.append(p)
    return out


def new_session(
    template_text: str,
    placeholders: Sequence[PlaceholderDefinition],
    file_name: str = "document",
) -> SessionState:
    now = _now_iso()
    return SessionState(
        session_id=str(uuid.uuid4()),
        created_at=now,
        updated_at=now,
        template_text=template_text,
        placeholders=_dedupe_placeholders(placeholders),
        file_name=file_name,
    )


# -----------------------------
# Serialization
# -----------------------------
def session_to_dict(state: SessionState) -> Dict[str, Any]:
    data = asdict(state)
    data["placeholders"] = [p.to_dict() for p in state.placeholders]
    return data


def session_from_dict(data: Dict[str, Any]) -> SessionState:
    placeholders = [
        PlaceholderDefinition.from_dict(p)
        for p in (data.get("placeholders") or [])
        if isinstance(p, dict) and p.get("key")
    ]

    fu_raw = data.get("field_updates") or []
    field_updates = [FieldUpdate(**fu) for fu in fu_raw if isinstance(fu, dict)]

    responses = data.get("responses") or {}
    if not isinstance(responses, dict):
        responses = {}

    state = SessionState(
        session_id=data["session_id"],
        created_at=data["created_at"],
        template_text=str(data.get("template_text") or ""),
        placeholders=placeholders,
        responses={str(k): str(v) for k, v in responses.items()},
        skipped=list(data.get("skipped") or []),
        current_placeholder_key=data.get("current_placeholder_key"),
        last_question_text=data.get("last_question_text"),
        needs_clarification=bool(data.get("needs_clarification", False)),
        file_name=str(data.get("file_name") or "document"),
        updated_at=data.get("updated_at"),
        history=data.get("history") or {},
        field_updates=field_updates,
    )

    # Keep the skip queue honest for sessions written by older builds
    state.skipped = [k for k in state.skipped if not is_filled(state, k)]
    return state


# -----------------------------
# Store
# -----------------------------
class SessionStore:
    """
    JSON-file session store.

    Processing of a single session must be serialized by the caller:
        with store.lock(session_id):
            state = store.get(session_id)
            ...
            store.update(session_id, state)
    Different sessions may be processed in parallel.
    """

    def __init__(self, data_dir: Optional[str] = None):
        self.data_dir = data_dir or sessions_dir()
        # entries vanish once no caller holds or waits on the lock
        self._locks: weakref.WeakValueDictionary[str, threading.Lock] = weakref.WeakValueDictionary()
        self._locks_guard = threading.Lock()

    def _path(self, session_id: str) -> str:
        return os.path.join(self.data_dir, f"{session_id}.json")

    @contextmanager
    def lock(self, session_id: str) -> Iterator[None]:
        with self._locks_guard:
            lk = self._locks.get(session_id)
            if lk is None:
                lk = threading.Lock()
                self._locks[session_id] = lk
        with lk:
            yield

    def get(self, session_id: str) -> Optional[SessionState]:
        path = self._path(session_id)
        if not os.path.exists(path):
            return None
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
        return session_from_dict(data)

    def save(self, state: SessionState) -> str:
        _ensure_dir(self.data_dir)
        state.updated_at = _now_iso()
        path = self._path(state.session_id)
        tmp = path + ".tmp"
        with open(tmp, "w", encoding="utf-8") as f:
            json.dump(session_to_dict(state), f, ensure_ascii=False, indent=2, default=str)
        os.replace(tmp, path)
        return path

    def update(self, session_id: str, state: SessionState) -> str:
        if state.session_id != session_id:
            raise ValueError(f"Session id mismatch: {session_id} != {state.session_id}")
        if not os.path.exists(self._path(session_id)):
            raise SessionNotFoundError(session_id)
        return self.save(state)

    def delete(self, session_id: str) -> bool:
        path = self._path(session_id)
        if not os.path.exists(path):
            return False
        os.remove(path)
        return True
