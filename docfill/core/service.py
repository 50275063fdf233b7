from __future__ import annotations

import logging
import threading
from typing import Any, Dict, Optional

from ..export.exporter_docx import export_docx_file
from ..export.exporter_txt import export_txt_file
from ..export.filler import fill_template_text, read_template_text
from ..llm.client import LLMClient
from .bootstrap import ensure_data_dirs
from .config import exports_dir
from .detector import PlaceholderDetector
from .flow import Orchestrator
from .mapping import is_known_key
from .state import SessionNotFoundError, SessionStore, dialog_state, is_complete, new_session
from .types import SessionState, TurnResponse
from .validator import Validator

logger = logging.getLogger(__name__)

# NOTE:
# This module is the main integration point for external tools/UI.
# Behavior is controlled via environment variables:
# - USE_LLM=0 -> stub mode (deterministic, no network)
# - USE_LLM=1 -> model-backed classification/extraction/questions

_store: Optional[SessionStore] = None
_store_guard = threading.Lock()


def _get_store(store: Optional[SessionStore] = None) -> SessionStore:
    global _store
    if store is not None:
        return store
    with _store_guard:
        if _store is None:
            ensure_data_dirs()
            _store = SessionStore()
        return _store


def _get_llm(llm: Optional[LLMClient] = None) -> LLMClient:
    return llm or LLMClient()


def _load(store: SessionStore, session_id: str) -> SessionState:
    state = store.get(session_id)
    if state is None:
        raise SessionNotFoundError(session_id)
    return state


def _build_payload(state: SessionState, turn: TurnResponse) -> Dict[str, Any]:
    payload = turn.to_payload()
    payload.update(
        {
            "session_id": state.session_id,
            "state": dialog_state(state).name,
            "current_placeholder_key": state.current_placeholder_key,
            "responses": dict(state.responses),
            "skipped": list(state.skipped),
        }
    )
    return payload


# -----------------------------
# Sessions
# -----------------------------
def create_session(
    template_text: Optional[str] = None,
    file_bytes: Optional[bytes] = None,
    filename: str = "template.docx",
    store: Optional[SessionStore] = None,
    llm: Optional[LLMClient] = None,
) -> Dict[str, Any]:
    """
    Start a session from raw template text or an uploaded file.
    Returns a greeting plus the first question.
    """
    if template_text is None:
        if file_bytes is None:
            raise ValueError("Either template_text or file_bytes is required")
        template_text = read_template_text(filename, file_bytes)

    store = _get_store(store)
    llm = _get_llm(llm)

    placeholders = PlaceholderDetector(llm).detect(template_text)
    state = new_session(template_text, placeholders, file_name=filename)
    logger.info("Created session %s with %d placeholders", state.session_id, len(state.placeholders))

    with store.lock(state.session_id):
        turn = Orchestrator(state, llm).start()
        store.save(state)

    if state.placeholders:
        greeting = f"I found {len(state.placeholders)} placeholders in {filename}. Let's fill them in."
    else:
        greeting = f"I couldn't find any placeholders in {filename}."

    payload = _build_payload(state, turn)
    payload["greeting"] = greeting
    payload["placeholders"] = [p.to_dict() for p in state.placeholders]
    return payload


def resume(
    session_id: str,
    store: Optional[SessionStore] = None,
    llm: Optional[LLMClient] = None,
) -> Dict[str, Any]:
    store = _get_store(store)
    with store.lock(session_id):
        state = _load(store, session_id)
        turn = Orchestrator(state, _get_llm(llm)).start()
        store.update(session_id, state)
    return _build_payload(state, turn)


def message(
    session_id: str,
    user_text: str,
    current_placeholder_key: Optional[str] = None,
    store: Optional[SessionStore] = None,
    llm: Optional[LLMClient] = None,
) -> Dict[str, Any]:
    """Process one user turn. Turns of the same session are serialized."""
    store = _get_store(store)
    with store.lock(session_id):
        state = _load(store, session_id)

        if current_placeholder_key:
            if is_known_key(state, current_placeholder_key):
                state.current_placeholder_key = current_placeholder_key
            else:
                logger.warning(
                    "Session %s: ignoring unknown placeholder hint %r",
                    session_id,
                    current_placeholder_key,
                )

        turn = Orchestrator(state, _get_llm(llm)).process_message(user_text)
        store.update(session_id, state)
    return _build_payload(state, turn)


def delete_session(session_id: str, store: Optional[SessionStore] = None) -> bool:
    store = _get_store(store)
    with store.lock(session_id):
        return store.delete(session_id)


# -----------------------------
# Document
# -----------------------------
def preview(
    session_id: str,
    store: Optional[SessionStore] = None,
    llm: Optional[LLMClient] = None,
) -> Dict[str, Any]:
    store = _get_store(store)
    state = _load(store, session_id)
    results = Validator(state, _get_llm(llm)).validate_all()
    return {
        "session_id": session_id,
        "text": fill_template_text(state.template_text, state.placeholders, state.responses),
        "is_complete": is_complete(state),
        "validation": {
            key: {"is_valid": r.is_valid, "errors": r.errors, "warnings": r.warnings}
            for key, r in results.items()
        },
    }


def export(
    session_id: str,
    fmt: str = "docx",
    out_dir: Optional[str] = None,
    store: Optional[SessionStore] = None,
) -> str:
    """Write the filled document and return its path."""
    store = _get_store(store)
    state = _load(store, session_id)
    text = fill_template_text(state.template_text, state.placeholders, state.responses)
    out_dir = out_dir or exports_dir()

    fmt = (fmt or "").lower()
    if fmt == "docx":
        path = export_docx_file(out_dir, session_id, text)
    elif fmt == "txt":
        path = export_txt_file(out_dir, session_id, text)
    else:
        raise ValueError(f"Unsupported export format: {fmt}")

    logger.info("Exported session %s to %s", session_id, path)
    return path
