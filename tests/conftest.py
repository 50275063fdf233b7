"""Shared fixtures: a scripted model client and a two-placeholder session."""

from typing import Any, Dict, List, Optional

import pytest

from docfill.core.state import SessionStore, new_session
from docfill.core.types import PlaceholderDefinition

TEMPLATE_TEXT = "This agreement is made by [Company Name] on [Signing Date]."


def _default_extract(variables: Dict[str, Any]) -> Dict[str, Any]:
    key = variables.get("current_key")
    text = variables.get("user_text", "")
    if not key or not text:
        return {"understood": False, "extractedValues": [], "needsClarification": True}
    return {
        "understood": True,
        "extractedValues": [{"key": key, "value": text}],
        "acknowledgment": "Got it.",
        "needsClarification": False,
    }


DEFAULTS: Dict[str, Any] = {
    "classify_intent.txt": {"queryType": "answer", "confidence": 0.9, "reasoning": "default"},
    "extract_values.txt": _default_extract,
    "validate_value.txt": {"isValid": True, "errors": [], "warnings": []},
    "detect_placeholders.txt": {"placeholders": []},
    "next_question.txt": lambda v: f"What is the {v['label']}?",
    "explain.txt": "This field is the legal name of the company.",
}


class FakeLLM:
    """
    Stands in for LLMClient. Responses are queued per prompt name; a queued
    response may be a value, a callable taking the prompt variables, or an
    exception to raise. Empty queues fall back to DEFAULTS.
    """

    use_llm = True

    def __init__(self):
        self.scripts: Dict[str, List[Any]] = {}
        self.calls: List[Dict[str, Any]] = []

    def script(self, prompt_name: str, *responses: Any) -> "FakeLLM":
        self.scripts.setdefault(prompt_name, []).extend(responses)
        return self

    def calls_for(self, prompt_name: str) -> List[Dict[str, Any]]:
        return [c for c in self.calls if c["prompt"] == prompt_name]

    def _respond(self, prompt_name: str, variables: Dict[str, Any], history: Optional[list]) -> Any:
        self.calls.append({"prompt": prompt_name, "variables": dict(variables), "history": list(history or [])})
        queue = self.scripts.get(prompt_name)
        resp = queue.pop(0) if queue else DEFAULTS[prompt_name]
        if isinstance(resp, Exception):
            raise resp
        if callable(resp):
            return resp(variables)
        return resp

    def run_json(self, prompt_name, variables, history=None, max_output_tokens=600):
        return self._respond(prompt_name, variables, history)

    def run_text(self, prompt_name, variables, history=None, max_output_tokens=400):
        return self._respond(prompt_name, variables, history)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch, tmp_path):
    for name in (
        "USE_LLM",
        "DOCFILL_MIN_CONFIDENCE",
        "DOCFILL_INVALID_VALUE_POLICY",
        "DOCFILL_HISTORY_LIMIT",
        "LLM_MODE",
    ):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("DATA_DIR", str(tmp_path / "data"))


@pytest.fixture
def fake_llm() -> FakeLLM:
    return FakeLLM()


@pytest.fixture
def placeholders() -> List[PlaceholderDefinition]:
    return [
        PlaceholderDefinition(
            key="company_name",
            label="Company Name",
            type="text",
            required=True,
            original_pattern="[Company Name]",
        ),
        PlaceholderDefinition(
            key="signing_date",
            label="Signing Date",
            type="date",
            required=True,
            original_pattern="[Signing Date]",
        ),
    ]


@pytest.fixture
def session(placeholders):
    return new_session(TEMPLATE_TEXT, placeholders, file_name="agreement.docx")


@pytest.fixture
def store(tmp_path) -> SessionStore:
    return SessionStore(data_dir=str(tmp_path / "sessions"))
