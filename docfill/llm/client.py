from __future__ import annotations

import logging
import os
import re
from typing import Any, Dict, List, Optional

import requests

from ..core.config import env_bool, env_float, env_str
from .json_parser import JSONParseError, parse_json_strict

logger = logging.getLogger(__name__)

PROMPTS_DIR = os.path.join(os.path.dirname(os.path.abspath(__file__)), "prompts")

SYSTEM_PROMPT = "Follow the prompt rules strictly. Return only the requested output."

_SKIP_RE = re.compile(r"\b(skip|pass|later|not now|come back)\b", re.IGNORECASE)
_CONTINUE_RE = re.compile(r"^(yes|yeah|yep|yup|sure|ok|okay|continue|let's go|let's continue)\b", re.IGNORECASE)
_CORRECTION_RE = re.compile(r"^(actually|correction|sorry|change|no,)", re.IGNORECASE)

History = List[Dict[str, str]]


class LLMError(RuntimeError):
    """Any failed model call: transport, HTTP status, timeout or unusable output."""


class LLMClient:
    """
    Single entry point for language model calls.

    - USE_LLM=0 => never calls an external model, returns deterministic stub outputs
    - USE_LLM=1 => calls the configured endpoint (openai-compatible or custom)

    Every failure surfaces as LLMError; callers decide the fallback.
    """

    def __init__(self, prompts_dir: Optional[str] = None):
        self.prompts_dir = prompts_dir or PROMPTS_DIR
        self.use_llm = env_bool("USE_LLM", "0")

        self.mode = env_str("LLM_MODE", "openai").lower()
        self.timeout_sec = env_float("LLM_TIMEOUT_SEC", "30")

        # OpenAI-compatible config
        self.base_url = env_str("LLM_BASE_URL", "").rstrip("/")
        self.api_key = env_str("LLM_API_KEY", "")
        self.model = env_str("LLM_MODEL", "")

        # Gateway metadata auth (optional)
        self.md_username = env_str("LLM_METADATA_USERNAME", "")
        self.md_password = env_str("LLM_METADATA_PASSWORD", "")

        self.verify_ssl = env_bool("LLM_VERIFY_SSL", "1")

        # Custom endpoint config
        self.endpoint = env_str("LLM_ENDPOINT", "")
        self.header_name = env_str("LLM_HEADER_NAME", "Authorization")
        self.header_value = env_str("LLM_HEADER_VALUE", "")

        self.temperature = env_float("LLM_TEMPERATURE", "0.2")
        self.openai_token_field = env_str("LLM_OPENAI_TOKEN_FIELD", "max_tokens") or "max_tokens"

        self._prompt_cache: Dict[str, str] = {}

    def _load_prompt(self, name: str) -> str:
        if name not in self._prompt_cache:
            path = os.path.join(self.prompts_dir, name)
            with open(path, "r", encoding="utf-8") as f:
                self._prompt_cache[name] = f.read()
        return self._prompt_cache[name]

    def render(self, prompt_name: str, variables: Dict[str, Any]) -> str:
        return self._load_prompt(prompt_name).format(**variables)

    # -------------------------
    # Public API
    # -------------------------
    def run_json(
        self,
        prompt_name: str,
        variables: Dict[str, Any],
        history: Optional[History] = None,
        max_output_tokens: int = 600,
    ) -> Dict[str, Any]:
        """
        Returns a dict parsed from model output.
        Raises LLMError when the call fails or the output is not a JSON object.
        """
        prompt = self.render(prompt_name, variables)

        if not self.use_llm:
            return self._stub_json(prompt_name, variables)

        raw = self._call_model(prompt, history=history, max_output_tokens=max_output_tokens)
        logger.debug("LLM %s raw output: %s", prompt_name, raw[:800])

        try:
            return parse_json_strict(raw)
        except JSONParseError as e:
            raise LLMError(f"{prompt_name}: unusable structured output") from e

    def run_text(
        self,
        prompt_name: str,
        variables: Dict[str, Any],
        history: Optional[History] = None,
        max_output_tokens: int = 400,
    ) -> str:
        prompt = self.render(prompt_name, variables)

        if not self.use_llm:
            return self._stub_text(prompt_name, variables)

        raw = self._call_model(prompt, history=history, max_output_tokens=max_output_tokens)
        logger.debug("LLM %s raw output: %s", prompt_name, raw[:800])
        return raw.strip()

    # -------------------------
    # Stubs (offline mode)
    # -------------------------
    def _stub_json(self, prompt_name: str, variables: Dict[str, Any]) -> Dict[str, Any]:
        user_text = str(variables.get("user_text", "")).strip()

        if "classify_intent" in prompt_name:
            if _SKIP_RE.search(user_text):
                query_type = "skip"
            elif _CONTINUE_RE.match(user_text):
                query_type = "general"
            elif _CORRECTION_RE.match(user_text):
                query_type = "correction"
            elif user_text.endswith("?"):
                query_type = "question"
            else:
                query_type = "answer"
            return {"queryType": query_type, "confidence": 0.6, "reasoning": "offline lexical rules"}

        if "extract_values" in prompt_name:
            key = variables.get("current_key") or ""
            if not key or not user_text:
                return {
                    "understood": False,
                    "extractedValues": [],
                    "acknowledgment": "",
                    "needsClarification": True,
                }
            value = re.sub(r"\s+", " ", user_text)
            return {
                "understood": True,
                "extractedValues": [{"key": key, "value": value}],
                "acknowledgment": "Got it.",
                "needsClarification": False,
            }

        if "validate_value" in prompt_name:
            return {"isValid": True, "errors": [], "warnings": []}

        if "detect_placeholders" in prompt_name:
            # Detector falls back to pattern matching on an empty result
            return {"placeholders": []}

        return {}

    def _stub_text(self, prompt_name: str, variables: Dict[str, Any]) -> str:
        if "next_question" in prompt_name:
            label = variables.get("label") or "next field"
            return f"What is the {label}?"

        if "explain" in prompt_name:
            desc = str(variables.get("current_description") or "").strip()
            if desc:
                return desc
            return "I'm helping you fill in the blanks of this document, one field at a time."

        return str(variables.get("user_text", "")).strip()

    # -------------------------
    # Model call (endpoint)
    # -------------------------
    def _call_model(self, prompt: str, history: Optional[History], max_output_tokens: int) -> str:
        """
        LLM_MODE=openai -> chat completions at LLM_BASE_URL
        LLM_MODE=custom -> single-prompt JSON API at LLM_ENDPOINT
        """
        if self.mode == "custom":
            url, headers, payload = self._custom_request(prompt, history, max_output_tokens)
        else:
            url, headers, payload = self._openai_request(prompt, history, max_output_tokens)

        gateway_auth = self._gateway_metadata()
        if gateway_auth:
            payload["metadata"] = gateway_auth

        try:
            r = requests.post(url, json=payload, headers=headers, timeout=self.timeout_sec, verify=self.verify_ssl)
        except requests.RequestException as e:
            raise LLMError(f"LLM request failed: {e}") from e

        if not r.ok:
            raise LLMError(f"LLM HTTP {r.status_code} ({self.mode}): {r.text[:500]}")
        return _response_text(r)

    def _gateway_metadata(self) -> Optional[Dict[str, str]]:
        if not (self.md_username and self.md_password):
            return None
        return {"username": self.md_username, "pwd": self.md_password}

    def _custom_request(self, prompt: str, history: Optional[History], max_output_tokens: int):
        if not self.endpoint:
            raise LLMError("LLM_ENDPOINT is required when LLM_MODE=custom")

        headers = {"Content-Type": "application/json"}
        if self.header_value:
            headers[self.header_name] = self.header_value

        # No chat turns on this API: fold the channel history into the prompt
        if history:
            transcript = "\n".join(f"{m['role']}: {m['content']}" for m in history)
            prompt = f"Conversation so far:\n{transcript}\n\n{prompt}"

        payload: Dict[str, Any] = {
            "prompt": prompt,
            "model": self.model or None,
            "max_output_tokens": int(max_output_tokens),
            "temperature": float(self.temperature),
        }
        return self.endpoint, headers, payload

    def _chat_completions_url(self) -> str:
        """LLM_BASE_URL may be the host, the /v1 root or the full completions URL."""
        base = self.base_url
        if base.endswith("/chat/completions"):
            return base
        if not base.endswith("/v1"):
            base += "/v1"
        return base + "/chat/completions"

    def _openai_request(self, prompt: str, history: Optional[History], max_output_tokens: int):
        missing = [
            name
            for name, value in (("LLM_BASE_URL", self.base_url), ("LLM_API_KEY", self.api_key), ("LLM_MODEL", self.model))
            if not value
        ]
        if missing:
            raise LLMError(f"{', '.join(missing)} required when LLM_MODE=openai")

        messages: History = [{"role": "system", "content": SYSTEM_PROMPT}]
        messages.extend(history or [])
        messages.append({"role": "user", "content": prompt})

        headers = {"Authorization": f"Bearer {self.api_key}", "Content-Type": "application/json"}
        payload: Dict[str, Any] = {
            "model": self.model,
            "messages": messages,
            "temperature": float(self.temperature),
            # gateways disagree on the name of this field
            self.openai_token_field: int(max_output_tokens),
        }
        return self._chat_completions_url(), headers, payload


def _response_text(r: requests.Response) -> str:
    """Pull the generated text out of any of the response shapes gateways use."""
    try:
        data = r.json()
    except ValueError:
        return r.text

    if not isinstance(data, dict):
        return r.text

    for field_name in ("text", "output"):
        if isinstance(data.get(field_name), str):
            return data[field_name]

    choices = data.get("choices")
    if isinstance(choices, list) and choices and isinstance(choices[0], dict):
        first = choices[0]
        message = first.get("message")
        if isinstance(message, dict) and isinstance(message.get("content"), str):
            return message["content"]
        if isinstance(first.get("text"), str):
            return first["text"]

    return r.text
