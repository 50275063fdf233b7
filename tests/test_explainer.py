"""Tests for explanations."""

from docfill.core.constants import EXPLAIN_FALLBACK
from docfill.core.explainer import ExplanationGenerator
from docfill.llm.client import LLMError


class TestExplanationGenerator:
    """Explanations never advance the session or end with a question."""

    def test_trailing_question_removed(self, session, fake_llm):
        """The model's own follow-up question is dropped."""
        fake_llm.script("explain.txt", "It is the legal name. Would you like to continue?")
        out = ExplanationGenerator(session, fake_llm).explain("what is this?", current_key="company_name")
        assert out == "It is the legal name."

    def test_session_not_advanced(self, session, fake_llm):
        """Explaining leaves responses and the current key alone."""
        session.current_placeholder_key = "company_name"
        ExplanationGenerator(session, fake_llm).explain("what?", current_key="company_name")
        assert session.responses == {}
        assert session.current_placeholder_key == "company_name"

    def test_failure_describes_current_placeholder(self, session, fake_llm):
        """Without the model the current placeholder is described."""
        fake_llm.script("explain.txt", LLMError("down"))
        out = ExplanationGenerator(session, fake_llm).explain("what?", current_key="company_name")
        assert "**Company Name**" in out
        assert "Status: Not yet filled" in out

    def test_failure_without_current(self, session, fake_llm):
        """Without the model or a current key a fixed line is used."""
        fake_llm.script("explain.txt", LLMError("down"))
        assert ExplanationGenerator(session, fake_llm).explain("hello") == EXPLAIN_FALLBACK

    def test_describe_filled_placeholder(self, session, fake_llm):
        """Filled placeholders show their value."""
        session.responses["company_name"] = "Acme Corp"
        out = ExplanationGenerator(session, fake_llm).describe_placeholder("company_name")
        assert "Current value: Acme Corp" in out

    def test_explanation_channel(self, session, fake_llm):
        """Exchanges go to the explanation channel."""
        ExplanationGenerator(session, fake_llm).explain("what is this?")
        assert [h["role"] for h in session.history["explanation"]] == ["user", "assistant"]
