"""Tests for reply post-processing rules."""

from docfill.core.constants import ACK_FALLBACK
from docfill.core.text_rules import (
    ACKNOWLEDGMENT_RULES,
    EXPLANATION_RULES,
    normalize_reply,
    strip_followup_phrases,
    strip_trailing_question,
)


class TestStripTrailingQuestion:
    """Trailing questions are cut from model replies."""

    def test_text_without_question_is_trimmed_only(self):
        """No '?' means the text is returned trimmed."""
        assert strip_trailing_question("  Hello there.  ") == "Hello there."

    def test_interrogative_trailing_sentence_is_dropped(self):
        """A trailing sentence starting with a cue word goes entirely."""
        text = "The company name is the legal name. What else can I help with?"
        assert strip_trailing_question(text) == "The company name is the legal name."

    def test_non_interrogative_fragment_keeps_prefix(self):
        """Without a cue word only the part from the '?' is dropped."""
        text = "Got it. Acme Corp noted, thanks?"
        assert strip_trailing_question(text) == "Got it. Acme Corp noted, thanks."

    def test_no_boundary_and_not_interrogative(self):
        """A single non-question sentence is re-terminated with a period."""
        assert strip_trailing_question("It is the legal name, right?") == "It is the legal name, right."

    def test_all_question_collapses_to_fallback(self):
        """A reply that is only a question becomes the fixed fallback."""
        assert strip_trailing_question("What do you mean?") == ACK_FALLBACK

    def test_exclamation_is_a_boundary(self):
        """'!' counts as a sentence boundary."""
        assert strip_trailing_question("Got it! What is the signing date?") == "Got it!"

    def test_empty_text(self):
        """Empty input stays empty."""
        assert strip_trailing_question("") == ""


class TestStripFollowupPhrases:
    """Canned continuation offers are removed."""

    def test_followup_after_sentence(self):
        """The phrase goes, the sentence before it stays."""
        text = "The date is when both parties sign. Would you like to continue"
        assert strip_followup_phrases(text) == "The date is when both parties sign."

    def test_followup_mid_sentence_is_reterminated(self):
        """Cut text gets a closing period."""
        text = "Signing date matters would you like to continue with the next one"
        assert strip_followup_phrases(text) == "Signing date matters."

    def test_plain_text_untouched(self):
        """Text without a known phrase is unchanged."""
        assert strip_followup_phrases("Just an explanation.") == "Just an explanation."


class TestNormalizeReply:
    """Rule sets are applied in order."""

    def test_acknowledgment_rules_keep_followups(self):
        """Acknowledgments only lose trailing questions."""
        text = "Noted. Would you like to continue"
        assert normalize_reply(text, ACKNOWLEDGMENT_RULES) == text

    def test_explanation_rules_strip_followups(self):
        """Explanations also lose canned followups."""
        text = "Noted. Would you like to continue"
        assert normalize_reply(text, EXPLANATION_RULES) == "Noted."

    def test_explanation_with_trailing_question(self):
        """Both rules together leave no question at the end."""
        text = "It is the date both parties sign. Do you have any other questions?"
        out = normalize_reply(text, EXPLANATION_RULES)
        assert out == "It is the date both parties sign."
        assert not out.endswith("?")
