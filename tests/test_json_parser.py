"""Tests for tolerant JSON parsing of model output."""

import pytest

from docfill.llm.json_parser import JSONParseError, parse_json_strict


class TestParseJsonStrict:
    """Model output is parsed into a dict or rejected."""

    def test_plain_json(self):
        """Clean JSON parses directly."""
        assert parse_json_strict('{"queryType": "answer"}') == {"queryType": "answer"}

    def test_fenced_json(self):
        """Code fences are unwrapped."""
        text = 'Here you go:\n```json\n{"understood": true, "extractedValues": []}\n```'
        assert parse_json_strict(text) == {"understood": True, "extractedValues": []}

    def test_embedded_object_with_nested_braces(self):
        """The first balanced object is taken, braces inside strings ignored."""
        text = 'Sure! {"a": {"b": "x}y"}, "c": 1} trailing words'
        assert parse_json_strict(text) == {"a": {"b": "x}y"}, "c": 1}

    def test_python_literals_and_trailing_commas(self):
        """Common model mistakes are repaired."""
        text = 'Result: {"isValid": True, "suggestions": None, "confidence": .7, "errors": [],}'
        assert parse_json_strict(text) == {
            "isValid": True,
            "suggestions": None,
            "confidence": 0.7,
            "errors": [],
        }

    def test_raw_newline_inside_string(self):
        """Unescaped control characters inside strings are escaped."""
        text = 'note {"acknowledgment": "line one\nline two"}'
        assert parse_json_strict(text) == {"acknowledgment": "line one\nline two"}

    def test_non_object_rejected(self):
        """A JSON list is not accepted."""
        with pytest.raises(JSONParseError):
            parse_json_strict("[1, 2, 3]")

    @pytest.mark.parametrize("text", ["", "no json here", '{"a": 1'])
    def test_garbage_rejected(self, text):
        """Unparseable output raises JSONParseError."""
        with pytest.raises(JSONParseError):
            parse_json_strict(text)

    def test_error_is_value_error(self):
        """Callers may catch ValueError."""
        assert issubclass(JSONParseError, ValueError)
