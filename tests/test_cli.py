"""Tests for the console runner."""

import os

import pytest

from docfill import cli
from docfill.core import service


@pytest.fixture(autouse=True)
def offline(monkeypatch):
    monkeypatch.setenv("USE_LLM", "0")
    monkeypatch.setattr(service, "_store", None)


def _feed(monkeypatch, *lines):
    answers = iter(lines)

    def fake_input(prompt=""):
        try:
            return next(answers)
        except StopIteration:
            raise EOFError

    monkeypatch.setattr("builtins.input", fake_input)


class TestParseArgs:
    """Argument handling."""

    def test_requires_template_or_resume(self):
        """Running with nothing to work on is an error."""
        with pytest.raises(SystemExit):
            cli.parse_args([])

    def test_defaults(self):
        """Export defaults to .docx."""
        args = cli.parse_args(["agreement.docx"])
        assert args.template == "agreement.docx"
        assert args.format == "docx"
        assert args.resume is None


class TestRun:
    """The interactive loop over the service facade."""

    def test_fill_and_export(self, tmp_path, monkeypatch, capsys):
        """Answering every question writes the filled document."""
        template = tmp_path / "agreement.txt"
        template.write_text("This agreement is made by [Company Name] on [Signing Date].", encoding="utf-8")
        out_dir = tmp_path / "out"
        _feed(monkeypatch, "Acme Corp", "", "2024-03-15")

        code = cli.main([str(template), "--format", "txt", "--out-dir", str(out_dir)])

        assert code == 0
        assert "Saved:" in capsys.readouterr().out
        (written,) = os.listdir(out_dir)
        with open(out_dir / written, encoding="utf-8") as f:
            assert f.read().strip() == "This agreement is made by Acme Corp on 2024-03-15."

    def test_eof_leaves_session_resumable(self, tmp_path, monkeypatch, capsys):
        """Ending input early prints how to resume."""
        template = tmp_path / "agreement.txt"
        template.write_text("Signed by [Company Name].", encoding="utf-8")
        _feed(monkeypatch)

        assert cli.main([str(template)]) == 0
        assert "Resume with --resume" in capsys.readouterr().out

    def test_resume_missing_session(self, capsys):
        """An unknown session id exits with an error."""
        assert cli.main(["--resume", "missing"]) == 1
        assert "No session missing" in capsys.readouterr().err
