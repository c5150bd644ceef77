"""Tests for the output formatting system.

Covers:
- OutputFormat resolution (auto -> rich/plain based on TTY)
- NO_COLOR / TERM=dumb color disabling
- stdout vs stderr discipline
- Quiet mode
- format_response and print_table in each format
- Global instance management
"""

from __future__ import annotations

import json

import pytest

from ocalogin import output as output_module
from ocalogin.output import (
    OutputFormat,
    OutputManager,
    _should_disable_color,
    get_output,
    reset_output,
    set_output,
)


# ------------------------------------------------------------------ #
# Fixtures
# ------------------------------------------------------------------ #


@pytest.fixture()
def non_tty(monkeypatch):
    """Patch stdout.isatty() to return False."""
    monkeypatch.setattr("ocalogin.output._is_tty", lambda: False)


@pytest.fixture()
def tty(monkeypatch):
    """Patch stdout.isatty() to return True."""
    monkeypatch.setattr("ocalogin.output._is_tty", lambda: True)


# ------------------------------------------------------------------ #
# OutputFormat resolution
# ------------------------------------------------------------------ #


class TestOutputFormatResolution:
    def test_auto_resolves_to_plain_when_not_tty(self, non_tty):
        assert OutputManager().format == OutputFormat.PLAIN

    def test_auto_resolves_to_rich_when_tty(self, tty, monkeypatch):
        monkeypatch.delenv("NO_COLOR", raising=False)
        monkeypatch.delenv("TERM", raising=False)
        assert OutputManager().format == OutputFormat.RICH

    def test_auto_resolves_to_plain_when_tty_but_no_color(self, tty, monkeypatch):
        monkeypatch.setenv("NO_COLOR", "1")
        assert OutputManager().format == OutputFormat.PLAIN

    def test_explicit_json_stays_json(self, tty):
        assert OutputManager(format=OutputFormat.JSON).format == OutputFormat.JSON


class TestColorDisabling:
    def test_no_color_env_any_value(self, monkeypatch):
        monkeypatch.setenv("NO_COLOR", "")
        assert _should_disable_color() is True

    def test_term_dumb_disables_color(self, monkeypatch):
        monkeypatch.delenv("NO_COLOR", raising=False)
        monkeypatch.setenv("TERM", "dumb")
        assert _should_disable_color() is True

    def test_normal_term_keeps_color(self, monkeypatch):
        monkeypatch.delenv("NO_COLOR", raising=False)
        monkeypatch.setenv("TERM", "xterm-256color")
        assert _should_disable_color() is False


# ------------------------------------------------------------------ #
# stdout vs stderr discipline
# ------------------------------------------------------------------ #


class TestStdoutStderrDiscipline:
    """Data goes to stdout, diagnostics go to stderr."""

    def test_print_data_goes_to_stdout(self, capfd, non_tty):
        mgr = OutputManager(format=OutputFormat.PLAIN, no_color=True)
        mgr.print_data("http://localhost:48801")
        captured = capfd.readouterr()
        assert captured.out == "http://localhost:48801\n"
        assert captured.err == ""

    @pytest.mark.parametrize("method", ["info", "error", "warning", "success", "suggest"])
    def test_diagnostics_go_to_stderr(self, capfd, non_tty, method):
        mgr = OutputManager(format=OutputFormat.PLAIN, no_color=True)
        getattr(mgr, method)("Waiting for you to complete authentication")
        captured = capfd.readouterr()
        assert captured.out == ""
        assert "Waiting for you to complete authentication" in captured.err

    def test_prefixes(self, capfd, non_tty):
        mgr = OutputManager(format=OutputFormat.PLAIN, no_color=True)
        mgr.warning("be careful")
        mgr.error("something broke")
        mgr.suggest("Next: ocalogin auth model")
        err = capfd.readouterr().err
        assert "Warning: be careful" in err
        assert "Error: something broke" in err
        assert "→ Next: ocalogin auth model" in err

    def test_markup_in_message_is_escaped(self, capfd, non_tty):
        mgr = OutputManager(format=OutputFormat.PLAIN)
        mgr.info("model [oca/gpt-4.1]")
        assert "[oca/gpt-4.1]" in capfd.readouterr().err


# ------------------------------------------------------------------ #
# Quiet mode
# ------------------------------------------------------------------ #


class TestQuietMode:
    @pytest.mark.parametrize("method", ["info", "success", "suggest"])
    def test_quiet_suppresses(self, capfd, non_tty, method):
        mgr = OutputManager(format=OutputFormat.PLAIN, no_color=True, quiet=True)
        getattr(mgr, method)("should not appear")
        assert capfd.readouterr().err == ""

    def test_quiet_does_not_suppress_warning_or_error(self, capfd, non_tty):
        mgr = OutputManager(format=OutputFormat.PLAIN, no_color=True, quiet=True)
        mgr.warning("important warning")
        mgr.error("critical error")
        err = capfd.readouterr().err
        assert "important warning" in err
        assert "critical error" in err

    def test_quiet_does_not_suppress_stdout_data(self, capfd, non_tty):
        mgr = OutputManager(format=OutputFormat.PLAIN, no_color=True, quiet=True)
        mgr.print_data("important data")
        assert "important data" in capfd.readouterr().out


# ------------------------------------------------------------------ #
# format_response
# ------------------------------------------------------------------ #


class TestFormatResponse:
    def test_dict_as_json(self, capfd, non_tty):
        mgr = OutputManager(format=OutputFormat.JSON, no_color=True)
        mgr.format_response({"authenticated": True, "mode": "internal"})
        assert json.loads(capfd.readouterr().out) == {"authenticated": True, "mode": "internal"}

    def test_json_output_is_indented(self, capfd, non_tty):
        mgr = OutputManager(format=OutputFormat.JSON, no_color=True)
        mgr.format_response({"a": 1})
        assert '\n  "a": 1' in capfd.readouterr().out

    def test_dict_as_key_value(self, capfd, non_tty):
        mgr = OutputManager(format=OutputFormat.PLAIN, no_color=True)
        mgr.format_response({"mode": "external", "baseUrl": None})
        lines = capfd.readouterr().out.strip().split("\n")
        assert lines == ["mode\texternal", "baseUrl\tNone"]

    def test_list_of_dicts_as_rows(self, capfd, non_tty):
        mgr = OutputManager(format=OutputFormat.PLAIN, no_color=True)
        mgr.format_response([{"id": 1, "name": "a"}, {"id": 2, "name": "b"}])
        assert capfd.readouterr().out.strip().split("\n") == ["1\ta", "2\tb"]

    def test_rich_renders_to_stdout(self, capfd, non_tty):
        mgr = OutputManager(format=OutputFormat.RICH, no_color=True)
        mgr.format_response({"model": "oca/gpt-4.1"})
        captured = capfd.readouterr()
        assert "oca/gpt-4.1" in captured.out
        assert captured.err == ""


class TestPrintTable:
    def test_table_json_mode(self, capfd, non_tty):
        mgr = OutputManager(format=OutputFormat.JSON, no_color=True)
        mgr.print_table(["Model", "Context"], [["oca/gpt-4.1", "128000"]])
        parsed = json.loads(capfd.readouterr().out)
        assert parsed == [{"Model": "oca/gpt-4.1", "Context": "128000"}]

    def test_table_plain_mode(self, capfd, non_tty):
        mgr = OutputManager(format=OutputFormat.PLAIN, no_color=True)
        mgr.print_table(["id", "name"], [["1", "Docs"], ["2", "Wiki"]], title="ignored")
        lines = capfd.readouterr().out.strip().split("\n")
        assert lines == ["id\tname", "1\tDocs", "2\tWiki"]

    def test_table_rich_mode(self, capfd, non_tty):
        mgr = OutputManager(format=OutputFormat.RICH, no_color=True)
        mgr.print_table(["id", "name"], [["1", "Docs"]], title="Knowledge Bases")
        out = capfd.readouterr().out
        assert "Docs" in out
        assert "Knowledge Bases" in out

    def test_table_empty_rows(self, capfd, non_tty):
        mgr = OutputManager(format=OutputFormat.JSON, no_color=True)
        mgr.print_table(["col1"], [])
        assert json.loads(capfd.readouterr().out) == []


# ------------------------------------------------------------------ #
# Global instance management
# ------------------------------------------------------------------ #


class TestGlobalInstance:
    def test_get_output_creates_default(self):
        reset_output()
        assert isinstance(get_output(), OutputManager)

    def test_set_output_overrides(self):
        mgr = OutputManager(format=OutputFormat.JSON)
        set_output(mgr)
        assert get_output() is mgr

    def test_reset_output_clears(self):
        set_output(OutputManager(format=OutputFormat.JSON))
        reset_output()
        assert output_module._output is None

    def test_convenience_functions_delegate(self, capfd, non_tty):
        set_output(OutputManager(format=OutputFormat.PLAIN, no_color=True))
        output_module.print_data("data")
        output_module.info("note")
        captured = capfd.readouterr()
        assert captured.out == "data\n"
        assert "note" in captured.err
