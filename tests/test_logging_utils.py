"""Tests for colored console logging helpers and their color-blind-safe tags."""

from mnemoverse.logging_utils import (
    LOG_TAG_ERROR,
    LOG_TAG_WARNING,
    Color,
    colored,
    is_verbose,
    log_error,
    log_warning,
)


def test_colored_wraps_text_in_ansi_codes(monkeypatch):
    monkeypatch.delenv("MNEMOVERSE_NO_COLOR", raising=False)

    text = colored("hello", Color.GREEN)

    assert text.startswith(Color.GREEN.value)
    assert text.endswith(Color.RESET.value)


def test_colored_respects_no_color(monkeypatch):
    monkeypatch.setenv("MNEMOVERSE_NO_COLOR", "1")

    assert colored("hello", Color.RED, bold=True) == "hello"


def test_log_helpers_print_tags(monkeypatch, capsys):
    monkeypatch.setenv("MNEMOVERSE_NO_COLOR", "1")

    log_error("pipeline failed")
    log_warning("retrying")

    out = capsys.readouterr().out.splitlines()
    assert out[0] == f"{LOG_TAG_ERROR} pipeline failed"
    assert out[1] == f"{LOG_TAG_WARNING} retrying"


def test_is_verbose_reads_environment(monkeypatch):
    monkeypatch.delenv("MNEMOVERSE_VERBOSE", raising=False)
    assert is_verbose() is False

    monkeypatch.setenv("MNEMOVERSE_VERBOSE", "1")
    assert is_verbose() is True
