"""Tests for terminal capability detection."""

import locale
import sys
from collections.abc import Iterator
from types import SimpleNamespace

import pytest

import anisync.utils.terminal as terminal_module
from anisync.utils.terminal import supports_color, supports_utf8


@pytest.fixture(autouse=True)
def fresh_probes(monkeypatch: pytest.MonkeyPatch) -> Iterator[None]:
    """Reset the cached probes and the color related environment."""
    for var in ("NO_COLOR", "WT_SESSION", "ANSICON", "TERM_PROGRAM"):
        monkeypatch.delenv(var, raising=False)
    monkeypatch.setenv("TERM", "xterm-256color")
    supports_utf8.cache_clear()
    supports_color.cache_clear()
    yield
    supports_utf8.cache_clear()
    supports_color.cache_clear()


def use_stdout(
    monkeypatch: pytest.MonkeyPatch, encoding: str | None = "utf-8", tty: bool = True
) -> None:
    monkeypatch.setattr(
        sys, "stdout", SimpleNamespace(encoding=encoding, isatty=lambda: tty)
    )


@pytest.mark.parametrize(
    ("encoding", "preferred", "expected"),
    [
        ("UTF-8", "ascii", True),
        ("cp1252", "utf-8", False),
        (None, "UTF-8", True),
        (None, "latin-1", False),
    ],
)
def test_supports_utf8(
    monkeypatch: pytest.MonkeyPatch,
    encoding: str | None,
    preferred: str,
    expected: bool,
) -> None:
    """The stdout encoding decides, with the locale as a fallback."""
    use_stdout(monkeypatch, encoding=encoding)
    monkeypatch.setattr(locale, "getpreferredencoding", lambda _: preferred)

    assert supports_utf8() is expected


@pytest.mark.parametrize(
    ("tty", "env", "expected"),
    [
        (True, {}, True),
        (False, {}, False),
        (True, {"NO_COLOR": "1"}, False),
        (True, {"TERM": "dumb"}, False),
    ],
)
def test_supports_color_posix(
    monkeypatch: pytest.MonkeyPatch, tty: bool, env: dict[str, str], expected: bool
) -> None:
    """POSIX terminals get color unless redirected, dumb or opted out."""
    use_stdout(monkeypatch, tty=tty)
    monkeypatch.setattr(sys, "platform", "linux")
    for key, value in env.items():
        monkeypatch.setenv(key, value)

    assert supports_color() is expected


@pytest.mark.parametrize(
    ("env", "vt_enabled", "expected"),
    [
        ({"WT_SESSION": "1"}, False, True),
        ({"TERM_PROGRAM": "vscode"}, False, True),
        ({}, True, True),
        ({}, False, False),
    ],
)
def test_supports_color_windows(
    monkeypatch: pytest.MonkeyPatch,
    env: dict[str, str],
    vt_enabled: bool,
    expected: bool,
) -> None:
    """Windows consoles need a modern host or the virtual terminal flag."""
    use_stdout(monkeypatch)
    monkeypatch.setattr(sys, "platform", "win32")
    monkeypatch.setattr(
        terminal_module.colorama, "fixed_windows_console", False, raising=False
    )
    monkeypatch.setattr(terminal_module, "_windows_vt_enabled", lambda: vt_enabled)
    for key, value in env.items():
        monkeypatch.setenv(key, value)

    assert supports_color() is expected
