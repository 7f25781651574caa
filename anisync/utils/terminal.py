"""Terminal capability detection."""

import locale
import os
import sys
from functools import lru_cache

import colorama

__all__ = ["supports_color", "supports_utf8"]


@lru_cache(maxsize=1)
def supports_utf8() -> bool:
    """Check if stdout can print the box-drawing banner.

    Returns:
        bool: True if stdout uses a UTF encoding
    """
    encoding = sys.stdout.encoding or locale.getpreferredencoding(False)
    return encoding.lower().startswith("utf")


def _windows_vt_enabled() -> bool:
    if sys.platform != "win32":
        return False

    import winreg

    try:
        with winreg.OpenKey(winreg.HKEY_CURRENT_USER, "Console") as reg_key:
            value, _ = winreg.QueryValueEx(reg_key, "VirtualTerminalLevel")
    except FileNotFoundError:
        return False
    return value == 1


@lru_cache(maxsize=1)
def supports_color() -> bool:
    """Check if stdout is a terminal that renders ANSI color codes.

    Honors the `NO_COLOR` convention. On Windows the console is only trusted
    once colorama patched it or a modern terminal host is detected.

    Returns:
        bool: True if colored output should be emitted
    """
    if os.environ.get("NO_COLOR"):
        return False
    if not (hasattr(sys.stdout, "isatty") and sys.stdout.isatty()):
        return False

    if sys.platform == "win32":
        return (
            getattr(colorama, "fixed_windows_console", False)
            or "ANSICON" in os.environ
            or "WT_SESSION" in os.environ  # Windows Terminal
            or os.environ.get("TERM_PROGRAM") == "vscode"
            or _windows_vt_enabled()
        )

    return os.environ.get("TERM") != "dumb"
