"""Logging utilities module."""

import logging
import re
import sys
from functools import lru_cache
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import ClassVar

import colorama
from colorama import Fore, Style

__all__ = ["Logger", "get_logger"]

_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


class _MarkupFormatter(logging.Formatter):
    """Base formatter aware of the `$$'value'$$` and `$${blob}$$` markers.

    Subclasses decide how a marked value is rendered by overriding
    `render_quoted` and `render_braced`.
    """

    QUOTED_PATTERN = re.compile(r"\$\$'((?:[^']|'(?!\$\$))*)'\$\$")
    BRACED_PATTERN = re.compile(r"\$\$\{(.*?)\}\$\$")

    def render_quoted(self, match: re.Match[str]) -> str:
        return f"'{match.group(1)}'"

    def render_braced(self, match: re.Match[str]) -> str:
        return f"{{{match.group(1)}}}"

    def render_levelname(self, levelname: str) -> str:
        return levelname

    def format(self, record: logging.LogRecord) -> str:
        """Formats a log record, rendering any markup in the message.

        Args:
            record (logging.LogRecord): Log record to format

        Returns:
            str: The formatted log line
        """
        orig_msg = record.msg
        orig_levelname = record.levelname
        record.levelname = self.render_levelname(record.levelname)

        if isinstance(record.msg, str):
            msg = self.QUOTED_PATTERN.sub(self.render_quoted, record.msg)
            record.msg = self.BRACED_PATTERN.sub(self.render_braced, msg)

        try:
            return super().format(record)
        finally:
            record.levelname = orig_levelname
            record.msg = orig_msg


class ColorFormatter(_MarkupFormatter):
    """Formatter that adds terminal colors to log messages.

    Color Scheme:
        DEBUG: Cyan
        INFO: Green
        SUCCESS: Bright Green
        WARNING: Yellow
        ERROR: Red
        CRITICAL: Bright Red
        Quoted values: Light Blue (e.g., $$'Cowboy Bebop'$$)
        Bracketed values: Dimmed (e.g., $${mal_id: 1}$$)
    """

    COLORS: ClassVar[dict[str, str]] = {
        "DEBUG": Fore.CYAN,
        "INFO": Fore.GREEN,
        "SUCCESS": Fore.GREEN + Style.BRIGHT,
        "WARNING": Fore.YELLOW,
        "ERROR": Fore.RED,
        "CRITICAL": Fore.RED + Style.BRIGHT,
    }

    def render_quoted(self, match: re.Match[str]) -> str:
        return f"{Fore.LIGHTBLUE_EX}'{match.group(1)}'{Style.RESET_ALL}"

    def render_braced(self, match: re.Match[str]) -> str:
        return f"{Style.DIM}{{{match.group(1)}}}{Style.RESET_ALL}"

    def render_levelname(self, levelname: str) -> str:
        return f"{self.COLORS.get(levelname, '')}{levelname}{Style.RESET_ALL}"


class CleanFormatter(_MarkupFormatter):
    """Formatter that strips color markers, used for files and dumb terminals."""


class Logger(logging.Logger):
    """Logger with a SUCCESS level and automatic class name prefixing."""

    SUCCESS = logging.INFO + 5

    def __init__(self, name, level=logging.NOTSET):
        """Initialize the logger and register the SUCCESS level name.

        Args:
            name (str): Logger name
            level (int, optional): Initial logging level. Defaults to NOTSET.
        """
        super().__init__(name, level)
        if logging.getLevelName(self.SUCCESS) != "SUCCESS":
            logging.addLevelName(self.SUCCESS, "SUCCESS")

    def _log(
        self,
        level,
        msg,
        args,
        exc_info=None,
        extra=None,
        stack_info=False,
        stacklevel=1,
    ):
        """Prefix the message with the calling class name, when there is one.

        Frame 0 is this method, frame 1 the public logging method (info, error,
        success, ...), so frame 2 is the caller whose `self` or `cls` we want.
        """
        try:
            frame = sys._getframe(2)
            owner = frame.f_locals.get("self", frame.f_locals.get("cls"))
            class_name = None
            if isinstance(owner, type):
                class_name = owner.__name__
            elif owner is not None and not isinstance(owner, logging.Logger):
                class_name = owner.__class__.__name__

            if class_name and isinstance(msg, str):
                msg = f"{class_name}: {msg}"
        except (ValueError, KeyError, AttributeError):
            pass

        super()._log(
            level,
            msg,
            args,
            exc_info=exc_info,
            extra=extra,
            stack_info=stack_info,
            stacklevel=stacklevel + 1,
        )

    def success(self, msg, *args, **kwargs):
        """Log a message with SUCCESS level."""
        self.log(self.SUCCESS, msg, *args, **kwargs)

    def setup(self, log_level: str, log_dir: str | None = None) -> None:
        """Attach console and (optionally) rotating file handlers.

        Args:
            log_level (str): Logging level ('DEBUG', 'INFO', 'SUCCESS', etc.)
            log_dir (str | None, optional): Directory where log files are written.
        """
        has_color_support = False
        try:
            from anisync.utils.terminal import supports_color

            if supports_color():
                if sys.platform == "win32":
                    colorama.just_fix_windows_console()
                else:
                    colorama.init()
                has_color_support = True
        except (AttributeError, ImportError, OSError):
            has_color_support = False

        level = self.SUCCESS if log_level == "SUCCESS" else getattr(logging, log_level)
        self.setLevel(level)

        for handler in self.handlers[:]:
            self.removeHandler(handler)
            handler.close()

        if level <= logging.DEBUG:
            log_format = (
                "%(asctime)s - %(name)s - %(levelname)s\t%(filename)s:%(lineno)d\t"
                "%(message)s"
            )
        else:
            log_format = "%(asctime)s - %(name)s - %(levelname)s\t%(message)s"

        if log_dir is not None:
            log_path = Path(log_dir)
            log_path.mkdir(parents=True, exist_ok=True)

            file_handler = RotatingFileHandler(
                log_path / f"{self.name}.{log_level}.log",
                maxBytes=10 * 1024 * 1024,  # 10MB
                backupCount=5,
                encoding="utf-8",
            )
            file_handler.setFormatter(CleanFormatter(log_format, _DATE_FORMAT))
            file_handler.setLevel(level)
            self.addHandler(file_handler)

        formatter_cls = ColorFormatter if has_color_support else CleanFormatter
        console_handler = logging.StreamHandler()
        console_handler.setFormatter(formatter_cls(log_format, _DATE_FORMAT))
        console_handler.setLevel(level)
        self.addHandler(console_handler)


logging.setLoggerClass(Logger)


def _get_logger(
    log_name: str, log_level: str = "INFO", log_dir: str | Path | None = None
) -> Logger:
    """Get a configured instance of Logger.

    Args:
        log_name (str): Name of the logger and base name for log file.
        log_level (str): Logging level. Defaults to "INFO".
        log_dir (str | Path | None): Directory where log files will be stored.

    Returns:
        Logger: Configured logger instance
    """
    logger = logging.getLogger(log_name)
    if not isinstance(logger, Logger):
        logger = Logger(log_name)

    logger.setup(log_level, str(log_dir) if log_dir is not None else None)
    return logger


@lru_cache(maxsize=1)
def get_logger() -> Logger:
    """Get the main application logger.

    Returns:
        Logger: Main application logger instance
    """
    from anisync.config.settings import get_config

    config = get_config()

    return _get_logger(
        log_name="AniSync",
        log_level=str(config.log_level),
        log_dir=config.data_path / "logs",
    )
