"""Tests for the AniSync logger and its formatters."""

import logging
from collections.abc import Iterator
from logging.handlers import RotatingFileHandler
from pathlib import Path

import pytest
from colorama import Fore, Style

import anisync.utils.logging as logging_module
import anisync.utils.terminal as terminal_module
from anisync.utils.logging import CleanFormatter, ColorFormatter, Logger


class Capture(logging.Handler):
    def __init__(self) -> None:
        super().__init__()
        self.records: list[logging.LogRecord] = []

    def emit(self, record: logging.LogRecord) -> None:
        self.records.append(record)

    @property
    def messages(self) -> list[str]:
        return [r.getMessage() for r in self.records]


@pytest.fixture
def captured() -> Iterator[tuple[Logger, Capture]]:
    """Provide a fresh logger wired to a capturing handler."""
    logger = Logger("anisync-test")
    logger.setLevel(logging.DEBUG)
    handler = Capture()
    logger.addHandler(handler)
    yield logger, handler
    logger.removeHandler(handler)


def make_record(msg: object, level: int = logging.INFO) -> logging.LogRecord:
    return logging.LogRecord("anisync", level, __file__, 1, msg, (), None)


def test_color_formatter_highlights_markup() -> None:
    """Quoted values are highlighted, blobs dimmed and the level colored."""
    message = "Synced $$'Cowboy Bebop'$$ $${mal_id: 1}$$"
    record = make_record(message, Logger.SUCCESS)
    logging.addLevelName(Logger.SUCCESS, "SUCCESS")
    record.levelname = "SUCCESS"

    out = ColorFormatter("%(levelname)s %(message)s").format(record)

    assert f"{Fore.LIGHTBLUE_EX}'Cowboy Bebop'{Style.RESET_ALL}" in out
    assert f"{Style.DIM}{{mal_id: 1}}{Style.RESET_ALL}" in out
    assert out.startswith(Fore.GREEN + Style.BRIGHT)
    assert record.msg == message
    assert record.levelname == "SUCCESS"


def test_clean_formatter_strips_markers() -> None:
    """File output keeps the values but loses the markers."""
    record = make_record("Imported $$'12'$$ mappings $${errors: 0}$$")

    out = CleanFormatter("%(message)s").format(record)

    assert out == "Imported '12' mappings {errors: 0}"


def test_quoted_value_may_contain_apostrophes() -> None:
    """An apostrophe inside a quoted value does not end the marker early."""
    record = make_record("Matched $$'JoJo's Bizarre Adventure'$$")

    out = CleanFormatter("%(message)s").format(record)

    assert out == "Matched 'JoJo's Bizarre Adventure'"


def test_non_string_messages_pass_through() -> None:
    """Messages that are not strings are formatted untouched."""
    out = CleanFormatter("%(message)s").format(make_record({"processed": 3}))
    assert out == "{'processed': 3}"


def test_method_calls_are_prefixed(captured: tuple[Logger, Capture]) -> None:
    """Messages logged from methods and classmethods carry the class name."""
    logger, handler = captured

    class ListSync:
        log = logger

        def run(self) -> None:
            self.log.info("starting run")

        @classmethod
        def build(cls) -> None:
            cls.log.debug("building")

    ListSync().run()
    ListSync.build()
    logger.warning("plain")

    assert handler.messages == [
        "ListSync: starting run",
        "ListSync: building",
        "plain",
    ]


def test_success_level(captured: tuple[Logger, Capture]) -> None:
    """`success` logs between INFO and WARNING under its own name."""
    logger, handler = captured
    logger.setLevel(Logger.SUCCESS)

    logger.info("hidden")
    logger.success("run complete")

    assert [r.levelname for r in handler.records] == ["SUCCESS"]
    assert logging.INFO < Logger.SUCCESS < logging.WARNING


def test_setup_writes_rotating_log_file(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    """Setup replaces old handlers with a console and a rotating file handler."""
    monkeypatch.setattr(terminal_module, "supports_color", lambda: False)
    logger = Logger("setup-test")
    logger.addHandler(logging.NullHandler())

    logger.setup("DEBUG", log_dir=str(tmp_path / "logs"))
    logger.debug("hello $$'file'$$")

    try:
        kinds = [type(h) for h in logger.handlers]
        assert RotatingFileHandler in kinds
        assert logging.StreamHandler in kinds
        assert logging.NullHandler not in kinds
        for handler in logger.handlers:
            handler.flush()
        text = (tmp_path / "logs" / "setup-test.DEBUG.log").read_text("utf-8")
        assert "hello 'file'" in text
        assert "$$" not in text
    finally:
        for handler in logger.handlers[:]:
            handler.close()
            logger.removeHandler(handler)


def test_setup_survives_color_detection_failure(
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    """A failing terminal probe falls back to the clean console formatter."""

    def broken() -> bool:
        raise OSError("no console")

    monkeypatch.setattr(terminal_module, "supports_color", broken)
    monkeypatch.setattr(logging_module.sys, "platform", "linux")
    logger = Logger("probe-test")

    logger.setup("SUCCESS")

    try:
        assert logger.level == Logger.SUCCESS
        (console,) = logger.handlers
        assert type(console.formatter) is CleanFormatter
    finally:
        for handler in logger.handlers[:]:
            handler.close()
            logger.removeHandler(handler)
