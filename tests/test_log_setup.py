"""Tests for logging setup."""

import logging

from config import LoggingConfig
from cinesync.log_setup import setup_logging


def _tagged(root: logging.Logger):
    return [handler for handler in root.handlers if getattr(handler, "_cinesync", False)]


def test_file_and_console_handlers(tmp_path, restore_logging) -> None:
    log_file = tmp_path / "logs" / "sync.log"

    root = setup_logging(LoggingConfig(log_file=log_file, log_level="debug"))
    logging.getLogger("cinesync.test").info("hello from the sync")

    handlers = _tagged(root)
    assert {type(handler) for handler in handlers} == {logging.FileHandler, logging.StreamHandler}
    assert root.level == logging.DEBUG
    assert logging.getLogger("urllib3").level == logging.WARNING

    handlers[0].flush()
    assert "hello from the sync" in log_file.read_text(encoding="utf-8")


def test_repeated_setup_replaces_handlers(tmp_path, restore_logging) -> None:
    logging_config = LoggingConfig(log_file=tmp_path / "sync.log", console_output=False)

    setup_logging(logging_config)
    root = setup_logging(logging_config)

    assert len(_tagged(root)) == 1
