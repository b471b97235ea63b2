"""Tests for logging setup and log formatting helpers."""

import logging
import sys

from loguru import logger

from temporal_checkin.logging import (
    _parse_size,
    configure_logging,
    format_log_context,
    shutdown_logging,
    truncate_log_text,
)


def test_format_log_context_orders_fields_and_skips_empty():
    ctx = format_log_context(
        "check_in_added", component="tasks", user="u-1", task="t-9", conversation=None, day=2
    )
    assert ctx == "SYS=tasks USER=u-1 TASK=t-9 DAY=2 | check_in_added"


def test_format_log_context_without_fields():
    assert format_log_context("startup") == "startup"


def test_truncate_log_text():
    assert truncate_log_text("  a\n b  ") == "a b"
    assert truncate_log_text("x" * 10, limit=4) == "xxxx..."
    assert truncate_log_text(None) == ""


def test_parse_size():
    assert _parse_size("10 MB") == 10 * 1024 * 1024
    assert _parse_size("512 KB") == 512 * 1024
    assert _parse_size("2048") == 2048
    assert _parse_size("garbage") == 10 * 1024 * 1024


def test_loguru_and_stdlib_reach_log_file(tmp_path):
    log_file = tmp_path / "logs" / "app.log"
    root = logging.getLogger()
    saved_handlers, saved_level = root.handlers[:], root.level

    try:
        configure_logging("INFO", log_file)
        logger.info("from loguru")
        logging.getLogger("temporal_checkin.test").warning("from stdlib")
        logger.debug("below level")
        shutdown_logging()

        content = log_file.read_text()
        assert "from loguru" in content
        assert "from stdlib" in content
        assert "below level" not in content
    finally:
        shutdown_logging()
        logger.remove()
        logger.add(sys.stderr)
        root.handlers, root.level = saved_handlers, saved_level
