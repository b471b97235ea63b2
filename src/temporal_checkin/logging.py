"""Logging configuration using Loguru.

Loguru records are forwarded into stdlib logging, and stdlib handlers run
behind a QueueListener so request threads never block on console or file
I/O. Modules may log through either `loguru.logger` or `logging.getLogger`.
"""

import atexit
import logging
import queue
import sys
from logging.handlers import QueueHandler, QueueListener, RotatingFileHandler
from pathlib import Path

from loguru import logger

from temporal_checkin.config.settings import settings

LOG_FORMAT = "%(asctime)s.%(msecs)03d | %(levelname)-5s | %(name)s | %(message)s"
QUIET_LOGGERS = ("httpx", "httpcore", "uvicorn.access")

_SIZE_UNITS = {"b": 1, "kb": 1024, "mb": 1024**2, "gb": 1024**3}
_DEFAULT_MAX_BYTES = 10 * 1024**2

_queue_listener: QueueListener | None = None


def configure_logging(
    log_level: str | None = None,
    log_file: str | Path | None = None,
    max_size: str = "10 MB",
    backups: int = 7,
) -> None:
    """
    Route Loguru and stdlib logging through one queue-backed set of handlers.

    Args:
        log_level: Level name; defaults to settings.LOG_LEVEL.
        log_file: Rotating log file; defaults to settings.LOG_FILE (console only if unset).
        max_size: Size at which the log file rotates (e.g. "10 MB").
        backups: Rotated files to keep.
    """
    global _queue_listener

    level = (log_level or settings.LOG_LEVEL).upper()
    file_path = log_file or settings.LOG_FILE

    handlers = _build_handlers(level, file_path, _parse_size(max_size), backups)

    log_queue: queue.SimpleQueue = queue.SimpleQueue()
    root = logging.getLogger()
    root.handlers = [QueueHandler(log_queue)]
    root.setLevel(level)

    shutdown_logging()
    _queue_listener = QueueListener(log_queue, *handlers, respect_handler_level=True)
    _queue_listener.start()
    atexit.register(shutdown_logging)

    logger.remove()
    logger.add(_forward_to_stdlib, level=level, backtrace=True, diagnose=False)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def shutdown_logging() -> None:
    """Flush queued records and stop the listener thread."""
    global _queue_listener
    if _queue_listener is not None:
        _queue_listener.stop()
        _queue_listener = None


def _build_handlers(
    level: str, file_path: str | Path | None, max_bytes: int, backups: int
) -> list[logging.Handler]:
    formatter = logging.Formatter(fmt=LOG_FORMAT, datefmt="%H:%M:%S")

    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stdout)]
    if file_path:
        Path(file_path).parent.mkdir(parents=True, exist_ok=True)
        handlers.append(
            RotatingFileHandler(
                file_path, maxBytes=max_bytes, backupCount=max(1, backups), encoding="utf-8"
            )
        )

    for handler in handlers:
        handler.setFormatter(formatter)
        handler.setLevel(level)
    return handlers


def _forward_to_stdlib(message) -> None:
    record = message.record
    exc = record["exception"]
    exc_info = (exc.type, exc.value, exc.traceback) if exc else None
    logging.getLogger(record["name"]).log(record["level"].no, record["message"], exc_info=exc_info)


def _parse_size(value: str) -> int:
    """'512 KB' -> 524288. Unparseable input falls back to 10 MB."""
    number, _, unit = value.strip().partition(" ")
    try:
        return int(float(number) * _SIZE_UNITS.get(unit.strip().lower() or "b", 1))
    except ValueError:
        return _DEFAULT_MAX_BYTES


_CONTEXT_LABELS = {
    "user": "USER",
    "task": "TASK",
    "conversation": "CONV",
    "notification": "NOTIF",
    "status": "STATUS",
    "time_of_day": "TOD",
}


def format_log_context(kind: str, component: str | None = None, **fields: object) -> str:
    """
    Prefix a log event with its identifiers.

    Example:
        SYS=tasks USER=u-123 TASK=9f2c... NUMBER=2 | check_in_added
    """
    parts = [f"SYS={component}"] if component else []
    parts += [
        f"{_CONTEXT_LABELS.get(key, key.upper())}={value}"
        for key, value in fields.items()
        if value is not None and value != ""
    ]
    return f"{' '.join(parts)} | {kind}" if parts else kind


def truncate_log_text(text: str | None, limit: int = 200) -> str:
    """Collapse whitespace and cap length for log output."""
    if text is None:
        return ""
    cleaned = " ".join(str(text).split())
    return cleaned if len(cleaned) <= limit else f"{cleaned[:limit]}..."


__all__ = ["configure_logging", "shutdown_logging", "format_log_context", "truncate_log_text"]
