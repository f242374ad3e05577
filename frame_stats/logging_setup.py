"""Logging configuration for one-shot frame statistics runs."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional, Union

DEFAULT_LOGGER_NAME = "frame_stats"
LOG_FORMAT = "%(asctime)s - %(levelname)s - %(message)s"

# Chatty third-party loggers; the heatmap sequence ticks every few milliseconds.
QUIET_LOGGERS = ("apscheduler",)


def _open_log_file(log_file: Union[str, Path]) -> logging.Handler:
    log_path = Path(log_file).expanduser()
    if not log_path.is_absolute():
        log_path = Path.cwd() / log_path
    log_path.parent.mkdir(parents=True, exist_ok=True)
    return logging.FileHandler(log_path, encoding="utf-8")


def configure_logging(
    logger_name: Optional[str] = None,
    *,
    level: int = logging.INFO,
    log_file: Union[str, Path, None] = None,
) -> logging.Logger:
    """Route log records to the console and, optionally, ``log_file``.

    A log file that cannot be opened is reported once and skipped; the run
    continues with console output only. Scheduler noise is held at WARNING
    unless ``level`` is DEBUG.
    """
    formatter = logging.Formatter(LOG_FORMAT)
    stream_handler = logging.StreamHandler()
    stream_handler.setFormatter(formatter)
    handlers: list[logging.Handler] = [stream_handler]

    file_error: Optional[OSError] = None
    if log_file:
        try:
            file_handler = _open_log_file(log_file)
        except OSError as exc:
            file_error = exc
        else:
            file_handler.setFormatter(formatter)
            handlers.append(file_handler)

    logging.basicConfig(level=level, handlers=handlers, force=True)
    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.DEBUG if level <= logging.DEBUG else logging.WARNING)

    logger = logging.getLogger(logger_name or DEFAULT_LOGGER_NAME)
    logger.setLevel(level)
    if file_error is not None:
        logger.warning("Not writing log file %s: %s", log_file, file_error)
    return logger


__all__ = ["configure_logging"]
