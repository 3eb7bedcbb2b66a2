"""Logging configuration helpers (human + JSON + file).

This module centralizes lightweight logging setup for hosts embedding the
updater:
 - Plain human-readable logs to stderr
 - Optional JSON logs to stdout (for piping/collection)
 - Optional file logs

Design goals
 - No third-party dependencies; stdlib logging only
 - Idempotent configuration for tests and repeated calls
 - Never let a logging problem interrupt an update check
"""

from __future__ import annotations
import json
import logging
import sys
from typing import Optional

# Structured fields copied into JSON output when set via ``extra=...``
_STRUCTURED_FIELDS = (
    "event",
    "tool_path",
    "exit_code",
    "outcome",
    "task_id",
    "duration_ms",
    "error_type",
)


class JSONFormatter(logging.Formatter):
    """Minimal JSON formatter for structured log collection.

    Emits an object with ``level`` and ``message`` plus the structured fields
    the updater attaches to its events (``event``, ``tool_path``,
    ``exit_code``, ``outcome``, ``task_id``, ``duration_ms``, ``error_type``).
    """

    def format(self, record):
        payload = {
            "level": record.levelname,
            "message": record.getMessage(),
        }
        for k in _STRUCTURED_FIELDS:
            if hasattr(record, k):
                payload[k] = getattr(record, k)
        return json.dumps(payload)


_PLAIN_FORMAT = "%(levelname)s: %(message)s"
# checks finish on watcher and control threads; verbose output names them
_VERBOSE_FORMAT = "%(levelname)s [%(threadName)s]: %(message)s"
_LEVELS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warning": logging.WARNING,
    "error": logging.ERROR,
    "critical": logging.CRITICAL,
}


def _resolve_level(verbose: bool, log_level: Optional[str]) -> int:
    if log_level:
        return _LEVELS.get(log_level.strip().lower(), logging.WARNING)
    return logging.DEBUG if verbose else logging.WARNING


def _owned(handler: logging.Handler) -> logging.Handler:
    setattr(handler, "_added_by_configure_logging", True)
    return handler


def configure_logging(
    verbose: bool,
    log_file: Optional[str] = None,
    log_json: bool = False,
    log_level: Optional[str] = None,
) -> None:
    """Configure the root logger for a host that embeds the updater.

    Parameters
    - ``verbose``: ``DEBUG`` level and thread names in plain output, so the
      watcher, control and timer threads can be told apart. Otherwise
      ``WARNING``.
    - ``log_file``: Optional path to tee plain logs to.
    - ``log_json``: Also emit JSON lines (with the check/task fields) to
      stdout.
    - ``log_level``: Explicit level name; overrides ``verbose`` for the level.

    Handlers added by an earlier call are removed and closed first, so calling
    this again replaces the configuration.
    """
    level = _resolve_level(verbose, log_level)
    logger = logging.getLogger()
    logger.setLevel(level)

    for h in list(logger.handlers):
        if getattr(h, "_added_by_configure_logging", False):
            logger.removeHandler(h)
            h.close()

    plain = logging.Formatter(_VERBOSE_FORMAT if verbose else _PLAIN_FORMAT)
    pairs = [(logging.StreamHandler(), plain)]
    if log_json:
        pairs.append((logging.StreamHandler(sys.stdout), JSONFormatter()))
    if log_file:
        pairs.append((logging.FileHandler(log_file), plain))
    for handler, formatter in pairs:
        handler.setFormatter(formatter)
        logger.addHandler(_owned(handler))

    for handler in logger.handlers:
        handler.setLevel(level)


def log_event(event: str, level: int = logging.INFO, **fields) -> None:
    """Emit a structured event log at the given level.

    Common ``fields`` include ``tool_path``, ``exit_code``, ``task_id``,
    ``duration_ms``, and ``error_type``. The function never raises.
    """
    try:
        logging.getLogger().log(level, event, extra={"event": event, **fields})
    except Exception:
        # Never let logging break an update check
        pass


__all__ = ["configure_logging", "log_event", "JSONFormatter"]
