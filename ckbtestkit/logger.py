"""Logging helpers that route records to a per-thread log target."""

from __future__ import annotations

import logging
import sys
import threading

TRACE = 5
logging.addLevelName(TRACE, "TRACE")

DEFAULT_LOGGER_NAME = "ckbtestkit"

_state = threading.local()


def set_log_target(target: str) -> None:
    """Set the log target used by the current thread; an empty string resets it."""
    _state.target = target


def log_target() -> str:
    """Return the log target of the current thread, or an empty string."""
    return getattr(_state, "target", "")


def _logger() -> logging.Logger:
    return logging.getLogger(log_target() or DEFAULT_LOGGER_NAME)


def trace(msg: str, *args: object) -> None:
    """Log at TRACE level."""
    _logger().log(TRACE, msg, *args)


def debug(msg: str, *args: object) -> None:
    """Log at DEBUG level."""
    _logger().debug(msg, *args)


def info(msg: str, *args: object) -> None:
    """Log at INFO level."""
    _logger().info(msg, *args)


def warn(msg: str, *args: object) -> None:
    """Log at WARNING level."""
    _logger().warning(msg, *args)


def error(msg: str, *args: object) -> None:
    """Print the message to stderr and log it at ERROR level."""
    text = msg % args if args else msg
    print(text, file=sys.stderr)
    _logger().error(msg, *args)