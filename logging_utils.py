"""Tagged diagnostic logging for the reactive engine.

Every component reports through ``log_event`` with a short tag naming the
component (Beat, Tempo, Performance, ...) so a single stream stays readable.
Frame-loop code that would otherwise repeat the same diagnostic every frame
uses ``log_once``.
"""
from __future__ import annotations

import logging
from typing import Any, Hashable

_logger = logging.getLogger("beatreactor")
if not _logger.handlers:
    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter("[%(levelname)s][%(tag)s] %(message)s"))
    _logger.addHandler(handler)
    _logger.setLevel(logging.INFO)

_LEVEL_ALIASES = {"WARN": "WARNING", "FATAL": "CRITICAL"}
_ONCE_LIMIT = 256
_once_keys: set[tuple[str, Hashable]] = set()


class _TagAdapter(logging.LoggerAdapter):
    def process(self, msg: Any, kwargs: dict[str, Any]):
        tag = kwargs.pop("tag", "Engine")
        kwargs.setdefault("extra", {})["tag"] = tag
        return msg, kwargs


_logger_adapter = _TagAdapter(_logger, {})


def _level_value(level: str | None) -> int:
    name = (level or "INFO").upper()
    name = _LEVEL_ALIASES.get(name, name)
    value = getattr(logging, name, logging.INFO)
    return value if isinstance(value, int) else logging.INFO


def format_fields(fields: dict[str, Any]) -> str:
    """``k=v`` pairs; bare floats are shown with 4 decimals."""
    parts = []
    for key, value in fields.items():
        if isinstance(value, float):
            value = f"{value:.4f}"
        parts.append(f"{key}={value}")
    return " ".join(parts)


def log_event(level: str, tag: str, message: str, **fields: Any) -> None:
    """Log a message with level+tag, appending key=value fields when provided."""
    if fields:
        message = f"{message} | {format_fields(fields)}"
    _logger_adapter.log(_level_value(level), message, tag=tag)


def log_once(level: str, tag: str, key: Hashable, message: str, **fields: Any) -> bool:
    """Like ``log_event`` but only the first time ``(tag, key)`` is seen.

    Returns True when the message was emitted. The remembered keys are
    bounded; once full they are forgotten and messages may repeat.
    """
    once_key = (tag, key)
    if once_key in _once_keys:
        return False
    if len(_once_keys) >= _ONCE_LIMIT:
        _once_keys.clear()
    _once_keys.add(once_key)
    log_event(level, tag, message, **fields)
    return True


def reset_log_once() -> None:
    _once_keys.clear()


def set_log_level(level: str | None) -> None:
    """Set global log level (DEBUG/INFO/WARNING/ERROR)."""
    _logger.setLevel(_level_value(level))


def get_log_level() -> str:
    """Return current global log level name."""
    return logging.getLevelName(_logger.level)
