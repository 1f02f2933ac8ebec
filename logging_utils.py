"""Tagged console logging for vibetrack.

Every message carries a level and a component tag (Analysis, Decoder,
Haptic, ...) so output from the worker threads stays readable on one console.
"""
from __future__ import annotations

import logging
from typing import Any

LOGGER_NAME = "vibetrack"
DEFAULT_TAG = "Analysis"

# Short names accepted in log_event() and config files
_LEVEL_ALIASES = {"WARN": "WARNING", "FATAL": "CRITICAL"}

_logger = logging.getLogger(LOGGER_NAME)
if not _logger.handlers:
    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter("[%(levelname)s][%(tag)s] %(message)s"))
    _logger.addHandler(handler)
    _logger.setLevel(logging.INFO)


class _TagAdapter(logging.LoggerAdapter):
    def process(self, msg: Any, kwargs: dict[str, Any]):
        kwargs.setdefault("extra", {})["tag"] = kwargs.pop("tag", None) or DEFAULT_TAG
        return msg, kwargs


_logger_adapter = _TagAdapter(_logger, {})


def _level_value(level: str | None) -> int:
    name = (level or "INFO").upper()
    name = _LEVEL_ALIASES.get(name, name)
    value = getattr(logging, name, None)
    return value if isinstance(value, int) else logging.INFO


def _format_fields(fields: dict[str, Any]) -> str:
    return " ".join(f"{key}={value}" for key, value in fields.items())


def log_event(level: str, tag: str, message: str, **fields: Any) -> None:
    """Log `message` under `tag`; keyword fields are appended as key=value pairs."""
    if fields:
        message = f"{message} | {_format_fields(fields)}"
    _logger_adapter.log(_level_value(level), message, tag=tag)


def set_log_level(level: str | None) -> None:
    """Set the vibetrack log level (DEBUG/INFO/WARN/WARNING/ERROR). Unknown names mean INFO."""
    _logger.setLevel(_level_value(level))


def get_log_level() -> str:
    return logging.getLevelName(_logger.level)
