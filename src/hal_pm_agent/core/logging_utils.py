from __future__ import annotations

import json
import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, Optional

from .config import LogConfig

_MAX_VALUE_CHARS = 500
_FORMATTER = logging.Formatter("%(asctime)s %(levelname)s %(name)s %(message)s")


def sanitize_log_value(value: Any) -> Any:
    """Make a value JSON-safe and bounded for a single log line."""
    if value is None or isinstance(value, (bool, int, float)):
        return value
    if isinstance(value, Path):
        value = str(value)
    if isinstance(value, str):
        if len(value) > _MAX_VALUE_CHARS:
            return value[:_MAX_VALUE_CHARS] + "..."
        return value
    if isinstance(value, (list, tuple)):
        return [sanitize_log_value(item) for item in value]
    if isinstance(value, dict):
        return {str(key): sanitize_log_value(item) for key, item in value.items()}
    return sanitize_log_value(repr(value))


def log_event(
    logger: logging.Logger,
    level: int,
    event: str,
    *,
    exc: Optional[BaseException] = None,
    **fields: Any,
) -> None:
    if not logger.isEnabledFor(level):
        return
    payload: dict[str, Any] = {"event": event}
    for key, value in fields.items():
        payload[key] = sanitize_log_value(value)
    if exc is not None:
        payload["error"] = sanitize_log_value(str(exc))
        payload["error_type"] = type(exc).__name__
    try:
        message = json.dumps(payload, ensure_ascii=False)
    except (TypeError, ValueError):
        message = repr(payload)
    safe_log(logger, level, message)


def safe_log(
    logger: logging.Logger,
    level: int,
    message: str,
    *args: Any,
    exc: Optional[BaseException] = None,
) -> None:
    try:
        if exc is not None:
            logger.log(level, message + ": %s", *args, exc)
        else:
            logger.log(level, message, *args)
    except Exception:
        # Logging must never break a workflow.
        pass


def setup_rotating_logger(name: str, log_config: LogConfig) -> logging.Logger:
    logger = logging.getLogger(name)
    logger.setLevel(log_config.level_number)
    if log_config.path is None:
        return logger
    target = log_config.path.resolve()
    for handler in logger.handlers:
        if (
            isinstance(handler, RotatingFileHandler)
            and Path(handler.baseFilename) == target
        ):
            return logger
    target.parent.mkdir(parents=True, exist_ok=True)
    handler = RotatingFileHandler(
        target,
        maxBytes=log_config.max_bytes,
        backupCount=log_config.backup_count,
        encoding="utf-8",
    )
    handler.setFormatter(_FORMATTER)
    logger.addHandler(handler)
    return logger


__all__ = ["log_event", "safe_log", "sanitize_log_value", "setup_rotating_logger"]
