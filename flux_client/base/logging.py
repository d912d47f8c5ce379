"""Base structured logging utilities for the client layer.

Rationale:
- Central place to configure consistent JSON (or plain) logging.
- Avoid sprinkling ad-hoc logger setup across the transport, retry and
  streaming modules.

All loggers returned by :func:`get_logger` are children of the shared
``flux`` logger, which owns the only console handler. Its level comes from
``FLUX_LOG_LEVEL`` (default ``WARNING`` so a library import stays quiet).
``normalized_log_event`` guarantees the ``phase``, ``attempt`` and
``error_code`` keys so retry and stream events aggregate the same way.
"""
from __future__ import annotations

import json
import logging
import os
import sys
from typing import Any, Dict, Optional

from .log_support import JsonFormatter, LogContext

BASE_LOGGER_NAME = "flux"

_BASE_LOGGER_ATTR = "_flux_logger_initialized"
_CONSOLE_HANDLER_ATTR = "_flux_console_handler"
_ENV_LEVEL_ATTR = "_flux_env_level"
_UNSET = object()
_PLAIN_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"


def _parse_level(value: str | None, default: int = logging.WARNING) -> int:
    """Map a level name such as ``debug`` or ``WARN`` to its numeric value."""
    if not value:
        return default
    level = logging.getLevelName(value.strip().upper())
    return level if isinstance(level, int) else default


def _make_formatter(json_mode: bool) -> logging.Formatter:
    return JsonFormatter() if json_mode else logging.Formatter(_PLAIN_FORMAT)


def _ensure_base_logger(json_mode: bool) -> logging.Logger:
    """Initialize and return the shared ``flux`` logger.

    ``FLUX_LOG_LEVEL`` is applied on first use and again whenever its value
    changes; a level set through :func:`configure_logger` persists otherwise.
    """
    logger = logging.getLogger(BASE_LOGGER_NAME)
    raw_level = os.getenv("FLUX_LOG_LEVEL")
    if getattr(logger, _ENV_LEVEL_ATTR, _UNSET) != raw_level:
        logger.setLevel(_parse_level(raw_level))
        setattr(logger, _ENV_LEVEL_ATTR, raw_level)
    if getattr(logger, _BASE_LOGGER_ATTR, False):
        return logger

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(_make_formatter(json_mode))
    setattr(handler, _CONSOLE_HANDLER_ATTR, True)
    logger.handlers[:] = [h for h in logger.handlers if not getattr(h, _CONSOLE_HANDLER_ATTR, False)]
    logger.addHandler(handler)
    setattr(logger, _BASE_LOGGER_ATTR, True)
    return logger


def get_logger(name: str = BASE_LOGGER_NAME, json_mode: bool = True) -> logging.Logger:
    """Return ``name`` as a propagating child of the configured base logger."""
    base_logger = _ensure_base_logger(json_mode=json_mode)
    if name == BASE_LOGGER_NAME:
        return base_logger
    if not name.startswith(BASE_LOGGER_NAME + "."):
        name = f"{BASE_LOGGER_NAME}.{name}"
    logger = logging.getLogger(name)
    logger.propagate = True
    return logger


def configure_logger(
    *,
    level: int | str | None = None,
    json_mode: bool = True,
) -> logging.Logger:
    """Set the level and output format of the shared ``flux`` logger.

    ``level`` may be a number or a name; ``None`` keeps the current level.
    Only the console handler installed by this module is reformatted.
    """
    logger = _ensure_base_logger(json_mode=json_mode)
    if isinstance(level, str):
        level = _parse_level(level, default=logger.level)
    if level is not None:
        logger.setLevel(level)
    for handler in logger.handlers:
        if getattr(handler, _CONSOLE_HANDLER_ATTR, False):
            handler.setFormatter(_make_formatter(json_mode))
    return logger


def log_event(
    logger: logging.Logger,
    event: str,
    ctx: LogContext | None = None,
    *,
    level: int = logging.INFO,
    keep_none: bool = False,
    **fields: Any,
) -> None:
    """Emit a structured log event as a single JSON line.

    Keys whose value is ``None`` are dropped unless ``keep_none`` is set.
    The payload is only serialized when ``level`` is enabled on ``logger``.
    """
    if not logger.isEnabledFor(level):
        return
    payload: Dict[str, Any] = {"event": event}
    if ctx:
        payload |= ctx.to_dict()
    if keep_none:
        payload.update(fields)
    else:
        payload.update({k: v for k, v in fields.items() if v is not None})
    logger.log(level, json.dumps(payload, ensure_ascii=False, default=str))


REQUIRED_NORMALIZED_KEYS = ("phase", "attempt", "error_code")


def normalized_log_event(
    logger: logging.Logger,
    event: str,
    ctx: LogContext | None = None,
    *,
    phase: str,
    attempt: Optional[int] = None,
    error_code: Optional[str] = None,
    level: int = logging.INFO,
    **extra_fields: Any,
) -> None:
    """Emit a structured event that always carries the normalized keys.

    ``phase`` names the lifecycle step (``dispatch``, ``sleep``, ``give_up``,
    ``stream``); ``attempt`` and ``error_code`` are present even when ``None``.
    Extra fields never overwrite the normalized values.
    """
    base_fields: Dict[str, Any] = {
        "phase": phase,
        "attempt": attempt,
        "error_code": error_code,
    }
    for k, v in extra_fields.items():
        if v is None or k in base_fields:
            continue
        base_fields[k] = v
    log_event(logger, event, ctx, level=level, keep_none=True, **base_fields)


__all__ = [
    "LogContext",
    "get_logger",
    "configure_logger",
    "log_event",
    "normalized_log_event",
    "REQUIRED_NORMALIZED_KEYS",
    "BASE_LOGGER_NAME",
]
