"""flux_client.config.env
======================

Environment variable mapping and parsing helpers for client settings.

Purpose
-------
- Provide a single source of truth for the environment variable names the
  client honours (``ANTHROPIC_API_KEY``, ``ANTHROPIC_BASE_URL``, ...).
- Parse raw strings into typed values without raising: malformed values are
  skipped so the next configuration layer (defaults) applies.

Failure Modes
-------------
- Helpers never raise on unset or malformed variables; validation of the
  merged result happens in :func:`flux_client.config.load_settings`.
"""

from __future__ import annotations

import os
from typing import Any, Callable, Dict, Optional

ENV_PREFIX = "ANTHROPIC_"

# setting field -> (env suffix, parser)
_TRUE = {"1", "true", "yes", "on"}
_FALSE = {"0", "false", "no", "off"}


def _parse_bool(raw: str) -> Optional[bool]:
    v = raw.strip().lower()
    if v in _TRUE:
        return True
    if v in _FALSE:
        return False
    return None


def _parse_float(raw: str) -> Optional[float]:
    try:
        return float(raw)
    except ValueError:
        return None


def _parse_int(raw: str) -> Optional[int]:
    try:
        return int(raw)
    except ValueError:
        return None


def _parse_str(raw: str) -> Optional[str]:
    return raw.strip() or None


ENV_FIELD_MAP: Dict[str, tuple[str, Callable[[str], Any]]] = {
    "api_key": ("API_KEY", _parse_str),  # pragma: allowlist secret - env suffix name, not a secret
    "admin_key": ("ADMIN_KEY", _parse_str),  # pragma: allowlist secret
    "base_url": ("BASE_URL", _parse_str),
    "timeout": ("TIMEOUT", _parse_float),
    "max_retries": ("MAX_RETRIES", _parse_int),
    "default_model": ("DEFAULT_MODEL", _parse_str),
    "enable_rate_limiting": ("ENABLE_RATE_LIMITING", _parse_bool),
    "rate_limit_rps": ("RATE_LIMIT_RPS", _parse_float),
}


def is_placeholder(val: Optional[str]) -> bool:
    """Return True if the provided string looks like a placeholder/test value.

    Heuristics: contains 'placeholder', 'changeme', 'your-api-key', or starts
    with 'test_'. The check is case-insensitive and resilient to surrounding
    spaces.
    """
    if val is None:
        return False
    v = str(val).strip().lower()
    return (
        "placeholder" in v
        or "changeme" in v
        or "your-api-key" in v
        or v.startswith("test_")
    )


def env_overrides(prefix: str = ENV_PREFIX) -> Dict[str, Any]:
    """Return settings fields found in the environment, parsed to their types."""
    out: Dict[str, Any] = {}
    for field, (suffix, parse) in ENV_FIELD_MAP.items():
        raw = os.getenv(f"{prefix}{suffix}")
        if raw is None:
            continue
        value = parse(raw)
        if value is not None:
            out[field] = value
    return out


__all__ = ["ENV_PREFIX", "ENV_FIELD_MAP", "is_placeholder", "env_overrides"]
