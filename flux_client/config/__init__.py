"""Unified configuration layer for the client.

Goals
-----
* Centralize defaults (base URL, timeouts, retry and rate-limit policy).
* Merge sources in a predictable order:
    1. Built-in defaults (``flux_client.config.defaults``)
    2. Optional ``.env`` file (path from ``DOTENV_FILE``, default ``.env``)
    3. Environment variables (``ANTHROPIC_API_KEY``, ``ANTHROPIC_TIMEOUT``, ...)
    4. In-code overrides passed to :func:`load_settings`
* Provide a single call site: ``load_settings(overrides=None)``.

Environment Variable Conventions
--------------------------------
``ANTHROPIC_<FIELD>``: API_KEY, ADMIN_KEY, BASE_URL, TIMEOUT, MAX_RETRIES,
DEFAULT_MODEL, ENABLE_RATE_LIMITING, RATE_LIMIT_RPS.

Public API
----------
* ClientSettings
* load_settings(overrides: dict | None = None) -> ClientSettings
"""
from __future__ import annotations

import os
from dataclasses import dataclass, field, fields, replace
from typing import Any, Dict, Mapping, Optional, Tuple

from ..base.errors import ApiError, ErrorCode
from .defaults import (
    DEFAULT_BASE_URL,
    DEFAULT_HTTP_TIMEOUT,
    DEFAULT_MAX_ATTEMPTS,
    DEFAULT_MODEL,
    DEFAULT_RATE_LIMIT_RPS,
    DEFAULT_USER_AGENT,
)
from .env import env_overrides, is_placeholder

_DOTENV_LOADED = False


@dataclass(frozen=True)
class ClientSettings:
    """Resolved client configuration.

    ``max_retries`` counts retries after the first attempt, matching the
    ``ANTHROPIC_MAX_RETRIES`` convention; ``max_attempts`` exposes the total.
    """

    api_key: str = ""
    admin_key: Optional[str] = None
    base_url: str = DEFAULT_BASE_URL
    timeout: float = DEFAULT_HTTP_TIMEOUT
    max_retries: int = DEFAULT_MAX_ATTEMPTS - 1
    user_agent: str = DEFAULT_USER_AGENT
    default_model: str = DEFAULT_MODEL
    enable_rate_limiting: bool = True
    rate_limit_rps: float = DEFAULT_RATE_LIMIT_RPS
    beta_features: Tuple[str, ...] = field(default_factory=tuple)

    @property
    def max_attempts(self) -> int:
        return self.max_retries + 1

    def validate(self) -> "ClientSettings":
        """Raise ``ApiError(CLIENT_ERROR)`` when the settings cannot work."""
        if not self.api_key or not self.api_key.strip():
            raise ApiError(ErrorCode.CLIENT_ERROR, "API key cannot be empty")
        if not self.base_url.startswith(("http://", "https://")):
            raise ApiError(ErrorCode.CLIENT_ERROR, f"Invalid base URL: {self.base_url!r}")
        if self.timeout <= 0:
            raise ApiError(ErrorCode.CLIENT_ERROR, "Timeout must be positive")
        if self.max_retries < 0:
            raise ApiError(ErrorCode.CLIENT_ERROR, "max_retries cannot be negative")
        if self.enable_rate_limiting and self.rate_limit_rps <= 0:
            raise ApiError(ErrorCode.CLIENT_ERROR, "Rate limit must be positive")
        return self

    def with_overrides(self, **overrides: Any) -> "ClientSettings":
        return replace(self, **{k: v for k, v in overrides.items() if v is not None})


def _load_dotenv_once() -> None:
    """Lightweight .env loader (no external dependency).

    Parses KEY=VALUE lines, ignoring comments and blank lines. Existing
    environment variables win unless they hold a placeholder value.
    """
    global _DOTENV_LOADED
    if _DOTENV_LOADED:
        return
    path = os.getenv("DOTENV_FILE", ".env")
    if not os.path.isfile(path):
        _DOTENV_LOADED = True
        return
    try:
        with open(path, "r", encoding="utf-8") as fh:
            for line in fh:
                line = line.strip()
                if not line or line.startswith("#") or "=" not in line:
                    continue
                k, v = line.split("=", 1)
                k = k.strip()
                v = v.strip().strip('"').strip("'")
                if k and (k not in os.environ or is_placeholder(os.environ.get(k))):
                    os.environ[k] = v
    finally:
        _DOTENV_LOADED = True


def load_settings(overrides: Optional[Mapping[str, Any]] = None, *, validate: bool = True) -> ClientSettings:
    """Return merged client settings.

    Merge order (later wins): defaults -> .env -> env vars -> overrides.
    Unknown override keys raise ``TypeError`` so typos surface immediately.
    """
    _load_dotenv_once()
    known = {f.name for f in fields(ClientSettings)}
    merged: Dict[str, Any] = {}
    merged |= env_overrides()
    if overrides:
        unknown = set(overrides) - known
        if unknown:
            raise TypeError(f"Unknown settings: {', '.join(sorted(unknown))}")
        merged |= {k: v for k, v in overrides.items() if v is not None}
    if "beta_features" in merged:
        merged["beta_features"] = tuple(merged["beta_features"])
    settings = ClientSettings(**merged)
    return settings.validate() if validate else settings


def reset_dotenv_for_testing() -> None:
    global _DOTENV_LOADED
    _DOTENV_LOADED = False


__all__ = [
    "ClientSettings",
    "load_settings",
    "reset_dotenv_for_testing",
]
