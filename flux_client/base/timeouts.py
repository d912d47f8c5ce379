"""Unified timeout configuration for the client.

This module centralizes the timeout values used by the HTTP transport and
the streaming layer so no call site carries ad-hoc numeric literals.

Key Components
--------------
TimeoutConfig
    Dataclass capturing normalized timeout values in seconds.

get_timeout_config()
    Returns a process-cached configuration, parsing environment overrides on
    first use and re-parsing only when the relevant variables change.
    Supported environment variables (all optional):
        FLUX_TIMEOUT_CONNECT_SECONDS
        FLUX_TIMEOUT_HTTP_SECONDS
        FLUX_TIMEOUT_STREAM_IDLE_SECONDS

Design Constraints
------------------
1. No hard-coded ad-hoc timeouts outside this module and ``config.defaults``.
2. Avoid per-call env parsing (cache keyed on the raw env values).
3. Non-positive or malformed values fall back to the defaults.
"""
from __future__ import annotations

import os
from dataclasses import dataclass

import httpx

from ..config.defaults import (
    DEFAULT_CONNECT_TIMEOUT,
    DEFAULT_HTTP_TIMEOUT,
    DEFAULT_STREAM_IDLE_TIMEOUT,
)

_ENV_NAMES = (
    "FLUX_TIMEOUT_CONNECT_SECONDS",
    "FLUX_TIMEOUT_HTTP_SECONDS",
    "FLUX_TIMEOUT_STREAM_IDLE_SECONDS",
)


@dataclass(frozen=True)
class TimeoutConfig:
    """Container for normalized timeout values (seconds).

    Attributes:
        connect_timeout_seconds: Timeout for establishing a TCP/TLS connection.
        http_timeout_seconds: Read timeout for non-streaming requests and for
            receiving the initial response headers of a stream.
        stream_idle_timeout_seconds: Maximum gap between two chunks of a live
            stream before it is treated as a transport failure.
    """

    connect_timeout_seconds: float = DEFAULT_CONNECT_TIMEOUT
    http_timeout_seconds: float = DEFAULT_HTTP_TIMEOUT
    stream_idle_timeout_seconds: float = DEFAULT_STREAM_IDLE_TIMEOUT

    def to_httpx(self) -> httpx.Timeout:
        """Return the ``httpx.Timeout`` used by pooled clients."""
        return httpx.Timeout(self.http_timeout_seconds, connect=self.connect_timeout_seconds)

    def for_stream(self, timeout: float | None = None, idle_timeout: float | None = None) -> httpx.Timeout:
        """Return the ``httpx.Timeout`` for a streaming request.

        ``read`` is the stream idle timeout so a slow but live stream is not
        cut off by the request timeout.
        """
        return httpx.Timeout(
            timeout or self.http_timeout_seconds,
            connect=self.connect_timeout_seconds,
            read=idle_timeout if idle_timeout is not None else self.stream_idle_timeout_seconds,
        )


_CACHED: TimeoutConfig | None = None
_ENV_GUARD: str | None = None


def _parse_env_float(name: str, default: float) -> float:
    """Parse a positive float from ``name``; return ``default`` otherwise."""
    raw = os.getenv(name)
    if not raw:
        return default
    try:
        val = float(raw)
    except ValueError:
        return default
    return val if val > 0 else default


def get_timeout_config() -> TimeoutConfig:
    """Return the process-cached :class:`TimeoutConfig`."""
    global _CACHED, _ENV_GUARD  # noqa: PLW0603 - documented module cache
    guard = "/".join(os.getenv(name, "") for name in _ENV_NAMES)
    if _CACHED is not None and _ENV_GUARD == guard:
        return _CACHED
    _CACHED = TimeoutConfig(
        connect_timeout_seconds=_parse_env_float(_ENV_NAMES[0], DEFAULT_CONNECT_TIMEOUT),
        http_timeout_seconds=_parse_env_float(_ENV_NAMES[1], DEFAULT_HTTP_TIMEOUT),
        stream_idle_timeout_seconds=_parse_env_float(_ENV_NAMES[2], DEFAULT_STREAM_IDLE_TIMEOUT),
    )
    _ENV_GUARD = guard
    return _CACHED


__all__ = ["TimeoutConfig", "get_timeout_config"]
