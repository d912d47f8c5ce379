"""flux_client.config.defaults
==========================

Central place for small, stable default values used across the client. These
defaults can be overridden via environment variables or explicit overrides,
but provide sensible fallbacks for local development and tests.

This module intentionally avoids importing from other client packages to
prevent circular dependencies. Only plain constants live here.
"""

from __future__ import annotations

# ---- Remote API ----
DEFAULT_BASE_URL = "https://api.anthropic.com"
API_VERSION = "2023-06-01"
DEFAULT_MODEL = "claude-3-5-haiku-20241022"
DEFAULT_USER_AGENT = "flux-client/0.1.0"

# Beta feature header values accepted by the remote service.
BETA_FILES_API = "files-api-2025-04-14"
BETA_PDF_SUPPORT = "pdfs-2024-09-25"
BETA_PROMPT_CACHING = "prompt-caching-2024-07-31"
BETA_CONTEXT_1M = "context-1m-2025-08-07"

# ---- Timeouts (seconds) ----
DEFAULT_HTTP_TIMEOUT = 60.0
DEFAULT_CONNECT_TIMEOUT = 10.0
# Idle timeout while waiting for the next chunk of a live stream.
DEFAULT_STREAM_IDLE_TIMEOUT = 120.0

# ---- Retry / backoff ----
# Total physical attempts per logical call (first try included).
DEFAULT_MAX_ATTEMPTS = 4
DEFAULT_BACKOFF_BASE = 1.0
DEFAULT_BACKOFF_MULTIPLIER = 2.0
DEFAULT_BACKOFF_MAX = 60.0
DEFAULT_BACKOFF_JITTER = 0.1
# Upper bound on the total time one logical call may spend retrying.
DEFAULT_BACKOFF_MAX_ELAPSED = 300.0

# ---- Rate limiting ----
DEFAULT_RATE_LIMIT_RPS = 50.0
DEFAULT_RATE_LIMIT_BURST = 10
DEFAULT_RATE_LIMIT_MAX_WAIT = 30.0
# Usage ratio above which a warning is logged from observed headers.
DEFAULT_ADAPTATION_FACTOR = 0.8
# Cap applied to delays derived from x-ratelimit-reset.
MAX_RESET_DELAY = 60.0


__all__ = [
    "DEFAULT_BASE_URL",
    "API_VERSION",
    "DEFAULT_MODEL",
    "DEFAULT_USER_AGENT",
    "BETA_FILES_API",
    "BETA_PDF_SUPPORT",
    "BETA_PROMPT_CACHING",
    "BETA_CONTEXT_1M",
    "DEFAULT_HTTP_TIMEOUT",
    "DEFAULT_CONNECT_TIMEOUT",
    "DEFAULT_STREAM_IDLE_TIMEOUT",
    "DEFAULT_MAX_ATTEMPTS",
    "DEFAULT_BACKOFF_BASE",
    "DEFAULT_BACKOFF_MULTIPLIER",
    "DEFAULT_BACKOFF_MAX",
    "DEFAULT_BACKOFF_JITTER",
    "DEFAULT_BACKOFF_MAX_ELAPSED",
    "DEFAULT_RATE_LIMIT_RPS",
    "DEFAULT_RATE_LIMIT_BURST",
    "DEFAULT_RATE_LIMIT_MAX_WAIT",
    "DEFAULT_ADAPTATION_FACTOR",
    "MAX_RESET_DELAY",
]
