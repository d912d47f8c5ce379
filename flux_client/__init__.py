"""flux_client package

Resilient async client for a generative-AI message API.

Purpose:
    Turn each logical API call into rate-limited, backoff-governed network
    attempts and decode streaming responses into typed events while the
    connection is still open.

Public API (re-exported):
    - Version: ``__version__``
    - Client: :class:`AsyncClient`, :class:`RequestOptions`
    - Settings: :class:`ClientSettings`, :func:`load_settings`
    - Errors: :class:`ApiError`, :class:`ErrorCode`
    - Cancellation: :class:`CancellationToken`, :class:`CancelledError`
    - Resilience: :class:`RateLimiter`, :class:`BackoffPolicy`,
      :class:`RetryExecutor`
    - Streaming: :class:`EventStreamDecoder`, :class:`MessageStream`
"""

__version__ = "0.1.0"

from .base.errors import ApiError, ErrorCode
from .base.cancellation import CancellationToken, CancelledError
from .base.resilience import (
    BackoffPolicy,
    CallResult,
    RateLimitConfig,
    RateLimiter,
    RateLimiterRegistry,
    RetryExecutor,
)
from .base.streaming import EventStreamDecoder, MessageStream, StreamedMessage
from .config import ClientSettings, load_settings
from .client import AsyncClient, RequestOptions

__all__ = [
    "__version__",
    "AsyncClient",
    "RequestOptions",
    "ClientSettings",
    "load_settings",
    "ApiError",
    "ErrorCode",
    "CancellationToken",
    "CancelledError",
    "BackoffPolicy",
    "CallResult",
    "RateLimitConfig",
    "RateLimiter",
    "RateLimiterRegistry",
    "RetryExecutor",
    "EventStreamDecoder",
    "MessageStream",
    "StreamedMessage",
]
