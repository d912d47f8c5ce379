"""
Client Base Package

Exports the resilience and streaming core consumed by the client façade:

- Errors: normalized ``ApiError`` / ``ErrorCode`` taxonomy and classification
- Cancellation: cooperative ``CancellationToken`` with deadlines
- HTTP: pooled httpx transport producing responses or live streams
- Resilience: token-bucket rate limiting, backoff policy, retry executor
- Streaming: incremental SSE decoder, typed events, message accumulation

Import order matters: ``errors`` is loaded first because ``config`` depends on
it and the resilience modules pull in ``config.defaults``.
"""

from .errors import ApiError, ErrorCode, RetryClass, classify_exception, classify_status
from .cancellation import CancellationToken, CancelledError
from .logging import LogContext, configure_logger, get_logger
from .timeouts import TimeoutConfig, get_timeout_config
from .http import HttpResponse, HttpTransport, RateLimitInfo, StreamHandle
from .resilience import (
    Attempt,
    BackoffPolicy,
    CallResult,
    GiveUp,
    RateLimitConfig,
    RateLimiter,
    RateLimiterRegistry,
    Retry,
    RetryExecutor,
)
from .streaming import EventStreamDecoder, MessageStream, StreamEvent, StreamedMessage

__all__ = [
    "ApiError",
    "ErrorCode",
    "RetryClass",
    "classify_exception",
    "classify_status",
    "CancellationToken",
    "CancelledError",
    "LogContext",
    "configure_logger",
    "get_logger",
    "TimeoutConfig",
    "get_timeout_config",
    "HttpResponse",
    "HttpTransport",
    "RateLimitInfo",
    "StreamHandle",
    "Attempt",
    "BackoffPolicy",
    "CallResult",
    "GiveUp",
    "RateLimitConfig",
    "RateLimiter",
    "RateLimiterRegistry",
    "Retry",
    "RetryExecutor",
    "EventStreamDecoder",
    "MessageStream",
    "StreamEvent",
    "StreamedMessage",
]
