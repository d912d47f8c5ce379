"""HTTP utilities package.

Exposes pooled httpx clients, the transport primitives consumed by the retry
executor and rate-limit header parsing.
"""

from .client import get_httpx_client, aclose_all_clients
from .rate_limit_headers import RateLimitInfo, parse_rate_limit_headers, parse_retry_after
from .transport import HttpResponse, HttpTransport, StreamHandle, error_from_response

__all__ = [
    "get_httpx_client",
    "aclose_all_clients",
    "RateLimitInfo",
    "parse_rate_limit_headers",
    "parse_retry_after",
    "HttpResponse",
    "HttpTransport",
    "StreamHandle",
    "error_from_response",
]
