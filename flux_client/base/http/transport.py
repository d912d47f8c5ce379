"""httpx-backed dispatch primitives.

Purpose:
    Implement the two narrow interfaces the resilience layer consumes:

    - ``dispatch``: send one request and return an :class:`HttpResponse`
      (status, headers, body bytes) or raise a classified :class:`ApiError`.
    - ``connect_stream``: send one request and return a :class:`StreamHandle`
      once the status line and headers of a 2xx response have arrived; the
      body is left unread as a live byte source.

Error mapping:
    - ``httpx`` transport failures (connect, read, timeouts) become
      ``ErrorCode.TRANSPORT``.
    - Non-2xx responses become the code of their status; the body is parsed as
      ``{"error": {"type": ..., "message": ...}}`` when possible, otherwise
      the raw text is used as the message.
    - ``Retry-After`` is copied onto the error as ``retry_after`` seconds and
      the full parsed rate-limit headers as ``rate_limit``.
"""
from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Awaitable, Callable, Dict, Mapping, Optional, Union

import httpx

from ..errors import ApiError, ErrorCode, classify_status, to_api_error
from .client import get_httpx_client
from .rate_limit_headers import RateLimitInfo, parse_rate_limit_headers


@dataclass(frozen=True)
class HttpResponse:
    """A fully received non-streaming response."""

    status: int
    headers: Mapping[str, str]
    body: bytes
    rate_limit: RateLimitInfo = field(default_factory=RateLimitInfo)

    def json(self) -> Any:
        """Decode the body as JSON; malformed bodies raise ``ErrorCode.DECODE``."""
        try:
            return json.loads(self.body)
        except ValueError as e:
            raise ApiError(
                code=ErrorCode.DECODE,
                message=f"Failed to decode response body: {e}",
                status=self.status,
                raw=e,
            ) from e

    def text(self) -> str:
        return self.body.decode("utf-8", errors="replace")


@dataclass
class StreamHandle:
    """An established streaming response whose body has not been read yet."""

    status: int
    headers: Mapping[str, str]
    chunks: AsyncIterator[bytes]
    close: Callable[[], Awaitable[None]]
    rate_limit: RateLimitInfo = field(default_factory=RateLimitInfo)


def error_from_response(status: int, headers: Mapping[str, str], body: bytes) -> ApiError:
    """Build the classified :class:`ApiError` for a non-2xx response."""
    code = classify_status(status) or ErrorCode.UNKNOWN
    text = body.decode("utf-8", errors="replace")
    message = text or f"HTTP {status}"
    error_type: Optional[str] = None
    try:
        payload = json.loads(text) if text else None
    except ValueError:
        payload = None
    if isinstance(payload, dict) and isinstance(payload.get("error"), dict):
        err = payload["error"]
        message = str(err.get("message") or message)
        error_type = err.get("type")
    info = parse_rate_limit_headers(headers)
    return ApiError(
        code=code,
        message=message,
        status=status,
        error_type=error_type,
        retry_after=info.retry_after,
        rate_limit=info,
    )


class HttpTransport:
    """Send requests through a pooled (or injected) ``httpx.AsyncClient``."""

    def __init__(
        self,
        base_url: Optional[str] = None,
        *,
        client: Optional[httpx.AsyncClient] = None,
        stream_client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self._base_url = base_url
        self._client = client
        self._stream_client = stream_client or client

    def _request_client(self) -> httpx.AsyncClient:
        return self._client or get_httpx_client(self._base_url, purpose="request")

    def _streaming_client(self) -> httpx.AsyncClient:
        return self._stream_client or get_httpx_client(self._base_url, purpose="stream")

    async def dispatch(
        self,
        method: str,
        url: str,
        *,
        headers: Optional[Dict[str, str]] = None,
        json_body: Any = None,
        timeout: Optional[float] = None,
    ) -> HttpResponse:
        """Send one request and return the fully read response."""
        client = self._request_client()
        kwargs: Dict[str, Any] = {"headers": headers}
        if json_body is not None:
            kwargs["json"] = json_body
        if timeout is not None:
            kwargs["timeout"] = timeout
        try:
            resp = await client.request(method, url, **kwargs)
        except httpx.HTTPError as e:
            raise to_api_error(e, context=f"{method} {url}") from e
        headers_out = dict(resp.headers)
        if not resp.is_success:
            raise error_from_response(resp.status_code, headers_out, resp.content)
        return HttpResponse(
            status=resp.status_code,
            headers=headers_out,
            body=resp.content,
            rate_limit=parse_rate_limit_headers(headers_out),
        )

    async def connect_stream(
        self,
        method: str,
        url: str,
        *,
        headers: Optional[Dict[str, str]] = None,
        json_body: Any = None,
        timeout: Optional[Union[float, httpx.Timeout]] = None,
    ) -> StreamHandle:
        """Send one request and return once the response headers arrived."""
        client = self._streaming_client()
        kwargs: Dict[str, Any] = {"headers": headers}
        if json_body is not None:
            kwargs["json"] = json_body
        if timeout is not None:
            kwargs["timeout"] = timeout
        try:
            request = client.build_request(method, url, **kwargs)
            resp = await client.send(request, stream=True)
        except httpx.HTTPError as e:
            raise to_api_error(e, context=f"{method} {url}") from e
        headers_out = dict(resp.headers)
        if not resp.is_success:
            try:
                body = await resp.aread()
            except httpx.HTTPError:
                body = b""
            finally:
                await resp.aclose()
            raise error_from_response(resp.status_code, headers_out, body)
        return StreamHandle(
            status=resp.status_code,
            headers=headers_out,
            chunks=resp.aiter_bytes(),
            close=resp.aclose,
            rate_limit=parse_rate_limit_headers(headers_out),
        )


__all__ = ["HttpResponse", "StreamHandle", "HttpTransport", "error_from_response"]
