"""Async client façade.

Purpose:
    Wire settings, the pooled httpx transport, per-endpoint rate limiters and
    the retry executor into two entry points:

    - :meth:`AsyncClient.request` for calls whose response is read in full;
    - :meth:`AsyncClient.stream` for calls whose body is a live event feed.

    Request and response schemas are left to the caller; bodies are plain
    JSON-serializable mappings.

Headers:
    ``Authorization: Bearer <key>``, ``anthropic-version``, ``User-Agent``,
    ``Content-Type: application/json`` and, when beta features are enabled,
    a comma-joined ``anthropic-beta`` header. Per-request headers win.
"""
from __future__ import annotations

import threading
from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional, Tuple

import httpx

from .base.cancellation import CancellationToken
from .base.errors import ApiError, ErrorCode
from .base.http import HttpResponse, HttpTransport, aclose_all_clients
from .base.log_support import LogContext
from .base.resilience import (
    BackoffPolicy,
    CallResult,
    RateLimitConfig,
    RateLimiterRegistry,
    RetryExecutor,
)
from .base.streaming import MessageStream, StreamedMessage
from .config import ClientSettings, load_settings
from .base.timeouts import get_timeout_config
from .config.defaults import (
    API_VERSION,
    BETA_CONTEXT_1M,
    BETA_FILES_API,
    BETA_PDF_SUPPORT,
    BETA_PROMPT_CACHING,
    DEFAULT_RATE_LIMIT_BURST,
)


@dataclass
class RequestOptions:
    """Per-request knobs.

    Attributes:
        headers: Extra headers; override the defaults of the same name.
        timeout: Overrides the settings timeout for this request (seconds).
        no_retry: Make exactly one attempt (rate limiting still applies).
        beta_features: Beta header values added to the settings' defaults.
        admin: Authenticate with the admin key instead of the API key.
        enable_files_api, enable_pdf_support, enable_prompt_caching,
        enable_1m_context: Switch on the matching beta feature header.
    """

    headers: Dict[str, str] = field(default_factory=dict)
    timeout: Optional[float] = None
    no_retry: bool = False
    beta_features: Tuple[str, ...] = ()
    admin: bool = False
    enable_files_api: bool = False
    enable_pdf_support: bool = False
    enable_prompt_caching: bool = False
    enable_1m_context: bool = False

    def feature_betas(self) -> Tuple[str, ...]:
        """Beta header values for the enabled feature flags, in a fixed order."""
        flags = (
            (self.enable_files_api, BETA_FILES_API),
            (self.enable_pdf_support, BETA_PDF_SUPPORT),
            (self.enable_prompt_caching, BETA_PROMPT_CACHING),
            (self.enable_1m_context, BETA_CONTEXT_1M),
        )
        return tuple(value for enabled, value in flags if enabled)


class AsyncClient:
    """Resilient async client for the remote message API."""

    def __init__(
        self,
        settings: Optional[ClientSettings] = None,
        *,
        policy: Optional[BackoffPolicy] = None,
        limiters: Optional[RateLimiterRegistry] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        transport: Optional[HttpTransport] = None,
        sleep=None,
    ) -> None:
        self._settings = (settings or load_settings()).validate()
        self._policy = policy or BackoffPolicy(max_attempts=self._settings.max_attempts)
        if limiters is not None:
            self._limiters: Optional[RateLimiterRegistry] = limiters
        elif self._settings.enable_rate_limiting:
            self._limiters = RateLimiterRegistry(
                RateLimitConfig(
                    capacity=float(DEFAULT_RATE_LIMIT_BURST),
                    refill_rate=self._settings.rate_limit_rps,
                )
            )
        else:
            self._limiters = None
        self._transport = transport or HttpTransport(client=http_client)
        self._owns_pool = transport is None and http_client is None
        self._sleep = sleep
        self._executors: Dict[Tuple[str, bool], RetryExecutor] = {}
        self._lock = threading.Lock()

    @classmethod
    def from_env(cls, **overrides: Any) -> "AsyncClient":
        """Build a client from ``ANTHROPIC_*`` environment variables."""
        return cls(load_settings(overrides or None))

    @property
    def settings(self) -> ClientSettings:
        return self._settings

    @property
    def limiters(self) -> Optional[RateLimiterRegistry]:
        return self._limiters

    # ---- request building ---------------------------------------------------

    def build_url(self, path: str) -> str:
        if not path.startswith("/"):
            path = "/" + path
        return f"{self._settings.base_url.rstrip('/')}/v1{path}"

    def build_headers(self, options: Optional[RequestOptions] = None) -> Dict[str, str]:
        options = options or RequestOptions()
        if options.admin:
            if not self._settings.admin_key:
                raise ApiError(ErrorCode.AUTH, "Admin key is required for admin operations")
            key = self._settings.admin_key
        else:
            key = self._settings.api_key
        headers = {
            "Authorization": f"Bearer {key}",
            "anthropic-version": API_VERSION,
            "User-Agent": self._settings.user_agent,
            "Content-Type": "application/json",
        }
        betas = list(
            dict.fromkeys(self._settings.beta_features + options.feature_betas() + tuple(options.beta_features))
        )
        if betas:
            headers["anthropic-beta"] = ",".join(betas)
        headers.update(options.headers)
        return headers

    def executor(self, endpoint: str = "default", *, no_retry: bool = False) -> RetryExecutor:
        """Return the (cached) executor for ``endpoint``."""
        key = (endpoint, no_retry)
        with self._lock:
            executor = self._executors.get(key)
            if executor is None:
                kwargs: Dict[str, Any] = {}
                if self._sleep is not None:
                    kwargs["sleep"] = self._sleep
                executor = RetryExecutor(
                    BackoffPolicy.no_retry() if no_retry else self._policy,
                    limiter=self._limiters.get(endpoint) if self._limiters else None,
                    **kwargs,
                )
                self._executors[key] = executor
            return executor

    # ---- calls ----------------------------------------------------------------

    async def request(
        self,
        method: str,
        path: str,
        json: Any = None,
        *,
        endpoint: str = "default",
        options: Optional[RequestOptions] = None,
        token: Optional[CancellationToken] = None,
    ) -> CallResult[HttpResponse]:
        """Send one logical request and return the response with its attempts.

        Raises:
            ApiError: the classified final failure with ``attempts`` attached.
            CancelledError: when ``token`` fires.
        """
        options = options or RequestOptions()
        url = self.build_url(path)
        headers = self.build_headers(options)
        timeout = options.timeout or self._settings.timeout
        ctx = LogContext(endpoint=endpoint, method=method.upper(), path=path)

        async def dispatch() -> HttpResponse:
            return await self._transport.dispatch(
                method.upper(), url, headers=headers, json_body=json, timeout=timeout
            )

        return await self.executor(endpoint, no_retry=options.no_retry).execute(
            dispatch, token=token, ctx=ctx
        )

    async def request_json(self, method: str, path: str, json: Any = None, **kwargs: Any) -> Any:
        """Like :meth:`request` but return the decoded JSON body."""
        result = await self.request(method, path, json, **kwargs)
        return result.response.json()

    async def stream(
        self,
        method: str,
        path: str,
        json: Any = None,
        *,
        endpoint: str = "default",
        options: Optional[RequestOptions] = None,
        token: Optional[CancellationToken] = None,
        idle_timeout: Optional[float] = None,
    ) -> MessageStream:
        """Open a streaming call; retries cover establishment only."""
        options = options or RequestOptions()
        url = self.build_url(path)
        headers = self.build_headers(options)
        headers.setdefault("Accept", "text/event-stream")
        timeouts = get_timeout_config()
        if idle_timeout is None:
            idle_timeout = timeouts.stream_idle_timeout_seconds
        # the httpx read timeout spans the gap between chunks, not the whole body
        timeout = timeouts.for_stream(options.timeout or self._settings.timeout, idle_timeout)
        ctx = LogContext(endpoint=endpoint, method=method.upper(), path=path)

        async def connect():
            return await self._transport.connect_stream(
                method.upper(), url, headers=headers, json_body=json, timeout=timeout
            )

        result = await self.executor(endpoint, no_retry=options.no_retry).open_stream(
            connect, token=token, ctx=ctx
        )
        return MessageStream(
            result.response,
            token=token,
            idle_timeout=idle_timeout,
            ctx=ctx,
            attempts=result.attempts,
        )

    async def create_message(self, body: Mapping[str, Any], **kwargs: Any) -> Any:
        """POST ``/messages`` and return the decoded response body."""
        payload = {"model": self._settings.default_model, **body}
        payload.pop("stream", None)
        return await self.request_json("POST", "/messages", payload, endpoint="messages", **kwargs)

    async def stream_message(self, body: Mapping[str, Any], **kwargs: Any) -> MessageStream:
        """POST ``/messages`` with ``stream: true`` and return the event stream."""
        payload = {"model": self._settings.default_model, **body, "stream": True}
        return await self.stream("POST", "/messages", payload, endpoint="messages", **kwargs)

    async def collect_message(self, body: Mapping[str, Any], **kwargs: Any) -> StreamedMessage:
        """Stream a message and return it fully accumulated."""
        stream = await self.stream_message(body, **kwargs)
        async with stream:
            return await stream.collect_message()

    # ---- lifecycle ------------------------------------------------------------

    async def aclose(self) -> None:
        if self._owns_pool:
            await aclose_all_clients()

    async def __aenter__(self) -> "AsyncClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()


__all__ = ["AsyncClient", "RequestOptions"]
