"""Shared HTTP client pool for the transport layer.

Purpose:
    Provide a centralized pool of reusable ``httpx.AsyncClient`` instances to
    avoid per-call allocations and reduce connection overhead. Timeouts derive
    exclusively from :func:`get_timeout_config`.

External dependencies:
    - ``httpx`` for the underlying asynchronous HTTP client.

Lifecycle & cleanup:
    - Clients are cached by a composite key of ``base_url`` and ``purpose``
      string. Purposes allow distinct pools (e.g., "request" vs "stream").
    - ``httpx.AsyncClient`` can only be closed from a running event loop, so
      there is no ``atexit`` hook; applications and tests call
      :func:`aclose_all_clients` during shutdown.
"""

from __future__ import annotations

import threading
from typing import Dict, Optional, Tuple

import httpx

from ..timeouts import get_timeout_config

# Internal cache keyed by (base_url, purpose)
_CLIENTS: Dict[Tuple[Optional[str], str], httpx.AsyncClient] = {}
_LOCK = threading.RLock()


def get_httpx_client(base_url: Optional[str], purpose: str) -> httpx.AsyncClient:
    """Return a pooled ``httpx.AsyncClient`` for the given base URL and purpose.

    The first request for a key creates a client configured with timeouts from
    :func:`get_timeout_config`. Subsequent requests reuse the same instance
    unless it has been closed.

    Parameters:
        base_url: Optional API base URL to associate with the client so
            relative request paths can be used. ``None`` groups clients under
            a shared key.
        purpose: A short string discriminating separate pools (e.g.,
            "request", "stream"). Keep stable to maximize reuse.
    """
    key = (base_url, purpose)
    client = _CLIENTS.get(key)
    if client is not None and not client.is_closed:
        return client

    with _LOCK:
        client = _CLIENTS.get(key)
        if client is not None and not client.is_closed:
            return client
        timeout = get_timeout_config().to_httpx()
        client = (
            httpx.AsyncClient(base_url=base_url, timeout=timeout)
            if base_url
            else httpx.AsyncClient(timeout=timeout)
        )
        _CLIENTS[key] = client
        return client


async def aclose_all_clients() -> None:
    """Close and clear all pooled HTTP clients."""
    with _LOCK:
        clients = list(_CLIENTS.values())
        _CLIENTS.clear()
    for c in clients:
        await c.aclose()


__all__ = ["get_httpx_client", "aclose_all_clients"]
