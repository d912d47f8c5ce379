"""Unit tests for shared httpx client pool.

Covers:
- Same key (base_url, purpose) returns the same instance.
- Different purpose yields different instances.
- Closed clients are replaced on the next lookup.
"""
from __future__ import annotations

import pytest

from flux_client.base.http import aclose_all_clients, get_httpx_client


@pytest.mark.asyncio
async def test_same_key_returns_same_instance():
    c1 = get_httpx_client("https://api.example.com", purpose="request")
    c2 = get_httpx_client("https://api.example.com", purpose="request")
    try:
        assert c1 is c2, "Expected pooled client instances to be identical for same key"  # nosec B101
    finally:
        await aclose_all_clients()


@pytest.mark.asyncio
async def test_different_purpose_returns_different_instances():
    c1 = get_httpx_client("https://api.example.com", purpose="request")
    c2 = get_httpx_client("https://api.example.com", purpose="stream")
    try:
        assert c1 is not c2, "Different purposes should not share the same client instance"  # nosec B101
    finally:
        await aclose_all_clients()


@pytest.mark.asyncio
async def test_closed_clients_are_replaced():
    c1 = get_httpx_client(None, purpose="request")
    await aclose_all_clients()
    assert c1.is_closed  # nosec B101
    c2 = get_httpx_client(None, purpose="request")
    try:
        assert c2 is not c1 and not c2.is_closed  # nosec B101
    finally:
        await aclose_all_clients()
