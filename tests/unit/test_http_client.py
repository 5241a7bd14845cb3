"""Unit tests for inkscreen.core.http_client module."""

import asyncio

import httpx
import pytest

from inkscreen.api.middleware import request_id_var
from inkscreen.core.http_client import (
    ExternalFetcher,
    FetchError,
    close_all_clients,
    get_shared_client,
    record_client_error,
    record_client_success,
)

pytestmark = pytest.mark.unit


class TestSharedHTTPClient:
    """Test shared HTTP client management."""

    async def test_get_shared_client_reuses_existing_client(self):
        """Test that get_shared_client reuses existing clients."""
        client1 = await get_shared_client("test_client")
        client2 = await get_shared_client("test_client")

        assert client1 is client2
        assert client1.headers["User-Agent"].startswith("inkscreen/")

    async def test_get_shared_client_different_ids(self):
        """Test that different client IDs create separate clients."""
        client1 = await get_shared_client("test_client_1")
        client2 = await get_shared_client("test_client_2")

        assert client1 is not client2

    async def test_close_all_clients_closes_all(self):
        """Test that close_all_clients properly closes all clients."""
        client = await get_shared_client("test_client")

        await close_all_clients()

        assert client.is_closed
        assert await get_shared_client("test_client") is not client

    async def test_unhealthy_client_is_recreated(self):
        """Test three consecutive errors replace the client on next use."""
        client = await get_shared_client("flaky")
        for _ in range(3):
            await record_client_error("flaky")

        replacement = await get_shared_client("flaky")

        assert replacement is not client
        assert client.is_closed

    async def test_success_resets_error_count(self):
        """Test a success clears the consecutive error count."""
        client = await get_shared_client("flaky")
        for _ in range(2):
            await record_client_error("flaky")
        await record_client_success("flaky")
        await record_client_error("flaky")

        assert await get_shared_client("flaky") is client


class TestExternalFetcher:
    """Tests for ExternalFetcher."""

    async def test_get_json_success(self, make_fetcher):
        """Test JSON bodies are decoded and params are sent."""
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json={"ok": True}, request=request)

        fetcher = make_fetcher(handler)

        assert await fetcher.get_json("https://api.example/x", params={"a": 1}) == {"ok": True}
        assert seen[0].url.params["a"] == "1"

    async def test_non_2xx_raises_with_status_and_headers(self, make_fetcher):
        """Test error statuses carry status code and headers."""
        fetcher = make_fetcher(
            lambda request: httpx.Response(403, headers={"x-ratelimit-remaining": "0"}, request=request)
        )

        with pytest.raises(FetchError) as exc_info:
            await fetcher.get("https://api.example/x")

        assert exc_info.value.status_code == 403
        assert exc_info.value.headers["x-ratelimit-remaining"] == "0"

    async def test_invalid_json_raises(self, make_fetcher):
        """Test an undecodable body is a FetchError."""
        fetcher = make_fetcher(lambda request: httpx.Response(200, content=b"<html>", request=request))

        with pytest.raises(FetchError, match="Invalid JSON"):
            await fetcher.get_json("https://api.example/x")

    async def test_transport_error_raises(self, make_fetcher):
        """Test connection failures become FetchError."""

        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused", request=request)

        fetcher = make_fetcher(handler)

        with pytest.raises(FetchError, match="failed"):
            await fetcher.get_bytes("https://api.example/x")

    async def test_timeout_raises(self, make_fetcher):
        """Test the overall timeout is enforced."""

        async def handler(request: httpx.Request) -> httpx.Response:
            await asyncio.sleep(1)
            return httpx.Response(200, request=request)

        fetcher = make_fetcher(handler, timeout=0.05)

        with pytest.raises(FetchError, match="Timed out"):
            await fetcher.get("https://api.example/slow")

    async def test_forwards_request_id(self, make_fetcher):
        """Test the current correlation ID is sent upstream."""
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, content=b"x", request=request)

        fetcher = make_fetcher(handler)
        token = request_id_var.set("req-123")
        try:
            await fetcher.get_bytes("https://api.example/x")
        finally:
            request_id_var.reset(token)

        assert seen[0].headers["X-Request-ID"] == "req-123"

    async def test_no_request_id_outside_requests(self, make_fetcher):
        """Test no correlation header is invented outside a request."""
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, content=b"x", request=request)

        await make_fetcher(handler).get_bytes("https://api.example/x")

        assert "X-Request-ID" not in seen[0].headers
