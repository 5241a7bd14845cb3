"""Shared HTTP client manager and the outbound fetcher used by widgets.

Widgets never create their own ``httpx.AsyncClient``; they go through
``ExternalFetcher``, which enforces one overall timeout per request and folds
timeouts, transport errors and non-2xx statuses into a single ``FetchError``
so every caller has exactly one fallback path.
"""

import asyncio
import logging
import time
from typing import Any, Optional

import httpx

from inkscreen.core.exceptions import InkscreenError

logger = logging.getLogger(__name__)

# Global state for shared HTTP clients
_shared_clients: dict[str, httpx.AsyncClient] = {}
_client_health: dict[str, dict[str, float]] = {}
_client_lock = asyncio.Lock()

_DEFAULT_LIMITS = httpx.Limits(
    max_connections=16,  # grid widgets fan out image fetches
    max_keepalive_connections=8,
)

_DEFAULT_TIMEOUT = httpx.Timeout(
    connect=5.0,
    read=10.0,
    write=10.0,
    pool=10.0,
)

DEFAULT_FETCH_TIMEOUT_SECONDS = 10.0

DEFAULT_HEADERS: dict[str, str] = {
    "User-Agent": "inkscreen/0.1 (+e-ink renderer)",
    "Accept": "*/*",
}

# Health check thresholds
HEALTH_ERROR_THRESHOLD = 3  # Recreate client after 3 consecutive errors
HEALTH_TIMEOUT_SECONDS = 300


class FetchError(InkscreenError):
    """An outbound request failed (timeout, transport error or non-2xx)."""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        headers: Optional[dict[str, str]] = None,
    ):
        super().__init__(message)
        self.status_code = status_code
        self.headers = headers or {}


def _get_headers_with_correlation_id(extra: Optional[dict[str, str]] = None) -> dict[str, str]:
    """Merge per-request headers with the current correlation ID."""
    from inkscreen.api.middleware import get_request_id

    headers = dict(extra or {})
    request_id = get_request_id()
    if request_id and request_id != "no-request-id":
        headers.setdefault("X-Request-ID", request_id)
    return headers


async def get_shared_client(
    client_id: str = "default",
    limits: Optional[httpx.Limits] = None,
    timeout: Optional[httpx.Timeout] = None,
) -> httpx.AsyncClient:
    """Get or create a shared HTTP client with connection pooling.

    Args:
        client_id: Identifier for the client (allows multiple clients if needed)
        limits: Custom connection limits
        timeout: Custom timeout configuration

    Returns:
        Shared httpx.AsyncClient

    Raises:
        RuntimeError: If client creation fails
    """
    async with _client_lock:
        await _recreate_client_if_unhealthy(client_id)

        if client_id not in _shared_clients or _shared_clients[client_id].is_closed:
            effective_limits = limits or _DEFAULT_LIMITS
            try:
                _shared_clients[client_id] = httpx.AsyncClient(
                    limits=effective_limits,
                    timeout=timeout or _DEFAULT_TIMEOUT,
                    follow_redirects=True,
                    headers=DEFAULT_HEADERS,
                )
            except Exception as e:
                logger.exception("Failed to create shared HTTP client '%s'", client_id)
                raise RuntimeError(f"Failed to create shared HTTP client: {e}") from e

            _client_health[client_id] = {
                "error_count": 0,
                "last_error_time": 0,
                "created_time": time.time(),
            }
            logger.debug(
                "Created shared HTTP client '%s' (max_connections=%s)",
                client_id,
                effective_limits.max_connections,
            )

        return _shared_clients[client_id]


async def close_all_clients() -> None:
    """Close all shared HTTP clients and clean up resources."""
    async with _client_lock:
        for client_id, client in _shared_clients.items():
            try:
                if not client.is_closed:
                    await client.aclose()
                    logger.debug("Closed shared HTTP client '%s'", client_id)
            except Exception as e:
                logger.warning("Error closing shared HTTP client '%s': %s", client_id, e)

        _shared_clients.clear()
        _client_health.clear()


async def record_client_error(client_id: str = "default") -> None:
    """Record an error for health tracking.

    Args:
        client_id: Identifier of the client that encountered an error
    """
    async with _client_lock:
        health = _client_health.setdefault(
            client_id, {"error_count": 0, "last_error_time": 0, "created_time": time.time()}
        )
        health["error_count"] += 1
        health["last_error_time"] = time.time()


async def record_client_success(client_id: str = "default") -> None:
    """Record a successful operation for health tracking.

    Args:
        client_id: Identifier of the client that had a successful operation
    """
    async with _client_lock:
        if client_id in _client_health:
            _client_health[client_id]["error_count"] = 0


async def _recreate_client_if_unhealthy(client_id: str) -> None:
    if client_id not in _client_health:
        return

    health = _client_health[client_id]
    should_recreate = (
        health["error_count"] >= HEALTH_ERROR_THRESHOLD
        and (time.time() - health["last_error_time"]) < HEALTH_TIMEOUT_SECONDS
    )

    if should_recreate and client_id in _shared_clients:
        logger.warning(
            "Recreating unhealthy client '%s' due to %d consecutive errors",
            client_id,
            health["error_count"],
        )
        old_client = _shared_clients.pop(client_id)
        del _client_health[client_id]
        try:
            if not old_client.is_closed:
                await old_client.aclose()
        except Exception as e:
            logger.warning("Error closing unhealthy client '%s': %s", client_id, e)


class ExternalFetcher:
    """Outbound fetcher with an enforced overall timeout.

    Either pass a ready client (tests use ``httpx.MockTransport``) or let the
    fetcher borrow the shared client on first use.
    """

    def __init__(
        self,
        client: Optional[httpx.AsyncClient] = None,
        timeout: float = DEFAULT_FETCH_TIMEOUT_SECONDS,
        client_id: str = "widgets",
    ):
        self._client = client
        self.timeout = timeout
        self.client_id = client_id

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is not None and not self._client.is_closed:
            return self._client
        return await get_shared_client(self.client_id)

    async def get(
        self,
        url: str,
        params: Optional[dict[str, Any]] = None,
        headers: Optional[dict[str, str]] = None,
    ) -> httpx.Response:
        """Issue a GET and return the response if its status is 2xx.

        Raises:
            FetchError: On timeout, transport error or non-2xx status
        """
        client = await self._get_client()
        try:
            response = await asyncio.wait_for(
                client.get(
                    url,
                    params=params,
                    headers=_get_headers_with_correlation_id(headers),
                    timeout=self.timeout,
                ),
                timeout=self.timeout,
            )
        except asyncio.TimeoutError as e:
            await record_client_error(self.client_id)
            raise FetchError(f"Timed out after {self.timeout}s fetching {url}") from e
        except httpx.HTTPError as e:
            await record_client_error(self.client_id)
            raise FetchError(f"Request to {url} failed: {e}") from e

        if not response.is_success:
            raise FetchError(
                f"{url} returned HTTP {response.status_code}",
                status_code=response.status_code,
                headers=dict(response.headers),
            )

        await record_client_success(self.client_id)
        return response

    async def get_json(
        self,
        url: str,
        params: Optional[dict[str, Any]] = None,
        headers: Optional[dict[str, str]] = None,
    ) -> Any:
        """GET a JSON document.

        Raises:
            FetchError: On any request failure or an undecodable body
        """
        response = await self.get(url, params=params, headers=headers)
        try:
            return response.json()
        except ValueError as e:
            raise FetchError(f"Invalid JSON from {url}: {e}") from e

    async def get_bytes(self, url: str, headers: Optional[dict[str, str]] = None) -> bytes:
        """GET a binary body (images).

        Raises:
            FetchError: On any request failure
        """
        response = await self.get(url, headers=headers)
        return response.content
