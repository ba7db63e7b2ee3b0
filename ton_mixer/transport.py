"""
Transport protocol for ledger JSON-RPC calls.

Defines the seam where the concrete HTTP implementation plugs in. The
JSON-RPC client depends on this protocol, not on httpx directly, so the
transport can be swapped for a test fake without editing client logic.

Concrete implementations:
    - HttpxTransport (default, pooled httpx.AsyncClient)
    - FakeTransport (tests, returns canned responses)
"""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

if TYPE_CHECKING:
    import httpx

# Connection pool and in-flight request bounds per process.
DEFAULT_POOL_SIZE = 10
DEFAULT_CONCURRENCY_LIMIT = 5


@runtime_checkable
class JsonRpcTransport(Protocol):
    """Async transport for JSON-RPC POST requests."""

    async def post_json(self, url: str, payload: dict[str, Any]) -> dict[str, Any]:
        """Send a JSON-RPC request and return the parsed response.

        Args:
            url: The JSON-RPC endpoint URL.
            payload: The JSON-RPC request body (jsonrpc, id, method, params).

        Returns:
            Parsed JSON response as a dict. Error replies that still carry
            a JSON-RPC body are returned, not raised.

        Raises:
            Exception: On transport-level failures (connection refused,
                timeout, TLS error, non-JSON error page).
        """
        ...


class HttpxTransport:
    """Default transport using a shared httpx.AsyncClient.

    The client is created on first use with a bounded connection pool,
    and a semaphore caps the number of requests in flight.

    Args:
        timeout: Per-request timeout in seconds.
        headers: Extra headers (e.g. an API key) sent with every request.
        pool_size: Maximum pooled connections.
        concurrency_limit: Maximum concurrent requests.
    """

    def __init__(
        self,
        timeout: float = 30.0,
        headers: dict[str, str] | None = None,
        *,
        pool_size: int = DEFAULT_POOL_SIZE,
        concurrency_limit: int = DEFAULT_CONCURRENCY_LIMIT,
    ) -> None:
        self._timeout = timeout
        self._headers = {"Content-Type": "application/json", **(headers or {})}
        self._pool_size = pool_size
        self._semaphore = asyncio.Semaphore(concurrency_limit)
        self._client: httpx.AsyncClient | None = None

    def _get_client(self) -> httpx.AsyncClient:
        import httpx

        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=self._timeout,
                headers=self._headers,
                limits=httpx.Limits(
                    max_connections=self._pool_size,
                    max_keepalive_connections=self._pool_size,
                ),
            )
        return self._client

    async def post_json(self, url: str, payload: dict[str, Any]) -> dict[str, Any]:
        """Send JSON-RPC request via httpx."""
        client = self._get_client()
        async with self._semaphore:
            response = await client.post(url, json=payload)
        if response.is_success:
            result: dict[str, Any] = response.json()
            return result
        # Node errors come back as non-2xx with a JSON-RPC body; keep those
        # for the client to classify. Anything else is a transport failure.
        try:
            body = response.json()
        except ValueError:
            response.raise_for_status()
            raise
        if not isinstance(body, dict) or "ok" not in body:
            response.raise_for_status()
        body.setdefault("code", response.status_code)
        return body

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None
