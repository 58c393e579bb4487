"""
Async Secure HTTP Client Wrapper

Transport used by the GitLab client for read-only upstream calls.
Built on httpx for concurrent page fetches within one request.

Usage:
    from devtracker.async_http_client import AsyncSecureHTTPClient

    async with AsyncSecureHTTPClient() as client:
        response = await client.get(url, params={"page": 1}, headers=headers)

Security Features:
    - SSL verification always enabled (verify=True)
    - Default 30-second timeout on all requests
    - Redirects are not followed, so the auth header never leaves the configured host
    - One instance per request; connections are closed on exit
"""

import httpx

from devtracker.domain.constants import gitlab_api


class AsyncSecureHTTPClient:
    """
    Async HTTP client with enforced SSL verification and connection pooling.

    Features:
    - Context manager for automatic connection cleanup
    - Connection pooling sized for a handful of concurrent resource fetches
    - HTTP/2 support for multiplexing
    - Enforced SSL verification
    - Request timeouts
    """

    DEFAULT_TIMEOUT = gitlab_api.DEFAULT_TIMEOUT_SECONDS
    DEFAULT_MAX_CONNECTIONS = 10
    DEFAULT_MAX_KEEPALIVE = 5

    def __init__(
        self,
        max_connections: int = DEFAULT_MAX_CONNECTIONS,
        max_keepalive_connections: int = DEFAULT_MAX_KEEPALIVE,
        timeout: float = DEFAULT_TIMEOUT,
        http2: bool = True,
    ):
        """
        Initialize async HTTP client.

        Args:
            max_connections: Maximum number of concurrent connections (default: 10)
            max_keepalive_connections: Max persistent connections (default: 5)
            timeout: Default timeout in seconds (default: 30)
            http2: Enable HTTP/2 support (default: True)
        """
        self.limits = httpx.Limits(max_connections=max_connections, max_keepalive_connections=max_keepalive_connections)
        self.timeout = httpx.Timeout(timeout)
        self.http2 = http2
        self.client: httpx.AsyncClient | None = None

    async def __aenter__(self) -> "AsyncSecureHTTPClient":
        """Context manager entry - create async client"""
        self.client = httpx.AsyncClient(
            limits=self.limits,
            timeout=self.timeout,
            verify=True,  # CRITICAL: Force SSL verification
            http2=self.http2,
            follow_redirects=False,
        )
        return self

    async def __aexit__(self, *args):
        """Context manager exit - close connections"""
        if self.client:
            await self.client.aclose()
            self.client = None

    async def get(self, url: str, **kwargs) -> httpx.Response:
        """
        Async GET request with SSL verification enforced.

        Args:
            url: URL to fetch
            **kwargs: Additional arguments to pass to httpx.AsyncClient.get()

        Returns:
            httpx.Response: HTTP response

        Raises:
            RuntimeError: If used outside the async context manager
            httpx.TransportError: On network failures and timeouts
        """
        if not self.client:
            raise RuntimeError("Client not initialized. Use 'async with AsyncSecureHTTPClient()' context manager")

        kwargs.setdefault("timeout", self.timeout)
        return await self.client.get(url, **kwargs)
