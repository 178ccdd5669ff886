"""Shared async HTTP client.

Thin wrapper around httpx.AsyncClient that builds JSON headers, prefixes a
base URL and reuses a single connection pool. Transport errors propagate as
httpx exceptions and error statuses are left to the caller.

Usage:
    from core.http_client import APIClient

    client = APIClient(base_url="https://project.example.co/rest/v1", extra_headers={"apikey": key})
    response = await client.send("POST", "/reflections", json=rows, headers={"Authorization": f"Bearer {token}"})
    await client.close()
"""

import logging
from dataclasses import dataclass, field
from typing import Any

import httpx

logger = logging.getLogger(__name__)


@dataclass
class APIClient:
    """Reusable JSON API client.

    Attributes:
        base_url: Prefix for every request path
        timeout: Request timeout in seconds
        follow_redirects: Passed through to httpx
        verify_ssl: Passed through to httpx
        extra_headers: Added to every request
    """

    base_url: str = ""
    timeout: float = 30.0
    follow_redirects: bool = True
    verify_ssl: bool = True
    extra_headers: dict[str, str] = field(default_factory=dict)
    _client: httpx.AsyncClient | None = field(default=None, repr=False)

    def _build_url(self, path: str) -> str:
        base = self.base_url.rstrip("/")
        if not path.startswith("/"):
            path = "/" + path
        return f"{base}{path}"

    def _build_headers(self) -> dict[str, str]:
        headers = {
            "Accept": "application/json",
            "Content-Type": "application/json",
        }
        headers.update(self.extra_headers)
        return headers

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            logger.debug(f"Opening HTTP connection pool for {self.base_url}")
            self._client = httpx.AsyncClient(
                timeout=self.timeout,
                follow_redirects=self.follow_redirects,
                verify=self.verify_ssl,
            )
        return self._client

    async def close(self) -> None:
        """Close the underlying connection pool."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def send(
        self,
        method: str,
        path: str,
        json: Any = None,
        params: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
    ) -> httpx.Response:
        """Send a request and return the raw response.

        Args:
            method: HTTP method
            path: Path relative to base_url
            json: JSON body
            params: Query parameters
            headers: Headers merged over the defaults

        Raises:
            httpx.RequestError: On timeouts and connection failures
        """
        request_headers = self._build_headers()
        if headers:
            request_headers.update(headers)

        client = await self._get_client()
        return await client.request(
            method,
            self._build_url(path),
            headers=request_headers,
            params=params,
            json=json,
        )
