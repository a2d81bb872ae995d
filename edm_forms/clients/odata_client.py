"""
HTTP client for OData services.

Provides a reusable async client shared by the metadata cache and the
CRUD client.
"""

import logging
from typing import Any

import httpx

from edm_forms.exceptions import TransportError

logger = logging.getLogger(__name__)


class ODataHttpClient:
    """
    Async HTTP client for OData endpoints.

    Features:
    - Lazily created, reusable connection pool
    - Network failures surfaced as TransportError
    - Pluggable transport for tests and custom routing
    """

    def __init__(
        self,
        timeout: float = 30.0,
        user_agent: str = "EDM-Forms/1.0",
        headers: dict[str, str] | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.timeout = timeout
        self.user_agent = user_agent
        self.extra_headers = headers or {}
        self.transport = transport
        self._client: httpx.AsyncClient | None = None

    @property
    def headers(self) -> dict[str, str]:
        """Get default headers for API requests."""
        headers = {
            "Accept": "application/json",
            "OData-MaxVersion": "4.0",
            "User-Agent": self.user_agent,
        }
        headers.update(self.extra_headers)
        return headers

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                headers=self.headers,
                timeout=self.timeout,
                transport=self.transport,
            )
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client and not self._client.is_closed:
            await self._client.aclose()
            self._client = None

    async def get_metadata(self, endpoint: str) -> bytes:
        """
        Download the metadata document of a service.

        Args:
            endpoint: Service root URL

        Returns:
            Raw EDMX document

        Raises:
            TransportError: On network failure or a non-success status
        """
        url = f"{endpoint.rstrip('/')}/$metadata"
        logger.info("Fetching metadata from %s", url)
        response = await self.send(
            "GET", url, headers={"Accept": "application/xml"}
        )
        if not response.is_success:
            raise TransportError(
                f"HTTP error! status: {response.status_code}",
                status_code=response.status_code,
            )
        return response.content

    async def send(
        self,
        method: str,
        url: str,
        json: Any = None,
        params: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
    ) -> httpx.Response:
        """
        Send a request and return the response regardless of its status.

        Raises:
            TransportError: If no response could be obtained
        """
        client = await self._get_client()
        try:
            return await client.request(
                method, url, json=json, params=params, headers=headers
            )
        except httpx.HTTPError as e:
            logger.warning("%s %s failed: %s", method, url, e)
            raise TransportError(str(e) or type(e).__name__) from e

    async def __aenter__(self) -> "ODataHttpClient":
        """Async context manager entry."""
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        """Async context manager exit."""
        await self.close()
