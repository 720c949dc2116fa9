"""Async HTTP client for the catalog service."""
import httpx
from typing import Optional, Dict, Any
import logging

from stefa_books.exceptions import (
    CatalogHTTPError,
    CatalogResponseError,
    CatalogTransportError,
)
from stefa_books.models import CatalogPage
from stefa_books.parse import parse_catalog_response, parse_fingerprint_response

logger = logging.getLogger(__name__)


class AsyncCatalogClient:
    """Async client for the catalog and fingerprint endpoints.

    No retries: a failed request surfaces to the caller straight away.
    """

    def __init__(
        self,
        base_url: str,
        catalog_path: str = "/catalog",
        fingerprint_path: str = "/catalog/fingerprint",
        timeout: float = 10,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        """
        Initialize async client.

        Args:
            base_url: Catalog service root, e.g. ``https://stefa-books.com.ua``
            catalog_path: Path of the full catalog endpoint
            fingerprint_path: Path of the catalog hash endpoint
            timeout: Request timeout in seconds
            transport: Optional httpx transport (tests use MockTransport)
        """
        self.catalog_path = catalog_path
        self.fingerprint_path = fingerprint_path
        self.timeout = timeout

        self.client = httpx.AsyncClient(
            base_url=base_url,
            timeout=timeout,
            transport=transport,
            headers={"Accept": "application/json"}
        )

    async def fetch_catalog_page(self, limit: int, offset: int = 0) -> CatalogPage:
        """
        Fetch one page of the catalog.

        Args:
            limit: Page size requested from the server
            offset: Number of records to skip

        Returns:
            Parsed CatalogPage

        Raises:
            CatalogError: On transport, HTTP or body-level failure
        """
        params: Dict[str, Any] = {"limit": limit}
        if offset:
            params["offset"] = offset

        body = await self._get_json(self.catalog_path, params)
        return parse_catalog_response(body)

    async def fetch_fingerprint(self) -> str:
        """Fetch the server-side catalog hash."""
        body = await self._get_json(self.fingerprint_path)
        return parse_fingerprint_response(body)

    async def _get_json(self, path: str, params: Optional[Dict[str, Any]] = None) -> Any:
        try:
            logger.debug(f"GET {path} params={params}")
            response = await self.client.get(path, params=params)
        except httpx.HTTPError as e:
            raise CatalogTransportError(f"Request to {path} failed: {e}") from e

        if not response.is_success:
            logger.warning(f"Status {response.status_code} for {path}")
            raise CatalogHTTPError(response.status_code)

        try:
            return response.json()
        except ValueError as e:
            raise CatalogResponseError(f"Invalid JSON from {path}") from e

    async def close(self):
        """Close the HTTP client."""
        await self.client.aclose()

    async def __aenter__(self):
        """Async context manager entry."""
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Async context manager exit."""
        await self.close()
