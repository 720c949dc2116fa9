"""Blocking HTTP client for the catalog service with resilience patterns."""
import time
import random
import requests
from typing import Optional, Dict, Any
import logging

from stefa_books.exceptions import (
    CatalogError,
    CatalogHTTPError,
    CatalogResponseError,
    CatalogTransportError,
)
from stefa_books.models import CatalogPage
from stefa_books.parse import parse_catalog_response, parse_fingerprint_response

logger = logging.getLogger(__name__)


class CatalogClient:
    """Catalog client with timeouts, retries, and backoff."""

    def __init__(
        self,
        base_url: str,
        catalog_path: str = "/catalog",
        fingerprint_path: str = "/catalog/fingerprint",
        timeout: int = 10,
        max_retries: int = 3,
        base_backoff: float = 1.0
    ):
        """
        Initialize catalog client.

        Args:
            base_url: Catalog service root
            catalog_path: Path of the full catalog endpoint
            fingerprint_path: Path of the catalog hash endpoint
            timeout: Request timeout in seconds
            max_retries: Maximum number of attempts per request
            base_backoff: Base delay for exponential backoff
        """
        self.base_url = base_url.rstrip("/")
        self.catalog_path = catalog_path
        self.fingerprint_path = fingerprint_path
        self.timeout = timeout
        self.max_retries = max(1, max_retries)
        self.base_backoff = base_backoff

        # Create session for connection pooling
        self.session = requests.Session()
        self.session.headers.update({"Accept": "application/json"})

    def fetch_catalog_page(self, limit: int, offset: int = 0) -> CatalogPage:
        """
        Fetch one page of the catalog.

        Args:
            limit: Page size requested from the server
            offset: Number of records to skip

        Returns:
            Parsed CatalogPage

        Raises:
            CatalogError: When all retries failed or the body reports failure
        """
        params: Dict[str, Any] = {"limit": limit}
        if offset:
            params["offset"] = offset

        body = self._make_request_with_retry(self._url(self.catalog_path), params)
        return parse_catalog_response(body)

    def fetch_fingerprint(self) -> str:
        """Fetch the server-side catalog hash."""
        body = self._make_request_with_retry(self._url(self.fingerprint_path))
        return parse_fingerprint_response(body)

    def _url(self, path: str) -> str:
        return f"{self.base_url}/{path.lstrip('/')}"

    def _make_request_with_retry(
        self,
        url: str,
        params: Optional[Dict[str, Any]] = None
    ) -> Any:
        """
        Make HTTP request with retry logic.

        Args:
            url: Request URL
            params: Query parameters

        Returns:
            Decoded response JSON

        Raises:
            CatalogHTTPError: On a non-retryable status or after the last retry
            CatalogTransportError: When the last attempt timed out or could not connect
        """
        last_error: Optional[CatalogError] = None

        for attempt in range(self.max_retries):
            try:
                logger.info(f"Request attempt {attempt + 1}/{self.max_retries}: {url}")

                response = self.session.get(
                    url,
                    params=params,
                    timeout=self.timeout
                )

                # Handle different status codes
                if 200 <= response.status_code < 300:
                    logger.info(f"Success: {response.status_code}")
                    try:
                        return response.json()
                    except ValueError as e:
                        raise CatalogResponseError(f"Invalid JSON from {url}") from e

                elif response.status_code == 429:
                    # Rate limited - must retry with backoff
                    logger.warning(f"Rate limited (429) on attempt {attempt + 1}")
                    last_error = CatalogHTTPError(429)

                elif response.status_code >= 500:
                    # Server error - retryable
                    logger.warning(f"Server error ({response.status_code}) on attempt {attempt + 1}")
                    last_error = CatalogHTTPError(response.status_code)

                else:
                    # Client error - don't retry
                    logger.error(f"Client error ({response.status_code}): {response.text}")
                    raise CatalogHTTPError(response.status_code)

            except requests.exceptions.Timeout as e:
                logger.warning(f"Timeout on attempt {attempt + 1}")
                last_error = CatalogTransportError(f"Timeout requesting {url}")
                last_error.__cause__ = e

            except requests.exceptions.ConnectionError as e:
                logger.warning(f"Connection error on attempt {attempt + 1}: {e}")
                last_error = CatalogTransportError(f"Connection error requesting {url}: {e}")
                last_error.__cause__ = e

            except requests.exceptions.RequestException as e:
                raise CatalogTransportError(f"Request to {url} failed: {e}") from e

            if attempt < self.max_retries - 1:
                self._backoff(attempt)

        logger.error(f"All {self.max_retries} attempts failed")
        raise last_error

    def _backoff(self, attempt: int):
        """
        Sleep with exponential backoff and jitter.

        Args:
            attempt: Current attempt number (0-indexed)
        """
        # Exponential backoff: base * 2^attempt
        delay = self.base_backoff * (2 ** attempt)

        # Add jitter: random value between 0 and delay
        jitter = random.uniform(0, delay)
        total_delay = delay + jitter

        logger.info(f"Backing off for {total_delay:.2f} seconds")
        time.sleep(total_delay)

    def close(self):
        """Close the session."""
        self.session.close()

    def __enter__(self):
        """Context manager entry."""
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Context manager exit."""
        self.close()
