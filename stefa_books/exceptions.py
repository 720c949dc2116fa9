"""Errors raised when talking to the catalog service."""
from typing import Optional


class CatalogError(RuntimeError):
    """Base class for catalog failures."""
    pass


class CatalogTransportError(CatalogError):
    """Request never produced a response (timeout, DNS, connection reset)."""
    pass


class CatalogHTTPError(CatalogError):
    """Catalog answered with a non-success HTTP status."""

    def __init__(self, status_code: int, message: Optional[str] = None):
        self.status_code = status_code
        super().__init__(message or f"HTTP error! status: {status_code}")


class CatalogResponseError(CatalogError):
    """Catalog answered 2xx but the body reports failure or is malformed."""
    pass
