"""Parse and normalize catalog service responses."""
import logging
from typing import Dict, Any, List, Optional

from stefa_books.exceptions import CatalogResponseError
from stefa_books.models import Book, CatalogPage

logger = logging.getLogger(__name__)


def parse_book(item: Dict[str, Any]) -> Optional[Book]:
    """
    Parse a single book record from the catalog.

    Args:
        item: Single element of the ``data`` array

    Returns:
        Book object or None if the record is unusable
    """
    if not isinstance(item, dict):
        logger.warning(f"Skipping non-object catalog record: {item!r}")
        return None

    try:
        return Book.from_dict(item)
    except ValueError as e:
        # Skip the row, keep the rest of the page
        logger.warning(f"Skipping catalog record: {e}")
        return None


def parse_books(items: List[Any]) -> List[Book]:
    """Parse a list of records, dropping unusable ones."""
    books = []

    for item in items:
        book = parse_book(item)
        if book:
            books.append(book)

    return books


def parse_catalog_response(response_json: Any) -> CatalogPage:
    """
    Parse a full catalog endpoint response.

    Expected shape::

        {"success": true, "data": [...], "pagination": {"total": 120, "hasMore": false}}

    Args:
        response_json: Decoded response body

    Returns:
        CatalogPage with the parsed books and pagination hints

    Raises:
        CatalogResponseError: If the body reports failure or has no data list
    """
    if not isinstance(response_json, dict):
        raise CatalogResponseError("Catalog response is not a JSON object")

    if not response_json.get("success"):
        raise CatalogResponseError(response_json.get("error") or "Catalog sync failed")

    items = response_json.get("data")
    if not isinstance(items, list):
        raise CatalogResponseError("Catalog response has no data list")

    pagination = response_json.get("pagination") or {}
    total = pagination.get("total")

    return CatalogPage(
        books=parse_books(items),
        has_more=bool(pagination.get("hasMore", False)),
        total=total if isinstance(total, int) else None,
        received=len(items),
    )


def parse_fingerprint_response(response_json: Any) -> str:
    """
    Extract the catalog hash from the fingerprint endpoint body.

    Raises:
        CatalogResponseError: If no string ``hash`` is present
    """
    if isinstance(response_json, dict):
        server_hash = response_json.get("hash")
        if isinstance(server_hash, str):
            return server_hash

    raise CatalogResponseError("Fingerprint response has no hash")
