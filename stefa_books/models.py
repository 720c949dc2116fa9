"""Data models for the book cache."""
from dataclasses import dataclass, field, fields, replace
from typing import Any, Dict, List, Optional

INITIAL_CACHE_VERSION = "1.0.0"


def _text(value: Any) -> Optional[str]:
    return None if value is None else str(value)


@dataclass
class Book:
    """Book record as served by the catalog.

    Only the fields the cache filters on are typed; everything else the
    server sends (cover_url, price_uah, qty_available, ...) travels in
    ``extra`` untouched.
    """
    id: str
    title: str
    author: str
    description: Optional[str] = None
    category: Optional[str] = None
    age_range: Optional[str] = None
    available: bool = False
    extra: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Book":
        """
        Build a Book from a catalog JSON object.

        Args:
            data: Decoded JSON object with at least an ``id``

        Returns:
            Book instance

        Raises:
            ValueError: If ``id`` is missing or empty
        """
        book_id = data.get("id")
        if book_id is None or str(book_id) == "":
            raise ValueError("book record has no id")

        known = {f.name for f in fields(cls)} - {"extra"}
        extra = {k: v for k, v in data.items() if k not in known}

        return cls(
            id=str(book_id),
            title=_text(data.get("title")) or "",
            author=_text(data.get("author")) or "",
            description=_text(data.get("description")),
            category=data.get("category"),
            age_range=data.get("age_range"),
            available=bool(data.get("available", False)),
            extra=extra,
        )

    def to_dict(self) -> Dict[str, Any]:
        """Serialize back to the catalog JSON shape."""
        data = {
            "id": self.id,
            "title": self.title,
            "author": self.author,
            "description": self.description,
            "category": self.category,
            "age_range": self.age_range,
            "available": self.available,
        }
        for key, value in self.extra.items():
            data.setdefault(key, value)
        return data

    def merged(self, updates: Dict[str, Any]) -> "Book":
        """
        Return a copy with only the supplied fields overwritten.

        The id is immutable and an ``id`` key in ``updates`` is ignored.
        """
        known = {f.name for f in fields(self)} - {"extra", "id"}
        changes = {k: v for k, v in updates.items() if k in known}
        extra = dict(self.extra)
        extra.update({k: v for k, v in updates.items() if k not in known and k not in ("id", "extra")})
        return replace(self, extra=extra, **changes)


@dataclass
class BookFilters:
    """Filters for ``get_filtered_books``; unset means no constraint."""
    category_id: Optional[str] = None
    age_category_id: Optional[str] = None
    search: Optional[str] = None
    available_only: bool = False
    limit: Optional[int] = None


@dataclass
class CatalogPage:
    """One page of the catalog endpoint response.

    ``received`` counts raw records, including ones dropped while parsing,
    so it can advance the offset.
    """
    books: List[Book]
    has_more: bool = False
    total: Optional[int] = None
    received: int = 0


@dataclass
class CacheState:
    """State mirrored by the store. ``is_syncing`` is never persisted."""
    books: List[Book] = field(default_factory=list)
    last_sync: Optional[int] = None
    is_syncing: bool = False
    cache_version: str = INITIAL_CACHE_VERSION
    data_hash: Optional[str] = None

    def to_persisted(self) -> Dict[str, Any]:
        return {
            "books": [book.to_dict() for book in self.books],
            "lastSync": self.last_sync,
            "cacheVersion": self.cache_version,
            "dataHash": self.data_hash,
        }

    @classmethod
    def from_persisted(cls, payload: Dict[str, Any]) -> "CacheState":
        """
        Rebuild state from a persisted payload.

        Raises:
            ValueError: If the payload does not have the persisted layout
        """
        if not isinstance(payload, dict):
            raise ValueError("persisted cache state must be an object")

        raw_books = payload.get("books")
        if raw_books is None:
            raw_books = []
        if not isinstance(raw_books, list):
            raise ValueError("persisted books must be a list")

        last_sync = payload.get("lastSync")
        if last_sync is not None and not isinstance(last_sync, int):
            raise ValueError(f"invalid lastSync: {last_sync!r}")

        version = payload.get("cacheVersion") or INITIAL_CACHE_VERSION
        parse_version(version)

        data_hash = payload.get("dataHash")
        if data_hash is not None and not isinstance(data_hash, str):
            raise ValueError(f"invalid dataHash: {data_hash!r}")

        return cls(
            books=[Book.from_dict(item) for item in raw_books],
            last_sync=last_sync,
            is_syncing=False,
            cache_version=version,
            data_hash=data_hash,
        )


def parse_version(version: str) -> List[int]:
    """Split a ``major.minor.patch`` string into integers."""
    parts = str(version).split(".")
    if len(parts) != 3:
        raise ValueError(f"invalid cache version: {version!r}")
    try:
        return [int(p) for p in parts]
    except ValueError:
        raise ValueError(f"invalid cache version: {version!r}") from None


def bump_version(version: str) -> str:
    """Increment the patch component of a cache version."""
    major, minor, patch = parse_version(version)
    return f"{major}.{minor}.{patch + 1}"
