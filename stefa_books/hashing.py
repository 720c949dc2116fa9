"""Catalog fingerprint used to detect a stale local mirror.

The fingerprint is a 32-bit rolling checksum, not a digest. Two different
catalogs can collide; it only answers "probably changed".
"""
import json
from typing import Iterable, List

from stefa_books.models import Book

HASH_LENGTH = 16


def canonical_json(books: Iterable[Book]) -> str:
    """Serialize books sorted by id with a fixed key order."""
    ordered: List[Book] = sorted(books, key=lambda b: b.id)
    return json.dumps(
        [book.to_dict() for book in ordered],
        sort_keys=True,
        separators=(",", ":"),
        ensure_ascii=False,
    )


def rolling_hash(text: str) -> int:
    """
    Fold ``text`` into a signed 32-bit integer (``h * 31 + unit``).

    Works on UTF-16 code units so Cyrillic titles hash the same way a
    JavaScript ``charCodeAt`` loop on the server would.
    """
    raw = text.encode("utf-16-le")
    h = 0
    for i in range(0, len(raw), 2):
        unit = raw[i] | (raw[i + 1] << 8)
        h = (h * 31 + unit) & 0xFFFFFFFF
    if h >= 0x80000000:
        h -= 0x100000000
    return h


def compute_data_hash(books: Iterable[Book]) -> str:
    """
    Compute the 16-character catalog fingerprint.

    Args:
        books: Books in any order

    Returns:
        Lowercase hex string, zero padded to 16 characters
    """
    value = abs(rolling_hash(canonical_json(books)))
    return format(value, "x").zfill(HASH_LENGTH)[:HASH_LENGTH]
