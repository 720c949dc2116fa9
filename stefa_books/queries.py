"""Read-only helpers over a list of books.

All functions preserve the input order and never raise on missing data.
"""
from typing import List, Optional, Sequence

from stefa_books.models import Book, BookFilters


def get_book_by_id(books: Sequence[Book], book_id: str) -> Optional[Book]:
    for book in books:
        if book.id == book_id:
            return book
    return None


def get_books_by_category(books: Sequence[Book], category_id: str) -> List[Book]:
    return [book for book in books if book.category == category_id]


def get_books_by_age_category(books: Sequence[Book], age_range_id: str) -> List[Book]:
    return [book for book in books if book.age_range == age_range_id]


def matches_query(book: Book, query: str) -> bool:
    """Case-insensitive substring match on title, author and description."""
    needle = query.lower()
    if needle in (book.title or "").lower():
        return True
    if needle in (book.author or "").lower():
        return True
    return book.description is not None and needle in book.description.lower()


def search_books(books: Sequence[Book], query: str) -> List[Book]:
    return [book for book in books if matches_query(book, query)]


def get_available_books(books: Sequence[Book]) -> List[Book]:
    return [book for book in books if book.available]


def get_filtered_books(books: Sequence[Book], filters: Optional[BookFilters] = None) -> List[Book]:
    """
    Apply every supplied filter (AND), then truncate to ``filters.limit``.

    Empty values (``None``, ``""``, ``0``, ``False``) mean no constraint for
    that dimension.
    """
    filters = filters or BookFilters()
    result = list(books)

    if filters.category_id:
        result = get_books_by_category(result, filters.category_id)

    if filters.age_category_id:
        result = get_books_by_age_category(result, filters.age_category_id)

    if filters.search:
        result = search_books(result, filters.search)

    if filters.available_only:
        result = get_available_books(result)

    if filters.limit:
        result = result[:max(filters.limit, 0)]

    return result
