"""Tests for query helpers."""
from stefa_books import queries
from stefa_books.models import Book, BookFilters


def _catalog():
    return [
        Book(id="1", title="The Great Gatsby", author="F. Scott Fitzgerald", category="fiction", age_range="12+", available=True),
        Book(id="2", title="Gruffalo", author="Julia Donaldson", category="fiction", age_range="3-5", available=False),
        Book(id="3", title="Космос для дітей", author="Олена Кривенко", description="Зорі та планети", category="science", age_range="6-8", available=True),
        Book(id="4", title="Atlas", author="Unknown", category="science", age_range="6-8", available=False),
        Book(id="5", title="Fiction Facts", author="Gatsby Fan", category="reference", available=True),
    ]


def test_get_book_by_id():
    """Test lookup and not-found."""
    books = _catalog()

    assert queries.get_book_by_id(books, "3").title == "Космос для дітей"
    assert queries.get_book_by_id(books, "missing") is None
    assert queries.get_book_by_id([], "1") is None


def test_category_and_age_filters():
    """Test exact category and age range matches, in store order."""
    books = _catalog()

    assert [b.id for b in queries.get_books_by_category(books, "fiction")] == ["1", "2"]
    assert [b.id for b in queries.get_books_by_age_category(books, "6-8")] == ["3", "4"]
    assert queries.get_books_by_category(books, "poetry") == []


def test_search_is_case_insensitive():
    """Test that 'gatsby' finds 'The Great Gatsby'."""
    results = queries.search_books(_catalog(), "gatsby")

    # Title match and author match, store order, no duplicates
    assert [b.id for b in results] == ["1", "5"]


def test_search_matches_description():
    """Test description matching, including Cyrillic case folding."""
    assert [b.id for b in queries.search_books(_catalog(), "ПЛАНЕТИ")] == ["3"]


def test_search_ignores_missing_description():
    """Test that books without a description only match on title/author."""
    assert queries.search_books(_catalog(), "planet") == []


def test_available_books():
    """Test available filter."""
    assert [b.id for b in queries.get_available_books(_catalog())] == ["1", "3", "5"]


def test_filtered_books_conjunction():
    """Test that category AND availability must both hold."""
    result = queries.get_filtered_books(
        _catalog(), BookFilters(category_id="fiction", available_only=True)
    )

    # 2 is fiction but unavailable, 3 and 5 are available but not fiction
    assert [b.id for b in result] == ["1"]


def test_filtered_books_all_dimensions():
    """Test every filter at once."""
    result = queries.get_filtered_books(
        _catalog(),
        BookFilters(category_id="science", age_category_id="6-8", search="зорі", available_only=True)
    )

    assert [b.id for b in result] == ["3"]


def test_filtered_books_limit_and_no_filters():
    """Test truncation and the unconstrained case."""
    books = _catalog()

    assert queries.get_filtered_books(books) == books
    assert [b.id for b in queries.get_filtered_books(books, BookFilters(limit=2))] == ["1", "2"]
    assert [b.id for b in queries.get_filtered_books(books, BookFilters(available_only=True, limit=2))] == ["1", "3"]


def test_search_over_records_with_numeric_titles():
    """Test that records decoded with numeric text fields are searchable."""
    books = [
        Book.from_dict({"id": "1", "title": 1984, "author": 45, "description": 0}),
        Book.from_dict({"id": "2", "title": "Gruffalo", "author": "Julia Donaldson"}),
    ]

    assert [b.id for b in queries.search_books(books, "198")] == ["1"]
    assert [b.id for b in queries.search_books(books, "julia")] == ["2"]
