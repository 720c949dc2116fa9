"""Local mirror of the book catalog.

Reads are synchronous and served from memory. ``sync_with_server`` pulls
the whole catalog and overwrites the mirror (last write wins);
``check_for_updates`` compares fingerprints to decide whether that is
needed. State is written through to a storage backend after every change.
"""
import asyncio
import inspect
import logging
import time
from typing import Any, Dict, Iterable, List, Optional

from stefa_books import queries
from stefa_books.exceptions import CatalogError, CatalogResponseError
from stefa_books.hashing import compute_data_hash
from stefa_books.models import Book, BookFilters, CacheState, bump_version

logger = logging.getLogger(__name__)

DEFAULT_NAMESPACE = "books-cache"
DEFAULT_PAGE_SIZE = 10000
DEFAULT_MAX_PAGES = 50


def now_ms() -> int:
    return int(time.time() * 1000)


def _consume_sync_error(task: asyncio.Future) -> None:
    # Already logged by _sync; retrieving it here keeps asyncio quiet when
    # every caller was cancelled before the sync finished
    if not task.cancelled():
        task.exception()


class BookCacheStore:
    """Durable, queryable mirror of the catalog.

    One instance is meant to be owned by the application and handed to
    whatever needs it; tests build a fresh one each time.
    """

    def __init__(
        self,
        client=None,
        storage=None,
        namespace: str = DEFAULT_NAMESPACE,
        page_size: int = DEFAULT_PAGE_SIZE,
        max_pages: int = DEFAULT_MAX_PAGES,
        clock=now_ms
    ):
        """
        Create a store and load any previously persisted state.

        Args:
            client: CatalogClient or AsyncCatalogClient (None disables sync)
            storage: Storage backend (None keeps state in memory only)
            namespace: Key the state is persisted under
            page_size: ``limit`` sent with each catalog request
            max_pages: Upper bound on pages fetched in one sync
            clock: Callable returning the current time in epoch milliseconds
        """
        self.client = client
        self.storage = storage
        self.namespace = namespace
        self.page_size = page_size
        self.max_pages = max_pages
        self.clock = clock

        self.state = CacheState()
        self._revision = None
        self._sync_task: Optional[asyncio.Future] = None

        if storage is not None:
            self._hydrate()

    # State accessors

    @property
    def books(self) -> List[Book]:
        return list(self.state.books)

    @property
    def last_sync(self) -> Optional[int]:
        return self.state.last_sync

    @property
    def is_syncing(self) -> bool:
        return self.state.is_syncing

    @property
    def cache_version(self) -> str:
        return self.state.cache_version

    @property
    def data_hash(self) -> Optional[str]:
        return self.state.data_hash

    # Mutations

    def set_books(self, books: Iterable[Book]) -> None:
        """Replace the whole collection. Duplicate ids are kept as given."""
        self._replace_books(list(books))
        self._persist()

    def add_book(self, book: Book) -> None:
        """Append ``book``, or replace the entry that already has its id."""
        books = list(self.state.books)
        for i, existing in enumerate(books):
            if existing.id == book.id:
                logger.debug(f"add_book: replacing existing entry {book.id}")
                books[i] = book
                break
        else:
            books.append(book)
        self._replace_books(books)
        self._persist()

    def update_book(self, book_id: str, fields: Dict[str, Any]) -> None:
        """Merge ``fields`` onto the book with ``book_id``; no-op if absent."""
        books = [
            book.merged(fields) if book.id == book_id else book
            for book in self.state.books
        ]
        self._replace_books(books)
        self._persist()

    def remove_book(self, book_id: str) -> None:
        """Drop every entry with ``book_id``; no-op if absent."""
        books = [book for book in self.state.books if book.id != book_id]
        self._replace_books(books)
        self._persist()

    def clear_cache(self) -> None:
        """Reset books, sync time, hash and version to their initial values."""
        self.state = CacheState(is_syncing=self.state.is_syncing)
        self._persist()
        logger.info("Book cache cleared")

    def _replace_books(self, books: List[Book]) -> None:
        # Hash first so a failure leaves books and hash untouched
        data_hash = compute_data_hash(books)
        self.state.books = books
        self.state.data_hash = data_hash

    # Queries

    def get_book_by_id(self, book_id: str) -> Optional[Book]:
        return queries.get_book_by_id(self.state.books, book_id)

    def get_books_by_category(self, category_id: str) -> List[Book]:
        return queries.get_books_by_category(self.state.books, category_id)

    def get_books_by_age_category(self, age_range_id: str) -> List[Book]:
        return queries.get_books_by_age_category(self.state.books, age_range_id)

    def search_books(self, query: str) -> List[Book]:
        return queries.search_books(self.state.books, query)

    def get_available_books(self) -> List[Book]:
        return queries.get_available_books(self.state.books)

    def get_filtered_books(self, filters: Optional[BookFilters] = None) -> List[Book]:
        return queries.get_filtered_books(self.state.books, filters)

    # Synchronization

    async def sync_with_server(self) -> int:
        """
        Replace the mirror with the server catalog.

        A call made while another sync is running joins that sync instead of
        sending a second request, and gets the same result or exception.

        Returns:
            Number of books now in the mirror

        Raises:
            CatalogError: The mirror is left exactly as it was
        """
        task = self._sync_task
        if task is not None and not task.done():
            logger.info("Sync already in progress, joining it")
        else:
            task = asyncio.ensure_future(self._sync())
            task.add_done_callback(_consume_sync_error)
            self._sync_task = task
        return await asyncio.shield(task)

    async def check_for_updates(self) -> bool:
        """
        Ask the server for its catalog fingerprint and compare.

        Any failure is reported as "no update" so a flaky network never
        triggers a refresh prompt.

        Returns:
            True if the server hash differs from the local one
        """
        if self.client is None:
            logger.warning("No catalog client configured, skipping update check")
            return False

        try:
            server_hash = await self._call(self.client.fetch_fingerprint)
        except CatalogError as e:
            logger.warning(f"Error checking updates: {e}")
            return False

        if server_hash != self.state.data_hash:
            logger.info(f"Data changed, sync needed (local={self.state.data_hash}, server={server_hash})")
            return True

        logger.debug("Book cache is up to date")
        return False

    async def refresh_if_stale(self) -> bool:
        """Sync when ``check_for_updates`` reports a change. Returns whether it did."""
        if not await self.check_for_updates():
            return False
        await self.sync_with_server()
        return True

    async def _sync(self) -> int:
        if self.client is None:
            raise CatalogError("No catalog client configured")

        self.state.is_syncing = True
        logger.info("Starting books synchronization...")
        try:
            books = await self._fetch_all()
            version = bump_version(self.state.cache_version)

            self._replace_books(books)
            self.state.last_sync = self.clock()
            self.state.cache_version = version
            self._persist()

            logger.info(f"Synchronized {len(books)} books (cache version {version})")
            return len(books)
        except CatalogError as e:
            logger.error(f"Sync error: {e}")
            raise
        finally:
            self.state.is_syncing = False

    async def _fetch_all(self) -> List[Book]:
        books: List[Book] = []
        offset = 0

        for _ in range(self.max_pages):
            page = await self._call(self.client.fetch_catalog_page, self.page_size, offset)
            books.extend(page.books)

            if not page.has_more or page.received == 0:
                return books
            offset += page.received

        raise CatalogResponseError(
            f"Catalog is larger than {self.max_pages} pages of {self.page_size} books"
        )

    @staticmethod
    async def _call(fn, *args):
        # Blocking clients run in a worker thread so the loop stays free
        if inspect.iscoroutinefunction(fn):
            return await fn(*args)
        return await asyncio.to_thread(fn, *args)

    # Persistence

    def reload_if_changed(self) -> bool:
        """
        Reload persisted state written by another store instance.

        Returns:
            True if the storage had changed and state was reloaded
        """
        if self.storage is None:
            return False

        if self.storage.revision(self.namespace) == self._revision:
            return False

        logger.info(f"Cache state '{self.namespace}' changed in storage, reloading")
        self._hydrate()
        return True

    def _hydrate(self) -> None:
        syncing = self.state.is_syncing
        try:
            payload = self.storage.load(self.namespace)
            state = CacheState.from_persisted(payload) if payload is not None else CacheState()
        except (ValueError, TypeError, AttributeError) as e:
            logger.warning(f"Ignoring unreadable cache state '{self.namespace}': {e}")
            state = CacheState()

        state.is_syncing = syncing
        self.state = state
        self._revision = self.storage.revision(self.namespace)
        logger.debug(f"Loaded {len(state.books)} cached books (version {state.cache_version})")

    def _persist(self) -> bool:
        if self.storage is None:
            return True

        try:
            self.storage.save(self.namespace, self.state.to_persisted())
        except Exception as e:
            # The in-memory mirror stays valid; only durability is lost
            logger.error(f"Failed to persist cache state: {e}")
            return False

        self._revision = self.storage.revision(self.namespace)
        return True


def build_store(config, storage=None, retries: bool = False) -> BookCacheStore:
    """
    Wire a store from configuration.

    Args:
        config: Config instance
        storage: Storage backend (see ``storage.make_storage``)
        retries: Use the blocking client with retry/backoff instead of the async one

    Returns:
        BookCacheStore
    """
    if retries:
        from stefa_books.client import CatalogClient
        client = CatalogClient(
            config.CATALOG_BASE_URL,
            catalog_path=config.CATALOG_PATH,
            fingerprint_path=config.FINGERPRINT_PATH,
            timeout=config.DEFAULT_TIMEOUT,
            max_retries=config.DEFAULT_MAX_RETRIES
        )
    else:
        from stefa_books.async_client import AsyncCatalogClient
        client = AsyncCatalogClient(
            config.CATALOG_BASE_URL,
            catalog_path=config.CATALOG_PATH,
            fingerprint_path=config.FINGERPRINT_PATH,
            timeout=config.DEFAULT_TIMEOUT
        )

    return BookCacheStore(
        client=client,
        storage=storage,
        namespace=config.CACHE_NAMESPACE,
        page_size=config.CATALOG_PAGE_SIZE,
        max_pages=config.CATALOG_MAX_PAGES
    )
