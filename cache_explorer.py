#!/usr/bin/env python3
"""Book Cache Explorer CLI - local catalog mirror & sync."""
import argparse
import asyncio
import inspect
import sys
import json
from datetime import datetime
from tabulate import tabulate
from stefa_books.config import Config
from stefa_books.exceptions import CatalogError
from stefa_books.models import BookFilters
from stefa_books.storage import make_storage
from stefa_books.store import BookCacheStore, build_store
import logging

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


def open_store(args, config: Config, with_client: bool = False) -> BookCacheStore:
    """Build a store on the configured backend."""
    storage = make_storage(config, args.backend)

    if with_client:
        return build_store(config, storage=storage, retries=args.retries)

    return BookCacheStore(storage=storage, namespace=config.CACHE_NAMESPACE)


def close_storage(store: BookCacheStore):
    """Release the database pool, if any."""
    close = getattr(store.storage, "close", None)
    if close is not None:
        close()


async def close_store(store: BookCacheStore):
    """Release the HTTP client and the storage."""
    if store.client is not None:
        result = store.client.close()
        if inspect.isawaitable(result):
            await result

    close_storage(store)


async def sync_catalog(args, config: Config):
    """Pull the full catalog into the local mirror."""
    store = open_store(args, config, with_client=True)

    try:
        count = await store.sync_with_server()
        print(f"✅ Synchronized {count} books (cache version {store.cache_version})")
    finally:
        await close_store(store)


async def check_updates(args, config: Config):
    """Compare local and server fingerprints, optionally syncing."""
    store = open_store(args, config, with_client=True)

    try:
        if args.sync:
            synced = await store.refresh_if_stale()
            if synced:
                print(f"🔄 Cache was stale - synchronized {len(store.books)} books")
            else:
                print("✅ Cache is up to date")
        else:
            stale = await store.check_for_updates()
            print("🔄 Update available" if stale else "✅ Cache is up to date")
    finally:
        await close_store(store)


def list_books(args, config: Config):
    """List cached books with optional filters."""
    store = open_store(args, config)

    filters = BookFilters(
        category_id=args.category,
        age_category_id=args.age,
        search=args.search,
        available_only=args.available,
        limit=args.limit
    )

    try:
        books = store.get_filtered_books(filters)
        logger.info(f"Found {len(books)} books")
        display_books(books, args.format)
    finally:
        close_storage(store)


def show_book(args, config: Config):
    """Show a single cached book as JSON."""
    store = open_store(args, config)

    try:
        book = store.get_book_by_id(args.book_id)
        if book is None:
            print(f"Book {args.book_id} is not in the cache")
            sys.exit(1)
        print(json.dumps(book.to_dict(), indent=2, ensure_ascii=False))
    finally:
        close_storage(store)


def display_books(books, format_type: str):
    """Display books in specified format."""
    if format_type == "table":
        headers = ["ID", "Title", "Author", "Category", "Age", "Available"]
        rows = [
            [
                book.id,
                book.title[:50] + "..." if len(book.title) > 50 else book.title,
                book.author[:30] + "..." if len(book.author) > 30 else book.author,
                book.category or "-",
                book.age_range or "-",
                "yes" if book.available else "no"
            ]
            for book in books
        ]
        print("\n" + tabulate(rows, headers=headers, tablefmt="grid"))

    elif format_type == "json":
        print(json.dumps([book.to_dict() for book in books], indent=2, ensure_ascii=False))

    elif format_type == "compact":
        for i, book in enumerate(books, 1):
            print(f"{i}. {book.title} - {book.author}")


def show_stats(args, config: Config):
    """Show cache statistics."""
    store = open_store(args, config)

    try:
        last_sync = (
            datetime.fromtimestamp(store.last_sync / 1000).isoformat(timespec="seconds")
            if store.last_sync else "never"
        )

        print("\n" + "=" * 50)
        print("BOOK CACHE STATISTICS")
        print("=" * 50)
        print(f"Cached books: {len(store.books)}")
        print(f"Available books: {len(store.get_available_books())}")
        print(f"Last sync: {last_sync}")
        print(f"Cache version: {store.cache_version}")
        print(f"Data hash: {store.data_hash or '-'}")
        print("=" * 50 + "\n")
    finally:
        close_storage(store)


def clear_cache(args, config: Config):
    """Reset the local mirror."""
    store = open_store(args, config)

    try:
        store.clear_cache()
        print("✅ Cache cleared")
    finally:
        close_storage(store)


def main():
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(
        description="Book Cache Explorer - local catalog mirror CLI",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Pull the whole catalog
  %(prog)s sync

  # Refresh only when the server fingerprint changed
  %(prog)s check --sync

  # Available fiction for ages 6-8
  %(prog)s list --category fiction --age 6-8 --available

  # Show statistics
  %(prog)s stats
        """
    )
    parser.add_argument("--backend", choices=["file", "postgres", "memory"], help="Storage backend (default: CACHE_BACKEND)")
    parser.add_argument("--retries", action="store_true", help="Use the blocking client with retries and backoff")

    subparsers = parser.add_subparsers(dest="command", help="Command to execute")

    # Sync command
    subparsers.add_parser("sync", help="Synchronize the cache with the server")

    # Check command
    check_parser = subparsers.add_parser("check", help="Check whether the cache is stale")
    check_parser.add_argument("--sync", action="store_true", help="Synchronize if stale")

    # List command
    list_parser = subparsers.add_parser("list", help="List cached books")
    list_parser.add_argument("--category", help="Category id")
    list_parser.add_argument("--age", help="Age range id")
    list_parser.add_argument("--search", help="Text in title, author or description")
    list_parser.add_argument("--available", action="store_true", help="Only available books")
    list_parser.add_argument("--limit", type=int, help="Limit results")
    list_parser.add_argument("--format", choices=["table", "json", "compact"], default="table", help="Output format")

    # Show command
    show_parser = subparsers.add_parser("show", help="Show one cached book")
    show_parser.add_argument("book_id", help="Book id")

    # Stats command
    subparsers.add_parser("stats", help="Show cache statistics")

    # Clear command
    subparsers.add_parser("clear", help="Clear the local cache")

    args = parser.parse_args()

    if not args.command:
        parser.print_help()
        sys.exit(1)

    config = Config()

    try:
        if args.command == "sync":
            asyncio.run(sync_catalog(args, config))

        elif args.command == "check":
            asyncio.run(check_updates(args, config))

        elif args.command == "list":
            list_books(args, config)

        elif args.command == "show":
            show_book(args, config)

        elif args.command == "stats":
            show_stats(args, config)

        elif args.command == "clear":
            clear_cache(args, config)

    except KeyboardInterrupt:
        logger.info("\n⚠️  Interrupted by user")
        sys.exit(0)
    except CatalogError as e:
        logger.error(f"❌ Sync error: {e}")
        sys.exit(1)
    except Exception as e:
        logger.error(f"❌ Error: {e}", exc_info=True)
        sys.exit(1)


if __name__ == "__main__":
    main()
