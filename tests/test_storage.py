"""Tests for storage backends and store persistence."""
import json
import threading

import pytest

from stefa_books import storage as storage_mod
from stefa_books.models import Book
from stefa_books.storage import JsonFileStorage, MemoryStorage, PostgresStorage, make_storage
from stefa_books.store import BookCacheStore


def _book(book_id, title="Title"):
    return Book(id=book_id, title=title, author="Автор", category="fiction", available=True)


def test_state_survives_new_store_instance(tmp_path):
    """Test that a fresh store on the same directory sees persisted state."""
    first = BookCacheStore(storage=JsonFileStorage(tmp_path))
    first.set_books([_book("1", "Кобзар"), _book("2")])

    second = BookCacheStore(storage=JsonFileStorage(tmp_path))

    assert [b.id for b in second.books] == ["1", "2"]
    assert second.get_book_by_id("1").title == "Кобзар"
    assert second.data_hash == first.data_hash
    assert second.cache_version == "1.0.0"
    assert second.is_syncing is False


def test_persisted_file_layout(tmp_path):
    """Test the on-disk document under the namespace key."""
    store = BookCacheStore(storage=JsonFileStorage(tmp_path), namespace="books-cache")
    store.add_book(_book("1"))

    payload = json.loads((tmp_path / "books-cache.json").read_text(encoding="utf-8"))

    assert set(payload) == {"books", "lastSync", "cacheVersion", "dataHash"}
    assert payload["books"][0]["id"] == "1"
    assert payload["lastSync"] is None
    assert payload["dataHash"] == store.data_hash
    assert list(tmp_path.glob("*.tmp")) == []


def test_corrupt_state_starts_empty(tmp_path):
    """Test that unreadable persisted state is ignored."""
    (tmp_path / "books-cache.json").write_text("{not json", encoding="utf-8")

    store = BookCacheStore(storage=JsonFileStorage(tmp_path))

    assert store.books == []
    assert store.cache_version == "1.0.0"


def test_invalid_state_layout_starts_empty(tmp_path):
    """Test that a well-formed JSON document with a bad layout is ignored."""
    (tmp_path / "books-cache.json").write_text(
        json.dumps({"books": [{"title": "no id"}], "cacheVersion": "1.0.0"}), encoding="utf-8"
    )

    store = BookCacheStore(storage=JsonFileStorage(tmp_path))

    assert store.books == []


def test_clear_cache_is_persisted(tmp_path):
    """Test that a cleared cache stays cleared after reload."""
    store = BookCacheStore(storage=JsonFileStorage(tmp_path))
    store.set_books([_book("1")])
    store.clear_cache()

    reloaded = BookCacheStore(storage=JsonFileStorage(tmp_path))

    assert reloaded.books == []
    assert reloaded.data_hash is None


@pytest.mark.parametrize("make", [JsonFileStorage, None])
def test_reload_if_changed(tmp_path, make):
    """Test that one instance picks up another instance's writes."""
    shared = make(tmp_path) if make else MemoryStorage()
    tab_a = BookCacheStore(storage=shared)
    tab_b = BookCacheStore(storage=shared)

    assert tab_a.reload_if_changed() is False

    tab_b.add_book(_book("1"))

    assert tab_a.reload_if_changed() is True
    assert [b.id for b in tab_a.books] == ["1"]
    assert tab_a.data_hash == tab_b.data_hash
    assert tab_a.reload_if_changed() is False


def test_reload_if_changed_without_storage():
    """Test that memory-only stores never reload."""
    assert BookCacheStore().reload_if_changed() is False


def test_persist_failure_keeps_memory_state():
    """Test that a failing backend does not break mutations."""
    class BrokenStorage(MemoryStorage):
        def save(self, namespace, payload):
            raise OSError("disk full")

    store = BookCacheStore(storage=BrokenStorage())
    store.add_book(_book("1"))

    assert [b.id for b in store.books] == ["1"]


def test_memory_storage_isolates_payloads():
    """Test that callers cannot mutate stored payloads."""
    mem = MemoryStorage()
    payload = {"books": [], "lastSync": None, "cacheVersion": "1.0.0", "dataHash": None}
    mem.save("ns", payload)
    payload["books"].append({"id": "x"})

    assert mem.load("ns")["books"] == []
    assert mem.revision("ns") == 1

    mem.save("ns", payload)
    assert mem.revision("ns") == 2
    assert mem.revision("other") is None


def test_concurrent_file_writers(tmp_path):
    """Test that two writers on one namespace never trip over each other's temp file."""
    errors = []

    def writer(tag):
        backend = JsonFileStorage(tmp_path)
        try:
            for i in range(200):
                backend.save("books-cache", {"books": [{"id": f"{tag}-{i}"}], "dataHash": None})
        except Exception as e:
            errors.append(e)

    threads = [threading.Thread(target=writer, args=(tag,)) for tag in ("a", "b")]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert errors == []
    payload = JsonFileStorage(tmp_path).load("books-cache")
    assert payload["books"][0]["id"] in ("a-199", "b-199")
    assert list(tmp_path.glob("*.tmp")) == []


class FakeCursor:
    def __init__(self, db):
        self.db = db

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        return False

    def execute(self, sql, params=None):
        self.db.executed.append((" ".join(sql.split()), params))
        self.db.last_params = params

    def fetchone(self):
        return self.db.rows.pop(0) if self.db.rows else None


class FakeConnection:
    def __init__(self, db):
        self.db = db

    def cursor(self):
        return FakeCursor(self.db)

    def commit(self):
        self.db.commits += 1

    def rollback(self):
        self.db.rollbacks += 1


class FakePool:
    def __init__(self, min_conn, max_conn, dsn):
        self.dsn = dsn
        self.executed = []
        self.rows = []
        self.commits = 0
        self.rollbacks = 0
        self.closed = False

    def getconn(self):
        return FakeConnection(self)

    def putconn(self, conn):
        pass

    def closeall(self):
        self.closed = True


def test_postgres_storage_round_trip(monkeypatch):
    """Test the SQL issued by the postgres backend."""
    monkeypatch.setattr(storage_mod.pool, "SimpleConnectionPool", FakePool)

    with PostgresStorage("postgresql://u:p@localhost:5432/stefa_books") as pg:
        db = pg.connection_pool
        pg.init_schema()
        assert db.executed[0][0].startswith("CREATE TABLE IF NOT EXISTS cache_state")

        pg.save("books-cache", {"books": [], "dataHash": None})
        sql, params = db.executed[-1]
        assert "ON CONFLICT (namespace) DO UPDATE" in sql
        assert params[0] == "books-cache"
        assert json.loads(params[1]) == {"books": [], "dataHash": None}

        db.rows = [({"books": [], "dataHash": None},)]
        assert pg.load("books-cache") == {"books": [], "dataHash": None}
        assert pg.load("missing") is None

        db.rows = [(3,)]
        assert pg.revision("books-cache") == 3

    assert db.closed is True
    assert db.commits == 2


def test_make_storage(tmp_path):
    """Test backend selection."""
    class Cfg:
        CACHE_BACKEND = "file"
        CACHE_DIR = str(tmp_path)

    assert isinstance(make_storage(Cfg()), JsonFileStorage)
    assert isinstance(make_storage(Cfg(), "memory"), MemoryStorage)

    with pytest.raises(ValueError):
        make_storage(Cfg(), "redis")
