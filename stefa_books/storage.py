"""Durable storage backends for the cache state."""
import os
import json
import logging
import tempfile
from pathlib import Path
from typing import Optional, Dict, Any, Hashable

import psycopg2
from psycopg2 import pool

logger = logging.getLogger(__name__)


class MemoryStorage:
    """Process-local storage; nothing survives a restart."""

    def __init__(self):
        self._data: Dict[str, str] = {}
        self._revisions: Dict[str, int] = {}

    def load(self, namespace: str) -> Optional[Dict[str, Any]]:
        raw = self._data.get(namespace)
        return json.loads(raw) if raw is not None else None

    def save(self, namespace: str, payload: Dict[str, Any]) -> None:
        # Stored as text so callers never share mutable state with us
        self._data[namespace] = json.dumps(payload, ensure_ascii=False)
        self._revisions[namespace] = self._revisions.get(namespace, 0) + 1

    def revision(self, namespace: str) -> Optional[Hashable]:
        return self._revisions.get(namespace)


class JsonFileStorage:
    """One JSON document per namespace under ``directory``."""

    def __init__(self, directory):
        self.directory = Path(directory)

    def path(self, namespace: str) -> Path:
        return self.directory / f"{namespace}.json"

    def load(self, namespace: str) -> Optional[Dict[str, Any]]:
        """
        Read the persisted payload.

        Returns:
            Decoded payload or None if nothing was saved yet

        Raises:
            ValueError: If the file is not valid JSON
        """
        p = self.path(namespace)
        if not p.exists():
            return None
        return json.loads(p.read_text(encoding="utf-8"))

    def save(self, namespace: str, payload: Dict[str, Any]) -> None:
        self.directory.mkdir(parents=True, exist_ok=True)
        p = self.path(namespace)
        text = json.dumps(payload, ensure_ascii=False)

        # Unique temp file per save so concurrent writers never share one
        with tempfile.NamedTemporaryFile(
            "w", delete=False, dir=self.directory, prefix=f"{namespace}.", suffix=".tmp", encoding="utf-8"
        ) as tf:
            tf.write(text)
            tmp_path = tf.name
        try:
            os.replace(tmp_path, p)
        finally:
            if os.path.exists(tmp_path):
                os.remove(tmp_path)

    def revision(self, namespace: str) -> Optional[Hashable]:
        # os.replace swaps in a new inode on every save
        try:
            st = self.path(namespace).stat()
        except FileNotFoundError:
            return None
        return (st.st_ino, st.st_mtime_ns, st.st_size)


class PostgresStorage:
    """PostgreSQL-backed storage with connection pooling."""

    def __init__(self, connection_string: str, min_conn: int = 1, max_conn: int = 5):
        """
        Initialize database connection pool.

        Args:
            connection_string: PostgreSQL connection string
            min_conn: Minimum connections in pool
            max_conn: Maximum connections in pool
        """
        self.connection_pool = pool.SimpleConnectionPool(
            min_conn,
            max_conn,
            connection_string
        )

        if self.connection_pool:
            logger.info("Database connection pool created successfully")
        else:
            raise RuntimeError("Failed to create connection pool")

    def init_schema(self):
        """Create the cache table if it doesn't exist."""
        conn = self.connection_pool.getconn()
        try:
            with conn.cursor() as cur:
                cur.execute("""
                    CREATE TABLE IF NOT EXISTS cache_state (
                        namespace VARCHAR(255) PRIMARY KEY,
                        payload JSONB NOT NULL,
                        revision BIGINT NOT NULL DEFAULT 1,
                        updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                    )
                """)
                conn.commit()
                logger.info("Database schema initialized successfully")

        finally:
            self.connection_pool.putconn(conn)

    def load(self, namespace: str) -> Optional[Dict[str, Any]]:
        """Get the persisted payload for a namespace."""
        conn = self.connection_pool.getconn()
        try:
            with conn.cursor() as cur:
                cur.execute("""
                    SELECT payload FROM cache_state WHERE namespace = %s
                """, (namespace,))

                row = cur.fetchone()
                if row:
                    return row[0]  # JSONB is automatically deserialized
                return None
        finally:
            self.connection_pool.putconn(conn)

    def save(self, namespace: str, payload: Dict[str, Any]) -> None:
        """
        Insert or replace the payload for a namespace.

        Raises:
            psycopg2.Error: After rolling back the failed transaction
        """
        conn = self.connection_pool.getconn()
        try:
            with conn.cursor() as cur:
                cur.execute("""
                    INSERT INTO cache_state (namespace, payload)
                    VALUES (%s, %s)
                    ON CONFLICT (namespace) DO UPDATE SET
                        payload = EXCLUDED.payload,
                        revision = cache_state.revision + 1,
                        updated_at = CURRENT_TIMESTAMP
                """, (namespace, json.dumps(payload, ensure_ascii=False)))
                conn.commit()
        except psycopg2.Error as e:
            conn.rollback()
            logger.error(f"Failed to save cache state: {e}")
            raise
        finally:
            self.connection_pool.putconn(conn)

    def revision(self, namespace: str) -> Optional[Hashable]:
        conn = self.connection_pool.getconn()
        try:
            with conn.cursor() as cur:
                cur.execute("SELECT revision FROM cache_state WHERE namespace = %s", (namespace,))
                row = cur.fetchone()
                return row[0] if row else None
        finally:
            self.connection_pool.putconn(conn)

    def close(self):
        """Close all connections in the pool."""
        if self.connection_pool:
            self.connection_pool.closeall()
            logger.info("Database connection pool closed")

    def __enter__(self):
        """Context manager entry."""
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Context manager exit."""
        self.close()


def make_storage(config, backend: Optional[str] = None):
    """
    Build the storage backend named by ``backend`` or ``config.CACHE_BACKEND``.

    Args:
        config: Config instance
        backend: One of ``file``, ``postgres``, ``memory``

    Returns:
        Storage instance
    """
    backend = (backend or config.CACHE_BACKEND).lower()

    if backend == "file":
        return JsonFileStorage(config.CACHE_DIR)
    if backend == "postgres":
        storage = PostgresStorage(config.DATABASE_URL)
        storage.init_schema()
        return storage
    if backend == "memory":
        return MemoryStorage()

    raise ValueError(f"Unknown cache backend: {backend}")
