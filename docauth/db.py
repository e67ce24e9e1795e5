"""
Database module for DocAuth.

Provides optional SQLite-backed durability for document records.
Challenges and sessions are never persisted.
"""

import sqlite3
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Dict, Iterator, List

from .errors import PersistenceError


class SqliteDocumentStore:
    """
    Append-only SQLite table of (digest, version) -> owner, timestamp.

    Each thread gets its own connection. The (digest, version) primary key
    makes an overwrite of an existing version impossible at the storage
    layer as well. Writes wait at most `timeout` seconds for the database
    lock.
    """

    def __init__(self, path: str, timeout: float = 2.0):
        self._path = Path(path)
        self._timeout = timeout
        self._local = threading.local()
        self._connections: List[sqlite3.Connection] = []
        self._connections_lock = threading.Lock()
        self.init_db()

    def _get_connection(self) -> sqlite3.Connection:
        """
        Get a thread-local database connection.
        Connections are reused within the same thread for performance.
        """
        conn = getattr(self._local, "conn", None)
        if conn is None:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            conn = sqlite3.connect(str(self._path), timeout=self._timeout, check_same_thread=False)
            conn.execute("PRAGMA journal_mode=WAL;")
            conn.execute("PRAGMA synchronous=NORMAL;")
            conn.row_factory = sqlite3.Row
            self._local.conn = conn
            with self._connections_lock:
                self._connections.append(conn)
        return conn

    @contextmanager
    def _transaction(self) -> Iterator[sqlite3.Connection]:
        """
        Context manager for database transactions.
        Commits on success, rolls back and raises PersistenceError on failure.
        """
        try:
            conn = self._get_connection()
        except (sqlite3.Error, OSError) as e:
            raise PersistenceError(f"cannot open document store: {e}") from e
        try:
            yield conn
            conn.commit()
        except sqlite3.Error as e:
            conn.rollback()
            raise PersistenceError(f"document store write failed: {e}") from e

    def init_db(self) -> None:
        """
        Initialize database schema.
        Safe to call multiple times (uses IF NOT EXISTS).
        """
        with self._transaction() as conn:
            conn.execute("""
            CREATE TABLE IF NOT EXISTS documents (
                digest TEXT NOT NULL,
                version INTEGER NOT NULL CHECK (version >= 1),
                owner TEXT NOT NULL,
                timestamp TEXT NOT NULL,
                PRIMARY KEY (digest, version)
            );""")
            conn.execute("""
            CREATE INDEX IF NOT EXISTS idx_documents_owner
            ON documents(owner);""")

    def append(self, digest: str, version: int, owner: str, timestamp: str) -> None:
        """Insert one document version. Fails if the version already exists."""
        with self._transaction() as conn:
            conn.execute(
                "INSERT INTO documents(digest, version, owner, timestamp) VALUES(?,?,?,?)",
                (digest, version, owner, timestamp)
            )

    def load_all(self) -> List[Dict[str, Any]]:
        """Export every stored version ordered by digest then version."""
        with self._transaction() as conn:
            cur = conn.execute(
                "SELECT digest, version, owner, timestamp FROM documents "
                "ORDER BY digest ASC, version ASC"
            )
            return [dict(row) for row in cur.fetchall()]

    def count(self) -> int:
        with self._transaction() as conn:
            cur = conn.execute("SELECT COUNT(*) AS cnt FROM documents")
            return cur.fetchone()["cnt"]

    def reset_db(self) -> None:
        """Clear all rows but keep the schema (test isolation)."""
        with self._transaction() as conn:
            conn.execute("DELETE FROM documents")

    def close(self) -> None:
        """Close every connection opened by this store."""
        with self._connections_lock:
            for conn in self._connections:
                conn.close()
            self._connections.clear()
        self._local = threading.local()
