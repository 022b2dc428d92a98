# =============================================================================
# asterix_offline/offline/local_store.py
# Namespaced Local Storage with an Explicit Readiness Barrier
# =============================================================================
"""
LocalStore - key/value persistence shared by the cache and the operation queue.

Features:
- Pluggable backends (SQLite file, in-memory)
- Namespaces ("cache", "meta", "queue"), string keys, JSON documents
- Explicit open()/ready() step: every primitive waits on a one-time
  readiness barrier and gets the backend handle from it
- Thread-safe operations
"""

from __future__ import annotations
import sqlite3
import threading
from abc import ABC, abstractmethod
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional, Tuple
import logging

from asterix_offline.errors import StorageError, StoreNotReadyError
from asterix_offline.utils import dumps, loads

logger = logging.getLogger(__name__)

# Persisted namespaces
CACHE_NAMESPACE = "cache"
META_NAMESPACE = "meta"
QUEUE_NAMESPACE = "queue"


class StorageBackend(ABC):
    """Abstract namespaced key/value backend."""

    @abstractmethod
    def initialize(self) -> None:
        """Create schema / resources. Called once by LocalStore.open()."""

    @abstractmethod
    def get_item(self, namespace: str, key: str) -> Optional[Any]:
        """Return the stored document or None."""

    @abstractmethod
    def set_item(self, namespace: str, key: str, value: Any) -> None:
        """Insert or replace a document."""

    @abstractmethod
    def remove_item(self, namespace: str, key: str) -> None:
        """Delete a document (no error if absent)."""

    @abstractmethod
    def clear(self, namespace: str) -> None:
        """Delete every document in a namespace."""

    @abstractmethod
    def items(self, namespace: str) -> List[Tuple[str, Any]]:
        """All (key, document) pairs of a namespace in insertion order."""

    def close(self) -> None:
        """Release resources."""


class MemoryBackend(StorageBackend):
    """In-process backend (tests and ephemeral sessions)."""

    def __init__(self):
        self._data: Dict[str, Dict[str, str]] = {}
        self._lock = threading.RLock()

    def initialize(self) -> None:
        with self._lock:
            for namespace in (CACHE_NAMESPACE, META_NAMESPACE, QUEUE_NAMESPACE):
                self._data.setdefault(namespace, {})

    def get_item(self, namespace: str, key: str) -> Optional[Any]:
        with self._lock:
            raw = self._data.get(namespace, {}).get(key)
        return loads(raw) if raw is not None else None

    def set_item(self, namespace: str, key: str, value: Any) -> None:
        # Stored as JSON so callers never share mutable state with the store
        raw = dumps(value)
        with self._lock:
            bucket = self._data.setdefault(namespace, {})
            bucket.pop(key, None)
            bucket[key] = raw

    def remove_item(self, namespace: str, key: str) -> None:
        with self._lock:
            self._data.get(namespace, {}).pop(key, None)

    def clear(self, namespace: str) -> None:
        with self._lock:
            self._data[namespace] = {}

    def items(self, namespace: str) -> List[Tuple[str, Any]]:
        with self._lock:
            snapshot = list(self._data.get(namespace, {}).items())
        return [(key, loads(raw)) for key, raw in snapshot]


class SQLiteBackend(StorageBackend):
    """
    SQLite file backend.

    One table holds every namespace; a thread-local connection is used per
    worker thread (foreground calls, sync timer, expiry sweeper).
    """

    DEFAULT_DB_PATH = Path("local_data") / "asterix_offline.db"

    SCHEMA = """
        CREATE TABLE IF NOT EXISTS kv_store (
            namespace TEXT NOT NULL,
            key TEXT NOT NULL,
            value_json TEXT NOT NULL,
            updated_at TEXT DEFAULT CURRENT_TIMESTAMP,
            PRIMARY KEY (namespace, key)
        )
    """

    def __init__(self, db_path: Optional[Path] = None):
        self.db_path = Path(db_path) if db_path else self.DEFAULT_DB_PATH
        self._local = threading.local()
        self._connections: List[sqlite3.Connection] = []
        self._connections_lock = threading.Lock()

    def _get_connection(self) -> sqlite3.Connection:
        """Get thread-local database connection."""
        if getattr(self._local, "connection", None) is None:
            connection = sqlite3.connect(str(self.db_path), check_same_thread=False)
            connection.row_factory = sqlite3.Row
            self._local.connection = connection
            with self._connections_lock:
                self._connections.append(connection)
        return self._local.connection

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        """Context manager for database transactions."""
        conn = self._get_connection()
        try:
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise

    def initialize(self) -> None:
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        with self.transaction() as conn:
            conn.execute(self.SCHEMA)
        logger.info(f"Local store initialized at: {self.db_path}")

    def get_item(self, namespace: str, key: str) -> Optional[Any]:
        row = self._get_connection().execute(
            "SELECT value_json FROM kv_store WHERE namespace = ? AND key = ?",
            [namespace, key],
        ).fetchone()
        return loads(row["value_json"]) if row else None

    def set_item(self, namespace: str, key: str, value: Any) -> None:
        with self.transaction() as conn:
            # DELETE + INSERT keeps rowid order equal to write order
            conn.execute(
                "DELETE FROM kv_store WHERE namespace = ? AND key = ?",
                [namespace, key],
            )
            conn.execute(
                """
                INSERT INTO kv_store (namespace, key, value_json, updated_at)
                VALUES (?, ?, ?, ?)
                """,
                [namespace, key, dumps(value), datetime.now().isoformat()],
            )

    def remove_item(self, namespace: str, key: str) -> None:
        with self.transaction() as conn:
            conn.execute(
                "DELETE FROM kv_store WHERE namespace = ? AND key = ?",
                [namespace, key],
            )

    def clear(self, namespace: str) -> None:
        with self.transaction() as conn:
            conn.execute("DELETE FROM kv_store WHERE namespace = ?", [namespace])

    def items(self, namespace: str) -> List[Tuple[str, Any]]:
        rows = self._get_connection().execute(
            "SELECT key, value_json FROM kv_store WHERE namespace = ? ORDER BY rowid",
            [namespace],
        ).fetchall()
        return [(row["key"], loads(row["value_json"])) for row in rows]

    def close(self) -> None:
        """Close every connection opened by any thread."""
        with self._connections_lock:
            for connection in self._connections:
                connection.close()
            self._connections = []
        self._local = threading.local()


class LocalStore:
    """
    Owner of a backend plus its one-time readiness barrier.

    Usage:
        store = LocalStore(SQLiteBackend(path)).open()
        backend = store.ready()      # blocks until initialization is done
        backend.get_item("cache", key)
    """

    def __init__(self, backend: StorageBackend):
        self.backend = backend
        self._ready = threading.Event()
        self._open_lock = threading.Lock()
        self._opened = False
        self._closed = False
        self._init_error: Optional[BaseException] = None
        self._init_thread: Optional[threading.Thread] = None

    @property
    def is_ready(self) -> bool:
        return self._ready.is_set() and self._init_error is None and not self._closed

    def open(self, background: bool = False) -> LocalStore:
        """
        Start backend initialization (idempotent).

        Args:
            background: Initialize on a worker thread; callers of ready()
                wait on the barrier instead of failing.
        """
        with self._open_lock:
            if self._opened:
                return self
            self._opened = True
            self._closed = False

        if background:
            self._init_thread = threading.Thread(
                target=self._initialize,
                daemon=True,
                name="LocalStoreInit",
            )
            self._init_thread.start()
        else:
            self._initialize()
        return self

    def _initialize(self) -> None:
        try:
            self.backend.initialize()
        except Exception as e:
            self._init_error = e
            logger.error(f"Local store initialization failed: {e}")
        finally:
            self._ready.set()

    def ready(self, timeout: Optional[float] = None) -> StorageBackend:
        """
        Wait for the readiness barrier and return the backend handle.

        Raises:
            StoreNotReadyError: never opened, closed, or timed out
            StorageError: initialization failed
        """
        if not self._opened or self._closed:
            raise StoreNotReadyError("Local store is not open; call open() first")

        if not self._ready.wait(timeout=timeout):
            raise StoreNotReadyError(
                "Timed out waiting for local store initialization",
                details={"timeout": timeout},
            )

        if self._init_error is not None:
            raise StorageError(
                f"Local store initialization failed: {self._init_error}"
            ) from self._init_error

        return self.backend

    def close(self) -> None:
        """Close the backend; later ready() calls raise StoreNotReadyError."""
        with self._open_lock:
            if not self._opened or self._closed:
                return
            self._closed = True
            self._opened = False

        if self._init_thread is not None:
            self._init_thread.join(timeout=5)
        self._ready.clear()
        self.backend.close()
        logger.debug("Local store closed")

    def __enter__(self) -> LocalStore:
        return self.open()

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()


def create_local_store(
    backend: str = "sqlite",
    db_path: Optional[Path] = None,
    background: bool = False,
) -> LocalStore:
    """
    Build and open a LocalStore.

    Args:
        backend: "sqlite" or "memory"
        db_path: SQLite file path (sqlite backend only)
        background: Initialize on a worker thread
    """
    if backend == "memory":
        store_backend: StorageBackend = MemoryBackend()
    elif backend == "sqlite":
        store_backend = SQLiteBackend(db_path)
    else:
        raise StorageError(f"Unknown storage backend: {backend}")

    return LocalStore(store_backend).open(background=background)
