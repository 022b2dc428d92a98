# =============================================================================
# asterix_offline/offline/cache_store.py
# Query Result Cache with TTL Expiry
# =============================================================================
"""
CacheStore - persists read-query results keyed by a deterministic fingerprint.

Features:
- TTL per entry (expires_at = timestamp + ttl)
- Lazy expiry on read, plus a registry (key -> expires_at) so the
  background sweep never scans every entry
- Stale reads on request (used while offline)
- Statistics tolerant of partial failures
"""

from __future__ import annotations
import threading
from dataclasses import dataclass, field, asdict
from typing import Any, Callable, Dict, Mapping, Optional, TYPE_CHECKING
import logging

from asterix_offline.errors import (
    OfflineSyncError,
    StorageError,
    ValidationError,
    error_boundary,
)
from asterix_offline.offline.local_store import (
    CACHE_NAMESPACE,
    META_NAMESPACE,
    LocalStore,
)
from asterix_offline.offline.scheduling import ScheduledTask
from asterix_offline.utils import estimate_size, now_ms

if TYPE_CHECKING:
    from asterix_offline.offline.operation_queue import OperationQueue

logger = logging.getLogger(__name__)

REGISTRY_KEY = "cache_registry"
DEFAULT_TTL_MS = 3_600_000          # 1 hour
DEFAULT_CLEANUP_INTERVAL_MS = 3_600_000

# Metadata keys owned by the store; callers cannot override them
_RESERVED_METADATA = {"timestamp", "expires_at", "last_accessed", "ttl"}


@dataclass
class CacheMetadata:
    """Bookkeeping for one cache entry (times in epoch ms)."""
    timestamp: int
    expires_at: int
    ttl: int
    last_accessed: Optional[int] = None
    extra: Dict[str, Any] = field(default_factory=dict)

    def is_expired(self, now: int) -> bool:
        return self.expires_at < now

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any]) -> CacheMetadata:
        timestamp = int(raw.get("timestamp", 0))
        ttl = int(raw.get("ttl", 0))
        return cls(
            timestamp=timestamp,
            expires_at=int(raw.get("expires_at", timestamp + ttl)),
            ttl=ttl,
            last_accessed=raw.get("last_accessed"),
            extra=dict(raw.get("extra") or {}),
        )


@dataclass
class CacheEntry:
    """A cached query result."""
    key: str
    data: Any
    metadata: CacheMetadata

    def to_dict(self) -> Dict[str, Any]:
        return {"data": self.data, "metadata": asdict(self.metadata)}

    @classmethod
    def from_dict(cls, key: str, raw: Mapping[str, Any]) -> CacheEntry:
        return cls(
            key=key,
            data=raw.get("data"),
            metadata=CacheMetadata.from_dict(raw.get("metadata") or {}),
        )


def _validate_key(key: Any) -> None:
    if not key or not isinstance(key, str):
        raise ValidationError("Invalid cache key: must be a non-empty string", field="key", value=key)


def _validate_ttl(ttl: Any) -> int:
    if isinstance(ttl, bool) or not isinstance(ttl, int) or ttl < 0:
        raise ValidationError("TTL must be a non-negative integer (ms)", field="ttl", value=ttl)
    return ttl


class CacheStore:
    """
    Read-result cache on top of a LocalStore.

    Usage:
        cache = CacheStore(store, default_ttl_ms=60_000)
        cache.set_cache(key, result, {"query": query})
        entry = cache.get_cache(key)   # None when absent or expired
    """

    def __init__(
        self,
        store: LocalStore,
        default_ttl_ms: int = DEFAULT_TTL_MS,
        clock: Callable[[], int] = now_ms,
    ):
        self._store = store
        self.default_ttl_ms = _validate_ttl(default_ttl_ms)
        self._clock = clock
        # Serializes entry and registry read-modify-write between callers and the sweeper
        self._registry_lock = threading.RLock()
        self._cleanup_task: Optional[ScheduledTask] = None

    # =========================================================================
    # REGISTRY
    # =========================================================================

    def _get_registry(self) -> Dict[str, int]:
        backend = self._store.ready()
        return dict(backend.get_item(META_NAMESPACE, REGISTRY_KEY) or {})

    def _save_registry(self, registry: Dict[str, int]) -> None:
        backend = self._store.ready()
        backend.set_item(META_NAMESPACE, REGISTRY_KEY, registry)

    def _registry_put(self, key: str, expires_at: int) -> None:
        with self._registry_lock:
            registry = self._get_registry()
            registry[key] = expires_at
            self._save_registry(registry)

    def _registry_remove(self, key: str) -> None:
        with self._registry_lock:
            registry = self._get_registry()
            if key in registry:
                del registry[key]
                self._save_registry(registry)

    def registry(self) -> Dict[str, int]:
        """Snapshot of key -> expires_at."""
        with self._registry_lock:
            return self._get_registry()

    def _touch(self, backend, entry: CacheEntry, raw: Dict[str, Any], now: int) -> None:
        """Record a read, unless the stored entry was replaced meanwhile."""
        if backend.get_item(CACHE_NAMESPACE, entry.key) != raw:
            return

        entry.metadata.last_accessed = now
        backend.set_item(CACHE_NAMESPACE, entry.key, entry.to_dict())

    def is_stale(self, entry: CacheEntry) -> bool:
        """True once the entry's expiry time has passed."""
        return entry.metadata.is_expired(self._clock())

    # =========================================================================
    # ENTRY OPERATIONS
    # =========================================================================

    def set_cache(
        self,
        key: str,
        data: Any,
        metadata: Optional[Mapping[str, Any]] = None,
    ) -> CacheEntry:
        """
        Store data under a key.

        Args:
            key: Cache key (see query.fingerprint)
            data: Query result
            metadata: Optional metadata; "ttl" (ms) overrides the default,
                anything else is kept under metadata.extra

        Returns:
            The stored CacheEntry

        Raises:
            ValidationError: invalid key or ttl
            StorageError: backend failure
        """
        _validate_key(key)
        metadata = dict(metadata or {})
        ttl = metadata.get("ttl")
        ttl = self.default_ttl_ms if ttl is None else _validate_ttl(ttl)

        now = self._clock()
        entry = CacheEntry(
            key=key,
            data=data,
            metadata=CacheMetadata(
                timestamp=now,
                expires_at=now + ttl,
                ttl=ttl,
                extra={k: v for k, v in metadata.items() if k not in _RESERVED_METADATA},
            ),
        )

        try:
            backend = self._store.ready()
            with self._registry_lock:
                backend.set_item(CACHE_NAMESPACE, key, entry.to_dict())
                self._registry_put(key, entry.metadata.expires_at)
        except OfflineSyncError:
            raise
        except Exception as e:
            logger.error(f"Cache error for key {key}: {e}")
            raise StorageError(
                f"Failed to cache data for key {key}: {e}",
                namespace=CACHE_NAMESPACE,
                key=key,
            ) from e

        logger.debug(f"Cached data for key: {key}")
        return entry

    def get_cache(self, key: str, include_expired: bool = False) -> Optional[CacheEntry]:
        """
        Retrieve a cached entry.

        Args:
            key: Cache key
            include_expired: Return expired entries instead of deleting them

        Returns:
            CacheEntry, or None if absent (or expired and not requested)
        """
        _validate_key(key)

        try:
            backend = self._store.ready()
            with self._registry_lock:
                raw = backend.get_item(CACHE_NAMESPACE, key)
                if raw is None:
                    logger.debug(f"No cached data found for key: {key}")
                    return None

                entry = CacheEntry.from_dict(key, raw)
                now = self._clock()

                if entry.metadata.is_expired(now) and not include_expired:
                    logger.debug(f"Cache entry expired for key: {key}")
                    backend.remove_item(CACHE_NAMESPACE, key)
                    self._registry_remove(key)
                    return None

                self._touch(backend, entry, raw, now)
                return entry

        except OfflineSyncError:
            raise
        except Exception as e:
            logger.error(f"Cache retrieval error for key {key}: {e}")
            raise StorageError(
                f"Failed to retrieve cache for key {key}: {e}",
                namespace=CACHE_NAMESPACE,
                key=key,
            ) from e

    def remove_cache(self, key: str) -> None:
        """Remove one entry and its registry record."""
        _validate_key(key)

        try:
            backend = self._store.ready()
            with self._registry_lock:
                backend.remove_item(CACHE_NAMESPACE, key)
                self._registry_remove(key)
        except OfflineSyncError:
            raise
        except Exception as e:
            logger.error(f"Cache removal error for key {key}: {e}")
            raise StorageError(
                f"Failed to remove cache for key {key}: {e}",
                namespace=CACHE_NAMESPACE,
                key=key,
            ) from e

        logger.debug(f"Removed cache entry for key: {key}")

    def clear_cache(self) -> None:
        """Remove every entry and the registry."""
        try:
            backend = self._store.ready()
            with self._registry_lock:
                backend.clear(CACHE_NAMESPACE)
                backend.remove_item(META_NAMESPACE, REGISTRY_KEY)
        except OfflineSyncError:
            raise
        except Exception as e:
            logger.error(f"Error clearing cache: {e}")
            raise StorageError(f"Failed to clear cache: {e}", namespace=CACHE_NAMESPACE) from e

        logger.info("Cache cleared")

    def update_cache_ttl(self, key: str, new_ttl: int) -> CacheEntry:
        """
        Give an entry a new lifetime counted from now.

        Raises:
            StorageError: entry missing or backend failure
        """
        _validate_key(key)
        _validate_ttl(new_ttl)

        try:
            backend = self._store.ready()
            with self._registry_lock:
                raw = backend.get_item(CACHE_NAMESPACE, key)
                if raw is None:
                    raise StorageError(
                        f"Cache entry {key} not found",
                        namespace=CACHE_NAMESPACE,
                        key=key,
                    )

                entry = CacheEntry.from_dict(key, raw)
                entry.metadata.ttl = new_ttl
                entry.metadata.expires_at = self._clock() + new_ttl

                backend.set_item(CACHE_NAMESPACE, key, entry.to_dict())
                self._registry_put(key, entry.metadata.expires_at)
        except OfflineSyncError:
            raise
        except Exception as e:
            logger.error(f"Error updating TTL for {key}: {e}")
            raise StorageError(
                f"Failed to update TTL: {e}",
                namespace=CACHE_NAMESPACE,
                key=key,
            ) from e

        logger.debug(f"Updated TTL for cache key: {key}")
        return entry

    # =========================================================================
    # EXPIRY SWEEP
    # =========================================================================

    @error_boundary(default_return=0)
    def cleanup_expired_cache(self) -> int:
        """
        Remove every entry whose registry expiry is in the past.

        Returns:
            Number of removed entries (0 on error; errors are only logged)
        """
        backend = self._store.ready()
        now = self._clock()
        removed = 0

        with self._registry_lock:
            registry = self._get_registry()
            for key, expires_at in list(registry.items()):
                if expires_at < now:
                    backend.remove_item(CACHE_NAMESPACE, key)
                    del registry[key]
                    removed += 1

            if removed:
                self._save_registry(registry)

        if removed:
            logger.debug(f"Removed {removed} expired cache entries")
        return removed

    def start_cleanup(self, interval_ms: int = DEFAULT_CLEANUP_INTERVAL_MS) -> ScheduledTask:
        """Start the background expiry sweep (independent of foreground calls)."""
        if self._cleanup_task is not None and self._cleanup_task.is_running:
            return self._cleanup_task

        self._cleanup_task = ScheduledTask(
            self.cleanup_expired_cache,
            interval_ms,
            name="CacheSweep",
        ).start()
        return self._cleanup_task

    def stop_cleanup(self) -> None:
        if self._cleanup_task is not None:
            self._cleanup_task.cancel(wait=True)
            self._cleanup_task = None

    # =========================================================================
    # STATISTICS
    # =========================================================================

    def get_cache_stats(self, queue: Optional[OperationQueue] = None) -> Dict[str, int]:
        """
        Aggregate statistics.

        Returns:
            Dict with cache_entries, expired_entries, estimated_size,
            queued_operations
        """
        try:
            backend = self._store.ready()
            registry = self.registry()
            now = self._clock()

            size_estimate = 0
            expired = 0
            for key, expires_at in registry.items():
                if expires_at < now:
                    expired += 1
                try:
                    raw = backend.get_item(CACHE_NAMESPACE, key)
                    if raw is not None:
                        size_estimate += estimate_size(raw)
                except Exception as e:
                    logger.debug(f"Skipping size estimate for {key}: {e}")

            queued = queue.count() if queue is not None else 0

        except OfflineSyncError:
            raise
        except Exception as e:
            logger.error(f"Error getting cache stats: {e}")
            raise StorageError(f"Failed to get cache stats: {e}") from e

        return {
            "cache_entries": len(registry),
            "expired_entries": expired,
            "estimated_size": size_estimate,
            "queued_operations": queued,
        }
