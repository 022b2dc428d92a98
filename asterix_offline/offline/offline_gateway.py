# =============================================================================
# asterix_offline/offline/offline_gateway.py
# Offline Gateway - Single Entry Point for Queries Online and Offline
# =============================================================================
"""
OfflineGateway - the API applications use for every SQL++ statement.

Routing:
- Reads (cache on):  online -> remote + write-through cache
                     offline -> cached result (stale results flagged)
- Reads (cache off): online -> remote, offline -> NonCacheableOfflineError
- Writes:            online -> remote, offline -> queued for sync

Usage:
------
from asterix_offline.offline import get_gateway

gateway = get_gateway()
rows = gateway.execute_query("SELECT VALUE u FROM Users u;")
gateway.execute_query('INSERT INTO Users ({"id": 1});')   # queued when offline

print(gateway.is_online)
print(gateway.pending_operation_count())
"""

from __future__ import annotations
import threading
import uuid
from typing import Any, Callable, Dict, Mapping, Optional
import logging

from asterix_offline.api import HttpQueryExecutor, RemoteExecutor
from asterix_offline.config import OfflineSettings, load_settings
from asterix_offline.errors import (
    NonCacheableOfflineError,
    OfflineNoCacheError,
    OfflineQueueDisabledError,
    ValidationError,
    ErrorContext,
    safe_execute,
)
from asterix_offline.logging import configure_package_logging
from asterix_offline.offline.cache_store import CacheStore
from asterix_offline.offline.connectivity import ConnectivityProvider, PollingConnectivity
from asterix_offline.offline.events import EventType, Handler, Subscription
from asterix_offline.offline.local_store import LocalStore, create_local_store
from asterix_offline.offline.operation_queue import Operation, OperationQueue
from asterix_offline.offline.sync_coordinator import SyncCoordinator, SyncResult
from asterix_offline.query import QueryClassifier, fingerprint
from asterix_offline.utils import now_ms

logger = logging.getLogger(__name__)

QUEUED_MESSAGE = "Operation queued for execution when online"
CONNECTION_PROBE = "SELECT 1;"


class OfflineGateway:
    """
    Query routing between the remote executor, the result cache and the
    operation queue.

    Build one with create_gateway(); the constructor only wires parts that
    already exist.
    """

    def __init__(
        self,
        settings: OfflineSettings,
        store: LocalStore,
        cache: CacheStore,
        queue: OperationQueue,
        coordinator: SyncCoordinator,
        classifier: Optional[QueryClassifier] = None,
    ):
        self.settings = settings
        self.store = store
        self.cache = cache
        self.queue = queue
        self.coordinator = coordinator
        self.classifier = classifier or QueryClassifier()

    # =========================================================================
    # PROPERTIES
    # =========================================================================

    @property
    def executor(self) -> RemoteExecutor:
        return self.coordinator.executor

    @property
    def connectivity(self) -> ConnectivityProvider:
        return self.coordinator.connectivity

    @property
    def is_online(self) -> bool:
        return self.coordinator.is_online

    def cache_key(self, query: str, params: Optional[Mapping[str, Any]] = None) -> str:
        return fingerprint(query, namespace=self.settings.namespace, params=params)

    # =========================================================================
    # QUERY EXECUTION
    # =========================================================================

    def execute_query(
        self,
        query: str,
        params: Optional[Mapping[str, Any]] = None,
        data: Any = None,
        cache_enabled: Optional[bool] = None,
    ) -> Any:
        """
        Execute a statement, online or offline.

        Args:
            query: SQL++ statement
            params: Query parameters (part of the cache key, kept with queued ops)
            data: Payload stored alongside a queued write
            cache_enabled: Per-call override of settings.cache_enabled

        Returns:
            Remote result, cached result, or a queued receipt
            {"status": "queued", "message", "operation_id"}

        Raises:
            ValidationError: empty query
            OfflineNoCacheError: offline read with nothing cached
            NonCacheableOfflineError: offline read with caching off
            OfflineQueueDisabledError: offline write with queuing off
            RemoteExecutionError: online remote failure (propagated)
        """
        if not isinstance(query, str) or not query.strip():
            raise ValidationError("Query must be a non-empty string", field="query", value=query)

        use_cache = self.settings.cache_enabled if cache_enabled is None else cache_enabled

        if self.classifier.is_read_only(query):
            if use_cache:
                return self._execute_cached_read(query, params)
            if not self.is_online:
                raise NonCacheableOfflineError("Cannot execute non-cacheable query while offline")
            return self.executor.execute(query)

        if self.is_online:
            return self.executor.execute(query)

        return self._queue_write(query, params, data)

    def _execute_cached_read(self, query: str, params: Optional[Mapping[str, Any]]) -> Any:
        key = self.cache_key(query, params)

        if self.is_online:
            result = self.executor.execute(query)
            safe_execute(
                self.cache.set_cache,
                key,
                result,
                {"query": query, "params": dict(params or {}), "ttl": self.settings.cache_ttl_ms},
                context="Write-through cache",
            )
            return result

        entry = self.cache.get_cache(key, include_expired=True)
        if entry is None:
            raise OfflineNoCacheError(
                "Cannot execute query: offline and no valid cache exists",
                cache_key=key,
            )

        if not self.cache.is_stale(entry):
            logger.debug(f"Serving from cache: {key}")
            return entry.data

        logger.debug(f"Offline fallback: serving expired cache for {key}")
        return _flag_stale(entry.data, entry.metadata.timestamp)

    def _queue_write(self, query: str, params: Optional[Mapping[str, Any]], data: Any) -> Dict[str, Any]:
        operation_type = self.classifier.operation_type_of(query)

        if not self.settings.queue_enabled:
            raise OfflineQueueDisabledError(
                "Cannot execute write while offline: offline queue is disabled",
                operation_type=operation_type,
            )

        operation_id = str(uuid.uuid4())
        self.coordinator.queue_operation(
            operation_id,
            Operation(
                type=operation_type,
                query=query,
                data=data,
                options=dict(params or {}),
            ),
        )

        logger.info(f"Queued {operation_type} operation {operation_id} while offline")
        return {
            "status": "queued",
            "message": QUEUED_MESSAGE,
            "operation_id": operation_id,
        }

    # =========================================================================
    # CACHE & SYNC CONTROLS
    # =========================================================================

    def clear_query_cache(
        self,
        query: Optional[str] = None,
        params: Optional[Mapping[str, Any]] = None,
    ) -> None:
        """Drop the cached result of one query, or all cached results."""
        if query:
            self.cache.remove_cache(self.cache_key(query, params))
        else:
            self.cache.clear_cache()

    def force_synchronization(self) -> SyncResult:
        """Run a sync pass now."""
        return self.coordinator.sync()

    def pending_operation_count(self) -> int:
        return self.queue.count()

    def get_cache_stats(self) -> Dict[str, int]:
        return self.cache.get_cache_stats(self.queue)

    def subscribe(self, event_type: Optional[EventType], handler: Handler) -> Subscription:
        """Receive coordinator events (None for every event)."""
        return self.coordinator.subscribe(event_type, handler)

    def is_connected(self) -> bool:
        """Probe the remote service with a trivial query."""
        try:
            self.executor.execute(CONNECTION_PROBE)
            return True
        except Exception as e:
            logger.debug(f"Connection probe failed: {e}")
            return False

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    def close(self) -> None:
        """Stop timers and release the store, executor and connectivity."""
        for name, release in (
            ("sync coordinator", self.coordinator.close),
            ("cache sweep", self.cache.stop_cleanup),
            ("connectivity", self.connectivity.close),
            ("remote executor", self.executor.close),
            ("local store", self.store.close),
        ):
            with ErrorContext(f"Closing {name}", suppress=True):
                release()
        logger.info("Offline gateway closed")

    def __enter__(self) -> OfflineGateway:
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()


def _flag_stale(data: Any, cached_at: int) -> Dict[str, Any]:
    """Mark a result served from an expired cache entry."""
    flags = {"_from_cache": True, "_cache_timestamp": cached_at}
    if isinstance(data, Mapping):
        return {**data, **flags}
    return {"results": data, **flags}


# =============================================================================
# FACTORY
# =============================================================================

def create_gateway(
    settings: Optional[OfflineSettings] = None,
    executor: Optional[RemoteExecutor] = None,
    connectivity: Optional[ConnectivityProvider] = None,
    store: Optional[LocalStore] = None,
    clock: Callable[[], int] = now_ms,
) -> OfflineGateway:
    """
    Wire and start a gateway.

    Args:
        settings: Defaults to OfflineSettings()
        executor: Defaults to an HttpQueryExecutor for settings.base_url
        connectivity: Defaults to a PollingConnectivity on settings.base_url
        store: Defaults to an opened store for settings.storage_backend
        clock: Epoch-ms clock for cache and queue timestamps

    Returns:
        Started OfflineGateway
    """
    settings = settings or OfflineSettings()
    configure_package_logging(settings)

    if store is None:
        store = create_local_store(settings.storage_backend, settings.storage_path)
    if executor is None:
        executor = HttpQueryExecutor.from_settings(settings)
    if connectivity is None:
        connectivity = PollingConnectivity(settings.base_url)
        connectivity.start_monitoring()

    cache = CacheStore(store, default_ttl_ms=settings.cache_ttl_ms, clock=clock)
    queue = OperationQueue(store, clock=clock)
    coordinator = SyncCoordinator(
        queue,
        executor,
        connectivity,
        sync_interval_ms=settings.sync_interval_ms,
    )

    gateway = OfflineGateway(settings, store, cache, queue, coordinator)

    if settings.cache_enabled:
        cache.start_cleanup(settings.cleanup_interval_ms)
    coordinator.start()

    logger.info(
        f"Offline gateway ready: backend={settings.storage_backend}, "
        f"online={coordinator.is_online}"
    )
    return gateway


# Singleton accessor
_gateway: Optional[OfflineGateway] = None
_gateway_lock = threading.Lock()


def get_gateway(settings: Optional[OfflineSettings] = None) -> OfflineGateway:
    """
    Get the process-wide OfflineGateway.

    The first call builds it from `settings` (or load_settings()); later
    calls return the same instance.
    """
    global _gateway
    if _gateway is None:
        with _gateway_lock:
            if _gateway is None:
                _gateway = create_gateway(settings or load_settings())
    return _gateway


def reset_gateway() -> None:
    """Close and forget the process-wide gateway."""
    global _gateway
    with _gateway_lock:
        if _gateway is not None:
            _gateway.close()
            _gateway = None
