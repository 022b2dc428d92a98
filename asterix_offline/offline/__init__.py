# =============================================================================
# asterix_offline/offline/__init__.py
# Offline Cache, Operation Queue and Sync for the SQL++ Query Service
# =============================================================================
"""
Offline Module

Lets an application keep issuing SQL++ statements while the query service
is unreachable: reads are answered from a local result cache, writes are
queued and replayed once connectivity returns.

Architecture:
------------
┌─────────────────────────────────────────────────────────────────┐
│                     OFFLINE ARCHITECTURE                         │
├─────────────────────────────────────────────────────────────────┤
│                                                                  │
│   ┌──────────────────────────────────────────────────────────┐  │
│   │                    OfflineGateway                         │  │
│   │        (execute_query - apps use this only)               │  │
│   └──────────────────────────────────────────────────────────┘  │
│              │                 │                    │            │
│              ▼                 ▼                    ▼            │
│   ┌──────────────────┐ ┌──────────────┐ ┌──────────────────┐    │
│   │   CacheStore     │ │ SyncCoordin. │ │ RemoteExecutor   │    │
│   │ (TTL + sweep)    │ │ (timer+events│ │ (HTTP /query/    │    │
│   └──────────────────┘ └──────────────┘ │  service)        │    │
│              │                 │        └──────────────────┘    │
│              │                 ▼                 ▲               │
│              │        ┌──────────────────┐       │               │
│              │        │ OperationQueue   │───────┘ replay        │
│              │        └──────────────────┘                       │
│              ▼                 ▼                                 │
│   ┌──────────────────────────────────────────────────────────┐  │
│   │          LocalStore (SQLite / memory, ready barrier)      │  │
│   └──────────────────────────────────────────────────────────┘  │
│                                                                  │
│   ConnectivityProvider (manual / polling) ──► online / offline   │
└─────────────────────────────────────────────────────────────────┘

Usage:
------
from asterix_offline.offline import get_gateway, EventType

gateway = get_gateway()
gateway.subscribe(EventType.SYNC_COMPLETE, lambda e: print(e["operations_synced"]))

result = gateway.execute_query("SELECT VALUE c FROM Customers c;")
print(gateway.is_online)
print(gateway.pending_operation_count())
"""

from asterix_offline.offline.local_store import (
    LocalStore,
    StorageBackend,
    MemoryBackend,
    SQLiteBackend,
    create_local_store,
    CACHE_NAMESPACE,
    META_NAMESPACE,
    QUEUE_NAMESPACE,
)

from asterix_offline.offline.scheduling import ScheduledTask

from asterix_offline.offline.events import (
    EventChannel,
    EventRecorder,
    EventType,
    SyncEvent,
    Subscription,
)

from asterix_offline.offline.cache_store import (
    CacheStore,
    CacheEntry,
    CacheMetadata,
)

from asterix_offline.offline.operation_queue import (
    OperationQueue,
    Operation,
    OperationMetadata,
    OperationStatus,
    QueuedOperation,
)

from asterix_offline.offline.connectivity import (
    ConnectivityProvider,
    ManualConnectivity,
    PollingConnectivity,
)

from asterix_offline.offline.sync_coordinator import (
    SyncCoordinator,
    SyncResult,
    SyncState,
    SyncStatus,
)

from asterix_offline.offline.offline_gateway import (
    OfflineGateway,
    create_gateway,
    get_gateway,
    reset_gateway,
)

__all__ = [
    # Storage
    "LocalStore",
    "StorageBackend",
    "MemoryBackend",
    "SQLiteBackend",
    "create_local_store",
    "CACHE_NAMESPACE",
    "META_NAMESPACE",
    "QUEUE_NAMESPACE",
    "ScheduledTask",
    # Events
    "EventChannel",
    "EventRecorder",
    "EventType",
    "SyncEvent",
    "Subscription",
    # Cache
    "CacheStore",
    "CacheEntry",
    "CacheMetadata",
    # Queue
    "OperationQueue",
    "Operation",
    "OperationMetadata",
    "OperationStatus",
    "QueuedOperation",
    # Connectivity
    "ConnectivityProvider",
    "ManualConnectivity",
    "PollingConnectivity",
    # Sync
    "SyncCoordinator",
    "SyncResult",
    "SyncState",
    "SyncStatus",
    # Gateway (Main API)
    "OfflineGateway",
    "create_gateway",
    "get_gateway",
    "reset_gateway",
]
