# =============================================================================
# tests/conftest.py
# Pytest Configuration and Fixtures
# =============================================================================

import threading
from typing import Any, Dict, List, Optional

import pytest

from asterix_offline.api import RemoteExecutor
from asterix_offline.config import OfflineSettings
from asterix_offline.errors import RemoteExecutionError


# =============================================================================
# TEST DOUBLES
# =============================================================================

class FakeClock:
    """Manually advanced epoch-ms clock"""

    def __init__(self, start: int = 1_700_000_000_000):
        self.now = start

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int) -> int:
        self.now += ms
        return self.now


class FakeExecutor(RemoteExecutor):
    """
    In-memory remote executor.

    Every call is recorded. Statements listed in `failures` raise
    RemoteExecutionError; statements listed in `rejections` get a
    non-success response. An optional `gate` (threading.Event) blocks
    execute() until it is set.
    """

    def __init__(self, response: Optional[Dict[str, Any]] = None):
        self.response = response or {"status": "success", "results": [{"ok": True}]}
        self.calls: List[str] = []
        self.failures: set = set()
        self.rejections: set = set()
        self.gate: Optional[threading.Event] = None
        self.entered = threading.Event()
        self.closed = False
        self._lock = threading.Lock()

    def execute(self, query: str) -> Dict[str, Any]:
        with self._lock:
            self.calls.append(query)
        self.entered.set()

        if self.gate is not None:
            self.gate.wait(timeout=5)

        if query in self.failures:
            raise RemoteExecutionError(f"Remote failure for: {query}", status_code=500)
        if query in self.rejections:
            return {"status": "fatal", "errors": [{"msg": "rejected"}]}
        return dict(self.response)

    def close(self) -> None:
        self.closed = True


# =============================================================================
# CORE FIXTURES
# =============================================================================

@pytest.fixture
def clock():
    """Fake clock shared by cache and queue"""
    return FakeClock()


@pytest.fixture
def memory_store():
    """Opened in-memory LocalStore"""
    from asterix_offline.offline import create_local_store

    store = create_local_store("memory")
    yield store
    store.close()


@pytest.fixture
def sqlite_store(tmp_path):
    """Opened SQLite LocalStore in a temporary directory"""
    from asterix_offline.offline import create_local_store

    store = create_local_store("sqlite", tmp_path / "offline.db")
    yield store
    store.close()


@pytest.fixture
def cache_store(memory_store, clock):
    from asterix_offline.offline import CacheStore

    cache = CacheStore(memory_store, default_ttl_ms=60_000, clock=clock)
    yield cache
    cache.stop_cleanup()


@pytest.fixture
def operation_queue(memory_store, clock):
    from asterix_offline.offline import OperationQueue

    return OperationQueue(memory_store, clock=clock)


@pytest.fixture
def fake_executor():
    return FakeExecutor()


@pytest.fixture
def connectivity():
    """Manual connectivity, initially online"""
    from asterix_offline.offline import ManualConnectivity

    return ManualConnectivity(online=True)


@pytest.fixture
def coordinator(operation_queue, fake_executor, connectivity):
    """Coordinator with a timer slow enough never to fire during a test"""
    from asterix_offline.offline import SyncCoordinator

    sync = SyncCoordinator(
        operation_queue,
        fake_executor,
        connectivity,
        sync_interval_ms=600_000,
    )
    yield sync
    sync.close()


@pytest.fixture
def recorder(coordinator):
    """Records every event emitted by the coordinator"""
    from asterix_offline.offline import EventRecorder

    return EventRecorder.attach(coordinator.events)


@pytest.fixture
def settings():
    """Memory-backed settings with slow timers"""
    return OfflineSettings(
        storage_backend="memory",
        cache_ttl_ms=60_000,
        sync_interval_ms=600_000,
        cleanup_interval_ms=600_000,
    )


@pytest.fixture
def gateway(settings, fake_executor, connectivity, clock):
    """Started OfflineGateway wired to test doubles"""
    from asterix_offline.offline import create_gateway

    gw = create_gateway(
        settings,
        executor=fake_executor,
        connectivity=connectivity,
        clock=clock,
    )
    yield gw
    gw.close()


@pytest.fixture
def gateway_events(gateway):
    from asterix_offline.offline import EventRecorder

    return EventRecorder.attach(gateway.coordinator.events)


@pytest.fixture
def executor_factory():
    """Builds extra FakeExecutors (e.g. one per simulated process)"""
    return FakeExecutor
