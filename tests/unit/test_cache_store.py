# =============================================================================
# tests/unit/test_cache_store.py
# Unit Tests for CacheStore
# =============================================================================

import threading
import time

import numpy as np
import pandas as pd
import pytest

from asterix_offline.errors import StorageError, ValidationError
from asterix_offline.offline import CACHE_NAMESPACE, CacheStore, LocalStore, MemoryBackend, Operation
from asterix_offline.offline.cache_store import REGISTRY_KEY


class TestSetAndGet:
    """Test basic cache writes and reads"""

    def test_set_then_get_returns_data(self, cache_store):
        cache_store.set_cache("k", {"results": [1, 2]})

        entry = cache_store.get_cache("k")

        assert entry is not None
        assert entry.data == {"results": [1, 2]}

    def test_expiry_is_timestamp_plus_ttl(self, cache_store, clock):
        entry = cache_store.set_cache("k", [1], {"ttl": 5_000})

        assert entry.metadata.timestamp == clock.now
        assert entry.metadata.expires_at == clock.now + 5_000
        assert entry.metadata.ttl == 5_000

    def test_default_ttl_used_without_metadata(self, cache_store, clock):
        entry = cache_store.set_cache("k", [1])

        assert entry.metadata.ttl == 60_000
        assert entry.metadata.expires_at == clock.now + 60_000

    def test_extra_metadata_kept(self, cache_store):
        cache_store.set_cache("k", [1], {"query": "SELECT 1;", "timestamp": 0})

        entry = cache_store.get_cache("k")

        assert entry.metadata.extra == {"query": "SELECT 1;"}

    def test_missing_key_returns_none(self, cache_store):
        assert cache_store.get_cache("absent") is None

    def test_read_updates_last_accessed(self, cache_store, clock):
        cache_store.set_cache("k", [1])
        clock.advance(1_000)

        entry = cache_store.get_cache("k")

        assert entry.metadata.last_accessed == clock.now

    def test_reads_are_idempotent(self, cache_store):
        """Repeated reads of a fresh entry return the same data"""
        cache_store.set_cache("k", {"rows": [{"a": 1}]})

        first = cache_store.get_cache("k").data
        second = cache_store.get_cache("k").data

        assert first == second == {"rows": [{"a": 1}]}

    def test_numpy_and_pandas_values_are_stored_as_json(self, cache_store):
        df = pd.DataFrame({"id": np.array([1, 2]), "score": [0.5, np.nan]})

        cache_store.set_cache("frame", df)

        assert cache_store.get_cache("frame").data == [
            {"id": 1, "score": 0.5},
            {"id": 2, "score": None},
        ]

    @pytest.mark.parametrize("bad_key", ["", None, 42])
    def test_invalid_key_rejected(self, cache_store, bad_key):
        with pytest.raises(ValidationError):
            cache_store.set_cache(bad_key, [1])

    def test_negative_ttl_rejected(self, cache_store):
        with pytest.raises(ValidationError):
            cache_store.set_cache("k", [1], {"ttl": -1})


class TestExpiry:
    """Test TTL expiry (lazy and sweep)"""

    def test_expired_entry_removed_on_read(self, cache_store, clock, memory_store):
        cache_store.set_cache("k", [1], {"ttl": 1_000})
        clock.advance(1_001)

        assert cache_store.get_cache("k") is None
        assert memory_store.ready().get_item(CACHE_NAMESPACE, "k") is None
        assert "k" not in cache_store.registry()

    def test_entry_valid_at_exact_expiry(self, cache_store, clock):
        cache_store.set_cache("k", [1], {"ttl": 1_000})
        clock.advance(1_000)

        assert cache_store.get_cache("k") is not None

    def test_include_expired_returns_stale_entry(self, cache_store, clock):
        cache_store.set_cache("k", [1], {"ttl": 1_000})
        clock.advance(5_000)

        entry = cache_store.get_cache("k", include_expired=True)

        assert entry is not None
        assert entry.data == [1]
        assert cache_store.is_stale(entry)
        assert "k" in cache_store.registry()

    def test_cleanup_removes_only_expired(self, cache_store, clock):
        cache_store.set_cache("short", [1], {"ttl": 1_000})
        cache_store.set_cache("long", [2], {"ttl": 100_000})
        clock.advance(2_000)

        removed = cache_store.cleanup_expired_cache()

        assert removed == 1
        assert set(cache_store.registry()) == {"long"}
        assert cache_store.get_cache("long") is not None

    def test_cleanup_errors_are_swallowed(self, cache_store, memory_store):
        memory_store.close()

        assert cache_store.cleanup_expired_cache() == 0

    def test_background_sweep_runs(self, cache_store, clock):
        cache_store.set_cache("k", [1], {"ttl": 1})
        clock.advance(10)

        task = cache_store.start_cleanup(interval_ms=20)
        deadline = time.time() + 5
        while cache_store.registry() and time.time() < deadline:
            time.sleep(0.01)
        cache_store.stop_cleanup()

        assert cache_store.registry() == {}
        assert task.runs >= 1
        assert not task.is_running


class TestRemovalAndTTL:
    """Test removal, clearing and TTL updates"""

    def test_remove_cache_updates_registry(self, cache_store):
        cache_store.set_cache("a", [1])
        cache_store.set_cache("b", [2])

        cache_store.remove_cache("a")

        assert cache_store.get_cache("a") is None
        assert set(cache_store.registry()) == {"b"}

    def test_clear_cache(self, cache_store, memory_store):
        cache_store.set_cache("a", [1])
        cache_store.set_cache("b", [2])

        cache_store.clear_cache()

        assert memory_store.ready().items(CACHE_NAMESPACE) == []
        assert cache_store.registry() == {}

    def test_update_ttl_counts_from_now(self, cache_store, clock):
        cache_store.set_cache("k", [1], {"ttl": 1_000})
        clock.advance(500)

        entry = cache_store.update_cache_ttl("k", 10_000)

        assert entry.metadata.expires_at == clock.now + 10_000
        assert cache_store.registry()["k"] == clock.now + 10_000

    def test_update_ttl_extends_life(self, cache_store, clock):
        cache_store.set_cache("k", [1], {"ttl": 1_000})
        cache_store.update_cache_ttl("k", 10_000)
        clock.advance(5_000)

        assert cache_store.get_cache("k") is not None

    def test_update_ttl_missing_key_raises(self, cache_store):
        with pytest.raises(StorageError):
            cache_store.update_cache_ttl("missing", 1_000)

    def test_registry_matches_entries(self, cache_store, memory_store):
        for key in ("a", "b", "c"):
            cache_store.set_cache(key, [key])
        cache_store.remove_cache("b")

        stored_keys = {k for k, _ in memory_store.ready().items(CACHE_NAMESPACE)}
        registry = memory_store.ready().get_item("meta", REGISTRY_KEY)

        assert stored_keys == set(registry) == {"a", "c"}


class TestStats:
    """Test get_cache_stats"""

    def test_stats_counts(self, cache_store, clock, operation_queue):
        cache_store.set_cache("fresh", [1], {"ttl": 100_000})
        cache_store.set_cache("old", [2], {"ttl": 10})
        clock.advance(100)
        operation_queue.queue_operation("op-1", Operation(type="INSERT", query="INSERT INTO x {};"))

        stats = cache_store.get_cache_stats(operation_queue)

        assert stats["cache_entries"] == 2
        assert stats["expired_entries"] == 1
        assert stats["estimated_size"] > 0
        assert stats["queued_operations"] == 1

    def test_stats_without_queue(self, cache_store):
        stats = cache_store.get_cache_stats()

        assert stats == {
            "cache_entries": 0,
            "expired_entries": 0,
            "estimated_size": 0,
            "queued_operations": 0,
        }


def test_invalid_default_ttl_rejected(memory_store):
    with pytest.raises(ValidationError):
        CacheStore(memory_store, default_ttl_ms=-5)


class InterleavingBackend(MemoryBackend):
    """Runs a hook once, right after the first cache read of a key"""

    def __init__(self):
        super().__init__()
        self.hook = None

    def get_item(self, namespace, key):
        raw = super().get_item(namespace, key)
        if namespace == CACHE_NAMESPACE and self.hook is not None:
            hook, self.hook = self.hook, None
            hook()
        return raw


class TestConcurrentAccess:
    """Test that reads never overwrite a newer write"""

    @pytest.fixture
    def backend(self):
        return InterleavingBackend()

    @pytest.fixture
    def cache(self, backend, clock):
        store = LocalStore(backend).open()
        yield CacheStore(store, default_ttl_ms=1_000, clock=clock)
        store.close()

    def assert_new_value_kept(self, cache):
        entry = cache.get_cache("k")

        assert entry.data == "new"
        assert entry.metadata.ttl == 99_999
        assert cache.registry()["k"] == entry.metadata.expires_at

    def test_write_during_read_same_thread(self, cache, backend, clock):
        cache.set_cache("k", "old")
        clock.advance(10)
        backend.hook = lambda: cache.set_cache("k", "new", {"ttl": 99_999})

        entry = cache.get_cache("k")

        assert entry.data == "old"
        self.assert_new_value_kept(cache)

    def test_write_from_other_thread_waits_for_read(self, cache, backend, clock):
        cache.set_cache("k", "old")
        clock.advance(10)
        writer = threading.Thread(target=cache.set_cache, args=("k", "new", {"ttl": 99_999}))

        def start_writer():
            writer.start()
            writer.join(timeout=0.2)

        backend.hook = start_writer

        cache.get_cache("k")
        writer.join(timeout=5)

        assert not writer.is_alive()
        self.assert_new_value_kept(cache)
