# =============================================================================
# asterix_offline/offline/sync_coordinator.py
# Single-Worker Synchronization of Queued Operations
# =============================================================================
"""
SyncCoordinator - replays queued write operations against the remote store.

Features:
- At most one sync pass per instance (non-blocking busy lock)
- Per-operation failures reported as sync_conflict, never fatal to a pass
- Periodic sync timer driven by connectivity edges
- Lifecycle events on a typed EventChannel

Failed operations stay queued untouched (no retry counting, no backoff);
the next pass simply tries them again.
"""

from __future__ import annotations
import threading
from dataclasses import asdict, dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Union
import logging

from asterix_offline.api import RemoteExecutor
from asterix_offline.errors import safe_execute
from asterix_offline.logging import LogContext
from asterix_offline.offline.connectivity import ConnectivityProvider
from asterix_offline.offline.events import EventChannel, EventType, Subscription, Handler
from asterix_offline.offline.operation_queue import (
    Operation,
    OperationQueue,
    QueuedOperation,
)
from asterix_offline.offline.scheduling import ScheduledTask
from asterix_offline.query import SYNCABLE_TYPES

logger = logging.getLogger(__name__)

DEFAULT_SYNC_INTERVAL_MS = 5_000


class SyncState(str, Enum):
    IDLE = "idle"
    SYNCING = "syncing"


class SyncStatus(str, Enum):
    """How a sync() call ended."""
    COMPLETED = "completed"
    SKIPPED = "skipped"     # offline
    BUSY = "busy"           # another pass holds the busy flag
    ERROR = "error"         # pass aborted (e.g. queue read failure)


@dataclass
class SyncResult:
    """Summary returned by sync()."""
    status: SyncStatus
    total: int = 0
    operations_synced: int = 0
    conflicts: List[str] = field(default_factory=list)
    error: Optional[str] = None


@dataclass
class SyncStats:
    """Running counters across passes."""
    last_sync: Optional[datetime] = None
    last_sync_success: Optional[datetime] = None
    total_synced: int = 0
    total_conflicts: int = 0
    passes: int = 0


class OperationRejected(Exception):
    """Internal: one operation could not be applied remotely."""


class SyncCoordinator:
    """
    Sync state machine for one operation queue.

    Usage:
        coordinator = SyncCoordinator(queue, executor, connectivity)
        coordinator.subscribe(EventType.SYNC_COMPLETE, on_complete)
        coordinator.start()          # follow connectivity edges
        coordinator.sync()           # force a pass now
        coordinator.close()
    """

    def __init__(
        self,
        queue: OperationQueue,
        executor: RemoteExecutor,
        connectivity: ConnectivityProvider,
        sync_interval_ms: int = DEFAULT_SYNC_INTERVAL_MS,
        events: Optional[EventChannel] = None,
    ):
        self.queue = queue
        self.executor = executor
        self.connectivity = connectivity
        self.sync_interval_ms = sync_interval_ms
        self.events = events or EventChannel()
        self.stats = SyncStats()

        self._busy = threading.Lock()
        self._timer: Optional[ScheduledTask] = None
        self._timer_lock = threading.Lock()
        self._started = False

    # =========================================================================
    # PROPERTIES
    # =========================================================================

    @property
    def is_online(self) -> bool:
        return self.connectivity.is_online

    @property
    def is_syncing(self) -> bool:
        return self._busy.locked()

    @property
    def state(self) -> SyncState:
        return SyncState.SYNCING if self.is_syncing else SyncState.IDLE

    @property
    def timer_running(self) -> bool:
        return self._timer is not None and self._timer.is_running

    def subscribe(self, event_type: Optional[EventType], handler: Handler) -> Subscription:
        """Register an event handler (None for every event)."""
        return self.events.subscribe(event_type, handler)

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    def start(self) -> SyncCoordinator:
        """Follow connectivity edges and apply the current state once."""
        if self._started:
            return self

        self.connectivity.register_callback(self._on_connectivity_change)
        self._started = True

        if self.connectivity.is_online:
            self.events.emit(EventType.ONLINE)
            self.start_sync()
        else:
            self.events.emit(EventType.OFFLINE)

        logger.info(f"SyncCoordinator started. Online: {self.is_online}")
        return self

    def close(self) -> None:
        """Stop the timer and detach from the connectivity provider."""
        self.stop_sync(wait=True)
        if self._started:
            self.connectivity.unregister_callback(self._on_connectivity_change)
            self._started = False
        logger.debug("SyncCoordinator closed")

    def __enter__(self) -> SyncCoordinator:
        return self.start()

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    def _on_connectivity_change(self, online: bool) -> None:
        """Handle connectivity edges."""
        if online:
            self.events.emit(EventType.ONLINE)
            self.start_sync()
        else:
            self.events.emit(EventType.OFFLINE)
            self.stop_sync()

    # =========================================================================
    # PERIODIC SYNC
    # =========================================================================

    def start_sync(self, interval_ms: Optional[int] = None) -> ScheduledTask:
        """
        Start (or restart) the periodic sync timer.

        Args:
            interval_ms: Tick cadence; defaults to sync_interval_ms

        Raises:
            ValueError: interval is not positive
        """
        interval = self.sync_interval_ms if interval_ms is None else interval_ms
        task = ScheduledTask(self._on_tick, interval, name="SyncTimer")
        with self._timer_lock:
            if self._timer is not None:
                self._timer.cancel()
            self._timer = task.start()
            return self._timer

    def stop_sync(self, wait: bool = False) -> None:
        """Cancel future timer firings; an in-flight pass runs to completion."""
        with self._timer_lock:
            timer, self._timer = self._timer, None
        if timer is not None:
            timer.cancel(wait=wait)

    def _on_tick(self) -> None:
        if not self.is_online or self.is_syncing:
            return
        try:
            self.sync()
        except Exception as e:
            logger.error(f"Timer-triggered sync failed: {e}")
            self.events.emit(EventType.SYNC_ERROR, error=str(e))

    # =========================================================================
    # QUEUEING
    # =========================================================================

    def queue_operation(
        self,
        operation_id: str,
        operation: Union[Operation, Mapping[str, Any]],
    ) -> QueuedOperation:
        """
        Persist an operation, announce it and, if online, try to flush now.

        Raises:
            ValidationError / StorageError from the queue
        """
        queued = self.queue.queue_operation(operation_id, operation)
        self.events.emit(
            EventType.OPERATION_QUEUED,
            operation_id=operation_id,
            operation=queued.operation.to_dict(),
        )

        if self.is_online:
            safe_execute(self.sync, context="Opportunistic sync after enqueue")

        return queued

    # =========================================================================
    # SYNC PASS
    # =========================================================================

    def sync(self) -> SyncResult:
        """
        Run one reconciliation pass.

        Returns:
            SyncResult (status skipped / busy / completed / error)
        """
        if not self.is_online:
            self.events.emit(EventType.SYNC_SKIPPED, reason="offline")
            return SyncResult(SyncStatus.SKIPPED)

        if not self._busy.acquire(blocking=False):
            return SyncResult(SyncStatus.BUSY)

        try:
            return self._perform_sync()
        finally:
            self._busy.release()

    def _perform_sync(self) -> SyncResult:
        self.stats.passes += 1
        self.stats.last_sync = datetime.now()
        self.events.emit(EventType.SYNC_START)

        try:
            pending = self.queue.get_pending_operations()

            if not pending:
                self.events.emit(EventType.SYNC_COMPLETE, operations_synced=0)
                self.stats.last_sync_success = datetime.now()
                return SyncResult(SyncStatus.COMPLETED)

            total = len(pending)
            result = SyncResult(SyncStatus.COMPLETED, total=total)
            self.events.emit(EventType.SYNC_PROGRESS, total=total, completed=0)

            with LogContext(logger, f"Syncing {total} operations", level=logging.DEBUG):
                for queued in pending:
                    try:
                        self._sync_operation(queued)
                    except Exception as e:
                        result.conflicts.append(queued.operation_id)
                        logger.warning(f"Sync conflict for {queued.operation_id}: {e}")
                        self.events.emit(
                            EventType.SYNC_CONFLICT,
                            operation_id=queued.operation_id,
                            operation=queued.operation.to_dict(),
                            metadata=asdict(queued.metadata),
                            error=str(e),
                        )
                        continue

                    result.operations_synced += 1
                    self.events.emit(
                        EventType.SYNC_PROGRESS,
                        total=total,
                        completed=result.operations_synced,
                        operation_id=queued.operation_id,
                    )

            self.stats.total_synced += result.operations_synced
            self.stats.total_conflicts += len(result.conflicts)
            if not result.conflicts:
                self.stats.last_sync_success = datetime.now()

            logger.info(
                f"Sync complete: {result.operations_synced} synced, "
                f"{len(result.conflicts)} conflicts"
            )
            self.events.emit(EventType.SYNC_COMPLETE, operations_synced=result.operations_synced)
            return result

        except Exception as e:
            logger.error(f"Sync failed: {e}")
            self.events.emit(EventType.SYNC_ERROR, error=str(e))
            return SyncResult(SyncStatus.ERROR, error=str(e))

    def _sync_operation(self, queued: QueuedOperation) -> None:
        """
        Apply one operation remotely and drop it from the queue.

        Raises:
            OperationRejected / RemoteExecutionError / StorageError on failure
        """
        operation = queued.operation
        if not operation.is_well_formed:
            raise OperationRejected(f"Invalid operation format for {queued.operation_id}")

        if operation.type not in SYNCABLE_TYPES:
            raise OperationRejected(f"Unsupported operation type: {operation.type}")

        response = self.executor.execute(operation.query)

        if not isinstance(response, Mapping) or response.get("status") != "success":
            raise OperationRejected(
                f"Server rejected operation {queued.operation_id}: {response!r}"
            )

        self.queue.remove_operation(queued.operation_id)

    # =========================================================================
    # STATUS
    # =========================================================================

    def status(self) -> Dict[str, Any]:
        """Sync status for display / diagnostics."""
        return {
            "state": self.state.value,
            "is_online": self.is_online,
            "timer_running": self.timer_running,
            "pending_count": self.queue.count(),
            "last_sync": self.stats.last_sync.isoformat() if self.stats.last_sync else None,
            "last_sync_success": (
                self.stats.last_sync_success.isoformat()
                if self.stats.last_sync_success else None
            ),
            "total_synced": self.stats.total_synced,
            "total_conflicts": self.stats.total_conflicts,
        }
