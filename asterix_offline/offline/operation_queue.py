# =============================================================================
# asterix_offline/offline/operation_queue.py
# Persistent Queue of Pending Write Operations
# =============================================================================
"""
OperationQueue - write operations captured while offline, waiting for sync.

Ordering used for replay: priority descending, then timestamp ascending
(FIFO within a priority band).
"""

from __future__ import annotations
from dataclasses import dataclass, field, fields, asdict
from enum import Enum
from typing import Any, Callable, Dict, List, Mapping, Optional, Union
import logging

import pandas as pd

from asterix_offline.errors import OfflineSyncError, StorageError, ValidationError
from asterix_offline.offline.local_store import QUEUE_NAMESPACE, LocalStore
from asterix_offline.utils import now_ms

logger = logging.getLogger(__name__)

DEFAULT_PRIORITY = 1


class OperationStatus(str, Enum):
    """Lifecycle status stored in operation metadata."""
    PENDING = "pending"
    FAILED = "failed"


@dataclass
class Operation:
    """A write statement to replay against the remote store."""
    type: Optional[str]
    query: Optional[str]
    data: Any = None
    options: Dict[str, Any] = field(default_factory=dict)
    priority: Optional[int] = None

    @property
    def is_well_formed(self) -> bool:
        return bool(self.type) and bool(self.query)

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any]) -> Operation:
        return cls(
            type=raw.get("type"),
            query=raw.get("query"),
            data=raw.get("data"),
            options=dict(raw.get("options") or {}),
            priority=raw.get("priority"),
        )

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class OperationMetadata:
    """Queue bookkeeping for one operation."""
    timestamp: int
    status: str = OperationStatus.PENDING.value
    retry_count: int = 0
    priority: int = DEFAULT_PRIORITY
    extra: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any]) -> OperationMetadata:
        return cls(
            timestamp=int(raw.get("timestamp", 0)),
            status=raw.get("status", OperationStatus.PENDING.value),
            retry_count=int(raw.get("retry_count", 0)),
            priority=int(raw.get("priority", DEFAULT_PRIORITY)),
            extra=dict(raw.get("extra") or {}),
        )

    def merge(self, patch: Mapping[str, Any]) -> None:
        """Apply a partial update; unknown keys land in extra."""
        known = {f.name for f in fields(self)} - {"extra"}
        for key, value in patch.items():
            if key in known:
                setattr(self, key, value)
            elif key == "extra" and isinstance(value, Mapping):
                self.extra.update(value)
            else:
                self.extra[key] = value


@dataclass
class QueuedOperation:
    """An operation together with its queue metadata."""
    operation_id: str
    operation: Operation
    metadata: OperationMetadata

    def to_dict(self) -> Dict[str, Any]:
        return {
            "operation": self.operation.to_dict(),
            "metadata": asdict(self.metadata),
        }

    @classmethod
    def from_dict(cls, operation_id: str, raw: Mapping[str, Any]) -> QueuedOperation:
        raw_operation = raw.get("operation")
        return cls(
            operation_id=operation_id,
            operation=Operation.from_dict(raw_operation if isinstance(raw_operation, Mapping) else {}),
            metadata=OperationMetadata.from_dict(raw.get("metadata") or {}),
        )


def _validate_id(operation_id: Any) -> None:
    if not operation_id or not isinstance(operation_id, str):
        raise ValidationError(
            "Invalid operation ID: must be a non-empty string",
            field="operation_id",
            value=operation_id,
        )


def _coerce_operation(operation: Union[Operation, Mapping[str, Any]]) -> Operation:
    if isinstance(operation, Operation):
        result = operation
    elif isinstance(operation, Mapping):
        result = Operation.from_dict(operation)
    else:
        raise ValidationError("Invalid operation: must be an Operation or a mapping", field="operation")

    if not result.is_well_formed:
        raise ValidationError(
            "Invalid operation: must have type and query properties",
            field="operation",
        )
    return result


class OperationQueue:
    """
    Pending write operations persisted in a LocalStore.

    Usage:
        queue = OperationQueue(store)
        queue.queue_operation("op-1", {"type": "INSERT", "query": "INSERT ..."})
        for op in queue.get_pending_operations():
            ...
    """

    def __init__(self, store: LocalStore, clock: Callable[[], int] = now_ms):
        self._store = store
        self._clock = clock

    def queue_operation(
        self,
        operation_id: str,
        operation: Union[Operation, Mapping[str, Any]],
    ) -> QueuedOperation:
        """
        Persist an operation as pending. A duplicate id overwrites.

        Raises:
            ValidationError: bad id or missing type/query
            StorageError: backend failure
        """
        _validate_id(operation_id)
        op = _coerce_operation(operation)

        priority = op.priority if op.priority is not None else DEFAULT_PRIORITY
        queued = QueuedOperation(
            operation_id=operation_id,
            operation=op,
            metadata=OperationMetadata(
                timestamp=self._clock(),
                priority=int(priority),
            ),
        )

        try:
            backend = self._store.ready()
            backend.set_item(QUEUE_NAMESPACE, operation_id, queued.to_dict())
        except OfflineSyncError:
            raise
        except Exception as e:
            logger.error(f"Operation queue error for ID {operation_id}: {e}")
            raise StorageError(
                f"Failed to queue operation {operation_id}: {e}",
                namespace=QUEUE_NAMESPACE,
                key=operation_id,
            ) from e

        logger.debug(f"Queued operation: {operation_id}")
        return queued

    def get_operation(self, operation_id: str) -> Optional[QueuedOperation]:
        _validate_id(operation_id)
        try:
            raw = self._store.ready().get_item(QUEUE_NAMESPACE, operation_id)
        except OfflineSyncError:
            raise
        except Exception as e:
            raise StorageError(
                f"Failed to read operation {operation_id}: {e}",
                namespace=QUEUE_NAMESPACE,
                key=operation_id,
            ) from e
        return QueuedOperation.from_dict(operation_id, raw) if raw is not None else None

    def get_pending_operations(
        self,
        status: Optional[str] = None,
        sort_by_priority: bool = True,
    ) -> List[QueuedOperation]:
        """
        List queued operations.

        Args:
            status: Only operations with this metadata status
            sort_by_priority: Priority descending, then oldest first

        Returns:
            QueuedOperation list (malformed entries included as-is)
        """
        try:
            backend = self._store.ready()
            operations = [
                QueuedOperation.from_dict(key, raw if isinstance(raw, Mapping) else {})
                for key, raw in backend.items(QUEUE_NAMESPACE)
            ]
        except OfflineSyncError:
            raise
        except Exception as e:
            logger.error(f"Error retrieving pending operations: {e}")
            raise StorageError(
                f"Failed to retrieve pending operations: {e}",
                namespace=QUEUE_NAMESPACE,
            ) from e

        if status:
            operations = [op for op in operations if op.metadata.status == status]

        if sort_by_priority:
            operations.sort(key=lambda op: (-op.metadata.priority, op.metadata.timestamp))

        return operations

    def update_operation_metadata(
        self,
        operation_id: str,
        patch: Mapping[str, Any],
    ) -> QueuedOperation:
        """
        Merge new values into an operation's metadata.

        Raises:
            StorageError: operation not found or backend failure
        """
        _validate_id(operation_id)

        try:
            backend = self._store.ready()
            raw = backend.get_item(QUEUE_NAMESPACE, operation_id)
            if raw is None:
                raise StorageError(
                    f"Operation {operation_id} not found in queue",
                    namespace=QUEUE_NAMESPACE,
                    key=operation_id,
                )

            queued = QueuedOperation.from_dict(operation_id, raw)
            queued.metadata.merge(patch)
            backend.set_item(QUEUE_NAMESPACE, operation_id, queued.to_dict())
        except OfflineSyncError:
            raise
        except Exception as e:
            logger.error(f"Error updating operation metadata for {operation_id}: {e}")
            raise StorageError(
                f"Failed to update operation metadata: {e}",
                namespace=QUEUE_NAMESPACE,
                key=operation_id,
            ) from e

        logger.debug(f"Updated metadata for operation: {operation_id}")
        return queued

    def remove_operation(self, operation_id: str) -> None:
        """Delete an operation (after confirmed remote success)."""
        _validate_id(operation_id)

        try:
            self._store.ready().remove_item(QUEUE_NAMESPACE, operation_id)
        except OfflineSyncError:
            raise
        except Exception as e:
            logger.error(f"Operation removal error for ID {operation_id}: {e}")
            raise StorageError(
                f"Failed to remove operation {operation_id}: {e}",
                namespace=QUEUE_NAMESPACE,
                key=operation_id,
            ) from e

        logger.debug(f"Removed operation from queue: {operation_id}")

    def clear_queue(self) -> None:
        """Drop every queued operation. Manual reset only."""
        try:
            self._store.ready().clear(QUEUE_NAMESPACE)
        except OfflineSyncError:
            raise
        except Exception as e:
            logger.error(f"Error clearing operation queue: {e}")
            raise StorageError(f"Failed to clear queue: {e}", namespace=QUEUE_NAMESPACE) from e

        logger.info("Operation queue cleared")

    def count(self, status: Optional[str] = None) -> int:
        return len(self.get_pending_operations(status=status, sort_by_priority=False))

    # =========================================================================
    # PANDAS INTEGRATION
    # =========================================================================

    def to_dataframe(self) -> pd.DataFrame:
        """
        Snapshot of the queue in replay order.

        Returns:
            DataFrame with operation_id, type, query, priority, status,
            retry_count and timestamp columns
        """
        columns = ["operation_id", "type", "query", "priority", "status", "retry_count", "timestamp"]
        rows = [
            {
                "operation_id": op.operation_id,
                "type": op.operation.type,
                "query": op.operation.query,
                "priority": op.metadata.priority,
                "status": op.metadata.status,
                "retry_count": op.metadata.retry_count,
                "timestamp": pd.to_datetime(op.metadata.timestamp, unit="ms"),
            }
            for op in self.get_pending_operations()
        ]
        return pd.DataFrame(rows, columns=columns)
