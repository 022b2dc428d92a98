# =============================================================================
# asterix_offline/errors/__init__.py
# Centralized Error Handling for the Offline Layer
# =============================================================================

from .exceptions import (
    OfflineSyncError,
    ValidationError,
    ConfigurationError,
    StorageError,
    StoreNotReadyError,
    OfflineNoCacheError,
    NonCacheableOfflineError,
    OfflineQueueDisabledError,
    RemoteExecutionError,
)

from .handlers import (
    handle_error,
    safe_execute,
    ErrorContext,
    error_boundary,
)

__all__ = [
    # Exceptions
    "OfflineSyncError",
    "ValidationError",
    "ConfigurationError",
    "StorageError",
    "StoreNotReadyError",
    "OfflineNoCacheError",
    "NonCacheableOfflineError",
    "OfflineQueueDisabledError",
    "RemoteExecutionError",
    # Handlers
    "handle_error",
    "safe_execute",
    "ErrorContext",
    "error_boundary",
]
