# =============================================================================
# asterix_offline/errors/exceptions.py
# Custom Exception Hierarchy for the Offline Layer
# =============================================================================

from typing import Optional, Dict, Any


class OfflineSyncError(Exception):
    """
    Base exception for all offline cache / queue / sync errors.

    Attributes:
        message: Human-readable error description
        code: Machine-readable error code (e.g., "STORE_001")
        details: Additional context as a dictionary
        recoverable: Whether the caller can retry or degrade gracefully
    """

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        recoverable: bool = True,
    ):
        super().__init__(message)
        self.message = message
        self.code = code or "OFF_000"
        self.details = details or {}
        self.recoverable = recoverable

    def __str__(self) -> str:
        base = f"[{self.code}] {self.message}"
        if self.details:
            base += f" | Details: {self.details}"
        return base

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for logging/serialization"""
        return {
            "error_type": self.__class__.__name__,
            "code": self.code,
            "message": self.message,
            "details": self.details,
            "recoverable": self.recoverable,
        }


# =============================================================================
# CALLER ERRORS
# =============================================================================

class ValidationError(OfflineSyncError):
    """Raised for a malformed key, operation or operation id (never retried)"""

    def __init__(
        self,
        message: str,
        field: Optional[str] = None,
        value: Any = None,
        **kwargs,
    ):
        details = kwargs.pop("details", {})
        if field:
            details["field"] = field
        if value is not None:
            details["value"] = repr(value)

        super().__init__(
            message=message,
            code="VALID_001",
            details=details,
            recoverable=False,
            **kwargs,
        )


class ConfigurationError(OfflineSyncError):
    """Raised when configuration is invalid or missing"""

    def __init__(
        self,
        message: str,
        config_key: Optional[str] = None,
        expected_type: Optional[str] = None,
        **kwargs,
    ):
        details = kwargs.pop("details", {})
        if config_key:
            details["config_key"] = config_key
        if expected_type:
            details["expected_type"] = expected_type

        super().__init__(
            message=message,
            code="CONFIG_001",
            details=details,
            recoverable=False,
            **kwargs,
        )


# =============================================================================
# STORAGE EXCEPTIONS
# =============================================================================

class StorageError(OfflineSyncError):
    """Raised when a cache or queue primitive fails against the backend"""

    def __init__(
        self,
        message: str,
        namespace: Optional[str] = None,
        key: Optional[str] = None,
        **kwargs,
    ):
        details = kwargs.pop("details", {})
        if namespace:
            details["namespace"] = namespace
        if key:
            details["key"] = key

        kwargs.setdefault("code", "STORE_001")
        super().__init__(message=message, details=details, **kwargs)


class StoreNotReadyError(StorageError):
    """Raised when the local store is used before open() or after close()"""

    def __init__(self, message: str = "Local store is not ready", **kwargs):
        kwargs.setdefault("code", "STORE_002")
        super().__init__(message, **kwargs)


# =============================================================================
# OFFLINE ROUTING EXCEPTIONS
# =============================================================================

class OfflineNoCacheError(OfflineSyncError):
    """Raised for a read while offline when nothing is cached for it"""

    def __init__(self, message: str, cache_key: Optional[str] = None, **kwargs):
        details = kwargs.pop("details", {})
        if cache_key:
            details["cache_key"] = cache_key

        super().__init__(
            message=message,
            code="OFFLINE_001",
            details=details,
            recoverable=False,
            **kwargs,
        )


class NonCacheableOfflineError(OfflineSyncError):
    """Raised for a read with caching disabled while offline"""

    def __init__(self, message: str, **kwargs):
        super().__init__(
            message=message,
            code="OFFLINE_002",
            recoverable=False,
            **kwargs,
        )


class OfflineQueueDisabledError(OfflineSyncError):
    """Raised for a write while offline when queuing is turned off"""

    def __init__(self, message: str, operation_type: Optional[str] = None, **kwargs):
        details = kwargs.pop("details", {})
        if operation_type:
            details["operation_type"] = operation_type

        super().__init__(
            message=message,
            code="OFFLINE_003",
            details=details,
            recoverable=False,
            **kwargs,
        )


# =============================================================================
# REMOTE EXCEPTIONS
# =============================================================================

class RemoteExecutionError(OfflineSyncError):
    """Raised by the remote executor when a statement cannot be executed"""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        response: Optional[Any] = None,
        **kwargs,
    ):
        details = kwargs.pop("details", {})
        if status_code is not None:
            details["status_code"] = status_code
        if response is not None:
            details["response"] = response

        super().__init__(
            message=message,
            code="REMOTE_001",
            details=details,
            **kwargs,
        )
