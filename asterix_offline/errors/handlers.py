# =============================================================================
# asterix_offline/errors/handlers.py
# Error Handling Utilities for the Offline Layer
# =============================================================================

from __future__ import annotations
import functools
import traceback
from typing import Optional, Callable, TypeVar, Any

from asterix_offline.logging import get_logger
from .exceptions import OfflineSyncError

logger = get_logger(__name__)

T = TypeVar("T")


def handle_error(
    error: Exception,
    log_error: bool = True,
    context: Optional[str] = None,
) -> dict:
    """
    Centralized error handling function.

    Args:
        error: The exception to handle
        log_error: Whether to log the error
        context: Short description of what was being done

    Returns:
        Dictionary describing the error (safe to attach to events)
    """
    if isinstance(error, OfflineSyncError):
        info = error.to_dict()
    else:
        info = {
            "error_type": error.__class__.__name__,
            "code": "UNKNOWN",
            "message": str(error),
            "details": {"traceback": traceback.format_exc()},
            "recoverable": True,
        }

    if log_error:
        prefix = f"{context}: " if context else ""
        logger.error(
            f"{prefix}[{info['code']}] {info['message']}",
            extra={"details": info["details"]},
            exc_info=error,
        )

    return info


def safe_execute(
    func: Callable[..., T],
    *args,
    default: Optional[T] = None,
    context: Optional[str] = None,
    reraise: bool = False,
    **kwargs,
) -> Optional[T]:
    """
    Execute a function with automatic error handling.

    Args:
        func: Function to execute
        *args: Positional arguments to pass to func
        default: Default value to return on error
        context: Description used in the log line
        reraise: Whether to reraise the exception after handling
        **kwargs: Keyword arguments to pass to func

    Returns:
        Function result or default value on error

    Usage:
        result = safe_execute(
            coordinator.sync,
            default=None,
            context="Opportunistic sync after enqueue"
        )
    """
    try:
        return func(*args, **kwargs)
    except Exception as e:
        handle_error(e, context=context)
        if reraise:
            raise
        return default


class ErrorContext:
    """
    Context manager that logs failures of a scope and optionally suppresses them.

    Usage:
        with ErrorContext("Expired cache sweep", suppress=True):
            store.cleanup_expired_cache()
    """

    def __init__(self, operation: str, suppress: bool = False):
        self.operation = operation
        self.suppress = suppress
        self.error: Optional[BaseException] = None

    def __enter__(self) -> ErrorContext:
        logger.debug(f"Starting: {self.operation}")
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> bool:
        if exc_type is None:
            logger.debug(f"Completed: {self.operation}")
            return False

        if not isinstance(exc_val, Exception):
            return False

        self.error = exc_val
        handle_error(exc_val, context=f"Error during: {self.operation}")
        return self.suppress


def error_boundary(
    default_return: Any = None,
    log: bool = True,
):
    """
    Decorator to wrap best-effort functions with error handling.

    Args:
        default_return: Value to return if function fails
        log: Whether to log errors

    Usage:
        @error_boundary(default_return=0)
        def cleanup_expired_cache(self) -> int:
            ...
    """
    def decorator(func: Callable[..., T]) -> Callable[..., Optional[T]]:
        @functools.wraps(func)
        def wrapper(*args, **kwargs) -> Optional[T]:
            try:
                return func(*args, **kwargs)
            except Exception as e:
                if log:
                    logger.error(
                        f"Error in {func.__name__}: {e}",
                        exc_info=True,
                    )
                return default_return

        return wrapper

    return decorator
