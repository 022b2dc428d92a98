# =============================================================================
# asterix_offline/logging/config.py
# Logging Configuration for the Offline Layer
# =============================================================================
"""
Logging for the offline layer is driven by OfflineSettings:

- debug        -> DEBUG on the asterix_offline loggers (root stays at INFO)
- log_to_file  -> also write to log_dir/offline_YYYY-MM-DD.log

Applications call setup_logging(settings) once at startup. create_gateway()
calls configure_package_logging(settings), which only touches the package
logger and never reconfigures the host application's root handlers.
"""

from __future__ import annotations
import logging
import os
import sys
import time
from pathlib import Path
from datetime import datetime
from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from asterix_offline.config import OfflineSettings


LOG_FORMAT = "%(asctime)s | %(name)s | %(levelname)s | %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# Used when no settings are given
LOG_DIR = Path("logs")

PACKAGE_LOGGER = "asterix_offline"

# Chatty HTTP client loggers kept at WARNING
QUIET_LOGGERS = ("urllib3", "requests")


def _log_file_path(log_dir: Path, log_filename: Optional[str] = None) -> Path:
    log_dir.mkdir(parents=True, exist_ok=True)
    if log_filename is None:
        log_filename = f"offline_{datetime.now().strftime('%Y-%m-%d')}.log"
    return log_dir / log_filename


def _formatter() -> logging.Formatter:
    return logging.Formatter(LOG_FORMAT, datefmt=LOG_DATE_FORMAT)


def setup_logging(
    settings: Optional[OfflineSettings] = None,
    level: Optional[int] = None,
    log_to_file: Optional[bool] = None,
    log_filename: Optional[str] = None,
) -> None:
    """
    Configure application-wide logging from OfflineSettings.

    Args:
        settings: Source of debug / log_to_file / log_dir (defaults used if None)
        level: Root level override (default: INFO)
        log_to_file: Override settings.log_to_file
        log_filename: Custom log filename (default: offline_YYYY-MM-DD.log)
    """
    debug = bool(settings and settings.debug)
    if log_to_file is None:
        log_to_file = bool(settings and settings.log_to_file)
    log_dir = settings.log_dir if settings is not None else LOG_DIR

    handlers = [logging.StreamHandler(sys.stdout)]
    if log_to_file:
        handlers.append(logging.FileHandler(_log_file_path(log_dir, log_filename)))

    logging.basicConfig(
        level=logging.INFO if level is None else level,
        format=LOG_FORMAT,
        datefmt=LOG_DATE_FORMAT,
        handlers=handlers,
        force=True,  # Override any existing configuration
    )

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    set_debug(debug)
    logging.getLogger(PACKAGE_LOGGER).info(
        f"Logging initialized (debug={debug}, file={'on' if log_to_file else 'off'})"
    )


def configure_package_logging(settings: OfflineSettings) -> Optional[Path]:
    """
    Apply settings to the asterix_offline logger only.

    Sets the debug level and, when settings.log_to_file is on, attaches one
    file handler per log file (repeated calls do not duplicate it).

    Returns:
        Path of the attached log file, or None
    """
    set_debug(settings.debug)
    if not settings.log_to_file:
        return None

    path = Path(os.path.abspath(_log_file_path(settings.log_dir)))
    package_logger = logging.getLogger(PACKAGE_LOGGER)
    for handler in package_logger.handlers:
        if isinstance(handler, logging.FileHandler) and Path(handler.baseFilename) == path:
            return path

    file_handler = logging.FileHandler(path)
    file_handler.setFormatter(_formatter())
    package_logger.addHandler(file_handler)
    return path


def set_debug(enabled: bool) -> None:
    """Toggle DEBUG level on the package logger without touching the root."""
    package_logger = logging.getLogger(PACKAGE_LOGGER)
    package_logger.setLevel(logging.DEBUG if enabled else logging.NOTSET)


def get_logger(name: str) -> logging.Logger:
    """
    Get a logger instance with the given name.

    Usage:
        from asterix_offline.logging import get_logger
        logger = get_logger(__name__)
    """
    return logging.getLogger(name)


class LogContext:
    """
    Context manager for logging operation timing and status.

    Usage:
        with LogContext(logger, "Sync pass"):
            coordinator.sync()
        # Logs: "Sync pass... started"
        # Logs: "Sync pass... completed (0.12s)"
    """

    def __init__(self, logger: logging.Logger, operation: str, level: int = logging.INFO):
        self.logger = logger
        self.operation = operation
        self.level = level
        self.start_time = None

    def __enter__(self):
        self.start_time = time.time()
        self.logger.log(self.level, f"{self.operation}... started")
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        elapsed = time.time() - self.start_time

        if exc_type is None:
            self.logger.log(self.level, f"{self.operation}... completed ({elapsed:.2f}s)")
        else:
            self.logger.error(
                f"{self.operation}... failed ({elapsed:.2f}s): {exc_val}",
                exc_info=True
            )

        return False  # Don't suppress exceptions
