# =============================================================================
# asterix_offline/logging/__init__.py
# Centralized Logging Configuration
# =============================================================================

from .config import setup_logging, configure_package_logging, set_debug, get_logger, LogContext

__all__ = ["setup_logging", "configure_package_logging", "set_debug", "get_logger", "LogContext"]
