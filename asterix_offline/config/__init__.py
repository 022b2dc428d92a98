# asterix_offline/config/__init__.py
"""
Configuration for the offline layer (dataclass settings, TOML + env loading).
"""
from .settings import (
    OfflineSettings,
    load_settings,
    DEFAULT_CONFIG_PATH,
)

__all__ = [
    "OfflineSettings",
    "load_settings",
    "DEFAULT_CONFIG_PATH",
]
