# =============================================================================
# asterix_offline/config/settings.py
# Configuration for the Offline Cache / Queue / Sync Layer
# =============================================================================
"""
Settings for the offline layer.

Values come from, in increasing precedence:
1. Dataclass defaults
2. The [offline] table of a TOML file (e.g. .asterix/offline.toml)
3. ASTERIX_OFFLINE_* environment variables

The camelCase connector option names (cacheEnabled, cacheTTL, syncIntervalMs,
debug, enableOfflineQueue, astxUrl) are accepted by from_mapping().
"""

from __future__ import annotations
import os
from dataclasses import dataclass, field, fields, replace
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Union
import logging

import toml

from asterix_offline.errors import ConfigurationError

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = Path(".asterix") / "offline.toml"
ENV_PREFIX = "ASTERIX_OFFLINE_"

# camelCase connector option names
OPTION_ALIASES = {
    "cacheEnabled": "cache_enabled",
    "cacheTTL": "cache_ttl_ms",
    "cache_ttl": "cache_ttl_ms",
    "syncIntervalMs": "sync_interval_ms",
    "cleanupIntervalMs": "cleanup_interval_ms",
    "enableOfflineQueue": "queue_enabled",
    "astxUrl": "base_url",
    "url": "base_url",
    "dataverse": "namespace",
}

STORAGE_BACKENDS = ("sqlite", "memory")


@dataclass
class OfflineSettings:
    """Configuration for the offline gateway and its components."""

    # ==================== CACHE ====================
    cache_enabled: bool = True
    cache_ttl_ms: int = 3_600_000           # 1 hour
    cleanup_interval_ms: int = 3_600_000    # expiry sweep cadence

    # ==================== SYNC ====================
    sync_interval_ms: int = 5_000
    queue_enabled: bool = True

    # ==================== REMOTE ====================
    base_url: str = "http://localhost:19002"
    request_timeout: float = 5.0
    namespace: str = ""                     # dataverse used in cache keys

    # ==================== STORAGE ====================
    storage_backend: str = "sqlite"
    storage_path: Path = field(
        default_factory=lambda: Path("local_data") / "asterix_offline.db"
    )

    # ==================== DIAGNOSTICS ====================
    debug: bool = False
    log_to_file: bool = False
    log_dir: Path = field(default_factory=lambda: Path("logs"))

    def __post_init__(self):
        self.validate()

    def validate(self) -> None:
        """Check value ranges; raises ConfigurationError."""
        for name in ("cache_ttl_ms", "sync_interval_ms", "cleanup_interval_ms"):
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
                raise ConfigurationError(
                    f"{name} must be a positive integer (milliseconds)",
                    config_key=name,
                    expected_type="int",
                )

        if self.request_timeout <= 0:
            raise ConfigurationError(
                "request_timeout must be positive",
                config_key="request_timeout",
                expected_type="float",
            )

        if self.storage_backend not in STORAGE_BACKENDS:
            raise ConfigurationError(
                f"Unknown storage backend '{self.storage_backend}'",
                config_key="storage_backend",
                expected_type=" | ".join(STORAGE_BACKENDS),
            )

        if not self.base_url:
            raise ConfigurationError("base_url is required", config_key="base_url")

        self.storage_path = Path(self.storage_path)
        self.log_dir = Path(self.log_dir)

    @classmethod
    def from_mapping(cls, values: Mapping[str, Any]) -> OfflineSettings:
        """
        Build settings from a mapping, accepting snake_case or the
        connector's camelCase option names.
        """
        known = {f.name for f in fields(cls)}
        kwargs: Dict[str, Any] = {}

        for raw_key, value in values.items():
            key = OPTION_ALIASES.get(raw_key, raw_key)
            if key not in known:
                logger.warning(f"Ignoring unknown offline option: {raw_key}")
                continue
            kwargs[key] = _coerce(key, value)

        return cls(**kwargs)

    def merged(self, **overrides: Any) -> OfflineSettings:
        """Return a copy with the given fields replaced (validated)."""
        coerced = {k: _coerce(k, v) for k, v in overrides.items()}
        return replace(self, **coerced)

    def to_dict(self) -> Dict[str, Any]:
        """Plain dictionary view (paths as strings)."""
        data = {f.name: getattr(self, f.name) for f in fields(self)}
        data["storage_path"] = str(self.storage_path)
        data["log_dir"] = str(self.log_dir)
        return data


def _coerce(key: str, value: Any) -> Any:
    """Convert raw (env / TOML) values to the field's type."""
    bool_fields = {"cache_enabled", "queue_enabled", "debug", "log_to_file"}
    int_fields = {"cache_ttl_ms", "sync_interval_ms", "cleanup_interval_ms"}

    try:
        if key in bool_fields:
            if isinstance(value, str):
                return value.strip().lower() in ("1", "true", "yes", "on")
            return bool(value)
        if key in int_fields:
            return int(value)
        if key == "request_timeout":
            return float(value)
        if key in ("storage_path", "log_dir"):
            return Path(value)
    except (TypeError, ValueError) as e:
        raise ConfigurationError(
            f"Invalid value for {key}: {value!r}",
            config_key=key,
        ) from e

    return value


def _read_env() -> Dict[str, str]:
    """Collect ASTERIX_OFFLINE_* variables as lower-case field names."""
    return {
        name[len(ENV_PREFIX):].lower(): value
        for name, value in os.environ.items()
        if name.startswith(ENV_PREFIX)
    }


def load_settings(
    path: Optional[Union[str, Path]] = None,
    use_env: bool = True,
    **overrides: Any,
) -> OfflineSettings:
    """
    Load settings from a TOML file and the environment.

    Args:
        path: TOML file; defaults to .asterix/offline.toml if it exists
        use_env: Apply ASTERIX_OFFLINE_* environment overrides
        **overrides: Final keyword overrides

    Returns:
        Validated OfflineSettings
    """
    values: Dict[str, Any] = {}

    config_path = Path(path) if path else DEFAULT_CONFIG_PATH
    if config_path.exists():
        try:
            document = toml.load(config_path)
        except (toml.TomlDecodeError, OSError) as e:
            raise ConfigurationError(
                f"Could not read config file {config_path}: {e}",
                details={"path": str(config_path)},
            ) from e
        values.update(document.get("offline", {}))
        logger.debug(f"Loaded offline settings from {config_path}")
    elif path:
        raise ConfigurationError(
            f"Config file not found: {config_path}",
            details={"path": str(config_path)},
        )

    if use_env:
        values.update(_read_env())

    values.update(overrides)
    return OfflineSettings.from_mapping(values)
