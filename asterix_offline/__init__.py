"""
asterix_offline - offline cache, operation queue and sync for an AsterixDB
SQL++ query service.
"""
from asterix_offline.config import OfflineSettings, load_settings
from asterix_offline.offline import (
    OfflineGateway,
    EventType,
    create_gateway,
    get_gateway,
)

__version__ = "0.1.0"

__all__ = [
    "OfflineSettings",
    "load_settings",
    "OfflineGateway",
    "EventType",
    "create_gateway",
    "get_gateway",
    "__version__",
]
