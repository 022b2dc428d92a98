# =============================================================================
# asterix_offline/utils/serialization.py
# JSON-safe conversion and time helpers
# =============================================================================
"""
Helpers shared by the persistence layer.

Query results and queued write payloads may carry numpy scalars, pandas
objects or datetimes (e.g. rows taken from a DataFrame). They are converted
to plain JSON types before being written to the local store.
"""

from __future__ import annotations
import json
import time
from datetime import date, datetime
from typing import Any

import numpy as np
import pandas as pd


def now_ms() -> int:
    """Current wall-clock time as integer epoch milliseconds."""
    return int(time.time() * 1000)


def to_json_safe(obj: Any) -> Any:
    """Recursively convert a value into JSON-serializable primitives."""
    if isinstance(obj, dict):
        return {str(k): to_json_safe(v) for k, v in obj.items()}
    if isinstance(obj, (list, tuple, set)):
        return [to_json_safe(v) for v in obj]
    if isinstance(obj, pd.DataFrame):
        return to_json_safe(obj.to_dict(orient="records"))
    if isinstance(obj, pd.Series):
        return to_json_safe(obj.tolist())
    if isinstance(obj, np.ndarray):
        return to_json_safe(obj.tolist())
    if isinstance(obj, np.bool_):
        return bool(obj)
    if isinstance(obj, np.integer):
        return int(obj)
    if isinstance(obj, np.floating):
        return None if np.isnan(obj) else float(obj)
    if isinstance(obj, (datetime, date, pd.Timestamp)):
        return obj.isoformat()
    if obj is None or isinstance(obj, (str, int, float, bool)):
        if isinstance(obj, float) and np.isnan(obj):
            return None
        return obj
    if pd.isna(obj):
        return None
    return str(obj)


def dumps(obj: Any) -> str:
    """Serialize to compact JSON after JSON-safe conversion."""
    return json.dumps(to_json_safe(obj), separators=(",", ":"))


def loads(text: str) -> Any:
    return json.loads(text)


def estimate_size(obj: Any) -> int:
    """Rough size in bytes of a stored document (UTF-16 estimate)."""
    return len(dumps(obj)) * 2
