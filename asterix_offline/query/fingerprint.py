# =============================================================================
# asterix_offline/query/fingerprint.py
# Deterministic Cache Keys for Queries
# =============================================================================

from __future__ import annotations
import hashlib
import json
from typing import Any, Mapping, Optional

from asterix_offline.errors import ValidationError
from asterix_offline.utils import to_json_safe


def canonicalize(query: Any) -> Any:
    """
    Canonical form of a logical query.

    Strings are trimmed; mappings and sequences are converted to JSON-safe
    primitives so that field ordering is fixed by json.dumps(sort_keys=True).
    """
    if isinstance(query, str):
        return query.strip()
    return to_json_safe(query)


def fingerprint(
    query: Any,
    namespace: str = "",
    params: Optional[Mapping[str, Any]] = None,
) -> str:
    """
    Derive the cache key for a query.

    Args:
        query: SQL++ text or a structured (Mongo-style) query document
        namespace: Dataverse / collection the query runs against
        params: Optional query parameters that change the result

    Returns:
        SHA-256 hex digest
    """
    if query is None or (isinstance(query, str) and not query.strip()):
        raise ValidationError("Query is required to generate a key", field="query")

    payload = {
        "namespace": namespace or "",
        "query": canonicalize(query),
        "params": to_json_safe(dict(params)) if params else {},
    }
    text = json.dumps(payload, sort_keys=True, separators=(",", ":"))
    return hashlib.sha256(text.encode("utf-8")).hexdigest()
