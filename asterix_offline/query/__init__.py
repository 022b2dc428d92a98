"""
Query helpers: read/write classification and cache key derivation.
"""
from .classifier import (
    QueryClassifier,
    OperationType,
    WRITE_VERBS,
    SYNCABLE_TYPES,
    is_read_only,
    operation_type_of,
)
from .fingerprint import fingerprint, canonicalize

__all__ = [
    "QueryClassifier",
    "OperationType",
    "WRITE_VERBS",
    "SYNCABLE_TYPES",
    "is_read_only",
    "operation_type_of",
    "fingerprint",
    "canonicalize",
]
