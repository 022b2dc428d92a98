# =============================================================================
# asterix_offline/query/classifier.py
# Read/Write Classification of SQL++ Statements
# =============================================================================
"""
QueryClassifier - decides whether a statement is read-only and which write
operation it performs.

The rule is purely syntactic: the statement's first keyword (after skipping
leading whitespace, comments and parentheses, and upper-casing) is compared
against a fixed set of write verbs. The same instance is used for cache
eligibility and for write/queue routing so both decisions always agree.
"""

from __future__ import annotations
import re
from enum import Enum
from typing import Any, Optional


class OperationType(str, Enum):
    """Write operation types recognized in a statement."""
    INSERT = "INSERT"
    UPSERT = "UPSERT"
    DELETE = "DELETE"
    UPDATE = "UPDATE"
    CREATE = "CREATE"
    DROP = "DROP"
    LOAD = "LOAD"
    UNKNOWN = "UNKNOWN"


WRITE_VERBS = frozenset({
    "INSERT", "UPSERT", "DELETE", "UPDATE", "CREATE", "DROP", "LOAD", "SET",
})

# Operation types the sync loop is allowed to replay
SYNCABLE_TYPES = frozenset({
    OperationType.INSERT.value,
    OperationType.UPDATE.value,
    OperationType.DELETE.value,
})

_TOKEN_RE = re.compile(r"[A-Za-z_]+")

# Whitespace, line and block comments, and opening parentheses before the verb
_PREAMBLE_RE = re.compile(r"(?:\s+|--[^\n]*|/\*.*?\*/|\()*", re.DOTALL)


def leading_keyword(query: Any) -> Optional[str]:
    """
    Upper-cased first keyword of a statement, or None.

    Leading comments and opening parentheses are skipped, so
    ``(SELECT ...)`` and ``-- note\\nSELECT ...`` both yield SELECT.
    """
    if not isinstance(query, str):
        return None
    start = _PREAMBLE_RE.match(query).end()
    match = _TOKEN_RE.match(query, start)
    return match.group(0).upper() if match else None


class QueryClassifier:
    """Classifies statements for the offline gateway."""

    def __init__(self, write_verbs=WRITE_VERBS):
        self.write_verbs = frozenset(v.upper() for v in write_verbs)

    def is_read_only(self, query: Any) -> bool:
        """
        Check whether a statement only reads.

        Non-string input is never considered read-only.
        """
        keyword = leading_keyword(query)
        if keyword is None:
            return False
        return keyword not in self.write_verbs

    def is_write(self, query: Any) -> bool:
        return not self.is_read_only(query)

    def operation_type_of(self, query: Any) -> str:
        """
        Operation type derived from the leading keyword.

        Returns:
            One of INSERT, UPSERT, DELETE, UPDATE, CREATE, DROP, LOAD, UNKNOWN
        """
        keyword = leading_keyword(query)
        try:
            return OperationType(keyword).value
        except ValueError:
            return OperationType.UNKNOWN.value


# Module-level default used by the gateway
_default_classifier = QueryClassifier()


def is_read_only(query: Any) -> bool:
    """Quick check using the default classifier."""
    return _default_classifier.is_read_only(query)


def operation_type_of(query: Any) -> str:
    """Quick lookup using the default classifier."""
    return _default_classifier.operation_type_of(query)
