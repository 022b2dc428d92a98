"""
Remote side of the offline layer: executor contract and HTTP implementation.
"""
from .remote_executor import (
    RemoteExecutor,
    HttpQueryExecutor,
    ExecutorConfig,
    is_dml,
)

__all__ = [
    "RemoteExecutor",
    "HttpQueryExecutor",
    "ExecutorConfig",
    "is_dml",
]
