"""
Remote executor contract and the AsterixDB HTTP implementation.

Everything the offline layer needs from the remote side is
``execute(query_text) -> dict``. A response with ``status == "success"`` is
the only thing the sync loop treats as acceptance.
"""
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Optional, Dict, Any, Tuple
import logging

import requests

from asterix_offline.errors import RemoteExecutionError

logger = logging.getLogger(__name__)

QUERY_ENDPOINT = "query/service"

# Statements the query service expects as POST
DML_KEYWORDS: Tuple[str, ...] = ("INSERT", "UPSERT", "UPDATE", "DELETE")


@dataclass
class ExecutorConfig:
    """Configuration for the remote query service connection"""
    base_url: str = "http://localhost:19002"
    timeout: float = 5.0
    headers: Dict[str, str] = field(
        default_factory=lambda: {"Content-Type": "application/json"}
    )


class RemoteExecutor(ABC):
    """Abstract capability: run one statement against the authoritative store"""

    @abstractmethod
    def execute(self, query: str) -> Dict[str, Any]:
        """
        Execute a statement remotely

        Args:
            query: SQL++ statement text

        Returns:
            Response document ({status?, results?, metrics?})

        Raises:
            RemoteExecutionError: transport or server failure
        """
        pass

    def close(self) -> None:
        """Release connections (optional)"""
        pass


def is_dml(query: str) -> bool:
    """
    Check whether a statement modifies data.

    A leading ``USE dataverse;`` prefix is skipped so that
    ``USE Shop; INSERT INTO ...`` is still sent as DML.
    """
    parts = [p.strip().upper() for p in query.strip().split(";") if p.strip()]
    if parts and parts[0].startswith("USE"):
        parts = parts[1:]
    return any(p.startswith(DML_KEYWORDS) for p in parts)


class HttpQueryExecutor(RemoteExecutor):
    """Executes statements through the AsterixDB HTTP query service"""

    def __init__(
        self,
        config: Optional[ExecutorConfig] = None,
        session: Optional[requests.Session] = None,
    ):
        self.config = config or ExecutorConfig()
        self.session = session or requests.Session()
        self.session.headers.update(self.config.headers)

    @classmethod
    def from_settings(cls, settings) -> "HttpQueryExecutor":
        """Build an executor from OfflineSettings"""
        return cls(ExecutorConfig(
            base_url=settings.base_url,
            timeout=settings.request_timeout,
        ))

    def execute(self, query: str) -> Dict[str, Any]:
        if is_dml(query):
            response = self._make_request(method="POST", data={"statement": query})
        else:
            response = self._make_request(method="GET", params={"statement": query})

        try:
            return response.json()
        except ValueError as e:
            raise RemoteExecutionError(
                f"Query service returned a non-JSON response: {e}",
                status_code=response.status_code,
            ) from e

    def _make_request(
        self,
        method: str = "GET",
        params: Optional[Dict] = None,
        data: Optional[Dict] = None
    ) -> requests.Response:
        """
        Make HTTP request with error handling

        Args:
            method: HTTP method (GET for reads, POST for DML)
            params: Query parameters
            data: JSON request body

        Returns:
            Response object
        """
        url = f"{self.config.base_url.rstrip('/')}/{QUERY_ENDPOINT}"

        try:
            response = self.session.request(
                method=method,
                url=url,
                params=params,
                json=data,
                timeout=self.config.timeout
            )
            response.raise_for_status()
            return response

        except requests.exceptions.HTTPError as e:
            body = _response_body(e.response)
            raise RemoteExecutionError(
                f"Query execution failed: {body or e}",
                status_code=e.response.status_code if e.response is not None else None,
                response=body,
            ) from e
        except requests.exceptions.RequestException as e:
            raise RemoteExecutionError(f"Query execution failed: {e}") from e

    def close(self) -> None:
        self.session.close()


def _response_body(response: Optional[requests.Response]) -> Any:
    """Best-effort decoding of an error response body"""
    if response is None:
        return None
    try:
        return response.json()
    except ValueError:
        return response.text or None
