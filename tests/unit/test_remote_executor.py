# =============================================================================
# tests/unit/test_remote_executor.py
# Unit Tests for the HTTP Query Executor
# =============================================================================

from unittest.mock import MagicMock

import pytest
import requests

from asterix_offline.api import ExecutorConfig, HttpQueryExecutor, is_dml
from asterix_offline.config import OfflineSettings
from asterix_offline.errors import RemoteExecutionError


def make_response(json_body=None, status_code=200, text=""):
    response = MagicMock(spec=requests.Response)
    response.status_code = status_code
    response.text = text
    if isinstance(json_body, Exception):
        response.json.side_effect = json_body
    else:
        response.json.return_value = json_body
    if status_code >= 400:
        response.raise_for_status.side_effect = requests.exceptions.HTTPError(response=response)
    return response


@pytest.fixture
def session():
    mock = MagicMock(spec=requests.Session)
    mock.headers = {}
    return mock


@pytest.fixture
def executor(session):
    return HttpQueryExecutor(ExecutorConfig(base_url="http://asterix:19002/", timeout=3.0), session=session)


class TestIsDml:
    """Test DML detection"""

    @pytest.mark.parametrize("query", [
        "INSERT INTO x {};",
        "upsert into x {};",
        "USE Shop; DELETE FROM Orders o WHERE o.id = 1;",
        "UPDATE x SET a = 1;",
    ])
    def test_dml(self, query):
        assert is_dml(query)

    @pytest.mark.parametrize("query", [
        "SELECT 1;",
        "USE Shop; SELECT * FROM Orders o;",
        "CREATE DATASET x(t) PRIMARY KEY id;",
    ])
    def test_not_dml(self, query):
        assert not is_dml(query)


class TestExecute:
    """Test request construction and error mapping"""

    def test_read_is_get_with_statement_param(self, executor, session):
        session.request.return_value = make_response({"status": "success", "results": [1]})

        result = executor.execute("SELECT 1;")

        assert result == {"status": "success", "results": [1]}
        session.request.assert_called_once_with(
            method="GET",
            url="http://asterix:19002/query/service",
            params={"statement": "SELECT 1;"},
            json=None,
            timeout=3.0,
        )

    def test_dml_is_post_with_statement_body(self, executor, session):
        session.request.return_value = make_response({"status": "success"})

        executor.execute("INSERT INTO x {};")

        kwargs = session.request.call_args.kwargs
        assert kwargs["method"] == "POST"
        assert kwargs["json"] == {"statement": "INSERT INTO x {};"}
        assert kwargs["params"] is None

    def test_content_type_header_set(self, session):
        HttpQueryExecutor(session=session)

        assert session.headers["Content-Type"] == "application/json"

    def test_http_error_mapped(self, executor, session):
        session.request.return_value = make_response(
            {"errors": [{"msg": "Syntax error"}]}, status_code=400
        )

        with pytest.raises(RemoteExecutionError) as exc_info:
            executor.execute("SELEC 1;")

        assert exc_info.value.details["status_code"] == 400
        assert exc_info.value.details["response"] == {"errors": [{"msg": "Syntax error"}]}

    def test_connection_error_mapped(self, executor, session):
        session.request.side_effect = requests.exceptions.ConnectionError("refused")

        with pytest.raises(RemoteExecutionError) as exc_info:
            executor.execute("SELECT 1;")

        assert "refused" in str(exc_info.value)

    def test_timeout_mapped(self, executor, session):
        session.request.side_effect = requests.exceptions.Timeout("slow")

        with pytest.raises(RemoteExecutionError):
            executor.execute("SELECT 1;")

    def test_non_json_body_mapped(self, executor, session):
        session.request.return_value = make_response(ValueError("no json"), text="<html>")

        with pytest.raises(RemoteExecutionError):
            executor.execute("SELECT 1;")


def test_from_settings():
    executor = HttpQueryExecutor.from_settings(
        OfflineSettings(base_url="http://db:19002", request_timeout=9.0)
    )

    assert executor.config.base_url == "http://db:19002"
    assert executor.config.timeout == 9.0
    executor.close()


def test_close_closes_session(executor, session):
    executor.close()

    session.close.assert_called_once()
