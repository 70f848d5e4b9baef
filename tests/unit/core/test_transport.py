import logging

import pytest
import requests
import requests_mock

from graphtransfer.core.exceptions import TransportError
from graphtransfer.core.transport import (
    HttpRequest,
    HttpResponse,
    LoggingExecutor,
    RequestsExecutor,
)
from tests.unit.helpers.fake_graph import API, ScriptedExecutor, json_response


def test_request_helpers_return_copies():
    """Test that with_headers and with_params return modified copies."""
    request = HttpRequest(method="GET", url=f"{API}/me/messages")

    configured = request.with_headers({"Prefer": "odata.maxpagesize=5"}).with_params(
        {"$top": "5"}
    )

    assert request.headers == {}
    assert request.params == {}
    assert configured.headers == {"Prefer": "odata.maxpagesize=5"}
    assert configured.params == {"$top": "5"}


def test_response_json_rejects_empty_body():
    response = HttpResponse(status_code=202)

    with pytest.raises(ValueError):
        response.json()
    assert response.ok
    assert response.text == ""


def test_requests_executor_sends_request():
    """Test that the executor forwards method, headers, params and body."""
    with requests_mock.Mocker() as m:
        m.put(
            f"{API}/upload",
            json={"nextExpectedRanges": ["10-"]},
            status_code=202,
            headers={"Retry-After": "3"},
        )

        response = RequestsExecutor().execute(
            HttpRequest(
                method="PUT",
                url=f"{API}/upload",
                headers={"Content-Range": "bytes 0-9/20"},
                params={"$select": "id"},
                content=b"0123456789",
            )
        )

        sent = m.request_history[0]
        assert sent.headers["Content-Range"] == "bytes 0-9/20"
        assert sent.qs == {"$select": ["id"]}
        assert sent.body == b"0123456789"

    assert response.status_code == 202
    assert response.json() == {"nextExpectedRanges": ["10-"]}
    # Header lookups are case insensitive
    assert response.headers["retry-after"] == "3"


def test_requests_executor_sends_json_body():
    with requests_mock.Mocker() as m:
        m.post(f"{API}/createUploadSession", json={"uploadUrl": "u"})

        RequestsExecutor().execute(
            HttpRequest(
                method="POST", url=f"{API}/createUploadSession", json={"item": {}}
            )
        )

        assert m.request_history[0].json() == {"item": {}}


def test_requests_executor_returns_error_statuses():
    """Test that HTTP errors are responses, not exceptions."""
    with requests_mock.Mocker() as m:
        m.get(f"{API}/missing", status_code=404, text="not here")

        response = RequestsExecutor().execute(
            HttpRequest(method="GET", url=f"{API}/missing")
        )

    assert response.status_code == 404
    assert not response.ok
    assert response.text == "not here"


@pytest.mark.parametrize(
    "exc",
    [requests.exceptions.ConnectionError, requests.exceptions.Timeout],
)
def test_requests_executor_wraps_network_errors(exc):
    with requests_mock.Mocker() as m:
        m.get(f"{API}/items", exc=exc)

        with pytest.raises(TransportError) as exc_info:
            RequestsExecutor().execute(HttpRequest(method="GET", url=f"{API}/items"))

    assert isinstance(exc_info.value.__cause__, exc)
    assert exc_info.value.response is None


class TestLoggingExecutor:
    def _execute(self, **kwargs):
        inner = ScriptedExecutor(json_response(200, {"value": [1]}))
        executor = LoggingExecutor(
            inner, target_logger=logging.getLogger("graphtransfer.http"), **kwargs
        )
        request = HttpRequest(
            method="POST",
            url=f"{API}/items",
            headers={"Authorization": "Bearer secret-token"},
            params={"$top": "2"},
            json={"name": "report.pdf"},
        )
        return inner, executor.execute(request)

    def test_masks_tokens_by_default(self, caplog):
        caplog.set_level(logging.INFO, logger="graphtransfer.http")

        inner, response = self._execute()

        assert response.status_code == 200
        assert len(inner.requests) == 1
        assert "REQUEST POST https://graph.example.com/v1.0/items" in caplog.text
        assert "RESPONSE 200" in caplog.text
        assert "Authorization: Bearer ***" in caplog.text
        assert "secret-token" not in caplog.text
        assert "report.pdf" not in caplog.text

    def test_shows_tokens_and_payloads_when_enabled(self, caplog):
        caplog.set_level(logging.INFO, logger="graphtransfer.http")

        self._execute(show_tokens=True, show_payloads=True)

        assert "Authorization: Bearer secret-token" in caplog.text
        assert '{"name": "report.pdf"}' in caplog.text
        assert '{"value": [1]}' in caplog.text
        assert "{'$top': '2'}" in caplog.text

    def test_truncates_large_payloads(self, caplog):
        caplog.set_level(logging.INFO, logger="graphtransfer.http")
        inner = ScriptedExecutor(HttpResponse(status_code=202))
        executor = LoggingExecutor(
            inner,
            target_logger=logging.getLogger("graphtransfer.http"),
            show_payloads=True,
        )

        executor.execute(
            HttpRequest(method="PUT", url=f"{API}/upload", content=b"a" * 10_000)
        )

        assert "<10000 bytes, first 4096 shown>" in caplog.text
        assert "a" * 4097 not in caplog.text

    def test_transport_errors_propagate(self):
        inner = ScriptedExecutor(TransportError("connection reset"))
        executor = LoggingExecutor(inner)

        with pytest.raises(TransportError):
            executor.execute(HttpRequest(method="GET", url=f"{API}/items"))
