import logging

import pytest

from graphtransfer.config.settings import Settings
from graphtransfer.core.auth import BearerTokenAuth
from graphtransfer.core.client import ApiClient
from graphtransfer.core.client_factory import build_api_client
from graphtransfer.core.transport import HttpRequest, LoggingExecutor
from tests.unit.helpers.fake_graph import (
    API,
    UPLOAD_URL,
    ScriptedExecutor,
    json_response,
)


def test_static_token_headers():
    auth = BearerTokenAuth("test_token")

    assert auth.get_headers() == {"Authorization": "Bearer test_token"}


def test_token_provider_is_called_for_each_request():
    """Test that a callable token is re-read so refreshed tokens are used."""
    tokens = iter(["first", "second"])
    auth = BearerTokenAuth(lambda: next(tokens))
    request = HttpRequest(method="GET", url=f"{API}/me")

    assert auth.authorize(request).headers["Authorization"] == "Bearer first"
    assert auth.authorize(request).headers["Authorization"] == "Bearer second"


def test_empty_token_is_rejected():
    with pytest.raises(ValueError):
        BearerTokenAuth(lambda: "").get_headers()


def test_authorize_keeps_existing_headers():
    request = HttpRequest(method="GET", url=f"{API}/me", headers={"Prefer": "x"})

    authorized = BearerTokenAuth("tok").authorize(request)

    assert authorized.headers == {"Prefer": "x", "Authorization": "Bearer tok"}
    assert "Authorization" not in request.headers


def test_token_is_not_sent_to_other_hosts():
    """Test that pre-authenticated upload URLs do not receive the token."""
    auth = BearerTokenAuth("tok", allowed_hosts=["graph.example.com"])
    slice_request = HttpRequest(method="PUT", url=UPLOAD_URL)
    api_request = HttpRequest(method="GET", url=f"{API}/me/drive")

    assert auth.authorize(slice_request) is slice_request
    assert auth.authorize(api_request).headers["Authorization"] == "Bearer tok"
    assert auth.is_host_allowed("https://GRAPH.example.com/v1.0/me")


def test_client_authorizes_every_request():
    executor = ScriptedExecutor(json_response(200, {}), json_response(200, {}))
    client = ApiClient(executor, BearerTokenAuth("tok"))

    client.send(HttpRequest(method="GET", url=f"{API}/a"))
    client.send(HttpRequest(method="GET", url=f"{API}/b"))

    assert [r.headers["Authorization"] for r in executor.requests] == [
        "Bearer tok",
        "Bearer tok",
    ]


def test_client_without_authorizer_sends_request_unchanged():
    executor = ScriptedExecutor(json_response(204))
    request = HttpRequest(method="DELETE", url=UPLOAD_URL)

    response = ApiClient(executor).send(request)

    assert response.status_code == 204
    assert executor.requests == [request]


class TestBuildApiClient:
    def test_restricts_token_to_api_host(self):
        client = build_api_client(Settings(api_url=API, access_token="tok"))

        assert isinstance(client.authorizer, BearerTokenAuth)
        assert client.authorizer.is_host_allowed(f"{API}/me")
        assert not client.authorizer.is_host_allowed(UPLOAD_URL)

    def test_without_token_has_no_authorizer(self):
        client = build_api_client(Settings(api_url=API))

        assert client.authorizer is None

    def test_debug_log_wraps_executor(self):
        client = build_api_client(
            Settings(api_url=API, debug_log=True, show_payloads=True)
        )

        assert isinstance(client.executor, LoggingExecutor)
        assert client.executor.show_payloads
        assert not client.executor.show_tokens

    def test_debug_log_output(self, caplog):
        caplog.set_level(logging.INFO, logger="graphtransfer.http")
        client = build_api_client(Settings(api_url=API, debug_log=True))
        client.executor._inner = ScriptedExecutor(json_response(200, {}))

        client.send(HttpRequest(method="GET", url=f"{API}/me"))

        assert f"REQUEST GET {API}/me" in caplog.text
        assert "RESPONSE 200" in caplog.text
