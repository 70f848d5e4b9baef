import pytest
from pydantic import BaseModel

from graphtransfer.core.client import ApiClient
from graphtransfer.core.exceptions import (
    ApplicationError,
    ProtocolError,
    TransientError,
    TransportError,
)
from graphtransfer.core.transport import HttpRequest
from graphtransfer.paging.models import Page
from graphtransfer.paging.page_fetcher import (
    PageFetcher,
    compose,
    with_headers,
    with_query,
)
from tests.unit.helpers.fake_graph import (
    API,
    FakeGraphServer,
    ScriptedExecutor,
    json_response,
    odata_error,
)


class Message(BaseModel):
    id: str
    subject: str = ""


def test_with_headers_adds_headers():
    configure = with_headers({"Prefer": 'outlook.body-content-type="text"'})

    request = configure(HttpRequest(method="GET", url=f"{API}/me/messages"))

    assert request.headers == {"Prefer": 'outlook.body-content-type="text"'}


def test_with_query_builds_odata_options():
    configure = with_query(
        top=10,
        select=["id", "subject"],
        filter="isRead eq false",
        orderby=["receivedDateTime desc"],
        expand=["attachments"],
        **{"$count": "true"},
    )

    request = configure(HttpRequest(method="GET", url=f"{API}/me/messages"))

    assert request.params == {
        "$top": "10",
        "$select": "id,subject",
        "$filter": "isRead eq false",
        "$orderby": "receivedDateTime desc",
        "$expand": "attachments",
        "$count": "true",
    }


def test_with_query_skips_options_already_in_cursor():
    """Test that options carried by a continuation cursor are not repeated."""
    configure = with_query(top=10, select=["id"])
    cursor = f"{API}/me/messages?%24select=id&%24top=10&%24skiptoken=abc"

    request = configure(HttpRequest(method="GET", url=cursor))

    assert request.params == {}


def test_with_query_keeps_params_set_by_earlier_configurator():
    configure = compose(
        lambda request: request.with_params({"$top": "3"}),
        with_query(top=10),
    )

    request = configure(HttpRequest(method="GET", url=f"{API}/items"))

    assert request.params == {"$top": "3"}


def test_compose_applies_in_order():
    configure = compose(
        with_headers({"X-Step": "first"}),
        with_headers({"X-Step": "second", "X-Other": "1"}),
    )

    request = configure(HttpRequest(method="GET", url=f"{API}/items"))

    assert request.headers == {"X-Step": "second", "X-Other": "1"}


def test_fetch_parses_page():
    server = FakeGraphServer()
    server.add_pages(f"{API}/items", [[{"id": "1"}], [{"id": "2"}]])
    fetcher = PageFetcher(ApiClient(server))

    page = fetcher.fetch(f"{API}/items")

    assert page.items == [{"id": "1"}]
    assert page.next_link == f"{API}/items?$skiptoken=page1"
    assert fetcher.fetch_count == 1


def test_fetch_applies_configurator_to_every_request():
    server = FakeGraphServer()
    server.add_pages(f"{API}/items", [[1], [2], [3]])
    fetcher = PageFetcher(
        ApiClient(server), with_headers({"ConsistencyLevel": "eventual"})
    )

    pages = list(fetcher.iter_pages(fetcher.fetch(f"{API}/items")))

    assert [page.items for page in pages] == [[1], [2], [3]]
    assert len(server.requests) == 3
    assert all(
        request.headers["ConsistencyLevel"] == "eventual"
        for request in server.requests
    )


def test_fetch_converts_items():
    executor = ScriptedExecutor(
        json_response(200, {"value": [{"id": "m1", "subject": "Hi"}]})
    )
    fetcher = PageFetcher(ApiClient(executor), item_factory=Message.model_validate)

    page = fetcher.fetch(f"{API}/me/messages")

    assert page.items == [Message(id="m1", subject="Hi")]


@pytest.mark.parametrize("url", ["", "not-a-url", "/relative/path", "ftp://host/x"])
def test_fetch_rejects_malformed_urls(url):
    executor = ScriptedExecutor()
    fetcher = PageFetcher(ApiClient(executor))

    with pytest.raises(ProtocolError):
        fetcher.fetch(url)

    assert executor.requests == []
    assert fetcher.fetch_count == 0


@pytest.mark.parametrize(
    "response",
    [
        json_response(200, {"@odata.nextLink": f"{API}/items?page=2"}),
        json_response(200, {"value": "nope"}),
        json_response(200, [1, 2, 3]),
        json_response(200),
    ],
)
def test_fetch_rejects_malformed_pages(response):
    fetcher = PageFetcher(ApiClient(ScriptedExecutor(response)))

    with pytest.raises(ProtocolError):
        fetcher.fetch(f"{API}/items")


def test_fetch_errors_are_not_retried():
    executor = ScriptedExecutor(odata_error(503, "serviceNotAvailable", "busy"))
    fetcher = PageFetcher(ApiClient(executor))

    with pytest.raises(TransientError):
        fetcher.fetch(f"{API}/items")

    assert len(executor.requests) == 1


def test_fetch_network_failure():
    fetcher = PageFetcher(ApiClient(ScriptedExecutor(TransportError("reset"))))

    with pytest.raises(TransportError):
        fetcher.fetch(f"{API}/items")


def test_fetch_rejected_request():
    executor = ScriptedExecutor(odata_error(400, "badRequest", "Invalid $select"))
    fetcher = PageFetcher(ApiClient(executor))

    with pytest.raises(ApplicationError, match="Invalid \\$select"):
        fetcher.fetch(f"{API}/items")


def test_page_from_payload_with_delta_link():
    page = Page.from_payload(
        {
            "@odata.context": "ctx",
            "value": [1],
            "@odata.deltaLink": f"{API}/items/delta?token=xyz",
        }
    )

    assert page.continuation_cursor is None
    assert page.delta_link == f"{API}/items/delta?token=xyz"


def test_empty_next_link_ends_collection():
    page = Page.from_payload({"value": [], "@odata.nextLink": ""})

    assert page.continuation_cursor is None
