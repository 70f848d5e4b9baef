"""Fetch single pages of a collection.

Continuation cursors are bare URLs, so headers and query options the caller
set on the first request would be lost on later pages. A request
configurator, a pure ``HttpRequest -> HttpRequest`` function, is applied to
every page request, including the first, to put them back.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterator, Mapping, Sequence
from typing import Any
from urllib.parse import parse_qs, urlparse

from graphtransfer.core.client import ApiClient
from graphtransfer.core.exceptions import ProtocolError
from graphtransfer.core.transport import HttpRequest
from graphtransfer.core.utils.http_errors import parse_json_object, raise_for_response
from graphtransfer.paging.models import Page

logger = logging.getLogger(__name__)

RequestConfigurator = Callable[[HttpRequest], HttpRequest]


def with_headers(headers: Mapping[str, str]) -> RequestConfigurator:
    """Build a configurator that adds ``headers`` to every page request."""
    fixed = dict(headers)

    def configure(request: HttpRequest) -> HttpRequest:
        return request.with_headers(fixed)

    return configure


def with_query(
    top: int | None = None,
    select: Sequence[str] | None = None,
    filter: str | None = None,
    orderby: Sequence[str] | None = None,
    expand: Sequence[str] | None = None,
    **extra: str,
) -> RequestConfigurator:
    """Build a configurator that adds OData query options.

    Options already present in the request URL are left alone, since a
    continuation cursor usually carries some of them and repeating an
    option is rejected by the server.
    """
    options: dict[str, str] = {}
    if top is not None:
        options["$top"] = str(top)
    if select:
        options["$select"] = ",".join(select)
    if filter:
        options["$filter"] = filter
    if orderby:
        options["$orderby"] = ",".join(orderby)
    if expand:
        options["$expand"] = ",".join(expand)
    options.update(extra)

    def configure(request: HttpRequest) -> HttpRequest:
        present = parse_qs(urlparse(request.url).query, keep_blank_values=True)
        missing = {
            key: value
            for key, value in options.items()
            if key not in present and key not in request.params
        }
        return request.with_params(missing)

    return configure


def compose(*configurators: RequestConfigurator) -> RequestConfigurator:
    """Chain configurators, applied left to right."""

    def configure(request: HttpRequest) -> HttpRequest:
        for configurator in configurators:
            request = configurator(request)
        return request

    return configure


class PageFetcher:
    """Execute one page request and parse the result."""

    def __init__(
        self,
        client: ApiClient,
        request_configurator: RequestConfigurator | None = None,
        item_factory: Callable[[Any], Any] | None = None,
    ) -> None:
        """Initialize the fetcher.

        Args:
            client: Client used to send page requests.
            request_configurator: Applied to every page request.
            item_factory: Converts each raw item, e.g. a pydantic model's
                ``model_validate``.
        """
        self._client = client
        self._request_configurator = request_configurator
        self._item_factory = item_factory
        self.fetch_count = 0

    def build_request(self, url: str) -> HttpRequest:
        """Build the configured GET request for ``url``.

        Raises:
            ProtocolError: If ``url`` is not an absolute http(s) URL.
        """
        parsed = urlparse(url or "")
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            raise ProtocolError(f"Malformed page URL: {url!r}")
        request = HttpRequest(method="GET", url=url)
        if self._request_configurator is not None:
            request = self._request_configurator(request)
        return request

    def fetch(self, url: str) -> Page:
        """Fetch and parse the page at ``url``.

        Failures are not retried here; the caller decides.

        Raises:
            ProtocolError: For malformed URLs or page bodies.
            TransientError: On throttling, 5xx or network failures.
            ApplicationError: If the API rejects the request.
        """
        request = self.build_request(url)
        self.fetch_count += 1
        response = self._client.send(request)
        logger.debug("GET page: status=%d url=%s", response.status_code, url)
        raise_for_response(response, "Fetch page")
        payload = parse_json_object(response, "Fetch page")
        return Page.from_payload(payload, response, self._item_factory)

    def iter_pages(self, first_page: Page) -> Iterator[Page]:
        """Yield ``first_page`` and every page after it."""
        page: Page | None = first_page
        while page is not None:
            yield page
            cursor = page.continuation_cursor
            page = self.fetch(cursor) if cursor else None
