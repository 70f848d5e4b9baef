"""Glue between request executors and authorizers."""

from __future__ import annotations

import logging

from graphtransfer.core.auth import Authorizer
from graphtransfer.core.transport import (
    HttpRequest,
    HttpResponse,
    RequestExecutor,
    RequestsExecutor,
)

logger = logging.getLogger(__name__)


class ApiClient:
    """Authorize and execute requests.

    Every request issued by the upload and paging components goes through
    ``send``, so the authorizer is applied uniformly before each call.
    """

    def __init__(
        self,
        executor: RequestExecutor | None = None,
        authorizer: Authorizer | None = None,
    ) -> None:
        """Initialize the client.

        Args:
            executor: Executor used to send requests (default: a new
                ``RequestsExecutor``).
            authorizer: Optional authorizer applied to every request.
        """
        self.executor = executor or RequestsExecutor()
        self.authorizer = authorizer

    def send(self, request: HttpRequest) -> HttpResponse:
        """Authorize ``request`` if configured and execute it.

        Raises:
            TransportError: If no response was received.
        """
        if self.authorizer is not None:
            request = self.authorizer.authorize(request)
        logger.debug("%s %s", request.method, request.url)
        return self.executor.execute(request)
