"""HTTP request/response types and request executors.

The transfer engines never talk to the network directly. They build
``HttpRequest`` values and hand them to a ``RequestExecutor``, which returns
an ``HttpResponse``. ``RequestsExecutor`` is the default executor backed by a
``requests.Session``; ``LoggingExecutor`` wraps any executor and logs each
request and response for debugging.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Mapping
from dataclasses import dataclass, field, replace
from typing import Any, Protocol

import requests
from requests.structures import CaseInsensitiveDict

from graphtransfer.core.const import REQUEST_TIMEOUT_SECONDS
from graphtransfer.core.exceptions import TransportError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class HttpRequest:
    """An outgoing HTTP request.

    Instances are immutable; the ``with_*`` helpers return modified copies so
    request configurators can stay pure functions.
    """

    method: str
    url: str
    headers: Mapping[str, str] = field(default_factory=dict)
    params: Mapping[str, str] = field(default_factory=dict)
    content: bytes | None = None
    json: Any = None

    def with_headers(self, headers: Mapping[str, str]) -> HttpRequest:
        """Return a copy with ``headers`` merged over the existing ones."""
        return replace(self, headers={**self.headers, **headers})

    def with_params(self, params: Mapping[str, str]) -> HttpRequest:
        """Return a copy with ``params`` merged over the existing query options."""
        return replace(self, params={**self.params, **params})


@dataclass
class HttpResponse:
    """A received HTTP response."""

    status_code: int
    headers: Mapping[str, str] = field(default_factory=CaseInsensitiveDict)
    content: bytes = b""

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 400

    @property
    def text(self) -> str:
        return self.content.decode("utf-8", errors="replace")

    def json(self) -> Any:
        """Decode the body as JSON.

        Raises:
            ValueError: If the body is empty or not valid JSON.
        """
        if not self.content:
            raise ValueError("Response body is empty")
        return json.loads(self.content)


class RequestExecutor(Protocol):
    """Sends one request and returns the response.

    Implementations raise ``TransportError`` when no response was received.
    """

    def execute(self, request: HttpRequest) -> HttpResponse: ...


class RequestsExecutor:
    """Execute requests with a ``requests.Session``."""

    def __init__(
        self,
        session: requests.Session | None = None,
        timeout: float = REQUEST_TIMEOUT_SECONDS,
    ) -> None:
        """Initialize the executor.

        Args:
            session: Session to send requests with. A new one is created
                when omitted.
            timeout: Per-request timeout in seconds.
        """
        self._session = session or requests.Session()
        self._timeout = timeout

    def execute(self, request: HttpRequest) -> HttpResponse:
        """Send ``request`` and return its response.

        Raises:
            TransportError: If the request could not be completed.
        """
        try:
            response = self._session.request(
                request.method,
                request.url,
                headers=dict(request.headers),
                params=dict(request.params) or None,
                data=request.content,
                json=request.json,
                timeout=self._timeout,
            )
        except requests.RequestException as e:
            raise TransportError(
                f"{request.method} {request.url} failed: {e}"
            ) from e
        return HttpResponse(
            status_code=response.status_code,
            headers=CaseInsensitiveDict(response.headers),
            content=response.content,
        )

    def close(self) -> None:
        self._session.close()


class LoggingExecutor:
    """Log every request and response passing through another executor.

    Authorization headers are masked unless ``show_tokens`` is set, and
    bodies are only logged when ``show_payloads`` is set.
    """

    MAX_PAYLOAD_LOG_BYTES = 4096

    def __init__(
        self,
        inner: RequestExecutor,
        target_logger: logging.Logger | None = None,
        show_tokens: bool = False,
        show_payloads: bool = False,
    ) -> None:
        """Initialize the logging wrapper.

        Args:
            inner: Executor that actually sends the requests.
            target_logger: Logger to write to (default: module logger).
            show_tokens: Log authorization header values verbatim.
            show_payloads: Log request and response bodies.
        """
        self._inner = inner
        self._logger = target_logger or logger
        self.show_tokens = show_tokens
        self.show_payloads = show_payloads

    def execute(self, request: HttpRequest) -> HttpResponse:
        self._logger.info("REQUEST %s %s", request.method, request.url)
        if request.params:
            self._logger.info("Query: %s", dict(request.params))
        self._log_headers(request.headers)
        if self.show_payloads:
            if request.json is not None:
                self._log_payload(json.dumps(request.json).encode())
            elif request.content:
                self._log_payload(request.content)

        response = self._inner.execute(request)

        self._logger.info("RESPONSE %d", response.status_code)
        self._log_headers(response.headers)
        if self.show_payloads and response.content:
            self._log_payload(response.content)
        return response

    def _log_headers(self, headers: Mapping[str, str]) -> None:
        for key, value in headers.items():
            if not self.show_tokens and key.lower() == "authorization":
                # Confirm the header is present without leaking it
                self._logger.info("%s: Bearer ***", key)
                continue
            self._logger.info("%s: %s", key, value)

    def _log_payload(self, payload: bytes) -> None:
        if len(payload) > self.MAX_PAYLOAD_LOG_BYTES:
            self._logger.info(
                "Payload: <%d bytes, first %d shown> %s",
                len(payload),
                self.MAX_PAYLOAD_LOG_BYTES,
                payload[: self.MAX_PAYLOAD_LOG_BYTES].decode("utf-8", "replace"),
            )
            return
        self._logger.info("Payload: %s", payload.decode("utf-8", "replace"))
