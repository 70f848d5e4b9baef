"""Credential attachment for outgoing requests.

Token acquisition is left to the caller; this module only attaches an
already-obtained access token to each request.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable
from typing import Protocol
from urllib.parse import urlparse

from graphtransfer.core.transport import HttpRequest


class Authorizer(Protocol):
    """Attach credentials to a request before it is sent."""

    def authorize(self, request: HttpRequest) -> HttpRequest: ...


class BearerTokenAuth:
    """Attach an ``Authorization: Bearer`` header to requests.

    The token may be a fixed string or a zero-argument callable invoked for
    each request, so callers can plug in a refreshing token cache without
    this class knowing how tokens are obtained.

    When ``allowed_hosts`` is given, requests to any other host are passed
    through untouched. Upload session URLs are pre-authenticated and live on
    storage hosts, so restricting the token to the API host keeps it off
    slice requests.
    """

    def __init__(
        self,
        token: str | Callable[[], str],
        allowed_hosts: Iterable[str] | None = None,
    ) -> None:
        self._token = token
        self._allowed_hosts = (
            {host.lower() for host in allowed_hosts}
            if allowed_hosts is not None
            else None
        )

    @property
    def access_token(self) -> str:
        token = self._token() if callable(self._token) else self._token
        if not token:
            raise ValueError("No access token available")
        return token

    def get_headers(self) -> dict[str, str]:
        """Get the authentication headers for API requests."""
        return {"Authorization": f"Bearer {self.access_token}"}

    def is_host_allowed(self, url: str) -> bool:
        if self._allowed_hosts is None:
            return True
        host = (urlparse(url).hostname or "").lower()
        return host in self._allowed_hosts

    def authorize(self, request: HttpRequest) -> HttpRequest:
        if not self.is_host_allowed(request.url):
            return request
        return request.with_headers(self.get_headers())
