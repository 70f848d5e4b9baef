"""Build API clients from settings."""

from __future__ import annotations

import logging
from urllib.parse import urlparse

import requests

from graphtransfer.config.settings import Settings
from graphtransfer.core.auth import BearerTokenAuth
from graphtransfer.core.client import ApiClient
from graphtransfer.core.transport import (
    LoggingExecutor,
    RequestExecutor,
    RequestsExecutor,
)

LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"


def configure_logging(level: int = logging.INFO) -> None:
    """Configure root logging with a concise, consistent format."""
    if logging.getLogger().handlers:
        logging.getLogger().setLevel(level)
        return
    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    logging.basicConfig(level=level, handlers=[handler])


def build_api_client(
    settings: Settings, session: requests.Session | None = None
) -> ApiClient:
    """Create an ``ApiClient`` configured from ``settings``.

    The access token is only sent to the API host, never to the storage
    hosts behind upload session URLs.
    """
    executor: RequestExecutor = RequestsExecutor(session)
    if settings.debug_log:
        executor = LoggingExecutor(
            executor,
            target_logger=logging.getLogger("graphtransfer.http"),
            show_tokens=settings.show_tokens,
            show_payloads=settings.show_payloads,
        )

    authorizer = None
    if settings.access_token:
        api_host = urlparse(settings.api_url).hostname
        authorizer = BearerTokenAuth(
            settings.access_token,
            allowed_hosts=[api_host] if api_host else None,
        )
    return ApiClient(executor, authorizer)
