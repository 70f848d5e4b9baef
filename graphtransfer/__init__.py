"""Resumable large-payload uploads and pausable paging for Graph-style APIs."""

from .core.auth import BearerTokenAuth
from .core.client import ApiClient
from .core.exceptions import (
    ApplicationError,
    ProtocolError,
    SessionExpiredError,
    TransferError,
    TransientError,
    TransportError,
)
from .core.transport import HttpRequest, HttpResponse, LoggingExecutor, RequestsExecutor
from .paging.models import Page, PagingContext, PagingState
from .paging.page_fetcher import PageFetcher, with_headers, with_query
from .paging.page_iterator import PageIterator
from .upload.chunked_upload import ChunkedUploadEngine
from .upload.models import ByteRange, ChunkSlice, UploadResult, UploadSession
from .upload.session_client import UploadSessionClient

__version__ = "0.3.0"

__all__ = [
    "ApiClient",
    "ApplicationError",
    "BearerTokenAuth",
    "ByteRange",
    "ChunkSlice",
    "ChunkedUploadEngine",
    "HttpRequest",
    "HttpResponse",
    "LoggingExecutor",
    "Page",
    "PageFetcher",
    "PageIterator",
    "PagingContext",
    "PagingState",
    "ProtocolError",
    "RequestsExecutor",
    "SessionExpiredError",
    "TransferError",
    "TransientError",
    "TransportError",
    "UploadResult",
    "UploadSession",
    "UploadSessionClient",
    "with_headers",
    "with_query",
]
