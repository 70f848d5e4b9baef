"""Exception classes for transfer and paging workflows."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from graphtransfer.core.transport import HttpResponse


class TransferError(Exception):
    """Base error for upload and paging workflows."""

    def __init__(self, message: str, response: HttpResponse | None = None):
        """Initialize the error.

        Args:
            message: Human readable description.
            response: The response that caused the error, if any.
        """
        super().__init__(message)
        self.response = response


class TransientError(TransferError):
    """Raised when a retryable failure persists after all attempts."""


class TransportError(TransientError):
    """Raised by request executors when the network call itself fails."""


class SessionExpiredError(TransferError):
    """Raised when an upload session is gone or past its expiration time.

    A new session must be created to retry the upload.
    """


class ProtocolError(TransferError):
    """Raised when a response is malformed or lacks a required field."""


class ApplicationError(TransferError):
    """Raised when the API rejects a request with a structured error payload."""

    def __init__(
        self,
        message: str,
        code: str | None = None,
        status_code: int | None = None,
        response: HttpResponse | None = None,
    ):
        """Initialize ApplicationError.

        Args:
            message: Error message reported by the API.
            code: Error code reported by the API, e.g. ``itemNotFound``.
            status_code: HTTP status of the rejected request.
            response: The rejected response.
        """
        super().__init__(message, response=response)
        self.code = code
        self.status_code = status_code

    def __str__(self) -> str:
        """Include the error code and status when known."""
        message = super().__str__()
        if self.code:
            message = f"{self.code}: {message}"
        if self.status_code is not None:
            message = f"HTTP {self.status_code} {message}"
        return message
