"""HTTP error helpers for extracting API error details."""

from __future__ import annotations

from typing import Any

from graphtransfer.core.exceptions import (
    ApplicationError,
    ProtocolError,
    TransientError,
)
from graphtransfer.core.transport import HttpResponse

THROTTLED_STATUS_CODE = 429


def is_retryable_status(status_code: int) -> bool:
    """Return True for throttling and server-side failures."""
    return status_code == THROTTLED_STATUS_CODE or 500 <= status_code < 600


def extract_error_detail(response: HttpResponse) -> tuple[str | None, str]:
    """Extract the error code and message from an error response.

    OData APIs answer with ``{"error": {"code": ..., "message": ...}}``.
    Anything else is reported as raw text.

    Returns:
        Tuple of (code, message); code is None when the body is unstructured.
    """
    try:
        payload: Any = response.json()
    except ValueError:
        return None, response.text or f"HTTP {response.status_code}"

    if not isinstance(payload, dict):
        return None, str(payload)

    error_payload = payload.get("error", payload)
    if not isinstance(error_payload, dict):
        return None, str(error_payload)

    code = error_payload.get("code")
    message = error_payload.get("message") or error_payload.get("detail")
    return code, message or str(error_payload)


def retry_after_seconds(response: HttpResponse) -> float | None:
    """Return the ``Retry-After`` delay in seconds, if the server sent one."""
    value = response.headers.get("Retry-After")
    if value is None:
        return None
    try:
        return max(float(value), 0.0)
    except ValueError:
        return None


def raise_for_response(response: HttpResponse, action: str) -> None:
    """Raise the matching transfer error for a non-success response.

    Args:
        response: The response to check.
        action: Short description of the request, used in messages.

    Raises:
        TransientError: On throttling or 5xx responses.
        ApplicationError: On any other error status.
    """
    if response.ok:
        return
    code, message = extract_error_detail(response)
    if is_retryable_status(response.status_code):
        raise TransientError(
            f"{action} failed with HTTP {response.status_code}: {message}",
            response=response,
        )
    raise ApplicationError(
        message, code=code, status_code=response.status_code, response=response
    )


def parse_json_object(response: HttpResponse, action: str) -> dict[str, Any]:
    """Decode a JSON object body.

    Raises:
        ProtocolError: If the body is not a JSON object.
    """
    try:
        payload = response.json()
    except ValueError as e:
        raise ProtocolError(
            f"{action} returned a body that is not valid JSON", response=response
        ) from e
    if not isinstance(payload, dict):
        raise ProtocolError(
            f"{action} returned {type(payload).__name__}, expected an object",
            response=response,
        )
    return payload
