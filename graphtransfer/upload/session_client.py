"""Create, query and delete resumable upload sessions."""

from __future__ import annotations

import logging
from typing import Any
from urllib.parse import quote

from graphtransfer.core.client import ApiClient
from graphtransfer.core.const import API_URL
from graphtransfer.core.exceptions import SessionExpiredError
from graphtransfer.core.transport import HttpRequest, HttpResponse
from graphtransfer.core.utils.http_errors import parse_json_object, raise_for_response
from graphtransfer.upload.models import UploadSession

logger = logging.getLogger(__name__)

SESSION_GONE_STATUS_CODES = {404, 410}


class UploadSessionClient:
    """Manage upload session resources on the server."""

    def __init__(self, client: ApiClient, api_url: str = API_URL) -> None:
        """Initialize the session client.

        Args:
            client: Client used to send requests.
            api_url: Base URL used by the drive item and attachment helpers.
        """
        self._client = client
        self._api_url = api_url.rstrip("/")

    def create_upload_session(
        self, url: str, body: dict[str, Any] | None = None
    ) -> UploadSession:
        """Create an upload session by POSTing to a ``createUploadSession`` URL.

        Args:
            url: Full ``createUploadSession`` endpoint URL.
            body: Optional JSON request body.

        Returns:
            The newly created session.

        Raises:
            ApplicationError: If the API rejects the request.
            TransientError: On throttling, 5xx or network failures.
            ProtocolError: If the response lacks the session fields.
        """
        logger.info("POST createUploadSession: url=%s", url)
        response = self._client.send(
            HttpRequest(method="POST", url=url, json=body or {})
        )
        raise_for_response(response, "Create upload session")
        payload = parse_json_object(response, "Create upload session")
        session = UploadSession.from_response(response, payload)
        logger.info(
            "Upload session created: expires=%s ranges=%s",
            session.expiration_date_time,
            session.next_expected_ranges,
        )
        return session

    def create_drive_item_session(
        self,
        item_path: str,
        drive_id: str | None = None,
        conflict_behavior: str = "replace",
    ) -> UploadSession:
        """Create a session for uploading a file to a drive path.

        ``item_path`` does not need to point at an existing item.
        """
        path = quote(item_path.strip("/"))
        if drive_id:
            url = (
                f"{self._api_url}/drives/{drive_id}"
                f"/items/root:/{path}:/createUploadSession"
            )
        else:
            url = f"{self._api_url}/me/drive/root:/{path}:/createUploadSession"
        body = {"item": {"@microsoft.graph.conflictBehavior": conflict_behavior}}
        return self.create_upload_session(url, body)

    def create_attachment_session(
        self, message_id: str, name: str, size: int
    ) -> UploadSession:
        """Create a session for attaching a large file to a draft message."""
        url = (
            f"{self._api_url}/me/messages/{message_id}"
            "/attachments/createUploadSession"
        )
        body = {
            "AttachmentItem": {
                "attachmentType": "file",
                "name": name,
                "size": size,
            }
        }
        return self.create_upload_session(url, body)

    def get_upload_session(self, session: UploadSession) -> UploadSession:
        """Query the server for the current state of ``session``.

        The status endpoint omits ``uploadUrl``, so the answer is merged into
        a copy of the given session.

        Raises:
            SessionExpiredError: If the server no longer knows the session.
        """
        response = self._client.send(
            HttpRequest(method="GET", url=session.upload_url)
        )
        logger.info("GET upload session status: status=%d", response.status_code)
        self._raise_if_gone(response)
        raise_for_response(response, "Query upload session")
        payload = parse_json_object(response, "Query upload session")
        # Absent nextExpectedRanges means nothing is left to send
        merged = {
            "uploadUrl": session.upload_url,
            "expirationDateTime": session.expiration_date_time,
            **payload,
        }
        return UploadSession.from_response(response, merged)

    def delete_upload_session(self, session: UploadSession) -> None:
        """Cancel ``session`` on the server, discarding uploaded bytes.

        Deleting a session that is already gone is not an error.
        """
        response = self._client.send(
            HttpRequest(method="DELETE", url=session.upload_url)
        )
        logger.info("DELETE upload session: status=%d", response.status_code)
        if response.status_code in SESSION_GONE_STATUS_CODES:
            return
        raise_for_response(response, "Delete upload session")

    @staticmethod
    def _raise_if_gone(response: HttpResponse) -> None:
        if response.status_code in SESSION_GONE_STATUS_CODES:
            raise SessionExpiredError(
                f"Upload session no longer exists (HTTP {response.status_code})",
                response=response,
            )
