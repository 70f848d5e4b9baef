"""Resumable chunked uploads against an upload session.

The engine sends a seekable byte stream to a session's upload URL one slice
at a time. The server answers each non-final slice with the byte ranges it
still expects, and the engine always continues from the first of those
ranges, so gaps reported by the server are filled and a crashed upload can
be resumed from whatever the server acknowledged.
"""

from __future__ import annotations

import io
import logging
import threading
import time
from collections.abc import Callable
from typing import IO, Any

from graphtransfer.core.client import ApiClient
from graphtransfer.core.const import (
    DEFAULT_MAX_RETRIES,
    DEFAULT_SLICE_SIZE,
    MAX_BACKOFF_SECONDS,
    MAX_SLICE_SIZE,
    UPLOAD_ALIGNMENT_UNIT,
)
from graphtransfer.core.exceptions import (
    ProtocolError,
    SessionExpiredError,
    TransferError,
    TransientError,
    TransportError,
)
from graphtransfer.core.transport import HttpRequest, HttpResponse
from graphtransfer.core.utils.http_errors import (
    is_retryable_status,
    parse_json_object,
    raise_for_response,
    retry_after_seconds,
)
from graphtransfer.upload.models import ChunkSlice, UploadResult, UploadSession
from graphtransfer.upload.session_client import UploadSessionClient

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int], None]


class ChunkedUploadEngine:
    """Upload a stream to an upload session in sequential slices.

    Slices are never sent concurrently: the server requires ordered,
    contiguous acknowledgment for a session. Transient failures are retried
    with exponential backoff on the same slice; an expired or deleted
    session is fatal and a new session must be created.
    """

    ALIGNMENT_UNIT = UPLOAD_ALIGNMENT_UNIT
    MAX_SLICE_SIZE = MAX_SLICE_SIZE
    MAX_BACKOFF_SECONDS = MAX_BACKOFF_SECONDS
    FINAL_SUCCESS_CODES = {200, 201}
    ACCEPTED_CODE = 202
    SESSION_GONE_CODES = {404, 410}

    def __init__(
        self,
        client: ApiClient,
        max_retries: int = DEFAULT_MAX_RETRIES,
        session_client: UploadSessionClient | None = None,
    ) -> None:
        """Initialize the engine.

        Args:
            client: Client used to send slice requests.
            max_retries: Attempts per slice before giving up.
            session_client: Client used to query session state on resume.
        """
        if max_retries < 1:
            raise ValueError(f"max_retries must be at least 1, got {max_retries}")
        self._client = client
        self._session_client = session_client or UploadSessionClient(client)
        self.max_retries = max_retries

    @classmethod
    def validate_slice_size(cls, slice_size: int) -> None:
        """Check that ``slice_size`` is usable for non-final slices.

        Raises:
            ValueError: If the size is not a positive multiple of the
                alignment unit or exceeds the per-request maximum.
        """
        if slice_size <= 0 or slice_size % cls.ALIGNMENT_UNIT != 0:
            raise ValueError(
                f"slice_size must be a positive multiple of {cls.ALIGNMENT_UNIT} "
                f"bytes, got {slice_size}"
            )
        if slice_size > cls.MAX_SLICE_SIZE:
            raise ValueError(
                f"slice_size must not exceed {cls.MAX_SLICE_SIZE} bytes, "
                f"got {slice_size}"
            )

    def upload(
        self,
        session: UploadSession,
        stream: IO[bytes],
        slice_size: int = DEFAULT_SLICE_SIZE,
        progress_callback: ProgressCallback | None = None,
        cancel_event: threading.Event | None = None,
    ) -> UploadResult:
        """Upload ``stream`` from the first byte.

        Args:
            session: Session to upload to. Its expected ranges are updated
                as the server acknowledges slices.
            stream: Seekable binary stream; its full length is uploaded.
            slice_size: Bytes per slice, a multiple of ``ALIGNMENT_UNIT``.
            progress_callback: Called with the cumulative number of bytes
                the server has acknowledged, whenever that number grows.
            cancel_event: When set, the upload stops before the next slice.

        Returns:
            The upload result. A cancelled upload is not an error.

        Raises:
            SessionExpiredError: If the session is gone or expired.
            TransientError: If a slice keeps failing after all retries.
            ApplicationError: If the server rejects a slice.
            ProtocolError: If the server response cannot be interpreted.
        """
        self.validate_slice_size(slice_size)
        return self._upload_from(
            session, stream, 0, slice_size, progress_callback, cancel_event
        )

    def resume(
        self,
        session: UploadSession,
        stream: IO[bytes],
        slice_size: int = DEFAULT_SLICE_SIZE,
        progress_callback: ProgressCallback | None = None,
        cancel_event: threading.Event | None = None,
        refresh: bool = True,
    ) -> UploadResult:
        """Continue an interrupted upload from the first range the server expects.

        Args:
            session: Session of the interrupted upload.
            stream: The same content that was being uploaded.
            slice_size: Bytes per slice, a multiple of ``ALIGNMENT_UNIT``.
            progress_callback: See ``upload``.
            cancel_event: See ``upload``.
            refresh: Query the server for the session state first. When
                False the cached ``next_expected_ranges`` are trusted.

        Returns:
            The upload result.

        Raises:
            Same as ``upload``.
        """
        self.validate_slice_size(slice_size)
        if refresh:
            current = self._session_client.get_upload_session(session)
            session.expiration_date_time = current.expiration_date_time
            session.next_expected_ranges = current.next_expected_ranges

        offset = session.next_offset()
        total = self._stream_length(stream)
        if offset is None:
            logger.info("Resume: server already holds all %d bytes", total)
            return UploadResult(succeeded=True, next_offset=total)

        if offset > total:
            raise ProtocolError(
                f"Server expects offset {offset} beyond stream length {total}"
            )
        logger.info("Resuming upload at offset %d/%d", offset, total)
        if progress_callback is not None and offset > 0:
            progress_callback(offset)
        return self._upload_from(
            session, stream, offset, slice_size, progress_callback, cancel_event
        )

    def _upload_from(
        self,
        session: UploadSession,
        stream: IO[bytes],
        offset: int,
        slice_size: int,
        progress_callback: ProgressCallback | None,
        cancel_event: threading.Event | None,
    ) -> UploadResult:
        total = self._stream_length(stream)
        if offset > total:
            raise ProtocolError(
                f"Server expects offset {offset} beyond stream length {total}"
            )

        reported = offset
        stalls = 0
        last_response: HttpResponse | None = None

        while True:
            if cancel_event is not None and cancel_event.is_set():
                logger.info("Upload cancelled at offset %d/%d", offset, total)
                return UploadResult(
                    succeeded=False,
                    raw_response=last_response,
                    cancelled=True,
                    next_offset=offset,
                )
            if session.is_expired():
                raise SessionExpiredError(
                    f"Upload session expired at {session.expiration_date_time}",
                    response=last_response,
                )

            chunk = self._next_slice(session, offset, total, slice_size)
            data = self._read_slice(stream, chunk)
            response = self._send_slice(session, chunk, data)
            last_response = response

            if response.status_code in self.FINAL_SUCCESS_CODES:
                session.next_expected_ranges = []
                if progress_callback is not None and total > reported:
                    progress_callback(total)
                logger.info("Upload complete: %d bytes", total)
                return UploadResult(
                    succeeded=True,
                    created_resource=self._created_resource(response),
                    raw_response=response,
                    next_offset=total,
                )

            previous_ranges = list(session.next_expected_ranges)
            self._update_session(session, response)
            next_offset = session.next_offset()
            if next_offset is None:
                # Every byte is stored but no resource came back with it
                if progress_callback is not None and total > reported:
                    progress_callback(total)
                logger.info("Upload accepted with no remaining ranges: %d bytes", total)
                return UploadResult(
                    succeeded=True, raw_response=response, next_offset=total
                )
            if next_offset > total:
                raise ProtocolError(
                    f"Server expects offset {next_offset} beyond stream length {total}",
                    response=response,
                )

            # Moving back to a newly reported gap is progress; only a repeat
            # of the same ranges is a stall
            if (
                next_offset <= offset
                and session.next_expected_ranges == previous_ranges
            ):
                stalls += 1
                logger.warning(
                    "Slice %s accepted without progress (%d/%d)",
                    chunk.content_range,
                    stalls,
                    self.max_retries,
                )
                if stalls >= self.max_retries:
                    raise TransientError(
                        f"Upload stalled at offset {next_offset}", response=response
                    )
            else:
                stalls = 0

            offset = next_offset
            if progress_callback is not None and offset > reported:
                reported = offset
                progress_callback(offset)
            logger.debug("Uploaded slice: next offset %d/%d bytes", offset, total)

    def _next_slice(
        self, session: UploadSession, offset: int, total: int, slice_size: int
    ) -> ChunkSlice:
        length = min(slice_size, total - offset)
        # Do not resend bytes beyond a bounded gap the server reported
        expected = session.range_starting_at(offset)
        if expected is not None and expected.end is not None:
            length = min(length, expected.end - offset + 1)
        return ChunkSlice(offset=offset, length=length, total_length=total)

    def _send_slice(
        self, session: UploadSession, chunk: ChunkSlice, data: bytes
    ) -> HttpResponse:
        """Send one slice, retrying transient failures with backoff.

        Returns:
            A 200, 201 or 202 response.
        """
        request = HttpRequest(
            method="PUT",
            url=session.upload_url,
            headers={
                "Content-Length": str(chunk.length),
                "Content-Range": chunk.content_range,
            },
            content=data,
        )

        last_error: TransferError | None = None
        for attempt in range(self.max_retries):
            retry_after: float | None = None
            try:
                logger.info(
                    "PUT slice: range=%s final=%s attempt=%d",
                    chunk.content_range,
                    chunk.is_final,
                    attempt + 1,
                )
                response = self._client.send(request)
            except TransportError as e:
                logger.warning(
                    "Network error uploading slice (attempt %d/%d): %s",
                    attempt + 1,
                    self.max_retries,
                    e,
                )
                last_error = e
            else:
                status_code = response.status_code
                if (
                    status_code in self.FINAL_SUCCESS_CODES
                    or status_code == self.ACCEPTED_CODE
                ):
                    return response
                if status_code in self.SESSION_GONE_CODES:
                    raise SessionExpiredError(
                        f"Upload session no longer exists (HTTP {status_code})",
                        response=response,
                    )
                if not is_retryable_status(status_code):
                    raise_for_response(response, "Upload slice")
                    raise ProtocolError(
                        f"Unexpected status {status_code} for slice upload",
                        response=response,
                    )
                logger.warning(
                    "Upload slice failed (attempt %d/%d): HTTP %d",
                    attempt + 1,
                    self.max_retries,
                    status_code,
                )
                last_error = TransientError(
                    f"Upload slice failed with HTTP {status_code}", response=response
                )
                retry_after = retry_after_seconds(response)

            if attempt < self.max_retries - 1:
                self._sleep_backoff(attempt, retry_after)

        logger.error(
            "Upload slice %s failed after %d attempts",
            chunk.content_range,
            self.max_retries,
        )
        raise TransientError(
            f"Upload slice {chunk.content_range} failed after "
            f"{self.max_retries} attempts",
            response=last_error.response if last_error else None,
        ) from last_error

    def _sleep_backoff(self, attempt: int, retry_after: float | None = None) -> None:
        """Sleep with exponential backoff, capped at MAX_BACKOFF_SECONDS."""
        delay = retry_after if retry_after is not None else 2**attempt
        time.sleep(min(delay, self.MAX_BACKOFF_SECONDS))

    @staticmethod
    def _update_session(session: UploadSession, response: HttpResponse) -> None:
        payload = parse_json_object(response, "Upload slice")
        updated = UploadSession.from_response(
            response,
            {
                "uploadUrl": session.upload_url,
                "expirationDateTime": payload.get("expirationDateTime")
                or session.expiration_date_time,
                "nextExpectedRanges": payload.get("nextExpectedRanges") or [],
            },
        )
        # Validate the ranges now so a bad value surfaces as a protocol error
        updated.expected_ranges()
        session.expiration_date_time = updated.expiration_date_time
        session.next_expected_ranges = updated.next_expected_ranges

    @staticmethod
    def _created_resource(response: HttpResponse) -> dict[str, Any] | None:
        try:
            payload = response.json()
        except ValueError:
            return None  # Body is optional
        return payload if isinstance(payload, dict) else None

    @staticmethod
    def _stream_length(stream: IO[bytes]) -> int:
        if not stream.seekable():
            raise ValueError("stream must be seekable for resumable uploads")
        return stream.seek(0, io.SEEK_END)

    @staticmethod
    def _read_slice(stream: IO[bytes], chunk: ChunkSlice) -> bytes:
        stream.seek(chunk.offset)
        data = stream.read(chunk.length) if chunk.length else b""
        if len(data) != chunk.length:
            raise ValueError(
                f"Stream returned {len(data)} bytes at offset {chunk.offset}, "
                f"expected {chunk.length}; was it modified during the upload?"
            )
        return data
