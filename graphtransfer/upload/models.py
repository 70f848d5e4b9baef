"""Models for resumable upload sessions."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from graphtransfer.core.exceptions import ProtocolError
from graphtransfer.core.transport import HttpResponse


@dataclass(frozen=True)
class ByteRange:
    """One range from ``nextExpectedRanges``; ``end`` is inclusive or None."""

    start: int
    end: int | None = None

    @classmethod
    def parse(cls, value: str) -> ByteRange:
        """Parse ``"<start>-<end>"`` or ``"<start>-"``.

        Raises:
            ProtocolError: If the value is not a valid range.
        """
        start_text, sep, end_text = str(value).strip().partition("-")
        try:
            if not sep:
                raise ValueError("missing '-'")
            start = int(start_text)
            end = int(end_text) if end_text.strip() else None
        except ValueError as e:
            raise ProtocolError(f"Malformed expected range {value!r}: {e}") from e
        if start < 0 or (end is not None and end < start):
            raise ProtocolError(f"Malformed expected range {value!r}")
        return cls(start=start, end=end)


class UploadSession(BaseModel):
    """Server-side state of a resumable upload.

    Attributes:
        upload_url: Opaque, pre-authenticated URL for slice requests.
        expiration_date_time: When the server will discard the session.
        next_expected_ranges: Byte ranges the server still expects. Empty
            once every byte has been received.
    """

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    upload_url: str = Field(alias="uploadUrl", min_length=1)
    expiration_date_time: datetime | None = Field(
        default=None, alias="expirationDateTime"
    )
    next_expected_ranges: list[str] = Field(
        default_factory=list, alias="nextExpectedRanges"
    )

    @classmethod
    def from_response(cls, response: HttpResponse, payload: dict) -> UploadSession:
        try:
            return cls.model_validate(payload)
        except ValidationError as e:
            raise ProtocolError(
                f"Invalid upload session payload: {e}", response=response
            ) from e

    def is_expired(self, now: datetime | None = None) -> bool:
        if self.expiration_date_time is None:
            return False
        now = now or datetime.now(timezone.utc)
        expiry = self.expiration_date_time
        if expiry.tzinfo is None:
            expiry = expiry.replace(tzinfo=timezone.utc)
        return now >= expiry

    def expected_ranges(self) -> list[ByteRange]:
        ranges = [ByteRange.parse(value) for value in self.next_expected_ranges]
        return sorted(ranges, key=lambda r: r.start)

    def next_offset(self) -> int | None:
        """Start of the first byte range the server still expects."""
        ranges = self.expected_ranges()
        return ranges[0].start if ranges else None

    def range_starting_at(self, offset: int) -> ByteRange | None:
        for byte_range in self.expected_ranges():
            if byte_range.start == offset:
                return byte_range
        return None


@dataclass(frozen=True)
class ChunkSlice:
    """One contiguous byte range sent in a single request."""

    offset: int
    length: int
    total_length: int

    @property
    def is_final(self) -> bool:
        return self.offset + self.length >= self.total_length

    @property
    def end(self) -> int:
        """Inclusive index of the last byte in the slice."""
        return self.offset + self.length - 1

    @property
    def content_range(self) -> str:
        if self.length == 0:
            return f"bytes */{self.total_length}"
        return f"bytes {self.offset}-{self.end}/{self.total_length}"


@dataclass
class UploadResult:
    """Outcome of an upload or resume call.

    Attributes:
        succeeded: True once the server holds every byte.
        created_resource: Resource returned by the final slice, if any.
        raw_response: Last response received, for diagnostics.
        cancelled: True when the upload stopped because cancellation was
            requested. Bytes already acknowledged stay on the server.
        next_offset: Offset a later resume would start from.
    """

    succeeded: bool
    created_resource: dict[str, Any] | None = None
    raw_response: HttpResponse | None = None
    cancelled: bool = False
    next_offset: int | None = None
