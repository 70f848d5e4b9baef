"""Models for paged collection responses and iteration state."""

from __future__ import annotations

from collections.abc import Callable
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from graphtransfer.core.exceptions import ProtocolError
from graphtransfer.core.transport import HttpResponse


class PagingState(str, Enum):
    """Lifecycle states for a page iterator.

    State transitions:
    - NOT_STARTED -> IN_PROGRESS (iterate)
    - IN_PROGRESS -> PAUSED (visitor returned false, fetch failed, cancelled)
    - PAUSED -> IN_PROGRESS (resume)
    - IN_PROGRESS -> COMPLETE (no continuation cursor left)
    """

    NOT_STARTED = "not_started"
    IN_PROGRESS = "in_progress"
    PAUSED = "paused"
    COMPLETE = "complete"


class Page(BaseModel):
    """One page of a collection response.

    Attributes:
        items: Items in server order.
        next_link: Continuation cursor; None on the last page.
        delta_link: Cursor for a later change query, sent on the last page
            of delta responses.
    """

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    items: list[Any] = Field(alias="value")
    next_link: str | None = Field(default=None, alias="@odata.nextLink")
    delta_link: str | None = Field(default=None, alias="@odata.deltaLink")

    @property
    def continuation_cursor(self) -> str | None:
        return self.next_link or None

    @classmethod
    def from_payload(
        cls,
        payload: Any,
        response: HttpResponse | None = None,
        item_factory: Callable[[Any], Any] | None = None,
    ) -> Page:
        """Build a page from a decoded response body.

        Args:
            payload: Decoded JSON body.
            response: Response the payload came from, for error reporting.
            item_factory: Optional converter applied to each raw item.

        Raises:
            ProtocolError: If the payload has no ``value`` array.
        """
        if not isinstance(payload, dict):
            raise ProtocolError(
                f"Page body is {type(payload).__name__}, expected an object",
                response=response,
            )
        try:
            page = cls.model_validate(payload)
        except ValidationError as e:
            raise ProtocolError(f"Invalid page payload: {e}", response=response) from e
        if item_factory is not None:
            page.items = [item_factory(item) for item in page.items]
        return page


class PagingContext(BaseModel):
    """Resumable position of a page iterator.

    ``current_item_index`` points at the next unvisited item of
    ``current_page``; ``pending_cursor`` is the cursor of the page after it.
    A paused context can be saved with ``model_dump_json`` and restored with
    ``PagingContext.model_validate_json`` as long as the items are JSON
    serialisable.
    """

    state: PagingState = PagingState.NOT_STARTED
    current_page: Page | None = None
    current_item_index: int = 0
    pending_cursor: str | None = None
    delta_link: str | None = None

    @classmethod
    def for_first_page(cls, page: Page) -> PagingContext:
        return cls(current_page=page, pending_cursor=page.continuation_cursor)

    def has_unvisited_items(self) -> bool:
        return (
            self.current_page is not None
            and self.current_item_index < len(self.current_page.items)
        )
