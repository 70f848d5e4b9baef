"""Pausable iteration over every item of a paged collection."""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from typing import Any, Protocol

from graphtransfer.core.client import ApiClient
from graphtransfer.paging.models import Page, PagingContext, PagingState
from graphtransfer.paging.page_fetcher import PageFetcher, RequestConfigurator

logger = logging.getLogger(__name__)


class ItemVisitor(Protocol):
    """Handle one item; return False to pause the iteration."""

    def visit(self, item: Any) -> bool: ...


class PageIterator:
    """Visit every item of a paged collection exactly once, in server order.

    Iteration stops when the visitor returns a falsy value. The position of
    the next unvisited item is kept in a ``PagingContext`` so ``resume`` can
    carry on without refetching anything. Pages are fetched one at a time,
    only once the previous page is exhausted.

    Not thread safe: a single consumer must drive each iterator.
    """

    def __init__(
        self,
        first_page: Page | None,
        fetcher: PageFetcher,
        visitor: ItemVisitor | Callable[[Any], bool],
        cancel_event: threading.Event | None = None,
        context: PagingContext | None = None,
    ) -> None:
        """Initialize the iterator.

        Args:
            first_page: Page already fetched by the caller.
            fetcher: Fetches the pages behind continuation cursors.
            visitor: ``ItemVisitor`` or a callable taking one item.
            cancel_event: When set, iteration pauses before the next fetch.
            context: Saved context to continue from instead of
                ``first_page``.
        """
        if context is None:
            if first_page is None:
                raise ValueError("Either first_page or context must be provided")
            context = PagingContext.for_first_page(first_page)
        self._context = context
        self._fetcher = fetcher
        self._visit = visitor.visit if hasattr(visitor, "visit") else visitor
        self._cancel_event = cancel_event

    @classmethod
    def create(
        cls,
        client: ApiClient,
        first_page: Page,
        visitor: ItemVisitor | Callable[[Any], bool],
        request_configurator: RequestConfigurator | None = None,
        item_factory: Callable[[Any], Any] | None = None,
    ) -> PageIterator:
        """Create an iterator that fetches later pages through ``client``.

        ``item_factory`` only applies to fetched pages; ``first_page`` is
        used as given.
        """
        fetcher = PageFetcher(client, request_configurator, item_factory)
        return cls(first_page, fetcher, visitor)

    @classmethod
    def from_context(
        cls,
        context: PagingContext,
        fetcher: PageFetcher,
        visitor: ItemVisitor | Callable[[Any], bool],
    ) -> PageIterator:
        """Restore an iterator from a saved context."""
        return cls(None, fetcher, visitor, context=context)

    @property
    def state(self) -> PagingState:
        return self._context.state

    @property
    def context(self) -> PagingContext:
        """A copy of the current position, safe to store and restore later."""
        return self._context.model_copy(deep=True)

    @property
    def delta_link(self) -> str | None:
        """Delta cursor from the last page, available once complete."""
        return self._context.delta_link

    def iterate(self) -> None:
        """Visit items until the collection is exhausted or the visitor pauses.

        Calling this on a paused iterator continues like ``resume``; on a
        complete iterator it does nothing.

        Raises:
            TransferError: If fetching a page fails. The iterator is left
                paused at the same position.
        """
        if self._context.state is PagingState.COMPLETE:
            return
        self._run()

    def resume(self) -> None:
        """Continue a paused iteration; does nothing in any other state."""
        if self._context.state is not PagingState.PAUSED:
            logger.debug("Resume ignored in state %s", self._context.state.value)
            return
        self._run()

    def _run(self) -> None:
        context = self._context
        context.state = PagingState.IN_PROGRESS

        while True:
            page = context.current_page
            while page is not None and context.has_unvisited_items():
                item = page.items[context.current_item_index]
                try:
                    keep_going = self._visit(item)
                except Exception:
                    # The item was not handled; it is delivered again on resume
                    context.state = PagingState.PAUSED
                    raise
                context.current_item_index += 1
                if not keep_going:
                    context.state = PagingState.PAUSED
                    logger.debug(
                        "Iteration paused before item %d", context.current_item_index
                    )
                    return

            if page is not None and page.delta_link:
                context.delta_link = page.delta_link

            cursor = context.pending_cursor
            if not cursor:
                context.state = PagingState.COMPLETE
                logger.debug("Iteration complete")
                return

            if self._cancel_event is not None and self._cancel_event.is_set():
                context.state = PagingState.PAUSED
                logger.info("Iteration cancelled before fetching next page")
                return

            try:
                next_page = self._fetcher.fetch(cursor)
            except Exception:
                context.state = PagingState.PAUSED
                raise

            context.current_page = next_page
            context.current_item_index = 0
            context.pending_cursor = next_page.continuation_cursor
