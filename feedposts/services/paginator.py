"""
Cursor-driven pagination over one feed.
"""
from collections import deque
from typing import AsyncIterator, Callable, Iterable, Optional

import structlog

from feedposts.models.domain import FeedPage, StopReason
from feedposts.sources.base import FeedSource

logger = structlog.get_logger(__name__)

CursorPredicate = Callable[[str], bool]


def invalid_cursor_markers(markers: Iterable[str]) -> CursorPredicate:
    """
    Build a predicate that flags a cursor containing any of ``markers``.

    The feed API has been seen to return cursors with a literal "null" in
    them once a feed is exhausted; those are treated as terminal.
    """
    markers = tuple(m for m in markers if m)

    def is_invalid(cursor: str) -> bool:
        return any(marker in cursor for marker in markers)

    return is_invalid


class CursorWindow:
    """The last few cursors seen for a feed, used to detect cycling."""

    def __init__(self, size: int = 2):
        self._cursors: deque[str] = deque(maxlen=size)

    def __contains__(self, cursor: str) -> bool:
        return cursor in self._cursors

    def push(self, cursor: str):
        self._cursors.append(cursor)

    def __len__(self) -> int:
        return len(self._cursors)

    def __iter__(self):
        return iter(self._cursors)


class FeedPaginator:
    """
    Walks the pages of one feed.

    ``pages()`` yields each page as soon as it is fetched and only requests
    the next one when the consumer asks for it, so anything the consumer
    does with page N finishes before page N+1 is fetched. The consumer may
    stop early by leaving the loop; otherwise iteration ends when the
    cursor says so and ``stop_reason`` records why.
    """

    def __init__(
        self,
        source: FeedSource,
        feed_uri: str,
        limit: int = 100,
        is_invalid_cursor: Optional[CursorPredicate] = None,
        window_size: int = 2,
    ):
        self.source = source
        self.feed_uri = feed_uri
        self.limit = limit
        self.is_invalid_cursor = is_invalid_cursor or invalid_cursor_markers(["null"])
        self.window = CursorWindow(window_size)
        self.cursor: Optional[str] = None
        self.pages_fetched = 0
        self.stop_reason: Optional[StopReason] = None

    async def pages(self) -> AsyncIterator[FeedPage]:
        log = logger.bind(feed_uri=self.feed_uri)

        while True:
            page = await self.source.get_feed(self.feed_uri, self.cursor, self.limit)
            self.pages_fetched += 1
            log.debug("Page fetched", page=self.pages_fetched, items=len(page), cursor=page.cursor)

            yield page

            next_cursor = page.cursor
            if next_cursor is None:
                log.info("Cursor is null, stopping")
                self.stop_reason = StopReason.END_OF_FEED
                return

            if self.is_invalid_cursor(next_cursor):
                log.info("Cursor is invalid, stopping", cursor=next_cursor)
                self.stop_reason = StopReason.INVALID_CURSOR
                return

            if next_cursor in self.window:
                log.info("Cursor matches a recent value, stopping", cursor=next_cursor)
                self.stop_reason = StopReason.CURSOR_CYCLE
                return

            self.window.push(next_cursor)
            self.cursor = next_cursor
