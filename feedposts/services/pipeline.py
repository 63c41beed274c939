"""
Per-feed fetch → dedup → persist pipeline.
"""
import asyncio
from contextlib import aclosing
from typing import Optional

import structlog

from feedposts.models.domain import FeedRunResult, StopReason
from feedposts.services.dedup import deduplicate
from feedposts.services.paginator import CursorPredicate, FeedPaginator
from feedposts.services.store import FeedStore
from feedposts.sources.base import FeedSource

logger = structlog.get_logger(__name__)


class FeedPipeline:
    """
    Processes one feed identifier from its first page until it is caught up.

    For every page:
    1. An empty page that still carries a cursor ends the feed
    2. Items not in the feed's state are picked out; if a non-empty page
       has none, the feed is caught up
    3. The extended state and the new posts are written in one transaction
    4. The paginator decides from the cursor whether to fetch another page

    Errors from the source or the store propagate to the caller.
    """

    def __init__(
        self,
        source: FeedSource,
        store: FeedStore,
        page_limit: int = 100,
        is_invalid_cursor: Optional[CursorPredicate] = None,
        cancel_event: Optional[asyncio.Event] = None,
    ):
        self.source = source
        self.store = store
        self.page_limit = page_limit
        self.is_invalid_cursor = is_invalid_cursor
        self.cancel_event = cancel_event

    def _cancelled(self) -> bool:
        return self.cancel_event is not None and self.cancel_event.is_set()

    async def run(self, feed_uri: str) -> FeedRunResult:
        log = logger.bind(feed_uri=feed_uri)
        result = FeedRunResult(feed_uri=feed_uri)

        if self._cancelled():
            log.info("Run cancelled, skipping feed")
            result.stop_reason = StopReason.CANCELLED
            return result

        log.info("Feed processing started")
        state = await self.store.load_state(feed_uri)
        paginator = FeedPaginator(
            self.source,
            feed_uri,
            limit=self.page_limit,
            is_invalid_cursor=self.is_invalid_cursor,
        )

        async with aclosing(paginator.pages()) as pages:
            async for page in pages:
                result.pages += 1
                result.items_seen += len(page)

                if not page.items and page.cursor is not None:
                    log.info("Feed is empty")
                    result.stop_reason = StopReason.EMPTY_FEED
                    break

                new_items, state = deduplicate(page.items, state)

                if not new_items and page.items:
                    log.info("No new posts found")
                    result.stop_reason = StopReason.CAUGHT_UP
                    break

                await self.store.persist(feed_uri, state, new_items)
                result.items_new += len(new_items)
                log.info(
                    "Page saved",
                    page=result.pages,
                    items=len(page),
                    new_items=len(new_items),
                    known_ids=len(state),
                )

                if self._cancelled():
                    log.info("Run cancelled, stopping after current page")
                    result.stop_reason = StopReason.CANCELLED
                    break

        if result.stop_reason is None:
            result.stop_reason = paginator.stop_reason

        log.info("Feed processing ended", **_result_fields(result))
        return result


def _result_fields(result: FeedRunResult) -> dict:
    return {
        "pages": result.pages,
        "items_seen": result.items_seen,
        "items_new": result.items_new,
        "stop_reason": result.stop_reason.value if result.stop_reason else None,
    }
