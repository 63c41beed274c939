"""
Mock feed source for development and testing.
Serves scripted pages from memory without external API calls.
"""
import asyncio
from typing import Optional, Union

from feedposts.models.domain import FeedPage, RawItem
from feedposts.sources.base import FeedSource

# A scripted response: either a page or an exception to raise
Response = Union[FeedPage, BaseException]


def make_item(content_id: str, text: str = "") -> RawItem:
    """Build a feed entry shaped like a getFeed feedViewPost."""
    return RawItem(
        content_id=content_id,
        payload={"post": {"uri": content_id, "record": {"text": text or content_id}}},
    )


def make_page(content_ids: list[str], cursor: Optional[str] = None) -> FeedPage:
    return FeedPage(cursor=cursor, items=tuple(make_item(cid) for cid in content_ids))


class MockFeedSource(FeedSource):
    """
    Feed source answering from a script.

    The script maps feed identifier -> request cursor -> response, so a
    cursor chain (including cycles) can be described directly. Unknown
    feeds or cursors get an empty final page.
    """

    def __init__(
        self,
        script: Optional[dict[str, dict[Optional[str], Response]]] = None,
        delay: float = 0.0,
    ):
        self.script = script or {}
        self.delay = delay
        self.calls: list[tuple[str, Optional[str], int]] = []

    @property
    def name(self) -> str:
        return "Mock"

    @classmethod
    def chain(cls, feeds: dict[str, list[list[str]]], **kwargs) -> "MockFeedSource":
        """
        Script a linear cursor chain per feed.

        Each feed maps to a list of pages (lists of content ids). Page N is
        returned for cursor ``c{N}`` (``None`` for the first) and points at
        ``c{N+1}``; the last page has no cursor.
        """
        script: dict[str, dict[Optional[str], Response]] = {}
        for feed_uri, pages in feeds.items():
            steps: dict[Optional[str], Response] = {}
            for n, ids in enumerate(pages):
                request_cursor = None if n == 0 else f"c{n}"
                next_cursor = f"c{n + 1}" if n + 1 < len(pages) else None
                steps[request_cursor] = make_page(ids, next_cursor)
            script[feed_uri] = steps
        return cls(script, **kwargs)

    def calls_for(self, feed_uri: str) -> list[Optional[str]]:
        """Cursors requested for one feed, in order."""
        return [cursor for uri, cursor, _ in self.calls if uri == feed_uri]

    async def get_feed(
        self,
        feed_uri: str,
        cursor: Optional[str] = None,
        limit: int = 100,
    ) -> FeedPage:
        self.calls.append((feed_uri, cursor, limit))
        if self.delay:
            await asyncio.sleep(self.delay)

        response = self.script.get(feed_uri, {}).get(cursor, FeedPage(cursor=None))
        if isinstance(response, BaseException):
            raise response
        return FeedPage(cursor=response.cursor, items=response.items[:limit])
