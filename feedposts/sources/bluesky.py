"""
Bluesky feed generator adapter.
API docs: https://docs.bsky.app/docs/api/app-bsky-feed-get-feed
"""
from typing import Any, Optional

import httpx
import structlog
from tenacity import (
    AsyncRetrying,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)
from tenacity.wait import wait_base

from feedposts.errors import SerializationError, TransportError
from feedposts.models.domain import FeedPage, RawItem
from feedposts.sources.base import FeedSource
from feedposts.sources.session import SessionManager

logger = structlog.get_logger(__name__)

# Statuses worth another attempt before the feed is given up for this run
RETRYABLE_STATUSES = {429, 500, 502, 503, 504}


def _is_transient(exc: BaseException) -> bool:
    if isinstance(exc, httpx.HTTPStatusError):
        return exc.response.status_code in RETRYABLE_STATUSES
    return isinstance(exc, httpx.TransportError)


class BlueskyFeedSource(FeedSource):
    """Reads feed generator output through app.bsky.feed.getFeed."""

    ENDPOINT = "xrpc/app.bsky.feed.getFeed"

    def __init__(
        self,
        client: httpx.AsyncClient,
        session: Optional[SessionManager] = None,
        host: str = "https://bsky.social",
        retry_attempts: int = 3,
        retry_wait: Optional[wait_base] = None,
    ):
        self.client = client
        self.session = session
        self.host = host.rstrip("/")
        self.retry_attempts = retry_attempts
        self.retry_wait = retry_wait or wait_exponential(multiplier=1, min=2, max=10)

    @property
    def name(self) -> str:
        return "Bluesky"

    def _get_headers(self) -> dict:
        headers = {"Accept": "application/json"}
        if self.session is not None:
            headers.update(self.session.auth_headers())
        return headers

    async def _fetch(self, params: dict) -> httpx.Response:
        """GET the feed endpoint, retrying transient failures."""
        url = f"{self.host}/{self.ENDPOINT}"
        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(self.retry_attempts),
            wait=self.retry_wait,
            retry=retry_if_exception(_is_transient),
            reraise=True,
        ):
            with attempt:
                # Headers are rebuilt per attempt so a refreshed token is picked up
                response = await self.client.get(url, params=params, headers=self._get_headers())
                response.raise_for_status()
        return response

    async def get_feed(
        self,
        feed_uri: str,
        cursor: Optional[str] = None,
        limit: int = 100,
    ) -> FeedPage:
        params: dict[str, Any] = {"feed": feed_uri, "limit": limit}
        if cursor is not None:
            params["cursor"] = cursor

        try:
            response = await self._fetch(params)
        except httpx.HTTPStatusError as e:
            raise TransportError(
                f"getFeed for {feed_uri} failed with status {e.response.status_code}",
                status_code=e.response.status_code,
            ) from e
        except httpx.HTTPError as e:
            raise TransportError(f"getFeed for {feed_uri} failed: {e}") from e

        try:
            body = response.json()
        except ValueError as e:
            raise SerializationError(f"getFeed for {feed_uri} returned invalid JSON") from e

        return self._parse_page(feed_uri, body)

    def _parse_page(self, feed_uri: str, body: Any) -> FeedPage:
        """Parse a getFeed response into a FeedPage."""
        if not isinstance(body, dict):
            raise SerializationError(f"getFeed for {feed_uri} returned unexpected body")

        cursor = body.get("cursor")
        if cursor is not None and not isinstance(cursor, str):
            raise SerializationError(f"getFeed for {feed_uri} returned non-string cursor")

        entries = body.get("feed")
        if entries is None:
            entries = []
        if not isinstance(entries, list):
            raise SerializationError(f"getFeed for {feed_uri} returned non-list feed")

        items = []
        for entry in entries:
            post = entry.get("post") if isinstance(entry, dict) else None
            uri = post.get("uri") if isinstance(post, dict) else None
            if not isinstance(uri, str) or not uri:
                raise SerializationError(f"feed entry without post uri in {feed_uri}")
            items.append(RawItem(content_id=uri, payload=entry))

        return FeedPage(cursor=cursor, items=tuple(items))
