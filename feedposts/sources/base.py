"""
Base interface for feed sources.
The live Bluesky client and the scripted mock both implement this interface.
"""
from abc import ABC, abstractmethod
from typing import Optional

from feedposts.models.domain import FeedPage


class FeedSource(ABC):
    """Abstract base class for paginated feed sources."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Human-readable name of the source."""
        pass

    @abstractmethod
    async def get_feed(
        self,
        feed_uri: str,
        cursor: Optional[str] = None,
        limit: int = 100,
    ) -> FeedPage:
        """
        Fetch one page of a feed.

        Args:
            feed_uri: The feed identifier to read
            cursor: Cursor from the previous page, None for the first page
            limit: Maximum number of items on the page

        Returns:
            The page, with the cursor for the next request (None at the end)

        Raises:
            TransportError: The request failed
            SerializationError: The response could not be understood
        """
        pass
