"""
Feed sources for feedposts.
"""
from feedposts.sources.base import FeedSource
from feedposts.sources.bluesky import BlueskyFeedSource
from feedposts.sources.mock import MockFeedSource
from feedposts.sources.session import SessionManager, SessionRefresher

__all__ = [
    "FeedSource",
    "BlueskyFeedSource",
    "MockFeedSource",
    "SessionManager",
    "SessionRefresher",
]
