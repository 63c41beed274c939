"""
Exception types raised by the feed pipeline.
"""


class FeedPostsError(Exception):
    """Base class for all feedposts errors."""


class TransportError(FeedPostsError):
    """Network or API failure while talking to the remote service."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class SerializationError(FeedPostsError):
    """Malformed feed state, response body or item payload."""


class PersistenceError(FeedPostsError):
    """A store transaction failed and was rolled back."""


class ConfigurationError(FeedPostsError):
    """Unrecoverable setup problem; the run is aborted before dispatch."""
