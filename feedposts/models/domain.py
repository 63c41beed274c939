"""
Domain models for feedposts.
These are the core entities, independent of database/API representation.
"""
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    PrivateAttr,
    ValidationError,
    field_validator,
)

from feedposts.errors import SerializationError


def feed_uri(repo: str, record: str) -> str:
    """Build a feed identifier from a repository and record identifier."""
    return f"at://{repo}/{record}"


# =============================================================================
# Fetched content
# =============================================================================

@dataclass(frozen=True)
class RawItem:
    """One fetched feed entry. The payload is persisted verbatim."""
    content_id: str
    payload: dict[str, Any]


@dataclass(frozen=True)
class FeedPage:
    """A single page returned by the remote feed endpoint."""
    cursor: Optional[str]
    items: tuple[RawItem, ...] = ()

    def __len__(self) -> int:
        return len(self.items)


# =============================================================================
# Durable per-feed state
# =============================================================================

class FeedState(BaseModel):
    """
    Dedup state for one feed.

    Stored as ``{"post_uris": [...]}``. The list keeps arrival order and only
    ever grows.
    """
    model_config = ConfigDict(populate_by_name=True)

    known_ids: list[str] = Field(default_factory=list, alias="post_uris")

    _id_set: set[str] = PrivateAttr(default_factory=set)

    @field_validator("known_ids", mode="before")
    @classmethod
    def null_as_empty(cls, v: Any) -> Any:
        # Rows written by older tooling may hold "post_uris": null
        return [] if v is None else v

    def model_post_init(self, __context: Any) -> None:
        self._id_set = set(self.known_ids)

    def __contains__(self, content_id: str) -> bool:
        return content_id in self._id_set

    def __len__(self) -> int:
        return len(self.known_ids)

    def with_new_ids(self, content_ids: list[str]) -> "FeedState":
        """Return a copy with ``content_ids`` appended."""
        return FeedState(known_ids=[*self.known_ids, *content_ids])

    def to_json(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True)

    @classmethod
    def from_json(cls, data: Any) -> "FeedState":
        if data is None:
            return cls()
        try:
            if isinstance(data, (str, bytes)):
                return cls.model_validate_json(data)
            return cls.model_validate(data)
        except ValidationError as e:
            raise SerializationError(f"malformed feed state: {e}") from e


# =============================================================================
# Run results
# =============================================================================

class StopReason(str, Enum):
    """Why the pagination loop for a feed ended."""
    EMPTY_FEED = "empty_feed"
    CAUGHT_UP = "caught_up"
    END_OF_FEED = "end_of_feed"
    INVALID_CURSOR = "invalid_cursor"
    CURSOR_CYCLE = "cursor_cycle"
    CANCELLED = "cancelled"


@dataclass
class FeedRunResult:
    """Outcome of processing one feed identifier."""
    feed_uri: str
    pages: int = 0
    items_seen: int = 0
    items_new: int = 0
    stop_reason: Optional[StopReason] = None

    def __str__(self) -> str:
        reason = self.stop_reason.value if self.stop_reason else "unknown"
        return (
            f"{self.feed_uri}: pages={self.pages}, seen={self.items_seen}, "
            f"new={self.items_new}, stop={reason}"
        )


@dataclass(frozen=True)
class FeedError:
    """A per-feed failure as carried on the error channel."""
    feed_uri: str
    error: BaseException

    @property
    def kind(self) -> str:
        return type(self.error).__name__

    def __str__(self) -> str:
        return f"{self.feed_uri}: {self.kind}: {self.error}"


@dataclass
class RunSummary:
    """Aggregate result of one dispatch run."""
    dispatched: int = 0
    results: list[FeedRunResult] = field(default_factory=list)
    errors: list[FeedError] = field(default_factory=list)
    cancelled: bool = False
    duration_seconds: float = 0.0

    @property
    def succeeded(self) -> int:
        """Feeds that ran to a natural stop."""
        return sum(1 for r in self.results if r.stop_reason != StopReason.CANCELLED)

    @property
    def interrupted(self) -> int:
        """Feeds skipped or stopped early because the run was cancelled."""
        return sum(1 for r in self.results if r.stop_reason == StopReason.CANCELLED)

    @property
    def failed(self) -> int:
        return len(self.errors)
