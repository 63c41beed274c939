"""
Deduplication of fetched items against a feed's known content ids.
"""
from typing import Iterable

from feedposts.models.domain import FeedState, RawItem


def deduplicate(
    items: Iterable[RawItem],
    state: FeedState,
) -> tuple[list[RawItem], FeedState]:
    """
    Split out the items this feed has not seen before.

    Args:
        items: Items in the order the page returned them
        state: Current dedup state of the feed

    Returns:
        Tuple of (new items in arrival order, state extended with their ids).
        An id repeated within ``items`` is only counted once.
    """
    new_items: list[RawItem] = []
    new_ids: set[str] = set()

    for item in items:
        if item.content_id in state or item.content_id in new_ids:
            continue
        new_ids.add(item.content_id)
        new_items.append(item)

    if not new_items:
        return [], state
    return new_items, state.with_new_ids([item.content_id for item in new_items])
