"""
Tests for deduplication and the feed state model.
"""

import pytest

from feedposts.errors import SerializationError
from feedposts.models.domain import FeedState
from feedposts.services.dedup import deduplicate
from feedposts.sources.mock import make_item


class TestDeduplicate:
    """Tests for deduplicate()."""

    def test_all_new_on_empty_state(self):
        items = [make_item("p1"), make_item("p2")]

        new_items, state = deduplicate(items, FeedState())

        assert [i.content_id for i in new_items] == ["p1", "p2"]
        assert state.known_ids == ["p1", "p2"]

    def test_known_ids_filtered_and_order_kept(self):
        state = FeedState(known_ids=["p2"])
        items = [make_item("p3"), make_item("p2"), make_item("p1")]

        new_items, updated = deduplicate(items, state)

        assert [i.content_id for i in new_items] == ["p3", "p1"]
        assert updated.known_ids == ["p2", "p3", "p1"]

    def test_repeat_within_page_counted_once(self):
        items = [make_item("p1"), make_item("p1"), make_item("p2")]

        new_items, state = deduplicate(items, FeedState())

        assert len(new_items) == 2
        assert state.known_ids == ["p1", "p2"]

    def test_nothing_new_returns_same_state(self):
        state = FeedState(known_ids=["p1", "p2"])

        new_items, updated = deduplicate([make_item("p2"), make_item("p1")], state)

        assert new_items == []
        assert updated.known_ids == ["p1", "p2"]

    def test_input_state_not_mutated(self):
        state = FeedState(known_ids=["p1"])

        deduplicate([make_item("p2")], state)

        assert state.known_ids == ["p1"]
        assert "p2" not in state


class TestFeedState:
    """Tests for FeedState serialization."""

    def test_json_layout(self):
        state = FeedState(known_ids=["at://a/post/1"])
        assert state.to_json() == {"post_uris": ["at://a/post/1"]}

    def test_from_json_variants(self):
        assert FeedState.from_json(None).known_ids == []
        assert FeedState.from_json({"post_uris": ["x"]}).known_ids == ["x"]
        assert FeedState.from_json('{"post_uris": ["x", "y"]}').known_ids == ["x", "y"]
        assert FeedState.from_json({"post_uris": None}).known_ids == []

    def test_membership(self):
        state = FeedState.from_json({"post_uris": ["x"]})
        assert "x" in state
        assert "y" not in state
        assert len(state) == 1

    def test_malformed_state(self):
        with pytest.raises(SerializationError):
            FeedState.from_json({"post_uris": "not-a-list"})
        with pytest.raises(SerializationError):
            FeedState.from_json("{not json")
