# =============================================================================
# Unit Tests — FeedPaginator (seeded shuffle + has-more pagination)
# =============================================================================

from __future__ import annotations

import asyncio
import hashlib

import pytest

from marginalia.services.errors import InvalidArgumentError, MissingUserScopeError
from marginalia.services.feed import FeedConfig, FeedPaginator, new_seed
from marginalia.services.store import feed_sort_key


def _run(coro):
    """Helper to run async functions in sync tests."""
    return asyncio.run(coro)


def _ids(page) -> list[str]:
    return [item.id for item in page.items]


def _fill(store, count: int, user_id: str = "u1") -> list[str]:
    book = store.add_book(user_id)
    return [store.add_annotation(book, f"note {i}") for i in range(count)]


@pytest.fixture
def paginator(store) -> FeedPaginator:
    return FeedPaginator(store, FeedConfig(default_limit=10, max_limit=100))


def _traverse(paginator, user_id: str, seed: str, limit: int) -> list[str]:
    seen: list[str] = []
    offset: int | None = 0
    while offset is not None:
        page = _run(paginator.get_page(user_id, offset=offset, limit=limit, seed=seed))
        seen.extend(_ids(page))
        offset = page.next_offset
    return seen


# ---------------------------------------------------------------------------
# Sort key
# ---------------------------------------------------------------------------


class TestFeedSortKey:
    def test_is_md5_of_id_then_seed(self):
        expected = hashlib.md5(b"ann-001seed-A").hexdigest()
        assert feed_sort_key("ann-001", "seed-A") == expected

    def test_depends_on_seed(self):
        assert feed_sort_key("ann-001", "seed-A") != feed_sort_key("ann-001", "seed-B")

    def test_stable_across_calls(self):
        assert feed_sort_key("x", "y") == feed_sort_key("x", "y")


# ---------------------------------------------------------------------------
# Pagination
# ---------------------------------------------------------------------------


class TestPagination:
    def test_fifteen_items_two_pages(self, paginator, store):
        _fill(store, 15)
        first = _run(paginator.get_page("u1", offset=0, limit=10, seed="seed-A"))
        assert len(first.items) == 10
        assert first.has_more is True
        assert first.next_offset == 10

        second = _run(paginator.get_page("u1", offset=10, limit=10, seed="seed-A"))
        assert len(second.items) == 5
        assert second.has_more is False
        assert second.next_offset is None

    def test_exact_multiple_has_no_empty_trailing_page(self, paginator, store):
        _fill(store, 20)
        second = _run(paginator.get_page("u1", offset=10, limit=10, seed="s"))
        assert len(second.items) == 10
        assert second.has_more is False
        assert second.next_offset is None

    def test_fetches_one_extra_row(self, paginator, store):
        _fill(store, 3)
        _run(paginator.get_page("u1", offset=4, limit=7, seed="s"))
        assert store.calls == [("feed", "u1", "s", 4, 8)]

    def test_offset_past_end(self, paginator, store):
        _fill(store, 3)
        page = _run(paginator.get_page("u1", offset=50, limit=10, seed="s"))
        assert page.items == []
        assert page.has_more is False

    def test_empty_collection(self, paginator):
        page = _run(paginator.get_page("u1", seed="s"))
        assert page.items == [] and page.has_more is False and page.next_offset is None

    def test_default_limit(self, paginator, store):
        _fill(store, 12)
        page = _run(paginator.get_page("u1", seed="s"))
        assert len(page.items) == 10

    def test_traversal_is_complete_without_duplicates(self, paginator, store):
        all_ids = _fill(store, 23)
        seen = _traverse(paginator, "u1", "seed-A", limit=7)
        assert len(seen) == len(set(seen)) == 23
        assert set(seen) == set(all_ids)

    def test_pages_follow_sort_key(self, paginator, store):
        all_ids = _fill(store, 12)
        seen = _traverse(paginator, "u1", "seed-A", limit=5)
        assert seen == sorted(all_ids, key=lambda i: feed_sort_key(i, "seed-A"))


# ---------------------------------------------------------------------------
# Seeds
# ---------------------------------------------------------------------------


class TestSeeds:
    def test_same_seed_same_order(self, paginator, store):
        _fill(store, 15)
        first = _run(paginator.get_page("u1", offset=0, limit=10, seed="seed-A"))
        again = _run(paginator.get_page("u1", offset=0, limit=10, seed="seed-A"))
        assert _ids(first) == _ids(again)

    def test_different_seed_different_order(self, paginator, store):
        _fill(store, 25)
        a = _run(paginator.get_page("u1", offset=0, limit=10, seed="seed-A"))
        b = _run(paginator.get_page("u1", offset=0, limit=10, seed="seed-B"))
        assert _ids(a) != _ids(b)

    def test_seed_echoed(self, paginator, store):
        page = _run(paginator.get_page("u1", seed="my-seed"))
        assert page.seed == "my-seed"

    @pytest.mark.parametrize("seed", [None, "", "   "])
    def test_seed_generated_from_clock(self, store, seed):
        paginator = FeedPaginator(store, clock=lambda: 1_700_000_000.5)
        page = _run(paginator.get_page("u1", seed=seed))
        assert page.seed == "1700000000500"
        assert store.calls[0][2] == "1700000000500"

    def test_new_seed_is_millisecond_timestamp(self):
        assert new_seed(lambda: 12.3456) == "12345"

    def test_growth_preserves_relative_order(self, paginator, store):
        ids = _fill(store, 15)
        before = _traverse(paginator, "u1", "seed-A", limit=10)
        store.add_annotation(store.add_book("u1"), "late arrival")
        after = _traverse(paginator, "u1", "seed-A", limit=10)
        assert [i for i in after if i in ids] == before


# ---------------------------------------------------------------------------
# Validation & scoping
# ---------------------------------------------------------------------------


class TestValidation:
    @pytest.mark.parametrize("offset", [-1, "10", 1.5, True])
    def test_bad_offset(self, paginator, offset):
        with pytest.raises(InvalidArgumentError, match="offset"):
            _run(paginator.get_page("u1", offset=offset, seed="s"))

    @pytest.mark.parametrize("limit", [0, -5, "10"])
    def test_bad_limit(self, paginator, limit):
        with pytest.raises(InvalidArgumentError, match="limit"):
            _run(paginator.get_page("u1", limit=limit, seed="s"))

    def test_limit_above_max_is_clamped(self, paginator, store):
        _fill(store, 3)
        page = _run(paginator.get_page("u1", limit=500, seed="s"))
        assert store.calls == [("feed", "u1", "s", 0, 101)]
        assert len(page.items) == 3

    def test_clamped_limit_drives_next_offset(self, store):
        _fill(store, 5)
        paginator = FeedPaginator(store, FeedConfig(default_limit=2, max_limit=2))
        page = _run(paginator.get_page("u1", limit=50, seed="s"))
        assert len(page.items) == 2
        assert page.next_offset == 2

    def test_missing_user(self, paginator, store):
        with pytest.raises(MissingUserScopeError):
            _run(paginator.get_page("", seed="s"))
        assert store.calls == []


class TestScoping:
    def test_feed_only_contains_own_annotations(self, paginator, store):
        mine = set(_fill(store, 8, user_id="u1"))
        theirs = set(_fill(store, 8, user_id="u2"))
        seen = set(_traverse(paginator, "u1", "seed-A", limit=5))
        assert seen == mine
        assert not seen & theirs
