"""
Tests for the query cache, the query executor and pagination arithmetic.
"""

import os
import sys
import threading
from concurrent.futures import Executor, Future
from unittest.mock import MagicMock

import pytest

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from core.exceptions import DatabaseError
from filters.models import QueryResult
from filters.pagination import item_range, page_offset, page_window, total_pages
from filters.query_executor import QueryCache, QueryExecutor, QuerySnapshot
from filters.store import FilterStore


class FakeClock:
    def __init__(self, now=1000.0):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


class ImmediateExecutor(Executor):
    """Runs background refetches inline so tests stay deterministic."""

    def submit(self, fn, *args, **kwargs):
        future = Future()
        try:
            future.set_result(fn(*args, **kwargs))
        except Exception as e:
            future.set_exception(e)
        return future


def result_for(params):
    return QueryResult(records=[{'id': params['page'], 'search': params['search']}], total=57)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def search_fn():
    return MagicMock(side_effect=result_for)


@pytest.fixture
def sleeps():
    return []


@pytest.fixture
def store():
    return FilterStore()


@pytest.fixture
def executor(store, search_fn, clock, sleeps):
    executor = QueryExecutor(
        store,
        search_fn,
        cache=QueryCache(stale_time=120, gc_time=300, clock=clock),
        retry=2,
        retry_delay=1.0,
        executor=ImmediateExecutor(),
        sleep=sleeps.append,
    )
    yield executor
    executor.close()


class TestHydrationGate:

    def test_no_fetch_before_hydration(self, executor, search_fn):
        snapshot = executor.execute()

        assert snapshot.is_loading is True
        assert snapshot.records == []
        search_fn.assert_not_called()

    def test_filter_changes_before_hydration_do_not_fetch(self, executor, store, search_fn):
        store.set_search('early')
        store.set_tags(['t'])
        search_fn.assert_not_called()

    def test_hydration_triggers_first_fetch(self, executor, store, search_fn):
        store.set_hydrated(True)

        search_fn.assert_called_once()
        snapshot = executor.current()
        assert snapshot.is_loading is False
        assert snapshot.total == 57


class TestCaching:

    def test_same_key_is_served_from_cache(self, executor, store, search_fn):
        store.set_hydrated(True)
        executor.execute()
        executor.execute()

        assert search_fn.call_count == 1

    def test_facet_order_does_not_refetch(self, executor, store, search_fn):
        store.set_hydrated(True)
        store.set_tags(['a', 'b'])
        store.set_tags(['b', 'a'])

        assert search_fn.call_count == 2

    def test_identical_states_share_an_entry(self, executor, store, search_fn):
        store.set_hydrated(True)
        store.set_search('x')
        store.set_search('')

        # Back to the initial key: still fresh, no new call
        assert search_fn.call_count == 2
        assert executor.current().records[0]['search'] == ''

    def test_new_page_fetches(self, executor, store, search_fn):
        store.set_hydrated(True)
        store.set_page(2)

        assert search_fn.call_count == 2
        assert search_fn.call_args[0][0]['page'] == 2

    def test_stale_data_is_served_while_refetching(self, executor, store, search_fn, clock):
        store.set_hydrated(True)
        clock.advance(121)

        snapshot = executor.execute()

        assert snapshot.records
        assert snapshot.is_fetching is True
        assert snapshot.is_stale is True
        assert search_fn.call_count == 2
        assert executor.current().is_stale is False

    def test_background_refetch_notifies_listeners(self, executor, store, clock):
        store.set_hydrated(True)
        listener = MagicMock()
        executor.subscribe(listener)
        clock.advance(200)

        executor.execute()

        listener.assert_called_once()
        assert isinstance(listener.call_args[0][0], QuerySnapshot)

    def test_idle_entries_are_evicted(self, executor, store, search_fn, clock):
        store.set_hydrated(True)
        clock.advance(301)

        snapshot = executor.execute()

        # Entry was evicted, so the search ran inline rather than in the background
        assert snapshot.is_fetching is False
        assert search_fn.call_count == 2

    def test_access_keeps_entry_alive(self, clock):
        cache = QueryCache(stale_time=120, gc_time=300, clock=clock)
        cache.set_result('k', QueryResult())
        clock.advance(200)
        assert cache.get('k') is not None
        clock.advance(200)
        assert cache.get('k') is not None
        clock.advance(301)
        assert cache.get('k') is None

    def test_refetch_bypasses_freshness(self, executor, store, search_fn):
        store.set_hydrated(True)
        executor.refetch()

        assert search_fn.call_count == 2

    def test_invalidate(self, clock):
        cache = QueryCache(clock=clock)
        cache.set_result('a', QueryResult())
        cache.set_result('b', QueryResult())

        cache.invalidate('a')
        assert 'a' not in cache and 'b' in cache

        cache.invalidate()
        assert len(cache) == 0


class TestRetries:

    def test_succeeds_on_third_attempt(self, store, clock, sleeps):
        search_fn = MagicMock(side_effect=[
            DatabaseError("connection reset"),
            DatabaseError("connection reset"),
            QueryResult(records=[{'id': 1}], total=1),
        ])
        executor = QueryExecutor(store, search_fn, cache=QueryCache(clock=clock),
                                 executor=ImmediateExecutor(), sleep=sleeps.append)
        store.set_hydrated(True)

        snapshot = executor.current()
        assert snapshot.is_error is False
        assert snapshot.records == [{'id': 1}]
        assert search_fn.call_count == 3
        assert sleeps == [1.0, 2.0]

    def test_error_after_retries_exhausted(self, store, clock, sleeps):
        search_fn = MagicMock(side_effect=DatabaseError("database is locked"))
        executor = QueryExecutor(store, search_fn, cache=QueryCache(clock=clock),
                                 executor=ImmediateExecutor(), sleep=sleeps.append)
        store.set_hydrated(True)

        snapshot = executor.execute()
        assert search_fn.call_count == 3
        assert snapshot.is_error is True
        assert snapshot.error == "database is locked"
        assert snapshot.records == []
        assert snapshot.is_loading is False

    def test_backoff_is_capped(self, store, clock, sleeps):
        search_fn = MagicMock(side_effect=RuntimeError("down"))
        executor = QueryExecutor(store, search_fn, cache=QueryCache(clock=clock), retry=4,
                                 retry_delay=10.0, executor=ImmediateExecutor(), sleep=sleeps.append)
        store.set_hydrated(True)

        assert sleeps == [10.0, 20.0, 30.0, 30.0]
        assert executor.current().error == "down"

    def test_failed_refetch_keeps_previous_data(self, executor, store, search_fn):
        store.set_hydrated(True)
        search_fn.side_effect = RuntimeError("timeout")

        snapshot = executor.refetch()

        assert snapshot.is_error is True
        assert snapshot.error == "timeout"
        assert snapshot.records  # prior page still shown
        assert snapshot.total == 57

    def test_success_clears_error(self, executor, store, search_fn):
        store.set_hydrated(True)
        search_fn.side_effect = RuntimeError("blip")
        executor.refetch()

        search_fn.side_effect = result_for
        snapshot = executor.refetch()

        assert snapshot.is_error is False
        assert snapshot.error is None


class TestInFlightDeduplication:

    def test_begin_fetch_shares_future(self):
        cache = QueryCache()
        future, owner = cache.begin_fetch('key')
        again, second_owner = cache.begin_fetch('key')

        assert owner is True and second_owner is False
        assert again is future
        assert cache.is_fetching('key')

        cache.end_fetch('key')
        assert future.done()
        assert not cache.is_fetching('key')

    def test_concurrent_executes_share_one_call(self, clock):
        store = FilterStore()
        store.set_hydrated(True)

        started = threading.Event()
        release = threading.Event()

        def slow_search(params):
            started.set()
            release.wait(5)
            return QueryResult(records=[{'id': 1}], total=1)

        search_fn = MagicMock(side_effect=slow_search)
        executor = QueryExecutor(store, search_fn, cache=QueryCache(clock=clock), executor=ImmediateExecutor())

        results = []
        first = threading.Thread(target=lambda: results.append(executor.execute()))
        first.start()
        started.wait(5)

        second = threading.Thread(target=lambda: results.append(executor.execute()))
        second.start()
        release.set()
        first.join(5)
        second.join(5)

        assert search_fn.call_count == 1
        assert [snapshot.total for snapshot in results] == [1, 1]


class TestSnapshot:

    def test_total_pages(self):
        assert QuerySnapshot(total=57, page_size=25).total_pages == 3
        assert QuerySnapshot(total=50, page_size=25).total_pages == 2
        assert QuerySnapshot(total=57, page_size=0).total_pages == 0
        assert QuerySnapshot(total=0, page_size=25).total_pages == 0

    def test_item_range(self):
        snapshot = QuerySnapshot(total=57, page_size=25, current_page=3)
        assert (snapshot.start_item, snapshot.end_item) == (51, 57)
        assert (QuerySnapshot(total=0, page_size=25).start_item, QuerySnapshot().end_item) == (0, 0)

    def test_has_active_filters_follows_state(self, executor, store):
        store.set_hydrated(True)
        assert executor.current().has_active_filters is False
        store.set_difficulty('Easy')
        assert executor.current().has_active_filters is True

    def test_close_detaches_from_store(self, executor, store, search_fn):
        executor.close()
        store.set_hydrated(True)
        search_fn.assert_not_called()


class TestPagination:

    def test_page_offset(self):
        assert page_offset(1, 25) == 0
        assert page_offset(3, 10) == 20

    def test_total_pages_helper(self):
        assert total_pages(57, 25) == 3
        assert total_pages(57, None) == 0

    def test_item_range_last_partial_page(self):
        assert item_range(2, 50, 57) == (51, 57)

    @pytest.mark.parametrize('current, pages, expected', [
        (1, 3, (1, 3, False, False)),
        (1, 10, (1, 5, False, True)),
        (5, 10, (3, 7, True, True)),
        (10, 10, (6, 10, True, False)),
        (9, 10, (6, 10, True, False)),
        (1, 0, (1, 0, False, False)),
    ])
    def test_page_window(self, current, pages, expected):
        assert tuple(page_window(current, pages)) == expected
