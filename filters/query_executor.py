"""
Query executor for the question explorer.

Turns the hydrated filter state into question searches: results are cached
by the filter-relevant fields, served while fresh, refreshed in the
background once stale, evicted once idle, and retried on failure before an
error is surfaced.
"""

import logging
import threading
import time
from concurrent.futures import Executor, Future, ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Tuple

from core.exceptions import QueryExecutionError

from .models import FilterState, QueryResult, SearchParams
from .pagination import item_range, total_pages
from .store import FilterStore

logger = logging.getLogger(__name__)

DEFAULT_STALE_TIME = 2 * 60
DEFAULT_GC_TIME = 5 * 60
DEFAULT_RETRY = 2
MAX_RETRY_DELAY = 30.0

SearchFunction = Callable[[SearchParams], QueryResult]
QueryKey = Tuple


@dataclass
class CacheEntry:
    result: Optional[QueryResult] = None
    error: Optional[str] = None
    updated_at: float = 0.0
    last_accessed: float = 0.0


class QueryCache:
    """
    Result cache keyed by FilterState.query_key().

    Also tracks in-flight fetches so that concurrent requests for one key
    share a single remote call.
    """

    def __init__(self, stale_time: float = DEFAULT_STALE_TIME, gc_time: float = DEFAULT_GC_TIME,
                 clock: Callable[[], float] = time.monotonic):
        self.stale_time = stale_time
        self.gc_time = gc_time
        self.clock = clock
        self._entries: Dict[QueryKey, CacheEntry] = {}
        self._in_flight: Dict[QueryKey, Future] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __contains__(self, key: QueryKey) -> bool:
        with self._lock:
            return key in self._entries

    def get(self, key: QueryKey) -> Optional[CacheEntry]:
        """Look up an entry and mark it as accessed; idle entries are evicted first."""
        now = self.clock()
        with self._lock:
            self._evict_idle_locked(now)
            entry = self._entries.get(key)
            if entry is not None:
                entry.last_accessed = now
            return entry

    def peek(self, key: QueryKey) -> Optional[CacheEntry]:
        with self._lock:
            return self._entries.get(key)

    def is_stale(self, entry: CacheEntry) -> bool:
        if entry.result is None:
            return True
        return self.clock() - entry.updated_at >= self.stale_time

    def set_result(self, key: QueryKey, result: QueryResult) -> None:
        now = self.clock()
        with self._lock:
            self._entries[key] = CacheEntry(result=result, updated_at=now, last_accessed=now)

    def set_error(self, key: QueryKey, message: str) -> None:
        """Record a failure, keeping whatever result the entry already had."""
        now = self.clock()
        with self._lock:
            entry = self._entries.setdefault(key, CacheEntry(updated_at=now))
            entry.error = message
            entry.last_accessed = now

    def invalidate(self, key: Optional[QueryKey] = None) -> None:
        with self._lock:
            if key is None:
                self._entries.clear()
            else:
                self._entries.pop(key, None)

    def evict_idle(self) -> int:
        with self._lock:
            return self._evict_idle_locked(self.clock())

    def _evict_idle_locked(self, now: float) -> int:
        idle = [key for key, entry in self._entries.items()
                if now - entry.last_accessed > self.gc_time and key not in self._in_flight]
        for key in idle:
            del self._entries[key]
        if idle:
            logger.debug(f"Evicted {len(idle)} idle query results")
        return len(idle)

    # --- in-flight tracking --------------------------------------------

    def is_fetching(self, key: QueryKey) -> bool:
        with self._lock:
            return key in self._in_flight

    def begin_fetch(self, key: QueryKey) -> Tuple[Future, bool]:
        """Return the fetch future for key and whether the caller owns it."""
        with self._lock:
            future = self._in_flight.get(key)
            if future is not None:
                return future, False
            future = Future()
            self._in_flight[key] = future
            return future, True

    def end_fetch(self, key: QueryKey) -> None:
        with self._lock:
            future = self._in_flight.pop(key, None)
        if future is not None:
            future.set_result(None)


@dataclass
class QuerySnapshot:
    """Everything the results view needs to render one moment of a query."""

    records: List[Dict[str, Any]] = field(default_factory=list)
    total: int = 0
    current_page: int = 1
    page_size: int = 0
    has_active_filters: bool = False
    is_loading: bool = False
    is_fetching: bool = False
    is_error: bool = False
    error: Optional[str] = None
    is_stale: bool = False

    @property
    def total_pages(self) -> int:
        return total_pages(self.total, self.page_size)

    @property
    def start_item(self) -> int:
        return item_range(self.current_page, self.page_size, self.total)[0]

    @property
    def end_item(self) -> int:
        return item_range(self.current_page, self.page_size, self.total)[1]


class QueryExecutor:
    """
    Orchestrates cache and fetch lifecycle for the store's current query.

    The executor subscribes to the FilterStore; any change that produces a
    new cache key while the store is hydrated triggers execute(). Ranking
    and filtering are left entirely to search_fn.
    """

    def __init__(self, store: FilterStore, search_fn: SearchFunction,
                 cache: Optional[QueryCache] = None,
                 retry: int = DEFAULT_RETRY,
                 retry_delay: float = 1.0,
                 executor: Optional[Executor] = None,
                 sleep: Callable[[float], None] = time.sleep):
        self.store = store
        self.search_fn = search_fn
        self.cache = cache or QueryCache()
        self.retry = retry
        self.retry_delay = retry_delay
        self._sleep = sleep

        self._owns_executor = executor is None
        self._background = executor or ThreadPoolExecutor(max_workers=2, thread_name_prefix='question-refetch')

        self._listeners: List[Callable[[QuerySnapshot], None]] = []
        self._last_key: Optional[QueryKey] = None
        self._unsubscribe = store.subscribe(self._on_state_change)

    def close(self) -> None:
        """Detach from the store and stop the background worker pool if owned."""
        if self._unsubscribe:
            self._unsubscribe()
            self._unsubscribe = None
        if self._owns_executor:
            self._background.shutdown(wait=False)

    def subscribe(self, listener: Callable[[QuerySnapshot], None]) -> Callable[[], None]:
        """Register a listener for result updates, including background refetches."""
        self._listeners.append(listener)

        def unsubscribe():
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    # --- public operations ---------------------------------------------

    def execute(self, force: bool = False) -> QuerySnapshot:
        """
        Resolve the current filter state to a snapshot.

        Fresh cached results are returned as-is. Stale results are returned
        immediately while a background refetch runs. Without usable data the
        search runs inline, with retries. force=True skips the freshness check.
        """
        state = self.store.state
        if not state.is_hydrated:
            return self._pending_snapshot(state)

        key = state.query_key()
        self._last_key = key

        entry = self.cache.get(key)
        if entry is not None and entry.result is not None and not force:
            if not self.cache.is_stale(entry):
                return self._snapshot(state, entry)
            self._schedule_refetch(key, state.to_search_params())
            return self._snapshot(state, entry, is_fetching=True)

        entry = self._fetch(key, state.to_search_params())
        snapshot = self._snapshot(state, entry)
        self._notify(snapshot)
        return snapshot

    def refetch(self) -> QuerySnapshot:
        """Fetch the current key again regardless of staleness."""
        return self.execute(force=True)

    def current(self) -> QuerySnapshot:
        """Snapshot of what is cached for the current state; never fetches."""
        state = self.store.state
        if not state.is_hydrated:
            return self._pending_snapshot(state)

        key = state.query_key()
        entry = self.cache.peek(key)
        fetching = self.cache.is_fetching(key)
        if entry is None:
            return QuerySnapshot(
                current_page=state.page,
                page_size=state.page_size,
                has_active_filters=state.has_active_filters(),
                is_loading=True,
                is_fetching=fetching,
            )
        return self._snapshot(state, entry, is_fetching=fetching)

    # --- internals -----------------------------------------------------

    def _on_state_change(self, state: FilterState, previous: FilterState) -> None:
        if not state.is_hydrated:
            return
        if state.query_key() == self._last_key:
            return
        self.execute()

    def _fetch(self, key: QueryKey, params: SearchParams) -> CacheEntry:
        future, owner = self.cache.begin_fetch(key)
        if not owner:
            logger.debug("Joining in-flight question search")
            future.result()
            return self.cache.peek(key) or CacheEntry()

        try:
            result = self._fetch_with_retry(key, params)
        except QueryExecutionError as e:
            self.cache.set_error(key, e.message)
        else:
            self.cache.set_result(key, result)
        finally:
            self.cache.end_fetch(key)

        return self.cache.peek(key) or CacheEntry()

    def _fetch_with_retry(self, key: QueryKey, params: SearchParams) -> QueryResult:
        attempts = self.retry + 1
        last_error: Optional[Exception] = None

        for attempt in range(attempts):
            try:
                return self.search_fn(params)
            except Exception as e:
                last_error = e
                logger.warning(f"Question search failed (attempt {attempt + 1}/{attempts}): {e}")
                if attempt < attempts - 1:
                    delay = min(self.retry_delay * (2 ** attempt), MAX_RETRY_DELAY)
                    if delay > 0:
                        self._sleep(delay)

        message = getattr(last_error, 'message', None) or str(last_error) or 'Unknown error occurred.'
        logger.error(f"Question search failed after {attempts} attempts: {message}")
        raise QueryExecutionError(message, attempts=attempts, query_key=key)

    def _schedule_refetch(self, key: QueryKey, params: SearchParams) -> None:
        if self.cache.is_fetching(key):
            return
        logger.debug("Serving stale question results while refetching")
        self._background.submit(self._background_refetch, key, params)

    def _background_refetch(self, key: QueryKey, params: SearchParams) -> None:
        try:
            self._fetch(key, params)
            state = self.store.state
            if state.is_hydrated and state.query_key() == key:
                self._notify(self.current())
        except Exception:
            logger.exception("Background question refetch failed")

    def _pending_snapshot(self, state: FilterState) -> QuerySnapshot:
        return QuerySnapshot(
            current_page=state.page,
            page_size=state.page_size,
            has_active_filters=state.has_active_filters(),
            is_loading=True,
        )

    def _snapshot(self, state: FilterState, entry: CacheEntry, is_fetching: bool = False) -> QuerySnapshot:
        result = entry.result
        return QuerySnapshot(
            records=list(result.records) if result else [],
            total=result.total if result else 0,
            current_page=state.page,
            page_size=state.page_size,
            has_active_filters=state.has_active_filters(),
            is_loading=False,
            is_fetching=is_fetching,
            is_error=entry.error is not None,
            error=entry.error,
            is_stale=result is not None and self.cache.is_stale(entry),
        )

    def _notify(self, snapshot: QuerySnapshot) -> None:
        for listener in list(self._listeners):
            try:
                listener(snapshot)
            except Exception:
                logger.exception(f"Query listener {listener!r} failed")
