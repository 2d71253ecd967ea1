"""
Per-session wiring for the question explorer page.

Every browser tab gets its own FilterStore, URL synchronizer and query
executor. All sessions share one result cache, one refetch worker pool and
one question repository.
"""

import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional

from config_manager import get_config
from core.config import FilterConfig
from core.database import get_database_manager
from filters.persistence import MemoryPersistence, PresetStore, StateManagerPersistence
from filters.query_executor import QueryCache, QueryExecutor, SearchFunction
from filters.query_string import normalize_query
from filters.store import FilterStore
from filters.url_sync import NavigationPort, PopStateMixin, URLSynchronizer
from questions.repository import QuestionRepository
from state_manager import StateManager, get_state_manager

logger = logging.getLogger(__name__)


class DashNavigation(PopStateMixin, NavigationPort):
    """
    Navigation port backed by the page's dcc.Location.

    Pushes only record the new query; the filter callback writes it to the
    Location component. A Location change that differs from the last known
    query can only come from the browser (back/forward or a typed URL) and is
    replayed as a pop-state.
    """

    def __init__(self, initial_query: str = ''):
        self._init_pop_state()
        self.current_query = normalize_query(initial_query)
        self.pushed: List[str] = []

    def get_current_query(self) -> str:
        return self.current_query

    def push_query(self, query: str) -> None:
        self.current_query = normalize_query(query)
        self.pushed.append(self.current_query)

    def location_changed(self, search: Optional[str]) -> bool:
        """Feed the Location's search value in; returns True if it was a pop-state."""
        query = normalize_query(search)
        if query == self.current_query:
            return False
        self.current_query = query
        self._fire_pop_state()
        return True


@dataclass
class ExplorerSession:
    session_id: str
    store: FilterStore
    navigation: DashNavigation
    synchronizer: URLSynchronizer
    executor: QueryExecutor
    user_id: Optional[str] = None
    last_access: float = 0.0

    @property
    def url_search(self) -> str:
        """Location.search value for the current state ('' for the default state)."""
        query = self.navigation.get_current_query()
        return f"?{query}" if query else ''

    def close(self) -> None:
        self.synchronizer.unmount()
        self.executor.close()


class SessionRegistry:
    """
    Creates, caches and tears down ExplorerSessions.

    Sessions are keyed by browser tab, so two tabs never share a store or a
    navigation history. Persisted filters and presets are keyed by the
    browser-wide user id instead and survive reloads. Sessions unused for
    longer than the idle timeout are closed on the next access.
    """

    def __init__(self, repository: QuestionRepository,
                 state_manager: Optional[StateManager] = None,
                 filter_config: Optional[FilterConfig] = None,
                 cache: Optional[QueryCache] = None,
                 search_fn: Optional[SearchFunction] = None,
                 idle_timeout: Optional[float] = None,
                 clock: Callable[[], float] = time.monotonic):
        self.repository = repository
        self.state_manager = state_manager
        self.filter_config = filter_config or FilterConfig()
        self.cache = cache or QueryCache(
            stale_time=self.filter_config.stale_time_seconds,
            gc_time=self.filter_config.gc_time_seconds,
        )
        self.search_fn = search_fn or repository.search_questions
        self.idle_timeout = idle_timeout or self.filter_config.session_idle_seconds
        self.clock = clock
        self._workers = ThreadPoolExecutor(
            max_workers=self.filter_config.refetch_workers,
            thread_name_prefix='question-refetch'
        )
        self._sessions: Dict[str, ExplorerSession] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, session_id: str) -> bool:
        return session_id in self._sessions

    def open(self, session_id: str, url_search: Optional[str] = '',
             user_id: Optional[str] = None) -> ExplorerSession:
        """
        Start the tab's session afresh for a page load.

        Any previous session under this tab id is closed; the new store
        restores the snapshot persisted for user_id (the tab id when not
        given), then hydrates from the URL it was loaded with.
        """
        self.evict_idle()
        session = self._create(session_id, url_search, user_id or session_id)
        session.last_access = self.clock()
        with self._lock:
            previous = self._sessions.pop(session_id, None)
            self._sessions[session_id] = session
        if previous is not None:
            previous.close()

        session.synchronizer.mount()
        logger.info(f"Opened explorer session {session_id}")
        return session

    def lookup(self, session_id: str) -> Optional[ExplorerSession]:
        """Return the live session for this tab, marking it used, or None."""
        self.evict_idle()
        with self._lock:
            session = self._sessions.get(session_id)
            if session is not None:
                session.last_access = self.clock()
        return session

    def get(self, session_id: str, url_search: Optional[str] = '',
            user_id: Optional[str] = None) -> ExplorerSession:
        session = self.lookup(session_id)
        if session is None:
            session = self.open(session_id, url_search, user_id)
        return session

    def evict_idle(self) -> int:
        """Close sessions idle longer than the timeout; returns how many were closed."""
        cutoff = self.clock() - self.idle_timeout
        with self._lock:
            idle = [session_id for session_id, session in self._sessions.items()
                    if session.last_access < cutoff]
            evicted = [self._sessions.pop(session_id) for session_id in idle]
        for session in evicted:
            session.close()
            logger.info(f"Closed idle explorer session {session.session_id}")
        return len(evicted)

    def close(self, session_id: str) -> bool:
        with self._lock:
            session = self._sessions.pop(session_id, None)
        if session is None:
            return False
        session.close()
        logger.info(f"Closed explorer session {session_id}")
        return True

    def close_all(self) -> None:
        for session_id in list(self._sessions):
            self.close(session_id)
        self._workers.shutdown(wait=False)

    def _create(self, session_id: str, url_search: Optional[str], user_id: str) -> ExplorerSession:
        if self.state_manager is not None:
            persistence = StateManagerPersistence(self.state_manager, user_id=user_id)
            presets = PresetStore(self.state_manager, user_id=user_id)
        else:
            persistence = MemoryPersistence()
            presets = None

        store = FilterStore(
            persistence=persistence,
            presets=presets,
            page_size_options=self.filter_config.page_size_options,
            default_page_size=self.filter_config.default_page_size,
        )
        navigation = DashNavigation(url_search)
        synchronizer = URLSynchronizer(store, navigation)
        executor = QueryExecutor(
            store,
            self.search_fn,
            cache=self.cache,
            retry=self.filter_config.retry_count,
            retry_delay=self.filter_config.retry_delay_seconds,
            executor=self._workers,
        )
        return ExplorerSession(session_id, store, navigation, synchronizer, executor, user_id=user_id)


# Global registry instance
_registry: Optional[SessionRegistry] = None
_registry_lock = threading.Lock()


def get_session_registry() -> SessionRegistry:
    """Get the global SessionRegistry, building it from the app config on first use."""
    global _registry
    with _registry_lock:
        if _registry is None:
            config = get_config()
            db_manager = get_database_manager(config.database.database_path)
            repository = QuestionRepository(
                db_manager,
                table_name=config.database.questions_table,
                max_page_size=config.database.max_page_size,
            )
            repository.ensure_schema()
            _registry = SessionRegistry(repository, get_state_manager(), config.filters)
            logger.info("Created explorer session registry")
        return _registry


def set_session_registry(registry: Optional[SessionRegistry]) -> None:
    """Install a registry (tests) or clear the global one."""
    global _registry
    with _registry_lock:
        if _registry is not None and _registry is not registry:
            _registry.close_all()
        _registry = registry
