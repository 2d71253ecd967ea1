"""
Bidirectional synchronization between the filter store and the address bar.

The browser history API is reached through a NavigationPort so that the
synchronization rules can run without a browser: MemoryNavigation backs
the tests, DashNavigation (explorer.session) backs the Dash page.
"""

import logging
from abc import ABC, abstractmethod
from typing import Callable, List, Optional

from .models import FilterState
from .query_string import encode_query, normalize_query
from .store import FilterStore

logger = logging.getLogger(__name__)

PopStateCallback = Callable[[], None]


class NavigationPort(ABC):
    """Minimal view of browser navigation."""

    @abstractmethod
    def get_current_query(self) -> str:
        """Current query string, without the leading '?'."""

    @abstractmethod
    def push_query(self, query: str) -> None:
        """Navigate to the given query string on the current path."""

    @abstractmethod
    def on_pop_state(self, callback: PopStateCallback) -> Callable[[], None]:
        """Register a back/forward callback; returns a callable that removes it."""


class PopStateMixin:
    """Callback bookkeeping shared by navigation implementations."""

    def _init_pop_state(self):
        self._pop_state_callbacks: List[PopStateCallback] = []

    def on_pop_state(self, callback: PopStateCallback) -> Callable[[], None]:
        self._pop_state_callbacks.append(callback)

        def remove():
            if callback in self._pop_state_callbacks:
                self._pop_state_callbacks.remove(callback)

        return remove

    def _fire_pop_state(self) -> None:
        for callback in list(self._pop_state_callbacks):
            callback()


class MemoryNavigation(PopStateMixin, NavigationPort):
    """History stack kept in memory, with browser-like back/forward."""

    def __init__(self, initial_query: str = ''):
        self._init_pop_state()
        self.history: List[str] = [normalize_query(initial_query)]
        self.index = 0
        self.push_count = 0

    def get_current_query(self) -> str:
        return self.history[self.index]

    def push_query(self, query: str) -> None:
        # Pushing drops any forward entries, as a browser does
        del self.history[self.index + 1:]
        self.history.append(normalize_query(query))
        self.index += 1
        self.push_count += 1

    def back(self) -> bool:
        if self.index == 0:
            return False
        self.index -= 1
        self._fire_pop_state()
        return True

    def forward(self) -> bool:
        if self.index >= len(self.history) - 1:
            return False
        self.index += 1
        self._fire_pop_state()
        return True


class URLSynchronizer:
    """
    Keeps a NavigationPort and a FilterStore consistent in both directions.

    mount() hydrates the store from the current query exactly once; after
    that every store change is reflected in the URL, and every pop-state
    re-hydrates the store from the URL.
    """

    def __init__(self, store: FilterStore, navigation: NavigationPort):
        self.store = store
        self.navigation = navigation
        self._unsubscribe_store: Optional[Callable[[], None]] = None
        self._unsubscribe_pop_state: Optional[Callable[[], None]] = None

    @property
    def is_mounted(self) -> bool:
        return self._unsubscribe_store is not None

    def mount(self) -> None:
        if self.is_mounted:
            return

        if not self.store.state.is_hydrated:
            self.store.hydrate_from_url(self.navigation.get_current_query())
            self.store.set_hydrated(True)
            logger.debug("Filter store hydrated from URL")

        self._unsubscribe_store = self.store.subscribe(self._on_state_change)
        self._unsubscribe_pop_state = self.navigation.on_pop_state(self.handle_pop_state)
        self.sync_url()

    def unmount(self) -> None:
        if self._unsubscribe_store:
            self._unsubscribe_store()
            self._unsubscribe_store = None
        if self._unsubscribe_pop_state:
            self._unsubscribe_pop_state()
            self._unsubscribe_pop_state = None

    def current_query(self) -> str:
        return encode_query(self.store.state, self.store.default_page_size)

    def sync_url(self) -> bool:
        """Push the canonical query if it differs from the URL; returns True on push."""
        state = self.store.state
        if not state.is_hydrated:
            return False

        query = encode_query(state, self.store.default_page_size)
        if query == normalize_query(self.navigation.get_current_query()):
            return False

        self.navigation.push_query(query)
        logger.debug(f"URL updated to ?{query}")
        return True

    def handle_pop_state(self) -> None:
        """Back/forward: re-hydrate from the URL the browser now shows."""
        self.store.hydrate_from_url(self.navigation.get_current_query())

    def _on_state_change(self, state: FilterState, previous: FilterState) -> None:
        if state.is_hydrated:
            self.sync_url()
