"""
Filter state store for the question explorer.

FilterStore is the single source of truth for the active query parameters.
It is an explicit container handed to its collaborators (URL synchronizer,
query executor, Dash callbacks) rather than a module-level global, and it
publishes every committed change to its subscribers.
"""

import logging
import threading
from typing import Any, Callable, Iterable, List, Mapping, Optional

from .models import (
    DEFAULT_PAGE_SIZE,
    FACET_FIELDS,
    PAGE_SIZE_OPTIONS,
    FilterSnapshot,
    FilterState,
    is_valid_difficulty,
    is_valid_page,
    is_valid_page_size,
    is_valid_sort,
    normalize_facet_values,
)
from .persistence import PersistenceAdapter, PresetStore
from .query_string import (
    DIFFICULTY_KEY,
    PAGE_KEY,
    PAGE_SIZE_KEY,
    SEARCH_KEY,
    SORT_KEY,
    QueryInput,
    decode_facet_values,
    decode_scalar,
    parse_positive_int,
    parse_query,
)

logger = logging.getLogger(__name__)

Listener = Callable[[FilterState, FilterState], None]


class FilterStore:
    """
    Holds a FilterState and exposes one mutator per field.

    Every mutator except set_page, hydrate_from_url and set_hydrated resets
    the page to 1. Invalid values are logged and ignored, leaving the state
    untouched. Subscribers receive (new_state, previous_state) copies after
    the change is in place.
    """

    def __init__(self,
                 persistence: Optional[PersistenceAdapter] = None,
                 presets: Optional[PresetStore] = None,
                 page_size_options: Iterable[int] = PAGE_SIZE_OPTIONS,
                 default_page_size: int = DEFAULT_PAGE_SIZE):
        self.persistence = persistence
        self.presets = presets
        self.page_size_options = tuple(page_size_options)
        self.default_page_size = default_page_size

        self._lock = threading.RLock()
        self._listeners: List[Listener] = []
        self._state = self._restore()

    # --- reading -------------------------------------------------------

    @property
    def state(self) -> FilterState:
        """A copy of the current state."""
        with self._lock:
            return self._state.copy()

    def defaults(self) -> FilterState:
        return FilterState(page_size=self.default_page_size)

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register a change listener; returns a callable that removes it."""
        with self._lock:
            self._listeners.append(listener)

        def unsubscribe():
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return unsubscribe

    # --- field mutators ------------------------------------------------

    def set_search(self, search: Optional[str]) -> None:
        search = search or ''
        self._update(lambda state: state.copy(search=search, page=1))

    def set_facet(self, facet: str, values: Optional[Iterable[str]]) -> None:
        if facet not in FACET_FIELDS:
            logger.warning(f"Ignoring unknown facet '{facet}'")
            return
        normalized = normalize_facet_values(values)
        self._update(lambda state: state.copy(**{facet: normalized, 'page': 1}))

    def set_book_sources(self, sources: Optional[Iterable[str]]) -> None:
        self.set_facet('book_sources', sources)

    def set_chapters(self, chapters: Optional[Iterable[str]]) -> None:
        self.set_facet('chapters', chapters)

    def set_tags(self, tags: Optional[Iterable[str]]) -> None:
        self.set_facet('tags', tags)

    def set_difficulty(self, difficulty: str) -> None:
        if not is_valid_difficulty(difficulty):
            logger.warning(f"Ignoring unknown difficulty '{difficulty}'")
            return
        self._update(lambda state: state.copy(difficulty=difficulty, page=1))

    def set_sort_by(self, sort_by: str) -> None:
        if not is_valid_sort(sort_by):
            logger.warning(f"Ignoring unknown sort key '{sort_by}'")
            return
        self._update(lambda state: state.copy(sort_by=sort_by, page=1))

    def set_page(self, page: int) -> None:
        if not is_valid_page(page):
            logger.warning(f"Ignoring invalid page {page!r}")
            return
        self._update(lambda state: state.copy(page=page))

    def set_page_size(self, page_size: int) -> None:
        if not self._is_allowed_page_size(page_size):
            logger.warning(f"Ignoring invalid page size {page_size!r}")
            return
        self._update(lambda state: state.copy(page_size=page_size, page=1))

    def set_hydrated(self, hydrated: bool) -> None:
        self._update(lambda state: state.copy(is_hydrated=bool(hydrated)))

    # --- bulk operations -----------------------------------------------

    def clear_all_filters(self) -> None:
        """Restore every field to its default; the store stays hydrated."""
        cleared = self.defaults()
        cleared.is_hydrated = True
        self._update(lambda state: cleared.copy())

    def set_filters(self, patch: Mapping[str, Any]) -> None:
        """Merge a partial snapshot into the state and return to page 1."""
        self._update(lambda state: self._apply_patch(state, patch).copy(page=1))

    def hydrate_from_url(self, query: QueryInput) -> None:
        """
        Apply the keys present in a query string, leaving the rest untouched.

        Malformed numbers and unknown enum values are ignored; this never
        raises and never resets the page on its own.
        """
        try:
            changes = self._changes_from_query(parse_query(query))
        except Exception as e:
            logger.warning(f"Ignoring unparseable query string {query!r}: {e}")
            return

        if changes:
            self._update(lambda state: state.copy(**changes))

    # --- presets -------------------------------------------------------

    def save_preset(self, name: str) -> None:
        if self.presets is None:
            logger.warning("No preset storage configured; preset not saved")
            return
        self.presets.save(name, self.state.snapshot())

    def load_preset(self, name: str) -> bool:
        if self.presets is None:
            return False
        snapshot = self.presets.load(name)
        if snapshot is None:
            logger.info(f"Filter preset '{name}' not found")
            return False
        self.set_filters(snapshot)
        return True

    def delete_preset(self, name: str) -> bool:
        if self.presets is None:
            return False
        return self.presets.delete(name)

    def get_presets(self) -> List[str]:
        if self.presets is None:
            return []
        return self.presets.list()

    # --- internals -----------------------------------------------------

    def _is_allowed_page_size(self, page_size: Any) -> bool:
        return is_valid_page_size(page_size, self.page_size_options)

    def _restore(self) -> FilterState:
        state = self.defaults()
        if self.persistence is None:
            return state
        try:
            snapshot = self.persistence.load()
        except Exception as e:
            logger.error(f"Failed to restore persisted filter state: {e}")
            return state
        if snapshot:
            state = self._apply_patch(state, snapshot)
            logger.debug("Restored persisted filter state")
        return state

    def _apply_patch(self, state: FilterState, patch: Mapping[str, Any]) -> FilterState:
        updated = state.copy()
        for key, value in patch.items():
            if key == 'search':
                updated.search = value or ''
            elif key in FACET_FIELDS:
                setattr(updated, key, normalize_facet_values(value))
            elif key == 'difficulty' and is_valid_difficulty(value):
                updated.difficulty = value
            elif key == 'sort_by' and is_valid_sort(value):
                updated.sort_by = value
            elif key == 'page_size' and self._is_allowed_page_size(value):
                updated.page_size = value
            elif key in ('page', 'is_hydrated'):
                continue
            else:
                logger.warning(f"Ignoring filter field {key}={value!r}")
        return updated

    def _changes_from_query(self, params: Mapping[str, str]) -> dict:
        changes = {}

        search = decode_scalar(params.get(SEARCH_KEY))
        if search:
            changes['search'] = search

        for facet in FACET_FIELDS:
            raw = params.get(facet)
            if raw:
                changes[facet] = normalize_facet_values(decode_facet_values(raw))

        difficulty = decode_scalar(params.get(DIFFICULTY_KEY))
        if difficulty and is_valid_difficulty(difficulty):
            changes['difficulty'] = difficulty

        sort_by = decode_scalar(params.get(SORT_KEY))
        if sort_by and is_valid_sort(sort_by):
            changes['sort_by'] = sort_by

        page = parse_positive_int(params.get(PAGE_KEY))
        if page is not None:
            changes['page'] = page

        page_size = parse_positive_int(params.get(PAGE_SIZE_KEY))
        if page_size is not None and self._is_allowed_page_size(page_size):
            changes['page_size'] = page_size

        return changes

    def _update(self, mutate: Callable[[FilterState], FilterState]) -> bool:
        with self._lock:
            previous = self._state
            new_state = mutate(previous.copy())
            if new_state == previous:
                return False
            self._state = new_state
            listeners = list(self._listeners)

        if new_state.snapshot() != previous.snapshot():
            self._persist(new_state.snapshot())

        for listener in listeners:
            try:
                listener(new_state.copy(), previous.copy())
            except Exception:
                logger.exception(f"Filter listener {listener!r} failed")
        return True

    def _persist(self, snapshot: FilterSnapshot) -> None:
        if self.persistence is None:
            return
        try:
            self.persistence.save(snapshot)
        except Exception as e:
            logger.error(f"Failed to persist filter state: {e}")
