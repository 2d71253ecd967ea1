"""
Filter state models for the question explorer.

This module defines the canonical query descriptor shared by the filter
store, the URL synchronizer and the query executor, together with the
enumerations and defaults the question bank supports.
"""

from dataclasses import dataclass, field, replace
from typing import Any, Dict, Iterable, List, Optional, Tuple
from typing_extensions import TypedDict


# Facet names, in URL/serialization order
FACET_FIELDS: Tuple[str, ...] = ('book_sources', 'chapters', 'tags')

ALL_DIFFICULTIES = 'all'
DIFFICULTY_LEVELS: Tuple[str, ...] = ('Easy', 'Easy-Moderate', 'Moderate', 'Moderate-Hard', 'Hard')

DEFAULT_SORT = 'id_asc'
SORT_OPTIONS: Dict[str, str] = {
    'id_asc': 'ID (Ascending)',
    'id_desc': 'ID (Descending)',
    'created_at_asc': 'Created (Oldest)',
    'created_at_desc': 'Created (Newest)',
    'difficulty_asc': 'Difficulty (Easy to Hard)',
    'difficulty_desc': 'Difficulty (Hard to Easy)',
}

DEFAULT_PAGE_SIZE = 25
PAGE_SIZE_OPTIONS: Tuple[int, ...] = (10, 25, 50)

# Fields that survive reloads; page and hydration are session-scoped
PERSISTED_FIELDS: Tuple[str, ...] = (
    'search', 'book_sources', 'chapters', 'tags', 'difficulty', 'sort_by', 'page_size'
)


class FilterSnapshot(TypedDict, total=False):
    """Persisted subset of a FilterState; also the shape of a preset."""
    search: str
    book_sources: List[str]
    chapters: List[str]
    tags: List[str]
    difficulty: str
    sort_by: str
    page_size: int


class SearchParams(TypedDict):
    """Request accepted by the question search collaborator."""
    search: str
    book_sources: List[str]
    chapters: List[str]
    tags: List[str]
    difficulty: Optional[str]
    sort_by: str
    page: int
    page_size: int


def normalize_facet_values(values: Optional[Iterable[Any]]) -> List[str]:
    """Strip values, drop empties and duplicates, keep first-seen order."""
    if not values:
        return []
    if isinstance(values, str):
        values = [values]

    normalized = []
    seen = set()
    for value in values:
        if value is None:
            continue
        text = str(value).strip()
        if text and text not in seen:
            seen.add(text)
            normalized.append(text)
    return normalized


def is_valid_page(page: Any) -> bool:
    return isinstance(page, int) and not isinstance(page, bool) and page >= 1


def is_valid_page_size(page_size: Any, allowed: Iterable[int] = PAGE_SIZE_OPTIONS) -> bool:
    return is_valid_page(page_size) and page_size in tuple(allowed)


def is_valid_difficulty(difficulty: Any) -> bool:
    return difficulty == ALL_DIFFICULTIES or difficulty in DIFFICULTY_LEVELS


def is_valid_sort(sort_by: Any) -> bool:
    return sort_by in SORT_OPTIONS


@dataclass
class FilterState:
    """
    Canonical set of active query parameters for the question explorer.

    Facet lists hold unique values; their order is kept for display but is
    irrelevant to the cache key.
    """

    search: str = ''
    book_sources: List[str] = field(default_factory=list)
    chapters: List[str] = field(default_factory=list)
    tags: List[str] = field(default_factory=list)
    difficulty: str = ALL_DIFFICULTIES
    sort_by: str = DEFAULT_SORT
    page: int = 1
    page_size: int = DEFAULT_PAGE_SIZE
    is_hydrated: bool = False

    def copy(self, **changes: Any) -> 'FilterState':
        """Return an independent copy, with facet lists duplicated."""
        state = replace(self, **changes)
        for facet in FACET_FIELDS:
            if facet not in changes:
                setattr(state, facet, list(getattr(self, facet)))
        return state

    def get_facet(self, facet: str) -> List[str]:
        if facet not in FACET_FIELDS:
            raise KeyError(f"Unknown facet: {facet}")
        return getattr(self, facet)

    def effective_difficulty(self) -> Optional[str]:
        if not self.difficulty or self.difficulty == ALL_DIFFICULTIES:
            return None
        return self.difficulty

    def query_key(self) -> Tuple:
        """Hashable cache key over the filter-relevant fields only."""
        return (
            'questions',
            self.search or '',
            tuple(sorted(self.book_sources)),
            tuple(sorted(self.chapters)),
            tuple(sorted(self.tags)),
            self.effective_difficulty(),
            self.sort_by or DEFAULT_SORT,
            self.page or 1,
            self.page_size or DEFAULT_PAGE_SIZE,
        )

    def snapshot(self) -> FilterSnapshot:
        """Persisted subset (everything except page and hydration)."""
        return FilterSnapshot(
            search=self.search,
            book_sources=list(self.book_sources),
            chapters=list(self.chapters),
            tags=list(self.tags),
            difficulty=self.difficulty,
            sort_by=self.sort_by,
            page_size=self.page_size,
        )

    def has_active_filters(self) -> bool:
        return bool(
            self.search
            or any(self.get_facet(facet) for facet in FACET_FIELDS)
            or self.effective_difficulty()
            or self.sort_by != DEFAULT_SORT
        )

    def to_search_params(self) -> SearchParams:
        return SearchParams(
            search=self.search or '',
            book_sources=list(self.book_sources),
            chapters=list(self.chapters),
            tags=list(self.tags),
            difficulty=self.effective_difficulty(),
            sort_by=self.sort_by or DEFAULT_SORT,
            page=self.page or 1,
            page_size=self.page_size or DEFAULT_PAGE_SIZE,
        )


@dataclass
class QueryResult:
    """One page of matching records plus the total match count."""
    records: List[Dict[str, Any]] = field(default_factory=list)
    total: int = 0
