"""
Filter state management for the question explorer.

This package keeps the active search criteria, mirrors them into the URL
query string, and drives cached, paginated question searches from them.
"""

from .models import (
    ALL_DIFFICULTIES,
    DEFAULT_PAGE_SIZE,
    DEFAULT_SORT,
    DIFFICULTY_LEVELS,
    FACET_FIELDS,
    PAGE_SIZE_OPTIONS,
    SORT_OPTIONS,
    FilterSnapshot,
    FilterState,
    QueryResult,
    SearchParams,
)
from .persistence import MemoryPersistence, PersistenceAdapter, PresetStore, StateManagerPersistence
from .query_executor import QueryCache, QueryExecutor, QuerySnapshot
from .query_string import decode_facet_values, encode_facet_values, encode_query, parse_query
from .store import FilterStore
from .url_sync import MemoryNavigation, NavigationPort, URLSynchronizer

__all__ = [
    # Models
    'ALL_DIFFICULTIES',
    'DEFAULT_PAGE_SIZE',
    'DEFAULT_SORT',
    'DIFFICULTY_LEVELS',
    'FACET_FIELDS',
    'PAGE_SIZE_OPTIONS',
    'SORT_OPTIONS',
    'FilterSnapshot',
    'FilterState',
    'QueryResult',
    'SearchParams',

    # Store and persistence
    'FilterStore',
    'PersistenceAdapter',
    'MemoryPersistence',
    'StateManagerPersistence',
    'PresetStore',

    # URL synchronization
    'NavigationPort',
    'MemoryNavigation',
    'URLSynchronizer',
    'encode_query',
    'parse_query',
    'encode_facet_values',
    'decode_facet_values',

    # Query execution
    'QueryCache',
    'QueryExecutor',
    'QuerySnapshot',
]
