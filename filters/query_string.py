"""
Query-string codec for filter state.

Produces the minimal, deterministic query string that reproduces a search
when a link is shared, and parses one back without ever raising.
"""

from typing import Dict, Iterable, List, Mapping, Optional, Union
from urllib.parse import quote, quote_plus, unquote, unquote_plus

from .models import (
    ALL_DIFFICULTIES,
    DEFAULT_PAGE_SIZE,
    DEFAULT_SORT,
    FACET_FIELDS,
    FilterState,
)

SEARCH_KEY = 'search'
DIFFICULTY_KEY = 'difficulty'
SORT_KEY = 'sort_by'
PAGE_KEY = 'page'
PAGE_SIZE_KEY = 'pageSize'

QUERY_KEYS = (SEARCH_KEY,) + FACET_FIELDS + (DIFFICULTY_KEY, SORT_KEY, PAGE_KEY, PAGE_SIZE_KEY)

QueryInput = Union[str, Mapping[str, str], None]


def encode_facet_values(values: Iterable[str]) -> str:
    """Percent-encode each value, render spaces as '+', join with commas."""
    return ','.join(quote(value, safe='').replace('%20', '+') for value in values)


def decode_facet_values(raw: str) -> List[str]:
    """Inverse of encode_facet_values; empty items are dropped."""
    if not raw:
        return []
    values = (unquote(item.replace('+', ' ')) for item in raw.split(','))
    return [value for value in values if value]


def parse_query(query: QueryInput) -> Dict[str, str]:
    """
    Split a query string into raw (still encoded) values keyed by name.

    Values are left encoded so that facet decoding can tell literal commas
    apart from encoded ones. The first occurrence of a key wins.
    """
    if query is None:
        return {}
    if isinstance(query, Mapping):
        return {str(key): str(value) for key, value in query.items() if value is not None}

    params: Dict[str, str] = {}
    for piece in query.lstrip('?').split('&'):
        if not piece:
            continue
        key, _, value = piece.partition('=')
        key = unquote_plus(key)
        if key and key not in params:
            params[key] = value
    return params


def decode_scalar(raw: Optional[str]) -> str:
    return unquote_plus(raw) if raw else ''


def parse_positive_int(raw: Optional[str]) -> Optional[int]:
    """Parse a positive integer, returning None for anything else."""
    if not raw:
        return None
    try:
        value = int(unquote_plus(raw).strip())
    except ValueError:
        return None
    return value if value > 0 else None


def encode_query(state: FilterState, default_page_size: int = DEFAULT_PAGE_SIZE) -> str:
    """
    Encode the filter-relevant fields of a state; defaults are omitted.

    The default state encodes to an empty string.
    """
    parts = []

    if state.search:
        parts.append(f"{SEARCH_KEY}={quote_plus(state.search)}")

    for facet in FACET_FIELDS:
        values = state.get_facet(facet)
        if values:
            parts.append(f"{facet}={encode_facet_values(values)}")

    if state.difficulty and state.difficulty != ALL_DIFFICULTIES:
        parts.append(f"{DIFFICULTY_KEY}={quote_plus(state.difficulty)}")

    if state.sort_by and state.sort_by != DEFAULT_SORT:
        parts.append(f"{SORT_KEY}={quote_plus(state.sort_by)}")

    if state.page > 1:
        parts.append(f"{PAGE_KEY}={state.page}")

    if state.page_size != default_page_size:
        parts.append(f"{PAGE_SIZE_KEY}={state.page_size}")

    return '&'.join(parts)


def normalize_query(query: Optional[str]) -> str:
    """Query string without its leading '?', for comparisons."""
    return (query or '').lstrip('?')
