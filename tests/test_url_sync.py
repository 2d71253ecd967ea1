"""
Tests for the query-string codec and the URL synchronizer.
"""

import os
import sys

import pytest

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from filters.models import FilterState
from filters.persistence import MemoryPersistence
from filters.query_string import (
    decode_facet_values,
    encode_facet_values,
    encode_query,
    parse_positive_int,
    parse_query,
)
from filters.store import FilterStore
from filters.url_sync import MemoryNavigation, URLSynchronizer


def filter_fields(state: FilterState):
    return (state.search, state.book_sources, state.chapters, state.tags,
            state.difficulty, state.sort_by, state.page, state.page_size)


def mounted(initial_query='', persistence=None):
    store = FilterStore(persistence=persistence or MemoryPersistence())
    navigation = MemoryNavigation(initial_query)
    synchronizer = URLSynchronizer(store, navigation)
    synchronizer.mount()
    return store, navigation, synchronizer


class TestQueryStringCodec:

    def test_default_state_encodes_to_empty_string(self):
        assert encode_query(FilterState()) == ''

    def test_search_and_page(self):
        state = FilterState(search='percent', page=3)
        assert encode_query(state) == 'search=percent&page=3'

    def test_facet_values_use_plus_for_spaces(self):
        assert encode_facet_values(['Book A', 'Book B']) == 'Book+A,Book+B'
        assert decode_facet_values('Book+A,Book+B') == ['Book A', 'Book B']

    def test_facet_values_percent_encode_reserved_characters(self):
        encoded = encode_facet_values(['Physics & Maths', 'a+b', 'x,y'])
        assert encoded == 'Physics+%26+Maths,a%2Bb,x%2Cy'
        assert decode_facet_values(encoded) == ['Physics & Maths', 'a+b', 'x,y']

    def test_decode_drops_empty_items(self):
        assert decode_facet_values('A,,B,') == ['A', 'B']
        assert decode_facet_values('') == []

    def test_all_difficulty_is_never_encoded(self):
        state = FilterState(difficulty='Hard')
        assert 'difficulty=Hard' in encode_query(state)
        state.difficulty = 'all'
        assert 'difficulty' not in encode_query(state)

    def test_defaults_are_omitted(self):
        state = FilterState(sort_by='id_asc', page=1, page_size=25)
        assert encode_query(state) == ''

    def test_non_default_sort_and_page_size(self):
        state = FilterState(sort_by='difficulty_desc', page_size=50)
        assert encode_query(state) == 'sort_by=difficulty_desc&pageSize=50'

    def test_key_order_is_fixed(self):
        state = FilterState(search='q', tags=['t'], book_sources=['b'], chapters=['c'],
                            difficulty='Easy', sort_by='id_desc', page=2, page_size=10)
        assert encode_query(state) == (
            'search=q&book_sources=b&chapters=c&tags=t&difficulty=Easy'
            '&sort_by=id_desc&page=2&pageSize=10'
        )

    def test_parse_query(self):
        assert parse_query('?search=a+b&page=2') == {'search': 'a+b', 'page': '2'}
        assert parse_query('page=1&page=9') == {'page': '1'}
        assert parse_query('') == {}
        assert parse_query(None) == {}
        assert parse_query({'page': '3', 'tags': None}) == {'page': '3'}

    @pytest.mark.parametrize('raw, expected', [
        ('3', 3), ('0', None), ('-1', None), ('abc', None), ('2.5', None), ('', None), (None, None),
    ])
    def test_parse_positive_int(self, raw, expected):
        assert parse_positive_int(raw) == expected


class TestHydrateFromURL:

    @pytest.fixture
    def store(self):
        return FilterStore(persistence=MemoryPersistence())

    def test_hydrates_all_keys(self, store):
        store.hydrate_from_url(
            'search=percent+change&book_sources=Book+A,Book+B&chapters=Ratios&tags=pyq'
            '&difficulty=Moderate-Hard&sort_by=created_at_desc&page=4&pageSize=10'
        )
        state = store.state
        assert state.search == 'percent change'
        assert state.book_sources == ['Book A', 'Book B']
        assert state.chapters == ['Ratios']
        assert state.tags == ['pyq']
        assert state.difficulty == 'Moderate-Hard'
        assert state.sort_by == 'created_at_desc'
        assert state.page == 4
        assert state.page_size == 10

    def test_partial_query_keeps_other_fields(self, store):
        store.set_tags(['kept'])
        store.hydrate_from_url('page=2')
        assert store.state.tags == ['kept']
        assert store.state.page == 2

    @pytest.mark.parametrize('query', ['page=0', 'page=-3', 'page=abc', 'pageSize=0', 'pageSize=-25', 'pageSize=x'])
    def test_malformed_numbers_are_ignored(self, store, query):
        store.set_page_size(50)
        store.set_page(2)
        store.hydrate_from_url(query)
        assert store.state.page == 2
        assert store.state.page_size == 50

    def test_page_size_outside_options_is_ignored(self, store):
        store.hydrate_from_url('pageSize=7')
        assert store.state.page_size == 25

    def test_unknown_enum_values_are_ignored(self, store):
        store.hydrate_from_url('difficulty=Nightmare&sort_by=random')
        assert store.state.difficulty == 'all'
        assert store.state.sort_by == 'id_asc'

    def test_garbage_never_raises(self, store):
        store.hydrate_from_url('%%%&&=&book_sources=%E0%A4&page=%ZZ')
        assert store.state.page == 1

    def test_idempotent(self, store):
        query = 'search=x&tags=a,b&page=3'
        store.hydrate_from_url(query)
        once = filter_fields(store.state)
        store.hydrate_from_url(query)
        assert filter_fields(store.state) == once

    @pytest.mark.parametrize('state', [
        FilterState(),
        FilterState(search='percent', page=3),
        FilterState(search='a&b=c?', book_sources=['Book A', 'Book B'], tags=['x+y', '100%']),
        FilterState(chapters=['Ch 1: Intro'], difficulty='Easy-Moderate', sort_by='created_at_asc',
                    page=12, page_size=50),
    ])
    def test_round_trip(self, state):
        store = FilterStore()
        store.hydrate_from_url(encode_query(state))
        assert filter_fields(store.state) == filter_fields(state)


class TestURLSynchronizer:

    def test_mount_hydrates_once_and_marks_hydrated(self):
        store, navigation, _ = mounted('search=initial&page=2')
        assert store.state.is_hydrated is True
        assert store.state.search == 'initial'
        assert store.state.page == 2
        # URL already canonical: no push
        assert navigation.push_count == 0

    def test_mount_on_empty_url_keeps_default_query(self):
        _, navigation, _ = mounted('')
        assert navigation.get_current_query() == ''
        assert navigation.push_count == 0

    def test_mount_pushes_persisted_filters(self):
        _, navigation, _ = mounted('', persistence=MemoryPersistence({'tags': ['saved']}))
        assert navigation.get_current_query() == 'tags=saved'

    def test_url_wins_over_persisted_values(self):
        store, _, _ = mounted('tags=from-url', persistence=MemoryPersistence({'tags': ['saved']}))
        assert store.state.tags == ['from-url']

    def test_mount_canonicalizes_url(self):
        _, navigation, _ = mounted('page=2&search=x')
        assert navigation.get_current_query() == 'search=x&page=2'

    def test_state_changes_push_query(self):
        store, navigation, _ = mounted()
        store.set_search('percent')
        store.set_page(3)
        assert navigation.get_current_query() == 'search=percent&page=3'
        assert navigation.push_count == 2

    def test_no_push_when_query_unchanged(self):
        store, navigation, synchronizer = mounted('search=x')
        assert synchronizer.sync_url() is False
        store.set_search('x')
        assert navigation.push_count == 0

    def test_unhydrated_store_does_not_push(self):
        store = FilterStore()
        navigation = MemoryNavigation('')
        URLSynchronizer(store, navigation)
        store.set_search('before mount')
        assert navigation.push_count == 0

    def test_difficulty_reset_to_all_removes_key(self):
        store, navigation, _ = mounted()
        store.set_difficulty('Hard')
        assert 'difficulty=Hard' in navigation.get_current_query()
        store.set_difficulty('all')
        assert 'difficulty' not in navigation.get_current_query()

    def test_back_and_forward_rehydrate(self):
        store, navigation, _ = mounted()
        store.set_search('first')
        store.set_page(2)
        store.set_page(3)

        navigation.back()
        assert store.state.page == 2
        assert store.state.search == 'first'

        navigation.forward()
        assert store.state.page == 3

    def test_pop_state_does_not_push(self):
        store, navigation, _ = mounted()
        store.set_search('a')
        store.set_search('b')
        pushes = navigation.push_count

        navigation.back()

        assert store.state.search == 'a'
        assert navigation.push_count == pushes
        assert navigation.get_current_query() == 'search=a'

    def test_pop_state_is_partial(self):
        store, navigation, _ = mounted()
        store.set_tags(['t'])
        navigation.back()
        # The earlier URL carries no tags key, so tags are kept
        assert store.state.tags == ['t']
        assert navigation.get_current_query() == ''

    def test_unmount_stops_sync(self):
        store, navigation, synchronizer = mounted()
        synchronizer.unmount()
        assert synchronizer.is_mounted is False

        store.set_search('ignored')
        assert navigation.push_count == 0

    def test_mount_twice_is_noop(self):
        store, navigation, synchronizer = mounted('search=x')
        synchronizer.mount()
        store.set_search('y')
        assert navigation.push_count == 1

    def test_clear_all_filters_empties_query(self):
        store, navigation, _ = mounted('search=x&tags=a&page=3')
        store.clear_all_filters()
        assert navigation.get_current_query() == ''
