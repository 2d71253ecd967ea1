"""
Filter management callbacks for the question explorer.

This module contains the single callback that owns the filter state:
- control changes (search, facets, difficulty, sort, page size, paging)
- URL changes from the browser (back/forward, edited address bar)
- filter presets (save, load, delete)

The callback routes every event through the session's FilterStore and
URLSynchronizer and writes the canonical state back to the controls and the
address bar, so the two never drift apart.
"""

import logging
from typing import Any, Mapping, Optional

from dash import ALL, Input, Output, State, ctx, no_update
from dash.exceptions import PreventUpdate

from core.exceptions import ValidationError
from filters.query_string import normalize_query

from ..session import ExplorerSession, get_session_registry
from ..ui.components import (
    BOOK_SOURCE_SELECT_ID,
    CHAPTER_SELECT_ID,
    CLEAR_BUTTON_ID,
    DIFFICULTY_SELECT_ID,
    FILTER_STATE_STORE_ID,
    NEXT_PAGE_ID,
    PAGE_BUTTON_TYPE,
    PAGE_SIZE_SELECT_ID,
    PRESET_DELETE_ID,
    PRESET_FEEDBACK_ID,
    PRESET_LOAD_ID,
    PRESET_NAME_ID,
    PRESET_SAVE_ID,
    PRESET_SELECT_ID,
    PREV_PAGE_ID,
    SEARCH_INPUT_ID,
    SORT_SELECT_ID,
    TAG_SELECT_ID,
    URL_ID,
    preset_options,
)

logger = logging.getLogger(__name__)

# Browser-wide id: keys persisted filters and presets
SESSION_STORE_ID = 'user-session-id'
# Per-tab id: keys the live explorer session
TAB_STORE_ID = 'tab-session-id'

# Control id -> (store mutator, key in the control values mapping)
CONTROL_MUTATORS = {
    SEARCH_INPUT_ID: ('set_search', 'search'),
    BOOK_SOURCE_SELECT_ID: ('set_book_sources', 'book_sources'),
    CHAPTER_SELECT_ID: ('set_chapters', 'chapters'),
    TAG_SELECT_ID: ('set_tags', 'tags'),
    DIFFICULTY_SELECT_ID: ('set_difficulty', 'difficulty'),
    SORT_SELECT_ID: ('set_sort_by', 'sort_by'),
    PAGE_SIZE_SELECT_ID: ('set_page_size', 'page_size'),
}


def _apply_preset_event(session: ExplorerSession, trigger: str, values: Mapping[str, Any]) -> Optional[str]:
    store = session.store
    if store.presets is None:
        return "Presets are unavailable without a state backend"

    if trigger == PRESET_SAVE_ID:
        name = (values.get('preset_name') or '').strip()
        try:
            store.save_preset(name)
        except ValidationError as e:
            return e.message
        return f"Saved preset '{name}'"

    name = values.get('selected_preset')
    if not name:
        return "Select a preset first"

    if trigger == PRESET_LOAD_ID:
        if store.load_preset(name):
            return f"Loaded preset '{name}'"
        return f"Preset '{name}' not found"

    if store.delete_preset(name):
        return f"Deleted preset '{name}'"
    return f"Preset '{name}' not found"


def apply_filter_event(session: ExplorerSession, trigger: Any, trigger_value: Any,
                       url_search: Optional[str], values: Mapping[str, Any]) -> Optional[str]:
    """
    Apply one UI event to the session's filter store.

    Returns a preset feedback message, or None for events that have none.
    Button events with no clicks (re-rendered components) are ignored.
    """
    store = session.store

    if trigger == URL_ID:
        if session.navigation.location_changed(url_search):
            logger.debug(f"Browser navigation to ?{normalize_query(url_search)}")
        return None

    if isinstance(trigger, Mapping):
        if trigger.get('type') == PAGE_BUTTON_TYPE and trigger_value:
            store.set_page(trigger.get('page'))
        return None

    if trigger in CONTROL_MUTATORS:
        mutator, key = CONTROL_MUTATORS[trigger]
        getattr(store, mutator)(values.get(key))
        return None

    if not trigger_value:
        return None

    if trigger == PREV_PAGE_ID:
        store.set_page(store.state.page - 1)
    elif trigger == NEXT_PAGE_ID:
        store.set_page(store.state.page + 1)
    elif trigger == CLEAR_BUTTON_ID:
        store.clear_all_filters()
    elif trigger in (PRESET_SAVE_ID, PRESET_LOAD_ID, PRESET_DELETE_ID):
        return _apply_preset_event(session, trigger, values)
    else:
        logger.warning(f"Unhandled filter trigger: {trigger!r}")
    return None


def filter_outputs(session: ExplorerSession, url_search: Optional[str], feedback: Optional[str]):
    """Canonical values for every output of the filter callback."""
    state = session.store.state
    canonical = session.url_search
    url_output = no_update if normalize_query(url_search) == normalize_query(canonical) else canonical

    return (
        url_output,
        state.search,
        list(state.book_sources),
        list(state.chapters),
        list(state.tags),
        state.difficulty,
        state.sort_by,
        state.page_size,
        preset_options(session.store.get_presets()),
        feedback or '',
        dict(state.snapshot(), page=state.page),
    )


def update_filters(url_search, search, book_sources, chapters, tags, difficulty, sort_by, page_size,
                   clear_clicks, prev_clicks, next_clicks, page_clicks,
                   save_clicks, load_clicks, delete_clicks, session_id, tab_id,
                   preset_name, selected_preset):
    if not session_id or not tab_id:
        raise PreventUpdate

    registry = get_session_registry()
    trigger = ctx.triggered_id
    trigger_value = ctx.triggered[0]['value'] if ctx.triggered else None

    # Page load (or new ids): start from persisted state plus the URL
    if trigger in (None, SESSION_STORE_ID, TAB_STORE_ID) or tab_id not in registry:
        session = registry.open(tab_id, url_search, user_id=session_id)
        return filter_outputs(session, url_search, None)

    session = registry.get(tab_id, url_search, user_id=session_id)
    values = {
        'search': search,
        'book_sources': book_sources,
        'chapters': chapters,
        'tags': tags,
        'difficulty': difficulty,
        'sort_by': sort_by,
        'page_size': page_size,
        'preset_name': preset_name,
        'selected_preset': selected_preset,
    }
    feedback = apply_filter_event(session, trigger, trigger_value, url_search, values)
    return filter_outputs(session, url_search, feedback)


def register_callbacks(app):
    """Register the filter state callback with the Dash app."""
    app.callback(
        [Output(URL_ID, 'search'),
         Output(SEARCH_INPUT_ID, 'value'),
         Output(BOOK_SOURCE_SELECT_ID, 'value'),
         Output(CHAPTER_SELECT_ID, 'value'),
         Output(TAG_SELECT_ID, 'value'),
         Output(DIFFICULTY_SELECT_ID, 'value'),
         Output(SORT_SELECT_ID, 'value'),
         Output(PAGE_SIZE_SELECT_ID, 'value'),
         Output(PRESET_SELECT_ID, 'options'),
         Output(PRESET_FEEDBACK_ID, 'children'),
         Output(FILTER_STATE_STORE_ID, 'data')],
        [Input(URL_ID, 'search'),
         Input(SEARCH_INPUT_ID, 'value'),
         Input(BOOK_SOURCE_SELECT_ID, 'value'),
         Input(CHAPTER_SELECT_ID, 'value'),
         Input(TAG_SELECT_ID, 'value'),
         Input(DIFFICULTY_SELECT_ID, 'value'),
         Input(SORT_SELECT_ID, 'value'),
         Input(PAGE_SIZE_SELECT_ID, 'value'),
         Input(CLEAR_BUTTON_ID, 'n_clicks'),
         Input(PREV_PAGE_ID, 'n_clicks'),
         Input(NEXT_PAGE_ID, 'n_clicks'),
         Input({'type': PAGE_BUTTON_TYPE, 'page': ALL}, 'n_clicks'),
         Input(PRESET_SAVE_ID, 'n_clicks'),
         Input(PRESET_LOAD_ID, 'n_clicks'),
         Input(PRESET_DELETE_ID, 'n_clicks'),
         Input(SESSION_STORE_ID, 'data'),
         Input(TAB_STORE_ID, 'data')],
        [State(PRESET_NAME_ID, 'value'),
         State(PRESET_SELECT_ID, 'value')]
    )(update_filters)
