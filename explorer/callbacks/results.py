"""
Result rendering callbacks for the question explorer.

Resolves the session's current query through its QueryExecutor and renders
the snapshot: loading placeholder, error alert with retry, empty states,
question cards, the "Showing X-Y of Z" line and the pagination bar. Facet
dropdown options are refreshed here as well since they cascade from the
selected books and chapters.
"""

import logging
from typing import Any, Mapping

from dash import Input, Output, State, ctx, html
from dash.exceptions import PreventUpdate

from filters.query_executor import QuerySnapshot

from ..session import ExplorerSession, get_session_registry
from ..ui.components import (
    BOOK_SOURCE_SELECT_ID,
    CHAPTER_SELECT_ID,
    ERROR_CONTAINER_ID,
    ERROR_MESSAGE_ID,
    FILTER_STATE_STORE_ID,
    NEXT_PAGE_ID,
    PAGE_NUMBERS_ID,
    PAGINATION_ID,
    PREV_PAGE_ID,
    REFRESH_INTERVAL_ID,
    RESULT_SUMMARY_ID,
    RESULTS_ID,
    RETRY_BUTTON_ID,
    TAG_SELECT_ID,
    create_empty_state,
    create_loading_placeholder,
    create_page_buttons,
    create_question_card,
    facet_options,
)
from ..ui.styles import STYLES
from .filters import TAB_STORE_ID

logger = logging.getLogger(__name__)

ERROR_PREFIX = "Failed to load questions."


def resolve_snapshot(session: ExplorerSession, trigger: Any) -> QuerySnapshot:
    """Retry refetches, the refresh poll only reads the cache, anything else executes."""
    if trigger == RETRY_BUTTON_ID:
        logger.info(f"Retrying question search for session {session.session_id}")
        return session.executor.refetch()
    if trigger == REFRESH_INTERVAL_ID:
        return session.executor.current()
    return session.executor.execute()


def error_message(snapshot: QuerySnapshot) -> str:
    return f"{ERROR_PREFIX} {snapshot.error or 'Unknown error occurred.'}"


def render_results(snapshot: QuerySnapshot):
    if snapshot.is_loading:
        return create_loading_placeholder()
    if not snapshot.records:
        if snapshot.is_error:
            return html.Div()
        return create_empty_state(snapshot.has_active_filters)
    return [create_question_card(record) for record in snapshot.records]


def render_summary(snapshot: QuerySnapshot):
    if snapshot.is_loading or not snapshot.total:
        return ''

    children = [
        html.Span(f"Showing {snapshot.start_item}-{snapshot.end_item} of {snapshot.total} questions"),
        html.Span(f"Page {snapshot.current_page} of {snapshot.total_pages}", className="ms-3"),
    ]
    if snapshot.is_fetching:
        children.append(html.Span("Refreshing...", className="ms-3 fst-italic"))
    return children


def render_outputs(snapshot: QuerySnapshot, filter_options: Mapping[str, Any]):
    """Values for every output of the results callback."""
    pages = snapshot.total_pages
    show_pagination = not snapshot.is_loading and pages > 1
    book_options, chapter_options, tag_options = facet_options(filter_options)

    return (
        render_results(snapshot),
        render_summary(snapshot),
        {} if snapshot.is_error else STYLES['hidden'],
        error_message(snapshot) if snapshot.is_error else '',
        create_page_buttons(snapshot.current_page, pages) if show_pagination else [],
        {} if show_pagination else STYLES['hidden'],
        snapshot.current_page <= 1,
        snapshot.current_page >= pages,
        not snapshot.is_fetching,
        book_options,
        chapter_options,
        tag_options,
    )


def update_results(filter_state, retry_clicks, n_intervals, tab_id):
    if not tab_id or filter_state is None:
        raise PreventUpdate

    registry = get_session_registry()
    session = registry.lookup(tab_id)
    if session is None:
        raise PreventUpdate

    snapshot = resolve_snapshot(session, ctx.triggered_id)

    state = session.store.state
    filter_options = registry.repository.get_filter_options(state.book_sources, state.chapters)
    return render_outputs(snapshot, filter_options)


def register_callbacks(app):
    """Register the results rendering callback with the Dash app."""
    app.callback(
        [Output(RESULTS_ID, 'children'),
         Output(RESULT_SUMMARY_ID, 'children'),
         Output(ERROR_CONTAINER_ID, 'style'),
         Output(ERROR_MESSAGE_ID, 'children'),
         Output(PAGE_NUMBERS_ID, 'children'),
         Output(PAGINATION_ID, 'style'),
         Output(PREV_PAGE_ID, 'disabled'),
         Output(NEXT_PAGE_ID, 'disabled'),
         Output(REFRESH_INTERVAL_ID, 'disabled'),
         Output(BOOK_SOURCE_SELECT_ID, 'options'),
         Output(CHAPTER_SELECT_ID, 'options'),
         Output(TAG_SELECT_ID, 'options')],
        [Input(FILTER_STATE_STORE_ID, 'data'),
         Input(RETRY_BUTTON_ID, 'n_clicks'),
         Input(REFRESH_INTERVAL_ID, 'n_intervals')],
        [State(TAB_STORE_ID, 'data')]
    )(update_results)
