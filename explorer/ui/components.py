"""
Reusable UI components for the question explorer.

Component ids live here so the layout and the callbacks agree on them.
"""

from typing import Any, Dict, List, Mapping, Optional

import dash_bootstrap_components as dbc
from dash import dcc, html

from filters.models import ALL_DIFFICULTIES, DEFAULT_PAGE_SIZE, DEFAULT_SORT, DIFFICULTY_LEVELS, PAGE_SIZE_OPTIONS, SORT_OPTIONS
from filters.pagination import page_window

from .styles import CLASSES, DIFFICULTY_COLORS, REFRESH_INTERVAL_MS, STYLES

# Component ids
URL_ID = 'explorer-url'
FILTER_STATE_STORE_ID = 'explorer-filter-state'
SEARCH_INPUT_ID = 'explorer-search'
BOOK_SOURCE_SELECT_ID = 'explorer-book-sources'
CHAPTER_SELECT_ID = 'explorer-chapters'
TAG_SELECT_ID = 'explorer-tags'
DIFFICULTY_SELECT_ID = 'explorer-difficulty'
SORT_SELECT_ID = 'explorer-sort'
PAGE_SIZE_SELECT_ID = 'explorer-page-size'
CLEAR_BUTTON_ID = 'explorer-clear-filters'

PRESET_NAME_ID = 'explorer-preset-name'
PRESET_SAVE_ID = 'explorer-preset-save'
PRESET_SELECT_ID = 'explorer-preset-select'
PRESET_LOAD_ID = 'explorer-preset-load'
PRESET_DELETE_ID = 'explorer-preset-delete'
PRESET_FEEDBACK_ID = 'explorer-preset-feedback'

RESULT_SUMMARY_ID = 'explorer-result-summary'
RESULTS_ID = 'explorer-results'
ERROR_CONTAINER_ID = 'explorer-error-container'
ERROR_MESSAGE_ID = 'explorer-error-message'
RETRY_BUTTON_ID = 'explorer-retry'
REFRESH_INTERVAL_ID = 'explorer-refresh-interval'

PAGINATION_ID = 'explorer-pagination'
PAGE_NUMBERS_ID = 'explorer-page-numbers'
PREV_PAGE_ID = 'explorer-prev-page'
NEXT_PAGE_ID = 'explorer-next-page'
PAGE_BUTTON_TYPE = 'explorer-page-button'


def _options(values: List[str]) -> List[Dict[str, str]]:
    return [{'label': value, 'value': value} for value in values]


def difficulty_options() -> List[Dict[str, str]]:
    return [{'label': 'All difficulties', 'value': ALL_DIFFICULTIES}] + _options(list(DIFFICULTY_LEVELS))


def sort_options() -> List[Dict[str, str]]:
    return [{'label': label, 'value': key} for key, label in SORT_OPTIONS.items()]


def page_size_options(sizes=PAGE_SIZE_OPTIONS) -> List[Dict[str, Any]]:
    return [{'label': f"{size} per page", 'value': size} for size in sizes]


def facet_options(filter_options: Mapping[str, List[str]]):
    """Dropdown options for (book sources, chapters, tags)."""
    return (
        _options(filter_options.get('book_sources', [])),
        _options(filter_options.get('chapters', [])),
        _options(filter_options.get('tags', [])),
    )


def create_filters_card(page_sizes=PAGE_SIZE_OPTIONS, default_page_size: int = DEFAULT_PAGE_SIZE):
    """Create the search and filter controls card."""
    return dbc.Card(dbc.CardBody([
        html.H4("Filters", className="card-title"),
        dbc.Input(
            id=SEARCH_INPUT_ID,
            type='search',
            placeholder="Search by question ID or text...",
            debounce=True,
            value='',
            className=CLASSES['margin_bottom']
        ),
        dbc.Row([
            dbc.Col([
                html.Label("Book source", className=CLASSES['filter_label']),
                dcc.Dropdown(id=BOOK_SOURCE_SELECT_ID, multi=True, placeholder="All books"),
            ], md=4),
            dbc.Col([
                html.Label("Chapter", className=CLASSES['filter_label']),
                dcc.Dropdown(id=CHAPTER_SELECT_ID, multi=True, placeholder="All chapters"),
            ], md=4),
            dbc.Col([
                html.Label("Tags", className=CLASSES['filter_label']),
                dcc.Dropdown(id=TAG_SELECT_ID, multi=True, placeholder="Any tags"),
            ], md=4),
        ], className=CLASSES['margin_bottom']),
        dbc.Row([
            dbc.Col([
                html.Label("Difficulty", className=CLASSES['filter_label']),
                dcc.Dropdown(
                    id=DIFFICULTY_SELECT_ID,
                    options=difficulty_options(),
                    value=ALL_DIFFICULTIES,
                    clearable=False
                ),
            ], md=4),
            dbc.Col([
                html.Label("Sort by", className=CLASSES['filter_label']),
                dcc.Dropdown(
                    id=SORT_SELECT_ID,
                    options=sort_options(),
                    value=DEFAULT_SORT,
                    clearable=False
                ),
            ], md=4),
            dbc.Col([
                html.Label("Page size", className=CLASSES['filter_label']),
                dcc.Dropdown(
                    id=PAGE_SIZE_SELECT_ID,
                    options=page_size_options(page_sizes),
                    value=default_page_size,
                    clearable=False
                ),
            ], md=4),
        ], className=CLASSES['margin_bottom']),
        dbc.Button(
            "Clear all filters",
            id=CLEAR_BUTTON_ID,
            n_clicks=0,
            color="outline-secondary",
            size="sm"
        ),
    ]))


def create_presets_card():
    """Create the saved filter presets card."""
    return dbc.Card(dbc.CardBody([
        html.H4("Presets", className="card-title"),
        dbc.InputGroup([
            dbc.Input(id=PRESET_NAME_ID, placeholder="Preset name", value=''),
            dbc.Button("Save", id=PRESET_SAVE_ID, n_clicks=0, color="primary"),
        ], size="sm", className=CLASSES['margin_bottom']),
        dcc.Dropdown(id=PRESET_SELECT_ID, placeholder="Saved presets..."),
        dbc.Row([
            dbc.Col(dbc.Button("Load", id=PRESET_LOAD_ID, n_clicks=0, size="sm", color="secondary"), width="auto"),
            dbc.Col(dbc.Button("Delete", id=PRESET_DELETE_ID, n_clicks=0, size="sm", color="outline-danger"), width="auto"),
        ], className=f"{CLASSES['button_spacing']} {CLASSES['margin_top']}"),
        html.Div(id=PRESET_FEEDBACK_ID, className=CLASSES['margin_top']),
    ]))


def create_results_section():
    """Create the results area: summary line, error alert, cards and pagination."""
    return html.Div([
        html.Div(id=RESULT_SUMMARY_ID, className=CLASSES['text_muted']),
        html.Div(
            dbc.Alert([
                html.Div(id=ERROR_MESSAGE_ID),
                dbc.Button("Retry", id=RETRY_BUTTON_ID, n_clicks=0, color="danger", size="sm",
                           className=CLASSES['margin_top']),
            ], color="danger"),
            id=ERROR_CONTAINER_ID,
            style=STYLES['hidden']
        ),
        dcc.Loading(
            html.Div(id=RESULTS_ID, style=STYLES['results_loading']),
            type="default"
        ),
        html.Div([
            dbc.Button("Previous", id=PREV_PAGE_ID, n_clicks=0, size="sm", color="secondary", disabled=True),
            html.Div(id=PAGE_NUMBERS_ID, className="d-flex gap-1"),
            dbc.Button("Next", id=NEXT_PAGE_ID, n_clicks=0, size="sm", color="secondary", disabled=True),
        ], id=PAGINATION_ID, className=CLASSES['pagination'], style=STYLES['hidden']),
        dcc.Interval(id=REFRESH_INTERVAL_ID, interval=REFRESH_INTERVAL_MS, disabled=True),
    ])


def create_question_card(record: Mapping[str, Any]):
    """Render one question with its options, tags and collapsible solution."""
    header = [html.Strong(record.get('question_id') or '')]
    difficulty = record.get('difficulty')
    if difficulty:
        header.append(dbc.Badge(difficulty, color=DIFFICULTY_COLORS.get(difficulty, 'secondary'), className="ms-2"))

    source = " / ".join(part for part in (record.get('book_source'), record.get('chapter_name')) if part)
    if record.get('question_number_in_book') is not None:
        source = f"{source} #{record['question_number_in_book']}" if source else f"#{record['question_number_in_book']}"

    body = [
        html.Small(source, className=CLASSES['text_muted']) if source else None,
        html.P(record.get('question_text') or '', style=STYLES['question_text'], className=CLASSES['margin_top']),
    ]

    options = record.get('options')
    if isinstance(options, dict) and options:
        correct = record.get('correct_option')
        body.append(html.Ul([
            html.Li(
                f"{label}. {text}",
                className="fw-bold text-success" if label == correct else None
            )
            for label, text in options.items()
        ], style=STYLES['option_list']))

    tags = record.get('admin_tags') or []
    if tags:
        body.append(html.Div([dbc.Badge(tag, color="light", text_color="dark", className="me-1") for tag in tags]))

    if record.get('solution_text'):
        body.append(html.Details([
            html.Summary("Solution"),
            html.P(record['solution_text'], style=STYLES['question_text']),
        ], className=CLASSES['margin_top']))

    return dbc.Card([
        dbc.CardHeader(header),
        dbc.CardBody([item for item in body if item is not None]),
    ], className=CLASSES['margin_bottom'])


def create_empty_state(has_active_filters: bool):
    if has_active_filters:
        return html.Div([
            html.H5("No questions found"),
            html.P("Try adjusting your filters or search terms."),
        ], className=CLASSES['empty_state'])
    return html.Div([
        html.H5("No questions available"),
        html.P("There are no questions in the bank yet."),
    ], className=CLASSES['empty_state'])


def create_loading_placeholder():
    return html.Div([
        dbc.Spinner(size="sm", spinner_class_name="me-2"),
        "Loading questions...",
    ], className=CLASSES['empty_state'])


def create_page_buttons(current_page: int, total_pages: int, max_visible: int = 5) -> List[Any]:
    """Numbered page buttons around the current page, with ellipses at the gaps."""
    window = page_window(current_page, total_pages, max_visible)
    if window.end < window.start:
        return []

    def button(page: int):
        return dbc.Button(
            str(page),
            id={'type': PAGE_BUTTON_TYPE, 'page': page},
            n_clicks=0,
            size="sm",
            color="primary" if page == current_page else "outline-primary"
        )

    children = []
    if window.leading_ellipsis:
        children.append(button(1))
        if window.start > 2:
            children.append(html.Span("...", className="px-1"))
    children.extend(button(page) for page in range(window.start, window.end + 1))
    if window.trailing_ellipsis:
        if window.end < total_pages - 1:
            children.append(html.Span("...", className="px-1"))
        children.append(button(total_pages))
    return children


def preset_options(names: Optional[List[str]]) -> List[Dict[str, str]]:
    return _options(sorted(names or []))
