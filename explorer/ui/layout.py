"""
Main layout definition for the question explorer page.
"""

import dash_bootstrap_components as dbc
from dash import dcc, html

from filters.models import DEFAULT_PAGE_SIZE, PAGE_SIZE_OPTIONS

from .components import (
    FILTER_STATE_STORE_ID,
    URL_ID,
    create_filters_card,
    create_presets_card,
    create_results_section,
)


def create_layout(page_sizes=PAGE_SIZE_OPTIONS, default_page_size: int = DEFAULT_PAGE_SIZE):
    """Build the page; page-size choices come from the filters config."""
    return dbc.Container([
        # Address bar; its search string mirrors the filter state
        dcc.Location(id=URL_ID, refresh=False),
        dcc.Store(id=FILTER_STATE_STORE_ID),

        dbc.Row([
            dbc.Col([
                html.H3("Question Bank"),
            ], width=12)
        ]),

        dbc.Row([
            dbc.Col([
                create_filters_card(page_sizes, default_page_size)
            ], md=9),
            dbc.Col([
                create_presets_card()
            ], md=3)
        ], className="mb-3"),

        dbc.Row([
            dbc.Col([
                create_results_section()
            ], width=12)
        ]),
    ], fluid=True)
