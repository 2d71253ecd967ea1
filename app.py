import argparse
import logging
import threading
import time
import webbrowser

import dash
import dash_bootstrap_components as dbc
from dash import Input, Output, State, dcc, no_update

from config_manager import get_config, get_state_manager_config, refresh_config
from core.database import get_database_manager
from core.exceptions import QuestionBankError
from core.logging_config import setup_logging
from questions.repository import QuestionRepository
from session_manager import get_or_create_session
from state_manager import generate_session_id, get_state_manager

logger = logging.getLogger(__name__)

app = dash.Dash(__name__, use_pages=True, external_stylesheets=[dbc.themes.BOOTSTRAP], suppress_callback_exceptions=True)
server = app.server

app.layout = dbc.Container([
    # Global location component, used once to trigger session setup
    dcc.Location(id='global-location', refresh=False),
    # Browser-scoped id: filter state and presets survive reloads
    dcc.Store(id='user-session-id', storage_type='local'),
    # Tab-scoped id: each tab drives its own explorer session
    dcc.Store(id='tab-session-id', storage_type='session'),
    dbc.Navbar(
        id='main-navbar',
        children=[
            dbc.Container([
                dbc.NavbarBrand("Question Bank Console", href="/", className="ms-2"),
                dbc.Nav([
                    dbc.NavItem(dbc.NavLink("Questions", href="/")),
                ], className="ms-auto", navbar=True),
            ], fluid=True)
        ],
        color="dark",
        dark=True,
        className="mb-2",
    ),
    dash.page_container,
], fluid=True)


# Initialize user session ONCE per browser
@app.callback(
    Output('user-session-id', 'data'),
    [Input('global-location', 'id')],  # Trigger only once on component creation
    [State('user-session-id', 'data')],
    prevent_initial_call=False
)
def initialize_user_session(_, existing_session_id):
    """Initialize the session id used for StateManager isolation."""
    session_id, is_new = get_or_create_session(existing_session_id)
    if not is_new:
        return no_update
    return session_id


# One id per tab; sessionStorage is not shared between tabs
@app.callback(
    Output('tab-session-id', 'data'),
    [Input('global-location', 'id')],
    [State('tab-session-id', 'data')],
    prevent_initial_call=False
)
def initialize_tab_session(_, existing_tab_id):
    if existing_tab_id:
        return no_update
    return generate_session_id()


def initialize_services(seed_csv=None):
    """Configure logging and state storage from the config; optionally seed the question table."""
    config = get_config()
    setup_logging(config.logging)

    errors = config.validate()
    for error in errors:
        logger.warning(f"Configuration problem: {error}")

    try:
        state_manager_config = get_state_manager_config()
        get_state_manager(state_manager_config)
        logger.info(f"StateManager initialized with {state_manager_config.backend_type} backend")
    except QuestionBankError as e:
        logger.error(f"StateManager initialization failed: {e}")
        raise

    if seed_csv:
        repository = QuestionRepository(
            get_database_manager(config.database.database_path),
            table_name=config.database.questions_table,
            max_page_size=config.database.max_page_size,
        )
        count = repository.load_questions_csv(seed_csv)
        logger.info(f"Seeded {count} questions from {seed_csv}")


def open_browser(url, delay=1.5):
    """Open browser after a delay"""
    def _open():
        time.sleep(delay)
        try:
            webbrowser.open(url)
        except Exception as e:
            logger.warning(f"Could not open browser automatically: {e}")

    threading.Thread(target=_open, daemon=True).start()


if __name__ == '__main__':
    parser = argparse.ArgumentParser(description='Question Bank Console - question explorer')
    parser.add_argument('--host', default='127.0.0.1', help='Interface to bind')
    parser.add_argument('--port', type=int, default=8050, help='Port to listen on')
    parser.add_argument('--debug', action='store_true', help='Run Dash in debug mode')
    parser.add_argument('--config', default=None, help='Path to a TOML config file')
    parser.add_argument('--seed-csv', default=None, help='CSV of questions to load before starting')
    parser.add_argument('--no-browser', action='store_true',
                        help='Do not automatically open browser')
    args = parser.parse_args()

    if args.config:
        refresh_config(args.config)
    initialize_services(args.seed_csv)

    if not args.no_browser:
        open_browser(f"http://{args.host}:{args.port}")

    app.run(host=args.host, port=args.port, debug=args.debug, use_reloader=False)
