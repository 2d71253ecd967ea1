import logging

import dash

from config_manager import get_config
from explorer.callbacks import register_all_callbacks
from explorer.ui.layout import create_layout

logger = logging.getLogger(__name__)

dash.register_page(__name__, path='/', title='Question Bank')

# Callbacks are registered once per app instance
register_all_callbacks(dash.get_app())


def layout(**query_params):
    """Dash passes the URL query as keyword arguments; the filter callback reads it from dcc.Location."""
    config = get_config()
    return create_layout(config.filters.page_size_options, config.filters.default_page_size)
