"""
Question explorer page: Dash layout, callbacks and per-session wiring.
"""

from .session import DashNavigation, ExplorerSession, SessionRegistry, get_session_registry, set_session_registry

__all__ = [
    'DashNavigation',
    'ExplorerSession',
    'SessionRegistry',
    'get_session_registry',
    'set_session_registry',
]
