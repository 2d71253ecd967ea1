"""
Session management utilities for StateManager integration.
Separate module to avoid circular imports with app.py.
"""

import logging
from typing import Optional, Tuple

from state_manager import generate_session_id, get_state_manager

logger = logging.getLogger(__name__)


def ensure_session_context(user_session_id: Optional[str]) -> bool:
    """Point the StateManager at the given session; returns True if the context changed."""
    state_manager = get_state_manager()
    if user_session_id and user_session_id != state_manager.user_context:
        state_manager.set_user_context(user_session_id)
        return True
    return False


def get_or_create_session(existing_session_id: Optional[str] = None) -> Tuple[str, bool]:
    """
    Reuse the browser's stored session id, or mint a new one.

    Returns:
        (session_id, is_new)
    """
    if existing_session_id:
        ensure_session_context(existing_session_id)
        logger.debug(f"Using existing browser session: {existing_session_id}")
        return existing_session_id, False

    session_id = generate_session_id()
    ensure_session_context(session_id)
    logger.info(f"Initialized new user session: {session_id}")
    return session_id, True
