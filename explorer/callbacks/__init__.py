"""
Callback functions for the question explorer.

This package contains the Dash callbacks organized by functionality:
- filters: filter state, URL synchronization and presets
- results: query execution and result rendering
"""

import logging
import time
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)

# Track registered callbacks to prevent duplicates
_registered_callbacks = set()
_registration_stats: Dict[int, Dict[str, Any]] = {}

# Expected callback modules and their minimum callback counts
CALLBACK_MODULES = {
    'filters': {'min_callbacks': 1, 'description': 'Filter state and URL synchronization'},
    'results': {'min_callbacks': 1, 'description': 'Query execution and result rendering'},
}


def _callback_count(app) -> int:
    # Dash stores callbacks in different places depending on version
    if hasattr(app, 'callback_map'):
        return len(app.callback_map)
    if hasattr(app, '_callback_map'):
        return len(app._callback_map)
    return 0


def register_all_callbacks(app) -> Dict[str, Any]:
    """
    Register all explorer callbacks with the Dash app.

    Args:
        app: The Dash application instance

    Returns:
        Dict containing registration statistics and status
    """
    if not app:
        raise ValueError("Valid Dash app instance required for callback registration")

    # Check if callbacks are already registered for this app
    app_id = id(app)
    if app_id in _registered_callbacks:
        logger.debug("Explorer callbacks already registered for this app instance")
        return _registration_stats.get(app_id, {})

    from . import filters, results
    modules = {
        'filters': filters,
        'results': results,
    }

    start_time = time.time()
    registration_results = {
        'app_id': app_id,
        'modules': {},
        'total_callbacks': 0,
        'success': False,
        'errors': [],
    }

    for module_name, module in modules.items():
        module_start = time.time()
        module_info = CALLBACK_MODULES.get(module_name, {})

        try:
            callbacks_before = _callback_count(app)
            module.register_callbacks(app)
            callbacks_registered = _callback_count(app) - callbacks_before

            min_expected = module_info.get('min_callbacks', 1)
            if callbacks_registered < min_expected:
                logger.warning(
                    f"Module {module_name} registered {callbacks_registered} callbacks, "
                    f"expected at least {min_expected}"
                )

            registration_results['modules'][module_name] = {
                'success': True,
                'callbacks_registered': callbacks_registered,
                'duration_ms': round((time.time() - module_start) * 1000, 2),
                'description': module_info.get('description', 'Unknown'),
            }
            registration_results['total_callbacks'] += callbacks_registered
            logger.debug(f"{module_name}: {callbacks_registered} callbacks registered")

        except Exception as e:
            error_msg = f"Failed to register {module_name} callbacks: {e}"
            registration_results['modules'][module_name] = {
                'success': False,
                'error': str(e),
                'duration_ms': round((time.time() - module_start) * 1000, 2),
            }
            registration_results['errors'].append(error_msg)
            logger.error(error_msg)

    registration_results['duration_ms'] = round((time.time() - start_time) * 1000, 2)

    if registration_results['errors']:
        # The page cannot work with any module missing
        raise RuntimeError(f"Explorer callback registration failed: {registration_results['errors']}")

    registration_results['success'] = True
    _registered_callbacks.add(app_id)
    _registration_stats[app_id] = registration_results
    logger.info(
        f"Explorer callbacks registered: {registration_results['total_callbacks']} callbacks "
        f"in {registration_results['duration_ms']}ms"
    )
    return registration_results


def get_registration_stats(app_id: Optional[int] = None) -> Dict:
    """Registration statistics for one app id, or for all apps."""
    if app_id is not None:
        return _registration_stats.get(app_id, {})
    return _registration_stats.copy()


def is_registered(app) -> bool:
    return id(app) in _registered_callbacks


def unregister_callbacks(app) -> bool:
    """
    Mark callbacks as unregistered for a specific app.

    This doesn't remove callbacks from Dash, it only allows re-registration.
    """
    app_id = id(app)
    if app_id in _registered_callbacks:
        _registered_callbacks.remove(app_id)
        _registration_stats.pop(app_id, None)
        return True
    return False


__all__ = [
    'register_all_callbacks',
    'get_registration_stats',
    'is_registered',
    'unregister_callbacks',
]
