"""
StateManager - namespaced state storage for the Question Bank Console.

Wraps one storage backend (memory, Redis or database) and scopes every
store id by a key prefix and, with isolation on, by browser session. The
question explorer keeps its persisted filter snapshot and its named filter
presets here.
"""

import logging
import threading
import uuid
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

from state_backends import (
    DatabaseStateBackend,
    MemoryStateBackend,
    RedisStateBackend,
    StateBackend,
    StateBackendConfig,
)

logger = logging.getLogger(__name__)

BACKENDS = {
    'memory': lambda config, settings: MemoryStateBackend(settings),
    'redis': lambda config, settings: RedisStateBackend(settings, config.redis_url),
    'database': lambda config, settings: DatabaseStateBackend(settings, config.database_url),
}


@dataclass
class StateManagerConfig:
    """Configuration for StateManager"""
    backend_type: str = 'memory'  # 'memory', 'redis', 'database'
    enable_user_isolation: bool = True
    default_ttl: int = 0  # 0 keeps filter state and presets until deleted
    key_prefix: str = 'qbc'
    redis_url: str = 'redis://localhost:6379/0'
    database_url: str = 'sqlite:///state.db'
    max_value_size: int = 1024 * 1024


class StateManager:
    """
    Store-id level access to a state backend.

    Backend failures never propagate out of the store operations: reads
    return None and writes return False, with the error logged.
    """

    def __init__(self, config: Optional[StateManagerConfig] = None,
                 backend: Optional[StateBackend] = None):
        self.config = config or StateManagerConfig()
        self.backend = backend or self._create_backend()
        self.user_context: Optional[str] = None
        self._key_locks: Dict[str, threading.Lock] = {}
        self._key_locks_guard = threading.Lock()

        logger.info(f"StateManager initialized with {self.backend.backend_type} backend")

    def _create_backend(self) -> StateBackend:
        settings = StateBackendConfig(
            ttl_default=self.config.default_ttl,
            max_value_size=self.config.max_value_size
        )
        factory = BACKENDS.get(self.config.backend_type)
        if factory is None:
            logger.warning(f"Unknown backend type: {self.config.backend_type}, falling back to memory")
            factory = BACKENDS['memory']
        return factory(self.config, settings)

    def set_user_context(self, user_id: Optional[str]):
        """Default session used when a call passes no user_id."""
        self.user_context = user_id
        if user_id:
            logger.debug(f"Set user context: {user_id}")

    def _build_key(self, store_id: str, user_id: Optional[str] = None) -> str:
        key_parts = [self.config.key_prefix]
        if self.config.enable_user_isolation:
            key_parts.append(user_id or self.user_context or 'anonymous')
        key_parts.append(store_id)
        return ':'.join(key_parts)

    def _lock_for(self, key: str) -> threading.Lock:
        with self._key_locks_guard:
            return self._key_locks.setdefault(key, threading.Lock())

    def _guarded(self, action: str, store_id: str, operation: Callable[[], Any], failed: Any) -> Any:
        try:
            return operation()
        except Exception as e:
            logger.error(f"Error {action} store data for {store_id}: {e}")
            return failed

    # --- store operations ----------------------------------------------

    def get_store_data(self, store_id: str, user_id: Optional[str] = None) -> Any:
        """
        Get data for a store ID.

        Args:
            store_id: The store identifier (e.g., 'filter-presets')
            user_id: Optional session id; defaults to the current user context

        Returns:
            The stored data, or None if missing or unreadable
        """
        key = self._build_key(store_id, user_id)
        result = self._guarded('getting', store_id, lambda: self.backend.get(key), None)
        logger.debug(f"Retrieved data for store {store_id}")
        return result

    def set_store_data(self, store_id: str, data: Any, ttl: Optional[int] = None,
                       user_id: Optional[str] = None) -> bool:
        """Store JSON-serializable data; returns True when the backend accepted it."""
        key = self._build_key(store_id, user_id)
        success = self._guarded('setting', store_id, lambda: self.backend.set(key, data, ttl), False)
        if success:
            logger.debug(f"Stored data for store {store_id}")
        else:
            logger.error(f"Failed to store data for {store_id}")
        return success

    def update_store_data(self, store_id: str, update: Callable[[Any], Any],
                          user_id: Optional[str] = None) -> bool:
        """
        Read-modify-write one store under a per-key lock.

        update receives the current value (None when missing) and returns the
        value to write. Concurrent updates within this process are serialized.
        """
        key = self._build_key(store_id, user_id)
        with self._lock_for(key):
            current = self._guarded('getting', store_id, lambda: self.backend.get(key), None)
            return self.set_store_data(store_id, update(current), user_id=user_id)

    def delete_store_data(self, store_id: str, user_id: Optional[str] = None) -> bool:
        key = self._build_key(store_id, user_id)
        deleted = self._guarded('deleting', store_id, lambda: self.backend.delete(key), False)
        if deleted:
            logger.debug(f"Deleted data for store {store_id}")
        return deleted

    def store_exists(self, store_id: str, user_id: Optional[str] = None) -> bool:
        key = self._build_key(store_id, user_id)
        return self._guarded('checking', store_id, lambda: self.backend.exists(key), False)

    def get_backend_stats(self) -> Dict[str, Any]:
        """Backend statistics plus the isolation setting."""
        base = {
            'backend_type': self.backend.backend_type,
            'user_isolation_enabled': self.config.enable_user_isolation,
        }
        if not hasattr(self.backend, 'get_stats'):
            base['stats_available'] = False
            return base

        try:
            stats = self.backend.get_stats()
        except Exception as e:
            logger.error(f"Error getting backend stats: {e}")
            return {'error': str(e)}
        stats.update(base)
        return stats


# Global StateManager instance
_state_manager_instance: Optional[StateManager] = None


def get_state_manager(config: Optional[StateManagerConfig] = None) -> StateManager:
    """
    Get the global StateManager, creating it from config on first use.

    A config passed after creation is ignored with a warning.
    """
    global _state_manager_instance

    if _state_manager_instance is None:
        _state_manager_instance = StateManager(config)
        logger.info("Created global StateManager instance")
    elif config is not None:
        logger.warning("StateManager already initialized, ignoring new config")

    return _state_manager_instance


def refresh_state_manager(config: Optional[StateManagerConfig] = None) -> StateManager:
    """Replace the global StateManager (tests, config reloads)."""
    global _state_manager_instance
    _state_manager_instance = None
    return get_state_manager(config)


def generate_session_id() -> str:
    """Random browser session id."""
    return str(uuid.uuid4())
