"""
Persistence adapters for filter state and filter presets.

The filter store never talks to a backend directly: it is handed a
PersistenceAdapter for its durable snapshot and a PresetStore for named
presets. Both are thin layers over the StateManager.
"""

import logging
from abc import ABC, abstractmethod
from typing import Callable, Dict, List, Optional

from core.exceptions import ValidationError
from state_manager import StateManager

from .models import FilterSnapshot, PERSISTED_FIELDS

logger = logging.getLogger(__name__)

FILTER_STORE_ID = 'filter-store'
PRESET_STORE_ID = 'filter-presets'


def _clean_snapshot(data: Optional[dict]) -> Optional[FilterSnapshot]:
    if not isinstance(data, dict):
        return None
    return FilterSnapshot(**{key: data[key] for key in PERSISTED_FIELDS if key in data})


class PersistenceAdapter(ABC):
    """Durable home for the persisted subset of a FilterState."""

    @abstractmethod
    def load(self) -> Optional[FilterSnapshot]:
        """Return the last saved snapshot, or None."""

    @abstractmethod
    def save(self, snapshot: FilterSnapshot) -> None:
        """Replace the saved snapshot."""


class MemoryPersistence(PersistenceAdapter):
    """Process-local adapter; used in tests and when no durable backend is wanted."""

    def __init__(self, initial: Optional[FilterSnapshot] = None):
        self._snapshot = _clean_snapshot(initial)

    def load(self) -> Optional[FilterSnapshot]:
        return _clean_snapshot(self._snapshot)

    def save(self, snapshot: FilterSnapshot) -> None:
        self._snapshot = _clean_snapshot(snapshot)


class StateManagerPersistence(PersistenceAdapter):
    """Adapter storing the snapshot through a StateManager, per user session."""

    def __init__(self, state_manager: StateManager, user_id: Optional[str] = None,
                 store_id: str = FILTER_STORE_ID):
        self.state_manager = state_manager
        self.user_id = user_id
        self.store_id = store_id

    def load(self) -> Optional[FilterSnapshot]:
        data = self.state_manager.get_store_data(self.store_id, self.user_id)
        snapshot = _clean_snapshot(data)
        if data is not None and snapshot is None:
            logger.warning(f"Discarding malformed persisted filter state for {self.user_id or 'anonymous'}")
        return snapshot

    def save(self, snapshot: FilterSnapshot) -> None:
        if not self.state_manager.set_store_data(self.store_id, dict(snapshot), user_id=self.user_id):
            logger.warning("Filter state could not be persisted")


class PresetStore:
    """
    Name-keyed map of filter snapshots.

    All presets for a user live under a single store entry, mirroring how the
    browser kept them in one local-storage key. Writes go through
    StateManager.update_store_data so concurrent saves do not drop presets.
    """

    def __init__(self, state_manager: StateManager, user_id: Optional[str] = None,
                 store_id: str = PRESET_STORE_ID):
        self.state_manager = state_manager
        self.user_id = user_id
        self.store_id = store_id

    def _read_all(self) -> Dict[str, FilterSnapshot]:
        data = self.state_manager.get_store_data(self.store_id, self.user_id)
        if not isinstance(data, dict):
            return {}
        return data

    def _update(self, change: Callable[[Dict[str, FilterSnapshot]], None]) -> None:
        def apply(current):
            presets = dict(current) if isinstance(current, dict) else {}
            change(presets)
            return presets

        if not self.state_manager.update_store_data(self.store_id, apply, user_id=self.user_id):
            logger.warning("Filter presets could not be persisted")

    def save(self, name: str, snapshot: FilterSnapshot) -> None:
        name = (name or '').strip()
        if not name:
            raise ValidationError("Preset name cannot be empty", field='name')

        cleaned = dict(_clean_snapshot(snapshot) or {})
        self._update(lambda presets: presets.__setitem__(name, cleaned))
        logger.info(f"Saved filter preset '{name}'")

    def load(self, name: str) -> Optional[FilterSnapshot]:
        return _clean_snapshot(self._read_all().get(name))

    def delete(self, name: str) -> bool:
        if name not in self._read_all():
            return False
        self._update(lambda presets: presets.pop(name, None))
        logger.info(f"Deleted filter preset '{name}'")
        return True

    def list(self) -> List[str]:
        return list(self._read_all().keys())
