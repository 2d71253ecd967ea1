"""
State backend implementations for the StateManager system.
Provides the storage backends behind persisted filters and filter presets.
"""

import datetime
import json
import logging
import threading
import time
from abc import ABC, abstractmethod
from typing import Any, Optional, Dict
from dataclasses import dataclass

from core.exceptions import StateStorageError

# Configure logging
logger = logging.getLogger(__name__)


def _utcnow() -> datetime.datetime:
    return datetime.datetime.now(datetime.timezone.utc).replace(tzinfo=None)


@dataclass
class StateBackendConfig:
    """Configuration for state backends"""
    ttl_default: int = 0  # 0 means entries never expire
    max_key_size: int = 1000
    max_value_size: int = 1024 * 1024  # 1MB
    cleanup_interval: int = 60


class StateBackend(ABC):
    """Abstract base class for state storage backends"""

    backend_type = 'abstract'

    def __init__(self, config: Optional[StateBackendConfig] = None):
        self.config = config or StateBackendConfig()

    @abstractmethod
    def get(self, key: str) -> Optional[Any]:
        """Retrieve value by key"""

    @abstractmethod
    def set(self, key: str, value: Any, ttl: Optional[int] = None) -> bool:
        """Store value with optional TTL"""

    @abstractmethod
    def delete(self, key: str) -> bool:
        """Delete key"""

    @abstractmethod
    def exists(self, key: str) -> bool:
        """Check if key exists"""

    def _validate_key(self, key: str) -> bool:
        """Validate key format and size"""
        if not key or len(key) > self.config.max_key_size:
            return False
        return True

    def _effective_ttl(self, ttl: Optional[int]) -> Optional[int]:
        return ttl or self.config.ttl_default or None

    def _serialize_value(self, value: Any) -> str:
        """Serialize value to JSON string"""
        try:
            return json.dumps(value, default=str)
        except (TypeError, ValueError) as e:
            logger.error(f"Failed to serialize value: {e}")
            raise

    def _deserialize_value(self, value_str: str) -> Any:
        """Deserialize JSON string to value"""
        try:
            return json.loads(value_str)
        except (TypeError, ValueError) as e:
            logger.error(f"Failed to deserialize value: {e}")
            return None


class MemoryStateBackend(StateBackend):
    """
    In-memory state backend for development and testing.
    Thread-safe with automatic TTL cleanup.
    """

    backend_type = 'memory'

    def __init__(self, config: Optional[StateBackendConfig] = None):
        super().__init__(config)
        self._store: Dict[str, Dict[str, Any]] = {}
        self._lock = threading.RLock()
        self._cleanup_thread = None
        self._start_cleanup_thread()

    def _is_expired(self, entry: Dict[str, Any], now: float) -> bool:
        return bool(entry.get('expires_at')) and now > entry['expires_at']

    def get(self, key: str) -> Optional[Any]:
        if not self._validate_key(key):
            logger.warning(f"Invalid key: {key}")
            return None

        with self._lock:
            entry = self._store.get(key)
            if entry is None:
                return None

            if self._is_expired(entry, time.time()):
                del self._store[key]
                return None

            # Stored serialized so callers never share mutable state
            return self._deserialize_value(entry['value'])

    def set(self, key: str, value: Any, ttl: Optional[int] = None) -> bool:
        if not self._validate_key(key):
            logger.warning(f"Invalid key: {key}")
            return False

        try:
            serialized = self._serialize_value(value)
        except (TypeError, ValueError) as e:
            logger.error(f"Failed to serialize value for key {key}: {e}")
            return False

        if len(serialized) > self.config.max_value_size:
            logger.warning(f"Value too large for key {key}")
            return False

        effective_ttl = self._effective_ttl(ttl)
        with self._lock:
            self._store[key] = {
                'value': serialized,
                'expires_at': time.time() + effective_ttl if effective_ttl else None,
                'created_at': time.time()
            }

        return True

    def delete(self, key: str) -> bool:
        with self._lock:
            if key in self._store:
                del self._store[key]
                return True
            return False

    def exists(self, key: str) -> bool:
        with self._lock:
            entry = self._store.get(key)
            if entry is None:
                return False

            if self._is_expired(entry, time.time()):
                del self._store[key]
                return False

            return True

    def get_stats(self) -> Dict[str, Any]:
        """Get backend statistics"""
        with self._lock:
            now = time.time()
            expired_keys = sum(1 for entry in self._store.values() if self._is_expired(entry, now))
            total_size = sum(len(entry['value']) for entry in self._store.values())

            return {
                'total_keys': len(self._store),
                'expired_keys': expired_keys,
                'total_size_bytes': total_size,
                'backend_type': self.backend_type
            }

    def _purge_expired(self) -> int:
        now = time.time()
        with self._lock:
            expired_keys = [key for key, entry in self._store.items() if self._is_expired(entry, now)]
            for key in expired_keys:
                del self._store[key]
        return len(expired_keys)

    def _start_cleanup_thread(self):
        """Start background thread for TTL cleanup"""
        def cleanup():
            while True:
                time.sleep(self.config.cleanup_interval)
                try:
                    purged = self._purge_expired()
                    if purged:
                        logger.debug(f"Cleaned up {purged} expired keys")
                except Exception as e:
                    logger.error(f"Error in cleanup thread: {e}")

        self._cleanup_thread = threading.Thread(target=cleanup, daemon=True)
        self._cleanup_thread.start()


class RedisStateBackend(StateBackend):
    """
    Redis-based state backend for multi-process deployments.
    """

    backend_type = 'redis'

    def __init__(self, config: Optional[StateBackendConfig] = None,
                 redis_url: str = "redis://localhost:6379/0", client=None):
        super().__init__(config)
        self.redis_url = redis_url
        self._client = client
        if self._client is None:
            self._connect()

    def _connect(self):
        """Initialize Redis connection"""
        import redis

        try:
            self._client = redis.from_url(self.redis_url, decode_responses=True)
            self._client.ping()
            logger.info(f"Connected to Redis at {self.redis_url}")
        except redis.RedisError as e:
            logger.error(f"Failed to connect to Redis: {e}")
            raise StateStorageError(f"Failed to connect to Redis: {e}", backend=self.backend_type)

    def get(self, key: str) -> Optional[Any]:
        if not self._validate_key(key):
            return None

        try:
            value_str = self._client.get(key)
            if value_str is None:
                return None
            return self._deserialize_value(value_str)
        except Exception as e:
            logger.error(f"Redis get error for key {key}: {e}")
            return None

    def set(self, key: str, value: Any, ttl: Optional[int] = None) -> bool:
        if not self._validate_key(key):
            return False

        try:
            value_str = self._serialize_value(value)
            if len(value_str) > self.config.max_value_size:
                logger.warning(f"Value too large for key {key}")
                return False

            ttl_seconds = self._effective_ttl(ttl)
            if ttl_seconds:
                return bool(self._client.setex(key, ttl_seconds, value_str))
            return bool(self._client.set(key, value_str))
        except Exception as e:
            logger.error(f"Redis set error for key {key}: {e}")
            return False

    def delete(self, key: str) -> bool:
        try:
            return bool(self._client.delete(key))
        except Exception as e:
            logger.error(f"Redis delete error for key {key}: {e}")
            return False

    def exists(self, key: str) -> bool:
        try:
            return bool(self._client.exists(key))
        except Exception as e:
            logger.error(f"Redis exists error for key {key}: {e}")
            return False


class DatabaseStateBackend(StateBackend):
    """
    Database-based state backend using SQLite/PostgreSQL.
    Durable storage for filter presets across restarts.
    """

    backend_type = 'database'

    def __init__(self, config: Optional[StateBackendConfig] = None,
                 db_url: str = "sqlite:///state.db"):
        super().__init__(config)
        self.db_url = db_url
        self._engine = None
        self._connect()

    def _connect(self):
        """Initialize database connection"""
        from sqlalchemy import create_engine, MetaData, Table, Column, String, Text, DateTime

        try:
            self._engine = create_engine(self.db_url)
            self._metadata = MetaData()

            self._state_table = Table(
                'state_store', self._metadata,
                Column('key', String(1000), primary_key=True),
                Column('value', Text),
                Column('created_at', DateTime, default=_utcnow),
                Column('expires_at', DateTime, nullable=True)
            )

            self._metadata.create_all(self._engine)

            logger.info(f"Connected to database at {self.db_url}")
        except Exception as e:
            logger.error(f"Failed to connect to database: {e}")
            raise StateStorageError(f"Failed to connect to database: {e}", backend=self.backend_type)

    def _live_clause(self):
        table = self._state_table
        return (table.c.expires_at.is_(None)) | (table.c.expires_at > _utcnow())

    def get(self, key: str) -> Optional[Any]:
        if not self._validate_key(key):
            return None

        from sqlalchemy import select

        try:
            with self._engine.connect() as conn:
                stmt = select(self._state_table.c.value).where(
                    self._state_table.c.key == key
                ).where(self._live_clause())

                result = conn.execute(stmt).fetchone()
                if result:
                    return self._deserialize_value(result[0])
                return None
        except Exception as e:
            logger.error(f"Database get error for key {key}: {e}")
            return None

    def set(self, key: str, value: Any, ttl: Optional[int] = None) -> bool:
        if not self._validate_key(key):
            return False

        from sqlalchemy.dialects.sqlite import insert as sqlite_insert
        from sqlalchemy.dialects.postgresql import insert as pg_insert

        try:
            value_str = self._serialize_value(value)
            if len(value_str) > self.config.max_value_size:
                logger.warning(f"Value too large for key {key}")
                return False

            effective_ttl = self._effective_ttl(ttl)
            expires_at = _utcnow() + datetime.timedelta(seconds=effective_ttl) if effective_ttl else None

            insert = sqlite_insert if self._engine.dialect.name == 'sqlite' else pg_insert
            stmt = insert(self._state_table).values(key=key, value=value_str, expires_at=expires_at)
            stmt = stmt.on_conflict_do_update(
                index_elements=['key'],
                set_=dict(value=stmt.excluded.value, expires_at=stmt.excluded.expires_at)
            )

            with self._engine.begin() as conn:
                conn.execute(stmt)
            return True
        except Exception as e:
            logger.error(f"Database set error for key {key}: {e}")
            return False

    def delete(self, key: str) -> bool:
        from sqlalchemy import delete

        try:
            with self._engine.begin() as conn:
                result = conn.execute(delete(self._state_table).where(self._state_table.c.key == key))
                return result.rowcount > 0
        except Exception as e:
            logger.error(f"Database delete error for key {key}: {e}")
            return False

    def exists(self, key: str) -> bool:
        from sqlalchemy import select

        try:
            with self._engine.connect() as conn:
                stmt = select(self._state_table.c.key).where(
                    self._state_table.c.key == key
                ).where(self._live_clause())
                return conn.execute(stmt).fetchone() is not None
        except Exception as e:
            logger.error(f"Database exists error for key {key}: {e}")
            return False
