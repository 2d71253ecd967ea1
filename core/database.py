"""
DuckDB connection management for the Question Bank Console.

One DuckDB connection per database file is opened lazily and shared by the
Dash worker threads; every operation runs on its own cursor.
"""

import logging
import threading
from contextlib import contextmanager
from typing import Any, Generator, List, Optional

import duckdb

from .exceptions import DatabaseError

logger = logging.getLogger(__name__)


class DatabaseManager:
    """Thread-safe holder of the question bank's DuckDB connection."""

    def __init__(self, connection_string: str = ':memory:', read_only: bool = False):
        self.connection_string = connection_string
        self.read_only = read_only
        self._connection: Optional[duckdb.DuckDBPyConnection] = None
        self._connection_lock = threading.Lock()

        logger.info(f"DatabaseManager initialized with connection: {connection_string}")

    def get_connection(self) -> duckdb.DuckDBPyConnection:
        """
        Get the shared connection, opening it on first use.

        Raises:
            DatabaseError: If the database cannot be opened
        """
        if self._connection is None:
            with self._connection_lock:
                if self._connection is None:
                    try:
                        self._connection = duckdb.connect(
                            database=self.connection_string,
                            read_only=self.read_only
                        )
                    except duckdb.Error as e:
                        raise DatabaseError(f"Failed to open question database {self.connection_string}: {e}")
                    logger.info("Opened DuckDB connection")

        return self._connection

    @contextmanager
    def get_connection_context(self) -> Generator[duckdb.DuckDBPyConnection, None, None]:
        """
        Yield a cursor on the shared connection; DuckDB errors become DatabaseError.

        Example:
            with db_manager.get_connection_context() as conn:
                rows = conn.execute("SELECT * FROM questions").fetchall()
        """
        cursor = self.get_connection().cursor()
        try:
            yield cursor
        except DatabaseError:
            raise
        except duckdb.Error as e:
            logger.error(f"Database operation failed: {e}")
            raise DatabaseError(f"Database operation failed: {e}")
        finally:
            cursor.close()

    def _execute(self, query: str, params: Optional[list], fetch_all: bool) -> Any:
        try:
            with self.get_connection_context() as conn:
                result = conn.execute(query, params) if params else conn.execute(query)
                return result.fetchall() if fetch_all else result.fetchone()
        except DatabaseError as e:
            raise DatabaseError(e.message, query=query, params=params)

    def execute_query(self, query: str, params: Optional[list] = None) -> List[tuple]:
        """
        Run a query and return all rows.

        Raises:
            DatabaseError: If the query fails
        """
        return self._execute(query, params, fetch_all=True)

    def execute_query_single(self, query: str, params: Optional[list] = None) -> Optional[tuple]:
        """Run a query and return its first row, or None."""
        return self._execute(query, params, fetch_all=False)

    def reset_connection(self):
        """Close the shared connection; the next operation reopens it."""
        with self._connection_lock:
            if self._connection is None:
                return
            try:
                self._connection.close()
            except duckdb.Error as e:
                logger.warning(f"Error closing database connection: {e}")
            finally:
                self._connection = None
        logger.info("Database connection reset")


# Global database manager instance
_db_manager: Optional[DatabaseManager] = None
_db_manager_lock = threading.Lock()


def get_database_manager(connection_string: str = ':memory:') -> DatabaseManager:
    """
    Get the global database manager instance.

    Args:
        connection_string: DuckDB database path (used on first call only)
    """
    global _db_manager
    with _db_manager_lock:
        if _db_manager is None:
            _db_manager = DatabaseManager(connection_string)
        elif connection_string != _db_manager.connection_string:
            logger.warning(
                f"Database manager already open on {_db_manager.connection_string}, "
                f"ignoring {connection_string}"
            )
        return _db_manager


def reset_database_manager():
    """Close and drop the global database manager."""
    global _db_manager
    with _db_manager_lock:
        if _db_manager:
            _db_manager.reset_connection()
        _db_manager = None
