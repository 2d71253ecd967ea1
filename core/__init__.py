"""
Core infrastructure module for the Question Bank Console.

This module provides the foundational components including configuration management,
database connections, logging setup, and custom exceptions.
"""

from .config import DatabaseConfig, FilterConfig, StateConfig, LoggingConfig, Config
from .database import DatabaseManager, get_database_manager, reset_database_manager
from .exceptions import (
    QuestionBankError,
    ConfigurationError,
    DatabaseError,
    ValidationError,
    QueryExecutionError,
    StateStorageError,
)
from .logging_config import setup_logging

__all__ = [
    # Configuration
    'DatabaseConfig',
    'FilterConfig',
    'StateConfig',
    'LoggingConfig',
    'Config',

    # Database
    'DatabaseManager',
    'get_database_manager',
    'reset_database_manager',

    # Exceptions
    'QuestionBankError',
    'ConfigurationError',
    'DatabaseError',
    'ValidationError',
    'QueryExecutionError',
    'StateStorageError',

    # Logging
    'setup_logging',
]

__version__ = "1.0.0"
