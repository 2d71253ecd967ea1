"""
Configuration management for the Question Bank Console.

This module provides a split configuration system that separates concerns
into focused configuration classes, persisted as a single TOML file.
"""

import logging
from dataclasses import dataclass, field
from typing import List, Optional

import toml

from .exceptions import ConfigurationError


@dataclass
class DatabaseConfig:
    """Configuration for the question bank database."""

    database_path: str = 'data/questions.duckdb'
    questions_table: str = 'questions'
    max_page_size: int = 50

    def validate(self) -> List[str]:
        """Validate the database configuration and return any errors."""
        errors = []

        if not self.database_path:
            errors.append("database_path cannot be empty")

        if not self.questions_table or not self.questions_table.replace('_', '').isalnum():
            errors.append("questions_table must be a plain SQL identifier")

        if self.max_page_size <= 0:
            errors.append("max_page_size must be positive")

        return errors


@dataclass
class FilterConfig:
    """Configuration for the question explorer filters and result cache."""

    default_page_size: int = 25
    page_size_options: List[int] = field(default_factory=lambda: [10, 25, 50])

    # Cache settings
    stale_time_seconds: int = 120
    gc_time_seconds: int = 300

    # Remote search retries
    retry_count: int = 2
    retry_delay_seconds: float = 1.0
    refetch_workers: int = 2

    # Explorer sessions unused this long are torn down
    session_idle_seconds: int = 1800

    def validate(self) -> List[str]:
        """Validate the filter configuration and return any errors."""
        errors = []

        if not self.page_size_options or any(size <= 0 for size in self.page_size_options):
            errors.append("page_size_options must be a non-empty list of positive integers")

        if self.default_page_size not in self.page_size_options:
            errors.append("default_page_size must be one of page_size_options")

        if self.stale_time_seconds < 0:
            errors.append("stale_time_seconds cannot be negative")

        if self.gc_time_seconds < self.stale_time_seconds:
            errors.append("gc_time_seconds must not be shorter than stale_time_seconds")

        if self.retry_count < 0:
            errors.append("retry_count cannot be negative")

        if self.refetch_workers <= 0:
            errors.append("refetch_workers must be positive")

        if self.session_idle_seconds <= 0:
            errors.append("session_idle_seconds must be positive")

        return errors


@dataclass
class StateConfig:
    """Configuration for state management."""

    backend: str = 'database'  # 'memory', 'redis', 'database'
    ttl_default: int = 0  # 0 disables expiry; presets are durable
    enable_user_isolation: bool = True

    # Backend-specific settings
    redis_url: str = 'redis://localhost:6379/0'
    database_url: str = 'sqlite:///state.db'

    def validate(self) -> List[str]:
        """Validate the state configuration and return any errors."""
        errors = []

        valid_backends = ['memory', 'redis', 'database']
        if self.backend not in valid_backends:
            errors.append(f"backend must be one of {valid_backends}")

        if self.ttl_default < 0:
            errors.append("ttl_default cannot be negative")

        return errors


@dataclass
class LoggingConfig:
    """Configuration for application logging."""

    level: str = 'INFO'
    log_file: Optional[str] = None
    log_dir: str = 'logs'

    def validate(self) -> List[str]:
        errors = []
        if self.level.upper() not in ('DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL'):
            errors.append(f"Unknown log level: {self.level}")
        return errors


@dataclass
class Config:
    """Main configuration class that combines all configuration sections."""

    config_file_path: str = "config.toml"

    database: DatabaseConfig = field(default_factory=DatabaseConfig)
    filters: FilterConfig = field(default_factory=FilterConfig)
    state: StateConfig = field(default_factory=StateConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    def __post_init__(self):
        """Load configuration when an instance is created."""
        self.load_config()

    def to_dict(self) -> dict:
        """Serializable view of every section, as written to the TOML file."""
        logging_section = {
            'level': self.logging.level,
            'log_dir': self.logging.log_dir,
        }
        # TOML has no null
        if self.logging.log_file:
            logging_section['log_file'] = self.logging.log_file

        return {
            'database': {
                'database_path': self.database.database_path,
                'questions_table': self.database.questions_table,
                'max_page_size': self.database.max_page_size,
            },
            'filters': {
                'default_page_size': self.filters.default_page_size,
                'page_size_options': list(self.filters.page_size_options),
                'stale_time_seconds': self.filters.stale_time_seconds,
                'gc_time_seconds': self.filters.gc_time_seconds,
                'retry_count': self.filters.retry_count,
                'retry_delay_seconds': self.filters.retry_delay_seconds,
                'refetch_workers': self.filters.refetch_workers,
                'session_idle_seconds': self.filters.session_idle_seconds,
            },
            'state': {
                'backend': self.state.backend,
                'ttl_default': self.state.ttl_default,
                'enable_user_isolation': self.state.enable_user_isolation,
                'redis_url': self.state.redis_url,
                'database_url': self.state.database_url,
            },
            'logging': logging_section,
        }

    def save_config(self) -> None:
        """Save current configuration to TOML file."""
        try:
            with open(self.config_file_path, 'w') as f:
                toml.dump(self.to_dict(), f)
            logging.info(f"Configuration saved to {self.config_file_path}")
        except Exception as e:
            error_msg = f"Error saving configuration: {e}"
            logging.error(error_msg)
            raise ConfigurationError(error_msg, config_file=self.config_file_path)

    def load_config(self) -> None:
        """Load configuration from TOML file, creating it with defaults if missing."""
        try:
            with open(self.config_file_path) as f:
                config_data = toml.load(f)

            for section_name in ('database', 'filters', 'state', 'logging'):
                if section_name in config_data:
                    self._apply_section(section_name, config_data[section_name])

            logging.info(f"Configuration loaded from {self.config_file_path}")

        except FileNotFoundError:
            logging.info(f"{self.config_file_path} not found. Creating with default values.")
            self.save_config()
        except toml.TomlDecodeError as e:
            error_msg = f"Error decoding {self.config_file_path}: {e}"
            logging.error(error_msg)
            raise ConfigurationError(error_msg, config_file=self.config_file_path)
        except ConfigurationError:
            raise
        except Exception as e:
            error_msg = f"Error loading configuration: {e}"
            logging.error(error_msg)
            raise ConfigurationError(error_msg, config_file=self.config_file_path)

    def _apply_section(self, section_name: str, values: dict) -> None:
        section = getattr(self, section_name)
        for key, value in values.items():
            if not hasattr(section, key):
                logging.warning(f"Ignoring unknown configuration key {section_name}.{key}")
                continue
            setattr(section, key, value)

    def validate(self) -> List[str]:
        """Validate all configuration sections and return any errors."""
        errors = []
        errors.extend(self.database.validate())
        errors.extend(self.filters.validate())
        errors.extend(self.state.validate())
        errors.extend(self.logging.validate())

        # The repository truncates pages above its cap
        oversized = [size for size in self.filters.page_size_options
                     if size > self.database.max_page_size]
        if oversized:
            errors.append(
                f"page_size_options {oversized} exceed database max_page_size {self.database.max_page_size}"
            )
        return errors
