"""
Logging setup for the Question Bank Console.

Configures the root logger from the [logging] config section. Module loggers
(logging.getLogger(__name__)) propagate to it.
"""

import logging
import os
from pathlib import Path
from typing import List, Optional

from .config import LoggingConfig

DEFAULT_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'

# Per-request chatter from the web server and the DuckDB/SQLAlchemy layers
QUIET_LOGGERS = ('werkzeug', 'sqlalchemy.engine', 'urllib3')

# Handlers installed by the last setup_logging call
_installed_handlers: List[logging.Handler] = []


def _level(name: str) -> int:
    return getattr(logging, (name or 'INFO').upper(), logging.INFO)


def setup_logging(config: Optional[LoggingConfig] = None, format_string: str = DEFAULT_FORMAT) -> None:
    """
    Install console (and optional file) handlers on the root logger.

    Calling it again replaces the handlers it installed earlier and leaves
    handlers added by others (e.g. pytest's caplog) alone.
    """
    config = config or LoggingConfig()
    numeric_level = _level(config.level)
    formatter = logging.Formatter(format_string)

    root_logger = logging.getLogger()
    root_logger.setLevel(numeric_level)

    for handler in _installed_handlers:
        root_logger.removeHandler(handler)
        handler.close()
    _installed_handlers.clear()

    handlers: List[logging.Handler] = [logging.StreamHandler()]
    log_path = None
    if config.log_file:
        log_dir = config.log_dir or 'logs'
        Path(log_dir).mkdir(parents=True, exist_ok=True)
        log_path = os.path.join(log_dir, config.log_file)
        handlers.append(logging.FileHandler(log_path))

    for handler in handlers:
        handler.setLevel(numeric_level)
        handler.setFormatter(formatter)
        root_logger.addHandler(handler)
        _installed_handlers.append(handler)

    library_level = logging.DEBUG if numeric_level <= logging.DEBUG else logging.WARNING
    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(library_level)

    if log_path:
        logging.info(f"Logging to file: {log_path}")
    logging.info(f"Logging configured with level: {logging.getLevelName(numeric_level)}")
