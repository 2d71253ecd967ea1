"""
Centralized configuration manager to avoid multiple Config instances.
"""
from typing import Optional

from core.config import Config

# Global config instance - loaded once
_config_instance: Optional[Config] = None
_config_path: str = "config.toml"


def get_config() -> Config:
    """Get the global config instance, creating it only once."""
    global _config_instance
    if _config_instance is None:
        _config_instance = Config(config_file_path=_config_path)
    return _config_instance


def refresh_config(config_path: Optional[str] = None) -> Config:
    """Force a refresh of the global config instance, optionally from another file."""
    global _config_instance, _config_path
    if config_path:
        _config_path = config_path
    _config_instance = None
    return get_config()


def get_state_manager_config():
    """Get StateManager configuration from the main config."""
    from state_manager import StateManagerConfig

    config = get_config()

    return StateManagerConfig(
        backend_type=config.state.backend,
        enable_user_isolation=config.state.enable_user_isolation,
        default_ttl=config.state.ttl_default,
        redis_url=config.state.redis_url,
        database_url=config.state.database_url
    )
