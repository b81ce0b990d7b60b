"""Application configuration helpers."""

from __future__ import annotations

from .datastore import (
    DEFAULT_API_URL,
    DatastoreConfig,
    HttpConfig,
    get_datastore_config,
    get_http_config,
)
from .env import optional_env_var, require_env_var, require_env_vars
from .errors import ConfigurationError, MissingConfigurationError
from .logging import configure_logging
from .storage import DatabaseConfig, StorageConfig, get_database_config, get_storage_config

__all__ = [
    "DEFAULT_API_URL",
    "ConfigurationError",
    "DatabaseConfig",
    "DatastoreConfig",
    "HttpConfig",
    "MissingConfigurationError",
    "StorageConfig",
    "configure_logging",
    "get_database_config",
    "get_datastore_config",
    "get_http_config",
    "get_storage_config",
    "optional_env_var",
    "require_env_var",
    "require_env_vars",
]
