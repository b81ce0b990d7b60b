"""Where the local SQLAlchemy store keeps its SQLite file.

``DATABASE_URI`` wins when set. Otherwise the store lives in
``$STOWAGE_DATA_DIR/stowage.db``, falling back to the per-user data directory
(``$XDG_DATA_HOME/stowage`` or ``%LOCALAPPDATA%\\stowage``).
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Final

from .env import optional_env_var

APP_DIR_NAME: Final[str] = "stowage"
DEFAULT_DB_FILENAME: Final[str] = "stowage.db"


@dataclass(frozen=True, slots=True)
class StorageConfig:
    """Directory holding the local entity store."""

    data_dir: Path
    database_filename: str = DEFAULT_DB_FILENAME

    def resolve_data_dir(self) -> Path:
        return self.data_dir.expanduser().resolve()

    def database_path(self, *, create_dir: bool = True) -> Path:
        """Return the SQLite file path, creating the directory unless told not to."""
        data_dir = self.resolve_data_dir()
        if create_dir:
            data_dir.mkdir(parents=True, exist_ok=True)
        return data_dir / self.database_filename

    def database_uri(self) -> str:
        return f"sqlite+pysqlite:///{self.database_path()}"


@dataclass(frozen=True, slots=True)
class DatabaseConfig:
    uri: str


def _user_data_dir() -> Path:
    if os.name == "nt":
        root = optional_env_var("LOCALAPPDATA")
        base = Path(root) if root else Path.home() / "AppData" / "Local"
    else:
        root = optional_env_var("XDG_DATA_HOME")
        base = Path(root) if root else Path.home() / ".local" / "share"
    return base / APP_DIR_NAME


def get_storage_config() -> StorageConfig:
    data_dir = optional_env_var("STOWAGE_DATA_DIR")
    return StorageConfig(data_dir=Path(data_dir) if data_dir else _user_data_dir())


def get_database_config(*, storage: StorageConfig | None = None) -> DatabaseConfig:
    uri = optional_env_var("DATABASE_URI")
    if uri is None:
        uri = (storage or get_storage_config()).database_uri()
    return DatabaseConfig(uri=uri)
