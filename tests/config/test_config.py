from __future__ import annotations

import os
from typing import TYPE_CHECKING

import pytest

from stowage.config import (
    DEFAULT_API_URL,
    ConfigurationError,
    MissingConfigurationError,
    get_database_config,
    get_datastore_config,
    get_storage_config,
    optional_env_var,
    require_env_var,
    require_env_vars,
)

if TYPE_CHECKING:
    from pathlib import Path

_DATASTORE_VARS = (
    "STOWAGE_BACKEND",
    "STOWAGE_PROJECT",
    "STOWAGE_NAMESPACE",
    "STOWAGE_API_URL",
    "STOWAGE_TIMEOUT_SECONDS",
)


@pytest.fixture
def clean_env(monkeypatch: pytest.MonkeyPatch) -> pytest.MonkeyPatch:
    for name in _DATASTORE_VARS:
        monkeypatch.delenv(name, raising=False)
    return monkeypatch


def test_require_env_vars_returns_values(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("EXAMPLE_VAR", "value")

    result = require_env_vars(["EXAMPLE_VAR"])

    assert result["EXAMPLE_VAR"] == "value"


def test_require_env_vars_reports_every_missing_name(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("MISSING_A", raising=False)
    monkeypatch.delenv("MISSING_B", raising=False)

    with pytest.raises(MissingConfigurationError) as exc:
        require_env_vars(["MISSING_B", "MISSING_A"])

    assert "MISSING_A, MISSING_B" in str(exc.value)


def test_blank_values_count_as_missing(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("EXAMPLE_VAR", "   ")

    assert optional_env_var("EXAMPLE_VAR") is None
    with pytest.raises(MissingConfigurationError):
        require_env_var("EXAMPLE_VAR")


def test_datastore_defaults_to_local_backend(clean_env: pytest.MonkeyPatch) -> None:
    config = get_datastore_config()

    assert config.backend == "sqlalchemy"
    assert config.namespace is None
    assert config.http is None


def test_http_backend_reads_endpoint_settings(clean_env: pytest.MonkeyPatch) -> None:
    clean_env.setenv("STOWAGE_BACKEND", "HTTP")
    clean_env.setenv("STOWAGE_PROJECT", "demo")
    clean_env.setenv("STOWAGE_NAMESPACE", "tenant-a")
    clean_env.setenv("STOWAGE_API_URL", "http://localhost:8081/v1/")
    clean_env.setenv("STOWAGE_TIMEOUT_SECONDS", "2.5")

    config = get_datastore_config()

    assert config.backend == "http"
    assert config.namespace == "tenant-a"
    assert config.http is not None
    assert config.http.project == "demo"
    assert config.http.base_url == "http://localhost:8081/v1"
    assert config.http.timeout_seconds == 2.5


def test_http_backend_defaults_to_public_endpoint(clean_env: pytest.MonkeyPatch) -> None:
    clean_env.setenv("STOWAGE_BACKEND", "http")
    clean_env.setenv("STOWAGE_PROJECT", "demo")

    config = get_datastore_config()

    assert config.http is not None
    assert config.http.base_url == DEFAULT_API_URL


def test_http_backend_requires_project(clean_env: pytest.MonkeyPatch) -> None:
    clean_env.setenv("STOWAGE_BACKEND", "http")

    with pytest.raises(MissingConfigurationError):
        get_datastore_config()


@pytest.mark.parametrize("timeout", ["soon", "0", "-1"])
def test_invalid_timeout_is_rejected(clean_env: pytest.MonkeyPatch, timeout: str) -> None:
    clean_env.setenv("STOWAGE_BACKEND", "http")
    clean_env.setenv("STOWAGE_PROJECT", "demo")
    clean_env.setenv("STOWAGE_TIMEOUT_SECONDS", timeout)

    with pytest.raises(ConfigurationError):
        get_datastore_config()


def test_unknown_backend_is_rejected(clean_env: pytest.MonkeyPatch) -> None:
    clean_env.setenv("STOWAGE_BACKEND", "redis")

    with pytest.raises(ConfigurationError):
        get_datastore_config()


def test_storage_config_uses_data_dir_override(
    monkeypatch: pytest.MonkeyPatch, tmp_path: Path
) -> None:
    custom = tmp_path / "custom"
    monkeypatch.setenv("STOWAGE_DATA_DIR", str(custom))
    monkeypatch.delenv("DATABASE_URI", raising=False)

    config = get_storage_config()
    database = get_database_config(storage=config)

    assert config.resolve_data_dir() == custom.resolve()
    assert database.uri == f"sqlite+pysqlite:///{custom.resolve() / 'stowage.db'}"
    assert custom.is_dir()


def test_database_uri_override(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("DATABASE_URI", "sqlite:///override.db")

    assert get_database_config().uri == "sqlite:///override.db"


@pytest.mark.skipif(os.name == "nt", reason="uses XDG_DATA_HOME")
def test_storage_falls_back_to_user_data_dir(
    monkeypatch: pytest.MonkeyPatch, tmp_path: Path
) -> None:
    monkeypatch.setenv("STOWAGE_DATA_DIR", "   ")
    monkeypatch.setenv("XDG_DATA_HOME", str(tmp_path / "share"))

    config = get_storage_config()

    assert config.data_dir == tmp_path / "share" / "stowage"
    assert config.database_path(create_dir=False) == (tmp_path / "share" / "stowage" / "stowage.db").resolve()
    assert not config.data_dir.exists()
