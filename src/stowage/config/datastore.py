"""Backend selection and HTTP endpoint settings."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Final, Literal, cast

from .env import env_float, optional_env_var, require_env_var
from .errors import ConfigurationError

if TYPE_CHECKING:
    from collections.abc import Mapping

type Backend = Literal["sqlalchemy", "http"]

BACKENDS: Final[tuple[Backend, ...]] = ("sqlalchemy", "http")
DEFAULT_API_URL: Final[str] = "https://datastore.googleapis.com/v1"
DEFAULT_TIMEOUT_SECONDS: Final[float] = 30.0


@dataclass(frozen=True, slots=True)
class HttpConfig:
    """Settings for talking to a Datastore v1 compatible REST endpoint."""

    project: str
    base_url: str = DEFAULT_API_URL
    timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS
    default_headers: Mapping[str, str] = field(default_factory=dict[str, str])


@dataclass(frozen=True, slots=True)
class DatastoreConfig:
    backend: Backend = "sqlalchemy"
    namespace: str | None = None
    http: HttpConfig | None = None


def get_http_config() -> HttpConfig:
    return HttpConfig(
        project=require_env_var("STOWAGE_PROJECT"),
        base_url=(optional_env_var("STOWAGE_API_URL") or DEFAULT_API_URL).rstrip("/"),
        timeout_seconds=env_float("STOWAGE_TIMEOUT_SECONDS", DEFAULT_TIMEOUT_SECONDS),
    )


def get_datastore_config() -> DatastoreConfig:
    backend = (optional_env_var("STOWAGE_BACKEND") or "sqlalchemy").lower()
    if backend not in BACKENDS:
        choices = ", ".join(BACKENDS)
        raise ConfigurationError(f"STOWAGE_BACKEND must be one of {choices}, got {backend!r}")
    return DatastoreConfig(
        backend=cast("Backend", backend),
        namespace=optional_env_var("STOWAGE_NAMESPACE"),
        http=get_http_config() if backend == "http" else None,
    )
