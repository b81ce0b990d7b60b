"""Application wiring: build a dataset from configuration."""

from __future__ import annotations

from logging import getLogger
from typing import TYPE_CHECKING

from stowage.adapters.http import HttpTransport
from stowage.adapters.sqlalchemy import SqlAlchemyTransport, is_started, startup
from stowage.config import ConfigurationError, get_datastore_config
from stowage.domain.dataset import Dataset

if TYPE_CHECKING:
    from stowage.config import DatastoreConfig
    from stowage.domain.ports import Transport


log = getLogger(__name__)


def build_transport(config: DatastoreConfig) -> Transport:
    """Return the transport selected by ``config.backend``."""

    if config.backend == "http":
        if config.http is None:
            raise ConfigurationError("HTTP backend selected without HTTP settings")
        log.info("Using Datastore REST endpoint %s (%s)", config.http.base_url, config.http.project)
        return HttpTransport(config.http)

    if not is_started():
        startup()
    log.info("Using local SQLAlchemy store")
    return SqlAlchemyTransport()


def open_dataset(config: DatastoreConfig | None = None) -> Dataset:
    """Open a dataset using the configured backend (environment by default)."""

    return Dataset(build_transport(config or get_datastore_config()))
