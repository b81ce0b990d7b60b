from __future__ import annotations

import os
from typing import TYPE_CHECKING

import pytest
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine  # noqa: TC002

from stowage.adapters.sqlalchemy import SqlAlchemyTransport, create_all_tables, shutdown, startup
from stowage.domain.dataset import Dataset
from tests.helpers.fake_transport import FakeTransport

os.environ.setdefault("DATABASE_URI", "sqlite+pysqlite:///:memory:")

if TYPE_CHECKING:
    from collections.abc import Iterator
    from pathlib import Path


@pytest.fixture
def sqlite_engine(tmp_path: Path) -> Iterator[Engine]:
    # File-backed so that transaction connections and plain reads share one database.
    engine = create_engine(f"sqlite+pysqlite:///{tmp_path / 'stowage.db'}", future=True)
    create_all_tables(engine)
    try:
        yield engine
    finally:
        engine.dispose()


@pytest.fixture
def sqlite_transport(sqlite_engine: Engine) -> Iterator[SqlAlchemyTransport]:
    startup(engine=sqlite_engine, force=True)
    try:
        yield SqlAlchemyTransport()
    finally:
        shutdown()


@pytest.fixture
def sqlite_dataset(sqlite_transport: SqlAlchemyTransport) -> Dataset:
    return Dataset(sqlite_transport)


@pytest.fixture
def fake_transport() -> FakeTransport:
    return FakeTransport()


@pytest.fixture
def fake_dataset(fake_transport: FakeTransport) -> Dataset:
    return Dataset(fake_transport)
