from __future__ import annotations

from datetime import UTC, datetime
from typing import TYPE_CHECKING

import pytest
from sqlalchemy import create_engine, func, select, text

from stowage.adapters.sqlalchemy import (
    SqlAlchemyTransport,
    StartupError,
    UnknownTransactionError,
    configured_engine,
    entity_table,
    is_started,
    shutdown,
    startup,
)
from stowage.domain.errors import TransactionError, TransportError
from stowage.domain.model import Entity, Key
from stowage.domain.mutation import MutationBatch
from stowage.domain.transaction import TransactionState

if TYPE_CHECKING:
    from collections.abc import Iterator
    from pathlib import Path

    from sqlalchemy.engine import Engine

    from stowage.domain.dataset import Dataset


@pytest.fixture(autouse=True)
def reset_transport_state() -> Iterator[None]:
    shutdown()
    yield
    shutdown()


def _row_count(engine: Engine) -> int:
    with engine.connect() as connection:
        return connection.execute(select(func.count()).select_from(entity_table)).scalar_one()


def test_transport_requires_startup() -> None:
    with pytest.raises(StartupError):
        SqlAlchemyTransport()


def test_startup_requires_force_for_reconfiguration() -> None:
    engine_a = create_engine("sqlite+pysqlite:///:memory:", future=True)
    engine_b = create_engine("sqlite+pysqlite:///:memory:", future=True)

    startup(engine=engine_a, force=True)

    with pytest.raises(StartupError):
        startup(engine=engine_b)

    startup(engine=engine_b, force=True)
    assert configured_engine() is engine_b
    assert is_started()


def test_startup_reads_database_uri_from_environment(
    monkeypatch: pytest.MonkeyPatch, tmp_path: Path
) -> None:
    monkeypatch.setenv("DATABASE_URI", f"sqlite+pysqlite:///{tmp_path}/env.db")

    engine = startup(force=True)

    assert str(engine.url).endswith("env.db")


def test_save_and_find_round_trip(sqlite_dataset: Dataset) -> None:
    when = datetime(2024, 3, 1, 9, 30, tzinfo=UTC)
    entity = Entity(
        Key("Task"),
        {"title": "ship", "due": when, "tags": ["a", "b"], "meta": {"owner": Key("User", "ann")}},
        exclude_from_indexes={"meta"},
    )

    (saved,) = sqlite_dataset.save(entity)
    found = sqlite_dataset.find(saved.key)

    assert saved.key.is_complete
    assert isinstance(saved.key.id, int)
    assert found is not None
    assert found is not entity
    assert found.properties == entity.properties
    assert found.exclude_from_indexes == {"meta"}


def test_generated_ids_are_unique_and_ordered(sqlite_dataset: Dataset) -> None:
    entities = [Entity(Key("Task"), {"n": n}) for n in range(3)]

    sqlite_dataset.save(*entities)

    ids = [entity.key.id for entity in entities]
    assert ids == sorted(ids)
    assert len(set(ids)) == 3


def test_upsert_replaces_properties(sqlite_dataset: Dataset, sqlite_engine: Engine) -> None:
    sqlite_dataset.save(Entity(Key("Task", "t"), {"title": "old", "extra": 1}))
    sqlite_dataset.save(Entity(Key("Task", "t"), {"title": "new"}))

    found = sqlite_dataset.find("Task", "t")

    assert found is not None
    assert found.properties == {"title": "new"}
    assert _row_count(sqlite_engine) == 1


def test_namespaces_are_isolated(sqlite_dataset: Dataset) -> None:
    sqlite_dataset.save(Entity(Key("Task", 1, namespace="a"), {"v": "a"}))
    sqlite_dataset.save(Entity(Key("Task", 1), {"v": "default"}))

    scoped = sqlite_dataset.find(Key("Task", 1, namespace="a"))
    default = sqlite_dataset.find(Key("Task", 1))

    assert scoped is not None
    assert scoped["v"] == "a"
    assert scoped.key.namespace == "a"
    assert default is not None
    assert default["v"] == "default"


def test_delete_removes_rows(sqlite_dataset: Dataset, sqlite_engine: Engine) -> None:
    (entity,) = sqlite_dataset.save(Entity(Key("Task"), {"x": 1}))

    sqlite_dataset.delete(entity)

    assert sqlite_dataset.find(entity.key) is None
    assert _row_count(sqlite_engine) == 0


def test_transaction_commit_is_visible(sqlite_dataset: Dataset) -> None:
    entity = Entity(Key("Task"), {"title": "tx"})

    with sqlite_dataset.transaction() as tx:
        tx.save(entity)

    assert entity.key.is_complete
    assert sqlite_dataset.find(entity.key) is not None


def test_transaction_failure_leaves_no_rows(
    sqlite_dataset: Dataset, sqlite_engine: Engine
) -> None:
    def work(tx: object) -> None:
        raise RuntimeError("abort")

    with pytest.raises(TransactionError):
        sqlite_dataset.transaction(work)

    assert _row_count(sqlite_engine) == 0


def test_failed_commit_writes_nothing(sqlite_dataset: Dataset, sqlite_engine: Engine) -> None:
    # Let the first insert through and abort the second one.
    with sqlite_engine.begin() as connection:
        connection.execute(
            text(
                "CREATE TRIGGER reject_second_entity BEFORE INSERT ON stowage_entity "
                "WHEN (SELECT count(*) FROM stowage_entity) >= 1 "
                "BEGIN SELECT RAISE(ABORT, 'entity rejected'); END"
            )
        )
    first, second = Entity(Key("Task"), {"v": 1}), Entity(Key("Task"), {"v": 2})

    with pytest.raises(TransactionError) as exc, sqlite_dataset.transaction() as tx:
        tx.save(first, second)

    assert isinstance(exc.value.cause, TransportError)
    assert exc.value.rollback_error is None
    assert tx.state is TransactionState.ROLLED_BACK
    assert not first.key.is_complete
    assert not second.key.is_complete
    assert _row_count(sqlite_engine) == 0


def test_generated_ids_skip_explicitly_saved_keys(
    sqlite_dataset: Dataset, sqlite_engine: Engine
) -> None:
    sqlite_dataset.save(Entity(Key("Task", 1), {"v": "explicit"}))

    (generated,) = sqlite_dataset.save(Entity(Key("Task"), {"v": "generated"}))

    assert generated.key.id is not None
    assert generated.key.id != 1
    explicit = sqlite_dataset.find(Key("Task", 1))
    assert explicit is not None
    assert explicit["v"] == "explicit"
    found = sqlite_dataset.find(generated.key)
    assert found is not None
    assert found["v"] == "generated"
    assert _row_count(sqlite_engine) == 2


def test_generated_ids_skip_keys_upserted_in_the_same_batch(
    sqlite_transport: SqlAlchemyTransport,
) -> None:
    batch = _batch(Entity(Key("Task"), {"v": "generated"}), Entity(Key("Task", 1), {"v": "explicit"}))

    result = sqlite_transport.commit(batch)

    assert len(result.generated_ids) == 1
    assert result.generated_ids[0] != 1
    found = sqlite_transport.lookup([Key("Task", 1), Key("Task", result.generated_ids[0])])
    assert sorted(entity["v"] for entity in found) == ["explicit", "generated"]


def test_allocated_ids_skip_explicitly_saved_keys(sqlite_dataset: Dataset) -> None:
    sqlite_dataset.save(Entity(Key("Task", 1)), Entity(Key("Task", 2)))

    allocated = sqlite_dataset.allocate_ids(Key("Task"), 2)

    assert all(key.id not in {1, 2} for key in allocated)


def test_empty_namespace_round_trips_as_default(sqlite_dataset: Dataset) -> None:
    sqlite_dataset.save(Entity(Key("Task", 5, namespace=""), {"v": 1}))

    found = sqlite_dataset.find(Key("Task", 5, namespace=""))

    assert found is not None
    assert found.key == Key("Task", 5)
    assert found.key.namespace is None


def test_reads_inside_transaction_use_the_handle(sqlite_transport: SqlAlchemyTransport) -> None:
    sqlite_transport.commit(_batch(Entity(Key("Task", 1), {"v": 1})))
    handle = sqlite_transport.begin_transaction()

    found = sqlite_transport.lookup([Key("Task", 1)], transaction=handle)
    sqlite_transport.rollback(handle)

    assert [entity["v"] for entity in found] == [1]


def test_unknown_transaction_handle_is_rejected(sqlite_transport: SqlAlchemyTransport) -> None:
    with pytest.raises(UnknownTransactionError):
        sqlite_transport.rollback("nope")
    with pytest.raises(UnknownTransactionError):
        sqlite_transport.lookup([Key("Task", 1)], transaction="nope")


def test_transaction_handle_cannot_be_reused(sqlite_transport: SqlAlchemyTransport) -> None:
    handle = sqlite_transport.begin_transaction()
    sqlite_transport.commit(MutationBatch(), transaction=handle)

    with pytest.raises(UnknownTransactionError):
        sqlite_transport.commit(MutationBatch(), transaction=handle)


def test_allocate_ids_do_not_collide_with_generated_inserts(sqlite_dataset: Dataset) -> None:
    allocated = sqlite_dataset.allocate_ids(Key("Task"), 2)
    (entity,) = sqlite_dataset.save(Entity(Key("Task")))

    allocated_ids = {key.id for key in allocated}
    assert len(allocated_ids) == 2
    assert entity.key.id not in allocated_ids
    assert sqlite_dataset.find(allocated[0]) is None


def _batch(*entities: Entity) -> MutationBatch:
    batch = MutationBatch()
    batch.save(*entities)
    return batch
