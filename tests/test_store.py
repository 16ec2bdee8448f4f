import sqlite3
from datetime import datetime

import pytest

from honk.store import (
    Dialect,
    GetMigrationResult,
    ListMigrationsResult,
    StoreController,
    new_store,
)

TABLE = "goose_db_version"


@pytest.fixture
def conn():
    connection = sqlite3.connect(":memory:")
    yield connection
    connection.close()


@pytest.fixture
def store(conn):
    s = new_store(Dialect.SQLITE3)
    s.create_version_table(conn, TABLE)
    conn.commit()
    return s


def test_unknown_dialect_raises():
    with pytest.raises(ValueError, match="unknown querier dialect: bogus"):
        new_store("bogus")


def test_dialect_from_string():
    assert Dialect("postgres") is Dialect.POSTGRES
    assert Dialect("starrocks") is Dialect.STARROCKS


def test_list_empty(conn, store):
    assert store.list_migrations(conn, TABLE) == []


def test_insert_and_list_descending(conn, store):
    store.insert_version(conn, TABLE, 0)
    store.insert_version(conn, TABLE, 1)
    store.insert_version_no_tx(conn, TABLE, 2)
    got = store.list_migrations(conn, TABLE)
    assert got == [
        ListMigrationsResult(2, True),
        ListMigrationsResult(1, True),
        ListMigrationsResult(0, True),
    ]


def test_delete_version(conn, store):
    store.insert_version(conn, TABLE, 1)
    store.insert_version(conn, TABLE, 2)
    store.delete_version(conn, TABLE, 2)
    assert [m.version_id for m in store.list_migrations(conn, TABLE)] == [1]
    store.delete_version_no_tx(conn, TABLE, 1)
    assert store.list_migrations(conn, TABLE) == []


def test_get_migration(conn, store):
    store.insert_version(conn, TABLE, 7)
    result = store.get_migration(conn, TABLE, 7)
    assert isinstance(result, GetMigrationResult)
    assert result.is_applied is True
    assert isinstance(result.timestamp, datetime)


def test_get_missing_migration_raises(conn, store):
    with pytest.raises(LookupError):
        store.get_migration(conn, TABLE, 42)


def test_no_tx_insert_commits(tmp_path):
    path = tmp_path / "db.sqlite"
    first = sqlite3.connect(path)
    s = new_store("turso")
    s.create_version_table(first, TABLE)
    first.commit()
    s.insert_version_no_tx(first, TABLE, 3)
    second = sqlite3.connect(path)
    try:
        assert [m.version_id for m in s.list_migrations(second, TABLE)] == [3]
    finally:
        second.close()
        first.close()


def test_create_table_twice_raises(conn, store):
    with pytest.raises(sqlite3.OperationalError):
        store.create_version_table(conn, TABLE)


def test_controller_table_exists_unsupported(conn, store):
    controller = StoreController(store)
    with pytest.raises(NotImplementedError):
        controller.table_exists(conn)


def test_controller_delegates(conn, store):
    controller = StoreController(store)
    controller.insert_version(conn, TABLE, 5)
    assert controller.list_migrations(conn, TABLE) == [ListMigrationsResult(5, True)]
    assert controller.get_migration(conn, TABLE, 5).is_applied is True


def test_controller_table_exists_delegated(conn):
    class WithTableExists:
        def __init__(self):
            self.seen = []

        def table_exists(self, db):
            self.seen.append(db)
            return True

    inner = WithTableExists()
    controller = StoreController(inner)
    assert controller.table_exists(conn) is True
    assert inner.seen == [conn]