"""Database access to the migration version table for each supported dialect."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Sequence

from honk.queries import (
    Clickhouse,
    Mysql,
    Postgres,
    Querier,
    Redshift,
    Sqlite3,
    Sqlserver,
    Starrocks,
    Tidb,
    Turso,
    Vertica,
    Ydb,
)


class Dialect(str, Enum):
    """Supported database dialects."""

    POSTGRES = "postgres"
    MYSQL = "mysql"
    SQLITE3 = "sqlite3"
    SQLSERVER = "sqlserver"
    REDSHIFT = "redshift"
    TIDB = "tidb"
    CLICKHOUSE = "clickhouse"
    VERTICA = "vertica"
    YDB = "ydb"
    TURSO = "turso"
    STARROCKS = "starrocks"


_QUERIERS: dict[Dialect, type[Querier]] = {
    Dialect.POSTGRES: Postgres,
    Dialect.MYSQL: Mysql,
    Dialect.SQLITE3: Sqlite3,
    Dialect.SQLSERVER: Sqlserver,
    Dialect.REDSHIFT: Redshift,
    Dialect.TIDB: Tidb,
    Dialect.CLICKHOUSE: Clickhouse,
    Dialect.VERTICA: Vertica,
    Dialect.YDB: Ydb,
    Dialect.TURSO: Turso,
    Dialect.STARROCKS: Starrocks,
}


@dataclass(frozen=True)
class GetMigrationResult:
    """A single row of the version table, looked up by version."""

    is_applied: bool
    timestamp: datetime


@dataclass(frozen=True)
class ListMigrationsResult:
    """A version and whether it is applied, as listed from the version table."""

    version_id: int
    is_applied: bool


def _execute(conn: Any, query: str, params: Sequence[Any] = ()) -> None:
    cursor = conn.cursor()
    try:
        cursor.execute(query, tuple(params))
    finally:
        cursor.close()


def _commit(conn: Any) -> None:
    commit = getattr(conn, "commit", None)
    if callable(commit):
        commit()


def _to_datetime(value: Any) -> Any:
    if isinstance(value, bytes):
        value = value.decode()
    if isinstance(value, str):
        return datetime.fromisoformat(value)
    return value


class Store:
    """Runs dialect-specific statements against a DB-API connection.

    Errors raised by the driver are passed through unchanged.
    """

    def __init__(self, querier: Querier) -> None:
        self._querier = querier

    def create_version_table(self, tx: Any, table_name: str) -> None:
        """Create the version table inside the caller's transaction."""
        _execute(tx, self._querier.create_table(table_name))

    def insert_version(self, tx: Any, table_name: str, version: int) -> None:
        """Insert an applied version inside the caller's transaction."""
        _execute(tx, self._querier.insert_version(table_name), (version, True))

    def insert_version_no_tx(self, db: Any, table_name: str, version: int) -> None:
        """Insert an applied version and commit immediately."""
        _execute(db, self._querier.insert_version(table_name), (version, True))
        _commit(db)

    def delete_version(self, tx: Any, table_name: str, version: int) -> None:
        """Delete a version inside the caller's transaction."""
        _execute(tx, self._querier.delete_version(table_name), (version,))

    def delete_version_no_tx(self, db: Any, table_name: str, version: int) -> None:
        """Delete a version and commit immediately."""
        _execute(db, self._querier.delete_version(table_name), (version,))
        _commit(db)

    def get_migration(self, db: Any, table_name: str, version: int) -> GetMigrationResult:
        """Return the latest row for a version; LookupError if there is none."""
        cursor = db.cursor()
        try:
            cursor.execute(self._querier.get_migration_by_version(table_name), (version,))
            row = cursor.fetchone()
        finally:
            cursor.close()
        if row is None:
            raise LookupError("no rows in result set")
        timestamp, is_applied = row[0], row[1]
        return GetMigrationResult(is_applied=bool(is_applied), timestamp=_to_datetime(timestamp))

    def list_migrations(self, db: Any, table_name: str) -> list[ListMigrationsResult]:
        """Return every row of the version table, newest first."""
        cursor = db.cursor()
        try:
            cursor.execute(self._querier.list_migrations(table_name))
            rows = cursor.fetchall()
        finally:
            cursor.close()
        return [ListMigrationsResult(version_id=int(row[0]), is_applied=bool(row[1])) for row in rows]


def new_store(dialect: Dialect | str) -> Store:
    """Return a Store for the given dialect; ValueError if it is unknown."""
    try:
        key = Dialect(dialect)
    except ValueError:
        raise ValueError(f"unknown querier dialect: {dialect}") from None
    return Store(_QUERIERS[key]())


class StoreController:
    """Wraps a store and adds optional operations the store may provide."""

    def __init__(self, store: Any) -> None:
        self.store = store

    def create_version_table(self, tx: Any, table_name: str) -> None:
        self.store.create_version_table(tx, table_name)

    def insert_version(self, tx: Any, table_name: str, version: int) -> None:
        self.store.insert_version(tx, table_name, version)

    def insert_version_no_tx(self, db: Any, table_name: str, version: int) -> None:
        self.store.insert_version_no_tx(db, table_name, version)

    def delete_version(self, tx: Any, table_name: str, version: int) -> None:
        self.store.delete_version(tx, table_name, version)

    def delete_version_no_tx(self, db: Any, table_name: str, version: int) -> None:
        self.store.delete_version_no_tx(db, table_name, version)

    def get_migration(self, db: Any, table_name: str, version: int) -> GetMigrationResult:
        return self.store.get_migration(db, table_name, version)

    def list_migrations(self, db: Any, table_name: str) -> list[ListMigrationsResult]:
        return self.store.list_migrations(db, table_name)

    def table_exists(self, db: Any) -> bool:
        """Delegate to the store's table_exists; NotImplementedError if it has none."""
        method = getattr(self.store, "table_exists", None)
        if callable(method):
            return method(db)
        raise NotImplementedError("unsupported operation")