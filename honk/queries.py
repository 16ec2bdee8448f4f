"""SQL statements for the migration version table, one set per database dialect."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import ClassVar


class Querier(ABC):
    """Builds the dialect-specific SQL used to manage the version table."""

    @abstractmethod
    def create_table(self, table_name: str) -> str:
        """Return the statement that creates the version table."""

    @abstractmethod
    def insert_version(self, table_name: str) -> str:
        """Return the statement that inserts a version row."""

    @abstractmethod
    def delete_version(self, table_name: str) -> str:
        """Return the statement that deletes a version."""

    @abstractmethod
    def get_migration_by_version(self, table_name: str) -> str:
        """Return the query selecting timestamp and is_applied for one version."""

    @abstractmethod
    def list_migrations(self, table_name: str) -> str:
        """Return the query listing version_id and is_applied, newest first."""

    @abstractmethod
    def get_latest_version(self, table_name: str) -> str:
        """Return the query selecting the highest version_id (nullable)."""


class _TemplateQuerier(Querier):
    """A querier whose statements are fixed templates with a table placeholder."""

    _create_table: ClassVar[str]
    _insert_version: ClassVar[str]
    _delete_version: ClassVar[str]
    _get_migration_by_version: ClassVar[str]
    _list_migrations: ClassVar[str]
    _get_latest_version: ClassVar[str]

    def create_table(self, table_name: str) -> str:
        return self._create_table.format(table=table_name)

    def insert_version(self, table_name: str) -> str:
        return self._insert_version.format(table=table_name)

    def delete_version(self, table_name: str) -> str:
        return self._delete_version.format(table=table_name)

    def get_migration_by_version(self, table_name: str) -> str:
        return self._get_migration_by_version.format(table=table_name)

    def list_migrations(self, table_name: str) -> str:
        return self._list_migrations.format(table=table_name)

    def get_latest_version(self, table_name: str) -> str:
        return self._get_latest_version.format(table=table_name)


def parse_table_identifier(name: str) -> tuple[str, str]:
    """Split ``schema.table`` at the first dot; the schema is empty when absent."""
    schema, sep, table = name.partition(".")
    if not sep:
        return "", name
    return schema, table


class Postgres(_TemplateQuerier):
    _create_table = (
        "CREATE TABLE {table} (\n"
        "\t\tid integer PRIMARY KEY GENERATED BY DEFAULT AS IDENTITY,\n"
        "\t\tversion_id bigint NOT NULL,\n"
        "\t\tis_applied boolean NOT NULL,\n"
        "\t\ttstamp timestamp NOT NULL DEFAULT now()\n"
        "\t)"
    )
    _insert_version = "INSERT INTO {table} (version_id, is_applied) VALUES ($1, $2)"
    _delete_version = "DELETE FROM {table} WHERE version_id=$1"
    _get_migration_by_version = (
        "SELECT tstamp, is_applied FROM {table} WHERE version_id=$1 ORDER BY tstamp DESC LIMIT 1"
    )
    _list_migrations = "SELECT version_id, is_applied from {table} ORDER BY id DESC"
    _get_latest_version = "SELECT max(version_id) FROM {table}"

    def table_exists(self, table_name: str) -> str:
        """Return a query yielding whether the version table exists."""
        schema, table = parse_table_identifier(table_name)
        if schema:
            return (
                "SELECT EXISTS ( SELECT 1 FROM pg_tables WHERE schemaname = "
                f"'{schema}' AND tablename = '{table}' )"
            )
        return (
            "SELECT EXISTS ( SELECT 1 FROM pg_tables WHERE (current_schema() IS NULL "
            f"OR schemaname = current_schema()) AND tablename = '{table}' )"
        )


class Mysql(_TemplateQuerier):
    _create_table = (
        "CREATE TABLE {table} (\n"
        "\t\tid bigint(20) unsigned NOT NULL AUTO_INCREMENT,\n"
        "\t\tversion_id bigint NOT NULL,\n"
        "\t\tis_applied boolean NOT NULL,\n"
        "\t\ttstamp timestamp NULL default now(),\n"
        "\t\tPRIMARY KEY(id)\n"
        "\t)"
    )
    _insert_version = "INSERT INTO {table} (version_id, is_applied) VALUES (?, ?)"
    _delete_version = "DELETE FROM {table} WHERE version_id=?"
    _get_migration_by_version = (
        "SELECT tstamp, is_applied FROM {table} WHERE version_id=? ORDER BY tstamp DESC LIMIT 1"
    )
    _list_migrations = "SELECT version_id, is_applied from {table} ORDER BY id DESC"
    _get_latest_version = "SELECT MAX(version_id) FROM {table}"

    def table_exists(self, table_name: str) -> str:
        """Return a query yielding whether the version table exists."""
        schema, table = parse_table_identifier(table_name)
        if schema:
            return (
                "SELECT EXISTS ( SELECT 1 FROM information_schema.tables WHERE "
                f"table_schema = '{schema}' AND table_name = '{table}' )"
            )
        return (
            "SELECT EXISTS ( SELECT 1 FROM information_schema.tables WHERE "
            "(database() IS NULL OR table_schema = database()) AND "
            f"table_name = '{table}' )"
        )


class Sqlite3(_TemplateQuerier):
    _create_table = (
        "CREATE TABLE {table} (\n"
        "\t\tid INTEGER PRIMARY KEY AUTOINCREMENT,\n"
        "\t\tversion_id INTEGER NOT NULL,\n"
        "\t\tis_applied INTEGER NOT NULL,\n"
        "\t\ttstamp TIMESTAMP DEFAULT (datetime('now'))\n"
        "\t)"
    )
    _insert_version = "INSERT INTO {table} (version_id, is_applied) VALUES (?, ?)"
    _delete_version = "DELETE FROM {table} WHERE version_id=?"
    _get_migration_by_version = (
        "SELECT tstamp, is_applied FROM {table} WHERE version_id=? ORDER BY tstamp DESC LIMIT 1"
    )
    _list_migrations = "SELECT version_id, is_applied from {table} ORDER BY id DESC"
    _get_latest_version = "SELECT MAX(version_id) FROM {table}"


class Sqlserver(_TemplateQuerier):
    _create_table = (
        "CREATE TABLE {table} (\n"
        "\t\tid INT NOT NULL IDENTITY(1,1) PRIMARY KEY,\n"
        "\t\tversion_id BIGINT NOT NULL,\n"
        "\t\tis_applied BIT NOT NULL,\n"
        "\t\ttstamp DATETIME NULL DEFAULT CURRENT_TIMESTAMP\n"
        "\t)"
    )
    _insert_version = "INSERT INTO {table} (version_id, is_applied) VALUES (@p1, @p2)"
    _delete_version = "DELETE FROM {table} WHERE version_id=@p1"
    _get_migration_by_version = (
        "SELECT TOP 1 tstamp, is_applied FROM {table} WHERE version_id=@p1 ORDER BY tstamp DESC"
    )
    _list_migrations = "SELECT version_id, is_applied FROM {table} ORDER BY id DESC"
    _get_latest_version = "SELECT MAX(version_id) FROM {table}"


class Redshift(_TemplateQuerier):
    _create_table = (
        "CREATE TABLE {table} (\n"
        "\t\tid integer NOT NULL identity(1, 1),\n"
        "\t\tversion_id bigint NOT NULL,\n"
        "\t\tis_applied boolean NOT NULL,\n"
        "\t\ttstamp timestamp NULL default sysdate,\n"
        "\t\tPRIMARY KEY(id)\n"
        "\t)"
    )
    _insert_version = "INSERT INTO {table} (version_id, is_applied) VALUES ($1, $2)"
    _delete_version = "DELETE FROM {table} WHERE version_id=$1"
    _get_migration_by_version = (
        "SELECT tstamp, is_applied FROM {table} WHERE version_id=$1 ORDER BY tstamp DESC LIMIT 1"
    )
    _list_migrations = "SELECT version_id, is_applied from {table} ORDER BY id DESC"
    _get_latest_version = "SELECT max(version_id) FROM {table}"


class Tidb(_TemplateQuerier):
    _create_table = (
        "CREATE TABLE {table} (\n"
        "\t\tid BIGINT UNSIGNED NOT NULL AUTO_INCREMENT UNIQUE,\n"
        "\t\tversion_id bigint NOT NULL,\n"
        "\t\tis_applied boolean NOT NULL,\n"
        "\t\ttstamp timestamp NULL default now(),\n"
        "\t\tPRIMARY KEY(id)\n"
        "\t)"
    )
    _insert_version = "INSERT INTO {table} (version_id, is_applied) VALUES (?, ?)"
    _delete_version = "DELETE FROM {table} WHERE version_id=?"
    _get_migration_by_version = (
        "SELECT tstamp, is_applied FROM {table} WHERE version_id=? ORDER BY tstamp DESC LIMIT 1"
    )
    _list_migrations = "SELECT version_id, is_applied from {table} ORDER BY id DESC"
    _get_latest_version = "SELECT MAX(version_id) FROM {table}"


class Clickhouse(_TemplateQuerier):
    _create_table = (
        "CREATE TABLE IF NOT EXISTS {table} (\n"
        "\t\tversion_id Int64,\n"
        "\t\tis_applied UInt8,\n"
        "\t\tdate Date default now(),\n"
        "\t\ttstamp DateTime default now()\n"
        "\t  )\n"
        "\t  ENGINE = MergeTree()\n"
        "\t\tORDER BY (date)"
    )
    _insert_version = "INSERT INTO {table} (version_id, is_applied) VALUES ($1, $2)"
    _delete_version = (
        "ALTER TABLE {table} DELETE WHERE version_id = $1 SETTINGS mutations_sync = 2"
    )
    _get_migration_by_version = (
        "SELECT tstamp, is_applied FROM {table} WHERE version_id = $1 ORDER BY tstamp DESC LIMIT 1"
    )
    _list_migrations = "SELECT version_id, is_applied FROM {table} ORDER BY version_id DESC"
    _get_latest_version = "SELECT max(version_id) FROM {table}"


class Vertica(_TemplateQuerier):
    _create_table = (
        "CREATE TABLE {table} (\n"
        "\t\tid identity(1,1) NOT NULL,\n"
        "\t\tversion_id bigint NOT NULL,\n"
        "\t\tis_applied boolean NOT NULL,\n"
        "\t\ttstamp timestamp NULL default now(),\n"
        "\t\tPRIMARY KEY(id)\n"
        "\t)"
    )
    _insert_version = "INSERT INTO {table} (version_id, is_applied) VALUES (?, ?)"
    _delete_version = "DELETE FROM {table} WHERE version_id=?"
    _get_migration_by_version = (
        "SELECT tstamp, is_applied FROM {table} WHERE version_id=? ORDER BY tstamp DESC LIMIT 1"
    )
    _list_migrations = "SELECT version_id, is_applied from {table} ORDER BY id DESC"
    _get_latest_version = "SELECT MAX(version_id) FROM {table}"


class Ydb(_TemplateQuerier):
    _create_table = (
        "CREATE TABLE {table} (\n"
        "\t\tversion_id Uint64,\n"
        "\t\tis_applied Bool,\n"
        "\t\ttstamp Timestamp,\n"
        "\n"
        "\t\tPRIMARY KEY(version_id)\n"
        "\t)"
    )
    _insert_version = (
        "INSERT INTO {table} (\n"
        "\t\tversion_id, \n"
        "\t\tis_applied, \n"
        "\t\ttstamp\n"
        "\t) VALUES (\n"
        "\t\tCAST($1 AS Uint64), \n"
        "\t\t$2, \n"
        "\t\tCurrentUtcTimestamp()\n"
        "\t)"
    )
    _delete_version = "DELETE FROM {table} WHERE version_id = $1"
    _get_migration_by_version = (
        "SELECT tstamp, is_applied FROM {table} WHERE version_id = $1 ORDER BY tstamp DESC LIMIT 1"
    )
    _list_migrations = (
        "\n"
        "\tSELECT version_id, is_applied, tstamp AS __discard_column_tstamp \n"
        "\tFROM {table} ORDER BY __discard_column_tstamp DESC"
    )
    _get_latest_version = "SELECT MAX(version_id) FROM {table}"


class Turso(Sqlite3):
    """Turso speaks the SQLite dialect."""


class Starrocks(_TemplateQuerier):
    _create_table = (
        "CREATE TABLE IF NOT EXISTS {table} (\n"
        "\t\tid bigint NOT NULL AUTO_INCREMENT,\n"
        "\t\tversion_id bigint NOT NULL,\n"
        "\t\tis_applied boolean NOT NULL,\n"
        "\t\ttstamp datetime NULL default CURRENT_TIMESTAMP\n"
        "\t)\n"
        "\tPRIMARY KEY (id)\n"
        "\tDISTRIBUTED BY HASH (id)\n"
        "\tORDER BY (id,version_id)"
    )
    _insert_version = "INSERT INTO {table} (version_id, is_applied) VALUES (?, ?)"
    _delete_version = "DELETE FROM {table} WHERE version_id=?"
    _get_migration_by_version = (
        "SELECT tstamp, is_applied FROM {table} WHERE version_id=? ORDER BY tstamp DESC LIMIT 1"
    )
    _list_migrations = "SELECT version_id, is_applied from {table} ORDER BY id DESC"
    _get_latest_version = "SELECT MAX(version_id) FROM {table}"


class QueryController(Querier):
    """Wraps a querier and adds optional queries with a fallback."""

    def __init__(self, querier: Querier) -> None:
        self.querier = querier

    def create_table(self, table_name: str) -> str:
        return self.querier.create_table(table_name)

    def insert_version(self, table_name: str) -> str:
        return self.querier.insert_version(table_name)

    def delete_version(self, table_name: str) -> str:
        return self.querier.delete_version(table_name)

    def get_migration_by_version(self, table_name: str) -> str:
        return self.querier.get_migration_by_version(table_name)

    def list_migrations(self, table_name: str) -> str:
        return self.querier.list_migrations(table_name)

    def get_latest_version(self, table_name: str) -> str:
        return self.querier.get_latest_version(table_name)

    def table_exists(self, table_name: str) -> str:
        """Return the wrapped querier's table-exists query, or "" if it has none."""
        method = getattr(self.querier, "table_exists", None)
        if callable(method):
            return method(table_name)
        return ""