"""Collecting migration files and reading the current database version."""

from __future__ import annotations

import os
import posixpath
import re
from dataclasses import dataclass
from datetime import datetime
from fnmatch import fnmatchcase
from pathlib import Path, PurePath
from typing import Any, Iterable, Mapping

MAX_VERSION = 2**63 - 1
_MIN_INT64 = -(2**63)
_UNIX_EPOCH = datetime(1970, 1, 1)
_TIMESTAMP_FORMAT = "%Y%m%d%H%M%S"
_VERSION_RE = re.compile(r"[+-]?\d+")


class MigrationError(Exception):
    """A migration could not be collected or resolved."""


class NoMigrationFilesError(MigrationError):
    """No migration files were found."""

    def __init__(self, message: str = "no migration files found") -> None:
        super().__init__(message)


class NoCurrentVersionError(MigrationError):
    """No migration has the current version."""

    def __init__(self, message: str = "no current version found") -> None:
        super().__init__(message)


class NoNextVersionError(MigrationError):
    """No migration follows (or precedes) the given version."""

    def __init__(self, message: str = "no next version found") -> None:
        super().__init__(message)


@dataclass
class Migration:
    """A migration known by its version and source file."""

    version: int
    source: str
    next: int = -1
    previous: int = -1
    registered: bool = False


def _parse_timestamp(version: int) -> datetime | None:
    text = str(version)
    if len(text) != 14 or not text.isdigit():
        return None
    try:
        return datetime.strptime(text, _TIMESTAMP_FORMAT)
    except ValueError:
        return None


class Migrations(list):
    """An ordered list of migrations."""

    def current(self, current: int) -> Migration:
        """Return the migration with version ``current``."""
        for migration in self:
            if migration.version == current:
                return migration
        raise NoCurrentVersionError()

    def next(self, current: int) -> Migration:
        """Return the first migration with a version above ``current``."""
        for migration in self:
            if migration.version > current:
                return migration
        raise NoNextVersionError()

    def previous(self, current: int) -> Migration:
        """Return the last migration with a version below ``current``."""
        for migration in reversed(self):
            if migration.version < current:
                return migration
        raise NoNextVersionError()

    def last(self) -> Migration:
        """Return the final migration."""
        if not self:
            raise NoNextVersionError()
        return self[-1]

    def versioned(self) -> Migrations:
        """Return migrations whose versions are not timestamps after the epoch."""
        result = Migrations()
        for migration in self:
            stamp = _parse_timestamp(migration.version)
            if stamp is None or stamp < _UNIX_EPOCH:
                result.append(migration)
        return result

    def timestamped(self) -> Migrations:
        """Return migrations whose versions are timestamps after the epoch."""
        result = Migrations()
        for migration in self:
            stamp = _parse_timestamp(migration.version)
            if stamp is not None and stamp > _UNIX_EPOCH:
                result.append(migration)
        return result

    def __str__(self) -> str:
        return "".join(f"{migration}\n" for migration in self)


def numeric_component(filename: str) -> int:
    """Return the version prefix of a ``.sql`` or ``.go`` migration file name."""
    base = PurePath(filename).name
    dot = base.rfind(".")
    ext = base[dot:] if dot >= 0 else ""
    if ext not in (".go", ".sql"):
        raise ValueError("migration file does not have .sql or .go file extension")
    prefix, sep, _ = base.partition("_")
    if not sep:
        raise ValueError("no filename separator '_' found")
    if not _VERSION_RE.fullmatch(prefix):
        raise ValueError(f"failed to parse version from migration file: {base}")
    number = int(prefix)
    if not _MIN_INT64 <= number <= MAX_VERSION:
        raise ValueError(f"failed to parse version from migration file: {base}: value out of range")
    if number < 1:
        raise ValueError("migration version must be greater than zero")
    return number


def version_filter(v: int, current: int, target: int) -> bool:
    """Return whether ``v`` lies between ``current`` and ``target`` in either direction."""
    if target > current:
        return current < v <= target
    if target < current:
        return target < v <= current
    return False


def sort_and_connect_migrations(migrations: Iterable[Migration]) -> Migrations:
    """Sort by version and link each migration to its neighbours."""
    ordered = Migrations(sorted(migrations, key=lambda m: m.version))
    for before, after in zip(ordered, ordered[1:]):
        if before.version == after.version:
            raise MigrationError(
                f"duplicate version {before.version} detected:\n{before.source}\n{after.source}"
            )
    previous = -1
    for index, migration in enumerate(ordered):
        migration.previous = previous
        if index > 0:
            ordered[index - 1].next = migration.version
        previous = migration.version
    return ordered


def _glob(directory: Path, dirpath: str, pattern: str) -> list[str]:
    return sorted(
        posixpath.join(dirpath, entry.name)
        for entry in directory.iterdir()
        if fnmatchcase(entry.name, pattern)
    )


def _collect_go_migrations(
    directory: Path,
    dirpath: str,
    registered: Mapping[int, Migration],
    current: int,
    target: int,
) -> list[Migration]:
    for migration in registered.values():
        try:
            numeric_component(migration.source)
        except ValueError as exc:
            raise MigrationError(
                f"could not parse go migration file {migration.source}: {exc}"
            ) from exc

    go_files = _glob(directory, dirpath, "*.go")
    if not go_files and not registered:
        return []

    sources: list[tuple[str, int]] = []
    for fullpath in go_files:
        try:
            version = numeric_component(fullpath)
        except ValueError:
            continue
        if fullpath.endswith("_test.go"):
            continue
        if version_filter(version, current, target):
            sources.append((fullpath, version))

    if sources:
        return [
            registered.get(version)
            or Migration(version=version, source=fullpath, registered=False)
            for fullpath, version in sources
        ]
    # Registered migrations without matching files on disk are included as a whole.
    return [
        migration
        for migration in registered.values()
        if version_filter(numeric_component(migration.source), current, target)
    ]


def collect_migrations_fs(
    root: str | os.PathLike[str],
    dirpath: str,
    current: int,
    target: int,
    registered: Mapping[int, Migration] | None = None,
) -> Migrations:
    """Collect SQL files and Go migrations in ``dirpath`` under ``root``, sorted and linked."""
    directory = Path(root) / dirpath
    if not directory.exists():
        raise MigrationError(f"{dirpath} directory does not exist")
    registered = registered or {}

    migrations: list[Migration] = []
    for file in _glob(directory, dirpath, "*.sql"):
        try:
            version = numeric_component(file)
        except ValueError as exc:
            raise MigrationError(f'could not parse SQL migration file "{file}": {exc}') from exc
        if version_filter(version, current, target):
            migrations.append(Migration(version=version, source=file))

    migrations.extend(_collect_go_migrations(directory, dirpath, registered, current, target))
    if not migrations:
        raise NoMigrationFilesError()
    return sort_and_connect_migrations(migrations)


def collect_migrations(
    dirpath: str,
    current: int,
    target: int,
    registered: Mapping[int, Migration] | None = None,
) -> Migrations:
    """Collect migrations from ``dirpath`` relative to the working directory."""
    return collect_migrations_fs(".", dirpath, current, target, registered)


def _create_version_table(db: Any, store: Any, table_name: str) -> None:
    try:
        store.create_version_table(db, table_name)
        store.insert_version(db, table_name, 0)
    except Exception:
        rollback = getattr(db, "rollback", None)
        if callable(rollback):
            rollback()
        raise
    commit = getattr(db, "commit", None)
    if callable(commit):
        commit()


def ensure_db_version(db: Any, store: Any, table_name: str) -> int:
    """Return the current database version, creating the version table if needed."""
    try:
        rows = store.list_migrations(db, table_name)
    except Exception as list_error:
        try:
            _create_version_table(db, store, table_name)
        except Exception as create_error:
            raise MigrationError(f"{list_error}; {create_error}") from create_error
        return 0

    # Rows come newest first; the latest record of each version decides its state.
    skipped: set[int] = set()
    for row in rows:
        if row.version_id in skipped:
            continue
        if row.is_applied:
            return row.version_id
        skipped.add(row.version_id)
    raise NoNextVersionError()


def get_db_version(db: Any, store: Any, table_name: str) -> int:
    """Return the current database version (same as ensure_db_version)."""
    return ensure_db_version(db, store, table_name)