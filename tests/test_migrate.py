import sqlite3

import pytest

from honk.migrate import (
    MAX_VERSION,
    Migration,
    MigrationError,
    Migrations,
    NoCurrentVersionError,
    NoMigrationFilesError,
    NoNextVersionError,
    collect_migrations,
    collect_migrations_fs,
    ensure_db_version,
    get_db_version,
    numeric_component,
    sort_and_connect_migrations,
    version_filter,
)
from honk.queries import Sqlite3
from honk.store import new_store


def _registered(*names):
    result = {}
    for name in names:
        version = numeric_component(name)
        result[version] = Migration(version=version, source=name, registered=True)
    return result


def _touch(directory, *names):
    directory.mkdir(parents=True, exist_ok=True)
    for name in names:
        (directory / name).write_text("")


def test_migration_sort():
    ms = [Migration(v, "test") for v in (20120000, 20128000, 20129000, 20127000)]
    ordered = sort_and_connect_migrations(ms)
    assert [m.version for m in ordered] == [20120000, 20127000, 20128000, 20129000]
    assert [m.previous for m in ordered] == [-1, 20120000, 20127000, 20128000]
    assert [m.next for m in ordered] == [20127000, 20128000, 20129000, -1]


def test_duplicate_versions_raise():
    with pytest.raises(MigrationError, match="duplicate version 1"):
        sort_and_connect_migrations([Migration(1, "a.sql"), Migration(1, "b.sql")])


def test_no_migration_files_found(tmp_path):
    (tmp_path / "migrations-test").mkdir()
    with pytest.raises(NoMigrationFilesError, match="no migration files found"):
        collect_migrations_fs(tmp_path, "migrations-test", 0, MAX_VERSION, None)


def test_missing_directory(tmp_path):
    with pytest.raises(MigrationError, match="nope directory does not exist"):
        collect_migrations_fs(tmp_path, "nope", 0, MAX_VERSION, None)


def test_filesystem_registered_with_single_dirpath(tmp_path):
    registered = _registered("09081_a.go", "09082_b.go")
    _touch(tmp_path / "migrations" / "dir1", "09081_a.go", "09082_b.go", "19081_a.go", "19082_b.go")
    found = collect_migrations_fs(tmp_path, "migrations/dir1", 0, MAX_VERSION, registered)
    assert [m.version for m in found] == [9081, 9082, 19081, 19082]


def test_filesystem_registered_with_multiple_dirpath(tmp_path):
    registered = _registered("00001_a.go", "00002_b.go", "01111_c.go")
    _touch(tmp_path / "migrations" / "dir1", "00001_a.go", "00002_b.go")
    _touch(tmp_path / "migrations" / "dir2", "01111_c.go")
    first = collect_migrations_fs(tmp_path, "migrations/dir1", 0, MAX_VERSION, registered)
    assert [m.version for m in first] == [1, 2]
    second = collect_migrations_fs(tmp_path, "migrations/dir2", 0, MAX_VERSION, registered)
    assert [m.version for m in second] == [1111]


def test_empty_filesystem_registered_manually(tmp_path):
    registered = _registered("00101_a.go", "00102_b.go")
    (tmp_path / "migrations").mkdir()
    found = collect_migrations_fs(tmp_path, "migrations", 0, MAX_VERSION, registered)
    assert [m.version for m in found] == [101, 102]


def test_unregistered_go_migrations(tmp_path):
    registered = _registered("00001_a.go", "00999_c.go")
    _touch(tmp_path / "migrations" / "dir1", "00001_a.go", "00998_b.go", "00999_c.go")
    found = collect_migrations_fs(tmp_path, "migrations/dir1", 0, MAX_VERSION, registered)
    assert [m.version for m in found] == [1, 998, 999]
    assert [m.registered for m in found] == [True, False, True]
    assert found[1].source == "migrations/dir1/00998_b.go"


def test_with_skipped_go_files(tmp_path):
    registered = _registered("00001_a.go")
    _touch(
        tmp_path / "migrations" / "dir1",
        "00001_a.go",
        "00002_b.sql",
        "00999_c_test.go",
        "embed.go",
    )
    found = collect_migrations_fs(tmp_path, "migrations/dir1", 0, MAX_VERSION, registered)
    assert [m.version for m in found] == [1, 2]
    assert [m.registered for m in found] == [True, False]


def test_current_and_target(tmp_path):
    registered = _registered("01001_a.go", "01003_c.go")
    _touch(tmp_path / "migrations" / "dir1", "01001_a.go", "01002_b.sql", "01003_c.go")
    found = collect_migrations_fs(tmp_path, "migrations/dir1", 1001, 1003, registered)
    assert [m.version for m in found] == [1002, 1003]


def test_bad_registered_source(tmp_path):
    (tmp_path / "migrations").mkdir()
    registered = {1: Migration(1, "not_a_migration.txt", registered=True)}
    with pytest.raises(MigrationError, match="could not parse go migration file"):
        collect_migrations_fs(tmp_path, "migrations", 0, MAX_VERSION, registered)


def test_collect_migrations_relative_to_cwd(tmp_path, monkeypatch):
    _touch(tmp_path / "db", "00001_init.sql", "00002_more.sql")
    monkeypatch.chdir(tmp_path)
    found = collect_migrations("db", 0, MAX_VERSION)
    assert [m.source for m in found] == ["db/00001_init.sql", "db/00002_more.sql"]
    assert found[0].next == 2


@pytest.mark.parametrize(
    "v, current, target, want",
    [
        (2, 1, 3, True),
        (4, 1, 3, False),
        (2, 3, 1, True),
        (4, 3, 1, False),
        (3, 1, 3, True),
        (1, 1, 3, False),
        (1, 3, 1, False),
        (1, 2, 2, False),
        (2, 2, 2, False),
        (3, 2, 2, False),
    ],
)
def test_version_filter(v, current, target, want):
    assert version_filter(v, current, target) is want


@pytest.mark.parametrize(
    "name, want",
    [("20230101_a.sql", 20230101), ("a/b/001_x.go", 1), ("42_only.sql", 42)],
)
def test_numeric_component(name, want):
    assert numeric_component(name) == want


@pytest.mark.parametrize(
    "name, message",
    [
        ("001_x.txt", "extension"),
        ("abc.sql", "separator"),
        ("000_x.sql", "greater than zero"),
        ("abc_x.sql", "failed to parse version"),
    ],
)
def test_numeric_component_errors(name, message):
    with pytest.raises(ValueError, match=message):
        numeric_component(name)


def _migrations(*versions):
    return sort_and_connect_migrations(Migration(v, f"{v}_m.sql") for v in versions)


def test_lookup_methods():
    ms = _migrations(1, 3, 5)
    assert ms.current(3).version == 3
    assert ms.next(3).version == 5
    assert ms.previous(3).version == 1
    assert ms.last().version == 5
    with pytest.raises(NoCurrentVersionError):
        ms.current(2)
    with pytest.raises(NoNextVersionError):
        ms.next(5)
    with pytest.raises(NoNextVersionError):
        ms.previous(1)
    with pytest.raises(NoNextVersionError):
        Migrations().last()


def test_versioned_and_timestamped():
    ms = _migrations(1, 2, 19700101000000, 20230101120000, 20231301000000)
    assert [m.version for m in ms.versioned()] == [1, 2, 20231301000000]
    assert [m.version for m in ms.timestamped()] == [20230101120000]


def test_ensure_db_version_creates_table():
    conn = sqlite3.connect(":memory:")
    store = new_store("sqlite3")
    assert ensure_db_version(conn, store, "versions") == 0
    rows = store.list_migrations(conn, "versions")
    assert [(r.version_id, r.is_applied) for r in rows] == [(0, True)]
    assert ensure_db_version(conn, store, "versions") == 0


def test_ensure_db_version_reads_latest_applied():
    conn = sqlite3.connect(":memory:")
    store = new_store("sqlite3")
    ensure_db_version(conn, store, "versions")
    store.insert_version_no_tx(conn, "versions", 1)
    store.insert_version_no_tx(conn, "versions", 2)
    assert get_db_version(conn, store, "versions") == 2
    conn.execute("INSERT INTO versions (version_id, is_applied) VALUES (3, 0)")
    conn.commit()
    assert get_db_version(conn, store, "versions") == 2


def test_ensure_db_version_latest_record_wins():
    conn = sqlite3.connect(":memory:")
    store = new_store("sqlite3")
    conn.execute(Sqlite3().create_table("versions"))
    conn.execute("INSERT INTO versions (version_id, is_applied) VALUES (5, 1)")
    conn.execute("INSERT INTO versions (version_id, is_applied) VALUES (5, 0)")
    conn.commit()
    with pytest.raises(NoNextVersionError):
        ensure_db_version(conn, store, "versions")


class _BrokenStore:
    def list_migrations(self, db, table_name):
        raise RuntimeError("list failed")

    def create_version_table(self, tx, table_name):
        raise RuntimeError("create failed")

    def insert_version(self, tx, table_name, version):
        raise AssertionError("not reached")


def test_ensure_db_version_reports_both_errors():
    conn = sqlite3.connect(":memory:")
    with pytest.raises(MigrationError) as info:
        ensure_db_version(conn, _BrokenStore(), "versions")
    assert str(info.value) == "list failed; create failed"