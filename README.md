# honk

Building blocks for database schema migrations written as plain, annotated
SQL files.

honk reads numbered migration files such as `00001_create_users.sql`, splits
them into the statements to run going up and going down, works out which
versions still need applying, and reads and writes a version table using the
SQL of many database dialects.

## Installation

```
pip install .
```

To run the test suite:

```
pip install ".[test]"
pytest
```

honk has no runtime dependencies. Database access goes through any DB-API
connection you pass in (for example `sqlite3`).

## Writing SQL migrations

Each file starts with a `-- +goose Up` annotation and may have a
`-- +goose Down` section:

```sql
-- +goose Up
CREATE TABLE post (id int NOT NULL, title text, PRIMARY KEY(id));

-- +goose Down
DROP TABLE post;
```

- Statements end with a semicolon at the end of a line (a trailing `--`
  comment is allowed).
- Bodies that contain semicolons, such as PL/pgSQL functions, go between
  `-- +goose StatementBegin` and `-- +goose StatementEnd`.
- `-- +goose NO TRANSACTION` marks the file as running outside a
  transaction.
- `-- +goose ENVSUB ON` and `-- +goose ENVSUB OFF` turn substitution of
  environment variables (`$VAR`, `${VAR}`, `${VAR:-default}`,
  `${VAR?message}` and similar forms) on and off.

Annotations are matched case-insensitively and must not be indented.

## Parsing (`honk.sqlparser`)

```python
from pathlib import Path

from honk.sqlparser import Direction, parse_all_from_fs, parse_sql_migration

with open("migrations/00001_create_post.sql") as fh:
    statements, use_tx = parse_sql_migration(fh, Direction.UP, False)

parsed = parse_all_from_fs(Path("migrations"), "00001_create_post.sql", False)
print(parsed.up, parsed.down, parsed.use_tx)
```

`parse_sql_migration` accepts a string, bytes or an open file. Malformed
files raise `SQLParseError`; `parse_all_from_fs` raises
`FileNotFoundError` when the file is missing. `extract_annotation` and
`ends_with_semicolon` are available for single lines. With `debug` true,
parser progress is logged at debug level through the standard `logging`
module.

## Collecting migrations (`honk.migrate`)

```python
from honk.migrate import MAX_VERSION, collect_migrations, numeric_component

print(numeric_component("00001_create_post.sql"))  # 1

migrations = collect_migrations("migrations", 0, MAX_VERSION, {})
for m in migrations:
    print(m.version, m.source, m.previous, m.next)
```

`collect_migrations_fs(root, dirpath, current, target, registered)` collects
`.sql` and `.go` files in `dirpath` under `root` whose versions lie between
`current` and `target`, sorts them and links each `Migration` to its
neighbours. `registered` maps versions to `Migration` objects registered in
code; `.go` files on disk without a registered entry are included with
`registered=False`, and `*_test.go` files are skipped. `collect_migrations`
does the same relative to the working directory.

`Migrations` (a list) offers `current`, `next`, `previous`, `last`,
`versioned` and `timestamped`. Errors are `MigrationError` and its
subclasses `NoMigrationFilesError`, `NoCurrentVersionError` and
`NoNextVersionError`.

## Planning what to apply (`honk.resolve`)

```python
from honk.resolve import MAX_VERSION, up_versions

print(up_versions([1, 2, 3, 4], [1, 2], MAX_VERSION, False))  # [3, 4]
```

Versions lower than the highest applied version that were never applied are
"missing": `up_versions` raises `MissingMigrationsError` for them unless
`allow_missing` is true, in which case they are returned along with the new
versions. Only versions up to and including `target` are considered.

## Version tables and dialects (`honk.store`, `honk.queries`)

```python
import sqlite3

from honk.migrate import ensure_db_version
from honk.store import Dialect, new_store

store = new_store(Dialect.SQLITE3)
conn = sqlite3.connect(":memory:")
print(ensure_db_version(conn, store, "goose_db_version"))  # 0
```

`ensure_db_version` (and its alias `get_db_version`) creates the version
table with an initial version 0 if it cannot be listed, and otherwise returns
the latest applied version.

`Store` has `create_version_table`, `insert_version`,
`insert_version_no_tx`, `delete_version`, `delete_version_no_tx`,
`get_migration` (raises `LookupError` when there is no row) and
`list_migrations`. `StoreController` wraps a store and adds
`table_exists`, which raises `NotImplementedError` when the wrapped store
has none.

The SQL for each dialect lives in `honk.queries`: `Postgres`, `Mysql`,
`Sqlite3`, `Sqlserver`, `Redshift`, `Tidb`, `Clickhouse`, `Vertica`, `Ydb`,
`Turso` and `Starrocks`. `Postgres` and `Mysql` also provide
`table_exists`; `QueryController.table_exists` returns `""` for the others.
Placeholders are written in each dialect's own style, so pass a connection
whose driver understands them.

## Locking (`honk.lock`)

```python
from honk.lock import new_postgres_session_locker, with_lock_id, with_lock_timeout

locker = new_postgres_session_locker(with_lock_id(42), with_lock_timeout(1, 4))
locker.session_lock(conn)
try:
    ...
finally:
    locker.session_unlock(conn)
```

The locker takes a PostgreSQL session-level advisory lock, retrying every
period seconds up to the failure threshold (defaults: every 5 s up to 60
times to lock, every 2 s up to 30 times to unlock), and raises `LockError`
when it gives up. Its queries use the `%s` parameter style.
`with_unlock_timeout` configures unlocking.

## Statistics (`honk.stats`)

```python
from honk.stats import FileWalker, gather_stats

for s in gather_stats(FileWalker("migrations/00001_a.sql", "migrations/00002_b.go")):
    print(s.file_name, s.version, s.tx, s.up_count, s.down_count)
```

For `.sql` files the counts are the number of up and down statements. For
`.go` files, `parse_go_file` reads the `init` function's
`AddMigration`/`AddMigrationNoTx`/`AddMigrationContext`/`AddMigrationNoTxContext`
call and counts 1 for each function argument that is not `nil`. Other file
extensions are ignored by `FileWalker`.

## Logging (`honk.logger`)

`set_logger` replaces the package logger and `get_logger` returns it.
`StdLogger` writes timestamped lines to standard error (its `fatalf` exits
with status 1); `NopLogger` discards everything.

## What honk does not do

honk provides the pieces, not a migration runner: it has no command-line
tool, and nothing in it applies or rolls back migrations against a database
on its own. `.go` migration files are collected and inspected but never
executed.