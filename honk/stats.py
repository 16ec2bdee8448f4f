"""Statistics about migration files: statement counts and transaction modes."""

from __future__ import annotations

import io
import os
import re
from dataclasses import dataclass
from pathlib import PurePath
from typing import IO, Iterator

from honk.migrate import numeric_component
from honk.sqlparser import Direction, parse_sql_migration

_REGISTER = "AddMigration"
_REGISTER_NO_TX = "AddMigrationNoTx"
_REGISTER_CONTEXT = "AddMigrationContext"
_REGISTER_NO_TX_CONTEXT = "AddMigrationNoTxContext"
_TX_FUNCS = (_REGISTER, _REGISTER_CONTEXT)
_NO_TX_FUNCS = (_REGISTER_NO_TX, _REGISTER_NO_TX_CONTEXT)
_ALL_FUNCS = (_REGISTER, _REGISTER_NO_TX, _REGISTER_CONTEXT, _REGISTER_NO_TX_CONTEXT)

_OPENERS = {"(": ")", "[": "]", "{": "}"}
_CLOSERS = {")", "]", "}"}
_IDENT_RE = re.compile(r"[A-Za-z_]\w*")
_FUNC_RE = re.compile(r"func\s*(?:\([^()]*\)\s*)?([A-Za-z_]\w*)\s*(?:\[[^\]]*\]\s*)?\(")
_SELECTOR_CALL_RE = re.compile(r"(?:[A-Za-z_]\w*\s*\.\s*)+([A-Za-z_]\w*)\s*\(")


@dataclass
class GoMigration:
    """What the init function of a Go migration file registers."""

    name: str = ""
    use_tx: bool | None = None
    up_func_name: str = ""
    down_func_name: str = ""


@dataclass(frozen=True)
class SQLMigration:
    """Statement counts and transaction mode of a SQL migration file."""

    use_tx: bool
    up_count: int
    down_count: int


@dataclass(frozen=True)
class Stats:
    """Statistics for one migration file."""

    file_name: str
    version: int
    tx: bool
    up_count: int
    down_count: int


class FileWalker:
    """Yields the ``.sql`` and ``.go`` files among the given names, opened for reading."""

    def __init__(self, *filenames: str | os.PathLike[str]) -> None:
        self.filenames = [os.fspath(name) for name in filenames]

    def walk(self) -> Iterator[tuple[str, IO[str]]]:
        """Yield ``(filename, stream)`` pairs; each stream is closed after use."""
        for filename in self.filenames:
            if PurePath(filename).suffix not in (".sql", ".go"):
                continue
            with open(filename, encoding="utf-8") as stream:
                yield filename, stream


def _read(source: str | IO[str]) -> str:
    return source if isinstance(source, str) else source.read()


def _sanitize(src: str) -> str:
    """Drop comments and blank out literals so only code structure remains."""
    out: list[str] = []
    i, n = 0, len(src)
    while i < n:
        ch = src[i]
        if src.startswith("//", i):
            end = src.find("\n", i)
            i = n if end < 0 else end
        elif src.startswith("/*", i):
            end = src.find("*/", i + 2)
            if end < 0:
                raise ValueError("comment not terminated")
            out.append("\n" if "\n" in src[i:end] else " ")
            i = end + 2
        elif ch == "`":
            end = src.find("`", i + 1)
            if end < 0:
                raise ValueError("raw string literal not terminated")
            out.append("``")
            i = end + 1
        elif ch in "\"'":
            j = i + 1
            while j < n and src[j] != ch:
                if src[j] == "\n":
                    raise ValueError("string literal not terminated")
                j += 2 if src[j] == "\\" else 1
            if j >= n:
                raise ValueError("string literal not terminated")
            out.append(ch * 2)
            i = j + 1
        else:
            out.append(ch)
            i += 1
    return "".join(out)


def _matching(text: str, open_index: int) -> int:
    """Return the index of the bracket closing the one at ``open_index``."""
    stack: list[str] = []
    for index in range(open_index, len(text)):
        ch = text[index]
        if ch in _OPENERS:
            stack.append(_OPENERS[ch])
        elif ch in _CLOSERS:
            if not stack or stack.pop() != ch:
                raise ValueError(f"unexpected {ch!r}")
            if not stack:
                return index
    raise ValueError("unbalanced brackets")


def _split_top_level(text: str, separators: str) -> list[str]:
    parts: list[str] = []
    depth = 0
    start = 0
    for index, ch in enumerate(text):
        if ch in _OPENERS:
            depth += 1
        elif ch in _CLOSERS:
            depth -= 1
            if depth < 0:
                raise ValueError(f"unexpected {ch!r}")
        elif depth == 0 and ch in separators:
            parts.append(text[start:index])
            start = index + 1
    if depth != 0:
        raise ValueError("unbalanced brackets")
    parts.append(text[start:])
    return parts


def _top_level_funcs(code: str) -> Iterator[re.Match[str]]:
    depth = 0
    for index, ch in enumerate(code):
        if ch in _OPENERS:
            depth += 1
        elif ch in _CLOSERS:
            depth -= 1
        elif (
            depth == 0
            and code.startswith("func", index)
            and (index == 0 or not (code[index - 1].isalnum() or code[index - 1] == "_"))
        ):
            match = _FUNC_RE.match(code, index)
            if match:
                yield match


def _init_body(code: str) -> list[str] | None:
    """Return the statements of the first top-level ``init`` function, or None without a body."""
    for match in _top_level_funcs(code):
        if match.group(1) != "init":
            continue
        params_end = _matching(code, match.end() - 1)
        rest = code[params_end + 1 :]
        stripped = rest.lstrip(" \t\r\n")
        if not stripped.startswith("{"):
            return None
        brace = params_end + 1 + (len(rest) - len(stripped))
        close = _matching(code, brace)
        body = code[brace + 1 : close]
        return [s.strip() for s in _split_top_level(body, ";\n") if s.strip()]
    raise ValueError("no init function")


def _argument_name(arg: str) -> str:
    if not _IDENT_RE.fullmatch(arg):
        raise ValueError(f"failed to assert argument identifier: got {arg!r}")
    return arg


def _parse_init(statements: list[str] | None) -> GoMigration:
    if statements is None:
        raise ValueError("no function body")
    if not statements:
        raise ValueError("no registered goose functions")
    migration = GoMigration()
    for statement in statements:
        call = _SELECTOR_CALL_RE.match(statement)
        if call is None or _matching(statement, call.end() - 1) != len(statement) - 1:
            continue
        func_name = call.group(1)
        if func_name in _TX_FUNCS:
            migration.use_tx = True
        elif func_name in _NO_TX_FUNCS:
            migration.use_tx = False
        else:
            continue
        if migration.name:
            raise ValueError(
                "found duplicate registered functions:\n"
                f"previous: {migration.name}\ncurrent: {func_name}"
            )
        migration.name = func_name
        args = [a.strip() for a in _split_top_level(statement[call.end() : -1], ",")]
        if args and not args[-1]:
            args.pop()
        if len(args) != 2:
            raise ValueError(f"registered goose functions have 2 arguments: got {len(args)}")
        migration.up_func_name = _argument_name(args[0])
        migration.down_func_name = _argument_name(args[1])

    if migration.name not in _ALL_FUNCS:
        raise ValueError("goose register function must be one of: " + ", ".join(_ALL_FUNCS))
    if migration.use_tx is None:
        raise ValueError("validation error: failed to identify transaction: got nil bool")
    if not migration.up_func_name:
        raise ValueError("validation error: up function is empty string")
    if not migration.down_func_name:
        raise ValueError("validation error: down function is empty string")
    return migration


def parse_go_file(source: str | IO[str]) -> GoMigration:
    """Find what the ``init`` function of Go migration source registers."""
    code = _sanitize(_read(source))
    return _parse_init(_init_body(code))


def parse_sql_file(source: str | IO[str], debug: bool = False) -> SQLMigration:
    """Count the up and down statements of a SQL migration."""
    text = _read(source)
    up, tx_up = parse_sql_migration(io.StringIO(text), Direction.UP, debug)
    down, tx_down = parse_sql_migration(io.StringIO(text), Direction.DOWN, debug)
    if tx_up != tx_down:
        raise ValueError("up and down statements must have the same transaction mode")
    return SQLMigration(use_tx=tx_up, up_count=len(up), down_count=len(down))


def _count(func_name: str) -> int:
    return 0 if func_name == "nil" else 1


def gather_stats(walker: FileWalker, debug: bool = False) -> list[Stats]:
    """Return statistics for every file the walker yields, in its order."""
    stats: list[Stats] = []
    for filename, stream in walker.walk():
        try:
            version = numeric_component(filename)
        except ValueError as exc:
            raise ValueError(f'failed to get version from file "{filename}": {exc}') from exc
        up = down = 0
        tx = False
        suffix = PurePath(filename).suffix
        try:
            if suffix == ".sql":
                sql = parse_sql_file(stream, debug)
                up, down, tx = sql.up_count, sql.down_count, sql.use_tx
            elif suffix == ".go":
                go = parse_go_file(stream)
                up, down = _count(go.up_func_name), _count(go.down_func_name)
                tx = bool(go.use_tx)
        except Exception as exc:
            raise ValueError(f'failed to parse file "{filename}": {exc}') from exc
        stats.append(Stats(filename, version, tx, up, down))
    return stats