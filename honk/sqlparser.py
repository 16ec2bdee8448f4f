"""Splitting annotated SQL migration files into individual statements."""

from __future__ import annotations

import json
import logging
import os
import re
from dataclasses import dataclass, field
from enum import Enum, IntEnum
from pathlib import Path
from typing import IO, Union

_log = logging.getLogger(__name__)

MAX_LINE_SIZE = 4 * 1024 * 1024

Source = Union[str, bytes, bytearray, IO[str], IO[bytes]]


class Direction(str, Enum):
    """Which half of a migration to extract."""

    UP = "up"
    DOWN = "down"

    @classmethod
    def from_bool(cls, b):
        return cls.UP if b else cls.DOWN

    def to_bool(self):
        return self is Direction.UP

    def __str__(self):
        return self.value


class Annotation(Enum):
    """The supported ``-- +goose`` annotations."""

    UP = "Up"
    DOWN = "Down"
    STATEMENT_BEGIN = "StatementBegin"
    STATEMENT_END = "StatementEnd"
    NO_TRANSACTION = "NO TRANSACTION"
    ENVSUB_ON = "ENVSUB ON"
    ENVSUB_OFF = "ENVSUB OFF"


class SQLParseError(ValueError):
    """Raised when a SQL migration cannot be parsed."""


@dataclass
class ParsedSQL:
    """Statements of both directions of one SQL migration."""

    use_tx: bool = False
    up: list[str] = field(default_factory=list)
    down: list[str] = field(default_factory=list)


class _State(IntEnum):
    START = 0
    UP = 1
    STATEMENT_BEGIN_UP = 2
    STATEMENT_END_UP = 3
    DOWN = 4
    STATEMENT_BEGIN_DOWN = 5
    STATEMENT_END_DOWN = 6


_UP_STATES = (_State.UP, _State.STATEMENT_BEGIN_UP, _State.STATEMENT_END_UP)
_DOWN_STATES = (_State.DOWN, _State.STATEMENT_BEGIN_DOWN, _State.STATEMENT_END_DOWN)


class _Machine:
    def __init__(self, verbose: bool) -> None:
        self.state = _State.START
        self.verbose = verbose

    def set(self, new: _State) -> None:
        self.note(f"set {int(self.state)} => {int(new)}")
        self.state = new

    def note(self, message: str) -> None:
        if self.verbose:
            _log.debug("StateMachine: %s", message)


def _quote(s: str) -> str:
    return json.dumps(s, ensure_ascii=False)


def extract_annotation(line: str) -> Annotation:
    """Return the annotation of a ``-- +goose ...`` line."""
    if line.startswith((" ", "\t")):
        raise SQLParseError(f"{_quote(line)} contains leading whitespace: invalid annotation")
    cmd = line.replace("--", "").replace("+goose", "", 1)
    if "+goose" in cmd:
        raise SQLParseError(
            f"{_quote(cmd)} contains multiple '+goose' annotations: invalid annotation"
        )
    cmd = cmd.strip()
    if not cmd:
        raise SQLParseError("empty annotation")
    folded = cmd.casefold()
    for annotation in Annotation:
        if annotation.value.casefold() == folded:
            return annotation
    raise SQLParseError(f"{_quote(cmd)} not supported: invalid annotation")


def ends_with_semicolon(line: str) -> bool:
    """Whether the last word before any ``--`` comment ends with a semicolon."""
    prev = ""
    for word in line.split():
        if word.startswith("--"):
            break
        prev = word
    return prev.endswith(";")


class _InterpolationError(Exception):
    pass


_NAME = re.compile(r"[A-Za-z_][A-Za-z0-9_]*")
_OPERATORS = (":-", ":=", ":?", ":+", "-", "=", "?", "+")


def _interpolate(text: str) -> str:
    out: list[str] = []
    i, n = 0, len(text)
    while i < n:
        ch = text[i]
        if ch != "$" or i + 1 >= n:
            out.append(ch)
            i += 1
            continue
        nxt = text[i + 1]
        if nxt == "$":
            out.append("$")
            i += 2
            continue
        if nxt == "{":
            depth, j = 1, i + 2
            while j < n and depth:
                if text[j] == "{":
                    depth += 1
                elif text[j] == "}":
                    depth -= 1
                j += 1
            if depth:
                raise _InterpolationError(f"unterminated variable expansion in {text[i:]!r}")
            out.append(_expand(text[i + 2 : j - 1]))
            i = j
            continue
        match = _NAME.match(text, i + 1)
        if match:
            out.append(os.environ.get(match.group(), ""))
            i = match.end()
            continue
        out.append("$")
        i += 1
    return "".join(out)


def _expand(expr: str) -> str:
    match = _NAME.match(expr)
    if not match:
        raise _InterpolationError(f"invalid variable expansion ${{{expr}}}")
    name = match.group()
    rest = expr[match.end() :]
    value = os.environ.get(name)
    if not rest:
        return value or ""
    op = next((candidate for candidate in _OPERATORS if rest.startswith(candidate)), None)
    if op is None:
        raise _InterpolationError(f"invalid variable expansion ${{{expr}}}")
    arg = rest[len(op) :]
    unset = value is None or (op.startswith(":") and value == "")
    kind = op[-1]
    if kind in "-=":
        return _interpolate(arg) if unset else value
    if kind == "?":
        if unset:
            message = _interpolate(arg) or "not set"
            raise _InterpolationError(f"${name}: {message}")
        return value
    return "" if unset else _interpolate(arg)


def _read_text(source: Source) -> str:
    if isinstance(source, str):
        return source
    if isinstance(source, (bytes, bytearray)):
        return bytes(source).decode("utf-8")
    data = source.read()
    return data.decode("utf-8") if isinstance(data, (bytes, bytearray)) else data


def _split_lines(text: str) -> list[str]:
    if not text:
        return []
    lines = text.split("\n")
    if text.endswith("\n"):
        lines.pop()
    return [line[:-1] if line.endswith("\r") else line for line in lines]


def _missing_semicolon(state: _State, direction: Direction, remaining: str) -> SQLParseError:
    return SQLParseError(
        f"failed to parse migration: state {int(state)}, direction: {direction}: "
        f"unexpected unfinished SQL query: {_quote(remaining)}: missing semicolon?"
    )


def parse_sql_migration(source: Source, direction, debug: bool = False) -> tuple[list[str], bool]:
    """Split a migration into the statements of one direction.

    Returns the statements and whether they should run in a transaction.
    """
    direction = Direction(direction)
    lines = _split_lines(_read_text(source))
    machine = _Machine(debug)
    use_tx = True
    use_envsub = False
    stmts: list[str] = []
    buf: list[str] = []

    def flush(message: str) -> None:
        stmts.append("".join(buf).strip())
        buf.clear()
        machine.note(message)

    for line in lines:
        if len(line.encode("utf-8")) > MAX_LINE_SIZE:
            raise SQLParseError("failed to scan migration: token too long")
        if debug:
            _log.debug("%s", line)
        stripped = line.strip()
        if machine.state == _State.START and stripped == "":
            continue

        if stripped.startswith("--") and "+goose" in line:
            try:
                cmd = extract_annotation(line)
            except SQLParseError as exc:
                raise SQLParseError(
                    f"failed to parse annotation line {_quote(line)}: {exc}"
                ) from exc

            if cmd is Annotation.UP:
                if machine.state != _State.START:
                    raise SQLParseError(
                        f"duplicate '-- +goose Up' annotations; stateMachine={int(machine.state)}"
                    )
                machine.set(_State.UP)
                continue
            if cmd is Annotation.DOWN:
                if machine.state not in (_State.UP, _State.STATEMENT_END_UP):
                    raise SQLParseError(
                        "must start with '-- +goose Up' annotation, "
                        f"stateMachine={int(machine.state)}"
                    )
                remaining = "".join(buf).strip()
                if remaining:
                    raise _missing_semicolon(machine.state, direction, remaining)
                machine.set(_State.DOWN)
                continue
            if cmd is Annotation.STATEMENT_BEGIN:
                if machine.state in (_State.UP, _State.STATEMENT_END_UP):
                    machine.set(_State.STATEMENT_BEGIN_UP)
                elif machine.state in (_State.DOWN, _State.STATEMENT_END_DOWN):
                    machine.set(_State.STATEMENT_BEGIN_DOWN)
                else:
                    raise SQLParseError(
                        "'-- +goose StatementBegin' must be defined after '-- +goose Up' or "
                        f"'-- +goose Down' annotation, stateMachine={int(machine.state)}"
                    )
                continue
            if cmd is Annotation.STATEMENT_END:
                if machine.state == _State.STATEMENT_BEGIN_UP:
                    machine.set(_State.STATEMENT_END_UP)
                elif machine.state == _State.STATEMENT_BEGIN_DOWN:
                    machine.set(_State.STATEMENT_END_DOWN)
                else:
                    raise SQLParseError(
                        "'-- +goose StatementEnd' must be defined after '-- +goose StatementBegin'"
                    )
            elif cmd is Annotation.NO_TRANSACTION:
                use_tx = False
                continue
            elif cmd is Annotation.ENVSUB_ON:
                use_envsub = True
                continue
            elif cmd is Annotation.ENVSUB_OFF:
                use_envsub = False
                continue

        # Leading comments and empty lines before a statement are ignored.
        if not buf and (stripped.startswith("--") or line == ""):
            machine.note("ignore comment")
            continue

        if machine.state not in (_State.STATEMENT_END_UP, _State.STATEMENT_END_DOWN):
            if use_envsub:
                try:
                    line = _interpolate(line)
                except _InterpolationError as exc:
                    raise SQLParseError(
                        f"variable substitution failed: {exc}:\n{line}"
                    ) from exc
            buf.append(line + "\n")

        if machine.state in _UP_STATES:
            if direction is Direction.DOWN:
                buf.clear()
                machine.note("ignore down")
                continue
        elif machine.state in _DOWN_STATES:
            if direction is Direction.UP:
                buf.clear()
                machine.note("ignore up")
                continue
        else:
            raise SQLParseError(
                f"failed to parse migration: unexpected state {int(machine.state)} "
                f"on line {_quote(line)}"
            )

        if machine.state == _State.UP:
            if ends_with_semicolon(line):
                flush("store simple Up query")
        elif machine.state == _State.DOWN:
            if ends_with_semicolon(line):
                flush("store simple Down query")
        elif machine.state == _State.STATEMENT_END_UP:
            flush("store Up statement")
            machine.set(_State.UP)
        elif machine.state == _State.STATEMENT_END_DOWN:
            flush("store Down statement")
            machine.set(_State.DOWN)

    if machine.state == _State.START:
        raise SQLParseError(
            "failed to parse migration: must start with '-- +goose Up' annotation"
        )
    if machine.state in (_State.STATEMENT_BEGIN_UP, _State.STATEMENT_BEGIN_DOWN):
        raise SQLParseError(
            "failed to parse migration: missing '-- +goose StatementEnd' annotation"
        )
    remaining = "".join(buf).strip()
    if remaining:
        raise _missing_semicolon(machine.state, direction, remaining)
    return stmts, use_tx


def parse_all_from_fs(root, filename: str, debug: bool = False) -> ParsedSQL:
    """Parse both directions of the migration ``filename`` under ``root``.

    Raises FileNotFoundError if the file does not exist.
    """
    data = (Path(root) / filename).read_bytes()
    results = {}
    for direction in Direction:
        try:
            results[direction] = parse_sql_migration(data, direction, debug)
        except SQLParseError as exc:
            raise SQLParseError(f"failed to parse {filename}: {exc}") from exc
    up, use_tx = results[Direction.UP]
    down, _ = results[Direction.DOWN]
    return ParsedSQL(use_tx=use_tx, up=up, down=down)