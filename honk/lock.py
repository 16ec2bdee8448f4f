"""Session-level database locks that serialise migration runs."""

from __future__ import annotations

import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Callable

# CRC-64 (ECMA) checksum of the tool's name, so the lock is unique to it.
DEFAULT_LOCK_ID = 5887940537704921958


class LockNotImplementedError(NotImplementedError):
    """The database does not support locking."""

    def __init__(self, message: str = "lock not implemented") -> None:
        super().__init__(message)


class UnlockNotImplementedError(NotImplementedError):
    """The database does not support unlocking."""

    def __init__(self, message: str = "unlock not implemented") -> None:
        super().__init__(message)


class LockError(Exception):
    """A lock or unlock attempt failed."""


class SessionLocker(ABC):
    """Locks and unlocks the database for the life of one connection.

    Both methods must be called with the same connection.
    """

    @abstractmethod
    def session_lock(self, conn: Any) -> None:
        """Acquire the lock on the connection."""

    @abstractmethod
    def session_unlock(self, conn: Any) -> None:
        """Release the lock held on the connection."""


@dataclass(frozen=True)
class Probe:
    """How often, and how many times, to retry a lock operation."""

    period_seconds: float
    failure_threshold: int


@dataclass
class SessionLockerConfig:
    """Settings for a session locker."""

    lock_id: int = DEFAULT_LOCK_ID
    lock_probe: Probe = field(default_factory=lambda: Probe(5, 60))
    unlock_probe: Probe = field(default_factory=lambda: Probe(2, 30))


SessionLockerOption = Callable[[SessionLockerConfig], None]


def _validated_probe(period: int, failure_threshold: int) -> Probe:
    if period < 1:
        raise ValueError("period must be greater than 0, minimum is 1")
    if failure_threshold < 1:
        raise ValueError("failure threshold must be greater than 0, minimum is 1")
    return Probe(period, failure_threshold)


def with_lock_id(lock_id: int) -> SessionLockerOption:
    """Use ``lock_id`` instead of DEFAULT_LOCK_ID."""

    def apply(config: SessionLockerConfig) -> None:
        config.lock_id = lock_id

    return apply


def with_lock_timeout(period: int, failure_threshold: int) -> SessionLockerOption:
    """Retry acquiring every ``period`` seconds, up to ``failure_threshold`` times."""

    def apply(config: SessionLockerConfig) -> None:
        config.lock_probe = _validated_probe(period, failure_threshold)

    return apply


def with_unlock_timeout(period: int, failure_threshold: int) -> SessionLockerOption:
    """Retry releasing every ``period`` seconds, up to ``failure_threshold`` times."""

    def apply(config: SessionLockerConfig) -> None:
        config.unlock_probe = _validated_probe(period, failure_threshold)

    return apply


@dataclass
class PostgresSessionLocker(SessionLocker):
    """Uses PostgreSQL's exclusive session-level advisory lock."""

    lock_id: int
    lock_probe: Probe
    unlock_probe: Probe
    sleep: Callable[[float], None] = field(default=time.sleep, repr=False, compare=False)

    def _call(self, conn: Any, function: str) -> bool:
        try:
            cursor = conn.cursor()
            try:
                cursor.execute(f"SELECT {function}(%s)", (self.lock_id,))
                row = cursor.fetchone()
            finally:
                cursor.close()
            if row is None:
                raise LookupError("no rows in result set")
        except Exception as exc:
            raise LockError(f"failed to execute {function}: {exc}") from exc
        return bool(row[0])

    def _retry(self, probe: Probe, attempt: Callable[[], bool], failure: str) -> None:
        for remaining in range(probe.failure_threshold, -1, -1):
            if attempt():
                return
            if remaining:
                self.sleep(probe.period_seconds)
        raise LockError(failure)

    def session_lock(self, conn: Any) -> None:
        """Acquire the advisory lock, retrying while another session holds it."""
        self._retry(
            self.lock_probe,
            lambda: self._call(conn, "pg_try_advisory_lock"),
            "failed to acquire lock",
        )

    def session_unlock(self, conn: Any) -> None:
        """Release the advisory lock, retrying until it is released."""
        self._retry(
            self.unlock_probe,
            lambda: self._call(conn, "pg_advisory_unlock"),
            "failed to unlock session",
        )


def new_postgres_session_locker(*options: SessionLockerOption) -> PostgresSessionLocker:
    """Return a PostgreSQL session locker configured by ``options``."""
    config = SessionLockerConfig()
    for option in options:
        option(config)
    return PostgresSessionLocker(
        lock_id=config.lock_id,
        lock_probe=config.lock_probe,
        unlock_probe=config.unlock_probe,
    )