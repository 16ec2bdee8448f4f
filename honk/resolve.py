"""Working out which migration versions still need to be applied."""

from __future__ import annotations

from typing import Iterable

MAX_VERSION = 2**63 - 1


class MissingMigrationsError(Exception):
    """Versions below the database's highest version were never applied."""

    def __init__(self, missing: Iterable[int], db_max_version: int, target: int) -> None:
        self.missing = sorted(missing)
        self.db_max_version = db_max_version
        self.target = target
        noun = "migrations" if len(self.missing) > 1 else "migration"
        if len(self.missing) > 1:
            versions = "versions " + ",".join(str(v) for v in self.missing)
        else:
            versions = f"version {self.missing[0]}"
        desired = f"database version ({db_max_version})"
        if target != MAX_VERSION:
            desired += f", with target version ({target})"
        super().__init__(
            f"detected {len(self.missing)} missing (out-of-order) {noun} "
            f"lower than {desired}: {versions}"
        )


def up_versions(
    fsys_versions: Iterable[int] | None,
    db_versions: Iterable[int] | None,
    target: int,
    allow_missing: bool,
) -> list[int]:
    """Return the versions to apply, in ascending order.

    Versions lower than the highest applied version that were never applied are
    "missing"; they raise MissingMigrationsError unless ``allow_missing`` is set,
    in which case they are applied along with the new ones. Only versions up to
    and including ``target`` are considered.
    """
    fsys = sorted(fsys_versions or ())
    applied = set(db_versions or ())
    db_max = max([0, *applied])

    pending = [v for v in fsys if v not in applied]
    missing = [v for v in pending if v < db_max and v <= target]
    if missing and not allow_missing:
        raise MissingMigrationsError(missing, db_max, target)

    new = [v for v in pending if v > db_max and v <= target]
    return sorted(missing + new)