"""Semantic version comparison, platform compatibility and settings migrations."""

from __future__ import annotations

import copy
import logging
from dataclasses import dataclass
from typing import Any, Callable

from pydantic import BaseModel

logger = logging.getLogger(__name__)

_WILDCARDS = {"x", "X", "*"}


class MigrationError(RuntimeError):
    """Raised when a migration script fails; the caller must roll back."""


class CompatibilityResult(BaseModel):
    compatible: bool
    reason: str = ""


def _split(version: str) -> list[str]:
    raw = str(version or "").strip()
    if raw[:1] in ("v", "V"):
        raw = raw[1:]
    # Ignore pre-release and build metadata
    raw = raw.split("-", 1)[0].split("+", 1)[0]
    parts = raw.split(".") if raw else []
    if len(parts) > 3:
        raise ValueError(f"Invalid version: {version!r}")
    return parts + ["0"] * (3 - len(parts))


def parse_version(version: str) -> tuple[int, int, int]:
    """Parse ``major.minor.patch`` into an integer triple.

    Missing components default to 0 and ``x``/``*`` wildcards compare as 0.
    Raises ValueError for anything else that is not numeric.
    """
    values: list[int] = []
    for part in _split(version):
        if part in _WILDCARDS:
            values.append(0)
        elif part.isdigit():
            values.append(int(part))
        else:
            raise ValueError(f"Invalid version: {version!r}")
    return values[0], values[1], values[2]


def compare_versions(a: str, b: str) -> int:
    """Return -1, 0 or 1 comparing two versions numerically."""
    left, right = parse_version(a), parse_version(b)
    if left < right:
        return -1
    if left > right:
        return 1
    return 0


def is_breaking_change(from_version: str, to_version: str) -> bool:
    """A transition is breaking when the major component increases."""
    return parse_version(to_version)[0] > parse_version(from_version)[0]


def check_compatibility(
    platform_version: str,
    min_version: str | None = None,
    max_version: str | None = None,
) -> CompatibilityResult:
    """Check the host platform version against optional inclusive bounds."""
    if min_version and compare_versions(platform_version, min_version) < 0:
        return CompatibilityResult(
            compatible=False,
            reason=f"Requires platform version {min_version} or higher (current: {platform_version})",
        )
    if max_version and compare_versions(platform_version, max_version) > 0:
        return CompatibilityResult(
            compatible=False,
            reason=f"Not compatible with platform versions above {max_version} (current: {platform_version})",
        )
    return CompatibilityResult(compatible=True)


def _resolve_wildcards(pattern: str, reference: str) -> str:
    """Fill ``x``/``*`` components of ``pattern`` from ``reference``."""
    ref = parse_version(reference)
    parts = _split(pattern)
    return ".".join(
        str(ref[i]) if part in _WILDCARDS else part
        for i, part in enumerate(parts)
    )


@dataclass(frozen=True)
class MigrationScript:
    """Transforms settings from one version's shape to another's."""
    from_version: str
    to_version: str
    migrate: Callable[[dict[str, Any]], dict[str, Any]]
    description: str = ""


class VersionManager:
    """Holds the registered migration scripts for one package."""

    def __init__(self, package_id: str = "", migrations: list[MigrationScript] | None = None):
        self.package_id = package_id
        self._migrations: list[MigrationScript] = []
        for script in migrations or []:
            self.register_migration(script)

    @property
    def migrations(self) -> list[MigrationScript]:
        return list(self._migrations)

    def register_migration(self, script: MigrationScript) -> None:
        """Register a script, keeping the list sorted by ``from_version``.

        The sort is stable, so scripts sharing a ``from_version`` stay in
        registration order.
        """
        # Validate eagerly so a bad script fails at registration, not mid-chain
        parse_version(script.from_version)
        parse_version(script.to_version)
        self._migrations.append(script)
        self._migrations.sort(key=lambda s: parse_version(s.from_version))

    def migration_path(self, from_version: str, to_version: str) -> list[MigrationScript]:
        """Scripts whose range lies within ``from_version``..``to_version``."""
        path = []
        for script in self._migrations:
            start = _resolve_wildcards(script.from_version, from_version)
            if compare_versions(start, from_version) < 0:
                continue
            if compare_versions(script.to_version, to_version) > 0:
                continue
            path.append(script)
        return path

    def migrate_settings(
        self,
        settings: dict[str, Any],
        from_version: str,
        to_version: str,
    ) -> dict[str, Any]:
        """Run the migration chain, threading each script's output into the next.

        The input is never mutated. Any failure aborts the chain and raises
        MigrationError naming both endpoints.
        """
        current = copy.deepcopy(settings)
        for script in self.migration_path(from_version, to_version):
            logger.info(
                "Running migration %s -> %s for %s",
                script.from_version, script.to_version, self.package_id or "package",
            )
            try:
                current = script.migrate(current)
            except Exception as e:
                raise MigrationError(
                    f"Migration from {from_version} to {to_version} failed "
                    f"in step {script.from_version} -> {script.to_version}: {e}"
                ) from e
        return current
