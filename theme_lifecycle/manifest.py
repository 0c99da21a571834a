"""Theme package manifest: typed structure plus explicit schema checks.

``validate_manifest`` walks the raw JSON and returns every violation it
finds, each tagged with a dotted path, instead of stopping at the first.
``parse_manifest`` only builds a PackageManifest from data that produced
no violations.
"""

from __future__ import annotations

import json
import re
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

MANIFEST_FILENAME = "manifest.json"

ID_RE = re.compile(r"^[a-z0-9-]+$")
VERSION_RE = re.compile(r"^\d+\.\d+\.\d+$")

NAME_MAX_LENGTH = 50
DESCRIPTION_MAX_LENGTH = 200

ENTRY_POINT_KEYS = ("main", "sections", "blocks", "styles", "config")
SETTINGS_SLOT_KEYS = ("colors", "typography", "layout")


class ManifestViolation(BaseModel):
    path: str
    message: str

    def __str__(self) -> str:
        return f"{self.path} - {self.message}" if self.path else self.message


class ManifestError(ValueError):
    """Raised when manifest data cannot be parsed into a PackageManifest."""

    def __init__(self, violations: list[ManifestViolation]):
        self.violations = violations
        super().__init__("; ".join(str(v) for v in violations) or "Invalid manifest")


class EntryPoints(BaseModel):
    main: str | None = None
    sections: str | None = None
    blocks: str | None = None
    styles: str | None = None
    config: str | None = None


class SettingsSlots(BaseModel):
    colors: list[str] = []
    typography: list[str] = []
    layout: list[str] = []


class PackageManifest(BaseModel):
    """Declarative metadata for a theme package."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    id: str
    name: str
    version: str
    author: str | None = None
    description: str | None = None
    preview: str | None = None
    min_platform_version: str | None = Field(default=None, alias="minPlatformVersion")
    max_platform_version: str | None = Field(default=None, alias="maxPlatformVersion")
    entry_points: EntryPoints | None = Field(default=None, alias="entryPoints")
    dependencies: dict[str, str] = {}
    peer_dependencies: dict[str, str] = Field(default_factory=dict, alias="peerDependencies")
    capabilities: list[str] = []
    settings: SettingsSlots | None = None


# --- Explicit schema checks ---

def _check_string(
    data: dict,
    key: str,
    violations: list[ManifestViolation],
    *,
    required: bool = False,
    pattern: re.Pattern | None = None,
    pattern_message: str = "",
    min_length: int = 0,
    max_length: int | None = None,
) -> None:
    if key not in data or data[key] is None:
        if required:
            violations.append(ManifestViolation(path=key, message="Required"))
        return

    value = data[key]
    if not isinstance(value, str):
        violations.append(ManifestViolation(path=key, message="Expected string"))
        return
    if len(value) < min_length:
        violations.append(ManifestViolation(
            path=key, message=f"String must contain at least {min_length} character(s)",
        ))
    if max_length is not None and len(value) > max_length:
        violations.append(ManifestViolation(
            path=key, message=f"String must contain at most {max_length} character(s)",
        ))
    if pattern is not None and value and not pattern.fullmatch(value):
        violations.append(ManifestViolation(path=key, message=pattern_message))


def _check_string_map(data: dict, key: str, violations: list[ManifestViolation]) -> None:
    if data.get(key) is None:
        return
    value = data[key]
    if not isinstance(value, dict):
        violations.append(ManifestViolation(path=key, message="Expected object"))
        return
    for name, spec in value.items():
        if not isinstance(spec, str):
            violations.append(ManifestViolation(path=f"{key}.{name}", message="Expected string"))


def _check_string_list(value: Any, path: str, violations: list[ManifestViolation]) -> None:
    if not isinstance(value, list):
        violations.append(ManifestViolation(path=path, message="Expected array"))
        return
    for i, item in enumerate(value):
        if not isinstance(item, str):
            violations.append(ManifestViolation(path=f"{path}.{i}", message="Expected string"))


def _check_object_of(
    data: dict,
    key: str,
    members: tuple[str, ...],
    member_check,
    violations: list[ManifestViolation],
) -> None:
    if data.get(key) is None:
        return
    value = data[key]
    if not isinstance(value, dict):
        violations.append(ManifestViolation(path=key, message="Expected object"))
        return
    for member in members:
        if value.get(member) is not None:
            member_check(value[member], f"{key}.{member}", violations)


def _expect_string(value: Any, path: str, violations: list[ManifestViolation]) -> None:
    if not isinstance(value, str):
        violations.append(ManifestViolation(path=path, message="Expected string"))


def validate_manifest(data: Any) -> list[ManifestViolation]:
    """Return every schema violation in raw manifest data (empty if valid)."""
    if not isinstance(data, dict):
        return [ManifestViolation(path="", message="Manifest must be a JSON object")]

    violations: list[ManifestViolation] = []

    _check_string(
        data, "id", violations, required=True, min_length=1,
        pattern=ID_RE, pattern_message="ID must be lowercase alphanumeric with dashes",
    )
    _check_string(
        data, "name", violations, required=True, min_length=1, max_length=NAME_MAX_LENGTH,
    )
    _check_string(
        data, "version", violations, required=True,
        pattern=VERSION_RE, pattern_message="Version must be in semver format (x.y.z)",
    )
    _check_string(data, "author", violations)
    _check_string(data, "description", violations, max_length=DESCRIPTION_MAX_LENGTH)
    _check_string(data, "preview", violations)
    for key in ("minPlatformVersion", "maxPlatformVersion"):
        _check_string(
            data, key, violations,
            pattern=VERSION_RE, pattern_message="Version must be in semver format (x.y.z)",
        )

    _check_object_of(data, "entryPoints", ENTRY_POINT_KEYS, _expect_string, violations)
    _check_string_map(data, "dependencies", violations)
    _check_string_map(data, "peerDependencies", violations)
    if data.get("capabilities") is not None:
        _check_string_list(data["capabilities"], "capabilities", violations)
    _check_object_of(data, "settings", SETTINGS_SLOT_KEYS, _check_string_list, violations)

    return violations


def parse_manifest(data: Any) -> PackageManifest:
    """Build a PackageManifest, raising ManifestError if the data is invalid."""
    violations = validate_manifest(data)
    if violations:
        raise ManifestError(violations)
    return PackageManifest.model_validate(
        {k: v for k, v in data.items() if v is not None}
    )


def load_manifest(package_root: Path) -> PackageManifest:
    """Read and parse ``manifest.json`` from a package directory.

    Raises FileNotFoundError, json.JSONDecodeError or ManifestError.
    """
    path = Path(package_root) / MANIFEST_FILENAME
    data = json.loads(path.read_text(encoding="utf-8"))
    return parse_manifest(data)
