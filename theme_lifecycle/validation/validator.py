"""Structural validation of a theme package.

Every check appends to the error or warning list on its own; only a missing
package root stops the run early. Expected defects never raise.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from pathlib import Path

from theme_lifecycle.config import settings
from theme_lifecycle.dependencies.policy import DEFAULT_POLICY, DependencyPolicy
from theme_lifecycle.manifest import MANIFEST_FILENAME, PackageManifest, parse_manifest, validate_manifest
from theme_lifecycle.models import (
    IssueKind,
    ValidationIssue,
    ValidationMetadata,
    ValidationResult,
)
from theme_lifecycle.scanners.security_scanner import SecurityScanner
from theme_lifecycle.store import PackageEntry, PackageStore, package_files
from theme_lifecycle.versioning import check_compatibility

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PackageLayout:
    """Expected directory layout of a package."""
    required_dirs: tuple[str, ...] = ()
    optional_dirs: tuple[str, ...] = ("sections", "blocks")
    default_entry: str = "index.ts"


DEFAULT_LAYOUT = PackageLayout()


class PackageValidator:
    """Validates one package root and returns an immutable ValidationResult."""

    def __init__(
        self,
        package_root: str | Path,
        layout: PackageLayout = DEFAULT_LAYOUT,
        policy: DependencyPolicy = DEFAULT_POLICY,
        platform_version: str = "",
        max_file_bytes: int = 0,
        max_total_bytes: int = 0,
        scanner: SecurityScanner | None = None,
    ):
        self.package_root = Path(package_root)
        self.layout = layout
        self.policy = policy
        self.platform_version = platform_version or settings.platform_version
        self.max_file_bytes = max_file_bytes or settings.max_source_file_kb * 1024
        self.max_total_bytes = max_total_bytes or settings.max_package_size_mb * 1024 * 1024
        self.scanner = scanner
        self._errors: list[ValidationIssue] = []
        self._warnings: list[ValidationIssue] = []

    def _error(self, kind: IssueKind, message: str, file: str | None = None, line: int | None = None) -> None:
        self._errors.append(ValidationIssue(kind=kind, message=message, file=file, line=line))

    def _warn(self, kind: IssueKind, message: str, file: str | None = None, line: int | None = None) -> None:
        self._warnings.append(ValidationIssue(kind=kind, message=message, file=file, line=line))

    def validate(self) -> ValidationResult:
        self._errors = []
        self._warnings = []

        if not self.package_root.is_dir():
            self._error(IssueKind.STRUCTURE, f"Package directory not found: {self.package_root}")
            return self._result(None)

        manifest = self._check_manifest()
        self._check_layout(manifest)
        if manifest is not None:
            self._check_dependencies(manifest)

        files = package_files(self.package_root)
        self._check_sizes(files)

        if manifest is not None:
            self._check_platform(manifest)
        if self.scanner is not None:
            self._check_security()

        return self._result(self._metadata(files))

    def _result(self, metadata: ValidationMetadata | None) -> ValidationResult:
        result = ValidationResult(
            valid=not self._errors,
            errors=tuple(self._errors),
            warnings=tuple(self._warnings),
            metadata=metadata,
        )
        logger.info(
            "Validated %s: valid=%s, %d errors, %d warnings",
            self.package_root, result.valid, len(result.errors), len(result.warnings),
        )
        return result

    def _check_manifest(self) -> PackageManifest | None:
        path = self.package_root / MANIFEST_FILENAME
        try:
            raw = path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError):
            self._error(IssueKind.STRUCTURE, f"{MANIFEST_FILENAME} not found or unreadable", MANIFEST_FILENAME)
            return None

        try:
            data = json.loads(raw)
        except json.JSONDecodeError as e:
            self._error(IssueKind.STRUCTURE, f"Invalid JSON in {MANIFEST_FILENAME}", MANIFEST_FILENAME, e.lineno)
            return None

        violations = validate_manifest(data)
        for violation in violations:
            self._error(IssueKind.STRUCTURE, f"Manifest validation: {violation}", MANIFEST_FILENAME)
        if violations:
            return None
        return parse_manifest(data)

    def _check_layout(self, manifest: PackageManifest | None) -> None:
        for name in self.layout.required_dirs:
            path = self.package_root / name
            if not path.exists():
                self._error(IssueKind.STRUCTURE, f"Required directory not found: {name}")
            elif not path.is_dir():
                self._error(IssueKind.STRUCTURE, f"Expected a directory: {name}", name)

        for name in self.layout.optional_dirs:
            path = self.package_root / name
            if not path.exists():
                self._warn(IssueKind.STRUCTURE, f"Optional directory not found: {name}")
            elif not path.is_dir():
                self._error(IssueKind.STRUCTURE, f"Expected a directory: {name}", name)

        entry = self.layout.default_entry
        if manifest is not None and manifest.entry_points and manifest.entry_points.main:
            entry = manifest.entry_points.main
        if not (self.package_root / entry).is_file():
            self._error(IssueKind.STRUCTURE, f"Required file not found: {entry}", entry)

    def _check_dependencies(self, manifest: PackageManifest) -> None:
        declared = list(manifest.dependencies) + list(manifest.peer_dependencies)
        for name in declared:
            if not self.policy.is_known(name):
                self._warn(IssueKind.DEPENDENCY, f"Potentially unsafe dependency: {name}", MANIFEST_FILENAME)

    def _check_sizes(self, files: list[PackageEntry]) -> None:
        total = 0
        for entry in files:
            total += entry.size
            if entry.size > self.max_file_bytes:
                self._warn(
                    IssueKind.PERFORMANCE,
                    f"Large file detected: {entry.relative} ({round(entry.size / 1024)}KB)",
                    entry.relative,
                )
        if total > self.max_total_bytes:
            limit_mb = self.max_total_bytes / 1024 / 1024
            self._error(
                IssueKind.PERFORMANCE,
                f"Package size exceeds limit: {total / 1024 / 1024:.1f}MB (max: {limit_mb:g}MB)",
            )

    def _check_platform(self, manifest: PackageManifest) -> None:
        result = check_compatibility(
            self.platform_version,
            manifest.min_platform_version,
            manifest.max_platform_version,
        )
        if not result.compatible:
            self._error(IssueKind.COMPATIBILITY, result.reason, MANIFEST_FILENAME)

    def _check_security(self) -> None:
        for threat in self.scanner.scan().threats:
            self._warn(
                IssueKind.SECURITY,
                f"[{threat.severity.value}] {threat.message}",
                threat.file,
                threat.line,
            )

    def _metadata(self, files: list[PackageEntry]) -> ValidationMetadata:
        return ValidationMetadata(
            files_scanned=len(files),
            total_size=sum(e.size for e in files),
            sections_found=sum(1 for e in files if e.relative.startswith("sections/")),
            blocks_found=sum(1 for e in files if e.relative.startswith("blocks/")),
        )


def validate_package(
    package_id: str,
    store: PackageStore | None = None,
    **kwargs,
) -> ValidationResult:
    """Validate a package by id through the package store."""
    store = store or PackageStore()
    return PackageValidator(store.package_path(package_id), **kwargs).validate()
