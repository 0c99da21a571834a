"""Static security scan of a theme package directory.

Text files are matched line by line against the signature table, JSON files
are walked for secret-shaped keys and markup files are checked for inline and
insecure external scripts. The package as a whole is then checked for
suspicious file types, hidden files and execute permissions.

The walk enters hidden directories and node_modules. Everything in the
package gets installed, so everything is scanned.
"""

from __future__ import annotations

import hashlib
import json
import logging
import stat as stat_mod
from pathlib import Path
from typing import Any

from theme_lifecycle.config import settings
from theme_lifecycle.models import RiskLevel, ScanWarning, SecurityScanResult, Severity, Threat
from theme_lifecycle.scanners.patterns import (
    DEFAULT_RULES,
    INLINE_SCRIPT_RE,
    SCRIPT_SRC_RE,
    ScanRules,
)
from theme_lifecycle.store import (
    PackageEntry,
    PackageNotFoundError,
    PackageStore,
    descend_all,
    package_files,
    walk_package,
)

logger = logging.getLogger(__name__)

SNIPPET_MAX_LENGTH = 100


def calculate_score(
    threats: list[Threat],
    warnings: list[ScanWarning],
    rules: ScanRules = DEFAULT_RULES,
) -> int:
    """100 minus severity penalties and a flat penalty per warning, clamped to 0..100."""
    score = 100
    for threat in threats:
        score -= rules.penalties.get(threat.severity, 0)
    score -= rules.warning_penalty * len(warnings)
    return max(0, min(100, score))


def risk_level(score: int) -> RiskLevel:
    if score >= 90:
        return RiskLevel.LOW
    if score >= 70:
        return RiskLevel.MEDIUM
    if score >= 50:
        return RiskLevel.HIGH
    return RiskLevel.CRITICAL


def package_hash(root: Path) -> str:
    """SHA-256 over every file's bytes, in sorted relative-path order."""
    digest = hashlib.sha256()
    for entry in sorted(package_files(Path(root)), key=lambda e: e.relative):
        digest.update(entry.path.read_bytes())
    return digest.hexdigest()


class SecurityScanner:
    """Scans one package root. Each ``scan()`` call starts from a clean slate."""

    def __init__(
        self,
        package_root: str | Path,
        rules: ScanRules = DEFAULT_RULES,
        max_file_bytes: int = 0,
    ):
        self.package_root = Path(package_root)
        self.rules = rules
        self.max_file_bytes = max_file_bytes or settings.max_scan_file_mb * 1024 * 1024
        self._threats: list[Threat] = []
        self._warnings: list[ScanWarning] = []

    def scan(self) -> SecurityScanResult:
        """Run every pass and return the scored result.

        Raises PackageNotFoundError if the package root does not exist.
        """
        if not self.package_root.is_dir():
            raise PackageNotFoundError(f"Package directory not found: {self.package_root}")

        self._threats = []
        self._warnings = []

        entries = walk_package(self.package_root, descend=descend_all)
        files = [e for e in entries if not e.is_dir]
        files_scanned = 0
        for entry in files:
            if entry.suffix in self.rules.scan_extensions:
                self._scan_file(entry)
                files_scanned += 1

        self._check_suspicious_files(entries)
        self._check_permissions(files)

        score = calculate_score(self._threats, self._warnings, self.rules)
        safe = not any(
            t.severity in (Severity.CRITICAL, Severity.HIGH) for t in self._threats
        )
        logger.info(
            "Scanned %d files in %s: score=%d, %d threats, %d warnings",
            files_scanned, self.package_root, score, len(self._threats), len(self._warnings),
        )
        return SecurityScanResult(
            safe=safe,
            score=score,
            risk_level=risk_level(score),
            files_scanned=files_scanned,
            threats=list(self._threats),
            warnings=list(self._warnings),
        )

    # --- Per-file passes ---

    def _scan_file(self, entry: PackageEntry) -> None:
        if entry.size > self.max_file_bytes:
            self._warnings.append(ScanWarning(
                type="file_size",
                message=f"File too large to scan: {entry.size} bytes",
                file=entry.relative,
            ))
            return

        try:
            content = entry.path.read_text(encoding="utf-8", errors="replace")
        except OSError as e:
            logger.warning("Failed to read %s: %s", entry.path, e)
            return

        self._scan_lines(entry.relative, content.split("\n"))

        if entry.suffix == ".json":
            self._scan_json(entry.relative, content)
        elif entry.suffix in self.rules.markup_extensions:
            self._scan_markup(entry.relative, content)

    def _is_comment(self, line: str) -> bool:
        return line.strip().startswith(self.rules.comment_markers)

    def _scan_lines(self, relative: str, lines: list[str]) -> None:
        for index, line in enumerate(lines):
            if self._is_comment(line):
                continue
            for signature in self.rules.signatures:
                if not signature.pattern.search(line):
                    continue
                self._threats.append(Threat(
                    severity=signature.severity,
                    type=signature.type,
                    message=signature.message,
                    file=relative,
                    line=index + 1,
                    code=line.strip()[:SNIPPET_MAX_LENGTH],
                ))

    def _scan_json(self, relative: str, content: str) -> None:
        try:
            data = json.loads(content)
        except json.JSONDecodeError:
            # Malformed JSON is a validation concern, not a security one
            return
        self._check_keys(data, "", relative)

    def _check_keys(self, value: Any, path: str, relative: str) -> None:
        if isinstance(value, dict):
            items = value.items()
        elif isinstance(value, list):
            items = ((str(i), v) for i, v in enumerate(value))
        else:
            return

        for key, child in items:
            current = f"{path}.{key}" if path else key
            lowered = key.lower()
            if any(part in lowered for part in self.rules.sensitive_key_parts):
                self._warnings.append(ScanWarning(
                    type="sensitive_data",
                    message=f"Potential sensitive data in key: {current}",
                    file=relative,
                    recommendation="Avoid storing sensitive data in theme files",
                ))
            self._check_keys(child, current, relative)

    def _scan_markup(self, relative: str, content: str) -> None:
        for match in INLINE_SCRIPT_RE.finditer(content):
            line = content.count("\n", 0, match.start()) + 1
            self._threats.append(Threat(
                severity=Severity.MEDIUM,
                type="inline_script",
                message="Inline script detected in markup",
                file=relative,
                line=line,
                code=match.group(0).strip()[:SNIPPET_MAX_LENGTH],
            ))

        for match in SCRIPT_SRC_RE.finditer(content):
            src = match.group(1)
            if src.startswith(("http://", "//")):
                self._threats.append(Threat(
                    severity=Severity.HIGH,
                    type="external_script",
                    message=f"Insecure external script: {src}",
                    file=relative,
                    line=content.count("\n", 0, match.start()) + 1,
                ))

    # --- Whole-package passes ---

    def _check_suspicious_files(self, entries: list[PackageEntry]) -> None:
        for entry in entries:
            if entry.is_dir:
                if entry.name.startswith("."):
                    self._warnings.append(ScanWarning(
                        type="hidden_file",
                        message=f"Hidden directory detected: {entry.name}",
                        file=entry.relative,
                    ))
                continue
            if entry.suffix in self.rules.suspicious_extensions:
                self._threats.append(Threat(
                    severity=Severity.HIGH,
                    type="suspicious_file",
                    message=f"Suspicious file type detected: {entry.suffix}",
                    file=entry.relative,
                ))
            if entry.name.startswith(".") and entry.name not in self.rules.allowed_dotfiles:
                self._warnings.append(ScanWarning(
                    type="hidden_file",
                    message=f"Hidden file detected: {entry.name}",
                    file=entry.relative,
                ))

    def _check_permissions(self, files: list[PackageEntry]) -> None:
        exec_bits = stat_mod.S_IXUSR | stat_mod.S_IXGRP | stat_mod.S_IXOTH
        for entry in files:
            if entry.mode & exec_bits:
                self._warnings.append(ScanWarning(
                    type="permissions",
                    message="Executable file detected",
                    file=entry.relative,
                    recommendation="Theme files should not be executable",
                ))


def scan_package(
    package_id: str,
    store: PackageStore | None = None,
    rules: ScanRules = DEFAULT_RULES,
) -> SecurityScanResult:
    """Scan a package by id through the package store."""
    store = store or PackageStore()
    return SecurityScanner(store.require(package_id), rules=rules).scan()
