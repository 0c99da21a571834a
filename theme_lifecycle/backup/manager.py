"""Checksummed settings backups for one package, stored as JSON files."""

from __future__ import annotations

import copy
import hashlib
import json
import logging
import re
import secrets
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from theme_lifecycle.backup.models import (
    Backup,
    BackupCustomizations,
    BackupListItem,
    BackupMetadata,
    BackupOptions,
    ImportResult,
    RestoreOptions,
    RestoreResult,
)
from theme_lifecycle.config import settings as app_settings
from theme_lifecycle.settings_store import SettingsStore
from theme_lifecycle.store import PackageStore
from theme_lifecycle.versioning import parse_version

logger = logging.getLogger(__name__)

SENSITIVE_KEY_PARTS = ("apikey", "secret", "password", "token")
SAFE_ID_RE = re.compile(r"^[A-Za-z0-9][A-Za-z0-9._-]*$")
DEFAULT_VERSION = "1.0.0"


class BackupError(RuntimeError):
    """Raised when a backup cannot be created or read."""


def compute_checksum(backup: Backup) -> str:
    """SHA-256 of the canonical JSON of ``backup`` with an empty checksum."""
    data = backup.model_dump(mode="json", by_alias=True)
    data["checksum"] = ""
    canonical = json.dumps(data, sort_keys=True, separators=(",", ":"), ensure_ascii=False)
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


def _is_sensitive(key: Any) -> bool:
    return any(part in str(key).lower() for part in SENSITIVE_KEY_PARTS)


def sanitize_settings(value: Any) -> Any:
    """Deep copy of ``value`` with secret-shaped keys removed at every level."""
    if isinstance(value, dict):
        return {
            k: sanitize_settings(v)
            for k, v in value.items()
            if not _is_sensitive(k)
        }
    if isinstance(value, list):
        return [sanitize_settings(v) for v in value]
    return copy.deepcopy(value)


def secret_settings(value: dict[str, Any]) -> dict[str, Any]:
    """The secret-shaped entries of ``value``, keeping their nesting.

    This is the part ``sanitize_settings`` drops, so a restore can carry it
    over from the live settings.
    """
    kept: dict[str, Any] = {}
    for key, item in value.items():
        if _is_sensitive(key):
            kept[key] = copy.deepcopy(item)
        elif isinstance(item, dict):
            nested = secret_settings(item)
            if nested:
                kept[key] = nested
    return kept


def deep_merge(current: dict[str, Any], incoming: dict[str, Any]) -> dict[str, Any]:
    """Merge ``incoming`` onto ``current``: dicts recurse, everything else replaces."""
    merged = copy.deepcopy(current)
    for key, value in incoming.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = deep_merge(merged[key], value)
        else:
            merged[key] = copy.deepcopy(value)
    return merged


def is_safe_backup_id(backup_id: str) -> bool:
    return bool(backup_id) and ".." not in backup_id and bool(SAFE_ID_RE.fullmatch(backup_id))


class BackupManager:
    """Creates, restores, lists and prunes backups for a single package."""

    def __init__(
        self,
        package_id: str,
        backup_dir: str | Path = "",
        store: PackageStore | None = None,
        settings_store: SettingsStore | None = None,
        max_backups: int = 0,
    ):
        self.package_id = package_id
        self.backup_dir = Path(backup_dir) if backup_dir else Path(app_settings.backups_dir) / package_id
        self.store = store or PackageStore()
        self.settings_store = settings_store
        self.max_backups = max_backups or app_settings.max_backups
        self._last_timestamp: datetime | None = None

    # --- Helpers ---

    def _path(self, backup_id: str) -> Path:
        if not is_safe_backup_id(backup_id):
            raise ValueError(f"Invalid backup id: {backup_id!r}")
        return self.backup_dir / f"{backup_id}.json"

    def _now(self) -> datetime:
        now = datetime.now(timezone.utc)
        if self._last_timestamp is not None and now <= self._last_timestamp:
            now = self._last_timestamp + timedelta(milliseconds=1)
        self._last_timestamp = now
        return now

    def _generate_id(self, timestamp: datetime) -> str:
        millis = int(timestamp.timestamp() * 1000)
        return f"{self.package_id}-{millis:x}-{secrets.token_hex(3)}"

    def _live_version(self) -> str | None:
        try:
            version = self.store.read_manifest_data(self.package_id).get("version")
        except (OSError, ValueError, AttributeError):
            return None
        return version if isinstance(version, str) else None

    def _write(self, backup: Backup) -> Path:
        self.backup_dir.mkdir(parents=True, exist_ok=True)
        path = self._path(backup.id)
        path.write_text(backup.model_dump_json(by_alias=True, indent=2), encoding="utf-8")
        return path

    def _load(self, backup_id: str) -> Backup:
        return Backup.model_validate_json(self._path(backup_id).read_text(encoding="utf-8"))

    # --- Operations ---

    def create_backup(
        self,
        settings: dict[str, Any],
        customizations: dict[str, Any] | None = None,
        options: BackupOptions | None = None,
    ) -> Backup:
        """Snapshot ``settings`` and ``customizations``, persist, then prune.

        Raises BackupError if the snapshot cannot be written.
        """
        options = options or BackupOptions()
        customizations = customizations or {}
        timestamp = self._now()

        try:
            backup = Backup(
                id=self._generate_id(timestamp),
                package_id=self.package_id,
                version=self._live_version() or DEFAULT_VERSION,
                timestamp=timestamp,
                name=options.name or f"Backup {timestamp:%Y-%m-%d %H:%M:%S}",
                description=options.description,
                settings=sanitize_settings(settings or {}),
                customizations=BackupCustomizations(
                    templates=customizations.get("templates") if options.include_templates else None,
                    sections=customizations.get("sections") if options.include_sections else None,
                    styles=customizations.get("styles") if options.include_styles else None,
                ),
                metadata=BackupMetadata(
                    platform=app_settings.platform_name,
                    platform_version=app_settings.platform_version,
                    created_by=app_settings.created_by or None,
                ),
            )
            backup = backup.model_copy(update={"checksum": compute_checksum(backup)})
            self._write(backup)
        except (OSError, ValueError) as e:
            raise BackupError(f"Failed to create backup for {self.package_id}: {e}") from e

        logger.info("Created backup %s for %s", backup.id, self.package_id)
        self.cleanup_old_backups()
        return backup

    def get_backup(self, backup_id: str) -> Backup | None:
        """Load a backup by id; None if it does not exist.

        Raises BackupError if the file exists but is not a valid backup.
        """
        try:
            path = self._path(backup_id)
        except ValueError:
            return None
        if not path.exists():
            return None
        try:
            return self._load(backup_id)
        except (OSError, ValueError) as e:
            raise BackupError(f"Backup {backup_id} is unreadable: {e}") from e

    def verify_backup(self, backup: Backup) -> bool:
        return compute_checksum(backup) == backup.checksum

    def check_compatibility(self, backup_version: str) -> tuple[bool, str]:
        """Backups restore only onto the same major version of the live package."""
        current = self._live_version()
        if current is None or current == backup_version:
            return True, ""
        try:
            backup_major = parse_version(backup_version)[0]
            current_major = parse_version(current)[0]
        except ValueError:
            return False, f"Unparseable version: backup {backup_version} vs current {current}"
        if backup_major != current_major:
            return False, f"Major version mismatch: backup {backup_version} vs current {current}"
        return True, ""

    def restore_backup(self, backup_id: str, options: RestoreOptions | None = None) -> RestoreResult:
        options = options or RestoreOptions()
        warnings: list[str] = []

        def failed(reason: str) -> RestoreResult:
            logger.warning("Restore of %s failed: %s", backup_id, reason)
            return RestoreResult(success=False, backup_id=backup_id, warnings=warnings + [reason])

        try:
            backup = self.get_backup(backup_id)
        except BackupError as e:
            return failed(f"Restore failed: {e}")
        if backup is None:
            return failed(f"Backup {backup_id} not found")

        if options.validate_checksum and not self.verify_backup(backup):
            warnings.append("Backup checksum mismatch - data may have been corrupted")
            if not options.skip_incompatible:
                return failed("Backup integrity check failed")

        compatible, reason = self.check_compatibility(backup.version)
        if not compatible:
            warnings.append(f"Version compatibility issue: {reason}")
            if not options.skip_incompatible:
                return failed(f"Incompatible backup version: {reason}")

        current = self.settings_store.load_settings(self.package_id) if self.settings_store else {}
        restored = copy.deepcopy(backup.settings)
        if options.merge_settings and not options.overwrite:
            restored = deep_merge(current, restored)
            warnings.append("Settings were merged with existing configuration")

        success = True
        if self.settings_store is not None:
            # Backups never hold secrets; keep the live ones
            applied = self.settings_store.apply_restored_data(
                self.package_id,
                deep_merge(restored, secret_settings(current)),
                backup.customizations.model_dump(exclude_none=True),
            )
            success = applied.success
            warnings.extend(applied.warnings)

        if success:
            logger.info("Restored backup %s for %s", backup_id, self.package_id)
        return RestoreResult(
            success=success,
            backup_id=backup_id,
            settings=restored,
            customizations=backup.customizations,
            warnings=warnings,
        )

    def list_backups(self) -> list[BackupListItem]:
        """All readable backups, newest first. Unreadable files are skipped."""
        if not self.backup_dir.is_dir():
            return []

        items: list[BackupListItem] = []
        try:
            paths = sorted(self.backup_dir.glob("*.json"))
        except OSError as e:
            logger.warning("Failed to list backups in %s: %s", self.backup_dir, e)
            return []

        for path in paths:
            try:
                backup = Backup.model_validate_json(path.read_text(encoding="utf-8"))
                size = path.stat().st_size
            except (OSError, ValidationError) as e:
                logger.warning("Skipping invalid backup file %s: %s", path.name, e)
                continue
            items.append(BackupListItem(
                id=backup.id,
                name=backup.name,
                package_id=backup.package_id,
                timestamp=backup.timestamp,
                size=size,
                description=backup.description,
            ))

        items.sort(key=lambda item: (item.timestamp, item.id), reverse=True)
        return items

    def delete_backup(self, backup_id: str) -> bool:
        try:
            self._path(backup_id).unlink()
        except (OSError, ValueError) as e:
            logger.warning("Failed to delete backup %s: %s", backup_id, e)
            return False
        logger.info("Deleted backup %s", backup_id)
        return True

    def export_backup(self, backup_id: str) -> bytes | None:
        try:
            return self._path(backup_id).read_bytes()
        except (OSError, ValueError) as e:
            logger.warning("Failed to export backup %s: %s", backup_id, e)
            return None

    def import_backup(self, data: bytes | str) -> ImportResult:
        """Persist an exported backup. Backups of other packages are refused."""
        try:
            backup = Backup.model_validate_json(data)
        except ValidationError as e:
            return ImportResult(success=False, error=f"Import failed: {e}")

        if backup.package_id != self.package_id:
            return ImportResult(
                success=False,
                error=f"Backup is for package {backup.package_id}, not {self.package_id}",
            )

        if not is_safe_backup_id(backup.id):
            backup = backup.model_copy(update={"id": self._generate_id(self._now())})

        try:
            self._write(backup)
        except OSError as e:
            logger.warning("Failed to import backup %s: %s", backup.id, e)
            return ImportResult(success=False, error=f"Import failed: {e}")

        logger.info("Imported backup %s for %s", backup.id, self.package_id)
        return ImportResult(success=True, backup_id=backup.id)

    def cleanup_old_backups(self) -> list[str]:
        """Delete the oldest backups beyond ``max_backups``; returns deleted ids."""
        backups = self.list_backups()
        deleted = []
        for item in backups[self.max_backups:]:
            if self.delete_backup(item.id):
                deleted.append(item.id)
        return deleted
