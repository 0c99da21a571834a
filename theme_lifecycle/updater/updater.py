"""Async update session for one installed theme package.

A session walks checking -> backing up -> downloading -> validating ->
scanning -> resolving -> applying -> migrating -> cleaning up. Checks run
against the downloaded candidate, never the live package. Any failure after
the backup is taken rolls the live package and its settings back. Sessions
for the same package are serialized by a per-package lock.
"""

from __future__ import annotations

import asyncio
import logging
import secrets
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable

from theme_lifecycle.backup.manager import BackupManager
from theme_lifecycle.backup.models import Backup, BackupOptions, RestoreOptions, RestoreResult
from theme_lifecycle.config import settings as app_settings
from theme_lifecycle.dependencies.policy import DEFAULT_POLICY, DependencyPolicy
from theme_lifecycle.dependencies.resolver import check_manifest_dependencies
from theme_lifecycle.manifest import load_manifest
from theme_lifecycle.scanners.patterns import DEFAULT_RULES, ScanRules
from theme_lifecycle.scanners.security_scanner import SecurityScanner
from theme_lifecycle.settings_store import JsonSettingsStore, SettingsStore
from theme_lifecycle.store import PackageStore, copy_tree, remove_tree
from theme_lifecycle.updater.download import PackageDownloader, UpdateError
from theme_lifecycle.updater.locks import PackageLocks, default_locks
from theme_lifecycle.updater.models import (
    ReleaseInfo,
    UpdateInfo,
    UpdateOptions,
    UpdateResult,
    UpdateState,
)
from theme_lifecycle.updater.sources import UpdateSource, UpdateSourceError
from theme_lifecycle.validation.validator import DEFAULT_LAYOUT, PackageLayout, PackageValidator
from theme_lifecycle.versioning import MigrationError, VersionManager, compare_versions, is_breaking_change

logger = logging.getLogger(__name__)

DRY_RUN_WARNING = "Dry run completed - no changes were made"
ROLLBACK_WARNING = "Update failed - rolled back to previous version"


@dataclass
class _Session:
    package_id: str
    history: list[UpdateState] = field(default_factory=lambda: [UpdateState.IDLE])
    current_version: str = ""
    target_version: str | None = None
    release: ReleaseInfo | None = None
    backup_id: str | None = None
    work_dir: Path | None = None
    candidate: Path | None = None
    shadow: Path | None = None
    live_touched: bool = False
    settings_touched: bool = False
    committed_version: str | None = None
    warnings: list[str] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)
    results: dict[str, Any] = field(default_factory=dict)

    @property
    def state(self) -> UpdateState:
        return self.history[-1]

    def enter(self, state: UpdateState) -> None:
        logger.debug("%s: %s -> %s", self.package_id, self.state.value, state.value)
        self.history.append(state)


@dataclass
class _Outcome:
    state: UpdateState
    success: bool
    message: str


async def _run_to_completion(func: Callable[..., Any], *args: Any) -> Any:
    """Run blocking ``func`` in a thread; a cancel waits for it to finish first."""
    fut = asyncio.ensure_future(asyncio.to_thread(func, *args))
    try:
        return await asyncio.shield(fut)
    except asyncio.CancelledError:
        await asyncio.wait({fut})
        if not fut.cancelled() and fut.exception() is not None:
            logger.warning("Step interrupted by cancellation failed: %s", fut.exception())
        raise


class ThemeUpdater:
    """Updates one package from an UpdateSource with automatic rollback."""

    def __init__(
        self,
        package_id: str,
        source: UpdateSource,
        store: PackageStore | None = None,
        settings_store: SettingsStore | None = None,
        backup_manager: BackupManager | None = None,
        version_manager: VersionManager | None = None,
        downloader: PackageDownloader | None = None,
        locks: PackageLocks | None = None,
        policy: DependencyPolicy = DEFAULT_POLICY,
        rules: ScanRules = DEFAULT_RULES,
        layout: PackageLayout = DEFAULT_LAYOUT,
        temp_dir: str | Path = "",
        platform_version: str = "",
    ):
        self.package_id = package_id
        self.source = source
        self.store = store or PackageStore()
        self.store.package_path(package_id)  # rejects unsafe ids early
        self.settings_store = settings_store or JsonSettingsStore()
        self.backup_manager = backup_manager or BackupManager(
            package_id, store=self.store, settings_store=self.settings_store,
        )
        self.version_manager = version_manager or VersionManager(package_id)
        self.downloader = downloader or PackageDownloader()
        self.locks = locks or default_locks
        self.policy = policy
        self.rules = rules
        self.layout = layout
        self.temp_dir = Path(temp_dir or app_settings.temp_dir) / package_id
        self.platform_version = platform_version or app_settings.platform_version
        self.last_result: UpdateResult | None = None

    @property
    def live_path(self) -> Path:
        return self.store.package_path(self.package_id)

    def _live_version(self) -> str:
        return load_manifest(self.store.require(self.package_id)).version

    # --- Checking ---

    async def check_for_updates(self) -> UpdateInfo:
        """Ask the source for its newest version. Never raises."""
        try:
            current = await asyncio.to_thread(self._live_version)
        except (OSError, ValueError) as e:
            logger.warning("Cannot read installed version of %s: %s", self.package_id, e)
            return UpdateInfo(
                available=False, current_version="", latest_version="",
                error=f"Cannot read installed version: {e}",
            )
        return await self._check(current)

    async def _check(self, current: str) -> UpdateInfo:
        try:
            release = await self.source.fetch_latest_version_info()
            available = compare_versions(release.version, current) > 0
            breaking = is_breaking_change(current, release.version)
        except (UpdateSourceError, ValueError) as e:
            logger.warning("Update check for %s failed: %s", self.package_id, e)
            return UpdateInfo(
                available=False, current_version=current, latest_version=current,
                error=str(e),
            )

        return UpdateInfo(
            available=available,
            current_version=current,
            latest_version=release.version,
            breaking=breaking,
            release_notes=release.release_notes,
            published_at=release.published_at,
            download_url=release.download_url,
            size=release.size,
            release=release,
        )

    # --- Backups ---

    def _backup_live_settings(self, options: BackupOptions | None = None) -> Backup:
        return self.backup_manager.create_backup(
            self.settings_store.load_settings(self.package_id),
            self.settings_store.load_customizations(self.package_id),
            options,
        )

    async def create_backup(self, options: BackupOptions | None = None) -> Backup:
        """Back up the live settings, serialized against updates of this package."""
        async with self.locks.lock_for(self.package_id):
            return await asyncio.to_thread(self._backup_live_settings, options)

    async def restore_backup(self, backup_id: str, options: RestoreOptions | None = None) -> RestoreResult:
        async with self.locks.lock_for(self.package_id):
            return await _run_to_completion(self.backup_manager.restore_backup, backup_id, options)

    async def rollback(self, backup_id: str) -> RestoreResult:
        """Restore settings from ``backup_id``, overwriting the live settings."""
        logger.info("Rolling back %s using backup %s", self.package_id, backup_id)
        return await self.restore_backup(backup_id, RestoreOptions(overwrite=True))

    # --- Update session ---

    async def update(
        self,
        target_version: str | None = None,
        options: UpdateOptions | None = None,
    ) -> UpdateResult:
        """Run one update session and return its terminal result.

        Exceptions are turned into a rollback or no-rollback result. A
        cancellation is handled the same way, stored on ``last_result`` and
        then re-raised.
        """
        options = options or UpdateOptions()
        async with self.locks.lock_for(self.package_id):
            session = _Session(package_id=self.package_id)
            cancelled: asyncio.CancelledError | None = None
            try:
                outcome = await self._run(session, target_version, options)
            except asyncio.CancelledError as e:
                cancelled = e
                outcome = await self._recover(session, "Update cancelled")
            except Exception as e:
                logger.exception("Update of %s failed", self.package_id)
                outcome = await self._recover(session, f"Update failed: {e}")

            if outcome.state != UpdateState.IDLE:
                await self._cleanup(session)
            session.enter(outcome.state)

            result = self._result(session, outcome)
            self.last_result = result
            logger.info("Update of %s finished: %s", self.package_id, result.message)
            if cancelled is not None:
                raise cancelled
            return result

    async def _run(
        self,
        session: _Session,
        target_version: str | None,
        options: UpdateOptions,
    ) -> _Outcome:
        session.enter(UpdateState.CHECKING_FOR_UPDATE)
        current = await asyncio.to_thread(self._live_version)
        session.current_version = current
        info = await self._check(current)
        if info.error:
            session.errors.append(f"Could not check for updates: {info.error}")
            return _Outcome(UpdateState.IDLE, False, f"No update information available: {info.error}")

        target = target_version or info.latest_version
        if compare_versions(target, current) <= 0:
            return _Outcome(UpdateState.IDLE, True, f"No update available ({current} is current)")
        session.target_version = target
        session.release = info.release

        if options.create_backup:
            session.enter(UpdateState.BACKING_UP)
            backup = await asyncio.to_thread(self._backup_live_settings, BackupOptions(
                name=f"Pre-update backup ({current})",
                description="Automatic backup before updating to a new version",
            ))
            session.backup_id = backup.id
            logger.info("Created pre-update backup %s", backup.id)

        session.enter(UpdateState.DOWNLOADING)
        session.work_dir = self.temp_dir / secrets.token_hex(4)
        session.candidate = await self.downloader.fetch(session.release, session.work_dir / "candidate")

        await self._check_candidate(session, options)

        if options.dry_run:
            session.warnings.append(DRY_RUN_WARNING)
            ok = not session.errors
            detail = "all checks passed" if ok else "; ".join(session.errors)
            return _Outcome(UpdateState.DRY_RUN_COMPLETED, ok, f"Dry run of {current} -> {target}: {detail}")

        if session.errors:
            return _Outcome(
                UpdateState.REJECTED, False,
                f"Update to {target} rejected before any change: {'; '.join(session.errors)}",
            )

        session.enter(UpdateState.APPLYING)
        session.shadow = self.live_path.with_name(f".{self.package_id}.shadow-{secrets.token_hex(4)}")
        await _run_to_completion(self._apply_candidate, session)
        session.committed_version = target

        if options.auto_migrate and is_breaking_change(current, target):
            session.enter(UpdateState.MIGRATING)
            session.settings_touched = True
            try:
                await asyncio.to_thread(self._migrate_settings, current, target)
            except MigrationError as e:
                if not options.tolerate_migration_failure:
                    raise
                session.warnings.append(f"Migration failed: {e}")

        return _Outcome(UpdateState.SUCCEEDED, True, f"Updated {self.package_id} from {current} to {target}")

    async def _check_candidate(self, session: _Session, options: UpdateOptions) -> None:
        """Validate, scan and resolve the candidate; hard failures go to ``errors``."""
        candidate = session.candidate

        session.enter(UpdateState.VALIDATING)
        validation = await asyncio.to_thread(
            PackageValidator(
                candidate, layout=self.layout, policy=self.policy, platform_version=self.platform_version,
            ).validate
        )
        session.results["validation"] = validation
        session.errors.extend(e.message for e in validation.errors)
        session.warnings.extend(w.message for w in validation.warnings)

        try:
            manifest = await asyncio.to_thread(load_manifest, candidate)
        except (OSError, ValueError):
            # Reported as a structure error by the validator
            manifest = None
        if manifest is not None and manifest.version != session.target_version:
            session.errors.append(
                f"Downloaded package is version {manifest.version}, expected {session.target_version}"
            )

        session.enter(UpdateState.SCANNING_SECURITY)
        if options.validate_security:
            scan = await asyncio.to_thread(SecurityScanner(candidate, rules=self.rules).scan)
            session.results["security"] = scan
            if not scan.safe:
                session.errors.append("Security validation failed")
            session.warnings.extend(
                f"[{t.severity.value}] {t.message} ({t.file})" for t in scan.threats
            )

        session.enter(UpdateState.RESOLVING_DEPENDENCIES)
        if options.check_dependencies:
            if manifest is None:
                session.warnings.append("Could not check dependencies: candidate manifest is invalid")
            else:
                deps = check_manifest_dependencies(manifest, self.policy)
                session.results["dependencies"] = deps
                session.warnings.extend(deps.warnings)
                if not deps.satisfied:
                    problems = [str(d) for d in deps.missing + deps.incompatible]
                    session.errors.append(f"Unsatisfied dependencies: {', '.join(problems)}")

    def _apply_candidate(self, session: _Session) -> None:
        live = self.live_path
        copy_tree(live, session.shadow)
        session.live_touched = True
        try:
            copy_tree(session.candidate, live)
            installed = load_manifest(live).version
            if installed != session.target_version:
                raise UpdateError(
                    f"Version mismatch after update: expected {session.target_version}, found {installed}"
                )
        except Exception:
            copy_tree(session.shadow, live)
            raise
        logger.info("Applied %s %s", self.package_id, session.target_version)

    def _migrate_settings(self, from_version: str, to_version: str) -> None:
        current = self.settings_store.load_settings(self.package_id)
        migrated = self.version_manager.migrate_settings(current, from_version, to_version)
        applied = self.settings_store.apply_restored_data(
            self.package_id,
            migrated,
            self.settings_store.load_customizations(self.package_id),
        )
        if not applied.success:
            raise MigrationError(
                f"Could not store migrated settings for {from_version} -> {to_version}: "
                + "; ".join(applied.warnings)
            )

    # --- Recovery ---

    def _rollback_sync(self, session: _Session) -> None:
        if session.live_touched and session.shadow is not None and session.shadow.is_dir():
            copy_tree(session.shadow, self.live_path)
            logger.info("Restored package files of %s from shadow copy", self.package_id)
        # Settings only change while migrating
        if session.backup_id is not None and session.settings_touched:
            restored = self.backup_manager.restore_backup(session.backup_id, RestoreOptions(overwrite=True))
            if not restored.success:
                raise UpdateError("; ".join(restored.warnings) or f"Could not restore backup {session.backup_id}")

    async def _recover(self, session: _Session, reason: str) -> _Outcome:
        session.errors.append(reason)
        target = session.target_version or "the new version"

        if session.backup_id is None:
            extra = ""
            if session.live_touched:
                try:
                    await _run_to_completion(self._rollback_sync, session)
                    extra = " Package files were restored, but settings were not backed up."
                except Exception as e:
                    session.errors.append(f"Restoring package files failed: {e}")
            return _Outcome(
                UpdateState.FAILED_NO_ROLLBACK, False,
                f"Update to {target} failed and no backup was taken: {reason}.{extra} "
                "Manual recovery may be required.",
            )

        try:
            await _run_to_completion(self._rollback_sync, session)
        except Exception as e:
            logger.error("Rollback of %s failed: %s", self.package_id, e)
            session.errors.append(f"Rollback failed: {e}")
            return _Outcome(
                UpdateState.FAILED_NO_ROLLBACK, False,
                f"Update to {target} failed ({reason}) and rollback from backup "
                f"{session.backup_id} also failed: {e}. Manual recovery is required.",
            )

        session.committed_version = None
        session.warnings.append(ROLLBACK_WARNING)
        return _Outcome(
            UpdateState.ROLLED_BACK, False,
            f"Update to {target} failed and was rolled back to {session.current_version}: {reason}",
        )

    async def _cleanup(self, session: _Session) -> None:
        session.enter(UpdateState.CLEANING_UP)
        for path in (session.work_dir, session.shadow):
            if path is None:
                continue
            try:
                await asyncio.to_thread(remove_tree, path)
            except OSError as e:
                logger.warning("Cleanup of %s failed: %s", path, e)

    def _result(self, session: _Session, outcome: _Outcome) -> UpdateResult:
        if outcome.state == UpdateState.SUCCEEDED:
            version = session.committed_version or session.current_version
        elif outcome.state == UpdateState.DRY_RUN_COMPLETED:
            version = session.target_version or session.current_version
        else:
            version = session.current_version
        return UpdateResult(
            success=outcome.success,
            state=outcome.state,
            message=outcome.message,
            package_id=self.package_id,
            version=version,
            previous_version=session.current_version,
            target_version=session.target_version,
            backup_id=session.backup_id,
            rollback_available=session.backup_id is not None,
            warnings=session.warnings,
            errors=session.errors,
            history=session.history,
            validation=session.results.get("validation"),
            security=session.results.get("security"),
            dependencies=session.results.get("dependencies"),
        )
