"""Update session states, options and results."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Literal

from pydantic import BaseModel

from theme_lifecycle.models import DependencyCheckResult, SecurityScanResult, ValidationResult


class UpdateState(str, Enum):
    IDLE = "idle"
    CHECKING_FOR_UPDATE = "checking_for_update"
    BACKING_UP = "backing_up"
    DOWNLOADING = "downloading"
    VALIDATING = "validating"
    SCANNING_SECURITY = "scanning_security"
    RESOLVING_DEPENDENCIES = "resolving_dependencies"
    APPLYING = "applying"
    MIGRATING = "migrating"
    CLEANING_UP = "cleaning_up"
    SUCCEEDED = "succeeded"
    ROLLED_BACK = "rolled_back"
    FAILED_NO_ROLLBACK = "failed_no_rollback"
    REJECTED = "rejected"
    DRY_RUN_COMPLETED = "dry_run_completed"


TERMINAL_STATES = frozenset({
    UpdateState.IDLE,
    UpdateState.SUCCEEDED,
    UpdateState.ROLLED_BACK,
    UpdateState.FAILED_NO_ROLLBACK,
    UpdateState.REJECTED,
    UpdateState.DRY_RUN_COMPLETED,
})


class UpdateOptions(BaseModel):
    create_backup: bool = True
    validate_security: bool = True
    check_dependencies: bool = True
    auto_migrate: bool = True
    dry_run: bool = False
    # Keep the new version and only warn when a settings migration fails
    tolerate_migration_failure: bool = False


class UpdateSourceConfig(BaseModel):
    """Tagged configuration selecting one of the update source kinds."""
    type: Literal["github", "npm", "url", "local"]
    location: str
    tag: str | None = None


class ReleaseInfo(BaseModel):
    """What an update source reports about its newest version."""
    version: str
    release_notes: str = ""
    download_url: str | None = None
    local_path: str | None = None
    published_at: datetime | None = None
    size: int | None = None


class UpdateInfo(BaseModel):
    available: bool
    current_version: str
    latest_version: str
    breaking: bool = False
    release_notes: str = ""
    published_at: datetime | None = None
    download_url: str | None = None
    size: int | None = None
    error: str | None = None
    release: ReleaseInfo | None = None


class UpdateResult(BaseModel):
    """Terminal outcome of one update session."""
    success: bool
    state: UpdateState
    message: str
    package_id: str
    version: str
    previous_version: str = ""
    target_version: str | None = None
    backup_id: str | None = None
    rollback_available: bool = False
    warnings: list[str] = []
    errors: list[str] = []
    history: list[UpdateState] = []
    validation: ValidationResult | None = None
    security: SecurityScanResult | None = None
    dependencies: DependencyCheckResult | None = None
