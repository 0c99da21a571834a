"""Backup records and the options that shape create/restore."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class BackupCustomizations(BaseModel):
    model_config = ConfigDict(frozen=True)

    templates: dict[str, Any] | None = None
    sections: dict[str, Any] | None = None
    styles: dict[str, Any] | None = None


class BackupMetadata(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    platform: str
    platform_version: str = Field(alias="platformVersion")
    user_agent: str | None = Field(default=None, alias="userAgent")
    created_by: str | None = Field(default=None, alias="createdBy")


class Backup(BaseModel):
    """A checksummed snapshot of one package's settings and customizations."""
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    id: str
    package_id: str = Field(alias="packageId")
    version: str
    timestamp: datetime
    name: str
    description: str | None = None
    settings: dict[str, Any] = {}
    customizations: BackupCustomizations = BackupCustomizations()
    metadata: BackupMetadata
    checksum: str = ""


class BackupListItem(BaseModel):
    id: str
    name: str
    package_id: str
    timestamp: datetime
    size: int
    description: str | None = None


class BackupOptions(BaseModel):
    name: str | None = None
    description: str | None = None
    include_templates: bool = True
    include_sections: bool = True
    include_styles: bool = True


class RestoreOptions(BaseModel):
    overwrite: bool = False
    merge_settings: bool = False
    validate_checksum: bool = True
    skip_incompatible: bool = False


class RestoreResult(BaseModel):
    success: bool
    backup_id: str
    settings: dict[str, Any] | None = None
    customizations: BackupCustomizations | None = None
    warnings: list[str] = []


class ImportResult(BaseModel):
    success: bool
    backup_id: str | None = None
    error: str | None = None
