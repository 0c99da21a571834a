"""Where a package's live settings and customizations are kept."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Protocol, runtime_checkable

from pydantic import BaseModel

from theme_lifecycle.config import settings as app_settings

logger = logging.getLogger(__name__)


class ApplyResult(BaseModel):
    success: bool
    warnings: list[str] = []


@runtime_checkable
class SettingsStore(Protocol):
    """Collaborator the backup manager reads from and restores into."""

    def load_settings(self, package_id: str) -> dict[str, Any]: ...

    def load_customizations(self, package_id: str) -> dict[str, Any]: ...

    def apply_restored_data(
        self,
        package_id: str,
        settings: dict[str, Any],
        customizations: dict[str, Any],
    ) -> ApplyResult: ...


class JsonSettingsStore:
    """One JSON document per package: ``{"settings": ..., "customizations": ...}``."""

    def __init__(self, root: str | Path = ""):
        self.root = Path(root or app_settings.settings_dir)

    def path_for(self, package_id: str) -> Path:
        return self.root / f"{package_id}.json"

    def _read(self, package_id: str) -> dict[str, Any]:
        path = self.path_for(package_id)
        if not path.exists():
            return {}
        data = json.loads(path.read_text(encoding="utf-8"))
        return data if isinstance(data, dict) else {}

    def _write(self, package_id: str, document: dict[str, Any]) -> None:
        self.root.mkdir(parents=True, exist_ok=True)
        with self.path_for(package_id).open("w", encoding="utf-8") as f:
            json.dump(document, f, indent=2)

    def load_settings(self, package_id: str) -> dict[str, Any]:
        return dict(self._read(package_id).get("settings") or {})

    def load_customizations(self, package_id: str) -> dict[str, Any]:
        return dict(self._read(package_id).get("customizations") or {})

    def save(
        self,
        package_id: str,
        settings: dict[str, Any],
        customizations: dict[str, Any] | None = None,
    ) -> None:
        self._write(package_id, {"settings": settings, "customizations": customizations or {}})

    def apply_restored_data(
        self,
        package_id: str,
        settings: dict[str, Any],
        customizations: dict[str, Any],
    ) -> ApplyResult:
        try:
            self.save(package_id, settings, customizations)
        except OSError as e:
            logger.warning("Failed to write settings for %s: %s", package_id, e)
            return ApplyResult(success=False, warnings=[f"Could not write settings: {e}"])
        logger.info("Restored settings for %s", package_id)
        return ApplyResult(success=True)
