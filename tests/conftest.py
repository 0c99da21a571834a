"""Shared test configuration and fixtures."""

import json
from pathlib import Path

import pytest

from theme_lifecycle.settings_store import JsonSettingsStore
from theme_lifecycle.store import PackageStore

PACKAGE_ID = "aurora"

DEFAULT_FILES = {
    "index.ts": 'export { Hero } from "./sections/hero";\n',
    "sections/hero.tsx": (
        "export function Hero() {\n"
        '  return <section className="hero">Welcome</section>;\n'
        "}\n"
    ),
    "blocks/button.tsx": (
        "export function Button({ label }: { label: string }) {\n"
        "  return <button>{label}</button>;\n"
        "}\n"
    ),
}


def write_package(
    root: Path,
    version: str = "1.0.0",
    files: dict[str, str] | None = None,
    **manifest_fields,
) -> Path:
    """Write a minimal, valid theme package to ``root``."""
    root.mkdir(parents=True, exist_ok=True)
    manifest = {"id": root.name, "name": "Aurora", "version": version}
    manifest.update(manifest_fields)
    (root / "manifest.json").write_text(json.dumps(manifest, indent=2), encoding="utf-8")
    for relative, content in (DEFAULT_FILES if files is None else files).items():
        path = root / relative
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content, encoding="utf-8")
    return root


@pytest.fixture
def packages_root(tmp_path):
    root = tmp_path / "themes"
    root.mkdir()
    return root


@pytest.fixture
def store(packages_root):
    return PackageStore(packages_root)


@pytest.fixture
def settings_store(tmp_path):
    return JsonSettingsStore(tmp_path / "settings")


@pytest.fixture
def make_package(packages_root):
    """Factory writing a package under the store root."""
    def _make(package_id: str = PACKAGE_ID, version: str = "1.0.0", files=None, **manifest_fields) -> Path:
        return write_package(packages_root / package_id, version, files, **manifest_fields)
    return _make


@pytest.fixture
def make_release(tmp_path):
    """Factory writing a candidate package outside the store root."""
    def _make(version: str, files=None, package_id: str = PACKAGE_ID, **manifest_fields) -> Path:
        return write_package(tmp_path / f"release-{version}" / package_id, version, files, **manifest_fields)
    return _make
