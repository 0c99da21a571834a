"""Filesystem package store and typed directory walk."""

from __future__ import annotations

import json
import os
import shutil
from dataclasses import dataclass
from pathlib import Path
from typing import Callable

from theme_lifecycle.config import settings
from theme_lifecycle.manifest import MANIFEST_FILENAME, PackageManifest, load_manifest

SKIPPED_DIRECTORIES = frozenset({"node_modules"})


class PackageNotFoundError(FileNotFoundError):
    """Raised when a package directory does not exist."""


@dataclass(frozen=True)
class PackageEntry:
    """A single file or directory below a package root."""
    path: Path
    relative: str  # posix-style, relative to the package root
    is_dir: bool
    size: int
    mode: int

    @property
    def name(self) -> str:
        return self.path.name

    @property
    def suffix(self) -> str:
        return self.path.suffix.lower()


def should_descend(name: str) -> bool:
    """Default traversal policy: skip hidden directories and node_modules."""
    return not name.startswith(".") and name not in SKIPPED_DIRECTORIES


def descend_all(name: str) -> bool:
    return True


def walk_package(
    root: Path,
    descend: Callable[[str], bool] = should_descend,
) -> list[PackageEntry]:
    """Return a flat, sorted list of every entry below ``root``.

    Directories rejected by ``descend`` are neither listed nor entered.
    Symlinks are not followed.
    """
    root = Path(root)
    entries: list[PackageEntry] = []

    def _walk(directory: Path) -> None:
        with os.scandir(directory) as it:
            children = sorted(it, key=lambda e: e.name)
        for child in children:
            path = Path(child.path)
            if child.is_dir(follow_symlinks=False):
                if not descend(child.name):
                    continue
                stat = child.stat(follow_symlinks=False)
                entries.append(PackageEntry(
                    path=path,
                    relative=path.relative_to(root).as_posix(),
                    is_dir=True,
                    size=0,
                    mode=stat.st_mode,
                ))
                _walk(path)
            elif child.is_file(follow_symlinks=False):
                stat = child.stat(follow_symlinks=False)
                entries.append(PackageEntry(
                    path=path,
                    relative=path.relative_to(root).as_posix(),
                    is_dir=False,
                    size=stat.st_size,
                    mode=stat.st_mode,
                ))

    _walk(root)
    return entries


def package_files(root: Path, descend: Callable[[str], bool] = should_descend) -> list[PackageEntry]:
    """Only the file entries of ``walk_package``."""
    return [e for e in walk_package(root, descend) if not e.is_dir]


def copy_tree(src: Path, dst: Path) -> None:
    """Copy a directory tree, replacing ``dst`` if it already exists."""
    dst = Path(dst)
    if dst.exists():
        shutil.rmtree(dst)
    dst.parent.mkdir(parents=True, exist_ok=True)
    shutil.copytree(src, dst, symlinks=True)


def remove_tree(path: Path) -> None:
    """Remove a directory tree if present."""
    path = Path(path)
    if path.is_dir():
        shutil.rmtree(path)
    elif path.exists():
        path.unlink()


class PackageStore:
    """Package directories addressed by package id under a single root."""

    def __init__(self, root: str | Path = ""):
        self.root = Path(root or settings.packages_dir)

    def package_path(self, package_id: str) -> Path:
        if not package_id or "/" in package_id or "\\" in package_id or package_id.startswith("."):
            raise ValueError(f"Invalid package id: {package_id!r}")
        return self.root / package_id

    def exists(self, package_id: str) -> bool:
        return self.package_path(package_id).is_dir()

    def require(self, package_id: str) -> Path:
        """Return the package path, raising PackageNotFoundError if missing."""
        path = self.package_path(package_id)
        if not path.is_dir():
            raise PackageNotFoundError(f"Package directory not found: {path}")
        return path

    def manifest_path(self, package_id: str) -> Path:
        return self.package_path(package_id) / MANIFEST_FILENAME

    def read_manifest_data(self, package_id: str) -> dict:
        return json.loads(self.manifest_path(package_id).read_text(encoding="utf-8"))

    def load_manifest(self, package_id: str) -> PackageManifest:
        return load_manifest(self.require(package_id))

    def list_packages(self) -> list[str]:
        if not self.root.is_dir():
            return []
        return sorted(
            p.name for p in self.root.iterdir()
            if p.is_dir() and should_descend(p.name)
        )

    def walk(self, package_id: str) -> list[PackageEntry]:
        return walk_package(self.require(package_id))
