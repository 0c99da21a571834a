"""Fetch a candidate package into an isolated directory."""

from __future__ import annotations

import asyncio
import logging
import tarfile
import zipfile
from pathlib import Path, PurePosixPath

import httpx

from theme_lifecycle.config import settings
from theme_lifecycle.manifest import MANIFEST_FILENAME
from theme_lifecycle.store import copy_tree
from theme_lifecycle.updater.models import ReleaseInfo

logger = logging.getLogger(__name__)

ARCHIVE_NAME = "package.archive"


class UpdateError(RuntimeError):
    """Raised when a candidate cannot be fetched or applied."""


def _is_safe_member(name: str) -> bool:
    path = PurePosixPath(name.replace("\\", "/"))
    return not path.is_absolute() and ".." not in path.parts


def _extract_zip(archive: Path, dest: Path) -> None:
    with zipfile.ZipFile(archive) as zf:
        for info in zf.infolist():
            if not _is_safe_member(info.filename):
                raise UpdateError(f"Unsafe path in archive: {info.filename}")
        zf.extractall(dest)


def _extract_tar(archive: Path, dest: Path) -> None:
    with tarfile.open(archive) as tf:
        try:
            tf.extractall(dest, filter="data")
        except tarfile.FilterError as e:
            raise UpdateError(f"Unsafe entry in archive: {e}") from e


def extract_archive(archive: Path, dest: Path) -> Path:
    """Extract a zip or tar archive and return the package root inside it.

    Release archives usually wrap the package in one top-level directory;
    when the manifest is not at the top level and there is exactly one
    directory, that directory is the package root.
    """
    dest.mkdir(parents=True, exist_ok=True)
    if zipfile.is_zipfile(archive):
        _extract_zip(archive, dest)
    elif tarfile.is_tarfile(archive):
        _extract_tar(archive, dest)
    else:
        raise UpdateError(f"Unsupported archive format: {archive.name}")

    if (dest / MANIFEST_FILENAME).exists():
        return dest
    children = [p for p in dest.iterdir() if p.is_dir()]
    if len(children) == 1 and (children[0] / MANIFEST_FILENAME).exists():
        return children[0]
    return dest


class PackageDownloader:
    """Copies a local candidate or downloads and unpacks a remote archive."""

    def __init__(self, timeout: float = 0, client: httpx.AsyncClient | None = None):
        self.timeout = timeout or settings.http_timeout_seconds
        self._client = client

    async def fetch(self, release: ReleaseInfo, dest: Path) -> Path:
        """Place the candidate for ``release`` under ``dest``; returns its root."""
        dest = Path(dest)
        if release.local_path:
            source = Path(release.local_path)
            if not source.is_dir():
                raise UpdateError(f"Local update directory not found: {source}")
            await asyncio.to_thread(copy_tree, source, dest)
            return dest

        if not release.download_url:
            raise UpdateError(f"No download location for version {release.version}")

        dest.parent.mkdir(parents=True, exist_ok=True)
        archive = dest.parent / ARCHIVE_NAME
        await self._download(release.download_url, archive)
        try:
            return await asyncio.to_thread(extract_archive, archive, dest)
        except (OSError, zipfile.BadZipFile, tarfile.TarError) as e:
            raise UpdateError(f"Failed to extract {release.download_url}: {e}") from e
        finally:
            archive.unlink(missing_ok=True)

    async def _download(self, url: str, target: Path) -> None:
        logger.info("Downloading %s", url)
        try:
            if self._client is not None:
                await self._stream(self._client, url, target)
            else:
                async with httpx.AsyncClient(timeout=self.timeout, follow_redirects=True) as client:
                    await self._stream(client, url, target)
        except httpx.HTTPError as e:
            raise UpdateError(f"Download of {url} failed: {e}") from e

    async def _stream(self, client: httpx.AsyncClient, url: str, target: Path) -> None:
        async with client.stream("GET", url) as resp:
            resp.raise_for_status()
            with target.open("wb") as f:
                async for chunk in resp.aiter_bytes():
                    f.write(chunk)
