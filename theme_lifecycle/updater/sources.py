"""Update sources: where the newest version of a package is looked up.

Every source exposes one coroutine, ``fetch_latest_version_info``, and raises
UpdateSourceError for any failure. The updater decides what a failure means.
"""

from __future__ import annotations

import json
import logging
from datetime import datetime
from pathlib import Path
from typing import Any, Protocol, runtime_checkable

import httpx

from theme_lifecycle.config import settings
from theme_lifecycle.manifest import MANIFEST_FILENAME
from theme_lifecycle.updater.models import ReleaseInfo, UpdateSourceConfig

logger = logging.getLogger(__name__)


class UpdateSourceError(RuntimeError):
    """Raised when an update source cannot report a version."""


@runtime_checkable
class UpdateSource(Protocol):
    async def fetch_latest_version_info(self) -> ReleaseInfo: ...


def _parse_datetime(value: Any) -> datetime | None:
    if not isinstance(value, str) or not value:
        return None
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None


class _HttpSource:
    """Shared GET-JSON plumbing for the remote sources."""

    def __init__(self, timeout: float = 0, client: httpx.AsyncClient | None = None):
        self.timeout = timeout or settings.http_timeout_seconds
        self._client = client

    def _headers(self) -> dict[str, str]:
        return {"Accept": "application/json"}

    async def _get_json(self, url: str) -> Any:
        try:
            if self._client is not None:
                resp = await self._client.get(url, headers=self._headers(), timeout=self.timeout)
            else:
                async with httpx.AsyncClient(timeout=self.timeout, follow_redirects=True) as client:
                    resp = await client.get(url, headers=self._headers())
            resp.raise_for_status()
            return resp.json()
        except httpx.HTTPError as e:
            raise UpdateSourceError(f"Request to {url} failed: {e}") from e
        except ValueError as e:
            raise UpdateSourceError(f"Invalid JSON from {url}: {e}") from e


class GitHubReleaseSource(_HttpSource):
    """Latest (or tagged) release of an ``owner/repo`` on a GitHub-style API."""

    def __init__(
        self,
        repository: str,
        tag: str | None = None,
        api_url: str = "",
        token: str = "",
        timeout: float = 0,
        client: httpx.AsyncClient | None = None,
    ):
        super().__init__(timeout, client)
        owner, _, repo = repository.strip("/").partition("/")
        if not owner or not repo:
            raise ValueError(f"Expected 'owner/repo', got {repository!r}")
        self.owner = owner
        self.repo = repo
        self.tag = tag
        self.api_url = (api_url or settings.release_api_url).rstrip("/")
        self.token = token or settings.release_api_token

    def _headers(self) -> dict[str, str]:
        headers = {
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": "2022-11-28",
        }
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers

    async def fetch_latest_version_info(self) -> ReleaseInfo:
        if self.tag:
            url = f"{self.api_url}/repos/{self.owner}/{self.repo}/releases/tags/{self.tag}"
        else:
            url = f"{self.api_url}/repos/{self.owner}/{self.repo}/releases/latest"
        release = await self._get_json(url)

        tag_name = release.get("tag_name") if isinstance(release, dict) else None
        if not isinstance(tag_name, str) or not tag_name:
            raise UpdateSourceError(f"Release response from {url} has no tag_name")

        return ReleaseInfo(
            version=tag_name.removeprefix("v"),
            release_notes=release.get("body") or "",
            download_url=release.get("zipball_url") or release.get("tarball_url"),
            published_at=_parse_datetime(release.get("published_at")),
        )


class RegistrySource(_HttpSource):
    """``dist-tags.latest`` of a package on an npm-style registry."""

    def __init__(
        self,
        package_name: str,
        registry_url: str = "",
        timeout: float = 0,
        client: httpx.AsyncClient | None = None,
    ):
        super().__init__(timeout, client)
        self.package_name = package_name
        self.registry_url = (registry_url or settings.registry_url).rstrip("/")

    async def fetch_latest_version_info(self) -> ReleaseInfo:
        url = f"{self.registry_url}/{self.package_name}"
        data = await self._get_json(url)

        latest = (data.get("dist-tags") or {}).get("latest") if isinstance(data, dict) else None
        if not isinstance(latest, str) or not latest:
            raise UpdateSourceError(f"No latest dist-tag for {self.package_name}")

        dist = ((data.get("versions") or {}).get(latest) or {}).get("dist") or {}
        return ReleaseInfo(
            version=latest,
            download_url=dist.get("tarball"),
            published_at=_parse_datetime((data.get("time") or {}).get(latest)),
            size=dist.get("unpackedSize"),
        )


class UrlSource(_HttpSource):
    """A URL returning ``{"version": ..., "downloadUrl": ...}``."""

    def __init__(self, url: str, timeout: float = 0, client: httpx.AsyncClient | None = None):
        super().__init__(timeout, client)
        self.url = url

    async def fetch_latest_version_info(self) -> ReleaseInfo:
        data = await self._get_json(self.url)
        version = data.get("version") if isinstance(data, dict) else None
        if not isinstance(version, str) or not version:
            raise UpdateSourceError(f"No version in update info from {self.url}")

        return ReleaseInfo(
            version=version,
            release_notes=data.get("releaseNotes") or "",
            download_url=data.get("downloadUrl") or self.url,
            published_at=_parse_datetime(data.get("publishedAt")),
            size=data.get("size"),
        )


class LocalDirectorySource:
    """A directory on disk holding the candidate package and its manifest."""

    def __init__(self, path: str | Path):
        self.path = Path(path)

    async def fetch_latest_version_info(self) -> ReleaseInfo:
        manifest_path = self.path / MANIFEST_FILENAME
        try:
            data = json.loads(manifest_path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            raise UpdateSourceError(f"Cannot read {manifest_path}: {e}") from e

        version = data.get("version") if isinstance(data, dict) else None
        if not isinstance(version, str) or not version:
            raise UpdateSourceError(f"No version in {manifest_path}")
        return ReleaseInfo(version=version, local_path=str(self.path))


def create_update_source(
    config: UpdateSourceConfig,
    client: httpx.AsyncClient | None = None,
) -> UpdateSource:
    """Build the source named by ``config.type``."""
    if config.type == "github":
        return GitHubReleaseSource(config.location, tag=config.tag, client=client)
    if config.type == "npm":
        return RegistrySource(config.location, client=client)
    if config.type == "url":
        return UrlSource(config.location, client=client)
    if config.type == "local":
        return LocalDirectorySource(config.location)
    raise ValueError(f"Unknown update source type: {config.type}")
