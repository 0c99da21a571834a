"""Tests for update sources (mocked HTTP)."""

import json

import httpx
import pytest
import respx

from theme_lifecycle.updater.models import UpdateSourceConfig
from theme_lifecycle.updater.sources import (
    GitHubReleaseSource,
    LocalDirectorySource,
    RegistrySource,
    UpdateSource,
    UpdateSourceError,
    UrlSource,
    create_update_source,
)

API_URL = "https://api.github.test"
REGISTRY_URL = "https://registry.test"


class TestGitHubReleaseSource:
    @respx.mock
    @pytest.mark.asyncio
    async def test_latest_release(self):
        respx.get(f"{API_URL}/repos/acme/aurora/releases/latest").mock(
            return_value=httpx.Response(200, json={
                "tag_name": "v2.1.0",
                "body": "New hero section",
                "zipball_url": f"{API_URL}/repos/acme/aurora/zipball/v2.1.0",
                "published_at": "2025-03-01T10:00:00Z",
            })
        )

        release = await GitHubReleaseSource("acme/aurora", api_url=API_URL).fetch_latest_version_info()

        assert release.version == "2.1.0"
        assert release.release_notes == "New hero section"
        assert release.download_url.endswith("/zipball/v2.1.0")
        assert release.published_at.year == 2025

    @respx.mock
    @pytest.mark.asyncio
    async def test_tagged_release_with_token(self):
        route = respx.get(f"{API_URL}/repos/acme/aurora/releases/tags/v1.5.0").mock(
            return_value=httpx.Response(200, json={"tag_name": "1.5.0", "tarball_url": "https://x.test/t"})
        )

        source = GitHubReleaseSource("acme/aurora", tag="v1.5.0", api_url=API_URL, token="secret")
        release = await source.fetch_latest_version_info()

        assert release.version == "1.5.0"
        assert release.download_url == "https://x.test/t"
        request = route.calls.last.request
        assert request.headers["Authorization"] == "Bearer secret"
        assert request.headers["Accept"] == "application/vnd.github+json"

    @respx.mock
    @pytest.mark.asyncio
    async def test_not_found(self):
        respx.get(f"{API_URL}/repos/acme/aurora/releases/latest").mock(
            return_value=httpx.Response(404, json={"message": "Not Found"})
        )
        with pytest.raises(UpdateSourceError):
            await GitHubReleaseSource("acme/aurora", api_url=API_URL).fetch_latest_version_info()

    @respx.mock
    @pytest.mark.asyncio
    async def test_network_error(self):
        respx.get(f"{API_URL}/repos/acme/aurora/releases/latest").mock(side_effect=httpx.ConnectTimeout)
        with pytest.raises(UpdateSourceError):
            await GitHubReleaseSource("acme/aurora", api_url=API_URL).fetch_latest_version_info()

    @respx.mock
    @pytest.mark.asyncio
    async def test_missing_tag_name(self):
        respx.get(f"{API_URL}/repos/acme/aurora/releases/latest").mock(
            return_value=httpx.Response(200, json={"body": "no tag"})
        )
        with pytest.raises(UpdateSourceError):
            await GitHubReleaseSource("acme/aurora", api_url=API_URL).fetch_latest_version_info()

    @pytest.mark.parametrize("repository", ["", "aurora", "/aurora"])
    def test_bad_repository(self, repository):
        with pytest.raises(ValueError):
            GitHubReleaseSource(repository)


class TestRegistrySource:
    @respx.mock
    @pytest.mark.asyncio
    async def test_latest_dist_tag(self):
        respx.get(f"{REGISTRY_URL}/aurora-theme").mock(
            return_value=httpx.Response(200, json={
                "dist-tags": {"latest": "3.0.0"},
                "versions": {"3.0.0": {"dist": {"tarball": f"{REGISTRY_URL}/aurora-theme-3.0.0.tgz"}}},
                "time": {"3.0.0": "2025-05-05T00:00:00.000Z"},
            })
        )

        release = await RegistrySource("aurora-theme", registry_url=REGISTRY_URL).fetch_latest_version_info()

        assert release.version == "3.0.0"
        assert release.download_url.endswith("aurora-theme-3.0.0.tgz")
        assert release.published_at is not None

    @respx.mock
    @pytest.mark.asyncio
    async def test_no_dist_tags(self):
        respx.get(f"{REGISTRY_URL}/aurora-theme").mock(return_value=httpx.Response(200, json={}))
        with pytest.raises(UpdateSourceError):
            await RegistrySource("aurora-theme", registry_url=REGISTRY_URL).fetch_latest_version_info()


class TestUrlSource:
    @respx.mock
    @pytest.mark.asyncio
    async def test_update_document(self):
        respx.get("https://updates.test/aurora.json").mock(
            return_value=httpx.Response(200, json={
                "version": "1.4.0",
                "downloadUrl": "https://updates.test/aurora-1.4.0.zip",
                "releaseNotes": "Fixes",
                "size": 2048,
            })
        )

        release = await UrlSource("https://updates.test/aurora.json").fetch_latest_version_info()

        assert release.version == "1.4.0"
        assert release.download_url == "https://updates.test/aurora-1.4.0.zip"
        assert release.release_notes == "Fixes"
        assert release.size == 2048

    @respx.mock
    @pytest.mark.asyncio
    async def test_download_url_defaults_to_source(self):
        respx.get("https://updates.test/aurora.json").mock(
            return_value=httpx.Response(200, json={"version": "1.4.0"})
        )
        release = await UrlSource("https://updates.test/aurora.json").fetch_latest_version_info()
        assert release.download_url == "https://updates.test/aurora.json"

    @respx.mock
    @pytest.mark.asyncio
    async def test_invalid_json(self):
        respx.get("https://updates.test/aurora.json").mock(
            return_value=httpx.Response(200, text="<html>maintenance</html>")
        )
        with pytest.raises(UpdateSourceError):
            await UrlSource("https://updates.test/aurora.json").fetch_latest_version_info()

    @respx.mock
    @pytest.mark.asyncio
    async def test_injected_client(self):
        respx.get("https://updates.test/aurora.json").mock(
            return_value=httpx.Response(200, json={"version": "1.4.1"})
        )
        async with httpx.AsyncClient() as client:
            release = await UrlSource("https://updates.test/aurora.json", client=client).fetch_latest_version_info()
        assert release.version == "1.4.1"


class TestLocalDirectorySource:
    @pytest.mark.asyncio
    async def test_reads_manifest(self, tmp_path):
        (tmp_path / "manifest.json").write_text(json.dumps({"id": "aurora", "version": "1.3.0"}))
        release = await LocalDirectorySource(tmp_path).fetch_latest_version_info()
        assert release.version == "1.3.0"
        assert release.local_path == str(tmp_path)

    @pytest.mark.asyncio
    async def test_missing_manifest(self, tmp_path):
        with pytest.raises(UpdateSourceError):
            await LocalDirectorySource(tmp_path).fetch_latest_version_info()


class TestCreateUpdateSource:
    @pytest.mark.parametrize("kind,cls", [
        ("github", GitHubReleaseSource),
        ("npm", RegistrySource),
        ("url", UrlSource),
        ("local", LocalDirectorySource),
    ])
    def test_dispatch(self, kind, cls):
        location = "acme/aurora" if kind == "github" else "aurora"
        source = create_update_source(UpdateSourceConfig(type=kind, location=location))
        assert isinstance(source, cls)
        assert isinstance(source, UpdateSource)

    def test_github_tag_passed_through(self):
        source = create_update_source(UpdateSourceConfig(type="github", location="acme/aurora", tag="v2.0.0"))
        assert source.tag == "v2.0.0"
