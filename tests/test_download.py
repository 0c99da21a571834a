"""Tests for fetching candidate packages."""

import io
import json
import tarfile
import zipfile

import httpx
import pytest
import respx

from theme_lifecycle.updater.download import PackageDownloader, UpdateError, extract_archive
from theme_lifecycle.updater.models import ReleaseInfo

MANIFEST = json.dumps({"id": "aurora", "name": "Aurora", "version": "2.0.0"}).encode()
ARCHIVE_URL = "https://downloads.test/aurora-2.0.0"


def _zip(entries: dict[str, bytes]) -> bytes:
    buf = io.BytesIO()
    with zipfile.ZipFile(buf, "w") as zf:
        for name, data in entries.items():
            zf.writestr(name, data)
    return buf.getvalue()


def _tar_gz(entries: dict[str, bytes]) -> bytes:
    buf = io.BytesIO()
    with tarfile.open(fileobj=buf, mode="w:gz") as tf:
        for name, data in entries.items():
            info = tarfile.TarInfo(name)
            info.size = len(data)
            tf.addfile(info, io.BytesIO(data))
    return buf.getvalue()


class TestLocalFetch:
    @pytest.mark.asyncio
    async def test_copies_directory(self, tmp_path):
        source = tmp_path / "source"
        source.mkdir()
        (source / "manifest.json").write_bytes(MANIFEST)

        root = await PackageDownloader().fetch(
            ReleaseInfo(version="2.0.0", local_path=str(source)), tmp_path / "work" / "candidate",
        )

        assert (root / "manifest.json").read_bytes() == MANIFEST
        assert (source / "manifest.json").exists()

    @pytest.mark.asyncio
    async def test_missing_directory(self, tmp_path):
        with pytest.raises(UpdateError):
            await PackageDownloader().fetch(
                ReleaseInfo(version="2.0.0", local_path=str(tmp_path / "gone")), tmp_path / "candidate",
            )

    @pytest.mark.asyncio
    async def test_no_location(self, tmp_path):
        with pytest.raises(UpdateError, match="No download location"):
            await PackageDownloader().fetch(ReleaseInfo(version="2.0.0"), tmp_path / "candidate")


class TestRemoteFetch:
    @respx.mock
    @pytest.mark.asyncio
    async def test_zip_with_top_level_directory(self, tmp_path):
        body = _zip({
            "acme-aurora-1a2b3c/manifest.json": MANIFEST,
            "acme-aurora-1a2b3c/index.ts": b"export {};\n",
        })
        respx.get(ARCHIVE_URL).mock(return_value=httpx.Response(200, content=body))
        dest = tmp_path / "work" / "candidate"

        root = await PackageDownloader().fetch(ReleaseInfo(version="2.0.0", download_url=ARCHIVE_URL), dest)

        assert root == dest / "acme-aurora-1a2b3c"
        assert (root / "index.ts").exists()
        assert not (tmp_path / "work" / "package.archive").exists()

    @respx.mock
    @pytest.mark.asyncio
    async def test_registry_tarball(self, tmp_path):
        body = _tar_gz({"package/manifest.json": MANIFEST})
        respx.get(ARCHIVE_URL).mock(return_value=httpx.Response(200, content=body))

        root = await PackageDownloader().fetch(
            ReleaseInfo(version="2.0.0", download_url=ARCHIVE_URL), tmp_path / "candidate",
        )

        assert root.name == "package"
        assert json.loads((root / "manifest.json").read_text())["version"] == "2.0.0"

    @respx.mock
    @pytest.mark.asyncio
    async def test_unsafe_zip_rejected(self, tmp_path):
        respx.get(ARCHIVE_URL).mock(return_value=httpx.Response(200, content=_zip({"../evil.txt": b"x"})))
        with pytest.raises(UpdateError, match="Unsafe path"):
            await PackageDownloader().fetch(
                ReleaseInfo(version="2.0.0", download_url=ARCHIVE_URL), tmp_path / "work" / "candidate",
            )
        assert not (tmp_path / "work" / "evil.txt").exists()

    @respx.mock
    @pytest.mark.asyncio
    async def test_http_error(self, tmp_path):
        respx.get(ARCHIVE_URL).mock(return_value=httpx.Response(500))
        with pytest.raises(UpdateError, match="Download of"):
            await PackageDownloader().fetch(
                ReleaseInfo(version="2.0.0", download_url=ARCHIVE_URL), tmp_path / "candidate",
            )

    @respx.mock
    @pytest.mark.asyncio
    async def test_not_an_archive(self, tmp_path):
        respx.get(ARCHIVE_URL).mock(return_value=httpx.Response(200, content=b"<html>nope</html>"))
        with pytest.raises(UpdateError, match="Unsupported archive format"):
            await PackageDownloader().fetch(
                ReleaseInfo(version="2.0.0", download_url=ARCHIVE_URL), tmp_path / "candidate",
            )


class TestExtractArchive:
    def test_flat_archive_root(self, tmp_path):
        archive = tmp_path / "flat.zip"
        archive.write_bytes(_zip({"manifest.json": MANIFEST}))
        assert extract_archive(archive, tmp_path / "out") == tmp_path / "out"
