"""Tests for build artifact resolution and download."""

from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import pytest

from buildrelay.jobs.errors import DownloadError, NotFoundError
from buildrelay.jobs.types import FileKind, StorageKind
from buildrelay.services.artifacts import ArtifactFetcher
from buildrelay.store.base import StoreError
from buildrelay.store.memory import InMemoryStore

FIRMWARE = bytes(range(256)) * 4


@pytest.fixture
def fetcher(store):
    return ArtifactFetcher(store)


async def publish_external(store, build_id="B1"):
    await store.write(
        f"builds/{build_id}",
        {
            "storage": "github",
            "files": {
                "bin": {
                    "filename": "firmware.bin",
                    "downloadUrl": "https://releases.example.com/firmware.bin",
                }
            },
        },
    )


class TestInline:
    @pytest.mark.asyncio
    async def test_download_is_byte_identical(self, fetcher, publish_build):
        await publish_build("B1", {"bin": FIRMWARE})

        artifact = await fetcher.download("B1", "bin")

        assert artifact.content == FIRMWARE
        assert artifact.kind == FileKind.BIN
        assert artifact.filename == "firmware.bin"
        assert artifact.source == StorageKind.INLINE

    @pytest.mark.asyncio
    async def test_fetch_prefers_bin_over_hex(self, fetcher, publish_build):
        await publish_build("B1", {"hex": b":00000001FF", "bin": FIRMWARE})

        artifact = await fetcher.fetch("B1")

        assert artifact.kind == FileKind.BIN

    @pytest.mark.asyncio
    async def test_fetch_falls_back_to_hex(self, fetcher, publish_build):
        await publish_build("B1", {"hex": b":00000001FF", "elf": b"\x7fELF"})

        artifact = await fetcher.fetch("B1")

        assert artifact.kind == FileKind.HEX
        assert artifact.content == b":00000001FF"

    @pytest.mark.asyncio
    async def test_custom_preference(self, store, publish_build):
        await publish_build("B1", {"hex": b"h", "elf": b"e"})
        fetcher = ArtifactFetcher(store, preference=["elf", "hex"])

        assert (await fetcher.fetch("B1")).kind == FileKind.ELF

    @pytest.mark.asyncio
    async def test_missing_payload(self, fetcher, publish_build):
        await publish_build("B1", {"hex": b"h"})
        with pytest.raises(NotFoundError):
            await fetcher.download("B1", "bin")

    @pytest.mark.asyncio
    async def test_invalid_base64(self, fetcher, store):
        await store.write("binaries/B1/bin", {"binary": "not base64!!", "filename": "f.bin"})
        with pytest.raises(DownloadError):
            await fetcher.download("B1", "bin")


class TestResolve:
    @pytest.mark.asyncio
    async def test_missing_build(self, fetcher):
        with pytest.raises(NotFoundError):
            await fetcher.resolve("B404")

    @pytest.mark.asyncio
    async def test_no_known_files(self, fetcher, store):
        await store.write("builds/B1", {"files": {"map": {"filename": "fw.map"}}})
        build = await fetcher.resolve("B1")
        with pytest.raises(NotFoundError) as exc_info:
            fetcher.select_file(build)
        assert ".bin, .hex, .elf" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_store_error(self):
        class BrokenStore(InMemoryStore):
            async def read(self, path):
                raise StoreError("offline")

        with pytest.raises(DownloadError):
            await ArtifactFetcher(BrokenStore()).resolve("B1")


class TestExternal:
    @pytest.mark.asyncio
    async def test_download_from_url(self, fetcher, store):
        await publish_external(store)
        mock_response = MagicMock()
        mock_response.content = FIRMWARE
        mock_response.raise_for_status = MagicMock()

        with patch("httpx.AsyncClient.get", new_callable=AsyncMock) as mock_get:
            mock_get.return_value = mock_response
            artifact = await fetcher.fetch("B1")

        mock_get.assert_called_once_with("https://releases.example.com/firmware.bin")
        assert artifact.content == FIRMWARE
        assert artifact.source == StorageKind.EXTERNAL

    @pytest.mark.asyncio
    async def test_http_error_status(self, fetcher, store):
        await publish_external(store)
        request = httpx.Request("GET", "https://releases.example.com/firmware.bin")
        mock_response = MagicMock()
        mock_response.raise_for_status = MagicMock(
            side_effect=httpx.HTTPStatusError(
                "Not Found", request=request, response=httpx.Response(404, request=request)
            )
        )

        with patch("httpx.AsyncClient.get", new_callable=AsyncMock) as mock_get:
            mock_get.return_value = mock_response
            with pytest.raises(DownloadError) as exc_info:
                await fetcher.fetch("B1")

        assert "404" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_network_error(self, fetcher, store):
        await publish_external(store)

        with patch("httpx.AsyncClient.get", new_callable=AsyncMock) as mock_get:
            mock_get.side_effect = httpx.ConnectError("Connection refused")
            with pytest.raises(DownloadError):
                await fetcher.fetch("B1")
