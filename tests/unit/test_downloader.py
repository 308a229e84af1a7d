"""Unit tests for HttpDownloader using httpx.MockTransport."""

from __future__ import annotations

import asyncio
import hashlib
from pathlib import Path

import httpx
import pytest

from joconde_sync.services.downloader import HttpDownloader, SourceValidators
from joconde_sync.utils.errors import DownloadError

URL = "https://data.example.org/joconde/export"
BODY = b"<Joconde>" + b"<notice><REF>R</REF><TITR>T</TITR></notice>" * 200 + b"</Joconde>"


def _client(handler) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


def _export_handler(request: httpx.Request) -> httpx.Response:
    headers = {"ETag": '"v42"', "Last-Modified": "Mon, 01 Jan 2024 00:00:00 GMT"}
    if request.method == "HEAD":
        return httpx.Response(200, headers=headers)
    return httpx.Response(200, headers=headers, content=BODY)


class TestSourceValidators:
    def test_etag_preferred(self) -> None:
        assert SourceValidators(etag='"x"', last_modified="then").fingerprint == 'etag:"x"'

    def test_last_modified_fallback(self) -> None:
        assert SourceValidators(last_modified="then").fingerprint == "last-modified:then"

    def test_none_without_validators(self) -> None:
        assert SourceValidators().fingerprint is None


class TestHttpDownloader:
    @pytest.mark.asyncio
    async def test_head_returns_validators(self) -> None:
        async with _client(_export_handler) as client:
            validators = await HttpDownloader(client).head(URL)

        assert validators.etag == '"v42"'
        assert validators.fingerprint == 'etag:"v42"'

    @pytest.mark.asyncio
    async def test_head_failure_returns_empty_validators(self) -> None:
        async with _client(lambda request: httpx.Response(405)) as client:
            validators = await HttpDownloader(client).head(URL)
        assert validators.fingerprint is None

    @pytest.mark.asyncio
    async def test_download_streams_to_file_and_hashes(self, tmp_path: Path) -> None:
        target = tmp_path / "export.download"
        async with _client(_export_handler) as client:
            result = await HttpDownloader(client, chunk_size=256).download(URL, target)

        assert result.completed
        assert target.read_bytes() == BODY
        assert result.bytes_written == len(BODY)
        assert result.content_hash == hashlib.sha256(BODY).hexdigest()
        assert result.content_fingerprint.startswith("sha256:")
        assert result.validators.fingerprint == 'etag:"v42"'

    @pytest.mark.asyncio
    async def test_cancel_stops_download(self, tmp_path: Path) -> None:
        cancel = asyncio.Event()
        cancel.set()
        async with _client(_export_handler) as client:
            result = await HttpDownloader(client, chunk_size=256).download(
                URL, tmp_path / "x", cancel_event=cancel
            )

        assert result.completed is False
        assert result.bytes_written < len(BODY)

    @pytest.mark.asyncio
    async def test_http_error_status(self, tmp_path: Path) -> None:
        async with _client(lambda request: httpx.Response(503)) as client:
            with pytest.raises(DownloadError, match="503"):
                await HttpDownloader(client).download(URL, tmp_path / "x")

    @pytest.mark.asyncio
    async def test_transport_error(self, tmp_path: Path) -> None:
        def _refuse(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        async with _client(_refuse) as client:
            with pytest.raises(DownloadError):
                await HttpDownloader(client).download(URL, tmp_path / "x")

    @pytest.mark.asyncio
    async def test_unwritable_destination(self, tmp_path: Path) -> None:
        async with _client(_export_handler) as client:
            with pytest.raises(DownloadError):
                await HttpDownloader(client).download(URL, tmp_path / "no_dir" / "x")
