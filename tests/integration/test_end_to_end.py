"""End-to-end tests: export file -> parser -> ImportEngine -> SQLite catalog.

The synchronization case drives the whole stack, from the HTTP download
through the sync log, with the remote export served by
``httpx.MockTransport``.
"""

from __future__ import annotations

import io
import json
import zipfile
from pathlib import Path

import httpx
import pytest

from joconde_sync.models.reports import SyncStatus
from joconde_sync.parsers import parser_for_path
from joconde_sync.providers.catalog.sqlite_catalog_store import SQLiteCatalogStore
from joconde_sync.providers.sync_log.sqlite_sync_log_provider import SQLiteSyncLogProvider
from joconde_sync.services.downloader import HttpDownloader
from joconde_sync.services.import_engine import ImportEngine
from joconde_sync.services.sync_orchestrator import SyncOrchestrator
from tests.conftest import SAMPLE_XML, make_record, write_gzip, write_zip

# ======================================================================
# Local files
# ======================================================================


class TestLocalImport:
    @pytest.mark.asyncio
    async def test_single_json_record(
        self, catalog_store: SQLiteCatalogStore, grotesques_json: Path
    ) -> None:
        result = await parser_for_path(grotesques_json).parse(grotesques_json)
        stats = await ImportEngine(catalog_store).import_data(result)

        assert stats.success
        assert stats.artworks.imported == 1
        assert stats.artists.imported == 1
        assert stats.domains.imported == 1

        stored = await catalog_store.get_artwork("R1")
        assert stored["title"] == "Grotesques"
        assert stored["artists"] == [
            {"last_name": "DUBREUIL", "first_name": "Toussaint", "role": "Créateur"}
        ]
        assert stored["domains"] == ["dessin"]

        counts = await catalog_store.count_entities()
        assert counts["artworks"] == 1
        assert counts["artists"] == 1
        assert counts["artwork_artists"] == 1

    @pytest.mark.asyncio
    async def test_zipped_xml_import_and_reimport(
        self, catalog_store: SQLiteCatalogStore, tmp_path: Path
    ) -> None:
        archive = write_zip(tmp_path / "base_joconde.zip", "base-joconde-extrait.xml", SAMPLE_XML)
        engine = ImportEngine(catalog_store, artwork_batch_size=1, reference_batch_size=1)

        first = await engine.import_from_source(archive)
        counts = await catalog_store.count_entities()
        second = await engine.import_from_source(archive)

        assert first.success and second.success
        assert first.total_artworks == 2
        assert first.artworks.imported == 2
        assert first.museums.imported == 1
        assert second.artworks.imported == 0
        assert second.artworks.updated == 2
        assert await catalog_store.count_entities() == counts

        grotesques = await catalog_store.get_artwork("000DE000002")
        assert [a["role"] for a in grotesques["artists"]] == ["dessinateur", "Créateur"]
        assert sorted(grotesques["domains"]) == ["dessin", "peinture"]
        assert await catalog_store.get_artwork("000XX000003") is None

    @pytest.mark.asyncio
    async def test_gzipped_json_with_bad_records(
        self, catalog_store: SQLiteCatalogStore, tmp_path: Path
    ) -> None:
        records = [
            make_record("R1", AUTR="Monet, Claude", DOMN="peinture"),
            {"REF": "", "TITR": "no reference"},
            make_record("R2", AUTR="MONET Claude", DOMN="Peinture"),
        ]
        path = write_gzip(tmp_path / "export.json.gz", json.dumps(records))

        report = await ImportEngine(catalog_store).import_from_source(path)

        assert report.success
        assert report.artworks.imported == 2
        assert report.skipped_records == 1
        counts = await catalog_store.count_entities()
        assert counts["artists"] == 1
        assert counts["domains"] == 1


# ======================================================================
# Remote synchronization
# ======================================================================


def _zipped(text: str) -> bytes:
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w", compression=zipfile.ZIP_DEFLATED) as archive:
        archive.writestr("base-joconde-extrait.xml", text)
    return buffer.getvalue()


class TestRemoteSync:
    @pytest.mark.asyncio
    async def test_download_import_then_skip(
        self,
        catalog_store: SQLiteCatalogStore,
        sync_log: SQLiteSyncLogProvider,
        tmp_path: Path,
    ) -> None:
        body = _zipped(SAMPLE_XML)
        headers = {"Last-Modified": "Tue, 02 Jan 2024 10:00:00 GMT"}
        requests: list[str] = []

        def _handler(request: httpx.Request) -> httpx.Response:
            requests.append(request.method)
            if request.method == "HEAD":
                return httpx.Response(200, headers=headers)
            return httpx.Response(200, headers=headers, content=body)

        async with httpx.AsyncClient(transport=httpx.MockTransport(_handler)) as client:
            orchestrator = SyncOrchestrator(
                sync_log=sync_log,
                downloader=HttpDownloader(client, chunk_size=64),
                import_engine=ImportEngine(catalog_store),
                source_url="https://data.example.org/joconde.zip",
                temp_dir=tmp_path,
            )
            run = await orchestrator.synchronize()
            skipped = await orchestrator.synchronize()

        assert run.status == SyncStatus.COMPLETED
        assert run.items_processed == 2
        assert run.source_fingerprint == "last-modified:Tue, 02 Jan 2024 10:00:00 GMT"
        assert skipped is None
        assert requests == ["GET", "HEAD"]
        assert (await catalog_store.count_entities())["artworks"] == 2
        assert list(tmp_path.glob("joconde_*")) == []
