"""Shared pytest fixtures for the joconde-sync test suite."""

from __future__ import annotations

import gzip
import json
import zipfile
from pathlib import Path
from typing import Any

import pytest
import pytest_asyncio

from joconde_sync.providers.catalog.sqlite_catalog_store import SQLiteCatalogStore
from joconde_sync.providers.sync_log.sqlite_sync_log_provider import SQLiteSyncLogProvider

# ---------------------------------------------------------------------------
# Sample documents
# ---------------------------------------------------------------------------

SAMPLE_XML = """<?xml version="1.0" encoding="UTF-8"?>
<Joconde>
  <notice>
    <REF>000PE000001</REF>
    <TITR>Portrait de femme</TITR>
    <AUTR>MONET Claude</AUTR>
    <DOMN>peinture</DOMN>
    <TECH>huile sur toile</TECH>
    <PERI>4e quart 19e siecle</PERI>
    <LOCA2>Musee d'Orsay</LOCA2>
    <VILLE>Paris</VILLE>
  </notice>
  <notice>
    <REF>000DE000002</REF>
    <TITR>Grotesques</TITR>
    <DESC>Etude de figures</DESC>
    <AUTR>DUBREUIL Toussaint;Monet, Claude</AUTR>
    <ROLE>dessinateur</ROLE>
    <DOMN>dessin;peinture</DOMN>
    <LOCA2>Musee d'Orsay</LOCA2>
  </notice>
  <notice>
    <REF>000XX000003</REF>
    <AUTR>Anonyme</AUTR>
    <DOMN>sculpture</DOMN>
  </notice>
</Joconde>
"""

GROTESQUES_RECORD: dict[str, Any] = {
    "REF": "R1",
    "TITR": "Grotesques",
    "AUTR": "DUBREUIL Toussaint",
    "DOMN": "dessin",
}


# ---------------------------------------------------------------------------
# File helpers
# ---------------------------------------------------------------------------


def write_text(path: Path, text: str) -> Path:
    path.write_text(text, encoding="utf-8")
    return path


def write_json(path: Path, payload: Any) -> Path:
    return write_text(path, json.dumps(payload, ensure_ascii=False))


def write_gzip(path: Path, text: str) -> Path:
    with gzip.open(path, "wb") as fh:
        fh.write(text.encode("utf-8"))
    return path


def write_zip(path: Path, member: str, text: str) -> Path:
    with zipfile.ZipFile(path, "w", compression=zipfile.ZIP_DEFLATED) as archive:
        archive.writestr(member, text)
    return path


def make_record(ref: str, title: str = "Sans titre", **fields: Any) -> dict[str, Any]:
    """A field-code JSON record."""
    return {"REF": ref, "TITR": title, **fields}


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def xml_export(tmp_path: Path) -> Path:
    """The three-notice sample XML export as a plain file."""
    return write_text(tmp_path / "joconde.xml", SAMPLE_XML)


@pytest.fixture
def grotesques_json(tmp_path: Path) -> Path:
    """A one-record field-code JSON export."""
    return write_json(tmp_path / "grotesques.json", [GROTESQUES_RECORD])


@pytest_asyncio.fixture
async def catalog_store(tmp_path: Path) -> SQLiteCatalogStore:
    """An initialized SQLiteCatalogStore on a temporary database."""
    store = SQLiteCatalogStore(db_path=tmp_path / "catalog.db")
    await store.initialize()
    return store


@pytest_asyncio.fixture
async def sync_log(tmp_path: Path) -> SQLiteSyncLogProvider:
    """An initialized SQLiteSyncLogProvider on a temporary database."""
    provider = SQLiteSyncLogProvider(db_path=tmp_path / "sync_log.db")
    await provider.initialize()
    return provider
