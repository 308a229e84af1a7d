# =============================================================================
# joconde_sync/parsers/base.py -- Shared streaming parse loop
# =============================================================================
#
# RecordParser is the one contract both the XML and the JSON parsers honor:
#
#   parse(source_path, on_progress=None, cancel_event=None) -> ParsingResult
#
# Subclasses only know how to walk their format: ``_iter_payloads`` yields
# one raw record at a time (an XML element, a JSON object's text) and
# ``_extract`` turns one payload into a canonical RawRecord.  Everything
# else lives here:
#
#   - opening plain, .gz and .zip sources as a forward-only byte stream
#   - the total-count estimate (file size based) and its final correction
#   - per-record Artwork building and entity resolution (RecordBuilder)
#   - per-record failure isolation (RecordExtractionError -> skip + count)
#   - cooperative cancellation, checked before each record is read
#   - progress reporting every ``progress_every`` records and at the end
#   - yielding to the event loop every ``parse_batch_size`` records
#
# Peak memory is one record's payload plus the ParsingResult itself; the
# subclasses drop every payload once it has been extracted.
# =============================================================================

from __future__ import annotations

import asyncio
import contextlib
import time
import zipfile
from abc import ABC, abstractmethod
from collections.abc import Callable, Iterator
from pathlib import Path
from typing import IO, Any

import structlog

from joconde_sync.models.catalog import (
    Artwork,
    ArtworkArtist,
    EntityKind,
    ParsingResult,
    utcnow,
)
from joconde_sync.parsers.entity_resolver import EntityResolver
from joconde_sync.parsers.fields import FieldExtractor, RawRecord
from joconde_sync.parsers.sources import compression_of, open_source
from joconde_sync.pipeline.progress_tracker import notify_progress
from joconde_sync.utils.errors import (
    JocondeSyncError,
    NotFoundError,
    ParseError,
    RecordExtractionError,
)
from joconde_sync.utils.text import split_multi_value

logger = structlog.get_logger(logger_name=__name__)

DEFAULT_ARTIST_ROLE = "Créateur"
MAX_PROGRESS_INTERVAL = 1000
# Rough uncompressed-to-compressed size ratio of the published exports.
COMPRESSED_SIZE_FACTOR = 10

# Sentinel for an exhausted payload iterator.
_END = object()

_ARTWORK_FIELDS = (
    "inventory_number",
    "denomination",
    "title",
    "description",
    "dimensions",
    "creation_date",
    "creation_place",
    "conservation_place",
    "copyright",
    "image_url",
)


def _first_text(value: str | list[str]) -> str:
    if isinstance(value, list):
        return value[0] if value else ""
    return value


def _as_float(value: str | list[str]) -> float | None:
    text = _first_text(value)
    if not text:
        return None
    try:
        return float(text.replace(",", "."))
    except ValueError:
        return None


class RecordBuilder:
    """Builds one Artwork per RawRecord and resolves its related entities."""

    def __init__(self, result: ParsingResult, default_role: str = DEFAULT_ARTIST_ROLE) -> None:
        self._result = result
        self._resolver = EntityResolver(result)
        self._default_role = default_role

    @property
    def resolver(self) -> EntityResolver:
        return self._resolver

    def build(self, raw: RawRecord) -> Artwork | None:
        """Return the Artwork for *raw*, or None when the record is invalid.

        Invalid records never reach the resolver, so they add no entities.
        """
        artwork = Artwork(
            reference=_first_text(raw.get("reference", "")),
            updated_at=utcnow(),
            is_deleted=False,
        )
        for field_name in _ARTWORK_FIELDS:
            setattr(artwork, field_name, _first_text(raw.get(field_name, "")))

        if not artwork.is_valid():
            return None

        self._attach_artists(artwork, raw)
        artwork.domains = _unique(self._resolver.resolve(EntityKind.DOMAIN, raw.get("domain")))
        artwork.techniques = _unique(
            self._resolver.resolve(EntityKind.TECHNIQUE, raw.get("technique"))
        )
        artwork.periods = _unique(self._resolver.resolve(EntityKind.PERIOD, raw.get("period")))
        self._register_museums(raw)

        self._result.artworks.append(artwork)
        return artwork

    def _attach_artists(self, artwork: Artwork, raw: RawRecord) -> None:
        artists = _unique(self._resolver.resolve_artists(raw.get("authors")))
        roles = split_multi_value(raw.get("role"))

        for index, artist in enumerate(artists):
            if index < len(roles):
                role = roles[index]
            else:
                role = roles[0] if roles else self._default_role
            artwork.artists.append(ArtworkArtist(artist=artist, role=role))

        # BORN/DIED/NAT describe the record's single author only.
        if len(artists) == 1:
            artist = artists[0]
            artist.birth_date = artist.birth_date or _first_text(raw.get("artist_birth_date", ""))
            artist.death_date = artist.death_date or _first_text(raw.get("artist_death_date", ""))
            artist.nationality = artist.nationality or _first_text(
                raw.get("artist_nationality", "")
            )

    def _register_museums(self, raw: RawRecord) -> None:
        for museum in self._resolver.resolve(EntityKind.MUSEUM, raw.get("museum")):
            museum.city = museum.city or _first_text(raw.get("museum_city", ""))
            museum.department = museum.department or _first_text(raw.get("museum_department", ""))
            museum.region = museum.region or _first_text(raw.get("museum_region", ""))
            museum.source_code = museum.source_code or _first_text(raw.get("museum_code", ""))
            if museum.longitude is None:
                museum.longitude = _as_float(raw.get("museum_longitude", ""))
            if museum.latitude is None:
                museum.latitude = _as_float(raw.get("museum_latitude", ""))


def _unique(entities: list) -> list:
    seen: set[int] = set()
    unique = []
    for entity in entities:
        if id(entity) not in seen:
            seen.add(id(entity))
            unique.append(entity)
    return unique


class RecordParser(ABC):
    """Streaming parser for one Joconde export format."""

    format_name: str = ""
    # Approximate bytes per record in an uncompressed export.
    estimated_record_bytes: int = 2000
    # Suffixes of acceptable members inside a .zip source.
    member_suffixes: tuple[str, ...] = ()

    def __init__(
        self,
        progress_every: int = 100,
        parse_batch_size: int = 500,
        extractor: FieldExtractor | None = None,
        default_role: str = DEFAULT_ARTIST_ROLE,
    ) -> None:
        self._progress_every = max(1, min(progress_every, MAX_PROGRESS_INTERVAL))
        self._parse_batch_size = max(1, parse_batch_size)
        self._extractor = extractor or FieldExtractor()
        self._default_role = default_role

    @abstractmethod
    def _iter_payloads(self, stream: IO[bytes], source_name: str) -> Iterator[Any]:
        """Yield one raw record payload at a time, in document order."""

    @abstractmethod
    def _extract(self, payload: Any) -> RawRecord:
        """Turn one payload into canonical fields (RecordExtractionError on failure)."""

    @abstractmethod
    def _structural_errors(self) -> tuple[type[BaseException], ...]:
        """Exceptions raised by the underlying reader that mean the stream is broken."""

    def estimate_total(self, path: Path) -> int:
        size = path.stat().st_size
        if compression_of(path) is not None:
            size *= COMPRESSED_SIZE_FACTOR
        return max(1, size // self.estimated_record_bytes)

    async def parse(
        self,
        source_path: str | Path,
        on_progress: Callable | None = None,
        cancel_event: asyncio.Event | None = None,
    ) -> ParsingResult:
        """Stream *source_path* into a ParsingResult.

        Raises:
            NotFoundError: the path does not exist.
            FormatError: the top level is not the expected record container.
            ParseError: the stream broke in a way no record skip can recover.
        """
        path = Path(source_path)
        if not path.is_file():
            raise NotFoundError(message=f"Source file not found: {path}", source_name=str(path))

        result = ParsingResult()
        builder = RecordBuilder(result, default_role=self._default_role)
        estimated_total = self.estimate_total(path)
        processed = 0
        start = time.monotonic()

        logger.info(
            "parse_start",
            format=self.format_name,
            path=str(path),
            estimated_total=estimated_total,
        )

        try:
            with open_source(path, self.member_suffixes) as stream, contextlib.closing(
                self._iter_payloads(stream, str(path))
            ) as payloads:
                while True:
                    if cancel_event is not None and cancel_event.is_set():
                        result.canceled = True
                        logger.info("parse_canceled", path=str(path), processed=processed)
                        break

                    payload = next(payloads, _END)
                    if payload is _END:
                        break

                    processed += 1
                    result.records_seen = processed
                    self._handle_payload(builder, result, payload, processed)

                    if processed % self._progress_every == 0:
                        await notify_progress(
                            on_progress, processed, max(estimated_total, processed)
                        )
                    if processed % self._parse_batch_size == 0:
                        await asyncio.sleep(0)
        except JocondeSyncError:
            raise
        except (OSError, EOFError, zipfile.BadZipFile, *self._structural_errors()) as exc:
            raise ParseError(
                message=f"Failed to read {self.format_name} document after "
                f"{processed} records: {exc}",
                source_name=str(path),
            ) from exc

        await notify_progress(on_progress, processed, processed)

        elapsed = time.monotonic() - start
        logger.info(
            "parse_complete",
            format=self.format_name,
            path=str(path),
            records=processed,
            artworks=len(result.artworks),
            artists=len(result.artists),
            domains=len(result.domains),
            techniques=len(result.techniques),
            periods=len(result.periods),
            museums=len(result.museums),
            skipped=result.skipped_records,
            canceled=result.canceled,
            elapsed_s=round(elapsed, 1),
        )
        return result

    def _handle_payload(
        self,
        builder: RecordBuilder,
        result: ParsingResult,
        payload: Any,
        index: int,
    ) -> None:
        try:
            raw = self._extract(payload)
            artwork = builder.build(raw)
        except RecordExtractionError as exc:
            result.skipped_records += 1
            logger.warning("record_extraction_failed", index=index, error=str(exc))
            return

        if artwork is None:
            result.skipped_records += 1
            logger.debug("record_dropped_invalid", index=index)

