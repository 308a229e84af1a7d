"""Merges a ParsingResult into the catalog store.

Stages run in a fixed order so every relation row can point at a
persisted id:

    domains -> techniques -> periods -> museums -> artists -> artworks

Reference stages (the first five) look up each batch's reconciliation
keys in one query.  A match copies the persisted id onto the in-run
entity (every artwork link holding that instance follows) and merges the
non-empty incoming fields; a miss inserts the entity under its fresh id.

The artworks stage looks artworks up by reference among non-deleted rows.
A match refreshes only the descriptive columns whose incoming value is
non-empty; a miss inserts.  Relation rows are replaced per kind inside the
same unit of work as the artwork row, and only for the kinds the incoming
artwork actually carries.

Each entity is written inside its own store unit: an EntityUpsertError is
counted and skipped.  Each batch is committed on its own, so a fatal
PersistenceError (or a cancellation, checked between batches) leaves the
batches already committed in place.
"""

from __future__ import annotations

import asyncio
import dataclasses
import time
from collections.abc import Callable
from pathlib import Path
from typing import Any

import structlog

from joconde_sync.interfaces.catalog_store import RELATION_KINDS, ICatalogSession, ICatalogStore
from joconde_sync.models.catalog import (
    Artwork,
    CatalogEntity,
    EntityKind,
    ParsingResult,
    store_key,
    utcnow,
)
from joconde_sync.models.reports import ImportReport, ImportStatistics
from joconde_sync.parsers import parser_for_path
from joconde_sync.pipeline.progress_tracker import PARSING_STAGE, notify_progress
from joconde_sync.utils.errors import (
    EntityUpsertError,
    FormatError,
    ParseError,
    PersistenceError,
)

logger = structlog.get_logger(logger_name=__name__)

ARTWORKS_STAGE = "artworks"


def _has_value(value: Any) -> bool:
    if value is None:
        return False
    if isinstance(value, str):
        return bool(value.strip())
    return True


def _merge_changes(entity: CatalogEntity, row: dict[str, Any]) -> dict[str, Any]:
    """Non-empty incoming fields that differ from the persisted row."""
    changes: dict[str, Any] = {}
    for field in dataclasses.fields(entity):
        if field.name == "id":
            continue
        value = getattr(entity, field.name)
        if _has_value(value) and row.get(field.name) != value:
            changes[field.name] = value
    return changes


def _artwork_changes(artwork: Artwork) -> dict[str, Any]:
    return {
        name: getattr(artwork, name)
        for name in Artwork.UPDATABLE_FIELDS
        if _has_value(getattr(artwork, name))
    }


class ImportEngine:
    """Upserts parsed entities and artworks into an ICatalogStore.

    Parameters
    ----------
    store:
        The catalog store; one session is opened per import run.
    reference_batch_size:
        Entities per committed batch for the five reference stages.
    artwork_batch_size:
        Artworks per committed batch.
    progress_every, parse_batch_size:
        Forwarded to the parser built by :meth:`import_from_source`.
    parser_factory:
        ``(path, progress_every=, parse_batch_size=) -> RecordParser``;
        defaults to format detection by :func:`parser_for_path`.
    """

    def __init__(
        self,
        store: ICatalogStore,
        reference_batch_size: int = 100,
        artwork_batch_size: int = 50,
        progress_every: int = 100,
        parse_batch_size: int = 500,
        parser_factory: Callable | None = None,
    ) -> None:
        self._store = store
        self._reference_batch_size = max(1, reference_batch_size)
        self._artwork_batch_size = max(1, artwork_batch_size)
        self._progress_every = progress_every
        self._parse_batch_size = parse_batch_size
        self._parser_factory = parser_factory or parser_for_path

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def import_from_source(
        self,
        source_path: str | Path,
        on_progress: Callable | None = None,
        cancel_event: asyncio.Event | None = None,
    ) -> ImportReport:
        """Parse *source_path* and import the result.

        ``on_progress(stage, current, total)`` receives the parse progress
        under the ``"parsing"`` stage, then the six import stages.

        NotFoundError propagates.  Format, parse and persistence failures
        are reported with ``success=False``.
        """
        file_name = Path(source_path).name
        start = time.monotonic()

        async def _on_parse_progress(processed: int, total: int) -> None:
            await notify_progress(on_progress, PARSING_STAGE, processed, total)

        try:
            parser = self._parser_factory(
                source_path,
                progress_every=self._progress_every,
                parse_batch_size=self._parse_batch_size,
            )
            result = await parser.parse(
                source_path,
                on_progress=_on_parse_progress,
                cancel_event=cancel_event,
            )
        except (FormatError, ParseError) as exc:
            logger.error("import_parse_failed", file_name=file_name, error=str(exc))
            stats = ImportStatistics()
            stats.fail(str(exc))
            report = ImportReport.from_statistics(stats, file_name=file_name)
            report.duration_seconds = time.monotonic() - start
            return report

        stats = await self.import_data(result, on_progress=on_progress, cancel_event=cancel_event)
        if result.canceled:
            stats.canceled = True

        report = ImportReport.from_statistics(stats, file_name=file_name, parsing_result=result)
        report.duration_seconds = time.monotonic() - start
        return report

    async def import_data(
        self,
        parsing_result: ParsingResult,
        on_progress: Callable | None = None,
        cancel_event: asyncio.Event | None = None,
    ) -> ImportStatistics:
        """Upsert every entity and artwork of *parsing_result*.

        Returns the statistics gathered so far even when the run is
        canceled or aborted by a PersistenceError.
        """
        stats = ImportStatistics()
        start = time.monotonic()
        # id() of in-run entities whose insert failed; links to them are not written.
        unpersisted: set[int] = set()

        logger.info(
            "import_start",
            artworks=len(parsing_result.artworks),
            artists=len(parsing_result.artists),
            domains=len(parsing_result.domains),
            techniques=len(parsing_result.techniques),
            periods=len(parsing_result.periods),
            museums=len(parsing_result.museums),
        )

        try:
            async with self._store.open_session() as session:
                keep_going = True
                for kind in EntityKind:
                    keep_going = await self._import_reference_kind(
                        session,
                        kind,
                        parsing_result.entities(kind),
                        stats,
                        unpersisted,
                        on_progress,
                        cancel_event,
                    )
                    if not keep_going:
                        break
                if keep_going:
                    await self._import_artworks(
                        session,
                        parsing_result.artworks,
                        stats,
                        unpersisted,
                        on_progress,
                        cancel_event,
                    )
        except PersistenceError as exc:
            stats.fail(str(exc))
            logger.error("import_aborted", error=str(exc))

        stats.duration_seconds = time.monotonic() - start
        logger.info(
            "import_complete",
            success=stats.success,
            canceled=stats.canceled,
            artworks_imported=stats.artworks.imported,
            artworks_updated=stats.artworks.updated,
            errors=stats.errors,
            elapsed_s=round(stats.duration_seconds, 1),
        )
        return stats

    # ------------------------------------------------------------------
    # Stages
    # ------------------------------------------------------------------

    async def _import_reference_kind(
        self,
        session: ICatalogSession,
        kind: EntityKind,
        entities: list,
        stats: ImportStatistics,
        unpersisted: set[int],
        on_progress: Callable | None,
        cancel_event: asyncio.Event | None,
    ) -> bool:
        stage = kind.value
        counts = stats.counts_for(stage)
        total = len(entities)
        if total == 0:
            await notify_progress(on_progress, stage, 0, 0)
            return True

        for offset in range(0, total, self._reference_batch_size):
            if _canceled(cancel_event):
                stats.canceled = True
                logger.info("import_canceled", stage=stage, completed=offset, total=total)
                return False

            batch = entities[offset:offset + self._reference_batch_size]
            existing = await session.find_existing(kind, [store_key(e) for e in batch])

            for entity in batch:
                key = store_key(entity)
                row = existing.get(key)
                changes: dict[str, Any] = {}
                if row is not None:
                    entity.id = row["id"]
                    changes = _merge_changes(entity, row)
                try:
                    async with session.unit():
                        if row is None:
                            await session.insert_entity(kind, entity)
                        elif changes:
                            await session.update_entity(kind, entity.id, changes)
                except EntityUpsertError as exc:
                    stats.record_error(stage)
                    if row is None:
                        unpersisted.add(id(entity))
                    logger.warning("entity_upsert_failed", stage=stage, key=key, error=str(exc))
                    continue

                if row is None:
                    counts.imported += 1
                    existing[key] = {"id": entity.id}
                elif changes:
                    counts.updated += 1
                else:
                    counts.skipped += 1

            await session.commit()
            done = min(offset + self._reference_batch_size, total)
            logger.debug("import_batch_committed", stage=stage, current=done, total=total)
            await notify_progress(on_progress, stage, done, total)

        return True

    async def _import_artworks(
        self,
        session: ICatalogSession,
        artworks: list[Artwork],
        stats: ImportStatistics,
        unpersisted: set[int],
        on_progress: Callable | None,
        cancel_event: asyncio.Event | None,
    ) -> None:
        counts = stats.artworks
        total = len(artworks)
        if total == 0:
            await notify_progress(on_progress, ARTWORKS_STAGE, 0, 0)
            return

        for offset in range(0, total, self._artwork_batch_size):
            if _canceled(cancel_event):
                stats.canceled = True
                logger.info("import_canceled", stage=ARTWORKS_STAGE, completed=offset, total=total)
                return

            batch = artworks[offset:offset + self._artwork_batch_size]
            existing = await session.find_artworks([a.reference for a in batch])

            for artwork in batch:
                row = existing.get(artwork.reference)
                if row is not None:
                    artwork.id = row["id"]
                    artwork.updated_at = utcnow()
                try:
                    async with session.unit():
                        if row is None:
                            await session.insert_artwork(artwork)
                        else:
                            await session.update_artwork(
                                artwork.id, _artwork_changes(artwork), artwork.updated_at
                            )
                        await self._write_relations(session, artwork, unpersisted)
                except EntityUpsertError as exc:
                    stats.record_error(ARTWORKS_STAGE)
                    logger.warning(
                        "artwork_upsert_failed",
                        reference=artwork.reference,
                        error=str(exc),
                    )
                    continue

                if row is None:
                    counts.imported += 1
                    existing[artwork.reference] = {"id": artwork.id}
                else:
                    counts.updated += 1

            await session.commit()
            done = min(offset + self._artwork_batch_size, total)
            logger.debug("import_batch_committed", stage=ARTWORKS_STAGE, current=done, total=total)
            await notify_progress(on_progress, ARTWORKS_STAGE, done, total)

    @staticmethod
    async def _write_relations(
        session: ICatalogSession,
        artwork: Artwork,
        unpersisted: set[int],
    ) -> None:
        for relation_kind in RELATION_KINDS:
            links = getattr(artwork, relation_kind)
            if not links:
                continue
            if relation_kind == "artists":
                rows = [
                    (link.artist.id, link.role)
                    for link in links
                    if id(link.artist) not in unpersisted
                ]
            else:
                rows = [(entity.id,) for entity in links if id(entity) not in unpersisted]
            if len(rows) < len(links):
                # A linked entity failed to persist; rewriting the kind now would
                # drop or leave stale links, so the stored set is kept until the
                # entity imports cleanly.
                logger.warning(
                    "artwork_relations_kept",
                    reference=artwork.reference,
                    relation=relation_kind,
                    unpersisted=len(links) - len(rows),
                )
                continue
            await session.replace_artwork_relations(artwork.id, relation_kind, rows)


def _canceled(cancel_event: asyncio.Event | None) -> bool:
    return cancel_event is not None and cancel_event.is_set()
