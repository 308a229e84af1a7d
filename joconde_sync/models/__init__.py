"""joconde-sync models -- re-exports the public model classes.

    - catalog.py -- parsed catalog entities (dataclasses) and ParsingResult
    - reports.py -- import statistics/reports and the sync log (pydantic)
"""

from __future__ import annotations

from joconde_sync.models.catalog import (
    IMPORT_STAGES,
    Artist,
    Artwork,
    ArtworkArtist,
    CatalogEntity,
    Domain,
    EntityKind,
    Museum,
    ParsingResult,
    Period,
    Technique,
    artist_key,
    new_id,
    store_key,
    utcnow,
)
from joconde_sync.models.reports import (
    ImportReport,
    ImportStatistics,
    KindCounts,
    SyncLog,
    SyncStatus,
    SyncType,
)

__all__ = [
    "Artist",
    "Artwork",
    "ArtworkArtist",
    "CatalogEntity",
    "Domain",
    "EntityKind",
    "IMPORT_STAGES",
    "ImportReport",
    "ImportStatistics",
    "KindCounts",
    "Museum",
    "ParsingResult",
    "Period",
    "SyncLog",
    "SyncStatus",
    "SyncType",
    "Technique",
    "artist_key",
    "new_id",
    "store_key",
    "utcnow",
]
