"""Catalog store providers.

SQLiteCatalogStore keeps artworks, artists, museums, domains, techniques,
periods and the artwork relation tables in data/joconde_catalog.db.
"""

from joconde_sync.providers.catalog.sqlite_catalog_store import (
    SQLiteCatalogSession,
    SQLiteCatalogStore,
)

__all__ = ["SQLiteCatalogSession", "SQLiteCatalogStore"]
