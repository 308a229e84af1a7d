"""Interfaces for the persistence backends the pipeline depends on.

    Interface          →  Concrete implementation (in joconde_sync/providers/)
    ─────────────────────────────────────────────────────────────────────
    ICatalogStore      →  SQLiteCatalogStore
    ISyncLogProvider   →  SQLiteSyncLogProvider
"""

from joconde_sync.interfaces.catalog_store import (
    RELATION_KINDS,
    ICatalogSession,
    ICatalogStore,
)
from joconde_sync.interfaces.sync_log_provider import ISyncLogProvider

__all__ = [
    "ICatalogSession",
    "ICatalogStore",
    "ISyncLogProvider",
    "RELATION_KINDS",
]
