"""Abstract base classes for the persisted catalog store.

The import engine never talks to a database directly.  It opens one
:class:`ICatalogSession` per import run through :class:`ICatalogStore` and
drives it with bulk lookups, per-entity writes inside savepoint units, and
one commit per batch.  The shipped implementation is SQLite
(``joconde_sync/providers/catalog``); any store able to honor the
contract below can be swapped in.

Keys passed to :meth:`ICatalogSession.find_existing` are the persisted
reconciliation keys:

    artists                   lower(last) + "|" + lower(first)
    domains/techniques/periods lower(name)
    museums                   lower(name) + "|" + lower(city)
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from contextlib import AbstractAsyncContextManager
from datetime import datetime
from typing import Any

from joconde_sync.models.catalog import Artwork, CatalogEntity, EntityKind

# Relation kinds carried by an Artwork, as written by replace_artwork_relations.
RELATION_KINDS: tuple[str, ...] = ("artists", "domains", "techniques", "periods")


class ICatalogSession(ABC):
    """One unit-of-work scope over the catalog store, owned by a single run."""

    @abstractmethod
    async def find_existing(self, kind: EntityKind, keys: list[str]) -> dict[str, dict[str, Any]]:
        """Return persisted rows of *kind* keyed by reconciliation key.

        Keys with no persisted row are absent from the result.
        """

    @abstractmethod
    async def insert_entity(self, kind: EntityKind, entity: CatalogEntity) -> None:
        """Insert *entity* under its current id."""

    @abstractmethod
    async def update_entity(self, kind: EntityKind, entity_id: str, fields: dict[str, Any]) -> None:
        """Overwrite the given columns of one persisted entity."""

    @abstractmethod
    async def find_artworks(self, references: list[str]) -> dict[str, dict[str, Any]]:
        """Return non-deleted persisted artworks keyed by reference."""

    @abstractmethod
    async def insert_artwork(self, artwork: Artwork) -> None:
        """Insert the artwork row only; relations are written separately."""

    @abstractmethod
    async def update_artwork(
        self,
        artwork_id: str,
        fields: dict[str, Any],
        updated_at: datetime,
    ) -> None:
        """Overwrite the given descriptive columns and the update timestamp."""

    @abstractmethod
    async def replace_artwork_relations(
        self,
        artwork_id: str,
        relation_kind: str,
        rows: list[tuple[str, ...]],
    ) -> None:
        """Delete the artwork's rows of *relation_kind* and insert *rows*.

        ``rows`` are ``(artist_id, role)`` pairs for ``"artists"`` and
        ``(entity_id,)`` singletons for the other kinds.
        """

    @abstractmethod
    def unit(self) -> AbstractAsyncContextManager[None]:
        """Scope for one entity's writes.

        On failure the unit's writes are rolled back and the error is
        raised as EntityUpsertError (entity-level) or PersistenceError
        (the store itself failed).
        """

    @abstractmethod
    async def commit(self) -> None:
        """Commit the current batch (PersistenceError on failure)."""


class ICatalogStore(ABC):
    """Contract for catalog persistence backends."""

    @abstractmethod
    async def initialize(self) -> None:
        """Create tables and indices if they do not exist."""

    @abstractmethod
    def open_session(self) -> AbstractAsyncContextManager[ICatalogSession]:
        """Open a session; PersistenceError when the store is unreachable."""

    @abstractmethod
    async def count_entities(self) -> dict[str, int]:
        """Row counts per table, for reporting."""

    @abstractmethod
    async def get_artwork(self, reference: str) -> dict[str, Any] | None:
        """Return one non-deleted artwork with its related names, or None."""

    @abstractmethod
    def get_provider_name(self) -> str:
        """Return the name of this store backend."""
