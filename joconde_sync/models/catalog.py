# =============================================================================
# joconde_sync/models/catalog.py -- Catalog entities produced by the parsers
# =============================================================================
#
# Plain mutable dataclasses rather than pydantic models: the import engine
# overwrites ``id`` on an in-run entity once it finds the persisted row with
# the same dedup key, and every ArtworkArtist / Artwork list that references
# that entity must see the new id without being rebuilt.  ``eq=False`` keeps
# identity-based hashing so entities can be used as dict keys.
#
# Dedup keys:
#   Artist                    lower(last) + "|" + lower(first)
#   Domain/Technique/Period   lower(name)
#   Museum (in run)           lower(name)
#   Museum (persisted)        lower(name) + "|" + lower(city)
# =============================================================================

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum


def new_id() -> str:
    """Return a fresh random 128-bit identifier as a string."""
    return str(uuid.uuid4())


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class EntityKind(str, Enum):  # noqa: UP042
    """Reference entity kinds, in the order the import engine persists them."""

    DOMAIN = "domains"
    TECHNIQUE = "techniques"
    PERIOD = "periods"
    MUSEUM = "museums"
    ARTIST = "artists"


# Stage names reported to progress sinks by the import engine.
IMPORT_STAGES: tuple[str, ...] = (
    EntityKind.DOMAIN.value,
    EntityKind.TECHNIQUE.value,
    EntityKind.PERIOD.value,
    EntityKind.MUSEUM.value,
    EntityKind.ARTIST.value,
    "artworks",
)


@dataclass(eq=False)
class Domain:
    name: str
    description: str = ""
    id: str = field(default_factory=new_id)

    @property
    def dedup_key(self) -> str:
        return self.name.lower()


@dataclass(eq=False)
class Technique:
    name: str
    description: str = ""
    id: str = field(default_factory=new_id)

    @property
    def dedup_key(self) -> str:
        return self.name.lower()


@dataclass(eq=False)
class Period:
    name: str
    description: str = ""
    start_year: int | None = None
    end_year: int | None = None
    id: str = field(default_factory=new_id)

    @property
    def dedup_key(self) -> str:
        return self.name.lower()


@dataclass(eq=False)
class Museum:
    name: str
    city: str = ""
    department: str = ""
    address: str = ""
    zip_code: str = ""
    phone: str = ""
    email: str = ""
    website: str = ""
    description: str = ""
    region: str = ""
    source_code: str = ""
    longitude: float | None = None
    latitude: float | None = None
    id: str = field(default_factory=new_id)

    @property
    def dedup_key(self) -> str:
        return self.name.lower()

    @property
    def store_key(self) -> str:
        """Key used to reconcile against persisted museums."""
        return f"{self.name.lower()}|{self.city.lower()}"


@dataclass(eq=False)
class Artist:
    last_name: str
    first_name: str = ""
    birth_date: str = ""
    death_date: str = ""
    nationality: str = ""
    biography: str = ""
    id: str = field(default_factory=new_id)

    @property
    def dedup_key(self) -> str:
        return artist_key(self.last_name, self.first_name)


def artist_key(last_name: str, first_name: str) -> str:
    return f"{last_name.lower()}|{first_name.lower()}"


@dataclass(eq=False)
class ArtworkArtist:
    """Link between an artwork and one of its artists."""

    artist: Artist
    role: str = ""


@dataclass(eq=False)
class Artwork:
    reference: str
    inventory_number: str = ""
    denomination: str = ""
    title: str = ""
    description: str = ""
    dimensions: str = ""
    creation_date: str = ""
    creation_place: str = ""
    conservation_place: str = ""
    copyright: str = ""
    image_url: str = ""
    updated_at: datetime = field(default_factory=utcnow)
    is_deleted: bool = False
    id: str = field(default_factory=new_id)
    artists: list[ArtworkArtist] = field(default_factory=list)
    domains: list[Domain] = field(default_factory=list)
    techniques: list[Technique] = field(default_factory=list)
    periods: list[Period] = field(default_factory=list)

    # Descriptive columns refreshed on re-import when the incoming value is
    # non-empty.
    UPDATABLE_FIELDS = (
        "title",
        "description",
        "dimensions",
        "creation_date",
        "creation_place",
        "conservation_place",
        "copyright",
        "image_url",
    )

    def is_valid(self) -> bool:
        """An artwork needs a reference and at least a title or a description."""
        if not self.reference.strip():
            return False
        return bool(self.title.strip() or self.description.strip())


CatalogEntity = Domain | Technique | Period | Museum | Artist


def store_key(entity: CatalogEntity) -> str:
    """Key reconciling an in-run entity with a persisted row."""
    if isinstance(entity, Museum):
        return entity.store_key
    return entity.dedup_key


@dataclass
class ParsingResult:
    """Everything one parse run produced.

    Entity lists are in first-seen order; ``artworks`` is in document order.
    ``skipped_records`` counts records dropped as invalid or unreadable.
    """

    artworks: list[Artwork] = field(default_factory=list)
    artists: list[Artist] = field(default_factory=list)
    domains: list[Domain] = field(default_factory=list)
    techniques: list[Technique] = field(default_factory=list)
    periods: list[Period] = field(default_factory=list)
    museums: list[Museum] = field(default_factory=list)
    skipped_records: int = 0
    records_seen: int = 0
    canceled: bool = False

    def entities(self, kind: EntityKind) -> list:
        return getattr(self, kind.value)
