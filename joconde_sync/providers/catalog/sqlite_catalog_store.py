"""SQLite-backed catalog store.

Persists artworks, their reference entities and the relation tables to a
local SQLite database at ``data/joconde_catalog.db``.  Uses ``aiosqlite``
for async I/O.

Every reference table carries a ``dedup_key`` column holding the
reconciliation key (see ``joconde_sync.models.catalog.store_key``) under a
UNIQUE constraint, so bulk lookups are a single indexed ``IN`` query.
Artwork references are unique among non-deleted rows only (partial
index); soft-deleted rows never match an incoming record.

Sessions run the connection with ``isolation_level=None`` and manage
transactions explicitly: a batch transaction is opened on the first write
and closed by :meth:`SQLiteCatalogSession.commit`; each entity's writes
sit inside a SAVEPOINT so one failing entity rolls back alone.
"""

from __future__ import annotations

import contextlib
import sqlite3
from collections.abc import AsyncIterator
from datetime import datetime
from pathlib import Path
from typing import Any

import aiosqlite
import structlog

from joconde_sync.interfaces.catalog_store import RELATION_KINDS, ICatalogSession, ICatalogStore
from joconde_sync.models.catalog import Artwork, CatalogEntity, EntityKind, store_key
from joconde_sync.utils.errors import EntityUpsertError, PersistenceError

logger = structlog.get_logger(logger_name=__name__)

_DEFAULT_DB_PATH = Path("data/joconde_catalog.db")
_PROVIDER_NAME = "sqlite_catalog"
# Stay well under SQLite's bound-parameter limit.
_LOOKUP_CHUNK_SIZE = 500

_CREATE_TABLES_SQL = [
    """\
CREATE TABLE IF NOT EXISTS domains (
    id          TEXT PRIMARY KEY,
    name        TEXT NOT NULL,
    description TEXT NOT NULL DEFAULT '',
    dedup_key   TEXT NOT NULL UNIQUE
);
""",
    """\
CREATE TABLE IF NOT EXISTS techniques (
    id          TEXT PRIMARY KEY,
    name        TEXT NOT NULL,
    description TEXT NOT NULL DEFAULT '',
    dedup_key   TEXT NOT NULL UNIQUE
);
""",
    """\
CREATE TABLE IF NOT EXISTS periods (
    id          TEXT PRIMARY KEY,
    name        TEXT NOT NULL,
    description TEXT NOT NULL DEFAULT '',
    start_year  INTEGER,
    end_year    INTEGER,
    dedup_key   TEXT NOT NULL UNIQUE
);
""",
    """\
CREATE TABLE IF NOT EXISTS museums (
    id          TEXT PRIMARY KEY,
    name        TEXT NOT NULL,
    city        TEXT NOT NULL DEFAULT '',
    department  TEXT NOT NULL DEFAULT '',
    address     TEXT NOT NULL DEFAULT '',
    zip_code    TEXT NOT NULL DEFAULT '',
    phone       TEXT NOT NULL DEFAULT '',
    email       TEXT NOT NULL DEFAULT '',
    website     TEXT NOT NULL DEFAULT '',
    description TEXT NOT NULL DEFAULT '',
    region      TEXT NOT NULL DEFAULT '',
    source_code TEXT NOT NULL DEFAULT '',
    longitude   REAL,
    latitude    REAL,
    dedup_key   TEXT NOT NULL UNIQUE
);
""",
    """\
CREATE TABLE IF NOT EXISTS artists (
    id          TEXT PRIMARY KEY,
    last_name   TEXT NOT NULL,
    first_name  TEXT NOT NULL DEFAULT '',
    birth_date  TEXT NOT NULL DEFAULT '',
    death_date  TEXT NOT NULL DEFAULT '',
    nationality TEXT NOT NULL DEFAULT '',
    biography   TEXT NOT NULL DEFAULT '',
    dedup_key   TEXT NOT NULL UNIQUE
);
""",
    """\
CREATE TABLE IF NOT EXISTS artworks (
    id                 TEXT PRIMARY KEY,
    reference          TEXT NOT NULL,
    inventory_number   TEXT NOT NULL DEFAULT '',
    denomination       TEXT NOT NULL DEFAULT '',
    title              TEXT NOT NULL DEFAULT '',
    description        TEXT NOT NULL DEFAULT '',
    dimensions         TEXT NOT NULL DEFAULT '',
    creation_date      TEXT NOT NULL DEFAULT '',
    creation_place     TEXT NOT NULL DEFAULT '',
    conservation_place TEXT NOT NULL DEFAULT '',
    copyright          TEXT NOT NULL DEFAULT '',
    image_url          TEXT NOT NULL DEFAULT '',
    updated_at         TEXT NOT NULL,
    is_deleted         INTEGER NOT NULL DEFAULT 0
);
""",
    """\
CREATE TABLE IF NOT EXISTS artwork_artists (
    artwork_id TEXT NOT NULL REFERENCES artworks(id),
    artist_id  TEXT NOT NULL REFERENCES artists(id),
    role       TEXT NOT NULL DEFAULT '',
    position   INTEGER NOT NULL DEFAULT 0,
    PRIMARY KEY (artwork_id, artist_id)
);
""",
    """\
CREATE TABLE IF NOT EXISTS artwork_domains (
    artwork_id TEXT NOT NULL REFERENCES artworks(id),
    domain_id  TEXT NOT NULL REFERENCES domains(id),
    PRIMARY KEY (artwork_id, domain_id)
);
""",
    """\
CREATE TABLE IF NOT EXISTS artwork_techniques (
    artwork_id   TEXT NOT NULL REFERENCES artworks(id),
    technique_id TEXT NOT NULL REFERENCES techniques(id),
    PRIMARY KEY (artwork_id, technique_id)
);
""",
    """\
CREATE TABLE IF NOT EXISTS artwork_periods (
    artwork_id TEXT NOT NULL REFERENCES artworks(id),
    period_id  TEXT NOT NULL REFERENCES periods(id),
    PRIMARY KEY (artwork_id, period_id)
);
""",
]

_CREATE_INDICES_SQL = [
    "CREATE UNIQUE INDEX IF NOT EXISTS idx_artworks_reference_live "
    "ON artworks(reference) WHERE is_deleted = 0;",
    "CREATE INDEX IF NOT EXISTS idx_artworks_reference ON artworks(reference);",
    "CREATE INDEX IF NOT EXISTS idx_artwork_artists_artist ON artwork_artists(artist_id);",
    "CREATE INDEX IF NOT EXISTS idx_artwork_domains_domain ON artwork_domains(domain_id);",
    "CREATE INDEX IF NOT EXISTS idx_artwork_techniques_technique ON artwork_techniques(technique_id);",
    "CREATE INDEX IF NOT EXISTS idx_artwork_periods_period ON artwork_periods(period_id);",
]

# Entity kind -> (table, writable columns besides id and dedup_key)
_ENTITY_TABLES: dict[EntityKind, tuple[str, tuple[str, ...]]] = {
    EntityKind.DOMAIN: ("domains", ("name", "description")),
    EntityKind.TECHNIQUE: ("techniques", ("name", "description")),
    EntityKind.PERIOD: ("periods", ("name", "description", "start_year", "end_year")),
    EntityKind.MUSEUM: (
        "museums",
        (
            "name",
            "city",
            "department",
            "address",
            "zip_code",
            "phone",
            "email",
            "website",
            "description",
            "region",
            "source_code",
            "longitude",
            "latitude",
        ),
    ),
    EntityKind.ARTIST: (
        "artists",
        ("last_name", "first_name", "birth_date", "death_date", "nationality", "biography"),
    ),
}

_ARTWORK_COLUMNS = (
    "reference",
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

# Relation kind -> (table, entity id column)
_RELATION_TABLES: dict[str, tuple[str, str]] = {
    "artists": ("artwork_artists", "artist_id"),
    "domains": ("artwork_domains", "domain_id"),
    "techniques": ("artwork_techniques", "technique_id"),
    "periods": ("artwork_periods", "period_id"),
}

# Errors scoped to the entity being written; anything else means the store failed.
_ENTITY_ERRORS = (sqlite3.IntegrityError, sqlite3.InterfaceError)

_SELECT_ARTWORK_SQL = """\
SELECT * FROM artworks WHERE reference = ? AND is_deleted = 0;
"""

_SELECT_ARTWORK_ARTISTS_SQL = """\
SELECT a.last_name, a.first_name, aa.role
FROM artwork_artists aa
JOIN artists a ON a.id = aa.artist_id
WHERE aa.artwork_id = ?
ORDER BY aa.position;
"""

_SELECT_ARTWORK_NAMES_SQL = """\
SELECT e.name
FROM {relation_table} r
JOIN {entity_table} e ON e.id = r.{id_column}
WHERE r.artwork_id = ?
ORDER BY e.name;
"""


def _chunks(values: list[str], size: int) -> list[list[str]]:
    return [values[i:i + size] for i in range(0, len(values), size)]


class SQLiteCatalogSession(ICatalogSession):
    """One connection and its batch transaction."""

    def __init__(self, db: aiosqlite.Connection) -> None:
        self._db = db
        self._savepoint_seq = 0

    # ------------------------------------------------------------------
    # Lookups (outside units)
    # ------------------------------------------------------------------

    async def find_existing(self, kind: EntityKind, keys: list[str]) -> dict[str, dict[str, Any]]:
        table, _ = _ENTITY_TABLES[kind]
        found: dict[str, dict[str, Any]] = {}
        try:
            for chunk in _chunks(sorted(set(keys)), _LOOKUP_CHUNK_SIZE):
                placeholders = ", ".join("?" for _ in chunk)
                cursor = await self._db.execute(
                    f"SELECT * FROM {table} WHERE dedup_key IN ({placeholders});",
                    chunk,
                )
                for row in await cursor.fetchall():
                    found[row["dedup_key"]] = dict(row)
        except sqlite3.Error as exc:
            raise PersistenceError(
                message=f"Lookup in {table} failed: {exc}",
                source_name=_PROVIDER_NAME,
            ) from exc
        return found

    async def find_artworks(self, references: list[str]) -> dict[str, dict[str, Any]]:
        found: dict[str, dict[str, Any]] = {}
        try:
            for chunk in _chunks(sorted(set(references)), _LOOKUP_CHUNK_SIZE):
                placeholders = ", ".join("?" for _ in chunk)
                cursor = await self._db.execute(
                    f"SELECT * FROM artworks WHERE is_deleted = 0 AND reference IN ({placeholders});",
                    chunk,
                )
                for row in await cursor.fetchall():
                    found[row["reference"]] = dict(row)
        except sqlite3.Error as exc:
            raise PersistenceError(
                message=f"Artwork lookup failed: {exc}",
                source_name=_PROVIDER_NAME,
            ) from exc
        return found

    # ------------------------------------------------------------------
    # Writes (inside units)
    # ------------------------------------------------------------------

    async def insert_entity(self, kind: EntityKind, entity: CatalogEntity) -> None:
        table, columns = _ENTITY_TABLES[kind]
        values = [entity.id, *(getattr(entity, column) for column in columns), store_key(entity)]
        column_list = ", ".join(("id", *columns, "dedup_key"))
        placeholders = ", ".join("?" for _ in values)
        await self._db.execute(
            f"INSERT INTO {table} ({column_list}) VALUES ({placeholders});",
            values,
        )

    async def update_entity(self, kind: EntityKind, entity_id: str, fields: dict[str, Any]) -> None:
        table, columns = _ENTITY_TABLES[kind]
        assignments = [name for name in fields if name in columns]
        if not assignments:
            return
        set_clause = ", ".join(f"{name} = ?" for name in assignments)
        await self._db.execute(
            f"UPDATE {table} SET {set_clause} WHERE id = ?;",
            [*(fields[name] for name in assignments), entity_id],
        )

    async def insert_artwork(self, artwork: Artwork) -> None:
        column_list = ", ".join(("id", *_ARTWORK_COLUMNS, "updated_at", "is_deleted"))
        values = [
            artwork.id,
            *(getattr(artwork, column) for column in _ARTWORK_COLUMNS),
            artwork.updated_at.isoformat(),
            int(artwork.is_deleted),
        ]
        placeholders = ", ".join("?" for _ in values)
        await self._db.execute(
            f"INSERT INTO artworks ({column_list}) VALUES ({placeholders});",
            values,
        )

    async def update_artwork(
        self,
        artwork_id: str,
        fields: dict[str, Any],
        updated_at: datetime,
    ) -> None:
        assignments = [name for name in fields if name in _ARTWORK_COLUMNS and name != "reference"]
        set_clause = ", ".join([*(f"{name} = ?" for name in assignments), "updated_at = ?"])
        await self._db.execute(
            f"UPDATE artworks SET {set_clause} WHERE id = ?;",
            [*(fields[name] for name in assignments), updated_at.isoformat(), artwork_id],
        )

    async def replace_artwork_relations(
        self,
        artwork_id: str,
        relation_kind: str,
        rows: list[tuple[str, ...]],
    ) -> None:
        table, id_column = _RELATION_TABLES[relation_kind]
        await self._db.execute(f"DELETE FROM {table} WHERE artwork_id = ?;", (artwork_id,))
        if not rows:
            return
        if relation_kind == "artists":
            await self._db.executemany(
                f"INSERT INTO {table} (artwork_id, {id_column}, role, position) "
                "VALUES (?, ?, ?, ?);",
                [
                    (artwork_id, artist_id, role, position)
                    for position, (artist_id, role) in enumerate(rows)
                ],
            )
        else:
            await self._db.executemany(
                f"INSERT INTO {table} (artwork_id, {id_column}) VALUES (?, ?);",
                [(artwork_id, row[0]) for row in rows],
            )

    # ------------------------------------------------------------------
    # Transaction control
    # ------------------------------------------------------------------

    @contextlib.asynccontextmanager
    async def unit(self) -> AsyncIterator[None]:
        self._savepoint_seq += 1
        name = f"entity_{self._savepoint_seq}"
        try:
            if not self._db.in_transaction:
                await self._db.execute("BEGIN;")
            await self._db.execute(f"SAVEPOINT {name};")
        except sqlite3.Error as exc:
            raise PersistenceError(
                message=f"Could not open a unit of work: {exc}",
                source_name=_PROVIDER_NAME,
            ) from exc

        try:
            yield
        except _ENTITY_ERRORS as exc:
            await self._rollback_to(name)
            raise EntityUpsertError(message=str(exc), source_name=_PROVIDER_NAME) from exc
        except sqlite3.Error as exc:
            raise PersistenceError(message=str(exc), source_name=_PROVIDER_NAME) from exc
        except BaseException:
            await self._rollback_to(name)
            raise
        else:
            await self._db.execute(f"RELEASE SAVEPOINT {name};")

    async def commit(self) -> None:
        try:
            await self._db.commit()
        except sqlite3.Error as exc:
            raise PersistenceError(
                message=f"Batch commit failed: {exc}",
                source_name=_PROVIDER_NAME,
            ) from exc

    async def _rollback_to(self, name: str) -> None:
        try:
            await self._db.execute(f"ROLLBACK TO SAVEPOINT {name};")
            await self._db.execute(f"RELEASE SAVEPOINT {name};")
        except sqlite3.Error as exc:
            raise PersistenceError(
                message=f"Rollback of a failed entity failed: {exc}",
                source_name=_PROVIDER_NAME,
            ) from exc


class SQLiteCatalogStore(ICatalogStore):
    """SQLite-backed catalog persistence."""

    def __init__(self, db_path: str | Path = _DEFAULT_DB_PATH) -> None:
        self._db_path = Path(db_path)

    @property
    def db_path(self) -> Path:
        return self._db_path

    async def initialize(self) -> None:
        """Create the entity, artwork and relation tables and indices if they don't exist."""
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        async with aiosqlite.connect(str(self._db_path)) as db:
            for table_sql in _CREATE_TABLES_SQL:
                await db.execute(table_sql)
            for idx_sql in _CREATE_INDICES_SQL:
                await db.execute(idx_sql)
            await db.commit()
        logger.info("catalog_db_initialized", path=str(self._db_path))

    @contextlib.asynccontextmanager
    async def open_session(self) -> AsyncIterator[SQLiteCatalogSession]:
        try:
            db = await aiosqlite.connect(str(self._db_path), isolation_level=None)
        except (sqlite3.Error, OSError) as exc:
            raise PersistenceError(
                message=f"Cannot open catalog database {self._db_path}: {exc}",
                source_name=_PROVIDER_NAME,
            ) from exc

        try:
            db.row_factory = aiosqlite.Row
            try:
                await db.execute("PRAGMA foreign_keys = ON;")
            except sqlite3.Error as exc:
                raise PersistenceError(
                    message=f"Catalog database {self._db_path} is unusable: {exc}",
                    source_name=_PROVIDER_NAME,
                ) from exc
            yield SQLiteCatalogSession(db)
        finally:
            if db.in_transaction:
                await db.rollback()
            await db.close()

    async def count_entities(self) -> dict[str, int]:
        counts: dict[str, int] = {}
        async with aiosqlite.connect(str(self._db_path)) as db:
            for table in (
                "artworks",
                "artists",
                "domains",
                "techniques",
                "periods",
                "museums",
                *(_RELATION_TABLES[kind][0] for kind in RELATION_KINDS),
            ):
                where = " WHERE is_deleted = 0" if table == "artworks" else ""
                cursor = await db.execute(f"SELECT COUNT(*) FROM {table}{where};")
                row = await cursor.fetchone()
                counts[table] = row[0] if row else 0
        return counts

    async def get_artwork(self, reference: str) -> dict[str, Any] | None:
        async with aiosqlite.connect(str(self._db_path)) as db:
            db.row_factory = aiosqlite.Row
            cursor = await db.execute(_SELECT_ARTWORK_SQL, (reference,))
            row = await cursor.fetchone()
            if row is None:
                return None
            artwork = dict(row)

            cursor = await db.execute(_SELECT_ARTWORK_ARTISTS_SQL, (artwork["id"],))
            artwork["artists"] = [dict(r) for r in await cursor.fetchall()]

            for relation_kind, entity_table in (
                ("domains", "domains"),
                ("techniques", "techniques"),
                ("periods", "periods"),
            ):
                relation_table, id_column = _RELATION_TABLES[relation_kind]
                cursor = await db.execute(
                    _SELECT_ARTWORK_NAMES_SQL.format(
                        relation_table=relation_table,
                        entity_table=entity_table,
                        id_column=id_column,
                    ),
                    (artwork["id"],),
                )
                artwork[relation_kind] = [r["name"] for r in await cursor.fetchall()]
        return artwork

    def get_provider_name(self) -> str:
        return _PROVIDER_NAME
