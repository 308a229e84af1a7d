"""In-run deduplication of reference entities.

EntityResolver turns a raw multi-valued field into entity instances,
reusing the instance already created earlier in the same parse run for an
equal dedup key.  New instances are appended to the matching ParsingResult
collection, so first-seen order is preserved.

The resolver knows nothing about the persisted store.  Reconciling in-run
instances against persisted rows is the import engine's job.
"""

from __future__ import annotations

from typing import Any

import structlog

from joconde_sync.models.catalog import (
    Artist,
    Domain,
    EntityKind,
    Museum,
    ParsingResult,
    Period,
    Technique,
    artist_key,
)
from joconde_sync.utils.text import split_multi_value

logger = structlog.get_logger(logger_name=__name__)

ANONYMOUS_NAMES = frozenset({"anonyme", "anonymous"})
MIN_ARTIST_NAME_LENGTH = 2

_NAMED_FACTORIES = {
    EntityKind.DOMAIN: Domain,
    EntityKind.TECHNIQUE: Technique,
    EntityKind.PERIOD: Period,
    EntityKind.MUSEUM: Museum,
}


def split_artist_name(name: str) -> tuple[str, str]:
    """Split one author string into ``(last_name, first_name)``.

    ``"Monet, Claude"`` splits on the first comma.  ``"Claude Monet"``
    splits on the first space, except that an upper-case leading token is
    read as the surname (``"DUBREUIL Toussaint"``).  A single token is a
    last name with an empty first name.
    """
    name = name.strip()
    if "," in name:
        last, first = name.split(",", 1)
        return last.strip(), first.strip()
    if " " in name:
        head, tail = name.split(" ", 1)
        head, tail = head.strip(), tail.strip()
        if _is_upper_surname(head):
            return head, tail
        return tail, head
    return name, ""


def _is_upper_surname(token: str) -> bool:
    letters = [ch for ch in token if ch.isalpha()]
    return len(letters) >= MIN_ARTIST_NAME_LENGTH and token.isupper()


class EntityResolver:
    """Per-run dedup maps, one per entity kind."""

    def __init__(self, result: ParsingResult) -> None:
        self._result = result
        self._maps: dict[EntityKind, dict[str, Any]] = {kind: {} for kind in EntityKind}

    def resolve(self, kind: EntityKind, raw_value: str | list[str] | None) -> list:
        """Return one entity per distinct part of *raw_value*.

        A part seen twice in the same value yields the same instance twice;
        callers that need a set should dedupe by identity.
        """
        if kind == EntityKind.ARTIST:
            return self.resolve_artists(raw_value)

        factory = _NAMED_FACTORIES[kind]
        resolved = []
        for part in split_multi_value(raw_value):
            resolved.append(self._get_or_create(kind, part.lower(), lambda: factory(name=part)))
        return resolved

    def resolve_artists(self, raw_value: str | list[str] | None) -> list[Artist]:
        artists: list[Artist] = []
        for part in split_multi_value(raw_value):
            if len(part) < MIN_ARTIST_NAME_LENGTH or part.lower() in ANONYMOUS_NAMES:
                logger.debug("artist_part_discarded", part=part)
                continue
            last_name, first_name = split_artist_name(part)
            if not last_name:
                continue
            key = artist_key(last_name, first_name)
            artists.append(
                self._get_or_create(
                    EntityKind.ARTIST,
                    key,
                    lambda: Artist(last_name=last_name, first_name=first_name),
                )
            )
        return artists

    def _get_or_create(self, kind: EntityKind, key: str, factory) -> Any:
        entity = self._maps[kind].get(key)
        if entity is None:
            entity = factory()
            self._maps[kind][key] = entity
            self._result.entities(kind).append(entity)
        return entity
