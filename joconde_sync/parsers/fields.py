"""Flat field extraction for Joconde records.

A Joconde record is a flat set of named text fields.  Two key dialects are
in circulation and both are accepted:

* the historical field codes (``REF``, ``TITR``, ``AUTR``, ``DOMN`` ...)
  used by the XML export and older JSON dumps;
* the open-data long names (``reference``, ``titre``, ``auteur``,
  ``domaine`` ...) used by the data.culture.gouv.fr JSON export, where a
  few fields are arrays and ``coordonnees`` is a nested ``{lon, lat}``
  object.

FieldExtractor maps either dialect onto one set of canonical field names.
The first alias holding a non-empty value wins.
"""

from __future__ import annotations

import xml.etree.ElementTree as ET
from collections.abc import Mapping
from typing import Any

from joconde_sync.utils.errors import RecordExtractionError
from joconde_sync.utils.text import clean

# A canonical field maps to a trimmed string, or to a list of trimmed
# strings when the source value was an array (never re-split on ";").
RawRecord = dict[str, "str | list[str]"]

FIELD_ALIASES: dict[str, tuple[str, ...]] = {
    # Artwork columns
    "reference": ("REF", "reference"),
    "inventory_number": ("INV", "numero_inventaire"),
    "denomination": ("DENO", "denomination"),
    "title": ("TITR", "titre"),
    "description": ("DESC", "description"),
    "dimensions": ("DIMS", "mesures"),
    "creation_date": ("DAPT", "periode_de_creation", "millesime_de_creation"),
    "creation_place": ("LOCA", "lieu_de_creation_utilisation"),
    "conservation_place": ("LOCA2", "localisation"),
    "copyright": ("COPY", "copyright"),
    "image_url": ("IMG", "image"),
    # Relation-bearing fields
    "authors": ("AUTR", "auteur"),
    "role": ("ROLE", "role"),
    "domain": ("DOMN", "domaine"),
    "technique": ("TECH", "materiaux_techniques"),
    "period": ("PERI", "epoque", "periode_de_creation"),
    "museum": ("nom_officiel_musee", "LOCA2"),
    # Artist attributes
    "artist_birth_date": ("BORN",),
    "artist_death_date": ("DIED",),
    "artist_nationality": ("NAT",),
    # Museum attributes
    "museum_city": ("VILLE", "ville"),
    "museum_department": ("DEPT", "departement"),
    "museum_region": ("REGION", "region"),
    "museum_code": ("MUSEO", "code_museofile"),
    "museum_longitude": ("coordonnees.lon",),
    "museum_latitude": ("coordonnees.lat",),
}


def local_name(tag: str) -> str:
    """Strip an ``{namespace}`` prefix from an element tag."""
    return tag.rsplit("}", 1)[-1]


class FieldExtractor:
    """Maps raw record fields onto canonical field names."""

    def __init__(self, aliases: Mapping[str, tuple[str, ...]] | None = None) -> None:
        self._aliases = dict(aliases or FIELD_ALIASES)

    @property
    def field_names(self) -> tuple[str, ...]:
        return tuple(self._aliases)

    def from_mapping(self, record: Any) -> RawRecord:
        """Extract canonical fields from one decoded JSON object."""
        if not isinstance(record, Mapping):
            raise RecordExtractionError(
                message=f"Expected an object, got {type(record).__name__}",
                source_name="field_extractor",
            )

        extracted: RawRecord = {}
        for field_name, aliases in self._aliases.items():
            extracted[field_name] = ""
            for alias in aliases:
                value = _normalize(_lookup(record, alias))
                if value:
                    extracted[field_name] = value
                    break
        return extracted

    def from_element(self, element: ET.Element) -> RawRecord:
        """Extract canonical fields from one XML record element.

        Direct children are the fields; a tag repeated inside one record
        becomes a list, one entry per occurrence.
        """
        values: dict[str, Any] = {}
        for child in element:
            if not isinstance(child.tag, str):
                continue
            name = local_name(child.tag)
            text = "".join(child.itertext()).strip()
            if name in values:
                previous = values[name]
                if isinstance(previous, list):
                    previous.append(text)
                else:
                    values[name] = [previous, text]
            else:
                values[name] = text
        return self.from_mapping(values)


def _lookup(record: Mapping, alias: str) -> Any:
    if alias in record:
        return record[alias]
    if "." not in alias:
        return None
    current: Any = record
    for segment in alias.split("."):
        if not isinstance(current, Mapping):
            return None
        current = current.get(segment)
    return current


def _normalize(value: Any) -> str | list[str]:
    # Nested objects only carry data through dotted aliases.
    if value is None or isinstance(value, Mapping):
        return ""
    if isinstance(value, list):
        parts = (clean(item) for item in value if _is_scalar(item))
        return [part for part in parts if part]
    return clean(value)


def _is_scalar(value: Any) -> bool:
    return value is not None and not isinstance(value, (list, Mapping))
