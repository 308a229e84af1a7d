"""Streaming record parsers for the Joconde exports.

- **fields** -- FieldExtractor, canonical field names for both key dialects
- **entity_resolver** -- in-run dedup of artists, domains, techniques,
  periods and museums
- **base** -- the shared parse loop and RecordBuilder
- **xml_parser** / **json_parser** -- one streaming walker per format
"""

from __future__ import annotations

from pathlib import Path

from joconde_sync.parsers.base import DEFAULT_ARTIST_ROLE, RecordBuilder, RecordParser
from joconde_sync.parsers.entity_resolver import EntityResolver, split_artist_name
from joconde_sync.parsers.fields import FIELD_ALIASES, FieldExtractor, RawRecord
from joconde_sync.parsers.json_parser import JsonObjectScanner, JsonRecordParser
from joconde_sync.parsers.sources import open_source, sniff_format
from joconde_sync.parsers.xml_parser import XmlRecordParser
from joconde_sync.utils.errors import NotFoundError

_PARSERS: dict[str, type[RecordParser]] = {
    "xml": XmlRecordParser,
    "json": JsonRecordParser,
}


def parser_for_path(
    path: str | Path,
    progress_every: int = 100,
    parse_batch_size: int = 500,
) -> RecordParser:
    """Return the parser matching *path*'s format (extension, archive members, or content)."""
    source = Path(path)
    if not source.is_file():
        raise NotFoundError(message=f"Source file not found: {source}", source_name=str(source))
    parser_cls = _PARSERS[sniff_format(source)]
    return parser_cls(progress_every=progress_every, parse_batch_size=parse_batch_size)


__all__ = [
    "DEFAULT_ARTIST_ROLE",
    "EntityResolver",
    "FIELD_ALIASES",
    "FieldExtractor",
    "JsonObjectScanner",
    "JsonRecordParser",
    "RawRecord",
    "RecordBuilder",
    "RecordParser",
    "XmlRecordParser",
    "open_source",
    "parser_for_path",
    "sniff_format",
    "split_artist_name",
]
