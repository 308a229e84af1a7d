"""Opening Joconde export files as forward-only byte streams.

The data portal publishes the export as a zip archive (served without a
file extension), older dumps circulate gzip-compressed, and local copies
are often plain files.  Compression is detected from the magic bytes, not
the file name.
"""

from __future__ import annotations

import contextlib
import gzip
import zipfile
from collections.abc import Iterator
from pathlib import Path
from typing import IO

import structlog

from joconde_sync.utils.errors import FormatError, ParseError

logger = structlog.get_logger(logger_name=__name__)

GZIP_MAGIC = b"\x1f\x8b"
ZIP_MAGIC = b"PK\x03\x04"
_SNIFF_BYTES = 512


def compression_of(path: Path) -> str | None:
    """Return ``"gzip"``, ``"zip"`` or None for an uncompressed file."""
    with open(path, "rb") as fh:
        head = fh.read(4)
    if head.startswith(GZIP_MAGIC):
        return "gzip"
    if head.startswith(ZIP_MAGIC):
        return "zip"
    return None


@contextlib.contextmanager
def open_source(path: Path, member_suffixes: tuple[str, ...] = ()) -> Iterator[IO[bytes]]:
    """Open *path* as a binary stream, decompressing gzip and zip on the fly.

    For a zip archive the first member whose name ends with one of
    *member_suffixes* is streamed, else the first file member.
    """
    compression = compression_of(path)
    if compression == "gzip":
        with gzip.open(path, "rb") as fh:
            yield fh
        return
    if compression == "zip":
        with zipfile.ZipFile(path) as archive:
            chosen = _pick_member(archive, member_suffixes)
            if chosen is None:
                raise ParseError(message="Zip archive is empty", source_name=str(path))
            logger.debug("zip_member_selected", path=str(path), member=chosen.filename)
            with archive.open(chosen) as fh:
                yield fh
        return
    with open(path, "rb") as fh:
        yield fh


def _pick_member(archive: zipfile.ZipFile, suffixes: tuple[str, ...]) -> zipfile.ZipInfo | None:
    members = [info for info in archive.infolist() if not info.is_dir()]
    if not members:
        return None
    if suffixes:
        for info in members:
            if info.filename.lower().endswith(suffixes):
                return info
    return members[0]


def sniff_format(path: Path) -> str:
    """Return ``"xml"`` or ``"json"`` for *path*.

    The file name decides when it carries a ``.xml``/``.json`` extension
    (before any ``.gz``); a zip archive is judged by its member names;
    anything else by the first significant character of the content.
    """
    name = path.name.lower()
    if name.endswith(".gz"):
        name = name[:-3]
    if name.endswith(".xml"):
        return "xml"
    if name.endswith(".json"):
        return "json"

    if compression_of(path) == "zip":
        with zipfile.ZipFile(path) as archive:
            names = [info.filename.lower() for info in archive.infolist() if not info.is_dir()]
        if any(n.endswith(".xml") for n in names):
            return "xml"
        if any(n.endswith(".json") for n in names):
            return "json"

    with open_source(path) as fh:
        head = fh.read(_SNIFF_BYTES)
    text = head.lstrip(b"\xef\xbb\xbf \t\r\n")
    if text.startswith(b"<"):
        return "xml"
    if text.startswith((b"[", b"{")):
        return "json"
    raise FormatError(
        message="Cannot tell whether the source is XML or JSON",
        source_name=str(path),
    )
