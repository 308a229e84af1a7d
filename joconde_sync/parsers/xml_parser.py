"""Streaming parser for the Joconde XML export.

The export is one root element holding repeating record elements, each a
flat list of leaf fields::

    <Joconde>
      <notice>
        <REF>000PE000001</REF>
        <TITR>Portrait de femme</TITR>
        <AUTR>MONET Claude</AUTR>
        ...
      </notice>
      ...
    </Joconde>

Records are the direct children of the root, whatever their tag name and
namespace.  ``iterparse`` emits start and end events; a depth counter tells
when a direct child of the root closes.  Each record element is cleared and
detached from the root once extracted, so memory stays flat however large
the document is.
"""

from __future__ import annotations

import xml.etree.ElementTree as ET
from collections.abc import Iterator
from typing import IO

from joconde_sync.parsers.base import RecordParser
from joconde_sync.parsers.fields import RawRecord
from joconde_sync.utils.errors import FormatError


class XmlRecordParser(RecordParser):
    """RecordParser for the XML export."""

    format_name = "xml"
    estimated_record_bytes = 2000
    member_suffixes = (".xml",)

    def _structural_errors(self) -> tuple[type[BaseException], ...]:
        return (ET.ParseError,)

    def _iter_payloads(self, stream: IO[bytes], source_name: str) -> Iterator[ET.Element]:
        root: ET.Element | None = None
        depth = 0
        first_record_checked = False

        try:
            for event, elem in ET.iterparse(stream, events=("start", "end")):
                if event == "start":
                    if root is None:
                        root = elem
                    depth += 1
                    continue

                depth -= 1
                if depth != 1:
                    continue

                if not first_record_checked:
                    first_record_checked = True
                    if len(elem) == 0 and (elem.text or "").strip():
                        raise FormatError(
                            message="Root element holds leaf fields, not repeating records",
                            source_name=source_name,
                        )

                yield elem
                elem.clear()
                root.remove(elem)
        except ET.ParseError as exc:
            if root is None:
                raise FormatError(
                    message=f"Not an XML document: {exc}",
                    source_name=source_name,
                ) from exc
            raise

    def _extract(self, payload: ET.Element) -> RawRecord:
        return self._extractor.from_element(payload)
