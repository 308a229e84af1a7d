"""Streaming parser for the Joconde JSON exports.

Two top-level layouts are accepted:

* a bare array of flat record objects: ``[{...}, {...}]``
* the open-data envelope: ``{"total_count": 713915, "results": [{...}]}``

The exports run to several gigabytes, so the document is never handed to
``json.load`` as a whole.  ``JsonObjectScanner`` reads the text forward in
fixed-size chunks, tracks string and escape state to find where each
element of the record array begins and ends, and yields that element's
text alone.  Only then does ``json.loads`` decode it; a malformed record
fails on its own and is skipped without disturbing the scan.
"""

from __future__ import annotations

import io
import json
from collections.abc import Iterator
from typing import IO

from joconde_sync.parsers.base import RecordParser
from joconde_sync.parsers.fields import RawRecord
from joconde_sync.utils.errors import FormatError, ParseError, RecordExtractionError

RESULTS_KEY = "results"
_WHITESPACE = " \t\r\n"
_SCALAR_END = ",]}" + _WHITESPACE


class JsonObjectScanner:
    """Forward-only tokenizer yielding the raw text of each record-array element."""

    def __init__(self, reader: IO[str], source_name: str = "", chunk_size: int = 64 * 1024) -> None:
        self._reader = reader
        self._source_name = source_name
        self._chunk_size = chunk_size
        self._buf = ""
        self._pos = 0

    def __iter__(self) -> Iterator[str]:
        self._open_record_array()
        expect_item = True
        while True:
            ch = self._skip_ws()
            if ch == "":
                self._fail("Unexpected end of document inside the record array")
            if ch == "]":
                self._pos += 1
                return
            if ch == ",":
                if expect_item:
                    self._fail("Unexpected ',' in the record array")
                self._pos += 1
                expect_item = True
                continue
            if not expect_item:
                self._fail(f"Expected ',' or ']' between records, found {ch!r}")
            yield self._read_value()
            expect_item = False

    # ------------------------------------------------------------------
    # Top level
    # ------------------------------------------------------------------

    def _open_record_array(self) -> None:
        ch = self._skip_ws()
        if ch == "[":
            self._pos += 1
            return
        if ch != "{":
            raise FormatError(
                message="Expected a JSON array or a {\"results\": [...]} envelope",
                source_name=self._source_name,
            )

        self._pos += 1
        while True:
            ch = self._skip_ws()
            if ch == "}":
                raise FormatError(
                    message=f"JSON object has no {RESULTS_KEY!r} array",
                    source_name=self._source_name,
                )
            if ch == ",":
                self._pos += 1
                continue
            if ch != '"':
                self._fail(f"Expected a key in the envelope object, found {ch!r}")

            key = json.loads(self._read_string())
            if self._skip_ws() != ":":
                self._fail("Expected ':' after an envelope key")
            self._pos += 1

            if key == RESULTS_KEY:
                if self._skip_ws() != "[":
                    raise FormatError(
                        message=f"{RESULTS_KEY!r} is not an array",
                        source_name=self._source_name,
                    )
                self._pos += 1
                return
            self._skip_ws()
            self._read_value()

    # ------------------------------------------------------------------
    # Values
    # ------------------------------------------------------------------

    def _read_value(self) -> str:
        ch = self._peek()
        if ch in "{[":
            return self._read_composite()
        if ch == '"':
            return self._read_string()
        return self._read_scalar()

    def _read_composite(self) -> str:
        parts: list[str] = []
        depth = 0
        in_string = False
        escape = False
        while True:
            buf = self._buf
            start = i = self._pos
            n = len(buf)
            while i < n:
                ch = buf[i]
                i += 1
                if in_string:
                    if escape:
                        escape = False
                    elif ch == "\\":
                        escape = True
                    elif ch == '"':
                        in_string = False
                elif ch == '"':
                    in_string = True
                elif ch == "{" or ch == "[":
                    depth += 1
                elif ch == "}" or ch == "]":
                    depth -= 1
                    if depth == 0:
                        parts.append(buf[start:i])
                        self._pos = i
                        return "".join(parts)
            parts.append(buf[start:n])
            self._pos = n
            if not self._fill():
                self._fail("Unexpected end of document inside a record")

    def _read_string(self) -> str:
        parts: list[str] = []
        escape = False
        first = True
        while True:
            buf = self._buf
            start = i = self._pos
            n = len(buf)
            while i < n:
                ch = buf[i]
                i += 1
                if first:
                    first = False
                    continue
                if escape:
                    escape = False
                elif ch == "\\":
                    escape = True
                elif ch == '"':
                    parts.append(buf[start:i])
                    self._pos = i
                    return "".join(parts)
            parts.append(buf[start:n])
            self._pos = n
            if not self._fill():
                self._fail("Unexpected end of document inside a string")

    def _read_scalar(self) -> str:
        parts: list[str] = []
        while True:
            buf = self._buf
            start = i = self._pos
            n = len(buf)
            while i < n and buf[i] not in _SCALAR_END:
                i += 1
            parts.append(buf[start:i])
            self._pos = i
            if i < n or not self._fill():
                return "".join(parts)

    # ------------------------------------------------------------------
    # Buffer management
    # ------------------------------------------------------------------

    def _fill(self) -> bool:
        """Replace the consumed buffer with the next chunk; False at end of input."""
        chunk = self._reader.read(self._chunk_size)
        if not chunk:
            return False
        self._buf = self._buf[self._pos:] + chunk
        self._pos = 0
        return True

    def _peek(self) -> str:
        if self._pos >= len(self._buf) and not self._fill():
            return ""
        return self._buf[self._pos]

    def _skip_ws(self) -> str:
        while True:
            ch = self._peek()
            if ch == "" or ch not in _WHITESPACE:
                return ch
            self._pos += 1

    def _fail(self, message: str) -> None:
        raise ParseError(message=message, source_name=self._source_name)


class JsonRecordParser(RecordParser):
    """RecordParser for the JSON exports (field-code and long-name keys)."""

    format_name = "json"
    estimated_record_bytes = 5000
    member_suffixes = (".json",)

    def _structural_errors(self) -> tuple[type[BaseException], ...]:
        return (UnicodeDecodeError,)

    def _iter_payloads(self, stream: IO[bytes], source_name: str) -> Iterator[str]:
        reader = io.TextIOWrapper(stream, encoding="utf-8-sig")
        try:
            yield from JsonObjectScanner(reader, source_name=source_name)
        finally:
            # Leave closing the byte stream to open_source.
            reader.detach()

    def _extract(self, payload: str) -> RawRecord:
        try:
            record = json.loads(payload)
        except (json.JSONDecodeError, RecursionError) as exc:
            # RecursionError: valid JSON nested deeper than json.loads can follow.
            raise RecordExtractionError(
                message=f"Malformed record: {exc}",
                source_name="json_parser",
            ) from exc
        return self._extractor.from_mapping(record)
