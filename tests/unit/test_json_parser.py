"""Unit tests for JsonObjectScanner and JsonRecordParser."""

from __future__ import annotations

import asyncio
import io
import json
from pathlib import Path

import pytest

from joconde_sync.parsers.json_parser import JsonObjectScanner, JsonRecordParser
from joconde_sync.utils.errors import FormatError, NotFoundError, ParseError
from tests.conftest import make_record, write_gzip, write_json, write_text, write_zip


def _scan(text: str, chunk_size: int = 7) -> list[str]:
    return list(JsonObjectScanner(io.StringIO(text), chunk_size=chunk_size))


# ======================================================================
# JsonObjectScanner
# ======================================================================


class TestJsonObjectScanner:
    def test_bare_array(self) -> None:
        items = _scan('[{"a": 1}, {"b": [1, 2, {"c": "}"}]}]')
        assert [json.loads(item) for item in items] == [{"a": 1}, {"b": [1, 2, {"c": "}"}]}]

    def test_strings_with_braces_and_escapes(self) -> None:
        payload = [{"t": 'a "quoted" {brace} ] \\ end'}, {"t": "é"}]
        items = _scan(json.dumps(payload))
        assert [json.loads(item) for item in items] == payload

    def test_empty_array(self) -> None:
        assert _scan("  [ ]  ") == []

    def test_envelope_skips_other_keys(self) -> None:
        text = json.dumps({"total_count": 2, "links": [{"href": "x"}], "results": [{"a": 1}, {"a": 2}]})
        assert [json.loads(item) for item in _scan(text)] == [{"a": 1}, {"a": 2}]

    def test_envelope_key_with_escaped_quote(self) -> None:
        text = '{"we\\"ird": "v", "results": [{"a": 1}]}'
        assert _scan(text) == ['{"a": 1}']

    def test_scalar_elements_are_yielded_as_text(self) -> None:
        assert _scan('[1, "x", null]') == ["1", '"x"', "null"]

    def test_envelope_without_results(self) -> None:
        with pytest.raises(FormatError):
            _scan('{"total_count": 0}')

    def test_results_not_an_array(self) -> None:
        with pytest.raises(FormatError):
            _scan('{"results": {"a": 1}}')

    def test_scalar_root(self) -> None:
        with pytest.raises(FormatError):
            _scan('"just a string"')

    def test_truncated_array(self) -> None:
        with pytest.raises(ParseError):
            _scan('[{"a": 1}, {"b": ')

    def test_missing_comma(self) -> None:
        with pytest.raises(ParseError):
            _scan('[{"a": 1} {"b": 2}]')


# ======================================================================
# JsonRecordParser
# ======================================================================


class TestJsonRecordParser:
    @pytest.mark.asyncio
    async def test_bare_array_export(self, tmp_path: Path) -> None:
        path = write_json(
            tmp_path / "export.json",
            [
                make_record("R1", AUTR="Monet, Claude", DOMN="peinture"),
                make_record("R2", AUTR="Monet, Claude", DOMN="peinture;dessin"),
            ],
        )
        result = await JsonRecordParser().parse(path)

        assert [a.reference for a in result.artworks] == ["R1", "R2"]
        assert len(result.artists) == 1
        assert [d.name for d in result.domains] == ["peinture", "dessin"]

    @pytest.mark.asyncio
    async def test_envelope_with_long_names(self, tmp_path: Path) -> None:
        path = write_json(
            tmp_path / "export.json",
            {
                "total_count": 1,
                "results": [
                    {
                        "reference": "M1",
                        "titre": "Nature morte",
                        "auteur": ["Chardin, Jean Siméon"],
                        "domaine": ["peinture", "peinture"],
                        "nom_officiel_musee": "Musée du Louvre",
                        "ville": "Paris",
                        "coordonnees": {"lon": 2.33, "lat": 48.86},
                    }
                ],
            },
        )
        result = await JsonRecordParser().parse(path)

        artwork = result.artworks[0]
        assert artwork.artists[0].artist.first_name == "Jean Siméon"
        assert len(artwork.domains) == 1
        museum = result.museums[0]
        assert (museum.name, museum.city) == ("Musée du Louvre", "Paris")
        assert museum.longitude == pytest.approx(2.33)
        assert museum.latitude == pytest.approx(48.86)

    @pytest.mark.asyncio
    async def test_bad_records_are_skipped(self, tmp_path: Path) -> None:
        path = write_text(
            tmp_path / "export.json",
            '[{"REF": "R1", "TITR": "ok"}, {"REF": "R2", "TITR": }, 42, {"REF": "", "TITR": "x"},'
            ' {"REF": "R3", "DESC": "only a description"}]',
        )
        result = await JsonRecordParser().parse(path)

        assert [a.reference for a in result.artworks] == ["R1", "R3"]
        assert result.skipped_records == 3
        assert result.records_seen == 5

    @pytest.mark.asyncio
    async def test_deeply_nested_record_is_skipped(self, tmp_path: Path) -> None:
        nested = "[" * 100_000 + "]" * 100_000
        path = write_text(
            tmp_path / "export.json",
            f'[{{"REF": "R1", "TITR": "t", "X": {nested}}}, {{"REF": "R2", "TITR": "ok"}}]',
        )
        result = await JsonRecordParser().parse(path)

        assert [a.reference for a in result.artworks] == ["R2"]
        assert result.skipped_records == 1
        assert result.records_seen == 2

    @pytest.mark.asyncio
    async def test_utf8_bom(self, tmp_path: Path) -> None:
        path = tmp_path / "bom.json"
        path.write_bytes(b"\xef\xbb\xbf" + json.dumps([make_record("R1")]).encode("utf-8"))
        result = await JsonRecordParser().parse(path)
        assert len(result.artworks) == 1

    @pytest.mark.asyncio
    async def test_gzip_and_zip_sources(self, tmp_path: Path) -> None:
        text = json.dumps([make_record("R1"), make_record("R2")])
        gz = write_gzip(tmp_path / "export.json.gz", text)
        archive = write_zip(tmp_path / "export.zip", "data/export.json", text)

        assert len((await JsonRecordParser().parse(gz)).artworks) == 2
        assert len((await JsonRecordParser().parse(archive)).artworks) == 2

    @pytest.mark.asyncio
    async def test_same_artist_500_times(self, tmp_path: Path) -> None:
        records = [make_record(f"R{i}", AUTR="Monet, Claude") for i in range(500)]
        path = write_json(tmp_path / "monet.json", records)

        result = await JsonRecordParser().parse(path)

        assert len(result.artists) == 1
        assert len(result.artworks) == 500
        monet = result.artists[0]
        assert all(a.artists[0].artist is monet for a in result.artworks)

    @pytest.mark.asyncio
    async def test_cancellation_after_n_records(self, tmp_path: Path) -> None:
        path = write_json(tmp_path / "ten.json", [make_record(f"R{i}") for i in range(10)])
        cancel = asyncio.Event()
        seen: list[tuple[int, int]] = []

        async def _on_progress(processed: int, total: int) -> None:
            seen.append((processed, total))
            if processed == 4:
                cancel.set()

        result = await JsonRecordParser(progress_every=1).parse(
            path, on_progress=_on_progress, cancel_event=cancel
        )

        assert result.canceled
        assert len(result.artworks) == 4
        assert seen[-1] == (4, 4)

    @pytest.mark.asyncio
    async def test_failing_progress_sink_does_not_abort(self, tmp_path: Path) -> None:
        path = write_json(tmp_path / "two.json", [make_record("R1"), make_record("R2")])

        def _broken(processed: int, total: int) -> None:
            raise RuntimeError("sink down")

        result = await JsonRecordParser(progress_every=1).parse(path, on_progress=_broken)
        assert len(result.artworks) == 2

    @pytest.mark.asyncio
    async def test_progress_interval_is_capped(self, tmp_path: Path) -> None:
        parser = JsonRecordParser(progress_every=50_000)
        assert parser._progress_every == 1000

    @pytest.mark.asyncio
    async def test_format_error_for_object_without_results(self, tmp_path: Path) -> None:
        path = write_json(tmp_path / "bad.json", {"total_count": 3})
        with pytest.raises(FormatError):
            await JsonRecordParser().parse(path)

    @pytest.mark.asyncio
    async def test_truncated_document_is_parse_error(self, tmp_path: Path) -> None:
        path = write_text(tmp_path / "cut.json", '[{"REF": "R1", "TITR": "T"}, {"REF": "R2", "TI')
        with pytest.raises(ParseError):
            await JsonRecordParser().parse(path)

    @pytest.mark.asyncio
    async def test_invalid_utf8_is_parse_error(self, tmp_path: Path) -> None:
        path = tmp_path / "latin1.json"
        path.write_bytes('[{"REF": "R1", "TITR": "Été"}]'.encode("latin-1"))
        with pytest.raises(ParseError):
            await JsonRecordParser().parse(path)

    @pytest.mark.asyncio
    async def test_missing_file(self, tmp_path: Path) -> None:
        with pytest.raises(NotFoundError):
            await JsonRecordParser().parse(tmp_path / "absent.json")
