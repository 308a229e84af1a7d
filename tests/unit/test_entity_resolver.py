"""Unit tests for multi-value splitting, artist name splitting and EntityResolver."""

from __future__ import annotations

import pytest

from joconde_sync.models.catalog import Artist, Domain, EntityKind, Museum, ParsingResult
from joconde_sync.parsers.entity_resolver import EntityResolver, split_artist_name
from joconde_sync.utils.text import clean, split_multi_value

# ======================================================================
# Text helpers
# ======================================================================


class TestSplitMultiValue:
    def test_splits_on_semicolon_and_trims(self) -> None:
        assert split_multi_value(" dessin ; peinture;gravure ") == ["dessin", "peinture", "gravure"]

    def test_drops_empty_parts(self) -> None:
        assert split_multi_value("dessin;; ;peinture;") == ["dessin", "peinture"]

    def test_comma_is_not_a_separator(self) -> None:
        assert split_multi_value("huile, toile") == ["huile, toile"]

    def test_none_and_empty(self) -> None:
        assert split_multi_value(None) == []
        assert split_multi_value("") == []
        assert split_multi_value("   ") == []

    def test_list_elements_are_never_resplit(self) -> None:
        assert split_multi_value(["dessin;peinture", " gravure ", ""]) == [
            "dessin;peinture",
            "gravure",
        ]


class TestClean:
    @pytest.mark.parametrize(
        ("value", "expected"),
        [
            (None, ""),
            ("  x  ", "x"),
            (42, "42"),
            (True, "true"),
        ],
    )
    def test_clean(self, value, expected) -> None:
        assert clean(value) == expected


# ======================================================================
# Artist name splitting
# ======================================================================


class TestSplitArtistName:
    def test_comma_form(self) -> None:
        assert split_artist_name("Monet, Claude") == ("Monet", "Claude")

    def test_comma_splits_on_first_comma_only(self) -> None:
        assert split_artist_name("Doe, John, Jr") == ("Doe", "John, Jr")

    def test_first_last_order(self) -> None:
        assert split_artist_name("Claude Monet") == ("Monet", "Claude")

    def test_uppercase_surname_first(self) -> None:
        assert split_artist_name("DUBREUIL Toussaint") == ("DUBREUIL", "Toussaint")

    def test_space_splits_on_first_space_only(self) -> None:
        assert split_artist_name("Jean Baptiste Camille Corot") == ("Baptiste Camille Corot", "Jean")

    def test_single_token_is_last_name(self) -> None:
        assert split_artist_name("Rembrandt") == ("Rembrandt", "")


# ======================================================================
# EntityResolver
# ======================================================================


class TestEntityResolver:
    @pytest.fixture()
    def result(self) -> ParsingResult:
        return ParsingResult()

    @pytest.fixture()
    def resolver(self, result: ParsingResult) -> EntityResolver:
        return EntityResolver(result)

    def test_empty_input_returns_empty_list(self, resolver: EntityResolver) -> None:
        assert resolver.resolve(EntityKind.DOMAIN, "") == []
        assert resolver.resolve(EntityKind.DOMAIN, None) == []
        assert resolver.resolve_artists("  ") == []

    def test_same_key_returns_same_instance(
        self, resolver: EntityResolver, result: ParsingResult
    ) -> None:
        first = resolver.resolve(EntityKind.DOMAIN, "Dessin")
        second = resolver.resolve(EntityKind.DOMAIN, "dessin")

        assert first[0] is second[0]
        assert first[0].name == "Dessin"
        assert result.domains == [first[0]]

    def test_new_entities_appended_in_first_seen_order(
        self, resolver: EntityResolver, result: ParsingResult
    ) -> None:
        resolver.resolve(EntityKind.TECHNIQUE, "huile;aquarelle")
        resolver.resolve(EntityKind.TECHNIQUE, "gouache;huile")

        assert [t.name for t in result.techniques] == ["huile", "aquarelle", "gouache"]

    def test_kinds_have_separate_maps(
        self, resolver: EntityResolver, result: ParsingResult
    ) -> None:
        domain = resolver.resolve(EntityKind.DOMAIN, "estampe")[0]
        technique = resolver.resolve(EntityKind.TECHNIQUE, "estampe")[0]

        assert isinstance(domain, Domain)
        assert domain is not technique
        assert len(result.domains) == 1
        assert len(result.techniques) == 1

    def test_museum_resolution(self, resolver: EntityResolver, result: ParsingResult) -> None:
        museums = resolver.resolve(EntityKind.MUSEUM, "Musée du Louvre")
        assert isinstance(museums[0], Museum)
        assert result.museums[0].name == "Musée du Louvre"

    def test_artists_discard_anonymous_and_short_parts(
        self, resolver: EntityResolver, result: ParsingResult
    ) -> None:
        artists = resolver.resolve_artists("Anonyme;X;ANONYMOUS;Monet, Claude")

        assert len(artists) == 1
        assert artists[0].last_name == "Monet"
        assert artists[0].first_name == "Claude"
        assert result.artists == artists

    def test_artist_dedup_is_case_insensitive(self, resolver: EntityResolver) -> None:
        first = resolver.resolve_artists("Monet, Claude")[0]
        second = resolver.resolve_artists("MONET, claude")[0]
        assert first is second

    def test_resolve_delegates_artist_kind(self, resolver: EntityResolver) -> None:
        artists = resolver.resolve(EntityKind.ARTIST, "DUBREUIL Toussaint")
        assert isinstance(artists[0], Artist)
        assert artists[0].last_name == "DUBREUIL"

    def test_list_input_for_artists(self, resolver: EntityResolver, result: ParsingResult) -> None:
        resolver.resolve_artists(["Monet, Claude", "Renoir, Auguste"])
        assert [a.last_name for a in result.artists] == ["Monet", "Renoir"]

    def test_repeated_part_in_one_value_yields_same_instance(
        self, resolver: EntityResolver
    ) -> None:
        domains = resolver.resolve(EntityKind.DOMAIN, "dessin;DESSIN")
        assert len(domains) == 2
        assert domains[0] is domains[1]
