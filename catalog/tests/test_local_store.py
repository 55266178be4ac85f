"""
Tests for the local store adapter: filtering, ranking, counts, variant
search and record lookup.
"""

from datetime import timedelta

import pytest
from django.utils import timezone

from catalog.models import DataSource
from catalog.search.local_store import LocalStoreAdapter, SearchFilters, build_filter_q
from catalog.search.variants import expand


@pytest.fixture
def store():
    return LocalStoreAdapter()


class TestSearchFilters:
    """Tests for SearchFilters.from_dict()."""

    def test_camel_case_aliases(self):
        filters = SearchFilters.from_dict({"yearFrom": "2010", "yearTo": 2020})
        assert filters.year_from == 2010
        assert filters.year_to == 2020

    def test_coercion(self):
        filters = SearchFilters.from_dict({"verified": "true", "brand": "  Dior ", "year_from": "abc"})
        assert filters.verified is True
        assert filters.brand == "Dior"
        assert filters.year_from is None

    def test_unknown_keys_dropped(self):
        filters = SearchFilters.from_dict({"colour": "blue"})
        assert filters.is_empty()

    def test_unsupported_filters_build_no_predicate(self):
        """Season, occasion and mood are accepted but do not filter."""
        filters = SearchFilters(season="winter", occasion="office", mood="calm")
        assert not build_filter_q(filters)
        assert filters.to_dict() == {"season": "winter", "occasion": "office", "mood": "calm"}


@pytest.mark.django_db
class TestSearchLocal:
    """Tests for search_local() and count()."""

    def test_matches_name_brand_and_notes(self, store, make_fragrance):
        by_name = make_fragrance(name="Oud Wood", brand="Tom Ford")
        by_brand = make_fragrance(name="English Pear", brand="Woodland Perfumers")
        by_note = make_fragrance(name="Santal 33", brand="Le Labo", base_notes=["Sandalwood"])
        make_fragrance(name="Light Blue", brand="Dolce & Gabbana")

        results = store.search_local("wood")

        assert {row.pk for row in results} == {by_name.pk, by_brand.pk, by_note.pk}
        assert store.count("wood") == 3

    def test_case_insensitive(self, store, make_fragrance):
        fragrance = make_fragrance(name="Sauvage", brand="Dior")
        assert [row.pk for row in store.search_local("SAUVAGE")] == [fragrance.pk]

    def test_empty_query_returns_everything(self, store, make_fragrance):
        make_fragrance(name="A")
        make_fragrance(name="B")
        assert len(store.search_local("")) == 2
        assert store.count(None) == 2

    def test_filters(self, store, make_fragrance):
        match = make_fragrance(name="Sauvage EDP", brand="Dior", concentration="EDP", year=2018, verified=True)
        make_fragrance(name="Sauvage EDT", brand="Dior", concentration="EDT", year=2015, verified=True)
        make_fragrance(name="Sauvage Elixir", brand="Dior", concentration="EDP", year=2021, verified=False)

        filters = {"concentration": "edp", "yearFrom": 2016, "yearTo": 2020, "verified": True}
        results = store.search_local("sauvage", filters)

        assert [row.pk for row in results] == [match.pk]
        assert store.count("sauvage", filters) == 1

    def test_brand_filter_is_containment(self, store, make_fragrance):
        fragrance = make_fragrance(name="Fahrenheit", brand="Christian Dior")
        make_fragrance(name="Fahrenheit Clone", brand="Armaf")
        assert [row.pk for row in store.search_local("fahrenheit", {"brand": "dior"})] == [fragrance.pk]

    def test_ranking(self, store, make_fragrance):
        """Market priority first, then rating with missing ratings last, then id."""
        niche = make_fragrance(name="Rose A", brand="Some Indie House", community_rating=5.0)
        unrated = make_fragrance(name="Rose B", brand="Chanel", community_rating=None)
        rated = make_fragrance(name="Rose C", brand="Dior", community_rating=4.2)
        tie = make_fragrance(name="Rose D", brand="Dior", community_rating=4.2)

        results = store.search_local("rose")

        assert [row.pk for row in results] == [rated.pk, tie.pk, unrated.pk, niche.pk]

    def test_paging_is_stable(self, store, make_fragrance):
        created = [make_fragrance(name=f"Musk {i}", brand="Some Indie House") for i in range(5)]

        first = store.search_local("musk", limit=2, offset=0)
        second = store.search_local("musk", limit=2, offset=2)
        third = store.search_local("musk", limit=2, offset=4)

        paged = [row.pk for row in first + second + third]
        assert paged == [fragrance.pk for fragrance in created]
        assert store.count("musk") == 5


@pytest.mark.django_db
class TestVariantSearch:
    """Tests for search_variants() and count_variants()."""

    def test_nickname_finds_canonical_product(self, store, make_fragrance):
        bleu = make_fragrance(name="Bleu de Chanel", brand="Chanel")
        make_fragrance(name="Light Blue", brand="Dolce & Gabbana")

        variant_set = expand("chanel blue")

        assert store.search_local("chanel blue") == []
        assert [row.pk for row in store.search_variants(variant_set)] == [bleu.pk]
        assert store.count_variants(variant_set) == 1

    def test_abbreviation_finds_brand(self, store, make_fragrance):
        fragrance = make_fragrance(name="Le Male", brand="Jean Paul Gaultier")
        results = store.search_variants(expand("jpg"))
        assert [row.pk for row in results] == [fragrance.pk]

    def test_typo_finds_product(self, store, make_fragrance):
        fragrance = make_fragrance(name="Sauvage", brand="Dior")
        results = store.search_variants(expand("sagave"))
        assert [row.pk for row in results] == [fragrance.pk]

    def test_empty_variant_set(self, store, make_fragrance):
        make_fragrance()
        assert store.search_variants(expand("")) == []
        assert store.count_variants(expand("")) == 0


@pytest.mark.django_db
class TestFindExisting:
    """Tests for find_existing()."""

    def test_external_id_wins(self, store, make_fragrance):
        by_id = make_fragrance(name="Khamrah", brand="Lattafa", external_id="p1")
        make_fragrance(name="Khamrah Qahwa", brand="Lattafa")

        assert store.find_existing("p1", ["Khamrah Qahwa"], "Lattafa") == by_id

    def test_name_and_brand_case_insensitive(self, store, make_fragrance):
        fragrance = make_fragrance(name="Khamrah", brand="Lattafa")
        assert store.find_existing("p9", ["Lattafa Khamrah", "KHAMRAH"], "lattafa") == fragrance

    def test_brand_must_match(self, store, make_fragrance):
        make_fragrance(name="Khamrah", brand="Lattafa")
        assert store.find_existing(None, ["Khamrah"], "Armaf") is None

    def test_no_names(self, store):
        assert store.find_existing(None, ["", None], "Lattafa") is None


@pytest.mark.django_db
class TestAggregates:
    """Tests for autocomplete_names(), totals(), market_coverage() and records_for_enhancement()."""

    def test_autocomplete_names(self, store, make_fragrance):
        make_fragrance(name="Sauvage", brand="Dior")
        make_fragrance(name="Sauvage", brand="Dior", concentration="EDP")
        make_fragrance(name="Sauvage Elixir", brand="Dior")

        names = store.autocomplete_names("sau", limit=5)

        assert sorted(names) == ["Sauvage", "Sauvage Elixir"]

    def test_totals(self, store, make_fragrance):
        make_fragrance(name="A")
        make_fragrance(
            name="B",
            data_source=DataSource.API_PROMOTED,
            promoted_at=timezone.now(),
        )
        make_fragrance(
            name="C",
            data_source=DataSource.API_PROMOTED,
            promoted_at=timezone.now() - timedelta(days=3),
        )

        totals = store.totals()

        assert totals["total"] == 3
        assert totals["promoted_today"] == 1
        assert totals["by_source"] == {"native_import": 1, "api_promoted": 2}

    def test_market_coverage(self, store, make_fragrance):
        make_fragrance(name="Sauvage", brand="Dior")
        make_fragrance(name="Khamrah", brand="Lattafa")

        coverage = store.market_coverage()

        assert set(coverage) == {"tier1", "tier2", "tier3", "tier4"}
        assert coverage["tier1"]["fragrances"] == 1
        assert coverage["tier3"]["fragrances"] == 1
        assert coverage["tier4"]["fragrances"] == 0
        assert coverage["tier1"]["brands"] > 0

    def test_records_for_enhancement(self, store, make_fragrance):
        never = make_fragrance(name="Never Tried", popularity_score=10)
        older = make_fragrance(
            name="Tried Long Ago", popularity_score=90,
            last_enhanced=timezone.now() - timedelta(days=30),
        )
        make_fragrance(name="Unpopular", popularity_score=3)
        make_fragrance(name="Matched", popularity_score=50, external_id="p1")

        records = store.records_for_enhancement(batch_size=10)

        assert [row.pk for row in records] == [never.pk, older.pk]
