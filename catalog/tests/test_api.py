"""
Tests for the fragrance search REST API and the health check.
"""

import json
from unittest.mock import MagicMock, patch

import httpx
import pytest
import responses
from django.db import DatabaseError

from catalog.search.remote_index import MeilisearchIndex
from catalog.services.metadata_client import PerfumeroClient
from catalog.services.population import PopulationPolicyEngine
from catalog.services.usage_budget import UsageBudget

SEARCH_URL = "/api/v1/fragrances/search/"
AUTOCOMPLETE_URL = "/api/v1/fragrances/autocomplete/"
INDEX_SEARCH_URL = "/api/v1/fragrances/index-search/"
USAGE_URL = "/api/v1/search/usage/"
POPULATION_URL = "/api/v1/search/population/"
PERFUMERO_SEARCH_URL = "https://perfumero.p.rapidapi.com/search"


@pytest.fixture
def external_engine(clock):
    """Engine with credentials so searches can reach the (mocked) metadata API."""
    return PopulationPolicyEngine(
        metadata_client=PerfumeroClient(api_key="test-key", budget=UsageBudget(daily_limit=100, clock=clock)),
        remote_index=MeilisearchIndex(url=""),
        budget_buffer=5,
        clock=clock,
    )


@pytest.mark.django_db
class TestSearchEndpoint:
    """Tests for POST /api/v1/fragrances/search/."""

    def test_local_results(self, api_client, make_fragrance):
        fragrance = make_fragrance(name="Sauvage", brand="Dior", year=2015)

        response = api_client.post(SEARCH_URL, {"query": "sauvage"}, format="json")

        assert response.status_code == 200
        data = response.json()
        assert data["success"] is True
        assert data["query"] == "sauvage"
        assert data["state"] == "local_hit"
        assert data["source"] == "local"
        assert data["populated_from_api"] is False
        assert data["query_class"] is None
        assert data["results"][0]["id"] == fragrance.pk
        assert data["results"][0]["source"] == "native_import"
        assert data["results"][0]["is_transient"] is False
        assert data["pagination"] == {"limit": 20, "offset": 0, "total": 1, "has_more": False}
        assert data["market_intelligence"] == {
            "tier1_results": 1,
            "trending_results": 0,
            "demographics": ["mainstream"],
            "has_transient_results": False,
        }
        assert "search_time_ms" in data

    def test_pagination(self, api_client, make_fragrance):
        for i in range(3):
            make_fragrance(name=f"Musk {i}")

        response = api_client.post(SEARCH_URL, {"query": "musk", "limit": 2, "offset": 0}, format="json")

        data = response.json()
        assert len(data["results"]) == 2
        assert data["pagination"]["total"] == 3
        assert data["pagination"]["has_more"] is True

    def test_invalid_limit_uses_default(self, api_client, make_fragrance):
        make_fragrance(name="Musk")

        response = api_client.post(SEARCH_URL, {"query": "musk", "limit": "lots"}, format="json")

        assert response.json()["pagination"]["limit"] == 20

    def test_filters(self, api_client, make_fragrance):
        make_fragrance(name="Sauvage", brand="Dior", concentration="EDT")
        edp = make_fragrance(name="Sauvage", brand="Dior", concentration="EDP")

        response = api_client.post(
            SEARCH_URL, {"query": "sauvage", "filters": {"concentration": "EDP"}}, format="json"
        )

        assert [row["id"] for row in response.json()["results"]] == [edp.pk]

    def test_no_external_access(self, api_client):
        """Without credentials a local miss is throttled, not an error."""
        response = api_client.post(SEARCH_URL, {"query": "obscura"}, format="json")

        data = response.json()
        assert response.status_code == 200
        assert data["state"] == "throttled"
        assert data["query_class"] == "niche"
        assert data["source"] == "none"
        assert data["results"] == []

    @pytest.mark.parametrize("body", [
        {"query": 123},
        {"query": "sauvage", "filters": ["brand"]},
    ])
    def test_bad_request(self, api_client, body):
        response = api_client.post(SEARCH_URL, body, format="json")
        assert response.status_code == 400

    def test_database_unavailable(self, api_client):
        engine = MagicMock()
        engine.search.side_effect = DatabaseError("no such table")

        with patch("catalog.api.views._get_engine", return_value=engine):
            response = api_client.post(SEARCH_URL, {"query": "sauvage"}, format="json")

        assert response.status_code == 503
        assert response.json()["success"] is False

    @responses.activate
    def test_external_transient_results(self, api_client, external_engine, perfumero_item):
        responses.add(
            responses.GET,
            PERFUMERO_SEARCH_URL,
            json={"success": True, "data": [
                perfumero_item("p1", "Obscura", "Unknown House", rating=3.0, popularity=10),
            ]},
            status=200,
        )

        with patch("catalog.api.views._get_engine", return_value=external_engine):
            response = api_client.post(SEARCH_URL, {"query": "obscura"}, format="json")

        data = response.json()
        assert data["state"] == "transient"
        assert data["source"] == "external"
        assert data["populated_from_api"] is True
        assert data["results"][0]["id"] is None
        assert data["results"][0]["source"] == "api_only_transient"
        assert data["market_intelligence"]["has_transient_results"] is True

    @responses.activate
    def test_external_promoted_results(self, api_client, external_engine, perfumero_item):
        responses.add(
            responses.GET,
            PERFUMERO_SEARCH_URL,
            json={"success": True, "data": [
                perfumero_item("p1", "Cloud", "Ariana Grande", rating=4.2, popularity=80),
            ]},
            status=200,
        )

        with patch("catalog.api.views._get_engine", return_value=external_engine):
            response = api_client.post(SEARCH_URL, {"query": "cloud"}, format="json")

        data = response.json()
        assert data["state"] == "promoted"
        assert data["query_class"] == "popular"
        assert data["results"][0]["source"] == "api_promoted"
        assert data["market_intelligence"]["trending_results"] == 1
        assert data["market_intelligence"]["demographics"] == ["gen_z"]

    def test_get_not_allowed(self, api_client):
        assert api_client.get(SEARCH_URL).status_code == 405


@pytest.mark.django_db
class TestAutocompleteEndpoint:
    """Tests for GET /api/v1/fragrances/autocomplete/."""

    def test_suggestions(self, api_client, make_fragrance):
        make_fragrance(name="Sauvage", brand="Dior")
        make_fragrance(name="Sauvage Elixir", brand="Dior")

        response = api_client.get(AUTOCOMPLETE_URL, {"q": "sauv"})

        assert response.status_code == 200
        assert sorted(response.json()["suggestions"]) == ["Sauvage", "Sauvage Elixir"]

    def test_short_prefix(self, api_client, make_fragrance):
        make_fragrance(name="Sauvage", brand="Dior")

        response = api_client.get(AUTOCOMPLETE_URL, {"q": "s"})

        assert response.json()["suggestions"] == []


@pytest.mark.django_db
class TestIndexSearchEndpoint:
    """Tests for GET /api/v1/fragrances/index-search/."""

    def test_local_fallback_with_sort_and_filters(self, api_client, make_fragrance):
        make_fragrance(name="Rose B", brand="Dior", year=2018)
        make_fragrance(name="Rose A", brand="Dior", year=2012)
        make_fragrance(name="Rose C", brand="Byredo", year=2019)

        response = api_client.get(INDEX_SEARCH_URL, {
            "q": "rose", "brand": "Dior", "sort_by": "name", "sort_order": "asc", "limit": 1,
        })

        assert response.status_code == 200
        data = response.json()
        assert data["source"] == "local"
        assert data["cached"] is False
        assert [hit["name"] for hit in data["results"]] == ["Rose A"]
        assert data["total"] == 2
        assert data["pagination"] == {"limit": 1, "offset": 0, "total": 2, "has_more": True}

    @responses.activate
    def test_never_calls_metadata_api(self, api_client, external_engine):
        with patch("catalog.api.views._get_engine", return_value=external_engine):
            response = api_client.get(INDEX_SEARCH_URL, {"q": "obscura"})

        assert response.status_code == 200
        assert response.json()["results"] == []
        assert len(responses.calls) == 0
        assert external_engine.metadata_client.budget.used == 0

    def test_remote_index(self, api_client, clock):
        requests_seen = []

        def handler(request):
            requests_seen.append(request)
            if request.url.path == "/indexes/fragrances/search":
                return httpx.Response(200, json={
                    "hits": [{"id": 7, "name": "Sauvage", "brand": "Dior", "_rankingScore": 0.93}],
                    "estimatedTotalHits": 1,
                })
            return httpx.Response(200, json={"status": "available"})

        client = httpx.Client(base_url="http://meili.test", transport=httpx.MockTransport(handler))
        index = MeilisearchIndex(url="http://meili.test", index_name="fragrances", client=client)
        index.configure_index()
        engine = PopulationPolicyEngine(
            metadata_client=PerfumeroClient(api_key="", budget=UsageBudget(daily_limit=100, clock=clock)),
            remote_index=index,
            clock=clock,
        )

        with patch("catalog.api.views._get_engine", return_value=engine):
            first = api_client.get(INDEX_SEARCH_URL, {"q": "sauvage", "sort_by": "rating"}).json()
            second = api_client.get(INDEX_SEARCH_URL, {"q": "sauvage", "sort_by": "rating"}).json()

        assert first["source"] == "meilisearch"
        assert first["results"][0]["id"] == 7
        assert first["results"][0]["match_type"] == "exact"
        assert second["cached"] is True
        searches = [r for r in requests_seen if r.url.path == "/indexes/fragrances/search"]
        assert len(searches) == 1
        assert json.loads(searches[0].content)["sort"] == ["community_rating:desc"]


@pytest.mark.django_db
class TestSimilarEndpoint:
    """Tests for GET /api/v1/fragrances/<id>/similar/."""

    def test_unknown_fragrance(self, api_client):
        response = api_client.get("/api/v1/fragrances/999/similar/")
        assert response.status_code == 404

    def test_degrades_to_empty(self, api_client, make_fragrance):
        """Without API access the endpoint answers with no recommendations."""
        fragrance = make_fragrance(name="Khamrah", brand="Lattafa", external_id="p1")

        response = api_client.get(f"/api/v1/fragrances/{fragrance.pk}/similar/")

        assert response.status_code == 200
        assert response.json()["results"] == []

    @responses.activate
    def test_recommendations(self, api_client, external_engine, make_fragrance):
        fragrance = make_fragrance(name="Khamrah", brand="Lattafa", external_id="p1")
        responses.add(
            responses.GET,
            "https://perfumero.p.rapidapi.com/similar/p1",
            json={"success": True, "data": {"similar": [{"pid": "p2", "name": "Hawas", "brand": "Rasasi"}]}},
            status=200,
        )

        with patch("catalog.api.views._get_engine", return_value=external_engine):
            response = api_client.get(f"/api/v1/fragrances/{fragrance.pk}/similar/")

        results = response.json()["results"]
        assert [row["external_id"] for row in results] == ["p2"]
        assert results[0]["is_transient"] is True


@pytest.mark.django_db
class TestStatsEndpoints:
    """Usage and population statistics are staff-only."""

    @pytest.mark.parametrize("url", [USAGE_URL, POPULATION_URL])
    def test_anonymous_rejected(self, api_client, url):
        assert api_client.get(url).status_code in (401, 403)

    def test_usage(self, staff_client):
        response = staff_client.get(USAGE_URL)

        assert response.status_code == 200
        usage = response.json()["usage"]
        assert usage["used"] == 0
        assert usage["limit"] == 333
        assert set(usage) == {"used", "limit", "remaining", "reset_date"}

    def test_population(self, staff_client, make_fragrance):
        make_fragrance(name="Sauvage", brand="Dior")

        response = staff_client.get(POPULATION_URL)

        assert response.status_code == 200
        stats = response.json()["stats"]
        assert stats["total_populations"] == 0
        assert stats["database_totals"]["total"] == 1
        assert stats["market_coverage_by_tier"]["tier1"]["fragrances"] == 1


@pytest.mark.django_db
class TestHealthCheck:
    """Tests for GET /api/health/."""

    def test_healthy(self, client, make_fragrance):
        make_fragrance()

        response = client.get("/api/health/")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert data["database"] == "connected"
        assert data["redis"] == "not_configured"
        assert data["search_index"] == "fallback"
        assert data["metadata_api"] == "unavailable"
        assert data["fragrance_count"] == 1
        assert data["api_usage"]["limit"] == 333
