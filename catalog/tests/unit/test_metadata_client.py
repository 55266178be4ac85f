"""
Tests for the Perfumero metadata client.
"""

import pytest
import requests
import responses
from responses import matchers
from django.test import override_settings

from catalog.exceptions import (
    BudgetExceeded,
    ConfigurationMissing,
    MalformedResponse,
    RemoteUnavailable,
)
from catalog.services.metadata_client import MetadataCandidate, PerfumeroClient
from catalog.services.usage_budget import UsageBudget

BASE_URL = "https://perfumero.p.rapidapi.com"


def make_client(clock, limit=10, api_key="test-key"):
    return PerfumeroClient(api_key=api_key, budget=UsageBudget(daily_limit=limit, clock=clock))


class TestPerfumeroClientInit:
    """Tests for PerfumeroClient initialization."""

    @override_settings(PERFUMERO_API_KEY="settings-key", PERFUMERO_DAILY_LIMIT=42)
    def test_reads_settings(self):
        """Should use key and daily limit from settings."""
        client = PerfumeroClient()
        assert client.api_key == "settings-key"
        assert client.budget.daily_limit == 42

    def test_unavailable_without_key(self, clock):
        """is_available() is False without credentials."""
        assert not make_client(clock, api_key="").is_available()

    def test_unavailable_when_budget_spent(self, clock):
        """is_available() is False once the budget is used up."""
        client = make_client(clock, limit=1)
        client.budget.consume()
        assert not client.is_available()


class TestPerfumeroClientSearch:
    """Tests for search()."""

    @responses.activate
    def test_search_returns_entries(self, clock):
        """Should return the data list and send RapidAPI headers."""
        responses.add(
            responses.GET,
            f"{BASE_URL}/search",
            json={"success": True, "data": [{"pid": "p1", "name": "Khamrah", "brand": "Lattafa"}]},
            status=200,
        )

        client = make_client(clock)
        items = client.search({"name": "khamrah", "limit": 20})

        assert items == [{"pid": "p1", "name": "Khamrah", "brand": "Lattafa"}]
        request = responses.calls[0].request
        assert request.headers["X-RapidAPI-Key"] == "test-key"
        assert request.headers["X-RapidAPI-Host"] == "perfumero.p.rapidapi.com"
        assert "name=khamrah" in request.url
        assert "limit=20" in request.url

    @responses.activate
    def test_search_drops_empty_params(self, clock):
        """Empty parameters are not sent."""
        responses.add(responses.GET, f"{BASE_URL}/search", json={"data": []}, status=200)

        make_client(clock).search({"name": "eros", "brand": None})

        assert "brand" not in responses.calls[0].request.url

    @responses.activate
    def test_each_call_consumes_one_unit(self, clock):
        """The budget is charged once per dispatched request."""
        responses.add(responses.GET, f"{BASE_URL}/search", json={"data": []}, status=200)

        client = make_client(clock)
        client.search({"name": "eros"})
        client.search({"name": "eros"})

        assert client.budget.used == 2
        assert len(responses.calls) == 2

    @responses.activate
    def test_failed_call_still_consumes(self, clock):
        """A failed request has still used its unit of budget."""
        responses.add(responses.GET, f"{BASE_URL}/search", status=500)

        client = make_client(clock)
        with pytest.raises(RemoteUnavailable) as excinfo:
            client.search({"name": "eros"})

        assert excinfo.value.status_code == 500
        assert client.budget.used == 1

    @responses.activate
    def test_budget_exceeded_makes_no_request(self, clock):
        """An exhausted budget raises before any I/O."""
        client = make_client(clock, limit=1)
        client.budget.consume()

        with pytest.raises(BudgetExceeded):
            client.search({"name": "eros"})

        assert len(responses.calls) == 0

    @responses.activate
    def test_missing_key_makes_no_request(self, clock):
        """Missing credentials raise without touching budget or network."""
        client = make_client(clock, api_key="")

        with pytest.raises(ConfigurationMissing):
            client.search({"name": "eros"})

        assert client.budget.used == 0
        assert len(responses.calls) == 0

    @responses.activate
    def test_network_error(self, clock):
        """Connection failures surface as RemoteUnavailable."""
        responses.add(
            responses.GET,
            f"{BASE_URL}/search",
            body=requests.ConnectionError("connection refused"),
        )

        with pytest.raises(RemoteUnavailable):
            make_client(clock).search({"name": "eros"})

    @responses.activate
    def test_non_json_body(self, clock):
        """A non-JSON body is a MalformedResponse (also a RemoteUnavailable)."""
        responses.add(responses.GET, f"{BASE_URL}/search", body="<html>oops</html>", status=200)

        with pytest.raises(MalformedResponse):
            make_client(clock).search({"name": "eros"})

    @responses.activate
    def test_data_not_a_list(self, clock):
        """A search response whose data is not a list is malformed."""
        responses.add(responses.GET, f"{BASE_URL}/search", json={"data": {"pid": "p1"}}, status=200)

        with pytest.raises(MalformedResponse):
            make_client(clock).search({"name": "eros"})

    @responses.activate
    def test_reported_failure(self, clock):
        """success=false is treated as unavailable."""
        responses.add(
            responses.GET,
            f"{BASE_URL}/search",
            json={"success": False, "message": "quota"},
            status=200,
        )

        with pytest.raises(RemoteUnavailable):
            make_client(clock).search({"name": "eros"})


class TestDailyBudgetThroughClient:
    """The production daily limit holds across mixed successes and failures."""

    def _register(self):
        responses.add(
            responses.GET,
            f"{BASE_URL}/search",
            json={"success": True, "data": []},
            status=200,
            match=[matchers.query_param_matcher({"name": "ok"})],
        )
        responses.add(
            responses.GET,
            f"{BASE_URL}/search",
            status=503,
            match=[matchers.query_param_matcher({"name": "fail"})],
        )

    @responses.activate
    def test_333_calls_then_exceeded(self, clock):
        """Call 334 of the day raises BudgetExceeded without reaching the network."""
        self._register()
        client = make_client(clock, limit=333)

        failures = 0
        for i in range(333):
            name = "fail" if i % 3 == 0 else "ok"
            try:
                client.search({"name": name})
            except RemoteUnavailable:
                failures += 1

        assert failures == 111
        assert client.budget.used == 333
        assert client.budget.remaining == 0
        assert not client.is_available()

        with pytest.raises(BudgetExceeded):
            client.search({"name": "ok"})

        assert len(responses.calls) == 333
        assert client.budget.used == 333

    @responses.activate
    def test_counter_resets_on_next_day(self, clock):
        """The first call after the date changes counts from zero."""
        self._register()
        client = make_client(clock, limit=333)
        for _ in range(333):
            client.search({"name": "ok"})
        with pytest.raises(BudgetExceeded):
            client.search({"name": "ok"})

        clock.advance(days=1)

        assert client.get_usage_stats()["used"] == 0
        client.search({"name": "ok"})
        assert client.budget.used == 1
        assert len(responses.calls) == 334


class TestPerfumeroClientLookups:
    """Tests for get_similar() and get_details()."""

    @responses.activate
    def test_get_similar(self, clock):
        responses.add(
            responses.GET,
            f"{BASE_URL}/similar/p1",
            json={"success": True, "data": {"pid": "p1", "similar": [{"pid": "p2"}]}},
            status=200,
        )

        assert make_client(clock).get_similar("p1") == [{"pid": "p2"}]

    @responses.activate
    def test_get_details(self, clock):
        responses.add(
            responses.GET,
            f"{BASE_URL}/perfume/p1",
            json={"success": True, "data": {"pid": "p1", "name": "Eros"}},
            status=200,
        )

        assert make_client(clock).get_details("p1")["name"] == "Eros"

    def test_usage_stats(self, clock):
        client = make_client(clock, limit=333)
        client.budget.consume()
        stats = client.get_usage_stats()
        assert stats["used"] == 1
        assert stats["remaining"] == 332


class TestMetadataCandidate:
    """Tests for MetadataCandidate.from_api()."""

    def test_parses_full_entry(self):
        candidate = MetadataCandidate.from_api({
            "pid": 123,
            "name": " Khamrah ",
            "brand": "Lattafa",
            "year": "2022",
            "concentration": "EDP",
            "notes": {"top": ["cinnamon", ""], "middle": ["dates"], "base": ["vanilla"]},
            "rating": "4.3",
            "popularity": 87,
        })

        assert candidate.external_id == "123"
        assert candidate.name == "Khamrah"
        assert candidate.year == 2022
        assert candidate.top_notes == ["cinnamon"]
        assert candidate.base_notes == ["vanilla"]
        assert candidate.community_rating == 4.3
        assert candidate.popularity_score == 87.0

    def test_tolerates_missing_optional_fields(self):
        candidate = MetadataCandidate.from_api({"pid": "p1", "name": "Eros", "brand": "Versace"})
        assert candidate.year is None
        assert candidate.concentration is None
        assert candidate.top_notes == []
        assert candidate.community_rating is None

    @pytest.mark.parametrize("item", [
        None,
        "not a dict",
        {"name": "Eros", "brand": "Versace"},
        {"pid": "p1", "brand": "Versace"},
        {"pid": "p1", "name": "Eros", "brand": "   "},
    ])
    def test_rejects_incomplete_entries(self, item):
        with pytest.raises(MalformedResponse):
            MetadataCandidate.from_api(item)
