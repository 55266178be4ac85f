"""
Perfumero metadata client (RapidAPI).

Provides search, similar-fragrance and detail lookups against the external
fragrance metadata API. Every call is charged against a daily UsageBudget:
the budget is checked first (no I/O when exhausted) and incremented exactly
once, immediately before the request is sent, whether or not it succeeds.

Usage:
    client = PerfumeroClient()
    items = client.search({"name": "Khamrah", "limit": 20})
    candidates = [MetadataCandidate.from_api(item) for item in items]
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import requests
from django.conf import settings

from catalog.exceptions import (
    ConfigurationMissing,
    MalformedResponse,
    RemoteUnavailable,
)
from catalog.services.usage_budget import DEFAULT_DAILY_LIMIT, UsageBudget

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://perfumero.p.rapidapi.com"
RAPIDAPI_HOST = "perfumero.p.rapidapi.com"
DEFAULT_TIMEOUT = 10


def _optional_float(value: Any) -> Optional[float]:
    if value is None or value == "":
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _optional_int(value: Any) -> Optional[int]:
    if value is None or value == "":
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def _note_list(value: Any) -> List[str]:
    if not isinstance(value, list):
        return []
    return [str(note).strip() for note in value if note is not None and str(note).strip()]


@dataclass
class MetadataCandidate:
    """One fragrance as described by the metadata API."""

    external_id: str
    name: str
    brand: str
    year: Optional[int] = None
    concentration: Optional[str] = None
    top_notes: List[str] = field(default_factory=list)
    middle_notes: List[str] = field(default_factory=list)
    base_notes: List[str] = field(default_factory=list)
    community_rating: Optional[float] = None
    popularity_score: Optional[float] = None

    @classmethod
    def from_api(cls, item: Dict[str, Any]) -> "MetadataCandidate":
        """
        Parse one entry of an API response.

        Args:
            item: Raw dict with pid, name, brand and optional year,
                concentration, notes {top, middle, base}, rating, popularity

        Returns:
            MetadataCandidate

        Raises:
            MalformedResponse: If the entry is not a dict or lacks pid/name/brand
        """
        if not isinstance(item, dict):
            raise MalformedResponse(f"Expected an object, got {type(item).__name__}")

        pid = item.get("pid")
        name = item.get("name")
        brand = item.get("brand")
        if pid in (None, "") or not isinstance(name, str) or not isinstance(brand, str):
            raise MalformedResponse(f"Entry missing pid/name/brand: {item!r}")
        if not name.strip() or not brand.strip():
            raise MalformedResponse(f"Entry has empty name or brand: {item!r}")

        notes = item.get("notes") or {}
        if not isinstance(notes, dict):
            notes = {}

        concentration = item.get("concentration")
        return cls(
            external_id=str(pid),
            name=name.strip(),
            brand=brand.strip(),
            year=_optional_int(item.get("year")),
            concentration=concentration.strip() if isinstance(concentration, str) and concentration.strip() else None,
            top_notes=_note_list(notes.get("top")),
            middle_notes=_note_list(notes.get("middle")),
            base_notes=_note_list(notes.get("base")),
            community_rating=_optional_float(item.get("rating")),
            popularity_score=_optional_float(item.get("popularity")),
        )


class PerfumeroClient:
    """
    Wrapper for the Perfumero API on RapidAPI.

    Errors:
    - ConfigurationMissing: no API key configured
    - BudgetExceeded: daily budget used up (raised before any I/O)
    - RemoteUnavailable: network error, timeout or non-2xx status
    - MalformedResponse: response body is not the expected JSON shape
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        budget: Optional[UsageBudget] = None,
        timeout: Optional[float] = None,
    ):
        """
        Initialize the client.

        Args:
            api_key: RapidAPI key. Defaults to settings.PERFUMERO_API_KEY
            base_url: API root. Defaults to settings.PERFUMERO_BASE_URL
            budget: Daily budget. Defaults to a fresh UsageBudget with
                settings.PERFUMERO_DAILY_LIMIT
            timeout: Request timeout in seconds. Defaults to settings.PERFUMERO_TIMEOUT
        """
        self.api_key = api_key if api_key is not None else getattr(settings, "PERFUMERO_API_KEY", "")
        self.base_url = (base_url or getattr(settings, "PERFUMERO_BASE_URL", DEFAULT_BASE_URL)).rstrip("/")
        self.timeout = timeout or getattr(settings, "PERFUMERO_TIMEOUT", DEFAULT_TIMEOUT)
        self.budget = budget or UsageBudget(
            daily_limit=getattr(settings, "PERFUMERO_DAILY_LIMIT", DEFAULT_DAILY_LIMIT)
        )

    def is_available(self) -> bool:
        """True when credentials are configured and budget remains."""
        return bool(self.api_key) and self.budget.can_consume()

    def get_usage_stats(self) -> Dict[str, Any]:
        return self.budget.stats()

    def search(self, params: Dict[str, Any]) -> List[Dict[str, Any]]:
        """
        Search fragrances by name and/or brand.

        Args:
            params: Query parameters (name, brand, page, limit)

        Returns:
            List of raw result entries (parse with MetadataCandidate.from_api)
        """
        query = {key: value for key, value in params.items() if value not in (None, "")}
        payload = self._make_request("/search", query)
        data = payload.get("data")
        if data is None:
            return []
        if not isinstance(data, list):
            raise MalformedResponse("Search response 'data' is not a list")
        return data

    def get_similar(self, pid: str) -> List[Dict[str, Any]]:
        """Raw entries the API considers similar to the given product id."""
        payload = self._make_request(f"/similar/{pid}")
        data = payload.get("data") or {}
        if not isinstance(data, dict):
            raise MalformedResponse("Similar response 'data' is not an object")
        similar = data.get("similar") or []
        if not isinstance(similar, list):
            raise MalformedResponse("Similar response 'similar' is not a list")
        return similar

    def get_details(self, pid: str) -> Dict[str, Any]:
        """Raw detail entry for one product id."""
        payload = self._make_request(f"/perfume/{pid}")
        data = payload.get("data")
        if not isinstance(data, dict):
            raise MalformedResponse("Detail response 'data' is not an object")
        return data

    def _headers(self) -> Dict[str, str]:
        return {
            "X-RapidAPI-Key": self.api_key,
            "X-RapidAPI-Host": RAPIDAPI_HOST,
            "Accept": "application/json",
        }

    def _make_request(self, path: str, params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """
        Charge the budget and perform one GET request.

        Args:
            path: Endpoint path below the base URL
            params: Query string parameters

        Returns:
            Decoded JSON object

        Raises:
            ConfigurationMissing, BudgetExceeded, RemoteUnavailable, MalformedResponse
        """
        if not self.api_key:
            raise ConfigurationMissing("PERFUMERO_API_KEY not configured")

        count = self.budget.consume()
        url = f"{self.base_url}{path}"
        logger.debug(f"Perfumero request {count}/{self.budget.daily_limit}: {path} {params or {}}")

        try:
            response = requests.get(url, params=params, headers=self._headers(), timeout=self.timeout)
            response.raise_for_status()
        except requests.HTTPError as e:
            status_code = e.response.status_code if e.response is not None else None
            logger.warning(f"Perfumero request failed with HTTP {status_code}: {path}")
            raise RemoteUnavailable(f"Perfumero returned HTTP {status_code}", status_code=status_code) from e
        except requests.RequestException as e:
            logger.warning(f"Perfumero request failed: {e}")
            raise RemoteUnavailable(f"Perfumero request failed: {e}") from e

        try:
            payload = response.json()
        except ValueError as e:
            raise MalformedResponse("Perfumero returned a non-JSON body") from e

        if not isinstance(payload, dict):
            raise MalformedResponse("Perfumero returned a non-object body")
        if payload.get("success") is False:
            raise RemoteUnavailable(f"Perfumero reported failure: {payload.get('message', 'unknown error')}")

        return payload
