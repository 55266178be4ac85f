"""
Population Policy Engine - layered search with controlled catalog growth.

Resolution order for every search:

1. Local store: plain containment search, then the variant-expanded search.
   Any hit ends the request with zero external calls.
2. Classification: queries under three characters are skipped; queries
   matching a popular search term are POPULAR; everything else is NICHE.
3. Budget check: the metadata client must be available, the remaining daily
   budget must stay above a safety buffer, and the same query (or the brand
   it populated) must not have been fetched within the throttle window.
4. External fetch, then promotion: POPULAR queries, or NICHE queries where
   at least one candidate passes the quality gate, are promoted candidate by
   candidate (existing rows are enhanced, qualifying new ones inserted, the
   rest returned as transient views). Otherwise every candidate is returned
   as a transient view and nothing is written.

Failures of the external tiers never propagate: they are logged, reported and
turned into an empty result. Local store DatabaseError does propagate.
"""

import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Tuple

from django.conf import settings
from django.db import transaction
from django.utils import timezone

from catalog.exceptions import CatalogError, PromotionFailure
from catalog.models import DataSource, Fragrance
from catalog.monitoring import add_search_breadcrumb, capture_search_error
from catalog.search.lexicon import POPULAR_SEARCH_TERMS
from catalog.search.local_store import LocalStoreAdapter, SearchFilters
from catalog.search.normalization import normalize
from catalog.search.remote_index import MeilisearchIndex, SearchOptions
from catalog.search.results import FragranceView
from catalog.search.variants import expand
from catalog.services import market_intelligence
from catalog.services.enhancement import apply_enhancement
from catalog.services.metadata_client import MetadataCandidate, PerfumeroClient

logger = logging.getLogger(__name__)

MIN_EXTERNAL_QUERY_LENGTH = 3
EXTERNAL_FETCH_LIMIT = 20
DEFAULT_BUDGET_BUFFER = 500
DEFAULT_THROTTLE_HOURS = 24
RECENT_POPULATIONS_SHOWN = 10


class QueryClass(str, Enum):
    POPULAR = "popular"
    NICHE = "niche"
    SKIP = "skip"


class QueryState(str, Enum):
    LOCAL_HIT = "local_hit"
    LOCAL_MISS = "local_miss"
    SKIP = "skip"
    THROTTLED = "throttled"
    EXTERNAL_EMPTY = "external_empty"
    EXTERNAL_FAILED = "external_failed"
    PROMOTED = "promoted"
    TRANSIENT = "transient"


@dataclass
class SearchOutcome:
    """Result of one engine search."""

    query: str
    results: List[FragranceView] = field(default_factory=list)
    total: int = 0
    state: QueryState = QueryState.LOCAL_MISS
    query_class: Optional[QueryClass] = None

    @property
    def populated_from_api(self) -> bool:
        return self.state in (QueryState.PROMOTED, QueryState.TRANSIENT)

    @property
    def has_transient_results(self) -> bool:
        return any(view.is_transient for view in self.results)


class PopulationLog:
    """
    Recent external populations, keyed by query or brand.

    Entries older than the window no longer throttle but are kept for stats.
    """

    def __init__(self, window: timedelta = timedelta(hours=DEFAULT_THROTTLE_HOURS), clock: Optional[Callable[[], datetime]] = None):
        self.window = window
        self._clock = clock or timezone.now
        self._lock = threading.Lock()
        self._entries: Dict[str, datetime] = {}

    @staticmethod
    def _key(value: str) -> str:
        return (value or "").strip().lower()

    def record(self, value: str) -> None:
        key = self._key(value)
        if not key:
            return
        with self._lock:
            self._entries[key] = self._clock()

    def recently_populated(self, value: str) -> bool:
        key = self._key(value)
        with self._lock:
            populated_at = self._entries.get(key)
            if populated_at is None:
                return False
            return self._clock() - populated_at < self.window

    def recent(self, count: int = RECENT_POPULATIONS_SHOWN) -> List[Tuple[str, datetime]]:
        with self._lock:
            entries = sorted(self._entries.items(), key=lambda item: item[1], reverse=True)
        return entries[:count]

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


def classify_query(query: str) -> QueryClass:
    """
    Classify a query for external population.

    Args:
        query: Raw query string

    Returns:
        SKIP for queries under three characters, POPULAR when the query and
        a popular search term contain one another, NICHE otherwise
    """
    normalized = normalize(query)
    if len(normalized) < MIN_EXTERNAL_QUERY_LENGTH:
        return QueryClass.SKIP
    for term in POPULAR_SEARCH_TERMS:
        if term in normalized or normalized in term:
            return QueryClass.POPULAR
    return QueryClass.NICHE


class PopulationPolicyEngine:
    """
    Owns one search pipeline: local store, metadata client, remote index,
    usage budget (via the client) and population log.

    Usage:
        engine = PopulationPolicyEngine()
        outcome = engine.search("khamrah", {"concentration": "EDP"})
    """

    def __init__(
        self,
        local_store: Optional[LocalStoreAdapter] = None,
        metadata_client: Optional[PerfumeroClient] = None,
        remote_index: Optional[MeilisearchIndex] = None,
        population_log: Optional[PopulationLog] = None,
        budget_buffer: Optional[int] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self._clock = clock or timezone.now
        self.local_store = local_store or LocalStoreAdapter()
        self.metadata_client = metadata_client or PerfumeroClient()
        self.remote_index = remote_index or MeilisearchIndex(local_store=self.local_store)

        throttle_hours = getattr(settings, "POPULATION_THROTTLE_HOURS", DEFAULT_THROTTLE_HOURS)
        self.population_log = population_log or PopulationLog(
            window=timedelta(hours=throttle_hours), clock=self._clock
        )

        buffer = budget_buffer if budget_buffer is not None else getattr(
            settings, "POPULATION_BUDGET_BUFFER", DEFAULT_BUDGET_BUFFER
        )
        daily_limit = self.metadata_client.budget.daily_limit
        if buffer >= daily_limit:
            scaled = daily_limit // 10
            logger.warning(
                f"Budget buffer {buffer} is not below the daily limit {daily_limit}; "
                f"using {scaled} instead"
            )
            buffer = scaled
        self.budget_buffer = buffer

    # ------------------------------------------------------------------
    # Search
    # ------------------------------------------------------------------

    def search(self, query: Optional[str], filters=None, limit: int = 20, offset: int = 0) -> SearchOutcome:
        """
        Resolve a query through local store, budget policy and external API.

        Args:
            query: Raw query string
            filters: SearchFilters or a plain dict
            limit: Page size
            offset: Rows to skip

        Returns:
            SearchOutcome with results, total, final state and query class

        Raises:
            DatabaseError: If the local store fails
        """
        query = (query or "").strip()
        filters = SearchFilters.coerce(filters)

        # Hit/miss is decided on the full match count, not the requested page
        total = self.local_store.count(query, filters)
        if total:
            rows = self.local_store.search_local(query, filters, limit, offset)
            return self._local_outcome(query, rows, total)

        if query:
            variant_set = expand(query)
            total = self.local_store.count_variants(variant_set, filters)
            if total:
                rows = self.local_store.search_variants(variant_set, filters, limit, offset)
                return self._local_outcome(query, rows, total)

        query_class = classify_query(query)
        if query_class == QueryClass.SKIP:
            logger.debug(f"Query {query!r} too short for external population")
            return SearchOutcome(query=query, state=QueryState.SKIP, query_class=query_class)

        if not self._external_allowed(query):
            return SearchOutcome(query=query, state=QueryState.THROTTLED, query_class=query_class)

        return self._populate(query, query_class, limit, offset)

    def _local_outcome(self, query: str, rows: List[Fragrance], total: int) -> SearchOutcome:
        return SearchOutcome(
            query=query,
            results=[FragranceView.from_model(row) for row in rows],
            total=total,
            state=QueryState.LOCAL_HIT,
        )

    def _external_allowed(self, query: str) -> bool:
        if not self.metadata_client.is_available():
            logger.info(f"Metadata API unavailable (missing key or budget exhausted); skipping {query!r}")
            return False

        remaining = self.metadata_client.budget.remaining
        if remaining < self.budget_buffer:
            logger.info(f"Remaining API budget {remaining} below buffer {self.budget_buffer}; skipping {query!r}")
            return False

        if self.population_log.recently_populated(query):
            logger.info(f"Query {query!r} populated recently; not fetching again")
            return False

        return True

    def _populate(self, query: str, query_class: QueryClass, limit: int, offset: int) -> SearchOutcome:
        add_search_breadcrumb(f"External fetch for {query!r}", data={"query_class": query_class.value})

        try:
            items = self.metadata_client.search({"name": query, "limit": EXTERNAL_FETCH_LIMIT})
        except CatalogError as e:
            logger.warning(f"External fetch failed for {query!r}: {e}")
            capture_search_error(e, query=query, stage="external_fetch")
            return SearchOutcome(query=query, state=QueryState.EXTERNAL_FAILED, query_class=query_class)
        except Exception as e:
            logger.exception(f"Unexpected error fetching {query!r}: {e}")
            capture_search_error(e, query=query, stage="external_fetch")
            return SearchOutcome(query=query, state=QueryState.EXTERNAL_FAILED, query_class=query_class)

        self.population_log.record(query)

        candidates = self._parse_candidates(query, items)
        if not candidates:
            logger.info(f"No external results for {query!r}")
            return SearchOutcome(query=query, state=QueryState.EXTERNAL_EMPTY, query_class=query_class)

        should_promote = query_class == QueryClass.POPULAR or any(
            market_intelligence.passes_quality_gate(candidate) for candidate in candidates
        )

        if should_promote:
            views = self.promote_batch(candidates, query=query)
            state = QueryState.PROMOTED
        else:
            views = [FragranceView.from_candidate(candidate) for candidate in candidates]
            state = QueryState.TRANSIENT

        logger.info(f"Resolved {query!r} externally: {len(views)} results ({state.value})")
        return SearchOutcome(
            query=query,
            results=views[offset:offset + limit],
            total=len(views),
            state=state,
            query_class=query_class,
        )

    def _parse_candidates(self, query: str, items: List[Dict[str, Any]]) -> List[MetadataCandidate]:
        candidates = []
        for item in items:
            try:
                candidates.append(MetadataCandidate.from_api(item))
            except CatalogError as e:
                logger.warning(f"Skipping malformed external entry for {query!r}: {e}")
        return candidates

    # ------------------------------------------------------------------
    # Promotion
    # ------------------------------------------------------------------

    def promote_batch(self, candidates: List[MetadataCandidate], query: Optional[str] = None) -> List[FragranceView]:
        """
        Promote candidates one at a time.

        A failure on one candidate is logged and reported; the others still
        go through. Brands that were stored are recorded in the population log.
        """
        views = []
        for candidate in candidates:
            try:
                with transaction.atomic():
                    view = self._promote_candidate(candidate)
            except Exception as e:
                failure = PromotionFailure(candidate.name, candidate.brand, str(e))
                logger.error(str(failure))
                capture_search_error(
                    e,
                    query=query,
                    stage="promotion",
                    brand=candidate.brand,
                    external_id=candidate.external_id,
                )
                continue

            views.append(view)
            if not view.is_transient:
                self.population_log.record(candidate.brand)

        return views

    def _promote_candidate(self, candidate: MetadataCandidate) -> FragranceView:
        cleaned_name = market_intelligence.clean_api_name(candidate.name, candidate.brand)
        existing = self.local_store.find_existing(
            candidate.external_id, [candidate.name, cleaned_name], candidate.brand
        )

        if existing is not None:
            apply_enhancement(existing, candidate, self._clock())
            return FragranceView.from_model(existing)

        if not market_intelligence.passes_quality_gate(candidate):
            return FragranceView.from_candidate(candidate)

        fragrance = Fragrance(
            external_id=candidate.external_id,
            name=cleaned_name,
            brand=candidate.brand,
            year=candidate.year,
            concentration=candidate.concentration,
            top_notes=list(candidate.top_notes),
            middle_notes=list(candidate.middle_notes),
            base_notes=list(candidate.base_notes),
            community_rating=candidate.community_rating,
            popularity_score=candidate.popularity_score,
            data_source=DataSource.API_PROMOTED,
            data_quality=market_intelligence.calculate_data_quality(candidate),
            promotion_reason=market_intelligence.promotion_reason(candidate),
            promoted_at=self._clock(),
            has_redundant_name=market_intelligence.has_redundant_brand(candidate.name, candidate.brand),
            has_year_in_name=market_intelligence.has_year_in_name(candidate.name),
            has_concentration_in_name=market_intelligence.has_concentration_in_name(candidate.name),
        )
        fragrance.save()
        logger.info(
            f"Promoted {fragrance.name} by {fragrance.brand} "
            f"({fragrance.promotion_reason}, priority {fragrance.market_priority})"
        )
        return FragranceView.from_model(fragrance)

    # ------------------------------------------------------------------
    # Secondary operations
    # ------------------------------------------------------------------

    def index_search(self, query: str, options: Optional[SearchOptions] = None) -> Dict[str, Any]:
        """Full-text search through the remote index; falls back to the local store, never raises."""
        return self.remote_index.search(query, options)

    def autocomplete(self, prefix: str, limit: int = 10) -> List[str]:
        return self.remote_index.autocomplete(prefix, limit)

    def get_usage_stats(self) -> Dict[str, Any]:
        return self.metadata_client.get_usage_stats()

    def get_population_stats(self) -> Dict[str, Any]:
        """
        Population activity and catalog coverage.

        Returns:
            Dict with recent_populations, total_populations,
            api_usage_percentage, api_usage, database_totals and
            market_coverage_by_tier
        """
        usage = self.metadata_client.get_usage_stats()
        limit = usage["limit"] or 1
        return {
            "recent_populations": [
                {"key": key, "populated_at": populated_at.isoformat()}
                for key, populated_at in self.population_log.recent()
            ],
            "total_populations": len(self.population_log),
            "api_usage_percentage": round(usage["used"] / limit * 100, 1),
            "api_usage": usage,
            "database_totals": self.local_store.totals(),
            "market_coverage_by_tier": self.local_store.market_coverage(),
        }


_engine: Optional[PopulationPolicyEngine] = None
_engine_lock = threading.Lock()


def get_population_engine() -> PopulationPolicyEngine:
    """Process-wide engine used by the API views and tasks."""
    global _engine
    with _engine_lock:
        if _engine is None:
            _engine = PopulationPolicyEngine()
            _engine.remote_index.configure_index()
        return _engine


def reset_population_engine() -> None:
    global _engine
    with _engine_lock:
        _engine = None
