"""
Remote Index Adapter - Meilisearch full-text search with local fallback.

The remote index serves typo-tolerant, synonym-aware search and
autocomplete. Any failure (not configured, not ready, network error,
unexpected response) falls back to the Local Store Adapter; search() and
autocomplete() never raise.

Responses have the shape:
    {"results": [...], "total": int, "duration_ms": int,
     "cached": bool, "source": "meilisearch" | "local"}
"""

import logging
import time
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional

import httpx
from django.conf import settings

from catalog.exceptions import MalformedResponse, RemoteUnavailable
from catalog.search.cache import AUTOCOMPLETE_TTL, SEARCH_TTL, ResultCache
from catalog.search.lexicon import INDEX_SYNONYMS
from catalog.search.local_store import LocalStoreAdapter, SearchFilters

logger = logging.getLogger(__name__)

SOURCE_REMOTE = "meilisearch"
SOURCE_LOCAL = "local"

MIN_AUTOCOMPLETE_LENGTH = 2

# Public sort key -> index attribute
SORT_FIELDS = {
    "name": "name",
    "brand": "brand",
    "year": "year",
    "rating": "community_rating",
    "popularity": "popularity_score",
    "relevance": "relevance_score",
}

# Public sort key -> local column; relevance uses the default rank order
LOCAL_SORT_FIELDS = {
    "name": "name",
    "brand": "brand",
    "year": "year",
    "rating": "community_rating",
    "popularity": "popularity_score",
}

INDEX_SETTINGS = {
    "searchableAttributes": ["name", "brand", "notes", "concentration"],
    "filterableAttributes": [
        "brand", "concentration", "year", "verified", "data_source",
        "season", "occasion", "mood",
    ],
    "sortableAttributes": list(SORT_FIELDS.values()) + ["market_priority"],
    "rankingRules": [
        "words", "typo", "proximity", "attribute", "sort", "exactness",
        "market_priority:desc",
    ],
    "synonyms": INDEX_SYNONYMS,
}


@dataclass
class SearchOptions:
    filters: SearchFilters = field(default_factory=SearchFilters)
    limit: int = 20
    offset: int = 0
    sort_by: str = "relevance"
    sort_order: str = "desc"

    def __post_init__(self):
        self.filters = SearchFilters.coerce(self.filters)
        if self.sort_by not in SORT_FIELDS:
            self.sort_by = "relevance"
        if self.sort_order not in ("asc", "desc"):
            self.sort_order = "desc"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "filters": self.filters.to_dict(),
            "limit": self.limit,
            "offset": self.offset,
            "sort_by": self.sort_by,
            "sort_order": self.sort_order,
        }


def _quote(value: str) -> str:
    escaped = value.replace("\\", "\\\\").replace('"', '\\"')
    return f'"{escaped}"'


def build_filter_expressions(filters: SearchFilters) -> List[str]:
    """Translate SearchFilters into Meilisearch filter expressions (ANDed)."""
    expressions = []
    if filters.brand:
        expressions.append(f"brand = {_quote(filters.brand)}")
    if filters.concentration:
        expressions.append(f"concentration = {_quote(filters.concentration)}")
    if filters.year_from is not None:
        expressions.append(f"year >= {filters.year_from}")
    if filters.year_to is not None:
        expressions.append(f"year <= {filters.year_to}")
    if filters.verified is not None:
        expressions.append(f"verified = {'true' if filters.verified else 'false'}")
    for name in ("season", "occasion", "mood"):
        value = getattr(filters, name)
        if value:
            expressions.append(f"{name} = {_quote(value)}")
    return expressions


def classify_match(query: str, name: Optional[str], brand: Optional[str]):
    """
    Match type and score for a locally found row.

    Returns:
        Tuple (match_type, score): exact 1.0, prefix 0.9, substring 0.7,
        anything else 0.5
    """
    q = (query or "").strip().lower()
    name_lower = (name or "").lower()
    brand_lower = (brand or "").lower()

    if q and q in (name_lower, brand_lower):
        return "exact", 1.0
    if q and (name_lower.startswith(q) or brand_lower.startswith(q)):
        return "partial", 0.9
    if q and (q in name_lower or q in brand_lower):
        return "partial", 0.7
    return "fuzzy", 0.5


def fragrance_document(fragrance) -> Dict[str, Any]:
    """Index document for one Fragrance row."""
    return {
        "id": fragrance.pk,
        "external_id": fragrance.external_id,
        "name": fragrance.name,
        "brand": fragrance.brand,
        "year": fragrance.year,
        "concentration": fragrance.concentration,
        "notes": fragrance.all_notes,
        "community_rating": fragrance.community_rating,
        "popularity_score": fragrance.popularity_score,
        "relevance_score": fragrance.relevance_score,
        "market_priority": fragrance.market_priority,
        "verified": fragrance.verified,
        "data_source": str(fragrance.data_source),
    }


class MeilisearchIndex:
    """
    Remote search index backed by the Meilisearch HTTP API.

    Usage:
        index = MeilisearchIndex()
        index.configure_index()
        response = index.search("sauvage", SearchOptions(limit=10))
    """

    def __init__(
        self,
        url: Optional[str] = None,
        api_key: Optional[str] = None,
        index_name: Optional[str] = None,
        cache: Optional[ResultCache] = None,
        local_store: Optional[LocalStoreAdapter] = None,
        client: Optional[httpx.Client] = None,
        timeout: float = 5.0,
    ):
        self.url = url if url is not None else getattr(settings, "MEILISEARCH_URL", "")
        self.api_key = api_key if api_key is not None else getattr(settings, "MEILISEARCH_API_KEY", "")
        self.index_name = index_name or getattr(settings, "MEILISEARCH_INDEX", "fragrances")
        self.cache = cache or ResultCache()
        self.local_store = local_store or LocalStoreAdapter()
        self.ready = False

        if client is not None:
            self._client = client
        elif self.url:
            headers = {"Authorization": f"Bearer {self.api_key}"} if self.api_key else {}
            self._client = httpx.Client(base_url=self.url, headers=headers, timeout=timeout)
        else:
            self._client = None

    @property
    def is_configured(self) -> bool:
        return self._client is not None

    def _request(self, method: str, path: str, **kwargs) -> Any:
        if self._client is None:
            raise RemoteUnavailable("Search index is not configured")
        try:
            response = self._client.request(method, path, **kwargs)
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise RemoteUnavailable(
                f"Search index returned HTTP {e.response.status_code}",
                status_code=e.response.status_code,
            ) from e
        except (httpx.HTTPError, httpx.InvalidURL, httpx.StreamError) as e:
            raise RemoteUnavailable(f"Search index request failed: {e}") from e

        try:
            return response.json()
        except ValueError as e:
            raise MalformedResponse("Search index returned a non-JSON body") from e

    def configure_index(self) -> bool:
        """
        Push index settings (attributes, ranking rules, synonyms).

        Marks the adapter ready on success. Failures are logged and leave the
        adapter in fallback mode.

        Returns:
            True if the index is ready for queries
        """
        if not self.is_configured:
            logger.info("Search index not configured; using local search only")
            self.ready = False
            return False

        try:
            self._request("GET", "/health")
            self._request("PATCH", f"/indexes/{self.index_name}/settings", json=INDEX_SETTINGS)
        except RemoteUnavailable as e:
            logger.warning(f"Search index initialisation failed: {e}")
            self.ready = False
            return False

        self.ready = True
        logger.info(f"Search index '{self.index_name}' configured")
        return True

    def search(self, query: str, options: Optional[SearchOptions] = None) -> Dict[str, Any]:
        """
        Full-text search with caching and local fallback.

        Args:
            query: Raw query string
            options: SearchOptions (filters, paging, sort)

        Returns:
            Response dict; never raises
        """
        options = options or SearchOptions()
        key = self.cache.make_key("search", query, options.to_dict())

        cached = self.cache.get(key)
        if cached is not None:
            return {**cached, "cached": True}

        start = time.monotonic()
        try:
            response = self._search_index(query, options, start)
        except RemoteUnavailable as e:
            logger.warning(f"Search index unavailable, falling back to local search: {e}")
            return self._fallback_search(query, options, start)
        except Exception as e:
            logger.exception(f"Unexpected search index error, falling back to local search: {e}")
            return self._fallback_search(query, options, start)

        self.cache.set(key, response, SEARCH_TTL)
        return response

    def _search_index(self, query: str, options: SearchOptions, start: float) -> Dict[str, Any]:
        if not self.ready:
            raise RemoteUnavailable("Search index is not ready")

        body = {
            "q": query,
            "limit": options.limit,
            "offset": options.offset,
            "sort": [f"{SORT_FIELDS[options.sort_by]}:{options.sort_order}"],
            "showRankingScore": True,
        }
        expressions = build_filter_expressions(options.filters)
        if expressions:
            body["filter"] = expressions

        payload = self._request("POST", f"/indexes/{self.index_name}/search", json=body)
        if not isinstance(payload, dict) or not isinstance(payload.get("hits"), list):
            raise MalformedResponse("Search index response has no hits list")

        try:
            results = [self._remote_hit(query, hit) for hit in payload["hits"]]
        except (KeyError, TypeError, AttributeError) as e:
            raise MalformedResponse(f"Unexpected hit shape: {e}") from e

        total = payload.get("estimatedTotalHits", payload.get("totalHits", len(results)))
        return {
            "results": results,
            "total": total,
            "duration_ms": int((time.monotonic() - start) * 1000),
            "cached": False,
            "source": SOURCE_REMOTE,
        }

    def _remote_hit(self, query: str, hit: Dict[str, Any]) -> Dict[str, Any]:
        match_type, _score = classify_match(query, hit["name"], hit.get("brand"))
        return {
            "id": hit["id"],
            "name": hit["name"],
            "brand": hit.get("brand"),
            "year": hit.get("year"),
            "concentration": hit.get("concentration"),
            "community_rating": hit.get("community_rating"),
            "popularity_score": hit.get("popularity_score"),
            "verified": hit.get("verified", False),
            "score": hit.get("_rankingScore", 0.0),
            "match_type": match_type,
        }

    def _fallback_search(self, query: str, options: SearchOptions, start: float) -> Dict[str, Any]:
        ordering = None
        column = LOCAL_SORT_FIELDS.get(options.sort_by)
        if column:
            ordering = [f"-{column}" if options.sort_order == "desc" else column, "id"]

        try:
            rows = self.local_store.search_local(
                query, options.filters, options.limit, options.offset, ordering=ordering
            )
            total = self.local_store.count(query, options.filters)
        except Exception as e:
            logger.error(f"Local fallback search failed for {query!r}: {e}")
            rows, total = [], 0

        results = []
        for row in rows:
            match_type, score = classify_match(query, row.name, row.brand)
            results.append({
                "id": row.pk,
                "name": row.name,
                "brand": row.brand,
                "year": row.year,
                "concentration": row.concentration,
                "community_rating": row.community_rating,
                "popularity_score": row.popularity_score,
                "verified": row.verified,
                "score": score,
                "match_type": match_type,
            })

        return {
            "results": results,
            "total": total,
            "duration_ms": int((time.monotonic() - start) * 1000),
            "cached": False,
            "source": SOURCE_LOCAL,
        }

    def autocomplete(self, prefix: str, limit: int = 10) -> List[str]:
        """
        Name suggestions for a prefix of at least two characters.

        Cached per (prefix, limit); falls back to local name containment.
        """
        prefix = (prefix or "").strip()
        if len(prefix) < MIN_AUTOCOMPLETE_LENGTH:
            return []

        key = self.cache.make_key("autocomplete", prefix, {"limit": limit})
        cached = self.cache.get(key)
        if cached is not None:
            return cached

        try:
            names = self._autocomplete_index(prefix, limit)
        except Exception as e:
            if isinstance(e, RemoteUnavailable):
                logger.debug(f"Autocomplete falling back to local store: {e}")
            else:
                logger.exception(f"Unexpected autocomplete error, falling back to local store: {e}")
            try:
                names = self.local_store.autocomplete_names(prefix, limit)
            except Exception as db_error:
                logger.error(f"Local autocomplete failed for {prefix!r}: {db_error}")
                return []

        names = names[:limit]
        self.cache.set(key, names, AUTOCOMPLETE_TTL)
        return names

    def _autocomplete_index(self, prefix: str, limit: int) -> List[str]:
        if not self.ready:
            raise RemoteUnavailable("Search index is not ready")

        payload = self._request(
            "POST",
            f"/indexes/{self.index_name}/search",
            json={"q": prefix, "limit": limit, "attributesToRetrieve": ["name"]},
        )
        hits = payload.get("hits") if isinstance(payload, dict) else None
        if not isinstance(hits, list):
            raise MalformedResponse("Autocomplete response has no hits list")

        names = []
        for hit in hits:
            name = hit.get("name") if isinstance(hit, dict) else None
            if name and name not in names:
                names.append(name)
        return names

    def index_records(self, records: Iterable) -> int:
        """
        Add or replace documents for the given Fragrance rows.

        Returns:
            Number of documents sent

        Raises:
            RemoteUnavailable: If the index rejects the batch
        """
        documents = [fragrance_document(record) for record in records]
        if not documents:
            return 0
        self._request(
            "POST",
            f"/indexes/{self.index_name}/documents",
            params={"primaryKey": "id"},
            json=documents,
        )
        return len(documents)

    def sync_all(self, batch_size: int = 500) -> Dict[str, int]:
        """
        Configure the index and push every local record in batches.

        Returns:
            Counts of documents indexed and batches sent

        Raises:
            RemoteUnavailable: If the index cannot be configured or rejects a batch
        """
        if not self.ready and not self.configure_index():
            raise RemoteUnavailable("Search index could not be configured")

        queryset = self.local_store.get_queryset().order_by("id")
        indexed = 0
        batches = 0
        batch = []
        for record in queryset.iterator(chunk_size=batch_size):
            batch.append(record)
            if len(batch) >= batch_size:
                indexed += self.index_records(batch)
                batches += 1
                batch = []
        if batch:
            indexed += self.index_records(batch)
            batches += 1

        logger.info(f"Indexed {indexed} fragrances in {batches} batches")
        return {"indexed": indexed, "batches": batches}
