"""
Local Store Adapter - filtered, ranked queries against the Fragrance table.

search_local() and count() build their predicate with the same
build_search_q(), so a count always describes the rows a search pages over.
Database errors are not caught here.
"""

import logging
from dataclasses import dataclass, fields
from typing import Any, Dict, List, Optional, Sequence

from django.db.models import Count, F, Q
from django.utils import timezone

from catalog.models import DataSource, Fragrance
from catalog.search.lexicon import BRAND_TIERS
from catalog.search.variants import SearchVariantSet, build_variant_q

logger = logging.getLogger(__name__)

DEFAULT_LIMIT = 100

# Rank: market priority, community rating, stored relevance; pk keeps pages stable
DEFAULT_ORDERING = (
    F("market_priority").desc(nulls_last=True),
    F("community_rating").desc(nulls_last=True),
    F("relevance_score").desc(nulls_last=True),
    F("id").asc(),
)

# Filters without a backing column are accepted and ignored
UNSUPPORTED_FILTERS = ("season", "occasion", "mood")


def _coerce_int(value: Any) -> Optional[int]:
    if value is None or value == "":
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def _coerce_bool(value: Any) -> Optional[bool]:
    if value is None or value == "":
        return None
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in ("true", "1", "yes"):
            return True
        if lowered in ("false", "0", "no"):
            return False
        return None
    return bool(value)


def _coerce_str(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


@dataclass(frozen=True)
class SearchFilters:
    """Closed set of search filters. Unknown keys are dropped by from_dict()."""

    brand: Optional[str] = None
    concentration: Optional[str] = None
    year_from: Optional[int] = None
    year_to: Optional[int] = None
    verified: Optional[bool] = None
    season: Optional[str] = None
    occasion: Optional[str] = None
    mood: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "SearchFilters":
        """
        Build filters from request data.

        Accepts snake_case and camelCase year keys, coerces types and ignores
        anything it does not recognise.
        """
        if not data:
            return cls()

        aliases = {"yearFrom": "year_from", "yearTo": "year_to"}
        values = {}
        for key, value in data.items():
            values[aliases.get(key, key)] = value

        return cls(
            brand=_coerce_str(values.get("brand")),
            concentration=_coerce_str(values.get("concentration")),
            year_from=_coerce_int(values.get("year_from")),
            year_to=_coerce_int(values.get("year_to")),
            verified=_coerce_bool(values.get("verified")),
            season=_coerce_str(values.get("season")),
            occasion=_coerce_str(values.get("occasion")),
            mood=_coerce_str(values.get("mood")),
        )

    @classmethod
    def coerce(cls, filters) -> "SearchFilters":
        if filters is None:
            return cls()
        if isinstance(filters, cls):
            return filters
        return cls.from_dict(filters)

    def to_dict(self) -> Dict[str, Any]:
        return {
            f.name: getattr(self, f.name)
            for f in fields(self)
            if getattr(self, f.name) is not None
        }

    def is_empty(self) -> bool:
        return not self.to_dict()


def build_filter_q(filters: SearchFilters) -> Q:
    predicate = Q()
    if filters.brand:
        predicate &= Q(brand__icontains=filters.brand)
    if filters.concentration:
        predicate &= Q(concentration__iexact=filters.concentration)
    if filters.year_from is not None:
        predicate &= Q(year__gte=filters.year_from)
    if filters.year_to is not None:
        predicate &= Q(year__lte=filters.year_to)
    if filters.verified is not None:
        predicate &= Q(verified=filters.verified)

    for name in UNSUPPORTED_FILTERS:
        if getattr(filters, name):
            logger.debug(f"Ignoring {name} filter: not stored on fragrances")

    return predicate


def build_query_q(query: Optional[str]) -> Q:
    """Case-insensitive containment on name, brand or any note."""
    query = (query or "").strip()
    if not query:
        return Q()
    return (
        Q(name__icontains=query)
        | Q(brand__icontains=query)
        | Q(notes_text__icontains=query.lower())
    )


def build_search_q(query: Optional[str], filters: Optional[SearchFilters] = None) -> Q:
    return build_query_q(query) & build_filter_q(SearchFilters.coerce(filters))


class LocalStoreAdapter:
    """Query front for the Fragrance table."""

    def __init__(self, queryset=None):
        self._queryset = queryset

    def get_queryset(self):
        if self._queryset is not None:
            return self._queryset.all()
        return Fragrance.objects.all()

    def _page(self, predicate: Q, limit: int, offset: int, ordering: Optional[Sequence] = None) -> List[Fragrance]:
        limit = max(0, int(limit))
        offset = max(0, int(offset))
        queryset = self.get_queryset().filter(predicate).order_by(*(ordering or DEFAULT_ORDERING))
        return list(queryset[offset:offset + limit])

    def search_local(
        self,
        query: Optional[str],
        filters: Optional[SearchFilters] = None,
        limit: int = DEFAULT_LIMIT,
        offset: int = 0,
        ordering: Optional[Sequence] = None,
    ) -> List[Fragrance]:
        """
        Ranked page of fragrances whose name, brand or notes contain the query.

        Args:
            query: Raw query; empty matches everything the filters allow
            filters: SearchFilters or a plain dict
            limit: Page size
            offset: Rows to skip
            ordering: Optional override of the default rank order

        Returns:
            List of Fragrance rows
        """
        return self._page(build_search_q(query, filters), limit, offset, ordering)

    def count(self, query: Optional[str], filters: Optional[SearchFilters] = None) -> int:
        return self.get_queryset().filter(build_search_q(query, filters)).count()

    def _variant_q(self, variant_set: SearchVariantSet, filters: Optional[SearchFilters]) -> Q:
        return build_variant_q(variant_set) & build_filter_q(SearchFilters.coerce(filters))

    def search_variants(
        self,
        variant_set: SearchVariantSet,
        filters: Optional[SearchFilters] = None,
        limit: int = DEFAULT_LIMIT,
        offset: int = 0,
    ) -> List[Fragrance]:
        """Ranked page of fragrances matching any variant of the query."""
        if not variant_set.combined():
            return []
        return self._page(self._variant_q(variant_set, filters), limit, offset)

    def count_variants(self, variant_set: SearchVariantSet, filters: Optional[SearchFilters] = None) -> int:
        if not variant_set.combined():
            return 0
        return self.get_queryset().filter(self._variant_q(variant_set, filters)).count()

    def find_existing(
        self,
        external_id: Optional[str],
        names: Sequence[str],
        brand: str,
    ) -> Optional[Fragrance]:
        """
        Locate a stored record for an external candidate.

        The external id wins; otherwise any of the given names is matched
        case-insensitively together with the brand.
        """
        queryset = self.get_queryset().order_by("id")
        if external_id:
            match = queryset.filter(external_id=external_id).first()
            if match is not None:
                return match

        name_q = Q()
        for name in names:
            if name:
                name_q |= Q(name__iexact=name)
        if not name_q:
            return None
        return queryset.filter(name_q, brand__iexact=brand).first()

    def autocomplete_names(self, prefix: str, limit: int = 10) -> List[str]:
        """Distinct names containing the prefix, most relevant first."""
        rows = (
            self.get_queryset()
            .filter(Q(name__icontains=prefix) | Q(brand__icontains=prefix))
            .order_by(*DEFAULT_ORDERING)
            .values_list("name", flat=True)[: limit * 3]
        )
        names = []
        for name in rows:
            if name not in names:
                names.append(name)
            if len(names) >= limit:
                break
        return names

    def totals(self) -> Dict[str, Any]:
        """Record counts: overall, promoted today and per data source."""
        queryset = self.get_queryset()
        start_of_day = timezone.now().replace(hour=0, minute=0, second=0, microsecond=0)
        by_source = {
            row["data_source"]: row["total"]
            for row in queryset.order_by().values("data_source").annotate(total=Count("id"))
        }
        return {
            "total": queryset.count(),
            "promoted_today": queryset.filter(
                data_source=DataSource.API_PROMOTED,
                promoted_at__gte=start_of_day,
            ).count(),
            "by_source": by_source,
        }

    def market_coverage(self) -> Dict[str, Dict[str, Any]]:
        """Per-tier count of stored fragrances and the brands they cover."""
        queryset = self.get_queryset()
        coverage = {}
        for tier, _weight, brands in BRAND_TIERS:
            brand_q = Q()
            for brand in brands:
                brand_q |= Q(brand__icontains=brand)
            count = queryset.filter(brand_q).count()
            coverage[tier] = {
                "brands": len(brands),
                "fragrances": count,
                "avg_per_brand": round(count / len(brands), 1) if brands else 0,
            }
        return coverage

    def records_for_enhancement(self, batch_size: int) -> List[Fragrance]:
        """Popular records never matched to the metadata API, least recently tried first."""
        return list(
            self.get_queryset()
            .filter(popularity_score__gt=5, external_id__isnull=True)
            .order_by(
                F("last_enhanced").asc(nulls_first=True),
                F("popularity_score").desc(nulls_last=True),
                "id",
            )[:batch_size]
        )
