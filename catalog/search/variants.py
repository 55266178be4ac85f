"""
Query variant expansion and candidate confidence scoring.

A raw query is expanded into four prioritized buckets of alternative search
strings (exact, nickname, brand, fuzzy). The combined list is what the local
store's variant search ORs together.
"""

import logging
from dataclasses import dataclass, field
from itertools import chain
from typing import List, Optional

from django.db.models import Q

from catalog.search.normalization import (
    match_brand_abbreviations,
    match_nicknames,
    normalize,
    similarity,
    typo_candidates,
)

logger = logging.getLogger(__name__)

MAX_VARIANTS = 10

# Confidence tiers
CONFIDENCE_EXACT = 100
CONFIDENCE_NICKNAME = 95
CONFIDENCE_BRAND = 90
CONFIDENCE_SUBSTRING = 80
CONFIDENCE_FUZZY_MAX = 70


def _dedupe(values) -> List[str]:
    seen = set()
    result = []
    for value in values:
        if value and value not in seen:
            seen.add(value)
            result.append(value)
    return result


@dataclass
class SearchVariantSet:
    """Alternative search strings for one query, grouped by priority."""

    original: str
    normalized: str
    exact: List[str] = field(default_factory=list)
    nickname: List[str] = field(default_factory=list)
    brand: List[str] = field(default_factory=list)
    fuzzy: List[str] = field(default_factory=list)

    def combined(self, limit: int = MAX_VARIANTS) -> List[str]:
        """
        Flatten the buckets in priority order, deduplicated case-insensitively.

        Args:
            limit: Maximum number of variants returned

        Returns:
            At most `limit` strings; exact variants always come first
        """
        seen = set()
        result = []
        for variant in chain(self.exact, self.nickname, self.brand, self.fuzzy):
            key = variant.lower()
            if key in seen:
                continue
            seen.add(key)
            result.append(variant)
            if len(result) >= limit:
                break
        return result

    def __len__(self) -> int:
        return len(self.combined())


def expand(raw_query: Optional[str]) -> SearchVariantSet:
    """
    Build the variant set for a raw query.

    Nickname expansion is also re-run on "<brand> <query>" for every brand
    the query abbreviates, so "ysl la nuit" reaches the product name.
    """
    original = raw_query or ""
    normalized = normalize(original)

    if not normalized:
        return SearchVariantSet(original=original, normalized="")

    exact = _dedupe([original.lower().strip(), normalized])
    brand = match_brand_abbreviations(normalized)

    nickname = list(match_nicknames(normalized))
    for brand_name in brand:
        nickname.extend(match_nicknames(normalize(f"{brand_name} {normalized}")))

    variant_set = SearchVariantSet(
        original=original,
        normalized=normalized,
        exact=exact,
        nickname=_dedupe(nickname),
        brand=brand,
        fuzzy=typo_candidates(normalized),
    )
    logger.debug(f"Expanded {original!r} into {variant_set.combined()}")
    return variant_set


def build_variant_q(variant_set: SearchVariantSet) -> Q:
    """OR of name/brand containment over the capped variant list."""
    predicate = Q()
    for variant in variant_set.combined():
        predicate |= Q(name__icontains=variant) | Q(brand__icontains=variant)
    return predicate


def confidence(query: str, name: Optional[str], brand: Optional[str]) -> int:
    """
    Score how well a candidate (name, brand) matches a raw query.

    Tiers: exact name/brand 100, nickname hit 95, brand abbreviation hit 90,
    substring either way 80, otherwise edit-distance similarity scaled to 70.

    Args:
        query: Raw query string
        name: Candidate product name
        brand: Candidate brand name

    Returns:
        Integer in [0, 100]
    """
    normalized = normalize(query)
    if not normalized:
        return 0

    raw = query.lower().strip()
    name_lower = (name or "").lower().strip()
    brand_lower = (brand or "").lower().strip()
    name_norm = normalize(name)
    brand_norm = normalize(brand)

    for candidate, candidate_norm in ((name_lower, name_norm), (brand_lower, brand_norm)):
        if candidate and (candidate in (raw, normalized) or candidate_norm == normalized):
            return CONFIDENCE_EXACT

    for canonical in match_nicknames(normalized):
        if name_norm and normalize(canonical) in name_norm:
            return CONFIDENCE_NICKNAME

    for canonical in match_brand_abbreviations(normalized):
        if brand_norm and normalize(canonical) in brand_norm:
            return CONFIDENCE_BRAND

    for candidate_norm in (name_norm, brand_norm):
        if candidate_norm and (normalized in candidate_norm or candidate_norm in normalized):
            return CONFIDENCE_SUBSTRING

    best = max(similarity(normalized, name_norm), similarity(normalized, brand_norm))
    return round(best * CONFIDENCE_FUZZY_MAX)
