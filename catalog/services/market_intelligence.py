"""
Market intelligence rules for fragrance records.

Pure functions deriving brand priority, trending flag, target demographic,
cleaned display names, data quality and promotion decisions. Brand matching is
case-insensitive, bidirectional substring containment; the first matching
tier or segment wins.

Candidates passed to these functions only need the attributes
name, brand, community_rating, popularity_score, top_notes, middle_notes and
base_notes (MetadataCandidate and the Fragrance model both qualify).
"""

import re
from typing import Optional

from catalog.search.lexicon import (
    BRAND_TIERS,
    CONCENTRATION_TERMS,
    DEFAULT_MARKET_PRIORITY,
    DEMOGRAPHIC_BRANDS,
    TRENDING_BRANDS,
)

# Quality gate thresholds
GATE_MIN_RATING = 4.0
GATE_MIN_PRIORITY = 0.7
GATE_MIN_POPULARITY = 50

# Promotion reason thresholds
REASON_TIER1_PRIORITY = 0.8
REASON_HIGH_RATING = 4.5
REASON_POPULARITY = 100

_YEAR_PATTERN = re.compile(r"\s+\b(19|20)\d{2}\b")
_CONCENTRATION_PATTERN = re.compile(
    r"\s+\b(" + "|".join(re.escape(term) for term in CONCENTRATION_TERMS) + r")\b",
    re.IGNORECASE,
)


def _brand_matches(brand: str, candidates) -> bool:
    brand_lower = brand.lower()
    for candidate in candidates:
        candidate_lower = candidate.lower()
        if candidate_lower in brand_lower or brand_lower in candidate_lower:
            return True
    return False


def brand_tier(brand: Optional[str]) -> Optional[str]:
    """Name of the first tier matching the brand, or None."""
    if not brand or not brand.strip():
        return None
    for tier, _weight, brands in BRAND_TIERS:
        if _brand_matches(brand.strip(), brands):
            return tier
    return None


def market_priority(brand: Optional[str]) -> float:
    """
    Market priority weight for a brand.

    Tier weights: tier1 1.0, tier2 0.8, tier3 0.6, tier4 0.7; anything else
    (including an empty brand) gets 0.3.
    """
    if not brand or not brand.strip():
        return DEFAULT_MARKET_PRIORITY
    for _tier, weight, brands in BRAND_TIERS:
        if _brand_matches(brand.strip(), brands):
            return weight
    return DEFAULT_MARKET_PRIORITY


def is_trending_brand(brand: Optional[str]) -> bool:
    if not brand or not brand.strip():
        return False
    return _brand_matches(brand.strip(), TRENDING_BRANDS)


def target_demographic(brand: Optional[str]) -> str:
    if brand and brand.strip():
        for segment, brands in DEMOGRAPHIC_BRANDS:
            if _brand_matches(brand.strip(), brands):
                return segment
    return "mainstream"


def has_redundant_brand(name: Optional[str], brand: Optional[str]) -> bool:
    """True when the name starts or ends with the brand."""
    if not name or not brand or not brand.strip():
        return False
    name_lower = name.strip().lower()
    brand_lower = brand.strip().lower()
    if name_lower == brand_lower:
        return False
    return name_lower.startswith(brand_lower + " ") or name_lower.startswith(brand_lower + "-") \
        or name_lower.endswith(" " + brand_lower)


def has_year_in_name(name: Optional[str]) -> bool:
    return bool(name and _YEAR_PATTERN.search(name))


def has_concentration_in_name(name: Optional[str]) -> bool:
    return bool(name and _CONCENTRATION_PATTERN.search(name))


def clean_api_name(name: Optional[str], brand: Optional[str]) -> str:
    """
    Strip redundant brand, release year and concentration from an API name.

    "Dior - Sauvage 2015 EDT" by Dior becomes "Sauvage". A name that would be
    cleaned down to nothing is returned trimmed but otherwise unchanged.

    Args:
        name: Product name as returned by the metadata API
        brand: Brand of the product

    Returns:
        Cleaned name
    """
    original = (name or "").strip()
    escaped = re.escape(brand.strip()) if brand and brand.strip() else None

    # Each pass can expose a new brand suffix ("Sauvage Dior 2015"), so run to a fixed point
    cleaned = None
    current = original
    while current != cleaned:
        cleaned = current
        current = _YEAR_PATTERN.sub("", current)
        current = _CONCENTRATION_PATTERN.sub("", current)
        current = re.sub(r"\s+", " ", current).strip()
        if escaped:
            current = re.sub(rf"^{escaped}(\s*-\s*|\s+)", "", current, flags=re.IGNORECASE)
            current = re.sub(rf"\s+(by\s+)?{escaped}$", "", current, flags=re.IGNORECASE)
            current = current.strip()

    return cleaned or original


def has_complete_notes(candidate) -> bool:
    return bool(candidate.top_notes) and bool(candidate.middle_notes) and bool(candidate.base_notes)


def passes_quality_gate(candidate) -> bool:
    """
    Decide whether an external candidate is good enough to store locally.

    Any one of: rating >= 4.0, brand priority >= 0.7, all three note tiers
    present, popularity > 50.
    """
    rating = candidate.community_rating
    popularity = candidate.popularity_score
    return (
        (rating is not None and rating >= GATE_MIN_RATING)
        or market_priority(candidate.brand) >= GATE_MIN_PRIORITY
        or has_complete_notes(candidate)
        or (popularity is not None and popularity > GATE_MIN_POPULARITY)
    )


def promotion_reason(candidate) -> str:
    """First matching reason, in order: tier1_brand, high_rating, popular, trending, quality_profile."""
    rating = candidate.community_rating
    popularity = candidate.popularity_score
    if market_priority(candidate.brand) >= REASON_TIER1_PRIORITY:
        return "tier1_brand"
    if rating is not None and rating >= REASON_HIGH_RATING:
        return "high_rating"
    if popularity is not None and popularity > REASON_POPULARITY:
        return "popular"
    if is_trending_brand(candidate.brand):
        return "trending"
    return "quality_profile"


def calculate_data_quality(candidate) -> float:
    """Base 0.5, plus 0.1 each for rating >= 4, each note tier present and a top brand; capped at 1.0."""
    score = 0.5
    rating = candidate.community_rating
    if rating is not None and rating >= 4:
        score += 0.1
    for notes in (candidate.top_notes, candidate.middle_notes, candidate.base_notes):
        if notes:
            score += 0.1
    if market_priority(candidate.brand) >= 0.8:
        score += 0.1
    return round(min(score, 1.0), 2)
