"""
FragranceView - the projection every search path returns.

Local rows and transient external candidates share this shape so callers
never need to know which tier answered.
"""

from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Optional

from catalog.models import DataSource
from catalog.services import market_intelligence


@dataclass
class FragranceView:
    """Read-only view of a fragrance, stored or transient."""

    id: Optional[int]
    external_id: Optional[str]
    name: str
    brand: str
    year: Optional[int] = None
    concentration: Optional[str] = None
    top_notes: List[str] = field(default_factory=list)
    middle_notes: List[str] = field(default_factory=list)
    base_notes: List[str] = field(default_factory=list)
    community_rating: Optional[float] = None
    popularity_score: Optional[float] = None
    market_priority: float = 0.3
    trending: bool = False
    target_demographic: str = "mainstream"
    data_quality: Optional[float] = None
    verified: bool = False
    source: str = DataSource.NATIVE_IMPORT.value
    is_transient: bool = False

    @classmethod
    def from_model(cls, fragrance) -> "FragranceView":
        return cls(
            id=fragrance.pk,
            external_id=fragrance.external_id,
            name=fragrance.name,
            brand=fragrance.brand,
            year=fragrance.year,
            concentration=fragrance.concentration,
            top_notes=list(fragrance.top_notes or []),
            middle_notes=list(fragrance.middle_notes or []),
            base_notes=list(fragrance.base_notes or []),
            community_rating=fragrance.community_rating,
            popularity_score=fragrance.popularity_score,
            market_priority=fragrance.market_priority,
            trending=fragrance.trending,
            target_demographic=fragrance.target_demographic,
            data_quality=fragrance.data_quality,
            verified=fragrance.verified,
            source=str(fragrance.data_source),
            is_transient=False,
        )

    @classmethod
    def from_candidate(cls, candidate) -> "FragranceView":
        """Transient view of an external candidate that was not stored."""
        return cls(
            id=None,
            external_id=candidate.external_id,
            name=market_intelligence.clean_api_name(candidate.name, candidate.brand),
            brand=candidate.brand,
            year=candidate.year,
            concentration=candidate.concentration,
            top_notes=list(candidate.top_notes),
            middle_notes=list(candidate.middle_notes),
            base_notes=list(candidate.base_notes),
            community_rating=candidate.community_rating,
            popularity_score=candidate.popularity_score,
            market_priority=market_intelligence.market_priority(candidate.brand),
            trending=market_intelligence.is_trending_brand(candidate.brand),
            target_demographic=market_intelligence.target_demographic(candidate.brand),
            data_quality=market_intelligence.calculate_data_quality(candidate),
            source=DataSource.API_ONLY_TRANSIENT.value,
            is_transient=True,
        )

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["source"] = str(self.source)
        return data
