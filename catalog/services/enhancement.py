"""
Enhancement of stored fragrances from the metadata API.

- apply_enhancement(): fill the gaps of one stored record from a candidate
- enhance_popular_fragrances(): nightly pass over popular records that were
  never matched to the API
- get_similar_recommendations(): similar fragrances for a stored record

Enhancement only fills missing values; it never overwrites data that is
already present and never changes an external id once set.
"""

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from django.db import transaction
from django.utils import timezone

from catalog.exceptions import BudgetExceeded, CatalogError
from catalog.models import Fragrance
from catalog.monitoring import capture_search_error
from catalog.search.local_store import LocalStoreAdapter
from catalog.search.results import FragranceView
from catalog.search.variants import confidence
from catalog.services.market_intelligence import clean_api_name
from catalog.services.metadata_client import MetadataCandidate, PerfumeroClient

logger = logging.getLogger(__name__)

# Minimum confidence for treating an API entry as the same product
MATCH_CONFIDENCE = 80
SIMILAR_LIMIT = 5


def apply_enhancement(record, candidate, now: Optional[datetime] = None) -> List[str]:
    """
    Copy missing values from an API candidate onto a stored record and save.

    Args:
        record: Fragrance instance
        candidate: MetadataCandidate describing the same product
        now: Timestamp for last_enhanced (defaults to timezone.now())

    Returns:
        Names of the fields that were filled (last_enhanced not included)
    """
    changed = []

    if not record.external_id and candidate.external_id:
        taken = Fragrance.objects.filter(external_id=candidate.external_id).exclude(pk=record.pk).exists()
        if taken:
            logger.warning(
                f"External id {candidate.external_id} already belongs to another record; "
                f"not assigning it to {record}"
            )
        else:
            record.external_id = candidate.external_id
            changed.append("external_id")

    if record.year is None and candidate.year is not None:
        record.year = candidate.year
        changed.append("year")

    if not record.concentration and candidate.concentration:
        record.concentration = candidate.concentration
        changed.append("concentration")

    for field_name in ("top_notes", "middle_notes", "base_notes"):
        if not getattr(record, field_name) and getattr(candidate, field_name):
            setattr(record, field_name, list(getattr(candidate, field_name)))
            changed.append(field_name)

    if record.community_rating is None and candidate.community_rating is not None:
        record.community_rating = candidate.community_rating
        changed.append("community_rating")

    if record.popularity_score is None and candidate.popularity_score is not None:
        record.popularity_score = candidate.popularity_score
        changed.append("popularity_score")

    record.last_enhanced = now or timezone.now()
    record.save(update_fields=changed + ["last_enhanced"])

    if changed:
        logger.info(f"Enhanced {record} with {', '.join(changed)}")
    return changed


def _best_match(record, candidates):
    best, best_score = None, -1
    for candidate in candidates:
        if candidate.brand.lower() not in record.brand.lower() and record.brand.lower() not in candidate.brand.lower():
            continue
        score = confidence(record.name, clean_api_name(candidate.name, candidate.brand), candidate.brand)
        if score > best_score:
            best, best_score = candidate, score
    if best_score < MATCH_CONFIDENCE:
        return None
    return best


def enhance_popular_fragrances(batch_size: int = 20, client=None, local_store=None) -> Dict[str, Any]:
    """
    Look up popular unmatched records in the metadata API and fill their gaps.

    Picks records with popularity above 5 and no external id, least recently
    tried first. Stops early once the API budget is exhausted.

    Args:
        batch_size: Maximum records to look up
        client: PerfumeroClient (defaults to a new one)
        local_store: LocalStoreAdapter (defaults to a new one)

    Returns:
        Counts: processed, enhanced, not_found, failed, and budget_exhausted flag
    """
    client = client or PerfumeroClient()
    local_store = local_store or LocalStoreAdapter()

    stats = {"processed": 0, "enhanced": 0, "not_found": 0, "failed": 0, "budget_exhausted": False}

    for record in local_store.records_for_enhancement(batch_size):
        if not client.is_available():
            stats["budget_exhausted"] = True
            break

        try:
            items = client.search({"name": record.name, "brand": record.brand, "limit": 5})
        except BudgetExceeded:
            stats["budget_exhausted"] = True
            break
        except CatalogError as e:
            logger.warning(f"Enhancement lookup failed for {record}: {e}")
            stats["failed"] += 1
            continue

        stats["processed"] += 1

        candidates = []
        for item in items:
            try:
                candidates.append(MetadataCandidate.from_api(item))
            except CatalogError as e:
                logger.debug(f"Skipping malformed entry while enhancing {record}: {e}")

        match = _best_match(record, candidates)
        try:
            with transaction.atomic():
                if match is None:
                    record.last_enhanced = timezone.now()
                    record.save(update_fields=["last_enhanced"])
                    stats["not_found"] += 1
                else:
                    apply_enhancement(record, match)
                    stats["enhanced"] += 1
        except Exception as e:
            logger.error(f"Failed to save enhancement for {record}: {e}")
            capture_search_error(e, stage="enhancement", fragrance_id=record.pk)
            stats["failed"] += 1

    logger.info(f"Enhancement pass finished: {stats}")
    return stats


def get_similar_recommendations(fragrance_id: int, limit: int = SIMILAR_LIMIT, client=None) -> List:
    """
    Similar fragrances for a stored record, as transient views.

    Resolves and stores the record's external id first when it is missing.
    Any external failure degrades to an empty list.

    Args:
        fragrance_id: Local id of the record
        limit: Maximum recommendations
        client: PerfumeroClient (defaults to a new one)

    Returns:
        List of FragranceView, possibly empty
    """
    client = client or PerfumeroClient()
    record = Fragrance.objects.filter(pk=fragrance_id).first()
    if record is None:
        return []

    try:
        external_id = record.external_id
        if not external_id:
            items = client.search({"name": record.name, "brand": record.brand, "limit": 1})
            if not items:
                return []
            external_id = MetadataCandidate.from_api(items[0]).external_id
            if not Fragrance.objects.filter(external_id=external_id).exists():
                record.external_id = external_id
                record.save(update_fields=["external_id"])

        similar = client.get_similar(external_id)
    except CatalogError as e:
        logger.warning(f"Similar lookup failed for {record}: {e}")
        return []

    views = []
    for item in similar:
        try:
            views.append(FragranceView.from_candidate(MetadataCandidate.from_api(item)))
        except CatalogError as e:
            logger.debug(f"Skipping malformed similar entry for {record}: {e}")
        if len(views) >= limit:
            break
    return views
