"""
Celery tasks for the fragrance catalog.

- enhance_popular_fragrances: nightly gap filling from the metadata API
- sync_search_index: push local records to the remote search index
"""

import logging
from typing import Any, Dict

from celery import shared_task

from catalog.exceptions import RemoteUnavailable
from catalog.search.remote_index import MeilisearchIndex
from catalog.services import enhancement

logger = logging.getLogger(__name__)


def _get_engine():
    from catalog.services.population import get_population_engine
    return get_population_engine()


@shared_task(name="catalog.tasks.enhance_popular_fragrances")
def enhance_popular_fragrances(batch_size: int = 20) -> Dict[str, Any]:
    """
    Fill missing data on popular records from the metadata API.

    Runs daily at 03:00 via Celery Beat. Shares the API budget with the
    search engine of this worker process.

    Args:
        batch_size: Maximum records to look up

    Returns:
        Dict with processed, enhanced, not_found, failed and budget_exhausted
    """
    logger.info(f"Starting enhancement pass (batch size {batch_size})")
    engine = _get_engine()
    return enhancement.enhance_popular_fragrances(
        batch_size=batch_size,
        client=engine.metadata_client,
        local_store=engine.local_store,
    )


@shared_task(name="catalog.tasks.sync_search_index")
def sync_search_index(batch_size: int = 500) -> Dict[str, Any]:
    """
    Push all local records to the remote search index.

    Returns:
        Dict with status and counts; status is "skipped" when the index is
        not configured and "failed" when it rejects a batch
    """
    index = MeilisearchIndex()
    if not index.is_configured:
        logger.info("Search index not configured; skipping sync")
        return {"status": "skipped", "indexed": 0, "batches": 0}

    try:
        counts = index.sync_all(batch_size=batch_size)
    except RemoteUnavailable as e:
        logger.warning(f"Search index sync failed: {e}")
        return {"status": "failed", "error": str(e), "indexed": 0, "batches": 0}

    return {"status": "completed", **counts}
