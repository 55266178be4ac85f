"""
Catalog service views.

Includes the health check endpoint for monitoring and load balancer checks.
"""

from django.db import connection
from django.http import JsonResponse

from catalog.models import Fragrance


def get_redis_connection():
    """
    Get Redis connection for health check.

    Returns:
        Redis client if the cache is Redis-backed, None otherwise.
    """
    from django.core.cache import cache

    if hasattr(cache, "client"):
        return cache.client.get_client()
    return None


def _get_engine():
    from catalog.services.population import get_population_engine
    return get_population_engine()


def health_check(request):
    """
    Health check endpoint for the catalog service.

    Endpoint: GET /api/health/
    No authentication required (for load balancer checks).

    Response fields:
        - status: "healthy" or "unhealthy"
        - database: "connected" or "error"
        - redis: "connected", "not_configured", or "error"
        - search_index: "ready" or "fallback"
        - metadata_api: "available" or "unavailable"
        - fragrance_count: number of stored fragrances
        - api_usage: used, limit, remaining, reset_date

    Returns:
        JsonResponse: HTTP 200 when healthy, HTTP 503 when the database is down
    """
    status = "healthy"
    http_status = 200

    database_status = "connected"
    try:
        connection.ensure_connection()
    except Exception:
        database_status = "error"
        status = "unhealthy"
        http_status = 503

    redis_status = "not_configured"
    try:
        redis_client = get_redis_connection()
        if redis_client is not None:
            redis_status = "connected" if redis_client.ping() else "error"
    except Exception:
        redis_status = "error"

    fragrance_count = None
    if database_status == "connected":
        try:
            fragrance_count = Fragrance.objects.count()
        except Exception:
            database_status = "error"
            status = "unhealthy"
            http_status = 503

    engine = _get_engine()

    return JsonResponse(
        {
            "status": status,
            "database": database_status,
            "redis": redis_status,
            "search_index": "ready" if engine.remote_index.ready else "fallback",
            "metadata_api": "available" if engine.metadata_client.is_available() else "unavailable",
            "fragrance_count": fragrance_count,
            "api_usage": engine.get_usage_stats(),
        },
        status=http_status,
    )
