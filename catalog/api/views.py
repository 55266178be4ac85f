"""
Fragrance search API views.

REST endpoints for:
- Layered fragrance search (local store, then controlled API population)
- Full-text index search with sorting (no external population)
- Autocomplete suggestions
- Similar fragrance recommendations
- External API usage and population statistics

Search endpoints are public and throttled; statistics require a staff user.
A local database failure is reported as 503 rather than an empty result.
"""

import logging
import time

from django.conf import settings
from django.db import DatabaseError
from drf_spectacular.types import OpenApiTypes
from drf_spectacular.utils import OpenApiParameter, extend_schema
from rest_framework import status
from rest_framework.decorators import api_view, permission_classes, throttle_classes
from rest_framework.permissions import AllowAny, IsAdminUser
from rest_framework.response import Response

from catalog.api.throttling import AnonSearchThrottle, AutocompleteThrottle, SearchThrottle
from catalog.models import Fragrance
from catalog.search.local_store import SearchFilters
from catalog.search.remote_index import SearchOptions
from catalog.services.enhancement import get_similar_recommendations
from catalog.services.market_intelligence import brand_tier

logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 20
INDEX_FILTER_PARAMS = (
    'brand', 'concentration', 'year_from', 'year_to', 'verified', 'season', 'occasion', 'mood',
)


def _get_engine():
    """Get the population engine (lazy import to avoid circular imports)."""
    from catalog.services.population import get_population_engine
    return get_population_engine()


def _parse_int(value, default, minimum, maximum):
    try:
        number = int(value)
    except (TypeError, ValueError):
        return default
    return max(minimum, min(maximum, number))


def _market_intelligence(views):
    """Analytics summary over one page of results."""
    return {
        'tier1_results': sum(1 for view in views if brand_tier(view.brand) == 'tier1'),
        'trending_results': sum(1 for view in views if view.trending),
        'demographics': sorted({view.target_demographic for view in views}),
        'has_transient_results': any(view.is_transient for view in views),
    }


def _database_unavailable(error):
    logger.error(f"Local store unavailable: {error}")
    return Response(
        {'success': False, 'error': 'Fragrance database unavailable'},
        status=status.HTTP_503_SERVICE_UNAVAILABLE,
    )


@extend_schema(
    tags=['Search'],
    summary='Search fragrances',
    description='''
    Search the fragrance catalog.

    Local results are returned when available. On a local miss the query may
    be resolved through the external metadata API, subject to the daily
    budget, and qualifying results are added to the catalog.
    ''',
    request={
        'application/json': {
            'type': 'object',
            'properties': {
                'query': {'type': 'string', 'description': 'Search text'},
                'filters': {
                    'type': 'object',
                    'properties': {
                        'brand': {'type': 'string'},
                        'concentration': {'type': 'string'},
                        'year_from': {'type': 'integer'},
                        'year_to': {'type': 'integer'},
                        'verified': {'type': 'boolean'},
                        'season': {'type': 'string'},
                        'occasion': {'type': 'string'},
                        'mood': {'type': 'string'},
                    },
                },
                'limit': {'type': 'integer', 'default': DEFAULT_PAGE_SIZE},
                'offset': {'type': 'integer', 'default': 0},
            },
        }
    },
    responses={
        200: {'description': 'Search results with pagination and analytics'},
        400: {'description': 'Invalid request'},
        503: {'description': 'Fragrance database unavailable'},
    },
)
@api_view(['POST'])
@permission_classes([AllowAny])
@throttle_classes([SearchThrottle, AnonSearchThrottle])
def search_fragrances(request):
    """
    Search fragrances.

    Request body:
    {
        "query": "khamrah",
        "filters": {"concentration": "EDP"},
        "limit": 20,
        "offset": 0
    }
    """
    start_time = time.time()

    query = request.data.get('query', '')
    if not isinstance(query, str):
        return Response({'error': 'query must be a string'}, status=status.HTTP_400_BAD_REQUEST)

    filters = request.data.get('filters') or {}
    if not isinstance(filters, dict):
        return Response({'error': 'filters must be an object'}, status=status.HTTP_400_BAD_REQUEST)

    max_limit = getattr(settings, 'SEARCH_RESULTS_LIMIT', 100)
    limit = _parse_int(request.data.get('limit'), DEFAULT_PAGE_SIZE, 1, max_limit)
    offset = _parse_int(request.data.get('offset'), 0, 0, 10_000)

    try:
        outcome = _get_engine().search(query, filters, limit=limit, offset=offset)
    except DatabaseError as e:
        return _database_unavailable(e)

    if outcome.results and outcome.populated_from_api:
        source = 'external'
    elif outcome.results:
        source = 'local'
    else:
        source = 'none'

    return Response({
        'success': True,
        'query': outcome.query,
        'results': [view.to_dict() for view in outcome.results],
        'pagination': {
            'limit': limit,
            'offset': offset,
            'total': outcome.total,
            'has_more': offset + len(outcome.results) < outcome.total,
        },
        'state': outcome.state.value,
        'query_class': outcome.query_class.value if outcome.query_class else None,
        'source': source,
        'populated_from_api': outcome.populated_from_api,
        'market_intelligence': _market_intelligence(outcome.results),
        'search_time_ms': int((time.time() - start_time) * 1000),
    })


@extend_schema(
    tags=['Search'],
    summary='Autocomplete fragrance names',
    parameters=[
        OpenApiParameter('q', OpenApiTypes.STR, description='Prefix (at least 2 characters)'),
        OpenApiParameter('limit', OpenApiTypes.INT, description='Maximum suggestions (default 10)'),
    ],
    responses={200: {'description': 'List of suggested names'}},
)
@api_view(['GET'])
@permission_classes([AllowAny])
@throttle_classes([AutocompleteThrottle])
def autocomplete_fragrances(request):
    prefix = request.query_params.get('q', '')
    limit = _parse_int(request.query_params.get('limit'), 10, 1, 50)

    suggestions = _get_engine().autocomplete(prefix, limit)
    return Response({'success': True, 'query': prefix, 'suggestions': suggestions})


@extend_schema(
    tags=['Search'],
    summary='Full-text index search',
    description='''
    Typo-tolerant search through the search index, with sorting and filters.

    Falls back to the local catalog when the index is unavailable. Never
    calls the external metadata API and never adds fragrances.
    ''',
    parameters=[
        OpenApiParameter('q', OpenApiTypes.STR, description='Search text'),
        OpenApiParameter('sort_by', OpenApiTypes.STR, description='relevance, name, brand, year, rating or popularity'),
        OpenApiParameter('sort_order', OpenApiTypes.STR, description='asc or desc (default desc)'),
        OpenApiParameter('brand', OpenApiTypes.STR),
        OpenApiParameter('concentration', OpenApiTypes.STR),
        OpenApiParameter('year_from', OpenApiTypes.INT),
        OpenApiParameter('year_to', OpenApiTypes.INT),
        OpenApiParameter('verified', OpenApiTypes.BOOL),
        OpenApiParameter('limit', OpenApiTypes.INT, description=f'Page size (default {DEFAULT_PAGE_SIZE})'),
        OpenApiParameter('offset', OpenApiTypes.INT, description='Rows to skip'),
    ],
    responses={200: {'description': 'Index results with total, duration, cache flag and source'}},
)
@api_view(['GET'])
@permission_classes([AllowAny])
@throttle_classes([SearchThrottle, AnonSearchThrottle])
def index_search(request):
    params = request.query_params
    max_limit = getattr(settings, 'SEARCH_RESULTS_LIMIT', 100)
    limit = _parse_int(params.get('limit'), DEFAULT_PAGE_SIZE, 1, max_limit)
    offset = _parse_int(params.get('offset'), 0, 0, 10_000)

    options = SearchOptions(
        filters=SearchFilters.from_dict({key: params.get(key) for key in INDEX_FILTER_PARAMS}),
        limit=limit,
        offset=offset,
        sort_by=params.get('sort_by', 'relevance'),
        sort_order=params.get('sort_order', 'desc'),
    )
    query = params.get('q', '')
    response = _get_engine().index_search(query, options)

    return Response({
        'success': True,
        'query': query,
        **response,
        'pagination': {
            'limit': limit,
            'offset': offset,
            'total': response['total'],
            'has_more': offset + len(response['results']) < response['total'],
        },
    })


@extend_schema(
    tags=['Search'],
    summary='Similar fragrances',
    parameters=[
        OpenApiParameter('limit', OpenApiTypes.INT, description='Maximum recommendations (default 5)'),
    ],
    responses={
        200: {'description': 'Similar fragrances (transient views)'},
        404: {'description': 'Fragrance not found'},
    },
)
@api_view(['GET'])
@permission_classes([AllowAny])
@throttle_classes([SearchThrottle, AnonSearchThrottle])
def similar_fragrances(request, fragrance_id):
    try:
        exists = Fragrance.objects.filter(pk=fragrance_id).exists()
    except DatabaseError as e:
        return _database_unavailable(e)

    if not exists:
        return Response({'error': 'Fragrance not found'}, status=status.HTTP_404_NOT_FOUND)

    limit = _parse_int(request.query_params.get('limit'), 5, 1, 20)
    engine = _get_engine()
    views = get_similar_recommendations(fragrance_id, limit=limit, client=engine.metadata_client)

    return Response({
        'success': True,
        'fragrance_id': fragrance_id,
        'results': [view.to_dict() for view in views],
    })


@extend_schema(
    tags=['Monitoring'],
    summary='External API usage',
    responses={200: {'description': 'used, limit, remaining, reset_date'}},
)
@api_view(['GET'])
@permission_classes([IsAdminUser])
def usage_stats(request):
    return Response({'success': True, 'usage': _get_engine().get_usage_stats()})


@extend_schema(
    tags=['Monitoring'],
    summary='Population statistics',
    responses={
        200: {'description': 'Recent populations, API usage and catalog coverage'},
        503: {'description': 'Fragrance database unavailable'},
    },
)
@api_view(['GET'])
@permission_classes([IsAdminUser])
def population_stats(request):
    try:
        stats = _get_engine().get_population_stats()
    except DatabaseError as e:
        return _database_unavailable(e)
    return Response({'success': True, 'stats': stats})
