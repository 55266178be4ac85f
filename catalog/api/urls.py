"""
Fragrance search API URL configuration.

Endpoints:
- POST /api/v1/fragrances/search/              - Layered search with population
- GET  /api/v1/fragrances/autocomplete/        - Name suggestions
- GET  /api/v1/fragrances/index-search/        - Index search with sorting, local fallback
- GET  /api/v1/fragrances/<id>/similar/        - Similar fragrances
- GET  /api/v1/search/usage/                   - External API usage
- GET  /api/v1/search/population/              - Population statistics
"""

from django.urls import path

from catalog.api.views import (
    autocomplete_fragrances,
    index_search,
    population_stats,
    search_fragrances,
    similar_fragrances,
    usage_stats,
)

app_name = 'catalog_api'

urlpatterns = [
    path('fragrances/search/', search_fragrances, name='search_fragrances'),
    path('fragrances/autocomplete/', autocomplete_fragrances, name='autocomplete_fragrances'),
    path('fragrances/index-search/', index_search, name='index_search'),
    path('fragrances/<int:fragrance_id>/similar/', similar_fragrances, name='similar_fragrances'),

    path('search/usage/', usage_stats, name='usage_stats'),
    path('search/population/', population_stats, name='population_stats'),
]
