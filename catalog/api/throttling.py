"""
API throttling classes for the fragrance search endpoints.
"""

from rest_framework.throttling import AnonRateThrottle, UserRateThrottle


class SearchThrottle(UserRateThrottle):
    """
    Throttle for search and similar-fragrance endpoints (authenticated users).

    Rate: 120 requests per minute per user.
    """

    rate = '120/minute'
    scope = 'search'


class AnonSearchThrottle(AnonRateThrottle):
    """
    Throttle for search endpoints (anonymous callers).

    Rate: 30 requests per minute per IP.
    """

    rate = '30/minute'
    scope = 'anon_search'


class AutocompleteThrottle(AnonRateThrottle):
    """
    Throttle for autocomplete, which fires on every keystroke.

    Rate: 300 requests per minute per IP.
    """

    rate = '300/minute'
    scope = 'autocomplete'
