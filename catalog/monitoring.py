"""
Sentry error reporting for catalog search and population.

- Breadcrumbs for external fetches and promotions
- Filters API keys and auth headers from event context
- Captures per-candidate and remote failures with search context

Sentry itself is initialised in config/settings/base.py when SENTRY_DSN is set;
without it these helpers are no-ops apart from logging.

Usage:
    from catalog.monitoring import capture_search_error

    try:
        promote(candidate)
    except Exception as e:
        capture_search_error(e, query=query, stage="promotion", brand=candidate.brand)
"""

import logging
from typing import Any, Dict, Optional

import sentry_sdk

logger = logging.getLogger(__name__)

SENSITIVE_FIELDS = {
    "api_key",
    "apikey",
    "api-key",
    "x-rapidapi-key",
    "authorization",
    "password",
    "secret",
    "token",
}


def _filter_sensitive_data(data: Dict[str, Any]) -> Dict[str, Any]:
    """
    Replace values of sensitive keys, recursing into nested dicts.

    Args:
        data: Context dictionary

    Returns:
        Copy with sensitive values replaced by "[Filtered]"
    """
    if not isinstance(data, dict):
        return data

    filtered = {}
    for key, value in data.items():
        key_lower = str(key).lower()
        if any(sensitive in key_lower for sensitive in SENSITIVE_FIELDS):
            filtered[key] = "[Filtered]"
        elif isinstance(value, dict):
            filtered[key] = _filter_sensitive_data(value)
        else:
            filtered[key] = value
    return filtered


def add_search_breadcrumb(message: str, category: str = "search", data: Optional[Dict[str, Any]] = None) -> None:
    sentry_sdk.add_breadcrumb(
        category=category,
        message=message,
        level="info",
        data=_filter_sensitive_data(data or {}),
    )


def capture_search_error(
    error: Exception,
    query: Optional[str] = None,
    stage: str = "search",
    **extra: Any,
) -> Optional[str]:
    """
    Report an error to Sentry with search context.

    Args:
        error: The exception
        query: Query being resolved, if any
        stage: Pipeline stage (local, external_fetch, promotion, enhancement, index)
        **extra: Additional context (brand, external_id, ...)

    Returns:
        Sentry event id, or None when Sentry is not initialised
    """
    context = _filter_sensitive_data({"query": query, "stage": stage, **extra})

    with sentry_sdk.push_scope() as scope:
        scope.set_tag("catalog.stage", stage)
        scope.set_context("search", context)
        event_id = sentry_sdk.capture_exception(error)

    logger.debug(f"Reported {type(error).__name__} at stage {stage} (event {event_id})")
    return event_id
