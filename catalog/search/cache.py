"""
Result cache for search and autocomplete responses.

Thin wrapper over the Django cache framework (Redis in production, local
memory in tests). Entries expire by TTL only; writes are never invalidated
explicitly, so results may be stale for up to the TTL.
"""

import hashlib
import json
import logging
from typing import Any, Dict, Optional

from django.core.cache import cache

from catalog.search.normalization import normalize

logger = logging.getLogger(__name__)

SEARCH_TTL = 300  # 5 minutes
AUTOCOMPLETE_TTL = 600  # 10 minutes

KEY_PREFIX = "fragrance_search"


class ResultCache:
    """
    Key/value cache keyed on (namespace, normalized query, options).

    Cache failures are logged and treated as misses; they never fail a search.
    """

    def __init__(self, backend=None, prefix: str = KEY_PREFIX):
        self.backend = backend or cache
        self.prefix = prefix

    def make_key(self, namespace: str, query: str, options: Optional[Dict[str, Any]] = None) -> str:
        """
        Build a deterministic cache key.

        Options are serialized as canonical JSON (sorted keys) so dicts that
        differ only in key order share a key. The result is hashed to stay
        within backend key length limits.
        """
        canonical = json.dumps(options or {}, sort_keys=True, separators=(",", ":"), default=str)
        raw = f"{normalize(query)}|{canonical}"
        digest = hashlib.sha256(raw.encode("utf-8")).hexdigest()
        return f"{self.prefix}:{namespace}:{digest}"

    def get(self, key: str) -> Optional[Any]:
        try:
            return self.backend.get(key)
        except Exception as e:
            logger.warning(f"Cache read failed for {key}: {e}")
            return None

    def set(self, key: str, value: Any, ttl: int = SEARCH_TTL) -> None:
        try:
            self.backend.set(key, value, timeout=ttl)
        except Exception as e:
            logger.warning(f"Cache write failed for {key}: {e}")

    def delete(self, key: str) -> None:
        try:
            self.backend.delete(key)
        except Exception as e:
            logger.warning(f"Cache delete failed for {key}: {e}")

    def exists(self, key: str) -> bool:
        try:
            return self.backend.has_key(key)
        except Exception as e:
            logger.warning(f"Cache lookup failed for {key}: {e}")
            return False
