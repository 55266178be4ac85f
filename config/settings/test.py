"""
Test settings for the Fragrance Catalog service.

In-memory SQLite, locmem cache and eager Celery. External services stay
disabled unless a test builds its own client or index.
"""

from .base import *

DEBUG = False

ALLOWED_HOSTS = ["localhost", "127.0.0.1", "testserver"]

DATABASES = {
    "default": {
        "ENGINE": "django.db.backends.sqlite3",
        "NAME": ":memory:",
    }
}

CACHES = {
    "default": {
        "BACKEND": "django.core.cache.backends.locmem.LocMemCache",
        "LOCATION": "catalog-tests",
    }
}

CELERY_TASK_ALWAYS_EAGER = True
CELERY_TASK_EAGER_PROPAGATES = True

LOGGING["loggers"]["django"]["level"] = "WARNING"
LOGGING["loggers"]["catalog"]["level"] = "WARNING"

AUTH_PASSWORD_VALIDATORS = []
PASSWORD_HASHERS = ["django.contrib.auth.hashers.MD5PasswordHasher"]

SENTRY_DSN = ""

PERFUMERO_API_KEY = ""
PERFUMERO_DAILY_LIMIT = 333
PERFUMERO_TIMEOUT = 2
MEILISEARCH_URL = ""
POPULATION_BUDGET_BUFFER = 500
POPULATION_THROTTLE_HOURS = 24
