"""
Settings entry point for the Fragrance Catalog service.

DJANGO_ENV picks "production" or "test"; anything else runs with
development settings.
"""

import os

_env = os.getenv("DJANGO_ENV", "development")

if _env == "production":
    from .production import *
elif _env == "test":
    from .test import *
else:
    from .development import *
