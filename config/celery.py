"""
Celery configuration for the Fragrance Catalog service.

Separate queues for enrichment (metadata API lookups) and search index work.
"""

import os
from celery import Celery
from celery.schedules import crontab

# Set the default Django settings module for the 'celery' program.
os.environ.setdefault("DJANGO_SETTINGS_MODULE", "config.settings")

app = Celery("fragrance_catalog")

# namespace='CELERY' means all celery-related configuration keys
# should have a `CELERY_` prefix.
app.config_from_object("django.conf:settings", namespace="CELERY")

# Load task modules from all registered Django apps.
app.autodiscover_tasks()

app.conf.task_queues = {
    "enrichment": {
        "exchange": "enrichment",
        "routing_key": "enrichment",
    },
    "search": {
        "exchange": "search",
        "routing_key": "search",
    },
    "default": {
        "exchange": "default",
        "routing_key": "default",
    },
}

app.conf.task_default_queue = "default"

app.conf.beat_schedule = {
    # Fill gaps on popular records while API traffic is low
    "enhance-popular-fragrances-daily": {
        "task": "catalog.tasks.enhance_popular_fragrances",
        "schedule": crontab(hour=3, minute=0),
        "kwargs": {"batch_size": 20},
    },
    "sync-search-index-nightly": {
        "task": "catalog.tasks.sync_search_index",
        "schedule": crontab(hour=4, minute=0),
        "kwargs": {"batch_size": 500},
    },
}
