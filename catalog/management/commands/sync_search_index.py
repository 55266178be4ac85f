"""
Management command to push local fragrances to the remote search index.

Usage:
    python manage.py sync_search_index
    python manage.py sync_search_index --batch-size=1000
    python manage.py sync_search_index --configure-only
"""

import logging

from django.core.management.base import BaseCommand, CommandError

from catalog.exceptions import RemoteUnavailable
from catalog.search.remote_index import MeilisearchIndex

logger = logging.getLogger(__name__)


class Command(BaseCommand):
    """Configure the Meilisearch index and upload all fragrances."""

    help = 'Configure the remote search index and upload all local fragrances'

    def add_arguments(self, parser):
        parser.add_argument(
            '--batch-size',
            type=int,
            default=500,
            help='Documents per upload batch (default: 500)',
        )
        parser.add_argument(
            '--configure-only',
            action='store_true',
            help='Only push index settings, do not upload documents',
        )

    def handle(self, *args, **options):
        index = MeilisearchIndex()
        if not index.is_configured:
            raise CommandError('MEILISEARCH_URL is not configured')

        if options['configure_only']:
            if not index.configure_index():
                raise CommandError('Search index could not be configured')
            self.stdout.write(self.style.SUCCESS(f"Index '{index.index_name}' configured"))
            return

        try:
            counts = index.sync_all(batch_size=options['batch_size'])
        except RemoteUnavailable as e:
            raise CommandError(f'Search index sync failed: {e}')

        self.stdout.write(self.style.SUCCESS(
            f"Indexed {counts['indexed']} fragrances in {counts['batches']} batches"
        ))
