"""
Management command to run the fragrance enhancement pass on demand.

Usage:
    python manage.py enhance_fragrances
    python manage.py enhance_fragrances --batch-size=50
"""

from django.core.management.base import BaseCommand

from catalog.services.enhancement import enhance_popular_fragrances


class Command(BaseCommand):
    """Fill missing data on popular fragrances from the metadata API."""

    help = 'Look up popular fragrances without an external id and fill their missing fields'

    def add_arguments(self, parser):
        parser.add_argument(
            '--batch-size',
            type=int,
            default=20,
            help='Maximum records to look up (default: 20)',
        )

    def handle(self, *args, **options):
        stats = enhance_popular_fragrances(batch_size=options['batch_size'])

        self.stdout.write(
            f"Processed {stats['processed']}: {stats['enhanced']} enhanced, "
            f"{stats['not_found']} not found, {stats['failed']} failed"
        )
        if stats['budget_exhausted']:
            self.stdout.write(self.style.WARNING('Stopped early: API budget exhausted or unavailable'))
        else:
            self.stdout.write(self.style.SUCCESS('Enhancement pass complete'))
