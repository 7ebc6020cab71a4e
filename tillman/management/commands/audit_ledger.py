"""
Management command to replay the stock ledger against live records.

Usage:
    python manage.py audit_ledger
    python manage.py audit_ledger --tenant acme
"""

from django.core.management.base import BaseCommand, CommandError

from tillman.services.ledger import StockLedger


class Command(BaseCommand):
    """Audit ledger command."""

    help = 'Replays every stock movement and reports records whose quantity disagrees with their ledger'

    def add_arguments(self, parser):
        parser.add_argument(
            '--tenant',
            default=None,
            help='Only audit records of this tenant',
        )

    def handle(self, *args, **options):
        mismatches = StockLedger.audit(options['tenant'])

        for result in mismatches:
            self.stderr.write(
                f'record {result.record_id}: ledger={result.replayed_quantity} '
                f'live={result.live_quantity} movements={result.movement_count} '
                f'broken_links={result.broken_links}'
            )

        if mismatches:
            raise CommandError(f'{len(mismatches)} record(s) disagree with the ledger')

        self.stdout.write(self.style.SUCCESS('Ledger consistent'))
