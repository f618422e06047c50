"""
Management command to apply the late fee to overdue bills

Meant to run from cron; repeated runs never charge a bill twice.
"""
from decimal import Decimal

from django.core.management.base import BaseCommand, CommandError

from billing.exceptions import BillingError
from billing.services import apply_late_fees, refresh_overdue_statuses


class Command(BaseCommand):
    help = 'Apply the one-time late fee to overdue unpaid bills'

    def add_arguments(self, parser):
        parser.add_argument(
            '--amount',
            type=Decimal,
            help='Late fee to apply (defaults to MESS_BILLING["LATE_FEE_AMOUNT"])',
        )
        parser.add_argument(
            '--dry-run',
            action='store_true',
            help='Count the bills that would be charged without changing them',
        )

    def handle(self, *args, **options):
        dry_run = options.get('dry_run', False)
        try:
            updated = apply_late_fees(amount=options.get('amount'), dry_run=dry_run)
        except BillingError as exc:
            raise CommandError(exc.message)

        if dry_run:
            self.stdout.write(self.style.WARNING(f"[DRY RUN] Late fee would be applied to {updated} bills"))
            return

        marked = refresh_overdue_statuses()
        self.stdout.write(self.style.SUCCESS(f"Late fee applied to {updated} bills"))
        if marked:
            self.stdout.write(f"Marked {marked} more bills as overdue")
