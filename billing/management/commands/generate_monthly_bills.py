"""
Management command to generate the monthly bills of every student of a mess
"""
from decimal import Decimal

from django.core.management.base import BaseCommand, CommandError
from django.contrib.auth import get_user_model

from hostel.services import list_students
from billing.exceptions import BillingError
from billing.models import Bill
from billing.services import generate_bills_for_mess


class Command(BaseCommand):
    help = 'Generate monthly mess bills for all students of a mess'

    def add_arguments(self, parser):
        parser.add_argument('--mess-id', required=True, help='Mess to bill')
        parser.add_argument('--month', type=int, required=True, help='Month to bill (1-12)')
        parser.add_argument('--year', type=int, required=True, help='Year to bill')
        parser.add_argument(
            '--food-cost',
            type=Decimal,
            help='Food cost per day present (defaults to MESS_BILLING["DEFAULT_FOOD_COST_PER_DAY"])',
        )
        parser.add_argument('--fixed-charges', type=Decimal, default=Decimal('0'), help='Fixed charges added to every bill')
        parser.add_argument('--generated-by', required=True, help='Username recorded as the generator of the bills')
        parser.add_argument(
            '--dry-run',
            action='store_true',
            help='Show which students would be billed without creating bills',
        )

    def handle(self, *args, **options):
        mess_id = options['mess_id']
        month = options['month']
        year = options['year']

        User = get_user_model()
        try:
            generated_by = User.objects.get(username=options['generated_by'])
        except User.DoesNotExist:
            raise CommandError(f"User '{options['generated_by']}' does not exist")

        if options['dry_run']:
            student_ids = list_students(mess_id)
            already_billed = set(
                Bill.objects.filter(student_id__in=student_ids, month=month, year=year, is_cancelled=False)
                .values_list('student_id', flat=True)
            )
            pending = [student_id for student_id in student_ids if student_id not in already_billed]
            for student_id in pending:
                self.stdout.write(self.style.WARNING(f"[DRY RUN] Would generate bill for student {student_id}"))
            self.stdout.write(f"[DRY RUN] {len(pending)} bills would be generated, {len(already_billed)} already exist")
            return

        self.stdout.write(f"Generating bills for mess {mess_id} for {month:02d}/{year}...")
        try:
            result = generate_bills_for_mess(
                mess_id=mess_id,
                month=month,
                year=year,
                food_cost_per_day=options.get('food_cost'),
                fixed_charges=options['fixed_charges'],
                generated_by=generated_by,
            )
        except BillingError as exc:
            raise CommandError(exc.message)

        for bill in result['bills']:
            self.stdout.write(
                self.style.SUCCESS(f"Generated bill {bill.bill_number} for student {bill.student_id}: {bill.total_amount}")
            )

        # Summary
        self.stdout.write("\n" + "=" * 50)
        self.stdout.write(self.style.SUCCESS("Summary:"))
        self.stdout.write(f"  Generated: {result['generated']}")
        if result['errors']:
            self.stdout.write(self.style.ERROR(f"  Errors: {result['errors']}"))
            for detail in result['error_details'][:10]:  # Show first 10 errors
                self.stdout.write(self.style.ERROR(f"    - Student {detail['student_id']}: {detail['error']}"))
