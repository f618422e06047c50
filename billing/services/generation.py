"""
Bill generation service
Creates one bill per (student, month, year) from mess attendance
"""
import calendar
import logging
from datetime import date, timedelta

from django.db import transaction, DatabaseError, IntegrityError
from django.db.models import F
from django.utils import timezone

from hostel.models import MEALS_PER_DAY
from hostel.services import student_exists, list_students, query_attendance

from ..calculations import recompute_bill
from ..conf import billing_setting
from ..exceptions import BillingError, DuplicateError, NotFoundError, PersistenceError, ValidationError
from ..models import Bill, BillSequence
from .common import non_negative_amount

logger = logging.getLogger(__name__)

MIN_BILLING_YEAR = 2020


def get_billing_period(month, year):
    """Return (first day, last day, number of days) of a calendar month"""
    days_in_month = calendar.monthrange(year, month)[1]
    return date(year, month, 1), date(year, month, days_in_month), days_in_month


def summarize_attendance(records, total_days):
    """
    Count absent days and meals consumed over a billing period.

    A day is absent when the student was on leave or attended no meal. Days
    without a record are treated as present with every meal taken.
    """
    absent_days = 0
    recorded_present_days = 0
    recorded_meals = 0
    for record in records:
        if record.counts_as_absent:
            absent_days += 1
        else:
            recorded_present_days += 1
            recorded_meals += record.total_meals_present

    days_present = total_days - absent_days
    unrecorded_days = days_present - recorded_present_days
    meals_consumed = recorded_meals + unrecorded_days * MEALS_PER_DAY
    return days_present, absent_days, meals_consumed


def validate_generation_inputs(month, year, food_cost_per_day, fixed_charges):
    """Validate and normalise generation inputs, raising ValidationError"""
    errors = {}
    if month is None or month == '':
        errors['month'] = ['Month is required.']
    else:
        try:
            month = int(month)
        except (TypeError, ValueError):
            errors['month'] = ['Month must be a whole number.']
        else:
            if not 1 <= month <= 12:
                errors['month'] = ['Month must be between 1 and 12.']

    if year is None or year == '':
        errors['year'] = ['Year is required.']
    else:
        try:
            year = int(year)
        except (TypeError, ValueError):
            errors['year'] = ['Year must be a whole number.']
        else:
            if year < MIN_BILLING_YEAR:
                errors['year'] = [f'Year must be {MIN_BILLING_YEAR} or later.']

    if errors:
        first = next(iter(errors.values()))[0]
        raise ValidationError(first, errors)

    if food_cost_per_day is None:
        food_cost_per_day = billing_setting('DEFAULT_FOOD_COST_PER_DAY')
    food_cost_per_day = non_negative_amount(food_cost_per_day, 'food_cost_per_day')
    fixed_charges = non_negative_amount(fixed_charges or 0, 'fixed_charges')
    return month, year, food_cost_per_day, fixed_charges


def allocate_bill_number(mess_id, month, year):
    """
    Allocate the next bill number of a mess for a month.

    The counter row is incremented under a row lock, and seeded from the bills
    already carrying the prefix the first time a period is seen.
    """
    period = f"{year:04d}{month:02d}"
    prefix = f"{mess_id}-{period}"
    with transaction.atomic():
        sequence, _ = BillSequence.objects.select_for_update().get_or_create(
            mess_id=mess_id,
            period=period,
            defaults={'last_value': Bill.objects.filter(bill_number__startswith=f"{prefix}-").count()},
        )
        BillSequence.objects.filter(pk=sequence.pk).update(last_value=F('last_value') + 1)
        sequence.refresh_from_db(fields=['last_value'])
    return f"{prefix}-{sequence.last_value:04d}"


def _insert_bill(bill):
    """
    Insert a new bill, allocating its number.

    The unique period key is the final guard against duplicate generation:
    a concurrent writer that won the race surfaces here as DuplicateError.
    A bill number collision re-allocates up to BILL_NUMBER_RETRIES times.
    """
    retries = billing_setting('BILL_NUMBER_RETRIES')
    for attempt in range(1, retries + 1):
        bill.bill_number = allocate_bill_number(bill.mess_id, bill.month, bill.year)
        try:
            with transaction.atomic():
                bill.save(force_insert=True)
            return bill
        except IntegrityError as exc:
            period_key = Bill.make_period_key(bill.student_id, bill.month, bill.year)
            if Bill.objects.filter(active_period_key=period_key).exists():
                raise DuplicateError(
                    f"Bill already exists for student {bill.student_id} for {bill.month:02d}/{bill.year}"
                ) from exc
            if not Bill.objects.filter(bill_number=bill.bill_number).exists():
                raise PersistenceError(f"Could not save bill: {exc}") from exc
            logger.warning(
                "Bill number %s already taken (attempt %d/%d), allocating another",
                bill.bill_number, attempt, retries,
            )
        except DatabaseError as exc:
            logger.error("Database error while saving bill for student %s: %s", bill.student_id, exc, exc_info=True)
            raise PersistenceError(f"Could not save bill: {exc}") from exc

    raise DuplicateError(f"Could not allocate a unique bill number for mess {bill.mess_id} after {retries} attempts")


def generate_bill(student_id, mess_id, month, year, food_cost_per_day=None, fixed_charges=0, generated_by=None, now=None):
    """
    Generate the bill of one student for a calendar month.

    Algorithm:
    1. Validate inputs and that the student exists
    2. Reject the request if a non-cancelled bill already covers the period
    3. Count absent days from attendance (leave or zero meals)
    4. base amount = days present x food cost per day
    5. Due date = now + DUE_DAYS
    6. Allocate the bill number and persist

    Returns:
        Bill instance

    Raises:
        ValidationError, NotFoundError, DuplicateError, PersistenceError
    """
    month, year, food_cost_per_day, fixed_charges = validate_generation_inputs(
        month, year, food_cost_per_day, fixed_charges
    )
    if not mess_id:
        raise ValidationError("Mess ID is required", {'mess_id': ['Mess ID is required.']})

    now = now or timezone.now()

    try:
        if not student_exists(student_id):
            raise NotFoundError(f"Student {student_id} not found")

        if Bill.objects.filter(student_id=student_id, month=month, year=year, is_cancelled=False).exists():
            raise DuplicateError(f"Bill already exists for student {student_id} for {month:02d}/{year}")

        start_date, end_date, total_days = get_billing_period(month, year)
        records = query_attendance(student_id, start_date, end_date)
        days_present, days_absent, meals_consumed = summarize_attendance(records, total_days)
    except DatabaseError as exc:
        raise PersistenceError(f"Could not read student data: {exc}") from exc

    bill = Bill(
        student_id=student_id,
        mess_id=mess_id,
        month=month,
        year=year,
        billing_period_start=start_date,
        billing_period_end=end_date,
        total_days_in_month=total_days,
        days_present=days_present,
        days_absent=days_absent,
        total_meals_consumed=meals_consumed,
        base_amount=days_present * food_cost_per_day,
        fixed_charges=fixed_charges,
        due_date=now + timedelta(days=billing_setting('DUE_DAYS')),
        generated_by=generated_by,
    )
    recompute_bill(bill, now=now, meal_charge_totals=[])
    _insert_bill(bill)

    logger.info(
        "Generated bill %s for student %s: %d/%d days present, total %s",
        bill.bill_number, student_id, days_present, total_days, bill.total_amount,
    )
    return bill


def generate_bills_for_mess(mess_id, month, year, food_cost_per_day=None, fixed_charges=0, generated_by=None, now=None):
    """
    Generate bills for every enrolled student of a mess.

    Failures are isolated per student: they are collected and the batch goes
    on. Invalid batch-wide inputs (month, year, amounts) raise before any
    student is processed.

    Returns:
        dict: {
            'generated': int,
            'errors': int,
            'error_details': [{'student_id', 'error', 'type'}],
            'bills': [Bill],
        }
    """
    month, year, food_cost_per_day, fixed_charges = validate_generation_inputs(
        month, year, food_cost_per_day, fixed_charges
    )
    if not mess_id:
        raise ValidationError("Mess ID is required", {'mess_id': ['Mess ID is required.']})

    try:
        student_ids = list_students(mess_id)
    except DatabaseError as exc:
        raise PersistenceError(f"Could not list students of mess {mess_id}: {exc}") from exc

    bills = []
    error_details = []
    for student_id in student_ids:
        try:
            bill = generate_bill(
                student_id=student_id,
                mess_id=mess_id,
                month=month,
                year=year,
                food_cost_per_day=food_cost_per_day,
                fixed_charges=fixed_charges,
                generated_by=generated_by,
                now=now,
            )
        except BillingError as exc:
            logger.warning("Skipping student %s in mess %s: %s", student_id, mess_id, exc.message)
            error_details.append({'student_id': student_id, 'error': exc.message, 'type': type(exc).__name__})
        except Exception as exc:
            logger.exception("Unexpected error generating bill for student %s in mess %s", student_id, mess_id)
            error_details.append({'student_id': student_id, 'error': str(exc), 'type': type(exc).__name__})
        else:
            bills.append(bill)

    logger.info(
        "Bill generation for mess %s %02d/%d: %d generated, %d errors",
        mess_id, month, year, len(bills), len(error_details),
    )
    return {
        'generated': len(bills),
        'errors': len(error_details),
        'error_details': error_details,
        'bills': bills,
    }
