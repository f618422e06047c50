"""
Read-only billing queries: unpaid/overdue lists and per-mess summaries
"""
from decimal import Decimal

from django.db import DatabaseError
from django.db.models import Sum, Count, Q
from django.utils import timezone

from ..exceptions import PersistenceError, ValidationError
from ..models import Bill


def _read(queryset, action):
    try:
        return list(queryset)
    except DatabaseError as exc:
        raise PersistenceError(f"Could not {action}: {exc}") from exc


def unpaid_bills(mess_id):
    """Outstanding bills of a mess, earliest due date first"""
    queryset = (
        Bill.objects.outstanding()
        .for_mess(mess_id)
        .select_related('student')
        .order_by('due_date', 'bill_number')
    )
    return _read(queryset, f"list unpaid bills of mess {mess_id}")


def overdue_bills(mess_id, now=None):
    """Outstanding bills of a mess whose due date has passed"""
    now = now or timezone.now()
    queryset = (
        Bill.objects.outstanding()
        .for_mess(mess_id)
        .filter(due_date__lt=now)
        .select_related('student')
        .order_by('due_date', 'bill_number')
    )
    return _read(queryset, f"list overdue bills of mess {mess_id}")


def billing_summary(mess_id, month, year):
    """
    Financial summary of a mess for one month over active bills.

    A period without bills yields zero counts and totals.
    """
    if not 1 <= int(month) <= 12:
        raise ValidationError("Month must be between 1 and 12", {'month': ['Month must be between 1 and 12.']})

    try:
        totals = (
            Bill.objects.active()
            .for_mess(mess_id)
            .for_period(month, year)
            .aggregate(
                total_bills=Count('id'),
                total_amount=Sum('total_amount'),
                total_collected=Sum('amount_paid'),
                total_due=Sum('amount_due'),
                paid_bills=Count('id', filter=Q(payment_status=Bill.STATUS_PAID)),
                unpaid_bills=Count('id', filter=Q(payment_status=Bill.STATUS_UNPAID)),
                partially_paid_bills=Count('id', filter=Q(payment_status=Bill.STATUS_PARTIALLY_PAID)),
                overdue_bills=Count('id', filter=Q(payment_status=Bill.STATUS_OVERDUE)),
                waived_bills=Count('id', filter=Q(payment_status=Bill.STATUS_WAIVED)),
            )
        )
    except DatabaseError as exc:
        raise PersistenceError(f"Could not summarise mess {mess_id}: {exc}") from exc

    for key in ('total_amount', 'total_collected', 'total_due'):
        totals[key] = totals[key] or Decimal('0.00')
    totals.update({'mess_id': mess_id, 'month': int(month), 'year': int(year)})
    return totals


def student_bills(student, month=None, year=None):
    """Active bills of one student, newest period first"""
    queryset = Bill.objects.active().filter(student=student).prefetch_related('payments')
    if month:
        queryset = queryset.filter(month=month)
    if year:
        queryset = queryset.filter(year=year)
    return _read(queryset.order_by('-year', '-month'), f"list bills of student {student.pk}")


def pending_summary(student):
    """Count and total balance of a student's outstanding bills"""
    try:
        totals = Bill.objects.outstanding().filter(student=student).aggregate(
            pending_bills=Count('id'),
            total_pending_amount=Sum('amount_due'),
        )
    except DatabaseError as exc:
        raise PersistenceError(f"Could not summarise bills of student {student.pk}: {exc}") from exc
    totals['total_pending_amount'] = totals['total_pending_amount'] or Decimal('0.00')
    return totals


def payment_records(month=None, year=None, status=None, mess_id=None):
    """Non-cancelled bills with their payment history, most recently updated first"""
    queryset = (
        Bill.objects.filter(is_cancelled=False)
        .select_related('student')
        .prefetch_related('payments')
    )
    if month:
        queryset = queryset.filter(month=month)
    if year:
        queryset = queryset.filter(year=year)
    if status:
        queryset = queryset.filter(payment_status=status)
    if mess_id:
        queryset = queryset.filter(mess_id=mess_id)
    return _read(queryset.order_by('-updated_at', '-pk'), "list payment records")
