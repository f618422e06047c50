"""
Late-fee scheduler

Externally triggered (management command or admin endpoint). Applies the
configured late fee once to every overdue bill that has none yet.
"""
import logging

from django.db import transaction, DatabaseError
from django.utils import timezone

from ..calculations import recompute_bill, ZERO
from ..conf import billing_setting
from ..exceptions import BillingError
from ..models import Bill
from .adjustments import set_late_fee
from .common import lock_bill, positive_amount

logger = logging.getLogger(__name__)


def find_late_fee_candidates(now=None):
    """Active bills past their due date, still outstanding and without a late fee"""
    now = now or timezone.now()
    return (
        Bill.objects.outstanding()
        .filter(due_date__lt=now, late_fee=ZERO)
        .order_by('due_date', 'pk')
    )


def days_overdue(due_date, now):
    return max(0, (now - due_date).days)


def _apply_late_fee_once(bill_id, amount, now):
    """
    Apply the fee to one bill, re-checking the guard under a row lock so two
    concurrent runs cannot both charge it. Returns True when the fee was applied.
    """
    with transaction.atomic():
        bill = lock_bill(bill_id)
        if (
            bill.is_cancelled
            or not bill.is_active
            or bill.late_fee != ZERO
            or bill.payment_status not in Bill.OUTSTANDING_STATUSES
            or bill.due_date >= now
        ):
            return False

        overdue = days_overdue(bill.due_date, now)
        set_late_fee(bill, amount, f"{overdue} days overdue")
        recompute_bill(bill, now=now)
        bill.save()

    logger.info("Late fee of %s applied to bill %s (%d days overdue)", amount, bill.bill_number, overdue)
    return True


def apply_late_fees(amount=None, now=None, dry_run=False):
    """
    Run the scheduler once.

    Bills that cannot be updated are logged and skipped; the run continues.

    Returns:
        int: number of bills updated (or that would be, with ``dry_run``)
    """
    if amount is None:
        amount = billing_setting('LATE_FEE_AMOUNT')
    amount = positive_amount(amount, 'late_fee')
    now = now or timezone.now()

    candidate_ids = list(find_late_fee_candidates(now).values_list('pk', flat=True))
    if dry_run:
        logger.info("Late fee dry run: %d bills would be charged %s", len(candidate_ids), amount)
        return len(candidate_ids)

    updated = 0
    for bill_id in candidate_ids:
        try:
            if _apply_late_fee_once(bill_id, amount, now):
                updated += 1
        except (BillingError, DatabaseError):
            logger.error("Could not apply late fee to bill %s", bill_id, exc_info=True)

    logger.info("Late fee run finished: %d of %d candidate bills updated", updated, len(candidate_ids))
    return updated


def refresh_overdue_statuses(now=None):
    """
    Move unpaid bills whose due date has passed to ``overdue``.

    Status is otherwise only recomputed when a bill is mutated.

    Returns:
        int: number of bills whose status changed
    """
    now = now or timezone.now()
    stale_ids = list(
        Bill.objects.active()
        .filter(payment_status=Bill.STATUS_UNPAID, due_date__lt=now)
        .values_list('pk', flat=True)
    )

    changed = 0
    for bill_id in stale_ids:
        try:
            with transaction.atomic():
                bill = lock_bill(bill_id)
                previous = bill.payment_status
                recompute_bill(bill, now=now)
                if bill.payment_status != previous:
                    bill.save()
                    changed += 1
        except (BillingError, DatabaseError):
            logger.error("Could not refresh status of bill %s", bill_id, exc_info=True)

    if changed:
        logger.info("Marked %d bills as overdue", changed)
    return changed
