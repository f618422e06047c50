"""
Discount, late fee and cancellation of individual bills
"""
import logging

from django.db import transaction
from django.utils import timezone

from ..calculations import recompute_bill
from ..exceptions import StateError
from .common import ensure_not_cancelled, lock_bill, non_negative_amount, persistence_guard

logger = logging.getLogger(__name__)


def set_late_fee(bill, amount, reason):
    """Overwrite the late fee and note it in the remarks (no recompute, no save)"""
    bill.late_fee = amount
    note = f"Late Fee Applied: {reason}"
    bill.remarks = f"{bill.remarks}\n{note}" if bill.remarks else note


def apply_discount(bill, amount, reason='', now=None):
    """Set the discount of a bill. Calling it again replaces the previous discount."""
    amount = non_negative_amount(amount, 'discount')
    now = now or timezone.now()

    with persistence_guard('apply discount'), transaction.atomic():
        locked = lock_bill(bill)
        ensure_not_cancelled(locked)
        locked.discount = amount
        locked.discount_reason = reason or ''
        recompute_bill(locked, now=now)
        locked.save()

    bill.refresh_from_db()
    logger.info("Discount of %s applied to bill %s", amount, bill.bill_number)
    return bill


def apply_late_fee(bill, amount, reason='', now=None):
    """Set the late fee of a bill. Calling it again replaces the previous fee."""
    amount = non_negative_amount(amount, 'late_fee')
    now = now or timezone.now()

    with persistence_guard('apply late fee'), transaction.atomic():
        locked = lock_bill(bill)
        ensure_not_cancelled(locked)
        set_late_fee(locked, amount, reason)
        recompute_bill(locked, now=now)
        locked.save()

    bill.refresh_from_db()
    logger.info("Late fee of %s applied to bill %s", amount, bill.bill_number)
    return bill


def cancel_bill(bill, cancelled_by=None, reason='', now=None):
    """
    Soft-delete a bill. It leaves every active query and frees its period,
    so a new bill can be generated for the same student and month.
    """
    now = now or timezone.now()

    with persistence_guard('cancel bill'), transaction.atomic():
        locked = lock_bill(bill)
        if locked.is_cancelled:
            raise StateError(f"Bill {locked.bill_number} is already cancelled")
        locked.is_cancelled = True
        locked.is_active = False
        locked.cancelled_at = now
        locked.cancelled_by = cancelled_by
        locked.cancellation_reason = reason or ''
        locked.save()

    bill.refresh_from_db()
    logger.info("Bill %s cancelled: %s", bill.bill_number, reason or 'no reason given')
    return bill
