"""
Payment recorder: manual payments against bills
"""
import logging

from django.db import transaction
from django.utils import timezone

from ..calculations import recompute_bill, ZERO
from ..exceptions import BillingError, NotFoundError, StateError, ValidationError
from ..models import Bill, BillPayment
from .common import ensure_not_cancelled, lock_bill, persistence_guard, positive_amount

logger = logging.getLogger(__name__)

PAYMENT_METHODS = {choice for choice, _ in BillPayment.PAYMENT_METHOD_CHOICES}


def add_payment(bill, amount, payment_method, transaction_id='', received_by=None, remarks='', now=None):
    """
    Record a successful payment and refresh the bill's derived fields.

    The amount is not capped at the balance: an overpayment keeps raising
    amount_paid while amount_due stays at zero.

    Returns:
        BillPayment instance; ``bill`` is refreshed in place.
    """
    amount = positive_amount(amount)
    if payment_method not in PAYMENT_METHODS:
        raise ValidationError(
            f"Invalid payment method '{payment_method}'",
            {'payment_method': [f"Choose one of: {', '.join(sorted(PAYMENT_METHODS))}."]},
        )
    now = now or timezone.now()

    with persistence_guard('record payment'), transaction.atomic():
        locked = lock_bill(bill)
        ensure_not_cancelled(locked)

        payment = BillPayment.objects.create(
            bill=locked,
            amount=amount,
            payment_date=now,
            payment_method=payment_method,
            transaction_id=transaction_id or '',
            payment_status='success',
            remarks=remarks or '',
            received_by=received_by,
        )
        locked.amount_paid = locked.amount_paid + amount
        recompute_bill(locked, now=now)
        locked.save()

    bill.refresh_from_db()
    logger.info(
        "Recorded %s payment of %s on bill %s (status %s)",
        payment_method, amount, locked.bill_number, locked.payment_status,
    )
    return payment


def mark_bills_paid(bill_ids, payment_method, transaction_id='', received_by=None, scope=None, now=None):
    """
    Settle the full balance of several bills at once.

    ``scope`` is a Bill queryset restricting which bills the caller may pay;
    ids outside it are reported as not found. Per-bill failures are collected
    and do not stop the remaining bills.

    Returns:
        dict: {'paid': int, 'errors': int, 'error_details': [{'bill_id', 'error', 'type'}]}
    """
    if scope is None:
        scope = Bill.objects.all()

    paid = 0
    error_details = []
    for bill_id in bill_ids:
        try:
            with persistence_guard(f"load bill {bill_id}"):
                bill = scope.filter(pk=bill_id).first()
            if bill is None:
                raise NotFoundError(f"Bill {bill_id} not found")
            ensure_not_cancelled(bill)
            if bill.amount_due <= ZERO:
                raise StateError(f"Bill {bill.bill_number} has nothing due")
            add_payment(
                bill,
                bill.amount_due,
                payment_method,
                transaction_id=transaction_id,
                received_by=received_by,
                remarks='Full settlement',
                now=now,
            )
        except BillingError as exc:
            logger.warning("Could not mark bill %s as paid: %s", bill_id, exc.message)
            error_details.append({'bill_id': bill_id, 'error': exc.message, 'type': type(exc).__name__})
        else:
            paid += 1

    return {'paid': paid, 'errors': len(error_details), 'error_details': error_details}
