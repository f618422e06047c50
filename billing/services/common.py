"""
Helpers shared by the billing services
"""
import logging
from contextlib import contextmanager

from django.db import DatabaseError

from ..exceptions import NotFoundError, PersistenceError, StateError, ValidationError
from ..calculations import MAX_MONEY, ZERO, to_money
from ..models import Bill

logger = logging.getLogger(__name__)


@contextmanager
def persistence_guard(action):
    """Surface storage failures as PersistenceError, without retrying"""
    try:
        yield
    except DatabaseError as exc:
        logger.error("Database error while trying to %s: %s", action, exc, exc_info=True)
        raise PersistenceError(f"Could not {action}: {exc}") from exc


def lock_bill(bill_or_id):
    """
    Re-read a bill with a row lock. Must run inside transaction.atomic().
    """
    bill_id = getattr(bill_or_id, 'pk', bill_or_id)
    try:
        return Bill.objects.select_for_update().get(pk=bill_id)
    except Bill.DoesNotExist:
        raise NotFoundError(f"Bill {bill_id} not found")


def ensure_not_cancelled(bill):
    if bill.is_cancelled or not bill.is_active:
        raise StateError(f"Bill {bill.bill_number} is cancelled and can no longer be modified")


def positive_amount(value, field='amount'):
    try:
        amount = to_money(value)
    except (ArithmeticError, ValueError, TypeError):
        raise ValidationError(f"{field} must be a number", {field: ['Enter a number.']})
    if amount <= ZERO:
        raise ValidationError(f"{field} must be greater than zero", {field: ['Must be greater than zero.']})
    return _storable(amount, field)


def non_negative_amount(value, field='amount'):
    try:
        amount = to_money(value)
    except (ArithmeticError, ValueError, TypeError):
        raise ValidationError(f"{field} must be a number", {field: ['Enter a number.']})
    if amount < ZERO:
        raise ValidationError(f"{field} cannot be negative", {field: ['Cannot be negative.']})
    return _storable(amount, field)


def _storable(amount, field):
    if amount > MAX_MONEY:
        raise ValidationError(f"{field} cannot exceed {MAX_MONEY}", {field: [f'Cannot exceed {MAX_MONEY}.']})
    return amount
