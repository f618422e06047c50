"""
Derived-state computation for bills.

``compute_bill_state`` is a pure function of a bill's inputs; ``recompute_bill``
applies its result to a Bill instance. Every service that mutates a bill calls
``recompute_bill`` right before saving it.
"""
from decimal import Decimal
from typing import NamedTuple, Optional, Iterable
from datetime import datetime

from django.utils import timezone

from .exceptions import ValidationError
from .models import Bill

ZERO = Decimal('0.00')
CENT = Decimal('0.01')
# Largest value a DecimalField(max_digits=10, decimal_places=2) column holds
MAX_MONEY = Decimal('99999999.99')

MONEY_FIELDS = (
    'base_amount', 'fixed_charges', 'discount', 'late_fee', 'adjustments',
    'total_amount', 'amount_due', 'amount_paid',
)


def to_money(value) -> Decimal:
    """Coerce ints, strings and Decimals to a two-place Decimal"""
    if value is None:
        return ZERO
    if not isinstance(value, Decimal):
        value = Decimal(str(value))
    return value.quantize(CENT)


class BillState(NamedTuple):
    base_amount: Decimal
    total_amount: Decimal
    amount_due: Decimal
    payment_status: str
    paid_date: Optional[datetime]


def compute_bill_state(
    *,
    base_amount,
    fixed_charges,
    late_fee,
    adjustments,
    discount,
    amount_paid,
    due_date: Optional[datetime],
    paid_date: Optional[datetime] = None,
    meal_charge_totals: Iterable = (),
    now: Optional[datetime] = None,
) -> BillState:
    """
    Recompute the derived fields of a bill.

    Rules are evaluated in order and the first matching status wins, so a
    bill with any payment and a remaining balance is ``partially_paid`` even
    after its due date.
    """
    now = now or timezone.now()
    amount_paid = to_money(amount_paid)

    meal_charge_totals = [to_money(total) for total in meal_charge_totals]
    if meal_charge_totals:
        base_amount = sum(meal_charge_totals, ZERO)
    base_amount = to_money(base_amount)

    total_amount = (
        base_amount
        + to_money(fixed_charges)
        + to_money(late_fee)
        + to_money(adjustments)
        - to_money(discount)
    )
    total_amount = max(ZERO, total_amount)

    amount_due = max(ZERO, total_amount - amount_paid)

    if amount_due <= ZERO and total_amount > ZERO:
        status = Bill.STATUS_PAID
        if paid_date is None and amount_paid > ZERO:
            paid_date = now
    elif amount_paid > ZERO and amount_due > ZERO:
        status = Bill.STATUS_PARTIALLY_PAID
    elif due_date is not None and now > due_date and amount_due > ZERO:
        status = Bill.STATUS_OVERDUE
    elif total_amount == ZERO:
        status = Bill.STATUS_WAIVED
    else:
        status = Bill.STATUS_UNPAID

    return BillState(base_amount, total_amount, amount_due, status, paid_date)


def recompute_bill(bill, now=None, meal_charge_totals=None):
    """Refresh total, due, status and paid date of ``bill`` in place"""
    if meal_charge_totals is None:
        if bill.pk:
            meal_charge_totals = [charge.total_amount for charge in bill.meal_charges.all()]
        else:
            meal_charge_totals = []

    state = compute_bill_state(
        base_amount=bill.base_amount,
        fixed_charges=bill.fixed_charges,
        late_fee=bill.late_fee,
        adjustments=bill.adjustments,
        discount=bill.discount,
        amount_paid=bill.amount_paid,
        due_date=bill.due_date,
        paid_date=bill.paid_date,
        meal_charge_totals=meal_charge_totals,
        now=now,
    )
    bill.base_amount = state.base_amount
    bill.total_amount = state.total_amount
    bill.amount_due = state.amount_due
    bill.payment_status = state.payment_status
    bill.paid_date = state.paid_date
    check_money_limits(bill)
    return bill


def check_money_limits(bill):
    """Reject amounts the money columns cannot store"""
    errors = {
        field: [f'Must not exceed {MAX_MONEY} in absolute value.']
        for field in MONEY_FIELDS
        if abs(to_money(getattr(bill, field))) > MAX_MONEY
    }
    if errors:
        field = next(iter(errors))
        raise ValidationError(f"{field} would exceed the maximum storable amount of {MAX_MONEY}", errors)
