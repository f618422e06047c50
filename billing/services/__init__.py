from .generation import generate_bill, generate_bills_for_mess, get_billing_period
from .payments import add_payment, mark_bills_paid
from .adjustments import apply_discount, apply_late_fee, cancel_bill
from .late_fees import apply_late_fees, find_late_fee_candidates, refresh_overdue_statuses
from .summaries import (
    unpaid_bills, overdue_bills, billing_summary,
    student_bills, pending_summary, payment_records,
)

__all__ = [
    'generate_bill', 'generate_bills_for_mess', 'get_billing_period',
    'add_payment', 'mark_bills_paid',
    'apply_discount', 'apply_late_fee', 'cancel_bill',
    'apply_late_fees', 'find_late_fee_candidates', 'refresh_overdue_statuses',
    'unpaid_bills', 'overdue_bills', 'billing_summary',
    'student_bills', 'pending_summary', 'payment_records',
]
