"""
JSON API for the billing engine
Every response uses the {success, data?, message?, error?} envelope
Managers are confined to their own mess; students only see their own bills
"""
import json
import logging
import re

from django.http import JsonResponse
from django.views.decorators.csrf import csrf_exempt
from django.views.decorators.http import require_http_methods

from hostel.decorators import api_login_required, api_role_required

from .exceptions import BillingError, NotFoundError, ValidationError
from .forms import (
    GenerateBillsForm, PaymentForm, AdjustmentForm, CancelBillForm,
    MarkPaidForm, LateFeeRunForm, PaymentRecordFilterForm, StudentBillFilterForm,
)
from .models import Bill
from . import services

logger = logging.getLogger(__name__)

_CAMEL_BOUNDARY = re.compile(r'(?<!^)(?=[A-Z])')


def success_response(data=None, message=None, status=200):
    payload = {'success': True}
    if data is not None:
        payload['data'] = data
    if message:
        payload['message'] = message
    return JsonResponse(payload, status=status)


def error_response(message, status=400, errors=None):
    payload = {'success': False, 'message': message, 'error': message}
    if errors:
        payload['errors'] = errors
    return JsonResponse(payload, status=status)


def billing_error_response(exc):
    if exc.status_code >= 500:
        logger.error("Billing request failed: %s", exc.message, exc_info=True)
    return error_response(exc.message, status=exc.status_code, errors=exc.errors)


def to_snake_case(key):
    """messId -> mess_id; keys already in snake_case are left alone"""
    return _CAMEL_BOUNDARY.sub('_', key).lower()


def parse_json_body(request):
    """Decode a JSON object body, accepting camelCase or snake_case keys"""
    if not request.body:
        return {}
    try:
        data = json.loads(request.body)
    except (ValueError, UnicodeDecodeError):
        raise ValidationError("Invalid JSON body")
    if not isinstance(data, dict):
        raise ValidationError("JSON body must be an object")
    return {to_snake_case(key): value for key, value in data.items()}


def clean_form(form_class, data):
    """Validate ``data`` with a form, raising ValidationError on failure"""
    form = form_class(data)
    if not form.is_valid():
        errors = {field: [str(msg) for msg in messages] for field, messages in form.errors.items()}
        field, messages = next(iter(errors.items()))
        raise ValidationError(f"{field}: {messages[0]}", errors)
    return form.cleaned_data


def money(value):
    return float(value) if value is not None else None


def timestamp(value):
    return value.isoformat() if value else None


def serialize_payment(payment):
    return {
        'id': payment.id,
        'amount': money(payment.amount),
        'payment_date': timestamp(payment.payment_date),
        'payment_method': payment.payment_method,
        'transaction_id': payment.transaction_id,
        'payment_status': payment.payment_status,
        'remarks': payment.remarks,
        'received_by': payment.received_by_id,
    }


def serialize_bill(bill, include_payments=True):
    student = bill.student
    data = {
        'id': bill.id,
        'bill_number': bill.bill_number,
        'student_id': bill.student_id,
        'student': {
            'id': student.id,
            'name': student.get_full_name() or student.username,
            'registration_number': student.registration_number,
            'hostel_id': student.hostel_id,
        },
        'mess_id': bill.mess_id,
        'month': bill.month,
        'year': bill.year,
        'billing_period': {
            'start_date': bill.billing_period_start.isoformat(),
            'end_date': bill.billing_period_end.isoformat(),
        },
        'total_days_in_month': bill.total_days_in_month,
        'days_present': bill.days_present,
        'days_absent': bill.days_absent,
        'total_meals_consumed': bill.total_meals_consumed,
        'meal_charges': [
            {
                'meal_type': charge.meal_type,
                'rate': money(charge.rate),
                'days_consumed': charge.days_consumed,
                'total_amount': money(charge.total_amount),
            }
            for charge in bill.meal_charges.all()
        ],
        'base_amount': money(bill.base_amount),
        'fixed_charges': money(bill.fixed_charges),
        'discount': money(bill.discount),
        'discount_reason': bill.discount_reason,
        'late_fee': money(bill.late_fee),
        'adjustments': money(bill.adjustments),
        'adjustment_reason': bill.adjustment_reason,
        'total_amount': money(bill.total_amount),
        'amount_paid': money(bill.amount_paid),
        'amount_due': money(bill.amount_due),
        'payment_status': bill.payment_status,
        'due_date': timestamp(bill.due_date),
        'paid_date': timestamp(bill.paid_date),
        'remarks': bill.remarks,
        'generated_by': bill.generated_by_id,
        'is_active': bill.is_active,
        'is_cancelled': bill.is_cancelled,
        'cancelled_at': timestamp(bill.cancelled_at),
        'cancellation_reason': bill.cancellation_reason,
        'created_at': timestamp(bill.created_at),
        'updated_at': timestamp(bill.updated_at),
    }
    if include_payments:
        data['payment_history'] = [serialize_payment(payment) for payment in bill.payment_history]
    return data


def serialize_summary(summary):
    data = dict(summary)
    for key in ('total_amount', 'total_collected', 'total_due', 'total_pending_amount'):
        if key in data:
            data[key] = money(data[key])
    return data


def verify_mess_access(user, mess_id):
    # Not found rather than forbidden so foreign mess ids are not disclosed
    if not user.can_access_mess(mess_id):
        raise NotFoundError(f"Mess {mess_id} not found")


def visible_bills(user):
    """Bills the user may read"""
    queryset = Bill.objects.select_related('student')
    if user.is_admin():
        return queryset
    if user.is_manager():
        return queryset.filter(mess_id=user.mess_id) if user.mess_id else queryset.none()
    return queryset.filter(student=user)


def manageable_bill(user, pk):
    """A bill the user may modify (admin, or manager of its mess)"""
    queryset = visible_bills(user) if user.can_manage_billing() else Bill.objects.none()
    bill = queryset.filter(pk=pk).first()
    if bill is None:
        raise NotFoundError(f"Bill {pk} not found")
    return bill


@csrf_exempt
@require_http_methods(["POST"])
@api_role_required('admin', 'manager')
def api_generate_all(request):
    """Generate the bills of every student of a mess for one month"""
    try:
        data = parse_json_body(request)
        if not data.get('mess_id') and request.user_mess_id:
            data['mess_id'] = request.user_mess_id
        cleaned = clean_form(GenerateBillsForm, data)
        verify_mess_access(request.user, cleaned['mess_id'])

        result = services.generate_bills_for_mess(
            mess_id=cleaned['mess_id'],
            month=cleaned['month'],
            year=cleaned['year'],
            food_cost_per_day=cleaned['food_cost_per_day'],
            fixed_charges=cleaned['fixed_charges'],
            generated_by=request.user,
        )
    except BillingError as exc:
        return billing_error_response(exc)

    return success_response(
        data={
            'generated': result['generated'],
            'errors': result['errors'],
            'error_details': result['error_details'],
        },
        message=f"Generated {result['generated']} bills with {result['errors']} errors",
        status=201 if result['generated'] else 200,
    )


@require_http_methods(["GET"])
@api_login_required
def api_my_bills(request):
    """Bills of the requesting student, newest period first"""
    try:
        cleaned = clean_form(StudentBillFilterForm, request.GET)
        bills = services.student_bills(request.user, month=cleaned['month'], year=cleaned['year'])
    except BillingError as exc:
        return billing_error_response(exc)
    return success_response(data=[serialize_bill(bill) for bill in bills])


@require_http_methods(["GET"])
@api_login_required
def api_my_pending(request):
    try:
        summary = services.pending_summary(request.user)
    except BillingError as exc:
        return billing_error_response(exc)
    return success_response(data=serialize_summary(summary))


@require_http_methods(["GET"])
@api_login_required
def api_bill_detail(request, pk):
    bill = visible_bills(request.user).filter(pk=pk).first()
    if bill is None:
        return error_response(f"Bill {pk} not found", status=404)
    return success_response(data=serialize_bill(bill))


@csrf_exempt
@require_http_methods(["POST"])
@api_role_required('admin', 'manager')
def api_add_payment(request, pk):
    """Record a payment against a bill and return the updated bill"""
    try:
        data = parse_json_body(request)
        cleaned = clean_form(PaymentForm, data)
        bill = manageable_bill(request.user, pk)
        services.add_payment(
            bill,
            cleaned['amount'],
            cleaned['payment_method'],
            transaction_id=cleaned['transaction_id'],
            received_by=request.user,
            remarks=cleaned['remarks'],
        )
    except BillingError as exc:
        return billing_error_response(exc)
    return success_response(data=serialize_bill(bill), message="Payment recorded")


@csrf_exempt
@require_http_methods(["POST"])
@api_role_required('admin', 'manager')
def api_apply_discount(request, pk):
    try:
        cleaned = clean_form(AdjustmentForm, parse_json_body(request))
        bill = manageable_bill(request.user, pk)
        services.apply_discount(bill, cleaned['amount'], cleaned['reason'])
    except BillingError as exc:
        return billing_error_response(exc)
    return success_response(data=serialize_bill(bill), message="Discount applied")


@csrf_exempt
@require_http_methods(["POST"])
@api_role_required('admin', 'manager')
def api_apply_late_fee(request, pk):
    try:
        cleaned = clean_form(AdjustmentForm, parse_json_body(request))
        bill = manageable_bill(request.user, pk)
        services.apply_late_fee(bill, cleaned['amount'], cleaned['reason'])
    except BillingError as exc:
        return billing_error_response(exc)
    return success_response(data=serialize_bill(bill), message="Late fee applied")


@csrf_exempt
@require_http_methods(["POST"])
@api_role_required('admin', 'manager')
def api_cancel_bill(request, pk):
    try:
        cleaned = clean_form(CancelBillForm, parse_json_body(request))
        bill = manageable_bill(request.user, pk)
        services.cancel_bill(bill, cancelled_by=request.user, reason=cleaned['reason'])
    except BillingError as exc:
        return billing_error_response(exc)
    return success_response(data=serialize_bill(bill), message="Bill cancelled")


@csrf_exempt
@require_http_methods(["PUT"])
@api_login_required
def api_mark_paid(request):
    """Settle the full balance of several bills; students may only settle their own"""
    try:
        cleaned = clean_form(MarkPaidForm, parse_json_body(request))
        result = services.mark_bills_paid(
            cleaned['bill_ids'],
            cleaned['payment_method'],
            transaction_id=cleaned['transaction_id'],
            received_by=request.user,
            scope=visible_bills(request.user),
        )
    except BillingError as exc:
        return billing_error_response(exc)
    return success_response(
        data=result,
        message=f"Marked {result['paid']} bills as paid",
    )


@csrf_exempt
@require_http_methods(["POST"])
@api_role_required('admin')
def api_run_late_fees(request):
    """Run the late-fee scheduler once, then mark the remaining stale bills overdue"""
    try:
        cleaned = clean_form(LateFeeRunForm, parse_json_body(request))
        updated = services.apply_late_fees(amount=cleaned['amount'])
        marked = services.refresh_overdue_statuses()
    except BillingError as exc:
        return billing_error_response(exc)
    return success_response(
        data={'updated': updated, 'marked_overdue': marked},
        message=f"Late fee applied to {updated} bills",
    )


@require_http_methods(["GET"])
@api_role_required('admin', 'manager')
def api_payment_records(request):
    try:
        cleaned = clean_form(PaymentRecordFilterForm, {to_snake_case(k): v for k, v in request.GET.items()})
        mess_id = cleaned['mess_id']
        if request.user.is_manager():
            mess_id = request.user.mess_id
            if not mess_id:
                raise NotFoundError("You are not assigned to a mess")
        bills = services.payment_records(
            month=cleaned['month'],
            year=cleaned['year'],
            status=cleaned['status'],
            mess_id=mess_id,
        )
    except BillingError as exc:
        return billing_error_response(exc)
    return success_response(data=[serialize_bill(bill) for bill in bills])


@require_http_methods(["GET"])
@api_role_required('admin', 'manager')
def api_unpaid_bills(request, mess_id):
    try:
        verify_mess_access(request.user, mess_id)
        bills = services.unpaid_bills(mess_id)
    except BillingError as exc:
        return billing_error_response(exc)
    return success_response(data=[serialize_bill(bill, include_payments=False) for bill in bills])


@require_http_methods(["GET"])
@api_role_required('admin', 'manager')
def api_overdue_bills(request, mess_id):
    try:
        verify_mess_access(request.user, mess_id)
        bills = services.overdue_bills(mess_id)
    except BillingError as exc:
        return billing_error_response(exc)
    return success_response(data=[serialize_bill(bill, include_payments=False) for bill in bills])


@require_http_methods(["GET"])
@api_role_required('admin', 'manager')
def api_billing_summary(request, mess_id, month, year):
    try:
        verify_mess_access(request.user, mess_id)
        summary = services.billing_summary(mess_id, month, year)
    except BillingError as exc:
        return billing_error_response(exc)
    return success_response(data=serialize_summary(summary))
