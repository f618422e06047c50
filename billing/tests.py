import json
from datetime import date, datetime, timedelta, timezone as dt_timezone
from decimal import Decimal
from io import StringIO

from django.contrib.auth import get_user_model
from django.core.management import call_command, CommandError
from django.test import TestCase, SimpleTestCase

from hostel.models import Attendance
from .calculations import compute_bill_state, recompute_bill
from .exceptions import DuplicateError, NotFoundError, StateError, ValidationError
from .models import Bill, BillPayment, BillSequence, MealCharge
from .services import (
    generate_bill, generate_bills_for_mess, add_payment, mark_bills_paid,
    apply_discount, apply_late_fee, cancel_bill, apply_late_fees,
    refresh_overdue_statuses, unpaid_bills, overdue_bills, billing_summary,
    pending_summary, payment_records,
)
from .services.generation import _insert_bill, summarize_attendance

User = get_user_model()

# April 2025 has 30 days; bills generated at GENERATED_AT fall due on 16 May 2025
GENERATED_AT = datetime(2025, 5, 1, 10, 0, tzinfo=dt_timezone.utc)
BEFORE_DUE = datetime(2025, 5, 10, 10, 0, tzinfo=dt_timezone.utc)
AFTER_DUE = datetime(2025, 6, 1, 10, 0, tzinfo=dt_timezone.utc)


class BillingTestMixin:
    def create_user(self, username, role='student', mess_id='MESS1', **extra):
        return User.objects.create_user(
            username=username,
            password='testpass123',
            role=role,
            mess_id=mess_id,
            **extra
        )

    def mark_absent(self, student, *days, month=4, year=2025):
        for day in days:
            Attendance.objects.create(
                student=student,
                mess_id=student.mess_id,
                date=date(year, month, day),
                is_on_leave=True,
                total_meals_present=0,
            )

    def generate(self, student, month=4, year=2025, now=GENERATED_AT, **kwargs):
        kwargs.setdefault('food_cost_per_day', 100)
        kwargs.setdefault('fixed_charges', 150)
        return generate_bill(
            student_id=student.pk,
            mess_id=student.mess_id,
            month=month,
            year=year,
            now=now,
            **kwargs
        )


class BillStateTestCase(SimpleTestCase):
    """Derived amounts and status precedence"""

    def state(self, **overrides):
        inputs = {
            'base_amount': Decimal('3000.00'),
            'fixed_charges': Decimal('150.00'),
            'late_fee': Decimal('0'),
            'adjustments': Decimal('0'),
            'discount': Decimal('0'),
            'amount_paid': Decimal('0'),
            'due_date': AFTER_DUE,
            'now': BEFORE_DUE,
        }
        inputs.update(overrides)
        return compute_bill_state(**inputs)

    def test_unpaid_before_due_date(self):
        state = self.state()
        self.assertEqual(state.total_amount, Decimal('3150.00'))
        self.assertEqual(state.amount_due, Decimal('3150.00'))
        self.assertEqual(state.payment_status, Bill.STATUS_UNPAID)
        self.assertIsNone(state.paid_date)

    def test_fully_paid_sets_paid_date(self):
        state = self.state(amount_paid=Decimal('3150'))
        self.assertEqual(state.payment_status, Bill.STATUS_PAID)
        self.assertEqual(state.amount_due, Decimal('0.00'))
        self.assertEqual(state.paid_date, BEFORE_DUE)

    def test_existing_paid_date_is_kept(self):
        state = self.state(amount_paid=Decimal('3150'), paid_date=GENERATED_AT)
        self.assertEqual(state.paid_date, GENERATED_AT)

    def test_partial_payment_past_due_is_partially_paid(self):
        state = self.state(amount_paid=Decimal('1000'), due_date=BEFORE_DUE, now=AFTER_DUE)
        self.assertEqual(state.payment_status, Bill.STATUS_PARTIALLY_PAID)
        self.assertEqual(state.amount_due, Decimal('2150.00'))

    def test_no_payment_past_due_is_overdue(self):
        state = self.state(due_date=BEFORE_DUE, now=AFTER_DUE)
        self.assertEqual(state.payment_status, Bill.STATUS_OVERDUE)

    def test_zero_total_is_waived(self):
        state = self.state(base_amount=Decimal('0'), fixed_charges=Decimal('0'))
        self.assertEqual(state.total_amount, Decimal('0.00'))
        self.assertEqual(state.payment_status, Bill.STATUS_WAIVED)

    def test_total_is_clamped_at_zero(self):
        state = self.state(discount=Decimal('5000'))
        self.assertEqual(state.total_amount, Decimal('0.00'))
        self.assertEqual(state.amount_due, Decimal('0.00'))
        self.assertEqual(state.payment_status, Bill.STATUS_WAIVED)

    def test_all_charges_are_summed(self):
        state = self.state(
            late_fee=Decimal('50'),
            adjustments=Decimal('-25.50'),
            discount=Decimal('100'),
        )
        self.assertEqual(state.total_amount, Decimal('3074.50'))

    def test_overpayment_floors_amount_due(self):
        state = self.state(amount_paid=Decimal('4000'))
        self.assertEqual(state.amount_due, Decimal('0.00'))
        self.assertEqual(state.payment_status, Bill.STATUS_PAID)

    def test_meal_charges_define_base_amount(self):
        state = self.state(meal_charge_totals=[Decimal('900'), Decimal('1200.50')])
        self.assertEqual(state.base_amount, Decimal('2100.50'))
        self.assertEqual(state.total_amount, Decimal('2250.50'))


class AttendanceSummaryTestCase(SimpleTestCase):
    def test_no_records_means_fully_present(self):
        self.assertEqual(summarize_attendance([], 30), (30, 0, 120))

    def test_leave_and_zero_meal_days_are_absent(self):
        records = [
            Attendance(is_on_leave=True, total_meals_present=0),
            Attendance(is_on_leave=False, total_meals_present=0),
            Attendance(is_on_leave=False, total_meals_present=2),
        ]
        days_present, days_absent, meals = summarize_attendance(records, 31)
        self.assertEqual(days_present, 29)
        self.assertEqual(days_absent, 2)
        # 28 unrecorded days with every meal plus one day with two meals
        self.assertEqual(meals, 28 * 4 + 2)


class BillGenerationTestCase(BillingTestMixin, TestCase):
    def setUp(self):
        """Set up test data"""
        self.manager = self.create_user('manager1', role='manager')
        self.student = self.create_user('student1', registration_number='REG001')

    def test_generate_bill_from_attendance(self):
        self.mark_absent(self.student, 3, 4, 5)

        bill = self.generate(self.student, generated_by=self.manager)

        self.assertEqual(bill.bill_number, 'MESS1-202504-0001')
        self.assertEqual(bill.billing_period_start, date(2025, 4, 1))
        self.assertEqual(bill.billing_period_end, date(2025, 4, 30))
        self.assertEqual(bill.total_days_in_month, 30)
        self.assertEqual(bill.days_present, 27)
        self.assertEqual(bill.days_absent, 3)
        self.assertEqual(bill.total_meals_consumed, 27 * 4)
        self.assertEqual(bill.base_amount, Decimal('2700.00'))
        self.assertEqual(bill.total_amount, Decimal('2850.00'))
        self.assertEqual(bill.amount_due, Decimal('2850.00'))
        self.assertEqual(bill.amount_paid, Decimal('0.00'))
        self.assertEqual(bill.payment_status, Bill.STATUS_UNPAID)
        self.assertEqual(bill.due_date, GENERATED_AT + timedelta(days=15))
        self.assertEqual(bill.generated_by, self.manager)

    def test_attendance_outside_period_is_ignored(self):
        self.mark_absent(self.student, 30, month=3)
        self.mark_absent(self.student, 1, month=5)

        bill = self.generate(self.student)
        self.assertEqual(bill.days_absent, 0)
        self.assertEqual(bill.total_amount, Decimal('3150.00'))

    def test_food_cost_defaults_from_settings(self):
        with self.settings(MESS_BILLING={'DEFAULT_FOOD_COST_PER_DAY': Decimal('80.00')}):
            bill = self.generate(self.student, food_cost_per_day=None, fixed_charges=0)
        self.assertEqual(bill.base_amount, Decimal('2400.00'))

    def test_zero_total_bill_is_waived(self):
        bill = self.generate(self.student, food_cost_per_day=0, fixed_charges=0)
        self.assertEqual(bill.total_amount, Decimal('0.00'))
        self.assertEqual(bill.payment_status, Bill.STATUS_WAIVED)

    def test_duplicate_generation_is_rejected(self):
        self.generate(self.student)
        with self.assertRaises(DuplicateError):
            self.generate(self.student)
        self.assertEqual(Bill.objects.filter(student=self.student).count(), 1)

    def test_storage_rejects_concurrent_duplicate(self):
        """A bill inserted past the existence check still collides on the period"""
        existing = self.generate(self.student)
        racing = Bill(
            student=self.student,
            mess_id='MESS1',
            month=4,
            year=2025,
            billing_period_start=existing.billing_period_start,
            billing_period_end=existing.billing_period_end,
            total_days_in_month=30,
            due_date=existing.due_date,
        )
        recompute_bill(racing, now=GENERATED_AT, meal_charge_totals=[])

        with self.assertRaises(DuplicateError):
            _insert_bill(racing)
        self.assertEqual(Bill.objects.filter(student=self.student).count(), 1)

    def test_cancelled_bill_frees_the_period(self):
        first = self.generate(self.student)
        cancel_bill(first, cancelled_by=self.manager, reason='Wrong attendance', now=GENERATED_AT)

        second = self.generate(self.student)

        self.assertNotEqual(first.pk, second.pk)
        self.assertEqual(second.bill_number, 'MESS1-202504-0002')
        self.assertIsNone(first.active_period_key)
        self.assertEqual(Bill.objects.filter(student=self.student).count(), 2)

    def test_bill_number_collision_is_retried(self):
        other = self.create_user('student2')
        self.generate(self.student)
        # Simulate a counter that fell behind the bills already issued
        BillSequence.objects.filter(mess_id='MESS1', period='202504').update(last_value=0)

        bill = self.generate(other)
        self.assertEqual(bill.bill_number, 'MESS1-202504-0002')

    def test_invalid_month_is_rejected(self):
        with self.assertRaises(ValidationError):
            self.generate(self.student, month=13)
        with self.assertRaises(ValidationError):
            self.generate(self.student, month=None)

    def test_base_amount_beyond_storable_amount_is_rejected(self):
        with self.assertRaises(ValidationError):
            self.generate(self.student, food_cost_per_day=Decimal('99999999.99'))
        self.assertFalse(Bill.objects.exists())

    def test_negative_food_cost_is_rejected(self):
        with self.assertRaises(ValidationError):
            self.generate(self.student, food_cost_per_day=-10)

    def test_unknown_student_is_not_found(self):
        with self.assertRaises(NotFoundError):
            generate_bill(student_id=99999, mess_id='MESS1', month=4, year=2025, food_cost_per_day=100)

    def test_staff_cannot_be_billed(self):
        with self.assertRaises(NotFoundError):
            self.generate(self.manager)
        self.assertFalse(Bill.objects.exists())


class BatchGenerationTestCase(BillingTestMixin, TestCase):
    def setUp(self):
        """Set up test data"""
        self.manager = self.create_user('manager1', role='manager')
        self.students = [self.create_user(f'student{i}') for i in range(1, 4)]
        self.create_user('outsider', mess_id='MESS2')
        self.create_user('former', is_active=False)

    def test_generates_one_bill_per_enrolled_student(self):
        result = generate_bills_for_mess('MESS1', 4, 2025, food_cost_per_day=100, generated_by=self.manager, now=GENERATED_AT)

        self.assertEqual(result['generated'], 3)
        self.assertEqual(result['errors'], 0)
        self.assertEqual(
            sorted(bill.student_id for bill in result['bills']),
            sorted(student.pk for student in self.students),
        )
        self.assertFalse(Bill.objects.filter(mess_id='MESS2').exists())

    def test_failures_are_isolated_per_student(self):
        self.generate(self.students[1])

        result = generate_bills_for_mess('MESS1', 4, 2025, food_cost_per_day=100, now=GENERATED_AT)

        self.assertEqual(result['generated'], 2)
        self.assertEqual(result['errors'], 1)
        detail = result['error_details'][0]
        self.assertEqual(detail['student_id'], self.students[1].pk)
        self.assertEqual(detail['type'], 'DuplicateError')

    def test_invalid_batch_input_raises(self):
        with self.assertRaises(ValidationError):
            generate_bills_for_mess('MESS1', 0, 2025)
        self.assertFalse(Bill.objects.exists())


class PaymentTestCase(BillingTestMixin, TestCase):
    def setUp(self):
        """Set up test data"""
        self.manager = self.create_user('manager1', role='manager')
        self.student = self.create_user('student1')
        self.bill = self.generate(self.student)

    def test_partial_payment(self):
        payment = add_payment(self.bill, 1000, 'cash', received_by=self.manager, now=BEFORE_DUE)

        self.assertEqual(payment.payment_status, 'success')
        self.assertEqual(payment.payment_date, BEFORE_DUE)
        self.assertEqual(self.bill.amount_paid, Decimal('1000.00'))
        self.assertEqual(self.bill.amount_due, Decimal('2150.00'))
        self.assertEqual(self.bill.payment_status, Bill.STATUS_PARTIALLY_PAID)
        self.assertIsNone(self.bill.paid_date)

    def test_partial_payment_stays_partial_after_due_date(self):
        add_payment(self.bill, 1000, 'cash', now=AFTER_DUE)
        self.assertEqual(self.bill.payment_status, Bill.STATUS_PARTIALLY_PAID)

    def test_full_payment_in_instalments(self):
        add_payment(self.bill, 1150, 'upi', transaction_id='UPI123', now=BEFORE_DUE)
        add_payment(self.bill, 2000, 'cash', now=AFTER_DUE)

        self.assertEqual(self.bill.payment_status, Bill.STATUS_PAID)
        self.assertEqual(self.bill.amount_due, Decimal('0.00'))
        self.assertEqual(self.bill.paid_date, AFTER_DUE)
        self.assertEqual(
            [payment.amount for payment in self.bill.payment_history],
            [Decimal('1150.00'), Decimal('2000.00')],
        )

    def test_payments_beyond_storable_amount_are_rejected(self):
        add_payment(self.bill, Decimal('99999999.99'), 'cash', now=BEFORE_DUE)
        with self.assertRaises(ValidationError):
            add_payment(self.bill, Decimal('99999999.99'), 'cash', now=BEFORE_DUE)
        with self.assertRaises(ValidationError):
            add_payment(self.bill, Decimal('100000000.00'), 'cash', now=BEFORE_DUE)

        bill = Bill.objects.get(pk=self.bill.pk)
        self.assertEqual(bill.amount_paid, Decimal('99999999.99'))
        self.assertEqual(bill.payments.count(), 1)

    def test_overpayment_is_kept(self):
        add_payment(self.bill, 4000, 'cash', now=BEFORE_DUE)
        self.assertEqual(self.bill.amount_paid, Decimal('4000.00'))
        self.assertEqual(self.bill.amount_due, Decimal('0.00'))
        self.assertEqual(self.bill.payment_status, Bill.STATUS_PAID)

    def test_invalid_payments_are_rejected(self):
        with self.assertRaises(ValidationError):
            add_payment(self.bill, 0, 'cash')
        with self.assertRaises(ValidationError):
            add_payment(self.bill, 'abc', 'cash')
        with self.assertRaises(ValidationError):
            add_payment(self.bill, 100, 'cheque')
        self.assertFalse(BillPayment.objects.exists())

    def test_cancelled_bill_rejects_payments(self):
        cancel_bill(self.bill, cancelled_by=self.manager)
        with self.assertRaises(StateError):
            add_payment(self.bill, 100, 'cash')

    def test_mark_bills_paid(self):
        other = self.create_user('student2')
        other_bill = self.generate(other)
        add_payment(other_bill, 3150, 'cash')

        result = mark_bills_paid([self.bill.pk, other_bill.pk, 99999], 'online', transaction_id='TXN1', now=BEFORE_DUE)

        self.assertEqual(result['paid'], 1)
        self.assertEqual(result['errors'], 2)
        self.assertEqual(
            [detail['type'] for detail in result['error_details']],
            ['StateError', 'NotFoundError'],
        )
        self.bill.refresh_from_db()
        self.assertEqual(self.bill.payment_status, Bill.STATUS_PAID)
        self.assertEqual(self.bill.payments.get().remarks, 'Full settlement')

    def test_mark_bills_paid_respects_scope(self):
        other = self.create_user('student2')
        other_bill = self.generate(other)

        result = mark_bills_paid([other_bill.pk], 'online', scope=Bill.objects.filter(student=self.student))

        self.assertEqual(result['paid'], 0)
        self.assertEqual(result['error_details'][0]['type'], 'NotFoundError')


class AdjustmentTestCase(BillingTestMixin, TestCase):
    def setUp(self):
        """Set up test data"""
        self.manager = self.create_user('manager1', role='manager')
        self.student = self.create_user('student1')
        self.bill = self.generate(self.student)

    def test_discount_overwrites(self):
        apply_discount(self.bill, 100, 'Festival', now=BEFORE_DUE)
        apply_discount(self.bill, 200, 'Merit', now=BEFORE_DUE)

        self.assertEqual(self.bill.discount, Decimal('200.00'))
        self.assertEqual(self.bill.discount_reason, 'Merit')
        self.assertEqual(self.bill.total_amount, Decimal('2950.00'))

    def test_late_fee_overwrites_and_notes_remark(self):
        apply_late_fee(self.bill, 50, 'Paid late', now=BEFORE_DUE)
        apply_late_fee(self.bill, 75, 'Revised', now=BEFORE_DUE)

        self.assertEqual(self.bill.late_fee, Decimal('75.00'))
        self.assertEqual(self.bill.total_amount, Decimal('3225.00'))
        self.assertIn('Late Fee Applied: Paid late', self.bill.remarks)
        self.assertIn('Late Fee Applied: Revised', self.bill.remarks)

    def test_negative_amounts_are_rejected(self):
        with self.assertRaises(ValidationError):
            apply_discount(self.bill, -1)
        with self.assertRaises(ValidationError):
            apply_late_fee(self.bill, -1)

    def test_cancel_bill(self):
        cancel_bill(self.bill, cancelled_by=self.manager, reason='Duplicate entry', now=BEFORE_DUE)

        self.assertTrue(self.bill.is_cancelled)
        self.assertFalse(self.bill.is_active)
        self.assertEqual(self.bill.cancelled_at, BEFORE_DUE)
        self.assertEqual(self.bill.cancelled_by, self.manager)
        self.assertEqual(self.bill.cancellation_reason, 'Duplicate entry')
        with self.assertRaises(StateError):
            cancel_bill(self.bill)
        with self.assertRaises(StateError):
            apply_discount(self.bill, 10)

    def test_missing_bill_is_not_found(self):
        with self.assertRaises(NotFoundError):
            apply_discount(99999, 10)


class LateFeeSchedulerTestCase(BillingTestMixin, TestCase):
    def setUp(self):
        """Set up test data"""
        self.students = [self.create_user(f'student{i}') for i in range(1, 5)]
        self.bills = [self.generate(student) for student in self.students]

    def test_fee_is_applied_once(self):
        self.assertEqual(apply_late_fees(now=AFTER_DUE), 4)
        self.assertEqual(apply_late_fees(now=AFTER_DUE), 0)

        bill = Bill.objects.get(pk=self.bills[0].pk)
        self.assertEqual(bill.late_fee, Decimal('50.00'))
        self.assertEqual(bill.total_amount, Decimal('3200.00'))
        self.assertEqual(bill.payment_status, Bill.STATUS_OVERDUE)
        self.assertIn('Late Fee Applied: 16 days overdue', bill.remarks)

    def test_only_outstanding_overdue_bills_are_charged(self):
        add_payment(self.bills[0], 3150, 'cash', now=BEFORE_DUE)
        add_payment(self.bills[1], 500, 'cash', now=BEFORE_DUE)
        cancel_bill(self.bills[2])

        self.assertEqual(apply_late_fees(now=AFTER_DUE), 2)

        fees = dict(Bill.objects.values_list('pk', 'late_fee'))
        self.assertEqual(fees[self.bills[0].pk], Decimal('0.00'))
        self.assertEqual(fees[self.bills[1].pk], Decimal('50.00'))
        self.assertEqual(fees[self.bills[2].pk], Decimal('0.00'))
        self.assertEqual(fees[self.bills[3].pk], Decimal('50.00'))

    def test_bills_not_yet_due_are_skipped(self):
        self.assertEqual(apply_late_fees(now=BEFORE_DUE), 0)

    def test_manual_late_fee_blocks_scheduler(self):
        apply_late_fee(self.bills[0], 20, 'Manual', now=BEFORE_DUE)
        self.assertEqual(apply_late_fees(now=AFTER_DUE), 3)
        self.assertEqual(Bill.objects.get(pk=self.bills[0].pk).late_fee, Decimal('20.00'))

    def test_smallest_fee_is_applied_once(self):
        self.assertEqual(apply_late_fees(amount=Decimal('0.01'), now=AFTER_DUE), 4)
        self.assertEqual(apply_late_fees(amount=Decimal('0.01'), now=AFTER_DUE), 0)
        bill = Bill.objects.get(pk=self.bills[0].pk)
        self.assertEqual(bill.remarks.count('Late Fee Applied'), 1)

    def test_zero_fee_is_rejected(self):
        with self.assertRaises(ValidationError):
            apply_late_fees(amount=0, now=AFTER_DUE)
        self.assertFalse(Bill.objects.exclude(remarks='').exists())

    def test_custom_amount_and_dry_run(self):
        self.assertEqual(apply_late_fees(amount=75, now=AFTER_DUE, dry_run=True), 4)
        self.assertFalse(Bill.objects.exclude(late_fee=0).exists())

        apply_late_fees(amount=75, now=AFTER_DUE)
        self.assertEqual(Bill.objects.filter(late_fee=Decimal('75.00')).count(), 4)

    def test_refresh_overdue_statuses(self):
        add_payment(self.bills[0], 100, 'cash', now=BEFORE_DUE)
        self.assertEqual(refresh_overdue_statuses(now=AFTER_DUE), 3)
        self.assertEqual(Bill.objects.filter(payment_status=Bill.STATUS_OVERDUE).count(), 3)
        self.assertEqual(refresh_overdue_statuses(now=AFTER_DUE), 0)


class SummaryTestCase(BillingTestMixin, TestCase):
    def setUp(self):
        """Set up test data"""
        self.first = self.create_user('student1')
        self.second = self.create_user('student2')
        self.third = self.create_user('student3')
        self.mark_absent(self.first, 3, 4, 5)

        self.paid_bill = self.generate(self.first)
        add_payment(self.paid_bill, 2850, 'cash', now=BEFORE_DUE)
        self.unpaid_bill = self.generate(self.second)
        self.cancelled_bill = self.generate(self.third)
        cancel_bill(self.cancelled_bill)
        self.later_bill = self.generate(self.second, month=5, now=datetime(2025, 6, 1, tzinfo=dt_timezone.utc))

    def test_billing_summary(self):
        summary = billing_summary('MESS1', 4, 2025)

        self.assertEqual(summary['total_bills'], 2)
        self.assertEqual(summary['total_amount'], Decimal('6000.00'))
        self.assertEqual(summary['total_collected'], Decimal('2850.00'))
        self.assertEqual(summary['total_due'], Decimal('3150.00'))
        self.assertEqual(summary['paid_bills'], 1)
        self.assertEqual(summary['unpaid_bills'], 1)
        self.assertEqual(summary['overdue_bills'], 0)

    def test_empty_period_summary(self):
        summary = billing_summary('MESS1', 1, 2025)
        self.assertEqual(summary['total_bills'], 0)
        self.assertEqual(summary['total_amount'], Decimal('0.00'))

    def test_unpaid_bills_sorted_by_due_date(self):
        bills = unpaid_bills('MESS1')
        self.assertEqual([bill.pk for bill in bills], [self.unpaid_bill.pk, self.later_bill.pk])
        self.assertEqual(unpaid_bills('MESS2'), [])

    def test_overdue_bills(self):
        now = datetime(2025, 6, 5, tzinfo=dt_timezone.utc)
        self.assertEqual([bill.pk for bill in overdue_bills('MESS1', now=now)], [self.unpaid_bill.pk])

    def test_pending_summary(self):
        summary = pending_summary(self.second)
        self.assertEqual(summary['pending_bills'], 2)
        self.assertEqual(summary['total_pending_amount'], Decimal('6400.00'))

    def test_payment_records(self):
        records = payment_records(month=4, year=2025)
        self.assertEqual({bill.pk for bill in records}, {self.paid_bill.pk, self.unpaid_bill.pk})
        self.assertEqual([bill.pk for bill in payment_records(status='paid')], [self.paid_bill.pk])


class MealChargeTestCase(BillingTestMixin, TestCase):
    def test_meal_charges_override_base_amount_on_recompute(self):
        student = self.create_user('student1')
        bill = self.generate(student)
        MealCharge.objects.create(bill=bill, meal_type='lunch', rate=Decimal('40'), days_consumed=30, total_amount=Decimal('1200'))
        MealCharge.objects.create(bill=bill, meal_type='dinner', rate=Decimal('50'), days_consumed=30, total_amount=Decimal('1500'))

        apply_discount(bill, 0, now=BEFORE_DUE)

        self.assertEqual(bill.base_amount, Decimal('2700.00'))
        self.assertEqual(bill.total_amount, Decimal('2850.00'))


class BillingAPITestCase(BillingTestMixin, TestCase):
    def setUp(self):
        """Set up test data"""
        self.admin = self.create_user('admin1', role='admin', mess_id='')
        self.manager = self.create_user('manager1', role='manager')
        self.other_manager = self.create_user('manager2', role='manager', mess_id='MESS2')
        self.student = self.create_user('student1', first_name='Asha', last_name='Rao')
        self.other_student = self.create_user('student2')

    def post_json(self, url, payload, method='post'):
        return getattr(self.client, method)(url, data=json.dumps(payload), content_type='application/json')

    def generate_via_api(self, **overrides):
        payload = {'messId': 'MESS1', 'month': 4, 'year': 2025, 'foodCostPerDay': 100, 'fixedCharges': 150}
        payload.update(overrides)
        return self.post_json('/api/bills/generate-all', payload)

    def test_generate_all(self):
        self.client.force_login(self.manager)
        response = self.generate_via_api()

        self.assertEqual(response.status_code, 201)
        body = response.json()
        self.assertTrue(body['success'])
        self.assertEqual(body['data']['generated'], 2)
        self.assertEqual(body['data']['errors'], 0)
        self.assertEqual(Bill.objects.get(student=self.student).generated_by, self.manager)

    def test_generate_all_defaults_to_managers_mess(self):
        self.client.force_login(self.manager)
        response = self.generate_via_api(messId='')
        self.assertEqual(response.json()['data']['generated'], 2)

    def test_generate_all_reports_duplicates(self):
        self.client.force_login(self.manager)
        self.generate_via_api()
        body = self.generate_via_api().json()
        self.assertEqual(body['data']['generated'], 0)
        self.assertEqual(body['data']['errors'], 2)

    def test_generate_all_validation(self):
        self.client.force_login(self.manager)
        response = self.generate_via_api(month=13)
        self.assertEqual(response.status_code, 400)
        body = response.json()
        self.assertFalse(body['success'])
        self.assertIn('month', body['errors'])

    def test_generate_all_access(self):
        response = self.generate_via_api()
        self.assertEqual(response.status_code, 401)

        self.client.force_login(self.student)
        self.assertEqual(self.generate_via_api().status_code, 403)

        self.client.force_login(self.other_manager)
        self.assertEqual(self.generate_via_api().status_code, 404)

        self.client.force_login(self.admin)
        self.assertEqual(self.generate_via_api().status_code, 201)

    def test_malformed_json(self):
        self.client.force_login(self.manager)
        response = self.client.post('/api/bills/generate-all', data='{not json', content_type='application/json')
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()['message'], 'Invalid JSON body')

    def test_wrong_method(self):
        self.client.force_login(self.manager)
        self.assertEqual(self.client.get('/api/bills/generate-all').status_code, 405)

    def test_my_bills_and_detail(self):
        bill = self.generate(self.student)
        self.generate(self.other_student)
        self.client.force_login(self.student)

        body = self.client.get('/api/bills/my-bills').json()
        self.assertEqual(len(body['data']), 1)
        data = body['data'][0]
        self.assertEqual(data['bill_number'], bill.bill_number)
        self.assertEqual(data['total_amount'], 3150.0)
        self.assertEqual(data['student']['name'], 'Asha Rao')
        self.assertEqual(data['payment_history'], [])

        self.assertEqual(self.client.get(f'/api/bills/{bill.pk}').status_code, 200)
        other_bill = Bill.objects.get(student=self.other_student)
        self.assertEqual(self.client.get(f'/api/bills/{other_bill.pk}').status_code, 404)

    def test_my_pending(self):
        self.generate(self.student)
        self.client.force_login(self.student)
        body = self.client.get('/api/bills/my-bills/pending').json()
        self.assertEqual(body['data'], {'pending_bills': 1, 'total_pending_amount': 3150.0})

    def test_add_payment(self):
        bill = self.generate(self.student)
        self.client.force_login(self.manager)

        response = self.post_json(f'/api/bills/{bill.pk}/payment', {'amount': 1000, 'paymentMethod': 'cash', 'transactionId': 'R-1'})

        self.assertEqual(response.status_code, 200)
        data = response.json()['data']
        self.assertEqual(data['amount_paid'], 1000.0)
        self.assertEqual(data['amount_due'], 2150.0)
        self.assertEqual(data['payment_status'], 'partially_paid')
        self.assertEqual(data['payment_history'][0]['transaction_id'], 'R-1')
        self.assertEqual(data['payment_history'][0]['received_by'], self.manager.pk)

    def test_add_payment_errors(self):
        bill = self.generate(self.student)

        self.client.force_login(self.manager)
        self.assertEqual(self.post_json(f'/api/bills/{bill.pk}/payment', {'amount': -5, 'paymentMethod': 'cash'}).status_code, 400)
        self.assertEqual(self.post_json('/api/bills/99999/payment', {'amount': 5, 'paymentMethod': 'cash'}).status_code, 404)

        self.client.force_login(self.other_manager)
        self.assertEqual(self.post_json(f'/api/bills/{bill.pk}/payment', {'amount': 5, 'paymentMethod': 'cash'}).status_code, 404)

        cancel_bill(bill)
        self.client.force_login(self.manager)
        self.assertEqual(self.post_json(f'/api/bills/{bill.pk}/payment', {'amount': 5, 'paymentMethod': 'cash'}).status_code, 409)

    def test_discount_late_fee_and_cancel(self):
        bill = self.generate(self.student)
        self.client.force_login(self.manager)

        data = self.post_json(f'/api/bills/{bill.pk}/discount', {'amount': 150, 'reason': 'Festival'}).json()['data']
        self.assertEqual(data['total_amount'], 3000.0)

        data = self.post_json(f'/api/bills/{bill.pk}/late-fee', {'amount': 50, 'reason': 'Late'}).json()['data']
        self.assertEqual(data['total_amount'], 3050.0)

        data = self.post_json(f'/api/bills/{bill.pk}/cancel', {'reason': 'Recalculate'}).json()['data']
        self.assertTrue(data['is_cancelled'])
        self.assertEqual(self.post_json(f'/api/bills/{bill.pk}/cancel', {}).status_code, 409)

    def test_mark_paid(self):
        own = self.generate(self.student)
        other = self.generate(self.other_student)
        self.client.force_login(self.student)

        response = self.post_json('/api/bills/mark-paid', {'billIds': [own.pk, other.pk], 'paymentMethod': 'upi'}, method='put')

        body = response.json()
        self.assertEqual(response.status_code, 200)
        self.assertEqual(body['data']['paid'], 1)
        self.assertEqual(body['data']['errors'], 1)
        own.refresh_from_db()
        other.refresh_from_db()
        self.assertEqual(own.payment_status, Bill.STATUS_PAID)
        self.assertEqual(other.payment_status, Bill.STATUS_UNPAID)

    def test_mark_paid_requires_ids(self):
        self.client.force_login(self.student)
        response = self.post_json('/api/bills/mark-paid', {'billIds': []}, method='put')
        self.assertEqual(response.status_code, 400)

    def test_unpaid_overdue_and_summary(self):
        self.generate(self.student)
        self.generate(self.other_student, now=datetime(2025, 1, 1, tzinfo=dt_timezone.utc), month=12, year=2024)
        self.client.force_login(self.manager)

        unpaid = self.client.get('/api/bills/unpaid/MESS1').json()['data']
        self.assertEqual(len(unpaid), 2)

        overdue = self.client.get('/api/bills/overdue/MESS1').json()['data']
        self.assertEqual(len(overdue), 2)

        summary = self.client.get('/api/bills/summary/MESS1/4/2025').json()['data']
        self.assertEqual(summary['total_bills'], 1)
        self.assertEqual(summary['total_amount'], 3150.0)

        self.client.force_login(self.other_manager)
        self.assertEqual(self.client.get('/api/bills/unpaid/MESS1').status_code, 404)
        self.assertEqual(self.client.get('/api/bills/summary/MESS1/4/2025').status_code, 404)

    def test_payment_records_are_confined_to_managers_mess(self):
        self.generate(self.student)
        outsider = self.create_user('student3', mess_id='MESS2')
        self.generate(outsider)

        self.client.force_login(self.other_manager)
        data = self.client.get('/api/bills/payments', {'messId': 'MESS1'}).json()['data']
        self.assertEqual([bill['mess_id'] for bill in data], ['MESS2'])

        self.client.force_login(self.admin)
        data = self.client.get('/api/bills/payments', {'month': 4, 'year': 2025}).json()['data']
        self.assertEqual(len(data), 2)

    def test_apply_late_fees_endpoint(self):
        bill = self.generate(self.student)
        manual = self.generate(self.other_student)
        apply_late_fee(manual, 10, 'Manual', now=BEFORE_DUE)
        self.client.force_login(self.manager)
        self.assertEqual(self.post_json('/api/bills/apply-late-fees', {}).status_code, 403)

        self.client.force_login(self.admin)
        self.assertEqual(self.post_json('/api/bills/apply-late-fees', {'amount': 0}).status_code, 400)

        response = self.post_json('/api/bills/apply-late-fees', {'amount': 25})
        self.assertEqual(response.json()['data'], {'updated': 1, 'marked_overdue': 1})
        bill.refresh_from_db()
        manual.refresh_from_db()
        self.assertEqual(bill.late_fee, Decimal('25.00'))
        self.assertEqual(manual.late_fee, Decimal('10.00'))
        self.assertEqual(manual.payment_status, Bill.STATUS_OVERDUE)

    def test_add_payment_beyond_storable_amount(self):
        bill = self.generate(self.student)
        self.client.force_login(self.manager)
        payload = {'amount': '99999999.99', 'paymentMethod': 'cash'}

        self.assertEqual(self.post_json(f'/api/bills/{bill.pk}/payment', payload).status_code, 200)
        response = self.post_json(f'/api/bills/{bill.pk}/payment', payload)

        self.assertEqual(response.status_code, 400)
        self.assertFalse(response.json()['success'])
        self.assertEqual(self.client.get(f'/api/bills/{bill.pk}').json()['data']['amount_paid'], 99999999.99)


class ManagementCommandTestCase(BillingTestMixin, TestCase):
    def setUp(self):
        """Set up test data"""
        self.manager = self.create_user('manager1', role='manager')
        self.create_user('student1')
        self.create_user('student2')

    def test_generate_monthly_bills(self):
        out = StringIO()
        call_command(
            'generate_monthly_bills',
            '--mess-id', 'MESS1', '--month', '4', '--year', '2025',
            '--food-cost', '100', '--fixed-charges', '150',
            '--generated-by', 'manager1',
            stdout=out,
        )
        self.assertIn('Generated: 2', out.getvalue())
        self.assertEqual(Bill.objects.filter(generated_by=self.manager).count(), 2)

    def test_generate_monthly_bills_dry_run(self):
        out = StringIO()
        call_command(
            'generate_monthly_bills', '--mess-id', 'MESS1', '--month', '4', '--year', '2025',
            '--generated-by', 'manager1', '--dry-run', stdout=out,
        )
        self.assertIn('2 bills would be generated', out.getvalue())
        self.assertFalse(Bill.objects.exists())

    def test_generate_monthly_bills_requires_generator(self):
        with self.assertRaises(CommandError):
            call_command('generate_monthly_bills', '--mess-id', 'MESS1', '--month', '4', '--year', '2025', stdout=StringIO())
        with self.assertRaises(CommandError):
            call_command(
                'generate_monthly_bills', '--mess-id', 'MESS1', '--month', '4', '--year', '2025',
                '--generated-by', 'nobody', stdout=StringIO(),
            )
        self.assertFalse(Bill.objects.exists())

    def test_apply_late_fees_command(self):
        for student in User.objects.filter(role='student'):
            self.generate(student)

        out = StringIO()
        call_command('apply_late_fees', '--amount', '40', stdout=out)
        self.assertIn('Late fee applied to 2 bills', out.getvalue())

        out = StringIO()
        call_command('apply_late_fees', stdout=out)
        self.assertIn('Late fee applied to 0 bills', out.getvalue())
        self.assertEqual(Bill.objects.filter(late_fee=Decimal('40.00')).count(), 2)
