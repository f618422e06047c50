from decimal import Decimal

from django.conf import settings
from django.core.validators import MinValueValidator, MaxValueValidator
from django.db import models
from django.utils import timezone


class BillQuerySet(models.QuerySet):
    def active(self):
        """Bills that count in every active-set query (not cancelled)"""
        return self.filter(is_active=True, is_cancelled=False)

    def outstanding(self):
        return self.active().filter(payment_status__in=Bill.OUTSTANDING_STATUSES)

    def for_mess(self, mess_id):
        return self.filter(mess_id=mess_id)

    def for_period(self, month, year):
        return self.filter(month=month, year=year)


class Bill(models.Model):
    """Monthly mess bill of one student, generated from attendance"""
    STATUS_UNPAID = 'unpaid'
    STATUS_PARTIALLY_PAID = 'partially_paid'
    STATUS_PAID = 'paid'
    STATUS_OVERDUE = 'overdue'
    STATUS_WAIVED = 'waived'

    PAYMENT_STATUS_CHOICES = [
        (STATUS_UNPAID, 'Unpaid'),
        (STATUS_PARTIALLY_PAID, 'Partially Paid'),
        (STATUS_PAID, 'Paid'),
        (STATUS_OVERDUE, 'Overdue'),
        (STATUS_WAIVED, 'Waived'),
    ]

    OUTSTANDING_STATUSES = (STATUS_UNPAID, STATUS_PARTIALLY_PAID, STATUS_OVERDUE)

    bill_number = models.CharField(max_length=64, unique=True, editable=False, help_text="<messId>-<yyyymm>-<seq>")
    student = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.PROTECT, related_name='bills')
    mess_id = models.CharField(max_length=50, db_index=True)
    month = models.PositiveSmallIntegerField(validators=[MinValueValidator(1), MaxValueValidator(12)])
    year = models.PositiveSmallIntegerField(validators=[MinValueValidator(2020)])

    # Billing period
    billing_period_start = models.DateField()
    billing_period_end = models.DateField()
    total_days_in_month = models.PositiveSmallIntegerField(validators=[MinValueValidator(28), MaxValueValidator(31)])

    # Attendance-derived
    days_present = models.PositiveSmallIntegerField(default=0)
    days_absent = models.PositiveSmallIntegerField(default=0)
    total_meals_consumed = models.PositiveIntegerField(default=0)

    # Charges
    base_amount = models.DecimalField(max_digits=10, decimal_places=2, default=Decimal('0.00'), validators=[MinValueValidator(Decimal('0.00'))])
    fixed_charges = models.DecimalField(max_digits=10, decimal_places=2, default=Decimal('0.00'), validators=[MinValueValidator(Decimal('0.00'))])
    discount = models.DecimalField(max_digits=10, decimal_places=2, default=Decimal('0.00'), validators=[MinValueValidator(Decimal('0.00'))])
    discount_reason = models.CharField(max_length=255, blank=True)
    late_fee = models.DecimalField(max_digits=10, decimal_places=2, default=Decimal('0.00'), validators=[MinValueValidator(Decimal('0.00'))])
    adjustments = models.DecimalField(max_digits=10, decimal_places=2, default=Decimal('0.00'), help_text="Signed manual correction")
    adjustment_reason = models.CharField(max_length=255, blank=True)

    # Derived by billing.calculations.recompute_bill, never set directly
    total_amount = models.DecimalField(max_digits=10, decimal_places=2, default=Decimal('0.00'), editable=False)
    amount_due = models.DecimalField(max_digits=10, decimal_places=2, default=Decimal('0.00'), editable=False)
    payment_status = models.CharField(max_length=20, choices=PAYMENT_STATUS_CHOICES, default=STATUS_UNPAID, editable=False)

    amount_paid = models.DecimalField(max_digits=10, decimal_places=2, default=Decimal('0.00'), editable=False)
    due_date = models.DateTimeField()
    paid_date = models.DateTimeField(null=True, blank=True)
    remarks = models.TextField(blank=True, max_length=1000)

    generated_by = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True, blank=True, related_name='generated_bills')

    # Lifecycle
    is_active = models.BooleanField(default=True)
    is_cancelled = models.BooleanField(default=False)
    cancelled_at = models.DateTimeField(null=True, blank=True)
    cancelled_by = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True, blank=True, related_name='cancelled_bills')
    cancellation_reason = models.CharField(max_length=255, blank=True)

    # "<student>:<yyyy>-<mm>" while the bill is live, NULL once cancelled
    active_period_key = models.CharField(max_length=64, unique=True, null=True, blank=True, editable=False)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    objects = BillQuerySet.as_manager()

    class Meta:
        db_table = 'bills'
        ordering = ['-year', '-month', 'bill_number']
        indexes = [
            models.Index(fields=['student', 'month', 'year'], name='bills_student_period_idx'),
            models.Index(fields=['mess_id', 'month', 'year'], name='bills_mess_period_idx'),
            models.Index(fields=['payment_status', 'due_date'], name='bills_status_due_idx'),
        ]

    def __str__(self):
        return f"Bill {self.bill_number} - {self.payment_status}"

    @staticmethod
    def make_period_key(student_id, month, year):
        return f"{student_id}:{year:04d}-{month:02d}"

    def save(self, *args, **kwargs):
        if self.is_cancelled:
            self.active_period_key = None
        else:
            self.active_period_key = self.make_period_key(self.student_id, self.month, self.year)
        super().save(*args, **kwargs)

    @property
    def billing_period(self):
        return self.billing_period_start, self.billing_period_end

    @property
    def payment_history(self):
        return self.payments.all()

    def is_past_due(self, now=None):
        return (now or timezone.now()) > self.due_date


class BillPayment(models.Model):
    """Append-only payment event recorded against a bill"""
    PAYMENT_METHOD_CHOICES = [
        ('cash', 'Cash'),
        ('online', 'Online'),
        ('upi', 'UPI'),
        ('card', 'Card'),
        ('bank_transfer', 'Bank Transfer'),
        ('other', 'Other'),
    ]

    STATUS_CHOICES = [
        ('success', 'Success'),
        ('pending', 'Pending'),
        ('failed', 'Failed'),
    ]

    bill = models.ForeignKey(Bill, on_delete=models.CASCADE, related_name='payments')
    amount = models.DecimalField(max_digits=10, decimal_places=2, validators=[MinValueValidator(Decimal('0.01'))])
    payment_date = models.DateTimeField(default=timezone.now)
    payment_method = models.CharField(max_length=20, choices=PAYMENT_METHOD_CHOICES)
    transaction_id = models.CharField(max_length=100, blank=True, help_text="UPI reference, card slip, bank reference, etc.")
    payment_status = models.CharField(max_length=20, choices=STATUS_CHOICES, default='success')
    remarks = models.CharField(max_length=500, blank=True)
    received_by = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True, blank=True, related_name='received_bill_payments')
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = 'bill_payments'
        ordering = ['payment_date', 'id']
        indexes = [
            models.Index(fields=['bill', 'payment_date'], name='bill_payments_bill_date_idx'),
        ]

    def __str__(self):
        return f"Payment of {self.amount} on {self.bill.bill_number} ({self.payment_method})"


class MealCharge(models.Model):
    """Meal-wise charge line; when a bill has any, they define its base amount"""
    MEAL_TYPE_CHOICES = [
        ('breakfast', 'Breakfast'),
        ('lunch', 'Lunch'),
        ('evening_snacks', 'Evening Snacks'),
        ('dinner', 'Dinner'),
    ]

    bill = models.ForeignKey(Bill, on_delete=models.CASCADE, related_name='meal_charges')
    meal_type = models.CharField(max_length=20, choices=MEAL_TYPE_CHOICES)
    rate = models.DecimalField(max_digits=10, decimal_places=2, validators=[MinValueValidator(Decimal('0.00'))])
    days_consumed = models.PositiveSmallIntegerField(default=0)
    total_amount = models.DecimalField(max_digits=10, decimal_places=2, validators=[MinValueValidator(Decimal('0.00'))])

    class Meta:
        db_table = 'bill_meal_charges'
        unique_together = ['bill', 'meal_type']
        ordering = ['bill', 'meal_type']

    def __str__(self):
        return f"{self.get_meal_type_display()}: {self.days_consumed} x {self.rate}"


class BillSequence(models.Model):
    """Per mess and month counter backing bill number allocation"""
    mess_id = models.CharField(max_length=50)
    period = models.CharField(max_length=6, help_text="yyyymm")
    last_value = models.PositiveIntegerField(default=0)

    class Meta:
        db_table = 'bill_sequences'
        unique_together = ['mess_id', 'period']

    def __str__(self):
        return f"{self.mess_id}-{self.period}: {self.last_value}"
