from django.contrib import admin
from .models import Bill, BillPayment, MealCharge, BillSequence


class BillPaymentInline(admin.TabularInline):
    model = BillPayment
    extra = 0
    fields = ['amount', 'payment_date', 'payment_method', 'transaction_id', 'payment_status', 'received_by', 'remarks']
    readonly_fields = fields
    can_delete = False

    def has_add_permission(self, request, obj=None):
        # Payments go through the payment recorder so the bill stays consistent
        return False


class MealChargeInline(admin.TabularInline):
    model = MealCharge
    extra = 0
    readonly_fields = ['meal_type', 'rate', 'days_consumed', 'total_amount']
    can_delete = False

    def has_add_permission(self, request, obj=None):
        return False


@admin.register(Bill)
class BillAdmin(admin.ModelAdmin):
    list_display = ['bill_number', 'student', 'mess_id', 'month', 'year', 'total_amount', 'amount_paid', 'amount_due', 'payment_status', 'due_date', 'is_cancelled']
    list_filter = ['payment_status', 'is_cancelled', 'mess_id', 'year', 'month']
    search_fields = ['bill_number', 'student__username', 'student__registration_number']
    raw_id_fields = ['student', 'generated_by', 'cancelled_by']
    readonly_fields = [
        'bill_number', 'student', 'mess_id', 'month', 'year',
        'billing_period_start', 'billing_period_end', 'total_days_in_month',
        'days_present', 'days_absent', 'total_meals_consumed',
        'base_amount', 'fixed_charges', 'discount', 'discount_reason', 'late_fee',
        'adjustments', 'adjustment_reason', 'total_amount', 'amount_paid', 'amount_due',
        'payment_status', 'due_date', 'paid_date', 'generated_by',
        'is_active', 'is_cancelled', 'cancelled_at', 'cancelled_by', 'cancellation_reason',
        'created_at', 'updated_at',
    ]
    inlines = [BillPaymentInline, MealChargeInline]

    def has_add_permission(self, request):
        return False

    def has_delete_permission(self, request, obj=None):
        return False


@admin.register(BillPayment)
class BillPaymentAdmin(admin.ModelAdmin):
    list_display = ['bill', 'amount', 'payment_method', 'transaction_id', 'payment_status', 'payment_date']
    list_filter = ['payment_method', 'payment_status', 'payment_date']
    search_fields = ['bill__bill_number', 'transaction_id']
    readonly_fields = ['bill', 'amount', 'payment_date', 'payment_method', 'transaction_id', 'payment_status', 'received_by', 'created_at']


@admin.register(BillSequence)
class BillSequenceAdmin(admin.ModelAdmin):
    list_display = ['mess_id', 'period', 'last_value']
    search_fields = ['mess_id', 'period']
