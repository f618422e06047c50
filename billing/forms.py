from decimal import Decimal

from django import forms
from django.core.exceptions import ValidationError

from .models import Bill, BillPayment
from .services.generation import MIN_BILLING_YEAR


class IdListField(forms.Field):
    """Accepts a JSON list of positive integer ids"""
    default_error_messages = {
        'invalid': 'Enter a list of bill ids.',
        'invalid_id': "'%(value)s' is not a valid bill id.",
    }

    def to_python(self, value):
        if value in self.empty_values:
            return []
        if not isinstance(value, (list, tuple)):
            raise ValidationError(self.error_messages['invalid'], code='invalid')
        ids = []
        for item in value:
            try:
                item_id = int(item)
            except (TypeError, ValueError):
                raise ValidationError(self.error_messages['invalid_id'], code='invalid_id', params={'value': item})
            if item_id < 1:
                raise ValidationError(self.error_messages['invalid_id'], code='invalid_id', params={'value': item})
            if item_id not in ids:
                ids.append(item_id)
        return ids


class GenerateBillsForm(forms.Form):
    mess_id = forms.CharField(max_length=50)
    month = forms.IntegerField(min_value=1, max_value=12)
    year = forms.IntegerField(min_value=MIN_BILLING_YEAR)
    food_cost_per_day = forms.DecimalField(max_digits=10, decimal_places=2, min_value=Decimal('0'), required=False)
    fixed_charges = forms.DecimalField(max_digits=10, decimal_places=2, min_value=Decimal('0'), required=False)

    def clean_fixed_charges(self):
        return self.cleaned_data.get('fixed_charges') or Decimal('0.00')


class PaymentForm(forms.Form):
    amount = forms.DecimalField(max_digits=10, decimal_places=2, min_value=Decimal('0.01'))
    payment_method = forms.ChoiceField(choices=BillPayment.PAYMENT_METHOD_CHOICES)
    transaction_id = forms.CharField(max_length=100, required=False)
    remarks = forms.CharField(max_length=500, required=False)


class AdjustmentForm(forms.Form):
    """Discount or late fee set on a single bill"""
    amount = forms.DecimalField(max_digits=10, decimal_places=2, min_value=Decimal('0'))
    reason = forms.CharField(max_length=255, required=False)


class CancelBillForm(forms.Form):
    reason = forms.CharField(max_length=255, required=False)


class MarkPaidForm(forms.Form):
    bill_ids = IdListField(error_messages={'required': 'Select at least one bill.'})
    payment_method = forms.ChoiceField(choices=BillPayment.PAYMENT_METHOD_CHOICES, required=False)
    transaction_id = forms.CharField(max_length=100, required=False)

    def clean_payment_method(self):
        return self.cleaned_data.get('payment_method') or 'online'


class LateFeeRunForm(forms.Form):
    amount = forms.DecimalField(max_digits=10, decimal_places=2, min_value=Decimal('0.01'), required=False)


class PaymentRecordFilterForm(forms.Form):
    month = forms.IntegerField(min_value=1, max_value=12, required=False)
    year = forms.IntegerField(min_value=MIN_BILLING_YEAR, required=False)
    status = forms.ChoiceField(choices=Bill.PAYMENT_STATUS_CHOICES, required=False)
    mess_id = forms.CharField(max_length=50, required=False)


class StudentBillFilterForm(forms.Form):
    month = forms.IntegerField(min_value=1, max_value=12, required=False)
    year = forms.IntegerField(min_value=MIN_BILLING_YEAR, required=False)
