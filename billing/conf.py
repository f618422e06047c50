"""
Billing tunables, overridable through settings.MESS_BILLING
"""
from decimal import Decimal
from django.conf import settings

DEFAULTS = {
    'DUE_DAYS': 15,
    'LATE_FEE_AMOUNT': Decimal('50.00'),
    'DEFAULT_FOOD_COST_PER_DAY': Decimal('100.00'),
    'BILL_NUMBER_RETRIES': 3,
}


def billing_setting(name):
    overrides = getattr(settings, 'MESS_BILLING', None) or {}
    return overrides.get(name, DEFAULTS[name])
