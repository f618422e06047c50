"""
API URL patterns for the billing engine, mounted under /api/bills/
"""
from django.urls import path
from . import api_views

urlpatterns = [
    # Generation
    path('generate-all', api_views.api_generate_all, name='api_bills_generate_all'),

    # Student self-service
    path('my-bills', api_views.api_my_bills, name='api_bills_my_bills'),
    path('my-bills/pending', api_views.api_my_pending, name='api_bills_my_pending'),
    path('mark-paid', api_views.api_mark_paid, name='api_bills_mark_paid'),

    # Staff
    path('payments', api_views.api_payment_records, name='api_bills_payment_records'),
    path('apply-late-fees', api_views.api_run_late_fees, name='api_bills_apply_late_fees'),
    path('unpaid/<str:mess_id>', api_views.api_unpaid_bills, name='api_bills_unpaid'),
    path('overdue/<str:mess_id>', api_views.api_overdue_bills, name='api_bills_overdue'),
    path('summary/<str:mess_id>/<int:month>/<int:year>', api_views.api_billing_summary, name='api_bills_summary'),

    # Single bill
    path('<int:pk>', api_views.api_bill_detail, name='api_bill_detail'),
    path('<int:pk>/payment', api_views.api_add_payment, name='api_bill_add_payment'),
    path('<int:pk>/discount', api_views.api_apply_discount, name='api_bill_discount'),
    path('<int:pk>/late-fee', api_views.api_apply_late_fee, name='api_bill_late_fee'),
    path('<int:pk>/cancel', api_views.api_cancel_bill, name='api_bill_cancel'),
]
