"""
URL configuration for messbilling project.

The billing engine is exposed as a JSON API under /api/bills/. The Django
admin stays at /django-admin/ for staff maintenance of bills, attendance and
users.
"""
from django.contrib import admin
from django.urls import path, include

urlpatterns = [
    path('django-admin/', admin.site.urls),

    # Billing API endpoints
    path('api/bills/', include('billing.api_urls')),
]
