from django.contrib import admin
from django.contrib.auth.admin import UserAdmin as BaseUserAdmin
from .models import CustomUser, Attendance


@admin.register(CustomUser)
class CustomUserAdmin(BaseUserAdmin):
    list_display = ['username', 'email', 'role', 'mess_id', 'registration_number', 'is_active', 'date_joined']
    list_filter = ['role', 'is_active', 'is_staff', 'mess_id']
    search_fields = ['username', 'email', 'first_name', 'last_name', 'registration_number']
    fieldsets = BaseUserAdmin.fieldsets + (
        ('Mess Information', {
            'fields': ('role', 'mess_id', 'registration_number', 'hostel_id', 'phone')
        }),
    )
    add_fieldsets = BaseUserAdmin.add_fieldsets + (
        ('Mess Information', {
            'fields': ('role', 'mess_id', 'registration_number', 'hostel_id', 'phone', 'email', 'first_name', 'last_name')
        }),
    )


@admin.register(Attendance)
class AttendanceAdmin(admin.ModelAdmin):
    list_display = ['student', 'mess_id', 'date', 'is_on_leave', 'total_meals_present', 'reason']
    list_filter = ['mess_id', 'is_on_leave', 'date']
    search_fields = ['student__username', 'student__registration_number', 'reason']
    date_hierarchy = 'date'
    raw_id_fields = ['student']
