from django.db import models
from django.contrib.auth.models import AbstractUser
from django.core.validators import MaxValueValidator


MEALS_PER_DAY = 4


class CustomUser(AbstractUser):
    """Custom user model with mess association and roles"""
    ROLE_CHOICES = [
        ('admin', 'Hostel Admin'),
        ('manager', 'Mess Manager'),
        ('student', 'Student'),
    ]

    role = models.CharField(max_length=20, choices=ROLE_CHOICES, default='student')
    mess_id = models.CharField(max_length=50, blank=True, db_index=True, help_text="Mess the user dines at (students) or manages (managers)")
    registration_number = models.CharField(max_length=50, blank=True)
    hostel_id = models.CharField(max_length=50, blank=True)
    phone = models.CharField(max_length=20, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'users'
        ordering = ['username']
        indexes = [
            models.Index(fields=['mess_id', 'role'], name='users_mess_role_idx'),
        ]

    def __str__(self):
        return f"{self.username} ({self.get_role_display()})"

    def is_admin(self):
        """Hostel admins and Django superusers can act on every mess"""
        return self.role == 'admin' or self.is_superuser

    def is_manager(self):
        return self.role == 'manager'

    def is_student(self):
        return self.role == 'student'

    def can_manage_billing(self):
        """Admins and mess managers generate bills and record payments"""
        return self.is_admin() or self.is_manager()

    def can_access_mess(self, mess_id):
        """Managers are confined to their own mess; admins see all of them"""
        if self.is_admin():
            return True
        if self.is_manager():
            return bool(self.mess_id) and self.mess_id == mess_id
        return False


class Attendance(models.Model):
    """Daily mess attendance; a day with no record counts as present"""
    student = models.ForeignKey(CustomUser, on_delete=models.CASCADE, related_name='attendance_records')
    mess_id = models.CharField(max_length=50, db_index=True)
    date = models.DateField()
    is_on_leave = models.BooleanField(default=False)
    total_meals_present = models.PositiveSmallIntegerField(default=MEALS_PER_DAY, validators=[MaxValueValidator(MEALS_PER_DAY)])
    reason = models.CharField(max_length=200, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'attendance'
        ordering = ['-date']
        unique_together = ['student', 'date']
        indexes = [
            models.Index(fields=['student', 'date'], name='attendance_student_date_idx'),
            models.Index(fields=['mess_id', 'date'], name='attendance_mess_date_idx'),
        ]
        verbose_name_plural = 'Attendance'

    def __str__(self):
        status = 'Leave' if self.is_on_leave else f'{self.total_meals_present} meals'
        return f"{self.student.username} - {self.date} ({status})"

    @property
    def counts_as_absent(self):
        return self.is_on_leave or self.total_meals_present == 0
