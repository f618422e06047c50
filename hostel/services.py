"""
Student directory and attendance source used by the billing engine
"""
from .models import CustomUser, Attendance


def get_student(student_id):
    """Return the student user for ``student_id`` or None"""
    return CustomUser.objects.filter(pk=student_id, role='student').first()


def student_exists(student_id):
    return CustomUser.objects.filter(pk=student_id, role='student').exists()


def list_students(mess_id):
    """Ids of the active students enrolled in a mess, oldest first"""
    return list(
        CustomUser.objects.filter(role='student', mess_id=mess_id, is_active=True)
        .order_by('id')
        .values_list('id', flat=True)
    )


def query_attendance(student_id, start_date, end_date):
    """Attendance records of a student between two dates (inclusive)"""
    return Attendance.objects.filter(
        student_id=student_id,
        date__gte=start_date,
        date__lte=end_date,
    ).order_by('date')
