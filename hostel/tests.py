from datetime import date

from django.contrib.auth import get_user_model
from django.contrib.auth.models import AnonymousUser
from django.http import JsonResponse
from django.test import TestCase, RequestFactory

from .decorators import api_login_required, api_role_required
from .models import Attendance
from .services import get_student, student_exists, list_students, query_attendance

User = get_user_model()


class StudentDirectoryTestCase(TestCase):
    def setUp(self):
        """Set up test data"""
        self.student = User.objects.create_user(username='student1', password='testpass123', role='student', mess_id='MESS1')
        self.second = User.objects.create_user(username='student2', password='testpass123', role='student', mess_id='MESS1')
        User.objects.create_user(username='inactive', password='testpass123', role='student', mess_id='MESS1', is_active=False)
        User.objects.create_user(username='elsewhere', password='testpass123', role='student', mess_id='MESS2')
        self.manager = User.objects.create_user(username='manager1', password='testpass123', role='manager', mess_id='MESS1')

    def test_list_students(self):
        self.assertEqual(list_students('MESS1'), [self.student.pk, self.second.pk])
        self.assertEqual(list_students('MESS3'), [])

    def test_student_lookup(self):
        self.assertTrue(student_exists(self.student.pk))
        self.assertFalse(student_exists(self.manager.pk))
        self.assertEqual(get_student(self.student.pk), self.student)
        self.assertIsNone(get_student(self.manager.pk))

    def test_query_attendance_is_inclusive(self):
        for day in (31, 1, 15, 30):
            month = 3 if day == 31 else 4
            Attendance.objects.create(student=self.student, mess_id='MESS1', date=date(2025, month, day), is_on_leave=True, total_meals_present=0)
        Attendance.objects.create(student=self.second, mess_id='MESS1', date=date(2025, 4, 2), total_meals_present=3)

        records = query_attendance(self.student.pk, date(2025, 4, 1), date(2025, 4, 30))
        self.assertEqual([record.date.day for record in records], [1, 15, 30])
        self.assertTrue(all(record.counts_as_absent for record in records))

    def test_mess_access(self):
        admin = User.objects.create_user(username='admin1', password='testpass123', role='admin')
        self.assertTrue(admin.can_access_mess('MESS2'))
        self.assertTrue(self.manager.can_access_mess('MESS1'))
        self.assertFalse(self.manager.can_access_mess('MESS2'))
        self.assertFalse(self.student.can_access_mess('MESS1'))
        self.assertFalse(self.student.can_manage_billing())


class APIDecoratorTestCase(TestCase):
    def setUp(self):
        """Set up test data"""
        self.factory = RequestFactory()
        self.student = User.objects.create_user(username='student1', password='testpass123', role='student', mess_id='MESS1')
        self.superuser = User.objects.create_superuser(username='root', password='testpass123', email='root@example.com')

        @api_role_required('admin', 'manager')
        def staff_view(request):
            return JsonResponse({'success': True})

        @api_login_required
        def member_view(request):
            return JsonResponse({'success': True})

        self.staff_view = staff_view
        self.member_view = member_view

    def get(self, user):
        request = self.factory.get('/api/bills/')
        request.user = user
        return request

    def test_login_required(self):
        response = self.member_view(self.get(AnonymousUser()))
        self.assertEqual(response.status_code, 401)
        self.assertEqual(self.member_view(self.get(self.student)).status_code, 200)

    def test_role_required(self):
        self.assertEqual(self.staff_view(self.get(AnonymousUser())).status_code, 401)

        response = self.staff_view(self.get(self.student))
        self.assertEqual(response.status_code, 403)
        self.assertIn(b'"success": false', response.content)

        # Superusers act as admins whatever their role field says
        self.assertEqual(self.staff_view(self.get(self.superuser)).status_code, 200)
