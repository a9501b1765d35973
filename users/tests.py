from django.contrib.auth import authenticate, get_user_model
from django.test import TestCase
from rest_framework.test import APIClient

from cores.models import AuditLog

User = get_user_model()


class AuthTestCase(TestCase):
    def setUp(self):
        self.client = APIClient()

    def test_register_always_creates_students(self):
        response = self.client.post('/api/auth/register/', {
            'email': 'new@example.com',
            'first_name': 'Ada',
            'last_name': 'Obi',
            'password': 'CorrectHorse42!',
            'role': 'admin',
        }, format='json')
        self.assertEqual(response.status_code, 201)
        user = User.objects.get(email='new@example.com')
        self.assertEqual(user.role, User.Role.STUDENT)
        self.assertFalse(user.is_staff)

    def test_login_with_email_returns_tokens(self):
        User.objects.create_user(username='ada', email='ada@example.com', password='CorrectHorse42!')
        response = self.client.post(
            '/api/auth/login/', {'email': 'ada@example.com', 'password': 'CorrectHorse42!'}, format='json',
        )
        self.assertEqual(response.status_code, 200)
        self.assertIn('access', response.data)
        self.assertEqual(response.data['user']['role'], 'student')

    def test_email_backend_accepts_username_or_email(self):
        User.objects.create_user(username='ada', email='ada@example.com', password='CorrectHorse42!')
        self.assertIsNotNone(authenticate(username='ada', password='CorrectHorse42!'))
        self.assertIsNotNone(authenticate(username='ADA@example.com', password='CorrectHorse42!'))
        self.assertIsNone(authenticate(username='ada@example.com', password='wrong'))
        self.assertIsNone(authenticate(username='nobody@example.com', password='CorrectHorse42!'))


class UserManagementTestCase(TestCase):
    def setUp(self):
        self.client = APIClient()
        self.admin = User.objects.create_user(
            username='admin', email='admin@example.com', password='pass12345!', role='admin', is_staff=True,
        )
        self.client.force_authenticate(user=self.admin)

    def test_create_proctor_is_audited(self):
        response = self.client.post('/api/users/', {
            'email': 'proctor@example.com',
            'first_name': 'Pat',
            'last_name': 'Doe',
            'password': 'CorrectHorse42!',
            'role': 'proctor',
        }, format='json')
        self.assertEqual(response.status_code, 201)
        proctor = User.objects.get(email='proctor@example.com')
        self.assertEqual(proctor.role, User.Role.PROCTOR)
        self.assertTrue(proctor.can_grade)
        self.assertTrue(AuditLog.objects.filter(action='CREATE', target_object_id=str(proctor.id)).exists())

    def test_student_list_and_stats(self):
        User.objects.create_user(username='s1', email='s1@example.com', password='pass12345!')
        response = self.client.get('/api/admin/students/')
        self.assertEqual(response.status_code, 200)
        self.assertEqual([row['email'] for row in response.data], ['s1@example.com'])
        self.assertEqual(response.data[0]['exams_taken'], 0)

        stats = self.client.get('/api/admin/stats/')
        self.assertEqual(stats.data['total_students'], 1)
        self.assertEqual(stats.data['pending_grading'], 0)

    def test_profile_cannot_change_role(self):
        student = User.objects.create_user(username='s2', email='s2@example.com', password='pass12345!')
        self.client.force_authenticate(user=student)
        response = self.client.patch('/api/profile/', {'role': 'admin', 'bio': 'Hi'}, format='json')
        self.assertEqual(response.status_code, 200)
        student.refresh_from_db()
        self.assertEqual(student.role, User.Role.STUDENT)
        self.assertEqual(student.bio, 'Hi')
