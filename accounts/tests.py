"""
Tests for the accounts app.
Tests: User model, grade permissions, login/logout.
"""
from django.test import TestCase, Client
from django.urls import reverse
from accounts.models import User


class UserModelTest(TestCase):
    """Test the custom User model"""

    def setUp(self):
        self.user = User.objects.create_user(
            email='test@example.com',
            password='testpass123',
            first_name='Test',
            last_name='User',
            role='student'
        )

    def test_create_user(self):
        self.assertEqual(self.user.email, 'test@example.com')
        self.assertEqual(self.user.role, 'student')
        self.assertTrue(self.user.is_active)
        self.assertFalse(self.user.is_staff)

    def test_create_user_no_email_raises(self):
        with self.assertRaises(ValueError):
            User.objects.create_user(email='', password='test')

    def test_create_superuser(self):
        admin = User.objects.create_superuser(
            email='admin@example.com',
            password='adminpass123'
        )
        self.assertTrue(admin.is_staff)
        self.assertTrue(admin.is_superuser)
        self.assertEqual(admin.role, 'admin')

    def test_full_name_property(self):
        self.assertEqual(self.user.full_name, 'Test User')

    def test_full_name_empty(self):
        user = User.objects.create_user(
            email='empty@example.com', password='test123'
        )
        self.assertEqual(user.full_name, '')

    def test_str_representation(self):
        self.assertEqual(str(self.user), 'test@example.com')

    def test_email_normalized(self):
        user = User.objects.create_user(
            email='Test2@EXAMPLE.com', password='test123'
        )
        self.assertEqual(user.email, 'Test2@example.com')

    def test_password_is_hashed(self):
        self.assertNotEqual(self.user.password, 'testpass123')
        self.assertTrue(self.user.check_password('testpass123'))


class GradePermissionTest(TestCase):

    def test_teacher_and_admin_manage_grades(self):
        for role in ['admin', 'teacher']:
            user = User.objects.create_user(
                email=f'{role}@example.com', password='test123', role=role
            )
            self.assertTrue(user.can_manage_grades, role)

    def test_student_cannot_manage_grades(self):
        user = User.objects.create_user(email='s@example.com', password='test123', role='student')
        self.assertFalse(user.can_manage_grades)

    def test_superuser_manages_grades(self):
        user = User.objects.create_superuser(email='root@example.com', password='test123', role='student')
        self.assertTrue(user.can_manage_grades)


class LoginViewTest(TestCase):
    """Test the login flow"""

    def setUp(self):
        self.client = Client()
        self.login_url = reverse('accounts:login')
        self.user = User.objects.create_user(
            email='student@test.com',
            password='studentpass123',
            first_name='Test',
            last_name='Student',
            role='student'
        )

    def test_login_page_loads(self):
        response = self.client.get(self.login_url)
        self.assertEqual(response.status_code, 200)

    def test_login_redirects_to_grade_list(self):
        response = self.client.post(self.login_url, {
            'username': 'student@test.com',
            'password': 'studentpass123',
        })
        self.assertEqual(response.status_code, 302)
        self.assertEqual(response.url, reverse('grades:list'))

    def test_login_honours_next(self):
        response = self.client.post(self.login_url + '?next=/calificaciones/create', {
            'username': 'student@test.com',
            'password': 'studentpass123',
        })
        self.assertEqual(response.url, '/calificaciones/create')

    def test_login_with_invalid_password(self):
        response = self.client.post(self.login_url, {
            'username': 'student@test.com',
            'password': 'wrongpassword',
        })
        self.assertEqual(response.status_code, 200)  # stays on login page
        self.assertContains(response, 'Invalid email or password')

    def test_login_inactive_user_rejected(self):
        self.user.is_active = False
        self.user.save()
        response = self.client.post(self.login_url, {
            'username': 'student@test.com',
            'password': 'studentpass123',
        })
        self.assertNotEqual(response.status_code, 302)

    def test_authenticated_user_redirected_from_login(self):
        self.client.login(email='student@test.com', password='studentpass123')
        response = self.client.get(self.login_url)
        self.assertEqual(response.status_code, 302)


class LogoutViewTest(TestCase):
    """Test the logout flow"""

    def setUp(self):
        self.client = Client()
        self.user = User.objects.create_user(
            email='user@test.com', password='testpass123', role='student'
        )
        self.client.login(email='user@test.com', password='testpass123')

    def test_logout_redirects_to_login(self):
        response = self.client.post(reverse('accounts:logout'))
        self.assertEqual(response.status_code, 302)
        self.assertIn('login', response.url)

    def test_session_cleared_after_logout(self):
        self.client.post(reverse('accounts:logout'))
        response = self.client.get(reverse('grades:list'))
        self.assertEqual(response.status_code, 302)
        self.assertIn('login', response.url)

    def test_logout_message_shown_on_login_page(self):
        response = self.client.post(reverse('accounts:logout'), follow=True)
        self.assertContains(response, 'You have been logged out.')
