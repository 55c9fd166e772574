from django.test import TestCase
from django.contrib.auth import get_user_model
from django.urls import reverse
from rest_framework.test import APITestCase
from rest_framework import status

from .models import Restaurant

User = get_user_model()


class UserModelTest(TestCase):
    """Test the custom User model"""

    def setUp(self):
        self.restaurant = Restaurant.objects.create(name='Casa Luna')
        self.user_data = {
            'email': 'test@example.com',
            'first_name': 'Test',
            'last_name': 'User',
            'password': 'testpass123'
        }

    def test_create_user(self):
        """Test creating a regular user"""
        user = User.objects.create_user(**self.user_data)

        self.assertEqual(user.email, 'test@example.com')
        self.assertEqual(user.user_type, 'kitchen')  # default
        self.assertTrue(user.check_password('testpass123'))
        self.assertFalse(user.is_staff)
        self.assertIsNone(user.restaurant)

    def test_create_superuser(self):
        """Test creating a superuser"""
        user = User.objects.create_superuser(
            email='admin@example.com',
            password='adminpass123',
            first_name='Admin',
            last_name='User'
        )

        self.assertEqual(user.user_type, 'admin')
        self.assertTrue(user.is_staff)
        self.assertTrue(user.is_superuser)
        self.assertTrue(user.can_approve_purchase_orders)

    def test_email_required(self):
        with self.assertRaises(ValueError):
            User.objects.create_user(email='', password='testpass123')

    def test_approval_roles(self):
        """Only owners, managers and admins approve purchase orders"""
        expectations = {
            'owner': True,
            'manager': True,
            'purchaser': False,
            'kitchen': False,
            'cashier': False,
        }
        for index, (user_type, expected) in enumerate(expectations.items()):
            user = User.objects.create_user(
                email=f'{user_type}{index}@example.com',
                password='testpass123',
                user_type=user_type,
                restaurant=self.restaurant,
            )
            self.assertEqual(user.can_approve_purchase_orders, expected, user_type)

    def test_user_string_representation(self):
        user = User.objects.create_user(user_type='manager', **self.user_data)
        self.assertEqual(str(user), 'test@example.com (Manager)')


class AuthenticationAPITest(APITestCase):
    """Test registration, login and profile endpoints"""

    def setUp(self):
        self.restaurant = Restaurant.objects.create(name='Casa Luna')
        self.user = User.objects.create_user(
            email='chef@casaluna.ph',
            password='testpass123',
            first_name='Chef',
            last_name='Luna',
            user_type='kitchen',
            restaurant=self.restaurant,
        )

    def test_register_creates_restaurant_and_owner(self):
        response = self.client.post(reverse('register'), {
            'email': 'owner@newplace.ph',
            'password': 'Str0ng-pass-123',
            'first_name': 'New',
            'last_name': 'Owner',
            'restaurant_name': 'New Place',
        }, format='json')

        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertIn('access', response.data['tokens'])
        owner = User.objects.get(email='owner@newplace.ph')
        self.assertEqual(owner.user_type, 'owner')
        self.assertEqual(owner.restaurant.name, 'New Place')

    def test_register_duplicate_email(self):
        response = self.client.post(reverse('register'), {
            'email': 'chef@casaluna.ph',
            'password': 'Str0ng-pass-123',
            'first_name': 'Dup',
            'last_name': 'User',
            'restaurant_name': 'Elsewhere',
        }, format='json')

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn('email', response.data)

    def test_login_success(self):
        response = self.client.post(reverse('login'), {
            'email': 'chef@casaluna.ph',
            'password': 'testpass123',
        }, format='json')

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['user']['email'], 'chef@casaluna.ph')
        self.assertIn('refresh', response.data['tokens'])

    def test_login_invalid_credentials(self):
        response = self.client.post(reverse('login'), {
            'email': 'chef@casaluna.ph',
            'password': 'wrong',
        }, format='json')

        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)

    def test_profile_requires_authentication(self):
        response = self.client.get(reverse('profile'))
        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)

    def test_profile_update(self):
        self.client.force_authenticate(user=self.user)
        response = self.client.patch(reverse('profile'), {'phone': '09171234567'}, format='json')

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.user.refresh_from_db()
        self.assertEqual(self.user.phone, '09171234567')

    def test_kitchen_staff_cannot_manage_staff(self):
        self.client.force_authenticate(user=self.user)
        response = self.client.get(reverse('staff-list'))
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_manager_creates_staff_in_own_restaurant(self):
        manager = User.objects.create_user(
            email='manager@casaluna.ph', password='testpass123',
            user_type='manager', restaurant=self.restaurant,
        )
        self.client.force_authenticate(user=manager)
        response = self.client.post(reverse('staff-list'), {
            'email': 'cashier@casaluna.ph',
            'password': 'testpass123',
            'first_name': 'Cash',
            'last_name': 'Ier',
            'user_type': 'cashier',
        }, format='json')

        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(User.objects.get(email='cashier@casaluna.ph').restaurant, self.restaurant)
