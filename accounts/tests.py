"""
Tests for phone-number login, JWT claims and the profile endpoint.
"""

from django.contrib.auth import authenticate, get_user_model
from django.test import TestCase
from django.urls import reverse
from rest_framework import status
from rest_framework.test import APIClient
from rest_framework_simplejwt.tokens import AccessToken

from accounts.backends import PhoneNumberAuthBackend
from barbers.models import Barber

User = get_user_model()


class PhoneNormalizationTests(TestCase):
    def test_normalize_variants(self):
        cases = {
            "+5217712345678": "+5217712345678",
            "5217712345678": "+5217712345678",
            "+52 771 234 5678": "+527712345678",
            "+52-771-234-5678": "+527712345678",
            "(52) 771.234.5678": "+527712345678",
            "00527712345678": "+527712345678",
        }
        for raw, expected in cases.items():
            self.assertEqual(PhoneNumberAuthBackend.normalize_phone_number(raw), expected, raw)

    def test_validity(self):
        self.assertTrue(PhoneNumberAuthBackend.is_valid_phone_number("+5217712345678"))
        self.assertFalse(PhoneNumberAuthBackend.is_valid_phone_number("+1234"))
        self.assertFalse(PhoneNumberAuthBackend.is_valid_phone_number("+52abc"))
        self.assertFalse(PhoneNumberAuthBackend.is_valid_phone_number(None))


class PhoneBackendTests(TestCase):
    def setUp(self):
        self.user = User.objects.create_user(
            phone="+5217712345678", password="secret123", name="Luis", role=User.Role.CLIENT
        )

    def test_authenticate_with_formatted_phone(self):
        user = authenticate(None, username="+52 1 771 234 5678", password="secret123")
        self.assertEqual(user, self.user)

    def test_wrong_password(self):
        self.assertIsNone(authenticate(None, username="+5217712345678", password="nope"))

    def test_inactive_user(self):
        self.user.is_active = False
        self.user.save()
        self.assertIsNone(authenticate(None, username="+5217712345678", password="secret123"))


class LoginAPITests(TestCase):
    def setUp(self):
        self.client = APIClient()
        self.url = reverse("accounts:api_login")
        self.client_user = User.objects.create_user(
            phone="+5215512340001", password="testpass123", name="Carlos Client", role=User.Role.CLIENT
        )
        self.barber_user = User.objects.create_user(
            phone="+5215512340003", password="testpass123", name="Matvei Barber", role=User.Role.BARBER
        )
        self.barber = Barber.objects.create(user=self.barber_user, name="Matvei")

    def test_login_returns_tokens_with_role_claims(self):
        response = self.client.post(self.url, {"phone": "+52 155 1234 0001", "password": "testpass123"})

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        token = AccessToken(response.data["access"])
        self.assertEqual(token["role"], "CLIENT")
        self.assertEqual(token["name"], "Carlos Client")
        self.assertNotIn("barber_id", token.payload)
        self.assertIn("refresh", response.data)

    def test_barber_token_carries_barber_id(self):
        response = self.client.post(self.url, {"phone": "+5215512340003", "password": "testpass123"})

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        token = AccessToken(response.data["access"])
        self.assertEqual(token["role"], "BARBER")
        self.assertEqual(token["barber_id"], self.barber.id)

    def test_unknown_phone(self):
        response = self.client.post(self.url, {"phone": "+5215500000000", "password": "testpass123"})
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_wrong_password(self):
        response = self.client.post(self.url, {"phone": "+5215512340001", "password": "wrong"})
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn("detail", response.data)

    def test_inactive_user(self):
        self.client_user.is_active = False
        self.client_user.save()
        response = self.client.post(self.url, {"phone": "+5215512340001", "password": "testpass123"})
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)


class MeAPITests(TestCase):
    def setUp(self):
        self.client = APIClient()
        self.user = User.objects.create_user(
            phone="+5215512340001", password="testpass123", name="Carlos Client", role=User.Role.CLIENT
        )
        self.user.loyalty_points = 3
        self.user.total_visits = 4
        self.user.save()

    def test_me_returns_profile_and_loyalty(self):
        self.client.force_authenticate(user=self.user)
        response = self.client.get(reverse("accounts:api_me"))

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data["role"], "CLIENT")
        self.assertEqual(response.data["loyalty_points"], 3)
        self.assertEqual(response.data["total_visits"], 4)

    def test_me_requires_authentication(self):
        response = self.client.get(reverse("accounts:api_me"))
        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)
