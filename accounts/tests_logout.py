from django.test import TestCase
from django.contrib.auth import get_user_model
from django.urls import reverse
from rest_framework.test import APIClient
from rest_framework import status

User = get_user_model()


class LogoutTests(TestCase):
    def setUp(self):
        self.user = User.objects.create_user(
            phone="+5215512349999",
            name="Test User",
            password="password123",
            role=User.Role.CLIENT,
        )
        self.api_client = APIClient()

    def _login(self):
        response = self.api_client.post(
            reverse("accounts:api_login"),
            {"phone": "+5215512349999", "password": "password123"},
        )
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        return response.data

    def test_api_logout(self):
        """Verify API logout returns success and blacklists the refresh token"""
        tokens = self._login()

        self.api_client.credentials(HTTP_AUTHORIZATION=f"Bearer {tokens['access']}")
        logout_response = self.api_client.post(
            reverse("accounts:api_logout"), {"refresh_token": tokens["refresh"]}
        )

        self.assertEqual(logout_response.status_code, status.HTTP_200_OK)
        self.assertEqual(logout_response.data["detail"], "Successfully logged out.")

        # The blacklisted refresh token can no longer mint access tokens
        refresh_response = self.api_client.post(
            reverse("accounts:token_refresh"), {"refresh": tokens["refresh"]}
        )
        self.assertEqual(refresh_response.status_code, status.HTTP_401_UNAUTHORIZED)

    def test_api_logout_idempotency_no_token(self):
        """Verify API logout works even without a token provided"""
        logout_response = self.api_client.post(reverse("accounts:api_logout"), {})

        self.assertEqual(logout_response.status_code, status.HTTP_200_OK)
        self.assertEqual(logout_response.data["detail"], "Successfully logged out.")

    def test_api_logout_idempotency_invalid_token(self):
        """Verify API logout works with invalid token"""
        logout_response = self.api_client.post(
            reverse("accounts:api_logout"), {"refresh_token": "invalid_token_string"}
        )

        self.assertEqual(logout_response.status_code, status.HTTP_200_OK)
        self.assertEqual(logout_response.data["detail"], "Successfully logged out.")

    def test_api_logout_twice(self):
        """A second logout with the same token still succeeds"""
        tokens = self._login()
        url = reverse("accounts:api_logout")

        self.api_client.post(url, {"refresh_token": tokens["refresh"]})
        second = self.api_client.post(url, {"refresh_token": tokens["refresh"]})

        self.assertEqual(second.status_code, status.HTTP_200_OK)
