"""
Login / logout tests: JWT issue and refresh-token blacklisting.
"""

from django.test import TestCase
from rest_framework.test import APIClient
from rest_framework_simplejwt.token_blacklist.models import BlacklistedToken

from apps.users.models import User

LOGIN = "/api/v1/auth/login"
LOGOUT = "/api/v1/auth/logout"


class LoginTests(TestCase):
    def setUp(self):
        self.client = APIClient()
        User.objects.create_user(
            username="planner",
            password="testpass123",
            display_name="Planner",
            role="PLANNER",
            department="Operations",
        )

    def test_login_returns_tokens_and_user(self):
        r = self.client.post(
            LOGIN, {"username": "planner", "password": "testpass123"}, format="json"
        )
        self.assertEqual(r.status_code, 200)
        data = r.data["data"]
        self.assertTrue(data["token"])
        self.assertTrue(data["refreshToken"])
        self.assertEqual(data["user"]["username"], "planner")

    def test_token_authenticates_plan_reads(self):
        r = self.client.post(
            LOGIN, {"username": "planner", "password": "testpass123"}, format="json"
        )
        self.client.credentials(HTTP_AUTHORIZATION=f"Bearer {r.data['data']['token']}")
        self.assertEqual(self.client.get("/api/v1/plans").status_code, 200)

    def test_wrong_password_is_401(self):
        r = self.client.post(
            LOGIN, {"username": "planner", "password": "nope"}, format="json"
        )
        self.assertEqual(r.status_code, 401)
        self.assertEqual(r.data["error"]["code"], "UNAUTHORIZED")

    def test_missing_fields_are_400(self):
        r = self.client.post(LOGIN, {"username": "planner"}, format="json")
        self.assertEqual(r.status_code, 400)
        self.assertIn("password", r.data["error"]["details"])

    def test_login_needs_no_idempotency_key(self):
        r = self.client.post(
            LOGIN, {"username": "planner", "password": "testpass123"}, format="json"
        )
        self.assertNotEqual(r.status_code, 400)


class LogoutTests(TestCase):
    def setUp(self):
        self.client = APIClient()
        User.objects.create_user(
            username="viewer",
            password="testpass123",
            display_name="Viewer",
            role="VIEWER",
        )
        r = self.client.post(
            LOGIN, {"username": "viewer", "password": "testpass123"}, format="json"
        )
        self.tokens = r.data["data"]
        self.client.credentials(HTTP_AUTHORIZATION=f"Bearer {self.tokens['token']}")

    def test_logout_blacklists_refresh_token(self):
        r = self.client.post(
            LOGOUT, {"refreshToken": self.tokens["refreshToken"]}, format="json"
        )
        self.assertEqual(r.status_code, 200)
        self.assertTrue(r.data["data"]["success"])
        self.assertEqual(BlacklistedToken.objects.count(), 1)

    def test_repeated_logout_still_succeeds(self):
        body = {"refreshToken": self.tokens["refreshToken"]}
        self.client.post(LOGOUT, body, format="json")
        r = self.client.post(LOGOUT, body, format="json")
        self.assertEqual(r.status_code, 200)
        self.assertEqual(BlacklistedToken.objects.count(), 1)

    def test_logout_requires_authentication(self):
        self.client.credentials()
        r = self.client.post(LOGOUT, {}, format="json")
        self.assertEqual(r.status_code, 401)
