"""
Basic API coverage tests for apps.audit.views.

Covers audit log query endpoint: list, filters, permission.
"""

import uuid
from django.urls import reverse
from rest_framework.test import APITestCase
from rest_framework import status
from apps.users.models import User
from apps.audit.services import record


class AuditViewTests(APITestCase):
    def setUp(self):
        self.user = User.objects.create_user(
            username="audit_user",
            password="testpass123",
            display_name="Audit User",
            role="ADMIN",
        )
        self.client.force_authenticate(self.user)

    def test_audit_list(self):
        record("create", "Plan", uuid.uuid4(), self.user, None, {"status": "draft"})
        url = reverse("audit:query-audit-log")
        response = self.client.get(url)
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertIn("results", response.json())
        entry = response.json()["results"][0]
        self.assertEqual(entry["action"], "create")
        self.assertEqual(entry["actorRole"], "ADMIN")
        self.assertEqual(entry["fieldDiff"]["status"]["to"], "draft")

    def test_audit_list_logs_alias(self):
        url = reverse("audit:query-audit-logs")
        response = self.client.get(url)
        self.assertEqual(response.status_code, status.HTTP_200_OK)

    def test_audit_filter_entity_type_valid(self):
        url = reverse("audit:query-audit-log")
        response = self.client.get(url, {"entityType": "Plan"})
        self.assertEqual(response.status_code, status.HTTP_200_OK)

    def test_audit_filter_entity_type_invalid(self):
        url = reverse("audit:query-audit-log")
        response = self.client.get(url, {"entityType": "InvalidType"})
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_audit_filter_action_invalid(self):
        url = reverse("audit:query-audit-log")
        response = self.client.get(url, {"action": "erase"})
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_audit_unauthorized(self):
        self.client.force_authenticate(user=None)
        url = reverse("audit:query-audit-log")
        response = self.client.get(url)
        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)

    def test_user_without_audit_permission_is_forbidden(self):
        stranger = User.objects.create_user(
            username="no_audit",
            password="testpass123",
            display_name="No Audit",
            role="VIEWER",
        )
        stranger.role = "CONTRACTOR"
        stranger.save()
        self.client.force_authenticate(stranger)
        response = self.client.get(reverse("audit:query-audit-log"))
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)
