import uuid

from django.test import TestCase

from apps.audit.models import AuditLogEntry
from apps.users.models import User


class AuditLogEntryImmutabilityTests(TestCase):
    def setUp(self):
        self.user = User.objects.create_user(
            username="audit_test_user",
            password="password123",
            display_name="Audit Test User",
            role="PLANNER",
        )

        self.entry = AuditLogEntry.objects.create(
            entity_type="Plan",
            entity_id=uuid.uuid4(),
            action="create",
            actor=self.user,
            actor_role="PLANNER",
            new_state={"status": "draft"},
            request_id="test-request-id",
        )

    def test_bulk_update_is_blocked(self):
        with self.assertRaises(ValueError):
            AuditLogEntry.objects.filter(pk=self.entry.pk).update(action="update")

    def test_bulk_delete_is_blocked(self):
        with self.assertRaises(ValueError):
            AuditLogEntry.objects.filter(pk=self.entry.pk).delete()

    def test_instance_save_after_create_is_blocked(self):
        self.entry.actor_role = "ADMIN"
        with self.assertRaises(ValueError):
            self.entry.save()

    def test_instance_delete_is_blocked(self):
        with self.assertRaises(ValueError):
            self.entry.delete()
        self.assertTrue(AuditLogEntry.objects.filter(pk=self.entry.pk).exists())

    def test_sequence_is_monotonic(self):
        later = AuditLogEntry.objects.create(
            entity_type="Plan",
            entity_id=self.entry.entity_id,
            action="update",
            actor_role="SYSTEM",
        )
        self.assertGreater(later.sequence, self.entry.sequence)
