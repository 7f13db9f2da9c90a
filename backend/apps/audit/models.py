"""
AuditLogEntry model - immutable chronological record of state-changing operations.

Audit entries are append-only. No update or delete operations, neither on
instances nor through querysets. Ordering is by the server-assigned sequence.
"""

import uuid
from django.db import models


class AuditAction(models.TextChoices):
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"
    STATUS_CHANGE = "status_change"
    APPROVE = "approve"
    REJECT = "reject"
    BULK_CREATE = "bulk_create"
    BULK_UPDATE = "bulk_update"
    BULK_DELETE = "bulk_delete"


class AuditLogQuerySet(models.QuerySet):
    def update(self, **kwargs):
        raise ValueError("AuditLogEntry rows are append-only. Updates are not allowed.")

    def delete(self):
        raise ValueError(
            "AuditLogEntry rows are append-only. Deletions are not allowed."
        )


class AuditLogEntry(models.Model):
    """AuditLogEntry model - immutable audit trail with field-level diff."""

    sequence = models.BigAutoField(primary_key=True)
    entry_id = models.UUIDField(default=uuid.uuid4, unique=True, editable=False)
    entity_type = models.CharField(max_length=50)
    entity_id = models.UUIDField()
    action = models.CharField(max_length=20, choices=AuditAction.choices)
    actor = models.ForeignKey(
        "users.User",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="audit_entries",
    )
    actor_role = models.CharField(max_length=20)
    occurred_at = models.DateTimeField(auto_now_add=True)
    old_state = models.JSONField(null=True, blank=True)
    new_state = models.JSONField(null=True, blank=True)
    field_diff = models.JSONField(default=dict, blank=True)
    ip_address = models.GenericIPAddressField(null=True, blank=True)
    request_id = models.CharField(max_length=64, null=True, blank=True)
    session_id = models.CharField(max_length=128, null=True, blank=True)
    http_method = models.CharField(max_length=10, null=True, blank=True)
    path = models.CharField(max_length=500, null=True, blank=True)

    objects = AuditLogQuerySet.as_manager()

    class Meta:
        db_table = "audit_log_entries"
        indexes = [
            models.Index(
                fields=["entity_type", "entity_id", "occurred_at"],
                name="idx_audit_entity_time",
            ),
            models.Index(fields=["occurred_at"], name="idx_audit_occurred"),
            models.Index(fields=["actor"], name="idx_audit_actor"),
        ]
        ordering = ["sequence"]

    def __str__(self):
        return (
            f"#{self.sequence} {self.action} - {self.entity_type}:{self.entity_id} at "
            f"{self.occurred_at}"
        )

    @property
    def context(self):
        return {
            "ipAddress": self.ip_address,
            "requestId": self.request_id,
            "sessionId": self.session_id,
            "httpMethod": self.http_method,
            "path": self.path,
        }

    def save(self, *args, **kwargs):
        """Override save to prevent updates."""
        if not self._state.adding:
            raise ValueError(
                "AuditLogEntry rows are append-only. Updates are not allowed."
            )
        super().save(*args, **kwargs)

    def delete(self, *args, **kwargs):
        """Override delete to prevent deletion."""
        raise ValueError(
            "AuditLogEntry rows are append-only. Deletions are not allowed."
        )
