# Append-only audit log with field-level diff and request context.

import uuid
import django.db.models.deletion
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name="AuditLogEntry",
            fields=[
                ("sequence", models.BigAutoField(primary_key=True, serialize=False)),
                (
                    "entry_id",
                    models.UUIDField(default=uuid.uuid4, editable=False, unique=True),
                ),
                ("entity_type", models.CharField(max_length=50)),
                ("entity_id", models.UUIDField()),
                (
                    "action",
                    models.CharField(
                        choices=[
                            ("create", "Create"),
                            ("update", "Update"),
                            ("delete", "Delete"),
                            ("status_change", "Status Change"),
                            ("approve", "Approve"),
                            ("reject", "Reject"),
                            ("bulk_create", "Bulk Create"),
                            ("bulk_update", "Bulk Update"),
                            ("bulk_delete", "Bulk Delete"),
                        ],
                        max_length=20,
                    ),
                ),
                ("actor_role", models.CharField(max_length=20)),
                ("occurred_at", models.DateTimeField(auto_now_add=True)),
                ("old_state", models.JSONField(blank=True, null=True)),
                ("new_state", models.JSONField(blank=True, null=True)),
                ("field_diff", models.JSONField(blank=True, default=dict)),
                ("ip_address", models.GenericIPAddressField(blank=True, null=True)),
                ("request_id", models.CharField(blank=True, max_length=64, null=True)),
                ("session_id", models.CharField(blank=True, max_length=128, null=True)),
                ("http_method", models.CharField(blank=True, max_length=10, null=True)),
                ("path", models.CharField(blank=True, max_length=500, null=True)),
                (
                    "actor",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="audit_entries",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={
                "db_table": "audit_log_entries",
                "ordering": ["sequence"],
                "indexes": [
                    models.Index(
                        fields=["entity_type", "entity_id", "occurred_at"],
                        name="idx_audit_entity_time",
                    ),
                    models.Index(fields=["occurred_at"], name="idx_audit_occurred"),
                    models.Index(fields=["actor"], name="idx_audit_actor"),
                ],
            },
        ),
    ]
