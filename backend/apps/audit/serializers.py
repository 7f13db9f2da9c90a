"""
Serializers for AuditLogEntry model.
"""

from rest_framework import serializers
from apps.audit.models import AuditLogEntry


class AuditLogEntrySerializer(serializers.ModelSerializer):
    """Serializer for AuditLogEntry."""

    id = serializers.UUIDField(source="entry_id", read_only=True)
    sequence = serializers.IntegerField(read_only=True)
    entityType = serializers.CharField(source="entity_type", read_only=True)
    entityId = serializers.UUIDField(source="entity_id", read_only=True)
    action = serializers.CharField(read_only=True)
    actorId = serializers.UUIDField(source="actor_id", read_only=True, allow_null=True)
    actorRole = serializers.CharField(source="actor_role", read_only=True)
    timestamp = serializers.DateTimeField(source="occurred_at", read_only=True)
    oldState = serializers.JSONField(source="old_state", read_only=True, allow_null=True)
    newState = serializers.JSONField(source="new_state", read_only=True, allow_null=True)
    fieldDiff = serializers.JSONField(source="field_diff", read_only=True)
    context = serializers.JSONField(read_only=True)

    class Meta:
        model = AuditLogEntry
        fields = [
            "id",
            "sequence",
            "entityType",
            "entityId",
            "action",
            "actorId",
            "actorRole",
            "timestamp",
            "oldState",
            "newState",
            "fieldDiff",
            "context",
        ]
