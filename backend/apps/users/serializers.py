"""
Serializers for User model.

No business logic in serializers - validation only.
"""

from rest_framework import serializers
from apps.users.models import User, Role
from apps.users.services import ALL_PERMISSIONS, permissions_for


class UserSerializer(serializers.ModelSerializer):
    """Serializer for User model."""

    id = serializers.UUIDField(read_only=True)
    role = serializers.ChoiceField(choices=Role.choices, read_only=True)
    displayName = serializers.CharField(source="display_name", read_only=True)
    department = serializers.CharField(read_only=True)
    permissions = serializers.SerializerMethodField()

    class Meta:
        model = User
        fields = ["id", "username", "displayName", "role", "department", "permissions"]
        read_only_fields = ["id", "role"]

    def get_permissions(self, obj):
        return sorted(permissions_for(obj))


class UserListSerializer(serializers.ModelSerializer):
    """Serializer for user list endpoint."""

    id = serializers.UUIDField(read_only=True)
    displayName = serializers.CharField(source="display_name", read_only=True)

    class Meta:
        model = User
        fields = ["id", "username", "displayName", "role", "department"]


class UserCreateSerializer(serializers.Serializer):
    """Serializer for user creation endpoint."""

    username = serializers.CharField(max_length=150, required=True)
    password = serializers.CharField(write_only=True, required=True)
    displayName = serializers.CharField(
        max_length=255, required=False, source="display_name"
    )
    role = serializers.ChoiceField(choices=Role.choices, required=True)
    department = serializers.CharField(max_length=100, required=False, default="")
    extraPermissions = serializers.ListField(
        child=serializers.ChoiceField(choices=sorted(ALL_PERMISSIONS)),
        required=False,
        default=list,
        source="extra_permissions",
    )

    def validate_role(self, value):
        """Ensure only PLANNER, APPROVER, or VIEWER can be created (not ADMIN)."""
        if value == Role.ADMIN:
            raise serializers.ValidationError("Cannot create ADMIN users via API")
        return value
