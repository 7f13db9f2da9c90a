"""
User views: get current user, list users, create users.

User creation requires users:manage and is recorded in the audit trail.
"""

from django.db import IntegrityError
from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.response import Response
from rest_framework.pagination import LimitOffsetPagination
from core.permissions import IsAuthenticatedReadOnly, requires
from apps.audit.services import AuditContext
from apps.users.models import User
from apps.users import services
from apps.users.serializers import (
    UserSerializer,
    UserListSerializer,
    UserCreateSerializer,
)


@api_view(["GET"])
@permission_classes([IsAuthenticatedReadOnly])
def get_current_user(request):
    """
    GET /api/v1/users/me

    Get current authenticated user.
    """
    serializer = UserSerializer(request.user)
    return Response({"data": serializer.data}, status=status.HTTP_200_OK)


@api_view(["GET", "POST"])
def list_or_create_users(request):
    """
    GET /api/v1/users - List all users with pagination (authenticated users).
    POST /api/v1/users - Create a new user (users:manage).
    """
    if request.method == "GET":
        if not IsAuthenticatedReadOnly().has_permission(request, None):
            return Response(
                {
                    "error": {
                        "code": "UNAUTHORIZED",
                        "message": "Authentication required",
                        "details": {},
                    }
                },
                status=status.HTTP_401_UNAUTHORIZED,
            )

        paginator = LimitOffsetPagination()
        paginator.default_limit = 50
        paginator.max_limit = 100

        users = User.objects.all().order_by("username")
        department = request.query_params.get("department")
        if department:
            users = users.filter(department=department)
        page = paginator.paginate_queryset(users, request)

        serializer = UserListSerializer(page, many=True)

        return paginator.get_paginated_response(serializer.data)

    if not requires(services.USERS_MANAGE)().has_permission(request, None):
        return Response(
            {
                "error": {
                    "code": "FORBIDDEN",
                    "message": f"Missing permission {services.USERS_MANAGE}",
                    "details": {},
                }
            },
            status=status.HTTP_403_FORBIDDEN,
        )

    serializer = UserCreateSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)

    data = serializer.validated_data
    username = data["username"]

    try:
        user = services.register_user(
            actor=services.actor_for(request.user),
            context=AuditContext.from_request(request),
            username=username,
            password=data["password"],
            display_name=data.get("display_name") or username,
            role=data["role"],
            department=data.get("department", ""),
            extra_permissions=data.get("extra_permissions", []),
        )
    except IntegrityError:
        return Response(
            {
                "error": {
                    "code": "CONFLICT",
                    "message": f"User with username '{username}' already exists",
                    "details": {},
                }
            },
            status=status.HTTP_409_CONFLICT,
        )
    return Response({"data": UserSerializer(user).data}, status=status.HTTP_201_CREATED)
