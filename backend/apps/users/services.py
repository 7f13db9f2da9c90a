"""
Service-layer functions for the Users app.

This module exists to keep models passive:
- No business logic in models
- Permission resolution (role defaults + per-user grants) lives here
- Persistence orchestration (create/save) lives here
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Optional, Type

PLANS_CREATE = "plans:create"
PLANS_UPDATE = "plans:update"
PLANS_SUBMIT = "plans:submit"
PLANS_APPROVE = "plans:approve"
PLANS_APPROVE_ALL = "plans:approve:all"
PLANS_ACTIVATE = "plans:activate"
PLANS_DELETE = "plans:delete"
PLANS_READ = "plans:read"
PLANS_READ_ALL = "plans:read:all"
AUDIT_READ = "audit:read"
USERS_MANAGE = "users:manage"

ALL_PERMISSIONS = frozenset(
    {
        PLANS_CREATE,
        PLANS_UPDATE,
        PLANS_SUBMIT,
        PLANS_APPROVE,
        PLANS_APPROVE_ALL,
        PLANS_ACTIVATE,
        PLANS_DELETE,
        PLANS_READ,
        PLANS_READ_ALL,
        AUDIT_READ,
        USERS_MANAGE,
    }
)

ROLE_PERMISSIONS = {
    "ADMIN": ALL_PERMISSIONS,
    "PLANNER": frozenset(
        {
            PLANS_CREATE,
            PLANS_UPDATE,
            PLANS_SUBMIT,
            PLANS_ACTIVATE,
            PLANS_DELETE,
            PLANS_READ,
            AUDIT_READ,
        }
    ),
    "APPROVER": frozenset({PLANS_APPROVE, PLANS_READ, AUDIT_READ}),
    "VIEWER": frozenset({PLANS_READ, AUDIT_READ}),
}


@dataclass(frozen=True)
class Actor:
    """Resolved identity handed to the plan workflow core."""

    id: Any
    username: str
    role: str
    department: str = ""
    permissions: frozenset = field(default_factory=frozenset)

    def has(self, permission: str) -> bool:
        return permission in self.permissions

    @property
    def is_admin(self) -> bool:
        return self.role == "ADMIN"


def permissions_for(user: Any) -> frozenset:
    """Role defaults plus any per-user grants; unknown grants are ignored."""
    granted = set(ROLE_PERMISSIONS.get(getattr(user, "role", None), frozenset()))
    granted.update(
        p for p in (getattr(user, "extra_permissions", None) or []) if p in ALL_PERMISSIONS
    )
    return frozenset(granted)


def actor_for(user: Any) -> Actor:
    return Actor(
        id=user.id,
        username=user.username,
        role=user.role,
        department=user.department or "",
        permissions=permissions_for(user),
    )


def create_user(
    *,
    user_model: Type[Any],
    username: str,
    password: Optional[str] = None,
    display_name: Optional[str] = None,
    role: str = "VIEWER",
    using: Optional[str] = None,
    **extra_fields: Any,
):
    """Create and persist a user."""
    if not username:
        raise ValueError("The username field must be set")

    user = user_model(
        username=username,
        display_name=display_name or username,
        role=role,
        **extra_fields,
    )
    user.set_password(password)
    if using is None:
        user.save()
    else:
        user.save(using=using)
    return user


def create_superuser(
    *,
    user_model: Type[Any],
    username: str,
    password: Optional[str] = None,
    using: Optional[str] = None,
    **extra_fields: Any,
):
    """Create a superuser: an ADMIN, which Django admin treats as staff."""
    extra_fields.setdefault("role", "ADMIN")
    return create_user(
        user_model=user_model,
        username=username,
        password=password,
        using=using,
        **extra_fields,
    )


def register_user(*, actor: Actor, context, **fields: Any):
    """
    Create a user through the API. The creation is written to the audit
    trail under entity type "User".

    Raises:
        PermissionDeniedError: actor lacks users:manage
        ValidationError: role ADMIN (admins are provisioned out of band)
    """
    from django.db import transaction
    from apps.audit.services import audited
    from apps.users.models import User
    from core.exceptions import PermissionDeniedError, ValidationError

    if not actor.has(USERS_MANAGE):
        raise PermissionDeniedError(f"Missing permission {USERS_MANAGE}")
    if fields.get("role") == "ADMIN":
        message = "Cannot create ADMIN users via API"
        raise ValidationError(message, {"role": [message]})

    def _create(_capture):
        with transaction.atomic():
            return User.objects.create_user(**fields)

    return audited("create", "User", None, actor, context, _create)


def user_is_staff(*, user: Any) -> bool:
    """Django admin compatibility predicate."""
    return user.role == "ADMIN"


def user_is_superuser(*, user: Any) -> bool:
    """Django admin compatibility predicate."""
    return user.role == "ADMIN"


def user_has_perm(*, user: Any, perm: str, obj: Any = None) -> bool:
    """Django admin compatibility predicate."""
    _ = (perm, obj)
    return user.role == "ADMIN"


def user_has_module_perms(*, user: Any, app_label: str) -> bool:
    """Django admin compatibility predicate."""
    _ = app_label
    return user.role == "ADMIN"
