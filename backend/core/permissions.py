"""
Permission classes for role-based access control.

Role and permission set are read from request.user (authenticated via JWT).
They are NEVER read from request body, query parameters, or headers.
"""

from rest_framework import permissions

from apps.users.services import permissions_for


def _authenticated_with_role(request):
    if not request.user or not request.user.is_authenticated:
        return False
    return bool(getattr(request.user, "role", None))


class IsAuthenticatedReadOnly(permissions.BasePermission):
    """Allow every role for GET requests."""

    def has_permission(self, request, view):
        if not _authenticated_with_role(request):
            return False

        if request.method == "GET":
            if request.user.role in ("ADMIN", "PLANNER", "APPROVER", "VIEWER"):
                return True

        return False


class HasPlanPermission(permissions.BasePermission):
    """
    Allow users whose permission set contains every permission in
    required_permissions. Subclass per endpoint, or use requires().
    """

    required_permissions = ()

    def has_permission(self, request, view):
        if not _authenticated_with_role(request):
            return False

        granted = permissions_for(request.user)
        return all(perm in granted for perm in self.required_permissions)


def requires(*perms):
    """Build a HasPlanPermission subclass bound to perms."""
    return type(
        "Requires_" + "_".join(p.replace(":", "_") for p in perms),
        (HasPlanPermission,),
        {"required_permissions": tuple(perms)},
    )
