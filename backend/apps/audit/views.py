"""
Audit log views - query audit log entries.

Read-only - audit entries are append-only.
"""

from uuid import UUID

from rest_framework.decorators import api_view, permission_classes
from rest_framework.pagination import LimitOffsetPagination
from django.utils.dateparse import parse_date, parse_datetime
from core.exceptions import ValidationError
from core.permissions import requires
from apps.audit import registry
from apps.audit.models import AuditAction, AuditLogEntry
from apps.audit.serializers import AuditLogEntrySerializer
from apps.users.services import AUDIT_READ


def _parse_uuid(value, name):
    try:
        return UUID(value)
    except ValueError:
        raise ValidationError(f"Invalid {name} format", {"field": name})


def _moment_filter(value, name, bound):
    """
    occurred_at lookup for a fromDate/toDate bound (bound is "gte" or "lte").
    A date-only value compares against the calendar day, so toDate covers
    the whole of that day.
    """
    moment = parse_datetime(value)
    if moment is not None:
        return {f"occurred_at__{bound}": moment}
    try:
        day = parse_date(value)
    except ValueError:
        day = None
    if day is None:
        raise ValidationError(
            f"Invalid {name} format (use ISO 8601)", {"field": name}
        )
    return {f"occurred_at__date__{bound}": day}


@api_view(["GET"])
@permission_classes([requires(AUDIT_READ)])
def query_audit_log(request):
    """
    GET /api/v1/audit

    Query audit log entries with optional filters: entityType, entityId,
    actorId, action, fromDate, toDate. Ordered by sequence, newest first.
    """
    params = request.query_params
    queryset = AuditLogEntry.objects.all()

    entity_type = params.get("entityType")
    if entity_type:
        if entity_type not in registry.registered_types():
            raise ValidationError(
                "Invalid entityType",
                {"allowed": list(registry.registered_types())},
            )
        queryset = queryset.filter(entity_type=entity_type)

    if params.get("entityId"):
        queryset = queryset.filter(entity_id=_parse_uuid(params["entityId"], "entityId"))

    if params.get("actorId"):
        queryset = queryset.filter(actor_id=_parse_uuid(params["actorId"], "actorId"))

    action = params.get("action")
    if action:
        if action not in AuditAction.values:
            raise ValidationError("Invalid action", {"allowed": AuditAction.values})
        queryset = queryset.filter(action=action)

    if params.get("fromDate"):
        queryset = queryset.filter(**_moment_filter(params["fromDate"], "fromDate", "gte"))

    if params.get("toDate"):
        queryset = queryset.filter(**_moment_filter(params["toDate"], "toDate", "lte"))

    queryset = queryset.order_by("-sequence")

    paginator = LimitOffsetPagination()
    paginator.default_limit = 50
    paginator.max_limit = 100

    page = paginator.paginate_queryset(queryset, request)
    serializer = AuditLogEntrySerializer(page, many=True)

    return paginator.get_paginated_response(serializer.data)
