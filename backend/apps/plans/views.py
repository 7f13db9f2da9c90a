"""
Plan API views.

All mutations flow through the service layer. Request bodies are validated
by one serializer per route; the service receives the validated data and
the Actor resolved from request.user.
"""

import logging

from django.db import IntegrityError
from rest_framework import status
from rest_framework.decorators import api_view, permission_classes, throttle_classes
from rest_framework.pagination import LimitOffsetPagination
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from core.exceptions import DomainError
from core.permissions import requires
from core.throttling import MutationUserThrottle, PlanCreationThrottle
from apps.audit.services import AuditContext
from apps.plans import services
from apps.plans.serializers import (
    ActivateSerializer,
    AmendBudgetSerializer,
    CloneSerializer,
    CompleteSerializer,
    DecisionSerializer,
    ExpenditureSerializer,
    PlanCreateSerializer,
    PlanDetailSerializer,
    PlanSerializer,
    PlanUpdateSerializer,
    SubmitSerializer,
    TerminateSerializer,
    VersionedActionSerializer,
)
from apps.users.services import PLANS_CREATE, PLANS_READ, actor_for

logger = logging.getLogger(__name__)


def _detail(plan, actor, status_code=status.HTTP_200_OK):
    serializer = PlanDetailSerializer(plan, context={"actor": actor})
    return Response({"data": serializer.data}, status=status_code)


def _forbidden():
    return Response(
        {
            "error": {
                "code": "FORBIDDEN",
                "message": "You do not have permission to perform this action",
                "details": {},
            }
        },
        status=status.HTTP_403_FORBIDDEN,
    )


def _validated(serializer_class, request):
    serializer = serializer_class(data=request.data)
    serializer.is_valid(raise_exception=True)
    return serializer.validated_data


@api_view(["POST", "GET"])
@throttle_classes([MutationUserThrottle, PlanCreationThrottle])
def create_or_list_plans(request):
    """
    POST /api/v1/plans - Create a plan in draft
    GET /api/v1/plans - List plans visible to the requesting user
    """
    if request.method == "POST":
        if not requires(PLANS_CREATE)().has_permission(request, None):
            return _forbidden()

        data = _validated(PlanCreateSerializer, request)
        actor = actor_for(request.user)
        try:
            plan, created = services.create_plan(
                actor,
                data,
                context=AuditContext.from_request(request),
                idempotency_key=getattr(request, "idempotency_key", None),
            )
        except DomainError:
            raise
        except IntegrityError:
            return Response(
                {
                    "error": {
                        "code": "CONFLICT",
                        "message": "Plan creation conflict (idempotency or duplicate plan number)",
                        "details": {},
                    }
                },
                status=status.HTTP_409_CONFLICT,
            )
        return _detail(
            plan,
            actor,
            status.HTTP_201_CREATED if created else status.HTTP_200_OK,
        )

    if not requires(PLANS_READ)().has_permission(request, None):
        return _forbidden()

    params = request.query_params
    fiscal_year = params.get("fiscalYear")
    if fiscal_year and not fiscal_year.isdigit():
        return Response(
            {
                "error": {
                    "code": "VALIDATION_ERROR",
                    "message": "Invalid fiscalYear",
                    "details": {"field": "fiscalYear"},
                }
            },
            status=status.HTTP_400_BAD_REQUEST,
        )
    plans = services.list_plans(
        actor_for(request.user),
        status=params.get("status"),
        department=params.get("department"),
        plan_type=params.get("planType"),
        fiscal_year=int(fiscal_year) if fiscal_year else None,
    )

    paginator = LimitOffsetPagination()
    paginator.default_limit = 50
    paginator.max_limit = 100

    page = paginator.paginate_queryset(plans, request)
    serializer = PlanSerializer(page, many=True)
    return paginator.get_paginated_response(serializer.data)


@api_view(["GET", "PUT", "DELETE"])
@permission_classes([IsAuthenticated])
def get_update_or_delete_plan(request, planId):
    """
    GET /api/v1/plans/{planId} - Plan detail with derived fields
    PUT /api/v1/plans/{planId} - Update an editable plan (version required)
    DELETE /api/v1/plans/{planId} - Soft-delete (draft/rejected) or archive
    """
    actor = actor_for(request.user)
    context = AuditContext.from_request(request)

    if request.method == "GET":
        return _detail(services.get_plan(planId, actor), actor)

    if request.method == "PUT":
        data = _validated(PlanUpdateSerializer, request)
        version = data.pop("version")
        plan = services.update_plan(planId, actor, data, version, context=context)
        return _detail(plan, actor)

    data = _validated(VersionedActionSerializer, request)
    plan = services.delete_plan(
        planId, actor, expected_version=data.get("version"), context=context
    )
    return _detail(plan, actor)


@api_view(["POST"])
@permission_classes([IsAuthenticated])
def submit_plan(request, planId):
    """
    POST /api/v1/plans/{planId}/submit

    Submit for approval (draft/returned_for_changes -> under_review).
    """
    data = _validated(SubmitSerializer, request)
    actor = actor_for(request.user)
    plan = services.submit_plan(
        planId,
        actor,
        note=data["submissionNote"],
        expected_version=data.get("version"),
        context=AuditContext.from_request(request),
    )
    return _detail(plan, actor)


@api_view(["POST"])
@permission_classes([IsAuthenticated])
def decide_plan(request, planId):
    """
    POST /api/v1/plans/{planId}/approve

    Record an approve / reject / request_changes decision at the current level.
    """
    data = _validated(DecisionSerializer, request)
    actor = actor_for(request.user)
    try:
        plan = services.decide_plan(
            planId,
            actor,
            data["action"],
            comments=data["comments"],
            conditions=data["conditions"],
            level=data.get("level"),
            expected_version=data.get("version"),
            context=AuditContext.from_request(request),
            idempotency_key=getattr(request, "idempotency_key", None),
        )
    except DomainError:
        raise
    except IntegrityError:
        return Response(
            {
                "error": {
                    "code": "CONFLICT",
                    "message": "Approval conflict (duplicate decision)",
                    "details": {},
                }
            },
            status=status.HTTP_409_CONFLICT,
        )
    return _detail(plan, actor)


@api_view(["POST"])
@permission_classes([IsAuthenticated])
def activate_plan(request, planId):
    """
    POST /api/v1/plans/{planId}/activate

    Activate an approved, compliant plan.
    """
    data = _validated(ActivateSerializer, request)
    actor = actor_for(request.user)
    plan = services.activate_plan(
        planId,
        actor,
        notes=data["activationNotes"],
        effective_date=data.get("effectiveDate"),
        expected_version=data.get("version"),
        context=AuditContext.from_request(request),
    )
    return _detail(plan, actor)


@api_view(["POST"])
@permission_classes([IsAuthenticated])
def complete_plan(request, planId):
    """POST /api/v1/plans/{planId}/complete"""
    data = _validated(CompleteSerializer, request)
    actor = actor_for(request.user)
    plan = services.complete_plan(
        planId,
        actor,
        notes=data["notes"],
        expected_version=data.get("version"),
        context=AuditContext.from_request(request),
    )
    return _detail(plan, actor)


@api_view(["POST"])
@permission_classes([IsAuthenticated])
def terminate_plan(request, planId):
    """POST /api/v1/plans/{planId}/terminate"""
    data = _validated(TerminateSerializer, request)
    actor = actor_for(request.user)
    plan = services.terminate_plan(
        planId,
        actor,
        data["reason"],
        expected_version=data.get("version"),
        context=AuditContext.from_request(request),
    )
    return _detail(plan, actor)


@api_view(["POST"])
@permission_classes([IsAuthenticated])
def reopen_plan(request, planId):
    """POST /api/v1/plans/{planId}/reopen"""
    data = _validated(VersionedActionSerializer, request)
    actor = actor_for(request.user)
    plan = services.reopen_plan(
        planId,
        actor,
        expected_version=data.get("version"),
        context=AuditContext.from_request(request),
    )
    return _detail(plan, actor)


@api_view(["POST"])
@permission_classes([IsAuthenticated])
def amend_budget(request, planId):
    """
    POST /api/v1/plans/{planId}/amend-budget

    Reallocate the budget of an active plan.
    """
    data = _validated(AmendBudgetSerializer, request)
    actor = actor_for(request.user)
    plan = services.amend_budget(
        planId,
        actor,
        data["totalAmount"],
        [dict(a) for a in data["allocations"]],
        reason=data["reason"],
        expected_version=data.get("version"),
        context=AuditContext.from_request(request),
    )
    return _detail(plan, actor)


@api_view(["POST"])
@permission_classes([IsAuthenticated])
def record_expenditure(request, planId):
    """POST /api/v1/plans/{planId}/expenditures"""
    data = _validated(ExpenditureSerializer, request)
    actor = actor_for(request.user)
    plan = services.record_expenditure(
        planId,
        actor,
        committed_amount=data["committedAmount"],
        spent_amount=data["spentAmount"],
        expected_version=data.get("version"),
        context=AuditContext.from_request(request),
    )
    return _detail(plan, actor)


@api_view(["POST"])
@permission_classes([IsAuthenticated])
def clone_plan(request, planId):
    """
    POST /api/v1/plans/{planId}/clone

    Copy a plan into a new draft.
    """
    data = _validated(CloneSerializer, request)
    actor = actor_for(request.user)
    plan = services.clone_plan(
        planId,
        actor,
        context=AuditContext.from_request(request),
        title=data.get("title"),
    )
    return _detail(plan, actor, status.HTTP_201_CREATED)
