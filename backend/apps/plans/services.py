"""
Plan services - all plan mutations flow through this layer.

Rules:
- All mutations wrapped in transaction.atomic
- Use select_for_update for row-level locking
- Validate actions through the workflow engine before changes
- Persist through version_locked_update (version + 1 per accepted change)
- Every mutation is audited from the locked row; entries are written after commit
- No direct model.save() from views
"""

import logging
from decimal import Decimal

from django.db import transaction
from django.utils import timezone

from core.exceptions import (
    ConflictError,
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
    WorkflowViolation,
)
from core.middleware import get_current_request_id
from core.retry import with_storage_retry
from apps.audit.models import AuditAction
from apps.audit import registry
from apps.audit.services import audited, record
from apps.plans import budget, routing, scoring, workflow
from apps.plans import state_machine as sm
from apps.plans.models import (
    PLAN_NUMBER_PREFIXES,
    ApprovalDecision,
    IdempotencyKey,
    Plan,
)
from apps.plans.versioning import version_locked_update
from apps.users.services import PLANS_CREATE, PLANS_READ, PLANS_READ_ALL

logger = logging.getLogger(__name__)

ENTITY_TYPE = "Plan"
CREATE_OPERATION = "CREATE_PLAN"
DECIDE_OPERATION = "DECIDE_PLAN"

DECISION_AUDIT_ACTIONS = {
    workflow.APPROVE: AuditAction.APPROVE,
    workflow.REJECT: AuditAction.REJECT,
    workflow.REQUEST_CHANGES: AuditAction.STATUS_CHANGE,
}

# Fields a clone copies from its source
CLONED_FIELDS = (
    "description",
    "plan_type",
    "fiscal_year",
    "department",
    "categories",
    "priority",
    "objectives",
    "milestones",
    "start_date",
    "end_date",
    "total_amount",
    "currency",
    "allocations",
    "contingency_percent",
    "risks",
    "risk_score",
    "risk_level",
    "compliance",
    "compliance_status",
    "compliance_issues",
    "plan_owner_id",
    "stakeholders",
)


def snapshot_plan(plan):
    """Top-level persisted fields of a plan, keyed by column attribute name."""
    return {field.attname: getattr(plan, field.attname) for field in plan._meta.concrete_fields}


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _log(event, plan, actor, operation, **fields):
    logger.info(
        event,
        extra={
            "operation": operation,
            "entity_id": str(plan.id),
            "actor_id": str(actor.id) if actor is not None else None,
            "status": plan.status,
            "version": plan.version,
            "request_id": get_current_request_id(),
            **fields,
        },
    )


def _lock(plan_id, capture=None):
    """Lock a live plan row; capture() snapshots it as the audited before state."""
    try:
        plan = Plan.objects.select_for_update().get(pk=plan_id, deleted_at__isnull=True)
    except Plan.DoesNotExist:
        raise NotFoundError(f"Plan {plan_id} does not exist")
    if capture is not None:
        capture(plan)
    return plan


def _check_version(plan, expected_version):
    if expected_version is not None and plan.version != expected_version:
        raise ConflictError(
            "Plan was modified concurrently. Refetch and reapply the change.",
            {"expectedVersion": expected_version, "currentVersion": plan.version},
        )


def _persist(plan, actor, **updates):
    """Version-locked write of updates; returns the fresh plan."""
    updates["updated_at"] = timezone.now()
    if actor is not None:
        updates["updated_by_id"] = actor.id
    version_locked_update(Plan.objects.filter(pk=plan.pk), plan.version, **updates)
    return Plan.objects.get(pk=plan.pk)


def _run(operation, audit_action, plan_id, actor, context, call):
    """Run call(capture) under the audit wrapper, retrying storage timeouts."""
    return with_storage_retry(
        audited,
        audit_action,
        ENTITY_TYPE,
        plan_id,
        actor,
        context,
        call,
        operation=operation,
    )


def _validate_dates(start_date, end_date):
    if start_date and end_date and start_date >= end_date:
        raise ValidationError(
            "Start date must be before end date",
            {"startDate": str(start_date), "endDate": str(end_date)},
        )


def _dedupe(values):
    seen = []
    for value in values or []:
        if value not in seen:
            seen.append(value)
    return seen


def _normalize_allocations(allocations):
    return [
        {
            "category": a.get("category"),
            "amount": str(budget.to_decimal(a.get("amount", 0)).quantize(budget.CENTS)),
            "description": a.get("description", ""),
        }
        for a in allocations or []
    ]


def _scored_fields(risks, compliance):
    assessment = scoring.assess_risks(risks)
    result = scoring.validate_compliance(compliance)
    return {
        "risk_score": assessment.total_score,
        "risk_level": assessment.level,
        "compliance_status": result.status,
        "compliance_issues": result.issues,
    }


def next_plan_number(plan_type, fiscal_year):
    """<PREFIX>-<fiscalYear>-<NNNN>, sequential per prefix and year."""
    prefix = f"{PLAN_NUMBER_PREFIXES[plan_type]}-{fiscal_year}-"
    last = (
        Plan.objects.filter(plan_number__startswith=prefix)
        .order_by("-plan_number")
        .values_list("plan_number", flat=True)
        .first()
    )
    sequence = int(last.rsplit("-", 1)[1]) + 1 if last else 1
    return f"{prefix}{sequence:04d}"


def _is_routed_approver(plan, actor):
    levels = (plan.approval_workflow or {}).get("requiredLevels") or []
    for level in levels:
        approvers = [str(a) for a in level.get("approvers") or []]
        if str(actor.id) in approvers or actor.username in approvers:
            return True
    return False


def can_view(plan, actor):
    """
    Read access: plans:read:all, or plans:read plus one of same department,
    creator, plan owner, stakeholder or routed approver.
    """
    if actor.has(PLANS_READ_ALL):
        return True
    if not actor.has(PLANS_READ):
        return False
    actor_id = str(actor.id)
    return (
        (bool(actor.department) and actor.department == plan.department)
        or str(plan.created_by_id) == actor_id
        or str(plan.plan_owner_id) == actor_id
        or actor_id in [str(s) for s in plan.stakeholders or []]
        or _is_routed_approver(plan, actor)
    )


def _ensure_can_view(plan, actor):
    if not can_view(plan, actor):
        raise PermissionDeniedError(
            "You do not have access to this plan", {"planId": str(plan.id)}
        )


# ---------------------------------------------------------------------------
# Queries
# ---------------------------------------------------------------------------


def get_plan(plan_id, actor):
    """Load a visible, non-deleted plan. Soft-deleted plans are not found."""
    plan = Plan.objects.filter(pk=plan_id, deleted_at__isnull=True).first()
    if plan is None:
        raise NotFoundError(f"Plan {plan_id} does not exist")
    _ensure_can_view(plan, actor)
    return plan


def list_plans(actor, status=None, department=None, plan_type=None, fiscal_year=None):
    queryset = Plan.objects.filter(deleted_at__isnull=True).order_by("-created_at")
    if status:
        queryset = queryset.filter(status=status)
    if department:
        queryset = queryset.filter(department=department)
    if plan_type:
        queryset = queryset.filter(plan_type=plan_type)
    if fiscal_year:
        queryset = queryset.filter(fiscal_year=fiscal_year)
    if actor.has(PLANS_READ_ALL):
        return queryset
    return [plan for plan in queryset if can_view(plan, actor)]


# ---------------------------------------------------------------------------
# Creation
# ---------------------------------------------------------------------------


def create_plan(actor, data, context=None, idempotency_key=None):
    """
    Create a plan in draft.

    Args:
        actor: Actor creating the plan (needs plans:create)
        data: validated payload (snake_case model field names)
        context: AuditContext
        idempotency_key: Idempotency-Key header; a repeat returns the first plan

    Returns:
        (Plan, created): created is False for an idempotent replay

    Raises:
        PermissionDeniedError: missing plans:create or foreign department
        ValidationError: date range or budget mismatch
        ConfigurationError: misordered declared approval levels
    """
    if not actor.has(PLANS_CREATE):
        raise PermissionDeniedError(f"Missing permission {PLANS_CREATE}")

    scoped_key = f"{actor.id}:{idempotency_key}" if idempotency_key else None
    if scoped_key:
        existing_key = IdempotencyKey.objects.filter(
            key=scoped_key, operation=CREATE_OPERATION
        ).first()
        if existing_key and existing_key.target_object_id:
            existing = Plan.objects.filter(pk=existing_key.target_object_id).first()
            if existing is not None:
                return existing, False

    department = data.get("department") or actor.department
    if not department:
        raise ValidationError("Department is required", {"department": "required"})
    if department != actor.department and not actor.is_admin:
        raise PermissionDeniedError(
            "Plans can only be created for your own department",
            {"department": department},
        )

    _validate_dates(data.get("start_date"), data.get("end_date"))
    allocations = _normalize_allocations(data.get("allocations"))
    total_amount = budget.to_decimal(data.get("total_amount", 0))
    budget.ensure_valid(total_amount, allocations)

    compliance = data.get("compliance") or {}
    routing.validate_declared_levels(compliance.get("approvalLevels"))
    risks = data.get("risks") or []

    def _create(_capture):
        with transaction.atomic():
            plan = Plan.objects.create(
                plan_number=next_plan_number(data["plan_type"], data["fiscal_year"]),
                title=data["title"].strip(),
                description=data.get("description", ""),
                plan_type=data["plan_type"],
                fiscal_year=data["fiscal_year"],
                department=department,
                categories=_dedupe(data.get("categories")),
                priority=data.get("priority") or "medium",
                objectives=data.get("objectives") or [],
                milestones=data.get("milestones") or [],
                start_date=data["start_date"],
                end_date=data["end_date"],
                total_amount=total_amount,
                currency=data.get("currency") or "USD",
                allocations=allocations,
                contingency_percent=data.get("contingency_percent", Decimal("10")),
                risks=risks,
                compliance=compliance,
                plan_owner_id=data.get("plan_owner_id"),
                stakeholders=[str(s) for s in data.get("stakeholders") or []],
                created_by_id=actor.id,
                updated_by_id=actor.id,
                **_scored_fields(risks, compliance),
            )
            if scoped_key:
                IdempotencyKey.objects.create(
                    key=scoped_key,
                    operation=CREATE_OPERATION,
                    target_object_id=plan.id,
                    response_code=201,
                )
            return plan

    plan = with_storage_retry(
        audited,
        AuditAction.CREATE,
        ENTITY_TYPE,
        None,
        actor,
        context,
        _create,
        operation="create_plan",
    )
    _log("plan_created", plan, actor, "create_plan", plan_number=plan.plan_number)
    return plan, True


def clone_plan(plan_id, actor, context=None, title=None):
    """Copy a plan's content into a new draft with a new plan number."""
    source = get_plan(plan_id, actor)
    if not actor.has(PLANS_CREATE):
        raise PermissionDeniedError(f"Missing permission {PLANS_CREATE}")
    if not workflow.is_owner(source, actor):
        raise PermissionDeniedError(
            "Only the owning department may clone this plan",
            {"department": source.department},
        )

    def _clone(_capture):
        with transaction.atomic():
            fields = {name: getattr(source, name) for name in CLONED_FIELDS}
            return Plan.objects.create(
                plan_number=next_plan_number(source.plan_type, source.fiscal_year),
                title=(title or f"{source.title} (copy)")[:255],
                cloned_from=source,
                created_by_id=actor.id,
                updated_by_id=actor.id,
                **fields,
            )

    plan = with_storage_retry(
        audited,
        AuditAction.CREATE,
        ENTITY_TYPE,
        None,
        actor,
        context,
        _clone,
        operation="clone_plan",
    )
    _log("plan_cloned", plan, actor, "clone_plan", source_id=str(source.id))
    return plan


# ---------------------------------------------------------------------------
# Editing
# ---------------------------------------------------------------------------


def update_plan(plan_id, actor, data, expected_version, context=None):
    """
    Update an editable plan (draft or returned_for_changes).

    The merged budget must validate; risks and compliance are rescored when
    they change. A stale expected_version raises ConflictError.
    """

    def _update(capture):
        with transaction.atomic():
            plan = _lock(plan_id, capture)
            _check_version(plan, expected_version)
            workflow.ensure_action(plan, workflow.UPDATE, actor)

            updates = {}
            for name in (
                "title",
                "description",
                "priority",
                "objectives",
                "milestones",
                "start_date",
                "end_date",
                "currency",
                "contingency_percent",
                "plan_owner_id",
            ):
                if name in data:
                    updates[name] = data[name]
            if "categories" in data:
                updates["categories"] = _dedupe(data["categories"])
            if "stakeholders" in data:
                updates["stakeholders"] = [str(s) for s in data["stakeholders"] or []]
            if "allocations" in data:
                updates["allocations"] = _normalize_allocations(data["allocations"])
            if "total_amount" in data:
                updates["total_amount"] = budget.to_decimal(data["total_amount"])

            _validate_dates(
                updates.get("start_date", plan.start_date),
                updates.get("end_date", plan.end_date),
            )
            budget.ensure_valid(
                updates.get("total_amount", plan.total_amount),
                updates.get("allocations", plan.allocations),
            )

            if "risks" in data or "compliance" in data:
                risks = data.get("risks", plan.risks)
                compliance = data.get("compliance", plan.compliance) or {}
                routing.validate_declared_levels(compliance.get("approvalLevels"))
                updates["risks"] = risks
                updates["compliance"] = compliance
                updates.update(_scored_fields(risks, compliance))

            return _persist(plan, actor, **updates)

    plan = _run("update_plan", AuditAction.UPDATE, plan_id, actor, context, _update)
    _log("plan_updated", plan, actor, "update_plan", fields=sorted(data))
    return plan


# ---------------------------------------------------------------------------
# Submission and approval
# ---------------------------------------------------------------------------


def submit_plan(plan_id, actor, note="", expected_version=None, context=None):
    """
    Submit a plan for approval: draft/returned_for_changes -> submitted ->
    under_review. Both status writes commit in one transaction, so a failed
    second step leaves the plan where it was. Each step gets its own audit
    entry after commit; the second is a system transition with no actor.
    """

    def _submit():
        with transaction.atomic():
            locked = _lock(plan_id)
            before = registry.serialize(ENTITY_TYPE, locked)
            _check_version(locked, expected_version)
            workflow.ensure_action(locked, workflow.SUBMIT, actor)
            approval_workflow = workflow.prepare_submission(locked)
            now = timezone.now()
            submitted = _persist(
                locked,
                actor,
                status=sm.SUBMITTED,
                approval_workflow=approval_workflow,
                submission_cycle=approval_workflow["cycle"],
                submitted_at=now,
                submitted_by_id=actor.id,
                status_note=note or "",
            )
            sm.validate_transition(submitted.status, sm.UNDER_REVIEW, action=workflow.SUBMIT)
            return before, submitted, _persist(submitted, None, status=sm.UNDER_REVIEW)

    before, submitted, plan = with_storage_retry(_submit, operation="submit_plan")

    submitted_state = registry.serialize(ENTITY_TYPE, submitted)
    record(AuditAction.STATUS_CHANGE, ENTITY_TYPE, plan.id, actor, before, submitted_state, context)
    _log("plan_submitted", submitted, actor, "submit_plan", cycle=plan.submission_cycle)

    record(
        AuditAction.STATUS_CHANGE,
        ENTITY_TYPE,
        plan.id,
        None,
        submitted_state,
        registry.serialize(ENTITY_TYPE, plan),
        context,
    )
    _log(
        "plan_under_review",
        plan,
        None,
        "start_review",
        required_levels=len(plan.approval_workflow.get("requiredLevels", [])),
    )
    return plan


def _replayed_decision(plan, scoped_key):
    if not scoped_key:
        return False
    existing = IdempotencyKey.objects.filter(key=scoped_key, operation=DECIDE_OPERATION).first()
    if existing is None:
        return False
    if existing.target_object_id != plan.id:
        raise ConflictError(
            "Idempotency key was already used for another plan",
            {"planId": str(plan.id), "originalPlanId": str(existing.target_object_id)},
        )
    return True


def decide_plan(
    plan_id,
    actor,
    decision,
    comments="",
    conditions=None,
    level=None,
    expected_version=None,
    context=None,
    idempotency_key=None,
):
    """
    Record an approve / reject / request_changes decision.

    Replays are no-ops that return the plan unchanged and write nothing:
    - a request carrying an Idempotency-Key this actor already used on this
      plan, whatever level the original decision landed on;
    - a repeated approval by the same actor at the same level of the same
      submission cycle.
    """
    scoped_key = f"{actor.id}:{idempotency_key}" if idempotency_key else None

    def _decide(capture):
        with transaction.atomic():
            plan = _lock(plan_id, capture)
            if _replayed_decision(plan, scoped_key):
                return plan
            prior = ApprovalDecision.objects.filter(
                plan=plan, cycle=plan.submission_cycle
            ).values_list("level", "actor_id", "decision")
            outcome = workflow.apply_decision(
                plan,
                actor,
                decision,
                level=level,
                comments=comments,
                conditions=conditions,
                prior_decisions=list(prior),
            )
            if outcome.no_op:
                return plan
            _check_version(plan, expected_version)

            ApprovalDecision.objects.create(
                plan=plan,
                cycle=plan.submission_cycle,
                level=outcome.level,
                actor_id=actor.id,
                decision=decision,
                comments=comments or "",
                conditions=list(conditions or []),
            )
            if scoped_key:
                IdempotencyKey.objects.create(
                    key=scoped_key,
                    operation=DECIDE_OPERATION,
                    target_object_id=plan.id,
                    response_code=200,
                )

            updates = {"status": outcome.status, "approval_workflow": outcome.workflow}
            if outcome.final:
                updates.update(
                    approved_amount=plan.total_amount,
                    approved_at=timezone.now(),
                    approved_by_id=actor.id,
                )
            elif decision != workflow.APPROVE:
                updates["status_note"] = comments or ""
            return _persist(plan, actor, **updates)

    plan = _run(
        "decide_plan",
        DECISION_AUDIT_ACTIONS[decision],
        plan_id,
        actor,
        context,
        _decide,
    )
    _log("plan_decision_recorded", plan, actor, "decide_plan", decision=decision)
    return plan


# ---------------------------------------------------------------------------
# Execution
# ---------------------------------------------------------------------------


def activate_plan(
    plan_id, actor, notes="", effective_date=None, expected_version=None, context=None
):
    """Approved -> active. Requires compliance_status == compliant."""

    def _activate(capture):
        with transaction.atomic():
            plan = _lock(plan_id, capture)
            _check_version(plan, expected_version)
            workflow.ensure_activation(plan, actor)
            return _persist(
                plan,
                actor,
                status=sm.ACTIVE,
                activated_at=timezone.now(),
                activated_by_id=actor.id,
                effective_date=effective_date or timezone.localdate(),
                status_note=notes or "",
                spent_amount=Decimal("0"),
                committed_amount=Decimal("0"),
            )

    plan = _run("activate_plan", AuditAction.STATUS_CHANGE, plan_id, actor, context, _activate)
    _log("plan_activated", plan, actor, "activate_plan")
    return plan


def _close(plan_id, actor, action, note, expected_version, context):
    def _do_close(capture):
        with transaction.atomic():
            plan = _lock(plan_id, capture)
            _check_version(plan, expected_version)
            workflow.ensure_action(plan, action, actor)
            return _persist(
                plan,
                actor,
                status=workflow.ACTION_TARGETS[action],
                closed_at=timezone.now(),
                closed_by_id=actor.id,
                status_note=note or "",
            )

    plan = _run(f"{action}_plan", AuditAction.STATUS_CHANGE, plan_id, actor, context, _do_close)
    _log(f"plan_{plan.status}", plan, actor, f"{action}_plan")
    return plan


def complete_plan(plan_id, actor, notes="", expected_version=None, context=None):
    return _close(plan_id, actor, workflow.COMPLETE, notes, expected_version, context)


def terminate_plan(plan_id, actor, reason, expected_version=None, context=None):
    if not reason or not reason.strip():
        raise ValidationError(
            "A reason is required to terminate a plan", {"reason": "required"}
        )
    return _close(plan_id, actor, workflow.TERMINATE, reason.strip(), expected_version, context)


def reopen_plan(plan_id, actor, expected_version=None, context=None):
    """Returned_for_changes -> draft."""

    def _reopen(capture):
        with transaction.atomic():
            plan = _lock(plan_id, capture)
            _check_version(plan, expected_version)
            workflow.ensure_action(plan, workflow.REOPEN, actor)
            return _persist(plan, actor, status=sm.DRAFT)

    plan = _run("reopen_plan", AuditAction.STATUS_CHANGE, plan_id, actor, context, _reopen)
    _log("plan_reopened", plan, actor, "reopen_plan")
    return plan


def delete_plan(plan_id, actor, expected_version=None, context=None):
    """
    Soft-delete a draft/rejected plan (status cancelled, hidden from reads)
    or archive an approved/active/completed one. Audit history survives both.
    """
    outcome = {}

    def _delete(capture):
        with transaction.atomic():
            plan = _lock(plan_id, capture)
            _check_version(plan, expected_version)
            now = timezone.now()
            if plan.status in workflow.ACTION_RULES[workflow.CANCEL]:
                workflow.ensure_action(plan, workflow.CANCEL, actor)
                outcome["action"] = workflow.CANCEL
                return _persist(
                    plan,
                    actor,
                    status=sm.CANCELLED,
                    deleted_at=now,
                    deleted_by_id=actor.id,
                )
            if plan.status in workflow.ACTION_RULES[workflow.ARCHIVE]:
                workflow.ensure_action(plan, workflow.ARCHIVE, actor)
                outcome["action"] = workflow.ARCHIVE
                return _persist(
                    plan,
                    actor,
                    status=sm.ARCHIVED,
                    archived_at=now,
                    archived_by_id=actor.id,
                )
            raise WorkflowViolation(
                f"Cannot delete or archive a plan in status {plan.status}",
                current_status=plan.status,
                action="delete",
                legal_actions=workflow.legal_actions(plan, actor),
            )

    plan = _run("delete_plan", AuditAction.DELETE, plan_id, actor, context, _delete)
    _log("plan_deleted", plan, actor, "delete_plan", mode=outcome.get("action"))
    return plan


# ---------------------------------------------------------------------------
# Budget tracking (active plans)
# ---------------------------------------------------------------------------


def amend_budget(
    plan_id, actor, total_amount, allocations, reason="", expected_version=None, context=None
):
    """
    Reallocate an active plan's budget. The new total may not exceed the
    approved amount nor fall below what is already spent and committed.
    """

    def _amend(capture):
        with transaction.atomic():
            plan = _lock(plan_id, capture)
            _check_version(plan, expected_version)
            workflow.ensure_action(plan, workflow.AMEND_BUDGET, actor)

            total = budget.to_decimal(total_amount)
            normalized = _normalize_allocations(allocations)
            budget.ensure_valid(total, normalized)

            used = plan.spent_amount + plan.committed_amount
            details = {
                "totalAmount": str(total),
                "approvedAmount": str(plan.approved_amount),
                "usedAmount": str(used),
                "status": plan.status,
                "action": workflow.AMEND_BUDGET,
            }
            if total > plan.approved_amount:
                raise ValidationError("Amended total exceeds the approved amount", details)
            if total < used:
                raise ValidationError(
                    "Amended total is below the spent and committed amount", details
                )
            return _persist(
                plan,
                actor,
                total_amount=total,
                allocations=normalized,
                status_note=reason or plan.status_note,
            )

    plan = _run("amend_budget", AuditAction.UPDATE, plan_id, actor, context, _amend)
    _log("plan_budget_amended", plan, actor, "amend_budget")
    return plan


def record_expenditure(
    plan_id,
    actor,
    committed_amount=Decimal("0"),
    spent_amount=Decimal("0"),
    expected_version=None,
    context=None,
):
    """Add committed and/or spent amounts to an active plan."""

    def _record(capture):
        with transaction.atomic():
            plan = _lock(plan_id, capture)
            _check_version(plan, expected_version)
            workflow.ensure_action(plan, workflow.RECORD_EXPENDITURE, actor)

            committed = plan.committed_amount + budget.to_decimal(committed_amount)
            spent = plan.spent_amount + budget.to_decimal(spent_amount)
            if committed + spent > plan.approved_amount:
                raise ValidationError(
                    "Expenditure exceeds the approved amount",
                    {
                        "approvedAmount": str(plan.approved_amount),
                        "committedAmount": str(committed),
                        "spentAmount": str(spent),
                        "status": plan.status,
                        "action": workflow.RECORD_EXPENDITURE,
                    },
                )
            return _persist(plan, actor, committed_amount=committed, spent_amount=spent)

    plan = _run("record_expenditure", AuditAction.UPDATE, plan_id, actor, context, _record)
    _log("plan_expenditure_recorded", plan, actor, "record_expenditure")
    return plan
