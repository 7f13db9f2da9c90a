"""
Plan workflow engine.

Decides whether a requested action is legal for a plan and an actor, and
computes the resulting status and workflow metadata. Persistence is the
service layer's job; nothing here writes to the database.

Every rejected action raises with the current status, the attempted action
and (for WorkflowViolation) the actions currently legal for the actor.
"""

from dataclasses import dataclass
from typing import Optional

from django.utils import timezone

from core.exceptions import PermissionDeniedError, ValidationError, WorkflowViolation
from apps.plans import budget, routing, scoring
from apps.plans import state_machine as sm
from apps.users.services import (
    PLANS_ACTIVATE,
    PLANS_APPROVE_ALL,
    PLANS_DELETE,
    PLANS_SUBMIT,
    PLANS_UPDATE,
)

UPDATE = "update"
SUBMIT = "submit"
APPROVE = "approve"
REJECT = "reject"
REQUEST_CHANGES = "request_changes"
ACTIVATE = "activate"
COMPLETE = "complete"
TERMINATE = "terminate"
CANCEL = "cancel"
ARCHIVE = "archive"
REOPEN = "reopen"
AMEND_BUDGET = "amend_budget"
RECORD_EXPENDITURE = "record_expenditure"

DECISION_ACTIONS = (APPROVE, REJECT, REQUEST_CHANGES)

# Source states from which each action may be taken
ACTION_RULES = {
    UPDATE: sm.EDITABLE_STATES,
    SUBMIT: sm.EDITABLE_STATES,
    APPROVE: (sm.UNDER_REVIEW,),
    REJECT: (sm.UNDER_REVIEW,),
    REQUEST_CHANGES: (sm.UNDER_REVIEW,),
    ACTIVATE: (sm.APPROVED,),
    COMPLETE: (sm.ACTIVE,),
    TERMINATE: (sm.ACTIVE,),
    CANCEL: (sm.DRAFT, sm.REJECTED),
    ARCHIVE: (sm.APPROVED, sm.ACTIVE, sm.COMPLETED),
    REOPEN: (sm.RETURNED_FOR_CHANGES,),
    AMEND_BUDGET: (sm.ACTIVE,),
    RECORD_EXPENDITURE: (sm.ACTIVE,),
}

# Target status of each action; None means the status does not change
ACTION_TARGETS = {
    UPDATE: None,
    SUBMIT: sm.SUBMITTED,
    REJECT: sm.REJECTED,
    REQUEST_CHANGES: sm.RETURNED_FOR_CHANGES,
    ACTIVATE: sm.ACTIVE,
    COMPLETE: sm.COMPLETED,
    TERMINATE: sm.TERMINATED,
    CANCEL: sm.CANCELLED,
    ARCHIVE: sm.ARCHIVED,
    REOPEN: sm.DRAFT,
    AMEND_BUDGET: None,
    RECORD_EXPENDITURE: None,
}

# Owner-side actions need the permission and the owning department
ACTION_PERMISSIONS = {
    UPDATE: PLANS_UPDATE,
    SUBMIT: PLANS_SUBMIT,
    ACTIVATE: PLANS_ACTIVATE,
    COMPLETE: PLANS_ACTIVATE,
    TERMINATE: PLANS_ACTIVATE,
    CANCEL: PLANS_DELETE,
    ARCHIVE: PLANS_DELETE,
    REOPEN: PLANS_UPDATE,
    AMEND_BUDGET: PLANS_UPDATE,
    RECORD_EXPENDITURE: PLANS_UPDATE,
}


@dataclass(frozen=True)
class DecisionOutcome:
    no_op: bool
    status: str
    workflow: dict
    level: int
    final: bool = False


def is_owner(plan, actor) -> bool:
    return actor.is_admin or (bool(actor.department) and actor.department == plan.department)


def current_level(plan) -> Optional[dict]:
    workflow = plan.approval_workflow or {}
    levels = workflow.get("requiredLevels") or []
    index = workflow.get("currentLevelIndex", 0)
    if 0 <= index < len(levels):
        return levels[index]
    return None


def _level_authorizes(level, actor) -> bool:
    if level is None:
        return False
    approvers = [str(a) for a in level.get("approvers") or []]
    return str(actor.id) in approvers or actor.username in approvers


def can_decide(plan, actor) -> bool:
    """Member of the current level's approvers, or holder of the override."""
    if plan.status != sm.UNDER_REVIEW:
        return False
    return actor.has(PLANS_APPROVE_ALL) or _level_authorizes(current_level(plan), actor)


def is_activation_ready(plan) -> bool:
    # Missing, pending_review and non_compliant statuses all block activation
    return plan.compliance_status == scoring.COMPLIANT


def _actor_may(plan, action, actor) -> bool:
    if action in DECISION_ACTIONS:
        return can_decide(plan, actor)
    return actor.has(ACTION_PERMISSIONS[action]) and is_owner(plan, actor)


def legal_actions(plan, actor) -> list:
    """Actions the actor may take on the plan right now, in ACTION_RULES order."""
    actions = []
    for action, sources in ACTION_RULES.items():
        if plan.status not in sources or not _actor_may(plan, action, actor):
            continue
        if action == ACTIVATE and not is_activation_ready(plan):
            continue
        actions.append(action)
    return actions


def ensure_action(plan, action, actor):
    """
    Raise unless the action is legal for the plan's status and the actor.

    Wrong state -> WorkflowViolation (illegal transition).
    Decision by an actor outside the current level -> WorkflowViolation
    (unauthorized actor). Owner-side action without permission or from
    another department -> PermissionDeniedError.
    """
    allowed = legal_actions(plan, actor)
    if plan.status not in ACTION_RULES[action]:
        raise WorkflowViolation(
            f"Cannot {action.replace('_', ' ')} a plan in status {plan.status}",
            current_status=plan.status,
            action=action,
            legal_actions=allowed,
        )

    if action in DECISION_ACTIONS:
        if not can_decide(plan, actor):
            level = current_level(plan) or {}
            raise WorkflowViolation(
                "Actor is not an approver for the current approval level",
                current_status=plan.status,
                action=action,
                legal_actions=allowed,
                reason=WorkflowViolation.UNAUTHORIZED_ACTOR,
                details={"currentLevel": level.get("level")},
            )
        return

    if not actor.has(ACTION_PERMISSIONS[action]):
        raise PermissionDeniedError(
            f"Missing permission {ACTION_PERMISSIONS[action]}",
            {"status": plan.status, "action": action},
        )
    if not is_owner(plan, actor):
        raise PermissionDeniedError(
            "Only the owning department may perform this action",
            {"status": plan.status, "action": action, "department": plan.department},
        )

    target = ACTION_TARGETS[action]
    if target is not None:
        sm.validate_transition(plan.status, target, action=action, legal_actions=allowed)


def missing_submission_fields(plan) -> list:
    """Names of the fields a plan must populate before it can be submitted."""
    missing = []
    for name, value in (
        ("title", plan.title),
        ("description", plan.description),
        ("department", plan.department),
        ("fiscalYear", plan.fiscal_year),
        ("startDate", plan.start_date),
        ("endDate", plan.end_date),
    ):
        if value in (None, ""):
            missing.append(name)
    if not plan.objectives:
        missing.append("objectives")
    if not plan.allocations:
        missing.append("allocations")
    if budget.to_decimal(plan.total_amount) <= 0:
        missing.append("totalAmount")
    compliance = plan.compliance or {}
    if not (compliance.get("regulations") or compliance.get("policies")):
        missing.append("compliance")
    return missing


def prepare_submission(plan, policy=None) -> dict:
    """
    Validate a submission and build the fresh approval workflow.

    Raises ValidationError for a budget mismatch or an incomplete plan.
    """
    context = {"status": plan.status, "action": SUBMIT}
    try:
        budget.ensure_valid(plan.total_amount, plan.allocations)
    except ValidationError as exc:
        exc.details.update(context)
        raise

    missing = missing_submission_fields(plan)
    if missing:
        raise ValidationError(
            "Plan is incomplete and cannot be submitted",
            {"missingFields": missing, **context},
        )

    policy = policy or routing.get_policy()
    levels = routing.route(
        plan.total_amount,
        plan.department,
        (plan.compliance or {}).get("approvalLevels"),
        policy=policy,
    )
    previous = plan.approval_workflow or {}
    return {
        "requiredLevels": [level.as_dict() for level in levels],
        "currentLevelIndex": 0,
        "cycle": plan.submission_cycle + 1,
        "policyVersion": policy.version,
        "history": list(previous.get("history") or []),
    }


def apply_decision(
    plan,
    actor,
    decision,
    level=None,
    comments="",
    conditions=None,
    prior_decisions=(),
) -> DecisionOutcome:
    """
    Apply an approve/reject/request_changes decision.

    prior_decisions holds (level, actor_id, decision) tuples already recorded
    in the plan's current submission cycle. A repeated approval by the same
    actor at the same level is a no-op.
    """
    workflow = dict(plan.approval_workflow or {})
    index = workflow.get("currentLevelIndex", 0)
    target_level = index if level is None else level

    for prior_level, prior_actor, prior_decision in prior_decisions:
        if prior_level == target_level and str(prior_actor) == str(actor.id):
            if prior_decision == APPROVE and decision == APPROVE:
                return DecisionOutcome(
                    no_op=True,
                    status=plan.status,
                    workflow=workflow,
                    level=target_level,
                )
            raise WorkflowViolation(
                "A decision was already recorded by this actor at this level",
                current_status=plan.status,
                action=decision,
                legal_actions=legal_actions(plan, actor),
                details={"level": target_level, "recordedDecision": prior_decision},
            )

    ensure_action(plan, decision, actor)

    if target_level != index:
        raise WorkflowViolation(
            f"Approval level {target_level} is not the current level",
            current_status=plan.status,
            action=decision,
            legal_actions=legal_actions(plan, actor),
            details={"currentLevel": index, "requestedLevel": target_level},
        )

    levels = workflow.get("requiredLevels") or []
    history = list(workflow.get("history") or [])
    history.append(
        {
            "cycle": workflow.get("cycle", plan.submission_cycle),
            "level": index,
            "actorId": str(actor.id),
            "decision": decision,
            "comments": comments or "",
            "conditions": list(conditions or []),
            "timestamp": timezone.now().isoformat(),
        }
    )
    workflow["history"] = history

    final = False
    if decision == APPROVE:
        if index >= len(levels) - 1:
            status = sm.APPROVED
            final = True
        else:
            status = sm.UNDER_REVIEW
            workflow["currentLevelIndex"] = index + 1
    elif decision == REJECT:
        status = sm.REJECTED
    else:
        status = sm.RETURNED_FOR_CHANGES

    sm.validate_transition(plan.status, status, action=decision)
    return DecisionOutcome(
        no_op=False, status=status, workflow=workflow, level=index, final=final
    )


def ensure_activation(plan, actor):
    ensure_action(plan, ACTIVATE, actor)
    if not is_activation_ready(plan):
        raise ValidationError(
            "Plan must be compliant before activation",
            {
                "status": plan.status,
                "action": ACTIVATE,
                "complianceStatus": plan.compliance_status,
                "complianceIssues": plan.compliance_issues,
            },
        )


def schedule_status(plan, today=None) -> str:
    today = today or timezone.localdate()
    if plan.status in (sm.COMPLETED, sm.TERMINATED, sm.ARCHIVED):
        return "completed"
    if plan.status == sm.CANCELLED:
        return "cancelled"
    if today < plan.start_date:
        return "not_started"
    if today > plan.end_date:
        return "overdue"
    return "on_track"
