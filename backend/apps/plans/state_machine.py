"""
State machine for procurement plan status.

Raises WorkflowViolation for disallowed transitions.
"""

from core.exceptions import WorkflowViolation

DRAFT = "draft"
SUBMITTED = "submitted"
UNDER_REVIEW = "under_review"
APPROVED = "approved"
REJECTED = "rejected"
RETURNED_FOR_CHANGES = "returned_for_changes"
ACTIVE = "active"
COMPLETED = "completed"
TERMINATED = "terminated"
CANCELLED = "cancelled"
ARCHIVED = "archived"

PLAN_TRANSITIONS = {
    DRAFT: [SUBMITTED, CANCELLED],
    SUBMITTED: [UNDER_REVIEW],
    # UNDER_REVIEW -> UNDER_REVIEW is a level advance
    UNDER_REVIEW: [UNDER_REVIEW, APPROVED, REJECTED, RETURNED_FOR_CHANGES],
    RETURNED_FOR_CHANGES: [SUBMITTED, DRAFT],
    APPROVED: [ACTIVE, ARCHIVED],
    ACTIVE: [COMPLETED, TERMINATED, ARCHIVED],
    COMPLETED: [ARCHIVED],
    REJECTED: [CANCELLED],
    TERMINATED: [],  # Terminal
    CANCELLED: [],  # Terminal
    ARCHIVED: [],  # Terminal
}

EDITABLE_STATES = (DRAFT, RETURNED_FOR_CHANGES)


def validate_transition(current_status, target_status, action=None, legal_actions=()):
    """
    Validate a plan status transition.

    Returns:
        bool: True if transition is allowed

    Raises:
        WorkflowViolation: If the transition is not an edge of the graph
    """
    if current_status not in PLAN_TRANSITIONS:
        raise WorkflowViolation(
            f"Invalid current status: {current_status}",
            current_status=current_status,
            action=action,
            legal_actions=legal_actions,
        )

    allowed_targets = PLAN_TRANSITIONS[current_status]

    if not allowed_targets:
        raise WorkflowViolation(
            f"Plan in state {current_status} is terminal and cannot transition",
            current_status=current_status,
            action=action,
            legal_actions=legal_actions,
            details={"targetStatus": target_status},
        )

    if target_status not in allowed_targets:
        raise WorkflowViolation(
            f"Invalid transition: plan cannot move from {current_status} to {target_status}",
            current_status=current_status,
            action=action,
            legal_actions=legal_actions,
            details={
                "targetStatus": target_status,
                "allowedTransitions": allowed_targets,
            },
        )

    return True


def is_terminal_state(status):
    """Check if a state is terminal (no transitions allowed)."""
    return status in PLAN_TRANSITIONS and len(PLAN_TRANSITIONS[status]) == 0


def is_editable(status):
    return status in EDITABLE_STATES


def invalid_steps(statuses):
    """
    Return the (from, to) pairs in a recorded status sequence that are not
    edges of the graph. Repeated statuses (edits without a status change)
    are not steps. A sequence that does not begin in draft yields (None, first).
    """
    steps = []
    previous = None
    for status in statuses:
        if status is None:
            continue
        if previous is None and status != DRAFT:
            # Every plan is created in draft
            steps.append((None, status))
        elif previous is not None and status != previous:
            if status not in PLAN_TRANSITIONS.get(previous, []):
                steps.append((previous, status))
        previous = status
    return steps


def is_valid_walk(statuses):
    return not invalid_steps(statuses)
