from django.test import SimpleTestCase

from core.exceptions import WorkflowViolation
from apps.plans import state_machine as sm


class TransitionGraphTests(SimpleTestCase):
    def test_graph_edges_are_allowed(self):
        for current, targets in sm.PLAN_TRANSITIONS.items():
            for target in targets:
                self.assertTrue(sm.validate_transition(current, target))

    def test_skipping_review_is_rejected(self):
        with self.assertRaises(WorkflowViolation) as ctx:
            sm.validate_transition(sm.DRAFT, sm.APPROVED, action="approve")
        details = ctx.exception.details
        self.assertEqual(details["status"], sm.DRAFT)
        self.assertEqual(details["action"], "approve")
        self.assertEqual(details["allowedTransitions"], [sm.SUBMITTED, sm.CANCELLED])

    def test_terminal_states_have_no_exits(self):
        for status in (sm.TERMINATED, sm.CANCELLED, sm.ARCHIVED):
            self.assertTrue(sm.is_terminal_state(status))
            with self.assertRaises(WorkflowViolation):
                sm.validate_transition(status, sm.DRAFT)
        self.assertFalse(sm.is_terminal_state(sm.COMPLETED))

    def test_unknown_status_is_rejected(self):
        with self.assertRaises(WorkflowViolation):
            sm.validate_transition("paused", sm.ACTIVE)

    def test_editable_states(self):
        self.assertTrue(sm.is_editable(sm.DRAFT))
        self.assertTrue(sm.is_editable(sm.RETURNED_FOR_CHANGES))
        self.assertFalse(sm.is_editable(sm.UNDER_REVIEW))


class StatusWalkTests(SimpleTestCase):
    def test_full_lifecycle_is_a_valid_walk(self):
        walk = [
            sm.DRAFT,
            sm.DRAFT,
            sm.SUBMITTED,
            sm.UNDER_REVIEW,
            sm.UNDER_REVIEW,
            sm.APPROVED,
            sm.ACTIVE,
            sm.COMPLETED,
            sm.ARCHIVED,
        ]
        self.assertTrue(sm.is_valid_walk(walk))

    def test_resubmission_after_changes_is_valid(self):
        walk = [
            sm.DRAFT,
            sm.SUBMITTED,
            sm.UNDER_REVIEW,
            sm.RETURNED_FOR_CHANGES,
            sm.SUBMITTED,
            sm.UNDER_REVIEW,
            sm.REJECTED,
            sm.CANCELLED,
        ]
        self.assertEqual(sm.invalid_steps(walk), [])

    def test_invalid_steps_are_reported(self):
        walk = [sm.DRAFT, sm.APPROVED, sm.ACTIVE]
        self.assertEqual(sm.invalid_steps(walk), [(sm.DRAFT, sm.APPROVED)])

    def test_walk_must_start_in_draft(self):
        self.assertEqual(sm.invalid_steps([sm.SUBMITTED]), [(None, sm.SUBMITTED)])
        self.assertTrue(sm.is_valid_walk([]))
