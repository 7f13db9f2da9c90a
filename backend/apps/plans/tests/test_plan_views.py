"""
API tests for the plan lifecycle, including the reference scenarios:
create (A), submit (B), unauthorized approver (C), final approval (D) and
stale-version update (E).
"""

import uuid

from django.test import TestCase
from rest_framework.test import APIClient

from apps.audit.models import AuditLogEntry
from apps.plans.models import ApprovalDecision, Plan
from apps.plans.tests.helpers import make_user, plan_payload


class PlanApiTestCase(TestCase):
    def setUp(self):
        self.client = APIClient()
        self.planner = make_user("planner")
        self.head = make_user("department_head", role="APPROVER")
        self.finance = make_user("finance_director", role="APPROVER", department="Finance")
        self.outsider = make_user("outsider", role="APPROVER", department="HR")
        self.viewer = make_user("viewer", role="VIEWER")
        self.client.force_authenticate(self.planner)

    def as_user(self, user):
        self.client.force_authenticate(user)

    def post(self, url, body=None, key=None):
        return self.client.post(
            url,
            body or {},
            format="json",
            HTTP_IDEMPOTENCY_KEY=key or str(uuid.uuid4()),
        )

    def create_plan(self, **overrides):
        response = self.post("/api/v1/plans", plan_payload(**overrides))
        self.assertEqual(response.status_code, 201, response.data)
        return response.data["data"]

    def submit(self, plan_id):
        response = self.post(f"/api/v1/plans/{plan_id}/submit")
        self.assertEqual(response.status_code, 200, response.data)
        return response.data["data"]

    def decide(self, plan_id, user, action="approve", key=None, **body):
        self.as_user(user)
        response = self.post(
            f"/api/v1/plans/{plan_id}/approve", {"action": action, **body}, key=key
        )
        self.as_user(self.planner)
        return response

    def approve_fully(self, plan_id):
        self.assertEqual(self.decide(plan_id, self.head).status_code, 200)
        response = self.decide(plan_id, self.finance)
        self.assertEqual(response.status_code, 200, response.data)
        return response.data["data"]

    def entries(self, plan_id):
        return AuditLogEntry.objects.filter(entity_type="Plan", entity_id=plan_id)


class PlanScenarioTests(PlanApiTestCase):
    def test_scenario_a_create_balanced_plan(self):
        data = self.create_plan()

        self.assertEqual(data["status"], "draft")
        self.assertEqual(data["version"], 1)
        self.assertEqual(data["planNumber"], "ANN-2026-0001")
        self.assertEqual(data["categories"], ["goods", "services"])
        self.assertEqual(data["riskLevel"], "medium")
        self.assertEqual(data["complianceStatus"], "compliant")
        self.assertEqual(data["legalActions"], ["update", "submit", "cancel"])

        entry = self.entries(data["id"]).get()
        self.assertEqual(entry.action, "create")
        self.assertIsNone(entry.old_state)
        self.assertEqual(entry.field_diff["status"], {"from": None, "to": "draft", "kind": "added"})

    def test_scenario_b_submit_routes_two_levels(self):
        plan_id = self.create_plan()["id"]
        data = self.submit(plan_id)

        self.assertEqual(data["status"], "under_review")
        levels = data["approvalWorkflow"]["requiredLevels"]
        self.assertEqual([lvl["approvers"] for lvl in levels], [["department_head"], ["finance_director"]])
        self.assertEqual(data["submissionCycle"], 1)

        submitted, review = self.entries(plan_id).filter(action="status_change").order_by("sequence")
        self.assertEqual(submitted.new_state["status"], "submitted")
        self.assertEqual(submitted.actor_id, self.planner.id)
        self.assertEqual(review.new_state["status"], "under_review")
        self.assertIsNone(review.actor_id)
        self.assertEqual(review.actor_role, "SYSTEM")

    def test_scenario_c_non_approver_is_forbidden(self):
        plan_id = self.create_plan()["id"]
        self.submit(plan_id)
        count = self.entries(plan_id).count()

        response = self.decide(plan_id, self.outsider)

        self.assertEqual(response.status_code, 403)
        self.assertEqual(response.data["error"]["code"], "WORKFLOW_VIOLATION")
        self.assertEqual(response.data["error"]["details"]["reason"], "UNAUTHORIZED_ACTOR")
        self.assertEqual(Plan.objects.get(pk=plan_id).status, "under_review")
        self.assertEqual(self.entries(plan_id).count(), count)

    def test_scenario_d_final_approval_is_audited(self):
        plan_id = self.create_plan()["id"]
        self.submit(plan_id)

        data = self.approve_fully(plan_id)

        self.assertEqual(data["status"], "approved")
        self.assertEqual(data["budgetUtilization"]["approvedAmount"], "100000.00")
        entry = self.entries(plan_id).order_by("-sequence").first()
        self.assertEqual(entry.action, "approve")
        self.assertEqual(entry.old_state["status"], "under_review")
        self.assertEqual(entry.new_state["status"], "approved")
        self.assertEqual(entry.actor_id, self.finance.id)

    def test_scenario_e_stale_version_conflicts(self):
        plan_id = self.create_plan()["id"]
        response = self.client.put(
            f"/api/v1/plans/{plan_id}",
            {"title": "First edit", "version": 1},
            format="json",
            HTTP_IDEMPOTENCY_KEY="edit-1",
        )
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data["data"]["version"], 2)
        count = self.entries(plan_id).count()

        response = self.client.put(
            f"/api/v1/plans/{plan_id}",
            {"title": "Stale edit", "version": 1},
            format="json",
            HTTP_IDEMPOTENCY_KEY="edit-2",
        )

        self.assertEqual(response.status_code, 409)
        self.assertEqual(response.data["error"]["code"], "CONFLICT")
        self.assertEqual(response.data["error"]["details"]["currentVersion"], 2)
        plan = Plan.objects.get(pk=plan_id)
        self.assertEqual(plan.title, "First edit")
        self.assertEqual(plan.version, 2)
        self.assertEqual(self.entries(plan_id).count(), count)


class PlanCreationTests(PlanApiTestCase):
    def test_budget_mismatch_is_rejected(self):
        response = self.post(
            "/api/v1/plans", plan_payload(allocations=[{"category": "goods", "amount": "1000"}])
        )
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.data["error"]["details"]["difference"], "99000.00")
        self.assertFalse(Plan.objects.exists())

    def test_end_before_start_is_rejected(self):
        response = self.post(
            "/api/v1/plans", plan_payload(startDate="2026-06-01", endDate="2026-01-01")
        )
        self.assertEqual(response.status_code, 400)

    def test_misordered_declared_levels_are_a_configuration_error(self):
        compliance = {
            "regulations": ["PPA-2015"],
            "declarations": [{"reference": "PPA-2015", "statement": "ok"}],
            "approvalLevels": [
                {"threshold": "5000", "approvers": ["b"]},
                {"threshold": "1000", "approvers": ["a"]},
            ],
        }
        response = self.post("/api/v1/plans", plan_payload(compliance=compliance))
        self.assertEqual(response.status_code, 422)
        self.assertEqual(response.data["error"]["code"], "CONFIGURATION_ERROR")

    def test_viewer_cannot_create(self):
        self.as_user(self.viewer)
        self.assertEqual(self.post("/api/v1/plans", plan_payload()).status_code, 403)

    def test_foreign_department_is_forbidden(self):
        response = self.post("/api/v1/plans", plan_payload(department="Finance"))
        self.assertEqual(response.status_code, 403)

    def test_missing_idempotency_key_is_rejected(self):
        response = self.client.post("/api/v1/plans", plan_payload(), format="json")
        self.assertEqual(response.status_code, 400)

    def test_repeated_idempotency_key_replays_plan(self):
        first = self.post("/api/v1/plans", plan_payload(), key="create-once")
        second = self.post("/api/v1/plans", plan_payload(), key="create-once")

        self.assertEqual(first.status_code, 201)
        self.assertEqual(second.status_code, 200)
        self.assertEqual(first.data["data"]["id"], second.data["data"]["id"])
        self.assertEqual(Plan.objects.count(), 1)
        self.assertEqual(AuditLogEntry.objects.filter(action="create").count(), 1)

    def test_plan_numbers_are_sequential_per_type_and_year(self):
        self.assertEqual(self.create_plan()["planNumber"], "ANN-2026-0001")
        self.assertEqual(self.create_plan()["planNumber"], "ANN-2026-0002")
        self.assertEqual(self.create_plan(planType="emergency")["planNumber"], "EMG-2026-0001")

    def test_invalid_body_lists_field_errors(self):
        response = self.post("/api/v1/plans", {"title": "x"})
        self.assertEqual(response.status_code, 400)
        self.assertIn("planType", response.data["error"]["details"])


class PlanAccessTests(PlanApiTestCase):
    def test_same_department_viewer_can_read(self):
        plan_id = self.create_plan()["id"]
        self.as_user(self.viewer)
        response = self.client.get(f"/api/v1/plans/{plan_id}")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data["data"]["legalActions"], [])

    def test_other_department_cannot_read(self):
        plan_id = self.create_plan()["id"]
        self.as_user(self.outsider)
        self.assertEqual(self.client.get(f"/api/v1/plans/{plan_id}").status_code, 403)

    def test_routed_approver_can_read(self):
        plan_id = self.create_plan()["id"]
        self.submit(plan_id)
        self.as_user(self.finance)
        self.assertEqual(self.client.get(f"/api/v1/plans/{plan_id}").status_code, 200)

    def test_list_is_scoped_and_filtered(self):
        self.create_plan()
        self.create_plan(planType="quarterly")
        response = self.client.get("/api/v1/plans", {"planType": "quarterly"})
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data["count"], 1)

        self.as_user(self.outsider)
        self.assertEqual(self.client.get("/api/v1/plans").data["count"], 0)

    def test_unknown_plan_is_not_found(self):
        response = self.client.get(f"/api/v1/plans/{uuid.uuid4()}")
        self.assertEqual(response.status_code, 404)

    def test_unauthenticated_is_401(self):
        self.client.force_authenticate(None)
        self.assertEqual(self.client.get("/api/v1/plans").status_code, 401)


class PlanWorkflowTests(PlanApiTestCase):
    def test_update_outside_editable_state_is_illegal(self):
        plan_id = self.create_plan()["id"]
        data = self.submit(plan_id)
        response = self.client.put(
            f"/api/v1/plans/{plan_id}",
            {"title": "Late edit", "version": data["version"]},
            format="json",
            HTTP_IDEMPOTENCY_KEY="late",
        )
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.data["error"]["details"]["status"], "under_review")
        self.assertEqual(response.data["error"]["details"]["action"], "update")

    def test_incomplete_plan_cannot_be_submitted(self):
        plan_id = self.create_plan(description="", objectives=[])["id"]
        response = self.post(f"/api/v1/plans/{plan_id}/submit")
        self.assertEqual(response.status_code, 400)
        self.assertEqual(
            response.data["error"]["details"]["missingFields"], ["description", "objectives"]
        )

    def test_repeated_approval_is_idempotent(self):
        plan_id = self.create_plan()["id"]
        self.submit(plan_id)
        first = self.decide(plan_id, self.head)
        count = self.entries(plan_id).count()

        second = self.decide(plan_id, self.head, level=0)

        self.assertEqual(second.status_code, 200)
        self.assertEqual(second.data["data"]["version"], first.data["data"]["version"])
        self.assertEqual(self.entries(plan_id).count(), count)
        self.assertEqual(ApprovalDecision.objects.filter(plan_id=plan_id).count(), 1)

    def test_retried_approval_without_level_is_replayed(self):
        admin = make_user("admin", role="ADMIN", department="")
        plan_id = self.create_plan()["id"]
        self.submit(plan_id)

        first = self.decide(plan_id, admin, key="approve-once")
        retry = self.decide(plan_id, admin, key="approve-once")

        self.assertEqual(first.status_code, 200, first.data)
        self.assertEqual(retry.status_code, 200, retry.data)
        self.assertEqual(retry.data["data"]["status"], "under_review")
        self.assertEqual(retry.data["data"]["version"], first.data["data"]["version"])
        self.assertEqual(self.entries(plan_id).filter(action="approve").count(), 1)
        self.assertEqual(ApprovalDecision.objects.filter(plan_id=plan_id).count(), 1)

    def test_reject_requires_comments(self):
        plan_id = self.create_plan()["id"]
        self.submit(plan_id)
        response = self.decide(plan_id, self.head, action="reject")
        self.assertEqual(response.status_code, 400)

    def test_request_changes_reopen_and_resubmit(self):
        plan_id = self.create_plan()["id"]
        self.submit(plan_id)
        response = self.decide(
            plan_id, self.head, action="request_changes", comments="Split the goods line"
        )
        self.assertEqual(response.data["data"]["status"], "returned_for_changes")
        self.assertEqual(response.data["data"]["statusNote"], "Split the goods line")

        response = self.post(f"/api/v1/plans/{plan_id}/reopen")
        self.assertEqual(response.data["data"]["status"], "draft")

        data = self.submit(plan_id)
        self.assertEqual(data["submissionCycle"], 2)
        self.assertEqual(data["approvalWorkflow"]["currentLevelIndex"], 0)
        # Approval in the new cycle is not blocked by the earlier decision
        self.assertEqual(self.decide(plan_id, self.head).status_code, 200)

    def test_pending_compliance_blocks_activation(self):
        compliance = {
            "regulations": ["PPA-2015"],
            "declarations": [
                {
                    "reference": "PPA-2015",
                    "statement": "Open tender",
                    "evidence": ["notice.pdf"],
                    "verified": False,
                }
            ],
        }
        plan_id = self.create_plan(compliance=compliance)["id"]
        self.submit(plan_id)
        data = self.approve_fully(plan_id)
        self.assertNotIn("activate", data["legalActions"])

        response = self.post(f"/api/v1/plans/{plan_id}/activate")
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.data["error"]["details"]["complianceStatus"], "pending_review")

    def test_active_lifecycle_to_archive(self):
        plan_id = self.create_plan()["id"]
        self.submit(plan_id)
        self.approve_fully(plan_id)

        data = self.post(
            f"/api/v1/plans/{plan_id}/activate", {"activationNotes": "Go"}
        ).data["data"]
        self.assertEqual(data["status"], "active")
        self.assertIsNotNone(data["effectiveDate"])

        response = self.post(
            f"/api/v1/plans/{plan_id}/expenditures",
            {"committedAmount": "20000", "spentAmount": "10000"},
        )
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data["data"]["budgetUtilization"]["availableAmount"], "70000.00")
        self.assertEqual(response.data["data"]["budgetUtilization"]["alerts"], [])

        response = self.post(
            f"/api/v1/plans/{plan_id}/expenditures", {"committedAmount": "55000"}
        )
        utilization = response.data["data"]["budgetUtilization"]
        self.assertEqual(utilization["utilizationPercent"], "85.00")
        self.assertEqual(utilization["alerts"][0]["code"], "BUDGET_THRESHOLD_REACHED")

        response = self.post(
            f"/api/v1/plans/{plan_id}/expenditures", {"spentAmount": "20000"}
        )
        self.assertEqual(response.status_code, 400)

        response = self.post(
            f"/api/v1/plans/{plan_id}/amend-budget",
            {
                "totalAmount": "90000",
                "allocations": [
                    {"category": "goods", "amount": "50000"},
                    {"category": "services", "amount": "40000"},
                ],
            },
        )
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data["data"]["totalAmount"], "90000.00")

        response = self.post(
            f"/api/v1/plans/{plan_id}/amend-budget",
            {"totalAmount": "150000", "allocations": [{"category": "goods", "amount": "150000"}]},
        )
        self.assertEqual(response.status_code, 400)

        self.assertEqual(self.post(f"/api/v1/plans/{plan_id}/terminate", {}).status_code, 400)
        data = self.post(f"/api/v1/plans/{plan_id}/complete").data["data"]
        self.assertEqual(data["status"], "completed")
        self.assertEqual(data["scheduleStatus"], "completed")

        response = self.client.delete(f"/api/v1/plans/{plan_id}")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data["data"]["status"], "archived")
        self.assertEqual(self.client.get(f"/api/v1/plans/{plan_id}").status_code, 200)

    def test_terminate_active_plan(self):
        plan_id = self.create_plan()["id"]
        self.submit(plan_id)
        self.approve_fully(plan_id)
        self.post(f"/api/v1/plans/{plan_id}/activate")

        response = self.post(
            f"/api/v1/plans/{plan_id}/terminate", {"reason": "Funding withdrawn"}
        )
        self.assertEqual(response.data["data"]["status"], "terminated")
        self.assertEqual(response.data["data"]["statusNote"], "Funding withdrawn")
        self.assertEqual(self.post(f"/api/v1/plans/{plan_id}/complete").status_code, 400)

    def test_soft_delete_hides_plan_but_keeps_audit(self):
        plan_id = self.create_plan()["id"]

        response = self.client.delete(f"/api/v1/plans/{plan_id}")

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data["data"]["status"], "cancelled")
        self.assertEqual(self.client.get(f"/api/v1/plans/{plan_id}").status_code, 404)
        self.assertEqual(
            list(self.entries(plan_id).order_by("sequence").values_list("action", flat=True)),
            ["create", "delete"],
        )

    def test_plan_under_review_cannot_be_deleted(self):
        plan_id = self.create_plan()["id"]
        self.submit(plan_id)
        response = self.client.delete(f"/api/v1/plans/{plan_id}")
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.data["error"]["details"]["action"], "delete")

    def test_rejected_plan_can_be_cloned(self):
        plan_id = self.create_plan()["id"]
        self.submit(plan_id)
        self.decide(plan_id, self.head, action="reject", comments="Too costly")

        response = self.post(f"/api/v1/plans/{plan_id}/clone", {"title": "Second attempt"})

        self.assertEqual(response.status_code, 201)
        clone = response.data["data"]
        self.assertEqual(clone["status"], "draft")
        self.assertEqual(clone["title"], "Second attempt")
        self.assertEqual(clone["clonedFrom"], plan_id)
        self.assertEqual(clone["planNumber"], "ANN-2026-0002")
        self.assertEqual(clone["totalAmount"], "100000.00")
