"""
Procurement plan models.

Budget, workflow, risk and compliance sub-structures are JSON columns so
their sub-fields can evolve without migrations. Money columns are Decimal.
"""

import uuid
from decimal import Decimal
from django.db import models


class PlanType(models.TextChoices):
    ANNUAL = "annual"
    QUARTERLY = "quarterly"
    PROJECT_BASED = "project_based"
    EMERGENCY = "emergency"
    STRATEGIC = "strategic"
    OPERATIONAL = "operational"


PLAN_NUMBER_PREFIXES = {
    PlanType.ANNUAL.value: "ANN",
    PlanType.QUARTERLY.value: "QTR",
    PlanType.PROJECT_BASED.value: "PRJ",
    PlanType.EMERGENCY.value: "EMG",
    PlanType.STRATEGIC.value: "STR",
    PlanType.OPERATIONAL.value: "OPS",
}


class PlanStatus(models.TextChoices):
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


class Currency(models.TextChoices):
    USD = "USD"
    EUR = "EUR"
    GBP = "GBP"
    CAD = "CAD"


class Category(models.TextChoices):
    GOODS = "goods"
    SERVICES = "services"
    WORKS = "works"
    CONSULTANCY = "consultancy"
    TECHNOLOGY = "technology"
    MAINTENANCE = "maintenance"


class Priority(models.TextChoices):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class Plan(models.Model):
    """Plan model - a budgeted procurement plan and its approval workflow."""

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    plan_number = models.CharField(max_length=32, unique=True)
    version = models.IntegerField(default=1)

    title = models.CharField(max_length=255)
    description = models.TextField(blank=True, default="")
    plan_type = models.CharField(max_length=20, choices=PlanType.choices)
    fiscal_year = models.IntegerField()
    department = models.CharField(max_length=100)
    categories = models.JSONField(default=list, blank=True)
    priority = models.CharField(
        max_length=10, choices=Priority.choices, default=Priority.MEDIUM
    )
    objectives = models.JSONField(default=list, blank=True)
    milestones = models.JSONField(default=list, blank=True)
    start_date = models.DateField()
    end_date = models.DateField()

    total_amount = models.DecimalField(max_digits=15, decimal_places=2)
    currency = models.CharField(
        max_length=3, choices=Currency.choices, default=Currency.USD
    )
    allocations = models.JSONField(default=list, blank=True)
    contingency_percent = models.DecimalField(
        max_digits=5, decimal_places=2, default=Decimal("10")
    )
    approved_amount = models.DecimalField(
        max_digits=15, decimal_places=2, default=Decimal("0")
    )
    spent_amount = models.DecimalField(
        max_digits=15, decimal_places=2, default=Decimal("0")
    )
    committed_amount = models.DecimalField(
        max_digits=15, decimal_places=2, default=Decimal("0")
    )

    status = models.CharField(
        max_length=25, choices=PlanStatus.choices, default=PlanStatus.DRAFT
    )
    approval_workflow = models.JSONField(default=dict, blank=True)
    submission_cycle = models.IntegerField(default=0)
    status_note = models.TextField(blank=True, default="")

    risks = models.JSONField(default=list, blank=True)
    risk_score = models.DecimalField(
        max_digits=5, decimal_places=2, default=Decimal("0")
    )
    risk_level = models.CharField(max_length=10, default="low")
    compliance = models.JSONField(default=dict, blank=True)
    compliance_status = models.CharField(max_length=20, null=True, blank=True)
    compliance_issues = models.JSONField(default=list, blank=True)

    plan_owner = models.ForeignKey(
        "users.User",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="owned_plans",
    )
    stakeholders = models.JSONField(default=list, blank=True)

    created_at = models.DateTimeField(auto_now_add=True)
    created_by = models.ForeignKey(
        "users.User", on_delete=models.PROTECT, related_name="created_plans"
    )
    updated_at = models.DateTimeField(auto_now=True)
    updated_by = models.ForeignKey(
        "users.User",
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name="updated_plans",
    )
    submitted_at = models.DateTimeField(null=True, blank=True)
    submitted_by = models.ForeignKey(
        "users.User",
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name="submitted_plans",
    )
    approved_at = models.DateTimeField(null=True, blank=True)
    approved_by = models.ForeignKey(
        "users.User",
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name="approved_plans",
    )
    activated_at = models.DateTimeField(null=True, blank=True)
    activated_by = models.ForeignKey(
        "users.User",
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name="activated_plans",
    )
    effective_date = models.DateField(null=True, blank=True)
    closed_at = models.DateTimeField(null=True, blank=True)
    closed_by = models.ForeignKey(
        "users.User",
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name="closed_plans",
    )
    deleted_at = models.DateTimeField(null=True, blank=True)
    deleted_by = models.ForeignKey(
        "users.User",
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name="deleted_plans",
    )
    archived_at = models.DateTimeField(null=True, blank=True)
    archived_by = models.ForeignKey(
        "users.User",
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name="archived_plans",
    )
    cloned_from = models.ForeignKey(
        "self",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="clones",
    )

    class Meta:
        db_table = "procurement_plans"
        constraints = [
            models.CheckConstraint(
                condition=models.Q(status__in=PlanStatus.values),
                name="valid_plan_status",
            ),
            models.CheckConstraint(
                condition=models.Q(total_amount__gte=0),
                name="plan_total_non_negative",
            ),
            models.CheckConstraint(
                condition=models.Q(contingency_percent__gte=0)
                & models.Q(contingency_percent__lte=50),
                name="plan_contingency_range",
            ),
            models.CheckConstraint(
                condition=models.Q(end_date__gt=models.F("start_date")),
                name="plan_end_after_start",
            ),
            models.CheckConstraint(
                condition=models.Q(version__gte=1),
                name="plan_version_positive",
            ),
        ]
        indexes = [
            models.Index(fields=["status"], name="idx_plan_status"),
            models.Index(fields=["department"], name="idx_plan_department"),
            models.Index(
                fields=["plan_type", "fiscal_year"], name="idx_plan_type_year"
            ),
            models.Index(fields=["created_by"], name="idx_plan_created_by"),
        ]

    def __str__(self):
        return f"{self.plan_number} ({self.status})"

    @property
    def is_deleted(self):
        return self.deleted_at is not None


class ApprovalDecision(models.Model):
    """One approver's decision at one level of one submission cycle."""

    DECISION_CHOICES = [
        ("approve", "Approve"),
        ("reject", "Reject"),
        ("request_changes", "Request changes"),
    ]

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    plan = models.ForeignKey(
        Plan, on_delete=models.PROTECT, related_name="approval_decisions"
    )
    cycle = models.IntegerField()
    level = models.IntegerField()
    actor = models.ForeignKey(
        "users.User", on_delete=models.PROTECT, related_name="plan_decisions"
    )
    decision = models.CharField(max_length=20, choices=DECISION_CHOICES)
    comments = models.TextField(blank=True, default="")
    conditions = models.JSONField(default=list, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = "plan_approval_decisions"
        constraints = [
            models.CheckConstraint(
                condition=models.Q(
                    decision__in=["approve", "reject", "request_changes"]
                ),
                name="valid_plan_decision",
            ),
            models.UniqueConstraint(
                fields=["plan", "cycle", "level", "actor"],
                name="unique_decision_per_level_actor",
            ),
        ]
        indexes = [
            models.Index(fields=["plan", "cycle"], name="idx_decision_plan_cycle"),
        ]

    def __str__(self):
        return f"{self.plan} L{self.level} {self.decision} by {self.actor}"


class IdempotencyKey(models.Model):
    """Idempotency key for replaying plan creation and decisions instead of repeating them."""

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    key = models.CharField(max_length=255, db_index=True)
    operation = models.CharField(max_length=100)
    target_object_id = models.UUIDField(null=True)
    response_code = models.IntegerField(null=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = "idempotency_keys"
        constraints = [
            models.UniqueConstraint(
                fields=["key", "operation"], name="unique_idempotency_per_operation"
            )
        ]

    def __str__(self):
        return f"{self.operation}:{self.key}"
