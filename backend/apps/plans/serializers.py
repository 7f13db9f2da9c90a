"""
Serializers for procurement plans.

Request serializers validate one route's body each; services receive the
validated data (snake_case keys) and never inspect raw request payloads.
No business logic in serializers - validation only.
"""

import json

from django.core.serializers.json import DjangoJSONEncoder
from rest_framework import serializers

from apps.plans import budget, workflow
from apps.plans.models import Category, Currency, Plan, PlanType, Priority
from apps.plans.scoring import IMPACT_WEIGHTS, PROBABILITY_WEIGHTS
from apps.users.models import User


def _json_safe(value):
    return json.loads(json.dumps(value, cls=DjangoJSONEncoder))


class AllocationSerializer(serializers.Serializer):
    category = serializers.ChoiceField(choices=Category.choices)
    amount = serializers.DecimalField(max_digits=15, decimal_places=2, min_value=0)
    description = serializers.CharField(required=False, allow_blank=True, default="")


class ObjectiveSerializer(serializers.Serializer):
    title = serializers.CharField(max_length=255)
    description = serializers.CharField(required=False, allow_blank=True, default="")
    priority = serializers.ChoiceField(choices=Priority.choices, default=Priority.MEDIUM)
    targetDate = serializers.DateField(required=False, allow_null=True)
    status = serializers.CharField(required=False, default="pending")


class MilestoneSerializer(serializers.Serializer):
    title = serializers.CharField(max_length=255)
    targetDate = serializers.DateField()
    status = serializers.CharField(required=False, default="pending")


class RiskSerializer(serializers.Serializer):
    category = serializers.CharField(max_length=100)
    probability = serializers.ChoiceField(choices=list(PROBABILITY_WEIGHTS))
    impact = serializers.ChoiceField(choices=list(IMPACT_WEIGHTS))
    mitigation = serializers.CharField(required=False, allow_blank=True, default="")
    owner = serializers.CharField(required=False, allow_blank=True, default="")


class DeclarationSerializer(serializers.Serializer):
    reference = serializers.CharField(max_length=255)
    statement = serializers.CharField(allow_blank=True)
    evidence = serializers.ListField(
        child=serializers.CharField(), required=False, default=list
    )
    verified = serializers.BooleanField(required=False, default=False)


class AuditRequirementSerializer(serializers.Serializer):
    requirement = serializers.CharField(max_length=255)
    satisfied = serializers.BooleanField(required=False, default=False)


class ApprovalLevelSerializer(serializers.Serializer):
    threshold = serializers.DecimalField(max_digits=15, decimal_places=2, min_value=0)
    approvers = serializers.ListField(child=serializers.CharField(), allow_empty=False)
    conditions = serializers.ListField(
        child=serializers.CharField(), required=False, default=list
    )


class ComplianceSerializer(serializers.Serializer):
    regulations = serializers.ListField(
        child=serializers.CharField(), required=False, default=list
    )
    policies = serializers.ListField(
        child=serializers.CharField(), required=False, default=list
    )
    declarations = DeclarationSerializer(many=True, required=False, default=list)
    auditRequirements = AuditRequirementSerializer(
        many=True, required=False, default=list
    )
    approvalLevels = ApprovalLevelSerializer(many=True, required=False, default=list)


class PlanContentSerializer(serializers.Serializer):
    """Fields shared by create and update."""

    JSON_FIELDS = ("objectives", "milestones", "risks", "compliance", "stakeholders")

    title = serializers.CharField(max_length=255)
    description = serializers.CharField(required=False, allow_blank=True)
    categories = serializers.ListField(
        child=serializers.ChoiceField(choices=Category.choices), required=False
    )
    priority = serializers.ChoiceField(choices=Priority.choices, required=False)
    objectives = ObjectiveSerializer(many=True, required=False)
    milestones = MilestoneSerializer(many=True, required=False)
    startDate = serializers.DateField(source="start_date")
    endDate = serializers.DateField(source="end_date")
    totalAmount = serializers.DecimalField(
        source="total_amount", max_digits=15, decimal_places=2, min_value=0
    )
    currency = serializers.ChoiceField(choices=Currency.choices, required=False)
    allocations = AllocationSerializer(many=True, required=False)
    contingencyPercent = serializers.DecimalField(
        source="contingency_percent",
        max_digits=5,
        decimal_places=2,
        min_value=0,
        max_value=50,
        required=False,
    )
    risks = RiskSerializer(many=True, required=False)
    compliance = ComplianceSerializer(required=False)
    planOwner = serializers.UUIDField(source="plan_owner_id", required=False, allow_null=True)
    stakeholders = serializers.ListField(child=serializers.UUIDField(), required=False)

    def validate_planOwner(self, value):
        if value is not None and not User.objects.filter(id=value).exists():
            raise serializers.ValidationError("Unknown user")
        return value

    def validate(self, attrs):
        for name in self.JSON_FIELDS:
            if name in attrs:
                attrs[name] = _json_safe(attrs[name])
        if "allocations" in attrs:
            attrs["allocations"] = [dict(a) for a in attrs["allocations"]]
        return attrs


class PlanCreateSerializer(PlanContentSerializer):
    """POST /plans"""

    planType = serializers.ChoiceField(source="plan_type", choices=PlanType.choices)
    fiscalYear = serializers.IntegerField(source="fiscal_year", min_value=2000, max_value=2100)
    department = serializers.CharField(max_length=100, required=False)


class PlanUpdateSerializer(PlanContentSerializer):
    """PUT /plans/:id - every content field optional, version required."""

    version = serializers.IntegerField(min_value=1)

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        for name, field in self.fields.items():
            if name != "version":
                field.required = False


class VersionedActionSerializer(serializers.Serializer):
    version = serializers.IntegerField(min_value=1, required=False)


class SubmitSerializer(VersionedActionSerializer):
    """POST /plans/:id/submit"""

    submissionNote = serializers.CharField(
        required=False, allow_blank=True, max_length=1000, default=""
    )


class DecisionSerializer(VersionedActionSerializer):
    """POST /plans/:id/approve"""

    action = serializers.ChoiceField(choices=list(workflow.DECISION_ACTIONS))
    comments = serializers.CharField(
        required=False, allow_blank=True, max_length=1000, default=""
    )
    conditions = serializers.ListField(
        child=serializers.CharField(), required=False, default=list
    )
    level = serializers.IntegerField(min_value=0, required=False, allow_null=True)

    def validate(self, attrs):
        if attrs["action"] != workflow.APPROVE and not attrs.get("comments", "").strip():
            raise serializers.ValidationError(
                {"comments": "Comments are required to reject or request changes."}
            )
        return attrs


class ActivateSerializer(VersionedActionSerializer):
    """POST /plans/:id/activate"""

    activationNotes = serializers.CharField(
        required=False, allow_blank=True, max_length=1000, default=""
    )
    effectiveDate = serializers.DateField(required=False, allow_null=True)


class CompleteSerializer(VersionedActionSerializer):
    """POST /plans/:id/complete"""

    notes = serializers.CharField(required=False, allow_blank=True, max_length=1000, default="")


class TerminateSerializer(VersionedActionSerializer):
    """POST /plans/:id/terminate"""

    reason = serializers.CharField(max_length=1000)


class AmendBudgetSerializer(VersionedActionSerializer):
    """POST /plans/:id/amend-budget"""

    totalAmount = serializers.DecimalField(max_digits=15, decimal_places=2, min_value=0)
    allocations = AllocationSerializer(many=True)
    reason = serializers.CharField(required=False, allow_blank=True, max_length=1000, default="")


class ExpenditureSerializer(VersionedActionSerializer):
    """POST /plans/:id/expenditures"""

    committedAmount = serializers.DecimalField(
        max_digits=15, decimal_places=2, min_value=0, required=False, default=0
    )
    spentAmount = serializers.DecimalField(
        max_digits=15, decimal_places=2, min_value=0, required=False, default=0
    )

    def validate(self, attrs):
        if not attrs["committedAmount"] and not attrs["spentAmount"]:
            raise serializers.ValidationError(
                "committedAmount or spentAmount must be positive."
            )
        return attrs


class CloneSerializer(serializers.Serializer):
    """POST /plans/:id/clone"""

    title = serializers.CharField(max_length=255, required=False)


class PlanSerializer(serializers.ModelSerializer):
    """Serializer for Plan (list representation)."""

    id = serializers.UUIDField(read_only=True)
    planNumber = serializers.CharField(source="plan_number", read_only=True)
    planType = serializers.CharField(source="plan_type", read_only=True)
    fiscalYear = serializers.IntegerField(source="fiscal_year", read_only=True)
    startDate = serializers.DateField(source="start_date", read_only=True)
    endDate = serializers.DateField(source="end_date", read_only=True)
    totalAmount = serializers.DecimalField(
        source="total_amount", max_digits=15, decimal_places=2, read_only=True
    )
    riskLevel = serializers.CharField(source="risk_level", read_only=True)
    complianceStatus = serializers.CharField(
        source="compliance_status", read_only=True, allow_null=True
    )
    createdAt = serializers.DateTimeField(source="created_at", read_only=True)
    createdBy = serializers.UUIDField(source="created_by_id", read_only=True)
    updatedAt = serializers.DateTimeField(source="updated_at", read_only=True)

    class Meta:
        model = Plan
        fields = [
            "id",
            "planNumber",
            "version",
            "title",
            "planType",
            "fiscalYear",
            "department",
            "priority",
            "status",
            "startDate",
            "endDate",
            "totalAmount",
            "currency",
            "riskLevel",
            "complianceStatus",
            "createdAt",
            "createdBy",
            "updatedAt",
        ]
        read_only_fields = fields


class PlanDetailSerializer(PlanSerializer):
    """Serializer for Plan detail with derived budget, schedule and legal actions."""

    description = serializers.CharField(read_only=True)
    categories = serializers.JSONField(read_only=True)
    objectives = serializers.JSONField(read_only=True)
    milestones = serializers.JSONField(read_only=True)
    allocations = serializers.JSONField(read_only=True)
    contingencyPercent = serializers.DecimalField(
        source="contingency_percent", max_digits=5, decimal_places=2, read_only=True
    )
    approvalWorkflow = serializers.JSONField(source="approval_workflow", read_only=True)
    submissionCycle = serializers.IntegerField(source="submission_cycle", read_only=True)
    statusNote = serializers.CharField(source="status_note", read_only=True)
    risks = serializers.JSONField(read_only=True)
    riskScore = serializers.DecimalField(
        source="risk_score", max_digits=5, decimal_places=2, read_only=True
    )
    compliance = serializers.JSONField(read_only=True)
    complianceIssues = serializers.JSONField(source="compliance_issues", read_only=True)
    planOwner = serializers.UUIDField(source="plan_owner_id", read_only=True, allow_null=True)
    stakeholders = serializers.JSONField(read_only=True)
    submittedAt = serializers.DateTimeField(source="submitted_at", read_only=True)
    approvedAt = serializers.DateTimeField(source="approved_at", read_only=True)
    approvedBy = serializers.UUIDField(source="approved_by_id", read_only=True, allow_null=True)
    activatedAt = serializers.DateTimeField(source="activated_at", read_only=True)
    effectiveDate = serializers.DateField(source="effective_date", read_only=True)
    closedAt = serializers.DateTimeField(source="closed_at", read_only=True)
    archivedAt = serializers.DateTimeField(source="archived_at", read_only=True)
    clonedFrom = serializers.UUIDField(source="cloned_from_id", read_only=True, allow_null=True)
    budgetUtilization = serializers.SerializerMethodField()
    scheduleStatus = serializers.SerializerMethodField()
    legalActions = serializers.SerializerMethodField()

    class Meta(PlanSerializer.Meta):
        fields = PlanSerializer.Meta.fields + [
            "description",
            "categories",
            "objectives",
            "milestones",
            "allocations",
            "contingencyPercent",
            "approvalWorkflow",
            "submissionCycle",
            "statusNote",
            "risks",
            "riskScore",
            "compliance",
            "complianceIssues",
            "planOwner",
            "stakeholders",
            "submittedAt",
            "approvedAt",
            "approvedBy",
            "activatedAt",
            "effectiveDate",
            "closedAt",
            "archivedAt",
            "clonedFrom",
            "budgetUtilization",
            "scheduleStatus",
            "legalActions",
        ]
        read_only_fields = fields

    def get_budgetUtilization(self, obj):
        return budget.utilization(obj)

    def get_scheduleStatus(self, obj):
        return workflow.schedule_status(obj)

    def get_legalActions(self, obj):
        """Actions legal for the requesting actor; empty without one."""
        actor = self.context.get("actor")
        if actor is None:
            return []
        return workflow.legal_actions(obj, actor)
