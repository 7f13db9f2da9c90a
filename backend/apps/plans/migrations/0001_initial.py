# Procurement plans, per-level approval decisions and creation idempotency keys.

import uuid
from decimal import Decimal

import django.db.models.deletion
from django.conf import settings
from django.db import migrations, models


PLAN_STATUSES = [
    ("draft", "Draft"),
    ("submitted", "Submitted"),
    ("under_review", "Under Review"),
    ("approved", "Approved"),
    ("rejected", "Rejected"),
    ("returned_for_changes", "Returned For Changes"),
    ("active", "Active"),
    ("completed", "Completed"),
    ("terminated", "Terminated"),
    ("cancelled", "Cancelled"),
    ("archived", "Archived"),
]


def _user_fk(related_name, null=True):
    return models.ForeignKey(
        blank=null,
        null=null,
        on_delete=django.db.models.deletion.PROTECT,
        related_name=related_name,
        to=settings.AUTH_USER_MODEL,
    )


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name="Plan",
            fields=[
                (
                    "id",
                    models.UUIDField(
                        default=uuid.uuid4,
                        editable=False,
                        primary_key=True,
                        serialize=False,
                    ),
                ),
                ("plan_number", models.CharField(max_length=32, unique=True)),
                ("version", models.IntegerField(default=1)),
                ("title", models.CharField(max_length=255)),
                ("description", models.TextField(blank=True, default="")),
                (
                    "plan_type",
                    models.CharField(
                        choices=[
                            ("annual", "Annual"),
                            ("quarterly", "Quarterly"),
                            ("project_based", "Project Based"),
                            ("emergency", "Emergency"),
                            ("strategic", "Strategic"),
                            ("operational", "Operational"),
                        ],
                        max_length=20,
                    ),
                ),
                ("fiscal_year", models.IntegerField()),
                ("department", models.CharField(max_length=100)),
                ("categories", models.JSONField(blank=True, default=list)),
                (
                    "priority",
                    models.CharField(
                        choices=[
                            ("low", "Low"),
                            ("medium", "Medium"),
                            ("high", "High"),
                            ("critical", "Critical"),
                        ],
                        default="medium",
                        max_length=10,
                    ),
                ),
                ("objectives", models.JSONField(blank=True, default=list)),
                ("milestones", models.JSONField(blank=True, default=list)),
                ("start_date", models.DateField()),
                ("end_date", models.DateField()),
                ("total_amount", models.DecimalField(decimal_places=2, max_digits=15)),
                (
                    "currency",
                    models.CharField(
                        choices=[
                            ("USD", "Usd"),
                            ("EUR", "Eur"),
                            ("GBP", "Gbp"),
                            ("CAD", "Cad"),
                        ],
                        default="USD",
                        max_length=3,
                    ),
                ),
                ("allocations", models.JSONField(blank=True, default=list)),
                (
                    "contingency_percent",
                    models.DecimalField(
                        decimal_places=2, default=Decimal("10"), max_digits=5
                    ),
                ),
                (
                    "approved_amount",
                    models.DecimalField(
                        decimal_places=2, default=Decimal("0"), max_digits=15
                    ),
                ),
                (
                    "spent_amount",
                    models.DecimalField(
                        decimal_places=2, default=Decimal("0"), max_digits=15
                    ),
                ),
                (
                    "committed_amount",
                    models.DecimalField(
                        decimal_places=2, default=Decimal("0"), max_digits=15
                    ),
                ),
                (
                    "status",
                    models.CharField(
                        choices=PLAN_STATUSES, default="draft", max_length=25
                    ),
                ),
                ("approval_workflow", models.JSONField(blank=True, default=dict)),
                ("submission_cycle", models.IntegerField(default=0)),
                ("status_note", models.TextField(blank=True, default="")),
                ("risks", models.JSONField(blank=True, default=list)),
                (
                    "risk_score",
                    models.DecimalField(
                        decimal_places=2, default=Decimal("0"), max_digits=5
                    ),
                ),
                ("risk_level", models.CharField(default="low", max_length=10)),
                ("compliance", models.JSONField(blank=True, default=dict)),
                (
                    "compliance_status",
                    models.CharField(blank=True, max_length=20, null=True),
                ),
                ("compliance_issues", models.JSONField(blank=True, default=list)),
                ("stakeholders", models.JSONField(blank=True, default=list)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("submitted_at", models.DateTimeField(blank=True, null=True)),
                ("approved_at", models.DateTimeField(blank=True, null=True)),
                ("activated_at", models.DateTimeField(blank=True, null=True)),
                ("effective_date", models.DateField(blank=True, null=True)),
                ("closed_at", models.DateTimeField(blank=True, null=True)),
                ("deleted_at", models.DateTimeField(blank=True, null=True)),
                ("archived_at", models.DateTimeField(blank=True, null=True)),
                (
                    "plan_owner",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="owned_plans",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
                ("created_by", _user_fk("created_plans", null=False)),
                ("updated_by", _user_fk("updated_plans")),
                ("submitted_by", _user_fk("submitted_plans")),
                ("approved_by", _user_fk("approved_plans")),
                ("activated_by", _user_fk("activated_plans")),
                ("closed_by", _user_fk("closed_plans")),
                ("deleted_by", _user_fk("deleted_plans")),
                ("archived_by", _user_fk("archived_plans")),
                (
                    "cloned_from",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="clones",
                        to="plans.plan",
                    ),
                ),
            ],
            options={
                "db_table": "procurement_plans",
                "indexes": [
                    models.Index(fields=["status"], name="idx_plan_status"),
                    models.Index(fields=["department"], name="idx_plan_department"),
                    models.Index(
                        fields=["plan_type", "fiscal_year"], name="idx_plan_type_year"
                    ),
                    models.Index(fields=["created_by"], name="idx_plan_created_by"),
                ],
                "constraints": [
                    models.CheckConstraint(
                        condition=models.Q(
                            ("status__in", [value for value, _ in PLAN_STATUSES])
                        ),
                        name="valid_plan_status",
                    ),
                    models.CheckConstraint(
                        condition=models.Q(("total_amount__gte", 0)),
                        name="plan_total_non_negative",
                    ),
                    models.CheckConstraint(
                        condition=models.Q(
                            ("contingency_percent__gte", 0),
                            ("contingency_percent__lte", 50),
                        ),
                        name="plan_contingency_range",
                    ),
                    models.CheckConstraint(
                        condition=models.Q(("end_date__gt", models.F("start_date"))),
                        name="plan_end_after_start",
                    ),
                    models.CheckConstraint(
                        condition=models.Q(("version__gte", 1)),
                        name="plan_version_positive",
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="ApprovalDecision",
            fields=[
                (
                    "id",
                    models.UUIDField(
                        default=uuid.uuid4,
                        editable=False,
                        primary_key=True,
                        serialize=False,
                    ),
                ),
                ("cycle", models.IntegerField()),
                ("level", models.IntegerField()),
                (
                    "decision",
                    models.CharField(
                        choices=[
                            ("approve", "Approve"),
                            ("reject", "Reject"),
                            ("request_changes", "Request changes"),
                        ],
                        max_length=20,
                    ),
                ),
                ("comments", models.TextField(blank=True, default="")),
                ("conditions", models.JSONField(blank=True, default=list)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                (
                    "actor",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="plan_decisions",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
                (
                    "plan",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="approval_decisions",
                        to="plans.plan",
                    ),
                ),
            ],
            options={
                "db_table": "plan_approval_decisions",
                "indexes": [
                    models.Index(
                        fields=["plan", "cycle"], name="idx_decision_plan_cycle"
                    ),
                ],
                "constraints": [
                    models.CheckConstraint(
                        condition=models.Q(
                            ("decision__in", ["approve", "reject", "request_changes"])
                        ),
                        name="valid_plan_decision",
                    ),
                    models.UniqueConstraint(
                        fields=("plan", "cycle", "level", "actor"),
                        name="unique_decision_per_level_actor",
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="IdempotencyKey",
            fields=[
                (
                    "id",
                    models.UUIDField(
                        default=uuid.uuid4,
                        editable=False,
                        primary_key=True,
                        serialize=False,
                    ),
                ),
                ("key", models.CharField(db_index=True, max_length=255)),
                ("operation", models.CharField(max_length=100)),
                ("target_object_id", models.UUIDField(null=True)),
                ("response_code", models.IntegerField(null=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
            ],
            options={
                "db_table": "idempotency_keys",
                "constraints": [
                    models.UniqueConstraint(
                        fields=("key", "operation"),
                        name="unique_idempotency_per_operation",
                    ),
                ],
            },
        ),
    ]
