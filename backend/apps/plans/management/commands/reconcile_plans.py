"""
Reconciliation management command.

Verifies plan invariants against the database and replays audit entries
that failed to persist.
Run: python manage.py reconcile_plans [--replay-audit PATH]
"""

from django.core.management.base import BaseCommand, CommandError

from apps.audit.models import AuditLogEntry
from apps.audit.services import replay_failed_entries
from apps.plans import budget
from apps.plans import state_machine as sm
from apps.plans.models import Plan
from apps.plans.services import ENTITY_TYPE


class Command(BaseCommand):
    help = "Reconcile procurement plans and verify budget and workflow invariants"

    def add_arguments(self, parser):
        parser.add_argument(
            "--replay-audit",
            metavar="PATH",
            help="JSON-lines file written by the audit.reconciliation logger",
        )

    def handle(self, *args, **options):
        errors = []

        if options.get("replay_audit"):
            self.stdout.write("[0] Replaying failed audit entries...")
            try:
                with open(options["replay_audit"], encoding="utf-8") as handle:
                    replayed, skipped = replay_failed_entries(handle)
            except OSError as exc:
                raise CommandError(f"Cannot read {options['replay_audit']}: {exc}")
            self.stdout.write(
                self.style.SUCCESS(f"  Replayed {replayed}, skipped {skipped}")
            )

        # Check 1: allocations sum to total outside editable states
        self.stdout.write("\n[1] Checking budget allocation invariant...")
        unbalanced = 0
        for plan in Plan.objects.exclude(status__in=sm.EDITABLE_STATES).iterator():
            result = budget.validate(plan.total_amount, plan.allocations)
            if not result.valid:
                unbalanced += 1
                self.stdout.write(
                    self.style.ERROR(
                        f"  Plan {plan.plan_number}: total={plan.total_amount}, "
                        f"allocated={result.allocated}, difference={result.difference}"
                    )
                )
        if unbalanced:
            errors.append(f"Found {unbalanced} plans with unbalanced allocations")
        else:
            self.stdout.write(self.style.SUCCESS("  ✓ All allocations balance"))

        # Check 2: each plan's audited status sequence is a walk of the graph
        self.stdout.write("\n[2] Checking audited status walks...")
        broken = 0
        for plan in Plan.objects.only("id", "plan_number").iterator():
            statuses = [
                (state or {}).get("status")
                for state in AuditLogEntry.objects.filter(
                    entity_type=ENTITY_TYPE, entity_id=plan.id
                )
                .order_by("sequence")
                .values_list("new_state", flat=True)
            ]
            steps = sm.invalid_steps(statuses)
            if steps:
                broken += 1
                rendered = ", ".join(f"{a} -> {b}" for a, b in steps)
                self.stdout.write(
                    self.style.ERROR(f"  Plan {plan.plan_number}: {rendered}")
                )
        if broken:
            errors.append(f"Found {broken} plans with invalid status walks")
        else:
            self.stdout.write(self.style.SUCCESS("  ✓ All status walks valid"))

        self.stdout.write("\n" + "=" * 50)
        if errors:
            for error in errors:
                self.stdout.write(self.style.ERROR(f"  - {error}"))
            raise CommandError(f"Reconciliation failed: {len(errors)} check(s)")
        self.stdout.write(self.style.SUCCESS("\nRECONCILIATION PASSED"))
