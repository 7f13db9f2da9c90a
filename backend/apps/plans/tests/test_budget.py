from decimal import Decimal
from types import SimpleNamespace

from django.test import SimpleTestCase

from core.exceptions import ValidationError
from apps.plans import budget


class BudgetValidationTests(SimpleTestCase):
    def test_allocations_matching_total_are_valid(self):
        result = budget.validate(
            Decimal("100000"),
            [{"category": "goods", "amount": 60000}, {"category": "services", "amount": "40000"}],
        )
        self.assertTrue(result.valid)
        self.assertEqual(result.difference, Decimal("0.00"))
        self.assertEqual(result.allocated, Decimal("100000.00"))

    def test_difference_within_tolerance_is_valid(self):
        self.assertTrue(budget.validate("100.00", [{"amount": "99.99"}]).valid)

    def test_difference_beyond_tolerance_is_invalid(self):
        result = budget.validate("100.00", [{"amount": "99.98"}])
        self.assertFalse(result.valid)
        self.assertEqual(result.difference, Decimal("0.02"))

    def test_float_amounts_do_not_drift(self):
        allocations = [{"amount": 0.1}] * 3
        self.assertTrue(budget.validate("0.3", allocations).valid)

    def test_zero_total_with_no_allocations_is_valid(self):
        self.assertTrue(budget.validate(0, []).valid)
        self.assertTrue(budget.validate("0.00", None).valid)

    def test_ensure_valid_reports_amounts(self):
        with self.assertRaises(ValidationError) as ctx:
            budget.ensure_valid("100000", [{"amount": "50000"}])
        details = ctx.exception.details
        self.assertEqual(details["totalAmount"], "100000.00")
        self.assertEqual(details["allocatedAmount"], "50000.00")
        self.assertEqual(details["difference"], "50000.00")

    def test_invalid_amount_is_a_validation_error(self):
        with self.assertRaises(ValidationError):
            budget.validate("lots", [])


class UtilizationTests(SimpleTestCase):
    def test_utilization_figures(self):
        plan = SimpleNamespace(
            total_amount=Decimal("1000"),
            approved_amount=Decimal("1000"),
            spent_amount=Decimal("250"),
            committed_amount=Decimal("250"),
            allocations=[{"amount": "900"}],
        )
        figures = budget.utilization(plan)
        self.assertEqual(figures["availableAmount"], "500.00")
        self.assertEqual(figures["utilizationPercent"], "50.00")
        self.assertEqual(figures["variance"], "100.00")
        self.assertEqual(figures["alerts"], [])

    def test_unapproved_plan_has_zero_utilization(self):
        plan = SimpleNamespace(
            total_amount=Decimal("10"),
            approved_amount=Decimal("0"),
            spent_amount=Decimal("0"),
            committed_amount=Decimal("0"),
            allocations=[{"amount": "10"}],
        )
        self.assertEqual(budget.utilization(plan)["utilizationPercent"], "0.00")

    def test_threshold_raises_warning(self):
        plan = SimpleNamespace(
            total_amount=Decimal("1000"),
            approved_amount=Decimal("1000"),
            spent_amount=Decimal("600"),
            committed_amount=Decimal("250"),
            allocations=[{"amount": "1000"}],
        )
        alerts = budget.utilization(plan)["alerts"]
        self.assertEqual([a["code"] for a in alerts], ["BUDGET_THRESHOLD_REACHED"])
        self.assertEqual(alerts[0]["severity"], "warning")
        self.assertEqual(alerts[0]["utilizationPercent"], "85.00")

    def test_fully_used_budget_is_critical(self):
        alerts = budget.budget_alerts(Decimal("100"))
        self.assertEqual([a["code"] for a in alerts], ["BUDGET_EXHAUSTED"])
        self.assertEqual(alerts[0]["severity"], "critical")

    def test_threshold_is_configurable(self):
        alerts = budget.budget_alerts(Decimal("60"), threshold="50")
        self.assertEqual(alerts[0]["severity"], "warning")
        with self.settings(BUDGET_ALERT_THRESHOLD_PERCENT="90"):
            self.assertEqual(budget.budget_alerts(Decimal("85")), [])
