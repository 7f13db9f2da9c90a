"""
Budget allocation validation.

A plan's allocations must sum to its declared total within
BUDGET_TOLERANCE (absolute currency units). All arithmetic is Decimal.
Active plans also report utilization figures and threshold alerts.
"""

from dataclasses import dataclass
from decimal import Decimal, InvalidOperation

from django.conf import settings

from core.exceptions import ValidationError

BUDGET_TOLERANCE = Decimal("0.01")
CENTS = Decimal("0.01")


@dataclass(frozen=True)
class BudgetValidation:
    valid: bool
    difference: Decimal
    allocated: Decimal


def to_decimal(value) -> Decimal:
    """Convert JSON/str/int/Decimal amounts; floats go through str to avoid binary noise."""
    if isinstance(value, Decimal):
        return value
    try:
        return Decimal(str(value))
    except (InvalidOperation, TypeError, ValueError):
        raise ValidationError(f"Invalid amount: {value!r}", {"amount": str(value)})


def allocated_total(allocations) -> Decimal:
    return sum((to_decimal(a.get("amount", 0)) for a in allocations or []), Decimal("0"))


def validate(total_amount, allocations) -> BudgetValidation:
    """Return whether sum(allocations.amount) == total_amount within tolerance."""
    allocated = allocated_total(allocations)
    difference = to_decimal(total_amount) - allocated
    return BudgetValidation(
        valid=abs(difference) <= BUDGET_TOLERANCE,
        difference=difference.quantize(CENTS),
        allocated=allocated.quantize(CENTS),
    )


def ensure_valid(total_amount, allocations) -> BudgetValidation:
    result = validate(total_amount, allocations)
    if not result.valid:
        raise ValidationError(
            "Budget allocations must sum to the total amount",
            {
                "totalAmount": str(to_decimal(total_amount).quantize(CENTS)),
                "allocatedAmount": str(result.allocated),
                "difference": str(result.difference),
                "tolerance": str(BUDGET_TOLERANCE),
            },
        )
    return result


def budget_alerts(percent: Decimal, threshold=None) -> list:
    """
    Alerts for a utilization percent: a warning from the configured threshold
    (settings.BUDGET_ALERT_THRESHOLD_PERCENT), critical once nothing is left.
    """
    if threshold is None:
        threshold = getattr(settings, "BUDGET_ALERT_THRESHOLD_PERCENT", "80")
    threshold = to_decimal(threshold)
    shown = str(percent.quantize(CENTS))
    if percent >= 100:
        return [
            {
                "code": "BUDGET_EXHAUSTED",
                "severity": "critical",
                "message": "Approved budget is fully spent or committed",
                "utilizationPercent": shown,
            }
        ]
    if percent >= threshold:
        return [
            {
                "code": "BUDGET_THRESHOLD_REACHED",
                "severity": "warning",
                "message": f"Budget utilization reached {shown}% (threshold {threshold}%)",
                "utilizationPercent": shown,
            }
        ]
    return []


def utilization(plan) -> dict:
    """Budget tracking figures for an approved/active plan, as decimal strings, plus alerts."""
    total = to_decimal(plan.total_amount)
    approved = to_decimal(plan.approved_amount)
    spent = to_decimal(plan.spent_amount)
    committed = to_decimal(plan.committed_amount)
    used = spent + committed
    percent = (used * 100 / approved) if approved > 0 else Decimal("0")
    return {
        "approvedAmount": str(approved.quantize(CENTS)),
        "spentAmount": str(spent.quantize(CENTS)),
        "committedAmount": str(committed.quantize(CENTS)),
        "availableAmount": str((approved - used).quantize(CENTS)),
        "utilizationPercent": str(percent.quantize(CENTS)),
        "variance": str((total - allocated_total(plan.allocations)).quantize(CENTS)),
        "alerts": budget_alerts(percent),
    }
