"""
Risk and compliance scoring for procurement plans.

Both are pure functions over the plan's declared risks and compliance
configuration; the service layer stores their results on the plan.
"""

from dataclasses import dataclass, field
from decimal import ROUND_HALF_UP, Decimal

PROBABILITY_WEIGHTS = {
    "very_low": 1,
    "low": 2,
    "medium": 3,
    "high": 4,
    "very_high": 5,
}

IMPACT_WEIGHTS = {
    "negligible": 1,
    "minor": 2,
    "moderate": 3,
    "major": 4,
    "severe": 5,
}

MAX_RISK_PRODUCT = max(PROBABILITY_WEIGHTS.values()) * max(IMPACT_WEIGHTS.values())

# Upper bounds (exclusive) of each band; anything at or above the last is critical
RISK_BANDS = (
    (Decimal("25"), "low"),
    (Decimal("60"), "medium"),
    (Decimal("85"), "high"),
)
CRITICAL = "critical"

COMPLIANT = "compliant"
NON_COMPLIANT = "non_compliant"
PENDING_REVIEW = "pending_review"


@dataclass(frozen=True)
class RiskAssessment:
    total_score: Decimal
    level: str


@dataclass(frozen=True)
class ComplianceResult:
    status: str
    issues: list = field(default_factory=list)


def risk_level(score: Decimal) -> str:
    for upper, level in RISK_BANDS:
        if score < upper:
            return level
    return CRITICAL


def assess_risks(risks) -> RiskAssessment:
    """
    Sum probability_weight * impact_weight per risk and normalize to 0-100
    against the maximum attainable sum for the same number of risks.
    """
    risks = list(risks or [])
    if not risks:
        return RiskAssessment(total_score=Decimal("0.00"), level=risk_level(Decimal("0")))

    raw = sum(
        PROBABILITY_WEIGHTS[r["probability"]] * IMPACT_WEIGHTS[r["impact"]]
        for r in risks
    )
    score = (Decimal(raw) * 100 / Decimal(MAX_RISK_PRODUCT * len(risks))).quantize(
        Decimal("0.01"), rounding=ROUND_HALF_UP
    )
    return RiskAssessment(total_score=score, level=risk_level(score))


def _declarations_by_reference(compliance):
    index = {}
    for declaration in compliance.get("declarations") or []:
        reference = (declaration.get("reference") or "").strip()
        if reference:
            index[reference] = declaration
    return index


def validate_compliance(compliance) -> ComplianceResult:
    """
    compliant: every declared regulation/policy has a non-empty declaration
    and every audit requirement is satisfied.
    non_compliant: one issue per unmet item.
    pending_review: nothing unmet, but some declaration carries evidence
    that no reviewer has verified yet.
    """
    compliance = compliance or {}
    declarations = _declarations_by_reference(compliance)
    issues = []

    for kind, label in (("regulations", "regulation"), ("policies", "policy")):
        for reference in compliance.get(kind) or []:
            declaration = declarations.get(reference)
            if not declaration or not (declaration.get("statement") or "").strip():
                issues.append(
                    {
                        "type": label,
                        "reference": reference,
                        "message": f"Missing compliance declaration for {reference}",
                    }
                )

    for requirement in compliance.get("auditRequirements") or []:
        if not requirement.get("satisfied"):
            issues.append(
                {
                    "type": "audit_requirement",
                    "reference": requirement.get("requirement"),
                    "message": f"Audit requirement not met: {requirement.get('requirement')}",
                }
            )

    if issues:
        return ComplianceResult(status=NON_COMPLIANT, issues=issues)

    unverified = [
        reference
        for reference, declaration in declarations.items()
        if declaration.get("evidence") and not declaration.get("verified")
    ]
    if unverified:
        return ComplianceResult(
            status=PENDING_REVIEW,
            issues=[
                {
                    "type": "evidence_unverified",
                    "reference": reference,
                    "message": f"Evidence for {reference} awaits reviewer verification",
                }
                for reference in sorted(unverified)
            ],
        )

    return ComplianceResult(status=COMPLIANT, issues=[])
