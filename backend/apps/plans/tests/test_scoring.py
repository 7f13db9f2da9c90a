from decimal import Decimal

from django.test import SimpleTestCase

from apps.plans import scoring


class RiskScoringTests(SimpleTestCase):
    def test_no_risks_scores_zero(self):
        assessment = scoring.assess_risks([])
        self.assertEqual(assessment.total_score, Decimal("0.00"))
        self.assertEqual(assessment.level, "low")

    def test_score_is_normalized_against_maximum(self):
        # (3 * 3) / 25 * 100 = 36
        assessment = scoring.assess_risks([{"probability": "medium", "impact": "moderate"}])
        self.assertEqual(assessment.total_score, Decimal("36.00"))
        self.assertEqual(assessment.level, "medium")

    def test_score_averages_over_risks(self):
        risks = [
            {"probability": "very_high", "impact": "severe"},
            {"probability": "very_low", "impact": "negligible"},
        ]
        # (25 + 1) / 50 * 100 = 52
        self.assertEqual(scoring.assess_risks(risks).total_score, Decimal("52.00"))

    def test_band_boundaries(self):
        self.assertEqual(scoring.risk_level(Decimal("24.99")), "low")
        self.assertEqual(scoring.risk_level(Decimal("25")), "medium")
        self.assertEqual(scoring.risk_level(Decimal("60")), "high")
        self.assertEqual(scoring.risk_level(Decimal("85")), "critical")
        self.assertEqual(scoring.risk_level(Decimal("100")), "critical")


class ComplianceTests(SimpleTestCase):
    def test_all_declared_and_satisfied_is_compliant(self):
        result = scoring.validate_compliance(
            {
                "regulations": ["PPA-2015"],
                "policies": ["ETHICS"],
                "declarations": [
                    {"reference": "PPA-2015", "statement": "Open tender"},
                    {"reference": "ETHICS", "statement": "Signed"},
                ],
                "auditRequirements": [{"requirement": "External audit", "satisfied": True}],
            }
        )
        self.assertEqual(result.status, scoring.COMPLIANT)
        self.assertEqual(result.issues, [])

    def test_missing_declaration_and_unmet_requirement_are_issues(self):
        result = scoring.validate_compliance(
            {
                "regulations": ["PPA-2015"],
                "policies": ["ETHICS"],
                "declarations": [{"reference": "ETHICS", "statement": "  "}],
                "auditRequirements": [{"requirement": "External audit"}],
            }
        )
        self.assertEqual(result.status, scoring.NON_COMPLIANT)
        self.assertEqual(
            [issue["type"] for issue in result.issues],
            ["regulation", "policy", "audit_requirement"],
        )

    def test_unverified_evidence_is_pending_review(self):
        result = scoring.validate_compliance(
            {
                "regulations": ["PPA-2015"],
                "declarations": [
                    {
                        "reference": "PPA-2015",
                        "statement": "Open tender",
                        "evidence": ["tender-notice.pdf"],
                        "verified": False,
                    }
                ],
            }
        )
        self.assertEqual(result.status, scoring.PENDING_REVIEW)
        self.assertEqual(result.issues[0]["reference"], "PPA-2015")

    def test_empty_configuration_is_compliant(self):
        self.assertEqual(scoring.validate_compliance(None).status, scoring.COMPLIANT)
