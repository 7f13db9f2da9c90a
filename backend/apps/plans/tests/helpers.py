"""Shared fixtures for plan tests."""

from datetime import date
from decimal import Decimal

from apps.users.models import User


def make_user(username, role="PLANNER", department="Operations", **extra):
    return User.objects.create_user(
        username=username,
        password="testpass123",
        display_name=username.replace("_", " ").title(),
        role=role,
        department=department,
        **extra,
    )


def plan_payload(**overrides):
    """A complete, balanced, compliant plan body as the API receives it."""
    payload = {
        "title": "Office equipment FY2026",
        "description": "Laptops and support contracts",
        "planType": "annual",
        "fiscalYear": 2026,
        "categories": ["goods", "services", "goods"],
        "objectives": [{"title": "Replace laptops", "priority": "high"}],
        "startDate": "2026-01-01",
        "endDate": "2026-12-31",
        "totalAmount": "100000.00",
        "allocations": [
            {"category": "goods", "amount": "60000.00"},
            {"category": "services", "amount": "40000.00"},
        ],
        "risks": [
            {"category": "supply", "probability": "medium", "impact": "moderate"},
        ],
        "compliance": {
            "regulations": ["PPA-2015"],
            "declarations": [
                {"reference": "PPA-2015", "statement": "Open tender will be used"}
            ],
        },
    }
    payload.update(overrides)
    return payload


def service_data(**overrides):
    """Validated-data shape (snake_case) handed to services.create_plan."""
    data = {
        "title": "Office equipment FY2026",
        "description": "Laptops and support contracts",
        "plan_type": "annual",
        "fiscal_year": 2026,
        "objectives": [{"title": "Replace laptops"}],
        "start_date": date(2026, 1, 1),
        "end_date": date(2026, 12, 31),
        "total_amount": Decimal("100000.00"),
        "allocations": [
            {"category": "goods", "amount": Decimal("60000.00")},
            {"category": "services", "amount": Decimal("40000.00")},
        ],
        "compliance": {
            "regulations": ["PPA-2015"],
            "declarations": [
                {"reference": "PPA-2015", "statement": "Open tender will be used"}
            ],
        },
    }
    data.update(overrides)
    return data
