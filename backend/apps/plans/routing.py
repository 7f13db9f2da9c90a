"""
Threshold-based approval routing.

ApprovalPolicy is an immutable value object built once from
settings.PLAN_APPROVAL_POLICY when the plans app starts. Changing the bands
means shipping a new policy version and restarting; the loaded policy is
never mutated in place.
"""

from dataclasses import dataclass, field
from decimal import Decimal
from types import MappingProxyType
from typing import Mapping, Optional

from django.conf import settings

from core.exceptions import ConfigurationError
from apps.plans.budget import to_decimal


@dataclass(frozen=True)
class ApprovalBand:
    threshold: Decimal
    approvers: tuple
    conditions: tuple = ()


@dataclass(frozen=True)
class ApprovalLevel:
    level: int
    threshold: Decimal
    approvers: tuple
    conditions: tuple = ()

    def as_dict(self):
        return {
            "level": self.level,
            "threshold": str(self.threshold),
            "approvers": list(self.approvers),
            "conditions": list(self.conditions),
        }


@dataclass(frozen=True)
class ApprovalPolicy:
    version: int
    default_bands: tuple
    department_bands: Mapping[str, tuple] = field(
        default_factory=lambda: MappingProxyType({})
    )

    def bands_for(self, department: str) -> tuple:
        return self.department_bands.get(department, self.default_bands)


def _build_bands(raw_bands, label, require_zero_start=True):
    if not raw_bands:
        raise ConfigurationError(
            f"Approval bands for {label} are empty", {"scope": label}
        )
    bands = []
    for raw in raw_bands:
        approvers = tuple(str(a) for a in raw.get("approvers") or [])
        if not approvers:
            raise ConfigurationError(
                f"Approval band in {label} has no approvers",
                {"scope": label, "threshold": str(raw.get("threshold"))},
            )
        bands.append(
            ApprovalBand(
                threshold=to_decimal(raw.get("threshold", 0)),
                approvers=approvers,
                conditions=tuple(raw.get("conditions") or []),
            )
        )

    thresholds = [b.threshold for b in bands]
    if any(later <= earlier for earlier, later in zip(thresholds, thresholds[1:])):
        raise ConfigurationError(
            f"Approval thresholds for {label} must be strictly increasing",
            {"scope": label, "thresholds": [str(t) for t in thresholds]},
        )
    if require_zero_start and thresholds[0] != 0:
        raise ConfigurationError(
            f"Approval bands for {label} must start at 0",
            {"scope": label, "thresholds": [str(t) for t in thresholds]},
        )
    return tuple(bands)


def build_policy(config) -> ApprovalPolicy:
    """Validate a policy mapping (same shape as settings.PLAN_APPROVAL_POLICY)."""
    return ApprovalPolicy(
        version=int(config.get("version", 1)),
        default_bands=_build_bands(config.get("default"), "default"),
        department_bands=MappingProxyType(
            {
                department: _build_bands(raw, department)
                for department, raw in (config.get("departments") or {}).items()
            }
        ),
    )


_active_policy: Optional[ApprovalPolicy] = None


def load_policy() -> ApprovalPolicy:
    """Build the process-wide policy from settings. Called from PlansConfig.ready()."""
    global _active_policy
    _active_policy = build_policy(settings.PLAN_APPROVAL_POLICY)
    return _active_policy


def get_policy() -> ApprovalPolicy:
    if _active_policy is None:
        return load_policy()
    return _active_policy


def validate_declared_levels(declared_levels):
    """Declared levels must be strictly ordered by threshold; 0 need not be the first."""
    if not declared_levels:
        return ()
    return _build_bands(declared_levels, "declared approval levels", require_zero_start=False)


def route(total_amount, department, declared_levels=None, policy=None):
    """
    Derive the ordered approval levels required for a plan.

    Every band with threshold <= total_amount is required, ascending.
    Declared levels replace the department bands; when none of their
    thresholds is reached, the lowest declared level still applies.
    """
    amount = to_decimal(total_amount)
    if declared_levels:
        bands = validate_declared_levels(declared_levels)
    else:
        bands = (policy or get_policy()).bands_for(department)

    selected = [band for band in bands if band.threshold <= amount] or [bands[0]]
    return tuple(
        ApprovalLevel(
            level=index,
            threshold=band.threshold,
            approvers=band.approvers,
            conditions=band.conditions,
        )
        for index, band in enumerate(selected)
    )
