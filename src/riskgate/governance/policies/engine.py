"""Policy Engine - in-process evaluation of the access-control rules.

Rule order:
    1. Default posture is allow.
    2. Deny if risk > high_risk_deny_above and not admin.
    3. Deny if risk > unproven_deny_above, no identity proof and not admin.
    4. Allow if verified.
    5. Allow admins with risk <= admin_override_max.
    6. Allow identity-proof holders with risk <= proof_override_max.
    7. Allow any principal with risk <= low_risk_allow_max.

A deny classification (2, 3) only stands when no allow rule (4-7) matches.
Reasons and factors are attached regardless of the verdict.
"""

import logging
from pathlib import Path
from typing import List, Optional, Union

import yaml
from pydantic import ValidationError

from riskgate.common.exceptions import ConfigurationError
from riskgate.governance.schemas import (
    DecisionInput,
    PolicyThresholds,
    PolicyVerdict,
    RiskPolicyRules,
)


logger = logging.getLogger(__name__)

DEFAULT_RULES_FILE = Path(__file__).parent.parent.parent.parent.parent / "config" / "risk_policy.yaml"


def load_policy_rules(policy_file: Optional[Union[str, Path]] = None) -> RiskPolicyRules:
    """Load and validate risk policy rules from YAML.

    Args:
        policy_file: Path to risk_policy.yaml. Uses the bundled file if not
            provided; defaults apply when that file does not exist.

    Raises:
        ConfigurationError: Explicit file missing, unreadable or invalid
    """
    path = Path(policy_file) if policy_file else DEFAULT_RULES_FILE
    if not path.exists():
        if policy_file:
            raise ConfigurationError(f"Policy file not found: {path}")
        logger.info("No risk policy file found, using defaults")
        return RiskPolicyRules()

    try:
        with open(path, "r") as f:
            raw_config = yaml.safe_load(f) or {}
        return RiskPolicyRules.model_validate(raw_config)
    except (yaml.YAMLError, ValidationError) as e:
        raise ConfigurationError(
            f"Invalid policy file: {path}",
            details={"error": str(e)},
        )


class PolicyEngine:
    """Evaluates the access-control rules against a decision input."""

    def __init__(self, rules: Optional[RiskPolicyRules] = None):
        self.rules = rules or RiskPolicyRules()

    @property
    def thresholds(self) -> PolicyThresholds:
        return self.rules.policy

    @property
    def policy_version(self) -> str:
        return self.rules.metadata.version

    def deny_classified(self, decision_input: DecisionInput) -> bool:
        t = self.thresholds
        risk = decision_input.risk_score
        if decision_input.is_admin:
            return False
        if risk > t.high_risk_deny_above:
            return True
        return risk > t.unproven_deny_above and not decision_input.has_identity_proof

    def allow_override(self, decision_input: DecisionInput) -> bool:
        t = self.thresholds
        risk = decision_input.risk_score
        return (
            decision_input.is_verified
            or (decision_input.is_admin and risk <= t.admin_override_max)
            or (decision_input.has_identity_proof and risk <= t.proof_override_max)
            or risk <= t.low_risk_allow_max
        )

    def reasons(self, decision_input: DecisionInput) -> List[str]:
        """Human-readable reasons, attached regardless of the verdict."""
        t = self.thresholds
        risk = decision_input.risk_score
        reasons: List[str] = []

        if risk > t.high_risk_deny_above and not decision_input.is_admin:
            reasons.append("High risk score detected")
        if (
            risk > t.unproven_deny_above
            and not decision_input.has_identity_proof
            and not decision_input.is_admin
        ):
            reasons.append("Elevated risk for unverified user")
        if decision_input.registered_fingerprint and not decision_input.device_match:
            reasons.append("Device fingerprint mismatch")
        if (
            decision_input.registered_location
            and not decision_input.location_match
            and decision_input.action == "login"
        ):
            reasons.append("Location anomaly detected")
        if not decision_input.is_verified:
            reasons.append("Unverified user account")
        return reasons

    def factors(self, decision_input: DecisionInput) -> List[str]:
        t = self.thresholds
        risk = decision_input.risk_score
        factors: List[str] = []

        if decision_input.registered_fingerprint and not decision_input.device_match:
            factors.append("device_mismatch")
        if decision_input.registered_location and not decision_input.location_match:
            factors.append("location_anomaly")
        if risk > t.elevated_factor_above:
            factors.append("elevated_risk_score")
        if risk > t.high_factor_above:
            factors.append("high_risk_score")
        if not decision_input.is_verified:
            factors.append("unverified_account")
        return factors

    def evaluate(self, decision_input: DecisionInput) -> PolicyVerdict:
        """Evaluate all rules and return a single verdict."""
        allow = not self.deny_classified(decision_input) or self.allow_override(decision_input)
        return PolicyVerdict(
            allow=allow,
            reasons=self.reasons(decision_input),
            factors=self.factors(decision_input),
        )
