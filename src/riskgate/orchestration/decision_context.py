"""Decision Context - immutable records that flow through one evaluation.

Created per request and discarded after the audit entry is written.
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, FrozenSet, Optional
from uuid import uuid4

from riskgate.core.types import DecisionOutcome, DecisionSource, RiskLevel
from riskgate.data.schemas.risk import DeviceRiskAssessment, RiskBreakdown
from riskgate.data.schemas.signals import RequestSignals
from riskgate.governance.lockout.machine import LockoutStatus
from riskgate.governance.schemas import PolicyDecision


@dataclass(frozen=True)
class RiskAssessment:
    """Outputs of the parallel stage: device validation and behavioral scoring."""
    breakdown: RiskBreakdown
    device: DeviceRiskAssessment

    @property
    def behavioral_score(self) -> int:
        return self.breakdown.total

    @property
    def device_score(self) -> int:
        return self.device.total_risk

    @property
    def score(self) -> int:
        """Combined score handed to the policy decision client.

        The larger of the behavioral and device scores, capped at 100.
        """
        return min(max(self.behavioral_score, self.device_score), 100)


@dataclass(frozen=True)
class AccessDecision:
    """The final decision record.

    Immutable. Audit-ready. This is what gets logged.
    """
    decision_id: str
    timestamp: datetime
    principal_id: str
    action: str
    outcome: DecisionOutcome
    allowed: bool
    risk_score: int
    risk_level: RiskLevel
    reason: str
    source: DecisionSource
    degraded: bool = False
    resource: Optional[str] = None
    factors: FrozenSet[str] = frozenset()
    signals: Optional[RequestSignals] = None
    assessment: Optional[RiskAssessment] = None
    policy: Optional[PolicyDecision] = None
    lockout: Optional[LockoutStatus] = None
    proof_verified: bool = False
    policy_version: Optional[str] = None

    @staticmethod
    def new_id() -> str:
        return f"dec_{uuid4().hex[:12]}"

    @staticmethod
    def now() -> datetime:
        return datetime.now(timezone.utc)

    @property
    def requires_step_up(self) -> bool:
        return self.outcome == DecisionOutcome.STEP_UP

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "decision_id": self.decision_id,
            "timestamp": self.timestamp.isoformat(),
            "principal_id": self.principal_id,
            "action": self.action,
            "resource": self.resource,
            "outcome": self.outcome.value,
            "allowed": self.allowed,
            "risk_score": self.risk_score,
            "risk_level": self.risk_level.value,
            "reason": self.reason,
            "factors": sorted(self.factors),
            "source": self.source.value,
            "degraded": self.degraded,
            "proof_verified": self.proof_verified,
            "policy_version": self.policy_version,
        }
        if self.assessment is not None:
            data["breakdown"] = self.assessment.breakdown.as_dict()
            data["device"] = {
                "total_risk": self.assessment.device.total_risk,
                "contributing_factors": list(self.assessment.device.contributing_factors),
                "device_match": self.assessment.device.device.is_match,
                "location_match": self.assessment.device.location.is_match,
            }
        if self.lockout is not None:
            data["lockout"] = {
                "locked": self.lockout.locked,
                "attempts_in_window": self.lockout.attempts_in_window,
                "remaining_before_lock": self.lockout.remaining_before_lock,
            }
        return data


@dataclass(frozen=True)
class FailedLoginResult:
    """Outcome of recording a failed authentication."""
    principal_id: str
    resolved: bool
    lockout: LockoutStatus
    risk_score: Optional[int] = None
