"""Governance schemas - type definitions for policy decisions, audit and alerts.
"""

import json
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, FrozenSet, List, Optional
from uuid import uuid4

from pydantic import BaseModel, Field

from riskgate.common.config.settings import FailMode
from riskgate.common.constants import AuditConstants
from riskgate.core.types import DecisionOutcome, DecisionSource


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class AuditEventType(str, Enum):
    """Types of audit events."""
    ACCESS_DECISION = "access_decision"
    ACCOUNT_LOCKED = "account_locked"
    ACCOUNT_UNBLOCKED = "account_unblocked"
    ACCOUNT_BLOCKED = "account_blocked"
    FAILED_ATTEMPT = "failed_attempt"
    SYSTEM_EVENT = "system_event"


class NotificationType(str, Enum):
    """Administrative notification types."""
    ACCOUNT_LOCKED = "account_locked"
    ACCOUNT_UNBLOCKED = "account_unblocked"
    ACCOUNT_BLOCKED = "account_blocked"


class NotificationSeverity(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class DecisionInput(BaseModel):
    """Structured decision request submitted to the policy decision service."""
    principal_id: str = Field(..., description="Principal under evaluation")
    is_admin: bool = Field(default=False, description="Administrator flag")
    is_verified: bool = Field(default=False, description="Verified-identity flag")
    has_identity_proof: bool = Field(
        default=False,
        description="Whether a strong identity proof backs this request"
    )
    risk_score: int = Field(..., ge=0, le=100, description="Combined risk score")
    action: str = Field(default="login", description="Action being attempted")
    resource: Optional[str] = Field(default=None, description="Target resource")

    # Device / location signals
    device_match: bool = Field(default=False, description="Device fingerprint matched baseline")
    location_match: bool = Field(default=False, description="Location matched baseline")
    device_fingerprint: Optional[str] = None
    registered_fingerprint: Optional[str] = None
    location: Optional[str] = None
    registered_location: Optional[str] = None

    ip_address: Optional[str] = None
    timestamp: datetime = Field(default_factory=_utc_now)

    model_config = {"frozen": True}


class PolicyVerdict(BaseModel):
    """Raw verdict as returned by a policy backend."""
    allow: bool
    reasons: List[str] = Field(default_factory=list)
    factors: List[str] = Field(default_factory=list)


class PolicyDecision(BaseModel):
    """Result of consulting the policy decision service.

    Immutable once produced; attached to the decision context
    and to the audit entry.
    """
    decision_id: str = Field(
        default_factory=lambda: f"pol_{uuid4().hex[:12]}",
        description="Unique decision identifier"
    )
    allow: bool = Field(..., description="Whether the action may proceed")
    risk_score: int = Field(..., ge=0, le=100)
    reason: str = Field(..., description="Human-readable explanation")
    factors: FrozenSet[str] = Field(
        default_factory=frozenset,
        description="Contributing factors, attached regardless of the verdict"
    )
    outcome: DecisionOutcome = Field(..., description="allow, step_up or deny")
    source: DecisionSource = Field(
        default=DecisionSource.POLICY,
        description="policy for a backend verdict, fallback otherwise"
    )
    degraded: bool = Field(
        default=False,
        description="True when the decision service was unavailable"
    )
    backend: str = Field(default="local", description="Backend that produced the verdict")
    policy_version: str = Field(..., description="Version of policy rules used")

    model_config = {"frozen": True}

    @property
    def requires_step_up(self) -> bool:
        return self.outcome == DecisionOutcome.STEP_UP


class AuditEntry(BaseModel):
    """A single immutable audit log entry.

    Every access decision, allowed or denied, policy-backed or fallback,
    produces exactly one entry of type access_decision.
    """
    entry_id: str = Field(
        default_factory=lambda: f"aud_{uuid4().hex[:12]}",
        description="Unique entry identifier"
    )
    timestamp: datetime = Field(
        default_factory=_utc_now,
        description="When the entry was created"
    )
    event_type: AuditEventType = Field(
        ...,
        description="Type of event being logged"
    )

    # Core identifiers
    decision_id: Optional[str] = Field(
        default=None,
        description="Associated decision ID"
    )
    principal_id: str = Field(
        default=AuditConstants.UNRESOLVED_PRINCIPAL,
        description="Principal reference, or 'unresolved' for anonymous failures"
    )

    # Decision details
    action: Optional[str] = Field(default=None, description="Action attempted")
    resource: Optional[str] = Field(default=None, description="Target resource")
    risk_score: Optional[int] = Field(default=None, ge=0, le=100)
    allowed: Optional[bool] = Field(default=None, description="Whether access was allowed")
    outcome: Optional[DecisionOutcome] = None
    reason: Optional[str] = None
    decision_source: Optional[DecisionSource] = None
    degraded: bool = Field(
        default=False,
        description="Decision fell back because the policy service was unavailable"
    )
    policy_version: Optional[str] = None

    # Signals
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    device_fingerprint: Optional[str] = None
    location: Optional[str] = None
    factors: List[str] = Field(default_factory=list)

    # Integrity
    previous_hash: Optional[str] = Field(
        default=None,
        description="Hash of previous entry (for chain integrity)"
    )
    entry_hash: Optional[str] = Field(
        default=None,
        description="Hash of this entry"
    )

    # Metadata
    metadata: Dict[str, Any] = Field(
        default_factory=dict,
        description="Provider-specific passthrough context"
    )

    def to_jsonl(self) -> str:
        """Serialize entry to JSONL format."""
        return json.dumps(self.model_dump(mode="json"), default=str)

    @classmethod
    def from_jsonl(cls, line: str) -> "AuditEntry":
        """Deserialize entry from JSONL format."""
        return cls.model_validate(json.loads(line))


class AdminNotification(BaseModel):
    """Red-alert style message for administrators."""
    notification_id: str = Field(
        default_factory=lambda: f"ntf_{uuid4().hex[:12]}"
    )
    notification_type: NotificationType
    title: str
    message: str
    severity: NotificationSeverity = NotificationSeverity.HIGH
    principal_id: Optional[str] = None
    created_at: datetime = Field(default_factory=_utc_now)
    metadata: Dict[str, Any] = Field(default_factory=dict)


class RiskPolicyRules(BaseModel):
    """Parsed risk policy rules from YAML configuration.

    This is the in-memory representation of risk_policy.yaml.
    Every section has defaults, so an empty document is valid.
    """

    class Metadata(BaseModel):
        version: str = "1.0.0"
        last_updated: str = ""
        author: str = ""
        description: str = ""

    class PolicyThresholds(BaseModel):
        high_risk_deny_above: int = Field(default=80, ge=0, le=100)
        unproven_deny_above: int = Field(default=60, ge=0, le=100)
        admin_override_max: int = Field(default=90, ge=0, le=100)
        proof_override_max: int = Field(default=70, ge=0, le=100)
        low_risk_allow_max: int = Field(default=50, ge=0, le=100)
        step_up_above: int = Field(default=50, ge=0, le=100)
        elevated_factor_above: int = Field(default=50, ge=0, le=100)
        high_factor_above: int = Field(default=70, ge=0, le=100)

    class ScoringRules(BaseModel):
        activity_start_hour: int = Field(default=8, ge=0, le=23)
        activity_end_hour: int = Field(default=20, ge=1, le=24)
        reference_timezone: str = "Asia/Kolkata"

    class LockoutRules(BaseModel):
        max_failed_attempts: int = Field(default=5, ge=1)
        window_minutes: int = Field(default=60, ge=1)
        attempt_ttl_hours: int = Field(default=24, ge=1)
        clear_failures_on_success: bool = True

    class DeviceRules(BaseModel):
        new_device_increment: int = Field(default=15, ge=0)
        suspicious_user_agent_increment: int = Field(default=10, ge=0)
        vpn_increment: int = Field(default=20, ge=0)
        points_per_recent_failure: int = Field(default=5, ge=0)
        recent_failures_cap: int = Field(default=30, ge=0)

    class DecisionServiceRules(BaseModel):
        timeout_seconds: float = Field(default=5.0, gt=0)
        fail_mode: FailMode = FailMode.FAIL_OPEN
        health_check_interval_seconds: float = Field(default=30.0, ge=0)
        health_check_timeout_seconds: float = Field(default=3.0, gt=0)

    class ProofRules(BaseModel):
        max_age_seconds: int = Field(default=300, ge=1)
        challenge_ttl_seconds: int = Field(default=300, ge=1)

    metadata: Metadata = Field(default_factory=Metadata)
    policy: PolicyThresholds = Field(default_factory=PolicyThresholds)
    scoring: ScoringRules = Field(default_factory=ScoringRules)
    lockout: LockoutRules = Field(default_factory=LockoutRules)
    device: DeviceRules = Field(default_factory=DeviceRules)
    decision_service: DecisionServiceRules = Field(default_factory=DecisionServiceRules)
    proofs: ProofRules = Field(default_factory=ProofRules)


DeviceRules = RiskPolicyRules.DeviceRules
LockoutRules = RiskPolicyRules.LockoutRules
PolicyThresholds = RiskPolicyRules.PolicyThresholds
ScoringRules = RiskPolicyRules.ScoringRules
