"""Core types and enums."""

from enum import Enum


class DecisionOutcome(str, Enum):
    """Final outcome of an access evaluation."""
    ALLOW = "allow"
    STEP_UP = "step_up"
    DENY = "deny"
    LOCKED = "locked"


class DecisionSource(str, Enum):
    """Who produced a decision."""
    POLICY = "policy"
    FALLBACK = "fallback"
    LOCKOUT = "lockout"
    IDENTITY = "identity"


class LockoutState(str, Enum):
    """Account lockout states."""
    ACTIVE = "active"
    LOCKED = "locked"


class RiskLevel(str, Enum):
    """Risk levels."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"
