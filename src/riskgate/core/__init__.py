"""Core types."""

from riskgate.core.types import (
    DecisionOutcome,
    DecisionSource,
    LockoutState,
    RiskLevel,
)

__all__ = [
    "DecisionOutcome",
    "DecisionSource",
    "LockoutState",
    "RiskLevel",
]
