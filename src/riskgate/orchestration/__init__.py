"""Orchestration - the access decision flow."""

from riskgate.orchestration.decision_context import (
    AccessDecision,
    FailedLoginResult,
    RiskAssessment,
)
from riskgate.orchestration.decision_flow import AccessDecisionFlow

__all__ = [
    "AccessDecision",
    "AccessDecisionFlow",
    "FailedLoginResult",
    "RiskAssessment",
]
