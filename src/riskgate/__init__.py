"""RiskGate - Risk-adaptive access control."""

__version__ = "0.1.0"
__author__ = "RiskGate Team"

from riskgate.core.types import DecisionOutcome, DecisionSource, RiskLevel

__all__ = [
    "DecisionOutcome",
    "DecisionSource",
    "RiskLevel",
]
