"""Policy decisions - local rule engine and decision-service client."""

from riskgate.governance.policies.client import (
    LocalPolicyBackend,
    OpaPolicyBackend,
    PolicyBackend,
    PolicyDecisionClient,
    build_policy_client,
)
from riskgate.governance.policies.engine import PolicyEngine, load_policy_rules

__all__ = [
    "LocalPolicyBackend",
    "OpaPolicyBackend",
    "PolicyBackend",
    "PolicyDecisionClient",
    "build_policy_client",
    "PolicyEngine",
    "load_policy_rules",
]
