"""Governance module - policy decisions, lockout, audit and alerts.

This is the layer that turns risk into enforceable decisions.
"""

from riskgate.governance.schemas import (
    AdminNotification,
    AuditEntry,
    AuditEventType,
    DecisionInput,
    NotificationSeverity,
    NotificationType,
    PolicyDecision,
    PolicyVerdict,
    RiskPolicyRules,
)

__all__ = [
    "AdminNotification",
    "AuditEntry",
    "AuditEventType",
    "DecisionInput",
    "NotificationSeverity",
    "NotificationType",
    "PolicyDecision",
    "PolicyVerdict",
    "RiskPolicyRules",
]
