"""API - HTTP adapter over the access decision flow.

Endpoints:
    POST /evaluate
    POST /failed-attempts
    GET  /lockout/{principal_id}
    POST /admin/unblock
    POST /admin/block
    POST /proof/challenge
    GET  /health

Responses carry the decision, never the per-factor breakdown; that
lives in the audit trail.
"""

from riskgate.api.gateway import app, create_app
from riskgate.api.schemas import (
    AdminActionRequest,
    ErrorResponse,
    EvaluateResponse,
    FailedAttemptRequest,
    SignalsRequest,
)
from riskgate.api.service import RiskGateService

__all__ = [
    "app",
    "create_app",
    "AdminActionRequest",
    "ErrorResponse",
    "EvaluateResponse",
    "FailedAttemptRequest",
    "SignalsRequest",
    "RiskGateService",
]
