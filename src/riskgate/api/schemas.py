"""API Schemas - Request/Response models for the API Gateway.
"""

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field

from riskgate.data.schemas.signals import ClientInfo, GeoPoint, IdentityProof


# =============================================================================
# REQUEST SCHEMAS
# =============================================================================

class SignalsRequest(BaseModel):
    """Request body shared by /evaluate and /failed-attempts.

    Headers and the peer address are taken from the HTTP request itself.
    """
    principal_id: Optional[str] = Field(default=None, description="Stable principal identifier")
    contact: Optional[str] = Field(default=None, description="Contact address, e.g. email")
    action: str = Field(default="login", min_length=1)
    resource: Optional[str] = None
    client_info: Optional[ClientInfo] = None
    device_fingerprint: Optional[str] = Field(
        default=None, description="Client-computed device fingerprint (hex)"
    )
    location: Optional[str] = Field(
        default=None, description="Client-supplied 'City, Region, Country'"
    )
    gps: Optional[GeoPoint] = None
    timestamp: Optional[datetime] = None
    keystroke_intervals: Optional[List[float]] = Field(
        default=None, description="Inter-keystroke intervals in milliseconds"
    )
    failed_attempts: Optional[int] = Field(default=None, ge=0)
    identity_proof: Optional[IdentityProof] = None

    model_config = {
        "json_schema_extra": {
            "example": {
                "contact": "asha@example.com",
                "action": "login",
                "client_info": {
                    "screen_resolution": "1920x1080",
                    "timezone": "Asia/Kolkata",
                    "platform": "Win32",
                },
                "location": "Kolkata, West Bengal, India",
                "gps": {"lat": 22.5726, "lon": 88.3639},
                "keystroke_intervals": [110.0, 125.5, 98.0, 140.2],
            }
        }
    }


class FailedAttemptRequest(SignalsRequest):
    """Request body for POST /failed-attempts."""
    reason: str = Field(default="invalid_credentials", min_length=1)


class AdminActionRequest(BaseModel):
    """Request body for POST /admin/unblock and POST /admin/block."""
    principal_id: str = Field(..., min_length=1)
    reason: str = Field(..., min_length=1, description="Justification recorded in the audit trail")
    actor: Optional[str] = Field(default=None, description="Administrator performing the action")


# =============================================================================
# RESPONSE SCHEMAS
# =============================================================================

class EvaluateResponse(BaseModel):
    """Response body for POST /evaluate."""
    decision_id: str
    outcome: str = Field(..., description="allow, step_up, deny or locked")
    allowed: bool
    requires_step_up: bool
    risk_score: int = Field(..., ge=0, le=100)
    risk_level: str
    reason: str
    factors: List[str] = Field(default_factory=list)
    source: str = Field(..., description="policy, fallback, lockout or identity")
    degraded: bool = False
    policy_version: Optional[str] = None


class LockoutResponse(BaseModel):
    """Lockout view of one principal."""
    principal_id: str
    locked: bool
    attempts_in_window: int
    remaining_before_lock: int
    reason: Optional[str] = None


class FailedAttemptResponse(BaseModel):
    """Response body for POST /failed-attempts."""
    resolved: bool
    risk_score: Optional[int] = None
    lockout: LockoutResponse


class UnblockResponse(BaseModel):
    principal_id: str
    changed: bool
    purged_attempts: int = 0


class ChallengeResponse(BaseModel):
    challenge: str
    expires_in_seconds: int


class ErrorResponse(BaseModel):
    """Error response body."""
    error: str = Field(..., description="Machine-readable error code")
    message: str = Field(..., description="Human-readable message")
    details: dict = Field(default_factory=dict)
    request_id: Optional[str] = None
