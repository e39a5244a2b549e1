"""Custom exceptions for RiskGate.

Provides a hierarchy of exceptions for different error types.
All RiskGate exceptions inherit from RiskGateException.
"""

from typing import Any, Dict, Optional


class RiskGateException(Exception):
    """Base exception for all RiskGate errors.

    Attributes:
        message: Human-readable error message
        code: Machine-readable error code
        details: Additional context about the error
    """

    def __init__(
        self,
        message: str,
        code: str = "RISKGATE_ERROR",
        details: Optional[Dict[str, Any]] = None
    ):
        self.message = message
        self.code = code
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for API responses."""
        return {
            "error": self.code,
            "message": self.message,
            "details": self.details,
        }


class ConfigurationError(RiskGateException):
    """Raised when configuration is invalid or missing."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, code="CONFIG_ERROR", details=details)


class SignalValidationError(RiskGateException):
    """Raised when inbound request signals are malformed.

    No risk evaluation is performed for such a request.
    """

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, code="VALIDATION_ERROR", details=details)


class IdentityStoreUnavailableError(RiskGateException):
    """Raised when the identity store cannot be read in time.

    Fatal for the request: no decision is possible without principal context.
    """

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, code="IDENTITY_STORE_UNAVAILABLE", details=details)


class PolicyServiceError(RiskGateException):
    """Raised by policy backends when the decision service fails.

    Never leaves the policy client: it is converted into a fallback decision.
    """

    def __init__(
        self,
        message: str,
        backend: str,
        details: Optional[Dict[str, Any]] = None
    ):
        details = details or {}
        details["backend"] = backend
        super().__init__(message, code="POLICY_SERVICE_ERROR", details=details)


class AccountLockedError(RiskGateException):
    """Raised when a locked principal attempts an action."""

    def __init__(
        self,
        message: str,
        principal_id: str,
        details: Optional[Dict[str, Any]] = None
    ):
        details = details or {}
        details["principal_id"] = principal_id
        super().__init__(message, code="ACCOUNT_LOCKED", details=details)


class AccessDeniedError(RiskGateException):
    """Raised when the policy decision denies the requested action."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, code="ACCESS_DENIED", details=details)


class LockoutRejectedError(RiskGateException):
    """Raised when a manual lock is requested for a principal that cannot be locked."""

    def __init__(
        self,
        message: str,
        principal_id: str,
        details: Optional[Dict[str, Any]] = None
    ):
        details = details or {}
        details["principal_id"] = principal_id
        super().__init__(message, code="LOCKOUT_REJECTED", details=details)


class ProofVerificationError(RiskGateException):
    """Raised when an identity proof is structurally unusable."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, code="PROOF_ERROR", details=details)
