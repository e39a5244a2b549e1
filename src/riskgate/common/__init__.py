"""Common utilities - logging, config, exceptions."""

from riskgate.common.logging.logger import get_logger
from riskgate.common.config import Config, FailMode
from riskgate.common.exceptions import (
    RiskGateException,
    ConfigurationError,
    SignalValidationError,
    IdentityStoreUnavailableError,
    PolicyServiceError,
    AccountLockedError,
    AccessDeniedError,
    LockoutRejectedError,
    ProofVerificationError,
)

__all__ = [
    # Logging
    "get_logger",
    # Config
    "Config",
    "FailMode",
    # Exceptions
    "RiskGateException",
    "ConfigurationError",
    "SignalValidationError",
    "IdentityStoreUnavailableError",
    "PolicyServiceError",
    "AccountLockedError",
    "AccessDeniedError",
    "LockoutRejectedError",
    "ProofVerificationError",
]
