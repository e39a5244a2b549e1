"""Rate limiting and account lockout."""

from riskgate.governance.lockout.machine import (
    FailureContext,
    LockoutStateMachine,
    LockoutStatus,
    UnblockResult,
)
from riskgate.governance.lockout.store import FailedAttempt, FailureStore, InMemoryFailureStore

__all__ = [
    "FailureContext",
    "LockoutStateMachine",
    "LockoutStatus",
    "UnblockResult",
    "FailedAttempt",
    "FailureStore",
    "InMemoryFailureStore",
]
