"""Lockout State Machine - active/locked transitions driven by failed attempts.

    active --(attempts in window reach threshold)--> locked
    locked --(administrative unblock, purges history)--> active

Administrators are never locked, automatically or manually. Under
concurrent failures the threshold may be overshot by one; a failure is
never lost because it is appended before the lockout is recomputed.
"""

import logging
from dataclasses import dataclass, replace
from datetime import datetime, timedelta, timezone
from typing import Callable, List, Optional

import numpy as np

from riskgate.common.exceptions import LockoutRejectedError
from riskgate.core.types import LockoutState
from riskgate.data.schemas.principal import Principal
from riskgate.governance.audit.recorder import AuditRecorder
from riskgate.governance.lockout.store import FailedAttempt, FailureStore
from riskgate.governance.notifications import NotificationSink, notify
from riskgate.governance.schemas import (
    AdminNotification,
    AuditEntry,
    AuditEventType,
    LockoutRules,
    NotificationSeverity,
    NotificationType,
)
from riskgate.identity.store import IdentityStore


logger = logging.getLogger(__name__)


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class FailureContext:
    """Context of one failed attempt."""
    ip_address: str = "unknown"
    reason: str = "invalid_credentials"
    user_agent: Optional[str] = None
    device_fingerprint: Optional[str] = None
    location: Optional[str] = None
    risk_score: Optional[int] = None


@dataclass(frozen=True)
class LockoutStatus:
    """Lockout view of one principal."""
    principal_id: str
    locked: bool
    attempts_in_window: int
    remaining_before_lock: int
    reason: Optional[str] = None
    transitioned: bool = False


@dataclass(frozen=True)
class UnblockResult:
    principal_id: str
    changed: bool
    purged_attempts: int = 0


class LockoutStateMachine:
    """Tracks failed attempts and moves principals between active and locked."""

    def __init__(
        self,
        identity_store: IdentityStore,
        failure_store: FailureStore,
        recorder: Optional[AuditRecorder] = None,
        notifier: Optional[NotificationSink] = None,
        rules: Optional[LockoutRules] = None,
        clock: Callable[[], datetime] = _utc_now,
    ):
        self.identity_store = identity_store
        self.failure_store = failure_store
        self.recorder = recorder
        self.notifier = notifier
        self.rules = rules or LockoutRules()
        self.clock = clock

    @property
    def window(self) -> timedelta:
        return timedelta(minutes=self.rules.window_minutes)

    def _window_start(self) -> datetime:
        return self.clock() - self.window

    def _record(self, entry: AuditEntry) -> None:
        if self.recorder is not None:
            self.recorder.record(entry)

    def _status(
        self,
        principal_id: str,
        principal: Optional[Principal],
        attempts: int,
        transitioned: bool = False,
    ) -> LockoutStatus:
        threshold = self.rules.max_failed_attempts
        # Keys without a principal record count failures but have nothing to lock
        locked = principal is not None and (
            principal.is_locked or (attempts >= threshold and not principal.is_admin)
        )
        return LockoutStatus(
            principal_id=principal_id,
            locked=locked,
            attempts_in_window=attempts,
            remaining_before_lock=max(0, threshold - attempts),
            reason=principal.lock_reason if principal is not None else None,
            transitioned=transitioned,
        )

    def check_lockout(self, principal_id: str) -> LockoutStatus:
        """Side-effect-free lockout query."""
        principal = self.identity_store.get_principal(principal_id)
        attempts = self.failure_store.count_since(principal_id, self._window_start())
        return self._status(principal_id, principal, attempts)

    def record_failed_attempt(self, principal_id: str, context: FailureContext) -> LockoutStatus:
        """Append a failure, then re-evaluate the lockout condition.

        Args:
            principal_id: Principal reference the failure counts against
            context: Source IP, reason and request signals of the attempt

        Returns:
            LockoutStatus after the attempt; transitioned is True only for
            the call that locked the principal.
        """
        self.failure_store.append(
            principal_id,
            FailedAttempt(
                timestamp=self.clock(),
                ip_address=context.ip_address,
                reason=context.reason,
                user_agent=context.user_agent,
                device_fingerprint=context.device_fingerprint,
                location=context.location,
                risk_score=context.risk_score,
            ),
        )

        window_start = self._window_start()
        attempts = self.failure_store.count_since(principal_id, window_start)
        principal = self.identity_store.get_principal(principal_id)

        logger.info(
            f"Failed attempts for principal: {attempts}/{self.rules.max_failed_attempts}",
            extra={"principal_id": principal_id},
        )

        if (
            principal is None
            or principal.is_admin
            or principal.is_locked
            or attempts < self.rules.max_failed_attempts
        ):
            return self._status(principal_id, principal, attempts)

        reason = f"Account blocked due to {attempts} consecutive failed login attempts"
        if not self.identity_store.compare_and_set_lockout(
            principal_id, LockoutState.ACTIVE, LockoutState.LOCKED, reason
        ):
            # Another request performed the transition
            return self.check_lockout(principal_id)

        logger.warning(
            f"Account locked after {attempts} failed attempts",
            extra={"principal_id": principal_id, "ip_address": context.ip_address},
        )
        recent = self.failure_store.list_since(principal_id, window_start)
        self._record(
            AuditEntry(
                event_type=AuditEventType.ACCOUNT_LOCKED,
                principal_id=principal_id,
                action="account_locked",
                risk_score=100,
                allowed=False,
                reason=f"Account automatically blocked after {attempts} failed login attempts",
                ip_address=context.ip_address,
                metadata={"failed_attempts": attempts},
            )
        )
        notify(self.notifier, self._lock_notification(principal, attempts, recent, context))

        locked = self.identity_store.get_principal(principal_id) or principal
        return self._status(principal_id, locked, attempts, transitioned=True)

    def _lock_notification(
        self,
        principal: Principal,
        attempts: int,
        recent: List[FailedAttempt],
        context: FailureContext,
    ) -> AdminNotification:
        ip_addresses = sorted({a.ip_address for a in recent})
        locations = sorted({a.location for a in recent if a.location})
        scores = [a.risk_score or 0 for a in recent]
        mean_risk = int(np.mean(scores) + 0.5) if scores else 0
        subject = principal.contact or principal.principal_id

        return AdminNotification(
            notification_type=NotificationType.ACCOUNT_LOCKED,
            title=f"Account Blocked: {subject}",
            message=(
                f"User account has been automatically blocked due to {attempts} "
                f"consecutive failed login attempts within the last "
                f"{self.rules.window_minutes} minutes. Immediate admin review required."
            ),
            severity=NotificationSeverity.CRITICAL,
            principal_id=principal.principal_id,
            metadata={
                "failed_attempts": attempts,
                "ip_address": context.ip_address,
                "ip_addresses": ip_addresses,
                "locations": locations,
                "location": ", ".join(locations),
                "mean_risk_score": mean_risk,
                "block_reason": f"{attempts} consecutive failed login attempts",
            },
        )

    def unblock(self, principal_id: str, reason: str, actor: Optional[str] = None) -> UnblockResult:
        """Administrative unblock: clear the lock and purge failure history.

        Idempotent: unblocking an active principal only logs.
        """
        principal = self.identity_store.get_principal(principal_id)
        if principal is not None and principal.is_locked:
            changed = self.identity_store.compare_and_set_lockout(
                principal_id, LockoutState.LOCKED, LockoutState.ACTIVE
            )
        else:
            changed = self.check_lockout(principal_id).locked

        if not changed:
            logger.info("Unblock requested for active principal", extra={"principal_id": principal_id})
            return UnblockResult(principal_id=principal_id, changed=False)

        purged = self.failure_store.purge(principal_id)
        logger.warning(
            "Account unblocked",
            extra={"principal_id": principal_id, "actor": actor, "purged_attempts": purged},
        )
        self._record(
            AuditEntry(
                event_type=AuditEventType.ACCOUNT_UNBLOCKED,
                principal_id=principal_id,
                action="account_unblocked",
                allowed=True,
                reason=reason,
                metadata={"actor": actor, "purged_attempts": purged},
            )
        )
        notify(
            self.notifier,
            AdminNotification(
                notification_type=NotificationType.ACCOUNT_UNBLOCKED,
                title=f"Account Unblocked: {principal.contact or principal_id}",
                message=f"Account unblocked by {actor or 'administrator'}: {reason}",
                severity=NotificationSeverity.MEDIUM,
                principal_id=principal_id,
                metadata={"actor": actor, "reason": reason, "purged_attempts": purged},
            ),
        )
        return UnblockResult(principal_id=principal_id, changed=True, purged_attempts=purged)

    def block(self, principal_id: str, reason: str, actor: Optional[str] = None) -> LockoutStatus:
        """Manual administrative block.

        Raises:
            LockoutRejectedError: Principal unknown or an administrator
        """
        principal = self.identity_store.get_principal(principal_id)
        if principal is None:
            raise LockoutRejectedError("Unknown principal cannot be blocked", principal_id)
        if principal.is_admin:
            raise LockoutRejectedError("Administrator accounts cannot be blocked", principal_id)

        if principal.is_locked or not self.identity_store.compare_and_set_lockout(
            principal_id, LockoutState.ACTIVE, LockoutState.LOCKED, reason
        ):
            logger.info("Block requested for locked principal", extra={"principal_id": principal_id})
            return self.check_lockout(principal_id)

        logger.warning("Account blocked manually", extra={"principal_id": principal_id, "actor": actor})
        self._record(
            AuditEntry(
                event_type=AuditEventType.ACCOUNT_BLOCKED,
                principal_id=principal_id,
                action="account_blocked",
                allowed=False,
                reason=reason,
                metadata={"actor": actor},
            )
        )
        notify(
            self.notifier,
            AdminNotification(
                notification_type=NotificationType.ACCOUNT_BLOCKED,
                title=f"Account Blocked: {principal.contact or principal_id}",
                message=f"Account blocked by {actor or 'administrator'}: {reason}",
                severity=NotificationSeverity.HIGH,
                principal_id=principal_id,
                metadata={"actor": actor, "reason": reason},
            ),
        )
        return replace(self.check_lockout(principal_id), transitioned=True)

    def record_success(self, principal_id: str) -> int:
        """Clear the failure history of an active principal after a granted access."""
        if not self.rules.clear_failures_on_success:
            return 0
        principal = self.identity_store.get_principal(principal_id)
        if principal is None or principal.is_locked:
            return 0
        return self.failure_store.purge(principal_id)
