"""Access Decision Flow - from raw request to audited decision.

    collect signals
    -> resolve principal (bounded)
    -> lockout short-circuit
    -> device validation || behavioral scoring
    -> identity proof gate
    -> policy decision client
    -> success bookkeeping
    -> exactly one audit entry
"""

import logging
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FutureTimeoutError
from typing import Any, Mapping, Optional, Tuple, Union

from riskgate.agents.behavior.scorer import BehavioralRiskScorer, risk_level
from riskgate.agents.device.validator import DeviceValidator
from riskgate.common.constants import AuditConstants, DeviceConstants, TimeoutConstants
from riskgate.common.exceptions import (
    AccessDeniedError,
    AccountLockedError,
    IdentityStoreUnavailableError,
    SignalValidationError,
)
from riskgate.core.types import DecisionOutcome, DecisionSource, RiskLevel
from riskgate.data.schemas.principal import Principal
from riskgate.data.schemas.signals import InboundRequest, RequestSignals
from riskgate.governance.audit.recorder import AuditRecorder
from riskgate.governance.lockout.machine import FailureContext, LockoutStateMachine
from riskgate.governance.policies.client import PolicyDecisionClient
from riskgate.governance.schemas import AuditEntry, AuditEventType, DecisionInput
from riskgate.identity.proof import ProofGate
from riskgate.identity.store import IdentityStore
from riskgate.orchestration.decision_context import (
    AccessDecision,
    FailedLoginResult,
    RiskAssessment,
)
from riskgate.signals.collector import SignalCollector


logger = logging.getLogger(__name__)


class AccessDecisionFlow:
    """Orchestrates one access evaluation end to end.

    All collaborators are injected; the flow holds no shared mutable
    risk state of its own beyond its worker pool.
    """

    def __init__(
        self,
        collector: SignalCollector,
        identity_store: IdentityStore,
        lockout: LockoutStateMachine,
        policy_client: PolicyDecisionClient,
        recorder: AuditRecorder,
        device_validator: Optional[DeviceValidator] = None,
        scorer: Optional[BehavioralRiskScorer] = None,
        proof_gate: Optional[ProofGate] = None,
        identity_timeout: float = TimeoutConstants.IDENTITY_STORE_SECONDS,
        max_workers: int = 4,
        executor: Optional[ThreadPoolExecutor] = None,
    ):
        self.collector = collector
        self.identity_store = identity_store
        self.lockout = lockout
        self.policy_client = policy_client
        self.recorder = recorder
        self.device_validator = device_validator or DeviceValidator()
        self.scorer = scorer or BehavioralRiskScorer()
        self.proof_gate = proof_gate
        self.identity_timeout = identity_timeout

        self._owns_executor = executor is None
        self._executor = executor or ThreadPoolExecutor(
            max_workers=max_workers,
            thread_name_prefix="RiskGateWorker",
        )

    def close(self) -> None:
        if self._owns_executor:
            self._executor.shutdown(wait=True)

    # ----- principal resolution -----

    def _resolve_principal(self, request: InboundRequest) -> Optional[Principal]:
        """Look up the principal by id, else by contact, within the timeout.

        Raises:
            SignalValidationError: Neither id nor contact supplied
            IdentityStoreUnavailableError: Store timed out or failed
        """
        if not request.principal_id and not request.contact:
            raise SignalValidationError(
                "Request must identify a principal by id or contact",
                details={"field": "principal_id"},
            )

        def lookup() -> Optional[Principal]:
            if request.principal_id:
                return self.identity_store.get_principal(request.principal_id)
            return self.identity_store.find_by_contact(request.contact)

        future = self._executor.submit(lookup)
        try:
            return future.result(timeout=self.identity_timeout)
        except FutureTimeoutError:
            future.cancel()
            logger.error("Identity store read timed out", extra={"timeout": self.identity_timeout})
            raise IdentityStoreUnavailableError(
                "Identity store did not respond in time",
                details={"timeout_seconds": self.identity_timeout},
            )
        except Exception as e:
            logger.error(f"Identity store read failed: {type(e).__name__}: {e}")
            raise IdentityStoreUnavailableError(
                "Identity store read failed", details={"error": type(e).__name__}
            )

    @staticmethod
    def _failure_key(request: InboundRequest, principal: Optional[Principal]) -> str:
        if principal is not None:
            return principal.principal_id
        if request.contact:
            return f"contact:{request.contact.strip().lower()}"
        if request.principal_id:
            return request.principal_id
        return AuditConstants.UNRESOLVED_PRINCIPAL

    # ----- evaluation -----

    def _assess(
        self,
        principal: Principal,
        signals: RequestSignals,
        attempts_in_window: int,
    ) -> RiskAssessment:
        """Device validation and behavioral scoring, run concurrently."""
        failed_count = (
            signals.failed_attempts if signals.failed_attempts is not None else attempts_in_window
        )
        device_future = self._executor.submit(
            self.device_validator.assess, principal, signals, attempts_in_window
        )
        score_future = self._executor.submit(self.scorer.score, principal, signals, failed_count)
        return RiskAssessment(breakdown=score_future.result(), device=device_future.result())

    def _check_proof(self, request: InboundRequest, principal: Principal) -> Tuple[bool, bool]:
        """Returns (strong identity proof present, proof verified in this request)."""
        verified = False
        if request.identity_proof is not None and self.proof_gate is not None:
            result = self.proof_gate.check(request.identity_proof)
            verified = result.valid
            if not verified:
                logger.info(
                    f"Identity proof rejected: {result.reason}",
                    extra={"principal_id": principal.principal_id},
                )
        return principal.has_identity_proof or verified, verified

    def evaluate(self, request: Union[InboundRequest, Mapping[str, Any]]) -> AccessDecision:
        """Evaluate one inbound request.

        Raises:
            SignalValidationError: Malformed request; nothing is evaluated or audited
            IdentityStoreUnavailableError: Principal context unavailable
        """
        if not isinstance(request, InboundRequest):
            try:
                request = InboundRequest.model_validate(request)
            except ValueError as e:
                raise SignalValidationError("Malformed request signals", details={"error": str(e)})

        signals = self.collector.collect(request)
        principal = self._resolve_principal(request)

        if principal is None:
            decision = AccessDecision(
                decision_id=AccessDecision.new_id(),
                timestamp=AccessDecision.now(),
                principal_id=AuditConstants.UNRESOLVED_PRINCIPAL,
                action=request.action,
                resource=request.resource,
                outcome=DecisionOutcome.DENY,
                allowed=False,
                risk_score=100,
                risk_level=RiskLevel.CRITICAL,
                reason="Unknown principal",
                source=DecisionSource.IDENTITY,
                signals=signals,
            )
            self._audit(decision)
            return decision

        status = self.lockout.check_lockout(principal.principal_id)
        if status.locked:
            decision = AccessDecision(
                decision_id=AccessDecision.new_id(),
                timestamp=AccessDecision.now(),
                principal_id=principal.principal_id,
                action=request.action,
                resource=request.resource,
                outcome=DecisionOutcome.LOCKED,
                allowed=False,
                risk_score=100,
                risk_level=RiskLevel.CRITICAL,
                reason=status.reason or "Account locked due to repeated failed attempts",
                source=DecisionSource.LOCKOUT,
                signals=signals,
                lockout=status,
            )
            self._audit(decision)
            return decision

        assessment = self._assess(principal, signals, status.attempts_in_window)
        has_proof, proof_verified = self._check_proof(request, principal)

        policy = self.policy_client.evaluate(
            DecisionInput(
                principal_id=principal.principal_id,
                is_admin=principal.is_admin,
                is_verified=principal.is_verified,
                has_identity_proof=has_proof,
                risk_score=assessment.score,
                action=request.action,
                resource=request.resource,
                device_match=assessment.device.device.is_match,
                location_match=assessment.device.location.is_match,
                device_fingerprint=signals.device_fingerprint,
                registered_fingerprint=principal.registered_fingerprint,
                location=signals.location.label,
                registered_location=principal.registered_location,
                ip_address=signals.ip_address,
                timestamp=signals.timestamp,
            )
        )

        decision = AccessDecision(
            decision_id=AccessDecision.new_id(),
            timestamp=AccessDecision.now(),
            principal_id=principal.principal_id,
            action=request.action,
            resource=request.resource,
            outcome=policy.outcome,
            allowed=policy.allow,
            risk_score=policy.risk_score,
            risk_level=risk_level(policy.risk_score),
            reason=policy.reason,
            source=policy.source,
            degraded=policy.degraded,
            factors=policy.factors | frozenset(assessment.device.contributing_factors),
            signals=signals,
            assessment=assessment,
            policy=policy,
            lockout=status,
            proof_verified=proof_verified,
            policy_version=policy.policy_version,
        )

        if decision.outcome == DecisionOutcome.ALLOW:
            self._record_success(principal, decision)

        self._audit(decision)
        logger.info(
            f"Access decision: {decision.outcome.value}",
            extra={
                "decision_id": decision.decision_id,
                "principal_id": decision.principal_id,
                "risk_score": decision.risk_score,
                "degraded": decision.degraded,
            },
        )
        return decision

    def _record_success(self, principal: Principal, decision: AccessDecision) -> None:
        """Baseline and failure-history bookkeeping after a granted access.

        Store errors here are logged; the decision has already been made.
        """
        assessment = decision.assessment
        enroll = assessment.device.device.is_match or (
            assessment.behavioral_score < DeviceConstants.BASELINE_ENROLLMENT_BELOW
        )
        try:
            self.identity_store.record_successful_access(
                principal.principal_id, decision.signals, enroll_baseline=enroll
            )
            self.lockout.record_success(principal.principal_id)
        except Exception as e:
            logger.error(
                f"Post-decision bookkeeping failed: {type(e).__name__}: {e}",
                extra={"decision_id": decision.decision_id, "principal_id": principal.principal_id},
            )

    def _audit(self, decision: AccessDecision) -> None:
        signals = decision.signals
        assessment = decision.assessment
        metadata = {"risk_level": decision.risk_level.value, "proof_verified": decision.proof_verified}
        if assessment is not None:
            metadata["breakdown"] = assessment.breakdown.as_dict()
            metadata["device_risk"] = assessment.device.total_risk
            metadata["device_match"] = assessment.device.device.is_match
            metadata["location_match"] = assessment.device.location.is_match
        if signals is not None:
            metadata["fingerprint_source"] = signals.fingerprint_source

        self.recorder.record(
            AuditEntry(
                event_type=AuditEventType.ACCESS_DECISION,
                decision_id=decision.decision_id,
                principal_id=decision.principal_id,
                action=decision.action,
                resource=decision.resource,
                risk_score=decision.risk_score,
                allowed=decision.allowed,
                outcome=decision.outcome,
                reason=decision.reason,
                decision_source=decision.source,
                degraded=decision.degraded,
                policy_version=decision.policy_version,
                ip_address=signals.ip_address if signals else None,
                user_agent=signals.user_agent if signals else None,
                device_fingerprint=signals.device_fingerprint if signals else None,
                location=signals.location.label if signals else None,
                factors=sorted(decision.factors),
                metadata=metadata,
            )
        )

    # ----- failures and enforcement -----

    def record_failed_login(
        self,
        request: Union[InboundRequest, Mapping[str, Any]],
        reason: str = "invalid_credentials",
    ) -> FailedLoginResult:
        """Record a failed authentication and update the lockout state.

        Anonymous failures are audited against the unresolved principal.
        """
        if not isinstance(request, InboundRequest):
            try:
                request = InboundRequest.model_validate(request)
            except ValueError as e:
                raise SignalValidationError("Malformed request signals", details={"error": str(e)})

        signals = self.collector.collect(request)
        principal = self._resolve_principal(request)
        key = self._failure_key(request, principal)

        risk_score = None
        if principal is not None:
            attempts = self.lockout.check_lockout(key).attempts_in_window + 1
            failed_count = signals.failed_attempts if signals.failed_attempts is not None else attempts
            risk_score = self.scorer.score(principal, signals, failed_count).total

        status = self.lockout.record_failed_attempt(
            key,
            FailureContext(
                ip_address=signals.ip_address,
                reason=reason,
                user_agent=signals.user_agent or None,
                device_fingerprint=signals.device_fingerprint,
                location=signals.location.label,
                risk_score=risk_score,
            ),
        )

        self.recorder.record(
            AuditEntry(
                event_type=AuditEventType.FAILED_ATTEMPT,
                principal_id=(
                    principal.principal_id if principal is not None
                    else AuditConstants.UNRESOLVED_PRINCIPAL
                ),
                action=request.action,
                resource=request.resource,
                risk_score=risk_score,
                allowed=False,
                reason=reason,
                ip_address=signals.ip_address,
                user_agent=signals.user_agent or None,
                device_fingerprint=signals.device_fingerprint,
                location=signals.location.label,
                metadata={
                    "attempts_in_window": status.attempts_in_window,
                    "remaining_before_lock": status.remaining_before_lock,
                    "locked": status.locked,
                },
            )
        )
        return FailedLoginResult(
            principal_id=key,
            resolved=principal is not None,
            lockout=status,
            risk_score=risk_score,
        )

    def enforce(self, request: Union[InboundRequest, Mapping[str, Any]]) -> AccessDecision:
        """Evaluate and surface lockout or denial as exceptions.

        Step-up decisions are returned; the caller must obtain stronger proof.

        Raises:
            AccountLockedError: Principal is locked
            AccessDeniedError: Policy denied the request
        """
        decision = self.evaluate(request)
        if decision.outcome == DecisionOutcome.LOCKED:
            raise AccountLockedError(
                "Account is locked",
                principal_id=decision.principal_id,
                details={"decision_id": decision.decision_id},
            )
        if not decision.allowed:
            raise AccessDeniedError(
                decision.reason,
                details={
                    "decision_id": decision.decision_id,
                    "risk_score": decision.risk_score,
                    "factors": sorted(decision.factors),
                },
            )
        return decision
