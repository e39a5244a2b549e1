"""RiskGate Service - wires the decision components for the API layer.

Every component is built explicitly from a Config and the policy rules;
nothing is shared through module globals. Tests inject their own
collaborators (identity store, notifier, audit store, HTTP client).
"""

import logging
from datetime import timedelta
from typing import Optional

import httpx

from riskgate.agents.behavior.scorer import BehavioralRiskScorer
from riskgate.agents.device.validator import DeviceValidator
from riskgate.api.schemas import (
    EvaluateResponse,
    FailedAttemptRequest,
    FailedAttemptResponse,
    LockoutResponse,
    SignalsRequest,
    UnblockResponse,
)
from riskgate.common.config import Config
from riskgate.data.schemas.signals import InboundRequest
from riskgate.governance.audit.recorder import AuditRecorder, create_audit_recorder
from riskgate.governance.audit.store import AuditStore
from riskgate.governance.lockout.machine import LockoutStateMachine, LockoutStatus
from riskgate.governance.lockout.store import FailureStore, InMemoryFailureStore
from riskgate.governance.notifications import LoggingNotificationSink, NotificationSink
from riskgate.governance.policies.client import (
    PolicyDecisionClient,
    build_policy_client,
)
from riskgate.governance.policies.engine import load_policy_rules
from riskgate.governance.schemas import RiskPolicyRules
from riskgate.identity.proof import ChallengeRegistry, IdentityProofVerifier, ProofGate
from riskgate.identity.store import IdentityStore, InMemoryIdentityStore, load_principals
from riskgate.orchestration.decision_context import AccessDecision
from riskgate.orchestration.decision_flow import AccessDecisionFlow
from riskgate.signals.collector import SignalCollector
from riskgate.signals.geolocation import GeolocationResolver, HttpGeolocationResolver


logger = logging.getLogger(__name__)


def apply_overrides(rules: RiskPolicyRules, config: Config) -> RiskPolicyRules:
    """Process configuration takes precedence over the rules file for the decision service."""
    updates = {}
    if config.policy_fail_mode is not None:
        updates["fail_mode"] = config.policy_fail_mode
    if config.health_check_interval_seconds is not None:
        updates["health_check_interval_seconds"] = config.health_check_interval_seconds
    if not updates:
        return rules
    decision_service = rules.decision_service.model_copy(update=updates)
    return rules.model_copy(update={"decision_service": decision_service})


def lockout_response(status: LockoutStatus) -> LockoutResponse:
    return LockoutResponse(
        principal_id=status.principal_id,
        locked=status.locked,
        attempts_in_window=status.attempts_in_window,
        remaining_before_lock=status.remaining_before_lock,
        reason=status.reason,
    )


class RiskGateService:
    """Service for evaluating access requests and administering lockouts.

    Orchestrates:
    1. Translation from API schemas to inbound requests
    2. The access decision flow
    3. Lockout administration
    4. Response shaping (no internal breakdowns in responses)
    """

    def __init__(
        self,
        config: Optional[Config] = None,
        rules: Optional[RiskPolicyRules] = None,
        identity_store: Optional[IdentityStore] = None,
        failure_store: Optional[FailureStore] = None,
        audit_store: Optional[AuditStore] = None,
        notifier: Optional[NotificationSink] = None,
        geolocation: Optional[GeolocationResolver] = None,
        proof_verifier: Optional[IdentityProofVerifier] = None,
        http_client: Optional[httpx.Client] = None,
    ):
        """Initialize the service.

        Args:
            config: Process configuration. Loaded from the environment if not provided.
            rules: Risk policy rules. Loaded from config.policy_rules_file if not provided.
            identity_store: Principal store. In-memory, seeded from
                config.principals_file, if not provided.
            proof_verifier: Opaque identity proof verifier. Proofs are ignored without one.
            http_client: Shared HTTP client for the decision service and geolocation.
        """
        self.config = config or Config()
        self.rules = apply_overrides(
            rules or load_policy_rules(self.config.policy_rules_file), self.config
        )

        if identity_store is None:
            identity_store = InMemoryIdentityStore(
                load_principals(self.config.principals_file)
                if self.config.principals_file else None
            )
        self.identity_store = identity_store

        self.recorder: AuditRecorder = create_audit_recorder(self.config, store=audit_store)
        self.notifier = notifier or LoggingNotificationSink()

        if failure_store is None:
            failure_store = InMemoryFailureStore(
                ttl=timedelta(hours=self.rules.lockout.attempt_ttl_hours)
            )
        self.failure_store = failure_store
        self.lockout = LockoutStateMachine(
            identity_store=self.identity_store,
            failure_store=self.failure_store,
            recorder=self.recorder,
            notifier=self.notifier,
            rules=self.rules.lockout,
        )

        self.policy_client: PolicyDecisionClient = build_policy_client(
            self.rules,
            service_url=self.config.decision_service_url,
            package=self.config.decision_package,
            timeout=self.config.decision_timeout_seconds,
            http_client=http_client,
        )

        if geolocation is None and self.config.geolocation_url:
            geolocation = HttpGeolocationResolver(
                self.config.geolocation_url,
                timeout=self.config.geolocation_timeout_seconds,
                client=http_client,
            )
        self.geolocation = geolocation

        self.challenges = ChallengeRegistry(ttl_seconds=self.rules.proofs.challenge_ttl_seconds)
        self.proof_gate = (
            ProofGate(proof_verifier, self.challenges, rules=self.rules.proofs)
            if proof_verifier is not None else None
        )

        self.flow = AccessDecisionFlow(
            collector=SignalCollector(geolocation=self.geolocation),
            identity_store=self.identity_store,
            lockout=self.lockout,
            policy_client=self.policy_client,
            recorder=self.recorder,
            device_validator=DeviceValidator(self.rules.device),
            scorer=BehavioralRiskScorer(self.rules.scoring),
            proof_gate=self.proof_gate,
            identity_timeout=self.config.identity_store_timeout_seconds,
        )
        logger.info(
            "RiskGateService initialized",
            extra={
                "policy_backend": self.policy_client.backend.name,
                "fail_mode": self.policy_client.fail_mode.value,
                "policy_version": self.policy_client.policy_version,
            },
        )

    def shutdown(self) -> None:
        """Stop the worker pool and flush pending audit writes."""
        self.flow.close()
        self.recorder.close()
        for component in (self.policy_client.backend, self.geolocation):
            close = getattr(component, "close", None)
            if close is not None:
                close()
        logger.info("RiskGateService shutdown complete")

    @staticmethod
    def _inbound(
        body: SignalsRequest,
        headers: dict,
        remote_addr: Optional[str],
    ) -> InboundRequest:
        data = body.model_dump(exclude={"reason"})
        return InboundRequest(headers=headers, remote_addr=remote_addr, **data)

    def evaluate(
        self,
        body: SignalsRequest,
        headers: dict,
        remote_addr: Optional[str] = None,
    ) -> EvaluateResponse:
        decision: AccessDecision = self.flow.evaluate(self._inbound(body, headers, remote_addr))
        return EvaluateResponse(
            decision_id=decision.decision_id,
            outcome=decision.outcome.value,
            allowed=decision.allowed,
            requires_step_up=decision.requires_step_up,
            risk_score=decision.risk_score,
            risk_level=decision.risk_level.value,
            reason=decision.reason,
            factors=sorted(decision.factors),
            source=decision.source.value,
            degraded=decision.degraded,
            policy_version=decision.policy_version,
        )

    def record_failed_attempt(
        self,
        body: FailedAttemptRequest,
        headers: dict,
        remote_addr: Optional[str] = None,
    ) -> FailedAttemptResponse:
        result = self.flow.record_failed_login(
            self._inbound(body, headers, remote_addr), reason=body.reason
        )
        return FailedAttemptResponse(
            resolved=result.resolved,
            risk_score=result.risk_score,
            lockout=lockout_response(result.lockout),
        )

    def lockout_status(self, principal_id: str) -> LockoutResponse:
        return lockout_response(self.lockout.check_lockout(principal_id))

    def unblock(self, principal_id: str, reason: str, actor: Optional[str] = None) -> UnblockResponse:
        result = self.lockout.unblock(principal_id, reason, actor=actor)
        return UnblockResponse(
            principal_id=result.principal_id,
            changed=result.changed,
            purged_attempts=result.purged_attempts,
        )

    def block(self, principal_id: str, reason: str, actor: Optional[str] = None) -> LockoutResponse:
        return lockout_response(self.lockout.block(principal_id, reason, actor=actor))

    def issue_challenge(self) -> str:
        return self.challenges.issue()

    def health(self) -> dict:
        policy_healthy = self.policy_client.is_healthy()
        return {
            "status": "healthy" if policy_healthy else "degraded",
            "service": "riskgate",
            "policy_backend": self.policy_client.backend.name,
            "policy_healthy": policy_healthy,
            "fail_mode": self.policy_client.fail_mode.value,
            "policy_version": self.policy_client.policy_version,
        }
