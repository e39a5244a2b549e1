"""Policy Decision Client - consults the policy decision service.

The decision service is an external collaborator reached over a bounded,
synchronous call. Any error, timeout or unhealthy state resolves to a
fallback decision according to the configured FailMode; nothing raised
by a backend reaches the caller.
"""

import logging
import threading
import time
from pathlib import Path
from typing import Any, Callable, Dict, Optional, Protocol

import httpx

from riskgate.common.config.settings import FailMode
from riskgate.common.constants import TimeoutConstants
from riskgate.common.exceptions import PolicyServiceError
from riskgate.core.types import DecisionOutcome, DecisionSource
from riskgate.governance.policies.engine import PolicyEngine
from riskgate.governance.schemas import (
    DecisionInput,
    PolicyDecision,
    PolicyVerdict,
    RiskPolicyRules,
)


logger = logging.getLogger(__name__)

POLICY_DOCUMENT = Path(__file__).parent / "accesscontrol.rego"


class PolicyBackend(Protocol):
    """Where the rules are actually evaluated."""

    name: str

    def decide(self, decision_input: DecisionInput) -> PolicyVerdict:
        """Raises PolicyServiceError on any failure."""
        ...

    def health(self) -> bool:
        ...


class LocalPolicyBackend:
    """Evaluates the rules in-process with PolicyEngine."""

    name = "local"

    def __init__(self, engine: PolicyEngine):
        self.engine = engine

    def decide(self, decision_input: DecisionInput) -> PolicyVerdict:
        return self.engine.evaluate(decision_input)

    def health(self) -> bool:
        return True


class OpaPolicyBackend:
    """Open Policy Agent over its REST data API.

    POST {base_url}/v1/data/{package}/decision with {"input": ...};
    the document returns {"allow": bool, "reasons": [...], "factors": [...]}.
    """

    name = "opa"

    def __init__(
        self,
        base_url: str,
        package: str = "accesscontrol",
        rules: Optional[RiskPolicyRules] = None,
        timeout: float = TimeoutConstants.POLICY_DECISION_SECONDS,
        health_timeout: float = TimeoutConstants.HEALTH_CHECK_SECONDS,
        client: Optional[httpx.Client] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.package = package
        self.rules = rules or RiskPolicyRules()
        self.timeout = timeout
        self.health_timeout = health_timeout
        self._client = client or httpx.Client(timeout=timeout)

    @property
    def decision_url(self) -> str:
        path = self.package.replace(".", "/")
        return f"{self.base_url}/v1/data/{path}/decision"

    def build_input(self, decision_input: DecisionInput) -> Dict[str, Any]:
        """Policy input document. Absent values are omitted, not null."""
        payload: Dict[str, Any] = {
            "principal": {
                "id": decision_input.principal_id,
                "is_admin": decision_input.is_admin,
                "is_verified": decision_input.is_verified,
                "has_identity_proof": decision_input.has_identity_proof,
            },
            "risk_score": decision_input.risk_score,
            "action": decision_input.action,
            "device_match": decision_input.device_match,
            "location_match": decision_input.location_match,
            "timestamp": decision_input.timestamp.isoformat(),
            "thresholds": self.rules.policy.model_dump(),
        }
        optional = {
            "resource": decision_input.resource,
            "device_fingerprint": decision_input.device_fingerprint,
            "registered_fingerprint": decision_input.registered_fingerprint,
            "location": decision_input.location,
            "registered_location": decision_input.registered_location,
            "ip_address": decision_input.ip_address,
        }
        payload.update({key: value for key, value in optional.items() if value})
        return payload

    def decide(self, decision_input: DecisionInput) -> PolicyVerdict:
        try:
            response = self._client.post(
                self.decision_url,
                json={"input": self.build_input(decision_input)},
                timeout=self.timeout,
            )
            response.raise_for_status()
            body = response.json()
        except httpx.TimeoutException as e:
            raise PolicyServiceError(
                "Policy decision timed out", backend=self.name, details={"error": str(e)}
            )
        except (httpx.HTTPError, ValueError) as e:
            raise PolicyServiceError(
                f"Policy decision request failed: {type(e).__name__}",
                backend=self.name,
                details={"error": str(e)},
            )

        result = body.get("result") if isinstance(body, dict) else None
        if not isinstance(result, dict) or not isinstance(result.get("allow"), bool):
            # Undefined document: the policy is not installed
            raise PolicyServiceError(
                "Policy decision result missing or malformed", backend=self.name
            )

        return PolicyVerdict(
            allow=result["allow"],
            reasons=list(result.get("reasons") or []),
            factors=list(result.get("factors") or []),
        )

    def health(self) -> bool:
        try:
            response = self._client.get(f"{self.base_url}/health", timeout=self.health_timeout)
            return response.is_success
        except httpx.HTTPError:
            return False

    def install_policy(self, document: Optional[str] = None) -> None:
        """Upload the access-control policy document.

        Raises:
            PolicyServiceError: Service unreachable or upload rejected
        """
        if not self.health():
            raise PolicyServiceError(
                f"Policy decision service not accessible at {self.base_url}",
                backend=self.name,
            )

        body = document if document is not None else POLICY_DOCUMENT.read_text()
        policy_id = self.package.replace(".", "/")
        try:
            response = self._client.put(
                f"{self.base_url}/v1/policies/{policy_id}",
                content=body.encode("utf-8"),
                headers={"Content-Type": "text/plain"},
                timeout=self.timeout,
            )
            response.raise_for_status()
        except httpx.HTTPError as e:
            raise PolicyServiceError(
                f"Failed to install policy: {e}", backend=self.name
            )
        logger.info("Access-control policy installed", extra={"package": self.package})

    def close(self) -> None:
        self._client.close()


class PolicyDecisionClient:
    """Produces PolicyDecisions from a backend, with a defined fallback.

    Responsibilities:
    - Poll backend health (cached for the configured interval)
    - Delegate evaluation to the backend
    - Apply fail-open or fail-closed on any backend failure
    - Derive the step-up outcome for allowed elevated-risk requests
    """

    def __init__(
        self,
        backend: PolicyBackend,
        rules: Optional[RiskPolicyRules] = None,
        fail_mode: Optional[FailMode] = None,
        monotonic: Callable[[], float] = time.monotonic,
    ):
        """Initialize the client.

        Args:
            backend: Policy backend to consult
            rules: Risk policy rules; defaults if not provided
            fail_mode: Overrides the fail mode from the rules file
            monotonic: Clock for the health-check cache
        """
        self.backend = backend
        self.rules = rules or RiskPolicyRules()
        self.engine = PolicyEngine(self.rules)
        self.fail_mode = fail_mode or self.rules.decision_service.fail_mode
        self._monotonic = monotonic
        self._health_lock = threading.Lock()
        self._health_checked_at: Optional[float] = None
        self._healthy = True

    @property
    def policy_version(self) -> str:
        return self.rules.metadata.version

    def is_healthy(self) -> bool:
        """Backend health, re-polled at most once per interval."""
        interval = self.rules.decision_service.health_check_interval_seconds
        with self._health_lock:
            now = self._monotonic()
            if self._health_checked_at is not None and now - self._health_checked_at < interval:
                return self._healthy

            try:
                healthy = bool(self.backend.health())
            except Exception as e:
                logger.warning(f"Policy health check raised {type(e).__name__}")
                healthy = False

            if healthy != self._healthy:
                log = logger.info if healthy else logger.warning
                log(
                    f"Policy decision service {'recovered' if healthy else 'unhealthy'}",
                    extra={"backend": self.backend.name},
                )
            self._healthy = healthy
            self._health_checked_at = now
            return healthy

    def evaluate(self, decision_input: DecisionInput) -> PolicyDecision:
        """Evaluate a decision input. Never raises for backend failures.

        Returns:
            PolicyDecision tagged with its source; fallback decisions are degraded.
        """
        local_factors = frozenset(self.engine.factors(decision_input))

        if not self.is_healthy():
            return self._fallback(decision_input, local_factors, "decision service unhealthy")

        try:
            verdict = self.backend.decide(decision_input)
        except PolicyServiceError as e:
            self._mark_unhealthy()
            return self._fallback(decision_input, local_factors, e.message)
        except Exception as e:
            self._mark_unhealthy()
            return self._fallback(
                decision_input, local_factors, f"unexpected backend error: {type(e).__name__}"
            )

        reasons = verdict.reasons or self.engine.reasons(decision_input)
        if verdict.allow:
            reason = "; ".join(reasons) if reasons else "Access permitted by policy"
        else:
            reason = "; ".join(reasons) if reasons else "Access denied by policy"

        return PolicyDecision(
            allow=verdict.allow,
            risk_score=decision_input.risk_score,
            reason=reason,
            factors=local_factors | frozenset(verdict.factors),
            outcome=self._outcome(verdict.allow, decision_input),
            source=DecisionSource.POLICY,
            degraded=False,
            backend=self.backend.name,
            policy_version=self.policy_version,
        )

    def _outcome(self, allow: bool, decision_input: DecisionInput) -> DecisionOutcome:
        if not allow:
            return DecisionOutcome.DENY
        if (
            decision_input.risk_score > self.rules.policy.step_up_above
            and not decision_input.has_identity_proof
        ):
            return DecisionOutcome.STEP_UP
        return DecisionOutcome.ALLOW

    def _mark_unhealthy(self) -> None:
        with self._health_lock:
            self._healthy = False
            self._health_checked_at = self._monotonic()

    def _fallback(
        self,
        decision_input: DecisionInput,
        factors: frozenset,
        cause: str,
    ) -> PolicyDecision:
        allow = self.fail_mode == FailMode.FAIL_OPEN
        logger.warning(
            f"Policy decision fell back ({self.fail_mode.value}): {cause}",
            extra={
                "principal_id": decision_input.principal_id,
                "risk_score": decision_input.risk_score,
                "backend": self.backend.name,
            },
        )
        reason = (
            f"Policy service unavailable - defaulting to {'allow' if allow else 'deny'}"
        )
        return PolicyDecision(
            allow=allow,
            risk_score=decision_input.risk_score,
            reason=reason,
            factors=factors | {"policy_service_unavailable"},
            outcome=self._outcome(allow, decision_input),
            source=DecisionSource.FALLBACK,
            degraded=True,
            backend=self.backend.name,
            policy_version=self.policy_version,
        )


def build_policy_client(
    rules: RiskPolicyRules,
    service_url: Optional[str] = None,
    package: str = "accesscontrol",
    timeout: Optional[float] = None,
    fail_mode: Optional[FailMode] = None,
    http_client: Optional[httpx.Client] = None,
) -> PolicyDecisionClient:
    """Build a client for the OPA service, or the local engine without a URL."""
    if service_url:
        backend: PolicyBackend = OpaPolicyBackend(
            service_url,
            package=package,
            rules=rules,
            timeout=timeout or rules.decision_service.timeout_seconds,
            health_timeout=rules.decision_service.health_check_timeout_seconds,
            client=http_client,
        )
    else:
        backend = LocalPolicyBackend(PolicyEngine(rules))
    return PolicyDecisionClient(backend, rules=rules, fail_mode=fail_mode)
