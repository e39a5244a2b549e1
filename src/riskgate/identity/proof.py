"""Identity proofs - freshness and single-use checks around an opaque verifier.

The cryptography lives behind IdentityProofVerifier; this module only
enforces that a proof is recent and bound to a challenge that is used once.
"""

import logging
import secrets
import threading
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, Optional, Protocol

from riskgate.common.exceptions import ProofVerificationError
from riskgate.data.schemas.signals import IdentityProof
from riskgate.governance.schemas import RiskPolicyRules


logger = logging.getLogger(__name__)

ProofRules = RiskPolicyRules.ProofRules


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class ProofVerification:
    """Outcome of a proof check."""
    valid: bool
    reason: Optional[str] = None
    claims: Dict[str, Any] = field(default_factory=dict)


class IdentityProofVerifier(Protocol):
    """Opaque proof verifier. May raise ProofVerificationError for unusable proofs."""

    def verify(self, proof: IdentityProof, challenge: str) -> ProofVerification:
        ...


class ChallengeRegistry:
    """Issues one-time challenges and consumes each at most once."""

    def __init__(
        self,
        ttl_seconds: int = 300,
        clock: Callable[[], datetime] = _utc_now,
    ):
        self.ttl = timedelta(seconds=ttl_seconds)
        self.clock = clock
        self._lock = threading.Lock()
        self._pending: Dict[str, datetime] = {}

    def issue(self) -> str:
        challenge = secrets.token_hex(32)
        with self._lock:
            self._purge_expired()
            self._pending[challenge] = self.clock() + self.ttl
        return challenge

    def consume(self, challenge: str) -> bool:
        """True if the challenge was outstanding and unexpired; it is spent either way."""
        with self._lock:
            expires_at = self._pending.pop(challenge, None)
        return expires_at is not None and self.clock() <= expires_at

    def _purge_expired(self) -> None:
        now = self.clock()
        for challenge in [c for c, expires in self._pending.items() if expires < now]:
            del self._pending[challenge]

    def __len__(self) -> int:
        return len(self._pending)


class ProofGate:
    """Checks an identity proof before the opaque verifier sees it.

    Order: credential type, freshness, challenge consumption, verifier.
    """

    def __init__(
        self,
        verifier: IdentityProofVerifier,
        challenges: ChallengeRegistry,
        rules: Optional[ProofRules] = None,
        required_credential_type: Optional[str] = None,
        clock_skew_seconds: int = 60,
        clock: Callable[[], datetime] = _utc_now,
    ):
        self.verifier = verifier
        self.challenges = challenges
        self.rules = rules or ProofRules()
        self.required_credential_type = required_credential_type
        self.clock_skew = timedelta(seconds=clock_skew_seconds)
        self.clock = clock

    def check(self, proof: IdentityProof) -> ProofVerification:
        if (
            self.required_credential_type
            and proof.credential_type != self.required_credential_type
        ):
            return ProofVerification(
                valid=False,
                reason=(
                    f"Required credential type: {self.required_credential_type}, "
                    f"provided: {proof.credential_type}"
                ),
            )

        issued_at = proof.issued_at
        if issued_at.tzinfo is None:
            issued_at = issued_at.replace(tzinfo=timezone.utc)
        now = self.clock()
        if now - issued_at > timedelta(seconds=self.rules.max_age_seconds):
            return ProofVerification(valid=False, reason="Proof expired")
        if issued_at - now > self.clock_skew:
            return ProofVerification(valid=False, reason="Proof issued in the future")

        if not self.challenges.consume(proof.challenge):
            return ProofVerification(valid=False, reason="Unknown, expired or reused challenge")

        try:
            result = self.verifier.verify(proof, proof.challenge)
        except ProofVerificationError as e:
            return ProofVerification(valid=False, reason=e.message)

        if not result.valid:
            logger.info("Identity proof rejected by verifier", extra={"reason": result.reason})
        return result
