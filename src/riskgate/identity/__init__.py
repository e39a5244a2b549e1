"""Identity collaborators - principal store and identity proofs."""

from riskgate.identity.proof import (
    ChallengeRegistry,
    IdentityProofVerifier,
    ProofGate,
    ProofVerification,
)
from riskgate.identity.store import IdentityStore, InMemoryIdentityStore, load_principals

__all__ = [
    "ChallengeRegistry",
    "IdentityProofVerifier",
    "ProofGate",
    "ProofVerification",
    "IdentityStore",
    "InMemoryIdentityStore",
    "load_principals",
]
