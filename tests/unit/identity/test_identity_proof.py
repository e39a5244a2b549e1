"""Unit tests for identity collaborators.

Tests challenge issuance and single use, proof freshness checks,
and the in-memory identity store's lockout and baseline writes.
"""

import threading
from datetime import datetime, timedelta, timezone

import pytest

from riskgate.common.exceptions import ConfigurationError, ProofVerificationError
from riskgate.core.types import LockoutState
from riskgate.data.schemas.principal import Principal
from riskgate.data.schemas.signals import (
    GeoPoint,
    IdentityProof,
    Location,
    RequestSignals,
    TypingSample,
)
from riskgate.identity import (
    ChallengeRegistry,
    InMemoryIdentityStore,
    ProofGate,
    ProofVerification,
    load_principals,
)


NOW = datetime(2026, 3, 2, 6, 30, tzinfo=timezone.utc)
FP = "3f2a9c0d5e6b7a8190f1e2d3c4b5a697"


class MutableClock:
    def __init__(self, start: datetime):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


class RecordingVerifier:
    def __init__(self, valid=True, error=None):
        self.valid = valid
        self.error = error
        self.calls = []

    def verify(self, proof, challenge):
        self.calls.append(challenge)
        if self.error:
            raise self.error
        return ProofVerification(valid=self.valid, reason=None if self.valid else "bad proof")


def make_signals(fingerprint=FP, typing=None, gps=None, location="Kolkata, West Bengal, India"):
    return RequestSignals(
        ip_address="49.36.10.20",
        user_agent="Mozilla/5.0 Chrome/120.0",
        device_fingerprint=fingerprint,
        derived_fingerprint=fingerprint,
        fingerprint_source="derived",
        location=Location.parse(location),
        gps=gps,
        timestamp=NOW,
        typing_sample=TypingSample(intervals_ms=typing) if typing else None,
    )


@pytest.fixture
def clock():
    return MutableClock(NOW)


@pytest.fixture
def registry(clock):
    return ChallengeRegistry(ttl_seconds=300, clock=clock)


@pytest.fixture
def store():
    return InMemoryIdentityStore(
        [Principal(principal_id="usr_001", contact="Asha@Example.com")]
    )


def make_proof(challenge, issued_at=NOW, credential_type="age_over_18"):
    return IdentityProof(
        proof="opaque-proof-bytes",
        challenge=challenge,
        issued_at=issued_at,
        credential_type=credential_type,
    )


class TestChallengeRegistry:
    """One-time challenges."""

    def test_challenge_consumed_once(self, registry):
        challenge = registry.issue()

        assert registry.consume(challenge)
        assert not registry.consume(challenge)

    def test_unknown_challenge_rejected(self, registry):
        assert not registry.consume("never-issued")

    def test_expired_challenge_rejected(self, registry, clock):
        challenge = registry.issue()
        clock.advance(seconds=301)

        assert not registry.consume(challenge)

    def test_challenges_are_unique(self, registry):
        assert len({registry.issue() for _ in range(50)}) == 50

    def test_expired_challenges_purged_on_issue(self, registry, clock):
        registry.issue()
        clock.advance(seconds=301)
        registry.issue()

        assert len(registry) == 1


class TestProofGate:
    """Checks run in order before the verifier is consulted."""

    def test_valid_proof_accepted(self, registry, clock):
        verifier = RecordingVerifier()
        gate = ProofGate(verifier, registry, clock=clock)
        challenge = registry.issue()

        result = gate.check(make_proof(challenge))

        assert result.valid
        assert verifier.calls == [challenge]

    def test_wrong_credential_type(self, registry, clock):
        verifier = RecordingVerifier()
        gate = ProofGate(verifier, registry, required_credential_type="citizenship", clock=clock)
        challenge = registry.issue()

        result = gate.check(make_proof(challenge))

        assert not result.valid
        assert "citizenship" in result.reason
        assert verifier.calls == []
        # Rejected before the challenge was spent
        assert registry.consume(challenge)

    def test_stale_proof_rejected(self, registry, clock):
        gate = ProofGate(RecordingVerifier(), registry, clock=clock)
        challenge = registry.issue()

        result = gate.check(make_proof(challenge, issued_at=NOW - timedelta(seconds=301)))

        assert not result.valid
        assert result.reason == "Proof expired"

    def test_future_proof_rejected(self, registry, clock):
        gate = ProofGate(RecordingVerifier(), registry, clock=clock)
        challenge = registry.issue()

        result = gate.check(make_proof(challenge, issued_at=NOW + timedelta(minutes=5)))

        assert not result.valid
        assert result.reason == "Proof issued in the future"

    def test_naive_timestamp_treated_as_utc(self, registry, clock):
        gate = ProofGate(RecordingVerifier(), registry, clock=clock)
        challenge = registry.issue()

        result = gate.check(make_proof(challenge, issued_at=NOW.replace(tzinfo=None)))

        assert result.valid

    def test_reused_challenge_rejected(self, registry, clock):
        verifier = RecordingVerifier()
        gate = ProofGate(verifier, registry, clock=clock)
        challenge = registry.issue()
        gate.check(make_proof(challenge))

        result = gate.check(make_proof(challenge))

        assert not result.valid
        assert len(verifier.calls) == 1

    def test_verifier_error_is_invalid(self, registry, clock):
        gate = ProofGate(
            RecordingVerifier(error=ProofVerificationError("malformed proof")),
            registry,
            clock=clock,
        )

        result = gate.check(make_proof(registry.issue()))

        assert not result.valid
        assert result.reason == "malformed proof"

    def test_verifier_rejection_passed_through(self, registry, clock):
        gate = ProofGate(RecordingVerifier(valid=False), registry, clock=clock)

        result = gate.check(make_proof(registry.issue()))

        assert not result.valid
        assert result.reason == "bad proof"


class TestInMemoryIdentityStore:
    """Lookup and compare-and-set lockout transitions."""

    def test_find_by_contact_ignores_case(self, store):
        assert store.find_by_contact(" asha@EXAMPLE.com ").principal_id == "usr_001"
        assert store.find_by_contact("nobody@example.com") is None

    def test_compare_and_set(self, store):
        assert store.compare_and_set_lockout(
            "usr_001", LockoutState.ACTIVE, LockoutState.LOCKED, reason="too many failures"
        )
        assert not store.compare_and_set_lockout(
            "usr_001", LockoutState.ACTIVE, LockoutState.LOCKED
        )

        principal = store.get_principal("usr_001")
        assert principal.is_locked
        assert principal.lock_reason == "too many failures"

    def test_unlock_clears_reason(self, store):
        store.compare_and_set_lockout("usr_001", LockoutState.ACTIVE, LockoutState.LOCKED, "x")
        store.compare_and_set_lockout("usr_001", LockoutState.LOCKED, LockoutState.ACTIVE)

        assert store.get_principal("usr_001").lock_reason is None

    def test_unknown_principal_cas_fails(self, store):
        assert not store.compare_and_set_lockout("usr_missing", LockoutState.ACTIVE, LockoutState.LOCKED)

    def test_exactly_one_concurrent_transition_wins(self, store):
        barrier = threading.Barrier(8)
        wins = []

        def worker():
            barrier.wait()
            wins.append(
                store.compare_and_set_lockout("usr_001", LockoutState.ACTIVE, LockoutState.LOCKED)
            )

        threads = [threading.Thread(target=worker) for _ in range(8)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert wins.count(True) == 1


class TestRecordSuccessfulAccess:
    """Baseline updates after a granted request."""

    def test_new_device_and_last_login(self, store):
        store.record_successful_access("usr_001", make_signals(gps=GeoPoint(lat=22.57, lon=88.36)))

        principal = store.get_principal("usr_001")
        assert principal.knows_device(FP)
        assert principal.last_login.timestamp == NOW
        assert principal.last_location().lat == 22.57

    def test_known_device_updates_last_seen(self, store):
        store.record_successful_access("usr_001", make_signals())
        later = make_signals().model_copy(update={"timestamp": NOW + timedelta(days=1)})

        store.record_successful_access("usr_001", later)

        devices = store.get_principal("usr_001").known_devices
        assert len(devices) == 1
        assert devices[0].first_seen == NOW
        assert devices[0].last_seen == NOW + timedelta(days=1)

    def test_keystroke_baseline_running_stats(self, store):
        store.record_successful_access("usr_001", make_signals(typing=[100.0]))
        store.record_successful_access("usr_001", make_signals(typing=[120.0]))

        baseline = store.get_principal("usr_001").keystroke_baseline
        assert baseline.samples == 2
        assert baseline.mean_iki == pytest.approx(110.0)
        assert baseline.std_iki == pytest.approx(10.0)

    def test_enrollment_fills_missing_baselines(self, store):
        store.record_successful_access("usr_001", make_signals(), enroll_baseline=True)

        principal = store.get_principal("usr_001")
        assert principal.registered_fingerprint == FP
        assert principal.registered_location == "Kolkata, West Bengal, India"

    def test_enrollment_never_overwrites(self):
        store = InMemoryIdentityStore(
            [Principal(principal_id="usr_002", registered_fingerprint="aa" * 16, registered_location="India")]
        )

        store.record_successful_access("usr_002", make_signals(), enroll_baseline=True)

        principal = store.get_principal("usr_002")
        assert principal.registered_fingerprint == "aa" * 16
        assert principal.registered_location == "India"

    def test_without_enrollment_baselines_untouched(self, store):
        store.record_successful_access("usr_001", make_signals())

        assert store.get_principal("usr_001").registered_fingerprint is None

    def test_unknown_principal_ignored(self, store):
        store.record_successful_access("usr_missing", make_signals())

        assert store.get_principal("usr_missing") is None

    def test_location_history_keeps_latest_fixes(self):
        store = InMemoryIdentityStore([Principal(principal_id="usr_001")], max_location_history=3)

        for index in range(5):
            store.record_successful_access(
                "usr_001", make_signals(gps=GeoPoint(lat=20.0 + index, lon=80.0))
            )

        history = store.get_principal("usr_001").location_history
        assert [fix.lat for fix in history] == [22.0, 23.0, 24.0]

    def test_known_devices_drop_least_recently_seen(self):
        store = InMemoryIdentityStore([Principal(principal_id="usr_001")], max_known_devices=2)

        for index, fingerprint in enumerate(["aa" * 16, "bb" * 16, "cc" * 16]):
            signals = make_signals(fingerprint=fingerprint).model_copy(
                update={"timestamp": NOW + timedelta(hours=index)}
            )
            store.record_successful_access("usr_001", signals)

        principal = store.get_principal("usr_001")
        assert [d.fingerprint for d in principal.known_devices] == ["bb" * 16, "cc" * 16]
        assert not principal.knows_device("aa" * 16)


class TestLoadPrincipals:
    def test_loads_yaml(self, tmp_path):
        path = tmp_path / "principals.yaml"
        path.write_text(
            "principals:\n"
            "  - principal_id: usr_admin01\n"
            "    is_admin: true\n"
            "  - principal_id: usr_001\n"
            "    contact: asha@example.com\n"
        )

        principals = load_principals(path)

        assert [p.principal_id for p in principals] == ["usr_admin01", "usr_001"]
        assert principals[0].is_admin

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigurationError):
            load_principals(tmp_path / "absent.yaml")

    def test_invalid_entry(self, tmp_path):
        path = tmp_path / "principals.yaml"
        path.write_text("principals:\n  - contact: no-id@example.com\n")

        with pytest.raises(ConfigurationError):
            load_principals(path)
