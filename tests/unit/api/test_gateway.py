"""Tests for the API Gateway.

These tests verify that:
1. /evaluate returns decisions without internal breakdowns
2. Failed attempts drive the lockout lifecycle over HTTP
3. Errors map to the documented status codes
"""

import time
from datetime import datetime, timezone

import httpx
import pytest
from fastapi.testclient import TestClient

from riskgate.api.gateway import create_app
from riskgate.api.service import RiskGateService
from riskgate.common.config import AuditStorageType, Config, FailMode
from riskgate.data.schemas.principal import KnownDevice, LocationFix, Principal
from riskgate.governance.audit import InMemoryAuditStore
from riskgate.governance.notifications import InMemoryNotificationSink
from riskgate.governance.schemas import AuditEventType, NotificationType, RiskPolicyRules
from riskgate.identity import InMemoryIdentityStore, ProofVerification


FP = "3f2a9c0d5e6b7a8190f1e2d3c4b5a697"
NOON = datetime(2026, 3, 2, 6, 30, tzinfo=timezone.utc)

CLIENT_HEADERS = {
    "X-Forwarded-For": "49.36.10.20, 10.0.0.1",
    "User-Agent": "Mozilla/5.0 (Windows NT 10.0; Win64; x64) Chrome/120.0",
}


def make_config(**overrides) -> Config:
    values = dict(
        audit_storage_type=AuditStorageType.MEMORY,
        use_background_audit=False,
        policy_rules_file=None,
        principals_file=None,
        decision_service_url=None,
        geolocation_url=None,
        policy_fail_mode=None,
    )
    values.update(overrides)
    return Config(**values)


def seed_principals():
    return [
        Principal(
            principal_id="usr_001",
            contact="asha@example.com",
            is_verified=True,
            registered_fingerprint=FP,
            registered_location="Kolkata, West Bengal, India",
            location_history=[LocationFix(lat=22.5726, lon=88.3639, timestamp=NOON)],
            known_devices=[KnownDevice(fingerprint=FP, first_seen=NOON, last_seen=NOON)],
        ),
        Principal(principal_id="adm_001", contact="root@example.com", is_admin=True),
    ]


class SlowIdentityStore(InMemoryIdentityStore):
    def get_principal(self, principal_id):
        time.sleep(0.5)
        return super().get_principal(principal_id)


class AcceptingVerifier:
    def verify(self, proof, challenge):
        return ProofVerification(valid=True)


@pytest.fixture
def audit_store():
    return InMemoryAuditStore()


@pytest.fixture
def notifier():
    return InMemoryNotificationSink()


@pytest.fixture
def client(audit_store, notifier):
    """Test client with an in-memory service."""
    def factory():
        return RiskGateService(
            config=make_config(),
            rules=RiskPolicyRules(),
            identity_store=InMemoryIdentityStore(seed_principals()),
            audit_store=audit_store,
            notifier=notifier,
        )

    with TestClient(create_app(factory), headers=CLIENT_HEADERS) as test_client:
        yield test_client


@pytest.fixture
def login_body() -> dict:
    return {
        "principal_id": "usr_001",
        "device_fingerprint": FP,
        "location": "Kolkata, West Bengal, India",
        "gps": {"lat": 22.5726, "lon": 88.3639},
        "timestamp": NOON.isoformat(),
    }


class TestHealthEndpoint:
    """Tests for the /health endpoint."""

    def test_health_check(self, client):
        response = client.get("/health")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert data["service"] == "riskgate"
        assert data["policy_backend"] == "local"
        assert data["fail_mode"] == "fail_open"

    def test_health_degraded_when_decision_service_down(self):
        transport = httpx.MockTransport(lambda request: httpx.Response(503))

        def factory():
            return RiskGateService(
                config=make_config(
                    decision_service_url="http://opa.test:8181",
                    policy_fail_mode=FailMode.FAIL_CLOSED,
                ),
                rules=RiskPolicyRules(),
                identity_store=InMemoryIdentityStore(seed_principals()),
                http_client=httpx.Client(transport=transport),
            )

        with TestClient(create_app(factory), headers=CLIENT_HEADERS) as test_client:
            data = test_client.get("/health").json()

            assert data["status"] == "degraded"
            assert data["policy_backend"] == "opa"
            assert data["fail_mode"] == "fail_closed"

            decision = test_client.post(
                "/evaluate", json={"principal_id": "usr_001", "device_fingerprint": FP}
            ).json()
            assert decision["allowed"] is False
            assert decision["degraded"] is True
            assert decision["source"] == "fallback"


class TestEvaluateEndpoint:
    """Tests for the /evaluate endpoint."""

    def test_evaluate_allows_known_principal(self, client, login_body):
        response = client.post("/evaluate", json=login_body)

        assert response.status_code == 200
        data = response.json()
        assert data["outcome"] == "allow"
        assert data["allowed"] is True
        assert data["requires_step_up"] is False
        assert data["risk_level"] == "low"
        assert data["decision_id"].startswith("dec_")

    def test_response_has_no_internal_breakdown(self, client, login_body):
        data = client.post("/evaluate", json=login_body).json()

        assert "breakdown" not in data
        assert "device" not in data
        assert set(data) == {
            "decision_id", "outcome", "allowed", "requires_step_up", "risk_score",
            "risk_level", "reason", "factors", "source", "degraded", "policy_version",
        }

    def test_evaluate_is_audited(self, client, login_body, audit_store):
        data = client.post("/evaluate", json=login_body).json()

        entries = list(audit_store.get_entries(event_type=AuditEventType.ACCESS_DECISION))
        assert len(entries) == 1
        assert entries[0].decision_id == data["decision_id"]
        assert entries[0].ip_address == "49.36.10.20"

    def test_unknown_principal_denied(self, client, login_body):
        login_body["principal_id"] = "usr_ghost"

        data = client.post("/evaluate", json=login_body).json()

        assert data["outcome"] == "deny"
        assert data["source"] == "identity"

    def test_missing_identity_is_400(self, client):
        response = client.post("/evaluate", json={"action": "login"})

        assert response.status_code == 400
        assert response.json()["error"] == "VALIDATION_ERROR"

    def test_invalid_gps_is_400(self, client, login_body):
        login_body["gps"] = {"lat": 123.0, "lon": 0.0}

        response = client.post("/evaluate", json=login_body)

        assert response.status_code == 400
        assert response.json()["error"] == "VALIDATION_ERROR"

    def test_malformed_fingerprint_is_400(self, client, login_body):
        login_body["device_fingerprint"] = "zzzz"

        response = client.post("/evaluate", json=login_body)

        assert response.status_code == 400
        assert response.json()["details"]["field"] == "device_fingerprint"

    def test_request_id_header(self, client, login_body):
        response = client.post("/evaluate", json=login_body)

        assert response.headers["X-Request-ID"].startswith("req_")

    def test_identity_store_timeout_is_503(self, login_body):
        def factory():
            return RiskGateService(
                config=make_config(identity_store_timeout_seconds=0.05),
                rules=RiskPolicyRules(),
                identity_store=SlowIdentityStore(seed_principals()),
            )

        with TestClient(create_app(factory), headers=CLIENT_HEADERS) as test_client:
            response = test_client.post("/evaluate", json=login_body)

        assert response.status_code == 503
        assert response.json()["error"] == "IDENTITY_STORE_UNAVAILABLE"


class TestLockoutEndpoints:
    """Failed attempts, lockout status and administration."""

    def test_lockout_lifecycle(self, client, login_body, notifier):
        for expected_remaining in (4, 3, 2, 1):
            data = client.post("/failed-attempts", json=login_body).json()
            assert data["resolved"] is True
            assert data["lockout"]["remaining_before_lock"] == expected_remaining

        data = client.post("/failed-attempts", json=login_body).json()
        assert data["lockout"]["locked"] is True

        assert client.get("/lockout/usr_001").json()["locked"] is True
        assert client.post("/evaluate", json=login_body).json()["outcome"] == "locked"
        assert len(notifier.of_type(NotificationType.ACCOUNT_LOCKED)) == 1

        unblocked = client.post(
            "/admin/unblock",
            json={"principal_id": "usr_001", "reason": "verified by phone", "actor": "adm_001"},
        ).json()
        assert unblocked["changed"] is True
        assert unblocked["purged_attempts"] == 5

        assert client.get("/lockout/usr_001").json()["attempts_in_window"] == 0
        assert client.post("/evaluate", json=login_body).json()["outcome"] == "allow"

    def test_failed_attempt_for_unknown_contact(self, client):
        data = client.post(
            "/failed-attempts", json={"contact": "ghost@example.com", "reason": "invalid_password"}
        ).json()

        assert data["resolved"] is False
        assert data["risk_score"] is None
        assert data["lockout"]["principal_id"] == "contact:ghost@example.com"

    def test_manual_block(self, client, login_body):
        response = client.post(
            "/admin/block", json={"principal_id": "usr_001", "reason": "suspected takeover"}
        )

        assert response.status_code == 200
        assert response.json()["locked"] is True
        assert client.post("/evaluate", json=login_body).json()["outcome"] == "locked"

    def test_block_admin_is_409(self, client):
        response = client.post("/admin/block", json={"principal_id": "adm_001", "reason": "no"})

        assert response.status_code == 409

    def test_unblock_active_principal_unchanged(self, client):
        data = client.post("/admin/unblock", json={"principal_id": "usr_001", "reason": "noop"}).json()

        assert data["changed"] is False


class TestProofChallenge:
    def test_disabled_without_verifier(self, client):
        assert client.post("/proof/challenge").status_code == 404

    def test_issue_challenge(self):
        def factory():
            return RiskGateService(
                config=make_config(),
                rules=RiskPolicyRules(),
                identity_store=InMemoryIdentityStore(seed_principals()),
                proof_verifier=AcceptingVerifier(),
            )

        with TestClient(create_app(factory), headers=CLIENT_HEADERS) as test_client:
            data = test_client.post("/proof/challenge").json()

        assert len(data["challenge"]) == 64
        assert data["expires_in_seconds"] == 300
