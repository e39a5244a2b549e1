"""Example: End-to-end account takeover scenario.

1. A known principal signs in from their usual device
2. An attacker guesses passwords from abroad until the account locks
3. The genuine principal is held at the lockout until an admin unblocks
4. Every step lands in the hash-chained audit trail
"""

from datetime import datetime, timedelta, timezone

from riskgate.api.schemas import AdminActionRequest, FailedAttemptRequest, SignalsRequest
from riskgate.api.service import RiskGateService
from riskgate.common.config import AuditStorageType, Config
from riskgate.common.logging import get_logger
from riskgate.data.schemas.principal import KnownDevice, LocationFix, Principal
from riskgate.governance.audit import InMemoryAuditStore
from riskgate.governance.notifications import InMemoryNotificationSink
from riskgate.identity import InMemoryIdentityStore

logger = get_logger(__name__)

FINGERPRINT = "3f2a9c0d5e6b7a8190f1e2d3c4b5a697"
ATTACKER_HEADERS = {"user-agent": "python-requests/2.31", "x-forwarded-for": "185.220.101.4"}
OWNER_HEADERS = {"user-agent": "Mozilla/5.0 (Windows NT 10.0; Win64; x64) Chrome/120.0"}


def example_ato_scenario():
    now = datetime.now(timezone.utc)
    audit_store = InMemoryAuditStore()
    notifier = InMemoryNotificationSink()
    service = RiskGateService(
        config=Config(
            audit_storage_type=AuditStorageType.MEMORY,
            use_background_audit=False,
            principals_file=None,
        ),
        identity_store=InMemoryIdentityStore([
            Principal(
                principal_id="usr_8f14e45f",
                contact="asha@example.com",
                is_verified=True,
                registered_fingerprint=FINGERPRINT,
                registered_location="Kolkata, West Bengal, India",
                location_history=[
                    LocationFix(lat=22.5726, lon=88.3639, timestamp=now - timedelta(days=1))
                ],
                known_devices=[
                    KnownDevice(fingerprint=FINGERPRINT, first_seen=now, last_seen=now)
                ],
            )
        ]),
        audit_store=audit_store,
        notifier=notifier,
    )

    owner_request = SignalsRequest(
        contact="asha@example.com",
        device_fingerprint=FINGERPRINT,
        location="Kolkata, West Bengal, India",
        gps={"lat": 22.5726, "lon": 88.3639},
    )

    try:
        decision = service.evaluate(owner_request, OWNER_HEADERS, "49.36.10.20")
        logger.info(f"Owner sign-in: {decision.outcome} (risk {decision.risk_score})")

        for attempt in range(1, 6):
            result = service.record_failed_attempt(
                FailedAttemptRequest(
                    contact="asha@example.com",
                    location="Frankfurt, Hesse, Germany",
                    gps={"lat": 50.1109, "lon": 8.6821},
                    reason="invalid_password",
                ),
                ATTACKER_HEADERS,
            )
            logger.info(
                f"Attacker attempt {attempt}: risk {result.risk_score}, "
                f"locked={result.lockout.locked}"
            )

        decision = service.evaluate(owner_request, OWNER_HEADERS, "49.36.10.20")
        logger.info(f"Owner sign-in while locked: {decision.outcome} ({decision.reason})")

        admin = AdminActionRequest(
            principal_id="usr_8f14e45f", reason="Owner verified by phone", actor="usr_admin01"
        )
        service.unblock(admin.principal_id, admin.reason, actor=admin.actor)

        decision = service.evaluate(owner_request, OWNER_HEADERS, "49.36.10.20")
        logger.info(f"Owner sign-in after unblock: {decision.outcome}")

        for notification in notifier.notifications:
            logger.info(f"Admin notification: {notification.title}")

        audit_store.verify_integrity()
        logger.info(f"Audit trail intact with {len(audit_store)} entries")
    finally:
        service.shutdown()


if __name__ == "__main__":
    example_ato_scenario()
