"""Integration Example: Audit Trail Usage

This example demonstrates how access decisions and lockout events
end up in the append-only, hash-chained audit log, and how the
log is queried and verified.
"""

import json
import tempfile

from riskgate.api.schemas import FailedAttemptRequest, SignalsRequest
from riskgate.api.service import RiskGateService
from riskgate.common.config import AuditStorageType, Config
from riskgate.data.schemas.principal import Principal
from riskgate.governance.audit import AuditLogIntegrityError, FileAuditStore
from riskgate.governance.schemas import AuditEventType
from riskgate.identity import InMemoryIdentityStore


HEADERS = {"user-agent": "Mozilla/5.0 (X11; Linux x86_64) Firefox/121.0"}


def example_complete_flow(log_dir: str):
    """Decisions, failures and a lockout written to a JSONL audit log."""

    store = FileAuditStore(log_dir=log_dir)
    service = RiskGateService(
        config=Config(
            audit_storage_type=AuditStorageType.LOCAL,
            use_background_audit=True,
            principals_file=None,
        ),
        identity_store=InMemoryIdentityStore([
            Principal(principal_id="usr_customer_42", contact="customer42@example.com"),
        ]),
        audit_store=store,
    )

    # ========================================================================
    # 1. Access decisions and failed attempts
    # ========================================================================

    print("\n=== 1. Logging Decisions ===\n")

    try:
        decision = service.evaluate(
            SignalsRequest(principal_id="usr_customer_42", location="Pune, Maharashtra, India"),
            HEADERS,
            "49.36.10.20",
        )
        print(f"Decision logged: {decision.decision_id} -> {decision.outcome}")

        for _ in range(5):
            service.record_failed_attempt(
                FailedAttemptRequest(principal_id="usr_customer_42", reason="invalid_password"),
                HEADERS,
                "49.36.10.20",
            )
        print("Five failed attempts logged; the account is now locked")

        # Background writes are drained before the service returns from shutdown
    finally:
        service.shutdown()

    # ========================================================================
    # 2. Retrieval
    # ========================================================================

    print("\n=== 2. Retrieval ===\n")

    for entry in store.get_entries(decision_id=decision.decision_id):
        print(f"Decision {entry.decision_id}: risk {entry.risk_score}, factors {entry.factors}")
        print(f"   Breakdown: {entry.metadata.get('breakdown')}")

    failures = list(store.get_entries(event_type=AuditEventType.FAILED_ATTEMPT))
    print(f"Failed attempts recorded: {len(failures)}")

    for entry in store.get_entries(event_type=AuditEventType.ACCOUNT_LOCKED):
        print(f"Account locked: {entry.principal_id} ({entry.reason})")

    # ========================================================================
    # 3. Integrity
    # ========================================================================

    print("\n=== 3. Integrity Verification ===\n")

    store.verify_integrity()
    print(f"Hash chain intact: {store.log_path()}")

    return store


def example_tamper_detection(store: FileAuditStore):
    """Rewrite one entry and show that verification catches it."""

    print("\n=== 4. Tamper Detection ===\n")

    path = store.log_path()
    lines = path.read_text().splitlines()
    entry = json.loads(lines[0])
    entry["allowed"] = not entry["allowed"]
    lines[0] = json.dumps(entry)
    path.write_text("\n".join(lines) + "\n")

    try:
        store.verify_integrity()
        print("Tampering went unnoticed")
    except AuditLogIntegrityError as e:
        print(f"Tampering detected: {e}")


if __name__ == "__main__":
    with tempfile.TemporaryDirectory() as log_dir:
        audit_store = example_complete_flow(log_dir)
        example_tamper_detection(audit_store)
