"""Unit tests for the audit trail.

Tests that audit logs are append-only, hash-chained, tamper-evident,
and that recording never raises into the decision path.
"""

import json
import os

import pytest

from riskgate.common.config import AuditStorageType, Config
from riskgate.core.types import DecisionOutcome, DecisionSource
from riskgate.governance.audit import (
    AuditLogIntegrityError,
    AuditRecorder,
    BackgroundAuditWriter,
    FileAuditStore,
    InMemoryAuditStore,
    create_audit_recorder,
    create_audit_store,
)
from riskgate.governance.schemas import AuditEntry, AuditEventType


def decision_entry(principal_id="usr_001", allowed=True, decision_id=None) -> AuditEntry:
    return AuditEntry(
        event_type=AuditEventType.ACCESS_DECISION,
        decision_id=decision_id,
        principal_id=principal_id,
        action="login",
        risk_score=20,
        allowed=allowed,
        outcome=DecisionOutcome.ALLOW if allowed else DecisionOutcome.DENY,
        reason="Access permitted by policy",
        decision_source=DecisionSource.POLICY,
        factors=["unverified_account"],
        metadata={"breakdown": {"gps": 0, "total": 20}},
    )


class FailingStore(InMemoryAuditStore):
    def append_entry(self, entry):
        raise OSError("disk full")


@pytest.fixture
def file_store(tmp_path):
    return FileAuditStore(log_dir=str(tmp_path / "audit"))


class TestInMemoryAuditStore:
    """Hash chain in the in-memory store."""

    def test_chain_links_entries(self):
        store = InMemoryAuditStore()

        first = store.append_entry(decision_entry())
        second = store.append_entry(decision_entry())

        assert first.previous_hash is None
        assert second.previous_hash == first.entry_hash
        assert store.verify_integrity()

    def test_filters(self):
        store = InMemoryAuditStore()
        store.append_entry(decision_entry("usr_001", decision_id="dec_a"))
        store.append_entry(decision_entry("usr_002", decision_id="dec_b"))

        assert [e.principal_id for e in store.get_entries(principal_id="usr_002")] == ["usr_002"]
        assert len(list(store.get_entries(decision_id="dec_a"))) == 1
        assert len(list(store.get_entries(event_type=AuditEventType.ACCOUNT_LOCKED))) == 0


class TestFileAuditStore:
    """JSONL persistence with integrity verification."""

    def test_entries_are_written_as_jsonl(self, file_store):
        written = file_store.append_entry(decision_entry())

        lines = file_store.log_path().read_text().strip().splitlines()
        assert len(lines) == 1
        assert json.loads(lines[0])["entry_id"] == written.entry_id

    def test_file_permissions_owner_only(self, file_store):
        file_store.append_entry(decision_entry())

        mode = os.stat(file_store.log_path()).st_mode & 0o777
        assert mode == 0o600

    def test_round_trip_entries(self, file_store):
        written = file_store.append_entry(decision_entry(allowed=False))

        entries = list(file_store.get_entries())

        assert len(entries) == 1
        assert entries[0].entry_id == written.entry_id
        assert entries[0].outcome == DecisionOutcome.DENY
        assert entries[0].metadata["breakdown"]["total"] == 20

    def test_integrity_holds(self, file_store):
        for _ in range(5):
            file_store.append_entry(decision_entry())

        assert file_store.verify_integrity()

    def test_tampering_detected(self, file_store):
        for _ in range(3):
            file_store.append_entry(decision_entry())

        path = file_store.log_path()
        lines = path.read_text().splitlines()
        tampered = json.loads(lines[1])
        tampered["allowed"] = False
        lines[1] = json.dumps(tampered)
        path.write_text("\n".join(lines) + "\n")

        with pytest.raises(AuditLogIntegrityError):
            file_store.verify_integrity()

    def test_deletion_detected(self, file_store):
        for _ in range(3):
            file_store.append_entry(decision_entry())

        path = file_store.log_path()
        lines = path.read_text().splitlines()
        path.write_text("\n".join([lines[0], lines[2]]) + "\n")

        with pytest.raises(AuditLogIntegrityError):
            file_store.verify_integrity()

    def test_chain_resumes_across_instances(self, tmp_path):
        log_dir = str(tmp_path / "audit")
        first = FileAuditStore(log_dir=log_dir).append_entry(decision_entry())

        second = FileAuditStore(log_dir=log_dir).append_entry(decision_entry())

        assert second.previous_hash == first.entry_hash
        assert FileAuditStore(log_dir=log_dir).verify_integrity()


class TestAuditRecorder:
    """The recorder never raises."""

    def test_records_to_store(self):
        store = InMemoryAuditStore()

        assert AuditRecorder(store).record(decision_entry())
        assert len(store) == 1

    def test_store_failure_is_swallowed(self):
        recorder = AuditRecorder(FailingStore())

        assert recorder.record(decision_entry()) is False

    def test_factory_selects_backend(self, tmp_path):
        config = Config(
            audit_storage_type=AuditStorageType.MEMORY,
            use_background_audit=False,
        )

        assert isinstance(create_audit_store(config), InMemoryAuditStore)

        config = Config(
            audit_storage_type=AuditStorageType.LOCAL,
            audit_log_dir=tmp_path / "audit",
            use_background_audit=False,
        )
        assert isinstance(create_audit_store(config), FileAuditStore)

    def test_factory_wraps_background_writer(self):
        config = Config(audit_storage_type=AuditStorageType.MEMORY, use_background_audit=True)
        recorder = create_audit_recorder(config)
        try:
            assert isinstance(recorder.sink, BackgroundAuditWriter)
            assert isinstance(recorder.store, InMemoryAuditStore)
        finally:
            recorder.close()


class TestBackgroundAuditWriter:
    """Fire-and-forget writes are drained before shutdown completes."""

    def test_entries_written_after_flush(self):
        store = InMemoryAuditStore()
        writer = BackgroundAuditWriter(store)
        try:
            for _ in range(20):
                writer.append_entry(decision_entry())

            assert writer.flush(timeout=5.0)
            assert len(store) == 20
            assert store.verify_integrity()
        finally:
            writer.shutdown()

    def test_shutdown_drains_queue(self):
        store = InMemoryAuditStore()
        writer = BackgroundAuditWriter(store)
        for _ in range(10):
            writer.append_entry(decision_entry())

        writer.shutdown(timeout=5.0)

        assert len(store) == 10
        assert not writer.is_running

    def test_writes_after_shutdown_are_synchronous(self):
        store = InMemoryAuditStore()
        writer = BackgroundAuditWriter(store)
        writer.shutdown()

        writer.append_entry(decision_entry())

        assert len(store) == 1

    def test_write_failures_counted(self):
        writer = BackgroundAuditWriter(FailingStore())
        try:
            writer.append_entry(decision_entry())
            writer.flush(timeout=5.0)

            assert writer.get_stats()["write_failures"] == 1
        finally:
            writer.shutdown()
