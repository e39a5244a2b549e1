"""Audit module - append-only record of every decision.

Components:
- AuditStore: Abstract base class for storage backends
- FileAuditStore: Daily JSONL files with hash chain integrity
- InMemoryAuditStore: Process-local store with the same chain
- BackgroundAuditWriter: Fire-and-forget writes off the request path
- AuditRecorder: Never-throwing facade used by the decision flow
"""

from riskgate.governance.audit.background_writer import BackgroundAuditWriter
from riskgate.governance.audit.recorder import (
    AuditRecorder,
    create_audit_recorder,
    create_audit_store,
)
from riskgate.governance.audit.store import (
    AuditLogIntegrityError,
    AuditStore,
    FileAuditStore,
    InMemoryAuditStore,
)

__all__ = [
    "AuditRecorder",
    "AuditStore",
    "FileAuditStore",
    "InMemoryAuditStore",
    "AuditLogIntegrityError",
    "BackgroundAuditWriter",
    "create_audit_recorder",
    "create_audit_store",
]
