"""Audit Recorder - the never-throwing audit sink used by every component.

A failed write leaves a gap in the audit trail; it never fails or delays
the authorization decision it describes.
"""

import logging
from typing import Optional, Union

from riskgate.common.config.settings import AuditStorageType, Config
from riskgate.governance.audit.background_writer import BackgroundAuditWriter
from riskgate.governance.audit.store import AuditStore, FileAuditStore, InMemoryAuditStore
from riskgate.governance.schemas import AuditEntry


logger = logging.getLogger(__name__)


class AuditRecorder:
    """Records audit entries through a store or a background writer."""

    def __init__(self, sink: Union[AuditStore, BackgroundAuditWriter]):
        self.sink = sink

    @property
    def store(self) -> AuditStore:
        if isinstance(self.sink, BackgroundAuditWriter):
            return self.sink.store
        return self.sink

    def record(self, entry: AuditEntry) -> bool:
        """Append an entry. Never raises.

        Returns:
            False if the write (or the enqueue) failed.
        """
        try:
            self.sink.append_entry(entry)
            return True
        except Exception as e:
            logger.error(
                f"Audit write failed: {type(e).__name__}: {e}",
                extra={
                    "entry_id": entry.entry_id,
                    "event_type": entry.event_type.value,
                    "principal_id": entry.principal_id,
                },
            )
            return False

    def flush(self, timeout: Optional[float] = None) -> bool:
        if isinstance(self.sink, BackgroundAuditWriter):
            return self.sink.flush(timeout)
        return True

    def close(self) -> None:
        if isinstance(self.sink, BackgroundAuditWriter):
            self.sink.shutdown()


def create_audit_store(config: Config) -> AuditStore:
    """Build the audit store selected by the configuration.

    Raises:
        ValueError: Unknown storage type
    """
    if config.audit_storage_type == AuditStorageType.LOCAL:
        return FileAuditStore(log_dir=str(config.audit_log_dir))
    if config.audit_storage_type == AuditStorageType.MEMORY:
        return InMemoryAuditStore()
    raise ValueError(f"Unknown storage type: {config.audit_storage_type}")


def create_audit_recorder(config: Config, store: Optional[AuditStore] = None) -> AuditRecorder:
    """Factory for the recorder, optionally backed by a background writer."""
    if store is None:
        store = create_audit_store(config)
    if config.use_background_audit:
        return AuditRecorder(BackgroundAuditWriter(store))
    return AuditRecorder(store)
