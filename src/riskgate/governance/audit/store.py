"""Audit Store - append-only persistence for audit entries.

Both stores keep a SHA-256 hash chain: each entry carries the hash of
its predecessor and a hash of its own canonical content, so any edit or
removal is detected by verify_integrity().
"""

import fcntl
import hashlib
import json
import logging
import os
import threading
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Generator, Iterable, List, Optional

from riskgate.common.constants import AuditConstants
from riskgate.governance.schemas import AuditEntry, AuditEventType


logger = logging.getLogger(__name__)


class AuditLogIntegrityError(Exception):
    """Raised when audit log integrity check fails."""
    pass


def _today() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%d")


def _canonical(entry_dict: Dict[str, Any]) -> str:
    """Deterministic JSON form of an entry, used for hashing."""
    return json.dumps(entry_dict, sort_keys=True, ensure_ascii=False, default=str)


def _matches(
    entry: AuditEntry,
    event_type: Optional[AuditEventType],
    decision_id: Optional[str],
    principal_id: Optional[str],
) -> bool:
    if event_type and entry.event_type != event_type:
        return False
    if decision_id and entry.decision_id != decision_id:
        return False
    if principal_id and entry.principal_id != principal_id:
        return False
    return True


class AuditStore(ABC):
    """Abstract base class for audit log storage backends.

    Implementations must be thread-safe and append-only.
    """

    def __init__(self, hash_algorithm: str = AuditConstants.HASH_ALGORITHM):
        self.hash_algorithm = hash_algorithm

    def compute_hash(self, entry_dict: Dict[str, Any]) -> str:
        content = dict(entry_dict)
        content["entry_hash"] = None
        hasher = hashlib.new(self.hash_algorithm)
        hasher.update(_canonical(content).encode("utf-8"))
        return hasher.hexdigest()

    def chain(self, entry: AuditEntry, previous_hash: Optional[str]) -> AuditEntry:
        """Copy of the entry with its hash-chain fields populated."""
        entry_dict = entry.model_dump(mode="json")
        entry_dict["previous_hash"] = previous_hash
        entry_dict["entry_hash"] = self.compute_hash(entry_dict)
        return AuditEntry.model_validate(entry_dict)

    def verify_chain(self, entry_dicts: Iterable[Dict[str, Any]]) -> bool:
        """Check a sequence of serialized entries.

        Raises:
            AuditLogIntegrityError: On the first broken link or altered entry
        """
        previous_hash = None
        for position, entry_dict in enumerate(entry_dicts, start=1):
            if entry_dict.get("previous_hash") != previous_hash:
                raise AuditLogIntegrityError(
                    f"Hash chain broken at entry {position}. "
                    f"Expected previous_hash={previous_hash}, "
                    f"got {entry_dict.get('previous_hash')}"
                )
            stored_hash = entry_dict.get("entry_hash")
            if self.compute_hash(entry_dict) != stored_hash:
                raise AuditLogIntegrityError(
                    f"Entry hash mismatch at entry {position}. "
                    f"Entry may have been tampered with."
                )
            previous_hash = stored_hash
        return True

    @abstractmethod
    def append_entry(self, entry: AuditEntry) -> AuditEntry:
        """Append an audit entry to the store.

        Returns:
            The entry with hash chain fields populated

        Raises:
            OSError: If write fails
        """
        pass

    @abstractmethod
    def get_entries(
        self,
        date: Optional[str] = None,
        event_type: Optional[AuditEventType] = None,
        decision_id: Optional[str] = None,
        principal_id: Optional[str] = None,
    ) -> Generator[AuditEntry, None, None]:
        """Retrieve audit entries with optional filtering.

        Args:
            date: Filter by date (YYYY-MM-DD format), today if None
            event_type: Filter by event type
            decision_id: Filter by decision ID
            principal_id: Filter by principal reference
        """
        pass

    @abstractmethod
    def verify_integrity(self, date: Optional[str] = None) -> bool:
        """Verify hash chain integrity of stored entries.

        Raises:
            AuditLogIntegrityError: If integrity check fails
        """
        pass

    @abstractmethod
    def get_last_hash(self) -> Optional[str]:
        pass


class InMemoryAuditStore(AuditStore):
    """Process-local audit store, for tests and single-process deployments."""

    def __init__(self, hash_algorithm: str = AuditConstants.HASH_ALGORITHM):
        super().__init__(hash_algorithm)
        self._lock = threading.Lock()
        self._entries: List[AuditEntry] = []

    def append_entry(self, entry: AuditEntry) -> AuditEntry:
        with self._lock:
            entry = self.chain(entry, self.get_last_hash())
            self._entries.append(entry)
            return entry

    def get_entries(
        self,
        date: Optional[str] = None,
        event_type: Optional[AuditEventType] = None,
        decision_id: Optional[str] = None,
        principal_id: Optional[str] = None,
    ) -> Generator[AuditEntry, None, None]:
        with self._lock:
            snapshot = list(self._entries)
        for entry in snapshot:
            if date and entry.timestamp.strftime("%Y-%m-%d") != date:
                continue
            if _matches(entry, event_type, decision_id, principal_id):
                yield entry

    def verify_integrity(self, date: Optional[str] = None) -> bool:
        with self._lock:
            snapshot = [entry.model_dump(mode="json") for entry in self._entries]
        return self.verify_chain(snapshot)

    def get_last_hash(self) -> Optional[str]:
        return self._entries[-1].entry_hash if self._entries else None

    def __len__(self) -> int:
        return len(self._entries)


class FileAuditStore(AuditStore):
    """File-based audit store with JSONL format and hash chain integrity.

    Features:
    - Append-only JSONL files with daily rotation; each day starts a new chain
    - Exclusive file locking for cross-process appends
    - Owner-only file permissions
    """

    DEFAULT_LOG_DIR = Path(__file__).parent.parent.parent.parent.parent / "logs" / "audit"

    def __init__(
        self,
        log_dir: Optional[str] = None,
        log_filename_pattern: str = "riskgate_audit_{date}.jsonl",
        hash_algorithm: str = AuditConstants.HASH_ALGORITHM,
        fsync_on_write: bool = False,
    ):
        """Initialize file audit store.

        Args:
            log_dir: Directory for audit logs. Uses default if not provided.
            log_filename_pattern: Pattern for log filename. {date} is replaced.
            hash_algorithm: Hash algorithm for integrity checks.
            fsync_on_write: Whether to fsync after each write (slower but safer).
        """
        super().__init__(hash_algorithm)
        self.log_dir = Path(log_dir) if log_dir else self.DEFAULT_LOG_DIR
        self.log_filename_pattern = log_filename_pattern
        self.fsync_on_write = fsync_on_write

        self._lock = threading.Lock()

        self.log_dir.mkdir(parents=True, exist_ok=True)
        try:
            os.chmod(self.log_dir, 0o700)
        except OSError as e:
            logger.warning(f"Could not restrict audit directory permissions: {e}")

        self._chain_date = _today()
        self._last_hash = self._scan_last_hash(self._chain_date)

    def log_path(self, date: Optional[str] = None) -> Path:
        filename = self.log_filename_pattern.replace("{date}", date or _today())
        return self.log_dir / filename

    def _scan_last_hash(self, date: str) -> Optional[str]:
        path = self.log_path(date)
        if not path.exists():
            return None

        last_hash = None
        with open(path, "r") as f:
            for line in f:
                line = line.strip()
                if line:
                    try:
                        last_hash = json.loads(line).get("entry_hash")
                    except json.JSONDecodeError:
                        logger.error(f"Malformed audit line in {path.name}")
        return last_hash

    def append_entry(self, entry: AuditEntry) -> AuditEntry:
        """Append entry to the day's log file under an exclusive lock."""
        with self._lock:
            today = _today()
            if today != self._chain_date:
                self._chain_date = today
                self._last_hash = self._scan_last_hash(today)

            entry = self.chain(entry, self._last_hash)

            fd = os.open(
                str(self.log_path(today)),
                os.O_WRONLY | os.O_CREAT | os.O_APPEND,
                0o600,
            )
            try:
                fcntl.flock(fd, fcntl.LOCK_EX)
                try:
                    os.write(fd, (entry.to_jsonl() + "\n").encode("utf-8"))
                    if self.fsync_on_write:
                        os.fsync(fd)
                finally:
                    fcntl.flock(fd, fcntl.LOCK_UN)
            finally:
                os.close(fd)

            self._last_hash = entry.entry_hash
            return entry

    def _read_lines(self, date: Optional[str]) -> Generator[str, None, None]:
        path = self.log_path(date)
        if not path.exists():
            return
        with open(path, "r") as f:
            for line in f:
                line = line.strip()
                if line:
                    yield line

    def get_entries(
        self,
        date: Optional[str] = None,
        event_type: Optional[AuditEventType] = None,
        decision_id: Optional[str] = None,
        principal_id: Optional[str] = None,
    ) -> Generator[AuditEntry, None, None]:
        for line in self._read_lines(date):
            try:
                entry = AuditEntry.from_jsonl(line)
            except ValueError as e:
                logger.warning(f"Skipped malformed audit entry: {e}")
                continue
            if _matches(entry, event_type, decision_id, principal_id):
                yield entry

    def verify_integrity(self, date: Optional[str] = None) -> bool:
        def parsed():
            for number, line in enumerate(self._read_lines(date), start=1):
                try:
                    yield json.loads(line)
                except json.JSONDecodeError as e:
                    raise AuditLogIntegrityError(f"Malformed JSON at line {number}: {e}")

        return self.verify_chain(parsed())

    def get_last_hash(self) -> Optional[str]:
        return self._last_hash
