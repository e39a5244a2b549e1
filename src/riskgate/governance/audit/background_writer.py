"""Background Audit Writer - fire-and-forget audit writes off the request path."""

import atexit
import logging
import queue
import threading
import time
from typing import Optional

from riskgate.common.constants import AuditConstants
from riskgate.governance.audit.store import AuditStore
from riskgate.governance.schemas import AuditEntry


logger = logging.getLogger(__name__)


class BackgroundAuditWriter:
    """Bounded queue drained by a single writer thread.

    Entries enqueued before shutdown() are written before the writer exits.
    """

    def __init__(
        self,
        store: AuditStore,
        max_queue_size: int = AuditConstants.QUEUE_SIZE,
        flush_timeout: float = AuditConstants.FLUSH_TIMEOUT_SECONDS,
        sync_fallback: bool = True,
    ):
        """Initialize background audit writer.

        Args:
            store: Audit store backend.
            max_queue_size: Maximum number of entries to buffer.
            flush_timeout: Timeout for draining the queue on shutdown.
            sync_fallback: Whether to write synchronously when the queue is full.
        """
        self.store = store
        self.max_queue_size = max_queue_size
        self.flush_timeout = flush_timeout
        self.sync_fallback = sync_fallback

        self._queue: "queue.Queue[Optional[AuditEntry]]" = queue.Queue(maxsize=max_queue_size)
        self._shutdown_event = threading.Event()

        self._stats_lock = threading.Lock()
        self._entries_written = 0
        self._entries_dropped = 0
        self._write_failures = 0
        self._sync_fallback_count = 0

        self._writer_thread = threading.Thread(
            target=self._writer_loop,
            name="RiskGateAuditWriter",
            daemon=True,
        )
        self._writer_thread.start()
        atexit.register(self.shutdown)
        logger.info("Background audit writer started")

    def _write(self, entry: AuditEntry) -> None:
        try:
            self.store.append_entry(entry)
            with self._stats_lock:
                self._entries_written += 1
        except Exception as e:
            with self._stats_lock:
                self._write_failures += 1
            logger.error(
                f"Failed to write audit entry: {e}",
                extra={"entry_id": entry.entry_id, "event_type": entry.event_type.value},
            )

    def _writer_loop(self) -> None:
        while True:
            try:
                entry = self._queue.get(timeout=AuditConstants.QUEUE_GET_TIMEOUT)
            except queue.Empty:
                if self._shutdown_event.is_set():
                    break
                continue

            try:
                if entry is None:
                    break
                self._write(entry)
            finally:
                self._queue.task_done()

        self._drain_queue()
        logger.info("Background audit writer stopped")

    def _drain_queue(self) -> None:
        drained = 0
        while True:
            try:
                entry = self._queue.get_nowait()
            except queue.Empty:
                break
            try:
                if entry is not None:
                    self._write(entry)
                    drained += 1
            finally:
                self._queue.task_done()

        if drained:
            logger.info(f"Drained {drained} audit entries during shutdown")

    def append_entry(self, entry: AuditEntry) -> AuditEntry:
        """Queue an entry for writing.

        After shutdown, or when the queue is full and sync_fallback is set,
        the entry is written synchronously instead. Otherwise a full queue
        drops the entry.
        """
        if self._shutdown_event.is_set():
            return self.store.append_entry(entry)

        try:
            self._queue.put_nowait(entry)
            return entry
        except queue.Full:
            if self.sync_fallback:
                with self._stats_lock:
                    self._sync_fallback_count += 1
                logger.warning("Audit queue full, writing synchronously")
                return self.store.append_entry(entry)

            with self._stats_lock:
                self._entries_dropped += 1
            logger.error("Audit queue full, entry dropped", extra={"entry_id": entry.entry_id})
            return entry

    def flush(self, timeout: Optional[float] = None) -> bool:
        """Wait until every queued entry has been processed.

        Returns:
            True if the queue drained, False if the timeout elapsed first.
        """
        deadline = None if timeout is None else time.monotonic() + timeout
        while self._queue.unfinished_tasks:
            if deadline is not None and time.monotonic() >= deadline:
                return False
            time.sleep(0.01)
        return True

    def shutdown(self, timeout: Optional[float] = None) -> None:
        """Stop the writer after draining the queue."""
        if self._shutdown_event.is_set():
            return

        timeout = timeout if timeout is not None else self.flush_timeout
        logger.info("Shutting down background audit writer...")
        self._shutdown_event.set()
        try:
            self._queue.put_nowait(None)
        except queue.Full:
            # Writer sees the shutdown event once the queue empties
            pass

        self._writer_thread.join(timeout=timeout)
        if self._writer_thread.is_alive():
            logger.warning("Audit writer did not stop cleanly")

        stats = self.get_stats()
        logger.info(
            f"Audit writer shutdown complete. "
            f"Written: {stats['entries_written']}, "
            f"Dropped: {stats['entries_dropped']}, "
            f"Failures: {stats['write_failures']}, "
            f"Sync fallbacks: {stats['sync_fallback_count']}"
        )

    def get_stats(self) -> dict:
        with self._stats_lock:
            return {
                "entries_written": self._entries_written,
                "entries_dropped": self._entries_dropped,
                "write_failures": self._write_failures,
                "sync_fallback_count": self._sync_fallback_count,
                "queue_size": self._queue.qsize(),
                "max_queue_size": self.max_queue_size,
            }

    @property
    def is_running(self) -> bool:
        return not self._shutdown_event.is_set()
