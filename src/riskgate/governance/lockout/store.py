"""Failure Store - durable record of failed authentication attempts.

Records expire after a fixed time-to-live and no longer count
toward any window.
"""

import threading
from collections import defaultdict
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, List, Optional, Protocol

from pydantic import BaseModel, Field

from riskgate.common.constants import BaselineConstants


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class FailedAttempt(BaseModel):
    """One failed authentication attempt."""
    timestamp: datetime
    ip_address: str = "unknown"
    reason: str = "invalid_credentials"
    user_agent: Optional[str] = None
    device_fingerprint: Optional[str] = None
    location: Optional[str] = None
    risk_score: Optional[int] = Field(default=None, ge=0, le=100)

    model_config = {"frozen": True}


class FailureStore(Protocol):
    """Append-only failure history keyed by principal reference.

    append() must be durable and independent of any lockout recomputation.
    """

    def append(self, key: str, attempt: FailedAttempt) -> None:
        ...

    def count_since(self, key: str, since: datetime) -> int:
        ...

    def list_since(self, key: str, since: datetime) -> List[FailedAttempt]:
        ...

    def purge(self, key: str) -> int:
        """Remove all history for key; returns the number of records removed."""
        ...


class InMemoryFailureStore:
    """Thread-safe in-memory failure store with TTL expiry.

    Keys that are never queried again are dropped by a periodic sweep
    run from append().
    """

    def __init__(
        self,
        ttl: timedelta = timedelta(hours=24),
        clock: Callable[[], datetime] = _utc_now,
        sweep_interval: timedelta = timedelta(seconds=BaselineConstants.FAILURE_SWEEP_INTERVAL_SECONDS),
    ):
        self.ttl = ttl
        self.clock = clock
        self.sweep_interval = sweep_interval
        self._next_sweep = clock() + sweep_interval
        self._lock = threading.Lock()
        self._attempts: Dict[str, List[FailedAttempt]] = defaultdict(list)

    def _expire(self, key: str) -> List[FailedAttempt]:
        cutoff = self.clock() - self.ttl
        live = [a for a in self._attempts.get(key, []) if a.timestamp > cutoff]
        if live:
            self._attempts[key] = live
        else:
            self._attempts.pop(key, None)
        return live

    def _sweep(self) -> None:
        now = self.clock()
        if now < self._next_sweep:
            return
        self._next_sweep = now + self.sweep_interval
        for key in list(self._attempts):
            self._expire(key)

    def __len__(self) -> int:
        """Number of keys with live history."""
        with self._lock:
            return len(self._attempts)

    def append(self, key: str, attempt: FailedAttempt) -> None:
        with self._lock:
            self._sweep()
            self._attempts[key].append(attempt)

    def count_since(self, key: str, since: datetime) -> int:
        return len(self.list_since(key, since))

    def list_since(self, key: str, since: datetime) -> List[FailedAttempt]:
        with self._lock:
            return [a for a in self._expire(key) if a.timestamp >= since]

    def purge(self, key: str) -> int:
        with self._lock:
            return len(self._attempts.pop(key, []))
