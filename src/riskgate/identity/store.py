"""Identity Store - principal lookup and risk-relevant writes.

The store owns principals; RiskGate reads them and writes only
lockout state and behavioral baselines.
"""

import logging
import threading
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Protocol, Union

import yaml
from pydantic import ValidationError

from riskgate.common.constants import BaselineConstants
from riskgate.common.exceptions import ConfigurationError
from riskgate.core.types import LockoutState
from riskgate.data.schemas.principal import (
    KeystrokeBaseline,
    KnownDevice,
    LastLogin,
    LocationFix,
    Principal,
)
from riskgate.data.schemas.signals import RequestSignals


logger = logging.getLogger(__name__)


class IdentityStore(Protocol):
    """Narrow interface onto the external identity store."""

    def get_principal(self, principal_id: str) -> Optional[Principal]:
        ...

    def find_by_contact(self, contact: str) -> Optional[Principal]:
        ...

    def compare_and_set_lockout(
        self,
        principal_id: str,
        expected: LockoutState,
        new_state: LockoutState,
        reason: Optional[str] = None,
    ) -> bool:
        """Atomically move expected -> new_state.

        Returns:
            True only for the caller that performed the transition.
        """
        ...

    def record_successful_access(
        self,
        principal_id: str,
        signals: RequestSignals,
        enroll_baseline: bool = False,
    ) -> None:
        ...


class InMemoryIdentityStore:
    """Thread-safe in-memory identity store.

    Location history and known devices are bounded; the oldest fixes and
    the least recently seen devices are dropped first.
    """

    def __init__(
        self,
        principals: Optional[Iterable[Principal]] = None,
        max_location_history: int = BaselineConstants.MAX_LOCATION_HISTORY,
        max_known_devices: int = BaselineConstants.MAX_KNOWN_DEVICES,
    ):
        self.max_location_history = max_location_history
        self.max_known_devices = max_known_devices
        self._lock = threading.RLock()
        self._principals: Dict[str, Principal] = {}
        self._by_contact: Dict[str, str] = {}
        for principal in principals or ():
            self.add(principal)

    def add(self, principal: Principal) -> Principal:
        with self._lock:
            self._principals[principal.principal_id] = principal
            if principal.contact:
                self._by_contact[principal.contact.strip().lower()] = principal.principal_id
            return principal

    def get_principal(self, principal_id: str) -> Optional[Principal]:
        with self._lock:
            return self._principals.get(principal_id)

    def find_by_contact(self, contact: str) -> Optional[Principal]:
        with self._lock:
            principal_id = self._by_contact.get(contact.strip().lower())
            return self._principals.get(principal_id) if principal_id else None

    def compare_and_set_lockout(
        self,
        principal_id: str,
        expected: LockoutState,
        new_state: LockoutState,
        reason: Optional[str] = None,
    ) -> bool:
        with self._lock:
            principal = self._principals.get(principal_id)
            if principal is None or principal.lockout_state != expected:
                return False
            self._principals[principal_id] = principal.model_copy(
                update={
                    "lockout_state": new_state,
                    "lock_reason": reason if new_state == LockoutState.LOCKED else None,
                }
            )
            return True

    def record_successful_access(
        self,
        principal_id: str,
        signals: RequestSignals,
        enroll_baseline: bool = False,
    ) -> None:
        """Fold a successful access into the principal's baselines.

        Args:
            principal_id: Principal that was granted access
            signals: Signals of the granted request
            enroll_baseline: Also register a missing fingerprint/location
        """
        with self._lock:
            principal = self._principals.get(principal_id)
            if principal is None:
                logger.warning("Successful access for unknown principal", extra={"principal_id": principal_id})
                return

            now = signals.timestamp
            devices = list(principal.known_devices)
            for index, device in enumerate(devices):
                if device.fingerprint == signals.device_fingerprint:
                    devices[index] = device.model_copy(update={"last_seen": now})
                    break
            else:
                devices.append(
                    KnownDevice(fingerprint=signals.device_fingerprint, first_seen=now, last_seen=now)
                )
            if len(devices) > self.max_known_devices:
                devices = sorted(devices, key=lambda d: d.last_seen)[-self.max_known_devices:]

            history = list(principal.location_history)
            if signals.gps is not None:
                history.append(LocationFix(lat=signals.gps.lat, lon=signals.gps.lon, timestamp=now))
            history = history[-self.max_location_history:]

            update = {
                "known_devices": devices,
                "location_history": history,
                "last_login": LastLogin(timestamp=now, ip_address=signals.ip_address, gps=signals.gps),
            }

            if signals.typing_sample is not None:
                baseline = principal.keystroke_baseline or KeystrokeBaseline()
                update["keystroke_baseline"] = baseline.updated_with(signals.typing_sample)

            if enroll_baseline:
                if not principal.registered_fingerprint:
                    update["registered_fingerprint"] = signals.device_fingerprint
                if not principal.registered_location and signals.location.label:
                    update["registered_location"] = signals.location.label

            self._principals[principal_id] = principal.model_copy(update=update)


def load_principals(path: Union[str, Path]) -> List[Principal]:
    """Load principals from a YAML document with a top-level ``principals`` list.

    Raises:
        ConfigurationError: File missing or invalid
    """
    path = Path(path)
    if not path.exists():
        raise ConfigurationError(f"Principals file not found: {path}")
    try:
        with open(path, "r", encoding="utf-8") as f:
            raw = yaml.safe_load(f) or {}
        principals = [Principal.model_validate(item) for item in raw.get("principals", [])]
    except (yaml.YAMLError, ValidationError, AttributeError) as e:
        raise ConfigurationError(f"Invalid principals file: {path}", details={"error": str(e)})
    logger.info(f"Loaded {len(principals)} principals", extra={"path": str(path)})
    return principals
