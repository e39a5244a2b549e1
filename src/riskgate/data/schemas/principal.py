"""Principal schema - the identity under evaluation and its baselines."""

import math
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field

from riskgate.core.types import LockoutState
from riskgate.data.schemas.signals import GeoPoint, TypingSample


class KeystrokeBaseline(BaseModel):
    """Running mean and standard deviation of the mean inter-keystroke interval."""
    mean_iki: float = Field(default=0.0, ge=0.0)
    std_iki: float = Field(default=0.0, ge=0.0)
    samples: int = Field(default=0, ge=0)

    def updated_with(self, sample: TypingSample) -> "KeystrokeBaseline":
        """Fold one login's typing sample into the baseline (Welford update)."""
        value = sample.mean_interval
        count = self.samples + 1
        delta = value - self.mean_iki
        mean = self.mean_iki + delta / count
        m2 = (self.std_iki ** 2) * self.samples + delta * (value - mean)
        return KeystrokeBaseline(
            mean_iki=mean,
            std_iki=math.sqrt(max(m2, 0.0) / count),
            samples=count,
        )


class LocationFix(BaseModel):
    """A GPS position observed at a point in time."""
    lat: float = Field(..., ge=-90, le=90)
    lon: float = Field(..., ge=-180, le=180)
    timestamp: datetime

    @property
    def point(self) -> GeoPoint:
        return GeoPoint(lat=self.lat, lon=self.lon)


class KnownDevice(BaseModel):
    """A device fingerprint previously seen for the principal."""
    fingerprint: str
    first_seen: datetime
    last_seen: datetime


class LastLogin(BaseModel):
    """Details of the last successful access."""
    timestamp: datetime
    ip_address: Optional[str] = None
    gps: Optional[GeoPoint] = None


class ActivityHours(BaseModel):
    """The principal's usual active window, in a reference timezone."""
    start: int = Field(default=8, ge=0, le=23)
    end: int = Field(default=20, ge=1, le=24)
    tz: str = Field(default="Asia/Kolkata")


class Principal(BaseModel):
    """Principal entity schema.

    Owned by the identity store; RiskGate reads and writes
    risk-relevant fields only.
    """
    principal_id: str = Field(..., min_length=1, description="Stable identifier")
    contact: Optional[str] = Field(default=None, description="Unique contact address")
    is_admin: bool = False
    is_verified: bool = False
    has_identity_proof: bool = Field(
        default=False, description="Whether a strong identity proof is on record"
    )
    registered_fingerprint: Optional[str] = None
    registered_location: Optional[str] = Field(
        default=None, description="Coarse location, e.g. 'Kolkata, West Bengal, India'"
    )
    lockout_state: LockoutState = LockoutState.ACTIVE
    lock_reason: Optional[str] = None
    keystroke_baseline: Optional[KeystrokeBaseline] = None
    location_history: List[LocationFix] = Field(default_factory=list)
    known_devices: List[KnownDevice] = Field(default_factory=list)
    last_login: Optional[LastLogin] = None
    activity_hours: Optional[ActivityHours] = None

    model_config = {
        "json_schema_extra": {
            "example": {
                "principal_id": "usr_8f14e45f",
                "contact": "asha@example.com",
                "is_admin": False,
                "is_verified": True,
                "registered_fingerprint": "3f2a9c0d5e6b7a8190f1e2d3c4b5a697",
                "registered_location": "Kolkata, West Bengal, India",
            }
        }
    }

    @property
    def is_locked(self) -> bool:
        return self.lockout_state == LockoutState.LOCKED

    def knows_device(self, fingerprint: Optional[str]) -> bool:
        if not fingerprint:
            return False
        return any(device.fingerprint == fingerprint for device in self.known_devices)

    def last_location(self) -> Optional[LocationFix]:
        return self.location_history[-1] if self.location_history else None
