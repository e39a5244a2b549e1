"""Request signal schemas - inbound request and the signals extracted from it."""

from datetime import datetime
from typing import Any, Dict, List, Literal, Optional

import numpy as np
from pydantic import BaseModel, Field, field_validator


UNKNOWN = "Unknown"


class GeoPoint(BaseModel):
    """A GPS coordinate pair."""
    lat: float = Field(..., ge=-90, le=90, description="Latitude in degrees")
    lon: float = Field(..., ge=-180, le=180, description="Longitude in degrees")

    model_config = {"frozen": True}


class Location(BaseModel):
    """Coarse location: city, region and country.

    An unknown location is explicit; it is never guessed.
    """
    city: str = Field(default="", description="City name")
    region: str = Field(default="", description="Region or state")
    country: str = Field(default="", description="Country name or code")
    is_unknown: bool = Field(default=False, description="Whether resolution failed")

    model_config = {"frozen": True}

    @classmethod
    def unknown(cls) -> "Location":
        return cls(country=UNKNOWN, is_unknown=True)

    @classmethod
    def parse(cls, value: str) -> "Location":
        """Parse a "City, Region, Country" or "City, Country" string.

        A single token is taken as the country.
        """
        parts = [part.strip() for part in value.split(",") if part.strip()]
        if not parts:
            return cls.unknown()
        if len(parts) == 1:
            return cls(country=parts[0])
        return cls(
            city=parts[0],
            region=parts[1] if len(parts) > 2 else "",
            country=parts[-1],
        )

    @property
    def label(self) -> Optional[str]:
        """Comma-delimited label with the country last, or None when unknown."""
        if self.is_unknown:
            return None
        return ", ".join(part for part in (self.city, self.region, self.country) if part)


class ClientInfo(BaseModel):
    """Client-side attributes reported by the browser or app."""
    screen_resolution: Optional[str] = None
    timezone: Optional[str] = None
    platform: Optional[str] = None
    color_depth: Optional[str] = None
    pixel_ratio: Optional[str] = None

    @field_validator("*", mode="before")
    @classmethod
    def _stringify(cls, value: Any) -> Any:
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return str(value)
        return value


class TypingSample(BaseModel):
    """Inter-keystroke intervals captured during credential entry."""
    intervals_ms: List[float] = Field(..., min_length=1)

    model_config = {"frozen": True}

    @field_validator("intervals_ms")
    @classmethod
    def _non_negative(cls, value: List[float]) -> List[float]:
        if any(interval < 0 for interval in value):
            raise ValueError("keystroke intervals must be non-negative")
        return value

    @property
    def mean_interval(self) -> float:
        return float(np.mean(self.intervals_ms))


class IdentityProof(BaseModel):
    """An opaque identity proof bound to a one-time challenge."""
    proof: str = Field(..., min_length=1)
    challenge: str = Field(..., min_length=1)
    issued_at: datetime = Field(..., description="When the proof was generated")
    credential_type: Optional[str] = None
    public_signals: List[str] = Field(default_factory=list)


class InboundRequest(BaseModel):
    """Raw inbound request as handed over by the HTTP surface."""
    headers: Dict[str, str] = Field(default_factory=dict)
    remote_addr: Optional[str] = None
    principal_id: Optional[str] = None
    contact: Optional[str] = Field(default=None, description="Unique contact address, e.g. email")
    action: str = Field(default="login", min_length=1)
    resource: Optional[str] = None
    client_info: Optional[ClientInfo] = None
    device_fingerprint: Optional[str] = Field(
        default=None, description="Client-computed device fingerprint"
    )
    location: Optional[str] = Field(default=None, description="Client-supplied location")
    gps: Optional[GeoPoint] = None
    timestamp: Optional[datetime] = None
    keystroke_intervals: Optional[List[float]] = None
    failed_attempts: Optional[int] = Field(default=None, ge=0)
    identity_proof: Optional[IdentityProof] = None

    @field_validator("headers")
    @classmethod
    def _lowercase_headers(cls, value: Dict[str, str]) -> Dict[str, str]:
        return {key.lower(): val for key, val in value.items()}

    def header(self, name: str) -> Optional[str]:
        value = self.headers.get(name.lower())
        return value if value else None


class RequestSignals(BaseModel):
    """Signals extracted from one inbound request.

    Request-scoped: created per request and discarded after the decision.
    """
    ip_address: str
    user_agent: str
    device_fingerprint: str = Field(..., description="Authoritative fingerprint for matching")
    derived_fingerprint: str = Field(..., description="Server-side fingerprint derivation")
    fingerprint_source: Literal["client", "derived"]
    location: Location
    gps: Optional[GeoPoint] = None
    timestamp: datetime
    typing_sample: Optional[TypingSample] = None
    failed_attempts: Optional[int] = None
    is_vpn: bool = False
    suspicious_user_agent: bool = False

    model_config = {"frozen": True}
