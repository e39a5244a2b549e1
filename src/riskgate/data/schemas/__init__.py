"""Data schemas - canonical definitions shared across components."""

from riskgate.data.schemas.signals import (
    ClientInfo,
    GeoPoint,
    IdentityProof,
    InboundRequest,
    Location,
    RequestSignals,
    TypingSample,
)
from riskgate.data.schemas.principal import (
    ActivityHours,
    KeystrokeBaseline,
    KnownDevice,
    LastLogin,
    LocationFix,
    Principal,
)
from riskgate.data.schemas.risk import (
    DeviceRiskAssessment,
    DeviceRiskFactors,
    DeviceVerdict,
    RiskBreakdown,
)

__all__ = [
    "ClientInfo",
    "GeoPoint",
    "IdentityProof",
    "InboundRequest",
    "Location",
    "RequestSignals",
    "TypingSample",
    "ActivityHours",
    "KeystrokeBaseline",
    "KnownDevice",
    "LastLogin",
    "LocationFix",
    "Principal",
    "DeviceRiskAssessment",
    "DeviceRiskFactors",
    "DeviceVerdict",
    "RiskBreakdown",
]
