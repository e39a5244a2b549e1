"""Signal collection - request signals and IP geolocation."""

from riskgate.signals.collector import (
    SignalCollector,
    derive_fingerprint,
    detect_vpn,
    is_suspicious_user_agent,
    resolve_client_ip,
)
from riskgate.signals.geolocation import (
    GeolocationResolver,
    HttpGeolocationResolver,
    StaticGeolocationResolver,
)

__all__ = [
    "SignalCollector",
    "derive_fingerprint",
    "detect_vpn",
    "is_suspicious_user_agent",
    "resolve_client_ip",
    "GeolocationResolver",
    "HttpGeolocationResolver",
    "StaticGeolocationResolver",
]
