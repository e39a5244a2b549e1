"""
Signal Collector

Extracts the request-scoped signals (IP, user agent, device fingerprint,
location, timestamp, typing sample) from a raw inbound request.
Deterministic for a given request and geolocation resolver.
"""

import hashlib
import ipaddress
import logging
import re
from datetime import datetime, timezone
from typing import Any, Callable, Mapping, Optional, Union

from pydantic import ValidationError

from riskgate.common.constants import DeviceConstants
from riskgate.common.exceptions import SignalValidationError
from riskgate.data.schemas.signals import (
    ClientInfo,
    InboundRequest,
    Location,
    RequestSignals,
    TypingSample,
)
from riskgate.signals.geolocation import GeolocationResolver


logger = logging.getLogger(__name__)

UNKNOWN_IP = "unknown"

_CLIENT_FINGERPRINT = re.compile(r"^[0-9a-fA-F]{32,128}$")


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def ensure_utc(value: datetime) -> datetime:
    """Naive timestamps are taken as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def derive_fingerprint(
    user_agent: Optional[str],
    accept_language: Optional[str],
    accept_encoding: Optional[str],
    client_info: Optional[ClientInfo] = None,
) -> str:
    """One-way device fingerprint over a fixed, ordered attribute list.

    Attributes are joined with "|" (missing ones as empty strings),
    hashed with SHA-256 and truncated to 32 hex characters.
    """
    info = client_info or ClientInfo()
    components = [
        user_agent or "",
        accept_language or "",
        accept_encoding or "",
        info.screen_resolution or "",
        info.timezone or "",
        info.platform or "",
        info.color_depth or "",
        info.pixel_ratio or "",
    ]
    digest = hashlib.sha256("|".join(components).encode("utf-8")).hexdigest()
    return digest[:DeviceConstants.FINGERPRINT_LENGTH]


def resolve_client_ip(request: InboundRequest) -> str:
    """First X-Forwarded-For hop, then X-Real-IP, then the socket address."""
    forwarded = request.header("x-forwarded-for")
    if forwarded:
        first = forwarded.split(",")[0].strip()
        if first:
            return first

    real_ip = request.header("x-real-ip")
    if real_ip:
        return real_ip.strip()

    if request.remote_addr:
        return request.remote_addr.strip()

    return UNKNOWN_IP


def detect_vpn(user_agent: str) -> bool:
    lowered = user_agent.lower()
    return any(marker in lowered for marker in DeviceConstants.VPN_USER_AGENT_MARKERS)


def is_suspicious_user_agent(user_agent: str) -> bool:
    """Empty, bot-like or non-browser user agents are suspicious."""
    lowered = user_agent.lower().strip()
    if not lowered:
        return True
    if any(marker in lowered for marker in DeviceConstants.BOT_USER_AGENT_MARKERS):
        return True
    return not any(marker in lowered for marker in DeviceConstants.BROWSER_USER_AGENT_MARKERS)


class SignalCollector:
    """Builds RequestSignals from inbound requests.

    Location comes from the client-supplied value when present, otherwise
    from the geolocation resolver; with neither it is explicitly unknown.
    """

    def __init__(
        self,
        geolocation: Optional[GeolocationResolver] = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.geolocation = geolocation
        self.clock = clock

    def collect(self, request: Union[InboundRequest, Mapping[str, Any]]) -> RequestSignals:
        """Extract signals from a request.

        Raises:
            SignalValidationError: Malformed request, client IP or fingerprint
        """
        request = self._coerce(request)

        ip_address = resolve_client_ip(request)
        if ip_address != UNKNOWN_IP:
            try:
                ipaddress.ip_address(ip_address)
            except ValueError:
                raise SignalValidationError(
                    f"Malformed client address: {ip_address!r}",
                    details={"field": "ip_address"},
                )

        user_agent = request.header("user-agent") or ""
        derived = derive_fingerprint(
            user_agent,
            request.header("accept-language"),
            request.header("accept-encoding"),
            request.client_info,
        )

        if request.device_fingerprint:
            fingerprint = request.device_fingerprint.strip()
            if not _CLIENT_FINGERPRINT.match(fingerprint):
                raise SignalValidationError(
                    "Device fingerprint must be 32-128 hexadecimal characters",
                    details={"field": "device_fingerprint"},
                )
            fingerprint = fingerprint.lower()
            source = "client"
        else:
            fingerprint = derived
            source = "derived"

        typing_sample = None
        if request.keystroke_intervals:
            try:
                typing_sample = TypingSample(intervals_ms=request.keystroke_intervals)
            except ValidationError as e:
                raise SignalValidationError(
                    "Invalid keystroke intervals",
                    details={"field": "keystroke_intervals", "errors": e.errors()},
                )

        timestamp = ensure_utc(request.timestamp) if request.timestamp else self.clock()

        return RequestSignals(
            ip_address=ip_address,
            user_agent=user_agent,
            device_fingerprint=fingerprint,
            derived_fingerprint=derived,
            fingerprint_source=source,
            location=self._resolve_location(request, ip_address),
            gps=request.gps,
            timestamp=timestamp,
            typing_sample=typing_sample,
            failed_attempts=request.failed_attempts,
            is_vpn=detect_vpn(user_agent),
            suspicious_user_agent=is_suspicious_user_agent(user_agent),
        )

    def _coerce(self, request: Union[InboundRequest, Mapping[str, Any]]) -> InboundRequest:
        if isinstance(request, InboundRequest):
            return request
        try:
            return InboundRequest.model_validate(request)
        except ValidationError as e:
            raise SignalValidationError(
                "Malformed request signals",
                details={"errors": e.errors(include_url=False, include_context=False)},
            )

    def _resolve_location(self, request: InboundRequest, ip_address: str) -> Location:
        if request.location and request.location.strip():
            return Location.parse(request.location)

        if self.geolocation is None or ip_address == UNKNOWN_IP:
            return Location.unknown()

        try:
            return self.geolocation.resolve(ip_address)
        except Exception as e:
            # Resolvers are not supposed to raise; keep the request going.
            logger.warning(
                f"Geolocation resolver raised {type(e).__name__}",
                extra={"ip_address": ip_address},
            )
            return Location.unknown()
