"""Device & Location Validator - compares request signals with the principal's baseline.

Mismatches are risk inputs, never errors.
All functions here are pure.
"""

from typing import List, Optional

from riskgate.common.constants import DeviceConstants
from riskgate.data.schemas.principal import Principal
from riskgate.data.schemas.risk import DeviceRiskAssessment, DeviceRiskFactors, DeviceVerdict
from riskgate.data.schemas.signals import RequestSignals
from riskgate.governance.schemas import DeviceRules


def validate_device(current: Optional[str], registered: Optional[str]) -> DeviceVerdict:
    """Compare the request fingerprint with the registered one.

    Args:
        current: Fingerprint presented by the request
        registered: Fingerprint on record for the principal

    Returns:
        DeviceVerdict: no baseline 15, match 0, mismatch 25
    """
    if not registered:
        return DeviceVerdict(
            is_match=False,
            risk_weight=DeviceConstants.NO_BASELINE_WEIGHT,
            reason="No registered device fingerprint (no baseline yet)",
        )

    if current and current == registered:
        return DeviceVerdict(is_match=True, risk_weight=0, reason="Device fingerprint matches")

    return DeviceVerdict(
        is_match=False,
        risk_weight=DeviceConstants.DEVICE_MISMATCH_WEIGHT,
        reason="Device fingerprint mismatch",
    )


def country_token(location: Optional[str]) -> Optional[str]:
    """Last comma-delimited segment, trimmed and case-folded."""
    if not location:
        return None
    token = location.split(",")[-1].strip()
    return token.casefold() or None


def validate_location(current: Optional[str], registered: Optional[str]) -> DeviceVerdict:
    """Compare the coarse country component of two location strings.

    Args:
        current: Location label of the request ("City, Region, Country")
        registered: Location on record for the principal

    Returns:
        DeviceVerdict: missing either 10, country match 0, mismatch 20
    """
    current_country = country_token(current)
    registered_country = country_token(registered)

    if current_country is None or registered_country is None:
        return DeviceVerdict(
            is_match=False,
            risk_weight=DeviceConstants.LOCATION_UNAVAILABLE_WEIGHT,
            reason="Location information unavailable",
        )

    if current_country == registered_country:
        return DeviceVerdict(is_match=True, risk_weight=0, reason="Location matches")

    return DeviceVerdict(
        is_match=False,
        risk_weight=DeviceConstants.LOCATION_MISMATCH_WEIGHT,
        reason=f"Location mismatch: expected {registered}, got {current}",
    )


def combine_device_risk(
    device: DeviceVerdict,
    location: DeviceVerdict,
    extra: Optional[DeviceRiskFactors] = None,
    rules: Optional[DeviceRules] = None,
) -> DeviceRiskAssessment:
    """Fold device and location verdicts plus extra negative factors into one score.

    Non-decreasing in every negative factor; capped at 100.
    """
    extra = extra or DeviceRiskFactors()
    rules = rules or DeviceRules()

    total = device.risk_weight + location.risk_weight
    factors: List[str] = []

    if not device.is_match and device.risk_weight > 0:
        factors.append("device_mismatch")
    if not location.is_match and location.risk_weight > 0:
        factors.append("location_anomaly")

    if extra.is_new_device:
        total += rules.new_device_increment
        factors.append("new_device")

    if extra.suspicious_user_agent:
        total += rules.suspicious_user_agent_increment
        factors.append("suspicious_user_agent")

    if extra.vpn_detected:
        total += rules.vpn_increment
        factors.append("vpn_detected")

    if extra.recent_failed_attempts > 0:
        total += min(
            extra.recent_failed_attempts * rules.points_per_recent_failure,
            rules.recent_failures_cap,
        )
        factors.append("recent_failures")

    return DeviceRiskAssessment(
        total_risk=min(total, 100),
        contributing_factors=tuple(factors),
        device=device,
        location=location,
    )


class DeviceValidator:
    """Device & Location Validator.

    Applies the pure validators to a principal and the collected signals.
    """

    def __init__(self, rules: Optional[DeviceRules] = None):
        self.rules = rules or DeviceRules()

    def assess(
        self,
        principal: Principal,
        signals: RequestSignals,
        recent_failed_attempts: int = 0,
    ) -> DeviceRiskAssessment:
        """Assess device and location risk for one request.

        Args:
            principal: Principal with registered baselines
            signals: Signals of the current request
            recent_failed_attempts: Failures inside the lockout window

        Returns:
            DeviceRiskAssessment with total risk and contributing factors
        """
        device = validate_device(signals.device_fingerprint, principal.registered_fingerprint)
        location = validate_location(signals.location.label, principal.registered_location)

        extra = DeviceRiskFactors(
            is_new_device=(
                principal.registered_fingerprint is None
                and not principal.knows_device(signals.device_fingerprint)
            ),
            suspicious_user_agent=signals.suspicious_user_agent,
            vpn_detected=signals.is_vpn,
            recent_failed_attempts=recent_failed_attempts,
        )
        return combine_device_risk(device, location, extra, self.rules)
